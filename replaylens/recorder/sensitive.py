"""Sensitive-field detection: typed credentials never reach a workflow."""

from __future__ import annotations

import re

from replaylens.core.templates import placeholder

_PASSWORD = re.compile(r"password", re.I)
_USERNAME = re.compile(r"username|user|login", re.I)
_EMAIL = re.compile(r"email|e-mail", re.I)
_CAPTION = re.compile(r"caption|post|content|message", re.I)

UPLOAD_PLACEHOLDER = placeholder("imagePath")


def sensitive_variable(element: dict) -> str | None:
    """
    Name of the template variable that replaces this field's value, if any.

    Checked in order: password, username, email, caption.
    """
    input_type = (element.get("type") or "").lower()
    name = element.get("name") or ""
    elem_id = element.get("id") or ""
    ph = element.get("placeholder") or ""

    if input_type == "password" or _PASSWORD.search(name) or _PASSWORD.search(elem_id):
        return "password"
    if any(_USERNAME.search(v) for v in (name, elem_id, ph)):
        return "username"
    if input_type == "email" or any(_EMAIL.search(v) for v in (name, elem_id, ph)):
        return "email"
    if (element.get("tag") or "").lower() == "textarea" or _CAPTION.search(name):
        return "caption"
    return None


def mask_value(element: dict, value: str | None) -> str | None:
    """Replace ``value`` with ``{{variable}}`` when ``element`` is sensitive."""
    variable = sensitive_variable(element)
    if variable is None:
        return value
    return placeholder(variable)
