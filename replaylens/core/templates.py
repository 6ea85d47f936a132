"""``{{name}}`` template variables inside action values and params."""

from __future__ import annotations

import re
from typing import Any

from replaylens.core.errors import ConfigurationError
from replaylens.core.types import Action

_PLACEHOLDER = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


def placeholder(name: str) -> str:
    return "{{" + name + "}}"


def find_placeholders(value: Any) -> list[str]:
    """All placeholder names in a string or nested list/dict, in order of first use."""
    found: list[str] = []

    def _walk(v: Any) -> None:
        if isinstance(v, str):
            for name in _PLACEHOLDER.findall(v):
                if name not in found:
                    found.append(name)
        elif isinstance(v, dict):
            for item in v.values():
                _walk(item)
        elif isinstance(v, (list, tuple)):
            for item in v:
                _walk(item)

    _walk(value)
    return found


def substitute(value: Any, variables: dict[str, Any]) -> Any:
    """
    Replace every placeholder in ``value`` (recursively).

    Raises ConfigurationError listing every variable that has no entry
    in ``variables``.
    """
    missing = [n for n in find_placeholders(value) if n not in variables]
    if missing:
        raise ConfigurationError(
            f"Missing template variable(s): {', '.join(missing)}", missing=missing
        )
    return _replace(value, variables)


def _replace(value: Any, variables: dict[str, Any]) -> Any:
    if isinstance(value, str):
        return _PLACEHOLDER.sub(lambda m: str(variables[m.group(1)]), value)
    if isinstance(value, dict):
        return {k: _replace(v, variables) for k, v in value.items()}
    if isinstance(value, list):
        return [_replace(v, variables) for v in value]
    if isinstance(value, tuple):
        return tuple(_replace(v, variables) for v in value)
    return value


def resolve_action(action: Action, variables: dict[str, Any]) -> Action:
    """Return a copy of ``action`` with its value and params substituted."""
    missing = [
        n for n in find_placeholders([action.value, action.params]) if n not in variables
    ]
    if missing:
        raise ConfigurationError(
            f"Action {action.name or action.type.value!r} needs template variable(s): "
            f"{', '.join(missing)}",
            missing=missing,
        )
    return Action(
        type=action.type,
        name=action.name,
        visual=action.visual,
        backup_selector=action.backup_selector,
        value=_replace(action.value, variables),
        params=_replace(action.params, variables),
        resolution_mode=action.resolution_mode,
    )
