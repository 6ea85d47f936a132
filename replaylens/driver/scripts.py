"""In-page JavaScript shared by drivers and the capture script."""

from __future__ import annotations

# Declares describeElement(el, pointer) -> element snapshot in capture format.
# Coordinates are CSS pixels relative to the layout viewport.
DESCRIBE_ELEMENT_FN = r"""
function describeElement(el, pointer) {
    if (!el || el.nodeType !== 1) return null;
    const clean = (s) => (s || '').replace(/\s+/g, ' ').trim();
    const esc = (s) => (window.CSS && CSS.escape) ? CSS.escape(s) : String(s).replace(/([^a-zA-Z0-9_-])/g, '\\$1');

    function structuralPath(target) {
        const parts = [];
        let node = target;
        while (node && node.nodeType === 1 && node !== document.body && node !== document.documentElement) {
            if (node !== target && node.id) {
                parts.unshift('#' + esc(node.id));
                return parts.join(' > ');
            }
            const parent = node.parentElement;
            if (!parent) break;
            const index = Array.prototype.indexOf.call(parent.children, node) + 1;
            parts.unshift(node.tagName.toLowerCase() + ':nth-child(' + index + ')');
            node = parent;
        }
        parts.unshift('body');
        return parts.join(' > ');
    }

    const tag = el.tagName.toLowerCase();
    const rect = el.getBoundingClientRect();
    const ariaLabel = el.getAttribute('aria-label');
    const placeholder = el.getAttribute('placeholder');
    const buttonValue = (tag === 'input' && ['submit', 'button'].includes((el.type || '').toLowerCase())) ? el.value : '';
    const text = clean(el.innerText || buttonValue || ariaLabel || '').slice(0, 100);

    const around = [];
    const parent = el.parentElement;
    if (parent) {
        const t = clean(parent.innerText);
        if (t && t.length < 100) around.push(t);
    }
    for (const sib of [el.previousElementSibling, el.nextElementSibling]) {
        if (!sib) continue;
        const t = clean(sib.innerText);
        if (t) around.push(t.slice(0, 100));
    }
    if (ariaLabel) around.push('aria:' + ariaLabel);
    if (placeholder) around.push('placeholder:' + placeholder);

    return {
        tag: tag,
        id: el.id || null,
        name: el.getAttribute('name'),
        type: el.getAttribute('type'),
        placeholder: placeholder,
        testId: el.getAttribute('data-testid'),
        dataId: el.getAttribute('data-id'),
        ariaLabel: ariaLabel,
        classes: Array.from(el.classList),
        structuralPath: structuralPath(el),
        text: text,
        value: (typeof el.value === 'string') ? el.value : null,
        isContentEditable: !!el.isContentEditable,
        rect: {x: rect.left, y: rect.top, width: rect.width, height: rect.height},
        viewport: {width: window.innerWidth, height: window.innerHeight},
        pointer: pointer || null,
        surroundingText: around.slice(0, 5),
        url: location.href,
    };
}
"""

DESCRIBE_BY_SELECTOR = (
    "(selector) => {\n"
    + DESCRIBE_ELEMENT_FN
    + "\nreturn describeElement(document.querySelector(selector), null);\n}"
)

SCAN_ELEMENTS = r"""
(limit) => {
    const INTERACTIVE = 'a,button,input,select,textarea,label,summary,[role],[onclick],[tabindex],[contenteditable="true"],[contenteditable=""]';
    const vw = window.innerWidth, vh = window.innerHeight;
    for (const old of document.querySelectorAll('[data-rl-scan]')) old.removeAttribute('data-rl-scan');
    const out = [];
    const all = document.body ? document.body.querySelectorAll('*') : [];
    for (const el of all) {
        if (out.length >= limit) break;
        const rect = el.getBoundingClientRect();
        if (rect.width <= 0 || rect.height <= 0) continue;
        if (rect.bottom < 0 || rect.right < 0 || rect.top > vh || rect.left > vw) continue;
        const style = window.getComputedStyle(el);
        if (style.visibility === 'hidden' || style.display === 'none' || style.opacity === '0') continue;
        const interactive = el.matches(INTERACTIVE);
        let own = '';
        for (const n of el.childNodes) if (n.nodeType === 3) own += n.textContent;
        own = own.replace(/\s+/g, ' ').trim();
        if (!interactive && !own) continue;
        const text = (interactive ? (el.innerText || (typeof el.value === 'string' ? el.value : '') || '') : own)
            .replace(/\s+/g, ' ').trim().slice(0, 200);
        const index = out.length;
        el.setAttribute('data-rl-scan', String(index));
        const cx = rect.left + rect.width / 2, cy = rect.top + rect.height / 2;
        out.push({
            index: index,
            tag: el.tagName.toLowerCase(),
            text: text,
            x: cx, y: cy,
            rx: cx / vw * 100, ry: cy / vh * 100,
            rect: {x: rect.left, y: rect.top, width: rect.width, height: rect.height},
            attributes: {
                placeholder: el.getAttribute('placeholder'),
                type: el.getAttribute('type'),
                name: el.getAttribute('name'),
                ariaLabel: el.getAttribute('aria-label'),
                role: el.getAttribute('role'),
                contentEditable: !!el.isContentEditable,
                interactive: interactive,
            },
        });
    }
    return out;
}
"""

QUERY_SELECTOR = r"""
(selector) => {
    const vw = window.innerWidth, vh = window.innerHeight;
    return Array.from(document.querySelectorAll(selector)).map((el, i) => {
        const rect = el.getBoundingClientRect();
        const style = window.getComputedStyle(el);
        const visible = rect.width > 0 && rect.height > 0 && style.visibility !== 'hidden' && style.display !== 'none';
        const cx = rect.left + rect.width / 2, cy = rect.top + rect.height / 2;
        return {
            index: i,
            tag: el.tagName.toLowerCase(),
            text: (el.innerText || (typeof el.value === 'string' ? el.value : '') || '').replace(/\s+/g, ' ').trim().slice(0, 200),
            x: cx, y: cy,
            rx: cx / vw * 100, ry: cy / vh * 100,
            rect: {x: rect.left, y: rect.top, width: rect.width, height: rect.height},
            attributes: {
                placeholder: el.getAttribute('placeholder'),
                type: el.getAttribute('type'),
                name: el.getAttribute('name'),
                ariaLabel: el.getAttribute('aria-label'),
                visible: visible,
            },
        };
    });
}
"""

PAGE_STATE = r"""
() => ({
    url: location.href,
    title: document.title,
    viewport: {width: window.innerWidth, height: window.innerHeight},
    elementCount: document.querySelectorAll('*').length,
    visibleText: document.body ? (document.body.innerText || '').slice(0, 500) : '',
})
"""

# Resolves [selector, index, x, y] to an element, falling back to the point
_FIND_ELEMENT = r"""
    const [selector, index, x, y] = target;
    let el = null;
    if (selector) {
        try { el = document.querySelectorAll(selector)[index] || null; } catch (e) { el = null; }
    }
    if (!el) el = document.elementFromPoint(x, y);
"""

HIGHLIGHT = (
    "([target, durationMs]) => {"
    + _FIND_ELEMENT
    + r"""
    if (!el) return false;
    const previous = el.style.outline;
    el.style.outline = '3px solid red';
    setTimeout(() => { el.style.outline = previous; }, durationMs);
    return true;
}
"""
)

READ_VALUE = (
    "(target) => {"
    + _FIND_ELEMENT
    + r"""
    if (!el) return null;
    if (typeof el.value === 'string') return el.value;
    if (el.isContentEditable) return el.innerText;
    return null;
}
"""
)

DOM_QUIET = r"""
([quietMs, timeoutMs]) => new Promise((resolve) => {
    let timer = null;
    let deadline = null;
    const observer = new MutationObserver(() => {
        clearTimeout(timer);
        timer = setTimeout(() => done(true), quietMs);
    });
    function done(ok) {
        observer.disconnect();
        clearTimeout(timer);
        clearTimeout(deadline);
        resolve(ok);
    }
    observer.observe(document.documentElement || document, {
        childList: true, subtree: true, attributes: true, characterData: true,
    });
    timer = setTimeout(() => done(true), quietMs);
    deadline = setTimeout(() => done(false), timeoutMs);
})
"""
