"""{{var}} template rendering with dot-paths and filters."""

import re
from collections.abc import Mapping
from typing import Any

TEMPLATE_PATTERN = re.compile(r"\{\{([^}]+)\}\}")

_FILTERS = {
    "upper": lambda s: s.upper(),
    "lower": lambda s: s.lower(),
    "trim": lambda s: s.strip(),
}


def get_nested(path: str, variables: Mapping[str, Any]) -> Any:
    """Resolve ``a.b.c`` against nested mappings (and list indices).

    Returns None when any segment is missing.
    """
    current: Any = variables
    for part in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(part)
        elif isinstance(current, (list, tuple)) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


def to_text(value: Any) -> str:
    """Stringify a variable value the way templates display it."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _evaluate(expression: str, variables: Mapping[str, Any]) -> str:
    parts = [p.strip() for p in expression.split("|")]
    text = to_text(get_nested(parts[0], variables))
    for name in parts[1:]:
        # Unknown filters pass the value through
        fn = _FILTERS.get(name.lower())
        if fn is not None:
            text = fn(text)
    return text


def render(template: str, variables: Mapping[str, Any]) -> str:
    """Substitute every ``{{expr}}`` in ``template``.

    Unknown variables render as the empty string.

    Example:
        >>> render("Hi {{user.name | upper}}", {"user": {"name": "ada"}})
        'Hi ADA'
    """
    return TEMPLATE_PATTERN.sub(lambda m: _evaluate(m.group(1), variables), template)


def has_variables(template: str) -> bool:
    return TEMPLATE_PATTERN.search(template) is not None


def extract_variables(template: str) -> list[str]:
    """Variable paths referenced by a template, first occurrence order."""
    seen: list[str] = []
    for match in TEMPLATE_PATTERN.finditer(template):
        name = match.group(1).split("|")[0].strip()
        if name not in seen:
            seen.append(name)
    return seen
