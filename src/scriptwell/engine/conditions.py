"""Condition evaluation for ``$if`` / ``$while``.

Grammar (one comparison per condition)::

    a === b     strict: same type and value
    a !== b
    a == b      loose: compared as text when types differ
    a != b
    !x          negated truthiness
    x           truthiness

Operands resolve in order: quoted string, ``true``/``false``, number,
variable (dot-path), bare text. A dot-path that names no variable is "".
"""

import re
from collections.abc import Mapping
from typing import Any

from scriptwell.script.template import get_nested, to_text

# Longest operators first so "===" is not read as "=="
_OPERATORS = ("!==", "===", "!=", "==")
_IDENTIFIER = re.compile(r"^[A-Za-z_][\w]*(?:\.[\w]+)*$")
_NUMBER = re.compile(r"^-?\d+(?:\.\d+)?$")
_BRACED = re.compile(r"^\{\{(.+)\}\}$")


def resolve_operand(token: str, variables: Mapping[str, Any]) -> Any:
    """Value of one operand."""
    text = token.strip()
    braced = _BRACED.match(text)
    if braced:
        text = braced.group(1).strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        return text[1:-1]
    if text in ("true", "false"):
        return text == "true"
    if _NUMBER.match(text):
        return float(text) if "." in text else int(text)
    if _IDENTIFIER.match(text):
        value = get_nested(text, variables)
        return "" if value is None else value
    return text


def is_truthy(value: Any) -> bool:
    """Script truthiness: empty, zero, "false", "0" and None are false."""
    if value is None or value is False:
        return False
    if isinstance(value, str):
        return value.strip().lower() not in ("", "false", "0", "null", "none")
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) > 0
    return True


def _loose_equal(a: Any, b: Any) -> bool:
    if type(a) is type(b):
        return a == b
    if isinstance(a, (int, float)) and isinstance(b, (int, float)) and not isinstance(a, bool) and not isinstance(b, bool):
        return a == b
    return to_text(a).strip() == to_text(b).strip()


def _strict_equal(a: Any, b: Any) -> bool:
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return a == b
    return type(a) is type(b) and a == b


def evaluate_condition(condition: str, variables: Mapping[str, Any]) -> bool:
    """Evaluate a condition against the current variables.

    An operand written as ``{{var}}`` is the same as ``var``.

    Example:
        >>> evaluate_condition("status == 'done'", {"status": "done"})
        True
        >>> evaluate_condition("!errors", {"errors": ""})
        True
    """
    text = condition.strip()
    if not text:
        return False

    for op in _OPERATORS:
        left, sep, right = _split_outside_quotes(text, op)
        if sep:
            a = resolve_operand(left, variables)
            b = resolve_operand(right, variables)
            if op == "===":
                return _strict_equal(a, b)
            if op == "!==":
                return not _strict_equal(a, b)
            if op == "==":
                return _loose_equal(a, b)
            return not _loose_equal(a, b)

    if text.startswith("!"):
        return not is_truthy(resolve_operand(text[1:], variables))
    return is_truthy(resolve_operand(text, variables))


def _split_outside_quotes(text: str, op: str) -> tuple[str, str, str]:
    """Split on the first ``op`` that is not inside quotes."""
    quote: str | None = None
    i = 0
    while i < len(text):
        ch = text[i]
        if quote:
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif text.startswith(op, i):
            # "!=" must not match inside "!==", "==" not inside "==="
            if op in ("!=", "==") and text.startswith(op + "=", i):
                i += len(op) + 1
                continue
            if op == "==" and i > 0 and text[i - 1] in ("!", "="):
                i += 1
                continue
            return text[:i], op, text[i + len(op):]
        i += 1
    return text, "", ""
