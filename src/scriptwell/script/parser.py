"""Parser for ``.ai.yaml`` scripts.

Layout of a script file::

    ---
    parameters:
      language: python
    ---
    system: You are a careful {{language}} reviewer.
    user: |
      Review this change:
      {{content}}
    assistant: [[review]]
    $echo: {{review}}
    ***
    user: Summarize the review in one line.
    -> publish(channel=general)

Sections are separated by ``---`` or ``***`` lines. The first section is
YAML front matter when the file opens with a separator or when it parses to
a mapping whose keys are not message roles. Every other section is a turn.
"""

import logging
import re
import textwrap
from pathlib import Path
from typing import Any

import yaml

from scriptwell.foundation.errors import ScriptStructureError
from scriptwell.script.model import Instruction, Message, Role, Script, Turn

logger = logging.getLogger(__name__)

_SEPARATOR = re.compile(r"^(?:-{3,}|\*{3,})\s*$")
_ROLE_LINE = re.compile(r"^(\w+):\s*(.*)$")
PLACEHOLDER_PATTERN = re.compile(r"\[\[(\w+)(?::([^\]]*))?\]\]")
_PARAM = re.compile(r"""(\w+)\s*=\s*(?:'([^']*)'|"([^"]*)"|([^\s,)]+))""")
_CALL = re.compile(r"^([\w][\w\-./]*)\s*(?:\((.*)\))?$")
_BLOCK_HEADER = re.compile(r"^\$(if|while)\b")

_RESERVED_FRONT_MATTER = ("parameters", "input", "output", "response_format", "autoRunLLMIfPromptAvailable")


# =============================================================================
# Small helpers
# =============================================================================


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip(" \t"))


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def _coerce_scalar(value: str) -> Any:
    """Turn bare parameter values into bool/int/float where unambiguous."""
    lowered = value.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        return value


def parse_params(text: str) -> dict[str, Any]:
    """Parse ``key=value, key2='quoted value'`` lists.

    Quoted values stay strings; bare values are coerced.
    """
    params: dict[str, Any] = {}
    for match in _PARAM.finditer(text):
        key, single, double, bare = match.groups()
        if single is not None:
            params[key] = single
        elif double is not None:
            params[key] = double
        else:
            params[key] = _coerce_scalar(bare)
    return params


def parse_instruction(text: str) -> Instruction:
    """Parse a single ``$name: value`` / ``$name(k=v)`` / ``$name`` line."""
    body = text.strip()
    if not body.startswith("$"):
        raise ScriptStructureError(f"instruction must start with '$': {text!r}")
    body = body[1:].strip()

    colon = body.find(":")
    paren = body.find("(")
    if colon > 0 and (paren < 0 or colon < paren):
        name = body[:colon].strip()
        value = body[colon + 1:].strip()
        if not name.isidentifier():
            raise ScriptStructureError(f"invalid instruction name: {name!r}")
        return Instruction(name=name, args={"value": _unquote(value)}, raw=value)

    match = _CALL.match(body)
    if match is None or not match.group(1).isidentifier():
        raise ScriptStructureError(f"cannot parse instruction: {text!r}")
    name, params = match.group(1), match.group(2)
    return Instruction(name=name, args=parse_params(params) if params else {}, raw=params)


def _create_message(role: Role, content: str) -> Message:
    matches = list(PLACEHOLDER_PATTERN.finditer(content))
    if len(matches) > 1:
        raise ScriptStructureError(
            f"a message may hold one placeholder, found {len(matches)}: "
            + ", ".join(m.group(0) for m in matches)
        )
    if not matches:
        return Message(role=role, content=content)
    match = matches[0]
    params = parse_params(match.group(2)) if match.group(2) else {}
    return Message(role=role, content=content, placeholder_var=match.group(1), placeholder_params=params)


# =============================================================================
# Turn parsing
# =============================================================================


class _TurnBuilder:
    """Accumulates messages for one turn while lines are scanned."""

    def __init__(self) -> None:
        self.messages: list[Message] = []
        self.role: Role | None = None
        self.lines: list[str] = []
        self.multiline = False

    def start(self, role: Role, first: str) -> None:
        self.flush()
        self.role = role
        if first in ("|", "|-"):
            self.multiline = True
        elif first:
            self.lines.append(first)

    def add(self, line: str) -> None:
        if self.role is None:
            self.role = Role.USER
        self.lines.append(line if self.multiline else line.strip())

    def flush(self) -> None:
        if self.role is not None:
            text = textwrap.dedent("\n".join(self.lines)).strip() if self.multiline else "\n".join(self.lines).strip()
            if text:
                self.messages.append(_create_message(self.role, text))
        self.role = None
        self.lines = []
        self.multiline = False


def _parse_block(lines: list[str], start: int, header: str) -> tuple[Instruction, int]:
    """Parse an ``$if`` / ``$while`` block starting at ``lines[start]``.

    Children are the following lines indented deeper than the header line.
    Returns the instruction and the index of the first line after the block.
    """
    base_indent = _indent(lines[start])
    name = _BLOCK_HEADER.match(header).group(1)
    condition = _unquote(header[len(name) + 1:].strip().lstrip(":").strip())
    if not condition:
        raise ScriptStructureError(f"${name} requires a condition")

    sections: dict[str, list[Instruction]] = {"then": [], "else": [], "do": []}
    current: str | None = None
    i = start + 1
    while i < len(lines):
        line = lines[i]
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            i += 1
            continue
        if _indent(line) <= base_indent:
            break
        if stripped in ("then:", "else:", "do:"):
            current = stripped[:-1]
            i += 1
            continue
        if current is None:
            expected = "then:" if name == "if" else "do:"
            raise ScriptStructureError(f"${name} block needs '{expected}' before its instructions")
        item = stripped[1:].strip() if stripped.startswith("-") else stripped
        if _BLOCK_HEADER.match(item):
            nested, i = _parse_block(lines, i, item)
            sections[current].append(nested)
            continue
        sections[current].append(parse_instruction(item))
        i += 1

    if name == "if":
        if sections["do"]:
            raise ScriptStructureError("$if blocks use then:/else:, not do:")
        body, orelse = sections["then"], sections["else"]
    else:
        if sections["then"] or sections["else"]:
            raise ScriptStructureError("$while blocks use do:, not then:/else:")
        body, orelse = sections["do"], []
    return Instruction(name=name, condition=condition, raw=condition, body=tuple(body), orelse=tuple(orelse)), i


def parse_turn(text: str) -> Turn | None:
    """Parse one turn section. Returns None for a section with no content."""
    lines = text.splitlines()
    builder = _TurnBuilder()
    instructions: list[Instruction] = []
    chain_to: str | None = None
    chain_params: dict[str, Any] = {}

    i = 0
    while i < len(lines):
        line = lines[i]
        stripped = line.strip()

        if builder.multiline and (not stripped or line[:1] in (" ", "\t")):
            # Indented lines (and blank lines) belong to the open block verbatim
            builder.lines.append(line)
            i += 1
            continue
        if not stripped or stripped.startswith("#"):
            i += 1
            continue

        if stripped.startswith("->"):
            builder.flush()
            match = _CALL.match(stripped[2:].strip())
            if match is None:
                raise ScriptStructureError(f"invalid chain directive: {stripped!r}")
            chain_to = match.group(1)
            chain_params = parse_params(match.group(2)) if match.group(2) else {}
            i += 1
            continue

        if _BLOCK_HEADER.match(stripped):
            builder.flush()
            block, i = _parse_block(lines, i, stripped)
            instructions.append(block)
            continue

        if stripped.startswith("$"):
            builder.flush()
            instructions.append(parse_instruction(stripped))
            i += 1
            continue

        role_match = _ROLE_LINE.match(stripped)
        role = Role.parse(role_match.group(1)) if role_match else None
        if role is not None:
            builder.start(role, role_match.group(2).strip())
        else:
            # Continuation of the current message, or an implicit user message
            if builder.multiline:
                builder.flush()
            builder.add(stripped)
        i += 1

    builder.flush()
    if not builder.messages and not instructions and chain_to is None:
        return None
    return Turn(
        messages=tuple(builder.messages),
        instructions=tuple(instructions),
        chain_to=chain_to,
        chain_params=chain_params,
    )


# =============================================================================
# Script parsing
# =============================================================================


def _split_sections(content: str) -> tuple[list[str], bool]:
    """Split on separator lines. Returns sections and whether the file opened with one."""
    sections: list[list[str]] = [[]]
    opened_with_separator = False
    seen_content = False
    for line in content.splitlines():
        if _SEPARATOR.match(line):
            if not seen_content:
                opened_with_separator = True
            sections.append([])
            continue
        if line.strip():
            seen_content = True
        sections[-1].append(line)
    texts = ["\n".join(s) for s in sections]
    # Drop the empty leading section created by an opening separator
    if opened_with_separator and not texts[0].strip():
        texts = texts[1:]
    return texts, opened_with_separator


def _looks_like_front_matter(data: Any) -> bool:
    if not isinstance(data, dict) or not data:
        return False
    for key in data:
        if not isinstance(key, str):
            return False
        if Role.parse(key) is not None or key.startswith("$"):
            return False
    return True


def _load_front_matter(text: str, explicit: bool, source: str | None) -> dict[str, Any] | None:
    if not text.strip():
        return {} if explicit else None
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        if explicit:
            raise ScriptStructureError(f"invalid front matter: {e}", path=source, cause=e) from e
        return None
    if _looks_like_front_matter(data):
        return data
    if explicit and data is None:
        return {}
    return None


def parse_script(content: str, source_path: str | None = None) -> Script:
    """Parse script text into a :class:`Script`.

    Raises:
        ScriptStructureError: On malformed front matter, instructions or blocks.
    """
    sections, explicit = _split_sections(content)
    front: dict[str, Any] = {}
    if sections:
        loaded = _load_front_matter(sections[0], explicit, source_path)
        if loaded is not None:
            front = loaded
            sections = sections[1:]

    parameters = front.get("parameters") or {}
    if not isinstance(parameters, dict):
        raise ScriptStructureError("front matter 'parameters' must be a mapping", path=source_path)
    raw_input = front.get("input") or ()
    if isinstance(raw_input, str):
        raw_input = (raw_input,)

    turns = []
    for section in sections:
        try:
            turn = parse_turn(section)
        except ScriptStructureError as e:
            if source_path:
                raise ScriptStructureError(e.context.get("detail", str(e)), path=source_path, cause=e) from e
            raise
        if turn is not None:
            turns.append(turn)

    metadata = {k: v for k, v in front.items() if k not in _RESERVED_FRONT_MATTER}
    for key in ("output", "response_format"):
        if key in front:
            metadata[key] = front[key]

    script = Script(
        parameters=dict(parameters),
        turns=tuple(turns),
        metadata=metadata,
        source_path=source_path,
        input=tuple(str(v) for v in raw_input),
        auto_run_model=bool(front.get("autoRunLLMIfPromptAvailable", True)),
    )
    logger.debug(
        "Parsed script",
        extra={"source": source_path, "turns": len(script.turns), "parameters": len(script.parameters)},
    )
    return script


def parse_file(path: str | Path) -> Script:
    """Read and parse a script file."""
    file_path = Path(path)
    return parse_script(file_path.read_text(encoding="utf-8"), str(file_path))
