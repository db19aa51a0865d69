"""Tests for the .ai.yaml script parser."""

import pytest

from scriptwell.foundation.errors import ErrorCode, ScriptStructureError
from scriptwell.script.model import Role
from scriptwell.script.parser import parse_instruction, parse_params, parse_script

FULL_SCRIPT = """---
name: review
parameters:
  language: python
input: content
---
system: You review {{language}} code.
user: |
  line one
    indented
  line three
assistant: [[review:temperature=0.2]]
$echo: {{review}}
***
user: Summarize it
-> publish(channel=general, count=3)
"""


class TestParseScript:
    """Whole-file parsing."""

    def test_minimal_script(self) -> None:
        """One turn with a placeholder and an instruction, no front matter."""
        script = parse_script("user: Say ok\nassistant: [[var]]\n$echo: {{var}}")

        [turn] = script.turns
        assert [m.role for m in turn.messages] == [Role.USER, Role.ASSISTANT]
        assert turn.messages[1].placeholder_var == "var"
        assert turn.instructions[0].name == "echo"
        assert turn.instructions[0].args == {"value": "{{var}}"}
        assert script.parameters == {}
        assert script.name == "<inline>"

    def test_front_matter_and_turns(self) -> None:
        script = parse_script(FULL_SCRIPT, "scripts/review.ai.yaml")

        assert script.parameters == {"language": "python"}
        assert script.input == ("content",)
        assert script.metadata == {"name": "review"}
        assert script.name == "review"
        assert len(script.turns) == 2

        first, second = script.turns
        assert first.messages[1].content == "line one\n  indented\nline three"
        assert first.messages[2].placeholder_params == {"temperature": 0.2}
        assert second.chain_to == "publish"
        assert second.chain_params == {"channel": "general", "count": 3}

    def test_implicit_user_and_role_aliases(self) -> None:
        script = parse_script("Just a question\nai: [[answer]]")
        [turn] = script.turns
        assert turn.messages[0].role is Role.USER
        assert turn.messages[1].role is Role.ASSISTANT

    def test_auto_run_flag(self) -> None:
        script = parse_script("---\nautoRunLLMIfPromptAvailable: false\n---\nuser: hi")
        assert not script.auto_run_model

    def test_empty_sections_are_skipped(self) -> None:
        script = parse_script("user: one\n***\n\n***\nuser: two")
        assert len(script.turns) == 2

    def test_two_placeholders_rejected(self) -> None:
        with pytest.raises(ScriptStructureError, match="one placeholder"):
            parse_script("assistant: [[a]] and [[b]]")

    def test_error_carries_source_path(self) -> None:
        with pytest.raises(ScriptStructureError) as exc_info:
            parse_script("assistant: [[a]] [[b]]", "bad.ai.yaml")
        assert exc_info.value.code is ErrorCode.SCRIPT_PARSE_ERROR
        assert exc_info.value.context["path"] == "bad.ai.yaml"

    def test_invalid_explicit_front_matter(self) -> None:
        with pytest.raises(ScriptStructureError):
            parse_script("---\nparameters: [unclosed\n---\nuser: hi")

    def test_parameters_must_be_mapping(self) -> None:
        with pytest.raises(ScriptStructureError):
            parse_script("---\nparameters: 3\n---\nuser: hi")


class TestControlBlocks:
    """$if / $while blocks."""

    def test_if_then_else(self) -> None:
        script = parse_script(
            "user: hi\n"
            "assistant: [[answer]]\n"
            "$if: answer == 'yes'\n"
            "  then:\n"
            "    - $set(done=true)\n"
            "  else:\n"
            "    - $echo: retry\n"
        )
        [block] = script.turns[0].instructions

        assert block.name == "if"
        assert block.is_block
        assert block.condition == "answer == 'yes'"
        assert block.body[0].name == "set"
        assert block.body[0].args == {"done": True}
        assert block.orelse[0].args == {"value": "retry"}

    def test_nested_while(self) -> None:
        script = parse_script(
            "$while: count < 3\n"
            "  do:\n"
            "    - $if: count == 1\n"
            "      then:\n"
            "        - $echo: one\n"
            "    - $set(count=2)\n"
        )
        [loop] = script.turns[0].instructions

        assert loop.name == "while"
        assert [i.name for i in loop.body] == ["if", "set"]
        assert loop.body[0].body[0].args == {"value": "one"}

    def test_block_needs_section_header(self) -> None:
        with pytest.raises(ScriptStructureError, match="then:"):
            parse_script("$if: x\n  - $echo: y\n")

    def test_while_rejects_then(self) -> None:
        with pytest.raises(ScriptStructureError):
            parse_script("$while: x\n  then:\n    - $echo: y\n")

    def test_condition_required(self) -> None:
        with pytest.raises(ScriptStructureError, match="requires a condition"):
            parse_script("$if:\n  then:\n    - $echo: y\n")


class TestInstructionsAndParams:
    """Single-line instructions and parameter lists."""

    def test_instruction_forms(self) -> None:
        assert parse_instruction("$echo: 'hello'").args == {"value": "hello"}
        assert parse_instruction("$print").args == {}
        assert parse_instruction("$set(x=1)").args == {"x": 1}

    def test_invalid_instructions(self) -> None:
        with pytest.raises(ScriptStructureError):
            parse_instruction("echo: x")
        with pytest.raises(ScriptStructureError):
            parse_instruction("$bad name: x")

    def test_param_coercion(self) -> None:
        params = parse_params("a=1, b='two words', c=\"q\", d=true, e=1.5, f=text")
        assert params == {"a": 1, "b": "two words", "c": "q", "d": True, "e": 1.5, "f": "text"}
