"""Tests for {{var}} rendering."""

from scriptwell.script.template import extract_variables, get_nested, has_variables, render, to_text


class TestRender:
    """Template substitution."""

    def test_nested_paths_and_list_indices(self) -> None:
        variables = {"user": {"name": "ada", "tags": ["x", "y"]}}
        assert render("{{user.name}}/{{user.tags.1}}", variables) == "ada/y"

    def test_filters(self) -> None:
        assert render("{{ name | upper }}", {"name": "ada"}) == "ADA"
        assert render("{{name|trim|lower}}", {"name": "  ADA "}) == "ada"
        assert render("{{name | shout}}", {"name": "ada"}) == "ada"

    def test_unknown_variables_render_empty(self) -> None:
        assert render("[{{missing}}] [{{user.nope}}]", {"user": {}}) == "[] []"

    def test_value_formatting(self) -> None:
        assert to_text(True) == "true"
        assert to_text(3.0) == "3"
        assert to_text(2.5) == "2.5"
        assert to_text(None) == ""


class TestInspection:
    """Helpers that look at templates without rendering."""

    def test_extract_variables_in_order(self) -> None:
        assert extract_variables("{{b}} {{a | upper}} {{b}}") == ["b", "a"]

    def test_has_variables(self) -> None:
        assert has_variables("hi {{x}}")
        assert not has_variables("hi {x}")

    def test_get_nested_out_of_range(self) -> None:
        assert get_nested("items.5", {"items": [1]}) is None
