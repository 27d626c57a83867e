"""Tests for ToolValidator."""

import pytest

from unillm.tools.base import Tool, ToolSchema, ToolSchemaProperty
from unillm.tools.validation import ToolValidator
from unillm.value import Value
from tests.mock_tools import make_weather_tool


def _args(**kwargs):
    return {k: Value.of(v) for k, v in kwargs.items()}


class TestToolValidator:
    """Test suite for ToolValidator.validate()."""

    def test_valid_args_pass(self):
        ok, err = ToolValidator.validate(make_weather_tool(), _args(location="Boston"))
        assert ok is True
        assert err is None

    def test_missing_required_arg_fails(self):
        ok, err = ToolValidator.validate(make_weather_tool(), {})
        assert ok is False
        assert "location" in err

    def test_enum_violation(self):
        ok, err = ToolValidator.validate(
            make_weather_tool(), _args(location="Boston", unit="kelvin")
        )
        assert ok is False
        assert err is not None

    def test_type_mismatch_string_vs_integer(self):
        ok, err = ToolValidator.validate(make_weather_tool(), _args(location=12345))
        assert ok is False


class TestMissingRequired:
    def test_reports_missing(self):
        assert ToolValidator.missing_required(make_weather_tool(), {}) == ["location"]

    def test_present_with_wrong_type_is_not_missing(self):
        assert ToolValidator.missing_required(make_weather_tool(), _args(location=1)) == []

    def test_null_counts_as_present(self):
        assert ToolValidator.missing_required(make_weather_tool(), {"location": Value.null()}) == []

    def test_no_required_list(self):
        tool = Tool(name="t", schema=ToolSchema(properties={"x": ToolSchemaProperty("string")}))
        assert ToolValidator.missing_required(tool, {}) == []

    def test_several_missing_in_declared_order(self):
        tool = Tool(
            name="t",
            schema=ToolSchema(
                properties={
                    "a": ToolSchemaProperty("string"),
                    "b": ToolSchemaProperty("string"),
                    "c": ToolSchemaProperty("string"),
                },
                required=("a", "b", "c"),
            ),
        )
        assert ToolValidator.missing_required(tool, _args(b="x")) == ["a", "c"]


class TestSchemaExport:
    def test_openai_shape(self):
        schema = make_weather_tool().to_openai_schema()
        assert schema["type"] == "function"
        fn = schema["function"]
        assert fn["name"] == "get_weather"
        assert fn["parameters"]["required"] == ["location"]
        assert fn["parameters"]["properties"]["unit"]["enum"] == ["celsius", "fahrenheit"]

    @pytest.mark.parametrize(
        "raw",
        [
            {"type": "object", "properties": {}},
            {
                "type": "object",
                "properties": {"q": {"type": "string", "description": "Query"}},
                "required": ["q"],
            },
        ],
    )
    def test_from_dict_round_trip(self, raw):
        assert ToolSchema.from_dict(raw).to_dict() == raw
