import jsonschema

from unillm.tools.base import Tool
from unillm.value import Value


class ToolValidator:
    @staticmethod
    def missing_required(tool: Tool, arguments: dict[str, Value]) -> list[str]:
        """Names of top-level required parameters absent from *arguments*."""
        instance = {k: v.to_python() for k, v in arguments.items()}
        validator = jsonschema.Draft202012Validator(tool.schema.to_dict())
        missing: list[str] = []
        for error in validator.iter_errors(instance):
            if error.validator != "required" or error.path:
                continue
            for name in error.validator_value:
                if name not in instance and name not in missing:
                    missing.append(name)
        return missing

    @staticmethod
    def validate(tool: Tool, arguments: dict[str, Value]) -> tuple[bool, str | None]:
        try:
            jsonschema.validate(
                instance={k: v.to_python() for k, v in arguments.items()},
                schema=tool.schema.to_dict(),
            )
            return True, None
        except jsonschema.ValidationError as e:
            return False, str(e.message)
