"""
Tool abstraction.

A Tool declares its arguments as a pydantic model. `run()` takes the raw JSON
argument string produced by the model, validates it and executes the tool.
Bad arguments become an error output the model can read and correct; an
exception raised inside `execute()` propagates to the caller.
"""

import json
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, ValidationError

from agentrun.domain import ToolDefinition


class ToolOutput(BaseModel):
    """Text handed back to the model for one tool call."""

    output: str
    is_error: bool = False


def stringify(result: Any) -> str:
    """Render a tool return value as text."""
    if isinstance(result, str):
        return result
    if isinstance(result, BaseModel):
        return result.model_dump_json()
    if result is None:
        return ""
    try:
        return json.dumps(result, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(result)


class Tool(ABC):
    name: str
    description: str = ""
    args_schema: type[BaseModel] | None = None

    @abstractmethod
    async def execute(self, **kwargs) -> Any:
        """Run the tool logic with validated keyword arguments."""

    def parameters_schema(self) -> dict[str, Any]:
        """JSON Schema for the arguments object."""
        if not self.args_schema:
            return {"type": "object", "properties": {}}
        schema = self.args_schema.model_json_schema()
        schema.pop("title", None)
        return schema

    def to_definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.parameters_schema(),
        )

    def parse_arguments(self, arguments: str) -> dict[str, Any]:
        """
        Decode and validate a raw JSON argument string.

        Raises:
            ValueError: Invalid JSON, a non-object payload, or a validation
                failure (pydantic.ValidationError is a ValueError)
        """
        data = json.loads(arguments) if arguments and arguments.strip() else {}
        if not isinstance(data, dict):
            raise ValueError(f"Arguments must be a JSON object, got {type(data).__name__}")
        if self.args_schema is None:
            return data
        validated = self.args_schema.model_validate(data)
        return {field: getattr(validated, field) for field in type(validated).model_fields}

    async def run(self, arguments: str) -> ToolOutput:
        try:
            kwargs = self.parse_arguments(arguments)
        except json.JSONDecodeError as e:
            return ToolOutput(output=f"Invalid JSON arguments: {e}", is_error=True)
        except ValidationError as e:
            return ToolOutput(output=f"Invalid arguments for {self.name}: {e}", is_error=True)
        except ValueError as e:
            return ToolOutput(output=str(e), is_error=True)

        result = await self.execute(**kwargs)
        if isinstance(result, ToolOutput):
            return result
        return ToolOutput(output=stringify(result))


__all__ = ["Tool", "ToolOutput", "stringify"]
