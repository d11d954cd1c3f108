import inspect
from typing import Any, Callable, get_type_hints

from pydantic import BaseModel, create_model

from agentrun.tools.base import Tool


class FunctionTool(Tool):
    """Wrap a plain (sync or async) function as a Tool."""

    def __init__(self, func: Callable, name: str | None = None, description: str | None = None):
        self.func = func
        self.name = name or func.__name__
        self.description = description or inspect.getdoc(func) or ""
        self.args_schema = self._create_args_schema(func)

    def _create_args_schema(self, func: Callable) -> type[BaseModel]:
        """Dynamically create a Pydantic model from function signature."""
        sig = inspect.signature(func)
        type_hints = get_type_hints(func)

        fields = {}
        for param_name, param in sig.parameters.items():
            if param_name in ("self", "cls"):
                continue
            if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
                continue

            annotation = type_hints.get(param_name, Any)
            if param.default is inspect.Parameter.empty:
                fields[param_name] = (annotation, ...)
            else:
                fields[param_name] = (annotation, param.default)

        return create_model(f"{self.name}Args", **fields)

    async def execute(self, **kwargs) -> Any:
        if inspect.iscoroutinefunction(self.func):
            return await self.func(**kwargs)
        return self.func(**kwargs)

    def __repr__(self) -> str:
        return f"FunctionTool(name={self.name!r})"


__all__ = ["FunctionTool"]
