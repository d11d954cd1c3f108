"""
Tool decorator
"""

from typing import Callable, overload

from .local import FunctionTool


@overload
def tool(func: Callable) -> FunctionTool: ...


@overload
def tool(
    *, name: str | None = None, description: str | None = None
) -> Callable[[Callable], FunctionTool]: ...


def tool(func=None, *, name=None, description=None):
    """
    Decorator to convert a function into a FunctionTool.

    Usable bare or with options:

        @tool
        def add(a: int, b: int) -> int: ...

        @tool(name="lookup", description="Find a record by id")
        async def find(record_id: str) -> dict: ...
    """

    def wrap(f: Callable) -> FunctionTool:
        return FunctionTool(f, name=name, description=description)

    if func is not None:
        return wrap(func)
    return wrap
