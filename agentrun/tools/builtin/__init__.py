"""
Built-in tools.
"""

from .calculator import calculator
from .clock import current_time

BUILTIN_TOOLS = [calculator, current_time]

__all__ = ["BUILTIN_TOOLS", "calculator", "current_time"]
