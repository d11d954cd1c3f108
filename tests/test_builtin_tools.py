from datetime import datetime

import pytest

from agentrun.tools import calculator, current_time
from agentrun.tools.builtin.calculator import evaluate


@pytest.mark.parametrize(
    "expression,expected",
    [
        ("2+2", "4"),
        ("2 + 3 * 4", "14"),
        ("(2 + 3) * 4", "20"),
        ("10 / 4", "2.5"),
        ("10 / 2", "5"),
        ("7 // 2", "3"),
        ("7 % 4", "3"),
        ("2 ** 10", "1024"),
        ("-3 + 1", "-2"),
        ("sqrt(16)", "4"),
        ("max(1, 5, 3)", "5"),
        ("round(pi, 2)", "3.14"),
    ],
)
@pytest.mark.asyncio
async def test_calculator(expression, expected):
    output = await calculator.execute(expression=expression)
    assert output == expected


@pytest.mark.parametrize(
    "expression",
    [
        "__import__('os').system('echo hi')",
        "open('/etc/passwd')",
        "x + 1",
        "2 +",
        "1 / 0",
        "2 ** 100000",
        "((10 ** 1000) ** 1000) ** 1000",
        "(9 ** 999) ** 999",
        "10.0 ** 400",
        "'a' * 3",
        "True + 1",
    ],
)
def test_evaluate_rejects_unsafe_or_invalid(expression):
    with pytest.raises(ValueError):
        evaluate(expression)


@pytest.mark.asyncio
async def test_calculator_through_run():
    output = await calculator.run('{"expression": "2+2"}')
    assert output.output == "4"
    assert output.is_error is False


@pytest.mark.asyncio
async def test_current_time_is_iso8601():
    utc = await current_time.execute()
    parsed = datetime.fromisoformat(utc)
    assert parsed.utcoffset().total_seconds() == 0


@pytest.mark.asyncio
async def test_current_time_unknown_timezone():
    with pytest.raises(ValueError, match="Unknown timezone"):
        await current_time.execute(timezone_name="Mars/Olympus_Mons")


def test_large_but_bounded_powers_still_evaluate():
    assert evaluate("2 ** 1000") == 2**1000
    assert evaluate("(10 ** 100) ** 50") == 10**5000
    assert evaluate("0.5 ** 1000") == 0.5**1000
