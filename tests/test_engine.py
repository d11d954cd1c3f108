"""
Tests for AgentExecutionEngine.

The provider is a scripted round trip that replays canned responses (or
raises canned errors) and records every request it receives.
"""

import asyncio

import pytest
from pydantic import BaseModel

from agentrun.domain import (
    AgentConfiguration,
    AwaitingModel,
    ExecutingTools,
    FinalResponseStep,
    Message,
    MessageRole,
    ProviderResponse,
    Retrying,
    Terminated,
    TerminationReason,
    TextContent,
    ThinkingStep,
    TokenUsage,
    ToolCallStep,
    ToolChoice,
    ToolResultStep,
    ToolUseContent,
)
from agentrun.engine import FINAL_OUTPUT_REQUEST, AgentExecutionEngine, CompositeTerminationPolicy
from agentrun.engine.engine import strip_code_fence
from agentrun.errors import (
    AgentCancelledError,
    AgentProviderError,
    DuplicateToolCallError,
    FatalProviderError,
    MaxStepsExceededError,
    OutputDecodingError,
    ServerError,
    ToolCallLimitError,
    ToolExecutionError,
    ToolNotFoundError,
)
from agentrun.providers.base import ProviderRoundTrip
from agentrun.retry import RetryConfiguration, RetryingRoundTrip
from agentrun.runtime import AbortSignal
from agentrun.tools import FunctionTool, ToolRegistry, calculator


class Report(BaseModel):
    answer: int
    explanation: str


class ScriptedRoundTrip(ProviderRoundTrip):
    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    async def execute(self, request):
        self.requests.append(request)
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


def text(value: str) -> ProviderResponse:
    return ProviderResponse(
        content=[TextContent(text=value)],
        usage=TokenUsage(input_tokens=10, output_tokens=5),
    )


def tool_calls(*calls, prefix: str = "") -> ProviderResponse:
    content = [TextContent(text=prefix)] if prefix else []
    content.extend(ToolUseContent(id=id, name=name, arguments=arguments) for id, name, arguments in calls)
    return ProviderResponse(content=content, usage=TokenUsage(input_tokens=10, output_tokens=5))


def make_engine(responses, tools=(), output_type=str, retry=None, sleep=None, **config):
    script = ScriptedRoundTrip(responses)
    kwargs = {"sleep": sleep} if sleep is not None else {}
    round_trip = RetryingRoundTrip(script, retry or RetryConfiguration.disabled(), **kwargs)
    engine = AgentExecutionEngine(
        round_trip,
        ToolRegistry(list(tools)),
        output_type=output_type,
        config=AgentConfiguration(**config),
    )
    return engine, script


async def drain(stream, steps):
    async for step in stream:
        steps.append(step)


@pytest.mark.asyncio
async def test_calculator_run_produces_structured_answer():
    engine, script = make_engine(
        [
            tool_calls(("call_1", "calculator", '{"expression": "2+2"}'), prefix="Let me calculate"),
            text('{"answer": 4, "explanation": "2 + 2 = 4"}'),
        ],
        tools=[calculator],
        output_type=Report,
        max_steps=5,
    )

    steps = [step async for step in engine.run("What is 2+2?")]

    assert steps == [
        ThinkingStep(text="Let me calculate"),
        ToolCallStep(id="call_1", name="calculator", arguments='{"expression": "2+2"}'),
        ToolResultStep(id="call_1", name="calculator", output="4"),
        FinalResponseStep(output=Report(answer=4, explanation="2 + 2 = 4")),
    ]
    assert engine.context.step == 2
    assert engine.context.usage.input_tokens == 20
    assert engine.context.usage.output_tokens == 10
    assert engine.current_phase() == Terminated(reason=TerminationReason.COMPLETED)

    first, second = script.requests
    assert [tool.name for tool in first.tools] == ["calculator"]
    assert first.tool_choice is ToolChoice.AUTO
    assert first.response_schema is None

    assert [m.role for m in second.messages] == [
        MessageRole.USER,
        MessageRole.ASSISTANT,
        MessageRole.USER,
    ]
    assert second.messages[1].tool_uses[0].id == "call_1"
    result = second.messages[2].tool_results[0]
    assert result.tool_call_id == "call_1"
    assert result.content == "4"


@pytest.mark.asyncio
async def test_str_output_accepts_first_text():
    engine, script = make_engine([text("Hello there")])

    steps = [step async for step in engine.run("Hi")]

    assert steps == [FinalResponseStep(output="Hello there")]
    assert len(script.requests) == 1
    assert script.requests[0].tools == []
    assert script.requests[0].tool_choice is None
    assert script.requests[0].response_schema is None


@pytest.mark.asyncio
async def test_schema_attached_when_no_tools():
    engine, script = make_engine(
        [text('```json\n{"answer": 1, "explanation": "one"}\n```')],
        output_type=Report,
    )

    steps = [step async for step in engine.run("One?")]

    assert steps == [FinalResponseStep(output=Report(answer=1, explanation="one"))]
    assert script.requests[0].response_schema == engine.response_schema
    assert engine.response_schema["required"] == ["answer", "explanation"]


@pytest.mark.asyncio
async def test_final_output_requested_after_prose():
    engine, script = make_engine(
        [
            text("The answer is four."),
            text('{"answer": 4, "explanation": "counted"}'),
        ],
        tools=[calculator],
        output_type=Report,
    )

    steps = [step async for step in engine.run("What is 2+2?")]

    assert steps == [
        ThinkingStep(text="The answer is four."),
        FinalResponseStep(output=Report(answer=4, explanation="counted")),
    ]
    follow_up = script.requests[1]
    assert follow_up.tools == []
    assert follow_up.tool_choice is ToolChoice.NONE
    assert follow_up.response_schema == engine.response_schema
    assert follow_up.messages[-1] == Message.user(FINAL_OUTPUT_REQUEST)
    assert follow_up.messages[-2].text == "The answer is four."


@pytest.mark.asyncio
async def test_empty_text_requests_final_output_without_thinking():
    engine, script = make_engine([text(""), text("Finally")])

    steps = [step async for step in engine.run("Hi")]

    assert steps == [FinalResponseStep(output="Finally")]
    assert script.requests[1].messages[-1] == Message.user(FINAL_OUTPUT_REQUEST)
    # no empty assistant turn is recorded
    assert [m.role for m in script.requests[1].messages] == [MessageRole.USER, MessageRole.USER]


@pytest.mark.asyncio
async def test_output_decoding_gives_up_after_retries():
    engine, script = make_engine(
        [text("a"), text("b"), text("c"), text("d")],
        output_type=Report,
        max_output_decode_retries=2,
    )

    steps = []
    with pytest.raises(OutputDecodingError) as exc_info:
        await drain(engine.run("Report please"), steps)

    assert len(script.requests) == 4
    assert steps == [ThinkingStep(text="a"), ThinkingStep(text="b"), ThinkingStep(text="c")]
    assert exc_info.value.reason is TerminationReason.OUTPUT_DECODING_FAILED
    assert engine.current_phase() == Terminated(reason=TerminationReason.OUTPUT_DECODING_FAILED)


@pytest.mark.asyncio
async def test_unknown_tool_terminates_run():
    engine, script = make_engine([tool_calls(("call_1", "ghost", "{}"))], tools=[calculator])

    steps = []
    with pytest.raises(ToolNotFoundError) as exc_info:
        await drain(engine.run("Use ghost"), steps)

    assert steps == [ToolCallStep(id="call_1", name="ghost", arguments="{}")]
    assert exc_info.value.tool_name == "ghost"
    assert isinstance(exc_info.value.phase, ExecutingTools)
    assert engine.current_phase() == Terminated(reason=TerminationReason.TOOL_ERROR)


@pytest.mark.asyncio
async def test_duplicate_calls_detected():
    engine, script = make_engine(
        [
            tool_calls(("call_1", "calculator", '{"expression": "1+1"}')),
            tool_calls(("call_2", "calculator", '{"expression":"1+1"}')),
            tool_calls(("call_3", "calculator", '{ "expression" : "1+1" }')),
            text("unreachable"),
        ],
        tools=[calculator],
        max_duplicate_tool_calls=2,
    )

    steps = []
    with pytest.raises(DuplicateToolCallError) as exc_info:
        await drain(engine.run("Loop"), steps)

    error = exc_info.value
    assert not isinstance(error, ToolCallLimitError)
    assert error.tool_name == "calculator"
    assert error.count == 3
    assert error.reason is TerminationReason.DUPLICATE_CALLS_DETECTED
    assert len(script.requests) == 3
    assert [type(s) for s in steps] == [ToolCallStep, ToolResultStep] * 3


@pytest.mark.asyncio
async def test_per_tool_call_limit():
    engine, script = make_engine(
        [
            tool_calls(
                ("call_1", "calculator", '{"expression": "1+1"}'),
                ("call_2", "calculator", '{"expression": "2+2"}'),
                ("call_3", "calculator", '{"expression": "3+3"}'),
            )
        ],
        tools=[calculator],
        max_duplicate_tool_calls=5,
        max_tool_calls_per_tool=2,
    )

    steps = []
    with pytest.raises(ToolCallLimitError) as exc_info:
        await drain(engine.run("Many sums"), steps)

    assert exc_info.value.count == 3
    assert exc_info.value.reason is TerminationReason.DUPLICATE_CALLS_DETECTED
    assert [s.output for s in steps if isinstance(s, ToolResultStep)] == ["2", "4", "6"]


@pytest.mark.asyncio
async def test_termination_policy_override():
    engine, script = make_engine(
        [
            tool_calls(("call_1", "calculator", '{"expression": "1+1"}')),
            tool_calls(("call_2", "calculator", '{"expression": "1+1"}')),
            text("done"),
        ],
        tools=[calculator],
        max_duplicate_tool_calls=0,
    )
    engine.termination_policy = CompositeTerminationPolicy([])

    steps = [step async for step in engine.run("Twice")]

    assert steps[-1] == FinalResponseStep(output="done")


@pytest.mark.asyncio
async def test_max_steps_after_tool_batch():
    engine, script = make_engine(
        [
            tool_calls(("call_1", "calculator", '{"expression": "1+1"}')),
            tool_calls(("call_2", "calculator", '{"expression": "2+2"}')),
            text("unreachable"),
        ],
        tools=[calculator],
        max_steps=2,
    )

    steps = []
    with pytest.raises(MaxStepsExceededError) as exc_info:
        await drain(engine.run("Keep going"), steps)

    assert exc_info.value.max_steps == 2
    assert len(script.requests) == 2
    assert [type(s) for s in steps] == [ToolCallStep, ToolResultStep] * 2
    assert engine.current_phase() == Terminated(reason=TerminationReason.MAX_STEPS_EXCEEDED)


@pytest.mark.asyncio
async def test_max_steps_before_final_output_request():
    engine, script = make_engine([text("not json")], output_type=Report, max_steps=1)

    steps = []
    with pytest.raises(MaxStepsExceededError):
        await drain(engine.run("Report"), steps)

    assert len(script.requests) == 1
    assert steps == [ThinkingStep(text="not json")]


@pytest.mark.asyncio
async def test_cancel_before_run_makes_no_requests():
    engine, script = make_engine([text("never")])
    engine.cancel("Stop right there")

    with pytest.raises(AgentCancelledError) as exc_info:
        await drain(engine.run("Hi"), [])

    assert exc_info.value.message == "Stop right there"
    assert script.requests == []


@pytest.mark.asyncio
async def test_cancel_applies_to_one_run_only():
    engine, script = make_engine([text("second answer")])
    engine.cancel("Stop right there")

    with pytest.raises(AgentCancelledError):
        await drain(engine.run("first"), [])

    steps = [step async for step in engine.run("second")]

    assert steps == [FinalResponseStep(output="second answer")]
    assert len(script.requests) == 1
    assert not engine.abort_signal.is_aborted()


@pytest.mark.asyncio
async def test_cancel_after_completion_does_not_reach_next_run():
    engine, script = make_engine([text("one"), text("two")])

    async for step in engine.run("first"):
        if isinstance(step, FinalResponseStep):
            engine.cancel("Too late")

    steps = [step async for step in engine.run("second")]

    assert steps == [FinalResponseStep(output="two")]


@pytest.mark.asyncio
async def test_injected_abort_signal_is_left_to_the_caller():
    signal = AbortSignal()
    engine = AgentExecutionEngine(
        RetryingRoundTrip(ScriptedRoundTrip([text("never")]), RetryConfiguration.disabled()),
        config=AgentConfiguration(),
        abort_signal=signal,
    )
    signal.abort("Shutting down")

    for _ in range(2):
        with pytest.raises(AgentCancelledError, match="Shutting down"):
            await drain(engine.run("Hi"), [])

    assert signal.is_aborted()


@pytest.mark.asyncio
async def test_cancel_during_tool_execution_reports_results():
    holder = {}

    async def slow_lookup(query: str) -> str:
        holder["engine"].cancel("User pressed stop")
        return f"found {query}"

    engine, script = make_engine(
        [tool_calls(("call_1", "slow_lookup", '{"query": "cats"}')), text("unreachable")],
        tools=[FunctionTool(slow_lookup)],
    )
    holder["engine"] = engine

    steps = []
    with pytest.raises(AgentCancelledError) as exc_info:
        await drain(engine.run("Find cats"), steps)

    assert steps[-1] == ToolResultStep(id="call_1", name="slow_lookup", output="found cats")
    assert exc_info.value.reason is TerminationReason.CANCELLED
    assert len(script.requests) == 1
    assert engine.current_phase() == Terminated(reason=TerminationReason.CANCELLED)


@pytest.mark.asyncio
async def test_manual_tool_results():
    engine, script = make_engine(
        [
            tool_calls(("call_1", "calculator", '{"expression": "2+2"}')),
            text("It is 4"),
        ],
        tools=[calculator],
        auto_execute_tools=False,
    )

    steps = [step async for step in engine.run("What is 2+2?")]

    assert steps == [ToolCallStep(id="call_1", name="calculator", arguments='{"expression": "2+2"}')]
    phase = engine.current_phase()
    assert isinstance(phase, ExecutingTools)
    assert [call.id for call in phase.pending_calls] == ["call_1"]

    result = ToolResultStep(id="call_1", name="calculator", output="4")
    resumed = [step async for step in engine.submit_tool_results([result])]

    assert resumed == [result, FinalResponseStep(output="It is 4")]
    assert script.requests[1].messages[-1].tool_results[0].content == "4"


@pytest.mark.asyncio
async def test_submit_tool_results_validates_ids():
    engine, script = make_engine(
        [tool_calls(("call_1", "calculator", '{"expression": "2+2"}'))],
        tools=[calculator],
        auto_execute_tools=False,
    )
    await drain(engine.run("What is 2+2?"), [])

    with pytest.raises(ValueError, match="do not match"):
        await drain(
            engine.submit_tool_results([ToolResultStep(id="call_9", name="calculator", output="4")]),
            [],
        )


@pytest.mark.asyncio
async def test_submit_tool_results_without_pending_calls():
    engine, _ = make_engine([])

    with pytest.raises(RuntimeError, match="awaiting results"):
        await drain(engine.submit_tool_results([]), [])


@pytest.mark.asyncio
async def test_fatal_provider_error():
    fatal = FatalProviderError("Invalid API key", category="unauthorized", status_code=401)
    engine, script = make_engine([fatal])

    with pytest.raises(AgentProviderError) as exc_info:
        await drain(engine.run("Hi"), [])

    assert exc_info.value.error is fatal
    assert exc_info.value.reason is TerminationReason.PROVIDER_ERROR
    assert exc_info.value.details["status_code"] == 401
    assert engine.current_phase() == Terminated(reason=TerminationReason.PROVIDER_ERROR)


@pytest.mark.asyncio
async def test_unexpected_round_trip_exception_is_fatal():
    engine, script = make_engine([RuntimeError("socket exploded")])

    with pytest.raises(AgentProviderError) as exc_info:
        await drain(engine.run("Hi"), [])

    assert isinstance(exc_info.value.error, FatalProviderError)
    assert isinstance(exc_info.value.error.__cause__, RuntimeError)


@pytest.mark.asyncio
async def test_retrying_phase_is_visible_while_waiting():
    observed = []
    holder = {}

    async def fake_sleep(seconds):
        observed.append((seconds, holder["engine"].current_phase()))

    engine, script = make_engine(
        [ServerError("Service unavailable", status_code=503), text("ok")],
        retry=RetryConfiguration.custom(max_retries=2, base_delay=1.0, jitter=0.0),
        sleep=fake_sleep,
    )
    holder["engine"] = engine

    steps = [step async for step in engine.run("Hi")]

    assert steps == [FinalResponseStep(output="ok")]
    assert observed == [(1.0, Retrying(attempt=1, next_delay=1.0))]
    # retries are not agent steps
    assert engine.context.step == 1


@pytest.mark.asyncio
async def test_retries_exhausted():
    async def fake_sleep(seconds):
        pass

    engine, script = make_engine(
        [ServerError("down", status_code=502)] * 3,
        retry=RetryConfiguration.custom(max_retries=2, base_delay=0.01),
        sleep=fake_sleep,
    )

    with pytest.raises(AgentProviderError) as exc_info:
        await drain(engine.run("Hi"), [])

    assert isinstance(exc_info.value.error, ServerError)
    assert len(script.requests) == 3


@pytest.mark.asyncio
async def test_tool_exception_becomes_error_result():
    def explode(reason: str) -> str:
        raise RuntimeError(reason)

    engine, script = make_engine(
        [tool_calls(("call_1", "explode", '{"reason": "boom"}')), text("Sorry, that failed")],
        tools=[FunctionTool(explode)],
    )

    steps = [step async for step in engine.run("Explode")]

    assert steps[1] == ToolResultStep(
        id="call_1", name="explode", output="Tool execution failed: boom", is_error=True
    )
    assert steps[-1] == FinalResponseStep(output="Sorry, that failed")
    assert script.requests[1].messages[-1].tool_results[0].is_error is True


@pytest.mark.asyncio
async def test_fail_on_tool_error():
    def explode(reason: str) -> str:
        raise RuntimeError(reason)

    engine, script = make_engine(
        [tool_calls(("call_1", "explode", '{"reason": "boom"}')), text("unreachable")],
        tools=[FunctionTool(explode)],
        fail_on_tool_error=True,
    )

    steps = []
    with pytest.raises(ToolExecutionError) as exc_info:
        await drain(engine.run("Explode"), steps)

    assert steps[-1].is_error is True
    assert isinstance(exc_info.value.error, RuntimeError)
    assert exc_info.value.tool_name == "explode"
    assert len(script.requests) == 1


@pytest.mark.asyncio
async def test_tools_in_one_step_run_concurrently():
    ping_seen = asyncio.Event()
    pong_seen = asyncio.Event()

    async def ping() -> str:
        ping_seen.set()
        await asyncio.wait_for(pong_seen.wait(), timeout=1.0)
        return "ping"

    async def pong() -> str:
        pong_seen.set()
        await asyncio.wait_for(ping_seen.wait(), timeout=1.0)
        return "pong"

    engine, script = make_engine(
        [tool_calls(("call_1", "ping", "{}"), ("call_2", "pong", "{}")), text("done")],
        tools=[FunctionTool(ping), FunctionTool(pong)],
    )

    steps = [step async for step in engine.run("Ping pong")]

    assert [s.output for s in steps if isinstance(s, ToolResultStep)] == ["ping", "pong"]
    assert all(not s.is_error for s in steps if isinstance(s, ToolResultStep))


@pytest.mark.asyncio
async def test_run_from_history():
    engine, script = make_engine([text("Sure")])
    history = [Message.user("Hi"), Message.assistant("Hello!")]

    steps = [step async for step in engine.run("Tell me more", history=history)]

    assert steps == [FinalResponseStep(output="Sure")]
    messages = script.requests[0].messages
    assert [m.text for m in messages] == ["Hi", "Hello!", "Tell me more"]
    assert len(history) == 2


@pytest.mark.asyncio
async def test_run_requires_prompt_or_history():
    engine, _ = make_engine([])

    with pytest.raises(ValueError):
        await drain(engine.run(), [])


@pytest.mark.asyncio
async def test_each_run_gets_fresh_context():
    engine, script = make_engine([text("one"), text("two")])

    await drain(engine.run("first"), [])
    first_context = engine.context
    await drain(engine.run("second"), [])

    assert engine.context is not first_context
    assert engine.context.step == 1
    assert [m.text for m in script.requests[1].messages] == ["second"]


def test_initial_phase_is_awaiting_model():
    engine, _ = make_engine([])
    assert engine.current_phase() == AwaitingModel()


def test_strip_code_fence():
    assert strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fence('```\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fence('  {"a": 1}  ') == '{"a": 1}'
