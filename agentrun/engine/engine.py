"""
AgentExecutionEngine - the bounded LLM <-> tool loop.

Responsibilities:
- Drive the AwaitingModel -> ExecutingTools -> ... state machine
- Emit AgentSteps (thinking, tool call, tool result, final response)
- Decode the final answer into the requested output type
- Stop on step budget, stuck tool calls, cancellation or fatal errors

Does NOT handle:
- Retries (delegated to RetryingRoundTrip)
- Vendor wire formats (delegated to ProviderRoundTrip)
- Background execution and observation (see AgentExecutionController)
"""

import re
from typing import Any, AsyncIterator, Generic, Sequence, TypeVar

from pydantic import TypeAdapter

from agentrun.domain import (
    AgentConfiguration,
    AgentStep,
    AwaitingModel,
    ExecutingTools,
    FinalResponseStep,
    LoopPhase,
    Message,
    MessageRole,
    ProviderRequest,
    ProviderResponse,
    Retrying,
    Terminated,
    TerminationReason,
    ThinkingStep,
    ToolCallStep,
    ToolChoice,
    ToolResultContent,
    ToolResultStep,
)
from agentrun.engine.context import AgentContext
from agentrun.engine.termination import Stop, TerminationPolicy
from agentrun.engine.tool_executor import ToolExecutor
from agentrun.errors import (
    AgentCancelledError,
    AgentError,
    AgentProviderError,
    MaxStepsExceededError,
    OutputDecodingError,
    ProviderError,
    ToolExecutionError,
    ToolNotFoundError,
)
from agentrun.providers.base import ProviderRoundTrip
from agentrun.retry import RetryConfiguration, RetryEvent, RetryingRoundTrip
from agentrun.runtime.control import AbortSignal
from agentrun.tools import ToolRegistry
from agentrun.utils.logging import get_logger

logger = get_logger(__name__)

OutputT = TypeVar("OutputT")

FINAL_OUTPUT_REQUEST = "Please provide your final response in the required JSON format."

_CODE_FENCE = re.compile(r"^```(?:json)?\s*\n?(.*?)\n?```$", re.DOTALL)


def strip_code_fence(text: str) -> str:
    """Remove a surrounding ```json fence if the model added one."""
    stripped = text.strip()
    match = _CODE_FENCE.match(stripped)
    return match.group(1).strip() if match else stripped


class AgentExecutionEngine(Generic[OutputT]):
    """
    Step-based agent loop.

    Example:
        >>> engine = AgentExecutionEngine(
        ...     OpenAIRoundTrip(),
        ...     ToolRegistry([calculator]),
        ...     output_type=Answer,
        ...     config=AgentConfiguration(max_steps=5),
        ... )
        >>> async for step in engine.run("What is 2+2?"):
        ...     print(step)

    Every call to `run()` starts from a fresh AgentContext. The stream ends
    with exactly one FinalResponseStep, pauses after tool calls when
    `auto_execute_tools` is off, or raises an AgentError.
    """

    def __init__(
        self,
        round_trip: ProviderRoundTrip,
        registry: ToolRegistry | None = None,
        output_type: type[OutputT] = str,
        config: AgentConfiguration | None = None,
        *,
        retry: RetryConfiguration | None = None,
        termination_policy: TerminationPolicy | None = None,
        abort_signal: AbortSignal | None = None,
    ):
        """
        Args:
            round_trip: Provider round trip; wrapped in RetryingRoundTrip
                unless it already is one
            registry: Tools offered to the model
            output_type: Type of the final answer; `str` accepts any text
            config: Run configuration, defaults from settings
            retry: Retry preset used when wrapping `round_trip`
            termination_policy: Overrides the policy built from `config`
            abort_signal: Shared cancellation signal, owned and reset by the
                caller. Without one the engine keeps its own signal and
                clears it once a run observes the cancellation or completes.
        """
        if isinstance(round_trip, RetryingRoundTrip):
            self.round_trip = round_trip
        else:
            self.round_trip = RetryingRoundTrip(
                round_trip, retry or RetryConfiguration.from_name()
            )
        self.registry = registry or ToolRegistry()
        self.output_type = output_type
        self.config = config or AgentConfiguration.from_settings()
        self.termination_policy = termination_policy or TerminationPolicy.from_configuration(
            self.config
        )
        self.abort_signal = abort_signal or AbortSignal()
        self._owns_signal = abort_signal is None
        self.tool_executor = ToolExecutor(self.registry)

        self._adapter: TypeAdapter[OutputT] | None = (
            None if output_type is str else TypeAdapter(output_type)
        )
        self._schema: dict[str, Any] | None = (
            self._adapter.json_schema() if self._adapter is not None else None
        )
        self._context: AgentContext | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def context(self) -> AgentContext | None:
        """Context of the current (or last) run."""
        return self._context

    @property
    def response_schema(self) -> dict[str, Any] | None:
        return self._schema

    def current_phase(self) -> LoopPhase:
        if self._context is None:
            return AwaitingModel()
        return self._context.phase

    def cancel(self, reason: str = "Agent run cancelled") -> None:
        """Request cooperative cancellation; takes effect at the next checkpoint."""
        logger.info("agent_cancel_requested", reason=reason)
        self.abort_signal.abort(reason)

    async def run(
        self,
        prompt: str | None = None,
        *,
        history: Sequence[Message] | None = None,
    ) -> AsyncIterator[AgentStep]:
        """
        Run the loop and yield steps.

        Args:
            prompt: New user message, appended after `history`
            history: Prior conversation to resume from

        Raises:
            ValueError: Neither a prompt nor a history was given
            AgentError: The run terminated without a final response
        """
        if prompt is None and not history:
            raise ValueError("Either a prompt or a message history is required")

        context = AgentContext(self.config, list(history or []))
        if prompt is not None:
            context.append(Message.user(prompt))
        self._context = context

        logger.info(
            "agent_run_started",
            max_steps=self.config.max_steps,
            tools=self.registry.names,
            output_type=getattr(self.output_type, "__name__", str(self.output_type)),
            history_length=len(context.messages),
        )

        async for step in self._guarded(context, self._loop(context)):
            yield step

    async def submit_tool_results(
        self, results: Sequence[ToolResultStep]
    ) -> AsyncIterator[AgentStep]:
        """
        Resume a run paused with `auto_execute_tools=False`.

        `results` must answer every pending tool call by id; they are
        emitted in the original call order before the loop continues.
        """
        context = self._context
        if context is None or not isinstance(context.phase, ExecutingTools):
            raise RuntimeError("No tool calls are awaiting results")

        calls = list(context.phase.pending_calls)
        by_id = {result.id: result for result in results}
        expected = {call.id for call in calls}
        if set(by_id) != expected:
            missing = sorted(expected - set(by_id))
            unknown = sorted(set(by_id) - expected)
            raise ValueError(
                f"Tool results do not match pending calls (missing={missing}, unknown={unknown})"
            )

        ordered = [by_id[call.id] for call in calls]
        async for step in self._guarded(context, self._resume(context, calls, ordered)):
            yield step

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def _guarded(
        self, context: AgentContext, steps: AsyncIterator[AgentStep]
    ) -> AsyncIterator[AgentStep]:
        """Record the terminal phase and log the outcome of a step stream."""
        try:
            async for step in steps:
                yield step
        except AgentError as e:
            e.phase = context.phase
            context.phase = Terminated(reason=e.reason)
            logger.warning(
                "agent_run_failed",
                reason=e.reason.value,
                error=e.message,
                steps=context.step,
                input_tokens=context.usage.input_tokens,
                output_tokens=context.usage.output_tokens,
            )
            raise

    async def _loop(self, context: AgentContext) -> AsyncIterator[AgentStep]:
        while True:
            self._check_cancelled()
            if context.step_budget_exhausted:
                raise MaxStepsExceededError(self.config.max_steps)

            context.phase = AwaitingModel()
            response = await self._request(context)
            context.record_round_trip(response.usage)

            logger.debug(
                "agent_step_completed",
                step=context.step,
                tool_calls=len(response.tool_use_blocks),
                text_length=len(response.text),
                structured_output=context.structured_output,
            )

            if response.has_tool_calls():
                calls = [
                    ToolCallStep(id=block.id, name=block.name, arguments=block.arguments)
                    for block in response.tool_use_blocks
                ]
                if response.text.strip():
                    yield ThinkingStep(text=response.text)

                context.append(response.to_message())
                context.phase = ExecutingTools(pending_calls=tuple(calls))

                for call in calls:
                    yield call
                    if self.registry.lookup(call.name) is None:
                        raise ToolNotFoundError(call.name)

                if not self.config.auto_execute_tools:
                    logger.info("agent_awaiting_tool_results", pending=[c.id for c in calls])
                    return

                async for step in self._execute_tools(context, calls):
                    yield step
                continue

            # Text-only (or empty) response
            text = response.text
            try:
                output = self._decode(text)
            except ValueError as e:
                if context.structured_output:
                    context.output_requests += 1
                    if context.output_requests > self.config.max_output_decode_retries:
                        raise OutputDecodingError(e) from e
                logger.info(
                    "final_output_requested",
                    step=context.step,
                    failed_requests=context.output_requests,
                    error=str(e)[:200],
                )
                if text.strip():
                    yield ThinkingStep(text=text)
                    context.append(response.to_message())
                context.append(Message.user(FINAL_OUTPUT_REQUEST))
                context.structured_output = True
                continue

            if text.strip():
                context.append(response.to_message())
            context.phase = Terminated(reason=TerminationReason.COMPLETED)
            logger.info(
                "agent_run_completed",
                steps=context.step,
                input_tokens=context.usage.input_tokens,
                output_tokens=context.usage.output_tokens,
            )
            yield FinalResponseStep(output=output)
            if self._owns_signal:
                # late cancels do not carry over to the next run
                self.abort_signal.reset()
            return

    async def _resume(
        self,
        context: AgentContext,
        calls: list[ToolCallStep],
        results: list[ToolResultStep],
    ) -> AsyncIterator[AgentStep]:
        for result in results:
            yield result
        self._complete_batch(context, calls, results)
        async for step in self._loop(context):
            yield step

    async def _execute_tools(
        self, context: AgentContext, calls: list[ToolCallStep]
    ) -> AsyncIterator[AgentStep]:
        self._check_cancelled()

        logger.debug("executing_tools", step=context.step, tool_count=len(calls))
        executions = await self.tool_executor.execute_batch(calls)

        for execution in executions:
            yield execution.result

        if self.config.fail_on_tool_error:
            for execution in executions:
                if execution.error is not None:
                    raise ToolExecutionError(
                        execution.result.name, execution.error
                    ) from execution.error

        self._complete_batch(context, calls, [e.result for e in executions])

    def _complete_batch(
        self,
        context: AgentContext,
        calls: list[ToolCallStep],
        results: list[ToolResultStep],
    ) -> None:
        context.append(
            Message(
                role=MessageRole.USER,
                contents=[
                    ToolResultContent(
                        tool_call_id=result.id,
                        name=result.name,
                        content=result.output,
                        is_error=result.is_error,
                    )
                    for result in results
                ],
            )
        )
        context.record_tool_calls(calls)

        # In-flight calls finish and are reported; nothing new starts.
        self._check_cancelled()

        decision = self.termination_policy.decide(context)
        if isinstance(decision, Stop):
            raise decision.to_error()
        context.phase = AwaitingModel()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_cancelled(self) -> None:
        if self.abort_signal.is_aborted():
            reason = self.abort_signal.reason or "Agent run cancelled"
            if self._owns_signal:
                self.abort_signal.reset()
            raise AgentCancelledError(reason)

    def _build_request(self, context: AgentContext) -> ProviderRequest:
        if context.structured_output:
            return ProviderRequest(
                messages=list(context.messages),
                tools=[],
                tool_choice=ToolChoice.NONE,
                response_schema=self._schema,
                system_prompt=self.config.system_prompt,
            )

        tools = self.registry.definitions()
        return ProviderRequest(
            messages=list(context.messages),
            tools=tools,
            tool_choice=ToolChoice.AUTO if tools else None,
            # Without tools the first answer may as well be the structured one
            response_schema=None if tools else self._schema,
            system_prompt=self.config.system_prompt,
        )

    async def _request(self, context: AgentContext) -> ProviderResponse:
        def on_retry(event: RetryEvent) -> None:
            context.phase = Retrying(attempt=event.attempt, next_delay=event.delay)

        try:
            response = await self.round_trip.execute(self._build_request(context), on_retry=on_retry)
        except ProviderError as e:
            raise AgentProviderError(e) from e
        context.phase = AwaitingModel()
        return response

    def _decode(self, text: str) -> OutputT:
        """
        Decode model text into the output type.

        Raises:
            ValueError: Empty text, invalid JSON or a validation failure
        """
        if not text.strip():
            raise ValueError("Empty response")
        if self._adapter is None:
            return text  # type: ignore[return-value]
        return self._adapter.validate_json(strip_code_fence(text))


__all__ = ["AgentExecutionEngine", "FINAL_OUTPUT_REQUEST", "strip_code_fence"]
