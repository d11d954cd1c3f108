"""
AgentExecutionController - lifecycle wrapper around one engine run at a time.

The run executes in a background task that pushes steps through a Wire;
callers consume the stream, cancel, or poll the current phase:

    controller = AgentExecutionController(make_engine)
    async for step in controller.start("What is 2+2?"):
        print(step)
    print(controller.status, controller.output)
"""

import asyncio
from enum import Enum
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable, Sequence

from agentrun.domain import (
    AgentConfiguration,
    AgentStep,
    AwaitingModel,
    FinalResponseStep,
    LoopPhase,
    Message,
)
from agentrun.errors import AgentCancelledError
from agentrun.runtime.wire import Wire
from agentrun.utils.logging import get_logger

if TYPE_CHECKING:
    from agentrun.engine import AgentExecutionEngine

logger = get_logger(__name__)

EngineFactory = Callable[[AgentConfiguration | None], "AgentExecutionEngine"]


class RunStatus(str, Enum):
    """Controller run status."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class AgentExecutionController:
    """
    Start, cancel and observe agent runs.

    One run at a time; `start()` may be called again once the previous run
    has finished. The returned stream ends after the FinalResponseStep, or
    re-raises the run's terminal error once the steps before it are drained.
    """

    def __init__(self, engine_factory: EngineFactory):
        self.engine_factory = engine_factory
        self._engine: "AgentExecutionEngine | None" = None
        self._task: asyncio.Task | None = None
        self._wire: Wire[AgentStep] | None = None
        self._steps: list[AgentStep] = []
        self._status = RunStatus.IDLE
        self._output: Any = None
        self._error: BaseException | None = None

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def status(self) -> RunStatus:
        return self._status

    @property
    def is_running(self) -> bool:
        return self._status is RunStatus.RUNNING

    @property
    def steps(self) -> list[AgentStep]:
        """Steps produced so far by the current (or last) run."""
        return list(self._steps)

    @property
    def output(self) -> Any:
        """Decoded final output, None until the run completes."""
        return self._output

    @property
    def error(self) -> BaseException | None:
        return self._error

    def current_phase(self) -> LoopPhase:
        if self._engine is None:
            return AwaitingModel()
        return self._engine.current_phase()

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def start(
        self,
        prompt: str | None,
        config: AgentConfiguration | None = None,
        history: Sequence[Message] | None = None,
    ) -> AsyncIterator[AgentStep]:
        """
        Launch a run in the background and return its step stream.

        Must be called from a running event loop.

        Raises:
            RuntimeError: A run is already in progress
        """
        if self.is_running:
            raise RuntimeError("A run is already in progress")

        self._engine = self.engine_factory(config)
        self._wire = Wire()
        self._steps = []
        self._output = None
        self._error = None
        self._status = RunStatus.RUNNING

        self._task = asyncio.create_task(
            self._produce(self._engine, self._wire, prompt, history)
        )
        return self._consume(self._wire)

    def cancel(self, reason: str = "Cancelled by user") -> bool:
        """Request cooperative cancellation. Returns False when nothing is running."""
        if not self.is_running or self._engine is None:
            return False
        self._engine.cancel(reason)
        return True

    async def wait(self) -> Any:
        """
        Wait for the run to finish and return its output.

        Raises:
            RuntimeError: No run was started
            AgentError: The run's terminal error
        """
        if self._task is None:
            raise RuntimeError("No run has been started")
        await asyncio.shield(self._task)
        if self._error is not None:
            raise self._error
        return self._output

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _produce(
        self,
        engine: "AgentExecutionEngine",
        wire: Wire[AgentStep],
        prompt: str | None,
        history: Sequence[Message] | None,
    ) -> None:
        try:
            async for step in engine.run(prompt, history=history):
                self._steps.append(step)
                if isinstance(step, FinalResponseStep):
                    self._output = step.output
                await wire.write(step)
            self._status = RunStatus.COMPLETED
        except AgentCancelledError as e:
            self._error = e
            self._status = RunStatus.CANCELLED
            logger.info("controller_run_cancelled", reason=e.message)
        except Exception as e:
            self._error = e
            self._status = RunStatus.FAILED
            logger.error(
                "controller_run_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
        finally:
            await wire.close()

    async def _consume(self, wire: Wire[AgentStep]) -> AsyncIterator[AgentStep]:
        async for step in wire.read():
            yield step
        if self._task is not None:
            await asyncio.shield(self._task)
        if self._error is not None:
            raise self._error


__all__ = ["AgentExecutionController", "EngineFactory", "RunStatus"]
