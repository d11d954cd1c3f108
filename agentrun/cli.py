"""
Command-line interface for agentrun.

    agentrun run "What is 2+2?" --provider openai --max-steps 5
"""

import argparse
import asyncio
import json
import sys

from pydantic import BaseModel, Field

from agentrun.config import settings
from agentrun.domain import (
    AgentConfiguration,
    AgentStep,
    FinalResponseStep,
    ThinkingStep,
    ToolCallStep,
    ToolResultStep,
)
from agentrun.engine import AgentExecutionEngine
from agentrun.errors import AgentError
from agentrun.providers import AnthropicRoundTrip, OpenAIRoundTrip, ProviderRoundTrip
from agentrun.retry import (
    AnthropicRateLimitExtractor,
    OpenAIRateLimitExtractor,
    RetryConfiguration,
    RetryEvent,
    RetryingRoundTrip,
)
from agentrun.runtime import AgentExecutionController
from agentrun.tools import default_registry
from agentrun.utils.logging import configure_logging


class Answer(BaseModel):
    """Structured answer used with --structured."""

    answer: str = Field(description="The final answer to the user's request")


def build_round_trip(provider: str, model: str | None, retry: str) -> RetryingRoundTrip:
    def report(event: RetryEvent) -> None:
        print(
            f"  ↻ {event.reason}, retry {event.attempt}/{event.max_retries} "
            f"in {event.delay:.1f}s",
            file=sys.stderr,
        )

    inner: ProviderRoundTrip
    if provider == "anthropic":
        inner = AnthropicRoundTrip(model_name=model)
        extractor = AnthropicRateLimitExtractor()
    else:
        inner = OpenAIRoundTrip(model_name=model)
        extractor = OpenAIRateLimitExtractor()
    return RetryingRoundTrip(inner, RetryConfiguration.from_name(retry, on_retry=report), extractor)


def format_step(step: AgentStep) -> str:
    if isinstance(step, ThinkingStep):
        return f"💭 {step.text}"
    if isinstance(step, ToolCallStep):
        return f"🔧 {step.name}({step.arguments})"
    if isinstance(step, ToolResultStep):
        marker = "✗" if step.is_error else "✓"
        return f"  {marker} {step.output}"
    if isinstance(step, FinalResponseStep):
        output = step.output
        if isinstance(output, BaseModel):
            output = output.model_dump()
        if not isinstance(output, str):
            output = json.dumps(output, ensure_ascii=False, indent=2)
        return f"✅ {output}"
    return str(step)


async def run_agent(args: argparse.Namespace) -> int:
    round_trip = build_round_trip(args.provider, args.model, args.retry)
    output_type = Answer if args.structured else str

    def make_engine(config: AgentConfiguration | None) -> AgentExecutionEngine:
        return AgentExecutionEngine(round_trip, default_registry(), output_type, config)

    overrides = {"system_prompt": args.system}
    if args.max_steps is not None:
        overrides["max_steps"] = args.max_steps
    config = AgentConfiguration.from_settings(**overrides)

    controller = AgentExecutionController(make_engine)
    try:
        async for step in controller.start(args.prompt, config):
            print(format_step(step))
    except AgentError as e:
        print(f"❌ {e.reason.value}: {e.message}", file=sys.stderr)
        return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="agentrun - bounded LLM agent loop")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run an agent with the built-in tools")
    run_parser.add_argument("prompt", help="User prompt")
    run_parser.add_argument(
        "--provider",
        choices=["openai", "anthropic"],
        default="openai",
        help="LLM provider (default: openai)",
    )
    run_parser.add_argument("--model", default=None, help="Model name override")
    run_parser.add_argument(
        "--max-steps",
        type=int,
        default=None,
        help=f"Maximum model round trips (default: {settings.max_steps})",
    )
    run_parser.add_argument(
        "--retry",
        choices=["default", "disabled", "aggressive", "conservative"],
        default=settings.retry_preset,
        help=f"Retry preset (default: {settings.retry_preset})",
    )
    run_parser.add_argument("--system", default=None, help="System prompt")
    run_parser.add_argument(
        "--structured",
        action="store_true",
        help="Request a JSON answer object instead of free text",
    )
    run_parser.add_argument("--log-level", default=None, help="Log level override")

    args = parser.parse_args(argv)
    configure_logging(level=args.log_level, force=args.log_level is not None)

    try:
        return asyncio.run(run_agent(args))
    except KeyboardInterrupt:
        print("\n👋 Interrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
