from pydantic import BaseModel, ConfigDict, Field


class AgentConfiguration(BaseModel):
    """
    Immutable settings for one agent run.

    Attributes:
        max_steps: Maximum model round trips per run
        auto_execute_tools: Run requested tools automatically; when False the
            step stream pauses after the tool calls
        max_duplicate_tool_calls: Allowed repeats of one (name, arguments) pair
        max_tool_calls_per_tool: Per-tool call ceiling, None for unlimited
        max_output_decode_retries: Failed final-output requests before giving up
        fail_on_tool_error: Abort the run when a tool raises
        system_prompt: Optional system prompt sent with every request
    """

    model_config = ConfigDict(frozen=True)

    max_steps: int = Field(default=10, ge=1)
    auto_execute_tools: bool = True
    max_duplicate_tool_calls: int = Field(default=2, ge=0)
    max_tool_calls_per_tool: int | None = Field(default=5, ge=1)
    max_output_decode_retries: int = Field(default=2, ge=1)
    fail_on_tool_error: bool = False
    system_prompt: str | None = None

    @classmethod
    def from_settings(cls, **overrides) -> "AgentConfiguration":
        """Build from global settings, keyword overrides win."""
        from agentrun.config import settings

        values = {"max_steps": settings.max_steps}
        values.update(overrides)
        return cls(**values)


__all__ = ["AgentConfiguration"]
