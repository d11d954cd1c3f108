from .settings import AgentRunSettings, settings

__all__ = ["AgentRunSettings", "settings"]
