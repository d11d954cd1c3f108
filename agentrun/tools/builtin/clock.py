from datetime import datetime, timezone

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from agentrun.tools.decorator import tool


@tool
def current_time(timezone_name: str = "UTC") -> str:
    """
    Get the current date and time as an ISO 8601 string.

    Args:
        timezone_name: IANA timezone name, e.g. "UTC" or "Europe/Berlin"
    """
    if timezone_name.upper() == "UTC":
        tz = timezone.utc
    else:
        try:
            tz = ZoneInfo(timezone_name)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {timezone_name}") from e
    return datetime.now(tz).isoformat(timespec="seconds")


__all__ = ["current_time"]
