"""Human-friendly formatting helpers for terminal output."""


def to_human_duration(seconds: float | None, unknown: str = "Unknown duration") -> str:
    """Format a duration in seconds as rounded minutes.

    Args:
        seconds: Duration in seconds, or None if unknown
        unknown: Text returned when the duration is unknown

    Returns:
        String such as "63 min"
    """
    if seconds is None:
        return unknown
    return f"{round(seconds / 60)} min"


def to_human_time_ago(timestamp_ms: int, now_ms: int) -> str:
    """Format an epoch-millisecond timestamp relative to ``now_ms``.

    Examples:
        >>> to_human_time_ago(0, 90 * 60 * 1000)
        '2 h ago'
    """
    minutes = (now_ms - timestamp_ms) / 1000 / 60
    if minutes < 59.5:
        return f"{round(minutes)} min ago"
    hours = minutes / 60
    if hours < 23.5:
        return f"{round(hours)} h ago"
    days = hours / 24
    if days < 30:
        return f"{round(days)} d ago"
    months = days / 30
    if months < 11.5:
        rounded = round(months)
        plural = "s" if rounded > 1 else ""
        return f"{rounded} month{plural} ago"
    years = round(months / 12)
    plural = "s" if years > 1 else ""
    return f"{years} year{plural} ago"


def truncate_text(text: str | None, max_length: int = 60) -> str:
    """Collapse whitespace and truncate text with an ellipsis."""
    if not text:
        return ""
    collapsed = " ".join(text.split())
    if len(collapsed) <= max_length:
        return collapsed
    return collapsed[: max_length - 3] + "..."
