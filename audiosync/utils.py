"""Small formatting helpers."""


def fmt_time(seconds: float) -> str:
    """Format seconds as MM:SS, both zero-padded."""
    m, s = divmod(max(0, int(seconds)), 60)
    return f"{m:02d}:{s:02d}"
