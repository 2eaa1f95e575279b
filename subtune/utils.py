"""Small formatting helpers shared by the engine and the terminal UI."""


def fmt_time(seconds: float) -> str:
    m, s = divmod(int(max(0.0, seconds)), 60)
    if m >= 60:
        h, m = divmod(m, 60)
        return f"{h}:{m:02d}:{s:02d}"
    return f"{m}:{s:02d}"


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))
