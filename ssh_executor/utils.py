import sys
from typing import Any


def log_error(message: str) -> None:
    print(f"[SSH-EXEC] {message}", file=sys.stderr, flush=True)

def clamp_float(value: Any, default: float, min_value: float, max_value: float) -> float:
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        log_error(f"ignoring invalid number {value!r}, using {default}")
        numeric = default
    if numeric < min_value:
        return min_value
    if numeric > max_value:
        return max_value
    return numeric

def to_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    s = str(value).lower().strip()
    if s in ("true", "1", "yes", "on"):
        return True
    if s in ("false", "0", "no", "off"):
        return False
    return default

def truncate(text: str, limit: int = 120) -> str:
    """Shorten text for single-line log messages."""
    text = text.replace("\n", " ")
    return text if len(text) <= limit else text[: limit - 3] + "..."

def parse_port(value: Any, default: int) -> int:
    """TCP port from ``value``; anything outside 1-65535 falls back to ``default``."""
    try:
        port = int(value)
    except (TypeError, ValueError):
        port = 0
    if not 1 <= port <= 65535:
        log_error(f"ignoring invalid port {value!r}, using {default}")
        return default
    return port
