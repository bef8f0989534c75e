import math
import socket


def find_available_port(start_port=5001, max_attempts=10):
    """Find an available port starting from start_port"""
    for port in range(start_port, start_port + max_attempts):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            try:
                s.bind(('0.0.0.0', port))
                return port
            except OSError:
                continue
    raise RuntimeError("No available ports found")


def format_percentage(value) -> str:
    """Two-decimal string for a percentage; missing or NaN values render as ``0.00``."""
    if value is None or isinstance(value, bool):
        return '0.00'
    try:
        value = float(value)
    except (TypeError, ValueError):
        return '0.00'
    if math.isnan(value):
        return '0.00'
    return f'{value:.2f}'


def parse_int_arg(raw, default: int, minimum: int = 1, maximum: int | None = None) -> int:
    """Lenient query-string integer: invalid values fall back to ``default``, then clamp."""
    try:
        value = int(raw)
    except (TypeError, ValueError):
        value = default
    value = max(minimum, value)
    if maximum is not None:
        value = min(maximum, value)
    return value
