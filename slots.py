import re
from typing import Iterator, List

from errors import InvalidConfiguration

_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def to_minutes(value: str) -> int:
    """Minutes since midnight for an HH:MM string."""
    match = _HHMM.fullmatch(value) if isinstance(value, str) else None
    if not match:
        raise InvalidConfiguration(f"Horário inválido: {value!r}")
    return int(match.group(1)) * 60 + int(match.group(2))


def to_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def time_range(start: str, end: str, interval: int) -> Iterator[str]:
    """
    Yield HH:MM slot starts from `start`, every `interval` minutes,
    strictly before `end`. Nothing is yielded when start >= end.
    """
    if isinstance(interval, bool) or not isinstance(interval, int) or interval <= 0:
        raise InvalidConfiguration(f"Intervalo inválido: {interval!r}")
    t = to_minutes(start)
    stop = to_minutes(end)
    while t < stop:
        yield to_hhmm(t)
        t += interval


def generate_slots(start: str, end: str, interval: int) -> List[str]:
    """All slots of a working day, validated eagerly."""
    return list(time_range(start, end, interval))
