from datetime import datetime, UTC
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(UTC)


def iso(dt: datetime) -> str:
    """
    ISO-8601 UTC con microsegundos fijos, para que el orden lexicográfico
    de las columnas de texto coincida con el orden temporal.
    """
    return dt.astimezone(UTC).isoformat(timespec="microseconds")
