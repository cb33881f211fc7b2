from .base import Base

# import models so Alembic/autoloaders can discover mappers
from .user import User  # noqa: F401
from .event import Event, Photo  # noqa: F401
from .draw import (  # noqa: F401
    DrawConfiguration,
    DrawExecution,
    DrawStatus,
    Entry,
    PrizeTier,
    Winner,
    WinnerStatus,
)

__all__ = [
    "Base",
    "User",
    "Event",
    "Photo",
    "DrawConfiguration",
    "DrawExecution",
    "DrawStatus",
    "Entry",
    "PrizeTier",
    "Winner",
    "WinnerStatus",
]
