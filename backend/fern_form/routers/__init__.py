from . import (
    forms,
    health,
    settings,
    submissions,
)

__all__ = [
    "forms",
    "health",
    "settings",
    "submissions",
]
