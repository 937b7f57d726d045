"""Data models shared by the session and sync layers"""

from .user import UserProfile
from .session import Session, SessionState
from .habit import (
    CheckIn,
    CheckInResult,
    CheckInStatus,
    Habit,
    HabitFields,
    HabitId,
    HabitStats,
)

__all__ = [
    "UserProfile",
    "Session",
    "SessionState",
    "CheckIn",
    "CheckInResult",
    "CheckInStatus",
    "Habit",
    "HabitFields",
    "HabitId",
    "HabitStats",
]
