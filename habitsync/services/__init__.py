"""Habit synchronization services"""

from .habit_sync import HabitSyncController

__all__ = ["HabitSyncController"]
