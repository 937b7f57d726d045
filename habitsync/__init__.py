"""HabitSync: session and synchronization layer for the habit-tracking service"""

__version__ = "1.0.0"
