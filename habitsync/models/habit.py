"""Habit and check-in data models"""

from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

HabitId = Union[int, str]

DEFAULT_ICON = "⭐"
DEFAULT_COLOUR = "#FCD34D"


class Habit(BaseModel):
    """Server-owned habit snapshot. streak is always the server's value."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: HabitId
    title: str
    description: Optional[str] = None
    icon: str = DEFAULT_ICON
    colour: str = DEFAULT_COLOUR
    streak: int = Field(default=0, ge=0)
    created_at: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("created_at", "createdAt"),
    )


class HabitFields(BaseModel):
    """Body of create-habit and update-habit calls"""

    title: str
    description: Optional[str] = None
    icon: str = DEFAULT_ICON
    colour: str = DEFAULT_COLOUR

    def to_payload(self) -> Dict[str, Any]:
        payload = self.model_dump(exclude_none=True)
        payload["title"] = self.title.strip()
        return payload


class CheckIn(BaseModel):
    """One completion of a habit on a calendar date"""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: HabitId
    habit_id: Optional[HabitId] = Field(
        default=None,
        validation_alias=AliasChoices("habit_id", "habitId"),
    )
    check_in_date: date = Field(
        validation_alias=AliasChoices("check_in_date", "checkInDate"),
    )
    image_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("image_url", "imageUrl"),
    )
    created_at: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("created_at", "createdAt"),
    )

    @field_validator("check_in_date", mode="before")
    @classmethod
    def _calendar_part(cls, value: Any) -> Any:
        # Timestamps like 2024-05-01T00:00:00.000Z carry the date in the first 10 chars
        if isinstance(value, str) and len(value) > 10:
            return value[:10]
        return value

    def resolve_image_url(self, base_url: str) -> Optional[str]:
        """Absolute URL for the check-in photo, prefixing relative paths with the API base."""
        if not self.image_url:
            return None
        if self.image_url.startswith(("http://", "https://")):
            return self.image_url
        return f"{base_url.rstrip('/')}/{self.image_url.lstrip('/')}"


class CheckInStatus(str, Enum):
    CHECKED_IN = "checked_in"
    ALREADY_CHECKED_IN = "already_checked_in"


class CheckInResult(BaseModel):
    """Outcome of a check-in. A duplicate for the day is an expected outcome, not an error."""

    model_config = ConfigDict(frozen=True)

    status: CheckInStatus
    habit_id: HabitId
    check_in_date: date
    message: Optional[str] = None
    habit: Optional[Habit] = None

    @property
    def succeeded(self) -> bool:
        return self.status == CheckInStatus.CHECKED_IN


class HabitStats(BaseModel):
    """Summary of the cached habit list, built only from server values"""

    model_config = ConfigDict(frozen=True)

    active_habits: int = 0
    best_streak: int = 0

    @classmethod
    def from_habits(cls, habits: List[Habit]) -> "HabitStats":
        return cls(
            active_habits=len(habits),
            best_streak=max((h.streak for h in habits), default=0),
        )
