"""Habit synchronization: server-authoritative habit list and check-ins"""

import re
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..api.gateway import GatewayClient
from ..auth.session_manager import AuthSessionManager
from ..models.habit import (
    CheckIn,
    CheckInResult,
    CheckInStatus,
    Habit,
    HabitFields,
    HabitId,
    HabitStats,
)
from ..models.session import Session, SessionState
from ..utils.exceptions import (
    AuthorizationError,
    ConfigError,
    ServerError,
    TransportError,
    ValidationError,
)
from ..utils.logger import get_logger

logger = get_logger(__name__)

_HABITS = TypeAdapter(List[Habit])
_CHECK_INS = TypeAdapter(List[CheckIn])

DUPLICATE_CHECK_IN_STATUS = 409
_DUPLICATE_MESSAGE = re.compile(r"already\s+checked\s+in|duplicate", re.IGNORECASE)


def is_duplicate_check_in(error: ValidationError) -> bool:
    """True when a rejected check-in means "this date already has one"."""
    if error.status_code == DUPLICATE_CHECK_IN_STATUS:
        return True
    return bool(_DUPLICATE_MESSAGE.search(error.message or ""))


def local_today(timezone_name: Optional[str] = None) -> date:
    """Today's calendar date in the given IANA zone, or the device's local zone."""
    if timezone_name:
        return datetime.now(ZoneInfo(timezone_name)).date()
    return datetime.now().astimezone().date()


class HabitSyncController:
    """
    Keeps a display cache of the user's habits in line with the server.

    The cache is replaced wholesale from GET /habits after every mutation,
    so every streak shown is the server's most recent value. Concurrent
    check-ins for the same habit are not deduplicated here; the caller
    disables the action while one is pending.
    """

    def __init__(
        self,
        gateway: GatewayClient,
        session_manager: AuthSessionManager,
        refresh_attempts: int = 3,
        checkin_timezone: Optional[str] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self.gateway = gateway
        self.session_manager = session_manager
        self.refresh_attempts = refresh_attempts
        self.checkin_timezone = checkin_timezone or None
        if self.checkin_timezone:
            try:
                ZoneInfo(self.checkin_timezone)
            except (ZoneInfoNotFoundError, ValueError) as e:
                raise ConfigError(f"Unknown check-in timezone: {self.checkin_timezone}") from e
        self._today = today
        self._habits: List[Habit] = []
        # Bumped whenever the session leaves AUTHENTICATED; in-flight refreshes
        # from an older epoch are dropped.
        self._epoch = 0
        self._unsubscribe = session_manager.subscribe(self._on_session_change)

    @property
    def habits(self) -> List[Habit]:
        """Cached habits (display only, never authoritative)"""
        return list(self._habits)

    def _on_session_change(self, session: Session) -> None:
        if session.state != SessionState.AUTHENTICATED:
            if self._habits:
                logger.debug("Session ended, dropping habit cache", count=len(self._habits))
            self._habits = []
            self._epoch += 1

    def close(self) -> None:
        self._unsubscribe()

    async def _ready(self) -> bool:
        """Wait out an in-progress bootstrap, then report whether we are authenticated."""
        if self.session_manager.state == SessionState.VERIFYING:
            await self.session_manager.wait_until_settled()
        return self.session_manager.is_authenticated

    async def _call(self, method: str, path: str, json=None):
        try:
            return await self.gateway.request(method, path, json=json)
        except AuthorizationError:
            await self.session_manager.handle_authorization_failure()
            raise

    def local_check_in_date(self) -> date:
        """The calendar date a check-in made now is recorded under."""
        if self._today is not None:
            return self._today()
        return local_today(self.checkin_timezone)

    async def _fetch_habits(self) -> List[Habit]:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.refresh_attempts),
            wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
            retry=retry_if_exception_type(TransportError),
            reraise=True,
        ):
            with attempt:
                body = await self._call("GET", "/habits")
        try:
            return _HABITS.validate_python(body.get("habits") or [])
        except PydanticValidationError as e:
            raise ServerError(f"Malformed habit list in response: {e.error_count()} error(s)") from e

    async def list_habits(self) -> List[Habit]:
        """Fetch habits from the server and replace the cache with them."""
        if not await self._ready():
            return []

        epoch = self._epoch
        habits = await self._fetch_habits()
        if epoch != self._epoch or not self.session_manager.is_authenticated:
            logger.info("Discarding habit list fetched for an ended session")
            return []

        self._habits = habits
        logger.debug("Habit cache refreshed", count=len(habits))
        return list(habits)

    @staticmethod
    def _validate_fields(fields: HabitFields) -> None:
        if not fields.title or not fields.title.strip():
            raise ValidationError("Title is required")

    @staticmethod
    def _habit_from_body(body: Dict[str, Any]) -> Optional[Habit]:
        raw = body.get("habit")
        if raw is None:
            return None
        if not isinstance(raw, dict):
            raise ServerError("Malformed habit in response")
        try:
            return Habit.model_validate(raw)
        except PydanticValidationError as e:
            raise ServerError(f"Malformed habit in response: {e.error_count()} error(s)") from e

    async def _refresh_after_mutation(
        self, habit_id: Optional[HabitId], returned: Optional[Habit]
    ) -> Optional[Habit]:
        """
        Refresh the cache after an accepted mutation and return the habit.

        The mutation already succeeded, so a refresh that cannot reach the
        server falls back to the habit the server returned with the mutation.
        """
        try:
            await self.list_habits()
        except (TransportError, ServerError) as e:
            logger.warning(
                "Habit refresh after accepted change failed",
                habit_id=habit_id,
                error=e.message,
            )
            return returned
        return self._find(habit_id) or returned

    async def create_habit(self, fields: HabitFields) -> Optional[Habit]:
        """Create a habit, then refresh the whole list from the server."""
        self._validate_fields(fields)
        if not await self._ready():
            return None

        body = await self._call("POST", "/habits", json=fields.to_payload())
        returned = self._habit_from_body(body)
        created_id = returned.id if returned else None
        logger.info("Habit created", habit_id=created_id)

        return await self._refresh_after_mutation(created_id, returned)

    async def update_habit(self, habit_id: HabitId, fields: HabitFields) -> Optional[Habit]:
        """Update a habit, then refresh the whole list from the server."""
        self._validate_fields(fields)
        if not await self._ready():
            return None

        body = await self._call("PUT", f"/habits/{habit_id}", json=fields.to_payload())
        returned = self._habit_from_body(body)
        logger.info("Habit updated", habit_id=habit_id)

        return await self._refresh_after_mutation(habit_id, returned)

    async def check_in(self, habit_id: HabitId) -> Optional[CheckInResult]:
        """
        Record today's check-in for a habit.

        Returns:
            CheckInResult with status CHECKED_IN (and the refreshed habit, or
            the server's echo of it when the refresh could not complete), or
            ALREADY_CHECKED_IN with the server's message. None when not
            authenticated.

        Raises:
            ValidationError: Rejected for a reason other than a duplicate date
            TransportError, ServerError: "try again" failures
            AuthorizationError: Session expired (session is settled first)
        """
        if not await self._ready():
            return None

        check_in_date = self.local_check_in_date()
        try:
            body = await self._call(
                "POST",
                f"/habits/{habit_id}/checkin",
                json={"localDate": check_in_date.isoformat()},
            )
        except ValidationError as e:
            if not is_duplicate_check_in(e):
                raise
            logger.info(
                "Check-in already recorded for date",
                habit_id=habit_id,
                check_in_date=check_in_date.isoformat(),
            )
            return CheckInResult(
                status=CheckInStatus.ALREADY_CHECKED_IN,
                habit_id=habit_id,
                check_in_date=check_in_date,
                message=e.message,
                habit=self._find(habit_id),
            )

        logger.info(
            "Checked in",
            habit_id=habit_id,
            check_in_date=check_in_date.isoformat(),
        )
        # The check-in is recorded; an unreadable habit echo only loses the fallback
        try:
            returned = self._habit_from_body(body)
        except ServerError as e:
            logger.warning("Ignoring malformed habit in check-in response", habit_id=habit_id, error=e.message)
            returned = None
        habit = await self._refresh_after_mutation(habit_id, returned)
        return CheckInResult(
            status=CheckInStatus.CHECKED_IN,
            habit_id=habit_id,
            check_in_date=check_in_date,
            habit=habit,
        )

    async def list_check_ins(self, habit_id: HabitId) -> List[CheckIn]:
        """Check-in history for one habit (not cached)."""
        if not await self._ready():
            return []

        body = await self._call("GET", f"/habits/{habit_id}/checkins")
        try:
            return _CHECK_INS.validate_python(body.get("checkIns") or [])
        except PydanticValidationError as e:
            raise ServerError(f"Malformed check-in list in response: {e.error_count()} error(s)") from e

    async def get_habit(self, habit_id: HabitId) -> Optional[Habit]:
        """Look a habit up in the cache, refreshing once if it is missing."""
        habit = self._find(habit_id)
        if habit is None:
            await self.list_habits()
            habit = self._find(habit_id)
        return habit

    def stats(self) -> HabitStats:
        return HabitStats.from_habits(self._habits)

    def _find(self, habit_id: Optional[HabitId]) -> Optional[Habit]:
        if habit_id is None:
            return None
        for habit in self._habits:
            if str(habit.id) == str(habit_id):
                return habit
        return None
