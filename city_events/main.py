# city_events/main.py

import logging
from datetime import datetime
from typing import Callable, Optional

from city_events.auth import require_session
from city_events.database import Settings, get_settings
from city_events.events import EventStore
from city_events.models import OperationResult
from city_events.users import UserStore
from city_events.utils import apply_log_level

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class EventApp:
    """
    Wires the user and event stores together for a front end.

    The stores never talk to each other; everything that needs both (joining
    as the session user, deleting an account) goes through here.
    """

    def __init__(self, settings: Optional[Settings] = None, clock: Callable[[], datetime] = datetime.now):
        self.settings = settings or get_settings()
        apply_log_level(self.settings.log_level)

        self.users = UserStore(self.settings.users_path)
        self.events = EventStore(self.settings.events_path, clock=clock)
        logger.info(
            "Loaded %d user(s) and %d event(s)", self.users.count(), self.events.count()
        )

    @require_session
    def join(self, event_id: int, *, user) -> OperationResult:
        return self.events.add_participant(event_id, user)

    @require_session
    def leave(self, event_id: int, *, user) -> OperationResult:
        return self.events.remove_participant(event_id, user)

    @require_session
    def my_events(self, *, user) -> OperationResult:
        events = self.events.list_for_user(user)
        return OperationResult.success(f"{len(events)} event(s) found", events)

    def remove_user(self, email: str) -> OperationResult:
        """Deletes the account and drops the user from every participant list."""
        result = self.users.remove(email)
        if not result:
            return result

        purge = self.events.purge_participant(result.value)
        if not purge:
            logger.error("User '%s' removed but could not be purged from events", result.value.email)
            return OperationResult(
                ok=False,
                reason=purge.reason,
                message="User removed, but could not be removed from event participant lists",
                value=result.value,
            )
        return result

    def shutdown(self) -> bool:
        """Writes both collections one last time."""
        users_saved = self.users.save()
        events_saved = self.events.save()
        if users_saved and events_saved:
            logger.info("Data saved. Goodbye.")
        else:
            logger.error("Could not save all data on shutdown")
        return users_saved and events_saved
