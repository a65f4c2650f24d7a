# city_events/events.py

import logging
import threading
from collections import Counter
from datetime import datetime
from operator import attrgetter
from typing import Callable, Iterable, List, Optional, Union

from city_events.database import CollectionFile
from city_events.models import (
    Category, Event, EventStats, EventStatus, FailureReason, OperationResult, User, unique_users,
)
from city_events.utils import is_blank, normalize_text

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

if not logger.hasHandlers():
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def by_start_time(events: Iterable[Event], newest_first: bool = False) -> List[Event]:
    """Sorts events by start time. Stable, so equal start times keep insertion order."""
    return sorted(events, key=attrgetter("start_time"), reverse=newest_first)


class EventStore:
    """
    All events of the city, kept in insertion order and written to disk as a
    whole after every change.

    Ids come from a counter owned by the store: it starts after the highest
    id found on disk and never goes back while the process runs.
    """

    def __init__(self, path, clock: Callable[[], datetime] = datetime.now):
        self._file = CollectionFile(path, Event, "events")
        self._clock = clock
        self._lock = threading.RLock()
        self._events: List[Event] = self._file.load()
        self._next_id = max((e.id for e in self._events if e.id is not None), default=0) + 1

        # Records written without an id get one now
        for event in self._events:
            if event.id is None:
                event.id = self._next_id
                self._next_id += 1

    # -----------------------
    # Persistence
    # -----------------------
    def save(self) -> bool:
        with self._lock:
            return self._file.save(self._events)

    def _commit(self, candidate: List[Event]) -> bool:
        if not self._file.save(candidate):
            return False
        self._events = candidate
        return True

    def _replaced(self, changed: Event) -> List[Event]:
        candidate = list(self._events)
        for index, existing in enumerate(candidate):
            if existing.id == changed.id:
                candidate[index] = changed
                break
        return candidate

    @staticmethod
    def _storage_failure() -> OperationResult:
        return OperationResult.failure(FailureReason.STORAGE_ERROR, "Could not save events to disk")

    # -----------------------
    # CRUD
    # -----------------------
    def create(self, event: Optional[Event]) -> OperationResult:
        """
        Adds a new event. Start times in the past are accepted here; only
        joining checks them.

        On success the caller's event receives the assigned id and the
        result's value is the stored copy.
        """
        if event is None or not event.is_valid():
            logger.warning("Event rejected: invalid event data")
            return OperationResult.failure(FailureReason.INVALID, "Invalid event data")

        with self._lock:
            if event.id is not None and self.find_by_id(event.id) is not None:
                logger.warning("Event rejected: id %s is already taken", event.id)
                return OperationResult.failure(FailureReason.DUPLICATE, f"An event with ID {event.id} already exists")

            new_id = event.id if event.id is not None else self._next_id
            stored = event.model_copy(update={"id": new_id}, deep=True)
            stored.participants = unique_users(stored.participants)
            if not self._commit(self._events + [stored]):
                return self._storage_failure()

            self._next_id = max(self._next_id, new_id + 1)
            event.id = new_id

        logger.info("Event '%s' created with ID %d", stored.name, new_id)
        return OperationResult.success("Event created successfully", stored)

    def remove(self, event_id: int) -> OperationResult:
        with self._lock:
            target = self.find_by_id(event_id)
            if target is None:
                logger.warning("Event with ID %s not found", event_id)
                return OperationResult.failure(FailureReason.NOT_FOUND, f"Event with ID {event_id} not found")

            candidate = list(self._events)
            candidate.remove(target)
            if not self._commit(candidate):
                return self._storage_failure()

        logger.info("Event %s removed", event_id)
        return OperationResult.success("Event removed successfully", target)

    def update(self, event: Optional[Event]) -> OperationResult:
        """Replaces the stored event with the same id, participants included."""
        if event is None or not event.is_valid():
            return OperationResult.failure(FailureReason.INVALID, "Invalid event data")

        with self._lock:
            if event.id is None or self.find_by_id(event.id) is None:
                logger.warning("Update failed: event with ID %s not found", event.id)
                return OperationResult.failure(FailureReason.NOT_FOUND, f"Event with ID {event.id} not found")

            stored = event.model_copy(deep=True)
            stored.participants = unique_users(stored.participants)
            if not self._commit(self._replaced(stored)):
                return self._storage_failure()

        logger.info("Event %d updated", stored.id)
        return OperationResult.success("Event updated successfully", stored)

    def clear_all(self) -> OperationResult:
        with self._lock:
            if not self._commit([]):
                return self._storage_failure()
        logger.info("All events removed")
        return OperationResult.success("All events removed")

    # -----------------------
    # Queries
    # -----------------------
    def find_by_id(self, event_id: Optional[int]) -> Optional[Event]:
        if event_id is None:
            return None
        return next((e for e in self._events if e.id == event_id), None)

    def list_sorted_by_time(self) -> List[Event]:
        return by_start_time(self._events)

    def list_by_category(self, category: Union[Category, str, None]) -> List[Event]:
        if isinstance(category, str) and not isinstance(category, Category):
            category = Category.lookup(category)
        if category is None:
            return []
        return by_start_time(e for e in self._events if e.category == category)

    def _with_status(self, status: EventStatus, now: datetime) -> List[Event]:
        return [e for e in self._events if e.status(now) == status]

    def list_upcoming(self) -> List[Event]:
        return by_start_time(self._with_status(EventStatus.UPCOMING, self._clock()))

    def list_past(self) -> List[Event]:
        """
        Ended events, most recent first.
        Events still inside their first hour are ongoing and not listed here.
        """
        return by_start_time(self._with_status(EventStatus.ENDED, self._clock()), newest_first=True)

    def list_ongoing(self) -> List[Event]:
        return by_start_time(self._with_status(EventStatus.ONGOING, self._clock()))

    def search_by_name(self, fragment: Optional[str]) -> List[Event]:
        if is_blank(fragment):
            return []
        wanted = normalize_text(fragment)
        return by_start_time(e for e in self._events if wanted in e.name.lower())

    def list_for_user(self, user: Optional[User]) -> List[Event]:
        if user is None:
            return []
        return by_start_time(e for e in self._events if e.is_participant(user))

    def count(self) -> int:
        return len(self._events)

    def has_events(self) -> bool:
        return bool(self._events)

    # -----------------------
    # Participants
    # -----------------------
    def add_participant(self, event_id: int, user: Optional[User]) -> OperationResult:
        """
        Adds a user to an event that has not started yet.

        Fails with NOT_FOUND (no such event, or no user), EVENT_ENDED
        (start time at or before now), ALREADY_PARTICIPANT or STORAGE_ERROR.
        """
        with self._lock:
            event = self.find_by_id(event_id)
            if event is None or user is None:
                logger.warning("Cannot join: event %s not found", event_id)
                return OperationResult.failure(FailureReason.NOT_FOUND, f"Event with ID {event_id} not found")

            if event.has_ended(self._clock()):
                logger.warning("Cannot join event %s: it has already happened", event_id)
                return OperationResult.failure(FailureReason.EVENT_ENDED, "Cannot join an event that has already happened")

            if event.is_participant(user):
                logger.info("User '%s' is already attending event %s", user.email, event_id)
                return OperationResult.failure(FailureReason.ALREADY_PARTICIPANT, "User is already attending this event")

            changed = event.model_copy(deep=True)
            changed.add_participant(user.model_copy(deep=True))
            if not self._commit(self._replaced(changed)):
                return self._storage_failure()

        logger.info("User '%s' joined event '%s'", user.email, changed.name)
        return OperationResult.success(f"Attendance confirmed for event: {changed.name}", changed)

    def remove_participant(self, event_id: int, user: Optional[User]) -> OperationResult:
        with self._lock:
            event = self.find_by_id(event_id)
            if event is None or user is None:
                logger.warning("Cannot leave: event %s not found", event_id)
                return OperationResult.failure(FailureReason.NOT_FOUND, f"Event with ID {event_id} not found")

            if not event.is_participant(user):
                logger.info("User '%s' was not attending event %s", user.email, event_id)
                return OperationResult.failure(FailureReason.NOT_PARTICIPANT, "User was not attending this event")

            changed = event.model_copy(deep=True)
            changed.remove_participant(user)
            if not self._commit(self._replaced(changed)):
                return self._storage_failure()

        logger.info("User '%s' left event '%s'", user.email, changed.name)
        return OperationResult.success(f"Attendance cancelled for event: {changed.name}", changed)

    def purge_participant(self, user: Optional[User]) -> OperationResult:
        """
        Removes a user from every participant list, e.g. after the account was deleted.
        The result's value is the number of events changed.
        """
        if user is None:
            return OperationResult.failure(FailureReason.NOT_FOUND, "User not found")

        with self._lock:
            candidate = []
            changed_count = 0
            for event in self._events:
                if event.is_participant(user):
                    changed = event.model_copy(deep=True)
                    changed.remove_participant(user)
                    candidate.append(changed)
                    changed_count += 1
                else:
                    candidate.append(event)

            if changed_count and not self._commit(candidate):
                return self._storage_failure()

        logger.info("User '%s' removed from %d event(s)", user.email, changed_count)
        return OperationResult.success("Participant removed from all events", changed_count)

    # -----------------------
    # Statistics
    # -----------------------
    def stats(self) -> EventStats:
        """Counts per status from one clock reading; `past` excludes events still ongoing."""
        now = self._clock()
        events = list(self._events)
        statuses = Counter(e.status(now) for e in events)
        by_category = Counter(e.category.label for e in events)
        return EventStats(
            total=len(events),
            upcoming=statuses[EventStatus.UPCOMING],
            past=statuses[EventStatus.ENDED],
            ongoing=statuses[EventStatus.ONGOING],
            by_category={label: by_category[label] for label in Category.labels() if by_category[label]},
        )
