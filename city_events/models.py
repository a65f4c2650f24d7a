# city_events/models.py

import enum
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from city_events.utils import format_datetime, is_blank, parse_datetime

# An event counts as "ongoing" during the first hour after its start time
ONGOING_WINDOW = timedelta(hours=1)


# -----------------------
# Category Enum
# -----------------------
class Category(str, enum.Enum):
    PARTY = "Party"  # birthdays, graduations, ...
    SPORT = "Sport"  # matches, championships, races
    SHOW = "Show"  # concerts and performances
    TALK = "Talk"  # lectures, seminars, workshops
    OTHER = "Other"

    @property
    def label(self) -> str:
        return self.value

    def __str__(self) -> str:
        return self.value

    @classmethod
    def lookup(cls, text: Optional[str]) -> Optional["Category"]:
        """
        Finds a category by display label or symbolic name, ignoring case.
        Returns None when nothing matches.
        """
        if is_blank(text):
            return None
        wanted = text.strip().lower()
        for category in cls:
            if category.value.lower() == wanted or category.name.lower() == wanted:
                return category
        return None

    @classmethod
    def labels(cls) -> List[str]:
        return [category.value for category in cls]


# -----------------------
# Event Status Enum
# -----------------------
class EventStatus(str, enum.Enum):
    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    ENDED = "ended"


# -----------------------
# User Model
# -----------------------
class User(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    name: Optional[str] = None  # e.g., "Ana Souza"
    email: Optional[str] = None  # identity key, stored lowercased
    phone: Optional[str] = None  # e.g., "(11) 99999-9999"
    city: Optional[str] = None  # e.g., "SP"
    age: int = 0

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    def is_valid(self) -> bool:
        return (
            not is_blank(self.name)
            and not is_blank(self.email)
            and "@" in self.email
            and not is_blank(self.phone)
            and not is_blank(self.city)
            and 0 < self.age < 150
        )

    def __eq__(self, other):
        if not isinstance(other, User):
            return NotImplemented
        return self.email == other.email

    def __hash__(self):
        return hash(self.email)

    def __str__(self) -> str:
        return f"{self.name} <{self.email}> - {self.city}, {self.age}"


def unique_users(users: List[User]) -> List[User]:
    """Keeps the first copy of each user (by email), preserving order."""
    unique: List[User] = []
    for user in users:
        if user not in unique:
            unique.append(user)
    return unique


# -----------------------
# Event Model
# -----------------------
class Event(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    id: Optional[int] = None  # assigned by EventStore.create
    name: Optional[str] = None  # e.g., "Show X"
    address: Optional[str] = None  # e.g., "Av. Paulista, 1000"
    category: Optional[Category] = None
    start_time: Optional[datetime] = None  # naive local time
    description: Optional[str] = None
    participants: List[User] = Field(default_factory=list)

    @field_validator("category", mode="before")
    @classmethod
    def resolve_category(cls, value):
        if isinstance(value, str) and not isinstance(value, Category):
            return Category.lookup(value) or value
        return value

    @field_validator("start_time", mode="before")
    @classmethod
    def parse_display_time(cls, value):
        # Accept the on-screen format as well as ISO-8601
        if isinstance(value, str):
            try:
                return parse_datetime(value)
            except ValueError:
                return value
        return value

    @field_validator("start_time")
    @classmethod
    def to_local_naive(cls, value):
        # Stored times are naive local time, comparable with datetime.now()
        if value is not None and value.tzinfo is not None:
            return value.astimezone().replace(tzinfo=None)
        return value

    @field_validator("participants")
    @classmethod
    def drop_duplicate_participants(cls, value):
        return unique_users(value)

    def is_valid(self) -> bool:
        return (
            not is_blank(self.name)
            and not is_blank(self.address)
            and self.category is not None
            and self.start_time is not None
            and not is_blank(self.description)
        )

    # Participants

    def add_participant(self, user: User) -> bool:
        """Adds the user unless already present. Returns False when nothing changed."""
        if user is None or user in self.participants:
            return False
        self.participants.append(user)
        return True

    def remove_participant(self, user: User) -> bool:
        if user is None or user not in self.participants:
            return False
        self.participants.remove(user)
        return True

    def is_participant(self, user: Optional[User]) -> bool:
        return user is not None and user in self.participants

    @property
    def participant_count(self) -> int:
        return len(self.participants)

    # Temporal state, always derived from the given (or current) time

    def has_ended(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now()
        return self.start_time <= now

    def is_ongoing(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now()
        return self.start_time <= now < self.start_time + ONGOING_WINDOW

    def status(self, now: Optional[datetime] = None) -> EventStatus:
        now = now or datetime.now()
        if self.is_ongoing(now):
            return EventStatus.ONGOING
        if self.has_ended(now):
            return EventStatus.ENDED
        return EventStatus.UPCOMING

    def formatted_start(self) -> str:
        return format_datetime(self.start_time)

    def describe(self, now: Optional[datetime] = None) -> str:
        lines = [
            "=== EVENT ===",
            f"ID: {self.id}",
            f"Name: {self.name}",
            f"Address: {self.address}",
            f"Category: {self.category.label if self.category else ''}",
            f"Date/Time: {self.formatted_start()}",
            f"Description: {self.description}",
            f"Status: {self.status(now).value}",
            f"Participants: {self.participant_count}",
        ]
        if self.participants:
            lines.append("--- Participant List ---")
            for position, participant in enumerate(self.participants, start=1):
                lines.append(f"{position}. {participant.name} ({participant.email})")
        return "\n".join(lines)

    def __eq__(self, other):
        if not isinstance(other, Event):
            return NotImplemented
        return self.id == other.id

    def __hash__(self):
        return hash(self.id)

    def __str__(self) -> str:
        return (
            f"[{self.id}] {self.name} - {self.category} - {self.formatted_start()} "
            f"({self.participant_count} participants, {self.status().value})"
        )


# -----------------------
# Operation Result
# -----------------------
class FailureReason(str, enum.Enum):
    INVALID = "invalid"
    DUPLICATE = "duplicate"
    NOT_FOUND = "not_found"
    EVENT_ENDED = "event_ended"
    ALREADY_PARTICIPANT = "already_participant"
    NOT_PARTICIPANT = "not_participant"
    NOT_LOGGED_IN = "not_logged_in"
    STORAGE_ERROR = "storage_error"


class OperationResult(BaseModel):
    """
    Outcome of a store operation. Truthy on success, so callers that only
    care about the flag can write `if store.register(user): ...`.
    """
    ok: bool
    reason: Optional[FailureReason] = None
    message: str = ""
    value: Any = None

    @classmethod
    def success(cls, message: str, value: Any = None) -> "OperationResult":
        return cls(ok=True, message=message, value=value)

    @classmethod
    def failure(cls, reason: FailureReason, message: str) -> "OperationResult":
        return cls(ok=False, reason=reason, message=message)

    def __bool__(self) -> bool:
        return self.ok


# -----------------------
# Statistics Reports
# -----------------------
class UserStats(BaseModel):
    total: int = 0
    by_city: Dict[str, int] = Field(default_factory=dict)
    by_age_band: Dict[str, int] = Field(default_factory=dict)  # up_to_25 / 26_to_60 / over_60

    def render(self) -> str:
        lines = ["=== USER STATISTICS ===", f"Total users: {self.total}"]
        if self.total:
            lines.append("")
            lines.append("--- By City ---")
            for city, count in sorted(self.by_city.items(), key=lambda item: item[1], reverse=True):
                lines.append(f"{city}: {count}")
            lines.append("")
            lines.append("--- By Age Band ---")
            lines.append(f"Up to 25: {self.by_age_band.get('up_to_25', 0)}")
            lines.append(f"26 to 60: {self.by_age_band.get('26_to_60', 0)}")
            lines.append(f"Over 60: {self.by_age_band.get('over_60', 0)}")
        return "\n".join(lines)


class EventStats(BaseModel):
    total: int = 0
    upcoming: int = 0
    past: int = 0
    ongoing: int = 0
    by_category: Dict[str, int] = Field(default_factory=dict)

    def render(self) -> str:
        lines = [
            "=== EVENT STATISTICS ===",
            f"Total events: {self.total}",
            f"Upcoming events: {self.upcoming}",
            f"Past events: {self.past}",
            f"Happening now: {self.ongoing}",
        ]
        if self.by_category:
            lines.append("")
            lines.append("--- By Category ---")
            for label, count in self.by_category.items():
                lines.append(f"{label}: {count}")
        return "\n".join(lines)
