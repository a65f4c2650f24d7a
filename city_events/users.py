# city_events/users.py

import logging
import re
import threading
from collections import Counter
from typing import List, Optional

from city_events.database import CollectionFile
from city_events.models import FailureReason, OperationResult, User, UserStats
from city_events.utils import is_blank, normalize_text, only_digits

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
MIN_AGE = 13
MAX_AGE = 120


class UserStore:
    """
    Registered users plus the current session.

    The session holds a detached copy of the logged-in user; it is re-fetched
    by email whenever the underlying record changes.
    """

    def __init__(self, path):
        self._file = CollectionFile(path, User, "users")
        self._lock = threading.RLock()
        self._users: List[User] = self._file.load()
        self._session: Optional[User] = None

    # -----------------------
    # Persistence
    # -----------------------
    def save(self) -> bool:
        with self._lock:
            return self._file.save(self._users)

    def _commit(self, candidate: List[User]) -> bool:
        # Memory only changes once the new collection is on disk
        if not self._file.save(candidate):
            return False
        self._users = candidate
        return True

    @staticmethod
    def _storage_failure() -> OperationResult:
        return OperationResult.failure(FailureReason.STORAGE_ERROR, "Could not save users to disk")

    # -----------------------
    # CRUD
    # -----------------------
    def register(self, user: Optional[User]) -> OperationResult:
        """
        Registers a new user.

        Args:
            user (User): The user to add. Must pass User.is_valid().

        Returns:
            OperationResult: fails with INVALID, DUPLICATE (email already
            registered, ignoring case) or STORAGE_ERROR.
        """
        if user is None or not user.is_valid():
            logger.warning("Registration rejected: invalid user data")
            return OperationResult.failure(FailureReason.INVALID, "Invalid user data")

        with self._lock:
            if self.find_by_email(user.email) is not None:
                logger.warning("Registration failed: email '%s' is already registered", user.email)
                return OperationResult.failure(FailureReason.DUPLICATE, "Email is already registered")

            stored = user.model_copy(deep=True)
            if not self._commit(self._users + [stored]):
                return self._storage_failure()

        logger.info("User '%s' registered successfully", stored.name)
        return OperationResult.success("User registered successfully", stored)

    def update(self, user: Optional[User]) -> OperationResult:
        """Replaces the record with the same email. Refreshes the session if it is the same user."""
        if user is None or not user.is_valid():
            return OperationResult.failure(FailureReason.INVALID, "Invalid user data")

        with self._lock:
            index = self._index_of(user.email)
            if index is None:
                logger.warning("Update failed: no user with email '%s'", user.email)
                return OperationResult.failure(FailureReason.NOT_FOUND, "User not found")

            stored = user.model_copy(deep=True)
            candidate = list(self._users)
            candidate[index] = stored
            if not self._commit(candidate):
                return self._storage_failure()

            if self._session is not None and self._session.email == stored.email:
                self._session = self.find_by_email(stored.email).model_copy(deep=True)

        logger.info("User '%s' updated successfully", stored.email)
        return OperationResult.success("User updated successfully", stored)

    def remove(self, email: Optional[str]) -> OperationResult:
        """Deletes a user by email. Logs out the session if it was that user."""
        with self._lock:
            target = self.find_by_email(email)
            if target is None:
                logger.warning("Removal failed: no user with email '%s'", email)
                return OperationResult.failure(FailureReason.NOT_FOUND, "User not found")

            candidate = [u for u in self._users if u.email != target.email]
            if not self._commit(candidate):
                return self._storage_failure()

            if self._session is not None and self._session.email == target.email:
                self._session = None

        logger.info("User '%s' removed", target.email)
        return OperationResult.success("User removed successfully", target)

    def clear_all(self) -> OperationResult:
        with self._lock:
            if not self._commit([]):
                return self._storage_failure()
            self._session = None
        logger.info("All users removed")
        return OperationResult.success("All users removed")

    # -----------------------
    # Queries
    # -----------------------
    def _index_of(self, email: str) -> Optional[int]:
        for index, existing in enumerate(self._users):
            if existing.email == email:
                return index
        return None

    def find_by_email(self, email: Optional[str]) -> Optional[User]:
        if is_blank(email):
            return None
        key = normalize_text(email)
        return next((u for u in self._users if u.email == key), None)

    def search_by_name(self, fragment: Optional[str]) -> List[User]:
        if is_blank(fragment):
            return []
        wanted = normalize_text(fragment)
        return sorted(
            (u for u in self._users if wanted in u.name.lower()),
            key=lambda u: u.name,
        )

    def search_by_city(self, city: Optional[str]) -> List[User]:
        if is_blank(city):
            return []
        wanted = normalize_text(city)
        return sorted(
            (u for u in self._users if u.city.strip().lower() == wanted),
            key=lambda u: u.name,
        )

    def list_all(self) -> List[User]:
        return sorted(self._users, key=lambda u: u.name)

    def count(self) -> int:
        return len(self._users)

    def has_users(self) -> bool:
        return bool(self._users)

    # -----------------------
    # Session
    # -----------------------
    def login(self, email: Optional[str]) -> OperationResult:
        user = self.find_by_email(email)
        if user is None:
            logger.warning("Login failed: user '%s' not found", email)
            return OperationResult.failure(FailureReason.NOT_FOUND, "User not found. Check the email address.")

        self._session = user.model_copy(deep=True)
        logger.info("User '%s' logged in", user.email)
        return OperationResult.success(f"Welcome, {user.name}!", self._session)

    def logout(self) -> None:
        if self._session is not None:
            logger.info("User '%s' logged out", self._session.email)
            self._session = None

    @property
    def current_user(self) -> Optional[User]:
        return self._session

    def is_logged_in(self) -> bool:
        return self._session is not None

    # -----------------------
    # Validators
    # -----------------------
    @staticmethod
    def is_valid_email(email: Optional[str]) -> bool:
        if is_blank(email):
            return False
        return EMAIL_PATTERN.fullmatch(email) is not None

    @staticmethod
    def is_valid_phone(phone: Optional[str]) -> bool:
        # Brazilian numbers: area code plus 8 or 9 digits
        if is_blank(phone):
            return False
        return 10 <= len(only_digits(phone)) <= 11

    @staticmethod
    def is_valid_age(age: int) -> bool:
        return MIN_AGE <= age <= MAX_AGE

    # -----------------------
    # Statistics
    # -----------------------
    def stats(self) -> UserStats:
        users = list(self._users)
        by_city = Counter(u.city for u in users)
        return UserStats(
            total=len(users),
            by_city=dict(by_city),
            by_age_band={
                "up_to_25": sum(1 for u in users if u.age <= 25),
                "26_to_60": sum(1 for u in users if 25 < u.age <= 60),
                "over_60": sum(1 for u in users if u.age > 60),
            },
        )
