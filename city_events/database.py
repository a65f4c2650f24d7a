# city_events/database.py

import logging
import os
import shutil
import tempfile
import time
from pathlib import Path
from typing import List, Optional, Type

from dotenv import load_dotenv
from pydantic import BaseModel, TypeAdapter

# Load environment variables
load_dotenv()

DEFAULT_EVENTS_FILE = "events.json"
DEFAULT_USERS_FILE = "users.json"

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

if not logger.hasHandlers():
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    handler.setFormatter(formatter)
    logger.addHandler(handler)


# -----------------------
# Settings
# -----------------------
class Settings(BaseModel):
    data_dir: str = "."
    events_file: str = DEFAULT_EVENTS_FILE
    users_file: str = DEFAULT_USERS_FILE
    log_level: str = "INFO"

    @property
    def events_path(self) -> Path:
        return Path(self.data_dir) / self.events_file

    @property
    def users_path(self) -> Path:
        return Path(self.data_dir) / self.users_file


def get_settings() -> Settings:
    """Reads the storage settings from the environment (and .env, if present)."""
    return Settings(
        data_dir=os.getenv("DATA_DIR", "."),
        events_file=os.getenv("EVENTS_FILE", DEFAULT_EVENTS_FILE),
        users_file=os.getenv("USERS_FILE", DEFAULT_USERS_FILE),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )


# -----------------------
# Collection File
# -----------------------
class CollectionFile:
    """
    One JSON file holding a whole collection of entities.

    Every save rewrites the complete file. Loading never fails: a missing or
    empty file gives an empty collection, and an unreadable one (or one with
    records failing the model's is_valid()) is copied aside before starting
    over empty.
    """

    def __init__(self, path, model: Type[BaseModel], label: str):
        self.path = Path(path)
        self.label = label  # "users" / "events", used in log lines
        self._adapter = TypeAdapter(List[model])

    def load(self) -> list:
        if not self.path.exists() or self.path.stat().st_size == 0:
            logger.info("No %s file at '%s'. Starting with an empty list.", self.label, self.path)
            return []

        try:
            raw = self.path.read_text(encoding="utf-8")
            if not raw.strip():
                logger.info("The %s file '%s' is empty. Starting with an empty list.", self.label, self.path)
                return []
            items = self._adapter.validate_json(raw)
        except (OSError, ValueError) as e:
            # pydantic's ValidationError and UnicodeDecodeError are both ValueErrors
            logger.error("Error loading %s from '%s': %s", self.label, self.path, str(e))
            self.backup()
            return []

        # Parseable records that miss required fields are corrupt data as well
        broken = [index for index, item in enumerate(items) if not item.is_valid()]
        if broken:
            logger.error(
                "Error loading %s from '%s': invalid record(s) at position(s) %s",
                self.label, self.path, broken,
            )
            self.backup()
            return []

        logger.info("Loaded %d %s from '%s'", len(items), self.label, self.path)
        return items

    def save(self, items: list) -> bool:
        """Writes the full collection through a temp file. Returns False on I/O failure."""
        tmp_name: Optional[str] = None
        try:
            payload = self._adapter.dump_json(items, indent=2)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "wb") as fh:
                fh.write(payload)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            logger.exception("Error saving %s to '%s': %s", self.label, self.path, str(e))
            return False
        finally:
            if tmp_name and os.path.exists(tmp_name):
                try:
                    os.remove(tmp_name)
                except OSError:
                    logger.warning("Could not remove temp file '%s'", tmp_name)

        logger.info("Saved %d %s to '%s'", len(items), self.label, self.path)
        return True

    def backup(self) -> Optional[Path]:
        """Copies the current file aside as <name>.backup.<epoch millis>."""
        if not self.path.exists():
            return None
        backup_path = self.path.with_name(f"{self.path.name}.backup.{int(time.time() * 1000)}")
        try:
            shutil.copy2(self.path, backup_path)
        except OSError as e:
            logger.exception("Error creating backup of '%s': %s", self.path, str(e))
            return None
        logger.info("Backup created: %s", backup_path)
        return backup_path
