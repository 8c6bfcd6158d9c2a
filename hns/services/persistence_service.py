"""
Persistence service for the Hostname Naming Service.

Reservations and the allocator's counter snapshot live in one JSON database
file. Writes go to a temporary file first and replace the database
atomically.
"""
import json
import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from ..models.errors import StorageError
from ..models.hostname import Reservation

logger = logging.getLogger(__name__)

DB_VERSION = "1.0"


def empty_db() -> Dict:
    return {
        "reservations": [],
        "sequence_counters": {},
        "metadata": {
            "version": DB_VERSION,
            "created": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "description": "Hostname Naming Service - Reservation Database",
        },
    }


def load_reservations_db(db_file: Path) -> Dict:
    """Load the reservations database, or an empty one if the file does not exist.

    Raises:
        ValueError: if the file exists but is not a valid database
    """
    if not db_file.exists():
        return empty_db()
    try:
        with open(db_file, "r", encoding="utf-8") as f:
            db = json.load(f)
    except json.JSONDecodeError as exc:
        raise ValueError(f"reservation database {db_file} is corrupt: {exc}") from exc
    if not isinstance(db, dict):
        raise ValueError(f"reservation database {db_file} is not a JSON object")
    db.setdefault("reservations", [])
    db.setdefault("sequence_counters", {})
    db.setdefault("metadata", empty_db()["metadata"])
    return db


def save_reservations_db(db_file: Path, db: Dict) -> None:
    """Write the database atomically. Errors propagate to the caller."""
    db_file.parent.mkdir(parents=True, exist_ok=True)
    tmp_file = db_file.with_name(db_file.name + ".tmp")
    with open(tmp_file, "w", encoding="utf-8") as f:
        json.dump(db, f, indent=2)
    os.replace(tmp_file, db_file)


def read_reservations(db: Dict) -> List[Reservation]:
    return [Reservation.from_dict(item) for item in db.get("reservations", [])]


def read_counters(db: Dict) -> Dict[int, int]:
    return {int(key): int(value) for key, value in db.get("sequence_counters", {}).items()}


def build_db(
    reservations: List[Reservation],
    counters: Dict[int, int],
    metadata: Optional[Dict] = None,
) -> Dict:
    db = empty_db()
    if metadata:
        db["metadata"] = metadata
    db["reservations"] = [r.to_dict() for r in reservations]
    db["sequence_counters"] = {str(key): value for key, value in sorted(counters.items())}
    return db


class JsonReservationBackend:
    """File-backed storage used by the reservation service.

    Keeps the last written reservations and counters so a counter claim can
    rewrite the database without the caller holding the reservation list.
    Counters are only ever raised on disk.
    """

    def __init__(self, db_file: Path):
        self.db_file = db_file
        self._metadata: Optional[Dict] = None
        self._lock = threading.Lock()
        self._reservations: List[Reservation] = []
        self._counters: Dict[int, int] = {}

    def load(self):
        """Return (reservations, counters) from disk.

        Raises:
            StorageError: the database cannot be read or is corrupt
        """
        try:
            db = load_reservations_db(self.db_file)
            reservations = read_reservations(db)
            counters = read_counters(db)
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.error("Cannot load reservation database %s: %s", self.db_file, exc)
            raise StorageError(f"cannot load reservation database {self.db_file}: {exc}") from exc
        with self._lock:
            self._metadata = db.get("metadata")
            self._reservations = list(reservations)
            self._counters = dict(counters)
        logger.info("Loaded %d reservations from %s", len(reservations), self.db_file)
        return reservations, counters

    def save(self, reservations: List[Reservation], counters: Dict[int, int]) -> None:
        with self._lock:
            merged = dict(self._counters)
            for template_id, last in counters.items():
                merged[template_id] = max(merged.get(template_id, 0), last)
            self._write(reservations, merged)
            self._reservations = list(reservations)
            self._counters = merged

    def claim(self, template_id: int, value: int) -> None:
        """Record ``value`` as issued for a template before it is handed out."""
        with self._lock:
            if value <= self._counters.get(template_id, 0):
                return
            counters = dict(self._counters)
            counters[template_id] = value
            self._write(self._reservations, counters)
            self._counters = counters

    def _write(self, reservations: List[Reservation], counters: Dict[int, int]) -> None:
        try:
            save_reservations_db(self.db_file, build_db(reservations, counters, self._metadata))
        except OSError as exc:
            logger.error("Cannot write reservation database %s: %s", self.db_file, exc)
            raise StorageError(f"cannot write reservation database {self.db_file}: {exc}") from exc
