"""
File-backed session metadata store.

Each session is persisted as ``<directory>/<name>.json``. Writes go through a
temporary file in the same directory followed by ``os.replace`` so a
concurrent reader never observes a partially written record.
"""

import os
import tempfile
import time
from pathlib import Path

from pydantic import ValidationError

from ..core.models import SessionRecord, validate_session_name
from ..utils.logging import LogContext, MetadataError, NotFoundError, get_logger

logger = get_logger(__name__, LogContext.STORE)

RECORD_SUFFIX = ".json"
TEMP_SUFFIX = ".tmp"
STALE_TEMP_AGE = 60.0


class SessionStore:
    """Reads and writes session records in a per-user directory."""

    def __init__(self, directory: Path):
        """Initialize the store.

        Args:
            directory: Directory holding the record files
        """
        self.directory = Path(directory).expanduser()

    def initialize(self) -> None:
        """Create the store directory if it does not exist."""
        self.directory.mkdir(parents=True, exist_ok=True)

    def teardown(self, max_age: float = STALE_TEMP_AGE) -> int:
        """Remove temporary files left behind by interrupted writes.

        Files younger than ``max_age`` seconds may belong to a write in
        progress in another process and are left alone.

        Returns:
            Number of files removed
        """
        if not self.directory.is_dir():
            return 0
        cutoff = time.time() - max_age
        removed = 0
        for leftover in self.directory.glob(f"*{TEMP_SUFFIX}"):
            try:
                if leftover.stat().st_mtime > cutoff:
                    continue
                leftover.unlink()
                removed += 1
            except FileNotFoundError:
                continue
        if removed:
            logger.info("Removed interrupted writes", count=removed)
        return removed

    def path_for(self, name: str) -> Path:
        validate_session_name(name)
        return self.directory / f"{name}{RECORD_SUFFIX}"

    def exists(self, name: str) -> bool:
        return self.path_for(name).is_file()

    def write(self, record: SessionRecord) -> Path:
        """Persist a record atomically.

        Args:
            record: Record to persist

        Returns:
            Path of the record file
        """
        self.initialize()
        path = self.path_for(record.name)
        payload = record.model_dump_json(indent=2)

        with tempfile.NamedTemporaryFile(
            "w",
            delete=False,
            dir=str(self.directory),
            prefix=f".{record.name}.",
            suffix=TEMP_SUFFIX,
            encoding="utf-8",
        ) as tmp:
            tmp.write(payload)
            tmp.flush()
            os.fsync(tmp.fileno())
            tmp_name = tmp.name

        try:
            os.replace(tmp_name, path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.debug(
            "Session record written",
            session_name=record.name,
            path=str(path),
        )
        return path

    def read(self, name: str) -> SessionRecord:
        """Read a record.

        Raises:
            NotFoundError: If no record exists for the name
            MetadataError: If the record file is unreadable or corrupt
        """
        path = self.path_for(name)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise NotFoundError(f"No session record for '{name}'", {"name": name})
        except OSError as e:
            raise MetadataError(f"Cannot read {path}: {e}", {"path": str(path)})

        return self._parse(path, raw)

    def get(self, name: str) -> SessionRecord | None:
        """Read a record, returning None when it does not exist."""
        try:
            return self.read(name)
        except NotFoundError:
            return None

    def delete(self, name: str) -> bool:
        """Delete a record. Succeeds when the record is already absent.

        Returns:
            True if a file was removed
        """
        path = self.path_for(name)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.debug("Session record already absent", session_name=name)
            return False
        logger.debug("Session record deleted", session_name=name)
        return True

    def list(self) -> tuple[list[SessionRecord], list[tuple[Path, str]]]:
        """Enumerate every record in the store.

        Unreadable or corrupt files are skipped and reported, never raised.

        Returns:
            Tuple of (records sorted by name, skipped (path, reason) pairs)
        """
        records: list[SessionRecord] = []
        skipped: list[tuple[Path, str]] = []

        if not self.directory.is_dir():
            return records, skipped

        for path in sorted(self.directory.glob(f"*{RECORD_SUFFIX}")):
            try:
                record = self._parse(path, path.read_text(encoding="utf-8"))
            except (OSError, MetadataError) as e:
                reason = e.message if isinstance(e, MetadataError) else str(e)
                logger.warning(
                    "Skipping unreadable session record",
                    path=str(path),
                    reason=reason,
                )
                skipped.append((path, reason))
                continue

            if record.name != path.stem:
                reason = f"record name '{record.name}' does not match file name"
                logger.warning(
                    "Skipping mismatched session record", path=str(path), reason=reason
                )
                skipped.append((path, reason))
                continue

            records.append(record)

        return records, skipped

    @staticmethod
    def _parse(path: Path, raw: str) -> SessionRecord:
        try:
            return SessionRecord.model_validate_json(raw)
        except ValidationError as e:
            raise MetadataError(
                f"Corrupt session record {path}: {e.error_count()} validation error(s)",
                {"path": str(path), "errors": str(e)},
            )
