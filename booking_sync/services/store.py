import asyncio
import json
import os
import tempfile
from typing import List, Optional, Tuple

from pydantic import ValidationError

from booking_sync.core.errors import (
    BookingConflictError,
    BookingNotFoundError,
    StorageReadError,
    StorageRetryExhaustedError,
    StorageWriteError,
)
from booking_sync.core.logger import logger
from booking_sync.models.booking import Booking, BookingStatus
from booking_sync.services.conflicts import find_conflicts


class BookingStore:
    """
    Append-oriented JSON file holding every booking ever created.

    The file is a single array rewritten atomically on each mutation.
    All read-modify-write cycles run under one asyncio.Lock so two requests
    can never both write a snapshot that omits the other's record.
    """

    def __init__(self, path: str, write_retries: int = 3, retry_backoff: float = 0.05,
                 enforce_no_overlap: bool = False):
        self.path = path
        self.write_retries = max(1, write_retries)
        self.retry_backoff = retry_backoff
        self.enforce_no_overlap = enforce_no_overlap
        self._lock = asyncio.Lock()

    # --- reads ---

    def _read_raw(self) -> list:
        if not os.path.exists(self.path):
            raise StorageReadError(f"Store file {self.path} does not exist")
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageReadError(f"Cannot read {self.path}: {e}") from e
        if not isinstance(data, list):
            raise StorageReadError(f"Store file {self.path} does not hold an array")
        return data

    def _load(self) -> List[Booking]:
        """Fails open: a missing or damaged store reads as empty."""
        try:
            raw = self._read_raw()
        except StorageReadError as e:
            if os.path.exists(self.path):
                logger.warning(f"⚠️ Booking store unreadable, serving empty collection: {e.message}")
            else:
                logger.info(f"ℹ️ No booking store at {self.path} yet, starting empty.")
            return []

        bookings = []
        for index, item in enumerate(raw):
            try:
                bookings.append(Booking.model_validate(item))
            except ValidationError as e:
                logger.warning(f"⚠️ Skipping invalid record #{index} in {self.path}: {e.error_count()} error(s)")
        return bookings

    async def get_all(self) -> List[Booking]:
        return await asyncio.to_thread(self._load)

    async def get(self, booking_id: str) -> Optional[Booking]:
        for booking in await self.get_all():
            if booking.id == booking_id:
                return booking
        return None

    # --- writes ---

    def _load_for_write(self) -> list:
        """
        Raw entries to rewrite. Entries that don't validate are carried over
        as they are. A store file that exists but can't be read refuses the
        write instead of being replaced.
        """
        if not os.path.exists(self.path):
            return []
        try:
            return self._read_raw()
        except StorageReadError as e:
            logger.error(f"❌ Refusing to rewrite unreadable booking store: {e.message}")
            raise StorageWriteError(f"Booking store is unreadable, write refused: {e.message}") from e

    @staticmethod
    def _valid_bookings(entries: list) -> List[Booking]:
        bookings = []
        for item in entries:
            try:
                bookings.append(Booking.model_validate(item))
            except ValidationError:
                continue
        return bookings

    def _find_entry(self, entries: list, booking_id: str) -> Tuple[int, Optional[Booking]]:
        """Index of the entry with this id (-1 if none) and its parsed record."""
        for index, item in enumerate(entries):
            if isinstance(item, dict) and item.get("id") == booking_id:
                try:
                    return index, Booking.model_validate(item)
                except ValidationError as e:
                    logger.warning(f"⚠️ Stored record {booking_id} is invalid: {e.error_count()} error(s)")
                    return index, None
        return -1, None

    def _write_all(self, entries: list):
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".bookings-", suffix=".tmp")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(entries, f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    async def _persist(self, entries: list):
        last_error = None
        for attempt in range(self.write_retries):
            try:
                await asyncio.to_thread(self._write_all, entries)
                return
            except OSError as e:
                last_error = e
                logger.error(f"❌ Store write failed (attempt {attempt + 1}/{self.write_retries}): {e}")
                if attempt + 1 < self.write_retries:
                    await asyncio.sleep(self.retry_backoff * (2 ** attempt))

        raise StorageRetryExhaustedError(
            f"Could not persist bookings after {self.write_retries} attempts: {last_error}",
            attempts=self.write_retries,
        )

    async def append(self, booking: Booking) -> Booking:
        """
        Adds a booking unless one with the same id exists.
        Returns the stored record (the existing one on a duplicate id).
        """
        async with self._lock:
            entries = await asyncio.to_thread(self._load_for_write)

            index, existing = self._find_entry(entries, booking.id)
            if existing is not None:
                logger.info(f"🔁 Booking {booking.id} already stored, append skipped.")
                return existing
            if index >= 0:
                raise BookingConflictError(f"Booking id {booking.id} is taken by an unreadable stored record")

            if self.enforce_no_overlap and booking.is_active:
                conflicts = find_conflicts(booking.date, booking.startTime, booking.endTime,
                                           self._valid_bookings(entries))
                if conflicts:
                    raise BookingConflictError(
                        f"{booking.date} {booking.startTime}-{booking.endTime} overlaps an existing booking",
                        conflicts=conflicts,
                    )

            await self._persist(entries + [booking.model_dump(mode="json")])

        logger.info(f"✅ Booking {booking.id} stored ({booking.date} {booking.startTime}-{booking.endTime})")
        return booking

    async def cancel(self, booking_id: str) -> Tuple[Booking, bool]:
        """
        active -> cancelled. Returns (record, changed); cancelling twice
        returns the record unchanged with changed=False.
        """
        async with self._lock:
            entries = await asyncio.to_thread(self._load_for_write)

            index, existing = self._find_entry(entries, booking_id)
            if existing is None:
                raise BookingNotFoundError(booking_id)
            if existing.status == BookingStatus.cancelled:
                return existing, False

            updated = existing.model_copy(update={"status": BookingStatus.cancelled})
            # only the status changes, unknown keys on the entry survive
            entries = list(entries)
            entries[index] = {**entries[index], "status": BookingStatus.cancelled.value}
            await self._persist(entries)

        logger.info(f"🗑️ Booking {booking_id} cancelled.")
        return updated, True
