import asyncio
import json
import os
from unittest.mock import patch

import pytest

from booking_sync.core.errors import (
    BookingConflictError,
    BookingNotFoundError,
    StorageRetryExhaustedError,
    StorageWriteError,
)
from booking_sync.models.booking import BookingStatus
from booking_sync.services.store import BookingStore


@pytest.mark.asyncio
async def test_append_then_get_all_keeps_insertion_order(store, make_booking):
    await store.append(make_booking(id="a", startTime="09:00", endTime="09:30"))
    await store.append(make_booking(id="b", startTime="08:00", endTime="08:30"))

    bookings = await store.get_all()
    assert [b.id for b in bookings] == ["a", "b"]

    # persisted as a single JSON array
    with open(store.path, encoding="utf-8") as f:
        raw = json.load(f)
    assert isinstance(raw, list)
    assert raw[0]["customerName"] == "Alex"


@pytest.mark.asyncio
async def test_append_is_idempotent_by_id(store, make_booking):
    original = make_booking(id="dup", customerName="First")
    await store.append(original)

    returned = await store.append(make_booking(id="dup", customerName="Second"))

    bookings = await store.get_all()
    assert len(bookings) == 1
    assert bookings[0].customerName == "First"
    assert returned.customerName == "First"


@pytest.mark.asyncio
async def test_concurrent_appends_are_not_lost(store, make_booking):
    bookings = [make_booking(id=f"b{i}", startTime=f"{8 + i % 10:02d}:00", endTime=f"{8 + i % 10:02d}:30")
                for i in range(20)]

    await asyncio.gather(*(store.append(b) for b in bookings))

    stored = await store.get_all()
    assert len(stored) == 20
    assert {b.id for b in stored} == {f"b{i}" for i in range(20)}


@pytest.mark.asyncio
async def test_missing_store_reads_as_empty(tmp_path):
    store = BookingStore(str(tmp_path / "nope" / "bookings.json"))
    assert await store.get_all() == []


@pytest.mark.asyncio
async def test_corrupt_store_fails_open(store):
    with open(store.path, "w", encoding="utf-8") as f:
        f.write("{not json")
    assert await store.get_all() == []


@pytest.mark.asyncio
async def test_non_array_store_fails_open(store):
    with open(store.path, "w", encoding="utf-8") as f:
        json.dump({"bookings": []}, f)
    assert await store.get_all() == []


@pytest.mark.asyncio
async def test_invalid_records_are_skipped(store, make_booking):
    good = make_booking(id="ok").model_dump(mode="json")
    with open(store.path, "w", encoding="utf-8") as f:
        json.dump([good, {"id": "broken"}], f)

    bookings = await store.get_all()
    assert [b.id for b in bookings] == ["ok"]


@pytest.mark.asyncio
async def test_append_refuses_to_overwrite_corrupt_store(store, make_booking):
    with open(store.path, "w", encoding="utf-8") as f:
        f.write("garbage")

    with pytest.raises(StorageWriteError) as exc_info:
        await store.append(make_booking(id="fresh"))
    assert exc_info.value.status_code == 503

    # the damaged file is left for an operator to look at
    with open(store.path, encoding="utf-8") as f:
        assert f.read() == "garbage"


@pytest.mark.asyncio
async def test_append_keeps_records_that_do_not_validate(store, make_booking):
    good = make_booking(id="ok").model_dump(mode="json")
    legacy = {"id": "legacy", "date": "2023-01-01", "startTime": "09:00"}
    with open(store.path, "w", encoding="utf-8") as f:
        json.dump([good, legacy], f)

    await store.append(make_booking(id="new", startTime="12:00", endTime="12:30"))

    with open(store.path, encoding="utf-8") as f:
        raw = json.load(f)
    assert [item["id"] for item in raw] == ["ok", "legacy", "new"]
    assert raw[1] == legacy


@pytest.mark.asyncio
async def test_cancel_keeps_records_that_do_not_validate(store, make_booking):
    good = make_booking(id="ok").model_dump(mode="json")
    legacy = {"id": "legacy", "note": "imported"}
    with open(store.path, "w", encoding="utf-8") as f:
        json.dump([legacy, good], f)

    cancelled, changed = await store.cancel("ok")
    assert changed is True

    with open(store.path, encoding="utf-8") as f:
        raw = json.load(f)
    assert raw[0] == legacy
    assert raw[1]["status"] == "cancelled"


@pytest.mark.asyncio
async def test_append_rejects_id_of_unreadable_record(store, make_booking):
    with open(store.path, "w", encoding="utf-8") as f:
        json.dump([{"id": "taken"}], f)

    with pytest.raises(BookingConflictError):
        await store.append(make_booking(id="taken"))

    with open(store.path, encoding="utf-8") as f:
        assert json.load(f) == [{"id": "taken"}]


@pytest.mark.asyncio
async def test_write_failure_exhausts_retries_and_keeps_old_state(store, make_booking):
    await store.append(make_booking(id="kept"))

    with patch.object(store, "_write_all", side_effect=OSError("disk full")) as mock_write:
        with pytest.raises(StorageRetryExhaustedError) as exc_info:
            await store.append(make_booking(id="lost", startTime="12:00", endTime="12:30"))

    assert mock_write.call_count == 2
    assert exc_info.value.attempts == 2
    assert exc_info.value.retryable is True
    assert [b.id for b in await store.get_all()] == ["kept"]


@pytest.mark.asyncio
async def test_no_temp_files_left_behind(store, make_booking):
    await store.append(make_booking())
    leftovers = [n for n in os.listdir(os.path.dirname(store.path)) if n.endswith(".tmp")]
    assert leftovers == []


@pytest.mark.asyncio
async def test_cancel_is_terminal_and_idempotent(store, make_booking):
    await store.append(make_booking(id="c1"))

    cancelled, changed = await store.cancel("c1")
    assert changed is True
    assert cancelled.status == BookingStatus.cancelled

    again, changed = await store.cancel("c1")
    assert changed is False
    assert again.status == BookingStatus.cancelled

    # the record is still there, only its status changed
    bookings = await store.get_all()
    assert len(bookings) == 1
    assert bookings[0].status == BookingStatus.cancelled


@pytest.mark.asyncio
async def test_cancel_unknown_id(store):
    with pytest.raises(BookingNotFoundError):
        await store.cancel("missing")


@pytest.mark.asyncio
async def test_enforcing_store_rejects_overlaps(store_path, make_booking):
    store = BookingStore(store_path, enforce_no_overlap=True)
    await store.append(make_booking(id="first", startTime="10:00", endTime="11:00"))

    with pytest.raises(BookingConflictError) as exc_info:
        await store.append(make_booking(id="second", startTime="10:30", endTime="11:30"))
    assert [b.id for b in exc_info.value.conflicts] == ["first"]

    # abutting is fine
    await store.append(make_booking(id="third", startTime="11:00", endTime="11:30"))
    assert [b.id for b in await store.get_all()] == ["first", "third"]


@pytest.mark.asyncio
async def test_enforcing_store_ignores_cancelled(store_path, make_booking):
    store = BookingStore(store_path, enforce_no_overlap=True)
    await store.append(make_booking(id="first"))
    await store.cancel("first")

    await store.append(make_booking(id="second"))
    assert len(await store.get_all()) == 2
