"""
Persistence adapter tests.

Run against both the SQL and the Redis adapter.
"""

import pytest

from vahaka.app.core.exceptions import ConflictError
from vahaka.app.store.base import (
    ConditionalWrite,
    DocumentExistsError,
    DocumentNotFoundError,
    apply_fields,
    get_path,
    matches,
)


def test_dotted_paths():
    doc = {"currentTrip": {"tripId": "t1", "status": "assigned"}, "availability": False}

    assert get_path(doc, "currentTrip.tripId") == "t1"
    assert get_path(doc, "location.latitude") is None
    assert matches(doc, {"currentTrip.status": "assigned", "missing": None})
    assert not matches(doc, {"availability": True})

    updated = apply_fields(doc, {"currentTrip.status": "active", "location.latitude": 1.5})
    assert updated["currentTrip"] == {"tripId": "t1", "status": "active"}
    assert updated["location"] == {"latitude": 1.5}
    # Original untouched
    assert doc["currentTrip"]["status"] == "assigned"


@pytest.mark.asyncio
async def test_insert_and_read(store):
    created = await store.insert("drivers", "d1", {"name": "Asha", "availability": False})

    assert created == {"id": "d1", "name": "Asha", "availability": False}
    assert await store.read("drivers", "d1") == created
    assert await store.read("drivers", "missing") is None
    # Collections are separate namespaces
    assert await store.read("trips", "d1") is None


@pytest.mark.asyncio
async def test_insert_duplicate_id_fails(store):
    await store.insert("drivers", "d1", {"name": "Asha"})

    with pytest.raises(DocumentExistsError):
        await store.insert("drivers", "d1", {"name": "Someone else"})

    assert (await store.read("drivers", "d1"))["name"] == "Asha"


@pytest.mark.asyncio
async def test_conditional_write_applies_when_expectation_holds(store):
    await store.insert("drivers", "d1", {"availability": True, "currentTrip": None})

    committed = await store.conditional_write(
        "drivers", "d1",
        expected={"availability": True, "currentTrip": None},
        fields={"availability": False, "currentTrip": {"tripId": "t1", "status": "assigned"}},
    )

    assert committed is True
    doc = await store.read("drivers", "d1")
    assert doc["availability"] is False
    assert doc["currentTrip"] == {"tripId": "t1", "status": "assigned"}


@pytest.mark.asyncio
async def test_conditional_write_rejected_on_mismatch(store):
    await store.insert("drivers", "d1", {"availability": False, "currentTrip": None})

    committed = await store.conditional_write(
        "drivers", "d1",
        expected={"availability": True},
        fields={"availability": False, "currentTrip": {"tripId": "t1", "status": "assigned"}},
    )

    assert committed is False
    assert (await store.read("drivers", "d1"))["currentTrip"] is None


@pytest.mark.asyncio
async def test_conditional_write_missing_document(store):
    with pytest.raises(DocumentNotFoundError):
        await store.conditional_write("drivers", "ghost", expected={}, fields={"availability": True})


@pytest.mark.asyncio
async def test_commit_is_all_or_nothing(store):
    await store.insert("drivers", "d1", {"availability": True, "currentTrip": None})
    await store.insert("trips", "t1", {"status": "assigned", "driverId": "d0"})

    committed = await store.commit([
        ConditionalWrite("drivers", "d1", {"availability": False}, {"availability": True}),
        ConditionalWrite("trips", "t1", {"status": "assigned", "driverId": "d1"}, {"status": "requested"}),
    ])

    assert committed is False
    # First write satisfied its expectation but must not have landed
    assert (await store.read("drivers", "d1"))["availability"] is True
    assert (await store.read("trips", "t1"))["driverId"] == "d0"


@pytest.mark.asyncio
async def test_commit_gives_up_after_repeated_races(store, mocker):
    await store.insert("drivers", "d1", {"availability": True})
    attempts = mocker.patch.object(store, "_try_commit", return_value=None)

    with pytest.raises(ConflictError) as exc_info:
        await store.commit([ConditionalWrite("drivers", "d1", {"availability": False})])

    assert attempts.call_count == store.update_max_retries
    assert exc_info.value.details["retryable"] is True


@pytest.mark.asyncio
async def test_commit_rejects_repeated_document(store):
    await store.insert("drivers", "d1", {"availability": True})

    with pytest.raises(ValueError):
        await store.commit([
            ConditionalWrite("drivers", "d1", {"availability": False}),
            ConditionalWrite("drivers", "d1", {"availability": True}),
        ])


@pytest.mark.asyncio
async def test_update_merges_fields(store):
    await store.insert("drivers", "d1", {"availability": True, "location": None, "name": "Asha"})

    await store.update("drivers", "d1", {"location.latitude": 12.9, "location.longitude": 77.5})

    doc = await store.read("drivers", "d1")
    assert doc["location"] == {"latitude": 12.9, "longitude": 77.5}
    assert doc["availability"] is True
    assert doc["name"] == "Asha"


@pytest.mark.asyncio
async def test_update_missing_document(store):
    with pytest.raises(DocumentNotFoundError):
        await store.update("drivers", "ghost", {"name": "x"})


@pytest.mark.asyncio
async def test_query_filters_across_pages(store):
    for index in range(5):
        status = "approved" if index % 2 == 0 else "pending"
        await store.insert("drivers", f"d{index}", {"status": status})
    await store.insert("trips", "t1", {"status": "approved"})

    approved = await store.query("drivers", "status", "approved").all()
    everything = await store.query("drivers").all()

    assert sorted(doc["id"] for doc in approved) == ["d0", "d2", "d4"]
    assert len(everything) == 5


@pytest.mark.asyncio
async def test_query_is_lazy_and_restartable(store, mocker):
    await store.insert("drivers", "d1", {"status": "approved"})
    spy = mocker.spy(store, "_fetch_page")

    query = store.query("drivers", "status", "approved")
    assert spy.call_count == 0

    first_pass = await query.all()
    await store.insert("drivers", "d2", {"status": "approved"})
    second_pass = await query.all()

    assert [doc["id"] for doc in first_pass] == ["d1"]
    assert sorted(doc["id"] for doc in second_pass) == ["d1", "d2"]
    assert await store.query("drivers", "status", "rejected").all() == []


@pytest.mark.asyncio
async def test_ping(store):
    assert await store.ping() is True


@pytest.mark.asyncio
async def test_query_on_nested_and_non_string_fields(store):
    await store.insert("drivers", "d1", {"availability": False, "currentTrip": {"tripId": "t1", "status": "active"}})
    await store.insert("drivers", "d2", {"availability": False, "currentTrip": {"tripId": "t2", "status": "assigned"}})
    await store.insert("drivers", "d3", {"availability": True, "currentTrip": None})

    active = await store.query("drivers", "currentTrip.status", "active").all()
    available = await store.query("drivers", "availability", True).all()
    unbound = await store.query("drivers", "currentTrip", None).all()

    assert [doc["id"] for doc in active] == ["d1"]
    assert [doc["id"] for doc in available] == ["d3"]
    assert [doc["id"] for doc in unbound] == ["d3"]
