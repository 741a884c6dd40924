"""
Location and availability updater tests.
"""

import pytest

from vahaka.app.core.exceptions import ConflictError, NotFoundError, ValidationError
from vahaka.tests.payloads import DRIVER_PROFILE


@pytest.mark.asyncio
async def test_set_location(drivers, updater):
    driver_id = await drivers.create(DRIVER_PROFILE)

    driver = await updater.set_location(driver_id, {"latitude": 12.9716, "longitude": 77.5946})

    assert driver.location.latitude == 12.9716
    assert driver.location.longitude == 77.5946
    assert driver.location.updated_at is not None


@pytest.mark.asyncio
async def test_set_location_is_idempotent(updater, make_driver, coordinator, make_trip):
    driver_id = await make_driver()
    trip_id = await make_trip()
    await coordinator.assign_driver(trip_id, [driver_id])

    first = await updater.set_location(driver_id, {"latitude": 12.95, "longitude": 77.60})
    second = await updater.set_location(driver_id, {"latitude": 12.95, "longitude": 77.60})

    assert second.location.latitude == first.location.latitude
    assert second.location.longitude == first.location.longitude
    assert second.location.updated_at >= first.location.updated_at
    assert second.availability is first.availability is False
    assert second.current_trip == first.current_trip
    assert second.current_trip.trip_id == trip_id


@pytest.mark.asyncio
async def test_set_location_keeps_availability(updater, make_driver):
    driver_id = await make_driver(available=False)
    await updater.set_availability(driver_id, True)

    driver = await updater.set_location(driver_id, {"latitude": 12.90, "longitude": 77.50})

    assert driver.availability is True


@pytest.mark.asyncio
@pytest.mark.parametrize("location", [
    {"latitude": 91, "longitude": 77.5},
    {"latitude": 12.9, "longitude": -181},
    {"latitude": 12.9},
    {},
])
async def test_set_location_rejects_bad_coordinates(drivers, updater, location):
    driver_id = await drivers.create(DRIVER_PROFILE)

    with pytest.raises(ValidationError):
        await updater.set_location(driver_id, location)

    assert (await drivers.require(driver_id)).location is None


@pytest.mark.asyncio
async def test_set_location_missing_driver(updater):
    with pytest.raises(NotFoundError):
        await updater.set_location("ghost", {"latitude": 12.9, "longitude": 77.5})


@pytest.mark.asyncio
async def test_toggle_availability(updater, make_driver):
    driver_id = await make_driver(available=False)

    driver = await updater.set_availability(driver_id, True)
    assert driver.availability is True

    driver = await updater.set_availability(driver_id, False)
    assert driver.availability is False
    assert driver.current_trip is None


@pytest.mark.asyncio
async def test_bound_driver_cannot_become_available(updater, coordinator, make_driver, make_trip):
    driver_id = await make_driver()
    trip_id = await make_trip()
    await coordinator.assign_driver(trip_id, [driver_id])

    with pytest.raises(ConflictError) as exc_info:
        await updater.set_availability(driver_id, True)

    assert exc_info.value.details["retryable"] is True
    assert exc_info.value.details["trip_id"] == trip_id


@pytest.mark.asyncio
async def test_bound_driver_going_unavailable_is_noop(updater, coordinator, make_driver, make_trip):
    driver_id = await make_driver()
    trip_id = await make_trip()
    await coordinator.assign_driver(trip_id, [driver_id])

    driver = await updater.set_availability(driver_id, False)

    assert driver.availability is False
    assert driver.current_trip.trip_id == trip_id


@pytest.mark.asyncio
async def test_availability_loses_race_to_reservation(updater, drivers, coordinator, make_driver, make_trip, mocker):
    """A reservation landing between the updater's read and write wins."""
    driver_id = await make_driver()
    stale = (await drivers.require(driver_id)).model_copy(update={"availability": False})

    trip_id = await make_trip()
    await coordinator.assign_driver(trip_id, [driver_id])

    mocker.patch.object(drivers, "require", return_value=stale)

    with pytest.raises(ConflictError):
        await updater.set_availability(driver_id, True)

    mocker.stopall()
    driver = await drivers.require(driver_id)
    assert driver.availability is False
    assert driver.current_trip.trip_id == trip_id


@pytest.mark.asyncio
async def test_set_availability_validates_input(updater, make_driver):
    driver_id = await make_driver(available=False)

    with pytest.raises(ValidationError):
        await updater.set_availability(driver_id, "yes")


@pytest.mark.asyncio
async def test_set_availability_missing_driver(updater):
    with pytest.raises(NotFoundError):
        await updater.set_availability("ghost", True)
