"""
Car soft-lock tests.

Validates acquire/refresh/release semantics and the HTTP mapping.
"""

import pytest
from datetime import datetime, timedelta

from backend.app.core.exceptions import (
    InsufficientPermissionsError,
    LockConflictError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from backend.app.services import car_locking
from backend.app.services.car_locking import (
    acquire_car_lock, release_car_lock, get_car_lock_status
)

NOW = datetime(2026, 7, 1, 9, 0)
SESSION_A = "session-aaaa-0001"
SESSION_B = "session-bbbb-0002"


@pytest.mark.asyncio
async def test_acquire_sets_five_minute_lock(db_session, car_id):
    grant = await acquire_car_lock(db_session, car_id, SESSION_A, now=NOW)
    
    assert grant.locked_until == NOW + timedelta(minutes=5)
    status = await get_car_lock_status(db_session, car_id, SESSION_A, now=NOW)
    assert status.locked is True
    assert status.locked_by_other is False


@pytest.mark.asyncio
async def test_same_session_refreshes_lock(db_session, car_id):
    await acquire_car_lock(db_session, car_id, SESSION_A, now=NOW)
    grant = await acquire_car_lock(db_session, car_id, SESSION_A, now=NOW + timedelta(minutes=4))
    
    assert grant.locked_until == NOW + timedelta(minutes=9)


@pytest.mark.asyncio
async def test_other_session_gets_conflict_with_remaining_minutes(db_session, car_id):
    await acquire_car_lock(db_session, car_id, SESSION_A, now=NOW)
    
    with pytest.raises(LockConflictError) as exc_info:
        await acquire_car_lock(db_session, car_id, SESSION_B, now=NOW + timedelta(minutes=2))
    
    assert exc_info.value.details["remaining_minutes"] == 3
    status = await get_car_lock_status(db_session, car_id, SESSION_B, now=NOW + timedelta(minutes=2))
    assert status.locked_by_other is True


@pytest.mark.asyncio
async def test_conflict_reports_at_least_one_minute(db_session, car_id):
    await acquire_car_lock(db_session, car_id, SESSION_A, now=NOW)
    
    with pytest.raises(LockConflictError) as exc_info:
        await acquire_car_lock(db_session, car_id, SESSION_B, now=NOW + timedelta(minutes=4, seconds=59))
    
    assert exc_info.value.details["remaining_minutes"] == 1


@pytest.mark.asyncio
async def test_conflict_is_decided_by_one_claim_attempt(db_session, car_id, mocker):
    await acquire_car_lock(db_session, car_id, SESSION_A, now=NOW)
    claim = mocker.spy(car_locking, "_claim_statement")
    
    with pytest.raises(LockConflictError):
        await acquire_car_lock(db_session, car_id, SESSION_B, now=NOW + timedelta(minutes=1))
    
    assert claim.call_count == 1


@pytest.mark.asyncio
async def test_expired_lock_can_be_taken_over(db_session, car_id):
    await acquire_car_lock(db_session, car_id, SESSION_A, now=NOW)
    
    grant = await acquire_car_lock(db_session, car_id, SESSION_B, now=NOW + timedelta(minutes=5))
    
    assert grant.session_id == SESSION_B
    status = await get_car_lock_status(db_session, car_id, SESSION_A, now=NOW + timedelta(minutes=6))
    assert status.locked_by_other is True


@pytest.mark.asyncio
async def test_release_is_idempotent(db_session, car_id):
    await acquire_car_lock(db_session, car_id, SESSION_A, now=NOW)
    
    assert await release_car_lock(db_session, car_id, SESSION_A, now=NOW) is True
    assert await release_car_lock(db_session, car_id, SESSION_A, now=NOW) is False
    
    status = await get_car_lock_status(db_session, car_id, SESSION_B, now=NOW)
    assert status.locked is False
    
    # Someone else can lock right away
    grant = await acquire_car_lock(db_session, car_id, SESSION_B, now=NOW)
    assert grant.session_id == SESSION_B


@pytest.mark.asyncio
async def test_release_of_live_foreign_lock_is_forbidden(db_session, car_id):
    await acquire_car_lock(db_session, car_id, SESSION_A, now=NOW)
    
    with pytest.raises(InsufficientPermissionsError):
        await release_car_lock(db_session, car_id, SESSION_B, now=NOW + timedelta(minutes=1))
    
    # Once expired there is nothing to protect
    assert await release_car_lock(db_session, car_id, SESSION_B, now=NOW + timedelta(minutes=10)) is False


@pytest.mark.asyncio
async def test_short_session_id_rejected(db_session, car_id):
    with pytest.raises(ValidationFailedError):
        await acquire_car_lock(db_session, car_id, "short", now=NOW)


@pytest.mark.asyncio
async def test_unknown_car(db_session):
    with pytest.raises(ResourceNotFoundError):
        await acquire_car_lock(db_session, 999, SESSION_A, now=NOW)
    with pytest.raises(ResourceNotFoundError):
        await get_car_lock_status(db_session, 999, SESSION_A, now=NOW)


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_lock_endpoints_flow(client, car_id):
    response = await client.post(f"/v1/cars/{car_id}/lock", json={"session_id": SESSION_A})
    assert response.status_code == 200
    assert response.json()["locked"] is True
    
    response = await client.post(f"/v1/cars/{car_id}/lock", json={"session_id": SESSION_B})
    assert response.status_code == 409
    body = response.json()
    assert body["error_code"] == "ERR_LOCK_001"
    assert body["details"]["remaining_minutes"] >= 1
    
    response = await client.get(f"/v1/cars/{car_id}/lock", params={"session_id": SESSION_B})
    assert response.status_code == 200
    assert response.json()["locked_by_other"] is True
    
    response = await client.delete(f"/v1/cars/{car_id}/lock", params={"session_id": SESSION_A})
    assert response.status_code == 200
    assert response.json()["unlocked"] is True
    
    # Double release succeeds silently
    response = await client.delete(f"/v1/cars/{car_id}/lock", params={"session_id": SESSION_A})
    assert response.status_code == 200
    
    response = await client.post(f"/v1/cars/{car_id}/lock", json={"session_id": SESSION_B})
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_lock_endpoint_validation_and_not_found(client, car_id):
    response = await client.post(f"/v1/cars/{car_id}/lock", json={"session_id": "abc"})
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_VALIDATION_001"
    
    response = await client.post("/v1/cars/999/lock", json={"session_id": SESSION_A})
    assert response.status_code == 404
    assert response.json()["error_code"] == "ERR_NOT_FOUND_001"
