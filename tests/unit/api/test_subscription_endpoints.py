"""Unit tests for the school, plan catalog and system admin endpoints."""

import uuid
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from schoolbilling import schemas
from schoolbilling.api import deps
from schoolbilling.api.auth import get_requester
from schoolbilling.billing.repository import SubscriptionRepository
from schoolbilling.billing.resolver import CurrentSubscriptionResolver
from schoolbilling.core.datetime_utils import utc_now_naive
from schoolbilling.schemas import SubscriptionStatus


def _as(test_app, requester):
    test_app.dependency_overrides[get_requester] = lambda: requester


def _admin_of(school_id):
    return schemas.Requester(
        id="user-7", role="admin", school_id=school_id, email="a@b.edu", auth_method="jwt"
    )


async def _subscription(db_session, school, plan, status, ref, days_ago=5, end_date=None):
    start = utc_now_naive() - timedelta(days=days_ago)
    return await SubscriptionRepository(db_session).create(
        schemas.SchoolSubscriptionCreate(
            school_id=school.id,
            plan_id=plan.id,
            status=status,
            current_period_start=start,
            next_billing_date=start + timedelta(days=30),
            end_date=end_date,
            external_gateway_ref=ref,
        )
    )


# Subscribe


@pytest.mark.unit
def test_subscribe_returns_checkout_session(client, test_app):
    school_id = uuid.uuid4()
    plan_id = uuid.uuid4()
    initiator = AsyncMock()
    initiator.start_checkout = AsyncMock(
        return_value=schemas.CheckoutSessionResponse(
            session_id="cs_1", checkout_url="https://checkout.stripe.com/c/pay/cs_1"
        )
    )
    test_app.dependency_overrides[deps.get_checkout_initiator] = lambda: initiator
    _as(test_app, _admin_of(school_id))

    response = client.post(
        f"/schools/{school_id}/subscriptions/subscribe", json={"plan_id": str(plan_id)}
    )

    assert response.status_code == 200
    assert response.json() == {
        "session_id": "cs_1",
        "checkout_url": "https://checkout.stripe.com/c/pay/cs_1",
    }
    called_school, called_plan, requester = initiator.start_checkout.await_args.args
    assert (called_school, called_plan, requester.id) == (school_id, plan_id, "user-7")


@pytest.mark.unit
def test_subscribe_with_malformed_body(client, test_app):
    test_app.dependency_overrides[deps.get_checkout_initiator] = lambda: AsyncMock()

    response = client.post(
        f"/schools/{uuid.uuid4()}/subscriptions/subscribe", json={"plan_id": "basic"}
    )

    assert response.status_code == 422
    assert "errors" in response.json()


@pytest.mark.unit
def test_subscribe_for_another_school_is_forbidden(client, test_app):
    test_app.dependency_overrides[deps.get_checkout_initiator] = lambda: AsyncMock()
    _as(test_app, _admin_of(uuid.uuid4()))

    response = client.post(
        f"/schools/{uuid.uuid4()}/subscriptions/subscribe", json={"plan_id": str(uuid.uuid4())}
    )

    assert response.status_code == 403


@pytest.mark.unit
def test_subscribe_as_teacher_is_forbidden(client, test_app):
    school_id = uuid.uuid4()
    test_app.dependency_overrides[deps.get_checkout_initiator] = lambda: AsyncMock()
    _as(
        test_app,
        schemas.Requester(id="user-9", role="teacher", school_id=school_id, auth_method="jwt"),
    )

    response = client.post(
        f"/schools/{school_id}/subscriptions/subscribe", json={"plan_id": str(uuid.uuid4())}
    )

    assert response.status_code == 403


@pytest.mark.unit
def test_unauthenticated_request_is_rejected(client, test_app):
    _as(test_app, None)

    response = client.get(f"/schools/{uuid.uuid4()}/subscriptions/current")

    assert response.status_code == 401


# Current subscription


@pytest.mark.unit
@pytest.mark.asyncio
async def test_current_subscription(async_client, test_app, db_session, school, monthly_plan):
    await _subscription(db_session, school, monthly_plan, SubscriptionStatus.ACTIVE, "sub_1")
    test_app.dependency_overrides[deps.get_resolver] = lambda: CurrentSubscriptionResolver(
        SubscriptionRepository(db_session)
    )
    _as(test_app, _admin_of(school.id))

    response = await async_client.get(f"/schools/{school.id}/subscriptions/current")

    assert response.status_code == 200
    body = response.json()
    assert body["subscription"]["status"] == "ACTIVE"
    assert body["subscription"]["external_gateway_ref"] == "sub_1"
    assert body["plan"]["name"] == "Basic"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_current_subscription_not_found(
    async_client, test_app, db_session, school, monthly_plan
):
    await _subscription(
        db_session, school, monthly_plan, SubscriptionStatus.PAST_DUE, "sub_1"
    )
    test_app.dependency_overrides[deps.get_resolver] = lambda: CurrentSubscriptionResolver(
        SubscriptionRepository(db_session)
    )

    response = await async_client.get(f"/schools/{school.id}/subscriptions/current")

    assert response.status_code == 404
    assert response.json() == {
        "detail": "No active or trialing subscription found for this school."
    }


# Plan catalog


@pytest.mark.unit
@pytest.mark.asyncio
async def test_plan_catalog_hides_inactive_plans_from_school_admins(
    async_client, test_app, db_session, school, monthly_plan, yearly_plan, retired_plan
):
    test_app.dependency_overrides[deps.get_db] = lambda: db_session
    _as(test_app, _admin_of(school.id))

    response = await async_client.get("/subscription-plans")

    assert response.status_code == 200
    assert [plan["name"] for plan in response.json()] == ["Basic", "Premium"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_plan_catalog_for_system_admin_includes_inactive_plans(
    async_client, test_app, db_session, monthly_plan, retired_plan
):
    test_app.dependency_overrides[deps.get_db] = lambda: db_session

    response = await async_client.get("/subscription-plans")

    assert [plan["name"] for plan in response.json()] == ["Legacy", "Basic"]


# System admin


@pytest.mark.unit
@pytest.mark.asyncio
async def test_system_admin_lists_subscriptions_with_plans(
    async_client, test_app, db_session, school, monthly_plan, yearly_plan
):
    await _subscription(
        db_session,
        school,
        monthly_plan,
        SubscriptionStatus.CANCELED,
        "sub_1",
        days_ago=40,
        end_date=utc_now_naive() - timedelta(days=5),
    )
    await _subscription(db_session, school, yearly_plan, SubscriptionStatus.ACTIVE, "sub_2")
    test_app.dependency_overrides[deps.get_repository] = lambda: SubscriptionRepository(db_session)

    response = await async_client.get(
        "/system-admin/school-subscriptions", params={"school_id": str(school.id), "limit": 1}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["pagination"] == {"page": 1, "limit": 1, "total_count": 2, "total_pages": 2}
    assert [row["external_gateway_ref"] for row in body["data"]] == ["sub_2"]
    assert body["data"][0]["plan"]["name"] == "Premium"

    response = await async_client.get(
        "/system-admin/school-subscriptions", params={"status": "CANCELED"}
    )
    assert [row["external_gateway_ref"] for row in response.json()["data"]] == ["sub_1"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_system_admin_gets_one_subscription(
    async_client, test_app, db_session, school, monthly_plan
):
    created = await _subscription(
        db_session, school, monthly_plan, SubscriptionStatus.ACTIVE, "sub_1"
    )
    test_app.dependency_overrides[deps.get_repository] = lambda: SubscriptionRepository(db_session)

    response = await async_client.get(f"/system-admin/school-subscriptions/{created.id}")
    assert response.status_code == 200
    assert response.json()["plan"]["id"] == str(monthly_plan.id)

    response = await async_client.get(f"/system-admin/school-subscriptions/{uuid.uuid4()}")
    assert response.status_code == 404
    assert response.json() == {"detail": "School subscription not found"}


@pytest.mark.unit
def test_system_admin_endpoints_reject_school_admins(client, test_app):
    test_app.dependency_overrides[deps.get_repository] = lambda: AsyncMock()
    _as(test_app, _admin_of(uuid.uuid4()))

    response = client.get("/system-admin/school-subscriptions")

    assert response.status_code == 403
