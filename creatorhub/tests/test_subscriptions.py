"""Subscription plan, checkout and lifecycle tests.

Polar is replaced by the `polar_client` mock from conftest; subscriptions
are activated through the same event handler the webhook endpoint uses.
"""

import asyncio
from datetime import datetime

import pytest

from creatorhub.errors import AuthorizationError, ConflictError, InvalidStateError, ValidationError
from creatorhub.models import SubscriptionStatusEnum
from creatorhub.services.subscription_service import SubscriptionService, map_provider_status

PLAN = {
    "name": "Supporter",
    "description": "All premium articles",
    "price": 500,
    "features": ["Premium articles", "Monthly Q&A"],
}


@pytest.fixture
def service(test_db_session, polar_client):
    return SubscriptionService(test_db_session, polar=polar_client)


@pytest.fixture
def plan(service, creator):
    return asyncio.run(service.create_plan(creator.id, **PLAN)).plan


def _activate(service, checkout_id="chk_123", polar_subscription_id="sub_polar_1"):
    return service.handle_polar_event(
        "checkout.updated",
        {"id": checkout_id, "status": "succeeded", "subscription_id": polar_subscription_id},
    )


MID_PERIOD = datetime(2025, 3, 15)


def _sync_period(service, polar_subscription_id="sub_polar_1"):
    return service.handle_polar_event(
        "subscription.updated",
        {
            "id": polar_subscription_id,
            "status": "active",
            "current_period_start": "2025-03-01T00:00:00Z",
            "current_period_end": "2025-04-01T00:00:00Z",
        },
    )


class TestPlans:
    def test_plan_is_mirrored_to_polar(self, service, creator, polar_client):
        created = asyncio.run(service.create_plan(creator.id, **PLAN))

        assert created.plan.polar_product_id == "prod_123"
        assert created.subscriber_count == 0
        polar_client.create_product.assert_awaited_once_with("Supporter", "All premium articles", 500, "USD")

    def test_unconfigured_polar_skips_product(self, test_db_session, creator, polar_client):
        polar_client.configured = False
        service = SubscriptionService(test_db_session, polar=polar_client)

        created = asyncio.run(service.create_plan(creator.id, **PLAN))

        assert created.plan.polar_product_id is None
        polar_client.create_product.assert_not_awaited()

    @pytest.mark.parametrize(
        "override, field",
        [
            ({"price": 0}, "price"),
            ({"name": ""}, "name"),
            ({"features": []}, "features"),
            ({"currency": "XYZ"}, "currency"),
        ],
    )
    def test_plan_validation(self, service, creator, override, field):
        with pytest.raises(ValidationError) as exc:
            asyncio.run(service.create_plan(creator.id, **{**PLAN, **override}))
        assert exc.value.field == field

    def test_only_owner_updates(self, service, plan, other_creator):
        with pytest.raises(AuthorizationError):
            asyncio.run(service.update_plan(plan.id, other_creator.id, name="Mine"))

    def test_deactivate_archives_product(self, service, plan, creator, polar_client):
        result = asyncio.run(service.deactivate_plan(plan.id, creator.id))

        assert result.plan.is_active is False
        polar_client.archive_product.assert_awaited_once_with("prod_123")
        assert service.list_plans(creator.id) == []


class TestCheckoutAndLifecycle:
    def test_checkout_creates_incomplete_subscription(self, service, plan, reader):
        session = asyncio.run(service.create_checkout(reader, plan.id))

        assert session.url == "https://checkout.polar.sh/chk_123"
        subscription = service.get_subscription(session.subscription_id, reader.id)
        assert subscription.status == SubscriptionStatusEnum.incomplete
        assert subscription.polar_checkout_id == "chk_123"
        assert service.access_level(reader.id) == "free"

    def test_checkout_success_grants_premium(self, service, plan, reader):
        session = asyncio.run(service.create_checkout(reader, plan.id))

        assert _activate(service) == "activated"

        subscription = service.get_subscription(session.subscription_id, reader.id)
        assert subscription.status == SubscriptionStatusEnum.active
        assert subscription.polar_subscription_id == "sub_polar_1"
        assert service.access_level(reader.id) == "premium"

    def test_second_checkout_while_active(self, service, plan, reader):
        asyncio.run(service.create_checkout(reader, plan.id))
        _activate(service)

        with pytest.raises(ConflictError):
            asyncio.run(service.create_checkout(reader, plan.id))

    def test_plan_without_product_cannot_be_bought(self, test_db_session, creator, reader, polar_client):
        polar_client.configured = False
        service = SubscriptionService(test_db_session, polar=polar_client)
        plan = asyncio.run(service.create_plan(creator.id, **PLAN)).plan

        with pytest.raises(InvalidStateError):
            asyncio.run(service.create_checkout(reader, plan.id))

    def test_cancel_then_reactivate(self, service, plan, reader, polar_client):
        session = asyncio.run(service.create_checkout(reader, plan.id))
        _activate(service)
        _sync_period(service)

        canceled = asyncio.run(service.cancel_subscription(session.subscription_id, reader.id))
        assert canceled.status == SubscriptionStatusEnum.canceled
        assert canceled.cancel_at_period_end is True
        assert canceled.canceled_at is not None
        polar_client.set_cancel_at_period_end.assert_awaited_with("sub_polar_1", True)

        with pytest.raises(InvalidStateError):
            asyncio.run(service.cancel_subscription(session.subscription_id, reader.id))

        reactivated = asyncio.run(
            service.reactivate_subscription(session.subscription_id, reader.id, now=MID_PERIOD)
        )
        assert reactivated.status == SubscriptionStatusEnum.active
        assert reactivated.canceled_at is None
        polar_client.set_cancel_at_period_end.assert_awaited_with("sub_polar_1", False)

    def test_reactivate_requires_canceled(self, service, plan, reader):
        session = asyncio.run(service.create_checkout(reader, plan.id))

        with pytest.raises(InvalidStateError):
            asyncio.run(service.reactivate_subscription(session.subscription_id, reader.id))

    def test_abandoned_checkout_cannot_be_reactivated(self, service, plan, reader, creator, polar_client):
        session = asyncio.run(service.create_checkout(reader, plan.id))
        asyncio.run(service.cancel_subscription(session.subscription_id, reader.id))

        with pytest.raises(InvalidStateError):
            asyncio.run(service.reactivate_subscription(session.subscription_id, reader.id, now=MID_PERIOD))

        subscription = service.get_subscription(session.subscription_id, reader.id)
        assert subscription.status == SubscriptionStatusEnum.canceled
        assert service.has_any_active_subscription(reader.id) is False
        assert service.access_level(reader.id) == "free"
        assert service.stats(creator.id).monthly_revenue == 0
        polar_client.set_cancel_at_period_end.assert_not_awaited()

    def test_reactivate_after_period_end(self, service, plan, reader):
        session = asyncio.run(service.create_checkout(reader, plan.id))
        _activate(service)
        _sync_period(service)
        asyncio.run(service.cancel_subscription(session.subscription_id, reader.id))

        with pytest.raises(InvalidStateError):
            asyncio.run(
                service.reactivate_subscription(session.subscription_id, reader.id, now=datetime(2025, 4, 2))
            )

    def test_revoked_subscription_cannot_be_reactivated(self, service, plan, reader):
        session = asyncio.run(service.create_checkout(reader, plan.id))
        _activate(service)
        _sync_period(service)
        service.handle_polar_event("subscription.revoked", {"id": "sub_polar_1", "status": "canceled"})

        with pytest.raises(InvalidStateError):
            asyncio.run(service.reactivate_subscription(session.subscription_id, reader.id, now=MID_PERIOD))

    def test_other_user_cannot_cancel(self, service, plan, reader, other_creator):
        session = asyncio.run(service.create_checkout(reader, plan.id))

        with pytest.raises(AuthorizationError):
            asyncio.run(service.cancel_subscription(session.subscription_id, other_creator.id))

    def test_stats_count_active_revenue(self, service, plan, reader, creator):
        asyncio.run(service.create_checkout(reader, plan.id))
        _activate(service)

        stats = service.stats(creator.id)

        assert stats.active_subscriptions == 1
        assert stats.monthly_revenue == 500
        assert stats.average_revenue_per_user == 500


class TestPolarEvents:
    @pytest.mark.parametrize(
        "provider_status, expected",
        [
            ("active", SubscriptionStatusEnum.active),
            ("trialing", SubscriptionStatusEnum.active),
            ("past_due", SubscriptionStatusEnum.past_due),
            ("unpaid", SubscriptionStatusEnum.canceled),
            ("incomplete_expired", SubscriptionStatusEnum.incomplete),
            (None, SubscriptionStatusEnum.incomplete),
        ],
    )
    def test_status_mapping(self, provider_status, expected):
        assert map_provider_status(provider_status) is expected

    def test_pending_checkout_is_only_acknowledged(self, service, plan, reader):
        asyncio.run(service.create_checkout(reader, plan.id))
        assert service.handle_polar_event("checkout.updated", {"id": "chk_123", "status": "open"}) == "acknowledged"

    def test_subscription_updated_syncs_period(self, service, plan, reader):
        session = asyncio.run(service.create_checkout(reader, plan.id))
        _activate(service)

        action = service.handle_polar_event(
            "subscription.updated",
            {
                "id": "sub_polar_1",
                "status": "past_due",
                "current_period_start": "2025-03-01T00:00:00Z",
                "current_period_end": "2025-04-01T00:00:00Z",
            },
        )

        assert action == "updated"
        subscription = service.get_subscription(session.subscription_id, reader.id)
        assert subscription.status == SubscriptionStatusEnum.past_due
        assert subscription.current_period_end.month == 4

    def test_revoked_cancels_immediately(self, service, plan, reader):
        session = asyncio.run(service.create_checkout(reader, plan.id))
        _activate(service)

        assert service.handle_polar_event("subscription.revoked", {"id": "sub_polar_1", "status": "active"}) == "canceled"
        assert service.get_subscription(session.subscription_id, reader.id).status == SubscriptionStatusEnum.canceled

    def test_missing_row_is_created_from_metadata(self, service, plan, reader):
        action = service.handle_polar_event(
            "checkout.updated",
            {
                "id": "chk_unknown",
                "status": "confirmed",
                "metadata": {"user_id": str(reader.id), "plan_id": str(plan.id)},
            },
        )

        assert action == "activated"
        assert service.access_level(reader.id) == "premium"

    def test_unknown_subscription_is_ignored(self, service):
        assert service.handle_polar_event("subscription.updated", {"id": "sub_nope", "status": "active"}) == "ignored"


class TestSubscriptionEndpoints:
    def test_plan_and_checkout_flow(self, client, login_as, creator, reader):
        login_as(creator)
        created = client.post("/plans", json=PLAN)
        assert created.status_code == 201
        plan_id = created.json()["id"]

        login_as(reader)
        checkout = client.post("/subscriptions/checkout", json={"plan_id": plan_id})
        assert checkout.status_code == 200
        assert checkout.json()["checkout_id"] == "chk_123"

        assert client.get("/subscriptions/access").json() == {"access_level": "free"}

        listing = client.get("/plans").json()
        assert [item["id"] for item in listing] == [plan_id]

    def test_readers_cannot_create_plans(self, client, login_as, reader):
        login_as(reader)
        assert client.post("/plans", json=PLAN).status_code == 403

    def test_portal_creates_customer_once(self, client, login_as, reader, polar_client, test_db_session):
        login_as(reader)

        first = client.get("/subscriptions/portal")
        second = client.get("/subscriptions/portal")

        assert first.status_code == 200
        assert first.json()["portal_url"] == "https://polar.sh/portal/cus_123"
        assert second.status_code == 200
        polar_client.create_customer.assert_awaited_once()
