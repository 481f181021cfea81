"""Webhook endpoint tests (Polar billing events, Resend delivery events).

NOTE: Polar tests run in dev mode (no secret, signature check skipped);
      Resend signature tests sign payloads with the standardwebhooks library.
"""

import asyncio
import json
from datetime import datetime, timezone

import pytest
from standardwebhooks import Webhook

from creatorhub.models import SubscriberStatusEnum, SubscriptionStatusEnum, WebhookEvent
from creatorhub.services.email_service import EmailService
from creatorhub.services.subscription_service import SubscriptionService
from creatorhub.stores.email_campaigns import EmailStatsStore

RESEND_SECRET = "whsec_MfKQ9r8GKYqrTwjUPD8ILPZIo2LaLaSw"


@pytest.fixture
def pending_checkout(test_db_session, polar_client, creator, reader):
    """Reader with an incomplete subscription from checkout chk_123."""
    service = SubscriptionService(test_db_session, polar=polar_client)
    plan = asyncio.run(
        service.create_plan(creator.id, "Supporter", "All premium articles", 500, ["Premium articles"])
    ).plan
    session = asyncio.run(service.create_checkout(reader, plan.id))
    return service.get_subscription(session.subscription_id, reader.id)


@pytest.fixture
def sent_campaign(test_db_session, resend_client, creator, subscribers):
    service = EmailService(test_db_session, email_client=resend_client, batch_delay_seconds=0)
    campaign = service.create_campaign(creator.id, "Weekly", "News", "<p>Body</p>")
    asyncio.run(service.send_campaign(campaign.id, creator.id))
    return campaign


@pytest.fixture
def signed_resend(app):
    """Enable Resend signature checks and return a signing helper."""
    from creatorhub.deps import Settings, get_settings

    app.dependency_overrides[get_settings] = lambda: Settings(
        POLAR_WEBHOOK_SECRET="",
        RESEND_WEBHOOK_SECRET=RESEND_SECRET,
        EMAIL_BATCH_DELAY_SECONDS=0,
        SENTRY_DSN=None,
    )

    def _sign(body: str, msg_id: str = "msg_2KWPBgLlAfxdpx2AI54pPJ85f4W"):
        now = datetime.now(timezone.utc)
        signature = Webhook(RESEND_SECRET).sign(msg_id, now, body)
        return {
            "svix-id": msg_id,
            "svix-timestamp": str(int(now.timestamp())),
            "svix-signature": signature,
            "content-type": "application/json",
        }

    return _sign


def _checkout_succeeded(checkout_id="chk_123"):
    return {
        "type": "checkout.updated",
        "data": {"id": checkout_id, "status": "succeeded", "subscription_id": "sub_polar_1", "customer_id": "cus_9"},
    }


def _resend_event(event_type, campaign, subscriber, **extra):
    data = {
        "email_id": "em_1",
        "to": [subscriber.email],
        "tags": [
            {"name": "campaign_id", "value": str(campaign.id)},
            {"name": "subscriber_id", "value": str(subscriber.id)},
        ],
    }
    data.update(extra)
    return {"type": event_type, "created_at": "2025-03-01T10:00:00Z", "data": data}


class TestPolarWebhook:
    def test_checkout_success_activates(self, client, pending_checkout, test_db_session):
        response = client.post("/webhooks/polar", json=_checkout_succeeded(), headers={"webhook-id": "wh_1"})

        assert response.status_code == 200
        assert response.json() == {"received": True, "event_type": "checkout.updated", "action": "activated"}
        test_db_session.refresh(pending_checkout)
        assert pending_checkout.status == SubscriptionStatusEnum.active
        assert pending_checkout.polar_subscription_id == "sub_polar_1"
        assert pending_checkout.subscriber.polar_customer_id == "cus_9"

    def test_redelivery_is_skipped(self, client, pending_checkout, test_db_session):
        client.post("/webhooks/polar", json=_checkout_succeeded(), headers={"webhook-id": "wh_1"})

        response = client.post("/webhooks/polar", json=_checkout_succeeded(), headers={"webhook-id": "wh_1"})

        assert response.json()["action"] == "skipped"
        assert test_db_session.query(WebhookEvent).count() == 1

    def test_unknown_event_is_ignored(self, client):
        response = client.post("/webhooks/polar", json={"type": "benefit.created", "data": {"id": "b_1"}})

        assert response.status_code == 200
        assert response.json()["action"] == "ignored"

    def test_processing_error_is_recorded_not_retried(self, client, test_db_session, monkeypatch):
        def explode(self, event_type, data):
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(SubscriptionService, "handle_polar_event", explode)

        response = client.post("/webhooks/polar", json=_checkout_succeeded(), headers={"webhook-id": "wh_err"})

        assert response.status_code == 200
        assert response.json()["action"] == "error"
        event = test_db_session.query(WebhookEvent).one()
        assert event.event_key == "polar:wh_err"
        assert event.processing_result.startswith("error:")

    def test_invalid_json(self, client):
        response = client.post(
            "/webhooks/polar", content=b"{not json", headers={"content-type": "application/json"}
        )
        assert response.status_code == 400


class TestResendWebhook:
    def test_open_event_updates_stats(self, client, sent_campaign, subscribers, test_db_session):
        ann = subscribers[0]

        response = client.post("/webhooks/resend", json=_resend_event("email.opened", sent_campaign, ann))

        assert response.json()["action"] == "opened"
        stat = EmailStatsStore(test_db_session).get(sent_campaign.id, ann.id)
        assert stat.opened_at == datetime(2025, 3, 1, 10, 0)

    def test_repeat_open_is_duplicate(self, client, sent_campaign, subscribers):
        ann = subscribers[0]
        client.post("/webhooks/resend", json=_resend_event("email.opened", sent_campaign, ann, email_id="em_1"))

        again = client.post(
            "/webhooks/resend", json=_resend_event("email.opened", sent_campaign, ann, email_id="em_2")
        )

        assert again.json()["action"] == "duplicate"

    def test_bounce_marks_subscriber(self, client, sent_campaign, subscribers, test_db_session):
        bob = subscribers[1]

        response = client.post("/webhooks/resend", json=_resend_event("email.bounced", sent_campaign, bob))

        assert response.json()["action"] == "bounced"
        test_db_session.refresh(bob)
        assert bob.status == SubscriberStatusEnum.bounced

    def test_valid_signature_accepted(self, client, signed_resend, sent_campaign, subscribers):
        body = json.dumps(_resend_event("email.clicked", sent_campaign, subscribers[0]))

        response = client.post("/webhooks/resend", content=body, headers=signed_resend(body))

        assert response.status_code == 200
        assert response.json()["action"] == "clicked"

    def test_bad_signature_rejected(self, client, signed_resend, sent_campaign, subscribers):
        body = json.dumps(_resend_event("email.opened", sent_campaign, subscribers[0]))
        headers = signed_resend(body)
        headers["svix-signature"] = "v1,bm90IGEgcmVhbCBzaWduYXR1cmU="

        response = client.post("/webhooks/resend", content=body, headers=headers)

        assert response.status_code == 401

    def test_signed_but_invalid_json(self, client, signed_resend):
        body = "[not json"
        response = client.post("/webhooks/resend", content=body, headers=signed_resend(body))
        assert response.status_code == 400
