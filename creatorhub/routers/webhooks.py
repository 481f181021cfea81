"""Provider webhook endpoints (Polar billing, Resend email events).

WHAT: Verifies, deduplicates and applies provider events
WHY: Subscription state only changes when Polar says a checkout or
     subscription changed; campaign stats and subscriber status follow
     Resend delivery events.

Flow (both providers):
    1. Verify the signature (skipped with a warning when no secret is set)
    2. Compute an idempotency key; already-processed keys return "skipped"
    3. Apply the event through the owning service
    4. Record the outcome in payment_webhook_events

Processing errors are recorded and answered with 200 (action="error") so
the provider does not retry an event that will fail the same way again.
Signature failures are 401, unparseable bodies 400.

REFERENCES:
    - https://docs.polar.sh/developers/webhooks
    - https://resend.com/docs/dashboard/webhooks/verify-webhooks-requests
    - https://www.standardwebhooks.com/
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from polar_sdk.webhooks import WebhookVerificationError as PolarVerificationError
from polar_sdk.webhooks import validate_event
from sqlalchemy.orm import Session
from standardwebhooks import Webhook, WebhookVerificationError

from .. import schemas
from ..database import get_db
from ..deps import Settings, get_email_service, get_settings, get_subscription_service
from ..models import WebhookEvent
from ..services.email_service import EmailService
from ..services.subscription_service import SubscriptionService
from ..telemetry.sentry import capture_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])

# Resend signs with Svix; the payload format is Standard Webhooks with svix-* header names
RESEND_HEADER_MAP = {
    "webhook-id": "svix-id",
    "webhook-timestamp": "svix-timestamp",
    "webhook-signature": "svix-signature",
}


# =============================================================================
# IDEMPOTENCY LEDGER
# =============================================================================

def _compute_event_key(provider: str, event_type: str, data: dict, delivery_id: Optional[str] = None) -> str:
    """Unique key per event delivery.

    Format: {provider}:{delivery_id} when the provider sends one, else
            {provider}:{event_type}:{data.id}:{created_at or now}
    """
    if delivery_id:
        return f"{provider}:{delivery_id}"
    data_id = data.get("id") or data.get("email_id") or "unknown"
    created_at = data.get("created_at", datetime.now(timezone.utc).isoformat())
    return f"{provider}:{event_type}:{data_id}:{created_at}"


def _is_event_processed(event_key: str, db: Session) -> bool:
    return db.query(WebhookEvent).filter(WebhookEvent.event_key == event_key).first() is not None


def _record_event(
    provider: str,
    event_key: str,
    event_type: str,
    data_id: Optional[str],
    payload: dict,
    result: str,
    db: Session,
):
    db.add(
        WebhookEvent(
            provider=provider,
            event_key=event_key,
            event_type=event_type,
            data_id=data_id,
            payload_json=payload,
            processing_result=result[:500],
        )
    )
    db.commit()


def _parse_body(body: bytes) -> Dict[str, Any]:
    try:
        payload = json.loads(body)
    except ValueError as e:
        logger.warning("[WEBHOOK] Invalid JSON body: %s", e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook payload")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook payload")
    return payload


def _apply(provider: str, event_key: str, event_type: str, data: dict, payload: dict,
           db: Session, handler) -> schemas.WebhookResponse:
    """Dedupe, run `handler()` and record the outcome."""
    if _is_event_processed(event_key, db):
        logger.info("[WEBHOOK] Skipping duplicate %s event: %s", provider, event_key)
        return schemas.WebhookResponse(event_type=event_type, action="skipped")

    data_id = data.get("id") or data.get("email_id")
    try:
        action = handler()
    except Exception as e:
        logger.error("[WEBHOOK] %s %s processing error: %s", provider, event_type, e, exc_info=True)
        capture_exception(e, extra={"provider": provider, "event_type": event_type})
        db.rollback()
        _record_event(provider, event_key, event_type, data_id, payload, f"error: {e}", db)
        return schemas.WebhookResponse(event_type=event_type, action="error")

    _record_event(provider, event_key, event_type, data_id, payload, "success", db)
    logger.info("[WEBHOOK] %s %s -> %s", provider, event_type, action)
    return schemas.WebhookResponse(event_type=event_type, action=action)


# =============================================================================
# POLAR
# =============================================================================

@router.post("/polar", response_model=schemas.WebhookResponse)
async def handle_polar_webhook(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Process Polar checkout, order and subscription events.

    Handled events:
        - checkout.created: informational
        - checkout.updated: succeeded/confirmed checkouts activate the subscription
        - order.paid: activates the subscription for the order
        - subscription.created/updated/active/canceled/revoked: status sync
    """
    body = await request.body()
    # Stored payload and handler input always come from the raw JSON (plain strings)
    raw_payload = _parse_body(body)

    if not settings.POLAR_WEBHOOK_SECRET:
        logger.warning("[WEBHOOK] POLAR_WEBHOOK_SECRET not set - verification disabled (dev mode)")
        event_type = raw_payload.get("type", "unknown")
    else:
        try:
            event = validate_event(body=body, headers=dict(request.headers), secret=settings.POLAR_WEBHOOK_SECRET)
        except PolarVerificationError as e:
            logger.warning("[WEBHOOK] Polar signature verification failed: %s", e)
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook signature")
        except Exception as e:
            logger.error("[WEBHOOK] Failed to validate Polar webhook: %s", e, exc_info=True)
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook payload")

        # Polar SDK v0.28+ uses TYPE as the discriminator
        event_type = getattr(event, "TYPE", None) or getattr(event, "type", None) or raw_payload.get("type", "unknown")

    data = raw_payload.get("data") or {}
    logger.info("[WEBHOOK] Received Polar event: %s", event_type)
    # Polar signs with Standard Webhooks; webhook-id is stable across retries of one delivery
    event_key = _compute_event_key("polar", event_type, data, request.headers.get("webhook-id"))
    return _apply("polar", event_key, event_type, data, raw_payload, db,
                  lambda: service.handle_polar_event(event_type, data))


# =============================================================================
# RESEND
# =============================================================================

@router.post("/resend", response_model=schemas.WebhookResponse)
async def handle_resend_webhook(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    service: EmailService = Depends(get_email_service),
):
    """Process Resend delivery events.

    Handled events:
        - email.delivered / email.opened / email.clicked: campaign stats
        - email.bounced: subscriber marked bounced
        - email.complained: subscriber unsubscribed
        - contact.updated: unsubscribe flag synced
    """
    body = await request.body()
    delivery_id = request.headers.get("svix-id")

    if not settings.RESEND_WEBHOOK_SECRET:
        logger.warning("[WEBHOOK] RESEND_WEBHOOK_SECRET not set - verification disabled (dev mode)")
    else:
        headers = {name: request.headers.get(svix_name, "") for name, svix_name in RESEND_HEADER_MAP.items()}
        try:
            Webhook(settings.RESEND_WEBHOOK_SECRET).verify(data=body, headers=headers)
        except WebhookVerificationError as e:
            logger.warning("[WEBHOOK] Resend signature verification failed: %s", e)
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook signature")

    payload = _parse_body(body)
    event_type = payload.get("type", "unknown")
    data = payload.get("data") or {}
    occurred_at = payload.get("created_at")
    logger.info("[WEBHOOK] Received Resend event: %s", event_type)

    event_key = _compute_event_key("resend", event_type, data, delivery_id)
    return _apply("resend", event_key, event_type, data, payload, db,
                  lambda: service.handle_resend_event(event_type, data, occurred_at))
