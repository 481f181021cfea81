"""
Resend Email Client
===================

Thin wrapper around the Resend Python SDK used by the email service.

WHAT: One send per recipient with campaign/subscriber tags; the email
      service personalizes content and paces the batches
WHY: Keeps the SDK's module-level configuration and response shapes out of
     the service layer, and turns provider failures into
     ExternalServiceError so bulk sends can collect them per recipient.

Tags:
    Every campaign email carries `campaign_id` and `subscriber_id` tags.
    Resend echoes them back in webhook payloads, which is how opens and
    clicks are attributed to a delivery record.

Dev mode:
    Without an API key nothing is sent; the call is logged and returns
    no message id.

References:
- Resend Python SDK: https://resend.com/docs/api-reference/emails/send-email
"""

import logging
import re
from typing import Dict, List, Optional

import resend

from ..errors import ExternalServiceError
from ..utils.text import strip_html

logger = logging.getLogger(__name__)


PROVIDER = "Resend"


def build_tags(**values) -> List[Dict[str, str]]:
    """Resend tag list; tag values may only hold ASCII letters, digits, '_' and '-'."""
    tags = []
    for name, value in values.items():
        if value is None:
            continue
        tags.append({"name": name, "value": re.sub(r"[^A-Za-z0-9_-]", "_", str(value))})
    return tags


class ResendClient:
    def __init__(self, api_key: Optional[str] = None, from_email: str = "newsletter@example.com"):
        self.api_key = api_key
        self.from_email = from_email
        if api_key:
            resend.api_key = api_key

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def send_email(
        self,
        to: str,
        subject: str,
        html: str,
        text: Optional[str] = None,
        tags: Optional[List[Dict[str, str]]] = None,
    ) -> Optional[str]:
        """Send one email and return the provider message id."""
        if not self.configured:
            logger.warning("[EMAIL] Resend not configured, would send: %s", subject)
            return None

        params = {
            "from": self.from_email,
            "to": [to],
            "subject": subject,
            "html": html,
            "text": text or strip_html(html),
        }
        if tags:
            params["tags"] = tags

        try:
            response = resend.Emails.send(params)
        except Exception as e:
            logger.error("[EMAIL] Resend send failed: %s", e, exc_info=True)
            raise ExternalServiceError(PROVIDER, str(e))

        return response.get("id") if isinstance(response, dict) else getattr(response, "id", None)

