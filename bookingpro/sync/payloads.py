"""
Webhook payload builders and Apps Script cleaning rules.

The Google Apps Script endpoint reads flat string parameters, so every
payload is cleaned before sending: keys restricted to ``[A-Za-z0-9_]``,
None becomes "", booleans become "1"/"0", nested values are JSON-encoded,
and control characters are stripped.
"""

import json
import re
from datetime import date, datetime
from typing import Any, Callable, Optional

from bookingpro.schemas.booking_schema import Booking, Company
from bookingpro.schemas.lead_schema import IncompleteLead
from bookingpro.schemas.sync_schema import SyncAction, WebhookPayload
from bookingpro.utils import utcnow

_KEY_PATTERN = re.compile(r"[^a-zA-Z0-9_]")
_CONTROL_CHARS = re.compile(r"[\x00-\x1F\x7F]")

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def _clean_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str, sort_keys=True)
    return _CONTROL_CHARS.sub("", str(value)).strip()


def clean_payload(
    payload: dict[str, Any], clock: Callable[[], datetime] = utcnow
) -> dict[str, str]:
    """Flatten a payload into Apps Script-safe string fields.

    Missing ``timestamp``, ``session_id``, ``action`` and ``lead_status``
    are filled with defaults, since the script keys sheet rows on them.
    """
    cleaned: dict[str, str] = {}
    for key, value in payload.items():
        if key is None or key == "":
            continue
        cleaned[_KEY_PATTERN.sub("_", str(key))] = _clean_value(value)

    now = clock()
    defaults = {
        "timestamp": now.strftime(TIMESTAMP_FORMAT),
        "session_id": f"session_{int(now.timestamp())}",
        "action": SyncAction.INCOMPLETE_LEAD.value,
        "lead_status": "New",
    }
    for key, default in defaults.items():
        if not cleaned.get(key):
            cleaned[key] = default
    return cleaned


def build_booking_payload(booking: Booking, company: Optional[Company] = None) -> dict[str, Any]:
    """Payload for a finished booking row in the sheet."""
    payload = WebhookPayload(
        session_id=booking.session_id or "",
        action=SyncAction.BOOKING_COMPLETE,
        customer_name=booking.customer_name,
        customer_email=booking.customer_email,
        customer_phone=booking.customer_phone,
        service=booking.service_type,
        company=company.name if company else "",
        booking_date=booking.date,
        booking_time=booking.time,
        status=booking.status,
        booking_id=booking.id,
        customer_address=booking.customer_address,
        lead_type="Complete",
        lead_status="Converted",
        created_at=booking.created_at,
    )
    return payload.to_body()


def build_lead_payload(lead: IncompleteLead) -> dict[str, Any]:
    """Payload for an incomplete (abandoned) lead row in the sheet."""
    fields: dict[str, Any] = {
        "session_id": lead.session_id,
        "action": SyncAction.INCOMPLETE_LEAD,
        "customer_name": lead.customer_name,
        "customer_email": lead.customer_email,
        "customer_phone": lead.customer_phone,
        "service": lead.service,
        "company": lead.company,
        "status": lead.status,
        "lead_id": lead.id,
        "lead_type": "Incomplete Lead",
        "lead_status": "In Progress",
        "lead_quality": lead.quality,
        "zip_code": lead.zip_code,
        "form_step": lead.form_step,
        "completion_percentage": lead.completion_percentage,
        "created_at": lead.created_at,
        "last_updated": lead.last_updated,
    }
    # UTM parameters and service-specific answers ride along from extras.
    for key, value in lead.extra.items():
        fields.setdefault(key, value)
    return WebhookPayload(**fields).to_body()
