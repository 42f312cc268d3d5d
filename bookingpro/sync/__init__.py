from bookingpro.sync.gateway import OutboundSyncGateway, WebhookClient
from bookingpro.sync.payloads import build_booking_payload, build_lead_payload, clean_payload

__all__ = [
    "OutboundSyncGateway",
    "WebhookClient",
    "build_booking_payload",
    "build_lead_payload",
    "clean_payload",
]
