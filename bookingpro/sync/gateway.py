"""
Outbound sync gateway: push finalized leads and bookings to the sheet webhook.

One call, one HTTP POST. The entity row carries the attempt bookkeeping:

    success            -> sync_status = success (terminal, later calls are no-ops)
    failure, attempts<3 -> sync_attempts += 1, retry scheduled after 120s
    failure, attempts=3 -> sync_status = failed (terminal, logged, not raised)

Each attempt's bookkeeping is a compare-and-set on the attempt counter, so
two overlapping runs for the same entity cannot both count one attempt.
Calls are independent: no batching, no ordering across entities.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Optional

import httpx

from bookingpro.config import SyncConfig
from bookingpro.errors import NotFoundError, RetryCapExceeded, SyncTransportError
from bookingpro.logging_context import get_session_logger, session_scope
from bookingpro.schemas.sync_schema import SyncStatus
from bookingpro.storage.store import TABLE_BOOKINGS, TABLE_LEADS, Row, RowStore
from bookingpro.sync.payloads import clean_payload
from bookingpro.tasks.queue import TaskScheduler
from bookingpro.tasks.schemas import SyncBookingTask, SyncLeadTask, TaskKind
from bookingpro.utils import utcnow

logger = get_session_logger(__name__)

MAX_ERROR_LENGTH = 500


class WebhookClient:
    """Thin httpx wrapper that turns every non-2xx outcome into SyncTransportError."""

    def __init__(self, config: SyncConfig, http_client: Optional[httpx.Client] = None) -> None:
        self._config = config
        self._client = http_client or httpx.Client(
            timeout=config.timeout_seconds,
            follow_redirects=True,
        )

    @property
    def configured(self) -> bool:
        return bool(self._config.enabled and self._config.webhook_url)

    def post(self, body: dict[str, Any]) -> Any:
        """POST ``body`` as JSON. Returns the decoded response body, if any."""
        try:
            response = self._client.post(
                self._config.webhook_url,
                json=body,
                headers={"User-Agent": self._config.user_agent},
                timeout=self._config.timeout_seconds,
            )
        except httpx.HTTPError as exc:
            raise SyncTransportError(f"{type(exc).__name__}: {exc}") from exc

        if not response.is_success:
            raise SyncTransportError(
                f"HTTP {response.status_code}: {response.text[:MAX_ERROR_LENGTH]}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError:
            return response.text

    def close(self) -> None:
        self._client.close()


class OutboundSyncGateway:
    def __init__(
        self,
        store: RowStore,
        webhook: WebhookClient,
        scheduler: TaskScheduler,
        config: SyncConfig,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._webhook = webhook
        self._scheduler = scheduler
        self._config = config
        self._clock = clock

    def sync_lead(self, lead_id: int, payload: dict[str, Any]) -> bool:
        row = self._load(TABLE_LEADS, lead_id)
        retry = SyncLeadTask(lead_id=lead_id, session_id=row["session_id"], payload=payload)
        return self._sync(TABLE_LEADS, row, payload, TaskKind.SYNC_LEAD, retry)

    def sync_booking(self, booking_id: int, payload: dict[str, Any]) -> bool:
        row = self._load(TABLE_BOOKINGS, booking_id)
        retry = SyncBookingTask(booking_id=booking_id, payload=payload)
        return self._sync(TABLE_BOOKINGS, row, payload, TaskKind.SYNC_BOOKING, retry)

    def _load(self, table: str, entity_id: int) -> Row:
        try:
            return self._store.get(table, entity_id)
        except NotFoundError:
            raise NotFoundError(f"Cannot sync unknown {table} row {entity_id}") from None

    def _sync(
        self,
        table: str,
        row: Row,
        payload: dict[str, Any],
        kind: TaskKind,
        retry: Any,
    ) -> bool:
        entity_id = row["id"]
        with session_scope(row.get("session_id") or "NO_SESSION"):
            status = row.get("sync_status", SyncStatus.PENDING.value)
            if status == SyncStatus.SUCCESS.value:
                logger.debug("%s #%d already synced, skipping", table, entity_id)
                return True
            if status == SyncStatus.FAILED.value:
                logger.debug("%s #%d permanently failed, not retrying", table, entity_id)
                return False
            if not self._webhook.configured:
                logger.warning(
                    "Sheets sync disabled or webhook URL missing; %s #%d not sent",
                    table, entity_id,
                )
                return False

            attempts = row.get("sync_attempts", 0)
            body = clean_payload(payload, clock=self._clock)
            logger.info(
                "Syncing %s #%d (attempt %d/%d, action=%s)",
                table, entity_id, attempts + 1, self._config.max_attempts, body.get("action"),
            )
            try:
                self._webhook.post(body)
            except SyncTransportError as exc:
                return self._record_failure(table, entity_id, attempts, exc, kind, retry)

            # The row reached the sheet, so success wins over any attempt a
            # concurrent run recorded meanwhile, as long as it is still pending.
            changed = self._store.update(
                table,
                {"id": entity_id, "sync_status": SyncStatus.PENDING.value},
                {
                    "sync_status": SyncStatus.SUCCESS.value,
                    "sync_attempts": attempts + 1,
                    "last_sync_attempt_at": self._clock(),
                    "last_sync_error": None,
                },
            )
            if not changed:
                logger.warning(
                    "%s #%d delivered but no longer pending; sync state left as is",
                    table, entity_id,
                )
                return True
            logger.info("%s #%d synced to sheets", table, entity_id)
            return True

    def _record_failure(
        self,
        table: str,
        entity_id: int,
        attempts: int,
        error: SyncTransportError,
        kind: TaskKind,
        retry: Any,
    ) -> bool:
        attempts += 1
        exhausted = attempts >= self._config.max_attempts
        patch: Row = {
            "sync_attempts": attempts,
            "last_sync_attempt_at": self._clock(),
            "last_sync_error": str(error)[:MAX_ERROR_LENGTH],
        }
        if exhausted:
            patch["sync_status"] = SyncStatus.FAILED.value

        changed = self._store.update(
            table,
            {"id": entity_id, "sync_attempts": attempts - 1, "sync_status": SyncStatus.PENDING.value},
            patch,
        )
        if not changed:
            logger.debug("%s #%d attempt already recorded elsewhere", table, entity_id)
            return False

        if exhausted:
            logger.error("%s", RetryCapExceeded(table, entity_id, attempts))
            return False

        self._scheduler.schedule_once(self._config.retry_delay_seconds, kind, retry)
        logger.warning(
            "Sync of %s #%d failed (%s); retry %d/%d in %ss",
            table, entity_id, error, attempts + 1, self._config.max_attempts,
            self._config.retry_delay_seconds,
        )
        return False
