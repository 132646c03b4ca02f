"""Webhook audit log: one row per inbound webhook, inserted then amended."""
from typing import Any, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fulfillment.core.errors import DownstreamServiceError
from fulfillment.db.models import WebhookLog, WebhookStatus, now_utc

log = structlog.get_logger(__name__)


def record_received(db: Session, provider: str, payload: Any,
                    transaction_id: Optional[str] = None,
                    payment_status: Optional[str] = None) -> int:
    entry = WebhookLog(
        provider=provider,
        payload=payload,
        status=WebhookStatus.RECEIVED.value,
        transaction_id=transaction_id,
        payment_status=payment_status,
    )
    try:
        db.add(entry)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise DownstreamServiceError(f"Webhook log insert failed: {e}") from e
    return entry.id


def _amend(db: Session, entry_id: int, **values) -> None:
    entry = db.get(WebhookLog, entry_id)
    if entry is None:
        log.error("webhook_log_missing", webhook_log_id=entry_id)
        return
    for k, v in values.items():
        setattr(entry, k, v)
    entry.updated_at = now_utc()
    db.commit()


def mark_processed(db: Session, entry_id: int, order_id: Optional[str]) -> None:
    try:
        _amend(db, entry_id, status=WebhookStatus.PROCESSED.value, related_order_id=order_id)
    except SQLAlchemyError as e:
        db.rollback()
        raise DownstreamServiceError(f"Webhook log update failed: {e}") from e


def mark_error(db: Session, entry_id: int, message: str, order_id: Optional[str] = None) -> None:
    # the session may hold a failed transaction from the step that raised
    db.rollback()
    try:
        _amend(db, entry_id, status=WebhookStatus.ERROR.value,
               error_message=message, related_order_id=order_id)
    except SQLAlchemyError:
        db.rollback()
        log.exception("webhook_log_error_update_failed", webhook_log_id=entry_id)
