"""
Payment ledger finalize.

Binds a provider transaction to an order, moves a pending order to paid and
records the ledger row, in one database transaction. An order already bound
to a different transaction is rejected before any row is written. The unique
(provider, transaction id) constraint on payment_transactions is the
idempotency boundary: a replayed transaction is rolled back and reported as a
duplicate.
"""
from dataclasses import dataclass

import structlog
from sqlalchemy import case, func, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from fulfillment.core.errors import OrderNotFound, DownstreamServiceError
from fulfillment.db.models import Order, OrderStatus, PaymentTransaction, now_utc

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class LedgerResult:
    order_id: str
    provider_transaction_id: str
    duplicate: bool = False


def finalize_order_payment(db: Session, order_id: str, provider_transaction_id: str, payment_provider: str) -> LedgerResult:
    now = now_utc()
    bind = (
        update(Order)
        .where(Order.id == order_id)
        .where(or_(Order.provider_transaction_id.is_(None),
                   Order.provider_transaction_id == provider_transaction_id))
        .values(
            status=case((Order.status == OrderStatus.PENDING.value, OrderStatus.PAID.value),
                        else_=Order.status),
            provider_transaction_id=provider_transaction_id,
            payment_provider=payment_provider,
            paid_at=func.coalesce(Order.paid_at, now),
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    try:
        order = db.get(Order, order_id)
        if order is None:
            raise OrderNotFound(order_id)

        # one order, one transaction: a second provider id never gets a ledger row
        if db.execute(bind).rowcount == 0:
            db.rollback()
            log.warning("ledger_transaction_conflict", order_id=order_id,
                        transaction_id=provider_transaction_id, provider=payment_provider)
            raise DownstreamServiceError(
                f"Order {order_id} is already bound to another provider transaction"
            )

        db.add(PaymentTransaction(
            order_id=order.id,
            store_id=order.store_id,
            payment_provider=payment_provider,
            provider_transaction_id=provider_transaction_id,
            amount=order.total,
            currency=order.currency,
        ))
        db.commit()
    except IntegrityError:
        db.rollback()
        log.info("ledger_duplicate_transaction", order_id=order_id,
                 transaction_id=provider_transaction_id, provider=payment_provider)
        return LedgerResult(order_id, provider_transaction_id, duplicate=True)
    except SQLAlchemyError as e:
        db.rollback()
        raise DownstreamServiceError(f"Ledger finalize failed: {e}") from e

    log.info("ledger_finalized", order_id=order_id,
             transaction_id=provider_transaction_id, provider=payment_provider)
    return LedgerResult(order_id, provider_transaction_id)
