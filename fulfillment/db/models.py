
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, Boolean, DateTime, ForeignKey, Numeric, JSON, UniqueConstraint
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
import uuid
from fulfillment.db.session import Base

def now_utc() -> datetime: return datetime.now(timezone.utc)

def new_id() -> str: return str(uuid.uuid4())

class OrderStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

class WebhookStatus(str, Enum):
    RECEIVED = "received"
    PROCESSED = "processed"
    ERROR = "error"

class Store(Base):
    __tablename__ = "stores"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    user_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)
    settings: Mapped[dict] = mapped_column(JSON, default=dict)
    orders = relationship("Order", back_populates="store")

    @property
    def whatsapp_number(self) -> Optional[str]:
        return (self.settings or {}).get("whatsapp_number") or None

class Order(Base):
    __tablename__ = "orders"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    store_id: Mapped[str] = mapped_column(ForeignKey("stores.id"), index=True)
    status: Mapped[str] = mapped_column(String(32), default=OrderStatus.PENDING.value)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    currency: Mapped[str] = mapped_column(String(3), default="XOF")
    has_digital: Mapped[bool] = mapped_column(Boolean, default=False)
    # snapshot captured at checkout: {"name", "email", "phone"}
    customer: Mapped[dict] = mapped_column(JSON, default=dict)
    payment_provider: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    provider_transaction_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)

    store = relationship("Store", back_populates="orders")

class PaymentTransaction(Base):
    """Ledger row: one per provider transaction."""
    __tablename__ = "payment_transactions"
    __table_args__ = (
        UniqueConstraint("payment_provider", "provider_transaction_id", name="uq_payment_transactions_provider_tx"),
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[str] = mapped_column(ForeignKey("orders.id"), index=True)
    store_id: Mapped[str] = mapped_column(String(36), index=True)
    payment_provider: Mapped[str] = mapped_column(String(64))
    provider_transaction_id: Mapped[str] = mapped_column(String(255))
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    currency: Mapped[str] = mapped_column(String(3))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)

class WebhookLog(Base):
    __tablename__ = "webhook_logs"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    provider: Mapped[str] = mapped_column(String(64))
    payload: Mapped[dict] = mapped_column(JSON)
    status: Mapped[str] = mapped_column(String(16), default=WebhookStatus.RECEIVED.value, index=True)
    # normalized at insert time so later lookups never re-parse the payload;
    # unbounded because both come straight from the provider
    transaction_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True, index=True)
    payment_status: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    related_order_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)

class Account(Base):
    __tablename__ = "accounts"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), default="")
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(32), default="customer")
    created_from_order: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)

class Notification(Base):
    __tablename__ = "notifications"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), index=True)
    title: Mapped[str] = mapped_column(String(255))
    message: Mapped[str] = mapped_column(Text)
    link: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    dedupe_key: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)

class PlatformSettings(Base):
    __tablename__ = "platform_settings"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    whatsapp_sender_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    whatsapp_api_url: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    whatsapp_waba_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    whatsapp_template_customer: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    whatsapp_template_seller: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
