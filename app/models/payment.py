"""Payment model definitions."""
import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, Enum as SqlEnum, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class PaymentStatus(str, enum.Enum):
    """Possible statuses for a subscription payment."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Payment(Base):
    """Ledger entry for a subscription purchase."""

    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_payment_non_negative_amount"),
        CheckConstraint("subscription_days > 0", name="ck_payment_positive_days"),
        Index("ix_payments_user_created", "user_id", "created_at"),
        Index("ix_payments_status", "status"),
    )

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="BRL")
    status: Mapped[PaymentStatus] = mapped_column(
        SqlEnum(PaymentStatus, values_callable=lambda enum_cls: [member.value for member in enum_cls]),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    gateway: Mapped[str] = mapped_column(String(50), nullable=False)
    gateway_order_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    # Idempotency key for reconciliation; unique across every gateway.
    gateway_payment_id: Mapped[str | None] = mapped_column(String(128), nullable=True, unique=True)
    subscription_days: Mapped[int] = mapped_column(Integer, nullable=False)
    applied_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    metadata_raw: Mapped[str | None] = mapped_column(Text, nullable=True)

    user = relationship("User", back_populates="payments")
