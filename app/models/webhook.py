"""Outbound webhook subscriber model."""
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base

DEFAULT_WEBHOOK_EVENTS = ["signal.created"]


class WebhookSubscriber(Base):
    """An external endpoint receiving event deliveries."""

    __tablename__ = "webhook_subscribers"

    name: Mapped[str] = mapped_column(String(120), nullable=False)
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    secret: Mapped[str | None] = mapped_column(String(255), nullable=True)
    events: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=lambda: list(DEFAULT_WEBHOOK_EVENTS))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Delivery statistics, mutated by the dispatcher only.
    last_triggered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    total_calls: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_calls: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def listens_to(self, event_name: str) -> bool:
        return event_name in (self.events or [])
