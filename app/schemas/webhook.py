"""Schemas for outbound webhook subscribers."""
from datetime import datetime
from typing import Any
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _validate_url(value: str) -> str:
    value = value.strip()
    parts = urlsplit(value)
    if parts.scheme not in {"http", "https"} or not parts.netloc:
        raise ValueError("Invalid URL format")
    return value


def _validate_name(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("name must not be empty")
    return value


def _validate_events(value: list[str]) -> list[str]:
    cleaned: list[str] = []
    for name in value:
        name = name.strip()
        if not name:
            raise ValueError("Event names must not be empty")
        if name not in cleaned:
            cleaned.append(name)
    return cleaned


class WebhookCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    url: str = Field(max_length=2048)
    secret: str | None = Field(default=None, max_length=255)
    events: list[str] | None = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        return _validate_name(value)

    @field_validator("url")
    @classmethod
    def _url_valid(cls, value: str) -> str:
        return _validate_url(value)

    @field_validator("events")
    @classmethod
    def _events_valid(cls, value: list[str] | None) -> list[str] | None:
        return _validate_events(value) if value else value


class WebhookUpdate(BaseModel):
    """Partial update: only fields present in the request body are applied."""

    name: str | None = Field(default=None, min_length=1, max_length=120)
    url: str | None = Field(default=None, max_length=2048)
    secret: str | None = Field(default=None, max_length=255)
    events: list[str] | None = None
    is_active: bool | None = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str | None) -> str | None:
        return _validate_name(value) if value is not None else None

    @field_validator("url")
    @classmethod
    def _url_valid(cls, value: str | None) -> str | None:
        return _validate_url(value) if value is not None else None

    @field_validator("events")
    @classmethod
    def _events_valid(cls, value: list[str] | None) -> list[str] | None:
        return _validate_events(value) if value is not None else None


class WebhookRead(BaseModel):
    id: int
    name: str
    url: str
    has_secret: bool = False
    events: list[str]
    is_active: bool
    last_triggered_at: datetime | None
    total_calls: int
    failed_calls: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_model(cls, subscriber: Any) -> "WebhookRead":
        read = cls.model_validate(subscriber)
        read.has_secret = bool(subscriber.secret)
        return read


class DeliveryOutcomeRead(BaseModel):
    subscriber_id: int
    name: str
    url: str
    delivered: bool
    status_code: int | None = None
    error: str | None = None
    duration_ms: int


class WebhookTestRead(BaseModel):
    success: bool
    message: str
    outcomes: list[DeliveryOutcomeRead]
