from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


WebhookMode = Literal["production", "test"]


class FeedItem(BaseModel):
    title: str = ""
    link: str
    published_at: datetime | None = None
    pub_date: str | None = None


class RetryItem(BaseModel):
    id: str
    link: str
    title: str | None = None


class CheckRssRequest(BaseModel):
    """Body of POST /check-rss. Every field is optional; camelCase on the wire."""

    model_config = ConfigDict(populate_by_name=True)

    webhook_mode: WebhookMode = Field("production", alias="webhookMode")
    sources: list[str] | None = None
    retry_item: RetryItem | None = Field(None, alias="retryItem")
    teams_enabled: bool = Field(False, alias="teamsEnabled")
    teams_mode: WebhookMode = Field("production", alias="teamsMode")


class PasswordRequest(BaseModel):
    password: str = ""


class TokenRequest(BaseModel):
    token: str | None = None


class DeleteNewsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    delete_all: bool = Field(False, alias="deleteAll")
    item_id: str | None = Field(None, alias="itemId")
