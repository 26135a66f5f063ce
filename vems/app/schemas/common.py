"""
Shared Pydantic schemas for listings and select boxes.
"""

import re
from pydantic import BaseModel, Field
from typing import Literal, Optional
from vems.app.core.config import settings

Direction = Literal["asc", "desc"]

HHMM_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class PageMeta(BaseModel):
    """Pagination block returned with every listing."""
    total: int
    page: int
    per_page: int
    last_page: int


class SelectOption(BaseModel):
    label: str
    value: int


class ListQuery(BaseModel):
    """Query parameters common to every index endpoint."""
    search: Optional[str] = Field(None, max_length=255)
    page: int = Field(1, ge=1)
    per_page: int = Field(settings.default_per_page, ge=5, le=settings.max_per_page)
    direction: Direction = "desc"


class MessageResponse(BaseModel):
    message: str


def blank_to_none(value):
    """Treat empty strings and the select-box placeholder "none" as missing."""
    if isinstance(value, str) and value.strip().lower() in ("", "none"):
        return None
    return value
