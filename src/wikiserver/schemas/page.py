"""Pydantic schemas for the pages API.

Learn: request bodies are validated here; a missing field never gets a
default. The 400 response for a bad body is produced by the validation
handler registered in main.py.
"""

from typing import Optional

from pydantic import BaseModel, Field


# ─── Requests ───────────────────────────────────────────

class PageCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    markdown: str


class PageUpdate(BaseModel):
    markdown: str
    client: Optional[str] = Field(
        None, description="Opaque id of the editing client, echoed in page.saved events"
    )


# ─── Responses ──────────────────────────────────────────

class SuccessResponse(BaseModel):
    success: bool = True


class PageSummary(BaseModel):
    id: int
    name: str


class PageListResponse(SuccessResponse):
    pages: list[PageSummary]


class PageDetail(BaseModel):
    id: int
    name: str
    markdown: str
    html: str


class PageResponse(SuccessResponse):
    page: PageDetail
