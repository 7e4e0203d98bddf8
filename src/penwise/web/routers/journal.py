from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query
from pydantic import Field

from penwise.core.modules.analytics.models import JournalSummary, SentimentExtremes
from penwise.core.modules.journal.models import EntryView
from penwise.core.wire import CamelModel
from penwise.web.deps import AppDep, ClaimsDep
from penwise.web.openapi import ErrorResponse, ValidationErrorResponse

router = APIRouter(prefix="/journal", tags=["journal"])

StartDate = Annotated[datetime | None, Query(alias="startDate", description="Range start, defaults to January 1st")]
EndDate = Annotated[datetime | None, Query(alias="endDate", description="Range end, defaults to now")]


class CreateEntryRequest(CamelModel):
    """New journal entry. A blank title is derived during post-processing."""

    title: str = Field("", description="Entry title")
    content: str = Field(..., min_length=1, description="Entry text")
    tags: list[str] = Field(default_factory=list, description="Tag names")
    categories: list[str] = Field(default_factory=list, description="Category names")


class UpdateEntryRequest(CamelModel):
    """Entry update. Omitted title/content stay unchanged; tags and categories are replaced."""

    title: str | None = Field(None, description="New title")
    content: str | None = Field(None, min_length=1, description="New text")
    tags: list[str] = Field(default_factory=list, description="Tag names")
    categories: list[str] = Field(default_factory=list, description="Category names")


class EntryResponse(CamelModel):
    message: str
    journal: EntryView


@router.post(
    "/create-entry",
    summary="Create journal entry",
    description="Store an entry and queue it for sentiment, tagging and analytics.",
    operation_id="createEntry",
    status_code=201,
    responses={
        201: {"description": "Entry created"},
        400: {"model": ValidationErrorResponse, "description": "Malformed request"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
    },
)
async def create_entry(entry_data: CreateEntryRequest, app: AppDep, claims: ClaimsDep) -> EntryResponse:
    entry = await app.create_entry(
        claims, entry_data.title, entry_data.content, entry_data.tags, entry_data.categories
    )
    return EntryResponse(message="Entry created!", journal=entry)


@router.put(
    "/update-entry/{journal_id}",
    summary="Update journal entry",
    description="Update one of the caller's entries and queue it for post-processing again.",
    operation_id="updateEntry",
    responses={
        200: {"description": "Entry updated"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        404: {"model": ErrorResponse, "description": "Entry not found"},
    },
)
async def update_entry(
    journal_id: UUID, entry_data: UpdateEntryRequest, app: AppDep, claims: ClaimsDep
) -> EntryResponse:
    entry = await app.update_entry(
        claims, journal_id, entry_data.title, entry_data.content, entry_data.tags, entry_data.categories
    )
    return EntryResponse(message="Journal updated successfully", journal=entry)


@router.get(
    "/entry/{journal_id}",
    summary="Get journal entry",
    description="Get one of the caller's entries, including fields derived by post-processing.",
    operation_id="getEntry",
    responses={
        200: {"description": "Entry"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        404: {"model": ErrorResponse, "description": "Entry not found"},
    },
)
async def get_entry(journal_id: UUID, app: AppDep, claims: ClaimsDep) -> EntryView:
    return await app.get_entry(claims, journal_id)


@router.get(
    "/summary",
    summary="Journal summary",
    description="Writing and mood statistics of the caller's entries dated within the range. Admin only.",
    operation_id="getJournalSummary",
    responses={
        200: {"description": "Summary"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        403: {"model": ErrorResponse, "description": "Admin role required"},
        404: {"model": ErrorResponse, "description": "No entries in the range"},
    },
)
async def get_summary(
    app: AppDep, claims: ClaimsDep, start_date: StartDate = None, end_date: EndDate = None
) -> JournalSummary:
    return await app.get_summary(claims, start_date, end_date)


@router.get(
    "/sentiment-extremes",
    summary="Sentiment extremes",
    description="Most positive and most negative of the caller's scored entries in the range. Admin only.",
    operation_id="getSentimentExtremes",
    responses={
        200: {"description": "Extremes"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        403: {"model": ErrorResponse, "description": "Admin role required"},
        404: {"model": ErrorResponse, "description": "No scored entries in the range"},
    },
)
async def get_sentiment_extremes(
    app: AppDep, claims: ClaimsDep, start_date: StartDate = None, end_date: EndDate = None
) -> SentimentExtremes:
    return await app.get_sentiment_extremes(claims, start_date, end_date)
