"""Pydantic schemas for knowledge entries, enrichment and search results."""

from datetime import datetime, timezone
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, Field

UNCATEGORIZED = "_uncategorized"
META_CATEGORY = "_meta"

EntryStatus = Literal["draft", "confirmed", "migrated"]
ClaimStatus = Literal["verified", "contradicted", "unverifiable"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class VerifiedClaim(BaseModel):
    claim: str
    status: ClaimStatus
    evidence: str | None = None
    source_url: str | None = None
    confidence: float = Field(default=0.0, ge=0, le=1)


class KnowledgeEnrichment(BaseModel):
    """Web-search verification results attached to an entry."""

    claims: list[VerifiedClaim] = Field(default_factory=list)
    additional_context: str | None = None
    enriched_at: datetime = Field(default_factory=utc_now)
    search_queries: list[str] = Field(default_factory=list)
    source_urls: list[str] = Field(default_factory=list)


class ExtractedClaim(BaseModel):
    claim: str = Field(..., min_length=1)
    verifiable: bool
    search_query: str | None = None


class CachedSearchResult(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    query: str
    content: str
    source_urls: list[str] = Field(default_factory=list)
    cached_at: datetime
    expires_at: datetime


class ProcessingDetails(BaseModel):
    extracted_text: str | None = None
    confidence: float | None = None


class KnowledgeSource(BaseModel):
    type: Literal["text", "audio", "image"] = "text"
    processing_details: ProcessingDetails | None = None


class FollowUp(BaseModel):
    """Open gaps on an entry; present only while the entry is incomplete."""

    gaps: list[str] = Field(default_factory=list)
    suggested_questions: list[str] = Field(default_factory=list)


class KnowledgeEntry(BaseModel):
    """A structured unit of knowledge distilled from one or more turns."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    category_id: str
    subcategory_id: str | None = None
    title: str
    content: str
    source: KnowledgeSource = Field(default_factory=KnowledgeSource)
    structured_data: dict[str, Any] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    follow_up: FollowUp | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    # Persistence fields
    session_id: str | None = None
    turn_id: str | None = None
    confidence: float | None = None
    suggested_category_label: str | None = None
    topic_keywords: list[str] | None = None
    raw_input: str | None = None
    status: EntryStatus = "draft"
    migrated_from: str | None = None
    migrated_at: datetime | None = None
    domain_schema_id: str | None = None
    embedding: list[float] | None = None
    embedding_model: str | None = None
    embedding_generated_at: datetime | None = None
    enrichment: KnowledgeEnrichment | None = None


class KnowledgeSearchResult(BaseModel):
    entry: KnowledgeEntry
    score: float
