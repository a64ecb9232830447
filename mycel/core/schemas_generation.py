"""Pydantic schemas for bootstrapping a domain schema from a free-text description."""

from datetime import datetime
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, Field

from mycel.core.schemas_domain import DomainBehaviorConfig, DomainConfig, SchemaOrigin
from mycel.core.schemas_knowledge import utc_now

SchemaProposalStatus = Literal["pending", "approved", "rejected"]
SchemaReviewDecision = Literal["approve", "approve_with_changes", "reject"]


class DomainAnalysis(BaseModel):
    """What the model understood from the domain description."""

    domain_type: str = Field(..., min_length=1, description="e.g. local community, hobbyist topic")
    subject: str = Field(..., min_length=1)
    location: str | None = None
    language: str = Field(..., min_length=2, max_length=5, description="ISO 639-1 code")
    intent: str = Field(..., min_length=1)
    search_queries: list[str] = Field(..., min_length=3, max_length=10)


class SchemaProposal(BaseModel):
    """A generated domain schema waiting for a human decision."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    description: str
    language: str
    status: SchemaProposalStatus = "pending"
    proposed_schema: DomainConfig
    behavior: DomainBehaviorConfig
    origin: SchemaOrigin = "web_research"
    reasoning: str
    sources: list[str] = Field(default_factory=list)
    feedback: str | None = None
    resulting_domain_schema_id: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    reviewed_at: datetime | None = None


class SchemaReviewResult(BaseModel):
    proposal_id: str
    status: Literal["approved", "rejected"]
    domain_schema_id: str | None = None
