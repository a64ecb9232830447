"""Pydantic schemas for schema evolution: proposals, field stats, clusters."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, Field, computed_field

from mycel.core.schemas_knowledge import KnowledgeEntry, utc_now

ProposalType = Literal["new_category", "new_field", "change_priority"]
ProposalStatus = Literal["pending", "approved", "rejected", "auto_applied"]
ReviewDecision = Literal["approve", "reject"]


class FieldStats(BaseModel):
    """Ask/answer counters for one field; answer_rate is always derived."""

    domain_schema_id: str
    category_id: str
    field_name: str
    times_asked: int = 0
    times_answered: int = 0
    last_updated_at: datetime = Field(default_factory=utc_now)

    @computed_field
    @property
    def answer_rate(self) -> float:
        if self.times_asked == 0:
            return 0.0
        return self.times_answered / self.times_asked


class NewCategorySpec(BaseModel):
    id: str
    label: str
    description: str
    suggested_fields: list[str] = Field(default_factory=list)


class NewFieldSpec(BaseModel):
    target_category_id: str
    field_name: str
    field_type: Literal["required", "optional"]
    reasoning: str | None = None


class ChangePrioritySpec(BaseModel):
    target_category_id: str
    field_name: str
    answer_rate: float
    reasoning: str | None = None


class ClusterMetadata(BaseModel):
    centroid_entry_id: str
    cluster_size: int
    average_similarity: float
    top_keywords: list[str] = Field(default_factory=list)


class EvolutionProposal(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    domain_schema_id: str
    type: ProposalType
    description: str
    evidence: list[str] = Field(default_factory=list, description="Supporting entry ids")
    confidence: float = Field(..., ge=0, le=1)
    status: ProposalStatus = "pending"
    new_category: NewCategorySpec | None = None
    new_field: NewFieldSpec | None = None
    change_priority: ChangePrioritySpec | None = None
    cluster_metadata: ClusterMetadata | None = None
    created_at: datetime = Field(default_factory=utc_now)
    reviewed_at: datetime | None = None
    applied_at: datetime | None = None


class EvolutionReviewResult(BaseModel):
    proposal_id: str
    status: Literal["approved", "rejected", "auto_applied"]
    domain_schema_id: str | None = None


class EvolutionLogEntry(BaseModel):
    """Audit record written every time a proposal changes a schema."""

    proposal_id: str
    domain_schema_id: str
    type: ProposalType
    description: str
    auto_applied: bool
    applied_at: datetime = Field(default_factory=utc_now)
    previous_version: int
    new_version: int


class ClusterLabel(BaseModel):
    """Model-suggested category for a cluster of uncategorized entries."""

    category_id: str = Field(..., min_length=1, description="kebab-case id")
    label: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    suggested_fields: list[str] = Field(default_factory=list)


@dataclass
class ClusterAnalysis:
    entries: list[KnowledgeEntry]
    centroid_entry_id: str
    average_similarity: float
    top_keywords: list[str] = field(default_factory=list)
