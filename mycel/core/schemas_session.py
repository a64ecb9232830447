"""Pydantic schemas for sessions, turns and turn context."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from mycel.core.pipeline_state import PipelineState, TurnContext, TurnSummary
from mycel.core.schemas_agents import ClassifierOutput
from mycel.core.schemas_knowledge import KnowledgeEntry, utc_now

SessionStatus = Literal["active", "complete", "abandoned"]


class SessionMetadata(BaseModel):
    source: Literal["cli", "api", "web"] | None = None
    user_id: str | None = None


class TurnInput(BaseModel):
    content: str
    is_follow_up_response: bool = False
    responding_to_questions: list[str] | None = None


class Turn(BaseModel):
    id: str | None = None
    turn_number: int
    input: TurnInput
    pipeline_result: PipelineState
    timestamp: datetime = Field(default_factory=utc_now)


class Session(BaseModel):
    id: str
    domain_config_name: str
    persona_config_name: str
    status: SessionStatus = "active"
    turns: list[Turn] = Field(default_factory=list)
    current_entry: KnowledgeEntry | None = None
    classifier_result: ClassifierOutput | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    metadata: SessionMetadata | None = None


class SessionResponse(BaseModel):
    session_id: str
    entry: KnowledgeEntry | None = None
    persona_response: str
    follow_up_questions: list[str] = Field(default_factory=list)
    is_complete: bool
    completeness_score: float
    turn_number: int


class InitSessionResponse(BaseModel):
    session_id: str
    greeting: str
