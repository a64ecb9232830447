"""Pydantic schemas for pipeline stage inputs and outputs.

Two layers live here:
- `*Result` models are what the language model must return (validated by
  invoke_and_validate).
- `*Output` models wrap a result with the stage role, so the pipeline state keeps one
  tagged output per stage.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field

from mycel.core.schemas_knowledge import KnowledgeEntry, KnowledgeSearchResult

Intent = Literal["content", "greeting", "proactive_request", "dont_know"]
GapPriority = Literal["high", "medium", "low"]

# Intents that never produce a knowledge entry
NON_CONTENT_INTENTS: frozenset[str] = frozenset({"greeting", "proactive_request", "dont_know"})


class AgentInput(BaseModel):
    """One user utterance entering the pipeline."""

    model_config = {"frozen": True}

    session_id: str
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class AgentOutput(BaseModel):
    confidence: float = Field(default=1.0, ge=0, le=1)
    reasoning: str | None = None


# =============================================================================
# Classifier
# =============================================================================


class ClassifierResult(BaseModel):
    category_id: str = Field(..., description="Category id, _uncategorized or _meta")
    subcategory_id: str | None = None
    confidence: float = Field(..., ge=0, le=1)
    intent: Intent = "content"
    is_topic_change: bool | None = None
    reasoning: str | None = None
    summary: str | None = Field(default=None, description="Only for _uncategorized input")
    suggested_category_label: str | None = Field(
        default=None, description="Only for _uncategorized input"
    )


class ClassifierOutput(AgentOutput):
    agent_role: Literal["classifier"] = "classifier"
    result: ClassifierResult


# =============================================================================
# Context dispatcher
# =============================================================================


class ContextDispatcherResult(BaseModel):
    relevant_context: list[KnowledgeSearchResult] = Field(default_factory=list)
    context_summary: str


class ContextDispatcherOutput(AgentOutput):
    agent_role: Literal["context_dispatcher"] = "context_dispatcher"
    result: ContextDispatcherResult


# =============================================================================
# Gap reasoning
# =============================================================================


class Gap(BaseModel):
    field: str
    description: str
    priority: GapPriority


class GapReasoningResult(BaseModel):
    gaps: list[Gap] = Field(default_factory=list)
    follow_up_questions: list[str] = Field(default_factory=list)
    reasoning: str | None = None


class GapReasoningOutput(AgentOutput):
    agent_role: Literal["gap_reasoning"] = "gap_reasoning"
    result: GapReasoningResult


# =============================================================================
# Persona
# =============================================================================


class PersonaResult(BaseModel):
    response: str
    follow_up_questions: list[str]


class PersonaOutput(AgentOutput):
    agent_role: Literal["persona"] = "persona"
    result: PersonaResult


# =============================================================================
# Structuring
# =============================================================================


class StructuredEntry(BaseModel):
    """Fields the structuring model extracts from the user's input."""

    title: str
    content: str
    structured_data: dict[str, Any]
    tags: list[str]
    is_complete: bool
    missing_fields: list[str]


class StructuringResult(BaseModel):
    entry: KnowledgeEntry
    is_complete: bool
    missing_fields: list[str] = Field(default_factory=list)


class StructuringOutput(AgentOutput):
    agent_role: Literal["structuring"] = "structuring"
    result: StructuringResult
