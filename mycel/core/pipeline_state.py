"""Per-run working memory threaded through the pipeline graph."""

from dataclasses import dataclass

from pydantic import BaseModel, Field

from mycel.core.schemas_agents import (
    AgentInput,
    ClassifierOutput,
    ContextDispatcherOutput,
    GapReasoningOutput,
    PersonaOutput,
    StructuringOutput,
)
from mycel.core.schemas_knowledge import KnowledgeEntry


class TurnSummary(BaseModel):
    turn_number: int
    user_input: str
    gaps: list[str] = Field(default_factory=list)
    filled_fields: list[str] = Field(default_factory=list)


class TurnContext(BaseModel):
    """Cross-turn memory handed to the pipeline for one run."""

    model_config = {"frozen": True}

    turn_number: int = Field(..., ge=1)
    is_follow_up: bool
    previous_turns: list[TurnSummary] = Field(default_factory=list)
    previous_entry: KnowledgeEntry | None = None
    asked_questions: list[str] = Field(default_factory=list)
    skipped_fields: list[str] = Field(default_factory=list)


@dataclass
class PipelineState:
    """State for one pipeline run.

    Every stage reads what earlier stages wrote and returns a partial update for its
    own output field. Fields are filled once per run and never cleared.
    """

    session_id: str
    input: AgentInput

    # Stage outputs
    classifier_output: ClassifierOutput | None = None
    context_dispatcher_output: ContextDispatcherOutput | None = None
    gap_reasoning_output: GapReasoningOutput | None = None
    persona_output: PersonaOutput | None = None
    structuring_output: StructuringOutput | None = None

    # Cross-turn memory
    turn_context: TurnContext | None = None
    active_category: str | None = None

    @property
    def category_id(self) -> str | None:
        if self.classifier_output is None:
            return None
        return self.classifier_output.result.category_id

    @property
    def intent(self) -> str | None:
        if self.classifier_output is None:
            return None
        return self.classifier_output.result.intent
