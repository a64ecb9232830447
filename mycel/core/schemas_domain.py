"""Pydantic schemas for domain, persona and behavior configuration."""

from datetime import datetime
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, Field

from mycel.core.schemas_knowledge import utc_now

SEMVER_PATTERN = r"^\d+\.\d+\.\d+$"

Modality = Literal["audio", "image", "text"]
SchemaOrigin = Literal["manual", "web_research", "hybrid"]


class Category(BaseModel):
    """A knowledge category with the structured fields it expects."""

    id: str = Field(..., min_length=1, description="Stable category id")
    label: str = Field(..., min_length=1, description="Human readable label")
    description: str = Field(default="", description="What belongs in this category")
    required_fields: list[str] = Field(default_factory=list)
    optional_fields: list[str] = Field(default_factory=list)
    origin: Literal["configured", "discovered", "web_research"] | None = Field(
        default=None,
        description="'discovered' when added by schema evolution, 'web_research' when generated",
    )
    source_urls: list[str] = Field(
        default_factory=list, description="Pages that informed a generated category"
    )


class IngestionConfig(BaseModel):
    allowed_modalities: list[Modality] = Field(default_factory=lambda: ["text"], min_length=1)
    primary_language: str = Field(default="en", min_length=2, max_length=5)
    supported_languages: list[str] = Field(default_factory=lambda: ["en"], min_length=1)


class CompletenessConfig(BaseModel):
    auto_complete_threshold: float = Field(
        default=0.8, ge=0, le=1, description="Score at which a session is marked complete"
    )
    max_turns: int = Field(default=5, ge=1, description="Turns after which a session rejects input")


class DomainConfig(BaseModel):
    """A domain schema: the categories knowledge is sorted into."""

    name: str = Field(..., min_length=1)
    version: str = Field(default="1.0.0", pattern=SEMVER_PATTERN)
    description: str = ""
    categories: list[Category] = Field(default_factory=list)
    ingestion: IngestionConfig = Field(default_factory=IngestionConfig)
    completeness: CompletenessConfig = Field(default_factory=CompletenessConfig)

    def get_category(self, category_id: str | None) -> Category | None:
        for category in self.categories:
            if category.id == category_id:
                return category
        return None

    @property
    def category_ids(self) -> list[str]:
        return [c.id for c in self.categories]


class PromptBehavior(BaseModel):
    gap_analysis: bool = True
    max_follow_up_questions: int = Field(default=3, ge=0, le=10)
    encourage_storytelling: bool = False
    validate_with_sources: bool = False


class PersonaConfig(BaseModel):
    """Voice parameters for the persona responder."""

    name: str = Field(..., min_length=1)
    version: str = Field(default="1.0.0", pattern=SEMVER_PATTERN)
    tonality: str = Field(..., min_length=1)
    formality: Literal["formal", "informal", "neutral"] = "neutral"
    language: str = Field(default="en", min_length=2, max_length=5)
    address_form: str | None = None
    prompt_behavior: PromptBehavior = Field(default_factory=PromptBehavior)
    system_prompt_template: str = Field(..., min_length=1)


# =============================================================================
# Behavior
# =============================================================================

SchemaEvolutionMode = Literal["fixed", "suggest", "auto"]
WebSearchMode = Literal["disabled", "bootstrap_only", "enrichment", "full"]
BehaviorPreset = Literal["manual", "balanced", "full_auto"]


class DomainBehaviorConfig(BaseModel):
    """How much the system is allowed to do on its own for a domain."""

    schema_creation: Literal["manual", "web_research", "hybrid"] = "manual"
    schema_evolution: SchemaEvolutionMode = "suggest"
    web_search: WebSearchMode = "disabled"
    knowledge_validation: Literal["trust_user", "flag_conflicts", "verify"] = "trust_user"
    proactive_questioning: Literal["passive", "gentle", "active"] = "gentle"
    document_generation: Literal["disabled", "manual", "on_session_end", "threshold"] = "manual"


BEHAVIOR_PRESETS: dict[str, DomainBehaviorConfig] = {
    "manual": DomainBehaviorConfig(
        schema_creation="manual",
        schema_evolution="fixed",
        web_search="disabled",
        knowledge_validation="trust_user",
        proactive_questioning="gentle",
        document_generation="manual",
    ),
    "balanced": DomainBehaviorConfig(
        schema_creation="web_research",
        schema_evolution="suggest",
        web_search="bootstrap_only",
        knowledge_validation="flag_conflicts",
        proactive_questioning="active",
        document_generation="manual",
    ),
    "full_auto": DomainBehaviorConfig(
        schema_creation="web_research",
        schema_evolution="auto",
        web_search="full",
        knowledge_validation="verify",
        proactive_questioning="active",
        document_generation="on_session_end",
    ),
}


def resolve_behavior_preset(preset: BehaviorPreset) -> DomainBehaviorConfig:
    """Return a fresh copy of the behavior config for a named preset."""
    return BEHAVIOR_PRESETS[preset].model_copy()


# =============================================================================
# Persisted schema versions
# =============================================================================


class PersistedDomainSchema(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    version: int = Field(default=1, description="Persisted revision, bumped on every save")
    config: DomainConfig
    behavior: DomainBehaviorConfig = Field(default_factory=DomainBehaviorConfig)
    origin: SchemaOrigin = "manual"
    generated_from: str | None = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class PersistedPersonaSchema(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    description: str | None = None
    version: int = 1
    config: PersonaConfig
    is_active: bool = True
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
