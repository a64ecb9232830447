"""Turn pipeline LangGraph: classify, retrieve context, find gaps, respond, structure."""

from dataclasses import dataclass
from enum import Enum

from langgraph.graph import END, StateGraph

from mycel.agents.classifier import build_classifier_node
from mycel.agents.context_dispatcher import build_context_dispatcher_node
from mycel.agents.gap_reasoning import build_gap_reasoning_node
from mycel.agents.persona import build_persona_node
from mycel.agents.structuring import build_structuring_node
from mycel.core.embeddings import EmbeddingClient
from mycel.core.llm import LlmClient
from mycel.core.logging import get_logger
from mycel.core.pipeline_state import PipelineState, TurnContext
from mycel.core.schemas_agents import NON_CONTENT_INTENTS, AgentInput
from mycel.core.schemas_domain import DomainConfig, PersonaConfig
from mycel.db.field_stats import FieldStatsRepository
from mycel.db.knowledge import KnowledgeRepository

logger = get_logger(__name__)


class Stage(str, Enum):
    CLASSIFIER = "classifier"
    CONTEXT_DISPATCHER = "context_dispatcher"
    GAP_REASONING = "gap_reasoning"
    PERSONA = "persona"
    STRUCTURING = "structuring"


@dataclass
class PipelineConfig:
    domain_config: DomainConfig
    persona_config: PersonaConfig
    llm_client: LlmClient
    embedding_client: EmbeddingClient | None = None
    knowledge_repository: KnowledgeRepository | None = None
    field_stats_repository: FieldStatsRepository | None = None
    domain_schema_id: str | None = None

    @property
    def schema_id(self) -> str:
        """Id used to scope vector search and field stats; defaults to the domain name."""
        return self.domain_schema_id or self.domain_config.name


def route_after_classifier(state: PipelineState) -> str:
    """Greetings skip context retrieval and gap analysis."""
    if state.intent == "greeting":
        return Stage.PERSONA.value
    return Stage.CONTEXT_DISPATCHER.value


def route_after_persona(state: PipelineState) -> str:
    """Only content turns are structured."""
    if state.intent in NON_CONTENT_INTENTS:
        return END
    return Stage.STRUCTURING.value


def build_pipeline_graph(config: PipelineConfig) -> StateGraph:
    """Build the turn pipeline graph for one domain and persona."""
    graph = StateGraph(PipelineState)

    graph.add_node(
        Stage.CLASSIFIER.value, build_classifier_node(config.domain_config, config.llm_client)
    )
    graph.add_node(
        Stage.CONTEXT_DISPATCHER.value,
        build_context_dispatcher_node(
            config.embedding_client, config.knowledge_repository, config.schema_id
        ),
    )
    graph.add_node(
        Stage.GAP_REASONING.value,
        build_gap_reasoning_node(
            config.domain_config,
            config.llm_client,
            config.field_stats_repository,
            config.schema_id,
        ),
    )
    graph.add_node(
        Stage.PERSONA.value, build_persona_node(config.persona_config, config.llm_client)
    )
    graph.add_node(
        Stage.STRUCTURING.value, build_structuring_node(config.domain_config, config.llm_client)
    )

    graph.set_entry_point(Stage.CLASSIFIER.value)
    graph.add_conditional_edges(
        Stage.CLASSIFIER.value,
        route_after_classifier,
        {
            Stage.PERSONA.value: Stage.PERSONA.value,
            Stage.CONTEXT_DISPATCHER.value: Stage.CONTEXT_DISPATCHER.value,
        },
    )
    graph.add_edge(Stage.CONTEXT_DISPATCHER.value, Stage.GAP_REASONING.value)
    graph.add_edge(Stage.GAP_REASONING.value, Stage.PERSONA.value)
    graph.add_conditional_edges(
        Stage.PERSONA.value,
        route_after_persona,
        {
            Stage.STRUCTURING.value: Stage.STRUCTURING.value,
            END: END,
        },
    )
    graph.add_edge(Stage.STRUCTURING.value, END)

    return graph


class Pipeline:
    """Compiled turn pipeline. One run is a single forward pass; stage errors propagate."""

    def __init__(self, config: PipelineConfig):
        self.config = config
        self._graph = build_pipeline_graph(config).compile()
        logger.info(
            "Initialized agent pipeline",
            extra={
                "domain": config.domain_config.name,
                "persona": config.persona_config.name,
            },
        )

    async def run(
        self,
        agent_input: AgentInput,
        turn_context: TurnContext | None = None,
        active_category: str | None = None,
    ) -> PipelineState:
        logger.info(
            "Running agent pipeline",
            extra={
                "session_id": agent_input.session_id,
                "is_follow_up": turn_context.is_follow_up if turn_context else False,
            },
        )

        initial_state = PipelineState(
            session_id=agent_input.session_id,
            input=agent_input,
            turn_context=turn_context,
            active_category=active_category,
        )
        final_state = await self._graph.ainvoke(initial_state)

        logger.info("Pipeline complete", extra={"session_id": agent_input.session_id})

        # LangGraph returns a dict of the channels that were written
        return PipelineState(**final_state)
