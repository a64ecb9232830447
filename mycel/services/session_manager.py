"""
Multi-turn sessions on top of the turn pipeline.

The manager owns everything that spans turns:
- rebuilding the TurnContext from stored turns before each run
- tracking the current entry and the last content classification
- completeness scoring, the max-turn limit and auto-completion
- persisting knowledge entries (with embeddings) and scheduling enrichment
- feeding field ask/answer statistics back for schema evolution

Turns of one session are serialized with a per-session lock, dropped when the session
ends; different sessions run concurrently.
"""

import asyncio
import logging
from typing import Any

from mycel.chains.generate_greeting import generate_greeting
from mycel.core.completeness import calculate_completeness, is_field_filled
from mycel.core.embeddings import build_embedding_text
from mycel.core.errors import SessionError, SessionNotFoundError
from mycel.core.logging import get_logger, log_with_context
from mycel.core.pipeline_state import PipelineState, TurnContext, TurnSummary
from mycel.core.schemas_agents import AgentInput
from mycel.core.schemas_knowledge import KnowledgeEntry, utc_now
from mycel.core.schemas_session import (
    InitSessionResponse,
    Session,
    SessionMetadata,
    SessionResponse,
    Turn,
    TurnInput,
)
from mycel.db.sessions import SessionRepository
from mycel.graphs.pipeline_graph import Pipeline, PipelineConfig
from mycel.services.enrichment import EnrichmentService

logger = get_logger(__name__)

INPUT_SOURCE = "session"


# =============================================================================
# Turn context helpers
# =============================================================================


def _gap_fields(state: PipelineState) -> list[str]:
    if state.gap_reasoning_output is None:
        return []
    return [g.field for g in state.gap_reasoning_output.result.gaps]


def build_turn_summary(turn: Turn) -> TurnSummary:
    result = turn.pipeline_result
    filled: list[str] = []
    if result.structuring_output is not None:
        filled = list(result.structuring_output.result.entry.structured_data.keys())
    return TurnSummary(
        turn_number=turn.turn_number,
        user_input=turn.input.content,
        gaps=_gap_fields(result),
        filled_fields=filled,
    )


def collect_asked_questions(turns: list[Turn]) -> list[str]:
    questions: list[str] = []
    for turn in turns:
        persona = turn.pipeline_result.persona_output
        if persona is not None:
            questions.extend(persona.result.follow_up_questions)
    return questions


def collect_skipped_fields(turns: list[Turn]) -> list[str]:
    """Gap fields of the turn right before each "don't know" turn, first-seen order."""
    skipped: list[str] = []
    for previous, turn in zip(turns, turns[1:]):
        if turn.pipeline_result.intent != "dont_know":
            continue
        for field in _gap_fields(previous.pipeline_result):
            if field not in skipped:
                skipped.append(field)
    return skipped


def build_turn_context(session: Session, turn_number: int) -> TurnContext:
    return TurnContext(
        turn_number=turn_number,
        is_follow_up=True,
        previous_turns=[build_turn_summary(t) for t in session.turns],
        previous_entry=session.current_entry,
        asked_questions=collect_asked_questions(session.turns),
        skipped_fields=collect_skipped_fields(session.turns),
    )


# =============================================================================
# Session manager
# =============================================================================


class SessionManager:
    def __init__(
        self,
        pipeline_config: PipelineConfig,
        session_repository: SessionRepository,
        enrichment_service: EnrichmentService | None = None,
    ):
        self.config = pipeline_config
        self.pipeline = Pipeline(pipeline_config)
        self.session_repository = session_repository
        self.enrichment_service = enrichment_service

        completeness = pipeline_config.domain_config.completeness
        self.threshold = completeness.auto_complete_threshold
        self.max_turns = completeness.max_turns

        self._locks: dict[str, asyncio.Lock] = {}
        self._background_tasks: set[asyncio.Task] = set()

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        return self._locks.setdefault(session_id, asyncio.Lock())

    async def _load(self, session_id: str) -> Session:
        session = await self.session_repository.get_session_with_turns(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        return session

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    async def init_session(self, metadata: SessionMetadata | None = None) -> InitSessionResponse:
        """Create an empty session and greet the user before any input."""
        session = await self._create(metadata)
        greeting = await generate_greeting(
            self.config.persona_config, self.config.domain_config, self.config.llm_client
        )
        logger.info("Session initialized with greeting", extra={"session_id": session.id})
        return InitSessionResponse(session_id=session.id, greeting=greeting)

    async def start_session(
        self, turn_input: TurnInput, metadata: SessionMetadata | None = None
    ) -> SessionResponse:
        session = await self._create(metadata)
        logger.info("Starting new session", extra={"session_id": session.id})
        async with self._lock_for(session.id):
            return await self._run_turn(session, turn_input)

    async def continue_session(self, session_id: str, turn_input: TurnInput) -> SessionResponse:
        """
        Run the next turn of an active session.

        Raises:
            SessionNotFoundError: If the session does not exist
            SessionError: If the session is no longer active
        """
        async with self._lock_for(session_id):
            session = await self._load(session_id)
            if session.status != "active":
                raise SessionError(f"Session is already {session.status}: {session_id}")
            return await self._run_turn(session, turn_input)

    async def end_session(self, session_id: str) -> Session:
        """Close a session: complete when it produced an entry, abandoned otherwise."""
        async with self._lock_for(session_id):
            session = await self._load(session_id)
            status = "complete" if session.current_entry is not None else "abandoned"
            await self.session_repository.update(session_id, status=status)
            logger.info("Session ended", extra={"session_id": session_id, "status": status})
            ended = await self._load(session_id)
        self._locks.pop(session_id, None)
        return ended

    async def get_session(self, session_id: str) -> Session:
        return await self._load(session_id)

    async def wait_for_background_tasks(self) -> None:
        """Wait for scheduled enrichment runs to finish."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    # -------------------------------------------------------------------------
    # Turn execution
    # -------------------------------------------------------------------------

    async def _create(self, metadata: SessionMetadata | None) -> Session:
        return await self.session_repository.create(
            domain_config_name=self.config.domain_config.name,
            persona_config_name=self.config.persona_config.name,
            metadata=metadata,
        )

    async def _run_turn(self, session: Session, turn_input: TurnInput) -> SessionResponse:
        turn_number = len(session.turns) + 1
        if turn_number > self.max_turns:
            raise SessionError(f"Maximum turns ({self.max_turns}) reached for session: {session.id}")

        turn_context = None
        active_category = None
        if session.turns:
            turn_context = build_turn_context(session, turn_number)
            if session.classifier_result is not None:
                active_category = session.classifier_result.result.category_id

        agent_input = AgentInput(
            session_id=session.id,
            content=turn_input.content,
            metadata={"source": INPUT_SOURCE},
        )
        result = await self.pipeline.run(agent_input, turn_context, active_category)

        entry = result.structuring_output.result.entry if result.structuring_output else None
        current_entry = entry or session.current_entry

        completeness_score = (
            calculate_completeness(current_entry, self.config.domain_config) if current_entry else 0.0
        )
        auto_complete = completeness_score >= self.threshold

        turn = await self.session_repository.add_turn(session.id, turn_number, turn_input, result)

        updates: dict[str, Any] = {
            "current_entry": current_entry,
            "status": "complete" if auto_complete else "active",
        }
        if result.intent == "content":
            updates["classifier_result"] = result.classifier_output
        await self.session_repository.update(session.id, **updates)

        if entry is not None:
            await self._persist_knowledge_entry(entry, result, session.id, turn.id, turn_input.content)

        await self._record_field_stats(result, session.current_entry, entry)

        structurer_complete = (
            result.structuring_output.result.is_complete if result.structuring_output else False
        )

        log_with_context(
            logger,
            logging.INFO,
            "Turn complete",
            session_id=session.id,
            turn_number=turn_number,
            intent=result.intent,
            completeness_score=completeness_score,
            auto_complete=auto_complete,
        )

        persona = result.persona_output.result if result.persona_output else None
        return SessionResponse(
            session_id=session.id,
            entry=entry,
            persona_response=persona.response if persona else "",
            follow_up_questions=list(persona.follow_up_questions) if persona else [],
            is_complete=structurer_complete or auto_complete,
            completeness_score=completeness_score,
            turn_number=turn_number,
        )

    async def _persist_knowledge_entry(
        self,
        entry: KnowledgeEntry,
        result: PipelineState,
        session_id: str,
        turn_id: str | None,
        raw_input: str,
    ) -> None:
        repository = self.config.knowledge_repository
        if repository is None:
            return

        classifier = result.classifier_output.result if result.classifier_output else None
        record = entry.model_copy(
            update={
                "session_id": session_id,
                "turn_id": turn_id,
                "confidence": classifier.confidence if classifier else 0.0,
                "suggested_category_label": (
                    classifier.suggested_category_label if classifier else None
                )
                or entry.category_id,
                "topic_keywords": list(entry.tags),
                "raw_input": raw_input,
                "domain_schema_id": self.config.schema_id,
            }
        )

        embedding_client = self.config.embedding_client
        if embedding_client is not None:
            try:
                record.embedding = await embedding_client.generate_embedding(
                    build_embedding_text(record)
                )
                record.embedding_model = embedding_client.model_name
                record.embedding_generated_at = utc_now()
            except Exception as e:
                logger.warning(
                    f"Embedding generation failed, storing entry without embedding: {e}",
                    extra={"session_id": session_id},
                )

        stored = await repository.create(record)
        logger.info(
            "Persisted knowledge entry",
            extra={"session_id": session_id, "entry_id": stored.id, "category_id": stored.category_id},
        )

        if self.enrichment_service is not None and self.enrichment_service.enabled:
            self._schedule_enrichment(stored, raw_input)

    def _schedule_enrichment(self, stored: KnowledgeEntry, raw_input: str) -> None:
        task = asyncio.create_task(self._enrich(stored, raw_input))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _enrich(self, stored: KnowledgeEntry, raw_input: str) -> None:
        try:
            await self.enrichment_service.enrich(
                stored.id, raw_input, stored.category_id, stored.domain_schema_id
            )
        except Exception as e:
            logger.error(
                f"Enrichment failed: {e}",
                exc_info=True,
                extra={"entry_id": stored.id},
            )

    async def _record_field_stats(
        self,
        result: PipelineState,
        previous_entry: KnowledgeEntry | None,
        entry: KnowledgeEntry | None,
    ) -> None:
        """Count gap fields as asked and newly filled schema fields as answered."""
        repository = self.config.field_stats_repository
        if repository is None:
            return

        domain_config = self.config.domain_config
        schema_id = self.config.schema_id

        try:
            category = domain_config.get_category(result.category_id)
            if category is not None:
                for field in _gap_fields(result):
                    await repository.increment_asked(schema_id, category.id, field)

            if entry is None:
                return
            entry_category = domain_config.get_category(entry.category_id)
            if entry_category is None:
                return

            before = previous_entry.structured_data if previous_entry else {}
            for field in [*entry_category.required_fields, *entry_category.optional_fields]:
                if is_field_filled(entry.structured_data.get(field)) and not is_field_filled(
                    before.get(field)
                ):
                    await repository.increment_answered(schema_id, entry_category.id, field)
        except Exception as e:
            logger.warning(f"Failed to record field stats: {e}", extra={"session_id": result.session_id})
