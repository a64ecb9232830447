"""Session and turn storage."""

from typing import Any, Protocol
from uuid import uuid4

from mycel.core.errors import PersistenceError
from mycel.core.pipeline_state import PipelineState
from mycel.core.schemas_knowledge import utc_now
from mycel.core.schemas_session import Session, SessionMetadata, Turn, TurnInput

UPDATABLE_FIELDS = frozenset({"status", "current_entry", "classifier_result"})


class SessionRepository(Protocol):
    async def create(
        self,
        domain_config_name: str,
        persona_config_name: str,
        metadata: SessionMetadata | None = None,
    ) -> Session: ...

    async def get_by_id(self, session_id: str) -> Session | None: ...

    async def update(self, session_id: str, **updates: Any) -> None: ...

    async def add_turn(
        self, session_id: str, turn_number: int, turn_input: TurnInput, pipeline_result: PipelineState
    ) -> Turn: ...

    async def get_turns(self, session_id: str) -> list[Turn]: ...

    async def get_session_with_turns(self, session_id: str) -> Session | None: ...


class InMemorySessionRepository:
    def __init__(self):
        self._sessions: dict[str, Session] = {}
        self._turns: dict[str, list[Turn]] = {}

    async def create(
        self,
        domain_config_name: str,
        persona_config_name: str,
        metadata: SessionMetadata | None = None,
    ) -> Session:
        session = Session(
            id=str(uuid4()),
            domain_config_name=domain_config_name,
            persona_config_name=persona_config_name,
            metadata=metadata,
        )
        self._sessions[session.id] = session
        self._turns[session.id] = []
        return session.model_copy()

    async def get_by_id(self, session_id: str) -> Session | None:
        session = self._sessions.get(session_id)
        return session.model_copy() if session else None

    async def update(self, session_id: str, **updates: Any) -> None:
        """
        Update status, current_entry or classifier_result.

        Raises:
            PersistenceError: If the session does not exist or a field is not updatable
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise PersistenceError(f"Session not found: {session_id}")

        unknown = set(updates) - UPDATABLE_FIELDS
        if unknown:
            raise PersistenceError(f"Cannot update fields {sorted(unknown)} on session")

        self._sessions[session_id] = session.model_copy(
            update={**updates, "updated_at": utc_now()}
        )

    async def add_turn(
        self, session_id: str, turn_number: int, turn_input: TurnInput, pipeline_result: PipelineState
    ) -> Turn:
        if session_id not in self._turns:
            raise PersistenceError(f"Session not found: {session_id}")

        turn = Turn(
            id=str(uuid4()),
            turn_number=turn_number,
            input=turn_input,
            pipeline_result=pipeline_result,
        )
        self._turns[session_id].append(turn)
        self._sessions[session_id] = self._sessions[session_id].model_copy(
            update={"updated_at": utc_now()}
        )
        return turn

    async def get_turns(self, session_id: str) -> list[Turn]:
        return list(self._turns.get(session_id, []))

    async def get_session_with_turns(self, session_id: str) -> Session | None:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        return session.model_copy(update={"turns": list(self._turns[session_id])})
