"""Apply an evolution proposal: write a new schema version and record the change."""

from typing import Protocol

from mycel.core.errors import SchemaEvolutionError
from mycel.core.logging import get_logger
from mycel.core.schemas_domain import Category, DomainConfig, PersistedDomainSchema
from mycel.core.schemas_evolution import EvolutionLogEntry, EvolutionProposal
from mycel.core.schemas_knowledge import UNCATEGORIZED, utc_now
from mycel.db.evolution_proposals import EvolutionProposalRepository
from mycel.db.knowledge import KnowledgeRepository
from mycel.db.schemas import SchemaRepository

logger = get_logger(__name__)


class EvolutionLog(Protocol):
    async def append(self, entry: EvolutionLogEntry) -> None: ...


class InMemoryEvolutionLog:
    def __init__(self):
        self.entries: list[EvolutionLogEntry] = []

    async def append(self, entry: EvolutionLogEntry) -> None:
        self.entries.append(entry)


def parse_patch(version: str) -> int:
    parts = version.split(".")
    return int(parts[2]) if len(parts) > 2 else 0


def bump_patch(version: str) -> str:
    major, minor, patch = version.split(".")
    return f"{major}.{minor}.{int(patch) + 1}"


def _require_category(config: DomainConfig, category_id: str) -> Category:
    category = config.get_category(category_id)
    if category is None:
        raise SchemaEvolutionError(f'Target category "{category_id}" not found in schema')
    return category


def _replace_category(config: DomainConfig, updated: Category) -> list[Category]:
    return [updated if c.id == updated.id else c for c in config.categories]


def build_evolved_config(proposal: EvolutionProposal, config: DomainConfig) -> tuple[DomainConfig, str]:
    """
    Return the evolved domain config and a description of the change.

    Raises:
        SchemaEvolutionError: If the proposal payload is missing or its target category
            does not exist
    """
    if proposal.type == "new_category":
        spec = proposal.new_category
        if spec is None:
            raise SchemaEvolutionError("new_category proposal missing new_category data")
        category = Category(
            id=spec.id,
            label=spec.label,
            description=spec.description,
            optional_fields=list(spec.suggested_fields),
            origin="discovered",
        )
        categories = [*config.categories, category]
        description = f'Added category "{spec.label}"'

    elif proposal.type == "new_field":
        spec = proposal.new_field
        if spec is None:
            raise SchemaEvolutionError("new_field proposal missing new_field data")
        target = _require_category(config, spec.target_category_id)
        if spec.field_type == "required":
            updated = target.model_copy(
                update={"required_fields": [*target.required_fields, spec.field_name]}
            )
        else:
            updated = target.model_copy(
                update={"optional_fields": [*target.optional_fields, spec.field_name]}
            )
        categories = _replace_category(config, updated)
        description = (
            f'Added {spec.field_type} field "{spec.field_name}" to "{spec.target_category_id}"'
        )

    elif proposal.type == "change_priority":
        spec = proposal.change_priority
        if spec is None:
            raise SchemaEvolutionError("change_priority proposal missing change_priority data")
        target = _require_category(config, spec.target_category_id)
        optional = list(target.optional_fields)
        if spec.field_name not in optional:
            optional.append(spec.field_name)
        updated = target.model_copy(
            update={
                "required_fields": [f for f in target.required_fields if f != spec.field_name],
                "optional_fields": optional,
            }
        )
        categories = _replace_category(config, updated)
        description = (
            f'Moved field "{spec.field_name}" from required to optional '
            f'in "{spec.target_category_id}"'
        )

    else:
        raise SchemaEvolutionError(f"Unknown proposal type: {proposal.type}")

    evolved = config.model_copy(
        update={"version": bump_patch(config.version), "categories": categories}
    )
    return evolved, description


class EvolutionApplier:
    def __init__(
        self,
        schema_repository: SchemaRepository,
        knowledge_repository: KnowledgeRepository,
        proposal_repository: EvolutionProposalRepository,
        evolution_log: EvolutionLog | None = None,
    ):
        self.schema_repository = schema_repository
        self.knowledge_repository = knowledge_repository
        self.proposal_repository = proposal_repository
        self.evolution_log = evolution_log

    async def _migrate_entries(self, proposal: EvolutionProposal) -> None:
        for entry_id in proposal.evidence:
            try:
                await self.knowledge_repository.update(
                    entry_id,
                    category_id=proposal.new_category.id,
                    status="migrated",
                    migrated_from=UNCATEGORIZED,
                )
            except Exception as e:
                logger.warning(f"Failed to migrate entry {entry_id}: {e}")

    async def _record(self, entry: EvolutionLogEntry) -> None:
        if self.evolution_log is None:
            logger.info(
                "Evolution applied (no audit log configured)",
                extra={"extra_data": entry.model_dump(mode="json")},
            )
            return
        try:
            await self.evolution_log.append(entry)
        except Exception as e:
            logger.warning(f"Failed to write evolution audit log: {e}")

    async def apply(
        self,
        proposal: EvolutionProposal,
        current_schema: PersistedDomainSchema,
        auto_applied: bool,
    ) -> str:
        """
        Apply a proposal on top of `current_schema` and return the new schema id.

        Raises:
            SchemaEvolutionError: If the proposal cannot be applied to the schema
        """
        config = current_schema.config
        previous_version = parse_patch(config.version)
        evolved, description = build_evolved_config(proposal, config)

        saved = await self.schema_repository.save_domain_schema(
            PersistedDomainSchema(
                name=current_schema.name,
                version=current_schema.version + 1,
                config=evolved,
                behavior=current_schema.behavior,
                origin=current_schema.origin,
                is_active=True,
            )
        )

        if proposal.type == "new_category":
            await self._migrate_entries(proposal)

        applied_at = utc_now()
        await self.proposal_repository.update(
            proposal.id,
            status="auto_applied" if auto_applied else "approved",
            applied_at=applied_at,
        )

        await self._record(
            EvolutionLogEntry(
                proposal_id=proposal.id,
                domain_schema_id=proposal.domain_schema_id,
                type=proposal.type,
                description=description,
                auto_applied=auto_applied,
                applied_at=applied_at,
                previous_version=previous_version,
                new_version=previous_version + 1,
            )
        )

        logger.info(
            f"Applied {proposal.type} proposal",
            extra={"proposal_id": proposal.id, "new_schema_id": saved.id},
        )
        return saved.id
