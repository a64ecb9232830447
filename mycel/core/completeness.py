"""Completeness scoring for knowledge entries."""

from mycel.core.schemas_domain import DomainConfig
from mycel.core.schemas_knowledge import KnowledgeEntry


def is_field_filled(value) -> bool:
    return value is not None and value != ""


def calculate_completeness(entry: KnowledgeEntry, domain_config: DomainConfig) -> float:
    """
    Fraction of the category's required fields that carry a value.

    Returns 1.0 when the category has no required fields and 0.0 when the
    category is unknown to the domain.
    """
    category = domain_config.get_category(entry.category_id)
    if category is None:
        return 0.0

    required = category.required_fields
    if not required:
        return 1.0

    filled = sum(1 for f in required if is_field_filled(entry.structured_data.get(f)))
    return filled / len(required)
