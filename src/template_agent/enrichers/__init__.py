"""Resource enrichment: filter criteria, WLO batch resolution and role content suggestion."""

from template_agent.enrichers.content_suggester import (
    ContentSuggester,
    SuggestionResult,
    apply_role_assignments,
)
from template_agent.enrichers.criteria_generator import CriteriaGenerator, generate_filter_criteria
from template_agent.enrichers.environments import (
    apply_environments,
    assign_filter_criteria,
    enrich_environments,
)
from template_agent.enrichers.resource_processor import ProcessOptions, ResourceProcessor

__all__ = [
    "ContentSuggester",
    "CriteriaGenerator",
    "ProcessOptions",
    "ResourceProcessor",
    "SuggestionResult",
    "apply_environments",
    "apply_role_assignments",
    "assign_filter_criteria",
    "enrich_environments",
    "generate_filter_criteria",
]
