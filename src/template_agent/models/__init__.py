"""Data models for resources, filter contexts and WLO search results."""

from template_agent.models.resources import (
    AnyResource,
    FilterContext,
    Material,
    Resource,
    ResourceKind,
    ResourceSource,
    Service,
    Tool,
)
from template_agent.models.wlo import (
    CombineMode,
    NodePreview,
    NodeRef,
    SearchNode,
    SearchResult,
    WLOMetadata,
)

__all__ = [
    "AnyResource",
    "CombineMode",
    "FilterContext",
    "Material",
    "NodePreview",
    "NodeRef",
    "Resource",
    "ResourceKind",
    "ResourceSource",
    "SearchNode",
    "SearchResult",
    "Service",
    "Tool",
    "WLOMetadata",
]
