"""Pydantic models for WLO (edu-sharing) search results and normalized metadata."""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CombineMode(str, Enum):
    """How multiple filter constraints are combined in one search."""

    AND = "AND"
    OR = "OR"


class NodeRef(BaseModel):
    """Repository reference of a matched node."""

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    repo: Optional[str] = None


class NodePreview(BaseModel):
    """Inline preview information some search responses carry."""

    model_config = ConfigDict(extra="allow")

    url: Optional[str] = None


class SearchNode(BaseModel):
    """A raw matched node: a namespaced property bag plus identifiers.

    Property values are always lists, e.g.
    ``{"cclom:title": ["Bruchrechnen"], "sys:node-uuid": ["4f1c..."]}``.
    """

    model_config = ConfigDict(extra="allow")

    ref: Optional[NodeRef] = None
    properties: Dict[str, List[Optional[str]]] = Field(default_factory=dict)
    preview: Optional[NodePreview] = None

    @property
    def node_id(self) -> Optional[str]:
        """The node UUID, from ``sys:node-uuid`` or the repository reference."""
        uuids = self.properties.get("sys:node-uuid") or []
        if uuids and uuids[0]:
            return uuids[0]
        return self.ref.id if self.ref else None


class SearchResult(BaseModel):
    """Response of one search: the matched nodes in ranking order."""

    model_config = ConfigDict(extra="allow")

    nodes: List[SearchNode] = Field(default_factory=list)


class WLOMetadata(BaseModel):
    """Normalized metadata for one WLO resource.

    Serialized with the camelCase keys used in template documents
    (``educationalContext``, ``wwwUrl``, ``previewUrl``, ``resourceType``).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    title: str = ""
    keywords: List[str] = Field(default_factory=list)
    description: str = ""
    subject: str = ""
    educational_context: List[str] = Field(default_factory=list, alias="educationalContext")
    www_url: Optional[str] = Field(None, alias="wwwUrl")
    preview_url: Optional[str] = Field(None, alias="previewUrl")
    resource_type: str = Field("Lernressource", alias="resourceType")
