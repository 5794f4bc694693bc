"""Pydantic models for learning-environment resources.

Materials, tools and services share one shape (``Resource``) and differ only
in their kind-specific type field. The enrichment pipeline works on the base
record; ``ResourceKind`` is only consulted at the edges (environment list
names, model classes, FilterContext).
"""

from enum import Enum
from typing import Dict, List, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field

from template_agent.models.wlo import WLOMetadata


class ResourceSource(str, Enum):
    """Where a resource comes from.

    - manual: entered by hand, never touched by enrichment
    - filter: has (or awaits) filter criteria, eligible for WLO enrichment
    - database: resolved against WLO, carries ``wlo_metadata``
    """

    MANUAL = "manual"
    FILTER = "filter"
    DATABASE = "database"


class ResourceKind(str, Enum):
    """Resource kind, named as in FilterContext and status lines."""

    MATERIAL = "material"
    TOOL = "tool"
    SERVICE = "service"

    @property
    def list_field(self) -> str:
        """Name of the environment list holding this kind."""
        return {
            ResourceKind.MATERIAL: "materials",
            ResourceKind.TOOL: "tools",
            ResourceKind.SERVICE: "services",
        }[self]

    @property
    def type_field(self) -> str:
        return f"{self.value}_type"

    @property
    def model(self) -> Type["Resource"]:
        return {
            ResourceKind.MATERIAL: Material,
            ResourceKind.TOOL: Tool,
            ResourceKind.SERVICE: Service,
        }[self]


class Resource(BaseModel):
    """Common base of materials, tools and services.

    Unknown keys (e.g. ``search_query``) are kept so documents round-trip.
    """

    model_config = ConfigDict(extra="allow", use_enum_values=False)

    id: str
    name: str
    source: ResourceSource = ResourceSource.MANUAL
    access_link: str = ""
    database_id: Optional[str] = None
    filter_criteria: Optional[Dict[str, str]] = None
    wlo_metadata: Optional[Union[List[WLOMetadata], WLOMetadata]] = None

    @property
    def has_stale_metadata(self) -> bool:
        """WLO metadata left on a resource that is no longer database-sourced.

        The editor lets a linked resource be switched back to ``filter`` (to
        search again) or ``manual`` without clearing its old results.
        """
        return self.wlo_metadata is not None and self.source != ResourceSource.DATABASE

    def without_stale_metadata(self) -> "Resource":
        """This resource, or a copy without metadata its source does not allow."""
        if not self.has_stale_metadata:
            return self
        return self.model_copy(update={"wlo_metadata": None})

    @property
    def type_label(self) -> str:
        """The kind-specific type label (material_type, tool_type, ...)."""
        return ""

    def to_document(self) -> dict:
        """Serialize for a template document (JSON types, camelCase metadata)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Material(Resource):
    material_type: str = "Material"

    @property
    def type_label(self) -> str:
        return self.material_type


class Tool(Resource):
    tool_type: str = "Werkzeug"

    @property
    def type_label(self) -> str:
        return self.tool_type


class Service(Resource):
    service_type: str = "Dienst"

    @property
    def type_label(self) -> str:
        return self.service_type


AnyResource = Union[Material, Tool, Service]


class FilterContext(BaseModel):
    """Per-resource input to the criteria generator.

    Built right before a generator call and discarded afterwards.
    """

    item_name: str
    item_kind: ResourceKind
    item_type: str = ""
    educational_level: str = ""
    subject: str = ""
    activity_name: str = ""
    role_name: str = ""
    task_description: str = ""

    @classmethod
    def for_resource(
        cls,
        resource: Resource,
        kind: ResourceKind,
        subject: str = "",
        educational_level: str = "",
    ) -> "FilterContext":
        return cls(
            item_name=resource.name,
            item_kind=kind,
            item_type=resource.type_label,
            subject=subject or "",
            educational_level=educational_level or "",
        )
