"""Pydantic models for template documents.

The schema checks gross structure only: every top-level section must be
present with the right aggregate kind. Free-form sections (problem, context,
consequences, ...) accept any object or array. Environments and their
resources are validated field by field because the enrichment pipeline
reads them.
"""

from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from template_agent.exceptions import TemplateValidationFailed
from template_agent.models.resources import Material, ResourceKind, Service, Tool


def _object_or_array(value: Any) -> Any:
    if not isinstance(value, (dict, list)):
        raise ValueError(f"must be an object or an array, got {type(value).__name__}")
    return value


# Any JSON object or array; nested shape is not checked
FreeForm = Annotated[Any, AfterValidator(_object_or_array)]


# ============================================================================
# Sections
# ============================================================================


class Environment(BaseModel):
    """A learning environment owning its materials, tools and services."""

    model_config = ConfigDict(extra="allow")

    id: str
    name: str = Field(..., min_length=1)
    description: str = ""
    materials: List[Material] = Field(default_factory=list)
    tools: List[Tool] = Field(default_factory=list)
    services: List[Service] = Field(default_factory=list)

    def resources(self, kind: ResourceKind) -> list:
        return getattr(self, kind.list_field)

    def with_resources(self, kind: ResourceKind, resources: list) -> "Environment":
        """Copy of this environment with one resource list replaced."""
        return self.model_copy(update={kind.list_field: list(resources)})

    def without_stale_metadata(self) -> "Environment":
        """Drop WLO metadata from resources that are not database-sourced.

        Returns this environment itself when nothing had to be dropped.
        """
        env = self
        for kind in ResourceKind:
            resources = self.resources(kind)
            if any(r.has_stale_metadata for r in resources):
                env = env.with_resources(kind, [r.without_stale_metadata() for r in resources])
        return env

    def to_document(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json", exclude={"materials", "tools", "services"})
        for kind in ResourceKind:
            data[kind.list_field] = [r.to_document() for r in self.resources(kind)]
        return data


class Solution(BaseModel):
    """Solution section; holds the sequence/phase/activity/role tree."""

    model_config = ConfigDict(extra="allow")

    solution_description: str = ""
    didactic_approach: str = ""
    didactic_template: Dict[str, Any] = Field(default_factory=dict)


class TemplateDocument(BaseModel):
    """A complete didactic template."""

    model_config = ConfigDict(extra="allow")

    metadata: Dict[str, Any]
    problem: FreeForm
    context: FreeForm
    influence_factors: FreeForm
    solution: Solution
    consequences: FreeForm
    implementation_notes: FreeForm
    related_patterns: List[Any]
    feedback: FreeForm
    sources: List[Any]
    actors: List[Dict[str, Any]] = Field(default_factory=list)
    environments: List[Environment] = Field(default_factory=list)

    def to_document(self) -> Dict[str, Any]:
        """Serialize back to the JSON document shape."""
        data = self.model_dump(mode="json", by_alias=True, exclude={"environments"})
        data["environments"] = [env.to_document() for env in self.environments]
        return data


# ============================================================================
# Validation outcome
# ============================================================================


class FieldIssue(BaseModel):
    """One schema violation, e.g. ``environments.0.materials.1.id: Field required``."""

    path: str
    message: str


class TemplateValidationError(BaseModel):
    """Why a model answer could not be turned into a template.

    ``kind`` is ``parse`` when no JSON could be read (``message`` carries the
    parser error) and ``schema`` when JSON was read but did not match
    (``issues`` lists every violation).
    """

    kind: Literal["parse", "schema"]
    message: str
    issues: List[FieldIssue] = Field(default_factory=list)

    def describe(self) -> str:
        if not self.issues:
            return self.message
        lines = [f"{issue.path}: {issue.message}" for issue in self.issues]
        return self.message + "\n" + "\n".join(lines)


class TemplateValidationResult(BaseModel):
    """Either a validated template or a structured error, never both."""

    template: Optional[TemplateDocument] = None
    error: Optional[TemplateValidationError] = None
    from_code_block: bool = False

    @property
    def ok(self) -> bool:
        return self.template is not None

    def raise_for_error(self) -> TemplateDocument:
        """Return the template or raise TemplateValidationFailed."""
        if self.template is not None:
            return self.template
        error = self.error or TemplateValidationError(kind="parse", message="No template")
        raise TemplateValidationFailed(
            error.describe(), [(issue.path, issue.message) for issue in error.issues]
        )
