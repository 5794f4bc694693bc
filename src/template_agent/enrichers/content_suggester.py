"""Suggest WLO content for every role of a template's learning flow.

For each activity role the model proposes 1-2 materials (a short search
topic plus a content type from the WLO vocabulary). Each proposal is
searched on WLO, the candidates are ranked by the model, and the best three
become one database material in the role's learning environment. Roles run
concurrently in batches; a failing role contributes nothing, a cancellation
stops after the running batch.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, NamedTuple, Optional, Sequence

from pydantic import BaseModel, Field

from template_agent.config import (
    RANKED_CANDIDATES,
    RENDER_URL_TEMPLATE,
    ROLE_BATCH_SIZE,
    SUGGESTION_CANDIDATES,
    SUGGESTION_TOP_N,
)
from template_agent.enrichers.criteria_generator import CriteriaGenerator
from template_agent.enrichers.environments import (
    apply_environments,
    parse_environments,
    template_context,
)
from template_agent.enrichers.resource_processor import ProcessOptions, iter_batches
from template_agent.exceptions import OperationCancelled, WLOSearchError
from template_agent.models.resources import FilterContext, Material, ResourceKind, ResourceSource
from template_agent.models.wlo import CombineMode, SearchNode, WLOMetadata
from template_agent.prompts.filter_prompts import (
    CONTENT_SUGGESTION_SYSTEM_PROMPT,
    RANKING_SYSTEM_PROMPT,
    build_content_suggestion_prompt,
    build_ranking_prompt,
)
from template_agent.utils.cancellation import raise_if_cancelled
from template_agent.utils.ids import IdAllocator, uuid_allocator
from template_agent.utils.llm_client import LLMClient
from template_agent.utils.logging_config import pipeline_stage_logger
from template_agent.utils.status import StatusSink, null_status
from template_agent.validators.schema import Environment
from template_agent.wlo.metadata import extract_metadata
from template_agent.wlo.search_client import WLOSearchClient
from template_agent.wlo.vocabularies import (
    CONTENT_TYPE_MAPPING,
    DISCIPLINE_MAPPING,
    EDUCATIONAL_CONTEXT_MAPPING,
    FilterType,
    lookup,
)

logger = logging.getLogger(__name__)

DEFAULT_ENVIRONMENT_ID = "ENV-DEFAULT"
DEFAULT_ENVIRONMENT_NAME = "Standard-Lernumgebung"
DEFAULT_ENVIRONMENT_DESCRIPTION = "Digitale Lernumgebung für WLO-Inhalte"

# Scores for candidates that were not ranked by the model
UNRANKED_SCORE = 80
FALLBACK_SCORE = 70

_CONTENT_TYPE_LABELS = {uri: label for label, uri in CONTENT_TYPE_MAPPING.items()}


# ============================================================================
# Data
# ============================================================================


@dataclass(frozen=True)
class RoleContext:
    """One role of one activity, with its place in the learning flow."""

    activity_id: str
    activity_name: str
    role_id: str
    role_name: str
    actor_id: str
    actor_name: str
    actor_type: str = ""
    activity_description: str = ""
    task_description: str = ""
    environment_id: str = DEFAULT_ENVIRONMENT_ID
    environment_name: str = DEFAULT_ENVIRONMENT_NAME
    phase_name: str = ""
    sequence_name: str = ""

    @property
    def is_teacher(self) -> bool:
        return (
            self.actor_type == "Einzelperson"
            or "lehr" in self.actor_name.lower()
            or self.actor_id == "A1"
        )

    def filter_context(self, subject: str = "", educational_level: str = "") -> FilterContext:
        return FilterContext(
            item_name=self.activity_name,
            item_kind=ResourceKind.MATERIAL,
            subject=subject or "",
            educational_level=educational_level or "",
            activity_name=self.activity_name,
            role_name=self.role_name,
            task_description=self.task_description,
        )


class ContentSuggestion(BaseModel):
    """A validated proposal: what to search for and which content type."""

    search_term: str
    content_type: str = ""
    content_type_uri: Optional[str] = None
    reasoning: str = ""


class SuggestedMaterial(BaseModel):
    search_term: str = Field("", description="Short topic, 1-3 words, no content type")
    content_type: str = Field("", description="Exactly one label from the given list")
    reasoning: str = Field("", description="Why the material fits the task")


class SuggestionResponse(BaseModel):
    """Model answer for the content-suggestion prompt."""

    suggestions: List[SuggestedMaterial] = Field(default_factory=list)


class Ranking(BaseModel):
    index: int = Field(..., description="Index of the resource in the list")
    score: int = Field(0, description="Relevance from 0 to 100")


class RankingResponse(BaseModel):
    """Model answer for the ranking prompt."""

    rankings: List[Ranking] = Field(default_factory=list)


class RankedContent(NamedTuple):
    node_id: Optional[str]
    metadata: WLOMetadata
    relevance_score: int


@dataclass
class SuggestionResult:
    """Environments with the suggested materials and the role assignments.

    ``assignments`` maps a role id to the ids of the materials created for
    it; ``role_environments`` maps the same role id to the environment that
    holds them.
    """

    environments: List[Environment]
    assignments: Dict[str, List[str]] = field(default_factory=dict)
    role_environments: Dict[str, str] = field(default_factory=dict)


# ============================================================================
# Learning flow traversal
# ============================================================================


def _dicts(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _learning_sequences(template: Dict[str, Any]) -> List[Dict[str, Any]]:
    solution = template.get("solution")
    if not isinstance(solution, dict):
        return []
    didactic_template = solution.get("didactic_template")
    if not isinstance(didactic_template, dict):
        return []
    return _dicts(didactic_template.get("learning_sequences"))


def _iter_roles(template: Dict[str, Any]):
    """Yield ``(sequence, phase, activity, role)`` in document order."""
    for sequence in _learning_sequences(template):
        for phase in _dicts(sequence.get("phases")):
            for activity in _dicts(phase.get("activities")):
                for role in _dicts(activity.get("roles")):
                    yield sequence, phase, activity, role


def collect_roles(
    template: Dict[str, Any], environments: Sequence[Environment]
) -> List[RoleContext]:
    """Every role of the learning flow whose actor is known.

    A role without a (known) learning environment is placed in the
    default environment.
    """
    actors = {
        actor.get("id"): actor for actor in _dicts(template.get("actors")) if actor.get("id")
    }
    environment_names = {env.id: env.name for env in environments}

    roles = []
    for sequence, phase, activity, role in _iter_roles(template):
        actor = actors.get(role.get("actor_id"))
        if actor is None:
            logger.debug(f"Skipping role {role.get('role_id')!r}: unknown actor")
            continue

        learning_environment = role.get("learning_environment")
        env_id = (
            learning_environment.get("environment_id")
            if isinstance(learning_environment, dict)
            else None
        )
        if env_id not in environment_names:
            env_id = DEFAULT_ENVIRONMENT_ID

        roles.append(
            RoleContext(
                activity_id=str(activity.get("activity_id") or ""),
                activity_name=str(activity.get("name") or ""),
                activity_description=str(activity.get("description") or ""),
                role_id=str(role.get("role_id") or ""),
                role_name=str(role.get("role_name") or ""),
                actor_id=str(actor["id"]),
                actor_name=str(actor.get("name") or ""),
                actor_type=str(actor.get("type") or ""),
                task_description=str(role.get("task_description") or ""),
                environment_id=env_id,
                environment_name=environment_names.get(env_id, DEFAULT_ENVIRONMENT_NAME),
                phase_name=str(phase.get("phase_name") or ""),
                sequence_name=str(sequence.get("sequence_name") or ""),
            )
        )
    return roles


# ============================================================================
# Suggester
# ============================================================================


class ContentSuggester:
    """Find WLO materials for the roles of a learning flow.

    Args:
        llm_client: Client for suggestion and ranking calls
        search_client: Client used for every search request
        criteria_generator: Used when the model gives no usable suggestion;
            defaults to a generator on ``llm_client``
        allocate_id: Id source for the created materials
        batch_size: Maximum number of roles processed concurrently
    """

    def __init__(
        self,
        llm_client: LLMClient,
        search_client: WLOSearchClient,
        criteria_generator: Optional[CriteriaGenerator] = None,
        allocate_id: IdAllocator = uuid_allocator,
        batch_size: int = ROLE_BATCH_SIZE,
    ):
        if batch_size < 1:
            raise ValueError(f"Batch size must be positive, got {batch_size}")
        self.llm_client = llm_client
        self.search_client = search_client
        self.criteria_generator = criteria_generator or CriteriaGenerator(llm_client)
        self.allocate_id = allocate_id
        self.batch_size = batch_size

    def suggest(
        self,
        role: RoleContext,
        options: ProcessOptions,
        status: StatusSink = null_status,
        target_group: str = "",
    ) -> List[ContentSuggestion]:
        """Ask the model for materials; fall back to generated filter criteria.

        Suggestions with a content type outside the vocabulary are dropped.
        When the call fails or nothing valid remains, the title and content
        type criteria of the role are used as the single suggestion.

        Raises:
            OperationCancelled: If the token is triggered
        """
        context = role.filter_context(options.subject, options.educational_level)
        prompt = build_content_suggestion_prompt(
            context,
            CONTENT_TYPE_MAPPING.keys(),
            activity_description=role.activity_description,
            phase_name=role.phase_name,
            actor_name=role.actor_name,
            for_teacher=role.is_teacher,
            environment_name=role.environment_name,
            target_group=target_group,
        )

        try:
            response = self.llm_client.generate(
                prompt=prompt,
                response_model=SuggestionResponse,
                system_prompt=CONTENT_SUGGESTION_SYSTEM_PROMPT,
                max_tokens=500,
                cancel_token=options.cancel_token,
            )
        except OperationCancelled:
            raise
        except Exception as e:
            logger.warning(f"Content suggestion failed: {str(e)[:200]}")
            status(f"Could not suggest content for role \"{role.role_name}\"")
            response = SuggestionResponse()

        suggestions = []
        for item in response.suggestions:
            term = item.search_term.strip().strip('"').strip()
            label = item.content_type.strip().strip('"').strip()
            uri = lookup(CONTENT_TYPE_MAPPING, label)
            if uri is None:
                status(f"Unknown content type: {item.content_type}")
                continue
            if not term:
                continue
            suggestions.append(
                ContentSuggestion(
                    search_term=term,
                    content_type=label,
                    content_type_uri=uri,
                    reasoning=item.reasoning,
                )
            )

        if suggestions:
            return suggestions
        return self._suggest_from_criteria(role, context, options, status)

    def _suggest_from_criteria(
        self,
        role: RoleContext,
        context: FilterContext,
        options: ProcessOptions,
        status: StatusSink,
    ) -> List[ContentSuggestion]:
        status(f"Using filter criteria for role \"{role.role_name}\"")
        criteria = self.criteria_generator.generate(
            context,
            [FilterType.TITLE, FilterType.CONTENT_TYPE],
            status,
            options.cancel_token,
        )
        term = criteria.get(FilterType.TITLE.value)
        if not term:
            return []
        uri = criteria.get(FilterType.CONTENT_TYPE.value)
        return [
            ContentSuggestion(
                search_term=term,
                content_type=_CONTENT_TYPE_LABELS.get(uri, "") if uri else "",
                content_type_uri=uri,
                reasoning="Derived from the filter criteria of the activity",
            )
        ]

    def search_and_rank(
        self,
        suggestion: ContentSuggestion,
        role: RoleContext,
        options: ProcessOptions,
        status: StatusSink = null_status,
    ) -> List[RankedContent]:
        """Search WLO for one suggestion and return the best candidates.

        The first search combines title, content type and the selected
        discipline/educational-context filters. If it finds nothing, the
        title alone is searched again. Search failures give an empty list.

        Raises:
            OperationCancelled: If the token is triggered
        """
        properties = [FilterType.TITLE.value]
        values = [suggestion.search_term]
        if suggestion.content_type_uri:
            properties.append(FilterType.CONTENT_TYPE.value)
            values.append(suggestion.content_type_uri)

        selected = {FilterType.from_name(f) for f in options.selected_filters}
        if FilterType.DISCIPLINE in selected:
            uri = lookup(DISCIPLINE_MAPPING, options.subject)
            if uri:
                properties.append(FilterType.DISCIPLINE.value)
                values.append(uri)
                status(f"Adding discipline filter: {options.subject}")
        if FilterType.EDUCATIONAL_CONTEXT in selected:
            uri = lookup(EDUCATIONAL_CONTEXT_MAPPING, options.educational_level)
            if uri:
                properties.append(FilterType.EDUCATIONAL_CONTEXT.value)
                values.append(uri)
                status(f"Adding educational context filter: {options.educational_level}")

        status(
            f"Searching WLO for \"{suggestion.search_term}\" "
            f"[{suggestion.content_type or 'any type'}]"
        )
        try:
            nodes = self.search_client.search(
                properties,
                values,
                max_items=SUGGESTION_CANDIDATES,
                combine_mode=CombineMode.AND,
                cancel_token=options.cancel_token,
            ).nodes
            if not nodes and len(properties) > 1:
                status("No results, searching by title only")
                nodes = self.search_client.search(
                    [FilterType.TITLE.value],
                    [suggestion.search_term],
                    max_items=SUGGESTION_CANDIDATES,
                    combine_mode=CombineMode.OR,
                    cancel_token=options.cancel_token,
                ).nodes
        except WLOSearchError as e:
            status(f"WLO search failed: {e}")
            return []

        if not nodes:
            status(f"No WLO results found for \"{suggestion.search_term}\"")
            return []

        status(f"Found {len(nodes)} candidate(s)")
        contents = [self._candidate(node) for node in nodes]
        ranked = self.rank(contents, role, suggestion, options)
        status(f"Selected {len(ranked)} resource(s) for \"{suggestion.search_term}\"")
        return ranked

    @staticmethod
    def _candidate(node: SearchNode) -> RankedContent:
        metadata = extract_metadata(node)
        if not metadata.www_url and node.node_id:
            metadata = metadata.model_copy(
                update={"www_url": RENDER_URL_TEMPLATE.format(node_id=node.node_id)}
            )
        return RankedContent(node.node_id, metadata, 0)

    def rank(
        self,
        contents: Sequence[RankedContent],
        role: RoleContext,
        suggestion: ContentSuggestion,
        options: ProcessOptions,
    ) -> List[RankedContent]:
        """Keep the best candidates, ordered by model score.

        Short lists are returned as they are. If the ranking call fails or
        names no valid candidate, the first candidates are kept in search
        order.
        """
        if len(contents) <= SUGGESTION_TOP_N:
            return [c._replace(relevance_score=UNRANKED_SCORE) for c in contents]

        shown = list(contents[:RANKED_CANDIDATES])
        candidates = [
            {
                "index": i,
                "title": c.metadata.title or "Untitled",
                "description": c.metadata.description[:100],
                "type": c.metadata.resource_type,
            }
            for i, c in enumerate(shown)
        ]
        fallback = [c._replace(relevance_score=FALLBACK_SCORE) for c in shown[:SUGGESTION_TOP_N]]

        try:
            response = self.llm_client.generate(
                prompt=build_ranking_prompt(
                    role.filter_context(options.subject, options.educational_level),
                    suggestion.content_type,
                    candidates,
                ),
                response_model=RankingResponse,
                system_prompt=RANKING_SYSTEM_PROMPT,
                max_tokens=300,
                cancel_token=options.cancel_token,
            )
        except OperationCancelled:
            raise
        except Exception as e:
            logger.warning(f"Ranking failed: {str(e)[:200]}")
            return fallback

        seen = set()
        rankings = []
        for ranking in response.rankings:
            if 0 <= ranking.index < len(shown) and ranking.index not in seen:
                seen.add(ranking.index)
                rankings.append(ranking)
        if not rankings:
            return fallback

        rankings.sort(key=lambda r: r.score, reverse=True)
        return [
            shown[r.index]._replace(relevance_score=r.score)
            for r in rankings[:SUGGESTION_TOP_N]
        ]

    def materials_for_role(
        self,
        role: RoleContext,
        options: ProcessOptions,
        status: StatusSink = null_status,
        target_group: str = "",
    ) -> List[Material]:
        """One database material per suggestion that found WLO content."""
        materials = []
        for suggestion in self.suggest(role, options, status, target_group):
            ranked = self.search_and_rank(suggestion, role, options, status)
            if not ranked:
                continue
            materials.append(
                Material(
                    id=self.allocate_id(f"{role.environment_id}-M"),
                    name=f"{suggestion.search_term} {suggestion.content_type}".strip(),
                    material_type=suggestion.content_type or "Material",
                    source=ResourceSource.DATABASE,
                    access_link=ranked[0].metadata.www_url or "",
                    database_id=",".join(r.node_id for r in ranked if r.node_id),
                    wlo_metadata=[r.metadata for r in ranked],
                    search_query=suggestion.search_term,
                )
            )
        return materials

    def _materials_safely(
        self,
        role: RoleContext,
        options: ProcessOptions,
        status: StatusSink,
        target_group: str,
    ) -> List[Material]:
        try:
            return self.materials_for_role(role, options, status, target_group)
        except OperationCancelled:
            raise
        except Exception as e:
            logger.error(
                f"Content suggestion failed for role '{role.role_name}': {e}",
                extra={"role_id": role.role_id},
                exc_info=True,
            )
            status(f"Error processing role \"{role.role_name}\": {e}")
            return []

    def process_activities(
        self,
        template: Dict[str, Any],
        status: StatusSink = null_status,
        options: Optional[ProcessOptions] = None,
    ) -> SuggestionResult:
        """Suggest and attach WLO materials for every role of ``template``.

        ``options.subject`` and ``options.educational_level`` default to the
        template context.

        Returns:
            SuggestionResult with the new materials appended to their
            environments; the default environment is added only when a
            material ends up in it

        Raises:
            OperationCancelled: If the token is triggered. Its
                ``partial_result`` is a SuggestionResult holding every role
                that settled before the cancellation.
        """
        options = options or ProcessOptions()
        context = template_context(template)
        options = replace(
            options,
            subject=options.subject or context["subject"],
            educational_level=options.educational_level or context["educational_level"],
        )
        raw_context = template.get("context")
        target_group = (
            str(raw_context.get("target_group") or "") if isinstance(raw_context, dict) else ""
        )

        environments = parse_environments(template.get("environments") or [])
        roles = collect_roles(template, environments)
        status(f"Found {len(roles)} role(s) for the WLO content search")

        results: List[List[Material]] = [[] for _ in roles]
        batches = list(iter_batches(list(range(len(roles))), self.batch_size))

        def assembled() -> SuggestionResult:
            return _assemble(environments, roles, results)

        with pipeline_stage_logger("wlo_content_suggestion", roles=len(roles)) as stage_log:
            with ThreadPoolExecutor(
                max_workers=self.batch_size, thread_name_prefix="wlo-suggest"
            ) as executor:
                for number, batch in enumerate(batches, 1):
                    try:
                        raise_if_cancelled(options.cancel_token)
                    except OperationCancelled as e:
                        e.partial_result = assembled()
                        raise

                    stage_log.info(
                        f"Starting role batch {number}/{len(batches)} with {len(batch)} role(s)"
                    )
                    futures = [
                        executor.submit(
                            self._materials_safely, roles[i], options, status, target_group
                        )
                        for i in batch
                    ]
                    wait(futures)

                    cancelled: Optional[OperationCancelled] = None
                    for i, future in zip(batch, futures):
                        try:
                            results[i] = future.result()
                        except OperationCancelled as e:
                            cancelled = cancelled or e

                    if cancelled is not None:
                        status(f"Cancelled after role batch {number}/{len(batches)}")
                        cancelled.partial_result = assembled()
                        raise cancelled

        result = assembled()
        for role, materials in zip(roles, results):
            if materials:
                status(f"{role.actor_name}: {role.role_name} ({len(materials)} material(s))")
        material_count = sum(len(materials) for materials in results)
        role_count = sum(1 for materials in results if materials)
        status(
            f"WLO content search finished: {material_count} material(s) "
            f"for {role_count}/{len(roles)} role(s)"
        )
        return result


def _assemble(
    environments: List[Environment],
    roles: Sequence[RoleContext],
    results: Sequence[List[Material]],
) -> SuggestionResult:
    """Append each role's materials to its environment and record assignments."""
    added: Dict[str, List[Material]] = {}
    assignments: Dict[str, List[str]] = {}
    role_environments: Dict[str, str] = {}
    for role, materials in zip(roles, results):
        if not materials:
            continue
        added.setdefault(role.environment_id, []).extend(materials)
        assignments.setdefault(role.role_id, []).extend(m.id for m in materials)
        role_environments[role.role_id] = role.environment_id

    updated = []
    for env in environments:
        if env.id in added:
            env = env.with_resources(ResourceKind.MATERIAL, env.materials + added.pop(env.id))
        updated.append(env)

    default_materials = added.pop(DEFAULT_ENVIRONMENT_ID, None)
    if default_materials:
        updated.append(
            Environment(
                id=DEFAULT_ENVIRONMENT_ID,
                name=DEFAULT_ENVIRONMENT_NAME,
                description=DEFAULT_ENVIRONMENT_DESCRIPTION,
                materials=default_materials,
            )
        )

    return SuggestionResult(updated, assignments, role_environments)


def apply_role_assignments(
    template: Dict[str, Any], result: SuggestionResult
) -> Dict[str, Any]:
    """Return a copy of ``template`` with the suggested materials linked to roles.

    Environments are replaced. Each assigned role gets the material ids
    appended to ``learning_environment.selected_materials`` (no duplicates,
    existing order kept) and points at the environment holding them.
    """
    updated = apply_environments(template, result.environments)
    for _, _, _, role in _iter_roles(updated):
        role_id = role.get("role_id")
        material_ids = result.assignments.get(role_id)
        if not material_ids:
            continue

        learning_environment = role.get("learning_environment")
        if not isinstance(learning_environment, dict):
            learning_environment = {
                "selected_materials": [],
                "selected_tools": [],
                "selected_services": [],
            }
            role["learning_environment"] = learning_environment
        learning_environment["environment_id"] = result.role_environments[role_id]

        selected = list(learning_environment.get("selected_materials") or [])
        selected.extend(i for i in material_ids if i not in selected)
        learning_environment["selected_materials"] = selected
    return updated
