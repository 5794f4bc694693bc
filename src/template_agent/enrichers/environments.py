"""Template-level workflows over learning environments.

- assign_filter_criteria: generate filter criteria for every resource
- enrich_environments: resolve filter resources against WLO
- apply_environments: put environments back into a template document
"""

import copy
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from template_agent.enrichers.criteria_generator import CriteriaGenerator
from template_agent.enrichers.resource_processor import ProcessOptions, ResourceProcessor
from template_agent.exceptions import OperationCancelled
from template_agent.models.resources import FilterContext, ResourceKind, ResourceSource
from template_agent.utils.cancellation import CancellationToken, raise_if_cancelled
from template_agent.utils.logging_config import pipeline_stage_logger
from template_agent.utils.status import StatusSink, null_status
from template_agent.validators.schema import Environment
from template_agent.wlo.vocabularies import DEFAULT_FILTER_TYPES, FilterType

logger = logging.getLogger(__name__)

EnvironmentInput = Union[Environment, Dict[str, Any]]


def parse_environments(environments: Iterable[EnvironmentInput]) -> List[Environment]:
    """Coerce environment dicts from a template document into models.

    Metadata left on resources that are no longer database-sourced (e.g. a
    linked material switched back to ``filter``) is dropped here, so the
    pipeline only ever sees metadata it attached itself.
    """
    parsed = []
    for env in environments:
        if not isinstance(env, Environment):
            env = Environment.model_validate(env)
        cleaned = env.without_stale_metadata()
        if cleaned is not env:
            logger.info(f"Dropped stale WLO metadata in environment \"{env.name}\"")
        parsed.append(cleaned)
    return parsed


def template_context(template: Dict[str, Any]) -> Dict[str, str]:
    """Subject and educational level of a template, empty when missing."""
    context = template.get("context")
    if not isinstance(context, dict):
        return {"subject": "", "educational_level": ""}
    return {
        "subject": str(context.get("subject") or ""),
        "educational_level": str(context.get("educational_level") or ""),
    }


def assign_filter_criteria(
    environments: Iterable[EnvironmentInput],
    generator: CriteriaGenerator,
    status: StatusSink = null_status,
    subject: str = "",
    educational_level: str = "",
    selected_filters: Sequence[Union[FilterType, str]] = DEFAULT_FILTER_TYPES,
    cancel_token: Optional[CancellationToken] = None,
) -> List[Environment]:
    """Generate filter criteria for every manual or filter resource.

    Each processed resource gets the generated criteria and ``source =
    filter``. Database resources already point at WLO content and are left
    alone.

    Raises:
        OperationCancelled: If the token is triggered
    """
    parsed = parse_environments(environments)
    updated: List[Environment] = []

    with pipeline_stage_logger("filter_criteria", environments=len(parsed)):
        for env in parsed:
            raise_if_cancelled(cancel_token)
            status(f"Generating filter criteria for environment \"{env.name}\"")

            for kind in ResourceKind:
                resources = []
                for resource in env.resources(kind):
                    if resource.source == ResourceSource.DATABASE:
                        resources.append(resource)
                        continue

                    status(f"Processing {kind.value} \"{resource.name}\"")
                    context = FilterContext.for_resource(
                        resource, kind, subject, educational_level
                    )
                    criteria = generator.generate(
                        context, selected_filters, status, cancel_token
                    )
                    resources.append(
                        resource.model_copy(
                            update={
                                "filter_criteria": criteria,
                                "source": ResourceSource.FILTER,
                            }
                        )
                    )
                env = env.with_resources(kind, resources)

            updated.append(env)

    return updated


def enrich_environments(
    environments: Iterable[EnvironmentInput],
    processor: ResourceProcessor,
    status: StatusSink = null_status,
    options: Optional[ProcessOptions] = None,
) -> List[Environment]:
    """Run the batch orchestrator over every environment and resource kind.

    Returns:
        New environments; resource order inside each list is preserved

    Raises:
        OperationCancelled: If the token is triggered. Its
            ``partial_result`` holds the environments with everything that
            settled before the cancellation.
    """
    options = options or ProcessOptions()
    parsed = parse_environments(environments)
    updated: List[Environment] = []

    for index, env in enumerate(parsed):
        try:
            raise_if_cancelled(options.cancel_token)
        except OperationCancelled as e:
            e.partial_result = updated + parsed[index:]
            raise

        status(f"Processing environment: {env.name}")
        for kind in ResourceKind:
            try:
                resources = processor.process(env.resources(kind), kind, status, options)
            except OperationCancelled as e:
                if e.partial_result is not None:
                    env = env.with_resources(kind, e.partial_result)
                e.partial_result = updated + [env] + parsed[index + 1:]
                raise
            env = env.with_resources(kind, resources)

        updated.append(env)

    logger.info(f"Enriched {len(updated)} environment(s)")
    return updated


def apply_environments(
    template: Dict[str, Any], environments: Iterable[EnvironmentInput]
) -> Dict[str, Any]:
    """Return a copy of ``template`` with only its environments replaced."""
    result = copy.deepcopy(template)
    result["environments"] = [
        env.to_document() for env in parse_environments(environments)
    ]
    return result
