"""Batch orchestrator: resolve filter resources against WLO.

Resources with ``source = filter`` are enriched in fixed-size batches. Items
within a batch run concurrently; the next batch starts only after every item
of the previous one has settled, which caps the number of in-flight search
requests. A failing item keeps its original value; a cancellation stops the
run after the current batch settles.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Union

from template_agent.config import BATCH_SIZE, DEFAULT_MAX_ITEMS
from template_agent.enrichers.criteria_generator import CriteriaGenerator
from template_agent.exceptions import OperationCancelled
from template_agent.models.resources import (
    FilterContext,
    Resource,
    ResourceKind,
    ResourceSource,
)
from template_agent.models.wlo import CombineMode
from template_agent.utils.cancellation import CancellationToken, raise_if_cancelled
from template_agent.utils.logging_config import pipeline_stage_logger
from template_agent.utils.status import StatusSink, null_status
from template_agent.wlo.metadata import extract_metadata
from template_agent.wlo.search_client import WLOSearchClient
from template_agent.wlo.vocabularies import DEFAULT_FILTER_TYPES, FilterType

logger = logging.getLogger(__name__)


@dataclass
class ProcessOptions:
    """Per-run options for ResourceProcessor.process.

    ``subject``, ``educational_level`` and ``selected_filters`` are only
    used when criteria have to be generated for a resource.
    """

    max_items: int = DEFAULT_MAX_ITEMS
    combine_mode: CombineMode = CombineMode.AND
    cancel_token: Optional[CancellationToken] = None
    subject: str = ""
    educational_level: str = ""
    selected_filters: Sequence[Union[FilterType, str]] = field(
        default_factory=lambda: list(DEFAULT_FILTER_TYPES)
    )


def iter_batches(items: Sequence, size: int) -> Iterator[list]:
    """Yield consecutive slices of ``items`` of at most ``size`` elements."""
    if size < 1:
        raise ValueError(f"Batch size must be positive, got {size}")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


class ResourceProcessor:
    """Enrich filter resources of one kind with WLO search results.

    Args:
        search_client: Client used for every search request
        criteria_generator: Optional generator for resources that have no
            ``filter_criteria`` at all
        batch_size: Maximum number of items enriched concurrently
    """

    def __init__(
        self,
        search_client: WLOSearchClient,
        criteria_generator: Optional[CriteriaGenerator] = None,
        batch_size: int = BATCH_SIZE,
    ):
        if batch_size < 1:
            raise ValueError(f"Batch size must be positive, got {batch_size}")
        self.search_client = search_client
        self.criteria_generator = criteria_generator
        self.batch_size = batch_size

    def process(
        self,
        resources: Sequence[Resource],
        kind: Union[ResourceKind, str],
        status: StatusSink = null_status,
        options: Optional[ProcessOptions] = None,
    ) -> List[Resource]:
        """Enrich every ``filter`` resource and return the merged list.

        The result has the same length and order as ``resources``. Items
        that were not enriched (other sources, no criteria, no results,
        errors) are returned as the identical objects.

        Args:
            resources: Resources of one kind, in document order
            kind: Resource kind, used for status lines and criteria context
            status: Status sink for human-readable progress lines
            options: Search and cancellation options

        Returns:
            List of resources in input order

        Raises:
            OperationCancelled: If the token is triggered. Its
                ``partial_result`` holds the merged list with every item
                that settled before the cancellation.
        """
        kind = ResourceKind(kind)
        options = options or ProcessOptions()

        if not resources:
            return []

        to_enrich = [r for r in resources if r.source == ResourceSource.FILTER]
        if not to_enrich:
            return list(resources)

        batches = list(iter_batches(to_enrich, self.batch_size))
        status(f"Processing {len(to_enrich)} {kind.list_field} in {len(batches)} batch(es)")

        # Keyed by the identity of the original object
        enriched: Dict[int, Resource] = {}

        def merged() -> List[Resource]:
            return [enriched.get(id(r), r) for r in resources]

        with pipeline_stage_logger(
            "wlo_enrichment", kind=kind.value, count=len(to_enrich)
        ) as stage_log:
            with ThreadPoolExecutor(
                max_workers=self.batch_size, thread_name_prefix="wlo-enrich"
            ) as executor:
                for number, batch in enumerate(batches, 1):
                    try:
                        raise_if_cancelled(options.cancel_token)
                    except OperationCancelled as e:
                        e.partial_result = merged()
                        raise

                    names = ", ".join(f'"{r.name}"' for r in batch)
                    status(f"Batch {number}/{len(batches)}: {names}")
                    stage_log.info(
                        f"Starting batch {number}/{len(batches)} with {len(batch)} item(s)"
                    )

                    futures = [
                        executor.submit(self._enrich_safely, resource, kind, status, options)
                        for resource in batch
                    ]
                    # The whole batch settles before anything else happens
                    wait(futures)

                    cancelled: Optional[OperationCancelled] = None
                    for resource, future in zip(batch, futures):
                        try:
                            enriched[id(resource)] = future.result()
                        except OperationCancelled as e:
                            cancelled = cancelled or e

                    if cancelled is not None:
                        status(f"Cancelled after batch {number}/{len(batches)}")
                        cancelled.partial_result = merged()
                        raise cancelled

        result = merged()
        done = sum(1 for r in result if r.source == ResourceSource.DATABASE)
        status(f"Finished {kind.list_field}: {done}/{len(result)} linked to WLO")
        return result

    def _enrich_safely(
        self,
        resource: Resource,
        kind: ResourceKind,
        status: StatusSink,
        options: ProcessOptions,
    ) -> Resource:
        """Enrich one item; any failure but cancellation keeps the original."""
        try:
            return self.enrich_item(resource, kind, status, options)
        except OperationCancelled:
            raise
        except Exception as e:
            logger.error(
                f"Enrichment failed for {kind.value} '{resource.name}': {e}",
                extra={"resource_id": resource.id},
                exc_info=True,
            )
            status(f"Error processing {kind.value} \"{resource.name}\": {e}")
            return resource

    def enrich_item(
        self,
        resource: Resource,
        kind: ResourceKind,
        status: StatusSink = null_status,
        options: Optional[ProcessOptions] = None,
    ) -> Resource:
        """Search WLO for one resource and attach the results.

        Returns:
            A database-sourced copy on success; otherwise the resource
            itself (or a copy carrying freshly generated criteria)
        """
        options = options or ProcessOptions()
        criteria = resource.filter_criteria

        if criteria is None and self.criteria_generator is not None:
            status(f"Generating filter criteria for {kind.value} \"{resource.name}\"")
            context = FilterContext.for_resource(
                resource, kind, options.subject, options.educational_level
            )
            criteria = self.criteria_generator.generate(
                context, options.selected_filters, status, options.cancel_token
            )
            resource = resource.model_copy(update={"filter_criteria": criteria})

        if not criteria or not any(criteria.values()):
            status(f"No filter criteria defined for {kind.value} \"{resource.name}\"")
            return resource

        properties = list(criteria.keys())
        values = list(criteria.values())
        status(
            f"Searching WLO for \"{resource.name}\": "
            + ", ".join(f"{p}={v}" for p, v in criteria.items())
        )

        result = self.search_client.search(
            properties,
            values,
            max_items=options.max_items,
            combine_mode=options.combine_mode,
            cancel_token=options.cancel_token,
        )

        if not result.nodes:
            status(f"No WLO results found for {kind.value} \"{resource.name}\"")
            return resource

        metadata = [extract_metadata(node) for node in result.nodes]
        node_ids = [node.node_id for node in result.nodes if node.node_id]
        status(f"Found {len(metadata)} WLO result(s) for \"{resource.name}\"")
        for record in metadata:
            status(f"  - {record.title or 'Untitled'} ({record.resource_type})")

        return resource.model_copy(
            update={
                "source": ResourceSource.DATABASE,
                "database_id": ",".join(node_ids),
                "wlo_metadata": metadata,
            }
        )
