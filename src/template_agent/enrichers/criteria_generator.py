"""Generate WLO filter criteria for a single resource.

Each requested filter type is resolved independently: static vocabulary
lookups first, a constrained model prompt otherwise. A failed or invalid
answer for one filter type only omits that key.
"""

import logging
from typing import Dict, Iterable, Optional, Union

from pydantic import BaseModel, Field

from template_agent.exceptions import OperationCancelled
from template_agent.models.resources import FilterContext, ResourceKind
from template_agent.prompts.filter_prompts import (
    LABEL_CHOICE_SYSTEM_PROMPT,
    SEARCH_TERM_SYSTEM_PROMPT,
    build_label_choice_prompt,
    build_search_term_prompt,
)
from template_agent.utils.cancellation import CancellationToken
from template_agent.utils.llm_client import LLMClient
from template_agent.utils.status import StatusSink, null_status
from template_agent.wlo.vocabularies import (
    CONTENT_TYPE_MAPPING,
    DISCIPLINE_MAPPING,
    EDUCATIONAL_CONTEXT_MAPPING,
    MATERIAL_CONTENT_TYPES,
    FilterType,
    lookup,
)

logger = logging.getLogger(__name__)


class SearchTermResponse(BaseModel):
    """Model answer for the search-term prompt."""

    term: str = Field("", description="The 1-2 word core topic, nothing else")


class LabelChoice(BaseModel):
    """Model answer for a constrained vocabulary choice."""

    label: str = Field("", description="Exactly one option from the given list")


class CriteriaGenerator:
    """Produce ``{filter property: value}`` for a resource context."""

    def __init__(self, llm_client: LLMClient):
        self.llm_client = llm_client

    def generate(
        self,
        context: FilterContext,
        selected_filters: Iterable[Union[FilterType, str]],
        status: StatusSink = null_status,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Dict[str, str]:
        """Generate filter criteria for one resource.

        Args:
            context: Resource context (name, kind, subject, level, ...)
            selected_filters: Filter types to produce, in order
            status: Status sink for human-readable progress lines
            cancel_token: Optional cancellation token

        Returns:
            Mapping of WLO property name to value; filter types that could
            not be resolved are absent

        Raises:
            OperationCancelled: If the token is triggered
        """
        criteria: Dict[str, str] = {}

        for filter_type in selected_filters:
            filter_type = FilterType.from_name(filter_type)
            status(f"Processing filter type: {filter_type.name.lower()}")

            if filter_type == FilterType.TITLE:
                value = self._search_term(context, status, cancel_token)
            elif filter_type == FilterType.CONTENT_TYPE:
                value = self._content_type(context, status, cancel_token)
            elif filter_type == FilterType.DISCIPLINE:
                value = self._discipline(context, status, cancel_token)
            else:
                value = self._educational_context(context, status)

            if value:
                criteria[filter_type.value] = value

        logger.info(
            f"Generated {len(criteria)} filter criteria for '{context.item_name}'",
            extra={"criteria": criteria},
        )
        return criteria

    def _search_term(
        self,
        context: FilterContext,
        status: StatusSink,
        cancel_token: Optional[CancellationToken],
    ) -> Optional[str]:
        try:
            response = self.llm_client.generate(
                prompt=build_search_term_prompt(context),
                response_model=SearchTermResponse,
                system_prompt=SEARCH_TERM_SYSTEM_PROMPT,
                max_tokens=100,
                cancel_token=cancel_token,
            )
        except OperationCancelled:
            raise
        except Exception as e:
            logger.warning(f"Search term generation failed: {str(e)[:200]}")
            status(f"Could not generate search term for \"{context.item_name}\"")
            return None

        term = response.term.strip().strip('"').strip() or context.item_name
        status(f"Generated search term: \"{term}\"")
        return term

    def _content_type(
        self,
        context: FilterContext,
        status: StatusSink,
        cancel_token: Optional[CancellationToken],
    ) -> Optional[str]:
        status("Analyzing context to select content type...")

        if context.item_kind == ResourceKind.MATERIAL:
            mapped = lookup(MATERIAL_CONTENT_TYPES, context.item_type)
            if mapped and mapped in CONTENT_TYPE_MAPPING:
                status(f"Direct mapping found: {context.item_type} -> {mapped}")
                return self._selected("content type", mapped, CONTENT_TYPE_MAPPING, status)

        label = self._choose_label(context, "content type", CONTENT_TYPE_MAPPING, cancel_token)
        if label is None:
            status("Could not determine appropriate content type")
            return None
        return self._selected("content type", label, CONTENT_TYPE_MAPPING, status)

    def _discipline(
        self,
        context: FilterContext,
        status: StatusSink,
        cancel_token: Optional[CancellationToken],
    ) -> Optional[str]:
        status("Analyzing context to select discipline...")

        if lookup(DISCIPLINE_MAPPING, context.subject):
            status(f"Direct mapping found for subject: {context.subject}")
            return self._selected("discipline", context.subject.strip(), DISCIPLINE_MAPPING, status)

        label = self._choose_label(context, "discipline", DISCIPLINE_MAPPING, cancel_token)
        if label is None:
            status("Could not determine appropriate discipline")
            return None
        return self._selected("discipline", label, DISCIPLINE_MAPPING, status)

    def _educational_context(self, context: FilterContext, status: StatusSink) -> Optional[str]:
        uri = lookup(EDUCATIONAL_CONTEXT_MAPPING, context.educational_level)
        if uri is None:
            status(f"No educational context known for level \"{context.educational_level}\"")
            return None
        status(f"Selected educational context: {context.educational_level} -> {uri}")
        return uri

    def _choose_label(
        self,
        context: FilterContext,
        what: str,
        mapping: Dict[str, str],
        cancel_token: Optional[CancellationToken],
    ) -> Optional[str]:
        """Ask the model for one label; anything outside ``mapping`` is rejected."""
        try:
            response = self.llm_client.generate(
                prompt=build_label_choice_prompt(context, what, mapping.keys()),
                response_model=LabelChoice,
                system_prompt=LABEL_CHOICE_SYSTEM_PROMPT,
                max_tokens=100,
                cancel_token=cancel_token,
            )
        except OperationCancelled:
            raise
        except Exception as e:
            logger.warning(f"{what} selection failed: {str(e)[:200]}")
            return None

        label = response.label.strip().strip('"').strip()
        if label not in mapping:
            logger.info(f"Rejected {what} answer outside the vocabulary: {label!r}")
            return None
        return label

    @staticmethod
    def _selected(what: str, label: str, mapping: Dict[str, str], status: StatusSink) -> str:
        uri = mapping[label]
        status(f"Selected {what}: {label} -> {uri}")
        return uri


def generate_filter_criteria(
    context: FilterContext,
    api_key: Optional[str],
    selected_filters: Iterable[Union[FilterType, str]],
    status: StatusSink = null_status,
    model: Optional[str] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> Dict[str, str]:
    """One-shot helper: build a client from ``api_key`` and generate criteria.

    Raises:
        MissingCredentialError: If no API key is available (before any call)
    """
    generator = CriteriaGenerator(LLMClient(api_key=api_key, model=model))
    return generator.generate(context, selected_filters, status, cancel_token)
