"""
Client for the WLO (edu-sharing) metadata search endpoint.

Translates (property, value) filter pairs into ``ngsearch`` criteria,
enforces the result cap, and checks the caller's cancellation token before
every request.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Union

import requests
from pydantic import ValidationError

from template_agent.config import (
    DEFAULT_MAX_ITEMS,
    WLO_ENDPOINTS,
    WLO_TIMEOUT,
    WLO_USER_AGENT,
    resolve_endpoint,
)
from template_agent.exceptions import WLOSearchError
from template_agent.models.wlo import CombineMode, SearchNode, SearchResult
from template_agent.utils.cancellation import CancellationToken, raise_if_cancelled
from template_agent.wlo.vocabularies import SEARCH_PROPERTY_NAMES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WLOSearchConfig:
    """Connection settings for the search endpoint.

    Attributes:
        endpoint: Base REST URL, or ``PRODUCTION`` / ``STAGING``
        proxy_url: Optional HTTP(S) proxy every request is routed through
        timeout: Request timeout in seconds
    """

    endpoint: str = WLO_ENDPOINTS["PRODUCTION"]
    proxy_url: Optional[str] = None
    timeout: float = WLO_TIMEOUT

    @property
    def base_url(self) -> str:
        return resolve_endpoint(self.endpoint)


class WLOSearchClient:
    """Search client for the WLO repository."""

    SEARCH_PATH = "/search/v1/queries/-home-/mds_oeh/ngsearch"

    def __init__(
        self,
        config: Optional[WLOSearchConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        self.config = config or WLOSearchConfig()
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Accept": "application/json",
                "Content-Type": "application/json",
                "User-Agent": WLO_USER_AGENT,
            }
        )
        self.proxies: Dict[str, str] = {}
        if self.config.proxy_url:
            self.proxies = {"http": self.config.proxy_url, "https": self.config.proxy_url}

        logger.info(
            f"WLOSearchClient initialized: endpoint={self.config.base_url}, "
            f"proxy={'on' if self.proxies else 'off'}"
        )

    @staticmethod
    def build_criteria(properties: Sequence[str], values: Sequence[str]) -> List[dict]:
        """Turn parallel property/value sequences into search criteria.

        The title filter becomes the free-text ``ngsearchword`` criterion and
        is always placed first; empty values are skipped.
        """
        if len(properties) != len(values):
            raise ValueError(
                f"properties and values differ in length ({len(properties)} != {len(values)})"
            )

        criteria = []
        for prop, value in zip(properties, values):
            if not value:
                continue
            criterion = {"property": SEARCH_PROPERTY_NAMES.get(prop, prop), "values": [value]}
            if criterion["property"] == "ngsearchword":
                criteria.insert(0, criterion)
            else:
                criteria.append(criterion)
        return criteria

    def search(
        self,
        properties: Sequence[str],
        values: Sequence[str],
        max_items: int = DEFAULT_MAX_ITEMS,
        combine_mode: Union[CombineMode, str] = CombineMode.AND,
        cancel_token: Optional[CancellationToken] = None,
    ) -> SearchResult:
        """Search for nodes matching the given filter pairs.

        AND sends all criteria in one query. OR sends one query per criterion
        and merges the results in criterion order, dropping duplicate nodes.
        At most ``max_items`` nodes are returned either way.

        Args:
            properties: Filter property names (e.g. ``ccm:taxonid``)
            values: Values, parallel to ``properties``
            max_items: Hard cap on returned nodes
            combine_mode: AND or OR
            cancel_token: Checked immediately before each request

        Returns:
            SearchResult with the matched nodes

        Raises:
            OperationCancelled: If the token is triggered before a request
            WLOSearchError: On transport, HTTP or decoding failures
        """
        combine_mode = CombineMode(combine_mode)
        criteria = self.build_criteria(properties, values)
        if not criteria or max_items <= 0:
            return SearchResult(nodes=[])

        if combine_mode == CombineMode.AND:
            nodes = self._query(criteria, max_items, cancel_token)
            return SearchResult(nodes=nodes[:max_items])

        merged: List[SearchNode] = []
        seen = set()
        for criterion in criteria:
            if len(merged) >= max_items:
                break
            for node in self._query([criterion], max_items, cancel_token):
                key = node.node_id or id(node)
                if key in seen:
                    continue
                seen.add(key)
                merged.append(node)
        return SearchResult(nodes=merged[:max_items])

    def _query(
        self,
        criteria: List[dict],
        max_items: int,
        cancel_token: Optional[CancellationToken],
    ) -> List[SearchNode]:
        url = self.config.base_url + self.SEARCH_PATH
        params = {
            "contentType": "FILES",
            "maxItems": str(max_items),
            "skipCount": "0",
            "propertyFilter": "-all-",
        }
        logger.debug(f"WLO search request: {url}", extra={"criteria": criteria})

        raise_if_cancelled(cancel_token)
        try:
            response = self.session.post(
                url,
                params=params,
                json={"criteria": criteria},
                proxies=self.proxies or None,
                timeout=self.config.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            reason = e.response.reason if e.response is not None else ""
            raise WLOSearchError(
                f"WLO API request failed: {status} {reason}".strip(), status_code=status
            ) from e
        except requests.RequestException as e:
            raise WLOSearchError(f"WLO API request failed: {e}") from e
        except ValueError as e:
            raise WLOSearchError(f"WLO API returned invalid JSON: {e}") from e

        try:
            result = SearchResult.model_validate(payload)
        except ValidationError as e:
            raise WLOSearchError(f"Unexpected WLO response shape: {str(e)[:200]}") from e

        logger.info(
            f"WLO search returned {len(result.nodes)} nodes",
            extra={"criteria_count": len(criteria)},
        )
        return result.nodes
