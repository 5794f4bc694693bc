"""Shared fixtures: sample templates, search nodes and a recording search double."""

import threading
import time
from typing import Dict, List, Optional

import pytest

from template_agent.models.wlo import SearchNode, SearchResult


def make_node(
    node_id: str,
    title: str = "",
    lrt_label: Optional[str] = None,
    www_url: Optional[str] = None,
) -> dict:
    """Raw search node as returned by the ngsearch endpoint."""
    properties: Dict[str, List[str]] = {"sys:node-uuid": [node_id]}
    if title:
        properties["cclom:title"] = [title]
    if lrt_label:
        properties["ccm:oeh_lrt_aggregated_DISPLAYNAME"] = [lrt_label]
    if www_url:
        properties["ccm:wwwurl"] = [www_url]
    return {"ref": {"id": node_id, "repo": "local"}, "properties": properties}


class RecordingSearchClient:
    """Search double recording start/end times of every call.

    Args:
        results: Node dicts per search term (first criterion value)
        delay: Seconds each call takes
        failures: Search terms that raise an exception
        on_call: Optional hook called with the term when a call starts
    """

    def __init__(
        self,
        results: Optional[Dict[str, List[dict]]] = None,
        delay: float = 0.05,
        failures: Optional[set] = None,
        on_call=None,
    ):
        self.results = results or {}
        self.delay = delay
        self.failures = failures or set()
        self.on_call = on_call
        self.calls: List[dict] = []
        self._lock = threading.Lock()

    def search(self, properties, values, max_items=5, combine_mode=None, cancel_token=None):
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        term = values[0]
        started = time.monotonic()
        if self.on_call is not None:
            self.on_call(term)
        time.sleep(self.delay)
        finished = time.monotonic()
        with self._lock:
            self.calls.append(
                {
                    "term": term,
                    "properties": list(properties),
                    "values": list(values),
                    "max_items": max_items,
                    "started": started,
                    "finished": finished,
                }
            )
        if term in self.failures:
            raise RuntimeError(f"search failed for {term}")
        nodes = [SearchNode.model_validate(n) for n in self.results.get(term, [])]
        return SearchResult(nodes=nodes[:max_items])

    def call_for(self, term: str) -> dict:
        return next(call for call in self.calls if call["term"] == term)


@pytest.fixture
def sample_template() -> dict:
    """A small but complete template document."""
    return {
        "metadata": {
            "title": "Bruchrechnen entdecken",
            "description": "Einführung in Brüche",
            "keywords": ["Brüche"],
            "author": "",
            "version": "1.0",
        },
        "problem": {
            "problem_description": "Lernende verstehen Brüche nicht anschaulich",
            "learning_goals": ["Brüche darstellen"],
            "didactic_keywords": ["entdeckend"],
        },
        "context": {
            "target_group": "Klasse 6",
            "subject": "Mathematik",
            "educational_level": "Sekundarstufe I",
            "prerequisites": "",
            "time_frame": "90 Minuten",
        },
        "influence_factors": [{"factor": "Heterogenität", "description": ""}],
        "solution": {
            "solution_description": "Stationenlernen",
            "didactic_approach": "Entdeckendes Lernen",
            "didactic_template": {"learning_sequences": []},
        },
        "consequences": {"advantages": [], "disadvantages": []},
        "implementation_notes": [],
        "related_patterns": [],
        "feedback": {"comments": []},
        "sources": [],
        "actors": [{"id": "A1", "name": "Lehrperson", "type": "Einzelperson"}],
        "environments": [
            {
                "id": "ENV1",
                "name": "Klassenzimmer",
                "description": "",
                "materials": [
                    {
                        "id": "M1",
                        "name": "Arbeitsblatt Bruchrechnen",
                        "material_type": "Arbeitsblatt",
                        "source": "filter",
                        "access_link": "",
                        "filter_criteria": {"cclom:title": "Bruchrechnen"},
                    },
                    {
                        "id": "M2",
                        "name": "Tafel",
                        "material_type": "Material",
                        "source": "manual",
                        "access_link": "",
                    },
                ],
                "tools": [
                    {
                        "id": "T1",
                        "name": "GeoGebra",
                        "tool_type": "Software",
                        "source": "filter",
                        "access_link": "",
                        "filter_criteria": {"cclom:title": "GeoGebra"},
                    }
                ],
                "services": [],
            }
        ],
    }


@pytest.fixture
def node_factory():
    return make_node


@pytest.fixture
def search_double():
    """Factory for RecordingSearchClient instances."""
    return RecordingSearchClient
