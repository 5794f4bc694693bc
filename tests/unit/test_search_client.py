"""Unit tests for the WLO search client with a mocked requests session."""

from unittest.mock import MagicMock

import pytest
import requests

from template_agent.exceptions import OperationCancelled, WLOSearchError
from template_agent.models.wlo import CombineMode
from template_agent.utils.cancellation import CancellationToken
from template_agent.wlo.search_client import WLOSearchClient, WLOSearchConfig


def mock_response(payload=None, status_code=200, reason="OK"):
    response = MagicMock()
    response.status_code = status_code
    response.reason = reason
    response.json.return_value = payload if payload is not None else {"nodes": []}
    if status_code >= 400:
        error = requests.HTTPError(f"{status_code} {reason}")
        error.response = response
        response.raise_for_status.side_effect = error
    return response


@pytest.fixture
def session():
    session = MagicMock(spec=requests.Session)
    session.headers = {}
    return session


class TestConfig:
    def test_named_endpoints_resolve(self):
        assert WLOSearchConfig(endpoint="STAGING").base_url == (
            "https://repository.staging.openeduhub.net/edu-sharing/rest"
        )
        assert WLOSearchConfig().base_url == "https://redaktion.openeduhub.net/edu-sharing/rest"

    def test_custom_url_kept(self):
        config = WLOSearchConfig(endpoint="https://example.org/edu-sharing/rest/")
        assert config.base_url == "https://example.org/edu-sharing/rest"

    def test_session_headers_and_proxy(self, session):
        client = WLOSearchClient(WLOSearchConfig(proxy_url="http://proxy:3128"), session)

        assert session.headers["User-Agent"] == "WLO-KI-Editor"
        assert session.headers["Accept"] == "application/json"
        assert client.proxies == {"http": "http://proxy:3128", "https": "http://proxy:3128"}


class TestBuildCriteria:
    def test_title_becomes_first_ngsearchword(self):
        criteria = WLOSearchClient.build_criteria(
            ["ccm:oeh_lrt_aggregated", "cclom:title", "ccm:taxonid"],
            ["uri-worksheet", "Brüche", "uri-380"],
        )

        assert criteria == [
            {"property": "ngsearchword", "values": ["Brüche"]},
            {"property": "ccm:oeh_lrt_aggregated", "values": ["uri-worksheet"]},
            {"property": "virtual:taxonid", "values": ["uri-380"]},
        ]

    def test_empty_values_skipped(self):
        assert WLOSearchClient.build_criteria(["cclom:title"], [""]) == []

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            WLOSearchClient.build_criteria(["cclom:title"], [])


class TestSearch:
    def test_and_mode_sends_single_request(self, session, node_factory):
        session.post.return_value = mock_response({"nodes": [node_factory("n1")]})
        client = WLOSearchClient(WLOSearchConfig(timeout=12), session)

        result = client.search(["cclom:title", "ccm:taxonid"], ["Brüche", "uri-380"], max_items=7)

        assert [n.node_id for n in result.nodes] == ["n1"]
        session.post.assert_called_once()
        args, kwargs = session.post.call_args
        assert args[0].endswith("/search/v1/queries/-home-/mds_oeh/ngsearch")
        assert kwargs["params"] == {
            "contentType": "FILES",
            "maxItems": "7",
            "skipCount": "0",
            "propertyFilter": "-all-",
        }
        assert kwargs["json"] == {
            "criteria": [
                {"property": "ngsearchword", "values": ["Brüche"]},
                {"property": "virtual:taxonid", "values": ["uri-380"]},
            ]
        }
        assert kwargs["timeout"] == 12

    def test_max_items_is_a_hard_cap(self, session, node_factory):
        nodes = [node_factory(f"n{i}") for i in range(5)]
        session.post.return_value = mock_response({"nodes": nodes})
        client = WLOSearchClient(session=session)

        result = client.search(["cclom:title"], ["Brüche"], max_items=2)

        assert len(result.nodes) == 2

    def test_or_mode_merges_and_deduplicates(self, session, node_factory):
        session.post.side_effect = [
            mock_response({"nodes": [node_factory("a"), node_factory("b")]}),
            mock_response({"nodes": [node_factory("b"), node_factory("c")]}),
        ]
        client = WLOSearchClient(session=session)

        result = client.search(
            ["cclom:title", "ccm:taxonid"],
            ["Brüche", "uri-380"],
            max_items=5,
            combine_mode=CombineMode.OR,
        )

        assert [n.node_id for n in result.nodes] == ["a", "b", "c"]
        assert session.post.call_count == 2

    def test_or_mode_accepts_string(self, session):
        session.post.return_value = mock_response()
        client = WLOSearchClient(session=session)

        client.search(["cclom:title"], ["Brüche"], combine_mode="OR")

        session.post.assert_called_once()

    def test_empty_criteria_make_no_request(self, session):
        client = WLOSearchClient(session=session)

        result = client.search([], [])

        assert result.nodes == []
        session.post.assert_not_called()

    def test_cancelled_token_prevents_request(self, session):
        token = CancellationToken()
        token.cancel()
        client = WLOSearchClient(session=session)

        with pytest.raises(OperationCancelled):
            client.search(["cclom:title"], ["Brüche"], cancel_token=token)

        session.post.assert_not_called()


class TestErrors:
    def test_http_error_carries_status(self, session):
        session.post.return_value = mock_response(status_code=503, reason="Service Unavailable")
        client = WLOSearchClient(session=session)

        with pytest.raises(WLOSearchError) as exc_info:
            client.search(["cclom:title"], ["Brüche"])

        assert exc_info.value.status_code == 503
        assert "503 Service Unavailable" in str(exc_info.value)

    def test_transport_error(self, session):
        session.post.side_effect = requests.ConnectionError("connection refused")
        client = WLOSearchClient(session=session)

        with pytest.raises(WLOSearchError, match="connection refused"):
            client.search(["cclom:title"], ["Brüche"])

    def test_invalid_json(self, session):
        response = mock_response()
        response.json.side_effect = ValueError("Expecting value")
        session.post.return_value = response
        client = WLOSearchClient(session=session)

        with pytest.raises(WLOSearchError, match="invalid JSON"):
            client.search(["cclom:title"], ["Brüche"])

    def test_unexpected_shape(self, session):
        session.post.return_value = mock_response({"nodes": "nope"})
        client = WLOSearchClient(session=session)

        with pytest.raises(WLOSearchError, match="Unexpected WLO response shape"):
            client.search(["cclom:title"], ["Brüche"])
