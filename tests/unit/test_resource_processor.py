"""Unit tests for the batch orchestrator."""

import threading
from unittest.mock import MagicMock

import pytest

from template_agent.enrichers.resource_processor import (
    ProcessOptions,
    ResourceProcessor,
    iter_batches,
)
from template_agent.exceptions import OperationCancelled
from template_agent.models.resources import Material, ResourceKind, ResourceSource, Tool
from template_agent.utils.cancellation import CancellationToken
from template_agent.utils.status import StatusLog


def filter_material(index: int, term: str = None) -> Material:
    term = term or f"term{index}"
    return Material(
        id=f"M{index}",
        name=f"Material {index}",
        source=ResourceSource.FILTER,
        filter_criteria={"cclom:title": term},
    )


class TestIterBatches:
    def test_splits_into_fixed_size_batches(self):
        assert list(iter_batches(list(range(7)), 5)) == [[0, 1, 2, 3, 4], [5, 6]]

    def test_empty_input(self):
        assert list(iter_batches([], 5)) == []

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            list(iter_batches([1], 0))


class TestProcessOrderAndPassThrough:
    def test_output_keeps_length_and_id_order(self, search_double, node_factory):
        resources = [
            Material(id="M0", name="Tafel"),
            filter_material(1),
            Material(id="M2", name="Kreide", source=ResourceSource.MANUAL),
            filter_material(3),
        ]
        client = search_double(results={"term1": [node_factory("n1")], "term3": []})
        processor = ResourceProcessor(client)

        result = processor.process(resources, ResourceKind.MATERIAL)

        assert [r.id for r in result] == ["M0", "M1", "M2", "M3"]

    def test_non_filter_resources_are_identical_objects(self, search_double, node_factory):
        manual = Material(id="M0", name="Tafel")
        database = Material(id="M1", name="Video", source=ResourceSource.DATABASE)
        resources = [manual, filter_material(2), database]
        client = search_double(results={"term2": [node_factory("n2")]})

        result = ResourceProcessor(client).process(resources, "material")

        assert result[0] is manual
        assert result[2] is database

    def test_no_filter_resources_returns_input_without_searching(self):
        client = MagicMock()
        resources = [Material(id="M0", name="Tafel")]

        result = ResourceProcessor(client).process(resources, ResourceKind.MATERIAL)

        assert result == resources
        assert result[0] is resources[0]
        client.search.assert_not_called()

    def test_empty_input(self):
        assert ResourceProcessor(MagicMock()).process([], ResourceKind.TOOL) == []


class TestEnrichment:
    def test_three_nodes_are_attached_in_order(self, search_double, node_factory):
        nodes = [
            node_factory("a", title="Brüche 1", lrt_label="Arbeitsblatt"),
            node_factory("b", title="Brüche 2"),
            node_factory("c", title="Brüche 3"),
        ]
        client = search_double(results={"Bruchrechnen": nodes})
        resource = filter_material(1, term="Bruchrechnen")

        (result,) = ResourceProcessor(client).process([resource], ResourceKind.MATERIAL)

        assert result.source == ResourceSource.DATABASE
        assert result.database_id == "a,b,c"
        assert len(result.wlo_metadata) == 3
        assert [m.title for m in result.wlo_metadata] == ["Brüche 1", "Brüche 2", "Brüche 3"]
        assert result.wlo_metadata[0].resource_type == "Arbeitsblatt"
        # Original is not mutated
        assert resource.source == ResourceSource.FILTER
        assert resource.wlo_metadata is None

    def test_search_receives_criteria_and_options(self, search_double):
        client = search_double()
        resource = Tool(
            id="T1",
            name="GeoGebra",
            source=ResourceSource.FILTER,
            filter_criteria={"cclom:title": "GeoGebra", "ccm:taxonid": "uri-380"},
        )
        options = ProcessOptions(max_items=3)

        ResourceProcessor(client).process([resource], ResourceKind.TOOL, options=options)

        call = client.call_for("GeoGebra")
        assert call["properties"] == ["cclom:title", "ccm:taxonid"]
        assert call["values"] == ["GeoGebra", "uri-380"]
        assert call["max_items"] == 3

    def test_zero_results_leave_resource_unchanged(self, search_double):
        client = search_double(results={})
        resource = filter_material(1)
        status = StatusLog()

        (result,) = ResourceProcessor(client).process([resource], ResourceKind.MATERIAL, status)

        assert result is resource
        assert result.source == ResourceSource.FILTER
        assert any("No WLO results" in line for line in status.lines)

    def test_empty_criteria_emit_exactly_one_status_line(self):
        client = MagicMock()
        resource = Material(
            id="M1", name="Leer", source=ResourceSource.FILTER, filter_criteria={}
        )
        status = StatusLog()

        (result,) = ResourceProcessor(client).process([resource], ResourceKind.MATERIAL, status)

        assert result.source == ResourceSource.FILTER
        no_criteria = [line for line in status.lines if "No filter criteria defined" in line]
        assert len(no_criteria) == 1
        client.search.assert_not_called()

    def test_criteria_with_only_empty_values_count_as_empty(self):
        client = MagicMock()
        resource = Material(
            id="M1",
            name="Leer",
            source=ResourceSource.FILTER,
            filter_criteria={"cclom:title": "", "ccm:taxonid": ""},
        )
        status = StatusLog()

        (result,) = ResourceProcessor(client).process([resource], ResourceKind.MATERIAL, status)

        assert result is resource
        assert sum("No filter criteria defined" in line for line in status.lines) == 1
        assert not any("No WLO results" in line for line in status.lines)
        client.search.assert_not_called()

    def test_missing_criteria_without_generator_count_as_empty(self):
        client = MagicMock()
        resource = Material(id="M1", name="Ohne", source=ResourceSource.FILTER)

        (result,) = ResourceProcessor(client).process([resource], ResourceKind.MATERIAL)

        assert result is resource
        client.search.assert_not_called()


class TestCriteriaGeneration:
    def test_generates_criteria_when_missing(self, search_double, node_factory):
        client = search_double(results={"Brüche": [node_factory("n1")]})
        generator = MagicMock()
        generator.generate.return_value = {"cclom:title": "Brüche"}
        resource = Material(
            id="M1", name="Arbeitsblatt Brüche", material_type="Arbeitsblatt",
            source=ResourceSource.FILTER,
        )
        options = ProcessOptions(subject="Mathematik", educational_level="Sekundarstufe I")

        (result,) = ResourceProcessor(client, criteria_generator=generator).process(
            [resource], ResourceKind.MATERIAL, options=options
        )

        context = generator.generate.call_args.args[0]
        assert context.item_name == "Arbeitsblatt Brüche"
        assert context.item_type == "Arbeitsblatt"
        assert context.subject == "Mathematik"
        assert result.filter_criteria == {"cclom:title": "Brüche"}
        assert result.source == ResourceSource.DATABASE

    def test_empty_criteria_are_not_regenerated(self):
        generator = MagicMock()
        resource = Material(
            id="M1", name="Leer", source=ResourceSource.FILTER, filter_criteria={}
        )

        ResourceProcessor(MagicMock(), criteria_generator=generator).process(
            [resource], ResourceKind.MATERIAL
        )

        generator.generate.assert_not_called()


class TestBatching:
    def test_seven_resources_run_as_five_then_two(self, search_double):
        client = search_double(delay=0.1)
        resources = [filter_material(i) for i in range(7)]

        ResourceProcessor(client, batch_size=5).process(resources, ResourceKind.MATERIAL)

        first = [client.call_for(f"term{i}") for i in range(5)]
        second = [client.call_for(f"term{i}") for i in range(5, 7)]
        first_batch_end = max(call["finished"] for call in first)
        assert all(call["started"] >= first_batch_end for call in second)
        # Items of one batch overlap in time
        assert max(c["started"] for c in first) < min(c["finished"] for c in first)

    def test_batch_size_limits_concurrency(self, search_double):
        active = []
        peak = []
        lock = threading.Lock()

        def on_call(term):
            with lock:
                active.append(term)
                peak.append(len(active))

        client = search_double(delay=0.05, on_call=on_call)
        original_search = client.search

        def tracking_search(*args, **kwargs):
            try:
                return original_search(*args, **kwargs)
            finally:
                with lock:
                    active.pop()

        client.search = tracking_search
        resources = [filter_material(i) for i in range(6)]

        ResourceProcessor(client, batch_size=2).process(resources, ResourceKind.MATERIAL)

        assert max(peak) <= 2

    def test_one_failure_does_not_stop_siblings(self, search_double, node_factory):
        results = {f"term{i}": [node_factory(f"n{i}")] for i in range(5)}
        client = search_double(results=results, failures={"term2"})
        resources = [filter_material(i) for i in range(5)]
        status = StatusLog()

        result = ResourceProcessor(client).process(resources, ResourceKind.MATERIAL, status)

        assert result[2] is resources[2]
        assert [r.source for i, r in enumerate(result) if i != 2] == [
            ResourceSource.DATABASE
        ] * 4
        assert any("Error processing" in line and "Material 2" in line for line in status.lines)

    def test_invalid_batch_size(self):
        with pytest.raises(ValueError):
            ResourceProcessor(MagicMock(), batch_size=0)


class TestCancellation:
    def test_cancel_during_first_batch_skips_later_batches(self, search_double, node_factory):
        token = CancellationToken()
        results = {f"term{i}": [node_factory(f"n{i}")] for i in range(7)}

        def on_call(term):
            if term == "term0":
                token.cancel("stop")

        client = search_double(results=results, delay=0.05, on_call=on_call)
        resources = [filter_material(i) for i in range(7)]
        options = ProcessOptions(cancel_token=token)

        with pytest.raises(OperationCancelled) as exc_info:
            ResourceProcessor(client, batch_size=5).process(
                resources, ResourceKind.MATERIAL, options=options
            )

        called = {call["term"] for call in client.calls}
        assert "term5" not in called
        assert "term6" not in called
        partial = exc_info.value.partial_result
        assert [r.id for r in partial] == [r.id for r in resources]
        assert partial[5] is resources[5]
        assert partial[6] is resources[6]

    def test_settled_batches_keep_results(self, search_double, node_factory):
        token = CancellationToken()
        results = {f"term{i}": [node_factory(f"n{i}")] for i in range(4)}

        def on_call(term):
            if term == "term2":
                token.cancel()

        client = search_double(results=results, delay=0.02, on_call=on_call)
        resources = [filter_material(i) for i in range(4)]

        with pytest.raises(OperationCancelled) as exc_info:
            ResourceProcessor(client, batch_size=2).process(
                resources, ResourceKind.MATERIAL, options=ProcessOptions(cancel_token=token)
            )

        partial = exc_info.value.partial_result
        assert partial[0].source == ResourceSource.DATABASE
        assert partial[1].source == ResourceSource.DATABASE

    def test_cancelled_before_start(self):
        token = CancellationToken()
        token.cancel()
        client = MagicMock()

        with pytest.raises(OperationCancelled):
            ResourceProcessor(client).process(
                [filter_material(1)],
                ResourceKind.MATERIAL,
                options=ProcessOptions(cancel_token=token),
            )

        client.search.assert_not_called()
