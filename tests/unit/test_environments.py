"""Unit tests for the environment-level workflows."""

from unittest.mock import MagicMock

import pytest

from template_agent.enrichers.environments import (
    apply_environments,
    assign_filter_criteria,
    enrich_environments,
    parse_environments,
    template_context,
)
from template_agent.enrichers.resource_processor import ProcessOptions, ResourceProcessor
from template_agent.exceptions import OperationCancelled
from template_agent.models.resources import ResourceSource
from template_agent.utils.cancellation import CancellationToken
from template_agent.utils.status import StatusLog


class TestTemplateContext:
    def test_reads_subject_and_level(self, sample_template):
        assert template_context(sample_template) == {
            "subject": "Mathematik",
            "educational_level": "Sekundarstufe I",
        }

    def test_missing_context(self):
        assert template_context({"context": []}) == {"subject": "", "educational_level": ""}


class TestParseEnvironments:
    def test_stale_metadata_is_dropped(self, sample_template):
        materials = sample_template["environments"][0]["materials"]
        materials[0]["wlo_metadata"] = [{"title": "Alt", "resourceType": "Video"}]
        materials[1]["wlo_metadata"] = {"title": "Tafelbild"}

        (env,) = parse_environments(sample_template["environments"])

        assert env.materials[0].source == ResourceSource.FILTER
        assert env.materials[0].wlo_metadata is None
        assert env.materials[1].wlo_metadata is None
        assert env.materials[0].filter_criteria == {"cclom:title": "Bruchrechnen"}

    def test_database_metadata_is_kept(self, sample_template):
        sample_template["environments"][0]["services"] = [
            {"id": "S1", "name": "WLO", "source": "database", "wlo_metadata": [{"title": "x"}]}
        ]

        (env,) = parse_environments(sample_template["environments"])

        assert env.services[0].wlo_metadata[0].title == "x"

    def test_clean_environments_keep_identity(self, sample_template):
        (env,) = parse_environments(sample_template["environments"])
        assert parse_environments([env])[0] is env


class TestAssignFilterCriteria:
    def test_generates_for_manual_and_filter_resources(self, sample_template):
        sample_template["environments"][0]["services"] = [
            {"id": "S1", "name": "WLO", "source": "database", "wlo_metadata": []}
        ]
        generator = MagicMock()
        generator.generate.return_value = {"cclom:title": "Brüche"}
        status = StatusLog()

        (env,) = assign_filter_criteria(
            sample_template["environments"],
            generator,
            status,
            subject="Mathematik",
            educational_level="Sekundarstufe I",
        )

        assert generator.generate.call_count == 3
        for resource in env.materials + env.tools:
            assert resource.source == ResourceSource.FILTER
            assert resource.filter_criteria == {"cclom:title": "Brüche"}
        assert env.services[0].source == ResourceSource.DATABASE
        contexts = [call.args[0] for call in generator.generate.call_args_list]
        assert contexts[0].item_kind.value == "material"
        assert contexts[2].item_kind.value == "tool"
        assert contexts[2].subject == "Mathematik"

    def test_cancelled_token_aborts(self, sample_template):
        token = CancellationToken()
        token.cancel()
        generator = MagicMock()

        with pytest.raises(OperationCancelled):
            assign_filter_criteria(
                sample_template["environments"], generator, cancel_token=token
            )

        generator.generate.assert_not_called()


class TestEnrichEnvironments:
    def test_enriches_each_kind(self, sample_template, search_double, node_factory):
        client = search_double(
            results={"Bruchrechnen": [node_factory("n1")], "GeoGebra": [node_factory("g1")]}
        )

        (env,) = enrich_environments(sample_template["environments"], ResourceProcessor(client))

        assert env.materials[0].database_id == "n1"
        assert env.materials[1].source == ResourceSource.MANUAL
        assert env.tools[0].database_id == "g1"

    def test_cancel_between_environments_keeps_finished_ones(
        self, sample_template, search_double, node_factory
    ):
        second = dict(sample_template["environments"][0], id="ENV2", name="Computerraum")
        environments = parse_environments([sample_template["environments"][0], second])
        token = CancellationToken()
        client = search_double(
            results={"Bruchrechnen": [node_factory("n1")], "GeoGebra": [node_factory("g1")]}
        )
        processor = ResourceProcessor(client)

        def status(message):
            if message.startswith("Finished tools"):
                token.cancel()

        with pytest.raises(OperationCancelled) as exc_info:
            enrich_environments(
                environments, processor, status, ProcessOptions(cancel_token=token)
            )

        partial = exc_info.value.partial_result
        assert [env.id for env in partial] == ["ENV1", "ENV2"]
        assert partial[0].materials[0].source == ResourceSource.DATABASE
        assert partial[1] is environments[1]


class TestApplyEnvironments:
    def test_only_environments_replaced(self, sample_template, search_double, node_factory):
        client = search_double(results={"Bruchrechnen": [node_factory("n1", title="Brüche")]})
        environments = enrich_environments(
            sample_template["environments"], ResourceProcessor(client)
        )

        updated = apply_environments(sample_template, environments)

        material = updated["environments"][0]["materials"][0]
        assert material["source"] == "database"
        assert material["wlo_metadata"][0]["title"] == "Brüche"
        assert "previewUrl" in material["wlo_metadata"][0]
        assert updated["metadata"] == sample_template["metadata"]
        # Input template untouched
        assert sample_template["environments"][0]["materials"][0]["source"] == "filter"
