"""Unit tests for template normalization."""

from template_agent.models.resources import ResourceKind
from template_agent.utils.ids import SequentialIdAllocator
from template_agent.validators.normalizer import (
    normalize_actor,
    normalize_resource,
    normalize_sequence,
    normalize_template,
    parse_duration,
)
from template_agent.validators.template_validator import validate_document


class TestParseDuration:
    def test_number(self):
        assert parse_duration(20) == 20

    def test_string_with_unit(self):
        assert parse_duration("45 Minuten") == 45

    def test_unparseable(self):
        assert parse_duration("eine Weile") == 15
        assert parse_duration(None) == 15


class TestNormalizeResource:
    def test_defaults(self):
        resource = normalize_resource({}, ResourceKind.TOOL, SequentialIdAllocator())

        assert resource == {
            "id": "T1",
            "name": "Werkzeug",
            "tool_type": "Werkzeug",
            "source": "manual",
            "access_link": "",
        }

    def test_generic_type_key_is_mapped(self):
        resource = normalize_resource(
            {"id": "M9", "name": "Karten", "type": "Karten"},
            ResourceKind.MATERIAL,
            SequentialIdAllocator(),
        )

        assert resource["material_type"] == "Karten"
        assert "type" not in resource

    def test_metadata_dropped_from_non_database_resources(self):
        resource = normalize_resource(
            {"id": "M1", "name": "Video", "source": "filter", "wlo_metadata": {"title": "x"}},
            ResourceKind.MATERIAL,
            SequentialIdAllocator(),
        )

        assert "wlo_metadata" not in resource
        assert resource["source"] == "filter"

    def test_metadata_kept_on_database_resources(self):
        resource = normalize_resource(
            {"id": "M1", "name": "Video", "source": "database", "wlo_metadata": [{"title": "x"}]},
            ResourceKind.MATERIAL,
            SequentialIdAllocator(),
        )

        assert resource["wlo_metadata"] == [{"title": "x"}]

    def test_unknown_source_becomes_manual(self):
        resource = normalize_resource(
            {"name": "Beamer", "source": "ai"}, ResourceKind.TOOL, SequentialIdAllocator()
        )
        assert resource["source"] == "manual"

    def test_extra_keys_preserved(self):
        resource = normalize_resource(
            {"id": "M1", "name": "Buch", "search_query": "Brüche"},
            ResourceKind.MATERIAL,
            SequentialIdAllocator(),
        )
        assert resource["search_query"] == "Brüche"


class TestNormalizeActor:
    def test_default_names_and_nested_defaults(self):
        actor = normalize_actor(
            {"id": "A2", "competencies": {"language_skills": {"languages": ["de"]}}},
            SequentialIdAllocator(),
        )

        assert actor["name"] == "Lernende"
        assert actor["type"] == "Einzelperson"
        assert actor["competencies"]["language_skills"] == {
            "languages": ["de"],
            "proficiency_levels": {},
        }
        assert actor["interests_and_goals"]["motivation"] == {"type": "mixed", "level": "medium"}

    def test_non_dict_is_dropped(self):
        assert normalize_actor("A1", SequentialIdAllocator()) is None


class TestNormalizeSequence:
    def test_bare_activities_are_wrapped_in_one_phase(self):
        actors = [{"id": "A1", "name": "Lehrperson", "type": "Einzelperson"}]
        sequence = normalize_sequence(
            {
                "sequence_title": "Einstieg",
                "activities": [
                    {
                        "activity_title": "Brainstorming",
                        "duration": "10 Minuten",
                        "actor_refs": ["A1"],
                        "environment_ref": "ENV1",
                        "material_refs": ["M1"],
                    }
                ],
            },
            0,
            actors,
        )

        assert sequence["sequence_id"] == "SEQ1"
        assert sequence["sequence_name"] == "Einstieg"
        assert "activities" not in sequence
        (phase,) = sequence["phases"]
        assert phase["phase_id"] == "SEQ1-P1"
        (activity,) = phase["activities"]
        assert activity["name"] == "Brainstorming"
        assert activity["duration"] == 10
        (role,) = activity["roles"]
        assert role["role_id"] == "ACT1-R1"
        assert role["actor_id"] == "A1"
        assert role["learning_environment"]["selected_materials"] == ["M1"]

    def test_existing_roles_are_kept(self):
        roles = [{"role_id": "R1", "role_name": "Moderation", "actor_id": "A1"}]
        sequence = normalize_sequence(
            {"phases": [{"activities": [{"name": "Quiz", "roles": roles}]}]}, 0, []
        )

        assert sequence["phases"][0]["phase_name"] == "Phase 1"
        assert sequence["phases"][0]["activities"][0]["roles"] == roles


class TestNormalizeTemplate:
    def test_empty_input_becomes_valid_template(self):
        normalized = normalize_template({})

        assert validate_document(normalized).ok
        assert normalized["metadata"]["version"] == "1.0"
        assert normalized["environments"] == []

    def test_non_dict_input(self):
        assert validate_document(normalize_template(None)).ok

    def test_prerequisites_list_is_joined(self):
        normalized = normalize_template({"context": {"prerequisites": ["Addition", "Division"]}})
        assert normalized["context"]["prerequisites"] == "Addition, Division"

    def test_input_not_modified(self, sample_template):
        snapshot = repr(sample_template)
        normalize_template(sample_template)
        assert repr(sample_template) == snapshot

    def test_keeps_valid_content(self, sample_template):
        normalized = normalize_template(sample_template, SequentialIdAllocator())

        materials = normalized["environments"][0]["materials"]
        assert [m["id"] for m in materials] == ["M1", "M2"]
        assert materials[0]["filter_criteria"] == {"cclom:title": "Bruchrechnen"}
        assert normalized["context"]["subject"] == "Mathematik"
