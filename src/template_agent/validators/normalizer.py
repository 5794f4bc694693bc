"""Fill gaps in model-generated templates before schema validation.

Model answers often omit sections, use alternative key names
(``activity_title``, ``sequence_title``), put activities directly under a
sequence, or leave ids out. ``normalize_template`` returns a document that
has every section the schema requires, with missing ids taken from an
injected allocator.
"""

import copy
import re
from datetime import UTC, datetime
from typing import Any, Dict, List, Optional

from template_agent.models.resources import ResourceKind, ResourceSource
from template_agent.utils.ids import IdAllocator, uuid_allocator

DEFAULT_ACTOR_DATA: Dict[str, Any] = {
    "demographic_data": {
        "age": 0,
        "age_range": "",
        "gender": "",
        "gender_distribution": "",
        "ethnic_background": "",
    },
    "education": {"education_level": "", "class_level": "", "subject_focus": ""},
    "competencies": {
        "subject_competencies": [],
        "cognitive_competencies": [],
        "methodical_competencies": [],
        "affective_competencies": [],
        "digital_competencies": [],
        "language_skills": {"languages": [], "proficiency_levels": {}},
    },
    "social_form": "",
    "learning_requirements": {
        "learning_preferences": [],
        "special_needs": [],
        "technical_requirements": [],
    },
    "interests_and_goals": {
        "interests": [],
        "goals": [],
        "motivation": {"type": "mixed", "level": "medium"},
    },
    "social_structure": {"group_size": 1, "heterogeneity": ""},
}

RESOURCE_ID_PREFIXES = {
    ResourceKind.MATERIAL: "M",
    ResourceKind.TOOL: "T",
    ResourceKind.SERVICE: "S",
}

RESOURCE_DEFAULT_NAMES = {
    ResourceKind.MATERIAL: "Material",
    ResourceKind.TOOL: "Werkzeug",
    ResourceKind.SERVICE: "Dienst",
}


def _dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _merge_defaults(defaults: Dict[str, Any], value: Any) -> Dict[str, Any]:
    """Recursive merge: keys from ``value`` win, nested dicts are merged."""
    merged = copy.deepcopy(defaults)
    for key, item in _dict(value).items():
        if isinstance(merged.get(key), dict) and isinstance(item, dict):
            merged[key] = _merge_defaults(merged[key], item)
        else:
            merged[key] = item
    return merged


def _default_actor_name(actor_id: str, actor_type: str) -> str:
    if actor_id == "A1":
        return "Lehrperson"
    if actor_id == "A2":
        return "Lernende"
    if actor_type == "Gruppe":
        return "Lerngruppe"
    return "Akteur"


def parse_duration(value: Any, default: int = 15) -> int:
    """Minutes from ``15``, ``"15"`` or ``"15 Minuten"``."""
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        match = re.search(r"\d+", value)
        return int(match.group(0)) if match else default
    return default


# ============================================================================
# Actors and environments
# ============================================================================


def normalize_actor(actor: Any, allocate_id: IdAllocator) -> Optional[Dict[str, Any]]:
    if not isinstance(actor, dict):
        return None

    actor_id = actor.get("id") or allocate_id("A")
    actor_type = actor.get("type") or "Einzelperson"
    name = actor.get("name")
    if not name or name == "Unbenannter Akteur":
        name = _default_actor_name(actor_id, actor_type)

    normalized = _merge_defaults(DEFAULT_ACTOR_DATA, actor)
    normalized.update({"id": actor_id, "name": name, "type": actor_type})
    return normalized


def normalize_resource(
    resource: Any, kind: ResourceKind, allocate_id: IdAllocator
) -> Optional[Dict[str, Any]]:
    """Default a resource's id, name, type label, source and access link.

    WLO metadata is only kept on database resources.
    """
    if not isinstance(resource, dict):
        return None

    normalized = dict(resource)
    normalized["id"] = resource.get("id") or allocate_id(RESOURCE_ID_PREFIXES[kind])
    normalized["name"] = resource.get("name") or RESOURCE_DEFAULT_NAMES[kind]
    # Flow-generation answers use a generic "type" key
    normalized[kind.type_field] = (
        resource.get(kind.type_field)
        or resource.get("type")
        or kind.model.model_fields[kind.type_field].default
    )
    normalized.pop("type", None)

    source = resource.get("source")
    if source not in {s.value for s in ResourceSource}:
        source = ResourceSource.MANUAL.value
    normalized["source"] = source
    normalized["access_link"] = resource.get("access_link") or ""

    if source != ResourceSource.DATABASE.value:
        normalized.pop("wlo_metadata", None)
    for key in ("database_id", "filter_criteria", "wlo_metadata"):
        if normalized.get(key) is None:
            normalized.pop(key, None)

    return normalized


def normalize_environment(env: Any, allocate_id: IdAllocator) -> Optional[Dict[str, Any]]:
    if not isinstance(env, dict):
        return None

    normalized = dict(env)
    normalized["id"] = env.get("id") or allocate_id("ENV")
    normalized["name"] = env.get("name") or "Unbenannte Umgebung"
    normalized["description"] = env.get("description") or ""
    for kind in ResourceKind:
        resources = [
            normalize_resource(resource, kind, allocate_id)
            for resource in _list(env.get(kind.list_field))
        ]
        normalized[kind.list_field] = [r for r in resources if r is not None]
    return normalized


# ============================================================================
# Sequences, phases, activities
# ============================================================================


def _generated_roles(
    activity: Dict[str, Any], activity_id: str, name: str, actors: List[Dict[str, Any]]
) -> List[Dict[str, Any]]:
    """One role per actor for activities that arrive without roles."""
    social_form = activity.get("social_form") or "Unterricht"
    actor_refs = _list(activity.get("actor_refs"))
    material_refs = _list(activity.get("material_refs"))
    environment_ref = activity.get("environment_ref")
    description = activity.get("description") or ""

    roles = []
    for index, actor in enumerate(actors, 1):
        referenced = actor.get("id") in actor_refs
        if referenced:
            role_name = social_form
            task = description or f"Bearbeitet \"{name}\""
        else:
            role_name = "Teilnahme"
            task = f"Nimmt teil an \"{name}\""

        role = {
            "role_id": f"{activity_id}-R{index}",
            "role_name": role_name,
            "actor_id": actor.get("id"),
            "task_description": task,
        }
        if environment_ref:
            role["learning_environment"] = {
                "environment_id": environment_ref,
                "selected_materials": list(material_refs) if referenced else [],
                "selected_tools": [],
                "selected_services": [],
            }
        roles.append(role)
    return roles


def normalize_activity(
    activity: Any, index: int, actors: List[Dict[str, Any]]
) -> Dict[str, Any]:
    activity = _dict(activity)
    activity_id = activity.get("activity_id") or activity.get("id") or f"ACT{index + 1}"
    name = activity.get("name") or activity.get("activity_title") or "Aktivität"

    roles = _list(activity.get("roles"))
    if not roles:
        roles = _generated_roles(activity, activity_id, name, actors)

    normalized = dict(activity)
    normalized.update(
        {
            "activity_id": activity_id,
            "name": name,
            "description": activity.get("description") or "",
            "duration": parse_duration(activity.get("duration")),
            "roles": roles,
            "goal": activity.get("goal") or (_list(activity.get("objectives")) or [""])[0],
            "prerequisite_activity": activity.get("prerequisite_activity"),
            "transition_type": activity.get("transition_type") or "sequential",
            "condition_description": activity.get("condition_description"),
            "next_activity": _list(activity.get("next_activity")),
            "assessment": activity.get("assessment")
            or {"type": "formative", "methods": [], "criteria": []},
        }
    )
    return normalized


def normalize_sequence(
    sequence: Any, index: int, actors: List[Dict[str, Any]]
) -> Dict[str, Any]:
    """Normalize a sequence; bare activities are wrapped into a single phase."""
    sequence = _dict(sequence)
    sequence_id = sequence.get("sequence_id") or sequence.get("id") or f"SEQ{index + 1}"
    sequence_name = (
        sequence.get("sequence_name")
        or sequence.get("sequence_title")
        or sequence.get("name")
        or f"Lernsequenz {index + 1}"
    )
    learning_goal = sequence.get("learning_goal") or sequence.get("description") or ""

    phases = _list(sequence.get("phases"))
    activities = _list(sequence.get("activities"))

    if not phases and activities:
        phases = [
            {
                "phase_id": f"{sequence_id}-P1",
                "phase_name": sequence_name,
                "time_frame": sequence.get("time_frame") or "",
                "learning_goal": learning_goal,
                "activities": [
                    normalize_activity(activity, i, actors)
                    for i, activity in enumerate(activities)
                ],
                "prerequisite_phase": None,
                "transition_type": "sequential",
                "condition_description": None,
                "next_phase": None,
            }
        ]
    else:
        phases = [
            {
                **_dict(phase),
                "phase_id": _dict(phase).get("phase_id") or f"{sequence_id}-P{i + 1}",
                "phase_name": _dict(phase).get("phase_name")
                or _dict(phase).get("name")
                or f"Phase {i + 1}",
                "time_frame": _dict(phase).get("time_frame") or "",
                "learning_goal": _dict(phase).get("learning_goal") or "",
                "activities": [
                    normalize_activity(activity, j, actors)
                    for j, activity in enumerate(_list(_dict(phase).get("activities")))
                ],
                "transition_type": _dict(phase).get("transition_type") or "sequential",
            }
            for i, phase in enumerate(phases)
        ]

    normalized = {k: v for k, v in sequence.items() if k != "activities"}
    normalized.update(
        {
            "sequence_id": sequence_id,
            "sequence_name": sequence_name,
            "time_frame": sequence.get("time_frame") or "",
            "learning_goal": learning_goal,
            "phases": phases,
            "prerequisite_sequence": sequence.get("prerequisite_sequence"),
            "transition_type": sequence.get("transition_type") or "sequential",
            "condition_description": sequence.get("condition_description"),
            "next_sequence": sequence.get("next_sequence"),
        }
    )
    return normalized


# ============================================================================
# Template
# ============================================================================


def normalize_template(
    raw: Any, allocate_id: IdAllocator = uuid_allocator
) -> Dict[str, Any]:
    """Return a complete template document built from ``raw``.

    Args:
        raw: Parsed model output (anything that is not a dict counts as empty)
        allocate_id: Called with a prefix ("A", "ENV", "M", "T", "S") for
            every element that arrives without an id

    Returns:
        New template dict; ``raw`` is not modified
    """
    t = copy.deepcopy(_dict(raw))
    metadata = _dict(t.get("metadata"))
    problem = _dict(t.get("problem"))
    context = _dict(t.get("context"))
    solution = _dict(t.get("solution"))

    actors = [a for a in (normalize_actor(a, allocate_id) for a in _list(t.get("actors"))) if a]
    environments = [
        e
        for e in (normalize_environment(e, allocate_id) for e in _list(t.get("environments")))
        if e
    ]

    prerequisites = context.get("prerequisites")
    if isinstance(prerequisites, list):
        prerequisites = ", ".join(str(p) for p in prerequisites)

    sequences = _list(_dict(solution.get("didactic_template")).get("learning_sequences"))

    normalized = {k: v for k, v in t.items()}
    normalized.update(
        {
            "metadata": {
                **metadata,
                "title": metadata.get("title") or "",
                "description": metadata.get("description") or "",
                "keywords": _list(metadata.get("keywords")),
                "author": metadata.get("author") or "",
                "version": metadata.get("version") or "1.0",
                "created": metadata.get("created")
                or datetime.now(UTC).isoformat(),
            },
            "problem": {
                **problem,
                "problem_description": problem.get("problem_description")
                or problem.get("description")
                or "",
                "description": problem.get("description")
                or problem.get("problem_description")
                or "",
                "learning_goals": _list(problem.get("learning_goals")),
                "didactic_keywords": _list(problem.get("didactic_keywords")),
                "challenges": _list(problem.get("challenges")),
            },
            "context": {
                **context,
                "target_group": context.get("target_group") or "",
                "subject": context.get("subject") or "",
                "educational_level": context.get("educational_level") or "",
                "prerequisites": prerequisites or "",
                "time_frame": context.get("time_frame") or "",
            },
            "influence_factors": t.get("influence_factors")
            if isinstance(t.get("influence_factors"), (dict, list))
            else {"pedagogical": [], "organizational": [], "technical": [], "cultural": []},
            "solution": {
                **solution,
                "solution_description": solution.get("solution_description")
                or solution.get("approach")
                or "",
                "didactic_approach": solution.get("didactic_approach") or "",
                "didactic_template": {
                    **_dict(solution.get("didactic_template")),
                    "learning_sequences": [
                        normalize_sequence(seq, i, actors) for i, seq in enumerate(sequences)
                    ],
                },
            },
            "consequences": {
                **_dict(t.get("consequences")),
                "advantages": _list(_dict(t.get("consequences")).get("advantages")),
                "disadvantages": _list(_dict(t.get("consequences")).get("disadvantages")),
            },
            "implementation_notes": t.get("implementation_notes")
            if isinstance(t.get("implementation_notes"), (dict, list))
            else {"tips": [], "common_mistakes": [], "variations": []},
            "related_patterns": _list(t.get("related_patterns")),
            "feedback": {
                **_dict(t.get("feedback")),
                "comments": _list(_dict(t.get("feedback")).get("comments")),
            },
            "sources": _list(t.get("sources")),
            "actors": actors,
            "environments": environments,
        }
    )
    return normalized
