"""Prompts for WLO filter criteria and role-level content suggestions."""

from typing import Iterable, Sequence

from template_agent.models.resources import FilterContext

SEARCH_TERM_SYSTEM_PROMPT = (
    "You are a precise search term generator that returns only single concepts."
)

LABEL_CHOICE_SYSTEM_PROMPT = (
    "You are a helpful assistant that selects appropriate educational metadata values."
)


def build_search_term_prompt(context: FilterContext) -> str:
    """Ask for the 1-2 word core topic of a resource, without metadata terms."""
    return f"""
Generate a SINGLE, CONCISE search term that represents ONLY the core topic or concept, without including any metadata like:
- Resource type (e.g. "Arbeitsblatt", "Video", "Tool")
- Subject area (e.g. "Mathematik", "Physik")
- Educational level (e.g. "Grundschule", "Sekundarstufe")

Context:
Item: {context.item_name} ({context.item_kind.value})
Subject: {context.subject}
Educational Level: {context.educational_level}
{_activity_lines(context)}
IMPORTANT:
- Return ONLY the core topic/concept
- Use ONLY 1-2 words maximum
- EXCLUDE any metadata terms
- Focus on what is being taught/learned
- Do NOT include resource types or context information

Examples:
Input -> Output
"Arbeitsblatt Addition" -> "Addition"
"Mathematik Video Bruchrechnen" -> "Bruchrechnen"
"Physik Simulator Pendel" -> "Pendel"
"Vokabeltrainer Englisch" -> "Vokabeln"
"Chemie Experiment Säuren" -> "Säuren"
"""


def build_label_choice_prompt(
    context: FilterContext, what: str, options: Iterable[str]
) -> str:
    """Ask the model to pick exactly one label from ``options``.

    Args:
        context: Resource context
        what: Human name of the vocabulary ("content type", "discipline")
        options: Allowed labels, one per line in the prompt
    """
    option_lines = "\n".join(options)
    return f"""
Based on the following context, select the most appropriate {what} from the given options.

Context:
Item: {context.item_name}
Type: {context.item_kind.value}{f" ({context.item_type})" if context.item_type else ""}
Subject: {context.subject}
Educational Level: {context.educational_level}
{_activity_lines(context)}
Available options:
{option_lines}

Return only the exact name of the most appropriate option from the list.
"""


def _activity_lines(context: FilterContext) -> str:
    lines = []
    if context.activity_name:
        lines.append(f"Activity: {context.activity_name}")
    if context.role_name:
        lines.append(f"Role: {context.role_name}")
    if context.task_description:
        lines.append(f"Task: {context.task_description}")
    return "\n".join(lines) + "\n" if lines else ""


# ============================================================================
# Role-level content suggestion
# ============================================================================

CONTENT_SUGGESTION_SYSTEM_PROMPT = (
    "You are an expert for digital educational resources. "
    "You suggest short search topics and pick content types from a fixed list."
)

RANKING_SYSTEM_PROMPT = (
    "You are an expert for selecting didactic resources. "
    "You score candidates by how well they fit a concrete task."
)

TEACHER_CONTENT_HINT = "Präsentation, Unterrichtsplanung, Text"
LEARNER_CONTENT_HINT = "Arbeitsblatt, Video, Interaktives Medium, Lernspiel, Übung, Test/Quiz"


def build_content_suggestion_prompt(
    context: FilterContext,
    content_types: Iterable[str],
    *,
    activity_description: str = "",
    phase_name: str = "",
    actor_name: str = "",
    for_teacher: bool = False,
    environment_name: str = "",
    target_group: str = "",
) -> str:
    """Ask for 1-2 materials (search topic + content type) for one activity role."""
    audience = "teacher" if for_teacher else "learners"
    hint = TEACHER_CONTENT_HINT if for_teacher else LEARNER_CONTENT_HINT
    type_lines = "\n".join(f'- "{label}"' for label in content_types)
    return f"""
Suggest 1-2 suitable digital learning materials for this activity and role.

Context:
{_activity_lines(context)}Description: {activity_description}
Phase: {phase_name}
Actor: {actor_name} ({audience})
Learning environment: {environment_name or "none in particular"}
Subject: {context.subject}
Educational Level: {context.educational_level}
Target group: {target_group}

Available content types (use ONLY these):
{type_lines}

RULES:
1. Search term: SHORT (1-3 words), ONLY the topic, NO content type in the term
   Good: "Addition", "Bruchrechnung", "Photosynthese"
   Bad: "Addition Video", "Arbeitsblatt Bruchrechnung"
2. Content type: EXACTLY one label from the list above
3. Prefer materials for the {audience}: {hint}
4. Reasoning: one sentence on why the material fits the task
"""


def build_ranking_prompt(
    context: FilterContext, content_type: str, candidates: Sequence[dict]
) -> str:
    """Ask the model to score the numbered candidates and keep the best three."""
    candidate_lines = "\n".join(
        f"[{c['index']}] {c['title']} ({c['type']}): {c['description']}" for c in candidates
    )
    return f"""
Rate these educational resources by relevance.

Context:
{_activity_lines(context)}Requested content type: {content_type}

Resources:
{candidate_lines}

Pick the 3 most relevant resources. Give each an index from the list
and a score from 0 to 100. Return only the best 3.
"""
