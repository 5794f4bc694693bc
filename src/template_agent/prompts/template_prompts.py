"""Prompts for template completion and learning-flow generation.

Prompts are in German because the templates, labels and WLO vocabularies
they work with are German.
"""

import json
from typing import Any, Dict

COMPLETION_SYSTEM_PROMPT = (
    "Sie sind ein erfahrener didaktischer Assistent, der vielfältige und flexible "
    "Lernszenarien mit allen erforderlichen Details erstellt."
)

SEQUENCING_HINTS = """
Didaktisches Pattern als Rahmen:
- Problemstellung beschreibt Konflikt und Einsatzgebiet des Templates
- Wirk- und Einflussfaktoren identifizieren wirkende Kräfte im Konflikt
- Lösung enthält didaktisches Template mit Unterrichtsablauf
- Ergänzung durch Vor- und Nachteile, Umsetzungshinweise, Verweise auf ähnliche Muster und Quellen

Sequenzierungsoptionen:
- Sequenziell: feste Reihenfolge der Elemente
- Parallel: gleichzeitige Durchführung von Aktivitäten
- Bedingt: Übergänge basieren auf Bedingungen
- Branching: Auswahl zwischen verschiedenen Pfaden
- Looping: Wiederholung einer Aktivität basierend auf Feedback
- Optionale Aktivitäten: freiwillige Wahl zwischen Aktivitäten
"""

# Structural reference handed to the model alongside the current template
EXAMPLE_TEMPLATE: Dict[str, Any] = {
    "metadata": {"title": "", "description": "", "keywords": [], "author": "", "version": "1.0"},
    "problem": {"problem_description": "", "learning_goals": [], "didactic_keywords": []},
    "context": {
        "target_group": "",
        "subject": "",
        "educational_level": "",
        "prerequisites": "",
        "time_frame": "",
    },
    "influence_factors": [{"factor": "", "description": ""}],
    "solution": {
        "solution_description": "",
        "didactic_approach": "",
        "didactic_template": {
            "learning_sequences": [
                {
                    "sequence_id": "SEQ1",
                    "sequence_name": "",
                    "phases": [
                        {
                            "phase_id": "SEQ1-P1",
                            "phase_name": "",
                            "activities": [
                                {
                                    "activity_id": "ACT1",
                                    "name": "",
                                    "duration": 15,
                                    "roles": [
                                        {
                                            "role_id": "ACT1-R1",
                                            "role_name": "",
                                            "actor_id": "A1",
                                            "task_description": "",
                                            "learning_environment": {
                                                "environment_id": "ENV1",
                                                "selected_materials": ["M1"],
                                                "selected_tools": [],
                                                "selected_services": [],
                                            },
                                        }
                                    ],
                                }
                            ],
                        }
                    ],
                }
            ]
        },
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
                    "source": "manual",
                    "access_link": "",
                }
            ],
            "tools": [],
            "services": [],
        }
    ],
}


def build_completion_prompt(template: Dict[str, Any], user_input: str) -> str:
    """Prompt for completing or adapting a template per the user's instructions."""
    return f"""
Als didaktischer Assistent helfen Sie bei der Vervollständigung oder Anpassung dieses Templates. Bitte stellen Sie sicher, dass ALLE folgenden Elemente vollständig und sinnvoll ausgefüllt werden:

1. Allgemeine Metadaten: Titel, Beschreibung, Schlüsselwörter, Autor, Version
2. Patternelemente: Problem, Kontext, Einflussfaktoren, Lösung (didaktischer Ansatz als "Adjektiv + Lernen"), Konsequenzen, Umsetzungshinweise, verwandte Muster, Feedback, Quellen
3. Sequenzierung von Lernsequenzen, Phasen, Aktivitäten und Rollen
4. Integration von Lernumgebungen und Akteuren: jede Rolle braucht actor_id und learning_environment
5. Assessment: formativ oder summativ, Methoden, Erfolgskriterien

WICHTIG:
- Bestehende Ressourcen behalten ihren Quellentyp (source); neue Ressourcen erhalten "manual"
- Alle Abschnitte des Templates müssen erhalten bleiben

Zusätzliche Hinweise:
{SEQUENCING_HINTS}

Aktuelles Template:
{json.dumps(template, indent=2, ensure_ascii=False)}

Beispielstruktur als Referenz:
{json.dumps(EXAMPLE_TEMPLATE, indent=2, ensure_ascii=False)}

Anweisungen des Nutzers:
{user_input}

Bitte geben Sie das vervollständigte Template als JSON-Objekt zurück.
"""


FLOW_SYSTEM_PROMPT = (
    "You are an expert instructional designer specializing in creating detailed learning "
    "sequences with comprehensive resource specifications. Return complete JSON responses "
    "that include all required fields."
)

FLOW_GENERATION_PROMPT = """
Als ein KI-Assistent für didaktisches Design, erstelle eine vollständige Lernsequenz basierend auf den Anforderungen des Nutzers.

ANFORDERUNGEN:
1. Mindestens eine detaillierte Lernumgebung pro Sequenz mit klarem Zweck und Aufbau
2. Jede Aktivität ist mit spezifischen Materialien, Werkzeugen und Diensten verknüpft
3. Jede Rolle ist explizit mit den Ressourcen verknüpft, die sie benötigt
4. Zugriffsmethode (URL oder physischer Ort) für jede Ressource
5. Für neue Ressourcen IMMER Quellentyp "manual" setzen

Gib ein JSON-Objekt mit den Abschnitten metadata, problem, context, influence_factors,
solution, consequences, implementation_notes, related_patterns, feedback, sources,
actors und environments zurück.
"""

ENVIRONMENT_SYSTEM_PROMPT = (
    "You are an expert in designing learning environments with detailed resource "
    "specifications. Return complete JSON responses that include all required fields."
)

_ENVIRONMENT_FOCUS = {
    "physical": [
        "Room layout and furniture",
        "Display and presentation equipment",
        "Collaboration spaces and quiet areas",
        "Safety and accessibility features",
    ],
    "virtual": [
        "Platform features and requirements",
        "Communication and collaboration tools",
        "Progress tracking and technical support",
        "Security and accessibility features",
    ],
    "hybrid": [
        "Synchronous and asynchronous elements",
        "Physical-digital integration and transitions",
        "Support services for both modes",
        "Backup plans",
    ],
}

_ENVIRONMENT_SHAPE = {
    "name": "...",
    "description": "...",
    "materials": [{"name": "...", "type": "...", "access_link": "..."}],
    "tools": [{"name": "...", "type": "...", "access_link": "..."}],
    "services": [{"name": "...", "type": "...", "access_link": "..."}],
}


def build_environment_prompt(environment: Dict[str, Any]) -> str:
    """Prompt for enriching one environment with concrete resources.

    The focus list follows ``environment["type"]`` (physical, virtual,
    anything else is treated as hybrid).
    """
    env_type = environment.get("type")
    if env_type not in ("physical", "virtual"):
        env_type = "hybrid"
    focus = "\n".join(f"- {line}" for line in _ENVIRONMENT_FOCUS[env_type])
    return f"""
CRITICAL: You MUST enhance the {env_type} learning environment and return a JSON object covering:
{focus}
- Required materials, tools and support services and how activities use them

Return your response as a JSON object with this structure:
{json.dumps(_ENVIRONMENT_SHAPE, indent=2)}

Current environment: {json.dumps(environment, ensure_ascii=False)}
"""
