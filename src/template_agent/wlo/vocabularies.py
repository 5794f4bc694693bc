"""WLO filter properties and controlled vocabularies.

Labels are the German display names shown to users and offered to the model;
values are the vocabulary URIs the search endpoint filters on.
"""

from enum import Enum
from typing import Dict, Optional

_LRT = "http://w3id.org/openeduhub/vocabs/learningResourceType/"
_DISCIPLINE = "http://w3id.org/openeduhub/vocabs/discipline/"
_EDU_CONTEXT = "http://w3id.org/openeduhub/vocabs/educationalContext/"


class FilterType(str, Enum):
    """Filter criteria the generator can produce, valued by WLO property name."""

    TITLE = "cclom:title"
    CONTENT_TYPE = "ccm:oeh_lrt_aggregated"
    DISCIPLINE = "ccm:taxonid"
    EDUCATIONAL_CONTEXT = "ccm:educationalcontext"

    @classmethod
    def from_name(cls, name: str) -> "FilterType":
        """Accept either the short name (``content_type``) or the property name."""
        if isinstance(name, cls):
            return name
        try:
            return cls[name.strip().upper()]
        except KeyError:
            return cls(name.strip())


DEFAULT_FILTER_TYPES = [FilterType.TITLE, FilterType.CONTENT_TYPE, FilterType.DISCIPLINE]

# Search API criterion names differ from the stored property names
SEARCH_PROPERTY_NAMES = {
    FilterType.TITLE.value: "ngsearchword",
    FilterType.DISCIPLINE.value: "virtual:taxonid",
}


CONTENT_TYPE_MAPPING: Dict[str, str] = {
    "Arbeitsblatt": _LRT + "worksheet",
    "Audio": _LRT + "audio",
    "Bild": _LRT + "image",
    "Bildungsangebot": _LRT + "educational_offer",
    "Experiment": _LRT + "experiment",
    "Interaktives Medium": _LRT + "interactive_material",
    "Kurs": _LRT + "course",
    "Lernspiel": _LRT + "educational_game",
    "Präsentation": _LRT + "presentation",
    "Simulation": _LRT + "simulation",
    "Test/Quiz": _LRT + "assessment",
    "Text": _LRT + "text",
    "Tool": _LRT + "tool",
    "Übung": _LRT + "drill_and_practice",
    "Unterrichtsplanung": _LRT + "lesson_plan",
    "Video": _LRT + "video",
    "Webseite": _LRT + "web_page",
}

DISCIPLINE_MAPPING: Dict[str, str] = {
    "Allgemein": _DISCIPLINE + "720",
    "Biologie": _DISCIPLINE + "080",
    "Chemie": _DISCIPLINE + "100",
    "Deutsch": _DISCIPLINE + "120",
    "Deutsch als Zweitsprache": _DISCIPLINE + "28002",
    "Englisch": _DISCIPLINE + "20001",
    "Ethik": _DISCIPLINE + "160",
    "Französisch": _DISCIPLINE + "20002",
    "Geografie": _DISCIPLINE + "220",
    "Geschichte": _DISCIPLINE + "240",
    "Informatik": _DISCIPLINE + "320",
    "Kunst": _DISCIPLINE + "060",
    "Latein": _DISCIPLINE + "20005",
    "Mathematik": _DISCIPLINE + "380",
    "Medienbildung": _DISCIPLINE + "900",
    "Musik": _DISCIPLINE + "420",
    "Philosophie": _DISCIPLINE + "450",
    "Physik": _DISCIPLINE + "460",
    "Politik": _DISCIPLINE + "480",
    "Religion": _DISCIPLINE + "520",
    "Spanisch": _DISCIPLINE + "20007",
    "Sport": _DISCIPLINE + "600",
    "Wirtschaftskunde": _DISCIPLINE + "700",
}

EDUCATIONAL_CONTEXT_MAPPING: Dict[str, str] = {
    "Elementarbereich": _EDU_CONTEXT + "elementarbereich",
    "Primarstufe": _EDU_CONTEXT + "grundschule",
    "Grundschule": _EDU_CONTEXT + "grundschule",
    "Sekundarstufe I": _EDU_CONTEXT + "sekundarstufe_1",
    "Sekundarstufe II": _EDU_CONTEXT + "sekundarstufe_2",
    "Hochschule": _EDU_CONTEXT + "hochschule",
    "Berufliche Bildung": _EDU_CONTEXT + "berufliche_bildung",
    "Erwachsenenbildung": _EDU_CONTEXT + "erwachsenenbildung",
    "Förderschule": _EDU_CONTEXT + "foerderschule",
    "Fernunterricht": _EDU_CONTEXT + "fernunterricht",
    "Informelles Lernen": _EDU_CONTEXT + "informelles_lernen",
}

# Material types whose content type is known without asking the model
MATERIAL_CONTENT_TYPES: Dict[str, str] = {
    "Spielmaterial": "Lernspiel",
    "Karten": "Arbeitsblatt",
    "Hardware": "Tool",
    "Software": "Tool",
    "Förderung": "Bildungsangebot",
}


def lookup(mapping: Dict[str, str], label: Optional[str]) -> Optional[str]:
    """Exact-label lookup that tolerates surrounding whitespace and None."""
    if not label:
        return None
    return mapping.get(label.strip())
