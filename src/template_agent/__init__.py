"""
Didactic Template Agent

AI-assisted workflows over didactic templates: template completion,
filter-criteria generation and WLO (WirLernenOnline) resource enrichment.

**Version**: 0.1.0
**Key Dependencies**: openai, instructor, pydantic, requests
"""

__version__ = "0.1.0"
__author__ = "WLO KI-Editor"

__all__ = [
    "__version__",
    "__author__",
]
