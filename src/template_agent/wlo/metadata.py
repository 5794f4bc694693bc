"""Normalize raw WLO search nodes into ``WLOMetadata`` records.

Pure functions: no I/O, no logging, never raise on missing properties.
"""

from typing import Dict, List, Optional, Union

from template_agent.config import FALLBACK_RESOURCE_TYPE, PREVIEW_URL_TEMPLATE
from template_agent.models.wlo import SearchNode, WLOMetadata


def _first(properties: Dict[str, List[Optional[str]]], key: str) -> Optional[str]:
    values = properties.get(key) or []
    return values[0] if values and values[0] else None


def _all(properties: Dict[str, List[Optional[str]]], key: str) -> List[str]:
    return [value for value in properties.get(key) or [] if value]


def _resource_type(properties: Dict[str, List[Optional[str]]]) -> str:
    # Order matters: aggregated display name, generic display name,
    # last segment of the aggregated URI, then the fallback label
    label = _first(properties, "ccm:oeh_lrt_aggregated_DISPLAYNAME") or _first(
        properties, "ccm:resourcetype_DISPLAYNAME"
    )
    if label:
        return label

    uri = _first(properties, "ccm:oeh_lrt_aggregated")
    if uri:
        segment = uri.rstrip("/").split("/")[-1]
        if segment:
            return segment

    return FALLBACK_RESOURCE_TYPE


def _preview_url(node: SearchNode) -> Optional[str]:
    if node.preview is not None and node.preview.url:
        return node.preview.url
    if node.ref is not None and node.ref.id:
        return PREVIEW_URL_TEMPLATE.format(node_id=node.ref.id)
    return None


def extract_metadata(node: Union[SearchNode, dict]) -> WLOMetadata:
    """Map a matched node's property bag to a normalized metadata record.

    Args:
        node: A ``SearchNode`` or the raw node dict from the search response

    Returns:
        WLOMetadata with empty strings/lists and null URLs for missing
        properties and the fallback resource-type label when nothing matches
    """
    if not isinstance(node, SearchNode):
        node = SearchNode.model_validate(node)

    properties = node.properties
    return WLOMetadata(
        title=_first(properties, "cclom:title") or "",
        keywords=_all(properties, "cclom:general_keyword"),
        description=_first(properties, "cclom:general_description") or "",
        subject=_first(properties, "ccm:taxonid_DISPLAYNAME") or "",
        educational_context=_all(properties, "ccm:educationalcontext_DISPLAYNAME"),
        www_url=_first(properties, "ccm:wwwurl"),
        preview_url=_preview_url(node),
        resource_type=_resource_type(properties),
    )
