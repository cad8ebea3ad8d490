"""
Canvas document <-> graph record conversion.

Records are keyed by "<design_id>-<client id>" so ids stay unique across
designs; the client id is kept as original_id and is what the canvas sees
on the way back out. Read output is minimal: optional fields are emitted
only when set, so a saved document reads back in the shape it was sent.
"""
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping

from flowforge.models.design import GraphEdgeIn, GraphNodeIn


def composite_id(design_id: str, client_id: str) -> str:
    return f"{design_id}-{client_id}"


def node_records(
    design_id: str,
    user_id: str,
    nodes: Iterable[GraphNodeIn],
    created_at: datetime,
) -> List[Dict[str, Any]]:
    return [
        {
            "id": composite_id(design_id, node.id),
            "original_id": node.id,
            "design_id": design_id,
            "user_id": user_id,
            "type": node.type,
            "position": node.position or {},
            "data": node.data or {},
            "style": node.style or {},
            "class_name": node.class_name or None,
            "hidden": node.hidden,
            "selected": node.selected,
            "dragging": node.dragging,
            "width": node.width,
            "height": node.height,
            "z_index": node.z_index,
            "seq": seq,
            "created_at": created_at,
        }
        for seq, node in enumerate(nodes)
    ]


def edge_records(
    design_id: str,
    user_id: str,
    edges: Iterable[GraphEdgeIn],
    created_at: datetime,
) -> List[Dict[str, Any]]:
    return [
        {
            "id": composite_id(design_id, edge.id),
            "original_id": edge.id,
            "design_id": design_id,
            "user_id": user_id,
            "source": composite_id(design_id, edge.source),
            "target": composite_id(design_id, edge.target),
            "original_source": edge.source,
            "original_target": edge.target,
            "label": edge.label or None,
            "type": edge.type or None,
            "source_handle": edge.source_handle or None,
            "target_handle": edge.target_handle or None,
            "style": edge.style or {},
            "marker_start": edge.marker_start or None,
            "marker_end": edge.marker_end or None,
            "animated": edge.animated,
            "hidden": edge.hidden,
            "selected": edge.selected,
            "data": edge.data or {},
            "z_index": edge.z_index,
            "seq": seq,
            "created_at": created_at,
        }
        for seq, edge in enumerate(edges)
    ]


def node_to_client(record: Mapping[str, Any]) -> Dict[str, Any]:
    node: Dict[str, Any] = {
        "id": record["original_id"],
        "type": record["type"],
        "position": record["position"] or {},
        "data": record["data"] or {},
    }
    if record["style"]:
        node["style"] = record["style"]
    if record["class_name"]:
        node["className"] = record["class_name"]
    for flag in ("hidden", "selected", "dragging"):
        if record[flag]:
            node[flag] = True
    if record["width"]:
        node["width"] = record["width"]
    if record["height"]:
        node["height"] = record["height"]
    if record["z_index"]:
        node["zIndex"] = record["z_index"]
    return node


def edge_to_client(record: Mapping[str, Any]) -> Dict[str, Any]:
    edge: Dict[str, Any] = {
        "id": record["original_id"],
        "source": record["original_source"],
        "target": record["original_target"],
    }
    optional = (
        ("type", "type"),
        ("label", "label"),
        ("source_handle", "sourceHandle"),
        ("target_handle", "targetHandle"),
        ("style", "style"),
        ("marker_end", "markerEnd"),
        ("marker_start", "markerStart"),
    )
    for column, key in optional:
        if record[column]:
            edge[key] = record[column]
    for flag in ("animated", "hidden", "selected"):
        if record[flag]:
            edge[flag] = True
    if record["data"]:
        edge["data"] = record["data"]
    if record["z_index"]:
        edge["zIndex"] = record["z_index"]
    return edge


def remap_records(
    records: Iterable[Mapping[str, Any]],
    target_design_id: str,
    user_id: str,
    created_at: datetime,
) -> List[Dict[str, Any]]:
    """Copy stored node or edge records under a new design id."""
    copied = []
    for seq, record in enumerate(records):
        row = dict(record)
        row.update(
            id=composite_id(target_design_id, record["original_id"]),
            design_id=target_design_id,
            user_id=user_id,
            seq=seq,
            created_at=created_at,
        )
        copied.append(row)
    return copied


def remap_edge_endpoints(
    edges: List[Dict[str, Any]],
    node_id_map: Mapping[str, str],
    target_design_id: str,
) -> None:
    """
    Point copied edges at the copied nodes.

    Endpoints missing from the map fall back to the prefixed client id;
    such edges are stored but no relationship is materialized for them.
    """
    for edge in edges:
        edge["source"] = node_id_map.get(
            edge["source"], composite_id(target_design_id, edge["original_source"])
        )
        edge["target"] = node_id_map.get(
            edge["target"], composite_id(target_design_id, edge["original_target"])
        )
