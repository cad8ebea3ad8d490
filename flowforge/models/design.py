"""
Design models.

GraphNodeIn / GraphEdgeIn mirror the canvas client's node and edge objects
(camelCase on the wire). Structured fields stay as nested dicts.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator


class DesignVisibility(str, Enum):
    PUBLIC = "PUBLIC"
    PRIVATE = "PRIVATE"


class Design(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    visibility: DesignVisibility = DesignVisibility.PRIVATE
    prompt: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class _ClientModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class GraphNodeIn(_ClientModel):
    id: str = Field(min_length=1)
    type: Optional[str] = None
    position: Dict[str, Any] = Field(default_factory=dict)
    data: Dict[str, Any] = Field(default_factory=dict)
    style: Optional[Dict[str, Any]] = None
    class_name: Optional[str] = Field(default=None, alias="className")
    hidden: bool = False
    selected: bool = False
    dragging: bool = False
    width: Optional[float] = None
    height: Optional[float] = None
    z_index: Optional[int] = Field(default=None, alias="zIndex")


class GraphEdgeIn(_ClientModel):
    id: str = Field(min_length=1)
    source: str = Field(min_length=1)
    target: str = Field(min_length=1)
    type: Optional[str] = None
    label: Optional[str] = None
    source_handle: Optional[str] = Field(default=None, alias="sourceHandle")
    target_handle: Optional[str] = Field(default=None, alias="targetHandle")
    style: Optional[Dict[str, Any]] = None
    marker_start: Optional[Union[str, Dict[str, Any]]] = Field(default=None, alias="markerStart")
    marker_end: Optional[Union[str, Dict[str, Any]]] = Field(default=None, alias="markerEnd")
    animated: bool = False
    hidden: bool = False
    selected: bool = False
    data: Optional[Dict[str, Any]] = None
    z_index: Optional[int] = Field(default=None, alias="zIndex")


class GraphDocument(BaseModel):
    nodes: List[GraphNodeIn] = Field(default_factory=list)
    edges: List[GraphEdgeIn] = Field(default_factory=list)

    @field_validator("nodes", "edges")
    @classmethod
    def _unique_ids(cls, items: List[Any]) -> List[Any]:
        # Ids become graph primary keys
        seen = set()
        for item in items:
            if item.id in seen:
                raise ValueError(f"duplicate id '{item.id}'")
            seen.add(item.id)
        return items
