"""
Design API routes.

Graph documents use the canvas client's camelCase node/edge shape. All
routes are sync so store calls run in the threadpool.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, ConfigDict, Field

from flowforge.core.auth import get_current_user_id, get_optional_user_id
from flowforge.features.designs import service as design_service
from flowforge.models.design import DesignVisibility, GraphDocument, GraphEdgeIn, GraphNodeIn


router = APIRouter(prefix="/designs", tags=["designs"])


class CreateDesignRequest(GraphDocument):
    nodes: List[GraphNodeIn]
    edges: List[GraphEdgeIn]
    prompt: str = Field(min_length=1)
    title: Optional[str] = None
    visibility: DesignVisibility = DesignVisibility.PRIVATE


class UpdateDesignRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    visibility: Optional[DesignVisibility] = None
    prompt: Optional[str] = None


class AddImageRequest(BaseModel):
    url: str = Field(min_length=1)


@router.get("/public")
def public_designs():
    designs = design_service.list_public_designs()
    return {"status": True, "data": designs}


@router.get("/mine")
def my_designs(user_id: str = Depends(get_current_user_id)):
    designs = design_service.list_user_designs(user_id)
    return {"status": True, "data": designs}


@router.post("", status_code=201)
def create_design(request: CreateDesignRequest, user_id: str = Depends(get_current_user_id)):
    """
    Errors:
        400: Missing prompt, nodes or edges
        429: Design quota reached for the current plan
    """
    result = design_service.create_design(
        user_id,
        GraphDocument(nodes=request.nodes, edges=request.edges),
        prompt=request.prompt,
        title=request.title,
        visibility=request.visibility,
    )
    return {"status": True, "message": "Design created successfully", **result}


@router.get("/{design_id}/graph")
def get_design_graph(design_id: str, user_id: Optional[str] = Depends(get_optional_user_id)):
    return {"status": True, **design_service.get_design_graph(user_id, design_id)}


@router.put("/{design_id}/graph")
def save_design(design_id: str, document: GraphDocument, user_id: str = Depends(get_current_user_id)):
    result = design_service.save_design(user_id, design_id, document)
    return {"status": True, "message": "Design saved successfully", **result}


@router.patch("/{design_id}")
def update_design(design_id: str, request: UpdateDesignRequest, user_id: str = Depends(get_current_user_id)):
    changes: Dict[str, Any] = request.model_dump(exclude_unset=True)
    design = design_service.update_design_data(user_id, design_id, changes)
    return {"status": True, "data": design}


@router.delete("/{design_id}", status_code=204)
def delete_design(design_id: str, user_id: str = Depends(get_current_user_id)):
    design_service.delete_design(user_id, design_id)
    return Response(status_code=204)


@router.post("/{design_id}/duplicate", status_code=201)
def duplicate_design(design_id: str, user_id: str = Depends(get_current_user_id)):
    result = design_service.duplicate_design(user_id, design_id)
    return {"status": True, "message": "Design added to your account", **result}


@router.post("/{design_id}/images", status_code=201)
def add_design_image(design_id: str, request: AddImageRequest, user_id: str = Depends(get_current_user_id)):
    image = design_service.add_design_image(user_id, design_id, request.url)
    return {"status": True, "data": image}
