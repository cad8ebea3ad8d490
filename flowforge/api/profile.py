"""
Profile API.

GET   /api/profile: name and email of the caller
PATCH /api/profile: update the display name
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from flowforge.core.auth import get_current_user_id
from flowforge.features.users import service as user_service

router = APIRouter(prefix="/profile", tags=["profile"])


class UpdateProfileRequest(BaseModel):
    name: Optional[str] = Field(default=None, max_length=200)


@router.get("")
def get_profile(user_id: str = Depends(get_current_user_id)):
    return {"status": True, "data": user_service.get_profile(user_id)}


@router.patch("")
def update_profile(request: UpdateProfileRequest, user_id: str = Depends(get_current_user_id)):
    return {"status": True, "data": user_service.update_profile(user_id, request.name)}
