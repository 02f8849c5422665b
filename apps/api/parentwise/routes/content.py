from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field

from ..auth import AuthContext, get_auth_context, require_role
from ..db import get_connection, transaction
from ..repositories import content as content_repo
from ..schemas import ApiModel, SubscriptionTier, UserRole, envelope
from ..security import tier_satisfies

router = APIRouter(prefix="/api/content", tags=["content"])


class ContentCreate(ApiModel):
    title: str = Field(..., min_length=1, max_length=200)
    content_type: str = Field(..., min_length=1, max_length=50)
    body: str = Field(..., min_length=1)
    age_range_min: Optional[int] = Field(default=None, ge=0)
    age_range_max: Optional[int] = Field(default=None, ge=0)
    tags: List[str] = Field(default_factory=list)
    is_premium: bool = False


@router.get("")
async def list_content_endpoint(
    content_type: Optional[str] = Query(None, alias="contentType"),
    age_months: Optional[int] = Query(None, alias="ageMonths", ge=0),
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    include_premium = tier_satisfies(auth.user.subscription_tier, SubscriptionTier.PREMIUM)
    with get_connection() as conn:
        items = content_repo.list_items(
            conn,
            include_premium=include_premium,
            content_type=content_type,
            age_months=age_months,
        )
    return envelope({"items": items})


@router.post("", status_code=201)
async def create_content_endpoint(
    payload: ContentCreate,
    auth: AuthContext = Depends(require_role(UserRole.ADMIN)),
) -> dict:
    with transaction() as conn:
        item = content_repo.create_item(
            conn,
            title=payload.title,
            content_type=payload.content_type,
            body=payload.body,
            author_id=auth.user_id,
            age_range_min=payload.age_range_min,
            age_range_max=payload.age_range_max,
            tags=payload.tags,
            is_premium=payload.is_premium,
        )
    return envelope({"item": item}, message="Content created")
