"""
Ownership-scoped CRUD for ad-ops resources.

Every resource router is built by build_resource_router():
- List is scoped to the caller's rows unless the caller is elevated
- Single-row reads and writes go through authorize_record (404 vs 403)
- created_by is stamped from the caller on create and never changes
- Foreign references (brand_id, ...) must name rows the caller may access
"""

import logging
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Type

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field, model_validator
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import (
    Base,
    Brand,
    BusinessManager,
    Campaign,
    Card,
    FacebookAccount,
    FacebookPage,
)
from rbac.dependencies import RequireRoutePermission, get_db_session
from rbac.guard import AuthorizationDecision
from rbac.ownership import OWNER_COLUMN, authorize_record, scope_query, stamp_ownership

from web.responses import success_response

logger = logging.getLogger(__name__)


# =============================================================================
# SCHEMAS
# =============================================================================

class ResourceSchema(BaseModel):
    # Unknown keys (created_by included) are dropped, never written
    model_config = ConfigDict(extra="ignore")


class ResourceUpdate(ResourceSchema):
    """Partial update. Omitted fields stay unchanged."""

    # NOT NULL columns: may be omitted, never sent as null
    non_nullable: ClassVar[Tuple[str, ...]] = ()

    @model_validator(mode="after")
    def reject_null_for_required(self):
        nulled = [
            name for name in self.non_nullable
            if name in self.model_fields_set and getattr(self, name) is None
        ]
        if nulled:
            raise ValueError(f"{', '.join(nulled)} cannot be null")
        return self


class BrandCreate(ResourceSchema):
    name: str = Field(..., min_length=1, max_length=200)
    website: Optional[str] = Field(None, max_length=500)
    description: Optional[str] = None


class BrandUpdate(ResourceUpdate):
    non_nullable = ("name",)

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    website: Optional[str] = Field(None, max_length=500)
    description: Optional[str] = None


class CampaignCreate(ResourceSchema):
    name: str = Field(..., min_length=1, max_length=200)
    status: str = Field("draft", max_length=30)
    budget: Optional[float] = Field(None, ge=0)
    brand_id: Optional[int] = None
    description: Optional[str] = None


class CampaignUpdate(ResourceUpdate):
    non_nullable = ("name", "status")

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    status: Optional[str] = Field(None, max_length=30)
    budget: Optional[float] = Field(None, ge=0)
    brand_id: Optional[int] = None
    description: Optional[str] = None


class BusinessManagerCreate(ResourceSchema):
    name: str = Field(..., min_length=1, max_length=200)
    bm_id: Optional[str] = Field(None, max_length=100)
    status: str = Field("active", max_length=30)


class BusinessManagerUpdate(ResourceUpdate):
    non_nullable = ("name", "status")

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    bm_id: Optional[str] = Field(None, max_length=100)
    status: Optional[str] = Field(None, max_length=30)


class CardCreate(ResourceSchema):
    card_name: str = Field(..., min_length=1, max_length=200)
    last_four: Optional[str] = Field(None, pattern=r"^\d{4}$")
    provider: Optional[str] = Field(None, max_length=50)
    status: str = Field("active", max_length=30)


class CardUpdate(ResourceUpdate):
    non_nullable = ("card_name", "status")

    card_name: Optional[str] = Field(None, min_length=1, max_length=200)
    last_four: Optional[str] = Field(None, pattern=r"^\d{4}$")
    provider: Optional[str] = Field(None, max_length=50)
    status: Optional[str] = Field(None, max_length=30)


class FacebookAccountCreate(ResourceSchema):
    name: str = Field(..., min_length=1, max_length=200)
    account_id: Optional[str] = Field(None, max_length=100)
    business_manager_id: Optional[int] = None
    status: str = Field("active", max_length=30)


class FacebookAccountUpdate(ResourceUpdate):
    non_nullable = ("name", "status")

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    account_id: Optional[str] = Field(None, max_length=100)
    business_manager_id: Optional[int] = None
    status: Optional[str] = Field(None, max_length=30)


class FacebookPageCreate(ResourceSchema):
    name: str = Field(..., min_length=1, max_length=200)
    page_id: Optional[str] = Field(None, max_length=100)
    facebook_account_id: Optional[int] = None
    status: str = Field("active", max_length=30)


class FacebookPageUpdate(ResourceUpdate):
    non_nullable = ("name", "status")

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    page_id: Optional[str] = Field(None, max_length=100)
    facebook_account_id: Optional[int] = None
    status: Optional[str] = Field(None, max_length=30)


# =============================================================================
# ROUTER FACTORY
# =============================================================================

def build_resource_router(
    module: str,
    model: Type[Base],
    create_schema: Type[ResourceSchema],
    update_schema: Type[ResourceSchema],
    label: str,
    references: Optional[Dict[str, Tuple[Type[Base], str]]] = None,
) -> APIRouter:
    """
    CRUD router for one owned model, guarded by the module's permissions.

    The HTTP method picks the action: GET -> read, POST -> create,
    PUT/PATCH -> update, DELETE -> delete.

    references maps a foreign key field to (model, label). A referenced
    row must exist and be visible to the caller like any other record.
    """
    router = APIRouter(prefix=f"/{module}", tags=[label])
    guard = RequireRoutePermission(module)

    async def _load(session: AsyncSession, record_id: int, decision: AuthorizationDecision):
        record = await session.get(model, record_id)
        return authorize_record(record, decision.principal, resource=label)

    async def _check_references(
        session: AsyncSession,
        values: Dict[str, Any],
        decision: AuthorizationDecision,
    ) -> None:
        for field_name, (ref_model, ref_label) in (references or {}).items():
            ref_id = values.get(field_name)
            if ref_id is not None:
                ref = await session.get(ref_model, ref_id)
                authorize_record(ref, decision.principal, resource=ref_label)

    @router.get("")
    async def list_records(
        page: int = Query(1, ge=1),
        limit: int = Query(50, ge=1, le=100),
        decision: AuthorizationDecision = Depends(guard),
        session: AsyncSession = Depends(get_db_session),
    ):
        stmt = scope_query(select(model), decision.principal)
        total = (
            await session.execute(select(func.count()).select_from(stmt.subquery()))
        ).scalar_one()
        rows = (
            await session.execute(
                stmt.order_by(model.id.desc()).offset((page - 1) * limit).limit(limit)
            )
        ).scalars().all()
        return success_response(
            {
                "items": [row.to_dict() for row in rows],
                "pagination": {
                    "page": page,
                    "limit": limit,
                    "total": total,
                    "pages": (total + limit - 1) // limit,
                },
            },
            f"{label} retrieved",
        )

    @router.get("/{record_id}")
    async def get_record(
        record_id: int,
        decision: AuthorizationDecision = Depends(guard),
        session: AsyncSession = Depends(get_db_session),
    ):
        record = await _load(session, record_id, decision)
        return success_response(record.to_dict(), f"{label} retrieved")

    @router.post("", status_code=201)
    async def create_record(
        body: create_schema,
        decision: AuthorizationDecision = Depends(guard),
        session: AsyncSession = Depends(get_db_session),
    ):
        values = body.model_dump()
        await _check_references(session, values, decision)
        record = model(**stamp_ownership(values, decision.principal))
        session.add(record)
        await session.commit()
        logger.info(f"{label} {record.id} created by user {decision.principal.id}")
        return success_response(record.to_dict(), f"{label} created successfully", status_code=201)

    @router.put("/{record_id}")
    async def update_record(
        record_id: int,
        body: update_schema,
        decision: AuthorizationDecision = Depends(guard),
        session: AsyncSession = Depends(get_db_session),
    ):
        record = await _load(session, record_id, decision)
        changes: Dict[str, Any] = body.model_dump(exclude_unset=True)
        changes.pop(OWNER_COLUMN, None)
        await _check_references(session, changes, decision)
        for key, value in changes.items():
            setattr(record, key, value)
        await session.commit()
        return success_response(record.to_dict(), f"{label} updated successfully")

    @router.delete("/{record_id}")
    async def delete_record(
        record_id: int,
        decision: AuthorizationDecision = Depends(guard),
        session: AsyncSession = Depends(get_db_session),
    ):
        record = await _load(session, record_id, decision)
        await session.delete(record)
        await session.commit()
        logger.info(f"{label} {record_id} deleted by user {decision.principal.id}")
        return success_response(None, f"{label} deleted successfully")

    return router


RESOURCE_ROUTERS: List[APIRouter] = [
    build_resource_router(
        "campaigns", Campaign, CampaignCreate, CampaignUpdate, "Campaign",
        references={"brand_id": (Brand, "Brand")},
    ),
    build_resource_router("brands", Brand, BrandCreate, BrandUpdate, "Brand"),
    build_resource_router(
        "business_managers", BusinessManager,
        BusinessManagerCreate, BusinessManagerUpdate, "Business manager",
    ),
    build_resource_router("cards", Card, CardCreate, CardUpdate, "Card"),
    build_resource_router(
        "facebook_accounts", FacebookAccount,
        FacebookAccountCreate, FacebookAccountUpdate, "Facebook account",
        references={"business_manager_id": (BusinessManager, "Business manager")},
    ),
    build_resource_router(
        "facebook_pages", FacebookPage,
        FacebookPageCreate, FacebookPageUpdate, "Facebook page",
        references={"facebook_account_id": (FacebookAccount, "Facebook account")},
    ),
]
