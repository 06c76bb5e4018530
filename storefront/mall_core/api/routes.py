"""
API routes for the Mall Core HTTP surface.

Thin REST wrappers over MallService. The current user comes from a request
header set by the upstream auth proxy; handlers pass it explicitly to the
service as the owner or acting user.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from ..identity import HeaderIdentityProvider, require_owner
from ..schema.tables import CollectionType
from ..service import MallService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Mall Core"])


# --- Request/Response Models ---


class AddItemRequest(BaseModel):
    """Request to add an item to a collection."""

    item_key: int = Field(..., description="Variant id")
    quantity: int = Field(1, ge=1, description="Quantity to add (cart only)")


class UpdateItemRequest(BaseModel):
    """Request to change an entry's quantity."""

    quantity: int = Field(..., ge=1, description="New quantity")


class MembershipResponse(BaseModel):
    """Whether an item is in the caller's collection."""

    collection_type: CollectionType
    item_key: int
    member: bool


class OrderStatusRequest(BaseModel):
    """Request to change an order's status."""

    status: str = Field(..., min_length=1, description="New order status")


class ApprovalStatsResponse(BaseModel):
    """Approval counts for the back-office."""

    pending: int
    rejected: int
    variantApprovals: int
    total: int


# --- Dependencies ---


def get_service(request: Request) -> MallService:
    """Get the service from app state."""
    return request.app.state.service


def get_identity(request: Request) -> HeaderIdentityProvider:
    """Identity provider reading the configured user header."""
    return HeaderIdentityProvider(request.headers, request.app.state.settings.user_header)


async def get_owner(identity: HeaderIdentityProvider = Depends(get_identity)) -> str:
    """The authenticated user id (401 when absent)."""
    return await require_owner(identity)


async def get_optional_owner(
    identity: HeaderIdentityProvider = Depends(get_identity),
) -> Optional[str]:
    """The user id, or None for anonymous callers."""
    return await identity.current_user_id()


# --- Collection Routes ---


@router.get("/collections/{collection_type}")
async def list_collection(
    collection_type: CollectionType,
    service: MallService = Depends(get_service),
    owner_id: str = Depends(get_owner),
) -> list[dict[str, Any]]:
    """List the caller's entries with variant details and media."""
    return await service.list_collection(collection_type, owner_id)


@router.post("/collections/{collection_type}", status_code=201)
async def add_to_collection(
    collection_type: CollectionType,
    body: AddItemRequest,
    service: MallService = Depends(get_service),
    owner_id: str = Depends(get_owner),
) -> dict[str, Any]:
    """Add an item. Cart quantities merge; a wishlist duplicate is 409."""
    return await service.add_to_collection(
        collection_type, owner_id, body.item_key, body.quantity
    )


@router.patch("/collections/{collection_type}/{entry_id}")
async def update_collection_entry(
    collection_type: CollectionType,
    entry_id: int,
    body: UpdateItemRequest,
    service: MallService = Depends(get_service),
    owner_id: str = Depends(get_owner),
) -> dict[str, Any]:
    """Set the quantity of one of the caller's entries."""
    return await service.update_collection_entry(
        collection_type, owner_id, entry_id, body.quantity
    )


@router.delete("/collections/{collection_type}/{entry_id}")
async def remove_collection_entry(
    collection_type: CollectionType,
    entry_id: int,
    service: MallService = Depends(get_service),
    owner_id: str = Depends(get_owner),
) -> dict[str, Any]:
    """Remove one of the caller's entries by id."""
    return await service.remove_from_collection(collection_type, owner_id, entry_id=entry_id)


@router.delete("/collections/{collection_type}")
async def remove_collection_item(
    collection_type: CollectionType,
    item_key: Optional[int] = Query(None, description="Variant id to remove"),
    service: MallService = Depends(get_service),
    owner_id: str = Depends(get_owner),
) -> dict[str, Any]:
    """Remove an item from the caller's collection by variant id."""
    return await service.remove_from_collection(collection_type, owner_id, item_key=item_key)


@router.get(
    "/collections/{collection_type}/membership/{item_key}",
    response_model=MembershipResponse,
)
async def check_membership(
    collection_type: CollectionType,
    item_key: int,
    service: MallService = Depends(get_service),
    owner_id: Optional[str] = Depends(get_optional_owner),
):
    """Whether the item is in the caller's collection (false when anonymous)."""
    member = await service.check_membership(collection_type, owner_id, item_key)
    return MembershipResponse(collection_type=collection_type, item_key=item_key, member=member)


# --- Order Routes ---


@router.get("/orders")
async def list_orders(
    service: MallService = Depends(get_service),
    owner_id: str = Depends(get_owner),
) -> list[dict[str, Any]]:
    """The caller's orders, grouped by order number, newest first."""
    orders = await service.list_grouped_orders(owner_id)
    return [order.to_dict() for order in orders]


@router.get("/admin/orders")
async def list_all_orders(
    service: MallService = Depends(get_service),
    actor_id: str = Depends(get_owner),
) -> list[dict[str, Any]]:
    """Every order with its customer snapshot."""
    orders = await service.list_grouped_orders()
    return [order.to_dict() for order in orders]


@router.patch("/admin/orders/{order_number}")
async def update_order_status(
    order_number: str,
    body: OrderStatusRequest,
    service: MallService = Depends(get_service),
    actor_id: str = Depends(get_owner),
) -> dict[str, Any]:
    """Set the status of every line of an order."""
    order = await service.update_order_status(actor_id, order_number, body.status)
    logger.info(
        "Order status changed",
        extra={"order_number": order_number, "status": body.status, "actor_id": actor_id},
    )
    return order.to_dict()


@router.get("/admin/approval-stats", response_model=ApprovalStatsResponse)
async def get_approval_stats(
    service: MallService = Depends(get_service),
    actor_id: str = Depends(get_owner),
):
    """Counts of products awaiting staff action."""
    summary = await service.get_approval_stats()
    return summary.to_dict()
