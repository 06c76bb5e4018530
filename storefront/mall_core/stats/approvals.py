"""
Approval statistics for the back-office.

Three independent counts over products and their variants, run
concurrently and summed into a total:
- pending: products awaiting review
- rejected: products rejected by review
- variant_approvals: approved products with at least one variant
  still awaiting review

The three categories are summed as-is. Pending and rejected are disjoint
by product status, and variant_approvals only counts approved products,
so no product is counted twice as long as a product has exactly one
status. The total is therefore a count of products, not of variants.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict

from ..gateway.base import Embed, Eq, StoreGateway
from ..schema.tables import (
    PRODUCT_STATUS,
    PRODUCT_TABLE,
    VARIANT_ID,
    VARIANT_PRODUCT_FK,
    VARIANT_STATUS,
    VARIANT_TABLE,
    ReviewStatus,
)

logger = logging.getLogger(__name__)

# Approved products joined to their not-yet-approved variants
PENDING_VARIANTS_EMBED = Embed(
    alias=VARIANT_TABLE,
    table=VARIANT_TABLE,
    fk_column=VARIANT_PRODUCT_FK,
    columns=VARIANT_ID,
    many=True,
    inner=True,
)


@dataclass(frozen=True)
class ApprovalSummary:
    """Counts of products by review state."""

    pending: int
    rejected: int
    variant_approvals: int

    @property
    def total(self) -> int:
        return self.pending + self.rejected + self.variant_approvals

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pending": self.pending,
            "rejected": self.rejected,
            "variantApprovals": self.variant_approvals,
            "total": self.total,
        }


async def compute_approval_stats(gateway: StoreGateway) -> ApprovalSummary:
    """Count products awaiting staff action.

    Raises:
        RemoteFailure: If any count fails
    """
    pending, rejected, variant_approvals = await asyncio.gather(
        gateway.count(
            PRODUCT_TABLE,
            [Eq(PRODUCT_STATUS, ReviewStatus.NOT_APPROVED.value)],
        ),
        gateway.count(
            PRODUCT_TABLE,
            [Eq(PRODUCT_STATUS, ReviewStatus.REJECTED.value)],
        ),
        gateway.count(
            PRODUCT_TABLE,
            [
                Eq(PRODUCT_STATUS, ReviewStatus.APPROVED.value),
                Eq(f"{PENDING_VARIANTS_EMBED.alias}.{VARIANT_STATUS}", ReviewStatus.NOT_APPROVED.value),
            ],
            embeds=(PENDING_VARIANTS_EMBED,),
        ),
    )
    summary = ApprovalSummary(
        pending=pending or 0,
        rejected=rejected or 0,
        variant_approvals=variant_approvals or 0,
    )
    logger.debug("Approval stats computed", extra=summary.to_dict())
    return summary
