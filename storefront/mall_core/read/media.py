"""
Media enrichment for collection and order rows.

Media is attached in a second pass, one bounded lookup (limit 1) per row,
because the store cannot reliably filter a nested one-to-many relation
inline. Lookups run concurrently.

Invariants:
    - Output rows are in input order
    - Media is always a list; absent or failed lookups give []
    - Input rows are not modified
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

from ..errors import RemoteFailure
from ..gateway.base import Eq, Row, StoreGateway
from ..schema.tables import (
    MEDIA_EMBED,
    VARIANT_EMBED,
    VARIANT_ID,
    VARIANT_MEDIA_ALIAS,
    VARIANT_MEDIA_TABLE,
    VARIANT_MEDIA_VARIANT_FK,
)

logger = logging.getLogger(__name__)


def _variant_id(row: Row) -> Optional[Any]:
    variant = row.get(VARIANT_EMBED.alias)
    if isinstance(variant, dict) and variant.get(VARIANT_ID) is not None:
        return variant[VARIANT_ID]
    return row.get(VARIANT_EMBED.fk_column)


async def fetch_variant_media(gateway: StoreGateway, variant_id: Any) -> List[Row]:
    """Fetch at most one media row for a variant.

    Returns [] when the variant has no media or the lookup fails.
    """
    if variant_id is None:
        return []
    try:
        return await gateway.select(
            VARIANT_MEDIA_TABLE,
            [Eq(VARIANT_MEDIA_VARIANT_FK, variant_id)],
            columns="",
            embeds=(MEDIA_EMBED,),
            limit=1,
        )
    except RemoteFailure as e:
        logger.warning(
            "Media lookup failed; continuing without media",
            extra={"variant_id": variant_id, "error": e.message},
        )
        return []


def _with_media(row: Row, media: List[Row]) -> Row:
    enriched: Dict[str, Any] = dict(row)
    variant = enriched.get(VARIANT_EMBED.alias)
    if isinstance(variant, dict):
        enriched[VARIANT_EMBED.alias] = {**variant, VARIANT_MEDIA_ALIAS: media}
    else:
        enriched[VARIANT_MEDIA_ALIAS] = media
    return enriched


async def enrich_with_media(gateway: StoreGateway, rows: Sequence[Row]) -> List[Row]:
    """Attach variant media to each row.

    Media lands under ``yvarprod.yvarprodmedia`` when the row embeds its
    variant, otherwise under ``yvarprodmedia`` on the row itself.

    Args:
        gateway: Store gateway
        rows: Rows referencing a variant (embedded or by foreign key)

    Returns:
        New rows, in input order, each carrying a media list
    """
    media_lists = await asyncio.gather(
        *(fetch_variant_media(gateway, _variant_id(row)) for row in rows)
    )
    return [_with_media(row, media) for row, media in zip(rows, media_lists)]
