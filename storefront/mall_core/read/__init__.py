"""
Read reconstruction for Mall Core.

Turns flat store rows into the nested shapes callers display:
- Media enrichment: a second, bounded lookup per variant
- Order grouping: a fold of order lines by order number
"""

from .media import enrich_with_media, fetch_variant_media
from .orders import Order, customer_snapshot, group_order_lines

__all__ = [
    "enrich_with_media",
    "fetch_variant_media",
    "Order",
    "customer_snapshot",
    "group_order_lines",
]
