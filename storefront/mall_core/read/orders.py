"""
Order reconstruction.

Order lines are stored flat, one row per purchased variant, each carrying
its order's header fields. group_order_lines() folds them back into one
Order per order number.

Invariants:
    - Groups appear in first-seen order; lines keep their input order
    - Header fields come from the first line seen for each order number

Precondition:
    All lines of one order carry identical header fields (date, status,
    customer). The fold does not reconcile lines that disagree; if they
    do, the header reflects whichever line came first.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..gateway.base import Row
from ..schema.tables import (
    CUSTOMER_EMBED,
    ORDER_DATE,
    ORDER_DELIVERY_DATE,
    ORDER_LINE_ID,
    ORDER_NUMBER,
    ORDER_STATUS,
)


@dataclass
class Order:
    """An order reconstructed from its lines.

    Attributes:
        order_number: Order number shared by all lines
        order_id: Id of the first line seen
        ordered_at: Order date
        delivery_date: Expected delivery date
        status: Order status
        customer: Visitor snapshot (name, email, phone) when loaded
        items: The order's lines, in input order
    """

    order_number: Any
    order_id: Any = None
    ordered_at: Any = None
    delivery_date: Any = None
    status: Optional[str] = None
    customer: Optional[Dict[str, Any]] = None
    items: List[Row] = field(default_factory=list)

    @classmethod
    def from_line(cls, row: Row) -> Order:
        """Start a group from its first line."""
        return cls(
            order_number=row.get(ORDER_NUMBER),
            order_id=row.get(ORDER_LINE_ID),
            ordered_at=row.get(ORDER_DATE),
            delivery_date=row.get(ORDER_DELIVERY_DATE),
            status=row.get(ORDER_STATUS),
            customer=customer_snapshot(row),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_number": self.order_number,
            "order_id": self.order_id,
            "ordered_at": self.ordered_at,
            "delivery_date": self.delivery_date,
            "status": self.status,
            "customer": self.customer,
            "items": list(self.items),
        }


def customer_snapshot(row: Row) -> Optional[Dict[str, Any]]:
    """Visitor embedded through the line's account, if any."""
    account = row.get(CUSTOMER_EMBED.alias)
    if not isinstance(account, dict):
        return None
    visitor = account.get(CUSTOMER_EMBED.embeds[0].alias)
    return dict(visitor) if isinstance(visitor, dict) else None


def group_order_lines(rows: Sequence[Row]) -> List[Order]:
    """Fold flat order lines into orders keyed by order number.

    Example:
        >>> orders = group_order_lines([
        ...     {"zcommandeno": "A", "zcommandestatut": "paid"},
        ...     {"zcommandeno": "A", "zcommandestatut": "paid"},
        ...     {"zcommandeno": "B", "zcommandestatut": "pending"},
        ... ])
        >>> [(o.order_number, len(o.items)) for o in orders]
        [('A', 2), ('B', 1)]
    """
    groups: Dict[Any, Order] = {}
    for row in rows:
        number = row.get(ORDER_NUMBER)
        order = groups.get(number)
        if order is None:
            order = groups[number] = Order.from_line(row)
        order.items.append(row)
    return list(groups.values())
