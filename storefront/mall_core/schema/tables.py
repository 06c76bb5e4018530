"""
Table definitions for the storefront's remote relational schema.

This module describes the tables the core reads and writes:
- CollectionDef: a per-owner collection (cart, wishlist)
- Order, variant, media and product tables with the embeds used to read them

Invariants:
    - Each collection has a unique constraint on (owner_column, item_column)
    - Names here are the store's column names; nothing else hardcodes them
    - Collections with a quantity column merge on repeat add, others conflict

How to change safely:
    - Add columns to the embed trees rather than issuing extra queries
    - Keep unique_constraint in sync with the store's constraint name
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from ..gateway.base import Embed, TableDef


class CollectionType(Enum):
    """Per-owner collection kinds."""

    CART = "cart"
    WISHLIST = "wishlist"


@dataclass(frozen=True)
class CollectionDef:
    """Definition of a per-owner collection table.

    Attributes:
        type: Collection kind
        table: Table name
        id_column: Entry primary key column
        owner_column: Column holding the owning user id
        item_column: Column holding the item key (variant id)
        quantity_column: Quantity column, None for set-membership collections
        unique_constraint: Store constraint enforcing one row per (owner, item)
    """

    type: CollectionType
    table: str
    id_column: str
    owner_column: str
    item_column: str
    quantity_column: str | None = None
    unique_constraint: str | None = None

    @property
    def merges_on_add(self) -> bool:
        """Whether a repeat add merges into the existing entry."""
        return self.quantity_column is not None

    def unique_columns(self) -> tuple[str, str]:
        return (self.owner_column, self.item_column)


# Audit columns shared by every writable table
AUDIT_ACTION = "sysaction"
AUDIT_USER = "sysuser"
AUDIT_DATE = "sysdate"


def audit_fields(action: str, actor: str, at: datetime) -> dict[str, Any]:
    """Audit columns for a write (action is INSERT or UPDATE)."""
    return {AUDIT_ACTION: action, AUDIT_USER: actor, AUDIT_DATE: at.isoformat()}


CART = CollectionDef(
    type=CollectionType.CART,
    table="ypanier",
    id_column="ypanierid",
    owner_column="yuseridfk",
    item_column="yvarprodidfk",
    quantity_column="ypanierqte",
    unique_constraint="ypanier_yuseridfk_yvarprodidfk_key",
)

WISHLIST = CollectionDef(
    type=CollectionType.WISHLIST,
    table="ywishlist",
    id_column="ywishlistid",
    owner_column="yuseridfk",
    item_column="yvarprodidfk",
    unique_constraint="ywishlist_yuseridfk_yvarprodidfk_key",
)

COLLECTIONS: dict[CollectionType, CollectionDef] = {
    CollectionType.CART: CART,
    CollectionType.WISHLIST: WISHLIST,
}


def get_collection(collection_type: CollectionType | str) -> CollectionDef:
    """Look up a collection definition by type or type name.

    Raises:
        ValueError: If the type name is unknown
    """
    if isinstance(collection_type, str):
        collection_type = CollectionType(collection_type)
    return COLLECTIONS[collection_type]


# Variants, products and media
VARIANT_TABLE = "yvarprod"
VARIANT_ID = "yvarprodid"
VARIANT_STATUS = "yvarprodstatut"
VARIANT_PRODUCT_FK = "yprodidfk"

PRODUCT_TABLE = "yprod"
PRODUCT_ID = "yprodid"
PRODUCT_STATUS = "yprodstatut"

VARIANT_MEDIA_TABLE = "yvarprodmedia"
VARIANT_MEDIA_VARIANT_FK = "yvarprodidfk"
VARIANT_MEDIA_ALIAS = "yvarprodmedia"
MEDIA_TABLE = "ymedia"
MEDIA_FK = "ymediaidfk"

# Variant with colour, size and product/designer, as shown in collections and orders
VARIANT_EMBED = Embed(
    alias="yvarprod",
    table=VARIANT_TABLE,
    fk_column="yvarprodidfk",
    embeds=(
        Embed("xcouleur", "xcouleur", "xcouleuridfk"),
        Embed("xtaille", "xtaille", "xtailleidfk"),
        Embed(
            "yprod",
            PRODUCT_TABLE,
            VARIANT_PRODUCT_FK,
            embeds=(Embed("ydesign", "ydesign", "ydesignidfk"),),
        ),
    ),
)

MEDIA_EMBED = Embed(alias="ymedia", table=MEDIA_TABLE, fk_column=MEDIA_FK)

# Orders
ORDER_LINE_TABLE = "zdetailscommande"
ORDER_LINE_ID = "zcommandeid"
ORDER_NUMBER = "zcommandeno"
ORDER_DATE = "zcommandedate"
ORDER_DELIVERY_DATE = "zcommandelivraisondate"
ORDER_STATUS = "zcommandestatut"
ORDER_ACCOUNT_FK = "ycompteidfk"

ACCOUNT_TABLE = "ycompte"
ACCOUNT_ID = "ycompteid"
ACCOUNT_OWNER = "yuseridfk"

CUSTOMER_EMBED = Embed(
    alias="ycompte",
    table=ACCOUNT_TABLE,
    fk_column=ORDER_ACCOUNT_FK,
    embeds=(
        Embed(
            "yvisiteur",
            "yvisiteur",
            "yvisiteuridfk",
            columns="yvisiteurnom,yvisiteuremail,yvisiteurtelephone",
        ),
    ),
)


class ReviewStatus(Enum):
    """Review states of products and variants."""

    NOT_APPROVED = "not_approved"
    APPROVED = "approved"
    REJECTED = "rejected"


# Constraints the store enforces on the tables the core writes to
STORE_TABLES: tuple[TableDef, ...] = (
    TableDef(
        CART.table,
        CART.id_column,
        unique=((CART.unique_constraint, CART.unique_columns()),),
    ),
    TableDef(
        WISHLIST.table,
        WISHLIST.id_column,
        unique=((WISHLIST.unique_constraint, WISHLIST.unique_columns()),),
    ),
    TableDef(ORDER_LINE_TABLE, ORDER_LINE_ID),
    TableDef(ACCOUNT_TABLE, ACCOUNT_ID),
    TableDef(VARIANT_TABLE, VARIANT_ID),
    TableDef(PRODUCT_TABLE, PRODUCT_ID),
    TableDef(VARIANT_MEDIA_TABLE, "yvarprodmediaid"),
)
