"""stores and menu items: read-only lookups plus the manager's menu editor"""

import logging
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from enum import Enum

from .authorization import AuthorizationGate, Operation
from .database import DatabaseManager
from .errors import DuplicateItem, InvalidField, InvalidPrice, ItemInUse, UnknownItem, UnknownStore

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def parse_price(value) -> Decimal:
    """non-negative decimal with at most two fractional digits, normalised to cents"""
    if isinstance(value, (bool, float)):
        raise InvalidPrice(value)
    try:
        price = Decimal(str(value).strip().lstrip("$"))
    except InvalidOperation:
        raise InvalidPrice(value) from None
    if not price.is_finite() or price < 0 or price.quantize(CENT) != price:
        raise InvalidPrice(value)
    return price.quantize(CENT)


@dataclass(frozen=True)
class Store:
    store_id: int
    address: str
    city: str
    state: str


@dataclass(frozen=True)
class Item:
    name: str
    item_type: str
    price: Decimal
    ingredients: str
    description: str

    @classmethod
    def from_row(cls, row) -> "Item":
        return cls(row["itemName"], row["typeOfItem"], row["price"], row["ingredients"], row["description"])


class SortOrder(Enum):
    """menu ordering; cycles none -> ascending -> descending"""
    NONE = "none"
    PRICE_ASC = "price-asc"
    PRICE_DESC = "price-desc"


_ORDER_BY = {
    SortOrder.NONE: "ORDER BY itemName",
    # price is text, sort on its numeric value
    SortOrder.PRICE_ASC: "ORDER BY CAST(price AS REAL) ASC, itemName",
    SortOrder.PRICE_DESC: "ORDER BY CAST(price AS REAL) DESC, itemName",
}
_SORT_CYCLE = [SortOrder.NONE, SortOrder.PRICE_ASC, SortOrder.PRICE_DESC]


@dataclass(frozen=True)
class MenuQuery:
    """filters + sort for browsing the menu"""
    item_type: str | None = None
    max_price: Decimal | None = None
    sort: SortOrder = SortOrder.NONE

    def next_sort(self) -> "MenuQuery":
        i = _SORT_CYCLE.index(self.sort)
        return replace(self, sort=_SORT_CYCLE[(i + 1) % len(_SORT_CYCLE)])

    def to_sql(self) -> tuple[str, list]:
        clauses, params = [], []
        if self.item_type:
            clauses.append("typeOfItem = ?")
            params.append(self.item_type)
        if self.max_price is not None:
            clauses.append("CAST(price AS REAL) <= CAST(? AS REAL)")
            params.append(str(self.max_price))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        sql = f"SELECT itemName, typeOfItem, price, ingredients, description FROM Items {where} {_ORDER_BY[self.sort]};"
        return sql, params


class Catalog:
    """read-only store and item lookups"""
    def __init__(self, db: DatabaseManager):
        self.db = db

    def list_stores(self) -> list[Store]:
        rows = self.db.execute("SELECT storeID, address, city, state FROM Store ORDER BY storeID;").fetchall()
        return [Store(r["storeID"], r["address"], r["city"], r["state"]) for r in rows]

    def get_store(self, store_id: int) -> Store:
        row = self.db.execute(
            "SELECT storeID, address, city, state FROM Store WHERE storeID=?;",
            (store_id,)
        ).fetchone()
        if row is None:
            raise UnknownStore(store_id)
        return Store(row["storeID"], row["address"], row["city"], row["state"])

    def get_item(self, name: str) -> Item:
        """exact, case-sensitive name match"""
        row = self.db.execute(
            "SELECT itemName, typeOfItem, price, ingredients, description FROM Items WHERE itemName=?;",
            (name,)
        ).fetchone()
        if row is None:
            raise UnknownItem(name)
        return Item.from_row(row)

    def item_types(self) -> list[str]:
        rows = self.db.execute("SELECT DISTINCT typeOfItem FROM Items ORDER BY typeOfItem;").fetchall()
        return [r["typeOfItem"] for r in rows]

    def browse_menu(self, query: MenuQuery = MenuQuery()) -> list[Item]:
        sql, params = query.to_sql()
        return [Item.from_row(r) for r in self.db.execute(sql, params).fetchall()]


class MenuEditor:
    """manager-only add / update / delete of menu items"""
    def __init__(self, db: DatabaseManager, gate: AuthorizationGate, catalog: Catalog):
        self.db = db
        self.gate = gate
        self.catalog = catalog

    def add_item(self, requester: str, name: str, item_type: str, price,
                 ingredients: str = "", description: str = "") -> Item:
        self.gate.require(requester, Operation.MANAGE_MENU)
        name, item_type = name.strip(), item_type.strip()
        if not name:
            raise InvalidField("item name must not be empty")
        if not item_type:
            raise InvalidField("item type must not be empty")
        p = parse_price(price)
        with self.db.transaction() as conn:
            if conn.execute("SELECT 1 FROM Items WHERE itemName=?;", (name,)).fetchone():
                raise DuplicateItem(name)
            conn.execute(
                "INSERT INTO Items(itemName, typeOfItem, price, ingredients, description) VALUES(?,?,?,?,?);",
                (name, item_type, p, ingredients, description)
            )
        logger.info(f"{requester} added menu item {name!r} at {p}")
        return Item(name, item_type, p, ingredients, description)

    def update_item(self, requester: str, name: str, *, price=None, item_type: str | None = None,
                    ingredients: str | None = None, description: str | None = None) -> Item:
        """change any subset of an item's fields; the name itself is the key and stays"""
        self.gate.require(requester, Operation.MANAGE_MENU)
        current = self.catalog.get_item(name)
        updated = replace(
            current,
            price=current.price if price is None else parse_price(price),
            item_type=current.item_type if item_type is None else item_type.strip(),
            ingredients=current.ingredients if ingredients is None else ingredients,
            description=current.description if description is None else description,
        )
        if not updated.item_type:
            raise InvalidField("item type must not be empty")
        self.db.execute(
            "UPDATE Items SET typeOfItem=?, price=?, ingredients=?, description=? WHERE itemName=?;",
            (updated.item_type, updated.price, updated.ingredients, updated.description, name)
        )
        logger.info(f"{requester} updated menu item {name!r}")
        return updated

    def delete_item(self, requester: str, name: str):
        self.gate.require(requester, Operation.MANAGE_MENU)
        with self.db.transaction() as conn:
            if not conn.execute("SELECT 1 FROM Items WHERE itemName=?;", (name,)).fetchone():
                raise UnknownItem(name)
            if conn.execute("SELECT 1 FROM ItemsInOrder WHERE itemName=? LIMIT 1;", (name,)).fetchone():
                raise ItemInUse(name)
            conn.execute("DELETE FROM Items WHERE itemName=?;", (name,))
        logger.info(f"{requester} deleted menu item {name!r}")
