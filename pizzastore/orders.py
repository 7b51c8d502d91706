"""order lifecycle: building a draft, committing it, and its status afterwards

drafts:   begin_order -> add_line* -> commit_order   (or cancel_order)
placed:   toggle_status flips incomplete <-> complete
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from .authorization import AuthorizationGate, Operation
from .catalog import Catalog
from .database import DatabaseManager
from .errors import EmptyOrder, Forbidden, InvalidQuantity, NotFound, OrderCommitted

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


class OrderStatus(Enum):
    INCOMPLETE = "incomplete"
    COMPLETE = "complete"

    def toggled(self) -> "OrderStatus":
        return OrderStatus.INCOMPLETE if self is OrderStatus.COMPLETE else OrderStatus.COMPLETE


class OrderScope(Enum):
    OWN = "own"
    ALL = "all"


@dataclass(frozen=True)
class OrderSummary:
    order_id: int
    login: str
    store_id: int
    total_price: Decimal
    created_at: datetime
    status: OrderStatus

    @classmethod
    def from_row(cls, row) -> "OrderSummary":
        return cls(
            order_id=row["orderID"],
            login=row["login"],
            store_id=row["storeID"],
            total_price=_money(row["totalPrice"]),
            created_at=datetime.fromisoformat(row["orderTimeStamp"]),
            status=OrderStatus(row["orderStatus"]),
        )


@dataclass(frozen=True)
class OrderLine:
    item_name: str
    quantity: int
    unit_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class OrderDetail:
    summary: OrderSummary
    lines: tuple[OrderLine, ...]


def _money(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _timestamp() -> str:
    return datetime.now().isoformat(sep=" ", timespec="microseconds")


def _valid_quantity(quantity) -> bool:
    return isinstance(quantity, int) and not isinstance(quantity, bool) and quantity > 0


_SUMMARY_COLUMNS = "orderID, login, storeID, totalPrice, orderTimeStamp, orderStatus"


class OrderBuilder:
    """build, commit or cancel draft orders; only a draft's owner may touch it"""
    def __init__(self, db: DatabaseManager, gate: AuthorizationGate, catalog: Catalog):
        self.db = db
        self.gate = gate
        self.catalog = catalog

    def begin_order(self, login: str, store_id: int) -> int:
        """open a draft at store_id and return its id"""
        self.gate.require(login, Operation.PLACE_ORDER)
        self.catalog.get_store(store_id)
        with self.db.transaction() as conn:
            # AUTOINCREMENT: max id ever issued + 1, never reused
            cur = conn.execute(
                """--sql
                INSERT INTO FoodOrder(login, storeID, totalPrice, orderTimeStamp, orderStatus, committed)
                VALUES(?,?,?,?,?,0);
                """,
                (login, store_id, ZERO, _timestamp(), OrderStatus.INCOMPLETE.value)
            )
            order_id = cur.lastrowid
        logger.info(f"{login} began order #{order_id} at store {store_id}")
        return order_id

    def _draft(self, conn, login: str, order_id: int):
        """owned, uncommitted draft row; conn is a transaction connection or the
        DatabaseManager itself for a plain read"""
        row = conn.execute(
            "SELECT orderID, login, totalPrice, committed FROM FoodOrder WHERE orderID=?;",
            (order_id,)
        ).fetchone()
        if row is None:
            raise NotFound(order_id)
        if row["login"] != login:
            raise Forbidden(login, Operation.PLACE_ORDER)
        if row["committed"]:
            raise OrderCommitted(order_id)
        return row

    def add_line(self, login: str, order_id: int, item_name: str, quantity: int) -> Decimal:
        """add quantity x item to a draft; returns price x quantity for the line"""
        self.gate.require(login, Operation.PLACE_ORDER)
        with self.db.transaction() as conn:
            draft = self._draft(conn, login, order_id)
            if not _valid_quantity(quantity):
                raise InvalidQuantity(quantity)
            item = self.catalog.get_item(item_name)
            line_total = item.price * quantity
            conn.execute(
                "INSERT INTO ItemsInOrder(orderID, itemName, quantity) VALUES(?,?,?);",
                (order_id, item.name, quantity)
            )
            conn.execute(
                "UPDATE FoodOrder SET totalPrice=? WHERE orderID=?;",
                (_money(draft["totalPrice"]) + line_total, order_id)
            )
        logger.debug(f"order #{order_id}: +{quantity} x {item.name} ({line_total})")
        return line_total

    def running_total(self, login: str, order_id: int) -> Decimal:
        """current accumulated total of a draft (read only, no write lock)"""
        return _money(self._draft(self.db, login, order_id)["totalPrice"])

    def cancel_order(self, login: str, order_id: int) -> bool:
        """drop a draft and its lines; False if there was nothing left to drop"""
        self.gate.require(login, Operation.PLACE_ORDER)
        with self.db.transaction() as conn:
            try:
                self._draft(conn, login, order_id)
            except NotFound:
                return False
            conn.execute("DELETE FROM ItemsInOrder WHERE orderID=?;", (order_id,))
            conn.execute("DELETE FROM FoodOrder WHERE orderID=?;", (order_id,))
        logger.info(f"{login} cancelled order #{order_id}")
        return True

    def commit_order(self, login: str, order_id: int) -> Decimal:
        """fix the total and freeze the lines in one transaction.
        an empty draft is discarded and EmptyOrder raised"""
        self.gate.require(login, Operation.PLACE_ORDER)
        total = None
        with self.db.transaction() as conn:
            draft = self._draft(conn, login, order_id)
            lines = conn.execute(
                """--sql
                SELECT ItemsInOrder.quantity, Items.price
                FROM ItemsInOrder
                JOIN Items ON Items.itemName = ItemsInOrder.itemName
                WHERE ItemsInOrder.orderID=?
                ORDER BY ItemsInOrder.lineID;
                """,
                (order_id,)
            ).fetchall()
            if not lines:
                conn.execute("DELETE FROM FoodOrder WHERE orderID=?;", (order_id,))
            else:
                total = sum((_money(r["price"]) * r["quantity"] for r in lines), ZERO)
                running = _money(draft["totalPrice"])
                if total != running:
                    logger.warning(f"order #{order_id}: running total {running} != {total} at commit (price changed?)")
                conn.execute(
                    "UPDATE FoodOrder SET totalPrice=?, committed=1 WHERE orderID=?;",
                    (total, order_id)
                )
        if total is None:
            logger.info(f"discarded empty order #{order_id}")
            raise EmptyOrder(order_id)
        logger.info(f"{login} placed order #{order_id} for {total}")
        return total


class OrderStatusMachine:
    """history, detail and status of placed orders"""
    def __init__(self, db: DatabaseManager, gate: AuthorizationGate):
        self.db = db
        self.gate = gate

    def get_order(self, order_id: int, requester: str) -> OrderDetail:
        self.gate.require(requester, Operation.VIEW_ORDER, order_id)
        row = self.db.execute(
            f"SELECT {_SUMMARY_COLUMNS} FROM FoodOrder WHERE orderID=? AND committed=1;",
            (order_id,)
        ).fetchone()
        if row is None:
            raise NotFound(order_id)
        lines = self.db.execute(
            """--sql
            SELECT ItemsInOrder.itemName, ItemsInOrder.quantity, Items.price
            FROM ItemsInOrder
            JOIN Items ON Items.itemName = ItemsInOrder.itemName
            WHERE ItemsInOrder.orderID=?
            ORDER BY ItemsInOrder.lineID;
            """,
            (order_id,)
        ).fetchall()
        return OrderDetail(
            summary=OrderSummary.from_row(row),
            lines=tuple(OrderLine(r["itemName"], r["quantity"], _money(r["price"])) for r in lines),
        )

    def list_orders(self, requester: str, scope: OrderScope | str = OrderScope.OWN,
                    limit: int | None = None, by_user: str | None = None) -> list[OrderSummary]:
        """newest first. scope "all" and by_user are staff only"""
        scope = OrderScope(scope)
        if limit is not None and (not isinstance(limit, int) or isinstance(limit, bool) or limit < 1):
            raise ValueError(f"limit must be a positive whole number, got {limit!r}")
        if scope is OrderScope.ALL or by_user is not None:
            self.gate.require(requester, Operation.VIEW_ALL_ORDERS)
        else:
            self.gate.require(requester, Operation.VIEW_OWN_ORDERS)

        clauses, params = ["committed=1"], []
        owner = by_user if by_user is not None else (requester if scope is OrderScope.OWN else None)
        if owner is not None:
            clauses.append("login=?")
            params.append(owner)
        sql = (
            f"SELECT {_SUMMARY_COLUMNS} FROM FoodOrder WHERE {' AND '.join(clauses)} "
            "ORDER BY orderTimeStamp DESC, orderID DESC"
        )
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return [OrderSummary.from_row(r) for r in self.db.execute(sql + ";", params).fetchall()]

    def toggle_status(self, order_id: int, requester: str) -> OrderStatus:
        """complete <-> incomplete; drivers and managers only"""
        self.gate.require(requester, Operation.UPDATE_ORDER_STATUS)
        with self.db.transaction() as conn:
            row = conn.execute(
                "SELECT orderStatus FROM FoodOrder WHERE orderID=? AND committed=1;",
                (order_id,)
            ).fetchone()
            if row is None:
                raise NotFound(order_id)
            new_status = OrderStatus(row["orderStatus"]).toggled()
            conn.execute(
                "UPDATE FoodOrder SET orderStatus=? WHERE orderID=?;",
                (new_status.value, order_id)
            )
        logger.info(f"{requester} set order #{order_id} to {new_status.value}")
        return new_status
