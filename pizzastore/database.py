"""sqlite connection, schema and seed data"""

import sqlite3
import logging
from contextlib import contextmanager
from decimal import Decimal
from typing import Iterator, Sequence

from .errors import StoreUnavailable

logger = logging.getLogger(__name__)

# money is kept as text so no binary float ever touches it;
# the DECIMALTEXT decltype gets TEXT affinity and converts back on read
sqlite3.register_adapter(Decimal, str)
sqlite3.register_converter("DECIMALTEXT", lambda raw: Decimal(raw.decode()))

SCHEMA = """--sql
CREATE TABLE IF NOT EXISTS Users (
    login TEXT PRIMARY KEY,
    password TEXT NOT NULL, -- credential storage is somebody else's problem
    role TEXT NOT NULL DEFAULT 'customer' CHECK (role IN ('customer', 'driver', 'manager')),
    favoriteItem TEXT REFERENCES Items(itemName) ON UPDATE CASCADE ON DELETE SET NULL,
    phoneNum TEXT NOT NULL DEFAULT ''
);
CREATE TABLE IF NOT EXISTS Store (
    storeID INTEGER PRIMARY KEY,
    address TEXT NOT NULL,
    city TEXT NOT NULL,
    state TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS Items (
    itemName TEXT PRIMARY KEY,
    typeOfItem TEXT NOT NULL,
    price DECIMALTEXT NOT NULL,
    ingredients TEXT NOT NULL DEFAULT '',
    description TEXT NOT NULL DEFAULT ''
);
CREATE TABLE IF NOT EXISTS FoodOrder (
    orderID INTEGER PRIMARY KEY AUTOINCREMENT,
    login TEXT NOT NULL REFERENCES Users(login) ON UPDATE CASCADE,
    storeID INTEGER NOT NULL REFERENCES Store(storeID),
    totalPrice DECIMALTEXT NOT NULL DEFAULT '0.00',
    orderTimeStamp TEXT NOT NULL,
    orderStatus TEXT NOT NULL DEFAULT 'incomplete' CHECK (orderStatus IN ('incomplete', 'complete')),
    committed INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE IF NOT EXISTS ItemsInOrder (
    lineID INTEGER PRIMARY KEY AUTOINCREMENT,
    orderID INTEGER NOT NULL REFERENCES FoodOrder(orderID) ON DELETE CASCADE,
    itemName TEXT NOT NULL REFERENCES Items(itemName) ON UPDATE CASCADE,
    quantity INTEGER NOT NULL CHECK (quantity > 0)
);
CREATE INDEX IF NOT EXISTS idx_order_login ON FoodOrder(login);
CREATE INDEX IF NOT EXISTS idx_lines_order ON ItemsInOrder(orderID);
CREATE TRIGGER IF NOT EXISTS trg_item_price_insert
BEFORE INSERT ON Items
WHEN CAST(NEW.price AS REAL) < 0
BEGIN
    SELECT RAISE(ABORT, 'price must not be negative');
END;
CREATE TRIGGER IF NOT EXISTS trg_item_price_update
BEFORE UPDATE ON Items
WHEN CAST(NEW.price AS REAL) < 0
BEGIN
    SELECT RAISE(ABORT, 'price must not be negative');
END;
"""

SEED_STORES = [
    (1, "123 Main St", "Riverside", "CA"),
    (2, "45 Oak Ave", "Irvine", "CA"),
    (3, "900 University Blvd", "Los Angeles", "CA"),
]

SEED_ITEMS = [
    ("Pepperoni Pizza", "entree", "12.99", "dough, sauce, mozzarella, pepperoni", "the classic"),
    ("Margherita Pizza", "entree", "10.99", "dough, sauce, mozzarella, basil", "simple and fresh"),
    ("Veggie Supreme", "entree", "13.49", "dough, sauce, peppers, onion, olives", "all the greens"),
    ("Garlic Bread", "sides", "3.50", "bread, garlic, butter", "four pieces"),
    ("Caesar Salad", "sides", "6.25", "romaine, parmesan, croutons", "with house dressing"),
    ("Cola", "drinks", "1.99", "", "20oz bottle"),
    ("Lemonade", "drinks", "2.49", "", "fresh squeezed"),
]


class DatabaseManager:
    """own one sqlite connection plus the schema it expects"""
    def __init__(self, path: str = "pizza-store.db", timeout: float = 5.0, seed: bool = True):
        self.path = path
        try:
            self.conn = sqlite3.connect(path, timeout=timeout, detect_types=sqlite3.PARSE_DECLTYPES)
            self.conn.row_factory = sqlite3.Row
            self.conn.autocommit = True
            self.conn.execute("--sql\nPRAGMA foreign_keys=ON;")
            self._create_schema()
            if seed:
                self._seed()
        except sqlite3.Error as e:
            logger.error(f"could not open database {path}: {e}")
            raise StoreUnavailable(f"could not open database {path}: {e}") from e

    def _create_schema(self):
        self.conn.executescript(SCHEMA)

    def _seed(self):
        """default stores, menu and manager account; existing rows are left alone"""
        self.conn.executemany(
            "INSERT OR IGNORE INTO Store(storeID, address, city, state) VALUES(?,?,?,?);",
            SEED_STORES
        )
        self.conn.executemany(
            """--sql
            INSERT OR IGNORE INTO Items(itemName, typeOfItem, price, ingredients, description)
            VALUES(?,?,?,?,?);
            """,
            SEED_ITEMS
        )
        self.conn.execute(
            "INSERT OR IGNORE INTO Users(login, password, role, phoneNum) VALUES(?,?,?,?);",
            ("admin", "admin", "manager", "")
        )

    def execute(self, sql: str, params: Sequence = ()) -> sqlite3.Cursor:
        """single statement in autocommit mode; store failures become StoreUnavailable"""
        try:
            return self.conn.execute(sql, params)
        except sqlite3.Error as e:
            logger.error(f"query failed: {e}")
            raise StoreUnavailable(str(e)) from e

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """BEGIN IMMEDIATE ... COMMIT; takes the write lock up front so id allocation and
        running totals never interleave with another writer"""
        try:
            self.conn.execute("BEGIN IMMEDIATE;")
        except sqlite3.Error as e:
            logger.error(f"could not start transaction: {e}")
            raise StoreUnavailable(str(e)) from e
        try:
            yield self.conn
        except sqlite3.Error as e:
            self._rollback()
            logger.error(f"transaction rolled back: {e}")
            raise StoreUnavailable(str(e)) from e
        except BaseException:
            self._rollback()
            raise
        try:
            self.conn.execute("COMMIT;")
        except sqlite3.Error as e:
            self._rollback()
            logger.error(f"commit failed: {e}")
            raise StoreUnavailable(str(e)) from e

    def _rollback(self):
        if self.conn.in_transaction:
            self.conn.execute("ROLLBACK;")

    def close(self):
        if self.conn is not None:
            self.conn.close()
            self.conn = None
