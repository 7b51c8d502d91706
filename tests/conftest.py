"""
Shared fixtures: a throwaway sqlite file with one user per role,
a couple of stores and a small menu.
"""

import pytest

from pizzastore.accounts import AccountManager
from pizzastore.authorization import AuthorizationGate
from pizzastore.catalog import Catalog, MenuEditor
from pizzastore.database import DatabaseManager
from pizzastore.orders import OrderBuilder, OrderStatusMachine

USERS = [
    ("alice", "pass1", "customer", "951-555-0101"),
    ("bob", "pass2", "customer", "951-555-0102"),
    ("dave", "pass3", "driver", "951-555-0103"),
    ("mary", "pass4", "manager", "951-555-0104"),
]

STORES = [
    (1, "123 Main St", "Riverside", "CA"),
    (2, "45 Oak Ave", "Irvine", "CA"),
]

ITEMS = [
    ("Pepperoni Pizza", "entree", "9.99", "dough, sauce, pepperoni", "the classic"),
    ("Veggie Supreme", "entree", "13.49", "dough, sauce, peppers", "greens"),
    ("Garlic Bread", "sides", "3.50", "bread, garlic", "four pieces"),
    ("Cola", "drinks", "1.99", "", "20oz"),
]


def seed(db: DatabaseManager):
    db.conn.executemany("INSERT INTO Users(login, password, role, phoneNum) VALUES(?,?,?,?);", USERS)
    db.conn.executemany("INSERT INTO Store(storeID, address, city, state) VALUES(?,?,?,?);", STORES)
    db.conn.executemany(
        "INSERT INTO Items(itemName, typeOfItem, price, ingredients, description) VALUES(?,?,?,?,?);",
        ITEMS
    )


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "pizza-test.db")


@pytest.fixture
def db(db_path):
    database = DatabaseManager(db_path, timeout=10.0, seed=False)
    seed(database)
    yield database
    database.close()


@pytest.fixture
def gate(db):
    return AuthorizationGate(db)


@pytest.fixture
def catalog(db):
    return Catalog(db)


@pytest.fixture
def editor(db, gate, catalog):
    return MenuEditor(db, gate, catalog)


@pytest.fixture
def accounts(db, gate, catalog):
    return AccountManager(db, gate, catalog)


@pytest.fixture
def builder(db, gate, catalog):
    return OrderBuilder(db, gate, catalog)


@pytest.fixture
def status(db, gate):
    return OrderStatusMachine(db, gate)


@pytest.fixture
def place(builder):
    """place(login, [(item, qty), ...], store_id=1) -> committed order id"""
    def _place(login, lines, store_id=1):
        order_id = builder.begin_order(login, store_id)
        for name, qty in lines:
            builder.add_line(login, order_id, name, qty)
        builder.commit_order(login, order_id)
        return order_id
    return _place
