"""
Order builder: drafts, running totals, commit and cancel.
"""

import logging
import threading
from decimal import Decimal

import pytest

from pizzastore.authorization import AuthorizationGate
from pizzastore.catalog import Catalog
from pizzastore.database import DatabaseManager
from pizzastore.errors import (
    EmptyOrder,
    Forbidden,
    InvalidQuantity,
    NotFound,
    OrderCommitted,
    StoreUnavailable,
    UnknownItem,
    UnknownStore,
    UnknownUser,
)
from pizzastore.orders import OrderBuilder, OrderStatus


def order_count(db):
    return db.execute("SELECT COUNT(*) FROM FoodOrder;").fetchone()[0]


# ============================================================================
# Totals
# ============================================================================

class TestTotals:

    def test_exact_decimal_total(self, builder, status):
        order_id = builder.begin_order("alice", 1)
        assert builder.add_line("alice", order_id, "Pepperoni Pizza", 2) == Decimal("19.98")
        assert builder.add_line("alice", order_id, "Garlic Bread", 1) == Decimal("3.50")
        total = builder.commit_order("alice", order_id)
        assert total == Decimal("23.48")
        assert str(total) == "23.48"
        assert status.get_order(order_id, "alice").summary.total_price == Decimal("23.48")

    def test_running_total_accumulates(self, builder):
        order_id = builder.begin_order("alice", 1)
        assert builder.running_total("alice", order_id) == Decimal("0.00")
        builder.add_line("alice", order_id, "Cola", 3)
        builder.add_line("alice", order_id, "Cola", 7)
        assert builder.running_total("alice", order_id) == Decimal("19.90")

    def test_many_small_lines_do_not_drift(self, builder):
        order_id = builder.begin_order("alice", 1)
        for _ in range(10):
            builder.add_line("alice", order_id, "Cola", 1)
        assert builder.commit_order("alice", order_id) == Decimal("19.90")

    def test_commit_uses_prices_at_commit_time(self, builder, editor, caplog):
        order_id = builder.begin_order("alice", 1)
        builder.add_line("alice", order_id, "Cola", 2)
        editor.update_item("mary", "Cola", price="2.25")
        with caplog.at_level(logging.WARNING, logger="pizzastore.orders"):
            assert builder.commit_order("alice", order_id) == Decimal("4.50")
        assert "running total" in caplog.text


# ============================================================================
# Identifiers
# ============================================================================

class TestOrderIds:

    def test_ids_start_at_one_and_increase(self, builder):
        assert [builder.begin_order("alice", 1) for _ in range(3)] == [1, 2, 3]

    def test_ids_are_never_reused(self, builder):
        first = builder.begin_order("alice", 1)
        builder.cancel_order("alice", first)
        assert builder.begin_order("alice", 1) == first + 1

    def test_concurrent_begins_get_distinct_ids(self, db, db_path):
        workers = 8
        barrier = threading.Barrier(workers, timeout=30)
        ids, errors = [], []
        lock = threading.Lock()

        def begin():
            conn = DatabaseManager(db_path, timeout=30.0, seed=False)
            try:
                b = OrderBuilder(conn, AuthorizationGate(conn), Catalog(conn))
                barrier.wait()
                order_id = b.begin_order("alice", 1)
                with lock:
                    ids.append(order_id)
            except Exception as e:  # surfaced through the assertion below
                with lock:
                    errors.append(e)
            finally:
                conn.close()

        threads = [threading.Thread(target=begin) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert sorted(ids) == list(range(1, workers + 1))


# ============================================================================
# Lifecycle
# ============================================================================

class TestLifecycle:

    def test_begin_creates_incomplete_zero_draft(self, builder, db):
        order_id = builder.begin_order("alice", 2)
        row = db.execute(
            "SELECT login, storeID, totalPrice, orderStatus, committed FROM FoodOrder WHERE orderID=?;",
            (order_id,)
        ).fetchone()
        assert row["login"] == "alice"
        assert row["storeID"] == 2
        assert row["totalPrice"] == Decimal("0.00")
        assert row["orderStatus"] == "incomplete"
        assert row["committed"] == 0

    def test_unknown_store(self, builder, db):
        with pytest.raises(UnknownStore):
            builder.begin_order("alice", 42)
        assert order_count(db) == 0

    def test_unknown_user_cannot_begin(self, builder):
        with pytest.raises(UnknownUser):
            builder.begin_order("ghost", 1)

    def test_staff_can_place_orders_too(self, builder):
        order_id = builder.begin_order("dave", 1)
        builder.add_line("dave", order_id, "Cola", 1)
        assert builder.commit_order("dave", order_id) == Decimal("1.99")

    def test_commit_leaves_status_incomplete(self, builder, status):
        order_id = builder.begin_order("alice", 1)
        builder.add_line("alice", order_id, "Cola", 1)
        builder.commit_order("alice", order_id)
        assert status.get_order(order_id, "alice").summary.status is OrderStatus.INCOMPLETE

    def test_empty_commit_leaves_nothing(self, builder, status, db):
        order_id = builder.begin_order("alice", 1)
        with pytest.raises(EmptyOrder) as exc:
            builder.commit_order("alice", order_id)
        assert exc.value.recoverable
        assert order_count(db) == 0
        with pytest.raises(NotFound):
            status.get_order(order_id, "mary")

    def test_committed_order_is_frozen(self, builder):
        order_id = builder.begin_order("alice", 1)
        builder.add_line("alice", order_id, "Cola", 1)
        builder.commit_order("alice", order_id)
        with pytest.raises(OrderCommitted):
            builder.add_line("alice", order_id, "Cola", 1)
        with pytest.raises(OrderCommitted):
            builder.commit_order("alice", order_id)
        with pytest.raises(OrderCommitted):
            builder.cancel_order("alice", order_id)

    def test_cancel_then_add_is_not_found(self, builder):
        order_id = builder.begin_order("alice", 1)
        builder.add_line("alice", order_id, "Cola", 1)
        assert builder.cancel_order("alice", order_id) is True
        with pytest.raises(NotFound):
            builder.add_line("alice", order_id, "Cola", 1)

    def test_cancel_removes_lines(self, builder, db):
        order_id = builder.begin_order("alice", 1)
        builder.add_line("alice", order_id, "Cola", 1)
        builder.add_line("alice", order_id, "Garlic Bread", 2)
        builder.cancel_order("alice", order_id)
        assert order_count(db) == 0
        assert db.execute("SELECT COUNT(*) FROM ItemsInOrder;").fetchone()[0] == 0

    def test_cancel_is_idempotent(self, builder):
        order_id = builder.begin_order("alice", 1)
        assert builder.cancel_order("alice", order_id) is True
        assert builder.cancel_order("alice", order_id) is False

    def test_only_the_owner_touches_a_draft(self, builder):
        order_id = builder.begin_order("alice", 1)
        with pytest.raises(Forbidden):
            builder.add_line("bob", order_id, "Cola", 1)
        with pytest.raises(Forbidden):
            builder.cancel_order("mary", order_id)
        with pytest.raises(Forbidden):
            builder.commit_order("dave", order_id)

    def test_running_total_checks_the_draft(self, builder):
        order_id = builder.begin_order("alice", 1)
        builder.add_line("alice", order_id, "Cola", 1)
        with pytest.raises(Forbidden):
            builder.running_total("bob", order_id)
        builder.commit_order("alice", order_id)
        with pytest.raises(OrderCommitted):
            builder.running_total("alice", order_id)
        with pytest.raises(NotFound):
            builder.running_total("alice", 404)

    def test_running_total_does_not_wait_for_the_write_lock(self, db, db_path):
        reader = DatabaseManager(db_path, timeout=0.5, seed=False)
        try:
            b = OrderBuilder(reader, AuthorizationGate(reader), Catalog(reader))
            order_id = b.begin_order("alice", 1)
            b.add_line("alice", order_id, "Cola", 2)
            with db.transaction():
                assert b.running_total("alice", order_id) == Decimal("3.98")
        finally:
            reader.close()


# ============================================================================
# Validation
# ============================================================================

class TestValidation:

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, "2", True, None])
    def test_invalid_quantity(self, builder, quantity):
        order_id = builder.begin_order("alice", 1)
        with pytest.raises(InvalidQuantity):
            builder.add_line("alice", order_id, "Cola", quantity)

    def test_validation_errors_are_recoverable(self, builder):
        order_id = builder.begin_order("alice", 1)
        with pytest.raises(InvalidQuantity) as exc:
            builder.add_line("alice", order_id, "Cola", 0)
        assert exc.value.recoverable
        with pytest.raises(UnknownItem):
            builder.add_line("alice", order_id, "Root Beer", 1)
        assert builder.running_total("alice", order_id) == Decimal("0.00")
        builder.add_line("alice", order_id, "Cola", 1)
        assert builder.commit_order("alice", order_id) == Decimal("1.99")

    def test_item_names_are_case_sensitive(self, builder):
        order_id = builder.begin_order("alice", 1)
        with pytest.raises(UnknownItem):
            builder.add_line("alice", order_id, "pepperoni pizza", 1)

    def test_missing_order(self, builder):
        with pytest.raises(NotFound):
            builder.add_line("alice", 404, "Cola", 1)
        with pytest.raises(NotFound):
            builder.commit_order("alice", 404)


# ============================================================================
# Store failures
# ============================================================================

FAIL_COMMIT = """--sql
CREATE TRIGGER trg_fail_commit
BEFORE UPDATE OF committed ON FoodOrder
WHEN NEW.committed = 1
BEGIN
    SELECT RAISE(ABORT, 'disk I/O error');
END;
"""


class TestStoreFailures:

    def test_failed_commit_rolls_back_total_and_flag(self, builder, editor, db):
        order_id = builder.begin_order("alice", 1)
        builder.add_line("alice", order_id, "Cola", 2)
        # commit would recompute to 4.50 and write it with the flag
        editor.update_item("mary", "Cola", price="2.25")
        db.execute(FAIL_COMMIT)

        with pytest.raises(StoreUnavailable) as exc:
            builder.commit_order("alice", order_id)
        assert not exc.value.recoverable
        assert not db.conn.in_transaction

        row = db.execute(
            "SELECT totalPrice, committed FROM FoodOrder WHERE orderID=?;", (order_id,)
        ).fetchone()
        assert row["committed"] == 0
        assert Decimal(row["totalPrice"]) == Decimal("3.98")
        lines = db.execute(
            "SELECT itemName, quantity FROM ItemsInOrder WHERE orderID=?;", (order_id,)
        ).fetchall()
        assert [tuple(r) for r in lines] == [("Cola", 2)]

    def test_draft_survives_and_commits_once_the_store_recovers(self, builder, db):
        order_id = builder.begin_order("alice", 1)
        builder.add_line("alice", order_id, "Cola", 2)
        db.execute(FAIL_COMMIT)
        with pytest.raises(StoreUnavailable):
            builder.commit_order("alice", order_id)
        db.execute("DROP TRIGGER trg_fail_commit;")
        assert builder.commit_order("alice", order_id) == Decimal("3.98")

    def test_failed_statement_rolls_back_the_whole_transaction(self, db):
        with pytest.raises(StoreUnavailable):
            with db.transaction() as conn:
                conn.execute(
                    "INSERT INTO Store(storeID, address, city, state) VALUES(9,'1 Main St','Springfield','IL');"
                )
                conn.execute("INSERT INTO NoSuchTable VALUES(1);")
        assert db.execute("SELECT COUNT(*) FROM Store WHERE storeID=9;").fetchone()[0] == 0

    def test_execute_wraps_sqlite_errors(self, db):
        with pytest.raises(StoreUnavailable) as exc:
            db.execute("SELECT * FROM NoSuchTable;")
        assert "NoSuchTable" in str(exc.value)
