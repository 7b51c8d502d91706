"""role based permission checks, defined once for every operation"""

import logging
from enum import Enum

from .database import DatabaseManager
from .errors import Forbidden, UnknownUser

logger = logging.getLogger(__name__)


class Role(Enum):
    CUSTOMER = "customer"
    DRIVER = "driver"
    MANAGER = "manager"


class Operation(Enum):
    VIEW_OWN_PROFILE = "view-own-profile"
    EDIT_OWN_PROFILE = "edit-own-profile"
    VIEW_MENU = "view-menu"
    PLACE_ORDER = "place-order"
    VIEW_OWN_ORDERS = "view-own-orders"
    VIEW_ALL_ORDERS = "view-all-orders"
    VIEW_ORDER = "view-order"
    UPDATE_ORDER_STATUS = "update-order-status"
    MANAGE_MENU = "manage-menu"
    MANAGE_USERS = "manage-users"


_CUSTOMER_OPERATIONS = frozenset({
    Operation.VIEW_OWN_PROFILE,
    Operation.EDIT_OWN_PROFILE,
    Operation.VIEW_MENU,
    Operation.PLACE_ORDER,
    Operation.VIEW_OWN_ORDERS,
    Operation.VIEW_ORDER,  # narrowed to own orders below
})
_MANAGER_ONLY = frozenset({Operation.MANAGE_MENU, Operation.MANAGE_USERS})

POLICY: dict[Role, frozenset[Operation]] = {
    Role.CUSTOMER: _CUSTOMER_OPERATIONS,
    Role.DRIVER: frozenset(Operation) - _MANAGER_ONLY,
    Role.MANAGER: frozenset(Operation),
}


def is_permitted(role: Role, operation: Operation) -> bool:
    """pure table lookup (no per-order ownership check)"""
    return operation in POLICY[role]


class AuthorizationGate:
    """decide whether a login may perform an operation; never mutates anything"""
    def __init__(self, db: DatabaseManager):
        self.db = db

    def resolve_role(self, login: str) -> Role:
        """role for login; UnknownUser if the login (or its role) can't be resolved"""
        row = self.db.execute(
            "SELECT role FROM Users WHERE login=? LIMIT 1;",
            (login,)
        ).fetchone()
        if row is None:
            raise UnknownUser(login)
        try:
            return Role(row["role"])
        except ValueError:
            raise UnknownUser(login) from None

    def _order_owner(self, order_id: int) -> str | None:
        row = self.db.execute(
            "SELECT login FROM FoodOrder WHERE orderID=?;",
            (order_id,)
        ).fetchone()
        return row["login"] if row else None

    def _decide(self, login: str, operation: Operation, order_id: int | None) -> tuple[Role, bool]:
        role = self.resolve_role(login)
        if not is_permitted(role, operation):
            return role, False
        if operation is Operation.VIEW_ORDER and role is Role.CUSTOMER:
            if order_id is None:
                raise ValueError("view-order needs an order id")
            # a missing order is simply not theirs
            return role, self._order_owner(order_id) == login
        return role, True

    def authorize(self, login: str, operation: Operation, order_id: int | None = None) -> bool:
        """True if login may perform operation (order_id is only read for view-order)"""
        return self._decide(login, operation, order_id)[1]

    def require(self, login: str, operation: Operation, order_id: int | None = None) -> Role:
        """authorize or raise Forbidden; hands back the role for callers that branch on it"""
        role, allowed = self._decide(login, operation, order_id)
        if not allowed:
            target = f" on order #{order_id}" if order_id is not None else ""
            logger.info(f"denied {operation.value} for {login} ({role.value}){target}")
            raise Forbidden(login, operation)
        return role
