"""typed failures raised by the pizza store core"""


class PizzaStoreError(Exception):
    """base for every failure the console knows how to report"""
    recoverable = False


# validation - the caller may retry the same draft with corrected input
class ValidationError(PizzaStoreError):
    recoverable = True


class InvalidQuantity(ValidationError):
    def __init__(self, quantity):
        super().__init__(f"quantity must be a positive whole number, got {quantity!r}")
        self.quantity = quantity


class EmptyOrder(ValidationError):
    def __init__(self, order_id: int):
        super().__init__(f"order #{order_id} has no items")
        self.order_id = order_id


class UnknownItem(ValidationError):
    def __init__(self, name: str):
        super().__init__(f"no menu item named {name!r}")
        self.name = name


class InvalidPrice(ValidationError):
    def __init__(self, price):
        super().__init__(f"price must be a non-negative amount with at most 2 decimals, got {price!r}")
        self.price = price


class InvalidField(ValidationError):
    """free-form field validation (usernames, passwords, phone numbers)"""


# lookups
class UnknownUser(PizzaStoreError):
    def __init__(self, login: str):
        super().__init__(f"unknown user {login!r}")
        self.login = login


class UnknownStore(PizzaStoreError):
    def __init__(self, store_id):
        super().__init__(f"no store with id {store_id!r}")
        self.store_id = store_id


class NotFound(PizzaStoreError):
    def __init__(self, order_id):
        super().__init__(f"order #{order_id} not found")
        self.order_id = order_id


class Forbidden(PizzaStoreError):
    def __init__(self, login: str, operation):
        name = getattr(operation, "value", operation)
        super().__init__(f"{login} is not allowed to {name}")
        self.login = login
        self.operation = operation


class OrderCommitted(PizzaStoreError):
    def __init__(self, order_id: int):
        super().__init__(f"order #{order_id} is already placed and can no longer change")
        self.order_id = order_id


# accounts / menu
class InvalidCredentials(PizzaStoreError):
    def __init__(self):
        super().__init__("invalid username or password")


class DuplicateLogin(PizzaStoreError):
    def __init__(self, login: str):
        super().__init__(f"username {login!r} already taken")
        self.login = login


class DuplicateItem(PizzaStoreError):
    def __init__(self, name: str):
        super().__init__(f"menu item {name!r} already exists")
        self.name = name


class ItemInUse(PizzaStoreError):
    def __init__(self, name: str):
        super().__init__(f"menu item {name!r} appears on existing orders")
        self.name = name


# persistence
class StoreUnavailable(PizzaStoreError):
    """the database failed; fatal for the current operation"""
