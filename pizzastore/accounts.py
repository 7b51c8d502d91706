"""user accounts: registration, login and profile edits"""

import logging
from dataclasses import dataclass

from .authorization import AuthorizationGate, Operation, Role
from .catalog import Catalog
from .database import DatabaseManager
from .errors import DuplicateLogin, InvalidCredentials, InvalidField, UnknownUser

logger = logging.getLogger(__name__)

MIN_LOGIN_LENGTH = 3
MAX_LOGIN_LENGTH = 20
MIN_PASSWORD_LENGTH = 4


@dataclass(frozen=True)
class User:
    login: str
    role: Role
    favorite_item: str | None
    phone: str


@dataclass(frozen=True)
class Session:
    """who is at the keyboard; passed explicitly instead of living in a global"""
    login: str


def _validate_login(login: str):
    if not (MIN_LOGIN_LENGTH <= len(login) <= MAX_LOGIN_LENGTH) or not login.isalnum():
        raise InvalidField(f"username must be {MIN_LOGIN_LENGTH}-{MAX_LOGIN_LENGTH} chars and alphanumeric")


def _validate_password(password: str):
    if len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidField(f"password too short (min {MIN_PASSWORD_LENGTH})")


def _validate_phone(phone: str) -> str:
    phone = phone.strip()
    digits = phone.replace("-", "").replace(" ", "").replace("(", "").replace(")", "").lstrip("+")
    if not digits.isdigit() or not (7 <= len(digits) <= 15):
        raise InvalidField("phone number must have 7-15 digits")
    return phone


class AccountManager:
    """user records; own-profile edits for everyone, everything else for managers"""
    def __init__(self, db: DatabaseManager, gate: AuthorizationGate, catalog: Catalog):
        self.db = db
        self.gate = gate
        self.catalog = catalog

    def user_exists(self, login: str) -> bool:
        return self.db.execute(
            "SELECT 1 FROM Users WHERE login=? LIMIT 1;",
            (login,)
        ).fetchone() is not None

    def register(self, login: str, password: str, phone: str) -> User:
        """create a customer account"""
        login = login.strip()
        _validate_login(login)
        _validate_password(password)
        phone = _validate_phone(phone)
        with self.db.transaction() as conn:
            if conn.execute("SELECT 1 FROM Users WHERE login=?;", (login,)).fetchone():
                raise DuplicateLogin(login)
            conn.execute(
                "INSERT INTO Users(login, password, role, favoriteItem, phoneNum) VALUES(?,?,?,NULL,?);",
                (login, password, Role.CUSTOMER.value, phone)
            )
        logger.info(f"registered customer {login}")
        return User(login, Role.CUSTOMER, None, phone)

    def authenticate(self, login: str, password: str) -> Session:
        row = self.db.execute(
            "SELECT login FROM Users WHERE login=? AND password=?;",
            (login, password)
        ).fetchone()
        if row is None:
            logger.info(f"failed login for {login!r}")
            raise InvalidCredentials()
        return Session(row["login"])

    def _fetch(self, login: str) -> User:
        row = self.db.execute(
            "SELECT login, role, favoriteItem, phoneNum FROM Users WHERE login=?;",
            (login,)
        ).fetchone()
        if row is None:
            raise UnknownUser(login)
        return User(row["login"], Role(row["role"]), row["favoriteItem"], row["phoneNum"])

    # own profile
    def view_profile(self, login: str) -> User:
        self.gate.require(login, Operation.VIEW_OWN_PROFILE)
        return self._fetch(login)

    def update_favorite_item(self, login: str, item_name: str) -> User:
        self.gate.require(login, Operation.EDIT_OWN_PROFILE)
        item = self.catalog.get_item(item_name)
        self.db.execute("UPDATE Users SET favoriteItem=? WHERE login=?;", (item.name, login))
        return self._fetch(login)

    def update_phone(self, login: str, phone: str) -> User:
        self.gate.require(login, Operation.EDIT_OWN_PROFILE)
        phone = _validate_phone(phone)
        self.db.execute("UPDATE Users SET phoneNum=? WHERE login=?;", (phone, login))
        return self._fetch(login)

    def change_password(self, login: str, new_password: str):
        self.gate.require(login, Operation.EDIT_OWN_PROFILE)
        _validate_password(new_password)
        self.db.execute("UPDATE Users SET password=? WHERE login=?;", (new_password, login))
        logger.info(f"{login} changed their password")

    # manager
    def list_users(self, requester: str) -> list[User]:
        self.gate.require(requester, Operation.MANAGE_USERS)
        rows = self.db.execute(
            "SELECT login, role, favoriteItem, phoneNum FROM Users ORDER BY login;"
        ).fetchall()
        return [User(r["login"], Role(r["role"]), r["favoriteItem"], r["phoneNum"]) for r in rows]

    def update_user(self, requester: str, target: str, *, role: Role | None = None,
                    favorite_item: str | None = None, phone: str | None = None) -> User:
        """manager edit of someone's role / favorite item / phone"""
        self.gate.require(requester, Operation.MANAGE_USERS)
        current = self._fetch(target)
        if favorite_item is not None:
            favorite_item = self.catalog.get_item(favorite_item).name
        if phone is not None:
            phone = _validate_phone(phone)
        new_role = current.role if role is None else role
        self.db.execute(
            "UPDATE Users SET role=?, favoriteItem=?, phoneNum=? WHERE login=?;",
            (
                new_role.value,
                current.favorite_item if favorite_item is None else favorite_item,
                current.phone if phone is None else phone,
                target,
            )
        )
        if new_role is not current.role:
            logger.info(f"{requester} changed role of {target} from {current.role.value} to {new_role.value}")
        else:
            logger.info(f"{requester} updated user {target}")
        return self._fetch(target)
