#!/usr/bin/env python3

# pizza-store console 🍕
# --sql is used for syntax highlighting inline sql queries

import sys
import signal
import atexit
import inspect
import logging
from decimal import Decimal
from typing import Callable

from termcolor import cprint, colored
from colorama import just_fix_windows_console as enable_windows_ansi_interpretation

from .accounts import AccountManager, Session, User
from .authorization import AuthorizationGate, Operation, Role, is_permitted
from .catalog import Catalog, MenuEditor, MenuQuery, SortOrder, parse_price
from .config import Settings, load_settings
from .database import DatabaseManager
from .errors import EmptyOrder, InvalidQuantity, PizzaStoreError, UnknownItem, UnknownUser
from .orders import OrderBuilder, OrderDetail, OrderScope, OrderStatus, OrderStatusMachine, OrderSummary

# fix windows terminal misinterpreting ansi escape sequences
enable_windows_ansi_interpretation()

logger = logging.getLogger(__name__)


# helpers
def safe_int(value: str, minimum: int | None = None):
    """return int value or none if invalid / below minimum"""
    try:
        v = int(value)
        if minimum is not None and v < minimum:
            return None
        return v
    except ValueError:
        return None

def color_money(amount: Decimal) -> str:
    """format amount as green money string"""
    return colored(f"${amount:.2f}", "green")

def parse_boolean_input(prompt: str) -> bool:
    """parse y/n style input; anything else is a no"""
    return prompt.lower().strip() in ("y", "yes")

def print_order_summary(order: OrderSummary, show_owner: bool = False):
    """one line per order"""
    owner = f" ({order.login})" if show_owner else ""
    status = colored(order.status.value, "green" if order.status is OrderStatus.COMPLETE else "yellow")
    print(f"order #{order.order_id}{owner}: "
          f"store #{order.store_id} | {color_money(order.total_price)} | "
          f"{order.created_at:%Y-%m-%d %H:%M} | {status}")

def print_order_detail(detail: OrderDetail):
    """header plus one line per item"""
    s = detail.summary
    cprint(f"order #{s.order_id}", "green", attrs=["bold"])
    print("\tcustomer:", s.login)
    print("\tstore:", f"#{s.store_id}")
    print("\tplaced:", f"{s.created_at:%Y-%m-%d %H:%M:%S}")
    print("\tstatus:", s.status.value)
    for line in detail.lines:
        print(f"\t  {line.quantity} x {line.item_name} @ {color_money(line.unit_price)} = {color_money(line.line_total)}")
    print("\ttotal:", color_money(s.total_price))

def print_user(user: User):
    print("\tusername:", colored(user.login, "yellow", attrs=["bold"]))
    print("\trole:", user.role.value)
    print("\tfavorite item:", user.favorite_item or "currently empty")
    print("\tphone number:", user.phone or "none")


# command infrastructure
class Command:
    """bind a command name to a function; operation=None means no login needed"""
    def __init__(self, name: str, function: Callable, description: str,
                 operation: Operation | None = None):
        self.name = name
        self._fn = function
        self.description = description
        self.operation = operation

    def execute(self, tokens: list[str]):
        """validate arg count and invoke function"""
        sig = inspect.signature(self._fn)
        params = list(sig.parameters.values())
        required = sum(
            p.default == inspect.Parameter.empty and p.kind in (
                inspect.Parameter.POSITIONAL_OR_KEYWORD,
                inspect.Parameter.POSITIONAL_ONLY
            )
            for p in params
        )
        if not (required <= len(tokens) <= len(params)):
            cprint(f"invalid args for '{self.name}' (expected {required}-{len(params)}, got {len(tokens)})", "red")
            return
        return self._fn(*tokens)


class CommandParser:
    """simple repl parser; every gated command goes through the authorization gate first"""
    def __init__(self, app: "Application"):
        self.app = app
        self.commands: list[Command] = [
            Command("help", self.show_help, "show this help"),
            Command("h", self.show_help, "alias help"),
            Command("quit", self.quit, "exit program"),
            Command("exit", lambda: cprint("use quit to exit", "yellow"), "alias quit"),
        ]

    def _match(self, tokens: list[str]) -> Command | None:
        # longest name wins so "menu sort" isn't swallowed by "menu"
        for cmd in sorted(self.commands, key=lambda c: -len(c.name.split())):
            parts = cmd.name.split()
            if tokens[:len(parts)] == parts:
                return cmd
        return None

    def _current_role(self) -> Role | None:
        if self.app.session is None:
            return None
        return self.app.gate.resolve_role(self.app.session.login)

    def parse_and_execute(self, input_str: str):
        """parse the raw input string and attempt to execute a command"""
        tokens = input_str.strip().split()
        if not tokens:
            return
        cmd = self._match(tokens)
        if cmd is None:
            cprint("unknown command. type 'help'", "red")
            return
        try:
            if cmd.operation is not None:
                if self.app.session is None:
                    cprint("please login/register first", "yellow")
                    self.app.register_or_login()
                    print()
                if self.app.session is None:
                    cprint("authentication required", "red"); return
                if not is_permitted(self._current_role(), cmd.operation):
                    cprint("insufficient privileges", "red"); return
            args = tokens[len(cmd.name.split()):]
            return cmd.execute(args)
        except UnknownUser as e:
            if self.app.session is None or e.login != self.app.session.login:
                cprint(str(e), "red"); return
            logger.warning(f"session for unknown user dropped: {e}")
            cprint("authentication failed, you have been logged out", "red")
            self.app.session = None
        except PizzaStoreError as e:
            cprint(str(e), "red")

    def show_help(self):
        """display help with the commands the current user may run"""
        cprint("available commands:", "green", attrs=["bold"])
        role = self._current_role()
        width = max(len(c.name) for c in self.commands)
        for cmd in self.commands:
            if cmd.operation is not None and not is_permitted(role or Role.CUSTOMER, cmd.operation):
                continue
            sig = inspect.signature(cmd._fn)
            params = " ".join(
                f"<{p}>" if prm.default == inspect.Parameter.empty else f"[{p}]"
                for p, prm in sig.parameters.items()
            )
            line = f"{colored(cmd.name,'blue')} {colored(params,'cyan')}".strip()
            print(line.ljust(width + 25), "-", cmd.description)

    @staticmethod
    def quit():
        """interactive quit confirmation"""
        ans = input(colored("are you sure you want to quit? (y/N): ", "yellow"))
        if parse_boolean_input(ans):
            cprint("okay, see ya!", "green")
            sys.exit(0)
        cprint("continuing...", "green")

    def start_repl(self):
        """main repl loop"""
        while True:
            try:
                user_input = input(colored("\n> ", "blue")).strip()
            except EOFError:
                print()
                break
            if user_input:
                self.parse_and_execute(user_input)


# application wiring
class Application:
    """build the collaborators and hold the current session"""
    def __init__(self, settings: Settings, db: DatabaseManager | None = None):
        self.settings = settings
        self.db = db or DatabaseManager(settings.db_path, settings.db_timeout, settings.seed_data)
        self.gate = AuthorizationGate(self.db)
        self.catalog = Catalog(self.db)
        self.menu_editor = MenuEditor(self.db, self.gate, self.catalog)
        self.accounts = AccountManager(self.db, self.gate, self.catalog)
        self.builder = OrderBuilder(self.db, self.gate, self.catalog)
        self.status = OrderStatusMachine(self.db, self.gate)
        self.session: Session | None = None
        self.menu_query = MenuQuery()
        self.parser = CommandParser(self)

        # account / profile commands
        self.parser.commands += [
            Command("account register", self.register, "register"),
            Command("account login", self.login, "login"),
            Command("account logout", self.logout, "logout"),
            Command("account whoami", self.whoami, "current user"),
            Command("profile view", self.view_profile, "show your profile", Operation.VIEW_OWN_PROFILE),
            Command("profile favorite", self.update_favorite, "set favorite item", Operation.EDIT_OWN_PROFILE),
            Command("profile phone", self.update_phone, "change phone number", Operation.EDIT_OWN_PROFILE),
            Command("profile password", self.change_password, "change password", Operation.EDIT_OWN_PROFILE),
        ]

        # menu / store commands
        self.parser.commands += [
            Command("menu", self.show_menu, "show menu", Operation.VIEW_MENU),
            Command("menu sort", self.toggle_menu_sort, "cycle sort: none / price asc / price desc", Operation.VIEW_MENU),
            Command("menu type", self.filter_menu_type, "only show one item type (blank clears)", Operation.VIEW_MENU),
            Command("menu max-price", self.filter_menu_price, "hide items above a price (blank clears)", Operation.VIEW_MENU),
            Command("stores", self.show_stores, "list stores", Operation.VIEW_MENU),
        ]

        # order commands
        self.parser.commands += [
            Command("order place", self.place_order, "build and place an order", Operation.PLACE_ORDER),
            Command("order history", self.order_history, "order history (staff: 'all' or a username)", Operation.VIEW_OWN_ORDERS),
            Command("order recent", self.recent_orders, "most recent orders", Operation.VIEW_OWN_ORDERS),
            Command("order info", self.order_info, "order details", Operation.VIEW_OWN_ORDERS),
            Command("order status", self.toggle_order_status, "toggle complete/incomplete", Operation.UPDATE_ORDER_STATUS),
        ]

        # manager commands
        self.parser.commands += [
            Command("admin menu add", self.admin_menu_add, "add menu item", Operation.MANAGE_MENU),
            Command("admin menu update", self.admin_menu_update, "edit menu item", Operation.MANAGE_MENU),
            Command("admin menu delete", self.admin_menu_delete, "delete menu item", Operation.MANAGE_MENU),
            Command("admin users list", self.admin_list_users, "list accounts", Operation.MANAGE_USERS),
            Command("admin users update", self.admin_update_user, "edit a user's role / favorite / phone", Operation.MANAGE_USERS),
        ]

    @property
    def login_name(self) -> str:
        return self.session.login

    # accounts
    def register(self, username: str | None = None, password: str | None = None):
        """create a customer account"""
        if username is None:
            username = input(colored("choose a username: ", "magenta")).strip()
        if password is None:
            password = input(colored("choose a password: ", "magenta")).strip()
            again = input(colored("re-enter password: ", "magenta")).strip()
            if password != again:
                cprint("passwords did not match", "red"); return
        phone = input(colored("phone number: ", "magenta")).strip()
        self.accounts.register(username, password, phone)
        cprint("account created", "green")

    def login(self, username: str | None = None, password: str | None = None):
        """interactive login (or non-interactive if args provided)"""
        if self.session is not None:
            cprint("already logged in", "yellow")
            if parse_boolean_input(input("log out first? (y/N): ")):
                self.logout()
            else:
                return
        if username is None:
            username = input(colored("username: ", "magenta")).strip()
        if password is None:
            password = input(colored("password: ", "magenta")).strip()
        self.session = self.accounts.authenticate(username, password)
        role = self.gate.resolve_role(self.session.login)
        prefix = f"{role.value}: " if role is not Role.CUSTOMER else ""
        cprint(f"welcome back {prefix}{colored(self.session.login, 'yellow', attrs=['bold'])}", "green")

    def logout(self):
        if self.session is None:
            cprint("no user logged in", "red"); return
        cprint(f"logged out {self.session.login}", "green")
        self.session = None

    def register_or_login(self):
        """prompt user to pick register / login"""
        ans = input(f"would you like to ({colored('r','light_blue')})egister or ({colored('l','light_blue')})ogin?: ").strip().lower()
        try:
            if ans == "r":
                self.register()
            elif ans == "l":
                self.login()
            else:
                cprint("invalid option", "red")
        except PizzaStoreError as e:
            cprint(str(e), "red")

    def whoami(self):
        if self.session is None:
            cprint("no user currently logged in", "red"); return
        role = self.gate.resolve_role(self.session.login)
        cprint(f"you are logged in as {role.value} {colored(self.session.login,'yellow',attrs=['bold'])}", "green")

    # profile
    def view_profile(self):
        cprint("your profile", "green", attrs=["bold"])
        print_user(self.accounts.view_profile(self.login_name))

    def update_favorite(self):
        """pick a favorite from the menu by number"""
        items = self.catalog.browse_menu()
        for i, item in enumerate(items, start=1):
            print(f"{i}: {item.name}")
        choice = safe_int(input("number of your favorite item: ").strip(), minimum=1)
        if choice is None or choice > len(items):
            cprint("not an option", "red"); return
        user = self.accounts.update_favorite_item(self.login_name, items[choice - 1].name)
        cprint(f"favorite item changed to {user.favorite_item}", "green")

    def update_phone(self, phone: str | None = None):
        if phone is None:
            phone = input("new phone number: ").strip()
        self.accounts.update_phone(self.login_name, phone)
        cprint("phone number changed", "green")

    def change_password(self):
        first = input(colored("new password: ", "magenta")).strip()
        second = input(colored("re-enter new password: ", "magenta")).strip()
        if first != second:
            cprint("the passwords did not match!", "red"); return
        self.accounts.change_password(self.login_name, first)
        cprint("password changed", "green")

    # menu
    def show_menu(self):
        """print the menu using the current filters / sort, grouped by item type"""
        q = self.menu_query
        filters = []
        if q.item_type:
            filters.append(f"type={q.item_type}")
        if q.max_price is not None:
            filters.append(f"max={color_money(q.max_price)}")
        filters.append(f"sort={q.sort.value}")
        cprint("menu", None, attrs=["bold"], end=" ")
        print(f"({', '.join(filters)})")
        items = self.catalog.browse_menu(q)
        if not items:
            cprint("no matching items", "red"); return
        if q.sort is not SortOrder.NONE:
            for item in items:
                print(f"{item.name} [{item.item_type}]: {color_money(item.price)}")
            return
        current_type = None
        for item in sorted(items, key=lambda i: i.item_type):
            if item.item_type != current_type:
                current_type = item.item_type
                cprint(f"\n{current_type}:", "green", attrs=["bold"])
            print(f"{item.name}: {color_money(item.price)}", f"- {item.description}" if item.description else "")

    def toggle_menu_sort(self):
        self.menu_query = self.menu_query.next_sort()
        cprint(f"menu sort: {self.menu_query.sort.value}", "green")

    def filter_menu_type(self, item_type: str | None = None):
        if item_type is not None and item_type not in self.catalog.item_types():
            cprint(f"unknown type, pick one of: {', '.join(self.catalog.item_types())}", "red"); return
        self.menu_query = MenuQuery(item_type, self.menu_query.max_price, self.menu_query.sort)
        cprint(f"type filter: {item_type or 'off'}", "green")

    def filter_menu_price(self, price: str | None = None):
        max_price = None if price is None else parse_price(price)
        self.menu_query = MenuQuery(self.menu_query.item_type, max_price, self.menu_query.sort)
        cprint(f"price filter: {color_money(max_price) if max_price is not None else 'off'}", "green")

    def show_stores(self):
        stores = self.catalog.list_stores()
        if not stores:
            cprint("no stores", "red"); return
        cprint("stores", "green", attrs=["bold"])
        for s in stores:
            print(f"#{s.store_id}: {s.address}, {s.city}, {s.state}")

    # orders
    def place_order(self, store_id: str | None = None):
        """interactive order builder: pick a store, add lines, then done/cancel"""
        login = self.login_name
        if store_id is None:
            self.show_stores()
            store_id = input("store id: ").strip()
        sid = safe_int(store_id, minimum=1)
        if sid is None:
            cprint("invalid store id", "red"); return
        order_id = self.builder.begin_order(login, sid)
        cprint(f"order #{order_id} started at store #{sid}", "green")
        print(f"add items as '{colored('<quantity> <item name>', 'cyan')}', "
              f"'{colored('done', 'cyan')}' to place the order, '{colored('cancel', 'cyan')}' to drop it")
        try:
            self._build_order(login, order_id)
        except BaseException:
            # a store error or ctrl+c must not strand the draft
            self._discard_draft(login, order_id)
            raise

    def _discard_draft(self, login: str, order_id: int):
        try:
            if self.builder.cancel_order(login, order_id):
                logger.warning(f"order #{order_id} aborted, draft discarded")
        except PizzaStoreError as e:
            logger.error(f"could not discard draft #{order_id}: {e}")

    def _build_order(self, login: str, order_id: int):
        """item> loop until done or cancel"""
        while True:
            try:
                raw = input(colored("item> ", "magenta")).strip()
            except EOFError:
                raw = "cancel"
            if not raw:
                continue
            if raw.lower() == "cancel":
                self.builder.cancel_order(login, order_id)
                cprint(f"order #{order_id} cancelled", "yellow")
                return
            if raw.lower() == "done":
                try:
                    total = self.builder.commit_order(login, order_id)
                except EmptyOrder:
                    cprint("no items added, order discarded", "yellow")
                    return
                cprint(f"order #{order_id} placed, total {color_money(total)}", "green")
                return
            first, _, rest = raw.partition(" ")
            qty = safe_int(first)
            if qty is None:
                qty, name = 1, raw
            else:
                name = rest.strip()
            if not name:
                cprint("which item?", "red"); continue
            try:
                line_total = self.builder.add_line(login, order_id, name, qty)
            except (UnknownItem, InvalidQuantity) as e:
                cprint(str(e), "red"); continue
            running = self.builder.running_total(login, order_id)
            print(f"added {qty} x {name} ({color_money(line_total)}), running total {color_money(running)}")

    def _staff(self) -> bool:
        return is_permitted(self.gate.resolve_role(self.login_name), Operation.VIEW_ALL_ORDERS)

    def order_history(self, who: str | None = None):
        """customers see their own orders; staff see everyone's, or one user's"""
        login = self.login_name
        if who is None:
            scope = OrderScope.ALL if self._staff() else OrderScope.OWN
            orders = self.status.list_orders(login, scope)
        elif who == "all":
            orders = self.status.list_orders(login, OrderScope.ALL)
        else:
            orders = self.status.list_orders(login, OrderScope.ALL, by_user=who)
        if not orders:
            cprint("no order history was found", "red"); return
        staff = self._staff()
        for o in orders:
            print_order_summary(o, show_owner=staff)

    def recent_orders(self):
        login = self.login_name
        scope = OrderScope.ALL if self._staff() else OrderScope.OWN
        orders = self.status.list_orders(login, scope, limit=self.settings.recent_orders)
        if not orders:
            cprint("no order history was found", "red"); return
        cprint(f"last {len(orders)} orders", "green", attrs=["bold"])
        for o in orders:
            print_order_summary(o, show_owner=scope is OrderScope.ALL)

    def order_info(self, order_id: str):
        oid = safe_int(order_id, minimum=1)
        if oid is None:
            cprint("invalid order id", "red"); return
        print_order_detail(self.status.get_order(oid, self.login_name))

    def toggle_order_status(self, order_id: str):
        oid = safe_int(order_id, minimum=1)
        if oid is None:
            cprint("invalid order id", "red"); return
        new_status = self.status.toggle_status(oid, self.login_name)
        cprint(f"order #{oid} is now {new_status.value}", "green")

    # admin menu/users
    def admin_menu_add(self):
        name = input("menu item name: ").strip()
        item_type = input("item type: ").strip()
        price = input("price: ").strip()
        ingredients = input("ingredients: ").strip()
        description = input("description: ").strip()
        item = self.menu_editor.add_item(self.login_name, name, item_type, price, ingredients, description)
        cprint(f"added {item.name} at {color_money(item.price)}", "green")

    def admin_menu_update(self):
        """blank answers keep the current value"""
        name = input("menu item name: ").strip()
        current = self.catalog.get_item(name)
        price = input(f"price [{current.price}]: ").strip() or None
        item_type = input(f"item type [{current.item_type}]: ").strip() or None
        ingredients = input("ingredients [keep]: ").strip() or None
        description = input("description [keep]: ").strip() or None
        self.menu_editor.update_item(self.login_name, name, price=price, item_type=item_type,
                                     ingredients=ingredients, description=description)
        cprint("updated", "green")

    def admin_menu_delete(self):
        name = input("menu item name: ").strip()
        if not parse_boolean_input(input(colored(f"delete {name}? (y/N): ", "red"))):
            cprint("cancelled", "yellow"); return
        self.menu_editor.delete_item(self.login_name, name)
        cprint("deleted", "green")

    def admin_list_users(self):
        for u in self.accounts.list_users(self.login_name):
            print(f"{u.login} ({u.role.value}) phone: {u.phone or '-'} favorite: {u.favorite_item or '-'}")

    def admin_update_user(self, username: str):
        """blank answers keep the current value"""
        raw_role = input("role (customer/driver/manager) [keep]: ").strip().lower()
        try:
            role = Role(raw_role) if raw_role else None
        except ValueError:
            cprint("invalid role", "red"); return
        favorite = input("favorite item [keep]: ").strip() or None
        phone = input("phone number [keep]: ").strip() or None
        user = self.accounts.update_user(self.login_name, username, role=role, favorite_item=favorite, phone=phone)
        cprint(f"updated {user.login}", "green")
        print_user(user)

    def run(self, *args: str):
        cprint("""
welcome to the pizza store! 🍕
order, track and manage pies from the comfort of your terminal
    """, "green", attrs=["bold"])
        print("for more information, type 'help' or 'h' at any time.\nto exit the program, type 'quit'.")
        if args:
            self.parser.parse_and_execute(" ".join(args))
        self.parser.start_repl()


def configure_logging(settings: Settings):
    logging.basicConfig(
        level=settings.log_level,
        filename=settings.log_file,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# signal handler
class SignalHandler:
    """custom ctrl+c handler to nag user politely"""
    @staticmethod
    def sigint(_, __):
        """handle ctrl+c"""
        cprint("\nnext time, use quit!", "yellow")
        sys.exit(0)


# entry point
def main():
    """entrypoint wrapper"""
    settings = load_settings()
    configure_logging(settings)
    signal.signal(signal.SIGINT, SignalHandler.sigint)
    app = Application(settings)
    atexit.register(app.db.close)
    app.run(*sys.argv[1:])


if __name__ == "__main__":
    main()
