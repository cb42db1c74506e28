from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .data.item import INFINITE_STOCK, format_material
from .data.manager import ShopManager
from .data.shop import Shop
from .feedback import Feedback
from .inventory import Actor, ContainerStock, count_material
from .permissions import can_manage
from .transaction import TransactionEngine

logger = logging.getLogger(__name__)

MAX_LISTED = 18
DEFAULT_BUY_PRICE = 1.00
DEFAULT_SELL_PRICE = 0.50

# Browse screens (3 rows)
BROWSE_TOGGLE = 18
BROWSE_CLOSE = 26

# Purchase / sell screens (3 rows)
QTY_ITEM = 4
QTY_DOWN_16, QTY_DOWN_1, QTY_DISPLAY = 9, 10, 12
QTY_UP_1, QTY_UP_16, QTY_TOTAL = 14, 15, 17
QTY_BACK, QTY_CONFIRM, QTY_CLOSE = 18, 22, 26
QTY_STEPS = {QTY_DOWN_16: -16, QTY_DOWN_1: -1, QTY_UP_1: 1, QTY_UP_16: 16}

# Owner screen (4 rows)
OWNER_EARNINGS = 31
OWNER_CLOSE = 35

# Price editor (4 rows)
PE_ITEM, PE_STOCK, PE_REMOVE, PE_BACK = 4, 6, 7, 8
PE_BUY_DISPLAY = 13
PE_SELL_DISPLAY = 22
PRICE_STEPS = (1.00, 0.10, 0.05, 0.01)


def _price_adjust_slots() -> Dict[int, Tuple[float, bool]]:
    slots: Dict[int, Tuple[float, bool]] = {}
    for display, buy_side in ((PE_BUY_DISPLAY, True), (PE_SELL_DISPLAY, False)):
        for i, step in enumerate(PRICE_STEPS):
            # Largest decrement furthest left, largest increment furthest right
            slots[display - len(PRICE_STEPS) + i] = (-step, buy_side)
            slots[display + len(PRICE_STEPS) - i] = (step, buy_side)
    return slots


PRICE_ADJUST_SLOTS = _price_adjust_slots()


class ViewMode(Enum):
    CUSTOMER = "customer"
    SELL_BROWSE = "sell_browse"
    PURCHASE = "purchase"
    SELL = "sell"
    OWNER = "owner"
    PRICE_EDITOR = "price_editor"


@dataclass(frozen=True)
class MenuButton:
    label: str
    material: str
    lore: Tuple[str, ...] = ()
    amount: int = 1


@dataclass(frozen=True)
class MenuView:
    """A rendered screen: a title, a row count and the buttons by slot.

    Hosts translate this into their own widget toolkit; slots with no
    button are empty.
    """

    mode: ViewMode
    title: str
    rows: int
    buttons: Mapping[int, MenuButton]

    def button(self, slot: int) -> Optional[MenuButton]:
        return self.buttons.get(slot)


@dataclass(frozen=True)
class MenuUpdate:
    """Result of opening or clicking a menu. ``view`` is None when the menu closed."""

    view: Optional[MenuView]
    messages: Tuple[Feedback, ...] = ()

    @property
    def closed(self) -> bool:
        return self.view is None


@dataclass
class _Session:
    shop_id: str
    mode: ViewMode
    entries: List[ContainerStock] = field(default_factory=list)
    material: Optional[str] = None
    quantity: int = 1


def _display_amount(count: int) -> int:
    return max(1, min(count, 64))


def _format_count(count: Optional[int]) -> str:
    return "INF" if count is None or count == INFINITE_STOCK else str(count)


class MenuSessions:
    """Per-participant shop menu state machine.

    Each participant has at most one open session. Every purchase, sale,
    collection and price change is routed through the transaction engine or
    the registry; sessions only remember what screen is showing.
    """

    def __init__(self, registry: ShopManager, engine: TransactionEngine) -> None:
        self.registry = registry
        self.engine = engine
        self._lock = threading.Lock()
        self._sessions: Dict[str, _Session] = {}

    # ---------------------- Session bookkeeping ----------------------
    def mode(self, actor: Actor) -> Optional[ViewMode]:
        session = self._get(actor)
        return session.mode if session is not None else None

    def shop_id(self, actor: Actor) -> Optional[str]:
        session = self._get(actor)
        return session.shop_id if session is not None else None

    def is_open(self, actor: Actor) -> bool:
        return self._get(actor) is not None

    def close(self, actor: Actor) -> None:
        with self._lock:
            self._sessions.pop(actor.id, None)

    def _get(self, actor: Actor) -> Optional[_Session]:
        with self._lock:
            return self._sessions.get(actor.id)

    def _track(self, actor: Actor, session: _Session) -> None:
        with self._lock:
            self._sessions[actor.id] = session

    def _closed(self, actor: Actor, *messages: Feedback) -> MenuUpdate:
        self.close(actor)
        return MenuUpdate(None, tuple(messages))

    # ---------------------- Opening ----------------------
    def open_customer(self, actor: Actor, shop: Shop, *messages: Feedback) -> MenuUpdate:
        if shop.admin_shop:
            entries = [
                ContainerStock(item.material, INFINITE_STOCK) for item in shop.items.values() if item.buy_price > 0
            ]
        else:
            contents = self.engine.chest_contents(shop)
            if contents is None:
                return self._closed(actor, *messages, Feedback.error("Shop chest is unavailable."))
            entries = []
            for entry in contents:
                listing = shop.listing(entry.material)
                if listing is not None and listing.buy_price > 0:
                    entries.append(entry)
        has_sell_items = any(item.can_sell for item in shop.items.values())
        if not entries and not has_sell_items:
            return self._closed(actor, *messages, Feedback.warning("This shop has no items for sale."))

        entries = entries[:MAX_LISTED]
        buttons: Dict[int, MenuButton] = {}
        for slot, entry in enumerate(entries):
            listing = shop.listing(entry.material)
            buttons[slot] = MenuButton(
                format_material(entry.material),
                entry.material,
                (
                    f"Price: {self.engine.fmt(listing.buy_price)} each",
                    f"In stock: {_format_count(entry.count)}",
                    "",
                    "Click to buy",
                ),
                _display_amount(entry.count if entry.count != INFINITE_STOCK else 1),
            )
        if has_sell_items:
            buttons[BROWSE_TOGGLE] = MenuButton("Sell Items", "GOLD_NUGGET", ("Click to sell items to this shop",))
        buttons[BROWSE_CLOSE] = MenuButton("Close", "BARRIER", ("Click to close",))

        self._track(actor, _Session(shop.id, ViewMode.CUSTOMER, entries))
        return self._view(ViewMode.CUSTOMER, shop.display_title, 3, buttons, messages)

    def open_sell_browse(self, actor: Actor, shop: Shop, *messages: Feedback) -> MenuUpdate:
        entries: List[ContainerStock] = []
        for material, listing in shop.items.items():
            if not listing.can_sell:
                continue
            held = count_material(actor.inventory, material)
            if held > 0:
                entries.append(ContainerStock(material, held))
        entries = entries[:MAX_LISTED]

        buttons: Dict[int, MenuButton] = {}
        for slot, entry in enumerate(entries):
            listing = shop.listing(entry.material)
            buttons[slot] = MenuButton(
                format_material(entry.material),
                entry.material,
                (f"Sell price: {self.engine.fmt(listing.sell_price)} each", f"You have: {entry.count}", "", "Click to sell"),
                _display_amount(entry.count),
            )
        buttons[BROWSE_TOGGLE] = MenuButton("Buy Items", "EMERALD", ("Click to browse items for sale",))
        buttons[BROWSE_CLOSE] = MenuButton("Close", "BARRIER", ("Click to close",))

        self._track(actor, _Session(shop.id, ViewMode.SELL_BROWSE, entries))
        return self._view(ViewMode.SELL_BROWSE, f"{shop.display_title} [Sell]", 3, buttons, messages)

    def open_purchase(self, actor: Actor, shop: Shop, material: str, *messages: Feedback) -> MenuUpdate:
        listing = shop.listing(material)
        if listing is None or listing.buy_price <= 0:
            return self.open_customer(actor, shop, *messages)
        session = _Session(shop.id, ViewMode.PURCHASE, material=material, quantity=1)
        self._track(actor, session)
        return self._purchase_view(actor, shop, session, messages)

    def open_sell(self, actor: Actor, shop: Shop, material: str, *messages: Feedback) -> MenuUpdate:
        listing = shop.listing(material)
        if listing is None or not listing.can_sell:
            return self.open_sell_browse(actor, shop, *messages)
        session = _Session(shop.id, ViewMode.SELL, material=material, quantity=1)
        self._track(actor, session)
        return self._sell_view(actor, shop, session, messages)

    def open_owner(self, actor: Actor, shop: Shop, *messages: Feedback) -> MenuUpdate:
        contents = self.engine.chest_contents(shop)
        if contents is None:
            return self._closed(actor, *messages, Feedback.error("Shop chest is unavailable."))
        entries = list(contents)
        seen = {entry.material for entry in entries}
        # Priced materials with nothing in the chest stay editable
        entries.extend(ContainerStock(m, 0) for m in shop.items if m not in seen)
        entries = entries[:MAX_LISTED]

        buttons: Dict[int, MenuButton] = {}
        for slot, entry in enumerate(entries):
            listing = shop.listing(entry.material)
            if listing is not None:
                lore: Tuple[str, ...] = (
                    f"Buy: {self._sym()}{listing.format_buy_price()}",
                    f"Sell: {self._sym()}{listing.format_sell_price()}",
                    f"In chest: {entry.count}",
                    "",
                    "Click to edit prices",
                )
            else:
                lore = (f"In chest: {entry.count}", "No prices set", "", "Click to set prices")
            buttons[slot] = MenuButton(
                format_material(entry.material), entry.material, lore, _display_amount(entry.count)
            )
        if shop.reserve_shop:
            buttons[OWNER_EARNINGS] = MenuButton(
                "Total Revenue",
                "GOLD_INGOT",
                (f"Revenue: {self.engine.fmt(shop.earnings)}", "Payments go to server reserve"),
            )
        else:
            buttons[OWNER_EARNINGS] = MenuButton(
                "Collect Earnings",
                "GOLD_INGOT",
                (f"Pending: {self.engine.fmt(shop.earnings)}", "Click to collect all earnings"),
            )
        buttons[OWNER_CLOSE] = MenuButton("Close", "BARRIER", ("Click to close",))

        self._track(actor, _Session(shop.id, ViewMode.OWNER, entries))
        return self._view(ViewMode.OWNER, f"{shop.display_title} [Owner]", 4, buttons, messages)

    def open_price_editor(self, actor: Actor, shop: Shop, material: str, *messages: Feedback) -> MenuUpdate:
        if shop.listing(material) is None:
            self.registry.set_price(shop, material, DEFAULT_BUY_PRICE, DEFAULT_SELL_PRICE)
        session = _Session(shop.id, ViewMode.PRICE_EDITOR, material=material)
        self._track(actor, session)
        return self._price_editor_view(shop, material, messages)

    # ---------------------- Clicks ----------------------
    def click(self, actor: Actor, slot: int) -> MenuUpdate:
        """Handle a click on ``slot`` of the participant's open menu."""
        session = self._get(actor)
        if session is None:
            return MenuUpdate(None)
        shop = self.registry.get_by_id(session.shop_id)
        if shop is None:
            return self._closed(actor, Feedback.error("This shop no longer exists."))
        if session.mode in (ViewMode.OWNER, ViewMode.PRICE_EDITOR) and not can_manage(actor, shop):
            return self._closed(actor, Feedback.error("You don't own this shop."))

        logger.debug("%s clicked slot %d in %s menu of shop %s", actor.name, slot, session.mode.value, shop.id)
        handler = {
            ViewMode.CUSTOMER: self._click_customer,
            ViewMode.SELL_BROWSE: self._click_sell_browse,
            ViewMode.PURCHASE: self._click_purchase,
            ViewMode.SELL: self._click_sell,
            ViewMode.OWNER: self._click_owner,
            ViewMode.PRICE_EDITOR: self._click_price_editor,
        }[session.mode]
        return handler(actor, shop, session, slot)

    def _click_customer(self, actor: Actor, shop: Shop, session: _Session, slot: int) -> MenuUpdate:
        if slot == BROWSE_CLOSE:
            return self._closed(actor)
        if slot == BROWSE_TOGGLE:
            return self.open_sell_browse(actor, shop)
        if 0 <= slot < len(session.entries):
            return self.open_purchase(actor, shop, session.entries[slot].material)
        return self._unchanged(actor, shop, session)

    def _click_sell_browse(self, actor: Actor, shop: Shop, session: _Session, slot: int) -> MenuUpdate:
        if slot == BROWSE_CLOSE:
            return self._closed(actor)
        if slot == BROWSE_TOGGLE:
            return self.open_customer(actor, shop)
        if 0 <= slot < len(session.entries):
            return self.open_sell(actor, shop, session.entries[slot].material)
        return self._unchanged(actor, shop, session)

    def _click_purchase(self, actor: Actor, shop: Shop, session: _Session, slot: int) -> MenuUpdate:
        material = session.material
        if material is None:
            return self._closed(actor)
        if slot == QTY_CLOSE:
            return self._closed(actor)
        if slot == QTY_BACK:
            return self.open_customer(actor, shop)
        available = self.engine.available_stock(shop, material)
        if slot in QTY_STEPS:
            cap = None if available is None else max(1, available)
            session = self._step_quantity(actor, session, QTY_STEPS[slot], cap)
            return self._purchase_view(actor, shop, session, ())
        if slot == QTY_CONFIRM:
            result = self.engine.buy(actor, shop, material, session.quantity)
            if result.success:
                return self.open_customer(actor, shop, Feedback.success(result.message))
            available = self.engine.available_stock(shop, material)
            quantity = session.quantity if available is None else min(session.quantity, max(1, available))
            session = replace(session, quantity=quantity)
            self._track(actor, session)
            return self._purchase_view(actor, shop, session, (Feedback.error(result.message),))
        return self._purchase_view(actor, shop, session, ())

    def _click_sell(self, actor: Actor, shop: Shop, session: _Session, slot: int) -> MenuUpdate:
        material = session.material
        if material is None:
            return self._closed(actor)
        if slot == QTY_CLOSE:
            return self._closed(actor)
        if slot == QTY_BACK:
            return self.open_sell_browse(actor, shop)
        held = count_material(actor.inventory, material)
        if slot in QTY_STEPS:
            session = self._step_quantity(actor, session, QTY_STEPS[slot], max(1, held))
            return self._sell_view(actor, shop, session, ())
        if slot == QTY_CONFIRM:
            result = self.engine.sell(actor, shop, material, session.quantity)
            if result.success:
                return self.open_sell_browse(actor, shop, Feedback.success(result.message))
            held = count_material(actor.inventory, material)
            session = replace(session, quantity=min(session.quantity, max(1, held)))
            self._track(actor, session)
            return self._sell_view(actor, shop, session, (Feedback.error(result.message),))
        return self._sell_view(actor, shop, session, ())

    def _click_owner(self, actor: Actor, shop: Shop, session: _Session, slot: int) -> MenuUpdate:
        if slot == OWNER_CLOSE:
            return self._closed(actor)
        if slot == OWNER_EARNINGS:
            if shop.reserve_shop:
                note = Feedback.info(
                    f"Revenue: {self.engine.fmt(shop.earnings)}. Payments go directly to the server reserve."
                )
                return self.open_owner(actor, shop, note)
            result = self.engine.collect_earnings(actor, shop)
            if not result.success:
                note = Feedback.error(result.message)
            elif result.total <= 0:
                note = Feedback.warning(result.message)
            else:
                note = Feedback.success(f"Collected {self.engine.fmt(result.total)}!")
            return self.open_owner(actor, shop, note)
        if 0 <= slot < len(session.entries):
            return self.open_price_editor(actor, shop, session.entries[slot].material)
        return self._unchanged(actor, shop, session)

    def _click_price_editor(self, actor: Actor, shop: Shop, session: _Session, slot: int) -> MenuUpdate:
        material = session.material
        if material is None:
            return self._closed(actor)
        if slot == PE_BACK:
            return self.open_owner(actor, shop)
        if slot == PE_REMOVE:
            self.registry.remove_listing(shop, material)
            note = Feedback.success(f"Removed {format_material(material)} listing. Items remain in the chest.")
            return self.open_owner(actor, shop, note)
        if slot in PRICE_ADJUST_SLOTS:
            delta, buy_side = PRICE_ADJUST_SLOTS[slot]
            if self.registry.adjust_price(shop, material, delta, buy_side) is None:
                # The listing was removed elsewhere; start again from defaults
                self.registry.set_price(shop, material, DEFAULT_BUY_PRICE, DEFAULT_SELL_PRICE)
                self.registry.adjust_price(shop, material, delta, buy_side)
        return self._price_editor_view(shop, material, ())

    # ---------------------- Screens ----------------------
    def _purchase_view(
        self, actor: Actor, shop: Shop, session: _Session, messages: Sequence[Feedback]
    ) -> MenuUpdate:
        material = session.material or ""
        listing = shop.listing(material)
        if listing is None:
            return self.open_customer(actor, shop, *messages, Feedback.error(f"This shop doesn't sell {format_material(material)}."))
        name = format_material(material)
        quantity = session.quantity
        available = self.engine.available_stock(shop, material)
        total = round(listing.buy_price * quantity, 2)
        economy = self.engine.economy
        balance = economy.balance(actor.id) if economy is not None else 0.0
        can_afford = balance >= total
        has_stock = available is None or available >= quantity

        confirm_lore = [f"Buy {quantity}x {name}", f"for {self.engine.fmt(total)}"]
        if not can_afford:
            confirm_lore.append("Insufficient funds!")
        if not has_stock:
            confirm_lore.append("Not enough stock!")
        ok = can_afford and has_stock
        buttons = self._quantity_buttons(quantity, f"Max available: {_format_count(available)}")
        buttons[QTY_ITEM] = MenuButton(
            name,
            material,
            (f"Price: {self.engine.fmt(listing.buy_price)} each", f"In stock: {_format_count(available)}"),
            _display_amount(quantity),
        )
        buttons[QTY_TOTAL] = MenuButton(
            f"Total: {self.engine.fmt(total)}",
            "GOLD_INGOT",
            (f"{self.engine.fmt(listing.buy_price)} x {quantity}", "", f"Your balance: {self.engine.fmt(balance)}"),
        )
        buttons[QTY_BACK] = MenuButton("Back", "ARROW", ("Return to item list",))
        buttons[QTY_CONFIRM] = MenuButton(
            "Buy" if ok else "Cannot Buy", "EMERALD_BLOCK" if ok else "BARRIER", tuple(confirm_lore)
        )
        return self._view(ViewMode.PURCHASE, f"Buy: {name}", 3, buttons, messages)

    def _sell_view(self, actor: Actor, shop: Shop, session: _Session, messages: Sequence[Feedback]) -> MenuUpdate:
        material = session.material or ""
        listing = shop.listing(material)
        if listing is None or not listing.can_sell:
            return self.open_sell_browse(actor, shop, *messages, Feedback.error(f"This shop doesn't buy {format_material(material)}."))
        name = format_material(material)
        quantity = session.quantity
        held = count_material(actor.inventory, material)
        total = round(listing.sell_price * quantity, 2)
        shop_can_pay = shop.admin_shop or shop.reserve_shop or shop.earnings >= total
        has_items = held >= quantity

        confirm_lore = [f"Sell {quantity}x {name}", f"for {self.engine.fmt(total)}"]
        if not has_items:
            confirm_lore.append("You don't have enough!")
        if not shop_can_pay:
            confirm_lore.append("Shop can't afford this!")
        ok = has_items and shop_can_pay
        buttons = self._quantity_buttons(quantity, f"You have: {held}")
        buttons[QTY_ITEM] = MenuButton(
            name,
            material,
            (f"Sell price: {self.engine.fmt(listing.sell_price)} each", f"You have: {held}"),
            _display_amount(quantity),
        )
        buttons[QTY_TOTAL] = MenuButton(
            f"Total: {self.engine.fmt(total)}",
            "GOLD_INGOT",
            (f"{self.engine.fmt(listing.sell_price)} x {quantity}", "", f"You receive: {self.engine.fmt(total)}"),
        )
        buttons[QTY_BACK] = MenuButton("Back", "ARROW", ("Return to sell list",))
        buttons[QTY_CONFIRM] = MenuButton(
            "Sell" if ok else "Cannot Sell", "EMERALD_BLOCK" if ok else "BARRIER", tuple(confirm_lore)
        )
        return self._view(ViewMode.SELL, f"Sell: {name}", 3, buttons, messages)

    def _price_editor_view(self, shop: Shop, material: str, messages: Sequence[Feedback]) -> MenuUpdate:
        listing = shop.listing(material)
        name = format_material(material)
        s = self._sym()
        stock = self.engine.available_stock(shop, material)
        in_chest = _format_count(stock)
        buy_text = listing.format_buy_price() if listing is not None else "---"
        sell_text = listing.format_sell_price() if listing is not None else "---"

        buttons: Dict[int, MenuButton] = {
            PE_ITEM: MenuButton(
                name,
                material,
                (f"Buy: {s}{buy_text}", f"Sell: {s}{sell_text}", f"In chest: {in_chest}"),
                _display_amount(stock if stock is not None else 1),
            ),
            PE_STOCK: MenuButton(
                f"In Chest: {in_chest}",
                "CHEST",
                ("Items in the physical chest", "Add more by placing items in the chest"),
            ),
            PE_REMOVE: MenuButton("Remove Listing", "BARRIER", ("Click to remove this item's prices", "Items stay in the chest")),
            PE_BACK: MenuButton("Back", "ARROW", ("Return to shop management",)),
            PE_BUY_DISPLAY: MenuButton(
                f"Buy: {s}{buy_text}", "GOLD_INGOT", ("Current buy price", "Customers pay this to buy")
            ),
            PE_SELL_DISPLAY: MenuButton(
                f"Sell: {s}{sell_text}", "GOLD_NUGGET", ("Current sell price", "Shop pays this when buying from players")
            ),
        }
        for slot, (delta, buy_side) in PRICE_ADJUST_SLOTS.items():
            sign = "+" if delta > 0 else "-"
            verb = "Increase" if delta > 0 else "Decrease"
            side = "buy" if buy_side else "sell"
            buttons[slot] = MenuButton(
                f"{sign}{s}{abs(delta):.2f}",
                "EMERALD" if delta > 0 else "REDSTONE",
                (f"{verb} {side} price by {s}{abs(delta):.2f}",),
            )
        return self._view(ViewMode.PRICE_EDITOR, f"Edit: {name}", 4, buttons, messages)

    # ---------------------- Helpers ----------------------
    def _step_quantity(self, actor: Actor, session: _Session, step: int, cap: Optional[int]) -> _Session:
        quantity = session.quantity + step
        if cap is not None:
            quantity = min(cap, quantity)
        session = replace(session, quantity=max(1, quantity))
        self._track(actor, session)
        return session

    def _unchanged(self, actor: Actor, shop: Shop, session: _Session) -> MenuUpdate:
        """Re-render the current screen after a click on an empty or unknown slot."""
        reopen = {
            ViewMode.CUSTOMER: self.open_customer,
            ViewMode.SELL_BROWSE: self.open_sell_browse,
            ViewMode.OWNER: self.open_owner,
        }[session.mode]
        return reopen(actor, shop)

    @staticmethod
    def _quantity_buttons(quantity: int, limit_note: str) -> Dict[int, MenuButton]:
        return {
            QTY_DOWN_16: MenuButton("-16", "REDSTONE", ("Decrease quantity by 16",)),
            QTY_DOWN_1: MenuButton("-1", "REDSTONE", ("Decrease quantity by 1",)),
            QTY_DISPLAY: MenuButton(f"Quantity: {quantity}", "PAPER", (limit_note,), _display_amount(quantity)),
            QTY_UP_1: MenuButton("+1", "EMERALD", ("Increase quantity by 1",)),
            QTY_UP_16: MenuButton("+16", "EMERALD", ("Increase quantity by 16",)),
            QTY_CLOSE: MenuButton("Close", "BARRIER", ("Click to close",)),
        }

    def _sym(self) -> str:
        return getattr(self.engine.economy, "currency_symbol", "$")

    @staticmethod
    def _view(
        mode: ViewMode, title: str, rows: int, buttons: Dict[int, MenuButton], messages: Sequence[Feedback]
    ) -> MenuUpdate:
        return MenuUpdate(MenuView(mode, title, rows, MappingProxyType(buttons)), tuple(messages))
