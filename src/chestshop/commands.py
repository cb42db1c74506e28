from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from .config import ShopConfig
from .data.item import format_material
from .data.manager import ShopManager
from .data.shop import Shop
from .feedback import Outcome
from .hooks import LastViewedShops
from .inventory import Actor
from .permissions import can_manage, is_admin
from .transaction import TransactionEngine, TransactionResult

logger = logging.getLogger(__name__)

SUBCOMMANDS = (
    "help",
    "info",
    "list",
    "price",
    "stock",
    "withdraw",
    "buy",
    "sell",
    "earnings",
    "collect",
    "remove",
    "admin",
)
MATERIAL_SUBCOMMANDS = frozenset({"price", "stock", "withdraw", "buy", "sell"})


@dataclass(frozen=True)
class CommandResponse:
    outcome: Outcome
    lines: Tuple[str, ...]

    @property
    def text(self) -> str:
        return "\n".join(self.lines)

    @classmethod
    def of(cls, outcome: Outcome, *lines: str) -> "CommandResponse":
        return cls(outcome, tuple(lines))

    @classmethod
    def error(cls, *lines: str) -> "CommandResponse":
        return cls(Outcome.ERROR, tuple(lines))

    @classmethod
    def from_result(cls, result: TransactionResult) -> "CommandResponse":
        return cls.of(Outcome.SUCCESS if result.success else Outcome.ERROR, result.message)


class _Refusal(Exception):
    """Internal: carries an error reply out of argument and shop resolution."""

    def __init__(self, response: CommandResponse) -> None:
        super().__init__(response.text)
        self.response = response


class ShopCommand:
    """The ``/shop`` subcommand hub.

    Every mutating subcommand resolves a shop and validated arguments, then
    delegates to the registry or the transaction engine.

    ``owner_lookup`` maps a participant name to an id (online players);
    ``online_names`` lists names for tab completion. Both are optional host
    hooks.
    """

    def __init__(
        self,
        registry: ShopManager,
        engine: TransactionEngine,
        config: ShopConfig,
        last_viewed: LastViewedShops,
        owner_lookup: Optional[Callable[[str], Optional[str]]] = None,
        online_names: Optional[Callable[[], Iterable[str]]] = None,
    ) -> None:
        self.registry = registry
        self.engine = engine
        self.config = config
        self.last_viewed = last_viewed
        self.owner_lookup = owner_lookup
        self.online_names = online_names

    @property
    def materials(self):
        return self.engine.materials

    def execute(self, actor: Actor, args: Sequence[str]) -> CommandResponse:
        if not args:
            return self._help(actor)
        sub = args[0].lower()
        handler = {
            "help": lambda: self._help(actor),
            "info": lambda: self._info(actor, args),
            "list": lambda: self._list(actor, args),
            "price": lambda: self._price(actor, args),
            "stock": lambda: self._stock(actor, args),
            "withdraw": lambda: self._withdraw(actor, args),
            "buy": lambda: self._trade(actor, args, buying=True),
            "sell": lambda: self._trade(actor, args, buying=False),
            "earnings": lambda: self._earnings(actor, args),
            "collect": lambda: self._collect(actor, args),
            "remove": lambda: self._remove(actor, args),
            "admin": lambda: self._admin(actor, args),
        }.get(sub)
        if handler is None:
            return CommandResponse.error(f"Unknown subcommand: {args[0]}", "Use /shop help for a list of commands.")
        logger.debug("%s ran /shop %s", actor.name, " ".join(args))
        try:
            return handler()
        except _Refusal as refusal:
            return refusal.response

    # ---------------------- Subcommands ----------------------
    def _help(self, actor: Actor) -> CommandResponse:
        lines = [
            "=== ChestShop Commands ===",
            "",
            "  Shopping (menu):",
            "    Right-click a shop sign to open the shop menu",
            "    Owners: right-click the sign to manage prices",
            "",
            "  Creating & Managing:",
            "    Place a sign with [Shop] next to a chest",
            "    /shop price <item> <buy> [sell] [id] - Set prices",
            "    /shop stock <item> <amount> [id]     - Move items into the chest",
            "    /shop withdraw <item> <amount> [id]  - Take items out of the chest",
            "    /shop remove [id]                    - Remove shop",
            "",
            "  Command-line shopping:",
            "    /shop buy <item> [amount] [id]  - Buy items",
            "    /shop sell <item> [amount] [id] - Sell items",
            "",
            "  Information:",
            "    /shop info [id]      - Shop details",
            "    /shop list [player]  - List shops",
            "    /shop earnings [id]  - View earnings",
            "    /shop collect [id]   - Collect earnings",
        ]
        if is_admin(actor):
            lines += ["", "  Admin:", "    Place sign with [AdminShop] - Infinite stock shop"]
        return CommandResponse(Outcome.INFO, tuple(lines))

    def _info(self, actor: Actor, args: Sequence[str]) -> CommandResponse:
        shop = self._resolve_shop(actor, args, 1)
        fmt = self.engine.fmt
        lines = [
            f"=== Shop Info: {shop.id} ===",
            f"  Owner: {shop.display_title}",
            f"  Location: {shop.sign_location}",
            f"  Type: {shop.shop_type}",
            f"  Priced items: {len(shop.items)}",
            f"  Earnings: {fmt(shop.earnings)}",
        ]
        contents = self.engine.chest_contents(shop)
        if contents is None:
            lines.append("  Chest unavailable.")
        elif not contents:
            lines.append("  Chest is empty.")
        else:
            lines += ["", "  Chest contents:"]
            for entry in contents:
                listing = shop.listing(entry.material)
                if listing is not None:
                    price_info = f"Buy: {fmt(listing.buy_price)} | Sell: {fmt(listing.sell_price)}"
                else:
                    price_info = "No prices set"
                lines.append(f"  {format_material(entry.material)} x{entry.count} - {price_info}")
        return CommandResponse(Outcome.INFO, tuple(lines))

    def _list(self, actor: Actor, args: Sequence[str]) -> CommandResponse:
        if len(args) >= 2:
            target = args[1]
            owner_id = self.owner_lookup(target) if self.owner_lookup is not None else None
            shops = self.registry.get_by_owner(owner_id) if owner_id else self.registry.find_by_owner_name(target)
            header = f"{target}'s shops"
        else:
            shops = self.registry.get_by_owner(actor.id)
            header = "Your shops"

        lines = [f"=== {header} ({len(shops)}) ==="]
        if not shops:
            lines.append("  No shops found.")
        for shop in shops:
            tag = " [Admin]" if shop.admin_shop else (" [Server]" if shop.reserve_shop else "")
            lines.append(
                f"  {shop.id}{tag} - {len(shop.items)} items, "
                f"{self.engine.fmt(shop.earnings)} earnings @ {shop.sign_location}"
            )
        return CommandResponse(Outcome.INFO, tuple(lines))

    def _price(self, actor: Actor, args: Sequence[str]) -> CommandResponse:
        # /shop price <item> <buyPrice> [sellPrice] [shopId]
        if len(args) < 3:
            return CommandResponse.error("Usage: /shop price <item> <buyPrice> [sellPrice]")
        material = self._material(args[1], hint=True)
        buy_price = self._price_arg(args[2], "buy")
        sell_price = self._price_arg(args[3], "sell") if len(args) >= 4 else 0.0
        shop = self._resolve_owned_shop(actor, args, 4)

        item = self.registry.set_price(shop, material, buy_price, sell_price)
        text = f"Price set for {item.display_name}: Buy {self.engine.fmt(item.buy_price)}"
        if item.sell_price > 0:
            text += f" | Sell {self.engine.fmt(item.sell_price)}"
        return CommandResponse.of(Outcome.SUCCESS, text)

    def _stock(self, actor: Actor, args: Sequence[str]) -> CommandResponse:
        # /shop stock <item> <amount> [shopId]
        if len(args) < 3:
            return CommandResponse.error("Usage: /shop stock <item> <amount>")
        material = self._material(args[1])
        amount = self._amount_arg(args[2])
        shop = self._resolve_owned_shop(actor, args, 3)
        return CommandResponse.from_result(self.engine.deposit_stock(actor, shop, material, amount))

    def _withdraw(self, actor: Actor, args: Sequence[str]) -> CommandResponse:
        # /shop withdraw <item> <amount> [shopId]
        if len(args) < 3:
            return CommandResponse.error("Usage: /shop withdraw <item> <amount>")
        material = self._material(args[1])
        amount = self._amount_arg(args[2])
        shop = self._resolve_owned_shop(actor, args, 3)
        return CommandResponse.from_result(self.engine.withdraw_stock(actor, shop, material, amount))

    def _trade(self, actor: Actor, args: Sequence[str], buying: bool) -> CommandResponse:
        # /shop buy|sell <item> [amount] [shopId]
        verb = "buy" if buying else "sell"
        if len(args) < 2:
            return CommandResponse.error(f"Usage: /shop {verb} <item> [amount]")
        material = args[1].upper()
        amount = self._amount_arg(args[2]) if len(args) >= 3 else 1
        shop = self._resolve_shop(actor, args, 3)
        if buying:
            result = self.engine.buy(actor, shop, material, amount)
        else:
            result = self.engine.sell(actor, shop, material, amount)
        return CommandResponse.from_result(result)

    def _earnings(self, actor: Actor, args: Sequence[str]) -> CommandResponse:
        shop = self._resolve_owned_shop(actor, args, 1)
        label = "revenue" if shop.reserve_shop else "earnings"
        return CommandResponse.of(Outcome.INFO, f"Shop {shop.id} {label}: {self.engine.fmt(shop.earnings)}")

    def _collect(self, actor: Actor, args: Sequence[str]) -> CommandResponse:
        shop = self._resolve_owned_shop(actor, args, 1)
        result = self.engine.collect_earnings(actor, shop)
        if result.success and result.total <= 0:
            return CommandResponse.of(Outcome.WARNING, result.message)
        return CommandResponse.from_result(result)

    def _remove(self, actor: Actor, args: Sequence[str]) -> CommandResponse:
        shop = self._resolve_owned_shop(actor, args, 1)
        if self.registry.remove(shop.id) is None:
            return CommandResponse.error(f"Shop not found: {shop.id}")
        self.last_viewed.forget(actor.id)
        logger.info("%s removed shop %s by command", actor.name, shop.id)
        return CommandResponse.of(Outcome.SUCCESS, f"Shop {shop.id} removed.")

    def _admin(self, actor: Actor, args: Sequence[str]) -> CommandResponse:
        if not is_admin(actor):
            return CommandResponse.error("You don't have permission for admin commands.")
        if len(args) < 2 or args[1].lower() != "create":
            return CommandResponse.error("Usage: /shop admin <create>")
        if not self.config.allow_admin_shops:
            return CommandResponse.of(Outcome.WARNING, "Admin shops are disabled on this server.")
        return CommandResponse.of(
            Outcome.INFO, "Place a sign with [AdminShop] next to a chest to create an admin shop."
        )

    # ---------------------- Tab completion ----------------------
    def complete(self, args: Sequence[str]) -> List[str]:
        if len(args) == 1:
            partial = args[0].lower()
            return [s for s in SUBCOMMANDS if s.startswith(partial)]
        if len(args) == 2:
            sub = args[0].lower()
            if sub in MATERIAL_SUBCOMMANDS:
                return self.materials.complete(args[1])
            if sub == "list" and self.online_names is not None:
                partial = args[1].lower()
                return [n for n in self.online_names() if n.lower().startswith(partial)]
        return []

    # ---------------------- Resolution helpers ----------------------
    def _resolve_shop(self, actor: Actor, args: Sequence[str], id_index: int) -> Shop:
        """Explicit id argument, then the last viewed shop, then the actor's first shop."""
        if len(args) > id_index:
            shop_id = args[id_index]
            shop = self.registry.get_by_id(shop_id)
            if shop is None:
                raise _Refusal(CommandResponse.error(f"Shop not found: {shop_id}"))
            self.last_viewed.record(actor.id, shop.id)
            return shop

        last_id = self.last_viewed.get(actor.id)
        if last_id is not None:
            shop = self.registry.get_by_id(last_id)
            if shop is not None:
                return shop

        owned = self.registry.get_by_owner(actor.id)
        if owned:
            return owned[0]
        raise _Refusal(
            CommandResponse.error("No shop selected. Right-click a shop sign first, or specify a shop ID.")
        )

    def _resolve_owned_shop(self, actor: Actor, args: Sequence[str], id_index: int) -> Shop:
        shop = self._resolve_shop(actor, args, id_index)
        if not can_manage(actor, shop):
            raise _Refusal(CommandResponse.error("You don't own this shop."))
        return shop

    def _material(self, raw: str, hint: bool = False) -> str:
        material = self.materials.resolve(raw)
        if material is None:
            text = f"Unknown item: {raw}"
            if hint:
                text += ". Use the material name (e.g., DIAMOND, OAK_LOG)."
            raise _Refusal(CommandResponse.error(text))
        return material.name

    @staticmethod
    def _price_arg(raw: str, side: str) -> float:
        try:
            value = float(raw)
        except ValueError:
            raise _Refusal(CommandResponse.error(f"Invalid {side} price: {raw}")) from None
        if value < 0 or not math.isfinite(value):
            raise _Refusal(CommandResponse.error(f"Invalid {side} price: {raw}"))
        return round(value, 2)

    @staticmethod
    def _amount_arg(raw: str) -> int:
        try:
            value = int(raw)
        except ValueError:
            raise _Refusal(CommandResponse.error(f"Invalid amount: {raw}")) from None
        if value <= 0:
            raise _Refusal(CommandResponse.error(f"Invalid amount: {raw}"))
        return value
