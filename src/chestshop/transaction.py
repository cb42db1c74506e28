from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from .data.item import format_material
from .data.manager import ShopManager
from .data.shop import Shop
from .economy import EconomyProvider, format_amount
from .events import EventBus, TransactionCompleted, TransactionFailed
from .inventory import (
    Actor,
    Container,
    ContainerResolver,
    ContainerStock,
    count_material,
    give_items,
    read_contents,
    remove_items,
    room_for,
)
from .materials import DEFAULT_MATERIAL_REGISTRY, MaterialRegistry

logger = logging.getLogger(__name__)


class FailureKind(str, Enum):
    INVALID_QUANTITY = "invalid_quantity"
    UNKNOWN_ITEM = "unknown_item"
    NOT_FOR_SALE = "not_for_sale"
    NOT_BOUGHT = "not_bought"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    INSUFFICIENT_ITEMS = "insufficient_items"
    SHOP_CANNOT_AFFORD = "shop_cannot_afford"
    OUT_OF_STOCK = "out_of_stock"
    CONTAINER_UNAVAILABLE = "container_unavailable"
    CONTAINER_FULL = "container_full"
    ECONOMY_UNAVAILABLE = "economy_unavailable"
    SHOP_NOT_FOUND = "shop_not_found"
    NOT_COLLECTABLE = "not_collectable"


@dataclass(frozen=True)
class TransactionResult:
    """Outcome of an engine operation.

    Callers branch on ``success`` and ``kind``; ``message`` is user-facing
    text only. ``available`` carries the live count for OUT_OF_STOCK and
    INSUFFICIENT_ITEMS failures.
    """

    success: bool
    message: str
    kind: Optional[FailureKind] = None
    material: Optional[str] = None
    quantity: int = 0
    total: float = 0.0
    available: Optional[int] = None

    @classmethod
    def ok(cls, message: str, **details) -> "TransactionResult":
        return cls(True, message, None, **details)

    @classmethod
    def fail(cls, kind: FailureKind, message: str, **details) -> "TransactionResult":
        return cls(False, message, kind, **details)


def _valid_quantity(quantity: object) -> bool:
    return isinstance(quantity, int) and not isinstance(quantity, bool) and quantity > 0


class TransactionEngine:
    """Executes buys, sells and owner stock moves against registered shops.

    Every operation runs its read-only checks and then its mutations inside
    ``shop.lock``, so two callers on the same shop can never both pass a
    stock check against the same count. Nothing is mutated until every
    check has passed. The snapshot is persisted after the shop lock is
    released and before the call returns.

    The economy call is the first mutation of every money-moving operation.
    If the provider raises, the operation reports ECONOMY_UNAVAILABLE and
    leaves items and earnings untouched.
    """

    def __init__(
        self,
        registry: ShopManager,
        containers: ContainerResolver,
        economy: Optional[EconomyProvider] = None,
        materials: Optional[MaterialRegistry] = None,
        event_bus: Optional[EventBus] = None,
    ) -> None:
        self.registry = registry
        self.containers = containers
        self.economy = economy
        self.materials = materials or DEFAULT_MATERIAL_REGISTRY
        self.event_bus = event_bus

    def fmt(self, amount: float) -> str:
        return format_amount(self.economy, amount)

    # ---------------------- Customer operations ----------------------
    def buy(self, actor: Actor, shop: Shop, material: str, quantity: int) -> TransactionResult:
        """Customer buys ``quantity`` of ``material`` from ``shop``."""
        if not _valid_quantity(quantity):
            result = TransactionResult.fail(
                FailureKind.INVALID_QUANTITY, "Quantity must be a positive whole number.", material=material
            )
        else:
            with shop.lock:
                result = self._buy_locked(actor, shop, material, quantity)
            if result.success:
                self.registry.persist()
        self._emit("buy", actor, shop, material, quantity, result)
        return result

    def sell(self, actor: Actor, shop: Shop, material: str, quantity: int) -> TransactionResult:
        """Customer sells ``quantity`` of ``material`` to ``shop``."""
        if not _valid_quantity(quantity):
            result = TransactionResult.fail(
                FailureKind.INVALID_QUANTITY, "Quantity must be a positive whole number.", material=material
            )
        else:
            with shop.lock:
                result = self._sell_locked(actor, shop, material, quantity)
            if result.success:
                self.registry.persist()
        self._emit("sell", actor, shop, material, quantity, result)
        return result

    def _buy_locked(self, actor: Actor, shop: Shop, material: str, quantity: int) -> TransactionResult:
        details = {"material": material, "quantity": quantity}
        name = format_material(material)
        if not self.registry.contains(shop):
            return TransactionResult.fail(FailureKind.SHOP_NOT_FOUND, "This shop no longer exists.", **details)
        listing = shop.listing(material)
        if listing is None or listing.buy_price <= 0:
            return TransactionResult.fail(FailureKind.NOT_FOR_SALE, f"This shop doesn't sell {name}.", **details)
        if self.materials.resolve(material) is None:
            return TransactionResult.fail(FailureKind.UNKNOWN_ITEM, f"Unknown item: {material}", **details)
        economy = self.economy
        if economy is None:
            return TransactionResult.fail(FailureKind.ECONOMY_UNAVAILABLE, "Economy is not available.", **details)

        total = round(listing.buy_price * quantity, 2)
        details["total"] = total
        if not economy.has_balance(actor.id, total):
            return TransactionResult.fail(
                FailureKind.INSUFFICIENT_FUNDS,
                f"Insufficient funds. You need {self.fmt(total)} but have {self.fmt(economy.balance(actor.id))}.",
                **details,
            )

        chest: Optional[Container] = None
        if not shop.admin_shop:
            chest = self.containers.resolve_container(shop.chest_location)
            if chest is None:
                return TransactionResult.fail(FailureKind.CONTAINER_UNAVAILABLE, "Shop chest is unavailable.", **details)
            available = count_material(chest, material)
            if available < quantity:
                return TransactionResult.fail(
                    FailureKind.OUT_OF_STOCK,
                    f"Out of stock. Only {available}x {name} available.",
                    available=available,
                    **details,
                )

        logger.debug("Shop %s: %s buying %dx %s for %.2f", shop.id, actor.name, quantity, material, total)
        # Money moves first; nothing else is touched unless the debit lands
        try:
            economy.debit(actor.id, total)
        except Exception:
            logger.exception("Debiting %.2f from %s for shop %s failed", total, actor.name, shop.id)
            return self._economy_failed(details)
        try:
            if chest is not None:
                remove_items(chest, material, quantity)
            leftover = give_items(actor.inventory, material, quantity)
        except Exception:
            logger.exception("Moving items for a buy from shop %s failed; refunding %s", shop.id, actor.name)
            self._refund(actor, total)
            raise
        # Reserve shops track revenue for display only
        shop.add_earnings(total)
        if leftover:
            logger.warning("%s's inventory was full; %d of %dx %s did not fit", actor.name, leftover, quantity, material)
        return TransactionResult.ok(f"Bought {quantity}x {name} for {self.fmt(total)}.", **details)

    def _sell_locked(self, actor: Actor, shop: Shop, material: str, quantity: int) -> TransactionResult:
        details = {"material": material, "quantity": quantity}
        name = format_material(material)
        if not self.registry.contains(shop):
            return TransactionResult.fail(FailureKind.SHOP_NOT_FOUND, "This shop no longer exists.", **details)
        listing = shop.listing(material)
        if listing is None or not listing.can_sell:
            return TransactionResult.fail(FailureKind.NOT_BOUGHT, f"This shop doesn't buy {name}.", **details)
        if self.materials.resolve(material) is None:
            return TransactionResult.fail(FailureKind.UNKNOWN_ITEM, f"Unknown item: {material}", **details)
        economy = self.economy
        if economy is None:
            return TransactionResult.fail(FailureKind.ECONOMY_UNAVAILABLE, "Economy is not available.", **details)

        total = round(listing.sell_price * quantity, 2)
        details["total"] = total
        held = count_material(actor.inventory, material)
        if held < quantity:
            return TransactionResult.fail(
                FailureKind.INSUFFICIENT_ITEMS, f"You only have {held}x {name}.", available=held, **details
            )
        # Admin and reserve shops have unlimited funding
        if not shop.admin_shop and not shop.reserve_shop and shop.earnings < total:
            return TransactionResult.fail(
                FailureKind.SHOP_CANNOT_AFFORD, "This shop doesn't have enough funds to buy your items.", **details
            )

        chest: Optional[Container] = None
        if not shop.admin_shop:
            chest = self.containers.resolve_container(shop.chest_location)
            if chest is None:
                return TransactionResult.fail(FailureKind.CONTAINER_UNAVAILABLE, "Shop chest is unavailable.", **details)
            if room_for(chest, material) < quantity:
                return TransactionResult.fail(FailureKind.CONTAINER_FULL, "The shop chest is full.", **details)

        logger.debug("Shop %s: %s selling %dx %s for %.2f", shop.id, actor.name, quantity, material, total)
        try:
            economy.credit(actor.id, total)
        except Exception:
            logger.exception("Crediting %.2f to %s for shop %s failed", total, actor.name, shop.id)
            return self._economy_failed(details)
        remove_items(actor.inventory, material, quantity)
        if chest is not None:
            give_items(chest, material, quantity)
        shop.deduct_earnings(total)
        return TransactionResult.ok(f"Sold {quantity}x {name} for {self.fmt(total)}.", **details)

    # ---------------------- Owner operations ----------------------
    def deposit_stock(self, actor: Actor, shop: Shop, material: str, quantity: int) -> TransactionResult:
        """Move items from the actor's inventory into the shop chest."""

        def op() -> TransactionResult:
            details = {"material": material, "quantity": quantity}
            name = format_material(material)
            chest = self.containers.resolve_container(shop.chest_location)
            if chest is None:
                return TransactionResult.fail(FailureKind.CONTAINER_UNAVAILABLE, "Shop chest is unavailable.", **details)
            held = count_material(actor.inventory, material)
            if held < quantity:
                return TransactionResult.fail(
                    FailureKind.INSUFFICIENT_ITEMS, f"You only have {held}x {name}.", available=held, **details
                )
            if room_for(chest, material) < quantity:
                return TransactionResult.fail(FailureKind.CONTAINER_FULL, "The shop chest is full.", **details)
            remove_items(actor.inventory, material, quantity)
            give_items(chest, material, quantity)
            in_chest = count_material(chest, material)
            return TransactionResult.ok(
                f"Added {quantity}x {name} to shop chest. In chest: {in_chest}", available=in_chest, **details
            )

        return self._owner_op(shop, material, quantity, op)

    def withdraw_stock(self, actor: Actor, shop: Shop, material: str, quantity: int) -> TransactionResult:
        """Move items from the shop chest into the actor's inventory."""

        def op() -> TransactionResult:
            details = {"material": material, "quantity": quantity}
            name = format_material(material)
            chest = self.containers.resolve_container(shop.chest_location)
            if chest is None:
                return TransactionResult.fail(FailureKind.CONTAINER_UNAVAILABLE, "Shop chest is unavailable.", **details)
            available = count_material(chest, material)
            if available == 0:
                return TransactionResult.fail(
                    FailureKind.OUT_OF_STOCK, f"No {name} in the shop chest.", available=0, **details
                )
            if available < quantity:
                return TransactionResult.fail(
                    FailureKind.OUT_OF_STOCK, f"Only {available} in the chest.", available=available, **details
                )
            remove_items(chest, material, quantity)
            leftover = give_items(actor.inventory, material, quantity)
            if leftover:
                # Whatever did not fit goes back where it came from
                give_items(chest, material, leftover)
                moved = quantity - leftover
                return TransactionResult.ok(
                    f"Withdrew {moved}x {name} from shop chest ({leftover} did not fit).",
                    material=material,
                    quantity=moved,
                )
            return TransactionResult.ok(f"Withdrew {quantity}x {name} from shop chest.", **details)

        return self._owner_op(shop, material, quantity, op)

    def collect_earnings(self, actor: Actor, shop: Shop) -> TransactionResult:
        """Credit the shop's earnings to ``actor``, then zero them.

        Reserve shop revenue is display-only and cannot be collected.
        """
        economy = self.economy
        with shop.lock:
            if not self.registry.contains(shop):
                return TransactionResult.fail(FailureKind.SHOP_NOT_FOUND, "This shop no longer exists.")
            if shop.reserve_shop:
                return TransactionResult.fail(
                    FailureKind.NOT_COLLECTABLE, "Server shop revenue goes to the server reserve and cannot be collected."
                )
            if economy is None:
                return TransactionResult.fail(FailureKind.ECONOMY_UNAVAILABLE, "Economy is not available.")
            pending = shop.earnings
            if pending <= 0:
                return TransactionResult.ok("No earnings to collect.", total=0.0)
            try:
                economy.credit(actor.id, pending)
            except Exception:
                logger.exception("Crediting %.2f from shop %s to %s failed", pending, shop.id, actor.name)
                return self._economy_failed({})
            collected = shop.collect_earnings()
        logger.info("%s collected %.2f from shop %s", actor.name, collected, shop.id)
        self.registry.persist()
        return TransactionResult.ok(f"Collected {self.fmt(collected)} from shop {shop.id}.", total=collected)

    # ---------------------- Queries ----------------------
    def chest_contents(self, shop: Shop) -> Optional[List[ContainerStock]]:
        """Live chest contents, one entry per material, or None if the chest is gone."""
        with shop.lock:
            chest = self.containers.resolve_container(shop.chest_location)
            return read_contents(chest) if chest is not None else None

    def available_stock(self, shop: Shop, material: str) -> Optional[int]:
        """Live count of ``material`` a customer could buy; None means infinite.

        A missing chest counts as zero.
        """
        if shop.admin_shop:
            return None
        with shop.lock:
            chest = self.containers.resolve_container(shop.chest_location)
            return count_material(chest, material) if chest is not None else 0

    # ---------------------- Internal ----------------------
    def _owner_op(
        self, shop: Shop, material: str, quantity: int, op: Callable[[], TransactionResult]
    ) -> TransactionResult:
        if not _valid_quantity(quantity):
            return TransactionResult.fail(
                FailureKind.INVALID_QUANTITY, "Quantity must be a positive whole number.", material=material
            )
        with shop.lock:
            if not self.registry.contains(shop):
                return TransactionResult.fail(FailureKind.SHOP_NOT_FOUND, "This shop no longer exists.")
            if self.materials.resolve(material) is None:
                return TransactionResult.fail(FailureKind.UNKNOWN_ITEM, f"Unknown item: {material}", material=material)
            result = op()
        if result.success:
            self.registry.persist()
        return result

    @staticmethod
    def _economy_failed(details: dict) -> TransactionResult:
        return TransactionResult.fail(
            FailureKind.ECONOMY_UNAVAILABLE, "The economy could not complete the payment. Nothing was changed.", **details
        )

    def _refund(self, actor: Actor, amount: float) -> None:
        try:
            self.economy.credit(actor.id, amount)
        except Exception:
            logger.exception("Refunding %.2f to %s failed", amount, actor.name)

    def _emit(
        self, action: str, actor: Actor, shop: Shop, material: str, quantity: int, result: TransactionResult
    ) -> None:
        if self.event_bus is None:
            return
        if result.success:
            event = TransactionCompleted(shop.id, actor.id, action, material, quantity, result.total)
        else:
            kind = result.kind.value if result.kind is not None else ""
            event = TransactionFailed(shop.id, actor.id, action, material, quantity, kind, result.message, result.available)
        self.event_bus.emit(event)
