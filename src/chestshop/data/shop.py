from __future__ import annotations

import logging
import threading
import time
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from ..exceptions import ValidationError
from .item import INFINITE_STOCK, ShopItem
from .location import ShopLocation

logger = logging.getLogger(__name__)

SERVER_OWNER_NAME = "Server"


def now_millis() -> int:
    return int(time.time() * 1000)


class Shop:
    """A shop tied to a sign + container pair.

    Three shop types:
    - Player shop: owned by a player, stock from the container, earnings
      collected by the owner.
    - Admin shop: infinite virtual stock and unlimited funds.
    - Reserve shop: server-owned (no player owner), stock from the container,
      earnings tracked for display only.

    Instances are owned by the ShopManager. Callers mutate them through the
    manager or the transaction engine. Every mutator takes ``lock``, so a
    caller holding it sees no interleaved change.
    """

    def __init__(
        self,
        shop_id: str,
        owner_id: Optional[str],
        owner_name: str,
        sign_location: ShopLocation,
        chest_location: ShopLocation,
        *,
        admin_shop: bool = False,
        reserve_shop: bool = False,
        items: Optional[Mapping[str, ShopItem]] = None,
        earnings: float = 0.0,
        created_at: Optional[int] = None,
    ) -> None:
        if not shop_id:
            raise ValidationError("Shop id must be a non-empty string")
        if sign_location == chest_location:
            raise ValidationError(f"Shop {shop_id}: sign and chest cannot share a location")
        if admin_shop and reserve_shop:
            raise ValidationError(f"Shop {shop_id}: a shop cannot be both admin and reserve")
        if earnings < 0:
            raise ValidationError(f"Shop {shop_id}: earnings cannot be negative")
        self._id = shop_id
        self._owner_id = owner_id
        self._owner_name = owner_name
        self._sign_location = sign_location
        self._chest_location = chest_location
        self._admin_shop = bool(admin_shop)
        self._reserve_shop = bool(reserve_shop)
        self._items: Dict[str, ShopItem] = dict(items or {})
        self._earnings = float(earnings)
        self._created_at = created_at if created_at is not None else now_millis()
        self.lock = threading.RLock()

    # ---------------------- Identity & read-only views ----------------------
    @property
    def id(self) -> str:
        return self._id

    @property
    def owner_id(self) -> Optional[str]:
        return self._owner_id

    @property
    def owner_name(self) -> str:
        return self._owner_name

    @property
    def sign_location(self) -> ShopLocation:
        return self._sign_location

    @property
    def chest_location(self) -> ShopLocation:
        return self._chest_location

    @property
    def items(self) -> Mapping[str, ShopItem]:
        return MappingProxyType(self._items)

    @property
    def earnings(self) -> float:
        return self._earnings

    @property
    def admin_shop(self) -> bool:
        return self._admin_shop

    @property
    def reserve_shop(self) -> bool:
        return self._reserve_shop

    @property
    def created_at(self) -> int:
        return self._created_at

    def listing(self, material: str) -> Optional[ShopItem]:
        return self._items.get(material)

    def is_owner(self, participant_id: Optional[str]) -> bool:
        """Reserve shops have no player owner and return False for everyone."""
        return self._owner_id is not None and self._owner_id == participant_id

    @property
    def display_title(self) -> str:
        if self._reserve_shop:
            return "Server Shop"
        if self._admin_shop:
            return "Admin Shop"
        return f"{self._owner_name}'s Shop"

    @property
    def shop_type(self) -> str:
        if self._reserve_shop:
            return "Server"
        if self._admin_shop:
            return "Admin (infinite)"
        return "Player"

    # ---------------------- Mutators ----------------------
    # Each mutator takes ``lock`` itself; it is reentrant, so the manager and
    # the engine can wrap several calls in one critical section.
    def set_owner_name(self, name: str) -> None:
        with self.lock:
            self._owner_name = name

    def set_price(self, material: str, buy_price: float, sell_price: float) -> ShopItem:
        """Set or update a listing, preserving existing stock.

        Admin shops always get infinite stock.
        """
        with self.lock:
            existing = self._items.get(material)
            stock = existing.stock if existing is not None else 0
            if self._admin_shop:
                stock = INFINITE_STOCK
            item = ShopItem(material, float(buy_price), float(sell_price), stock)
            self._items[material] = item
            return item

    def add_stock(self, material: str, amount: int) -> int:
        """Add virtual stock, creating a zero-priced listing if needed.

        Returns the new stock count (-1 for infinite listings).
        """
        with self.lock:
            existing = self._items.get(material)
            if existing is None:
                self._items[material] = ShopItem(material, 0.0, 0.0, amount)
                return amount
            if existing.has_infinite_stock:
                return INFINITE_STOCK
            new_stock = existing.stock + amount
            self._items[material] = existing.with_stock(new_stock)
            return new_stock

    def remove_stock(self, material: str, amount: int) -> bool:
        with self.lock:
            existing = self._items.get(material)
            if existing is None:
                return False
            if existing.has_infinite_stock:
                return True
            if existing.stock < amount:
                return False
            self._items[material] = existing.with_stock(existing.stock - amount)
            return True

    def remove_item(self, material: str) -> bool:
        with self.lock:
            return self._items.pop(material, None) is not None

    def add_earnings(self, amount: float) -> None:
        with self.lock:
            self._earnings = round(self._earnings + amount, 2)

    def deduct_earnings(self, amount: float) -> bool:
        """Admin and reserve shops always succeed; their ledger is informational."""
        if self._admin_shop or self._reserve_shop:
            return True
        with self.lock:
            if self._earnings < amount:
                return False
            self._earnings = round(self._earnings - amount, 2)
            return True

    def collect_earnings(self) -> float:
        with self.lock:
            collected = self._earnings
            self._earnings = 0.0
            return collected

    def __repr__(self) -> str:
        return (
            f"Shop(id={self._id!r}, owner={self._owner_name!r}, type={self.shop_type!r}, "
            f"sign={self._sign_location.key!r}, items={len(self._items)})"
        )
