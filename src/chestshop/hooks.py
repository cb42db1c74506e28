from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence, Tuple

from .config import ShopConfig
from .data.location import ShopLocation
from .data.manager import ShopManager
from .data.shop import SERVER_OWNER_NAME, Shop
from .feedback import Feedback
from .inventory import Actor
from .menu import MenuSessions, MenuUpdate
from .permissions import PERM_CREATE, can_manage, is_admin

logger = logging.getLogger(__name__)

SHOP_TAG = "[Shop]"
ADMIN_SHOP_TAG = "[AdminShop]"
RESERVE_KEYWORD = "reserve"

CONTAINER_MATERIALS = frozenset({"CHEST", "TRAPPED_CHEST", "BARREL"})

# North, south, east, west, up, down
ADJACENT_OFFSETS: Tuple[Tuple[int, int, int], ...] = (
    (0, 0, -1),
    (0, 0, 1),
    (1, 0, 0),
    (-1, 0, 0),
    (0, 1, 0),
    (0, -1, 0),
)


def find_adjacent_container(
    sign_location: ShopLocation, is_container: Callable[[ShopLocation], bool]
) -> Optional[ShopLocation]:
    """Return the first neighbouring block that is a container, probing N, S, E, W, up, down."""
    for dx, dy, dz in ADJACENT_OFFSETS:
        candidate = sign_location.offset(dx, dy, dz)
        if is_container(candidate):
            return candidate
    return None


class LastViewedShops:
    """Thread-safe map of participant id to the id of the shop they last opened."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_actor: Dict[str, str] = {}

    def record(self, actor_id: str, shop_id: str) -> None:
        with self._lock:
            self._by_actor[actor_id] = shop_id

    def get(self, actor_id: str) -> Optional[str]:
        with self._lock:
            return self._by_actor.get(actor_id)

    def forget(self, actor_id: str) -> None:
        with self._lock:
            self._by_actor.pop(actor_id, None)


@dataclass(frozen=True)
class CreateResult:
    """Outcome of a sign edit.

    ``handled`` is False when the sign is not a shop sign at all. When a
    shop sign is refused, ``cancelled`` tells the host to revert the edit.
    """

    handled: bool
    cancelled: bool = False
    shop: Optional[Shop] = None
    lines: Optional[Tuple[str, str, str, str]] = None
    messages: Tuple[Feedback, ...] = ()

    @property
    def created(self) -> bool:
        return self.shop is not None

    @classmethod
    def refused(cls, text: str) -> "CreateResult":
        return cls(True, True, messages=(Feedback.error(text),))


@dataclass(frozen=True)
class BreakResult:
    allowed: bool
    removed: Optional[Shop] = None
    messages: Tuple[Feedback, ...] = ()


@dataclass(frozen=True)
class InteractResult:
    """Outcome of a right click. ``menu`` is set when a shop menu was opened."""

    cancelled: bool
    menu: Optional[MenuUpdate] = None
    messages: Tuple[Feedback, ...] = ()


class ShopCreator:
    """Turns ``[Shop]`` / ``[AdminShop]`` signs placed next to a container into shops.

    Sign formats:
    - ``[Shop]``: a player shop owned by whoever placed the sign.
    - ``[AdminShop]``: infinite stock and unlimited funds (admin only).
    - ``[Shop]`` with ``reserve`` on line 2: a server-owned shop backed by
      the container (admin only).
    """

    def __init__(self, registry: ShopManager, config: ShopConfig) -> None:
        self.registry = registry
        self.config = config
        # Check-then-create must not interleave between two creators
        self._lock = threading.Lock()

    def on_sign_change(
        self,
        actor: Actor,
        sign_location: ShopLocation,
        lines: Sequence[Optional[str]],
        is_container: Callable[[ShopLocation], bool],
    ) -> CreateResult:
        first = (lines[0] if lines else None) or ""
        tag = first.strip().lower()
        if tag not in (SHOP_TAG.lower(), ADMIN_SHOP_TAG.lower()):
            return CreateResult(False)

        admin_shop = tag == ADMIN_SHOP_TAG.lower()
        second = (lines[1] if len(lines) > 1 else None) or ""
        reserve_shop = not admin_shop and second.strip().lower() == RESERVE_KEYWORD

        if not actor.has_permission(PERM_CREATE):
            return CreateResult.refused("You don't have permission to create shops.")
        if (admin_shop or reserve_shop) and not is_admin(actor):
            kind = "server" if reserve_shop else "admin"
            return CreateResult.refused(f"You don't have permission to create {kind} shops.")
        if admin_shop and not self.config.allow_admin_shops:
            return CreateResult.refused("Admin shops are disabled on this server.")

        with self._lock:
            if self.registry.is_shop_sign(sign_location):
                return CreateResult.refused("A shop already exists at this sign.")
            chest_location = find_adjacent_container(sign_location, is_container)
            if chest_location is None:
                return CreateResult.refused("Place this sign on or next to a chest or barrel.")
            if self.registry.is_shop_chest(chest_location):
                return CreateResult.refused("That chest is already used by another shop.")

            cap = self.config.max_shops_per_player
            if not reserve_shop and not is_admin(actor) and cap > 0:
                if len(self.registry.get_by_owner(actor.id)) >= cap:
                    return CreateResult.refused(f"You have reached the maximum of {cap} shops.")

            if reserve_shop:
                shop = self.registry.create(None, SERVER_OWNER_NAME, sign_location, chest_location, reserve_shop=True)
            else:
                shop = self.registry.create(
                    actor.id, actor.name, sign_location, chest_location, admin_shop=admin_shop
                )

        if reserve_shop:
            new_lines = (SHOP_TAG, "Server Shop", "Right-click to browse", "Reserve-backed")
            label = "Server shop"
        else:
            new_lines = (ADMIN_SHOP_TAG if admin_shop else SHOP_TAG, actor.name, "Right-click to browse", "/shop price to configure")
            label = "Admin shop" if admin_shop else "Shop"
        logger.info("%s created %s %s at %s", actor.name, label.lower(), shop.id, sign_location)
        return CreateResult(
            True,
            shop=shop,
            lines=new_lines,
            messages=(
                Feedback.success(f"{label} created! ID: {shop.id}"),
                Feedback.info("Use /shop price <item> <buyPrice> [sellPrice] to add items."),
            ),
        )


class ShopProtector:
    """Keeps shop signs and chests from being broken or blown up."""

    def __init__(self, registry: ShopManager) -> None:
        self.registry = registry

    def on_block_break(self, actor: Actor, location: ShopLocation) -> BreakResult:
        shop = self.registry.get_by_location(location)
        if shop is None:
            return BreakResult(True)
        if not can_manage(actor, shop):
            return BreakResult(False, messages=(Feedback.error(f"You can't break {shop.display_title}'s shop blocks."),))
        # Breaking the sign removes the shop; breaking the chest is only allowed
        if self.registry.is_shop_sign(location):
            removed = self.registry.remove(shop.id)
            if removed is not None:
                logger.info("%s removed shop %s by breaking its sign", actor.name, shop.id)
                return BreakResult(True, removed, (Feedback.warning("Shop removed."),))
        return BreakResult(True)

    def on_block_explode(self, location: ShopLocation) -> bool:
        """True if the block belongs to a shop and must survive the explosion."""
        return self.registry.is_shop_block(location)


class ShopInteractor:
    """Routes right clicks on shop signs to the owner or customer menu."""

    def __init__(self, registry: ShopManager, menus: MenuSessions, last_viewed: LastViewedShops) -> None:
        self.registry = registry
        self.menus = menus
        self.last_viewed = last_viewed

    def on_right_click(self, actor: Actor, location: ShopLocation, sneaking: bool = False) -> InteractResult:
        shop = self.registry.get_by_sign(location)
        if shop is not None:
            self.last_viewed.record(actor.id, shop.id)
            if shop.reserve_shop:
                # Anyone browses a server shop; admins sneak-click to manage it
                owner_view = sneaking and is_admin(actor)
            else:
                owner_view = can_manage(actor, shop)
            if owner_view:
                update = self.menus.open_owner(actor, shop)
            else:
                update = self.menus.open_customer(actor, shop)
            return InteractResult(True, update)

        shop = self.registry.get_by_chest(location)
        if shop is not None and not can_manage(actor, shop):
            return InteractResult(True, messages=(Feedback.warning(f"This chest belongs to {shop.display_title}."),))
        return InteractResult(False)
