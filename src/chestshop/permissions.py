from __future__ import annotations

from .data.shop import Shop
from .inventory import Actor

PERM_CREATE = "chestshop.create"
PERM_ADMIN = "chestshop.admin"


def is_admin(actor: Actor) -> bool:
    return actor.has_permission(PERM_ADMIN)


def can_manage(actor: Actor, shop: Shop) -> bool:
    """Owners manage their own shops; admins manage every shop."""
    return shop.is_owner(actor.id) or is_admin(actor)
