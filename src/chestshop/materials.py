from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .data.item import format_material

# Item kinds that never count as real stock
EMPTY_MATERIALS = frozenset({"AIR", "UNKNOWN"})

DEFAULT_MATERIALS = (
    "STONE", "COBBLESTONE", "DIRT", "GRASS_BLOCK", "SAND", "GRAVEL", "GLASS",
    "OAK_LOG", "SPRUCE_LOG", "BIRCH_LOG", "OAK_PLANKS", "SPRUCE_PLANKS", "BIRCH_PLANKS",
    "STICK", "TORCH", "CHEST", "TRAPPED_CHEST", "BARREL", "CRAFTING_TABLE", "FURNACE",
    "COAL", "CHARCOAL", "RAW_IRON", "IRON_INGOT", "IRON_NUGGET", "RAW_GOLD", "GOLD_INGOT",
    "GOLD_NUGGET", "COPPER_INGOT", "DIAMOND", "EMERALD", "LAPIS_LAZULI", "REDSTONE",
    "QUARTZ", "NETHERITE_INGOT", "AMETHYST_SHARD", "IRON_BLOCK", "GOLD_BLOCK",
    "DIAMOND_BLOCK", "EMERALD_BLOCK", "REDSTONE_BLOCK",
    "WHEAT", "WHEAT_SEEDS", "BREAD", "APPLE", "GOLDEN_APPLE", "CARROT", "POTATO",
    "BAKED_POTATO", "BEEF", "COOKED_BEEF", "PORKCHOP", "COOKED_PORKCHOP", "CHICKEN",
    "COOKED_CHICKEN", "SUGAR_CANE", "SUGAR", "PUMPKIN", "MELON_SLICE", "EGG",
    "LEATHER", "STRING", "FEATHER", "BONE", "GUNPOWDER", "ENDER_PEARL", "BLAZE_ROD",
    "SLIME_BALL", "PAPER", "BOOK", "ARROW", "BOW", "SHIELD", "SADDLE", "NAME_TAG",
    "WOODEN_PICKAXE", "STONE_PICKAXE", "IRON_PICKAXE", "DIAMOND_PICKAXE",
    "IRON_SWORD", "DIAMOND_SWORD", "IRON_AXE", "DIAMOND_AXE", "IRON_SHOVEL",
    "IRON_HELMET", "IRON_CHESTPLATE", "IRON_LEGGINGS", "IRON_BOOTS",
    "DIAMOND_HELMET", "DIAMOND_CHESTPLATE", "DIAMOND_LEGGINGS", "DIAMOND_BOOTS",
    "EXPERIENCE_BOTTLE", "BARRIER",
)


@dataclass(frozen=True)
class Material:
    """A resolved item kind."""

    name: str

    @property
    def display_name(self) -> str:
        return format_material(self.name)


class MaterialRegistry:
    """Validated lookup table of known item kinds.

    Material names are resolved once at the boundary; an unknown name
    resolves to None rather than raising.
    """

    def __init__(self, names: Optional[Iterable[str]] = None) -> None:
        self._lock = threading.RLock()
        self._materials: Dict[str, Material] = {}
        for name in DEFAULT_MATERIALS if names is None else names:
            self.register(name)

    def register(self, name: str) -> Material:
        key = name.strip().upper()
        if not key or key in EMPTY_MATERIALS:
            raise ValueError(f"Invalid material name: {name!r}")
        with self._lock:
            return self._materials.setdefault(key, Material(key))

    def resolve(self, name: Optional[str]) -> Optional[Material]:
        if not name:
            return None
        with self._lock:
            return self._materials.get(name.strip().upper())

    def is_known(self, name: Optional[str]) -> bool:
        return self.resolve(name) is not None

    def names(self) -> List[str]:
        with self._lock:
            return list(self._materials)

    def complete(self, prefix: str, limit: int = 20) -> List[str]:
        """Material names starting with ``prefix`` (case-insensitive)."""
        wanted = prefix.upper()
        return [n for n in self.names() if n.startswith(wanted)][:limit]


# A default, module-level registry for convenience
DEFAULT_MATERIAL_REGISTRY = MaterialRegistry()
