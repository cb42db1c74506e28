from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, List, Optional, Protocol

from .materials import EMPTY_MATERIALS
from .data.location import ShopLocation

DEFAULT_MAX_STACK = 64
CHEST_SIZE = 27


@dataclass(frozen=True)
class ItemStack:
    material: str
    amount: int

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ValueError("ItemStack.amount cannot be negative")

    @property
    def is_empty(self) -> bool:
        return self.amount <= 0 or self.material in EMPTY_MATERIALS

    def with_amount(self, amount: int) -> "ItemStack":
        return replace(self, amount=amount)


@dataclass(frozen=True)
class ContainerStock:
    """One distinct material found in a container, with its total count."""

    material: str
    count: int


class Container(Protocol):
    """Fixed-size slotted storage: a shop chest or an actor's personal holdings.

    ``get_item`` may return a copy; callers write changes back with
    ``set_item``. ``add_item`` places as much of the stack as fits and
    returns the amount that did not fit.
    """

    @property
    def size(self) -> int:  # pragma: no cover - type contract
        ...

    def get_item(self, slot: int) -> Optional[ItemStack]:
        ...

    def set_item(self, slot: int, stack: Optional[ItemStack]) -> None:
        ...

    def add_item(self, stack: ItemStack) -> int:
        ...


class ContainerResolver(Protocol):
    """Maps a chest location to its live container, or None if it is gone."""

    def resolve_container(self, location: ShopLocation) -> Optional[Container]:
        ...


class Actor(Protocol):
    """A participant: a player or an operator acting through a command."""

    @property
    def id(self) -> str:  # pragma: no cover - type contract
        ...

    @property
    def name(self) -> str:  # pragma: no cover - type contract
        ...

    @property
    def inventory(self) -> Container:  # pragma: no cover - type contract
        ...

    def has_permission(self, node: str) -> bool:
        ...


class SlotContainer:
    """In-memory Container with fixed slots and a uniform max stack size."""

    def __init__(self, size: int = CHEST_SIZE, max_stack: int = DEFAULT_MAX_STACK) -> None:
        if size <= 0:
            raise ValueError("size must be positive")
        if max_stack <= 0:
            raise ValueError("max_stack must be positive")
        self._slots: List[Optional[ItemStack]] = [None] * size
        self.max_stack = max_stack
        self._lock = threading.RLock()

    @property
    def size(self) -> int:
        return len(self._slots)

    def get_item(self, slot: int) -> Optional[ItemStack]:
        with self._lock:
            return self._slots[slot]

    def set_item(self, slot: int, stack: Optional[ItemStack]) -> None:
        with self._lock:
            self._slots[slot] = None if stack is None or stack.is_empty else stack

    def add_item(self, stack: ItemStack) -> int:
        remaining = stack.amount
        with self._lock:
            # Top up partial stacks first, then fill empty slots
            for i, current in enumerate(self._slots):
                if remaining <= 0:
                    break
                if current is not None and current.material == stack.material and current.amount < self.max_stack:
                    moved = min(self.max_stack - current.amount, remaining)
                    self._slots[i] = current.with_amount(current.amount + moved)
                    remaining -= moved
            for i, current in enumerate(self._slots):
                if remaining <= 0:
                    break
                if current is None:
                    moved = min(self.max_stack, remaining)
                    self._slots[i] = ItemStack(stack.material, moved)
                    remaining -= moved
        return remaining

    def counts(self) -> Dict[str, int]:
        return {entry.material: entry.count for entry in read_contents(self)}

    def __repr__(self) -> str:
        return f"SlotContainer(size={self.size}, contents={self.counts()!r})"


@dataclass
class SimpleActor:
    """Minimal Actor for hosts without a richer entity model, and for tests."""

    id: str
    name: str
    inventory: Container = field(default_factory=lambda: SlotContainer(size=36))
    permissions: FrozenSet[str] = frozenset()

    def has_permission(self, node: str) -> bool:
        return node in self.permissions


def count_material(container: Container, material: str) -> int:
    """Sum the amounts of ``material`` across every slot."""
    total = 0
    for slot in range(container.size):
        stack = container.get_item(slot)
        if stack is not None and not stack.is_empty and stack.material == material:
            total += stack.amount
    return total


def remove_items(container: Container, material: str, amount: int) -> int:
    """Remove up to ``amount`` of ``material``, front to back. Returns how many were removed."""
    remaining = amount
    for slot in range(container.size):
        if remaining <= 0:
            break
        stack = container.get_item(slot)
        if stack is None or stack.is_empty or stack.material != material:
            continue
        if stack.amount <= remaining:
            remaining -= stack.amount
            container.set_item(slot, None)
        else:
            container.set_item(slot, stack.with_amount(stack.amount - remaining))
            remaining = 0
    return amount - remaining


def give_items(container: Container, material: str, amount: int) -> int:
    """Best-effort placement of ``amount`` items. Returns the amount that did not fit."""
    if amount <= 0:
        return 0
    return container.add_item(ItemStack(material, amount))


def room_for(container: Container, material: str) -> int:
    """How many more of ``material`` the container can take."""
    max_stack = getattr(container, "max_stack", DEFAULT_MAX_STACK)
    room = 0
    for slot in range(container.size):
        stack = container.get_item(slot)
        if stack is None or stack.is_empty:
            room += max_stack
        elif stack.material == material:
            room += max(0, max_stack - stack.amount)
    return room


def read_contents(container: Container) -> List[ContainerStock]:
    """One entry per distinct material, in first-seen slot order."""
    counts: Dict[str, int] = {}
    for slot in range(container.size):
        stack = container.get_item(slot)
        if stack is not None and not stack.is_empty:
            counts[stack.material] = counts.get(stack.material, 0) + stack.amount
    return [ContainerStock(material, count) for material, count in counts.items()]
