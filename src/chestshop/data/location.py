from __future__ import annotations

import re
from dataclasses import dataclass

from ..exceptions import InvalidLocationError

_KEY_RE = re.compile(r"^(?P<world>.+):(?P<x>-?\d+),(?P<y>-?\d+),(?P<z>-?\d+)$")


@dataclass(frozen=True)
class ShopLocation:
    """Immutable block position used as an index key.

    Two locations are the same place iff their ``key`` strings match.
    """

    world: str
    x: int
    y: int
    z: int

    def __post_init__(self) -> None:
        if not isinstance(self.world, str) or not self.world:
            raise InvalidLocationError("ShopLocation.world must be a non-empty string")
        for axis in ("x", "y", "z"):
            value = getattr(self, axis)
            # bool is an int subclass but never a coordinate
            if not isinstance(value, int) or isinstance(value, bool):
                raise InvalidLocationError(f"ShopLocation.{axis} must be an integer, got {value!r}")

    @property
    def key(self) -> str:
        return f"{self.world}:{self.x},{self.y},{self.z}"

    @classmethod
    def from_key(cls, key: str) -> "ShopLocation":
        m = _KEY_RE.match(key or "")
        if m is None:
            raise InvalidLocationError(f"Malformed location key: {key!r}")
        return cls(m.group("world"), int(m.group("x")), int(m.group("y")), int(m.group("z")))

    def offset(self, dx: int, dy: int, dz: int) -> "ShopLocation":
        return ShopLocation(self.world, self.x + dx, self.y + dy, self.z + dz)

    def __str__(self) -> str:
        return f"{self.world} @ {self.x}, {self.y}, {self.z}"
