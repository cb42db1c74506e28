from __future__ import annotations

from dataclasses import dataclass, replace

from ..exceptions import ValidationError

# Sentinel stock value for listings that never run out (admin shops)
INFINITE_STOCK = -1


def format_material(material: str) -> str:
    """Return a display-friendly material name (DIAMOND_SWORD -> Diamond Sword)."""
    return " ".join(part[:1] + part[1:].lower() for part in material.split("_") if part)


@dataclass(frozen=True)
class ShopItem:
    """A per-material price/stock listing.

    A buy price of 0 means the shop does not sell the material; a sell price
    of 0 means the shop does not buy it. ``stock`` only bounds buying and is
    display-oriented once a physical container backs the shop.
    """

    material: str
    buy_price: float = 0.0
    sell_price: float = 0.0
    stock: int = 0

    def __post_init__(self) -> None:
        if not self.material or not isinstance(self.material, str):
            raise ValidationError("ShopItem.material must be a non-empty string")
        if self.buy_price < 0 or self.sell_price < 0:
            raise ValidationError(f"Prices for {self.material} cannot be negative")
        if not isinstance(self.stock, int) or self.stock < INFINITE_STOCK:
            raise ValidationError(f"Stock for {self.material} must be an integer >= -1")

    @property
    def can_buy(self) -> bool:
        return self.buy_price > 0 and (self.stock > 0 or self.stock == INFINITE_STOCK)

    @property
    def can_sell(self) -> bool:
        return self.sell_price > 0

    @property
    def has_infinite_stock(self) -> bool:
        return self.stock == INFINITE_STOCK

    @property
    def display_name(self) -> str:
        return format_material(self.material)

    def with_stock(self, stock: int) -> "ShopItem":
        return replace(self, stock=stock)

    def with_prices(self, buy_price: float, sell_price: float) -> "ShopItem":
        return replace(self, buy_price=buy_price, sell_price=sell_price)

    def format_buy_price(self) -> str:
        return f"{self.buy_price:.2f}" if self.buy_price > 0 else "---"

    def format_sell_price(self) -> str:
        return f"{self.sell_price:.2f}" if self.sell_price > 0 else "---"

    def format_stock(self) -> str:
        return "INF" if self.has_infinite_stock else str(self.stock)
