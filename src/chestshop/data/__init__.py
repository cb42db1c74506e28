from .item import INFINITE_STOCK, ShopItem
from .location import ShopLocation
from .manager import ShopManager
from .shop import Shop

__all__ = ["INFINITE_STOCK", "Shop", "ShopItem", "ShopLocation", "ShopManager"]
