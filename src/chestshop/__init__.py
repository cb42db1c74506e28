"""Chest shops: sign-and-container shops with a registry and a transaction engine."""

from .config import ShopConfig, load_config
from .data import Shop, ShopItem, ShopLocation, ShopManager
from .economy import EconomyProvider, InMemoryEconomy
from .events import EventBus, TransactionCompleted, TransactionFailed
from .exceptions import ChestShopError, CorruptSnapshotError, InvalidLocationError, PersistenceError, ValidationError
from .transaction import FailureKind, TransactionEngine, TransactionResult

__version__ = "0.1.0"

__all__ = [
    "ChestShopError",
    "CorruptSnapshotError",
    "EconomyProvider",
    "EventBus",
    "FailureKind",
    "InMemoryEconomy",
    "InvalidLocationError",
    "PersistenceError",
    "Shop",
    "ShopConfig",
    "ShopItem",
    "ShopLocation",
    "ShopManager",
    "TransactionCompleted",
    "TransactionEngine",
    "TransactionFailed",
    "TransactionResult",
    "ValidationError",
    "load_config",
]
