from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterable, Optional

from .commands import ShopCommand
from .config import load_config
from .data.manager import ShopManager
from .economy import EconomyProvider
from .events import EventBus
from .hooks import LastViewedShops, ShopCreator, ShopInteractor, ShopProtector
from .inventory import ContainerResolver
from .materials import MaterialRegistry
from .menu import MenuSessions
from .paths import resolve_data_dir
from .transaction import TransactionEngine

logger = logging.getLogger(__name__)


class ShopPlugin:
    """Wires the shop system together for a host.

    The host supplies container resolution and, optionally, an economy
    provider; everything else is built here. The data directory defaults to
    the per-user data dir from :func:`chestshop.paths.default_data_dir`.
    """

    def __init__(
        self,
        containers: ContainerResolver,
        economy: Optional[EconomyProvider] = None,
        data_dir: Optional[Path] = None,
        materials: Optional[MaterialRegistry] = None,
        event_bus: Optional[EventBus] = None,
        owner_lookup: Optional[Callable[[str], Optional[str]]] = None,
        online_names: Optional[Callable[[], Iterable[str]]] = None,
    ) -> None:
        self.data_dir = resolve_data_dir(data_dir)
        self.config = load_config(self.data_dir)
        self.event_bus = event_bus or EventBus()
        self.registry = ShopManager(self.data_dir)
        self.engine = TransactionEngine(self.registry, containers, economy, materials, self.event_bus)
        self.last_viewed = LastViewedShops()
        self.menus = MenuSessions(self.registry, self.engine)
        self.creator = ShopCreator(self.registry, self.config)
        self.protector = ShopProtector(self.registry)
        self.interactor = ShopInteractor(self.registry, self.menus, self.last_viewed)
        self.command = ShopCommand(
            self.registry, self.engine, self.config, self.last_viewed, owner_lookup, online_names
        )
        if economy is None:
            logger.warning("No economy provider configured; buying and selling are unavailable")
        logger.info("ChestShop enabled with %d shops from %s", self.registry.count(), self.data_dir)

    def shutdown(self) -> bool:
        """Flush the registry one last time."""
        saved = self.registry.persist()
        logger.info("ChestShop disabled")
        return saved
