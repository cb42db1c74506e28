from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from ..exceptions import CorruptSnapshotError
from .codec import ShopRecord, decode_snapshot, encode_snapshot
from .fs import atomic_write_text
from .item import ShopItem
from .location import ShopLocation
from .shop import Shop

logger = logging.getLogger(__name__)

SNAPSHOT_FILENAME = "shops.json"


class ShopManager:
    """Central shop registry: CRUD, JSON persistence and spatial lookups.

    Shops are indexed by:
    - shop id
    - sign location key ("world:x,y,z")
    - chest location key ("world:x,y,z")
    - owner id (reserve shops have none)

    All four indexes are guarded by one re-entrant lock, so a create or
    remove is seen by readers either completely or not at all. Every
    mutation is flushed to ``shops.json`` before the call returns.

    The registry lock is never held while acquiring a shop lock; a holder
    of a shop lock may briefly take the registry lock (``contains`` and
    ``remove``).
    ``persist()`` takes the write lock and then each shop lock in turn, so
    it must not be called while holding a shop lock.
    """

    def __init__(self, data_dir: Path) -> None:
        self.data_dir = Path(data_dir)
        self.data_file = self.data_dir / SNAPSHOT_FILENAME
        self._lock = threading.RLock()
        self._write_lock = threading.Lock()
        self._shops_by_id: Dict[str, Shop] = {}
        self._sign_index: Dict[str, str] = {}
        self._chest_index: Dict[str, str] = {}
        # owner id -> shop ids, a dict used as an insertion-ordered set
        self._owner_index: Dict[str, Dict[str, None]] = {}
        self.load()

    # ---------------------- CRUD ----------------------
    def create(
        self,
        owner_id: Optional[str],
        owner_name: str,
        sign_location: ShopLocation,
        chest_location: ShopLocation,
        admin_shop: bool = False,
        reserve_shop: bool = False,
    ) -> Shop:
        """Create, index and persist a new shop.

        The caller must already have checked ``is_shop_sign`` and
        ``is_shop_chest``; the registry does not re-validate uniqueness.
        """
        with self._lock:
            shop_id = self._new_id()
            shop = Shop(
                shop_id,
                owner_id,
                owner_name,
                sign_location,
                chest_location,
                admin_shop=admin_shop,
                reserve_shop=reserve_shop,
            )
            self._index(shop)
        logger.info(
            "Created %s shop %s for %s at %s", shop.shop_type.lower(), shop_id, owner_name, sign_location
        )
        self.persist()
        return shop

    def remove(self, shop_id: str) -> Optional[Shop]:
        """Remove a shop from every index. Returns None if it was not found.

        Waits for any operation holding the shop's lock, so an in-flight buy
        or sell finishes against a registered shop before it disappears.
        """
        shop = self.get_by_id(shop_id)
        if shop is None:
            return None
        # Shop lock first, then the registry lock: the order every holder uses
        with shop.lock, self._lock:
            if self._shops_by_id.get(shop_id) is not shop:
                return None
            del self._shops_by_id[shop_id]
            self._sign_index.pop(shop.sign_location.key, None)
            self._chest_index.pop(shop.chest_location.key, None)
            if shop.owner_id is not None:
                owned = self._owner_index.get(shop.owner_id)
                if owned is not None:
                    owned.pop(shop_id, None)
                    if not owned:
                        del self._owner_index[shop.owner_id]
        logger.info("Removed shop %s (%s)", shop_id, shop.display_title)
        self.persist()
        return shop

    # ---------------------- Lookups ----------------------
    def get_by_sign(self, location: ShopLocation) -> Optional[Shop]:
        with self._lock:
            shop_id = self._sign_index.get(location.key)
            return self._shops_by_id.get(shop_id) if shop_id is not None else None

    def get_by_chest(self, location: ShopLocation) -> Optional[Shop]:
        with self._lock:
            shop_id = self._chest_index.get(location.key)
            return self._shops_by_id.get(shop_id) if shop_id is not None else None

    def get_by_location(self, location: ShopLocation) -> Optional[Shop]:
        with self._lock:
            shop = self.get_by_sign(location)
            return shop if shop is not None else self.get_by_chest(location)

    def get_by_id(self, shop_id: str) -> Optional[Shop]:
        with self._lock:
            return self._shops_by_id.get(shop_id)

    def get_by_owner(self, owner_id: str) -> List[Shop]:
        """Shops owned by ``owner_id`` in creation order (empty if none)."""
        with self._lock:
            ids = self._owner_index.get(owner_id)
            if not ids:
                return []
            return [self._shops_by_id[i] for i in ids if i in self._shops_by_id]

    def find_by_owner_name(self, name: str) -> List[Shop]:
        wanted = name.lower()
        return [s for s in self.all_shops() if s.owner_name.lower() == wanted]

    def all_shops(self) -> List[Shop]:
        with self._lock:
            return list(self._shops_by_id.values())

    def contains(self, shop: Shop) -> bool:
        """True if ``shop`` is the instance currently registered under its id."""
        with self._lock:
            return self._shops_by_id.get(shop.id) is shop

    def is_shop_sign(self, location: ShopLocation) -> bool:
        with self._lock:
            return location.key in self._sign_index

    def is_shop_chest(self, location: ShopLocation) -> bool:
        with self._lock:
            return location.key in self._chest_index

    def is_shop_block(self, location: ShopLocation) -> bool:
        with self._lock:
            return self.is_shop_sign(location) or self.is_shop_chest(location)

    def count(self) -> int:
        with self._lock:
            return len(self._shops_by_id)

    # ---------------------- Listing edits ----------------------
    def set_price(self, shop: Shop, material: str, buy_price: float, sell_price: float) -> ShopItem:
        with shop.lock:
            item = shop.set_price(material, buy_price, sell_price)
        logger.debug("Shop %s price set: %s buy=%.2f sell=%.2f", shop.id, material, buy_price, sell_price)
        self.persist()
        return item

    def adjust_price(self, shop: Shop, material: str, delta: float, buy_side: bool) -> Optional[ShopItem]:
        """Nudge one side of a listing by ``delta``, rounded to cents and floored at 0."""
        with shop.lock:
            listing = shop.listing(material)
            if listing is None:
                return None
            buy, sell = listing.buy_price, listing.sell_price
            if buy_side:
                buy = max(0.0, round(buy + delta, 2))
            else:
                sell = max(0.0, round(sell + delta, 2))
            item = shop.set_price(material, buy, sell)
        self.persist()
        return item

    def remove_listing(self, shop: Shop, material: str) -> bool:
        with shop.lock:
            removed = shop.remove_item(material)
        if removed:
            self.persist()
        return removed

    # ---------------------- Persistence ----------------------
    def persist(self) -> bool:
        """Write every shop to ``shops.json`` atomically.

        Failures are logged and reported as False; in-memory state stays
        authoritative until the next successful persist.
        """
        with self._write_lock:
            records = []
            for shop in self.all_shops():
                with shop.lock:
                    records.append(ShopRecord.from_shop(shop))
            try:
                atomic_write_text(self.data_file, encode_snapshot(records))
            except OSError:
                logger.exception("Failed to save %d shops to %s", len(records), self.data_file)
                return False
        logger.debug("Saved %d shops to %s", len(records), self.data_file)
        return True

    def load(self) -> None:
        """Rebuild all indexes from ``shops.json``.

        A missing file means an empty registry. An unparseable file is logged,
        moved aside as ``shops.json.corrupt-<timestamp>`` and treated as empty.
        """
        if not self.data_file.exists():
            logger.info("No shop snapshot at %s; starting empty", self.data_file)
            return
        try:
            text = self.data_file.read_text(encoding="utf-8")
            shops, skipped = decode_snapshot(text)
        except (OSError, UnicodeDecodeError, CorruptSnapshotError) as e:
            logger.error("Failed to load shops from %s: %s", self.data_file, e)
            self._quarantine()
            return

        with self._lock:
            self._clear()
            for shop in shops:
                if shop.id in self._shops_by_id:
                    logger.warning("Skipping shop %s: duplicate id", shop.id)
                    skipped += 1
                    continue
                if shop.sign_location.key in self._sign_index or shop.chest_location.key in self._chest_index:
                    logger.warning("Skipping shop %s: its sign or chest is already used by another shop", shop.id)
                    skipped += 1
                    continue
                self._index(shop)
            loaded = len(self._shops_by_id)
        if skipped:
            logger.warning("Loaded %d shops from %s (%d skipped)", loaded, self.data_file, skipped)
        else:
            logger.info("Loaded %d shops from %s", loaded, self.data_file)

    # ---------------------- Internal ----------------------
    def _new_id(self) -> str:
        while True:
            shop_id = uuid.uuid4().hex[:8]
            if shop_id not in self._shops_by_id:
                return shop_id

    def _index(self, shop: Shop) -> None:
        self._shops_by_id[shop.id] = shop
        self._sign_index[shop.sign_location.key] = shop.id
        self._chest_index[shop.chest_location.key] = shop.id
        if shop.owner_id is not None:
            self._owner_index.setdefault(shop.owner_id, {})[shop.id] = None

    def _clear(self) -> None:
        self._shops_by_id.clear()
        self._sign_index.clear()
        self._chest_index.clear()
        self._owner_index.clear()

    def _quarantine(self) -> None:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        target = self.data_file.with_name(f"{self.data_file.name}.corrupt-{stamp}")
        try:
            self.data_file.replace(target)
            logger.warning("Moved unreadable shop snapshot to %s", target)
        except OSError:
            logger.exception("Could not move unreadable shop snapshot %s aside", self.data_file)
