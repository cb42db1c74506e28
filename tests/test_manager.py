import json
import threading
from pathlib import Path

import pytest

from chestshop.data import manager as manager_mod
from chestshop.data.fs import atomic_write_text
from chestshop.data.location import ShopLocation
from chestshop.data.manager import SNAPSHOT_FILENAME, ShopManager


def loc(x: int, z: int = 0) -> ShopLocation:
    return ShopLocation("world", x, 64, z)


def assert_indexes_consistent(registry: ShopManager) -> None:
    shops = registry.all_shops()
    assert registry.count() == len(shops)
    for shop in shops:
        assert registry.get_by_id(shop.id) is shop
        assert registry.get_by_sign(shop.sign_location) is shop
        assert registry.get_by_chest(shop.chest_location) is shop
        if shop.owner_id is not None:
            assert shop in registry.get_by_owner(shop.owner_id)
    # no dangling index entries
    assert len(registry._sign_index) == len(shops)
    assert len(registry._chest_index) == len(shops)
    for owner_id, ids in registry._owner_index.items():
        assert ids, "empty owner sets must not be retained"
        for shop_id in ids:
            assert registry.get_by_id(shop_id).owner_id == owner_id


def test_create_indexes_and_persists(registry, data_dir):
    shop = registry.create("uuid-alice", "Alice", loc(0), loc(0, 1))

    assert len(shop.id) == 8
    assert registry.get_by_location(loc(0)) is shop
    assert registry.get_by_location(loc(0, 1)) is shop
    assert registry.is_shop_sign(loc(0)) and not registry.is_shop_sign(loc(0, 1))
    assert registry.is_shop_chest(loc(0, 1))
    assert registry.is_shop_block(loc(0)) and registry.is_shop_block(loc(0, 1))
    assert not registry.is_shop_block(loc(5))

    on_disk = json.loads((data_dir / SNAPSHOT_FILENAME).read_text(encoding="utf-8"))
    assert [rec["id"] for rec in on_disk] == [shop.id]
    assert_indexes_consistent(registry)


def test_index_consistency_over_create_remove_sequence(registry):
    created = []
    for i in range(6):
        owner = None if i == 5 else f"uuid-{i % 2}"
        created.append(
            registry.create(owner, "Server" if owner is None else f"P{i % 2}", loc(i * 2), loc(i * 2, 1), reserve_shop=owner is None)
        )
        assert_indexes_consistent(registry)

    for shop in created[::2]:
        assert registry.remove(shop.id) is shop
        assert_indexes_consistent(registry)
        assert registry.get_by_sign(shop.sign_location) is None
        assert registry.get_by_chest(shop.chest_location) is None

    assert registry.remove("nope") is None
    assert registry.count() == 3


def test_owner_index_drops_empty_sets(registry):
    shop = registry.create("uuid-alice", "Alice", loc(0), loc(0, 1))
    registry.remove(shop.id)
    assert registry.get_by_owner("uuid-alice") == []
    assert "uuid-alice" not in registry._owner_index


def test_get_by_owner_in_creation_order(registry):
    first = registry.create("uuid-alice", "Alice", loc(0), loc(0, 1))
    second = registry.create("uuid-alice", "Alice", loc(2), loc(2, 1))
    third = registry.create("uuid-alice", "Alice", loc(4), loc(4, 1))
    assert registry.get_by_owner("uuid-alice") == [first, second, third]
    assert registry.get_by_owner("uuid-nobody") == []


def test_find_by_owner_name_is_case_insensitive(registry):
    shop = registry.create("uuid-alice", "Alice", loc(0), loc(0, 1))
    assert registry.find_by_owner_name("ALICE") == [shop]


def test_round_trip_reproduces_shops(registry, data_dir):
    player = registry.create("uuid-alice", "Alice", loc(0), loc(0, 1))
    admin = registry.create("uuid-op", "Op", loc(2), loc(2, 1), admin_shop=True)
    reserve = registry.create(None, "Server", loc(4), loc(4, 1), reserve_shop=True)
    registry.set_price(player, "DIAMOND", 10.0, 4.0)
    registry.set_price(player, "COAL", 0.5, 0.0)
    registry.set_price(admin, "EMERALD", 3.0, 1.5)
    with player.lock:
        player.add_earnings(12.5)
    assert registry.persist()

    reloaded = ShopManager(data_dir)
    assert reloaded.count() == 3
    for saved in (player, admin, reserve):
        copy = reloaded.get_by_id(saved.id)
        assert copy is not None
        assert copy.owner_id == saved.owner_id
        assert copy.owner_name == saved.owner_name
        assert copy.sign_location == saved.sign_location
        assert copy.chest_location == saved.chest_location
        assert dict(copy.items) == dict(saved.items)
        assert list(copy.items) == list(saved.items)
        assert copy.earnings == saved.earnings
        assert copy.admin_shop == saved.admin_shop
        assert copy.reserve_shop == saved.reserve_shop
        assert copy.created_at == saved.created_at
    assert_indexes_consistent(reloaded)


def test_snapshot_uses_camel_case_keys(registry, data_dir):
    shop = registry.create("uuid-alice", "Alice", loc(0), loc(0, 1))
    registry.set_price(shop, "DIAMOND", 10.0, 4.0)
    record = json.loads((data_dir / SNAPSHOT_FILENAME).read_text(encoding="utf-8"))[0]
    assert set(record) == {
        "id", "ownerUuid", "ownerName", "signWorld", "signX", "signY", "signZ",
        "chestWorld", "chestX", "chestY", "chestZ", "items", "earnings",
        "adminShop", "reserveShop", "createdAt",
    }
    assert record["items"]["DIAMOND"] == {"material": "DIAMOND", "buyPrice": 10.0, "sellPrice": 4.0, "stock": 0}


def test_missing_file_is_empty_registry(tmp_path: Path):
    registry = ShopManager(tmp_path / "fresh")
    assert registry.count() == 0
    assert not (tmp_path / "fresh" / SNAPSHOT_FILENAME).exists()


def test_corrupt_file_is_quarantined(data_dir: Path):
    data_dir.mkdir(parents=True)
    (data_dir / SNAPSHOT_FILENAME).write_text("{ not json", encoding="utf-8")

    registry = ShopManager(data_dir)

    assert registry.count() == 0
    assert not (data_dir / SNAPSHOT_FILENAME).exists()
    kept = list(data_dir.glob(SNAPSHOT_FILENAME + ".corrupt-*"))
    assert len(kept) == 1
    assert kept[0].read_text(encoding="utf-8") == "{ not json"


def test_null_items_and_bad_records_are_tolerated(data_dir: Path):
    data_dir.mkdir(parents=True)
    good = {
        "id": "aaaa0001", "ownerUuid": "uuid-alice", "ownerName": "Alice",
        "signWorld": "world", "signX": 0, "signY": 64, "signZ": 0,
        "chestWorld": "world", "chestX": 0, "chestY": 64, "chestZ": 1,
        "items": None, "earnings": 1.5, "adminShop": False, "reserveShop": False, "createdAt": 1,
    }
    missing_coords = {"id": "bbbb0002", "ownerName": "Bob", "signWorld": "world"}
    same_sign = dict(good, id="cccc0003", chestZ=2)
    (data_dir / SNAPSHOT_FILENAME).write_text(json.dumps([good, missing_coords, same_sign]), encoding="utf-8")

    registry = ShopManager(data_dir)

    assert registry.count() == 1
    shop = registry.get_by_id("aaaa0001")
    assert dict(shop.items) == {}
    assert shop.earnings == 1.5
    assert_indexes_consistent(registry)


def test_persist_failure_keeps_memory_state(registry, monkeypatch):
    def boom(path, text):
        raise OSError("disk full")

    monkeypatch.setattr(manager_mod, "atomic_write_text", boom)
    shop = registry.create("uuid-alice", "Alice", loc(0), loc(0, 1))
    assert registry.get_by_id(shop.id) is shop
    assert registry.persist() is False


def test_persist_leaves_no_temp_files(registry, data_dir):
    for i in range(3):
        registry.create("uuid-alice", "Alice", loc(i * 2), loc(i * 2, 1))
    assert sorted(p.name for p in data_dir.iterdir()) == [SNAPSHOT_FILENAME]


def test_price_edits_through_registry(registry):
    shop = registry.create("uuid-alice", "Alice", loc(0), loc(0, 1))
    registry.set_price(shop, "DIAMOND", 1.0, 0.5)

    assert registry.adjust_price(shop, "DIAMOND", 0.05, buy_side=True).buy_price == 1.05
    assert registry.adjust_price(shop, "DIAMOND", -1.0, buy_side=False).sell_price == 0.0
    assert registry.adjust_price(shop, "MISSING", 1.0, buy_side=True) is None

    assert registry.remove_listing(shop, "DIAMOND")
    assert not registry.remove_listing(shop, "DIAMOND")
    assert shop.listing("DIAMOND") is None


def test_contains_tracks_registered_instance(registry, data_dir):
    shop = registry.create("uuid-alice", "Alice", loc(0), loc(0, 1))
    assert registry.contains(shop)
    copy = ShopManager(data_dir).get_by_id(shop.id)
    assert not registry.contains(copy)
    registry.remove(shop.id)
    assert not registry.contains(shop)


def test_concurrent_creates_keep_indexes_consistent(registry):
    errors = []

    def worker(n: int):
        try:
            for i in range(5):
                x = n * 100 + i * 2
                registry.create(f"uuid-{n}", f"P{n}", loc(x), loc(x, 1))
        except Exception as e:  # pragma: no cover - surfaced by the assert below
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert not errors
    assert registry.count() == 20
    assert_indexes_consistent(registry)
    assert len(ShopManager(registry.data_dir).all_shops()) == 20


def test_remove_waits_for_shop_lock(registry):
    shop = registry.create("uuid-alice", "Alice", loc(0), loc(0, 1))
    removed = threading.Event()

    def remover():
        registry.remove(shop.id)
        removed.set()

    with shop.lock:
        t = threading.Thread(target=remover)
        t.start()
        assert not removed.wait(0.2)
        # an in-flight transaction still sees its shop registered
        assert registry.contains(shop)
        shop.add_earnings(5.0)
    t.join(timeout=5)

    assert removed.is_set()
    assert registry.get_by_id(shop.id) is None
    assert_indexes_consistent(registry)


def test_remove_twice_returns_none(registry):
    shop = registry.create("uuid-alice", "Alice", loc(0), loc(0, 1))
    assert registry.remove(shop.id) is shop
    assert registry.remove(shop.id) is None


def test_atomic_write_failure_keeps_old_file(tmp_path: Path, monkeypatch):
    target = tmp_path / "shops.json"
    atomic_write_text(target, "[]")

    def fail_replace(self, other):
        raise OSError("read-only")

    monkeypatch.setattr(Path, "replace", fail_replace)
    with pytest.raises(OSError):
        atomic_write_text(target, '[{"id": "x"}]')
    monkeypatch.undo()

    assert target.read_text(encoding="utf-8") == "[]"
    assert [p.name for p in tmp_path.iterdir()] == ["shops.json"]
