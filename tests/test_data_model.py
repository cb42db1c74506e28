import threading

import pytest

from chestshop.data.item import INFINITE_STOCK, ShopItem, format_material
from chestshop.data.location import ShopLocation
from chestshop.data.shop import Shop
from chestshop.exceptions import InvalidLocationError, ValidationError


def test_location_key_and_parse():
    loc = ShopLocation("world_nether", -3, 70, 12)
    assert loc.key == "world_nether:-3,70,12"
    assert ShopLocation.from_key(loc.key) == loc
    assert str(loc) == "world_nether @ -3, 70, 12"
    assert loc.offset(0, -1, 0) == ShopLocation("world_nether", -3, 69, 12)


def test_location_equality_follows_key():
    a = ShopLocation("world", 1, 2, 3)
    b = ShopLocation("world", 1, 2, 3)
    assert a == b
    assert hash(a) == hash(b)
    assert a != ShopLocation("other", 1, 2, 3)


@pytest.mark.parametrize("bad", ["", "world", "world:1,2", "world:a,b,c", ":1,2,3"])
def test_location_from_key_rejects_malformed(bad):
    with pytest.raises(InvalidLocationError):
        ShopLocation.from_key(bad)


def test_location_rejects_bad_values():
    with pytest.raises(InvalidLocationError):
        ShopLocation("", 0, 0, 0)
    with pytest.raises(InvalidLocationError):
        ShopLocation("world", 1.5, 0, 0)
    with pytest.raises(InvalidLocationError):
        ShopLocation("world", True, 0, 0)


def test_format_material():
    assert format_material("DIAMOND_SWORD") == "Diamond Sword"
    assert format_material("DIAMOND") == "Diamond"


def test_item_flags_and_formatting():
    item = ShopItem("DIAMOND", buy_price=10.0, sell_price=0.0, stock=0)
    assert not item.can_buy  # no stock
    assert not item.can_sell
    assert item.format_buy_price() == "10.00"
    assert item.format_sell_price() == "---"

    infinite = item.with_stock(INFINITE_STOCK)
    assert infinite.can_buy
    assert infinite.has_infinite_stock
    assert infinite.format_stock() == "INF"

    seller = ShopItem("COAL", sell_price=0.25)
    assert seller.can_sell and not seller.can_buy


def test_item_rejects_negative_values():
    with pytest.raises(ValidationError):
        ShopItem("DIAMOND", buy_price=-1)
    with pytest.raises(ValidationError):
        ShopItem("DIAMOND", stock=-2)


def _shop(**kwargs) -> Shop:
    return Shop(
        "abcd1234",
        kwargs.pop("owner_id", "uuid-alice"),
        kwargs.pop("owner_name", "Alice"),
        ShopLocation("world", 0, 64, 0),
        ShopLocation("world", 0, 64, 1),
        **kwargs,
    )


def test_shop_rejects_same_sign_and_chest():
    loc = ShopLocation("world", 0, 64, 0)
    with pytest.raises(ValidationError):
        Shop("abcd1234", "uuid-alice", "Alice", loc, loc)


def test_shop_rejects_admin_and_reserve():
    with pytest.raises(ValidationError):
        _shop(admin_shop=True, reserve_shop=True)


def test_set_price_preserves_stock_for_player_shop():
    shop = _shop()
    shop.add_stock("DIAMOND", 5)
    item = shop.set_price("DIAMOND", 10.0, 4.0)
    assert item.stock == 5
    assert item.buy_price == 10.0 and item.sell_price == 4.0


def test_admin_set_price_forces_infinite_stock():
    shop = _shop(admin_shop=True)
    shop.add_stock("DIAMOND", 12)
    assert shop.set_price("DIAMOND", 10.0, 0.0).stock == INFINITE_STOCK
    assert shop.set_price("EMERALD", 3.0, 1.0).stock == INFINITE_STOCK


def test_add_and_remove_stock():
    shop = _shop()
    assert shop.add_stock("COAL", 3) == 3
    assert shop.listing("COAL").buy_price == 0.0
    assert shop.add_stock("COAL", 2) == 5
    assert shop.remove_stock("COAL", 4)
    assert shop.listing("COAL").stock == 1
    assert not shop.remove_stock("COAL", 2)
    assert not shop.remove_stock("MISSING", 1)


def test_infinite_listing_ignores_stock_changes():
    shop = _shop(admin_shop=True)
    shop.set_price("DIAMOND", 1.0, 0.0)
    assert shop.add_stock("DIAMOND", 10) == INFINITE_STOCK
    assert shop.remove_stock("DIAMOND", 1000)
    assert shop.listing("DIAMOND").stock == INFINITE_STOCK


def test_collect_earnings_resets_to_zero():
    shop = _shop(earnings=12.50)
    assert shop.collect_earnings() == 12.50
    assert shop.earnings == 0.0
    assert shop.collect_earnings() == 0.0


def test_deduct_earnings_player_vs_admin():
    shop = _shop(earnings=3.0)
    assert shop.deduct_earnings(2.0)
    assert shop.earnings == 1.0
    assert not shop.deduct_earnings(2.0)
    assert shop.earnings == 1.0

    admin = _shop(admin_shop=True)
    assert admin.deduct_earnings(1000.0)


def test_reserve_shop_has_no_owner():
    shop = _shop(owner_id=None, owner_name="Server", reserve_shop=True)
    assert not shop.is_owner(None)
    assert not shop.is_owner("uuid-alice")
    assert shop.display_title == "Server Shop"
    assert shop.shop_type == "Server"


def test_titles():
    assert _shop().display_title == "Alice's Shop"
    assert _shop(admin_shop=True).display_title == "Admin Shop"


def test_items_view_is_read_only():
    shop = _shop()
    shop.set_price("DIAMOND", 1.0, 0.0)
    with pytest.raises(TypeError):
        shop.items["EMERALD"] = ShopItem("EMERALD")


def test_owner_name_can_be_refreshed(sign_loc, chest_loc):
    shop = Shop("abcd1234", "uuid-alice", "alice", sign_loc, chest_loc)
    shop.set_owner_name("Alice")
    assert shop.owner_name == "Alice"
    assert shop.display_title == "Alice's Shop"


def test_mutators_wait_for_shop_lock():
    shop = _shop()
    shop.set_price("DIAMOND", 5.0, 1.0)
    done = threading.Event()

    def writer():
        shop.add_earnings(10.0)
        shop.add_stock("DIAMOND", 3)
        done.set()

    with shop.lock:
        t = threading.Thread(target=writer)
        t.start()
        assert not done.wait(0.2)
        assert shop.earnings == 0.0
        assert shop.listing("DIAMOND").stock == 0
    t.join(timeout=5)

    assert done.is_set()
    assert shop.earnings == 10.0
    assert shop.listing("DIAMOND").stock == 3
