import pytest

from chestshop.commands import ShopCommand
from chestshop.data.location import ShopLocation
from chestshop.feedback import Outcome
from chestshop.hooks import LastViewedShops
from chestshop.inventory import count_material


@pytest.fixture
def last_viewed():
    return LastViewedShops()


@pytest.fixture
def command(registry, engine, config, last_viewed):
    names = {"alice": "uuid-alice", "bob": "uuid-bob"}
    return ShopCommand(
        registry,
        engine,
        config,
        last_viewed,
        owner_lookup=lambda name: names.get(name.lower()),
        online_names=lambda: ["Alice", "Bob", "Albert"],
    )


def test_help_and_unknown(command, owner, make_actor):
    assert command.execute(owner, []).lines[0] == "=== ChestShop Commands ==="
    assert "  Admin:" not in command.execute(owner, ["help"]).lines
    assert "  Admin:" in command.execute(make_actor("op", admin=True), ["help"]).lines

    unknown = command.execute(owner, ["frobnicate"])
    assert unknown.outcome is Outcome.ERROR
    assert unknown.lines == ("Unknown subcommand: frobnicate", "Use /shop help for a list of commands.")


def test_price_sets_listing_on_owned_shop(command, player_shop, owner):
    shop, _ = player_shop
    response = command.execute(owner, ["price", "diamond", "10", "5.5"])

    assert response.outcome is Outcome.SUCCESS
    assert response.text == "Price set for Diamond: Buy $10.00 | Sell $5.50"
    assert shop.listing("DIAMOND").sell_price == 5.5


@pytest.mark.parametrize(
    "args, message",
    [
        (["price", "diamond"], "Usage: /shop price <item> <buyPrice> [sellPrice]"),
        (["price", "unobtainium", "1"], "Unknown item: unobtainium. Use the material name (e.g., DIAMOND, OAK_LOG)."),
        (["price", "diamond", "abc"], "Invalid buy price: abc"),
        (["price", "diamond", "-1"], "Invalid buy price: -1"),
        (["price", "diamond", "1", "nan"], "Invalid sell price: nan"),
        (["stock", "diamond", "0"], "Invalid amount: 0"),
        (["withdraw", "diamond", "many"], "Invalid amount: many"),
        (["buy", "diamond", "-3"], "Invalid amount: -3"),
    ],
)
def test_argument_errors(command, player_shop, owner, args, message):
    response = command.execute(owner, args)
    assert response.outcome is Outcome.ERROR
    assert response.text == message


def test_shop_resolution_order(command, registry, world, owner, customer, last_viewed, player_shop):
    shop, _ = player_shop
    # no explicit id, nothing viewed, nothing owned
    assert command.execute(customer, ["info"]).text == (
        "No shop selected. Right-click a shop sign first, or specify a shop ID."
    )
    # falls back to the owner's first shop
    assert command.execute(owner, ["info"]).lines[0] == f"=== Shop Info: {shop.id} ==="

    world.place_chest(ShopLocation("world", 0, 64, 1))
    second = registry.create(owner.id, owner.name, ShopLocation("world", 0, 64, 2), ShopLocation("world", 0, 64, 1))
    last_viewed.record(owner.id, second.id)
    assert command.execute(owner, ["info"]).lines[0] == f"=== Shop Info: {second.id} ==="

    # an explicit id wins and becomes the last viewed shop
    assert command.execute(owner, ["info", shop.id]).lines[0] == f"=== Shop Info: {shop.id} ==="
    assert last_viewed.get(owner.id) == shop.id
    assert command.execute(owner, ["info", "nope"]).text == "Shop not found: nope"


def test_mutations_require_ownership(command, player_shop, customer):
    shop, _ = player_shop
    for args in (["price", "diamond", "1", "0", shop.id], ["remove", shop.id], ["collect", shop.id]):
        response = command.execute(customer, args)
        assert response.outcome is Outcome.ERROR
        assert response.text == "You don't own this shop."


def test_stock_withdraw_and_trade(command, player_shop, owner, customer, economy, fill):
    shop, chest = player_shop
    fill(owner.inventory, "DIAMOND", 10)
    command.execute(owner, ["price", "DIAMOND", "2.5"])

    stocked = command.execute(owner, ["stock", "diamond", "6"])
    assert stocked.outcome is Outcome.SUCCESS
    assert stocked.text == "Added 6x Diamond to shop chest. In chest: 6"
    assert command.execute(owner, ["withdraw", "diamond", "1"]).outcome is Outcome.SUCCESS

    economy.credit(customer.id, 100.0)
    bought = command.execute(customer, ["buy", "diamond", "4", shop.id])
    assert bought.outcome is Outcome.SUCCESS
    assert bought.text == "Bought 4x Diamond for $10.00."
    assert count_material(chest, "DIAMOND") == 1

    # default amount is one, shop taken from the last viewed
    assert command.execute(customer, ["buy", "diamond"]).text == "Bought 1x Diamond for $2.50."
    out = command.execute(customer, ["buy", "diamond"])
    assert out.outcome is Outcome.ERROR
    assert out.text == "Out of stock. Only 0x Diamond available."

    refused = command.execute(customer, ["sell", "diamond"])
    assert refused.text == "This shop doesn't buy Diamond."


def test_earnings_and_collect(command, player_shop, owner, economy):
    shop, _ = player_shop
    with shop.lock:
        shop.add_earnings(12.5)

    assert command.execute(owner, ["earnings"]).text == f"Shop {shop.id} earnings: $12.50"
    collected = command.execute(owner, ["collect"])
    assert collected.outcome is Outcome.SUCCESS
    assert economy.balance(owner.id) == 12.5

    empty = command.execute(owner, ["collect"])
    assert empty.outcome is Outcome.WARNING
    assert empty.text == "No earnings to collect."


def test_list(command, registry, world, player_shop, owner, customer):
    shop, _ = player_shop
    mine = command.execute(owner, ["list"])
    assert mine.lines[0] == "=== Your shops (1) ==="
    assert mine.lines[1].startswith(f"  {shop.id} - 0 items, $0.00 earnings @ ")

    theirs = command.execute(customer, ["list", "ALICE"])
    assert theirs.lines[0] == "=== ALICE's shops (1) ==="

    nobody = command.execute(customer, ["list", "Zed"])
    assert nobody.lines == ("=== Zed's shops (0) ===", "  No shops found.")


def test_remove(command, registry, player_shop, owner, last_viewed):
    shop, _ = player_shop
    last_viewed.record(owner.id, shop.id)

    response = command.execute(owner, ["remove"])

    assert response.text == f"Shop {shop.id} removed."
    assert registry.get_by_id(shop.id) is None
    assert last_viewed.get(owner.id) is None


def test_admin_subcommand(command, owner, make_actor):
    assert command.execute(owner, ["admin", "create"]).text == "You don't have permission for admin commands."
    op = make_actor("op", admin=True)
    assert command.execute(op, ["admin"]).text == "Usage: /shop admin <create>"
    assert command.execute(op, ["admin", "create"]).outcome is Outcome.INFO


def test_tab_completion(command):
    assert command.complete(["s"]) == ["stock", "sell"]
    assert "DIAMOND" in command.complete(["price", "dia"])
    assert all(name.startswith("DIA") for name in command.complete(["buy", "dia"]))
    assert command.complete(["list", "al"]) == ["Alice", "Albert"]
    assert command.complete(["remove", "x"]) == []
