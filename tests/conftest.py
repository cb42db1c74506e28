import sys
from pathlib import Path

import pytest

# Ensure 'src' is on sys.path for test imports without installing the package
ROOT = Path(__file__).resolve().parents[1]
src = ROOT / "src"
if str(src) not in sys.path:
    sys.path.insert(0, str(src))

from chestshop.config import ShopConfig  # noqa: E402
from chestshop.data.location import ShopLocation  # noqa: E402
from chestshop.data.manager import ShopManager  # noqa: E402
from chestshop.economy import InMemoryEconomy  # noqa: E402
from chestshop.inventory import ItemStack, SimpleActor, SlotContainer  # noqa: E402
from chestshop.permissions import PERM_ADMIN, PERM_CREATE  # noqa: E402
from chestshop.transaction import TransactionEngine  # noqa: E402


class FakeWorld:
    """Maps block locations to chests; anything else is not a container."""

    def __init__(self):
        self.containers = {}

    def place_chest(self, location: ShopLocation, size: int = 27) -> SlotContainer:
        chest = SlotContainer(size=size)
        self.containers[location.key] = chest
        return chest

    def remove_chest(self, location: ShopLocation) -> None:
        self.containers.pop(location.key, None)

    def resolve_container(self, location: ShopLocation):
        return self.containers.get(location.key)

    def is_container(self, location: ShopLocation) -> bool:
        return location.key in self.containers


SIGN = ShopLocation("world", 10, 64, 10)
CHEST = ShopLocation("world", 10, 64, 11)


@pytest.fixture
def sign_loc() -> ShopLocation:
    return SIGN


@pytest.fixture
def chest_loc() -> ShopLocation:
    return CHEST


@pytest.fixture
def fill():
    def _fill(container, material: str, amount: int) -> None:
        assert container.add_item(ItemStack(material, amount)) == 0

    return _fill


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "data"


@pytest.fixture
def registry(data_dir: Path) -> ShopManager:
    return ShopManager(data_dir)


@pytest.fixture
def world() -> FakeWorld:
    return FakeWorld()


@pytest.fixture
def economy() -> InMemoryEconomy:
    return InMemoryEconomy()


@pytest.fixture
def engine(registry, world, economy) -> TransactionEngine:
    return TransactionEngine(registry, world, economy)


@pytest.fixture
def config() -> ShopConfig:
    return ShopConfig()


@pytest.fixture
def make_actor():
    def _make(name: str = "alice", *, admin: bool = False, can_create: bool = True) -> SimpleActor:
        perms = set()
        if can_create:
            perms.add(PERM_CREATE)
        if admin:
            perms.add(PERM_ADMIN)
        return SimpleActor(id=f"uuid-{name}", name=name.capitalize(), permissions=frozenset(perms))

    return _make


@pytest.fixture
def owner(make_actor) -> SimpleActor:
    return make_actor("alice")


@pytest.fixture
def customer(make_actor) -> SimpleActor:
    return make_actor("bob")


@pytest.fixture
def player_shop(registry, world, owner):
    """A player shop with a placed chest. Returns (shop, chest)."""
    chest = world.place_chest(CHEST)
    shop = registry.create(owner.id, owner.name, SIGN, CHEST)
    return shop, chest
