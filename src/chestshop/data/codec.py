from __future__ import annotations

import json
import logging
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator

from ..exceptions import CorruptSnapshotError, ValidationError
from .item import ShopItem
from .location import ShopLocation
from .shop import Shop

logger = logging.getLogger(__name__)


class ShopItemRecord(BaseModel):
    """One listing as stored in ``shops.json``."""

    model_config = ConfigDict(populate_by_name=True)

    material: str
    buy_price: float = Field(0.0, alias="buyPrice")
    sell_price: float = Field(0.0, alias="sellPrice")
    stock: int = 0


class ShopRecord(BaseModel):
    """One shop as stored in ``shops.json``.

    Field names follow the on-disk camelCase schema through aliases.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    owner_uuid: Optional[str] = Field(None, alias="ownerUuid")
    owner_name: str = Field("", alias="ownerName")
    sign_world: str = Field(..., alias="signWorld")
    sign_x: int = Field(..., alias="signX")
    sign_y: int = Field(..., alias="signY")
    sign_z: int = Field(..., alias="signZ")
    chest_world: str = Field(..., alias="chestWorld")
    chest_x: int = Field(..., alias="chestX")
    chest_y: int = Field(..., alias="chestY")
    chest_z: int = Field(..., alias="chestZ")
    items: Dict[str, ShopItemRecord] = Field(default_factory=dict)
    earnings: float = 0.0
    admin_shop: bool = Field(False, alias="adminShop")
    reserve_shop: bool = Field(False, alias="reserveShop")
    created_at: int = Field(0, alias="createdAt")

    @field_validator("items", mode="before")
    @classmethod
    def tolerate_missing_items(cls, v):
        # Older snapshots may carry "items": null
        return v or {}

    @classmethod
    def from_shop(cls, shop: Shop) -> "ShopRecord":
        sign, chest = shop.sign_location, shop.chest_location
        return cls(
            id=shop.id,
            owner_uuid=shop.owner_id,
            owner_name=shop.owner_name,
            sign_world=sign.world,
            sign_x=sign.x,
            sign_y=sign.y,
            sign_z=sign.z,
            chest_world=chest.world,
            chest_x=chest.x,
            chest_y=chest.y,
            chest_z=chest.z,
            items={
                key: ShopItemRecord(
                    material=item.material,
                    buy_price=item.buy_price,
                    sell_price=item.sell_price,
                    stock=item.stock,
                )
                for key, item in shop.items.items()
            },
            earnings=shop.earnings,
            admin_shop=shop.admin_shop,
            reserve_shop=shop.reserve_shop,
            created_at=shop.created_at,
        )

    def to_shop(self) -> Shop:
        items = {
            key: ShopItem(rec.material, rec.buy_price, rec.sell_price, rec.stock)
            for key, rec in self.items.items()
        }
        return Shop(
            self.id,
            self.owner_uuid,
            self.owner_name,
            ShopLocation(self.sign_world, self.sign_x, self.sign_y, self.sign_z),
            ShopLocation(self.chest_world, self.chest_x, self.chest_y, self.chest_z),
            admin_shop=self.admin_shop,
            reserve_shop=self.reserve_shop,
            items=items,
            earnings=self.earnings,
            created_at=self.created_at,
        )


def encode_snapshot(records: List[ShopRecord]) -> str:
    """Encode shop records to the pretty-printed JSON array stored on disk."""
    data = [rec.model_dump(by_alias=True) for rec in records]
    return json.dumps(data, ensure_ascii=False, indent=2)


def decode_snapshot(text: str) -> Tuple[List[Shop], int]:
    """Decode snapshot text into shops.

    Returns the decoded shops and the number of records that were skipped
    because they failed validation. Raises CorruptSnapshotError when the text
    is not a JSON array at all.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise CorruptSnapshotError(f"Invalid JSON: {e}") from e
    if data is None:
        return [], 0
    if not isinstance(data, list):
        raise CorruptSnapshotError(f"Snapshot root must be a JSON array, got {type(data).__name__}")

    shops: List[Shop] = []
    skipped = 0
    for idx, raw in enumerate(data):
        try:
            shops.append(ShopRecord.model_validate(raw).to_shop())
        except (PydanticValidationError, ValidationError) as e:
            skipped += 1
            logger.warning("Skipping invalid shop record at index %d: %s", idx, e)
    return shops, skipped
