from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator

from .data.fs import atomic_write_text

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.json"


class ShopConfig(BaseModel):
    """Server-wide shop settings, read once at startup.

    ``tax_rate`` is reserved for a future surcharge; the transaction engine
    does not apply it.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    max_shops_per_player: int = Field(10, description="Shops a non-admin player may own (0 = unlimited)")
    tax_rate: float = Field(0.0, description="Reserved; not applied to transactions")
    allow_admin_shops: bool = Field(True, description="Whether [AdminShop] signs may be placed")

    @field_validator("max_shops_per_player")
    @classmethod
    def non_negative_cap(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_shops_per_player cannot be negative")
        return v

    @field_validator("tax_rate")
    @classmethod
    def tax_in_range(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("tax_rate must be between 0 and 1")
        return v


def load_config(data_dir: Path) -> ShopConfig:
    """Load ``config.json`` from ``data_dir``, writing defaults if it is absent.

    An unreadable or invalid file is logged and defaults are returned; the
    file itself is left untouched so an operator can fix it.
    """
    path = Path(data_dir) / CONFIG_FILENAME
    if not path.exists():
        cfg = ShopConfig()
        save_config(cfg, data_dir)
        logger.info("Wrote default shop config to %s", path)
        return cfg
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError("config root must be a JSON object")
        cfg = ShopConfig.model_validate(data)
    except (OSError, ValueError, PydanticValidationError) as e:
        logger.error("Failed to load shop config from %s: %s; using defaults", path, e)
        return ShopConfig()
    logger.info(
        "Shop config loaded: max_shops_per_player=%s tax_rate=%s allow_admin_shops=%s",
        cfg.max_shops_per_player,
        cfg.tax_rate,
        cfg.allow_admin_shops,
    )
    return cfg


def save_config(cfg: ShopConfig, data_dir: Path) -> bool:
    path = Path(data_dir) / CONFIG_FILENAME
    try:
        atomic_write_text(path, json.dumps(cfg.model_dump(), indent=2))
    except OSError:
        logger.exception("Failed to save shop config to %s", path)
        return False
    return True
