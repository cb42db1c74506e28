class ChestShopError(Exception):
    """Base exception for the chestshop package."""


class ValidationError(ChestShopError):
    """Raised when provided inputs or data files are invalid."""


class InvalidLocationError(ValidationError):
    """Raised when a location is malformed (a caller bug, not a runtime condition)."""


class PersistenceError(ChestShopError):
    """Base exception for snapshot save/load errors."""


class CorruptSnapshotError(PersistenceError):
    """Raised when a snapshot file cannot be decoded."""
