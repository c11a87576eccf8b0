"""Ledger settings.

Tunables are read once from ``STOCK_LEDGER_*`` environment variables and
cached. Provides get_settings() / set_settings() so tests and tooling can
swap in explicit values without touching the environment.
"""

import os
from dataclasses import dataclass

_PREFIX = "STOCK_LEDGER_"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{_PREFIX}{name} must be an integer, got {raw!r}") from exc


@dataclass(frozen=True)
class LedgerSettings:
    """Tunables for the stock ledger."""

    # Compare-and-set attempts before ConcurrentModification surfaces
    cas_max_attempts: int = 5
    # 0 disables default expiry on new reservations
    reservation_ttl_minutes: int = 15
    low_stock_percent: int = 20
    overstock_percent: int = 100
    max_adjustment_quantity: int = 10000
    default_reorder_point: int = 10
    default_reorder_quantity: int = 50
    default_max_stock_level: int = 100
    page_size: int = 50

    def __post_init__(self):
        if self.cas_max_attempts < 1:
            raise ValueError("cas_max_attempts must be at least 1")
        if self.reservation_ttl_minutes < 0:
            raise ValueError("reservation_ttl_minutes cannot be negative")
        if self.default_max_stock_level < 1:
            raise ValueError("default_max_stock_level must be positive")

    @classmethod
    def from_env(cls) -> "LedgerSettings":
        defaults = cls()
        return cls(
            cas_max_attempts=_env_int("CAS_MAX_ATTEMPTS", defaults.cas_max_attempts),
            reservation_ttl_minutes=_env_int("RESERVATION_TTL_MINUTES", defaults.reservation_ttl_minutes),
            low_stock_percent=_env_int("LOW_STOCK_PERCENT", defaults.low_stock_percent),
            overstock_percent=_env_int("OVERSTOCK_PERCENT", defaults.overstock_percent),
            max_adjustment_quantity=_env_int("MAX_ADJUSTMENT_QUANTITY", defaults.max_adjustment_quantity),
            default_reorder_point=_env_int("DEFAULT_REORDER_POINT", defaults.default_reorder_point),
            default_reorder_quantity=_env_int("DEFAULT_REORDER_QUANTITY", defaults.default_reorder_quantity),
            default_max_stock_level=_env_int("DEFAULT_MAX_STOCK_LEVEL", defaults.default_max_stock_level),
            page_size=_env_int("PAGE_SIZE", defaults.page_size),
        )


_current_settings: LedgerSettings | None = None


def get_settings() -> LedgerSettings:
    """Return the active settings, loading them from the environment on first use."""
    global _current_settings
    if _current_settings is None:
        _current_settings = LedgerSettings.from_env()
    return _current_settings


def set_settings(settings: LedgerSettings) -> None:
    """Override the active settings (useful for tests)."""
    global _current_settings
    _current_settings = settings


def reset_settings() -> None:
    """Drop cached settings so the next read goes back to the environment."""
    global _current_settings
    _current_settings = None
