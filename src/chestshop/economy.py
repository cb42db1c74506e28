from __future__ import annotations

import logging
import threading
from typing import Dict, Optional, Protocol

logger = logging.getLogger(__name__)


class EconomyProvider(Protocol):
    """Host economy ledger keyed by participant id.

    Providers may also expose ``format_amount(amount) -> str``; see
    :func:`format_amount`.
    """

    def has_balance(self, actor_id: str, amount: float) -> bool:
        ...

    def balance(self, actor_id: str) -> float:
        ...

    def debit(self, actor_id: str, amount: float) -> None:
        ...

    def credit(self, actor_id: str, amount: float) -> None:
        ...


def format_amount(economy: Optional[object], amount: float) -> str:
    """Format a currency amount with the provider's formatter, else ``$0.00``."""
    formatter = getattr(economy, "format_amount", None)
    if callable(formatter):
        return formatter(amount)
    return f"${amount:.2f}"


class InMemoryEconomy:
    """Thread-safe in-memory ledger.

    Balances never go negative: ``debit`` raises ValueError when funds are
    insufficient, mirroring how a wallet refuses to overspend.
    """

    def __init__(self, balances: Optional[Dict[str, float]] = None, currency_symbol: str = "$") -> None:
        self._lock = threading.RLock()
        self._balances: Dict[str, float] = {k: float(v) for k, v in (balances or {}).items()}
        self.currency_symbol = currency_symbol

    def has_balance(self, actor_id: str, amount: float) -> bool:
        with self._lock:
            return self._balances.get(actor_id, 0.0) >= amount

    def balance(self, actor_id: str) -> float:
        with self._lock:
            return self._balances.get(actor_id, 0.0)

    def debit(self, actor_id: str, amount: float) -> None:
        if amount < 0:
            raise ValueError("Cannot debit a negative amount")
        with self._lock:
            current = self._balances.get(actor_id, 0.0)
            if current < amount:
                raise ValueError(f"Insufficient balance for {actor_id}: have {current:.2f}, need {amount:.2f}")
            self._balances[actor_id] = current - amount
        logger.debug("Debited %.2f from %s", amount, actor_id)

    def credit(self, actor_id: str, amount: float) -> None:
        if amount < 0:
            raise ValueError("Cannot credit a negative amount")
        with self._lock:
            self._balances[actor_id] = self._balances.get(actor_id, 0.0) + amount
        logger.debug("Credited %.2f to %s", amount, actor_id)

    def format_amount(self, amount: float) -> str:
        return f"{self.currency_symbol}{amount:,.2f}"
