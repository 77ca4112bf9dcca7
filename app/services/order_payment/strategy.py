"""Pick the write strategy for one order/payment creation."""

from enum import Enum

from app.core.logging import get_logger
from app.stores.base import TransactionManager

log = get_logger(__name__)

MODES = ("auto", "transactional", "sequential")


class Strategy(str, Enum):
    TRANSACTIONAL = "transactional"
    SEQUENTIAL_WITH_COMPENSATION = "sequential_with_compensation"


class StrategySelector:
    """
    Chooses between the transactional and sequential writers.

    In ``auto`` mode the engine is probed once and a conclusive answer is cached for the
    life of the selector. A failed probe is not cached and falls back to the sequential
    writer, which is safe on every deployment.
    """

    def __init__(self, transactions: TransactionManager, mode: str = "auto") -> None:
        if mode not in MODES:
            raise ValueError(f"Unknown transaction mode: {mode}")
        self._transactions = transactions
        self.mode = mode
        self._supported: bool | None = None

    @property
    def transactions_supported(self) -> bool | None:
        return self._supported

    async def select(self, force_sequential: bool = False) -> Strategy:
        if force_sequential or self.mode == "sequential":
            return Strategy.SEQUENTIAL_WITH_COMPENSATION
        if self.mode == "transactional":
            # trusted unless the engine has since rejected a transaction
            if self._supported is False:
                return Strategy.SEQUENTIAL_WITH_COMPENSATION
            return Strategy.TRANSACTIONAL
        if self._supported is None:
            supported = await self._probe()
            if supported is None:
                return Strategy.SEQUENTIAL_WITH_COMPENSATION
            self._supported = supported
        return Strategy.TRANSACTIONAL if self._supported else Strategy.SEQUENTIAL_WITH_COMPENSATION

    def mark_unsupported(self) -> None:
        """Record that the engine rejected a transaction at runtime."""
        if self._supported is not False:
            log.warning("transactions_marked_unsupported", mode=self.mode)
        self._supported = False

    async def _probe(self) -> bool | None:
        try:
            supported = bool(await self._transactions.supports_transactions())
        except Exception as e:
            log.warning("transaction_support_probe_failed", error=repr(e))
            return None
        log.info("transaction_support_probed", supported=supported)
        return supported
