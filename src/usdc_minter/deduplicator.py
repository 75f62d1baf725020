"""
Bounded set of processed transfer transaction hashes.

Uses OrderedDict as an insertion-ordered set so the oldest entries can be
evicted first once the window is full. Eviction trades unbounded history
for a small risk of re-seeing very old transactions.
"""

from collections import OrderedDict


class TransferDeduplicator:
    """Tracks transaction hashes that have already produced a mint attempt."""

    def __init__(self, max_size: int = 1000) -> None:
        """
        Initialize the deduplicator.

        Args:
            max_size: Maximum number of transaction hashes to remember
        """
        if max_size <= 0:
            raise ValueError(f"max_size must be positive, got {max_size}")
        self.max_size = max_size
        self._seen: OrderedDict[str, None] = OrderedDict()

    @staticmethod
    def _key(tx_hash: str) -> str:
        tx_hash = tx_hash.lower()
        return tx_hash if tx_hash.startswith('0x') else '0x' + tx_hash

    def seen(self, tx_hash: str) -> bool:
        return self._key(tx_hash) in self._seen

    def mark_seen(self, tx_hash: str) -> None:
        """
        Remember a transaction hash, evicting the oldest entries over capacity.

        Re-marking a known hash keeps its original position (FIFO, not LRU).
        """
        key = self._key(tx_hash)
        if key in self._seen:
            return

        self._seen[key] = None

        while len(self._seen) > self.max_size:
            self._seen.popitem(last=False)  # Remove oldest (first)

    def check_and_mark(self, tx_hash: str) -> bool:
        """
        Mark a hash as seen and report whether it is new.

        Returns:
            True the first time a hash is offered, False afterwards
        """
        if self.seen(tx_hash):
            return False
        self.mark_seen(tx_hash)
        return True

    def __len__(self) -> int:
        return len(self._seen)
