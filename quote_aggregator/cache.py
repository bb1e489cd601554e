"""
Quote Cache Store - Advisory memo of decoded venue quotes.

Entries are keyed by (venue address, observed sequence number), so a
venue that has traded since is simply a cache miss. The store is never
a substitute for re-reading before submitting a trade.
"""

import logging
import threading
from collections import OrderedDict
from typing import Optional, Tuple

from account_codec.pubkey import PublicKey
from account_codec.records import SlabQuote


logger = logging.getLogger(__name__)


CacheKey = Tuple[PublicKey, int]


class QuoteCacheStore:
    """Bounded LRU of SlabQuote by (address, seqno)."""

    def __init__(self, max_entries: int = 1024) -> None:
        self._entries: "OrderedDict[CacheKey, SlabQuote]" = OrderedDict()
        self._max_entries = max_entries
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, address: PublicKey, seqno: int) -> Optional[SlabQuote]:
        with self._lock:
            quote = self._entries.get((address, seqno))
            if quote is None:
                self.misses += 1
                return None
            self._entries.move_to_end((address, seqno))
            self.hits += 1
            return quote

    def put(self, quote: SlabQuote) -> None:
        key = (quote.slab, quote.cache.seqno)
        with self._lock:
            self._entries[key] = quote
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    def __len__(self) -> int:
        return len(self._entries)
