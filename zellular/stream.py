from __future__ import annotations

import asyncio
from collections import deque
from typing import Callable, Deque, Iterable, Iterator, Optional

from zellular.fetcher import Batch, CancellationToken, ChainedBatchFetcher, ChainState

FetcherFactory = Callable[[int, Optional[str], CancellationToken], ChainedBatchFetcher]


class BatchStream:
    """
    Lazy, single-consumer sequence of verified batches.

    Each pull that finds the local buffer empty runs the fetcher up to its next
    verified checkpoint; nothing beyond that checkpoint's batches is held. After
    a terminal error has been raised once, or after :meth:`cancel`, iteration
    simply ends. :meth:`resume` hands the verified batches this stream never
    yielded to a fresh run, which continues polling from the last verified
    checkpoint.
    """

    def __init__(
        self,
        factory: FetcherFactory,
        *,
        after: int = 0,
        seed_chaining_hash: Optional[str] = None,
        pending: Iterable[Batch] = (),
    ) -> None:
        self._factory = factory
        self._token = CancellationToken()
        self._fetcher = factory(after, seed_chaining_hash, self._token)
        # Already verified, not yet yielded.
        self._buffer: Deque[Batch] = deque(pending)
        self._done = False

    @property
    def checkpoint(self) -> Optional[ChainState]:
        return self._fetcher.checkpoint

    @property
    def cancelled(self) -> bool:
        return self._token.cancelled

    def cancel(self) -> None:
        self._token.cancel()

    close = cancel

    def resume(self) -> "BatchStream":
        """Cancel this stream and continue it in a new one, without gaps."""
        cp = self.checkpoint
        if cp is None:
            raise RuntimeError("no verified checkpoint to resume from")
        self.cancel()
        return BatchStream(
            self._factory,
            after=cp.index,
            seed_chaining_hash=cp.chaining_hash,
            pending=list(self._buffer),
        )

    def __enter__(self) -> "BatchStream":
        return self

    def __exit__(self, *exc) -> None:
        self.cancel()

    def __iter__(self) -> Iterator[Batch]:
        return self

    def __next__(self) -> Batch:
        item = self._pull()
        if item is None:
            raise StopIteration
        return item

    def _pull(self) -> Optional[Batch]:
        while not self._buffer:
            if self._done or self._token.cancelled:
                return None
            try:
                released = self._fetcher.next_checkpoint()
            except Exception:
                self._done = True
                raise
            if released is None:
                self._done = True
                return None
            self._buffer.extend(released)
        if self._token.cancelled:
            return None
        return self._buffer.popleft()

    def __aiter__(self) -> "BatchStream":
        return self

    async def __anext__(self) -> Batch:
        try:
            item = await asyncio.to_thread(self._pull)
        except asyncio.CancelledError:
            self.cancel()
            raise
        if item is None:
            raise StopAsyncIteration
        return item
