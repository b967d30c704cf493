"""Batch executor — chunked fan-out with per-item failure accounting."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar

from gmail_mcp.errors import InvalidInput
from gmail_mcp.gmail.types import BatchFailure, BatchResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

#: One remote call for one target.  Raising marks that target as failed.
ItemOperation = Callable[[T], Awaitable[Any]]

DEFAULT_CHUNK_SIZE = 50


def chunked(items: Sequence[T], size: int) -> list[list[T]]:
    """Split into consecutive chunks of at most ``size``, preserving order."""
    if size < 1:
        raise InvalidInput(f"Batch size must be at least 1 (got {size})")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


class BatchExecutor:
    """Applies one async operation to many targets without letting one failure abort the rest.

    Targets are processed chunk by chunk: every element of a chunk runs
    concurrently, and the next chunk starts only once each element of the
    current one has succeeded or failed.  Failures come back in input order.

    Usage::

        executor = BatchExecutor(default_chunk_size=50)
        result = await executor.run(message_ids, lambda mid: client.delete_email(mid))
    """

    def __init__(self, default_chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        if default_chunk_size < 1:
            raise InvalidInput(f"Batch size must be at least 1 (got {default_chunk_size})")
        self._default_chunk_size = default_chunk_size

    async def run(
        self,
        targets: Sequence[T],
        op: ItemOperation[T],
        chunk_size: int | None = None,
    ) -> BatchResult:
        """Run ``op`` over ``targets`` and return the aggregated outcome."""
        size = chunk_size if chunk_size is not None else self._default_chunk_size
        chunks = chunked(targets, size)

        success_count = 0
        failures: list[BatchFailure] = []

        for index, chunk in enumerate(chunks, start=1):
            outcomes = await asyncio.gather(
                *(self._attempt(op, target) for target in chunk),
                return_exceptions=True,
            )
            chunk_failures = 0
            for target, outcome in zip(chunk, outcomes):
                if isinstance(outcome, BaseException):
                    if not isinstance(outcome, Exception):
                        raise outcome  # cancellation / interpreter exit
                    failures.append(BatchFailure(target=str(target), error=_describe(outcome)))
                    chunk_failures += 1
                else:
                    success_count += 1
            logger.debug(
                "Chunk %d/%d: %d ok, %d failed",
                index,
                len(chunks),
                len(chunk) - chunk_failures,
                chunk_failures,
            )

        if failures:
            logger.warning(
                "Batch finished: %d succeeded, %d failed", success_count, len(failures)
            )
        else:
            logger.info("Batch finished: %d succeeded", success_count)
        return BatchResult(success_count=success_count, failures=failures)

    @staticmethod
    async def _attempt(op: ItemOperation[T], target: T) -> Any:
        return await op(target)


def _describe(exc: Exception) -> str:
    return str(exc) or exc.__class__.__name__
