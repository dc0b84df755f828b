"""
This module lets asyncio code drive a path oram.

The protocol itself stays synchronous; each access runs in a worker thread while the event loop keeps serving other
tasks. An access that has started always runs to the end: cancelling the awaiting task waits for the access to finish
before the cancellation is delivered, because a write back cut short would leave the tree inconsistent. If the access
itself failed with an oram error, that error is raised in place of the cancellation.
"""

import asyncio
from typing import Any, Callable, Optional

from oblivstore.dependency import OramError
from oblivstore.oram.path_oram import DELETE, READ, WRITE, PathOram
from oblivstore.oram.tree_base_oram import OramStats


class AsyncPathOram:
    def __init__(self, oram: PathOram):
        """
        Wrap a path oram for use from coroutines.

        :param oram: The oram to wrap; its server storage should already be initialized.
        """
        self.__oram = oram

    @property
    def oram(self) -> PathOram:
        """Return the wrapped oram."""
        return self.__oram

    async def __run(self, func: Callable[..., Any], *args: Any) -> Any:
        """Run a blocking oram call in a worker thread, shielded from cancellation."""
        task = asyncio.ensure_future(asyncio.to_thread(func, *args))

        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError as cancelled:
            # Let the access finish first; an error it raised reaches the caller instead of the cancellation.
            await asyncio.wait({task})
            error = task.exception()
            if isinstance(error, OramError):
                raise error from cancelled
            raise

    async def access(self, op: str, key: int, value: Optional[bytes] = None) -> Optional[bytes]:
        """Perform an oblivious operation on a given key; see PathOram.access."""
        return await self.__run(self.__oram.access, op, key, value)

    async def read(self, key: int) -> Optional[bytes]:
        """Obliviously read a block; returns None if the block holds no value."""
        return await self.access(READ, key)

    async def write(self, key: int, value: bytes) -> None:
        """Obliviously write a block."""
        await self.access(WRITE, key, value)

    async def delete(self, key: int) -> None:
        """Obliviously delete a block."""
        await self.access(DELETE, key)

    def stats(self) -> OramStats:
        """Return a snapshot of the tree parameters and the stash counters."""
        return self.__oram.stats()

    async def close(self) -> None:
        """Tear the wrapped oram down once any access in flight has finished."""
        await self.__run(self.__oram.close)
