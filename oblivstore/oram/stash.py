"""This module defines the client-side stash holding blocks that are not currently placed in the tree."""

from typing import Dict, Iterable, Iterator, Optional

from oblivstore.dependency import Data


class Stash:
    def __init__(self):
        """Create an empty stash; blocks are keyed by their id so lookups and removals are constant time."""
        self.__blocks: Dict[int, Data] = {}

    def __len__(self) -> int:
        return len(self.__blocks)

    def __contains__(self, key: int) -> bool:
        return key in self.__blocks

    def __iter__(self) -> Iterator[Data]:
        """Iterate over the blocks in insertion order."""
        return iter(list(self.__blocks.values()))

    def get(self, key: int) -> Optional[Data]:
        """Return the block with the given key, or None if the stash does not hold it."""
        return self.__blocks.get(key)

    def set(self, data: Data) -> None:
        """Store a real block, replacing any copy with the same key."""
        if data.is_dummy:
            raise ValueError("Dummy blocks never enter the stash.")
        self.__blocks[data.key] = data

    def merge(self, blocks: Iterable[Data]) -> None:
        """Add the real blocks read off a path, overwriting stale copies and dropping dummies."""
        for data in blocks:
            if not data.is_dummy:
                self.__blocks[data.key] = data

    def remove(self, key: int) -> Optional[Data]:
        """Remove and return the block with the given key, or None if the stash does not hold it."""
        return self.__blocks.pop(key, None)

    def clear(self) -> None:
        """Drop every block."""
        self.__blocks.clear()
