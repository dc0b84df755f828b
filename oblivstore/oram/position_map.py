"""This module defines the client-side position map of a tree-based oram."""

from typing import Dict, Optional


class PositionMap:
    def __init__(self, leaf_range: int):
        """
        Create an empty position map, where every key starts out unassigned.

        The map lives with the client only; nothing in it is ever sent to the backing store.

        :param leaf_range: Leaves range over [0, leaf_range).
        """
        self.__leaf_range: int = leaf_range
        self.__leaves: Dict[int, int] = {}

    @property
    def leaf_range(self) -> int:
        """Return the number of leaves a key may be mapped to."""
        return self.__leaf_range

    def __len__(self) -> int:
        return len(self.__leaves)

    def __contains__(self, key: int) -> bool:
        return key in self.__leaves

    def get(self, key: int) -> Optional[int]:
        """
        Look up the leaf a key is currently mapped to.

        :param key: A key of a data block.
        :return: The leaf of the key, or None if the key is unassigned.
        """
        return self.__leaves.get(key)

    def set(self, key: int, leaf: int) -> None:
        """
        Map a key to a leaf.

        :param key: A key of a data block.
        :param leaf: The leaf label, which must lie in [0, leaf_range).
        """
        if not 0 <= leaf < self.__leaf_range:
            raise IndexError(f"Leaf {leaf} is out of range [0, {self.__leaf_range}).")
        self.__leaves[key] = leaf

    def remove(self, key: int) -> None:
        """Return a key to the unassigned state; removing an unassigned key does nothing."""
        self.__leaves.pop(key, None)

    def clear(self) -> None:
        """Forget every assignment."""
        self.__leaves.clear()
