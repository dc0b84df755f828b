"""
This module implements the greedy eviction of stash blocks onto a path.

A block may be placed in a bucket only if the bucket lies on the path to the leaf the block is mapped to. Walking the
path from the leaf up to the root, each bucket takes up to bucket_size of those blocks; ties are broken by preferring
the blocks whose own path shares the most buckets with the target path, then by the smaller key.
"""

from typing import List

from oblivstore.dependency import BinaryTree, Data
from oblivstore.oram.stash import Stash


def evict_path(stash: Stash, leaf: int, level: int, bucket_size: int) -> List[List[Data]]:
    """
    Evict as many stash blocks as possible onto the path to the given leaf.

    Placed blocks are removed from the stash. The returned buckets hold real blocks only; padding them with dummies is
    left to the encryption step.

    :param stash: The stash to evict from; it is modified in place.
    :param leaf: The leaf label of the path we are evicting data to.
    :param level: The level of the entire tree.
    :param bucket_size: The number of data each bucket can hold.
    :return: The buckets of the path, ordered from the root to the leaf.
    """
    # Compute once how deep along the target path each block may go, deepest candidates first.
    candidates = sorted(
        ((BinaryTree.get_cross_index_level(leaf_one=data.leaf, leaf_two=leaf, level=level), data) for data in stash),
        key=lambda pair: (-pair[0], pair[1].key)
    )

    # Create a placeholder for the new path.
    path: List[List[Data]] = [[] for _ in range(level)]

    # Go backwards from bottom to up.
    for depth in range(level - 1, -1, -1):
        remaining = []
        for cross_level, data in candidates:
            # A block is eligible when the bucket at this depth is also on its own path.
            if cross_level >= depth and len(path[depth]) < bucket_size:
                path[depth].append(data)
                stash.remove(data.key)
            else:
                remaining.append((cross_level, data))
        candidates = remaining

    return path
