"""This module implements a simple complete binary tree of buckets stored as a flat level-order array."""
from typing import List, Optional

from oblivstore.dependency.storage import Storage
from oblivstore.dependency.types import Bucket


class BinaryTree:
    def __init__(self, num_data: int, bucket_size: int, slot_size: int, filename: Optional[str] = None) -> None:
        """
        Initializes the binary tree based on input parameters.

        The tree is backed by a list where self.storage[0] is the root, the children of node i are nodes 2i+1 and 2i+2,
        and leaf L is stored at index start_leaf + L.

        :param num_data: The number of data points the tree should hold.
        :param bucket_size: Size of each node/bucket in the tree.
        :param slot_size: Size in bytes of each slot in a bucket.
        :param filename: The name of the file the tree should be stored in; in memory if not provided.
        """
        # Store the number of data point and bucket size.
        self._num_data = num_data
        self._bucket_size = bucket_size

        # Compute the level of the binary tree based on the number of data we plan to store.
        self._level = self.compute_level(num_data=num_data)
        # Compute the size of the tree, which is the length of the storage list.
        self._size = pow(2, self._level) - 1
        # Compute the last index before actual leaves.
        self._start_leaf = pow(2, self._level - 1) - 1

        # Create the storage holding one row per bucket.
        self._storage = Storage(size=self._size, bucket_size=bucket_size, slot_size=slot_size, filename=filename)

    @property
    def size(self) -> int:
        """Returns the size of the binary tree."""
        return self._size

    @property
    def level(self) -> int:
        """Returns the level of the binary tree."""
        return self._level

    @property
    def start_leaf(self) -> int:
        """Returns the index of storage corresponding to leaf 0 in the binary tree."""
        return self._start_leaf

    @property
    def leaf_range(self) -> int:
        """Returns the number of leaves."""
        return self._start_leaf + 1

    @property
    def bucket_size(self) -> int:
        """Returns the number of slots in each bucket."""
        return self._bucket_size

    @property
    def storage(self) -> Storage:
        """Return the current storage."""
        return self._storage

    @staticmethod
    def compute_level(num_data: int) -> int:
        """
        Compute the number of levels needed to give every data point its own leaf, ceil(log2(num_data)) + 1.

        :param num_data: The number of data points; must be positive.
        :return: The number of levels, which is also the number of buckets on a path.
        """
        return (num_data - 1).bit_length() + 1

    @staticmethod
    def get_parent_index(index: int) -> int:
        """
        Given index of a node, find where its parent node is stored in the list.

        :param index: The index of a node.
        :return: The index of input node's parent node; -1 for the root.
        """
        return (index - 1) // 2 if index > 0 else -1

    @staticmethod
    def get_path_indices(index: int) -> List[int]:
        """
        Given an index of a node, get the index of the path from itself to the root node.

        :param index: The index of a node.
        :return: A list of index from the input node to the root.
        """
        # Return a path as a list.
        path = []

        # Go through all possible parent indices.
        while index >= 0:
            # Do append first to include the input index as well.
            path.append(index)
            index = BinaryTree.get_parent_index(index)

        return path

    @staticmethod
    def get_cross_index_level(leaf_one: int, leaf_two: int, level: int) -> int:
        """
        Given two leaf labels, find the depth in the tree where their paths are crossed.

        Leaf labels are level - 1 bits wide, read from the root down; the paths share exactly the buckets selected by
        the common prefix of the two labels.

        :param leaf_one: The label of a leaf.
        :param leaf_two: The label of a leaf.
        :param level: The level of the entire tree.
        :return: The depth of the deepest bucket both paths pass through; the root has depth 0.
        """
        return level - 1 - (leaf_one ^ leaf_two).bit_length()

    @staticmethod
    def get_leaf_index(leaf: int, level: int) -> int:
        """Given a leaf label, find where the leaf bucket is stored in the list."""
        return leaf + pow(2, level - 1) - 1

    @staticmethod
    def get_leaf_path(leaf: int, level: int) -> List[int]:
        """
        Given a leaf label, get the index of the path from the root node to itself.

        :param leaf: The label of a leaf, in [0, 2 ** (level - 1)).
        :param level: The level of the entire tree.
        :return: A list of level indices, from the root to the leaf node.
        """
        leaf_range = pow(2, level - 1)
        if not 0 <= leaf < leaf_range:
            raise IndexError(f"Leaf {leaf} is out of range [0, {leaf_range}).")

        return BinaryTree.get_path_indices(index=BinaryTree.get_leaf_index(leaf=leaf, level=level))[::-1]

    def read_bucket(self, index: int) -> Bucket:
        """
        Given the index of a bucket, grab all slots stored in it.

        :param index: The level-order index of the bucket.
        :return: The list of slots in the bucket.
        """
        return self._storage[index]

    def write_bucket(self, index: int, bucket: Bucket) -> None:
        """
        Given the index of a bucket, override its slots.

        :param index: The level-order index of the bucket.
        :param bucket: The full list of slots to store.
        """
        self._storage[index] = bucket

    def close(self) -> None:
        """Release the storage backing the tree."""
        self._storage.close()
