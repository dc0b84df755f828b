import logging
from abc import ABC, abstractmethod
from typing import Any, Dict

from oblivstore.dependency.binary_tree import BinaryTree
from oblivstore.dependency.errors import BackingStoreError
from oblivstore.dependency.types import (
    Bucket,
    Query,
    TREE_READ_BUCKET,
    TREE_WRITE_BUCKET,
    TreeReadBucketPayload,
    TreeWriteBucketPayload,
)

logger = logging.getLogger(__name__)

# Define the type of storage the server should hold.
ServerStorage = Dict[str, BinaryTree]


class InteractServer(ABC):
    """This abstract class defines the interface for interacting with the backing store."""

    @abstractmethod
    def init_connection(self) -> None:
        """Initialize the connection to the server."""
        raise NotImplementedError

    @abstractmethod
    def close_connection(self) -> None:
        """Close the connection to the server."""
        raise NotImplementedError

    @abstractmethod
    def init_storage(self, storage: ServerStorage) -> None:
        """
        Initialize storages from a dictionary.

        :param storage: Dict mapping labels to BinaryTree storages.
        """
        raise NotImplementedError

    @abstractmethod
    def execute_query(self, query: Query) -> Any:
        """
        Execute a single query against the appropriate storage.

        :param query: The query to execute.
        :return: The result of the query (if any).
        """
        raise NotImplementedError

    def read_bucket_query(self, label: str, index: int) -> Bucket:
        """
        Convenience method: read one bucket from a BinaryTree storage.

        :param label: The storage label.
        :param index: The level-order index of the bucket.
        :return: The slots stored in the bucket.
        """
        query = Query(payload=TreeReadBucketPayload(index=index), query_type=TREE_READ_BUCKET, storage_label=label)

        try:
            return self.execute_query(query)
        except BackingStoreError:
            raise
        except (OSError, KeyError, IndexError) as error:
            raise BackingStoreError(f"Reading bucket {index} of {label} failed.") from error

    def write_bucket_query(self, label: str, index: int, bucket: Bucket) -> None:
        """
        Convenience method: write one bucket to a BinaryTree storage.

        :param label: The storage label.
        :param index: The level-order index of the bucket.
        :param bucket: The full list of slots to store.
        """
        query = Query(
            payload=TreeWriteBucketPayload(index=index, bucket=bucket),
            query_type=TREE_WRITE_BUCKET,
            storage_label=label
        )

        try:
            self.execute_query(query)
        except BackingStoreError:
            raise
        except (OSError, KeyError, IndexError, ValueError) as error:
            raise BackingStoreError(f"Writing bucket {index} of {label} failed.") from error


class InteractLocalServer(InteractServer):
    def __init__(self):
        """Create an instance for the local server with storages."""
        self._storage: ServerStorage = {}

    def init_connection(self) -> None:
        """Since the server is local, no connection needed."""
        pass

    def close_connection(self) -> None:
        """Since the server is local, there is no connection to close; release the hosted storages instead."""
        for label, tree in self._storage.items():
            tree.close()
            logger.info("Released storage %s.", label)
        self._storage.clear()

    def init_storage(self, storage: ServerStorage) -> None:
        """Register storages from a dictionary."""
        self._storage.update(storage)

    def get_storage(self, label: str) -> BinaryTree:
        """Get storage by label, raising KeyError if not found."""
        if label not in self._storage:
            raise KeyError(f"Label {label} is not hosted in the server storage.")
        return self._storage[label]

    def execute_query(self, query: Query) -> Any:
        """Execute a single query against the appropriate storage."""
        tree = self.get_storage(query.storage_label)
        payload = query.payload

        if query.query_type == TREE_READ_BUCKET:
            return tree.read_bucket(payload.index)
        elif query.query_type == TREE_WRITE_BUCKET:
            tree.write_bucket(payload.index, payload.bucket)
        else:
            raise ValueError(f"Unknown tree query type: {query.query_type}")
