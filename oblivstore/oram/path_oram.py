"""
This module defines the path oram class.

Path oram has two groups of public methods:
    - init_server_storage: this should be called first after the class object is created. This method constructs the
        storage the server should hold for the client, a tree whose buckets are all full of encrypted dummy data.
    - access (and read, write, delete on top of it): after the server gets the created storage, the client can use
        these functions to obliviously access data blocks stored in the storage.

Every access reads and then writes exactly one path of `level` buckets, whichever key is requested and whether or not
the key was ever written.
"""

import logging
import threading
from typing import Any, List, Optional

from oblivstore.dependency import (
    BackingStoreError,
    BinaryTree,
    Bucket,
    Data,
    Encryptor,
    InteractServer,
    OramError,
    StashOverflowError,
)
from oblivstore.oram.eviction import evict_path
from oblivstore.oram.tree_base_oram import TreeBaseOram

logger = logging.getLogger(__name__)

# The operations an access can perform.
READ = "r"
WRITE = "w"
DELETE = "d"


class PathOram(TreeBaseOram):
    def __init__(self,
                 num_data: int,
                 client: InteractServer,
                 name: str = "oram",
                 data_size: int = 64,
                 filename: Optional[str] = None,
                 bucket_size: int = 4,
                 stash_scale: int = 7,
                 aes_key: Optional[bytes] = None,
                 num_key_bytes: int = 16,
                 encryptor: Optional[Encryptor] = None):
        """
        Defines the path oram, including its attributes and methods.

        :param num_data: The number of data points the oram should store.
        :param client: The instance we use to interact with server.
        :param name: The label of the storage on the server.
        :param data_size: The largest number of bytes a payload may have.
        :param filename: The filename to save the oram data to.
        :param bucket_size: The number of data each bucket should have.
        :param stash_scale: The stash may hold at most stash_scale * level blocks after an eviction.
        :param aes_key: The key to use for the AES instance.
        :param num_key_bytes: The number of bytes the aes key should have.
        :param encryptor: The encryption to use for slots; AES-GCM under aes_key if not provided.
        """
        # Initialize the parent BaseOram class.
        super().__init__(
            name=name,
            client=client,
            aes_key=aes_key,
            num_data=num_data,
            filename=filename,
            data_size=data_size,
            encryptor=encryptor,
            bucket_size=bucket_size,
            stash_scale=stash_scale,
            num_key_bytes=num_key_bytes,
        )

        # Accesses run one at a time; the lock is held from the first bucket read to the last bucket write.
        self.__lock = threading.Lock()

        # Holds the fatal error that left the oram unusable, if any.
        self.__failure: Optional[OramError] = None

    @property
    def failed(self) -> bool:
        """Return whether a fatal error has left the oram unusable."""
        return self.__failure is not None

    def init_server_storage(self) -> None:
        """Initialize the server storage for this oram and send it to the server."""
        self._check_open()

        # Get the storage.
        storage = {self._name: self._init_storage()}

        # Initialize the storage and send it to the server.
        self.client.init_storage(storage=storage)
        logger.info(
            "Initialized oram %s with %d levels and %d buckets of %d slots.",
            self._name, self._level, pow(2, self._level) - 1, self._bucket_size
        )

    def __check_usable(self) -> None:
        """Raise if the oram was closed or left inconsistent by an earlier fatal error."""
        self._check_open()

        if self.__failure is not None:
            raise type(self.__failure)(
                f"Oram {self._name} is unusable after an earlier fatal error; create a new instance."
            ) from self.__failure

    def __read_path(self, leaf: int) -> List[Data]:
        """
        Read every bucket on the path to a leaf, from the root down, and decrypt all of them.

        Nothing is merged into the stash here, so a failure in the middle of the path leaves the client state untouched.

        :param leaf: The label of the leaf.
        :return: The real data found on the path.
        """
        buckets = []

        for index in BinaryTree.get_leaf_path(leaf=leaf, level=self._level):
            bucket = self.client.read_bucket_query(label=self._name, index=index)

            # The server must hand back a full bucket of fixed length slots.
            if len(bucket) != self._bucket_size or any(len(slot) != self._slot_size for slot in bucket):
                raise BackingStoreError(f"The server returned a malformed bucket at index {index}.")

            buckets.append(bucket)

        # Decrypt only once the whole path is in hand.
        return [data for bucket in buckets for data in self._decrypt_bucket(bucket=bucket)]

    def __write_path(self, leaf: int) -> None:
        """
        Evict the stash onto the path to a leaf and write the path back, from the leaf up.

        A failure while writing leaves some buckets written and some not, which may lose blocks; the oram is then marked
        as failed and refuses further accesses.

        :param leaf: The label of the leaf.
        """
        # Perform an eviction and encrypt the whole path before sending anything.
        path = evict_path(stash=self._stash, leaf=leaf, level=self._level, bucket_size=self._bucket_size)
        encrypted: List[Bucket] = [self._encrypt_bucket(bucket=bucket) for bucket in path]

        indices = BinaryTree.get_leaf_path(leaf=leaf, level=self._level)

        # Note that we write the path in the reversed order because we write a path from bottom up.
        try:
            for index, bucket in reversed(list(zip(indices, encrypted))):
                self.client.write_bucket_query(label=self._name, index=index, bucket=bucket)
        except BackingStoreError as error:
            self.__failure = error
            logger.error("Write back of oram %s failed; the tree may be inconsistent.", self._name)
            raise

    def __check_stash(self) -> None:
        """Record the stash size after an eviction and fail if it is above the safety bound."""
        self.max_stash = max(self.max_stash, len(self._stash))

        if len(self._stash) > self._stash_size:
            self.__failure = StashOverflowError(
                f"Stash holds {len(self._stash)} blocks, more than the bound of {self._stash_size}."
            )
            logger.error("Stash overflow in oram %s; the tree parameters are undersized.", self._name)
            raise self.__failure

    def access(self, op: str, key: int, value: Optional[bytes] = None) -> Optional[bytes]:
        """
        Perform an oblivious operation on a given key.

        :param op: An operation, which can be "r", "w" or "d".
        :param key: The key of the data block of interest, in [0, num_data).
        :param value: If the operation is "w", this is the new value for data block.
        :return: The value before the operation if the operation is "r" (None if the key holds no value), else None.
        """
        # Validate the request before any traffic to the server.
        if op not in (READ, WRITE, DELETE):
            raise ValueError("The provided operation is not valid.")
        self._check_key(key=key)
        if op == WRITE:
            if not isinstance(value, (bytes, bytearray)):
                raise TypeError("The value to write must be bytes.")
            if len(value) > self._data_size:
                raise ValueError(f"The value has {len(value)} bytes, more than the data size {self._data_size}.")
            value = bytes(value)

        with self.__lock:
            self.__check_usable()
            self.access_count += 1

            # Find which path the data of interest lies on; an unassigned key reads a fresh random path.
            leaf = self._pos_map.get(key)
            if leaf is None:
                leaf = self._get_new_leaf()

            # We read the path from the server and add the real data to the stash.
            self._stash.merge(self.__read_path(leaf=leaf))

            # Apply the operation to the data of interest.
            data = self._stash.get(key)
            read_value = data.value if data is not None else None

            if op == WRITE:
                if data is None:
                    data = Data(key=key, leaf=leaf, value=value)
                    self._stash.set(data)
                else:
                    data.value = value

            if op == DELETE:
                # A deleted block leaves the stash and is no longer mapped anywhere.
                self._stash.remove(key)
                self._pos_map.remove(key)
            else:
                # Get a new path and update the position map, even when only reading.
                new_leaf = self._get_new_leaf()
                self._pos_map.set(key=key, leaf=new_leaf)
                if data is not None:
                    data.leaf = new_leaf

            # Evict the stash and write the path back to the server.
            self.__write_path(leaf=leaf)
            self.__check_stash()

            logger.debug("Oram %s finished access %d; stash holds %d blocks.",
                         self._name, self.access_count, len(self._stash))

        return read_value if op == READ else None

    def operate_on_key(self, op: str, key: int, value: Any = None) -> Any:
        """
        Perform operation on a given key.

        :param op: An operation, which can be "r", "w" or "d".
        :param key: The key of the data block of interest.
        :param value: If the operation is "w", this is the new value for data block.
        :return: The value read if the operation is "r", None otherwise.
        """
        return self.access(op=op, key=key, value=value)

    def read(self, key: int) -> Optional[bytes]:
        """Obliviously read a block; returns None if the block was never written or was deleted."""
        return self.access(op=READ, key=key)

    def write(self, key: int, value: bytes) -> None:
        """Obliviously write a block, creating it if needed."""
        self.access(op=WRITE, key=key, value=value)

    def delete(self, key: int) -> None:
        """Obliviously delete a block; deleting a missing block still costs one full access."""
        self.access(op=DELETE, key=key)

    def close(self) -> None:
        """Tear the oram down once any access in flight has finished."""
        with self.__lock:
            super().close()
