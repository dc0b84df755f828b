"""
Module for defining a parent class for binary tree-based oram.

The TreeBaseOram class defines a set of attributes that an oram should have and some basic methods such as encryption,
storage initialization and teardown. Note that we don't use double underscores (name mangling) in this file for private
methods because all things defined here should be accessible to its children classes.
"""

import logging
import pickle
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Optional

from oblivstore.dependency import (
    AesGcm,
    BinaryTree,
    Bucket,
    ConfigurationError,
    Data,
    EncryptionError,
    Encryptor,
    Helper,
    InteractServer,
    OramClosedError,
    uniform_random_leaf,
)
from oblivstore.oram.position_map import PositionMap
from oblivstore.oram.stash import Stash

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OramStats:
    """A snapshot of the public parameters and client-side counters of an oram."""
    height: int
    num_leaves: int
    bucket_size: int
    stash_size: int
    total_buckets: int
    max_stash: int
    access_count: int

    @property
    def access_complexity(self) -> str:
        """Every access moves one path, so the cost is logarithmic in the number of blocks."""
        return f"O(log N) = O({self.height})"


class TreeBaseOram(ABC):
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
        Defines the base oram, including its attributes and methods.

        :param num_data: The number of data points the oram should store.
        :param client: The instance we use to interact with server.
        :param name: The label of the storage on the server, this should be unique if multiple orams share a server.
        :param data_size: The largest number of bytes a payload may have.
        :param filename: The filename to save the oram data to.
        :param bucket_size: The number of data each bucket should have.
        :param stash_scale: The stash may hold at most stash_scale * level blocks after an eviction.
        :param aes_key: The key to use for the AES instance.
        :param num_key_bytes: The number of bytes the aes key should have.
        :param encryptor: The encryption to use for slots; AES-GCM under aes_key if not provided.
        """
        # Reject bad parameters before any state is created.
        if num_data <= 0:
            raise ConfigurationError(f"The number of data must be positive, got {num_data}.")
        if bucket_size < 1:
            raise ConfigurationError(f"The bucket size must be at least 1, got {bucket_size}.")
        if data_size < 0:
            raise ConfigurationError(f"The data size must not be negative, got {data_size}.")
        if stash_scale < 1:
            raise ConfigurationError(f"The stash scale must be at least 1, got {stash_scale}.")

        # Store the useful input values.
        self._name: str = name
        self._filename: Optional[str] = filename
        self._num_data: int = num_data
        self._data_size: int = data_size
        self._bucket_size: int = bucket_size
        self._stash_scale: int = stash_scale

        # Compute the level of the binary tree needed.
        self._level: int = BinaryTree.compute_level(num_data=num_data)

        # Compute the range of possible leafs [0, leaf_range).
        self._leaf_range: int = pow(2, self._level - 1)

        # Compute the largest stash allowed after an eviction.
        self._stash_size: int = stash_scale * self._level

        # Claim the variables for stash and the position map.
        self._stash: Stash = Stash()
        self._pos_map: PositionMap = PositionMap(leaf_range=self._leaf_range)

        # Compute the padded total data size, which at largest would be (biggest_key, biggest_leaf, biggest_data).
        self._max_block_size: int = Helper.compute_max_block_size(
            num_data=num_data, leaf_range=self._leaf_range, data_size=data_size
        )

        # Set up the encryption; there is no way to store plaintext slots.
        try:
            self._cipher: Encryptor = encryptor if encryptor is not None \
                else AesGcm(key=aes_key, key_byte_length=num_key_bytes)
        except ValueError as error:
            raise ConfigurationError(str(error)) from error

        # Every slot on the server has exactly this many bytes.
        self._slot_size: int = self._cipher.ciphertext_length(plaintext_length=self._max_block_size)

        # Initialize the client connection.
        self._client: InteractServer = client

        # Set to True once the oram is torn down.
        self._closed: bool = False

        # Counters reported by stats; max_stash records the largest stash seen after an eviction.
        self.access_count: int = 0
        self.max_stash: int = 0

    @property
    def client(self) -> InteractServer:
        """Return the client object."""
        return self._client

    @property
    def name(self) -> str:
        """Return the label of the storage on the server."""
        return self._name

    @property
    def level(self) -> int:
        """Return the number of buckets on a path."""
        return self._level

    @property
    def leaf_range(self) -> int:
        """Return the number of leaves."""
        return self._leaf_range

    @property
    def bucket_size(self) -> int:
        """Return the number of slots in a bucket."""
        return self._bucket_size

    @property
    def data_size(self) -> int:
        """Return the largest number of bytes a payload may have."""
        return self._data_size

    @property
    def slot_size(self) -> int:
        """Return the number of bytes of each encrypted slot."""
        return self._slot_size

    @property
    def stash_size(self) -> int:
        """Return the stash size."""
        return len(self._stash)

    @property
    def closed(self) -> bool:
        """Return whether the oram has been torn down."""
        return self._closed

    def stats(self) -> OramStats:
        """Return a snapshot of the tree parameters and the stash counters."""
        return OramStats(
            height=self._level,
            num_leaves=self._leaf_range,
            bucket_size=self._bucket_size,
            stash_size=len(self._stash),
            total_buckets=pow(2, self._level) - 1,
            max_stash=self.max_stash,
            access_count=self.access_count,
        )

    def _check_key(self, key: int) -> None:
        """Keys are block ids in [0, num_data)."""
        if not isinstance(key, int) or isinstance(key, bool) or not 0 <= key < self._num_data:
            raise IndexError(f"Key {key!r} is out of range [0, {self._num_data}).")

    def _check_open(self) -> None:
        """Raise if the oram has been torn down."""
        if self._closed:
            raise OramClosedError(f"Oram {self._name} has been closed.")

    def _get_new_leaf(self) -> int:
        """Get a random leaf label within the range."""
        return uniform_random_leaf(self._leaf_range)

    def _encrypt_bucket(self, bucket: List[Data]) -> Bucket:
        """
        Encrypt all data in a bucket and fill it up with encrypted dummy data.

        Note that we first pad data to the desired length and then perform the encryption, so real and dummy slots have
        the same length. Every slot is encrypted under a fresh nonce, including the dummies.
        """
        if len(bucket) > self._bucket_size:
            raise ValueError(f"A bucket holds at most {self._bucket_size} data, got {len(bucket)}.")

        # Encrypt the real data followed by as many dummies as needed.
        return [
            self._cipher.enc(plaintext=data.dump_pad(length=self._max_block_size))
            for data in bucket + [Data() for _ in range(self._bucket_size - len(bucket))]
        ]

    def _decrypt_bucket(self, bucket: Bucket) -> List[Data]:
        """
        Given an encrypted bucket, decrypt all slots in it and keep the real data.

        :raises EncryptionError: If any slot, real or dummy, fails authentication or is malformed.
        """
        decrypted = []

        for slot in bucket:
            plaintext = self._cipher.dec(ciphertext=slot)
            try:
                data = Data.load_unpad(plaintext)
            except (ValueError, TypeError, EOFError, pickle.UnpicklingError) as error:
                raise EncryptionError("A slot decrypted to a malformed record.") from error

            # Dummy data is dropped right away.
            if not data.is_dummy:
                decrypted.append(data)

        return decrypted

    def _init_storage(self) -> BinaryTree:
        """
        Create the binary tree storage for this oram with every bucket full of encrypted dummy data.

        :return: The binary tree storage to hand to the server.
        """
        # Create the binary tree object.
        tree = BinaryTree(
            num_data=self._num_data,
            bucket_size=self._bucket_size,
            slot_size=self._slot_size,
            filename=self._filename,
        )

        # Every bucket starts out as fresh encryptions of dummy data.
        for index in range(tree.size):
            tree.write_bucket(index=index, bucket=self._encrypt_bucket(bucket=[]))

        return tree

    def close(self) -> None:
        """
        Tear the oram down: forget the client-side state and release the server storage.

        Closing twice is allowed; any other operation after closing raises OramClosedError.
        """
        if self._closed:
            return

        self._closed = True
        self._stash.clear()
        self._pos_map.clear()
        self._client.close_connection()
        logger.info("Closed oram %s after %d accesses.", self._name, self.access_count)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    @abstractmethod
    def init_server_storage(self) -> None:
        """Initialize the server storage for this oram."""
        raise NotImplementedError

    @abstractmethod
    def operate_on_key(self, op: str, key: int, value: Any = None) -> Any:
        """
        Perform operation on a given key.

        :param op: An operation, which can be "r", "w" or "d".
        :param key: The key of the data block of interest.
        :param value: If the operation is "w", this is the new value for data block.
        :return: The value read if the operation is "r", None otherwise.
        """
        raise NotImplementedError

