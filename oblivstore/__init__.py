"""Path oram block storage: store fixed-size blocks on an untrusted server without revealing which block is accessed."""

from typing import Optional

from oblivstore.dependency import (
    BackingStoreError,
    ConfigurationError,
    EncryptionError,
    InteractLocalServer,
    InteractServer,
    OramClosedError,
    OramError,
    StashOverflowError,
)
from oblivstore.oram import AsyncPathOram, OramStats, PathOram

__version__ = "0.1.0"


def initialize(num_blocks: int,
               bucket_capacity: int = 4,
               client: Optional[InteractServer] = None,
               **kwargs) -> PathOram:
    """
    Create a path oram and lay its tree of dummy buckets out on the server.

    :param num_blocks: The number of blocks the oram should store.
    :param bucket_capacity: The number of slots each bucket should have.
    :param client: The instance we use to interact with server; an in-process server if not provided.
    :param kwargs: Further PathOram parameters, such as data_size, filename or aes_key.
    :return: The oram, ready for accesses.
    """
    oram = PathOram(
        num_data=num_blocks,
        bucket_size=bucket_capacity,
        client=client if client is not None else InteractLocalServer(),
        **kwargs
    )
    oram.client.init_connection()
    oram.init_server_storage()
    return oram
