from oblivstore.dependency.binary_tree import BinaryTree
from oblivstore.dependency.crypto import AesGcm, Encryptor, uniform_random_leaf
from oblivstore.dependency.errors import (
    BackingStoreError,
    ConfigurationError,
    EncryptionError,
    OramClosedError,
    OramError,
    StashOverflowError,
)
from oblivstore.dependency.helper import Data, Helper
from oblivstore.dependency.interact_server import InteractLocalServer, InteractServer, ServerStorage
from oblivstore.dependency.storage import Storage
from oblivstore.dependency.types import (
    Bucket,
    Buckets,
    Query,
    TREE_READ_BUCKET,
    TREE_WRITE_BUCKET,
    TreeReadBucketPayload,
    TreeWriteBucketPayload,
)
