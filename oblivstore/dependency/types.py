from dataclasses import dataclass
from typing import Generic, List, TypeVar

# A bucket is a list of slots; on the backing store every slot is a fixed-length ciphertext.
Bucket = List[bytes]
Buckets = List[Bucket]

# Define the payload type.
PL = TypeVar("PL")

# Tree operations
TREE_READ_BUCKET = "tree_read_bucket"
TREE_WRITE_BUCKET = "tree_write_bucket"


@dataclass
class TreeReadBucketPayload:
    """Payload for reading one bucket from a BinaryTree."""
    index: int


@dataclass
class TreeWriteBucketPayload:
    """Payload for writing one bucket to a BinaryTree."""
    index: int
    bucket: Bucket


@dataclass(frozen=True)
class Query(Generic[PL]):
    """A query to be executed against a storage."""
    payload: PL
    query_type: str
    storage_label: str
