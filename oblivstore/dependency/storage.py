import logging
import os
from typing import BinaryIO, List, Optional

from oblivstore.dependency.errors import BackingStoreError
from oblivstore.dependency.types import Bucket

logger = logging.getLogger(__name__)


class Storage:
    """
    A class that manages an n x m matrix of fixed-size byte strings.

    In our use case, n is the size of the binary tree, m is the size of each bucket, and each element is one encrypted
    slot. Since we always read the entire bucket, the read/write access is with respect to one row of the matrix.
    If the filename is provided, data is stored on disk, otherwise data is stored in memory (list of lists).
    """

    def __init__(self, size: int, bucket_size: int, slot_size: int, filename: Optional[str] = None) -> None:
        """
        :param size: number of rows.
        :param bucket_size: number of columns.
        :param slot_size: size (in bytes) of each element.
        :param filename: optional path for on-disk storage.
        """
        # Store the information useful for accessing data.
        self.__size: int = size
        self.__bucket_size: int = bucket_size
        self.__slot_size: int = slot_size

        # Store the file name.
        self.__filename: Optional[str] = filename
        self.__file: Optional[BinaryIO] = None

        # Whether the filename is provided determines how we store things.
        if self.__filename is None:
            # Rows stay empty until the owner lays out its first buckets.
            self.__internal_data: List[Bucket] = [[] for _ in range(size)]
            return

        try:
            # Allocate or confirm the existence of the file.
            if not os.path.exists(self.__filename):
                with open(self.__filename, "wb") as file:
                    # Compute the total number of bytes required and declare the space.
                    file.seek(size * bucket_size * slot_size - 1)
                    file.write(b"\x00")

            # Open the file for read/write in binary mode.
            self.__file = open(self.__filename, "r+b")
        except OSError as error:
            raise BackingStoreError(f"Could not allocate storage file {self.__filename}.") from error

        logger.info("Allocated %d buckets of %d slots in %s.", size, bucket_size, self.__filename)

    @property
    def size(self) -> int:
        """Return the number of rows."""
        return self.__size

    @property
    def bucket_size(self) -> int:
        """Return the number of slots in each row."""
        return self.__bucket_size

    @property
    def slot_size(self) -> int:
        """Return the number of bytes in each slot."""
        return self.__slot_size

    @property
    def filename(self) -> Optional[str]:
        """Return the backing file name, None when the storage is in memory."""
        return self.__filename

    def __getitem__(self, index: int) -> Bucket:
        """storage[i] => returns the i-th bucket."""
        return self.read_row(index=index)

    def __setitem__(self, index: int, data: Bucket) -> None:
        """storage[i] = override the i-th bucket."""
        self.write_row(index=index, data=data)

    def __row_offset(self, index: int) -> int:
        """Compute the starting byte offset for row i: offset = i * (m * x)."""
        return index * self.__bucket_size * self.__slot_size

    def __check_index(self, index: int) -> None:
        """Rows are addressed by their level-order index."""
        if not 0 <= index < self.__size:
            raise IndexError(f"Bucket index {index} is out of range [0, {self.__size}).")

    def read_row(self, index: int) -> Bucket:
        """Reads and returns the entire row i as a list."""
        self.__check_index(index=index)

        # In-memory read; hand back a copy so callers never alias the stored row.
        if self.__filename is None:
            return list(self.__internal_data[index])

        # On-disk read.
        self.__check_open()
        try:
            self.__file.seek(self.__row_offset(index))
            row_bytes = self.__file.read(self.__bucket_size * self.__slot_size)
        except OSError as error:
            raise BackingStoreError(f"Could not read bucket {index}.") from error

        # Split this big chunk into m elements each of lengths x.
        return [
            row_bytes[i * self.__slot_size: (i + 1) * self.__slot_size]
            for i in range(self.__bucket_size)
        ]

    def write_row(self, index: int, data: Bucket) -> None:
        """
        Writes the entire row i from a list.

        Every row must be full and every slot must have the fixed length, otherwise the occupancy of a bucket would be
        visible from the size of what is stored.
        """
        self.__check_index(index=index)

        if len(data) != self.__bucket_size:
            raise ValueError(f"A bucket must hold exactly {self.__bucket_size} slots, got {len(data)}.")
        if any(len(slot) != self.__slot_size for slot in data):
            raise ValueError(f"Every slot must be exactly {self.__slot_size} bytes long.")

        # In-memory write and terminate the function.
        if self.__filename is None:
            self.__internal_data[index] = list(data)
            return

        # On-disk write; seek the position and write the joined row.
        self.__check_open()
        try:
            self.__file.seek(self.__row_offset(index))
            self.__file.write(b"".join(data))
        except OSError as error:
            raise BackingStoreError(f"Could not write bucket {index}.") from error

    def __check_open(self) -> None:
        """File-backed rows can only be touched while the file is open."""
        if self.__file is None:
            raise BackingStoreError("The storage file has been closed.")

    def close(self) -> None:
        """Close the file if using file-based storage."""
        if self.__file is not None:
            self.__file.close()
            self.__file = None
            logger.info("Closed storage file %s.", self.__filename)
