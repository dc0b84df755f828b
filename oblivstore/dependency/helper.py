from __future__ import annotations

import pickle
import struct
from dataclasses import astuple, dataclass
from typing import Any, Optional


@dataclass
class Data:
    """
    One slot record of the bucket tree.

    A real record carries the block id as key, the leaf the block is routed through and its payload as value. A dummy
    record leaves all three as None; it pads buckets so that every bucket always holds the same number of slots.
    """
    key: Optional[int] = None
    leaf: Optional[int] = None
    value: Optional[Any] = None

    @property
    def is_dummy(self) -> bool:
        return self.key is None

    @classmethod
    def load_unpad(cls, data: bytes) -> Data:
        """Rebuild a record from a padded slot plaintext."""
        return cls(*pickle.loads(Helper.unpad_pickle(data=data)))

    def dump_pad(self, length: int) -> bytes:
        """Serialize the record into a slot plaintext of exactly length bytes."""
        return Helper.pad_pickle(data=pickle.dumps(astuple(self)), length=length)


class Helper:
    """Slot sizing and padding routines, grouped so callers import a single name."""

    # A slot plaintext starts with the length of the pickled record as an unsigned 32-bit big endian integer.
    LENGTH_HEADER_SIZE = 4
    LENGTH_HEADER_FORMAT = "!I"

    @staticmethod
    def pad_pickle(data: bytes, length: int) -> bytes:
        """
        Frame a pickled record as header || record || zero bytes, length bytes in total.

        :param data: The pickled record.
        :param length: The slot plaintext length, header included.
        :return: The framed record.
        """
        fill = length - Helper.LENGTH_HEADER_SIZE - len(data)
        if fill < 0:
            raise ValueError(f"A {len(data)} byte record does not fit in a {length} byte slot.")

        return struct.pack(Helper.LENGTH_HEADER_FORMAT, len(data)) + data + bytes(fill)

    @staticmethod
    def unpad_pickle(data: bytes) -> bytes:
        """Strip the header and the zero fill from a framed record."""
        if len(data) < Helper.LENGTH_HEADER_SIZE:
            raise ValueError("The slot is shorter than its length header.")

        record_length, = struct.unpack(Helper.LENGTH_HEADER_FORMAT, data[:Helper.LENGTH_HEADER_SIZE])
        body = data[Helper.LENGTH_HEADER_SIZE:]

        if record_length > len(body):
            raise ValueError("The length header points past the end of the slot.")

        return body[:record_length]

    @staticmethod
    def compute_data_size(data: Data) -> int:
        """Number of slot bytes the record needs, header included."""
        return Helper.LENGTH_HEADER_SIZE + len(pickle.dumps(astuple(data)))

    @staticmethod
    def compute_max_block_size(num_data: int, leaf_range: int, data_size: int) -> int:
        """
        Find the slot plaintext length shared by every record of an oram.

        Pickled integers and byte strings never shrink as they grow, so the record holding the largest key, the largest
        leaf and a full payload bounds every other record, including dummies.

        :param num_data: The number of keys, keys range over [0, num_data).
        :param leaf_range: The number of leaves, leaves range over [0, leaf_range).
        :param data_size: The maximum number of payload bytes.
        :return: The number of bytes every slot plaintext is padded to.
        """
        return Helper.compute_data_size(Data(key=num_data - 1, leaf=leaf_range - 1, value=bytes(data_size)))
