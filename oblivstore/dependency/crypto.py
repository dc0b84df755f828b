import os
import secrets
from abc import ABC, abstractmethod
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from oblivstore.dependency.errors import EncryptionError


class Encryptor(ABC):
    """The cipher used to seal every bucket slot; its output length must depend only on the plaintext length."""

    @property
    @abstractmethod
    def key(self) -> bytes:
        """The secret key; it never leaves the client."""
        pass

    @abstractmethod
    def ciphertext_length(self, plaintext_length: int) -> int:
        """Return the number of bytes a sealed slot takes for a plaintext of the given length.

        :param plaintext_length: Length of the padded slot plaintext in bytes.
        :return: Length of the sealed slot in bytes.
        """
        pass

    @abstractmethod
    def enc(self, plaintext: bytes) -> bytes:
        """Seal a slot under a fresh nonce."""
        pass

    @abstractmethod
    def dec(self, ciphertext: bytes) -> bytes:
        """Open a sealed slot, raising EncryptionError if it does not authenticate."""
        pass


class AesGcm(Encryptor):
    """Slot encryption with AES-GCM from the cryptography package."""

    NONCE_SIZE = 12
    TAG_SIZE = 16

    def __init__(self, key: Optional[bytes] = None, key_byte_length: int = 16):
        """
        Set up AES-GCM for sealing slots.

        :param key: The AES key; a random one is drawn when not provided.
        :param key_byte_length: The AES key length in bytes, one of 16, 24 or 32.
        """
        if key_byte_length not in (16, 24, 32):
            raise ValueError("The AES key length must be 16, 24, or 32 bytes.")

        if key is not None and len(key) != key_byte_length:
            raise ValueError(f"The AES key must be {key_byte_length} bytes long.")

        self.__key = os.urandom(key_byte_length) if key is None else key
        self.__cipher = AESGCM(self.__key)

    @property
    def key(self) -> bytes:
        return self.__key

    def ciphertext_length(self, plaintext_length: int) -> int:
        """A sealed slot is the nonce, then the ciphertext (same length as the plaintext), then the tag."""
        return self.NONCE_SIZE + plaintext_length + self.TAG_SIZE

    def enc(self, plaintext: bytes) -> bytes:
        """
        Seal one slot.

        Each call draws a new nonce, so sealing the same slot twice, dummies included, never repeats a ciphertext.

        :param plaintext: The padded slot plaintext.
        :return: nonce || ciphertext || tag.
        """
        nonce = os.urandom(self.NONCE_SIZE)
        return nonce + self.__cipher.encrypt(nonce, plaintext, None)

    def dec(self, ciphertext: bytes) -> bytes:
        """
        Open one slot.

        :param ciphertext: nonce || ciphertext || tag.
        :return: The padded slot plaintext.
        :raises EncryptionError: If the slot is truncated or fails authentication.
        """
        if len(ciphertext) < self.NONCE_SIZE + self.TAG_SIZE:
            raise EncryptionError("Ciphertext is too short to hold a nonce and a tag.")

        try:
            return self.__cipher.decrypt(ciphertext[:self.NONCE_SIZE], ciphertext[self.NONCE_SIZE:], None)
        except InvalidTag as error:
            raise EncryptionError("Ciphertext failed authentication; the slot was tampered with.") from error


def uniform_random_leaf(leaf_range: int) -> int:
    """Draw a leaf label uniformly from [0, leaf_range) using the operating system CSPRNG."""
    return secrets.randbelow(leaf_range)
