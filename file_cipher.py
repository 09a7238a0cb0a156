"""
Media file encryption with single-use keys.

Every file gets its own random AES-256-GCM key and 12 byte IV. Neither is
embedded in the ciphertext: the caller sends them to the peer inside an
(already encrypted) chat message, and uploads the ciphertext on its own.
"""
import logging
import os
import tempfile
import time
from typing import TypedDict

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

import config_handler
from shared import AES_KEY_LENGTH, GCM_IV_LENGTH, CryptoError, b64encode, decode_as_raw_bytes, write_file_atomically

__all__ = ['EncryptedFile', 'encrypt_file', 'decrypt_file', 'encrypt_file_from_path', 'decrypt_file_to_path',
           'media_cache_path']

logger = logging.getLogger(__name__)


class EncryptedFile(TypedDict):
    """
    Result of encrypting one file.

    `key` and `iv` are base64 and travel out-of-band, never next to `ciphertext`.
    """
    ciphertext: bytes
    key: str
    iv: str


def encrypt_file(data: bytes) -> EncryptedFile:
    """
    Encrypt a file's content under a freshly generated key and IV.

    :param data: The raw file content, may be empty.
    :return: Ciphertext with the GCM tag appended, plus the base64 key (32 bytes) and IV (12 bytes).
    """
    key = AESGCM.generate_key(bit_length=AES_KEY_LENGTH * 8)
    iv = os.urandom(GCM_IV_LENGTH)
    ciphertext = AESGCM(key).encrypt(iv, bytes(data), None)
    return EncryptedFile(ciphertext=ciphertext, key=b64encode(key), iv=b64encode(iv))


def decrypt_file(ciphertext: bytes, key_base64: str, iv_base64: str) -> bytes:
    """
    Decrypt a file encrypted by encrypt_file.

    :raises CryptoError: If the key or IV is malformed or wrong, or the ciphertext is truncated or corrupted.
    """
    try:
        key = decode_as_raw_bytes(key_base64)
        iv = decode_as_raw_bytes(iv_base64)
    except ValueError as e:
        raise CryptoError("File key or IV is not valid base64") from e

    if len(key) != AES_KEY_LENGTH:
        raise CryptoError(f"File key must be {AES_KEY_LENGTH} bytes, got {len(key)}")
    if len(iv) != GCM_IV_LENGTH:
        raise CryptoError(f"File IV must be {GCM_IV_LENGTH} bytes, got {len(iv)}")

    try:
        return AESGCM(key).decrypt(iv, bytes(ciphertext), None)
    except InvalidTag as e:
        raise CryptoError("File failed authentication, wrong key, wrong IV or corrupted data") from e


def encrypt_file_from_path(file_path: str) -> EncryptedFile:
    """Read a file from disk and encrypt it with encrypt_file."""
    with open(file_path, "rb") as f:
        data = f.read()
    logger.debug("Encrypting %d byte file", len(data))
    return encrypt_file(data)


def decrypt_file_to_path(ciphertext: bytes, key_base64: str, iv_base64: str, output_path: str) -> str:
    """
    Decrypt a file and write the plaintext to `output_path`.

    Nothing is written unless decryption succeeds, and the output appears
    atomically.

    :return: `output_path`
    """
    plaintext = decrypt_file(ciphertext, key_base64, iv_base64)
    write_file_atomically(output_path, plaintext)
    logger.debug("Wrote %d byte decrypted file", len(plaintext))
    return output_path


def media_cache_path(object_key: str, cache_directory: str | None = None,
                     config: config_handler.ConfigHandler | None = None) -> str:
    """
    Return the local cache path for a downloaded media object.

    The file is named after the last path segment of the object key, keeping
    its extension ("bin" if there is none).

    Directory precedence: `cache_directory`, then the configured
    `media_cache_directory`, then the system temp directory.
    """
    name = object_key.rsplit("/", 1)[-1]
    stem, _, _ = name.partition(".")
    extension = name.rsplit(".", 1)[1] if "." in name else ""
    if not stem:
        stem = str(int(time.time() * 1000))

    directory = cache_directory
    if not directory and config is not None:
        directory = config["media_cache_directory"]
    if not directory:
        directory = tempfile.gettempdir()

    return os.path.join(directory, f"{stem}.{extension or 'bin'}")
