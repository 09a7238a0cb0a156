"""
Text message encryption under a conversation's session key.

New messages are always written as ``B64("1"):B64(iv):B64(ciphertext||tag)``
using AES-256-GCM. Decryption also accepts the unversioned GCM form and the
legacy chunked AES-256-CBC form so old conversations stay readable.

There is no fallback between modes: if the detected format fails to decrypt,
the call fails.
"""
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.padding import PKCS7

from shared import (FIELD_SEPARATOR, GCM_IV_LENGTH, CBC_IV_LENGTH, CBC_BLOCK_BITS, CURRENT_PROTOCOL_VERSION,
                    ProtocolVersion, SessionKey, InitializationError, CryptoError, b64encode, decode_as_raw_bytes)
from version_detector import extract_versioning

__all__ = ['encrypt_message', 'decrypt_message']

logger = logging.getLogger(__name__)


def _require_key(key: SessionKey | None) -> SessionKey:
    if key is None:
        raise InitializationError("SessionKey isn't initialized")
    return key


def encrypt_message(key: SessionKey | None, plaintext: str) -> str:
    """
    Encrypt a text message in the current wire format.

    A fresh random 12 byte IV is drawn for every call, so encrypting the same
    text twice gives two different outputs.

    :param key: The conversation's session key.
    :param plaintext: The message text.
    :return: ``B64("1"):B64(iv):B64(ciphertext||tag)``
    :raises InitializationError: If no session key is given.
    """
    key = _require_key(key)

    iv = os.urandom(GCM_IV_LENGTH)
    ciphertext = key.aead.encrypt(iv, plaintext.encode("utf-8"), None)
    version_field = b64encode(str(int(CURRENT_PROTOCOL_VERSION)).encode("ascii"))
    return FIELD_SEPARATOR.join((version_field, b64encode(iv), b64encode(ciphertext)))


def decrypt_message(key: SessionKey | None, message: str) -> str:
    """
    Decrypt a message in any supported wire format.

    :param key: The conversation's session key.
    :param message: The encoded message.
    :return: The plaintext.
    :raises InitializationError: If no session key is given. Checked before the message is looked at.
    :raises FormatError: If the message has no field separator.
    :raises VersionError: If the version is unreadable or unknown.
    :raises CryptoError: If decryption or authentication fails.
    """
    key = _require_key(key)
    version, payload = extract_versioning(message)

    match version:
        case ProtocolVersion.GCM_V1:
            plaintext = _decrypt_gcm(key, payload)
        case ProtocolVersion.LEGACY_CBC_CHUNKED:
            plaintext = _decrypt_cbc_chunked(key, payload)
        case _:
            raise AssertionError(f"Unhandled protocol version {version!r}")

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise CryptoError("Decrypted message is not valid UTF-8") from e


def _decode_fields(iv_field: str, ciphertext_field: str) -> tuple[bytes, bytes]:
    try:
        return decode_as_raw_bytes(iv_field), decode_as_raw_bytes(ciphertext_field)
    except ValueError as e:
        raise CryptoError("Message field is not valid base64") from e


def _decrypt_gcm(key: SessionKey, payload: str) -> bytes:
    fields = payload.split(FIELD_SEPARATOR)
    if len(fields) != 2:
        raise CryptoError(f"Malformed GCM message: expected 2 fields, got {len(fields)}")

    iv, ciphertext = _decode_fields(*fields)
    if len(iv) != GCM_IV_LENGTH:
        raise CryptoError(f"GCM IV must be {GCM_IV_LENGTH} bytes, got {len(iv)}")

    try:
        return key.aead.decrypt(iv, ciphertext, None)
    except InvalidTag as e:
        logger.debug("GCM message failed authentication")
        raise CryptoError("Message failed authentication, wrong key or corrupted ciphertext") from e


def _decrypt_cbc_chunked(key: SessionKey, payload: str) -> bytes:
    """Decrypt each (iv, ciphertext) chunk in field order and concatenate the plaintexts."""
    fields = payload.split(FIELD_SEPARATOR)
    if len(fields) % 2:
        raise CryptoError(f"Malformed chunked message: odd number of fields ({len(fields)})")

    block_size = CBC_BLOCK_BITS // 8
    chunks: list[bytes] = []
    for index in range(0, len(fields), 2):
        chunk_number = index // 2
        iv, ciphertext = _decode_fields(fields[index], fields[index + 1])
        if len(iv) != CBC_IV_LENGTH:
            raise CryptoError(f"Chunk {chunk_number}: CBC IV must be {CBC_IV_LENGTH} bytes, got {len(iv)}")
        if not ciphertext or len(ciphertext) % block_size:
            raise CryptoError(f"Chunk {chunk_number}: ciphertext length {len(ciphertext)} "
                              f"is not a multiple of {block_size}")

        decryptor = key.cbc_decryptor(iv)
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = PKCS7(CBC_BLOCK_BITS).unpadder()
        try:
            chunks.append(unpadder.update(padded) + unpadder.finalize())
        except ValueError as e:
            # CBC has no integrity check, bad padding is the only sign of a wrong key
            logger.debug("Legacy chunk %d has invalid padding", chunk_number)
            raise CryptoError(f"Chunk {chunk_number} failed to decrypt, wrong key or corrupted ciphertext") from e

    return b"".join(chunks)
