# shared.py - Shared cryptographic definitions for the message, file and key backup ciphers
# pylint: disable=trailing-whitespace, line-too-long
import base64
import hashlib
import os
import tempfile
from enum import IntEnum, unique
from typing import Final

try:
    from cryptography.hazmat.primitives.ciphers import algorithms, modes, Cipher, CipherContext
    from cryptography.hazmat.primitives.ciphers.aead import AESGCM
except ImportError as exc_:
    print("Required cryptographic libraries not found.")
    raise ImportError("Please install the required libraries with pip install -e .") from exc_

# Wire format constants
FIELD_SEPARATOR: Final[str] = ":"
# Every field of an encoded message is base64 and base64 never contains ":",
# so splitting on it is unambiguous.

AES_KEY_LENGTH: Final[int] = 32  # AES-256
GCM_IV_LENGTH: Final[int] = 12
CBC_IV_LENGTH: Final[int] = 16
CBC_BLOCK_BITS: Final[int] = 128


@unique
class ProtocolVersion(IntEnum):
    """
    Version numbers that may appear in the first field of an encoded message.

    Unlike MessageType-style enums this one has no catch-all member: anything
    not listed here is an unknown version and must be rejected by the caller.
    """
    # Historical clients: AES-256-CBC, message split into (iv, ciphertext) chunks
    LEGACY_CBC_CHUNKED = 0
    # Current: AES-256-GCM, single (iv, ciphertext||tag) pair
    GCM_V1 = 1


CURRENT_PROTOCOL_VERSION: Final[ProtocolVersion] = ProtocolVersion.GCM_V1


class CryptoEngineError(ValueError):
    """Base class for every error raised by the message, file and key backup ciphers."""


class InitializationError(CryptoEngineError):
    """A required key was not supplied."""


class FormatError(CryptoEngineError):
    """The input does not have the expected textual structure."""


class VersionError(CryptoEngineError):
    """The protocol version could not be determined or is not supported."""


class CryptoError(CryptoEngineError):
    """Decryption or authentication failed."""


class SessionKey:
    """
    AES-256 key shared by the two participants of one conversation.

    How the key was agreed upon is none of this module's business; it is handed
    over as 32 raw bytes. The same key serves the current GCM format and the
    legacy CBC format, so both the AEAD object and the raw bytes are kept.

    Instances are read-only after construction and safe to share between threads.
    """
    def __init__(self, key: bytes):
        """
        Args:
            key: 32 raw key bytes.
        """
        if not isinstance(key, (bytes, bytearray, memoryview)):
            raise TypeError("SessionKey must be built from bytes")
        if len(key) != AES_KEY_LENGTH:
            raise ValueError(f"SessionKey must be {AES_KEY_LENGTH} bytes, got {len(key)}")
        self._key: bytes = bytes(key)
        self._aes: AESGCM = AESGCM(self._key)

    @classmethod
    def from_base64(cls, key_base64: str) -> "SessionKey":
        return cls(base64.b64decode(key_base64, validate=True))

    @classmethod
    def generate(cls) -> "SessionKey":
        return cls(AESGCM.generate_key(bit_length=AES_KEY_LENGTH * 8))

    @property
    def aead(self) -> AESGCM:
        return self._aes

    def cbc_decryptor(self, iv: bytes) -> CipherContext:
        """Return a fresh AES-256-CBC decryptor for one legacy chunk."""
        return Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()

    def __repr__(self) -> str:
        return "SessionKey(<redacted>)"

    def __del__(self):
        if not hasattr(self, "_key"):
            return
        # This is not particularly secure, but it's better than nothing
        self._key = b"\x00" * AES_KEY_LENGTH
        del self._key


def b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def decode_as_raw_bytes(field: str) -> bytes:
    """
    Decode a base64 field whose payload is binary (IV, ciphertext, salt, key).

    :raises ValueError: If the field is not valid base64 (binascii.Error is a ValueError).
    """
    return base64.b64decode(field, validate=True)


def decode_as_utf8_digits(field: str) -> int:
    """
    Decode a base64 field whose payload is the ASCII decimal form of a number.

    Only the version field of an encoded message is encoded this way.

    :raises ValueError: If the field is not base64, not UTF-8, or not made of decimal digits.
    """
    text = decode_as_raw_bytes(field).decode("utf-8")
    # str.isdigit() alone would accept superscripts and other Unicode digits
    if not text or not text.isascii() or not text.isdigit():
        raise ValueError(f"Not a decimal number: {text!r}")
    return int(text)


def public_key_fingerprint(public_key: str | bytes, groups: int = 12) -> str:
    """
    Generate a numeric security code for a public key.

    Both sides of a conversation compare this code to spot a substituted key.
    The key is hashed with SHA-512 and every 5 bytes of digest become one group
    of 5 decimal digits, so at most 12 groups can be produced.

    :param public_key: The public key, either raw bytes or the text form it is stored in.
    :param groups: How many 5-digit groups to return.
    :return: Space separated digit groups, e.g. "01234 56789 ...".
    """
    if not 1 <= groups <= 12:
        raise ValueError("groups must be between 1 and 12")
    if isinstance(public_key, str):
        public_key = public_key.encode("utf-8")
    if not public_key:
        raise ValueError("Public key is empty")

    digest = hashlib.sha512(public_key).digest()
    code = []
    for i in range(groups):
        chunk = digest[i * 5:(i + 1) * 5]
        code.append(f"{int.from_bytes(chunk, byteorder='big') % 100000:05d}")
    return " ".join(code)


def write_file_atomically(path: str, data: bytes) -> None:
    """
    Write `data` to `path` through a temporary file in the same directory.

    Readers never observe a half-written file: either the old content (or no
    file) or the complete new content.
    """
    directory = os.path.dirname(os.path.abspath(path))
    fd, temp_path = tempfile.mkstemp(dir=directory, suffix=".part")
    try:
        with os.fdopen(fd, "wb") as temp_file:
            temp_file.write(data)
        os.replace(temp_path, path)
    except BaseException:
        _safe_remove(temp_path)
        raise


def _safe_remove(path: str) -> None:
    """Remove a file path, ignoring errors."""
    try:
        os.remove(path)
    except OSError:
        pass
