"""
Password protected backup of the identity keypair.

The serialized keypair is encrypted with AES-256-GCM under a key derived from
the user's password with PBKDF2-HMAC-SHA256. The backup file is five lines of
text:

    Foxtrot encrypted keys
    <PBKDF2 iteration count>
    <base64 salt>
    <base64 IV>
    <base64 ciphertext>

The iteration count is read back from the file on restore, so the default can
be raised without breaking older backups.
"""
import logging
import os
import time
import warnings
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

import config_handler
import config_manager
import configs
from shared import (AES_KEY_LENGTH, GCM_IV_LENGTH, InitializationError, FormatError, CryptoError, b64encode,
                    decode_as_raw_bytes, write_file_atomically)
assert config_manager  # silence unused import warning

__all__ = ['KeyBackupFile', 'derive_key_from_password', 'wrap_keypair', 'unwrap_keypair',
           'export_keys_to_file', 'import_keys_from_file']

logger = logging.getLogger(__name__)

BACKUP_LINE_COUNT = 5
# GCM cannot tell a wrong password from a damaged file, so neither can we
UNWRAP_ERROR_MESSAGE = "Decryption error: Invalid password or corrupted file"


@dataclass(frozen=True)
class KeyBackupFile:
    header: str
    iterations: int
    salt: bytes
    iv: bytes
    ciphertext: bytes

    def serialise(self) -> str:
        return "\n".join((
            self.header,
            str(self.iterations),
            b64encode(self.salt),
            b64encode(self.iv),
            b64encode(self.ciphertext),
        ))

    @classmethod
    def parse(cls, text: str) -> "KeyBackupFile":
        """
        Parse the five line backup format.

        The header line is kept but not checked. Trailing blank lines and
        Windows line endings are tolerated.

        :raises FormatError: If the file does not have the five line structure.
        """
        lines = [line.rstrip("\r") for line in text.split("\n")]
        while lines and not lines[-1].strip():
            lines.pop()
        if len(lines) != BACKUP_LINE_COUNT:
            raise FormatError(f"Key backup file must have {BACKUP_LINE_COUNT} lines, found {len(lines)}")

        header, iterations_line, salt_line, iv_line, ciphertext_line = lines
        iterations_line = iterations_line.strip()
        if not iterations_line.isascii() or not iterations_line.isdigit() or int(iterations_line) <= 0:
            raise FormatError("Key backup file has an invalid iteration count")

        try:
            salt = decode_as_raw_bytes(salt_line.strip())
            iv = decode_as_raw_bytes(iv_line.strip())
            ciphertext = decode_as_raw_bytes(ciphertext_line.strip())
        except ValueError as e:
            raise FormatError("Key backup file contains invalid base64") from e

        return cls(header=header, iterations=int(iterations_line), salt=salt, iv=iv, ciphertext=ciphertext)


def derive_key_from_password(password: str, salt: bytes, iterations: int) -> AESGCM:
    """
    Derive an AES-256-GCM key-encryption key from a password.

    This is deliberately slow, proportional to `iterations`. Run it off any
    latency sensitive thread; abandoning the call leaves nothing behind.
    """
    if iterations <= 0:
        raise ValueError("PBKDF2 iteration count must be positive")
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=AES_KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return AESGCM(kdf.derive(password.encode("utf-8")))


def wrap_keypair(serialized_keypair: bytes, password: str, iterations: int | None = None) -> str:
    """
    Encrypt a serialized keypair under a password.

    :param serialized_keypair: The keypair blob, opaque to this module.
    :param password: The backup password.
    :param iterations: PBKDF2 iteration count, defaults to configs.PBKDF2_ITERATIONS.
    :return: The five line backup file content.
    """
    if iterations is None:
        iterations = configs.PBKDF2_ITERATIONS

    salt = os.urandom(configs.PBKDF2_SALT_LENGTH)
    iv = os.urandom(GCM_IV_LENGTH)
    logger.debug("Deriving key encryption key from password...")
    kek = derive_key_from_password(password, salt, iterations)
    ciphertext = kek.encrypt(iv, bytes(serialized_keypair), None)

    return KeyBackupFile(
            header=configs.BACKUP_FILE_HEADER,
            iterations=iterations,
            salt=salt,
            iv=iv,
            ciphertext=ciphertext,
    ).serialise()


def unwrap_keypair(backup: str | KeyBackupFile, password: str) -> bytes:
    """
    Decrypt a keypair backup.

    :param backup: The backup file content, or an already parsed KeyBackupFile.
    :param password: The backup password.
    :return: The serialized keypair.
    :raises FormatError: If the file is structurally malformed or asks for an unreasonable iteration count.
    :raises CryptoError: If the password is wrong or the file is corrupted. One message for both.
    """
    if isinstance(backup, str):
        backup = KeyBackupFile.parse(backup)

    if backup.iterations <= 0:
        raise FormatError(f"Key backup iteration count must be positive, got {backup.iterations}")
    if backup.iterations > configs.MAX_PBKDF2_ITERATIONS:
        raise FormatError(f"Key backup iteration count {backup.iterations} exceeds the maximum of "
                          f"{configs.MAX_PBKDF2_ITERATIONS}")
    if backup.iterations < configs.MIN_PBKDF2_ITERATIONS:
        warnings.warn(f"Key backup uses only {backup.iterations} PBKDF2 iterations, consider exporting it again.",
                      RuntimeWarning)

    if len(backup.iv) != GCM_IV_LENGTH:
        logger.error("Key backup IV has unexpected length %d", len(backup.iv))
        raise CryptoError(UNWRAP_ERROR_MESSAGE)

    logger.debug("Deriving key encryption key from password...")
    kek = derive_key_from_password(password, backup.salt, backup.iterations)

    logger.debug("Decrypting keypair file...")
    try:
        return kek.decrypt(backup.iv, backup.ciphertext, None)
    except InvalidTag as e:
        logger.error("Key backup failed authentication")
        raise CryptoError(UNWRAP_ERROR_MESSAGE) from e


def export_keys_to_file(serialized_keypair: bytes | None, password: str, phone_no: str,
                        directory: str | None = None, config: config_handler.ConfigHandler | None = None,
                        iterations: int | None = None) -> str:
    """
    Wrap the keypair and write it to ``<phone_no>-keys-<epoch ms>.txt``.

    Directory precedence: `directory`, then the configured `export_directory`,
    then the current working directory. With `timestamp_backup_names` turned
    off the file is ``<phone_no>-keys.txt`` and an older export is replaced.

    :return: The full path of the written file.
    :raises InitializationError: If there is no keypair to export.
    """
    if not serialized_keypair:
        raise InitializationError("No identity keys to export")

    if not directory and config is not None:
        directory = config["export_directory"]
    if not directory:
        directory = os.getcwd()

    timestamped = config["timestamp_backup_names"] if config is not None else True
    if timestamped:
        file_name = f"{phone_no}-keys-{int(time.time() * 1000)}.txt"
    else:
        file_name = f"{phone_no}-keys.txt"
    full_path = os.path.join(directory, file_name)

    content = wrap_keypair(serialized_keypair, password, iterations)
    write_file_atomically(full_path, content.encode("utf-8"))
    logger.info("Exported encrypted keys to %s", full_path)
    return full_path


def import_keys_from_file(file_path: str, password: str) -> bytes:
    """Read a backup file written by export_keys_to_file and return the serialized keypair."""
    logger.debug("Reading encrypted keypair file...")
    with open(file_path, "r", encoding="utf-8") as f:
        content = f.read()
    return unwrap_keypair(content, password)
