"""
Protocol version detection for encoded messages.

Encoded messages are colon separated base64 fields. Three generations of
clients produced three shapes:

    version:iv:ciphertext          current clients, version is base64 of "1" (or "0")
    iv:ciphertext                  unversioned, GCM if the IV is 12 bytes, CBC if 16
    iv:ct:iv:ct[:iv:ct...]         unversioned chunked CBC, IVs are 16 bytes

The field count decides how the first field is read. A 3-field message is
always treated as versioned, even though an old single-chunk CBC message could
in theory look the same. Already stored conversations rely on that tie-break.
"""
from dataclasses import dataclass

from shared import (FIELD_SEPARATOR, GCM_IV_LENGTH, CBC_IV_LENGTH, ProtocolVersion, FormatError, VersionError,
                    decode_as_raw_bytes, decode_as_utf8_digits)

__all__ = ['Versioned', 'UnversionedGcm', 'UnversionedCbcChunked', 'WireFormat',
           'parse_wire_format', 'extract_versioning']


@dataclass(frozen=True)
class Versioned:
    """Message carried an explicit version prefix, `remainder` has it stripped."""
    version: ProtocolVersion
    remainder: str


@dataclass(frozen=True)
class UnversionedGcm:
    """Old iv:ciphertext message with a 12 byte IV."""
    message: str


@dataclass(frozen=True)
class UnversionedCbcChunked:
    """Old CBC message, one or more iv:ciphertext chunks with 16 byte IVs."""
    message: str


WireFormat = Versioned | UnversionedGcm | UnversionedCbcChunked


def parse_wire_format(message: str) -> WireFormat:
    """
    Classify an encoded message by its shape.

    :param message: The encoded message as received.
    :return: One of Versioned, UnversionedGcm or UnversionedCbcChunked.
    :raises FormatError: If the message contains no separator.
    :raises VersionError: If the version prefix is unreadable or unknown, or the
        version cannot be inferred from the first IV.
    """
    fields = message.split(FIELD_SEPARATOR)
    if len(fields) < 2:
        raise FormatError(f'Failed to find "{FIELD_SEPARATOR}" separator in message')

    if len(fields) == 3:
        try:
            number = decode_as_utf8_digits(fields[0])
        except ValueError as e:
            raise VersionError("Failed to extract version from message") from e
        try:
            version = ProtocolVersion(number)
        except ValueError as e:
            raise VersionError(f"Unknown protocol version: {number}") from e
        return Versioned(version, FIELD_SEPARATOR.join(fields[1:]))

    try:
        iv_length = len(decode_as_raw_bytes(fields[0]))
    except ValueError as e:
        raise VersionError("Failed to extract version from message") from e

    if len(fields) == 2 and iv_length == GCM_IV_LENGTH:
        return UnversionedGcm(message)
    if iv_length == CBC_IV_LENGTH:
        return UnversionedCbcChunked(message)
    raise VersionError(f"Failed to extract version from message: unexpected {iv_length} byte IV "
                       f"in {len(fields)} field message")


def extract_versioning(message: str) -> tuple[ProtocolVersion, str]:
    """
    Split an encoded message into its protocol version and the payload to decrypt.

    For versioned messages the payload is everything after the version field.
    Unversioned messages have nothing to strip, so the payload is the message itself.
    """
    match parse_wire_format(message):
        case Versioned(version=version, remainder=remainder):
            return version, remainder
        case UnversionedGcm(message=original):
            return ProtocolVersion.GCM_V1, original
        case UnversionedCbcChunked(message=original):
            return ProtocolVersion.LEGACY_CBC_CHUNKED, original
    raise AssertionError("unreachable")
