"""
Container Codec.

Layout (version 1):
    Offset 0:  magic (4 bytes)
    Offset 4:  version (1 byte)
    Offset 5:  salt (32 bytes)
    Offset 37: nonce (12 bytes)
    Offset 49: ciphertext + GCM tag

Format checks never involve key derivation, so "not a container" is always
reported separately from "wrong password or corrupted file".
"""
import logging
from typing import NamedTuple

from .config import DEFAULT_CONFIG, EncryptorConfig
from .errors import BadMagicError, FormatError, TruncatedError, UnsupportedVersionError

logger = logging.getLogger(__name__)


class Container(NamedTuple):
    salt: bytes
    nonce: bytes
    ciphertext: bytes


class ContainerInfo(NamedTuple):
    """Header fields and their offsets, as reported by inspect()."""
    size: int
    magic: bytes
    version: int
    salt: bytes
    nonce: bytes
    payload_length: int
    salt_offset: int
    nonce_offset: int
    payload_offset: int


def encode(salt: bytes, nonce: bytes, ciphertext: bytes, config: EncryptorConfig = DEFAULT_CONFIG) -> bytes:
    """
    Serialize a container.

    Raises:
        FormatError: If salt or nonce have the wrong length.
    """
    if len(salt) != config.SALT_LENGTH:
        raise FormatError(f"Salt must be {config.SALT_LENGTH} bytes, got {len(salt)}")
    if len(nonce) != config.NONCE_LENGTH:
        raise FormatError(f"Nonce must be {config.NONCE_LENGTH} bytes, got {len(nonce)}")
    if len(ciphertext) < config.TAG_LENGTH:
        raise FormatError(f"Ciphertext must include a {config.TAG_LENGTH}-byte tag, got {len(ciphertext)} bytes")
    return config.MAGIC + bytes([config.VERSION]) + bytes(salt) + bytes(nonce) + bytes(ciphertext)


def _check_header(data: bytes, config: EncryptorConfig) -> None:
    prefix_length = len(config.MAGIC) + config.VERSION_LENGTH
    if len(data) < prefix_length:
        raise TruncatedError(f"Container too short ({len(data)} bytes, expected at least {config.MIN_CONTAINER_LENGTH})")
    if data[:len(config.MAGIC)] != config.MAGIC:
        raise BadMagicError(f"Invalid magic bytes: {bytes(data[:len(config.MAGIC)]).hex()}")
    version = data[len(config.MAGIC)]
    if version != config.VERSION:
        raise UnsupportedVersionError(version)
    if len(data) < config.MIN_CONTAINER_LENGTH:
        raise TruncatedError(f"Container too short ({len(data)} bytes, expected at least {config.MIN_CONTAINER_LENGTH})")


def decode(data: bytes, config: EncryptorConfig = DEFAULT_CONFIG) -> Container:
    """
    Split a container into salt, nonce and ciphertext.

    Raises:
        TruncatedError: Buffer shorter than the minimum container.
        BadMagicError: Not a container produced by this program.
        UnsupportedVersionError: Container version is not recognized.
    """
    try:
        _check_header(data, config)
    except FormatError as e:
        logger.error(f"Container rejected: {e}")
        raise
    offset = len(config.MAGIC) + config.VERSION_LENGTH
    salt = bytes(data[offset:offset + config.SALT_LENGTH])
    offset += config.SALT_LENGTH
    nonce = bytes(data[offset:offset + config.NONCE_LENGTH])
    offset += config.NONCE_LENGTH
    ciphertext = bytes(data[offset:])
    logger.debug(f"Decoded container: salt={salt.hex()[:16]}..., nonce={nonce.hex()}, payload={len(ciphertext)} bytes")
    return Container(salt, nonce, ciphertext)


def inspect(data: bytes, config: EncryptorConfig = DEFAULT_CONFIG) -> ContainerInfo:
    """Report header fields of a container without decrypting it."""
    container = decode(data, config)
    salt_offset = len(config.MAGIC) + config.VERSION_LENGTH
    nonce_offset = salt_offset + config.SALT_LENGTH
    payload_offset = nonce_offset + config.NONCE_LENGTH
    return ContainerInfo(
        size=len(data),
        magic=bytes(data[:len(config.MAGIC)]),
        version=data[len(config.MAGIC)],
        salt=container.salt,
        nonce=container.nonce,
        payload_length=len(container.ciphertext),
        salt_offset=salt_offset,
        nonce_offset=nonce_offset,
        payload_offset=payload_offset,
    )
