"""AEAD Engine: AES-256-GCM over whole in-memory buffers."""
import logging

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import AuthenticationError
from .keys import DerivedKey

logger = logging.getLogger(__name__)


def seal(key: DerivedKey, nonce: bytes, plaintext: bytes) -> bytes:
    """
    Encrypt plaintext and append the 16-byte GCM tag.

    The caller must never reuse a nonce with the same key.
    """
    aesgcm = AESGCM(key.material)
    ciphertext = aesgcm.encrypt(nonce, plaintext, None)
    logger.debug(f"Sealed {len(plaintext)} bytes with nonce {nonce.hex()}")
    return ciphertext


def open_sealed(key: DerivedKey, nonce: bytes, ciphertext: bytes) -> bytes:
    """
    Verify the tag and decrypt.

    Raises:
        AuthenticationError: Wrong key, wrong nonce or modified ciphertext.
    """
    aesgcm = AESGCM(key.material)
    try:
        plaintext = aesgcm.decrypt(nonce, ciphertext, None)
    except InvalidTag as e:
        logger.error(f"Tag verification failed for nonce {nonce.hex()}")
        raise AuthenticationError() from e
    logger.debug(f"Opened {len(ciphertext)} bytes with nonce {nonce.hex()}")
    return plaintext
