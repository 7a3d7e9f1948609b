"""
Single-File Pipeline.

Composes key derivation, AES-256-GCM and the container codec over in-memory
buffers. No file I/O happens here; errors propagate to the caller unchanged
(all-or-nothing).
"""
import logging
import time
from typing import Optional

from . import aead, container
from .config import DEFAULT_CONFIG, EncryptorConfig, KdfParams
from .keys import DerivedKey, KeyManager, Password

logger = logging.getLogger(__name__)


class FilePipeline:
    """Encrypts and decrypts single payloads."""
    def __init__(self, config: EncryptorConfig = DEFAULT_CONFIG, params: Optional[KdfParams] = None):
        self.config = config
        self.key_manager = KeyManager(config, params)

    def seal_with_key(self, key: DerivedKey, salt: bytes, plaintext: bytes) -> bytes:
        """
        Encrypt under an already derived key with a fresh nonce.

        Args:
            key: Key derived from the password and salt.
            salt: Salt the key was derived with; stored in the container.
            plaintext: Payload to encrypt.

        Returns:
            bytes: Encoded container.
        """
        nonce = self.key_manager.generate_nonce()
        ciphertext = aead.seal(key, nonce, plaintext)
        return container.encode(salt, nonce, ciphertext, self.config)

    def open_with_key(self, key: DerivedKey, parsed: container.Container) -> bytes:
        return aead.open_sealed(key, parsed.nonce, parsed.ciphertext)

    def encrypt(self, password: Password, plaintext: bytes) -> bytes:
        """
        Encrypt a payload with a fresh salt and nonce.

        Two calls with the same password and plaintext never produce the same bytes.

        Raises:
            KeyDerivationError: If the key cannot be derived.
        """
        start_time = time.time()
        salt = self.key_manager.generate_salt()
        with self.key_manager.derive_key(password, salt) as key:
            output = self.seal_with_key(key, salt, plaintext)
        logger.info(f"Encrypted {len(plaintext)} bytes into {len(output)} bytes in {time.time() - start_time:.2f}s")
        return output

    def decrypt(self, password: Password, data: bytes) -> bytes:
        """
        Decode a container and decrypt its payload.

        Raises:
            FormatError: The buffer is not a valid container (no key is derived).
            AuthenticationError: Wrong password or corrupted file.
        """
        start_time = time.time()
        parsed = container.decode(data, self.config)
        with self.key_manager.derive_key(password, parsed.salt) as key:
            plaintext = self.open_with_key(key, parsed)
        logger.info(f"Decrypted {len(data)} bytes into {len(plaintext)} bytes in {time.time() - start_time:.2f}s")
        return plaintext


_default_pipeline: Optional[FilePipeline] = None


def default_pipeline() -> FilePipeline:
    global _default_pipeline
    if _default_pipeline is None:
        _default_pipeline = FilePipeline()
    return _default_pipeline


def encrypt(password: Password, plaintext: bytes) -> bytes:
    """Encrypt plaintext into a self-describing container."""
    return default_pipeline().encrypt(password, plaintext)


def decrypt(password: Password, data: bytes) -> bytes:
    """Decrypt a container produced by encrypt()."""
    return default_pipeline().decrypt(password, data)
