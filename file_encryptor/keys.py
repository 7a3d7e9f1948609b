"""
Key Derivation Unit.

Turns a password and a salt into a 32-byte AES-256 key with Argon2id and
owns the lifetime of that key through DerivedKey.
"""
import logging
import secrets
from typing import Optional, Union

from argon2.exceptions import HashingError
from argon2.low_level import Type, hash_secret_raw

from .config import DEFAULT_CONFIG, EncryptorConfig, KdfParams
from .errors import KeyDerivationError

logger = logging.getLogger(__name__)

Password = Union[str, bytes, bytearray, memoryview]


class DerivedKey:
    """
    A derived key held in a mutable buffer that is zeroed when the key is released.

    Use it as a context manager so the key is wiped on every exit path:

        with derive_key(password, salt) as key:
            ciphertext = seal(key, nonce, plaintext)
    """
    __slots__ = ('_buffer', '_wiped')

    def __init__(self, material: Union[bytes, bytearray]):
        self._buffer = bytearray(material)
        self._wiped = False

    @property
    def material(self) -> bytearray:
        if self._wiped:
            raise KeyDerivationError("Derived key has already been wiped")
        return self._buffer

    @property
    def wiped(self) -> bool:
        return self._wiped

    def wipe(self) -> None:
        """Overwrite the key bytes with zeros. Safe to call more than once."""
        if not self._wiped:
            wipe_buffer(self._buffer)
            self._wiped = True

    def __len__(self) -> int:
        return len(self._buffer)

    def __enter__(self) -> 'DerivedKey':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.wipe()

    def __del__(self):
        if hasattr(self, '_wiped'):
            self.wipe()

    def __repr__(self) -> str:
        state = 'wiped' if self._wiped else f'{len(self._buffer)} bytes'
        return f'<DerivedKey {state}>'


def wipe_buffer(buffer: bytearray) -> None:
    for i in range(len(buffer)):
        buffer[i] = 0


def _password_buffer(password: Password) -> bytearray:
    if isinstance(password, str):
        return bytearray(password.encode('utf-8'))
    if isinstance(password, (bytes, bytearray, memoryview)):
        return bytearray(password)
    raise TypeError(f"Password must be str or bytes-like, not {type(password).__name__}")


def validate_params(params: KdfParams) -> None:
    """
    Check a parameter set before handing it to Argon2id.

    Raises:
        KeyDerivationError: If the combination is invalid.
    """
    if params.time_cost < 1:
        raise KeyDerivationError(f"Argon2id time cost must be >= 1, got {params.time_cost}")
    if params.parallelism < 1:
        raise KeyDerivationError(f"Argon2id parallelism must be >= 1, got {params.parallelism}")
    if params.memory_cost < 8 * params.parallelism:
        raise KeyDerivationError(
            f"Argon2id memory cost must be >= 8 * parallelism ({8 * params.parallelism} KiB), "
            f"got {params.memory_cost} KiB"
        )
    if params.key_length != 32:
        raise KeyDerivationError(f"Key length must be 32 bytes for AES-256, got {params.key_length}")


class KeyManager:
    """Manages salt and nonce generation and Argon2id key derivation."""
    def __init__(self, config: EncryptorConfig = DEFAULT_CONFIG, params: Optional[KdfParams] = None):
        """
        Initialize the key manager.

        Args:
            config: EncryptorConfig instance with format constants.
            params: Argon2id parameters, defaults to config.KDF.

        Raises:
            KeyDerivationError: If the parameters are invalid.
        """
        self.config = config
        self.params = params or config.KDF
        validate_params(self.params)
        logger.debug(
            f"Initialized KeyManager: memory_cost={self.params.memory_cost} KiB, "
            f"iterations={self.params.time_cost}, parallelism={self.params.parallelism}"
        )

    def generate_salt(self) -> bytes:
        salt = secrets.token_bytes(self.config.SALT_LENGTH)
        logger.debug(f"Generated salt: {salt.hex()}")
        return salt

    def generate_nonce(self) -> bytes:
        nonce = secrets.token_bytes(self.config.NONCE_LENGTH)
        logger.debug(f"Generated nonce: {nonce.hex()}")
        return nonce

    def derive_key(self, password: Password, salt: bytes) -> DerivedKey:
        """
        Derive a 256-bit AES key from a password using Argon2id.

        Identical (password, salt, params) always yield the identical key.
        The private copy of the password is zeroed before returning.

        Args:
            password: Password as str (UTF-8 encoded) or bytes.
            salt: Salt of SALT_LENGTH bytes.

        Returns:
            DerivedKey: The key, to be released with wipe() or a with block.

        Raises:
            KeyDerivationError: If the salt or parameters are invalid.
        """
        if len(salt) != self.config.SALT_LENGTH:
            raise KeyDerivationError(f"Salt must be {self.config.SALT_LENGTH} bytes, got {len(salt)}")
        logger.debug(f"Deriving key with salt: {salt.hex()}")
        secret = _password_buffer(password)
        try:
            raw = hash_secret_raw(
                secret=bytes(secret),
                salt=bytes(salt),
                time_cost=self.params.time_cost,
                memory_cost=self.params.memory_cost,
                parallelism=self.params.parallelism,
                hash_len=self.params.key_length,
                type=Type.ID,
            )
        except HashingError as e:
            logger.error(f"Key derivation failed: {e}")
            raise KeyDerivationError(f"Error deriving key: {e}") from e
        except MemoryError as e:
            logger.error(f"Memory error during key derivation: {e}")
            raise KeyDerivationError("Insufficient memory for key derivation") from e
        finally:
            wipe_buffer(secret)
        return DerivedKey(raw)


_default_manager: Optional[KeyManager] = None


def default_manager() -> KeyManager:
    global _default_manager
    if _default_manager is None:
        _default_manager = KeyManager()
    return _default_manager


def derive_key(password: Password, salt: bytes, params: Optional[KdfParams] = None) -> DerivedKey:
    """Derive a key with the default configuration, or with explicit params."""
    manager = default_manager() if params is None else KeyManager(params=params)
    return manager.derive_key(password, salt)
