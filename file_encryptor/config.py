"""
Configuration constants for file-encryptor.

Container layout (version 1):
- Magic: 4 bytes (b'ENCR')
- Version: 1 byte
- Salt: 32 bytes (random, for Argon2id key derivation)
- Nonce: 12 bytes (random, for AES-256-GCM)
- Ciphertext + GCM tag: variable (tag is the trailing 16 bytes)
"""
from dataclasses import dataclass, field


@dataclass(frozen=True)
class KdfParams:
    """Argon2id parameters. Fixed, since they are not stored in the container."""
    memory_cost: int = 64 * 1024  # KiB (64 MB)
    time_cost: int = 3  # Number of Argon2id iterations
    parallelism: int = 4  # Lanes
    key_length: int = 32  # Bytes (AES-256)


@dataclass(frozen=True)
class EncryptorConfig:
    """Configuration constants for the container format, directory mapping and logging."""
    MAGIC: bytes = b'ENCR'  # 4-byte format tag
    VERSION: int = 1  # Current container version
    VERSION_LENGTH: int = 1
    SALT_LENGTH: int = 32  # Bytes for random salt used in Argon2id
    NONCE_LENGTH: int = 12  # Bytes for AES-256-GCM nonce
    TAG_LENGTH: int = 16  # Bytes for the GCM authentication tag
    HEADER_LENGTH: int = 4 + 1 + 32 + 12  # magic + version + salt + nonce = 49 bytes
    MIN_CONTAINER_LENGTH: int = 4 + 1 + 32 + 12 + 16  # header + tag of an empty plaintext
    ENCRYPTED_SUFFIX: str = '.encrypted'  # Appended to encrypted file and root names
    DECRYPTED_SUFFIX: str = '.decrypted'  # Appended to decrypted files lacking ENCRYPTED_SUFFIX
    DECRYPTED_DIR_SUFFIX: str = '_decrypted'  # Appended to decrypted roots lacking ENCRYPTED_SUFFIX
    MAX_PASSWORD_LENGTH: int = 4096  # Recommended max password length (characters)
    LOG_FILE: str = 'file_encryptor.log'
    LOG_MAX_SIZE: int = 10 * 1024 * 1024  # Max log file size (10 MB)
    LOG_BACKUP_COUNT: int = 3  # Number of backup log files
    KDF: KdfParams = field(default_factory=KdfParams)


DEFAULT_CONFIG = EncryptorConfig()
