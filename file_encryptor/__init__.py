"""
file-encryptor - password-based file and directory encryption.

Containers are AES-256-GCM encrypted with an Argon2id-derived key and carry
everything needed to decrypt them except the password.
"""
__version__ = "1.0.0"

from .directory import DirectoryReport, FileFailure, decrypt_dir, encrypt_dir
from .errors import (
    AuthenticationError,
    BadMagicError,
    EncryptorError,
    EncryptorIOError,
    ErrorKind,
    FormatError,
    KeyDerivationError,
    TruncatedError,
    UnsupportedVersionError,
)
from .files import decrypt_file, encrypt_file
from .pipeline import decrypt, encrypt

__all__ = [
    "encrypt", "decrypt", "encrypt_dir", "decrypt_dir", "encrypt_file", "decrypt_file",
    "DirectoryReport", "FileFailure", "ErrorKind", "EncryptorError", "FormatError",
    "BadMagicError", "UnsupportedVersionError", "TruncatedError", "AuthenticationError",
    "KeyDerivationError", "EncryptorIOError",
]
