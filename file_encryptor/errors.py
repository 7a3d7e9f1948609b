"""Exception taxonomy shared by the single-file and directory pipelines."""
import enum


class ErrorKind(enum.Enum):
    FORMAT = 'format'
    AUTHENTICATION = 'authentication'
    KEY_DERIVATION = 'key_derivation'
    IO = 'io'


class EncryptorError(Exception):
    """Base class for every error raised by file_encryptor."""
    kind: ErrorKind = ErrorKind.IO


class FormatError(EncryptorError, ValueError):
    """The buffer is not a container this program can read."""
    kind = ErrorKind.FORMAT


class BadMagicError(FormatError):
    pass


class UnsupportedVersionError(FormatError):
    def __init__(self, version: int):
        super().__init__(f"Unsupported container version: {version}")
        self.version = version


class TruncatedError(FormatError):
    pass


class AuthenticationError(EncryptorError):
    """
    Tag verification failed.

    Wrong password and corrupted or tampered data share this single error on purpose.
    """
    kind = ErrorKind.AUTHENTICATION
    MESSAGE = "Wrong password or corrupted file"

    def __init__(self, message: str = MESSAGE):
        super().__init__(message)


class KeyDerivationError(EncryptorError):
    """Invalid derivation parameters or unusable key material. A programming fault."""
    kind = ErrorKind.KEY_DERIVATION


class EncryptorIOError(EncryptorError, OSError):
    """Reading or writing a file failed."""
    kind = ErrorKind.IO


def error_kind(exc: BaseException) -> ErrorKind:
    """Classify any exception raised while processing a file."""
    if isinstance(exc, EncryptorError):
        return exc.kind
    return ErrorKind.IO
