"""Path-based helpers around the Single-File Pipeline. I/O errors here are fatal."""
import logging
from pathlib import Path
from typing import Optional

from .config import DEFAULT_CONFIG, EncryptorConfig, KdfParams
from .errors import EncryptorIOError
from .fs import LocalFileSystem, PathLike, default_decrypt_output, default_encrypt_output
from .keys import Password
from .pipeline import FilePipeline

logger = logging.getLogger(__name__)


class FileProcessor:
    """Reads a file, runs it through the pipeline and writes the result."""
    def __init__(
        self, config: EncryptorConfig = DEFAULT_CONFIG, params: Optional[KdfParams] = None,
        filesystem: Optional[LocalFileSystem] = None
    ):
        self.config = config
        self.pipeline = FilePipeline(config, params)
        self.filesystem = filesystem or LocalFileSystem()

    def _read(self, path: Path) -> bytes:
        try:
            return self.filesystem.read_bytes(path)
        except OSError as e:
            logger.error(f"Failed to read file {path}: {e}")
            raise EncryptorIOError(f"Error reading file {path}: {e}") from e

    def _write(self, path: Path, data: bytes) -> None:
        try:
            self.filesystem.make_dirs(path.parent)
            self.filesystem.write_bytes(path, data)
        except OSError as e:
            logger.error(f"Failed to write file {path}: {e}")
            raise EncryptorIOError(f"Error writing file {path}: {e}") from e

    def encrypt_file(self, password: Password, input_path: PathLike, output_path: Optional[PathLike] = None) -> Path:
        """
        Encrypt one file.

        Args:
            password: Password for encryption.
            input_path: File to encrypt.
            output_path: Destination, defaults to <input>.encrypted.

        Returns:
            Path: Where the container was written.
        """
        source = Path(input_path)
        target = Path(output_path) if output_path is not None else default_encrypt_output(source, self.config)
        logger.info(f"Starting encryption of {source}")
        data = self.pipeline.encrypt(password, self._read(source))
        self._write(target, data)
        logger.info(f"Encrypted {source} to {target}")
        return target

    def decrypt_file(self, password: Password, input_path: PathLike, output_path: Optional[PathLike] = None) -> Path:
        """
        Decrypt one container file.

        Nothing is written when the container is invalid or authentication fails.

        Returns:
            Path: Where the plaintext was written.
        """
        source = Path(input_path)
        target = Path(output_path) if output_path is not None else default_decrypt_output(source, self.config)
        logger.info(f"Starting decryption of {source}")
        data = self.pipeline.decrypt(password, self._read(source))
        self._write(target, data)
        logger.info(f"Decrypted {source} to {target}")
        return target


def encrypt_file(password: Password, input_path: PathLike, output_path: Optional[PathLike] = None) -> Path:
    return FileProcessor().encrypt_file(password, input_path, output_path)


def decrypt_file(password: Password, input_path: PathLike, output_path: Optional[PathLike] = None) -> Path:
    return FileProcessor().decrypt_file(password, input_path, output_path)
