"""File-system access and path mapping used by the file and directory pipelines."""
import logging
import os
from pathlib import Path
from typing import Callable, Iterator, Optional, Union

from .config import DEFAULT_CONFIG, EncryptorConfig

logger = logging.getLogger(__name__)

PathLike = Union[str, 'os.PathLike[str]']


class LocalFileSystem:
    """Whole-file reads and writes on the local disk."""

    def read_bytes(self, path: Path) -> bytes:
        with path.open('rb') as f:
            data = f.read()
        logger.debug(f"Read {len(data)} bytes from {path}")
        return data

    def write_bytes(self, path: Path, data: bytes) -> None:
        if path.exists():
            logger.warning(f"Overwriting existing file: {path}")
        with path.open('wb') as f:
            f.write(data)
        logger.debug(f"Wrote {len(data)} bytes to {path}")

    def make_dirs(self, path: Path) -> None:
        path.mkdir(parents=True, exist_ok=True)

    def iter_files(
        self, root: Path, exclude: Optional[Path] = None,
        onerror: Optional[Callable[[OSError], None]] = None
    ) -> Iterator[Path]:
        """
        Yield regular files under root, recursively, in a stable sorted order.

        Symlinks (to files or directories) are never followed or yielded.
        A directory equal to exclude is pruned from the walk.

        Args:
            root: Directory to walk.
            exclude: Directory to skip, typically an output root nested in root.
            onerror: Called with the OSError of every directory that cannot be listed.
        """
        excluded = exclude.resolve() if exclude is not None else None
        for dirpath, dirnames, filenames in os.walk(root, onerror=onerror, followlinks=False):
            current = Path(dirpath)
            kept = []
            for name in sorted(dirnames):
                child = current / name
                if child.is_symlink():
                    logger.debug(f"Skipping symlinked directory: {child}")
                    continue
                if excluded is not None and child.resolve() == excluded:
                    logger.debug(f"Skipping output directory: {child}")
                    continue
                kept.append(name)
            dirnames[:] = kept
            for name in sorted(filenames):
                path = current / name
                if path.is_symlink():
                    logger.debug(f"Skipping symlink: {path}")
                    continue
                if not path.is_file():
                    logger.debug(f"Skipping non-regular file: {path}")
                    continue
                yield path


def encrypted_name(name: str, config: EncryptorConfig = DEFAULT_CONFIG) -> str:
    """a.txt -> a.txt.encrypted"""
    return name + config.ENCRYPTED_SUFFIX


def decrypted_name(name: str, config: EncryptorConfig = DEFAULT_CONFIG) -> str:
    """a.txt.encrypted -> a.txt, anything else gets .decrypted appended."""
    suffix = config.ENCRYPTED_SUFFIX
    if name.endswith(suffix) and len(name) > len(suffix):
        return name[:-len(suffix)]
    return name + config.DECRYPTED_SUFFIX


def map_path(relative: Path, dest_root: Path, encrypting: bool, config: EncryptorConfig = DEFAULT_CONFIG) -> Path:
    """Map a path relative to the source root onto the destination root, renaming the file."""
    rename = encrypted_name if encrypting else decrypted_name
    return dest_root / relative.parent / rename(relative.name, config)


def _named(source: Path) -> Path:
    return source if source.name else source.absolute()


def default_encrypt_output(source: Path, config: EncryptorConfig = DEFAULT_CONFIG) -> Path:
    """Output path for a file or directory when none is given: <source>.encrypted"""
    source = _named(source)
    return source.with_name(encrypted_name(source.name, config))


def default_decrypt_output(source: Path, config: EncryptorConfig = DEFAULT_CONFIG) -> Path:
    """Output path for a decrypted file: suffix stripped, else .decrypted appended."""
    source = _named(source)
    return source.with_name(decrypted_name(source.name, config))


def default_decrypt_dir_output(source: Path, config: EncryptorConfig = DEFAULT_CONFIG) -> Path:
    """Output root for a decrypted directory: suffix stripped, else _decrypted appended."""
    source = _named(source)
    suffix = config.ENCRYPTED_SUFFIX
    name = source.name
    if name.endswith(suffix) and len(name) > len(suffix):
        return source.with_name(name[:-len(suffix)])
    return source.with_name(name + config.DECRYPTED_DIR_SUFFIX)
