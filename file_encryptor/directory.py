"""
Directory Pipeline.

Walks a directory tree and encrypts or decrypts every regular file into a
mirror tree under the destination root, with a single key derivation per
operation:

- encrypt_dir generates one salt, derives one key, and seals each file with
  its own fresh nonce. Every container in the tree carries the same salt.
- decrypt_dir derives the key from the first container's salt and reuses it
  for every file carrying that salt.

Per-file failures are recorded in a DirectoryReport and never stop the walk.
Only a failure to derive the shared key escapes, before any file is written.
"""
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from . import container
from .config import DEFAULT_CONFIG, EncryptorConfig, KdfParams
from .errors import EncryptorError, EncryptorIOError, ErrorKind, KeyDerivationError, error_kind
from .fs import LocalFileSystem, PathLike, default_decrypt_dir_output, default_encrypt_output, map_path
from .keys import DerivedKey, KeyManager, Password
from .pipeline import FilePipeline

logger = logging.getLogger(__name__)

ENCRYPT = 'encrypt'
DECRYPT = 'decrypt'


@dataclass(frozen=True)
class FileFailure:
    path: Path  # Relative to the source root
    kind: ErrorKind
    message: str


@dataclass
class DirectoryReport:
    """Outcome of a directory operation. Partial success is a valid final state."""
    operation: str
    source_root: Path
    dest_root: Path
    succeeded: List[Path] = field(default_factory=list)
    failed: List[FileFailure] = field(default_factory=list)
    outputs: Dict[Path, Path] = field(default_factory=dict)
    cancelled: bool = False
    elapsed: float = 0.0

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    @property
    def ok(self) -> bool:
        return not self.failed and not self.cancelled

    @property
    def failed_paths(self) -> List[Path]:
        return [failure.path for failure in self.failed]

    def failure_for(self, path: PathLike) -> Optional[FileFailure]:
        path = Path(path)
        for failure in self.failed:
            if failure.path == path:
                return failure
        return None

    def summary(self) -> str:
        text = (
            f"{self.operation} {self.source_root} -> {self.dest_root}: "
            f"{len(self.succeeded)} succeeded, {len(self.failed)} failed in {self.elapsed:.2f}s"
        )
        if self.cancelled:
            text += " (cancelled)"
        return text


class _SeparateKeyError(KeyDerivationError):
    """Derivation failed for a salt other than the shared one; only that file is affected."""


class _KeyCache:
    """Keys for a decrypt operation, one per distinct salt, wiped together."""
    def __init__(self, key_manager: KeyManager, password: Password):
        self.key_manager = key_manager
        self.password = password
        self.keys: Dict[bytes, DerivedKey] = {}
        self.shared_salt: Optional[bytes] = None
        self._lock = threading.Lock()

    def get(self, salt: bytes) -> DerivedKey:
        """
        Return the key for salt, deriving it on first use.

        Raises:
            KeyDerivationError: The shared key cannot be derived (fatal for the operation).
            _SeparateKeyError: A key for a non-shared salt cannot be derived (fatal for that file only).
        """
        with self._lock:
            key = self.keys.get(salt)
            if key is not None:
                return key
            if self.shared_salt is None:
                self.shared_salt = salt
                logger.info(f"Deriving shared key from salt {salt.hex()[:16]}...")
                key = self.key_manager.derive_key(self.password, salt)
            else:
                logger.warning(f"Container salt {salt.hex()[:16]}... differs from the shared salt, deriving a separate key")
                try:
                    key = self.key_manager.derive_key(self.password, salt)
                except KeyDerivationError as e:
                    raise _SeparateKeyError(str(e)) from e
            self.keys[salt] = key
            return key

    def wipe(self) -> None:
        with self._lock:
            for key in self.keys.values():
                key.wipe()
            self.keys.clear()


# A unit of work: (absolute source, path relative to the source root, destination)
_Job = Tuple[Path, Path, Path]
_CANCELLED = object()


class DirectoryProcessor:
    """Encrypts and decrypts directory trees with a shared key."""
    def __init__(
        self, config: EncryptorConfig = DEFAULT_CONFIG, params: Optional[KdfParams] = None,
        filesystem: Optional[LocalFileSystem] = None, workers: int = 1,
        should_cancel: Optional[Callable[[], bool]] = None
    ):
        """
        Initialize the directory processor.

        Args:
            config: EncryptorConfig instance with format constants.
            params: Argon2id parameters, defaults to config.KDF.
            filesystem: File access layer, defaults to LocalFileSystem.
            workers: Number of files processed concurrently; 1 keeps walk order.
            should_cancel: Checked between files; returning True stops the walk.

        Raises:
            KeyDerivationError: If the Argon2id parameters are invalid.
        """
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")
        self.config = config
        self.pipeline = FilePipeline(config, params)
        self.key_manager = self.pipeline.key_manager
        self.filesystem = filesystem or LocalFileSystem()
        self.workers = workers
        self.should_cancel = should_cancel or (lambda: False)

    def _prepare(self, source_root: PathLike, dest_root: Optional[PathLike], operation: str) -> DirectoryReport:
        source = Path(source_root)
        if not source.is_dir():
            raise EncryptorIOError(f"{source} is not a directory")
        if dest_root is not None:
            dest = Path(dest_root)
        elif operation == ENCRYPT:
            dest = default_encrypt_output(source, self.config)
        else:
            dest = default_decrypt_dir_output(source, self.config)
        try:
            self.filesystem.make_dirs(dest)
        except OSError as e:
            logger.error(f"Failed to create output directory {dest}: {e}")
            raise EncryptorIOError(f"Error creating output directory {dest}: {e}") from e
        return DirectoryReport(operation, source, dest)

    def _unlisted(self, report: DirectoryReport, error: OSError) -> None:
        """Record a directory the walk could not list, so its files are not silently dropped."""
        directory = Path(error.filename) if error.filename else report.source_root
        try:
            relative = directory.relative_to(report.source_root)
        except ValueError:
            relative = directory
        logger.error(f"Failed to list directory {directory}: {error}")
        report.failed.append(FileFailure(relative, ErrorKind.IO, str(error)))

    def _jobs(self, report: DirectoryReport) -> List[_Job]:
        encrypting = report.operation == ENCRYPT
        jobs = []
        walk = self.filesystem.iter_files(
            report.source_root, exclude=report.dest_root, onerror=lambda e: self._unlisted(report, e)
        )
        for path in walk:
            relative = path.relative_to(report.source_root)
            jobs.append((path, relative, map_path(relative, report.dest_root, encrypting, self.config)))
        return jobs

    def _write(self, target: Path, data: bytes) -> None:
        self.filesystem.make_dirs(target.parent)
        self.filesystem.write_bytes(target, data)

    def _run_one(self, action: Callable[[Path, Path], None], job: _Job, operation: str):
        source, relative, target = job
        if self.should_cancel():
            return _CANCELLED
        try:
            action(source, target)
        except _SeparateKeyError as e:
            logger.error(f"Failed to derive a key for {source}: {e}")
            return FileFailure(relative, ErrorKind.KEY_DERIVATION, str(e))
        except KeyDerivationError:
            raise
        except (EncryptorError, OSError) as e:
            logger.error(f"Failed to {operation} {source}: {e}")
            return FileFailure(relative, error_kind(e), str(e))
        logger.debug(f"{operation.capitalize()}ed {source} to {target}")
        return None

    def _run(self, report: DirectoryReport, jobs: List[_Job], action: Callable[[Path, Path], None]) -> None:
        if self.workers > 1 and len(jobs) > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as executor:
                futures = [executor.submit(self._run_one, action, job, report.operation) for job in jobs]
                outcomes = [future.result() for future in futures]
        else:
            outcomes = []
            for job in jobs:
                outcome = self._run_one(action, job, report.operation)
                outcomes.append(outcome)
                if outcome is _CANCELLED:
                    break
        for (source, relative, target), outcome in zip(jobs, outcomes):
            if outcome is _CANCELLED:
                report.cancelled = True
            elif outcome is None:
                report.succeeded.append(relative)
                report.outputs[relative] = target
            else:
                report.failed.append(outcome)
        if report.cancelled:
            logger.warning(f"{report.operation} of {report.source_root} cancelled")

    def encrypt_dir(self, password: Password, source_root: PathLike, dest_root: Optional[PathLike] = None) -> DirectoryReport:
        """
        Encrypt every regular file under source_root into dest_root.

        Args:
            password: Password for encryption.
            source_root: Directory to encrypt.
            dest_root: Output directory, defaults to <source_root>.encrypted.

        Returns:
            DirectoryReport: Succeeded and failed relative paths.

        Raises:
            KeyDerivationError: If the shared key cannot be derived.
            EncryptorIOError: If source_root is not a directory or dest_root cannot be created.
        """
        start_time = time.time()
        report = self._prepare(source_root, dest_root, ENCRYPT)
        jobs = self._jobs(report)
        logger.info(f"Encrypting {len(jobs)} files from {report.source_root} to {report.dest_root}")
        salt = self.key_manager.generate_salt()
        with self.key_manager.derive_key(password, salt) as key:
            def action(source: Path, target: Path) -> None:
                data = self.filesystem.read_bytes(source)
                self._write(target, self.pipeline.seal_with_key(key, salt, data))

            self._run(report, jobs, action)
        report.elapsed = time.time() - start_time
        logger.info(f"Completed {report.summary()}")
        return report

    def decrypt_dir(self, password: Password, source_root: PathLike, dest_root: Optional[PathLike] = None) -> DirectoryReport:
        """
        Decrypt every container under source_root into dest_root.

        Files that are not containers are reported as FORMAT failures.
        Wrong password and corrupted files are both AUTHENTICATION failures.

        Args:
            password: Password used at encryption time.
            source_root: Directory of containers.
            dest_root: Output directory, defaults to source_root without its
                .encrypted suffix, else <source_root>_decrypted.

        Returns:
            DirectoryReport: Succeeded and failed relative paths. A file whose salt
                differs from the shared salt and whose key cannot be derived is
                reported as a KEY_DERIVATION failure.

        Raises:
            KeyDerivationError: If the shared key cannot be derived. Every write
                needs a key, so no file has been written at that point.
            EncryptorIOError: If source_root is not a directory or dest_root cannot be created.
        """
        start_time = time.time()
        report = self._prepare(source_root, dest_root, DECRYPT)
        jobs = self._jobs(report)
        logger.info(f"Decrypting {len(jobs)} files from {report.source_root} to {report.dest_root}")
        keys = _KeyCache(self.key_manager, password)
        try:
            def action(source: Path, target: Path) -> None:
                parsed = container.decode(self.filesystem.read_bytes(source), self.config)
                plaintext = self.pipeline.open_with_key(keys.get(parsed.salt), parsed)
                self._write(target, plaintext)

            self._run(report, jobs, action)
        finally:
            keys.wipe()
        report.elapsed = time.time() - start_time
        logger.info(f"Completed {report.summary()}")
        return report


def encrypt_dir(password: Password, source_root: PathLike, dest_root: Optional[PathLike] = None) -> DirectoryReport:
    """Encrypt a directory tree with the default configuration."""
    return DirectoryProcessor().encrypt_dir(password, source_root, dest_root)


def decrypt_dir(password: Password, source_root: PathLike, dest_root: Optional[PathLike] = None) -> DirectoryReport:
    """Decrypt a directory tree with the default configuration."""
    return DirectoryProcessor().decrypt_dir(password, source_root, dest_root)
