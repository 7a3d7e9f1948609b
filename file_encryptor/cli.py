"""Command-line interface for file-encryptor."""
import argparse
import getpass
import logging
import sys
from importlib import metadata
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

from colorama import Fore, Style, init

from . import __version__, container
from .config import DEFAULT_CONFIG, EncryptorConfig
from .directory import DirectoryProcessor, DirectoryReport
from .errors import AuthenticationError, EncryptorError, FormatError
from .files import FileProcessor
from .keys import wipe_buffer

# Initialize colorama for colored console output
init(autoreset=True)

PROGRAM_NAME = "file-encryptor"

logger = logging.getLogger(__name__)
package_logger = logging.getLogger('file_encryptor')
_log_handler: Optional[RotatingFileHandler] = None


def setup_logging(config: EncryptorConfig, log_file: Optional[str] = None, debug: bool = False) -> None:
    """Attach a rotating file handler to the package logger, replacing a previous one."""
    global _log_handler
    if _log_handler is not None:
        package_logger.removeHandler(_log_handler)
        _log_handler.close()
    _log_handler = RotatingFileHandler(
        log_file or config.LOG_FILE,
        maxBytes=config.LOG_MAX_SIZE,
        backupCount=config.LOG_BACKUP_COUNT
    )
    _log_handler.setFormatter(logging.Formatter('%(asctime)s - %(levelname)s - %(message)s'))
    package_logger.addHandler(_log_handler)
    package_logger.setLevel(logging.DEBUG if debug else logging.INFO)


def _dependency_version(name: str) -> str:
    try:
        return metadata.version(name)
    except metadata.PackageNotFoundError:
        return "unknown"


class EncryptorCLI:
    """Parses arguments, obtains the password and calls the pipelines."""
    def __init__(self, config: EncryptorConfig = DEFAULT_CONFIG):
        self.config = config

    def build_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog=PROGRAM_NAME,
            description=(
                f"{PROGRAM_NAME} v{__version__}: password-based file and directory encryption "
                "using AES-256-GCM with Argon2id key derivation."
            ),
            epilog=(
                "Examples:\n"
                f"  {PROGRAM_NAME} encrypt -i notes.txt\n"
                f"  {PROGRAM_NAME} decrypt -i notes.txt.encrypted --password-file ./pass.txt\n"
                f"  {PROGRAM_NAME} encrypt-dir -i ./photos -o ./photos.encrypted --workers 4\n"
                f"  {PROGRAM_NAME} analyze -i notes.txt.encrypted"
            ),
            formatter_class=argparse.RawDescriptionHelpFormatter
        )
        parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
        subparsers = parser.add_subparsers(dest='command', required=True)
        for name, help_text in (
            ('encrypt', 'Encrypt a file'),
            ('decrypt', 'Decrypt a file'),
            ('encrypt-dir', 'Encrypt all files in a directory (preserves structure)'),
            ('decrypt-dir', 'Decrypt all files in a directory (preserves structure)'),
        ):
            sub = subparsers.add_parser(name, help=help_text)
            sub.add_argument('-i', '--input', required=True, help='Input path')
            sub.add_argument('-o', '--output', help='Output path (optional)')
            sub.add_argument('--password', type=str, help='Password for encryption/decryption')
            sub.add_argument('--password-file', type=str, help='File containing the password (UTF-8)')
            if name.endswith('-dir'):
                sub.add_argument('--workers', type=int, default=1, help='Files processed concurrently')
            self._add_common(sub)
        analyze = subparsers.add_parser('analyze', help='Show the header of an encrypted file')
        analyze.add_argument('-i', '--input', required=True, help='Encrypted file')
        self._add_common(analyze)
        return parser

    @staticmethod
    def _add_common(parser: argparse.ArgumentParser) -> None:
        parser.add_argument('--verbose', action='store_true', help='Enable verbose console output')
        parser.add_argument('--debug', action='store_true', help='Log debug details')
        parser.add_argument('--log-file', type=str, help=f'Log file (default: {DEFAULT_CONFIG.LOG_FILE})')

    def _read_password_from_file(self, file_path: str) -> str:
        """
        Read a password from a file, stripping whitespace.

        Raises:
            ValueError: If the file cannot be read.
        """
        path = Path(file_path)
        try:
            with path.open('r', encoding='utf-8') as f:
                password = f.read().strip()
            logger.debug(f"Read password from file: {path} (length: {len(password)} characters)")
            return password
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Failed to read password from {path}: {e}")
            raise ValueError(f"Error reading password file {path}: {e}") from e

    def _obtain_password(self, args: argparse.Namespace) -> bytearray:
        if args.password and args.password_file:
            raise ValueError("Specify either --password or --password-file, not both")
        password = (
            args.password or
            (self._read_password_from_file(args.password_file) if args.password_file else None) or
            getpass.getpass(f"{Fore.CYAN}Enter password: {Style.RESET_ALL}")
        )
        if not password:
            raise ValueError("Password cannot be empty")
        if len(password) > self.config.MAX_PASSWORD_LENGTH:
            warning = (
                f"Password length ({len(password)} characters) exceeds recommended maximum "
                f"({self.config.MAX_PASSWORD_LENGTH} characters)."
            )
            logger.warning(warning)
            print(f"{Fore.YELLOW}Warning: {warning}{Style.RESET_ALL}")
        return bytearray(password.encode('utf-8'))

    def _print_report(self, report: DirectoryReport, verbose: bool) -> None:
        if verbose:
            for path in report.succeeded:
                print(f"{Fore.CYAN}  ok      {path} -> {report.outputs[path]}{Style.RESET_ALL}")
        for failure in report.failed:
            print(f"{Fore.RED}  failed  {failure.path} [{failure.kind.value}]: {failure.message}{Style.RESET_ALL}")
        color = Fore.GREEN if report.ok else Fore.YELLOW
        print(f"{color}{report.summary()}{Style.RESET_ALL}")

    def _analyze(self, input_path: str) -> None:
        data = Path(input_path).read_bytes()
        info = container.inspect(data, self.config)
        print(f"{Fore.CYAN}Analysis of {input_path}:{Style.RESET_ALL}")
        print(f"File size: {info.size} bytes")
        print(f"  Offset 0: Magic ({len(info.magic)} bytes): {info.magic.hex()} ({info.magic.decode('ascii', 'replace')})")
        print(f"  Offset {len(info.magic)}: Version: {info.version}")
        print(f"  Offset {info.salt_offset}: Salt ({len(info.salt)} bytes): {info.salt.hex()}")
        print(f"  Offset {info.nonce_offset}: Nonce ({len(info.nonce)} bytes): {info.nonce.hex()}")
        print(f"  Offset {info.payload_offset}: Ciphertext + tag: {info.payload_length} bytes")
        logger.info(f"Analyzed {input_path}: version={info.version}, payload_size={info.payload_length}")

    def run(self, argv: Optional[List[str]] = None) -> int:
        """Parse command-line arguments and execute the program. Returns the exit status."""
        args = self.build_parser().parse_args(argv)
        setup_logging(self.config, args.log_file, args.debug)
        logger.info(
            f"Starting {PROGRAM_NAME} v{__version__}, dependencies: "
            f"cryptography={_dependency_version('cryptography')}, "
            f"argon2-cffi={_dependency_version('argon2-cffi')}, colorama={_dependency_version('colorama')}"
        )

        if args.command == 'analyze':
            try:
                self._analyze(args.input)
            except (OSError, FormatError) as e:
                logger.error(f"Analysis failed for {args.input}: {e}")
                print(f"{Fore.RED}Error analyzing {args.input}: {e}{Style.RESET_ALL}")
                return 1
            return 0

        try:
            password = self._obtain_password(args)
        except (ValueError, EOFError) as e:
            logger.error(f"Failed to obtain password: {e}")
            print(f"{Fore.RED}Error obtaining password: {e}{Style.RESET_ALL}")
            return 1

        try:
            if args.command in ('encrypt', 'decrypt'):
                processor = FileProcessor(self.config)
                if args.command == 'encrypt':
                    target = processor.encrypt_file(password, args.input, args.output)
                else:
                    target = processor.decrypt_file(password, args.input, args.output)
                print(f"{Fore.GREEN}File {args.command}ed successfully: {target}{Style.RESET_ALL}")
                return 0
            processor = DirectoryProcessor(self.config, workers=args.workers)
            if args.command == 'encrypt-dir':
                report = processor.encrypt_dir(password, args.input, args.output)
            else:
                report = processor.decrypt_dir(password, args.input, args.output)
            self._print_report(report, args.verbose)
            return 0 if report.ok else 1
        except FormatError as e:
            print(f"{Fore.RED}Error: {args.input} is not a valid encrypted file: {e}{Style.RESET_ALL}")
        except AuthenticationError as e:
            print(f"{Fore.RED}Error: {e}{Style.RESET_ALL}")
        except (EncryptorError, ValueError) as e:
            print(f"{Fore.RED}Error processing {args.input}: {e}{Style.RESET_ALL}")
        finally:
            wipe_buffer(password)
        return 1


def main() -> None:
    sys.exit(EncryptorCLI().run())
