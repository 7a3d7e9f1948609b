"""
directory_test.py - Test suite for the directory pipeline.

Overview:
- Structure preservation and byte-identical round trips of nested trees.
- Shared salt with per-file nonces and a single key derivation per operation.
- Partial failure isolation for unreadable sources and unwritable targets.
- Wrong password, non-container files, symlinks, nested output roots.
- Unlistable directories, per-file key derivation failures, key wiping.
- Cancellation and concurrent workers.

Usage:
    python -m unittest directory_test
    pytest directory_test.py
"""
import os
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from file_encryptor import container, decrypt_dir, encrypt_dir
from file_encryptor.config import KdfParams
from file_encryptor.directory import DirectoryProcessor
from file_encryptor.errors import EncryptorIOError, ErrorKind, KeyDerivationError
from file_encryptor.fs import (
    LocalFileSystem,
    decrypted_name,
    default_decrypt_dir_output,
    default_encrypt_output,
    encrypted_name,
)
from file_encryptor.keys import KeyManager

PASSWORD = "correct horse"
WRONG_PASSWORD = "wrong horse"

TREE = {
    "top.txt": b"top level file",
    "a/b/c.txt": b"This is demoFile that should be encrypted.",
    "a/b/empty": b"",
    "a/notes.md": "Chinese content 中文".encode('utf-8'),
    "z/data.bin": bytes(range(256)) * 40,
}


class UnreadableFileSystem(LocalFileSystem):
    """Refuses to read one file name."""
    def __init__(self, name: str):
        self.name = name

    def read_bytes(self, path: Path) -> bytes:
        if path.name == self.name:
            raise PermissionError(f"[Errno 13] Permission denied: '{path}'")
        return super().read_bytes(path)


class BrokenWriteFileSystem(LocalFileSystem):
    """Fails every write with an error the pipeline does not handle."""
    def write_bytes(self, path: Path, data: bytes) -> None:
        raise RuntimeError(f"disk vanished while writing {path}")


class DirectoryTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.source = self.root / "data"
        for relative, content in TREE.items():
            path = self.source / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)

    def tearDown(self):
        self._tmp.cleanup()

    def assert_tree_equal(self, restored: Path, expected=TREE):
        files = sorted(p.relative_to(restored).as_posix() for p in restored.rglob('*') if p.is_file())
        self.assertEqual(files, sorted(expected))
        for relative, content in expected.items():
            self.assertEqual((restored / relative).read_bytes(), content, relative)


class RoundTripTests(DirectoryTestCase):
    def test_structure_preserved(self):
        encrypted = self.root / "enc"
        report = encrypt_dir(PASSWORD, self.source, encrypted)
        self.assertTrue(report.ok)
        self.assertEqual(report.total, len(TREE))
        self.assertTrue((encrypted / "a" / "b" / "c.txt.encrypted").is_file())
        self.assertEqual(report.outputs[Path("a/b/c.txt")], encrypted / "a" / "b" / "c.txt.encrypted")

        restored = self.root / "restored"
        report = decrypt_dir(PASSWORD, encrypted, restored)
        self.assertTrue(report.ok)
        self.assertIn(Path("a/b/c.txt.encrypted"), report.succeeded)
        self.assert_tree_equal(restored)

    def test_default_destinations(self):
        report = encrypt_dir(PASSWORD, self.source)
        self.assertEqual(report.dest_root, self.root / "data.encrypted")
        shutil.rmtree(self.source)
        report = decrypt_dir(PASSWORD, self.root / "data.encrypted")
        self.assertEqual(report.dest_root, self.source)
        self.assert_tree_equal(self.source)

    def test_shared_salt_unique_nonces(self):
        encrypted = self.root / "enc"
        encrypt_dir(PASSWORD, self.source, encrypted)
        parsed = [container.decode(p.read_bytes()) for p in encrypted.rglob('*') if p.is_file()]
        self.assertEqual(len(parsed), len(TREE))
        self.assertEqual(len({c.salt for c in parsed}), 1)
        self.assertEqual(len({c.nonce for c in parsed}), len(TREE))

    def test_single_key_derivation_per_operation(self):
        original = KeyManager.derive_key
        with mock.patch.object(KeyManager, 'derive_key', autospec=True, side_effect=original) as derive:
            encrypt_dir(PASSWORD, self.source, self.root / "enc")
            self.assertEqual(derive.call_count, 1)
            derive.reset_mock()
            decrypt_dir(PASSWORD, self.root / "enc", self.root / "restored")
            self.assertEqual(derive.call_count, 1)

    def test_foreign_salt_gets_its_own_key(self):
        encrypt_dir(PASSWORD, self.source, self.root / "enc")
        other = self.root / "other"
        other.mkdir()
        (other / "extra.txt").write_bytes(b"encrypted separately")
        encrypt_dir(PASSWORD, other, self.root / "other.enc")
        shutil.copy(self.root / "other.enc" / "extra.txt.encrypted", self.root / "enc" / "extra.txt.encrypted")

        report = decrypt_dir(PASSWORD, self.root / "enc", self.root / "restored")
        self.assertTrue(report.ok)
        self.assert_tree_equal(self.root / "restored", dict(TREE, **{"extra.txt": b"encrypted separately"}))

    def test_empty_directory(self):
        empty = self.root / "empty"
        empty.mkdir()
        report = encrypt_dir(PASSWORD, empty)
        self.assertTrue(report.ok)
        self.assertEqual(report.total, 0)
        self.assertTrue((self.root / "empty.encrypted").is_dir())


class FailureTests(DirectoryTestCase):
    def test_unreadable_file_isolated(self):
        processor = DirectoryProcessor(filesystem=UnreadableFileSystem("notes.md"))
        report = processor.encrypt_dir(PASSWORD, self.source, self.root / "enc")
        self.assertFalse(report.ok)
        self.assertEqual(report.failed_paths, [Path("a/notes.md")])
        self.assertEqual(report.failure_for("a/notes.md").kind, ErrorKind.IO)
        self.assertEqual(len(report.succeeded), len(TREE) - 1)
        self.assertFalse((self.root / "enc" / "a" / "notes.md.encrypted").exists())

        restored = self.root / "restored"
        report = decrypt_dir(PASSWORD, self.root / "enc", restored)
        self.assertTrue(report.ok)
        expected = {k: v for k, v in TREE.items() if k != "a/notes.md"}
        self.assert_tree_equal(restored, expected)

    def test_unwritable_target_isolated(self):
        encrypted = self.root / "enc"
        (encrypted / "top.txt.encrypted").mkdir(parents=True)
        report = encrypt_dir(PASSWORD, self.source, encrypted)
        self.assertEqual(report.failed_paths, [Path("top.txt")])
        self.assertEqual(report.failed[0].kind, ErrorKind.IO)
        self.assertEqual(len(report.succeeded), len(TREE) - 1)

    def test_wrong_password(self):
        encrypt_dir(PASSWORD, self.source, self.root / "enc")
        restored = self.root / "restored"
        report = decrypt_dir(WRONG_PASSWORD, self.root / "enc", restored)
        self.assertEqual(len(report.failed), len(TREE))
        self.assertEqual({f.kind for f in report.failed}, {ErrorKind.AUTHENTICATION})
        self.assertEqual([p for p in restored.rglob('*') if p.is_file()], [])

    def test_corrupted_and_foreign_files(self):
        encrypted = self.root / "enc"
        encrypt_dir(PASSWORD, self.source, encrypted)
        target = encrypted / "top.txt.encrypted"
        data = bytearray(target.read_bytes())
        data[-1] ^= 0x01
        target.write_bytes(bytes(data))
        (encrypted / "README").write_bytes(b"plain text, not a container")

        report = decrypt_dir(PASSWORD, encrypted, self.root / "restored")
        self.assertEqual(report.failure_for("top.txt.encrypted").kind, ErrorKind.AUTHENTICATION)
        self.assertEqual(report.failure_for("README").kind, ErrorKind.FORMAT)
        self.assertEqual(len(report.succeeded), len(TREE) - 1)

    def test_missing_source_is_fatal(self):
        with self.assertRaises(EncryptorIOError):
            encrypt_dir(PASSWORD, self.root / "missing")

    def test_invalid_params_fail_before_any_file(self):
        with self.assertRaises(KeyDerivationError):
            DirectoryProcessor(params=KdfParams(time_cost=0))
        self.assertFalse((self.root / "data.encrypted").exists())


class WalkTests(DirectoryTestCase):
    @unittest.skipUnless(hasattr(os, 'symlink'), "symlinks not supported")
    def test_symlinks_skipped(self):
        outside = self.root / "outside.txt"
        outside.write_bytes(b"outside")
        try:
            (self.source / "link.txt").symlink_to(outside)
            (self.source / "linkdir").symlink_to(self.source / "a", target_is_directory=True)
        except OSError:
            self.skipTest("cannot create symlinks")
        report = encrypt_dir(PASSWORD, self.source, self.root / "enc")
        self.assertEqual(sorted(p.as_posix() for p in report.succeeded), sorted(TREE))

    def test_nested_output_excluded_from_walk(self):
        nested = self.source / "out"
        report = encrypt_dir(PASSWORD, self.source, nested)
        self.assertEqual(report.total, len(TREE))
        report = encrypt_dir(PASSWORD, self.source, nested)
        self.assertEqual(report.total, len(TREE))

    def test_walk_order_is_sorted(self):
        files = list(LocalFileSystem().iter_files(self.source))
        relative = [p.relative_to(self.source).as_posix() for p in files]
        self.assertEqual(relative, ["top.txt", "a/notes.md", "a/b/c.txt", "a/b/empty", "z/data.bin"])

    def test_name_mapping(self):
        self.assertEqual(encrypted_name("c.txt"), "c.txt.encrypted")
        self.assertEqual(encrypted_name("Makefile"), "Makefile.encrypted")
        self.assertEqual(decrypted_name("c.txt.encrypted"), "c.txt")
        self.assertEqual(decrypted_name("notes"), "notes.decrypted")
        self.assertEqual(decrypted_name(".encrypted"), ".encrypted.decrypted")
        self.assertEqual(default_encrypt_output(Path("/x/photos")), Path("/x/photos.encrypted"))
        self.assertEqual(default_decrypt_dir_output(Path("/x/photos.encrypted")), Path("/x/photos"))
        self.assertEqual(default_decrypt_dir_output(Path("/x/photos")), Path("/x/photos_decrypted"))


class ExecutionTests(DirectoryTestCase):
    def test_cancellation_between_files(self):
        calls = []

        def should_cancel():
            calls.append(None)
            return len(calls) > 2

        processor = DirectoryProcessor(should_cancel=should_cancel)
        report = processor.encrypt_dir(PASSWORD, self.source, self.root / "enc")
        self.assertTrue(report.cancelled)
        self.assertFalse(report.ok)
        self.assertEqual([p.as_posix() for p in report.succeeded], ["top.txt", "a/notes.md"])
        self.assertIn("cancelled", report.summary())

    def test_parallel_workers(self):
        processor = DirectoryProcessor(workers=4)
        report = processor.encrypt_dir(PASSWORD, self.source, self.root / "enc")
        self.assertTrue(report.ok)
        self.assertEqual([p.as_posix() for p in report.succeeded], ["top.txt", "a/notes.md", "a/b/c.txt", "a/b/empty", "z/data.bin"])
        report = processor.decrypt_dir(PASSWORD, self.root / "enc", self.root / "restored")
        self.assertTrue(report.ok)
        self.assert_tree_equal(self.root / "restored")

    def test_invalid_worker_count(self):
        with self.assertRaises(ValueError):
            DirectoryProcessor(workers=0)


class WalkErrorTests(DirectoryTestCase):
    def scandir_refusing(self, refused: Path):
        real_scandir = os.scandir

        def scandir(path='.'):
            if Path(path) == refused:
                raise PermissionError(13, "Permission denied", str(path))
            return real_scandir(path)
        return mock.patch('os.scandir', side_effect=scandir)

    def test_unlistable_subdirectory_reported(self):
        with self.scandir_refusing(self.source / "z"):
            report = encrypt_dir(PASSWORD, self.source, self.root / "enc")
        self.assertFalse(report.ok)
        self.assertEqual(report.failed_paths, [Path("z")])
        self.assertEqual(report.failure_for("z").kind, ErrorKind.IO)
        self.assertEqual(len(report.succeeded), len(TREE) - 1)
        self.assertNotIn(Path("z/data.bin"), report.succeeded)

    def test_unlistable_root_reported(self):
        with self.scandir_refusing(self.source):
            report = encrypt_dir(PASSWORD, self.source, self.root / "enc")
        self.assertFalse(report.ok)
        self.assertEqual(report.failed_paths, [Path(".")])
        self.assertEqual(report.succeeded, [])


class KeyLifetimeTests(DirectoryTestCase):
    def spy_on_keys(self):
        """Patch KeyManager.derive_key to remember every key it hands out."""
        keys = []
        original = KeyManager.derive_key

        def derive(manager, password, salt):
            key = original(manager, password, salt)
            keys.append(key)
            return key
        return keys, mock.patch.object(KeyManager, 'derive_key', autospec=True, side_effect=derive)

    def test_keys_wiped_after_success(self):
        keys, spy = self.spy_on_keys()
        with spy:
            encrypt_dir(PASSWORD, self.source, self.root / "enc")
            report = decrypt_dir(PASSWORD, self.root / "enc", self.root / "restored")
        self.assertTrue(report.ok)
        self.assertEqual(len(keys), 2)
        self.assertTrue(all(key.wiped for key in keys))

    def test_keys_wiped_after_all_files_fail(self):
        encrypt_dir(PASSWORD, self.source, self.root / "enc")
        keys, spy = self.spy_on_keys()
        with spy:
            report = decrypt_dir(WRONG_PASSWORD, self.root / "enc", self.root / "restored")
        self.assertEqual(len(report.failed), len(TREE))
        self.assertEqual(len(keys), 1)
        self.assertTrue(keys[0].wiped)

    def test_keys_wiped_when_a_file_job_raises(self):
        encrypt_dir(PASSWORD, self.source, self.root / "enc")
        processor = DirectoryProcessor(filesystem=BrokenWriteFileSystem())
        keys, spy = self.spy_on_keys()
        with spy:
            with self.assertRaises(RuntimeError):
                processor.encrypt_dir(PASSWORD, self.source, self.root / "enc2")
            with self.assertRaises(RuntimeError):
                processor.decrypt_dir(PASSWORD, self.root / "enc", self.root / "restored")
        self.assertEqual(len(keys), 2)
        self.assertTrue(all(key.wiped for key in keys))

    def add_foreign_container(self, encrypted: Path) -> None:
        """Put a container with its own salt next to the shared-salt ones, processed second."""
        other = self.root / "other"
        other.mkdir()
        (other / "extra.txt").write_bytes(b"encrypted separately")
        encrypt_dir(PASSWORD, other, self.root / "other.enc")
        shutil.copy(self.root / "other.enc" / "extra.txt.encrypted", encrypted / "zz_extra.txt.encrypted")

    def test_separate_key_failure_is_per_file(self):
        encrypted = self.root / "enc"
        encrypt_dir(PASSWORD, self.source, encrypted)
        self.add_foreign_container(encrypted)
        original = KeyManager.derive_key
        calls = []

        def derive(manager, password, salt):
            calls.append(salt)
            if len(calls) > 1:
                raise KeyDerivationError("Insufficient memory for key derivation")
            return original(manager, password, salt)

        with mock.patch.object(KeyManager, 'derive_key', autospec=True, side_effect=derive):
            report = decrypt_dir(PASSWORD, encrypted, self.root / "restored")
        self.assertEqual(report.failed_paths, [Path("zz_extra.txt.encrypted")])
        self.assertEqual(report.failed[0].kind, ErrorKind.KEY_DERIVATION)
        self.assertEqual(len(report.succeeded), len(TREE))
        self.assert_tree_equal(self.root / "restored")

    def test_shared_key_failure_is_fatal(self):
        encrypted = self.root / "enc"
        encrypt_dir(PASSWORD, self.source, encrypted)
        restored = self.root / "restored"
        with mock.patch.object(
            KeyManager, 'derive_key', autospec=True,
            side_effect=KeyDerivationError("Insufficient memory for key derivation")
        ):
            with self.assertRaises(KeyDerivationError):
                decrypt_dir(PASSWORD, encrypted, restored)
        self.assertEqual([p for p in restored.rglob('*') if p.is_file()], [])


if __name__ == "__main__":
    unittest.main()
