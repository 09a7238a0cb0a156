import base64
import dataclasses
import json
import os
import tempfile
import unittest
import warnings

import configs
from config_handler import ConfigHandler
from key_backup import (KeyBackupFile, derive_key_from_password, wrap_keypair, unwrap_keypair,
                        export_keys_to_file, import_keys_from_file)
from shared import InitializationError, FormatError, CryptoError

# Keep PBKDF2 cheap, real exports use configs.PBKDF2_ITERATIONS
TEST_ITERATIONS = 1000
KEYPAIR = json.dumps({
    "publicKey":  {"kty": "EC", "crv": "P-256", "x": "f83OJ3D2xF1Bg8vub9tLe1gHMzV76e8Tus9uPHvRVEU",
                   "y": "x_FEzRu9m36HLN_tue659LNpXW6pCyStikYjKIWI5a0"},
    "privateKey": {"kty": "EC", "crv": "P-256", "d": "jpsQnnGQmL-YBIffH1136cspYG6-0iY7X1fCE9-E9LI"},
}).encode("utf-8")


def quiet_unwrap(backup, password):
    """unwrap_keypair, ignoring the low iteration count warning the test backups trigger."""
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", RuntimeWarning)
        return unwrap_keypair(backup, password)


class KeyWrapTests(unittest.TestCase):
    def setUp(self):
        self.backup = wrap_keypair(KEYPAIR, "correct horse", iterations=TEST_ITERATIONS)

    def test_round_trip(self):
        self.assertEqual(quiet_unwrap(self.backup, "correct horse"), KEYPAIR)

    def test_file_layout(self):
        lines = self.backup.split("\n")
        self.assertEqual(len(lines), 5)
        self.assertEqual(lines[0], configs.BACKUP_FILE_HEADER)
        self.assertEqual(lines[1], str(TEST_ITERATIONS))
        self.assertEqual(len(base64.b64decode(lines[2])), configs.PBKDF2_SALT_LENGTH)
        self.assertEqual(len(base64.b64decode(lines[3])), 12)
        self.assertEqual(len(base64.b64decode(lines[4])), len(KEYPAIR) + 16)

    def test_fresh_salt_and_iv(self):
        other = KeyBackupFile.parse(wrap_keypair(KEYPAIR, "correct horse", iterations=TEST_ITERATIONS))
        parsed = KeyBackupFile.parse(self.backup)
        self.assertNotEqual(parsed.salt, other.salt)
        self.assertNotEqual(parsed.iv, other.iv)

    def test_iteration_count_read_from_file(self):
        backup = wrap_keypair(KEYPAIR, "pw", iterations=1234)
        parsed = KeyBackupFile.parse(backup)
        self.assertEqual(parsed.iterations, 1234)
        self.assertEqual(quiet_unwrap(parsed, "pw"), KEYPAIR)

    def test_wrong_password(self):
        with self.assertRaises(CryptoError) as context:
            quiet_unwrap(self.backup, "wrong horse")
        self.assertIn("Invalid password or corrupted file", str(context.exception))

    def test_corrupted_file_same_error(self):
        lines = self.backup.split("\n")
        ciphertext = bytearray(base64.b64decode(lines[4]))
        ciphertext[-1] ^= 0x01
        lines[4] = base64.b64encode(bytes(ciphertext)).decode()
        with self.assertRaises(CryptoError) as context:
            quiet_unwrap("\n".join(lines), "correct horse")
        self.assertIn("Invalid password or corrupted file", str(context.exception))

        lines = self.backup.split("\n")
        lines[2] = base64.b64encode(os.urandom(16)).decode()
        with self.assertRaises(CryptoError):
            quiet_unwrap("\n".join(lines), "correct horse")

    def test_low_iteration_count_warns(self):
        with self.assertWarns(RuntimeWarning):
            unwrap_keypair(self.backup, "correct horse")

    def test_excessive_iteration_count_rejected(self):
        lines = self.backup.split("\n")
        lines[1] = str(configs.MAX_PBKDF2_ITERATIONS + 1)
        with self.assertRaises(FormatError):
            unwrap_keypair("\n".join(lines), "correct horse")

    def test_non_positive_iterations_in_parsed_backup(self):
        parsed = KeyBackupFile.parse(self.backup)
        for count in (0, -1):
            backup = dataclasses.replace(parsed, iterations=count)
            with self.assertRaises(FormatError, msg=count):
                unwrap_keypair(backup, "correct horse")

    def test_line_ending_tolerance(self):
        self.assertEqual(quiet_unwrap(self.backup + "\n", "correct horse"), KEYPAIR)
        self.assertEqual(quiet_unwrap(self.backup.replace("\n", "\r\n") + "\r\n", "correct horse"), KEYPAIR)

    def test_header_not_checked(self):
        lines = self.backup.split("\n")
        lines[0] = "Some older header"
        self.assertEqual(quiet_unwrap("\n".join(lines), "correct horse"), KEYPAIR)

    def test_malformed_files(self):
        lines = self.backup.split("\n")
        bad_files = [
            "",
            "\n".join(lines[:4]),
            "\n".join(lines + ["extra"]),
            "\n".join([lines[0], "many", *lines[2:]]),
            "\n".join([lines[0], "0", *lines[2:]]),
            "\n".join([lines[0], "-5", *lines[2:]]),
            "\n".join([*lines[:3], "not base64!", lines[4]]),
        ]
        for bad in bad_files:
            with self.assertRaises(FormatError, msg=repr(bad)):
                unwrap_keypair(bad, "correct horse")

    def test_derivation_is_deterministic(self):
        salt = os.urandom(16)
        iv = os.urandom(12)
        ciphertext = derive_key_from_password("pw", salt, 500).encrypt(iv, b"payload", None)
        self.assertEqual(derive_key_from_password("pw", salt, 500).decrypt(iv, ciphertext, None), b"payload")
        with self.assertRaises(ValueError):
            derive_key_from_password("pw", salt, 0)

    def test_serialise_parse_round_trip(self):
        parsed = KeyBackupFile.parse(self.backup)
        self.assertEqual(parsed.serialise(), self.backup)


class KeyFileTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)

    def _config(self, **values) -> ConfigHandler:
        path = os.path.join(self.tmp.name, "config.json")
        with open(path, "w", encoding="utf-8") as f:
            json.dump(values, f)
        return ConfigHandler(path)

    def test_export_import(self):
        path = export_keys_to_file(KEYPAIR, "pw", "+15550100", directory=self.tmp.name,
                                   iterations=TEST_ITERATIONS)
        self.assertEqual(os.path.dirname(path), self.tmp.name)
        name = os.path.basename(path)
        self.assertTrue(name.startswith("+15550100-keys-"))
        self.assertTrue(name.endswith(".txt"))
        self.assertTrue(name[len("+15550100-keys-"):-len(".txt")].isdigit())

        with warnings.catch_warnings():
            warnings.simplefilter("ignore", RuntimeWarning)
            self.assertEqual(import_keys_from_file(path, "pw"), KEYPAIR)
            with self.assertRaises(CryptoError):
                import_keys_from_file(path, "not pw")

    def test_export_uses_configured_directory(self):
        export_dir = os.path.join(self.tmp.name, "exports")
        os.mkdir(export_dir)
        config = self._config(export_directory=export_dir, timestamp_backup_names=False)

        path = export_keys_to_file(KEYPAIR, "pw", "alice", config=config, iterations=TEST_ITERATIONS)
        self.assertEqual(path, os.path.join(export_dir, "alice-keys.txt"))

        # Exporting again replaces the old file
        export_keys_to_file(b"newer keys", "pw", "alice", config=config, iterations=TEST_ITERATIONS)
        self.assertEqual(os.listdir(export_dir), ["alice-keys.txt"])
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", RuntimeWarning)
            self.assertEqual(import_keys_from_file(path, "pw"), b"newer keys")

    def test_export_without_keys(self):
        with self.assertRaises(InitializationError):
            export_keys_to_file(None, "pw", "alice", directory=self.tmp.name)
        with self.assertRaises(InitializationError):
            export_keys_to_file(b"", "pw", "alice", directory=self.tmp.name)
        self.assertEqual(os.listdir(self.tmp.name), [])


if __name__ == "__main__":
    unittest.main()
