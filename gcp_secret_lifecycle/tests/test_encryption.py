# -*- coding: utf-8 -*-
"""
Tests for EncryptionGateway and the Secret Manager backed keyring

"""

import logging
import unittest
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest import mock

from google.api_core import exceptions

from gcp_secret_lifecycle import DecryptionError, EncryptionGateway, GCPCachedKeyring, \
    NoActiveKeyVersion, ValidationError


def setup_module():
    logging.basicConfig(level=logging.DEBUG)


class TestEncryptionGateway(unittest.TestCase):

    def setUp(self):
        self.key = EncryptionGateway.generate_key()
        self.gateway = EncryptionGateway([self.key])

    def test_round_trip(self):
        ciphertext = self.gateway.encrypt("top secret stuff")
        self.assertNotIn("top secret stuff", ciphertext)
        self.assertEqual(self.gateway.decrypt(ciphertext), "top secret stuff")

    def test_malformed_ciphertext(self):
        for bad in ["", "not-a-token", None, 42]:
            with self.assertRaises(DecryptionError):
                self.gateway.decrypt(bad)

    def test_wrong_key(self):
        other = EncryptionGateway([EncryptionGateway.generate_key()])
        with self.assertRaises(DecryptionError):
            self.gateway.decrypt(other.encrypt("value"))

    def test_plaintext_never_logged_on_failure(self):
        other = EncryptionGateway([EncryptionGateway.generate_key()])
        ciphertext = other.encrypt("hunter2")
        with self.assertLogs("gcp_secret_lifecycle.encryption", level="DEBUG") as logs:
            with self.assertRaises(DecryptionError):
                self.gateway.decrypt(ciphertext)
        for line in logs.output:
            self.assertNotIn("hunter2", line)
            self.assertNotIn(self.key, line)

    def test_key_rotation_keeps_old_values_readable(self):
        keys = [self.key]
        gateway = EncryptionGateway(lambda: list(keys))
        old = gateway.encrypt("old value")

        new_key = EncryptionGateway.generate_key()
        keys.insert(0, new_key)
        new = gateway.encrypt("new value")

        self.assertEqual(gateway.decrypt(old), "old value")
        self.assertEqual(EncryptionGateway([new_key]).decrypt(new), "new value")
        with self.assertRaises(DecryptionError):
            EncryptionGateway([new_key]).decrypt(old)
        self.assertEqual(EncryptionGateway([new_key]).decrypt(gateway.rotate_ciphertext(old)),
                         "old value")

    def test_requires_keys(self):
        with self.assertRaises(ValidationError):
            EncryptionGateway([])
        with self.assertRaises(DecryptionError):
            EncryptionGateway(lambda: []).decrypt("token")
        with self.assertRaises(DecryptionError):
            EncryptionGateway(["not a fernet key"]).encrypt("value")

    def test_only_text_encrypts(self):
        with self.assertRaises(ValidationError):
            self.gateway.encrypt(b"bytes")


def _version(name, created):
    return SimpleNamespace(name=name, create_time=created)


class TestGCPCachedKeyring(unittest.TestCase):

    def setUp(self):
        patcher = mock.patch(
            "gcp_secret_lifecycle.cache_secret.secretmanager.SecretManagerServiceClient")
        self.client_class = patcher.start()
        self.addCleanup(patcher.stop)
        self.client = self.client_class.return_value
        self.secret_name = "projects/p/secrets/DATA_KEY"
        self.credentials_callback = mock.Mock(return_value=(mock.Mock(), "p"))

        now = datetime.now(timezone.utc)
        self.old_key = EncryptionGateway.generate_key().encode("ascii")
        self.new_key = EncryptionGateway.generate_key().encode("ascii")
        payloads = {f"{self.secret_name}/versions/1": self.old_key,
                    f"{self.secret_name}/versions/2": self.new_key}
        self.client.list_secret_versions.return_value = [
            _version(f"{self.secret_name}/versions/1", now - timedelta(days=30)),
            _version(f"{self.secret_name}/versions/2", now),
        ]
        self.client.access_secret_version.side_effect = lambda request: SimpleNamespace(
            payload=SimpleNamespace(data=payloads[request.name]))

    def keyring(self):
        return GCPCachedKeyring(self.secret_name,
                                _credentials_callback=self.credentials_callback,
                                background=False)

    def test_newest_key_first(self):
        keyring = self.keyring()
        self.assertEqual(keyring(), [self.new_key, self.old_key])
        request = self.client.list_secret_versions.call_args.kwargs["request"]
        self.assertEqual(request.parent, self.secret_name)
        self.assertEqual(request.filter, "state=ENABLED")

    def test_keys_cached_until_invalidated(self):
        keyring = self.keyring()
        keyring()
        keyring()
        self.assertEqual(self.client.list_secret_versions.call_count, 1)
        keyring.invalidate()
        keyring()
        self.assertEqual(self.client.list_secret_versions.call_count, 2)

    def test_gateway_over_keyring(self):
        gateway = EncryptionGateway(self.keyring())
        old_only = EncryptionGateway([self.old_key])
        self.assertEqual(gateway.decrypt(old_only.encrypt("value")), "value")
        new_only = EncryptionGateway([self.new_key])
        self.assertEqual(new_only.decrypt(gateway.encrypt("value")), "value")

    def test_no_enabled_versions(self):
        self.client.list_secret_versions.return_value = []
        with self.assertRaises(NoActiveKeyVersion):
            self.keyring().get_keys()

    def test_server_error_surfaces_when_nothing_cached(self):
        self.client.list_secret_versions.side_effect = exceptions.ServiceUnavailable("down")
        with self.assertRaises(exceptions.ServiceUnavailable):
            self.keyring().get_keys()

    def test_ttl_floor(self):
        with self.assertRaises(AssertionError):
            GCPCachedKeyring(self.secret_name, ttl=5, background=False)

    def test_gateway_reports_key_load_failure_as_decryption_error(self):
        self.client.list_secret_versions.side_effect = exceptions.PermissionDenied("no access")
        gateway = EncryptionGateway(self.keyring())
        with self.assertRaises(DecryptionError) as raised:
            gateway.decrypt("gAAAA")
        self.assertIsInstance(raised.exception.__cause__, exceptions.PermissionDenied)
        with self.assertRaises(DecryptionError):
            gateway.encrypt("value")

    def test_gateway_keeps_no_active_key_version(self):
        self.client.list_secret_versions.return_value = []
        gateway = EncryptionGateway(self.keyring())
        with self.assertRaises(NoActiveKeyVersion):
            gateway.encrypt("value")
