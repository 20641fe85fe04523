# -*- coding: utf-8 -*-
"""Decrypt/encrypt boundary for secret values.

Nothing in this module logs a plaintext or a key, only the fact an operation failed.
"""

import logging
import threading

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

from .exceptions import DecryptionError, ValidationError


class EncryptionGateway:
    """Fernet based gateway whose keys may change while the process runs.

    Args:
        key_source (list or callable): Fernet keys newest first, or a callable returning
            them such as :class:`GCPCachedKeyring`. The first key encrypts, all keys are
            tried when decrypting so values written before a key rotation stay readable.
    """

    def __init__(self, key_source):
        if not callable(key_source):
            keys = list(key_source)
            if not keys:
                raise ValidationError("EncryptionGateway needs at least one key")
            key_source = lambda: keys  # noqa: E731
        self._key_source = key_source
        self._lock = threading.Lock()
        self._cached_keys = None
        self._fernet = None

    @staticmethod
    def generate_key():
        return Fernet.generate_key().decode("ascii")

    def _multi_fernet(self):
        try:
            raw_keys = self._key_source()
        except DecryptionError:
            raise
        except Exception as e:
            logging.getLogger(__name__).error(f"Encryption keys could not be loaded: {e}")
            raise DecryptionError("Encryption keys could not be loaded") from e
        keys = tuple(k.encode("ascii") if isinstance(k, str) else bytes(k)
                     for k in raw_keys or ())
        if not keys:
            raise DecryptionError("No active encryption key")
        with self._lock:
            if keys != self._cached_keys:
                try:
                    self._fernet = MultiFernet([Fernet(k) for k in keys])
                except (ValueError, TypeError) as e:
                    # never include the key material in the message
                    raise DecryptionError("Active encryption key is malformed") from e
                self._cached_keys = keys
            return self._fernet

    def encrypt(self, plaintext):
        if not isinstance(plaintext, str):
            raise ValidationError("Only text secret values can be encrypted")
        return self._multi_fernet().encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, ciphertext):
        """Returns the plaintext of ciphertext.

        Raises:
            DecryptionError: ciphertext is malformed or no active key opens it. Callers
                must treat this as fatal, it means corruption or a key mismatch.
        """
        if not ciphertext or not isinstance(ciphertext, (str, bytes)):
            raise DecryptionError("Ciphertext is empty or not text")
        token = ciphertext.encode("ascii", "replace") if isinstance(ciphertext, str) \
            else ciphertext
        try:
            return self._multi_fernet().decrypt(token).decode("utf-8")
        except InvalidToken as e:
            logging.getLogger(__name__).error(
                "Ciphertext could not be opened with any active key")
            raise DecryptionError("Ciphertext could not be opened with any active key") from e
        except UnicodeDecodeError as e:
            raise DecryptionError("Decrypted value is not utf-8") from e

    def rotate_ciphertext(self, ciphertext):
        """Re-encrypts ciphertext under the newest key."""
        try:
            return self._multi_fernet().rotate(ciphertext.encode("ascii")).decode("ascii")
        except InvalidToken as e:
            raise DecryptionError("Ciphertext could not be opened with any active key") from e
