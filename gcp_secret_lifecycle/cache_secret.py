# -*- coding: utf-8 -*-
"""Encryption keys held as Secret Manager secret versions.

Each enabled version of the key secret holds one Fernet key. The newest enabled version
encrypts, every enabled version may decrypt. Rotating the data key is therefore adding a
version and, once old ciphertext has been re-encrypted, disabling the previous one.

"""

import logging
import sys
import threading
import weakref
from datetime import datetime, timedelta
from time import sleep

import google.auth
from google.api_core import exceptions
from google.cloud import secretmanager, secretmanager_v1

from .exceptions import NoActiveKeyVersion

KEYRING_SURPRESSED_EXCEPTIONS = (exceptions.ServerError,
                                 exceptions.TooManyRequests)


# thread is disconnected from the class so the background refresh
# does not keep the keyring alive beyond its natural lifecycle

def _background_refresh_thread(keyring_weak_ref):
    """
    Background loop reloading the enabled key versions every ttl seconds
    :param keyring_weak_ref: weak reference to the keyring
    :return: None
    """
    ttl = max(float(keyring_weak_ref().ttl), 30.0)
    last_run = datetime.utcnow()

    while keyring_weak_ref():
        keyring = keyring_weak_ref()

        if not keyring:
            break

        try:
            if (datetime.utcnow() - last_run).total_seconds() >= keyring.ttl:
                keys = keyring._load_keys()
                if keys:
                    with keyring.lock:
                        keyring.keys = keys
                        keyring.exception = None
                last_run = datetime.utcnow()
        except Exception:
            logging.getLogger(__name__).exception(
                f"While refreshing keyring {keyring.secret_name}")
        del keyring
        sleep(ttl)


class GCPCachedKeyring():
    """Callable returning the enabled key versions of a secret, newest first.

    Server errors and rate limiting during a background refresh are suppressed while
    keys are already cached, any other failure is raised to the next caller.
    """

    def __init__(self, secret_name, _credentials_callback=None, ttl=60.0, background=True):
        assert ttl >= 30.0, "Trying to renew keys at too high a frequency min is 30.0 seconds"

        self._credentials_callback = _credentials_callback
        self.keys = None
        self.exception = None
        self.lock = threading.Lock()
        self._secret_name = secret_name
        self.ns = threading.local()
        self.ttl = ttl
        self.t = None

        if background:
            t = threading.Thread(target=_background_refresh_thread,
                                 name=f"refresh_keyring_{secret_name}",
                                 args=[weakref.ref(self)])
            t.daemon = True
            t.start()
            self.t = weakref.ref(t)

    @property
    def _credentials(self):
        if not hasattr(self.ns, "_credentials"):
            if self._credentials_callback is not None:
                _credentials, _project_id = self._credentials_callback()
            else:
                _credentials, _project_id = google.auth.default()
            self.ns._credentials = _credentials
        return self.ns._credentials

    def _client(self):
        if not hasattr(self.ns, "client"):
            self.ns.client = secretmanager.SecretManagerServiceClient(
                credentials=self._credentials)
        return self.ns.client

    @property
    def secret_name(self):
        return self._secret_name

    def __call__(self):
        return self.get_keys()

    def get_keys(self):
        with self.lock:
            keys = self.keys
            if not keys:
                keys = self._load_keys()
                self.keys = keys
                if keys:
                    self.exception = None
                elif self.exception:
                    raise self.exception[1]
            if self.exception and \
                    not isinstance(self.exception[1], KEYRING_SURPRESSED_EXCEPTIONS):
                self.keys = None
                exc = self.exception[1]
                self.exception = None
                raise exc

        return keys

    def _load_keys(self):
        try:
            request = secretmanager_v1.ListSecretVersionsRequest(
                parent=self.secret_name,
                filter="state=ENABLED"
            )
            page_result = self._client().list_secret_versions(request=request)
            versions = sorted(page_result, key=lambda d: d.create_time, reverse=True)

            if not versions:
                raise NoActiveKeyVersion(self._secret_name)

            keys = []
            for version in versions:
                request = secretmanager_v1.AccessSecretVersionRequest(name=version.name)
                keys.append(self._client().access_secret_version(request).payload.data)
            return keys

        except Exception:
            self.exception = sys.exc_info()

        return None

    def invalidate(self):
        with self.lock:
            self.keys = None
