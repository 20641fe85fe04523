# -*- coding: utf-8 -*-

import base64
import logging
import secrets
import threading
import time
import uuid
import weakref
from abc import ABC, abstractmethod
from enum import Enum
from types import MappingProxyType

from .exceptions import RotationConflictError, SecretNotFoundError, \
    UnsupportedStrategyError, ValidationError
from .metrics import SecretOperation
from .models import RotationResult

"""
Secret value rotation.

A secret's strategy_type selects the algorithm deriving its next value. The set of
strategies is closed: each StrategyType member maps to exactly one RotationStrategy in a
registry built once at startup and never modified afterwards.

DEFAULT     appends -rotated-<unix millis> to the current value
POSTGRES    ignores the current value, pg_passwd_ followed by 24 random bytes url safe
            base64 encoded without padding
SENDGRID    ignores the current value, SG.<uuid hex>.mock_generated_key

None of the shipped strategies reach out to the provider owning the credential. A
strategy that does (changing a live database password say) implements the same
interface, the rotator does not assume a strategy is pure, only that it returns a new
plaintext or raises.
"""

AUDIT_ACTION_ROTATED = "SECRET_ROTATED"


class StrategyType(str, Enum):
    DEFAULT = "DEFAULT"
    POSTGRES = "POSTGRES"
    SENDGRID = "SENDGRID"

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise UnsupportedStrategyError(value) from None


class RotationStrategy(ABC):
    """Abstract Base Class for deriving a new secret value.

    Implementations receive the decrypted current value and return the decrypted new
    value. They must not persist or log either.
    """

    strategy_type = None

    @abstractmethod
    def rotate(self, current_value):
        """Returns the new plaintext for a secret currently holding current_value."""
        return None


class DefaultRotationStrategy(RotationStrategy):
    """Appends a millisecond timestamp, strictly increasing across calls."""

    strategy_type = StrategyType.DEFAULT

    def __init__(self, clock=None):
        super(DefaultRotationStrategy, self).__init__()
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._lock = threading.Lock()
        self._last = 0

    def _next_timestamp(self):
        with self._lock:
            stamp = max(self._clock(), self._last + 1)
            self._last = stamp
            return stamp

    def rotate(self, current_value):
        return f"{current_value}-rotated-{self._next_timestamp()}"


class PostgresRotationStrategy(RotationStrategy):
    """Generates a strong database password, the current value plays no part."""

    strategy_type = StrategyType.POSTGRES
    PREFIX = "pg_passwd_"
    RANDOM_BYTES = 24

    def rotate(self, current_value):
        token = base64.urlsafe_b64encode(secrets.token_bytes(self.RANDOM_BYTES))
        return self.PREFIX + token.rstrip(b"=").decode("ascii")


class SendGridRotationStrategy(RotationStrategy):
    """Simulates a newly issued mail provider api key."""

    strategy_type = StrategyType.SENDGRID

    def rotate(self, current_value):
        return f"SG.{uuid.uuid4().hex}.mock_generated_key"


class StrategyRegistry:
    """Immutable mapping of StrategyType to RotationStrategy.

    Args:
        strategies (iterable): RotationStrategy instances, exactly one per StrategyType.
    """

    def __init__(self, strategies):
        table = {}
        for strategy in strategies:
            key = StrategyType.parse(strategy.strategy_type)
            assert key not in table, f"Duplicate rotation strategy for {key.value}"
            table[key] = strategy
        missing = [t.value for t in StrategyType if t not in table]
        assert not missing, f"No rotation strategy registered for {', '.join(missing)}"
        self._table = MappingProxyType(table)

    @classmethod
    def default(cls):
        return cls([DefaultRotationStrategy(),
                    PostgresRotationStrategy(),
                    SendGridRotationStrategy()])

    @property
    def strategy_types(self):
        return tuple(self._table.keys())

    def resolve(self, strategy_type):
        """
        Raises:
            UnsupportedStrategyError: strategy_type is not a StrategyType.
        """
        return self._table[StrategyType.parse(strategy_type)]

    def rotate(self, strategy_type, current_plaintext):
        return self.resolve(strategy_type).rotate(current_plaintext)


class SecretRotator:
    """Runs the decrypt, compute, encrypt, persist sequence for one secret at a time.

    Two rotations of the same secret never interleave: the second one to arrive fails
    straight away with RotationConflictError rather than waiting, and the store's
    version check catches writers outside this process. Nothing is written until the
    new ciphertext exists, so a failure at any step leaves the secret in its prior,
    decryptable state and the rotation can simply be retried.

    Attributes:
        registry (StrategyRegistry): resolves secret.strategy_type
        gateway (EncryptionGateway): decrypts the current and encrypts the new value
        store (SecretStore): source and destination of the secret
        metrics (OperationMetrics): rotate counter and duration histogram
        audit (AuditEventDispatcher): receives SECRET_ROTATED after the persist
    """

    def __init__(self, registry, gateway, store, metrics, audit):
        self._registry = registry
        self._gateway = gateway
        self._store = store
        self._metrics = metrics
        self._audit = audit
        self._locks = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    @property
    def registry(self):
        return self._registry

    def _lock_for(self, secret_id):
        with self._locks_guard:
            lock = self._locks.get(secret_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[secret_id] = lock
            return lock

    def rotate(self, secret_id, actor_username=None):
        """Rotates a secret's value through its strategy.

        Args:
            secret_id (str): id of the secret to rotate.
            actor_username (str): who asked, recorded in the audit trail.

        Returns:
            RotationResult: the persisted version.

        Raises:
            ValidationError, SecretNotFoundError, UnsupportedStrategyError,
            DecryptionError, RotationConflictError
        """
        if not secret_id or not isinstance(secret_id, str):
            raise ValidationError("Secret id is required for rotation")

        # hold a strong reference for the whole rotation
        lock = self._lock_for(secret_id)
        if not lock.acquire(blocking=False):
            raise RotationConflictError(secret_id, "rotation already in progress")
        try:
            secret = self._store.get(secret_id)
            if secret is None:
                raise SecretNotFoundError(secret_id)

            strategy = self._registry.resolve(secret.strategy_type)

            with self._metrics.time_rotation():
                current = self._gateway.decrypt(secret.encrypted_value)
                new_value = strategy.rotate(current)
                if not isinstance(new_value, str) or not new_value:
                    raise ValidationError(
                        f"Strategy {secret.strategy_type} returned no value for "
                        f"{secret.secret_key}")
                encrypted = self._gateway.encrypt(new_value)
                del current, new_value
                stored = self._store.compare_and_set(secret.id, secret.version, encrypted)
        finally:
            lock.release()

        self._metrics.record_operation(SecretOperation.ROTATE)
        logging.getLogger(__name__).info(
            f"Rotated secret {stored.secret_key} to version {stored.version} "
            f"using {secret.strategy_type}")
        self._audit.emit(AUDIT_ACTION_ROTATED, stored.secret_key, actor_username or "system")

        return RotationResult(secret_id=stored.id,
                              secret_key=stored.secret_key,
                              version=stored.version,
                              strategy_type=StrategyType.parse(secret.strategy_type).value)
