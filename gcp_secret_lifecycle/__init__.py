# -*- coding: utf-8 -*-
"""gcp_secret_lifecycle

Rotation of encrypted secret values through pluggable strategies, periodic warnings for
secrets about to expire, and idempotent consumption of notification events delivered at
least once by Pub/Sub.

"""

from __future__ import absolute_import

from gcp_secret_lifecycle.exceptions import SecretLifecycleError, \
    ValidationError, \
    SecretNotFoundError, \
    UnsupportedStrategyError, \
    DecryptionError, \
    NoActiveKeyVersion, \
    RotationConflictError, \
    DeliveryError, \
    TransientDeliveryError, \
    PermanentDeliveryError, \
    AuditSinkUnavailable
from gcp_secret_lifecycle.models import Secret, \
    Project, \
    User, \
    AuditEvent, \
    NotificationEvent, \
    NotificationType, \
    DeliveryRecord, \
    RotationResult, \
    ScanReport
from gcp_secret_lifecycle.cache_secret import GCPCachedKeyring
from gcp_secret_lifecycle.encryption import EncryptionGateway
from gcp_secret_lifecycle.metrics import OperationMetrics, SecretOperation
from gcp_secret_lifecycle.managers import RotationStrategy, \
    StrategyType, \
    DefaultRotationStrategy, \
    PostgresRotationStrategy, \
    SendGridRotationStrategy, \
    StrategyRegistry, \
    SecretRotator
from gcp_secret_lifecycle.audit import AuditEventDispatcher
from gcp_secret_lifecycle.publisher import NotificationPublisher
from gcp_secret_lifecycle.scanner import ExpirationScanner, ScanScheduler, ScanState
from gcp_secret_lifecycle.ledger import DeliveryLedger, InMemoryDeliveryLedger, BeginResult
from gcp_secret_lifecycle.handler import NotificationHandler
from gcp_secret_lifecycle.consumer import EventBusConsumer, DeadLetterSink, PubSubDeadLetterSink
from gcp_secret_lifecycle.config import LifecycleConfig
from gcp_secret_lifecycle.service import SecretLifecycleService
from ._version import __version__

__all__ = ["__version__",
           "SecretLifecycleError",
           "ValidationError",
           "SecretNotFoundError",
           "UnsupportedStrategyError",
           "DecryptionError",
           "NoActiveKeyVersion",
           "RotationConflictError",
           "DeliveryError",
           "TransientDeliveryError",
           "PermanentDeliveryError",
           "AuditSinkUnavailable",
           "Secret",
           "Project",
           "User",
           "AuditEvent",
           "NotificationEvent",
           "NotificationType",
           "DeliveryRecord",
           "RotationResult",
           "ScanReport",
           "GCPCachedKeyring",
           "EncryptionGateway",
           "OperationMetrics",
           "SecretOperation",
           "RotationStrategy",
           "StrategyType",
           "DefaultRotationStrategy",
           "PostgresRotationStrategy",
           "SendGridRotationStrategy",
           "StrategyRegistry",
           "SecretRotator",
           "AuditEventDispatcher",
           "NotificationPublisher",
           "ExpirationScanner",
           "ScanScheduler",
           "ScanState",
           "DeliveryLedger",
           "InMemoryDeliveryLedger",
           "BeginResult",
           "NotificationHandler",
           "EventBusConsumer",
           "DeadLetterSink",
           "PubSubDeadLetterSink",
           "LifecycleConfig",
           "SecretLifecycleService"]
