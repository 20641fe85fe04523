# -*- coding: utf-8 -*-
"""Builds the lifecycle components once and runs the scheduler and subscriber."""

import logging
from datetime import timedelta

from google.cloud import pubsub_v1

from .audit import AuditEventDispatcher
from .cache_secret import GCPCachedKeyring
from .config import configure_logging
from .consumer import EventBusConsumer, PubSubDeadLetterSink
from .encryption import EncryptionGateway
from .exceptions import ValidationError
from .handler import NotificationHandler
from .ledger import InMemoryDeliveryLedger
from .managers import SecretRotator, StrategyRegistry
from .metrics import OperationMetrics
from .publisher import NotificationPublisher
from .scanner import ExpirationScanner, ScanScheduler


class SecretLifecycleService:
    """Process wide wiring of rotation, expiration scanning and notification consumption.

    The strategy registry, metrics and encryption gateway are built here once and
    passed to the components that use them. Persistence and delivery collaborators are
    supplied by the embedding application.

    The default ledger is an InMemoryDeliveryLedger, which only deduplicates deliveries
    within this process. When more than one instance pulls from the same subscription,
    pass a DeliveryLedger backed by storage every instance shares, otherwise a redelivery
    landing on another instance is applied again.
    """

    def __init__(self, config, secret_store, project_store, user_directory, inbox,
                 email_sender, ledger=None, publisher_client=None, subscriber_client=None,
                 metrics_registry=None, _credentials_callback=None):
        self._config = config
        self._credentials_callback = _credentials_callback
        configure_logging(config.log_level)

        if config.encryption_key_secret:
            key_source = GCPCachedKeyring(config.encryption_key_secret,
                                          _credentials_callback=_credentials_callback,
                                          ttl=config.key_refresh_ttl)
        elif config.encryption_keys:
            key_source = config.encryption_keys
        else:
            raise ValidationError("Either encryption_keys or encryption_key_secret is required")

        self.registry = StrategyRegistry.default()
        self.metrics = OperationMetrics(metrics_registry)
        self.gateway = EncryptionGateway(key_source)
        self.audit = AuditEventDispatcher(config.audit_url,
                                          timeout_ms=config.audit_timeout_ms,
                                          max_workers=config.audit_workers)
        self.rotator = SecretRotator(self.registry, self.gateway, secret_store,
                                     self.metrics, self.audit)

        self._publisher_client = publisher_client
        self._subscriber_client = subscriber_client
        self.publisher = None
        self.scanner = None
        self.scheduler = None
        self.ledger = ledger
        self.consumer = None
        self._streaming_pull = None

        if config.gcp_project_id:
            if self._publisher_client is None:
                self._publisher_client = pubsub_v1.PublisherClient(
                    credentials=self._credentials())
            self.publisher = NotificationPublisher.for_topic(
                config.gcp_project_id, config.notifications_topic,
                publisher_client=self._publisher_client)
            self.scanner = ExpirationScanner(secret_store, project_store, self.publisher,
                                             warning_days=config.warning_days)
            self.scheduler = ScanScheduler(self.scanner,
                                           scan_cron=config.scan_cron,
                                           expired_check_cron=config.expired_check_cron,
                                           timezone=config.scan_timezone)

            dead_letter = PubSubDeadLetterSink(
                pubsub_v1.PublisherClient.topic_path(config.gcp_project_id,
                                                     config.dead_letter_topic),
                self._publisher_client)
            self.ledger = ledger or InMemoryDeliveryLedger(
                retention=timedelta(days=config.ledger_retention_days))
            self.consumer = EventBusConsumer(
                NotificationHandler(user_directory, inbox, email_sender),
                self.ledger,
                dead_letter,
                max_delivery_attempts=config.max_delivery_attempts)
        else:
            logging.getLogger(__name__).warning(
                "GCP project id is not configured, expiration scan and notification "
                "subscriber will not start")

    def _credentials(self):
        if self._credentials_callback is None:
            return None
        credentials, _project_id = self._credentials_callback()
        return credentials

    @property
    def config(self):
        return self._config

    def rotate(self, secret_id, actor_username=None):
        return self.rotator.rotate(secret_id, actor_username)

    def start(self):
        if self.scheduler is not None:
            self.scheduler.start()
        if self.consumer is not None:
            if self._subscriber_client is None:
                self._subscriber_client = pubsub_v1.SubscriberClient(
                    credentials=self._credentials())
            subscription_path = self._subscriber_client.subscription_path(
                self._config.gcp_project_id, self._config.notifications_subscription)
            self._streaming_pull = self.consumer.subscribe(
                self._subscriber_client, subscription_path,
                threads=self._config.subscriber_threads)

    def stop(self):
        if self._streaming_pull is not None:
            logging.getLogger(__name__).info("Stopping Pub/Sub notification subscriber")
            self._streaming_pull.cancel()
            self._streaming_pull = None
        if self.scheduler is not None:
            self.scheduler.shutdown(wait=True)
        self.audit.shutdown(wait=True)
        if self.publisher is not None:
            logging.getLogger(__name__).info("Shutting down Pub/Sub notification publisher")
            self.publisher.stop()
