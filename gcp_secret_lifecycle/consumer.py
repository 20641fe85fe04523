# -*- coding: utf-8 -*-
"""
Consumer of NotificationEvents delivered by Pub/Sub.

Pub/Sub delivers at least once, so the same message may arrive again and messages from
different publishers arrive in no particular order. Every delivery attempt ends in
exactly one ack or nack and the same policy applies to every event type:

success                      complete the idempotency key then ack
duplicate (key completed)    ack, no effects
same key being handled       nack, the other delivery decides
undecodable or invalid       dead-letter then ack, a redelivery after that is only acked
permanent handler failure    dead-letter then ack
transient handler failure    nack until max_delivery_attempts, then dead-letter and ack
dead-letter publish fails    nack, the message is never dropped silently

The idempotency key is the eventId attribute set by the publisher, or the Pub/Sub
message id when a message carries none.
"""

import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor

from google.cloud import pubsub_v1
from google.cloud.pubsub_v1.subscriber.scheduler import ThreadScheduler

from .exceptions import PermanentDeliveryError, TransientDeliveryError, ValidationError
from .ledger import BeginResult
from .models import DeliveryStatus, NotificationEvent


class DeadLetterSink(ABC):

    @abstractmethod
    def send(self, message, idempotency_key, reason, attempts):
        """Stores a message that will never be processed. Raises if it could not."""
        pass


class PubSubDeadLetterSink(DeadLetterSink):
    """Republishes the original payload and attributes to a dead-letter topic."""

    def __init__(self, topic_path, publisher_client, timeout=30.0):
        self._topic_path = topic_path
        self._client = publisher_client
        self._timeout = timeout

    @property
    def topic_path(self):
        return self._topic_path

    def send(self, message, idempotency_key, reason, attempts):
        attributes = dict(message.attributes or {})
        attributes.update({"sourceMessageId": message.message_id or "",
                           "idempotencyKey": idempotency_key,
                           "deadLetterReason": reason[:1024],
                           "deliveryAttempts": str(attempts)})
        self._client.publish(self._topic_path, message.data or b"",
                             **attributes).result(timeout=self._timeout)


class EventBusConsumer:
    """Pub/Sub streaming pull callback applying NotificationEvents at most once each.

    Args:
        handler (NotificationHandler): applies the event's effects.
        ledger (DeliveryLedger): idempotency ledger shared by every consumer instance.
        dead_letter (DeadLetterSink): terminal sink for messages that cannot be processed.
        max_delivery_attempts (int): failed attempts before a message is dead-lettered.
    """

    def __init__(self, handler, ledger, dead_letter, max_delivery_attempts=5):
        assert max_delivery_attempts >= 1, "max_delivery_attempts must be at least 1"
        self._handler = handler
        self._ledger = ledger
        self._dead_letter = dead_letter
        self._max_delivery_attempts = max_delivery_attempts

    @property
    def max_delivery_attempts(self):
        return self._max_delivery_attempts

    @staticmethod
    def idempotency_key(message):
        attributes = message.attributes or {}
        return attributes.get("eventId") or message.message_id

    def __call__(self, message):
        self.receive(message)

    def receive(self, message):
        key = self.idempotency_key(message)
        try:
            event = NotificationEvent.from_json(message.data)
        except ValidationError as e:
            record = self._ledger.get(key)
            if record is not None and record.status is DeliveryStatus.COMPLETED:
                logging.getLogger(__name__).info(
                    f"Undecodable message {message.message_id} key {key} already "
                    f"dead-lettered, acking")
                message.ack()
                return
            logging.getLogger(__name__).error(
                f"Undecodable notification event message {message.message_id} key {key}: {e}")
            self._dead_letter_and_ack(message, key, f"decode: {e}", self._attempt_of(message))
            return

        begun = self._ledger.begin(key)
        if begun is BeginResult.DUPLICATE:
            logging.getLogger(__name__).info(
                f"Duplicate delivery of event {key} message {message.message_id}, acking")
            message.ack()
            return
        if begun is BeginResult.IN_FLIGHT:
            logging.getLogger(__name__).info(
                f"Event {key} is being handled by another delivery, nacking")
            message.nack()
            return

        logging.getLogger(__name__).info(
            f"Received notification event type={event.type} "
            f"recipients={len(event.recipient_user_ids)} projectId={event.project_id} "
            f"secretId={event.secret_id} eventId={key}")

        try:
            self._handler.handle(event, key)
        except (PermanentDeliveryError, ValidationError) as e:
            attempts = self._ledger.abandon(key)
            logging.getLogger(__name__).error(
                f"Permanent failure handling event {key} type {event.type}: {e}")
            self._dead_letter_and_ack(message, key, f"permanent: {e}",
                                      max(attempts, self._attempt_of(message)))
            return
        except Exception as e:
            attempts = max(self._ledger.abandon(key), self._attempt_of(message))
            if not isinstance(e, TransientDeliveryError):
                logging.getLogger(__name__).exception(
                    f"Unexpected error handling event {key} type {event.type}")
            if attempts >= self._max_delivery_attempts:
                logging.getLogger(__name__).error(
                    f"Retry budget exhausted for event {key} after {attempts} attempts: {e}")
                self._dead_letter_and_ack(message, key, f"exhausted: {e}", attempts)
            else:
                logging.getLogger(__name__).warning(
                    f"Transient failure handling event {key} attempt {attempts} of "
                    f"{self._max_delivery_attempts}, nacking: {e}")
                message.nack()
            return

        self._ledger.complete(key)
        message.ack()
        logging.getLogger(__name__).debug(
            f"Successfully processed notification event message {message.message_id} key {key}")

    @staticmethod
    def _attempt_of(message):
        # None unless the subscription has a dead letter policy
        return getattr(message, "delivery_attempt", None) or 0

    def _dead_letter_and_ack(self, message, key, reason, attempts):
        try:
            self._dead_letter.send(message, key, reason, attempts)
        except Exception:
            logging.getLogger(__name__).exception(
                f"Failed to dead-letter message {message.message_id} key {key}, nacking")
            message.nack()
            return
        self._ledger.complete(key)
        message.ack()

    def subscribe(self, subscriber_client, subscription_path, threads=4,
                  max_messages=100):
        """Starts a streaming pull delivering to this consumer.

        Returns:
            google.cloud.pubsub_v1.subscriber.futures.StreamingPullFuture
        """
        scheduler = ThreadScheduler(executor=ThreadPoolExecutor(
            max_workers=threads, thread_name_prefix="notification_consumer"))
        future = subscriber_client.subscribe(
            subscription_path,
            callback=self,
            flow_control=pubsub_v1.types.FlowControl(max_messages=max_messages),
            scheduler=scheduler,
        )
        logging.getLogger(__name__).info(f"Started Pub/Sub subscriber for {subscription_path}")
        return future
