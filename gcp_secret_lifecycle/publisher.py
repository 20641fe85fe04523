# -*- coding: utf-8 -*-
"""Publishing NotificationEvents to Pub/Sub."""

import logging
import uuid

from google.cloud import pubsub_v1

from .models import utcnow


class NotificationPublisher:
    """Publishes NotificationEvents as UTF-8 JSON with an eventId attribute.

    The eventId is generated once per publish and is the idempotency key consumers use,
    Pub/Sub may redeliver the same message any number of times.
    """

    def __init__(self, topic_path, publisher_client=None, _credentials_callback=None):
        if publisher_client is None:
            credentials = None
            if _credentials_callback is not None:
                credentials, _project_id = _credentials_callback()
            publisher_client = pubsub_v1.PublisherClient(credentials=credentials)
        self._client = publisher_client
        self._topic_path = topic_path

    @classmethod
    def for_topic(cls, project_id, topic, publisher_client=None, _credentials_callback=None):
        return cls(pubsub_v1.PublisherClient.topic_path(project_id, topic),
                   publisher_client=publisher_client,
                   _credentials_callback=_credentials_callback)

    @property
    def topic_path(self):
        return self._topic_path

    def publish(self, event):
        """
        Returns:
            google.api_core.future.Future: resolves to the server assigned message id.
        """
        if event.created_at is None:
            event.created_at = utcnow()
        event_id = str(uuid.uuid4())
        future = self._client.publish(self._topic_path,
                                      event.to_json().encode("utf-8"),
                                      eventId=event_id,
                                      type=event.type)
        logging.getLogger(__name__).debug(
            f"Published {event.type} event {event_id} to {self._topic_path}")
        return future

    def stop(self):
        self._client.stop()
