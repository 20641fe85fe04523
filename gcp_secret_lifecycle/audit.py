# -*- coding: utf-8 -*-
"""
Best-effort audit trail.

Audit events are posted to an external audit service from a small worker pool. The
caller's mutation has already succeeded by the time an event is emitted and must never
wait on, or fail because of, the audit service. Each post is bounded by a timeout, a
failure is logged and the event discarded. There is no retry at this layer, durability of
the audit trail is the audit service's concern.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor

import requests

from .exceptions import AuditSinkUnavailable
from .models import AuditEvent

AUDIT_LOG_PATH = "/api/audit/log"


class AuditEventDispatcher:

    def __init__(self, audit_url, timeout_ms=5000, max_workers=4, max_pending=None,
                 _session_factory=None):
        """
        :type audit_url: str
        :param audit_url: base url of the audit service, None disables dispatch

        :type timeout_ms: int
        :param timeout_ms: hard timeout for connect and read of each post

        :type max_workers: int
        :param max_workers: bound on concurrent in flight posts

        :type max_pending: int
        :param max_pending: bound on posts queued or in flight, further events are dropped
            while the sink is backed up. Defaults to 16 per worker
        """
        self._url = audit_url.rstrip("/") + AUDIT_LOG_PATH if audit_url else None
        self._timeout = timeout_ms / 1000.0
        self._session_factory = _session_factory or requests.Session
        self._executor = ThreadPoolExecutor(max_workers=max_workers,
                                            thread_name_prefix="audit_dispatch")
        self._max_pending = max_pending or max_workers * 16
        self._pending = threading.BoundedSemaphore(self._max_pending)
        self.ns = threading.local()
        self._sessions = []
        self._sessions_lock = threading.Lock()

    @property
    def url(self):
        return self._url

    @property
    def timeout(self):
        return self._timeout

    @property
    def max_pending(self):
        return self._max_pending

    def _session(self):
        # sessions are not shared between worker threads
        if not hasattr(self.ns, "session"):
            self.ns.session = self._session_factory()
            with self._sessions_lock:
                self._sessions.append(self.ns.session)
        return self.ns.session

    def emit(self, action, resource_key, actor_username):
        """Queues an audit record and returns straight away, never raises."""
        event = AuditEvent(action=action, resource_key=resource_key,
                           actor_username=actor_username)
        if not self._url:
            logging.getLogger(__name__).debug(
                f"Audit sink not configured, dropping {action} for {resource_key}")
            return
        if not self._pending.acquire(blocking=False):
            logging.getLogger(__name__).warning(
                f"Audit sink backed up with {self._max_pending} pending posts, dropping "
                f"{action} for {resource_key}")
            return
        try:
            # fire and forget
            self._executor.submit(self._send, event)
        except RuntimeError:
            self._pending.release()
            logging.getLogger(__name__).warning(
                f"Audit dispatcher shut down, dropping {action} for {resource_key}")

    def _send(self, event):
        try:
            response = self._session().post(self._url,
                                            json=event.to_wire(),
                                            timeout=self._timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            failure = AuditSinkUnavailable(self._url, event.action, e)
            logging.getLogger(__name__).error(f"Failed to send audit event: {failure}")
        except Exception:
            logging.getLogger(__name__).exception(
                f"Error sending audit event {event.action} for {event.resource_key}")
        finally:
            self._pending.release()

    def shutdown(self, wait=True):
        self._executor.shutdown(wait=wait)
        if wait:
            with self._sessions_lock:
                sessions, self._sessions = self._sessions, []
            for session in sessions:
                session.close()
