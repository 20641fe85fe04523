# -*- coding: utf-8 -*-
"""
Tests for the best-effort audit dispatcher

"""

import logging
import threading
import time
import unittest
from unittest import mock

import requests

from gcp_secret_lifecycle import AuditEventDispatcher


def setup_module():
    logging.basicConfig(level=logging.DEBUG)


class TestAuditEventDispatcher(unittest.TestCase):

    def setUp(self):
        self.session = mock.Mock()
        self.dispatcher = AuditEventDispatcher("http://audit:8080/",
                                               _session_factory=lambda: self.session)
        self.addCleanup(self.dispatcher.shutdown, True)

    def test_posts_wire_contract(self):
        self.dispatcher.emit("SECRET_ROTATED", "DB_PASSWORD", "alice")
        self.dispatcher.shutdown(wait=True)
        self.session.post.assert_called_once_with(
            "http://audit:8080/api/audit/log",
            json={"action": "SECRET_ROTATED", "secretKey": "DB_PASSWORD",
                  "username": "alice"},
            timeout=5.0)

    def test_emit_does_not_wait_for_sink(self):
        release = threading.Event()
        self.session.post.side_effect = lambda *a, **kw: release.wait(10)
        started = time.monotonic()
        self.dispatcher.emit("SECRET_ROTATED", "KEY", "alice")
        self.assertLess(time.monotonic() - started, 1.0)
        release.set()

    def test_timeout_is_swallowed_without_retry(self):
        self.session.post.side_effect = requests.Timeout("read timed out")
        with self.assertLogs("gcp_secret_lifecycle.audit", level="ERROR") as logs:
            self.assertIsNone(self.dispatcher.emit("SECRET_ROTATED", "KEY", "alice"))
            self.dispatcher.shutdown(wait=True)
        self.assertEqual(self.session.post.call_count, 1)
        self.assertIn("Failed to send audit event", logs.output[0])

    def test_http_error_status_is_swallowed(self):
        self.session.post.return_value.raise_for_status.side_effect = \
            requests.HTTPError("503 Server Error")
        self.dispatcher.emit("SECRET_ROTATED", "KEY", "alice")
        self.dispatcher.shutdown(wait=True)
        self.assertEqual(self.session.post.call_count, 1)

    def test_custom_timeout(self):
        dispatcher = AuditEventDispatcher("http://audit", timeout_ms=250,
                                          _session_factory=lambda: self.session)
        dispatcher.emit("A", "K", "u")
        dispatcher.shutdown(wait=True)
        self.assertEqual(self.session.post.call_args.kwargs["timeout"], 0.25)

    def test_unconfigured_sink_drops(self):
        dispatcher = AuditEventDispatcher(None, _session_factory=lambda: self.session)
        dispatcher.emit("A", "K", "u")
        dispatcher.shutdown(wait=True)
        self.session.post.assert_not_called()

    def test_emit_after_shutdown_does_not_raise(self):
        self.dispatcher.shutdown(wait=True)
        self.dispatcher.emit("A", "K", "u")
        self.session.post.assert_not_called()

    def test_shutdown_closes_sessions(self):
        self.dispatcher.emit("A", "K", "u")
        self.dispatcher.shutdown(wait=True)
        self.session.close.assert_called_once_with()

    def test_backed_up_sink_drops_instead_of_queueing(self):
        release = threading.Event()
        self.session.post.side_effect = lambda *a, **kw: release.wait(10)
        dispatcher = AuditEventDispatcher("http://audit", max_workers=1, max_pending=4,
                                          _session_factory=lambda: self.session)
        with self.assertLogs("gcp_secret_lifecycle.audit", level="WARNING") as logs:
            for i in range(1000):
                dispatcher.emit("SECRET_ROTATED", f"KEY_{i}", "alice")
        release.set()
        dispatcher.shutdown(wait=True)

        self.assertEqual(self.session.post.call_count, 4)
        self.assertEqual(len(logs.output), 996)
        self.assertIn("backed up", logs.output[0])

    def test_capacity_frees_up_after_posts_finish(self):
        dispatcher = AuditEventDispatcher("http://audit", max_workers=1, max_pending=2,
                                          _session_factory=lambda: self.session)
        self.assertEqual(dispatcher.max_pending, 2)
        deadline = time.monotonic() + 10
        while self.session.post.call_count < 10 and time.monotonic() < deadline:
            dispatcher.emit("SECRET_ROTATED", "KEY", "alice")
            time.sleep(0.01)
        dispatcher.shutdown(wait=True)
        self.assertGreaterEqual(self.session.post.call_count, 10)
