# -*- coding: utf-8 -*-
"""Periodic sweep notifying owners of secrets about to expire."""

import logging
import threading
from datetime import timedelta
from enum import Enum

import pytz
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from .exceptions import ValidationError
from .models import NotificationEvent, NotificationType, ScanReport, as_utc, isoformat, utcnow

DEFAULT_WARNING_DAYS = 7
DEFAULT_SCAN_CRON = "0 9 * * *"
DEFAULT_EXPIRED_CHECK_CRON = "0 * * * *"


class ScanState(str, Enum):
    IDLE = "IDLE"
    SCANNING = "SCANNING"


class ExpirationScanner:
    """Builds and publishes one SECRET_EXPIRING_SOON event per secret in the warning window.

    A trigger arriving while a scan runs is skipped, scans never overlap. A secret that
    cannot be processed is logged and counted, the rest of the batch carries on.
    """

    def __init__(self, secret_store, project_store, publisher,
                 warning_days=DEFAULT_WARNING_DAYS, publish_timeout=30.0, clock=None):
        if warning_days < 0:
            raise ValidationError(f"warning_days must not be negative got {warning_days}")
        self._secret_store = secret_store
        self._project_store = project_store
        self._publisher = publisher
        self._warning_days = warning_days
        self._publish_timeout = publish_timeout
        self._clock = clock or utcnow
        self._state = ScanState.IDLE
        self._state_lock = threading.Lock()

    @property
    def state(self):
        return self._state

    @property
    def warning_days(self):
        return self._warning_days

    def _begin(self):
        with self._state_lock:
            if self._state is ScanState.SCANNING:
                return False
            self._state = ScanState.SCANNING
            return True

    def _end(self):
        with self._state_lock:
            self._state = ScanState.IDLE

    def run_once(self, now=None):
        """Runs one scan.

        Returns:
            ScanReport: counts for the run, or None when a scan was already in progress.
        """
        if not self._begin():
            logging.getLogger(__name__).warning(
                "Expiration scan already in progress, skipping this trigger")
            return None
        try:
            return self._scan(as_utc(now) if now is not None else self._clock())
        finally:
            self._end()

    def _scan(self, now):
        threshold = now + timedelta(days=self._warning_days)
        report = ScanReport(window_start=now, window_end=threshold)
        logging.getLogger(__name__).info(
            f"Starting secret expiration check for {isoformat(now)} to {isoformat(threshold)}")

        expiring = self._secret_store.find_expiring_between(now, threshold)
        report.found = len(expiring)
        if not expiring:
            logging.getLogger(__name__).info(
                f"No secrets expiring in the next {self._warning_days} days")
            return report

        for secret in expiring:
            try:
                event = self._build_event(secret)
                if event is None:
                    report.skipped += 1
                    continue
                self._publisher.publish(event).result(timeout=self._publish_timeout)
                report.published += 1
            except Exception:
                logging.getLogger(__name__).exception(
                    f"Failed to publish expiration warning for secret {secret.secret_key}")
                report.failed += 1

        logging.getLogger(__name__).info(
            f"Expiration check complete found {report.found} published {report.published} "
            f"skipped {report.skipped} failed {report.failed}")
        return report

    def _build_event(self, secret):
        project = self._project_store.get(secret.project_id)
        if project is None:
            logging.getLogger(__name__).warning(
                f"Project not found for secret {secret.secret_key}, skipping notification")
            return None

        recipient = secret.created_by or project.owner_id
        if not recipient:
            logging.getLogger(__name__).warning(
                f"No owner for secret {secret.secret_key}, skipping notification")
            return None

        expires_at = isoformat(secret.expires_at)
        return NotificationEvent(
            type=NotificationType.SECRET_EXPIRING_SOON,
            recipient_user_ids=[recipient],
            project_id=project.id,
            secret_id=secret.id,
            title=f"Secret {secret.secret_key} expires soon",
            message=f"Secret {secret.secret_key} in project {project.name} "
                    f"expires at {expires_at}.",
            metadata={"secretKey": secret.secret_key,
                      "projectName": project.name,
                      "expiresAt": expires_at,
                      "deepLink": f"/projects/{project.id}/secrets/{secret.secret_key}"},
        )

    def log_expired_secrets(self, now=None):
        """Logs secrets already past expiry, nothing is changed."""
        now = as_utc(now) if now is not None else self._clock()
        expired = self._secret_store.find_expired(now)
        for secret in expired:
            logging.getLogger(__name__).info(
                f"Secret '{secret.secret_key}' is expired (expired at: "
                f"{isoformat(secret.expires_at)})")
        if expired:
            logging.getLogger(__name__).info(f"Found {len(expired)} expired secrets")
        else:
            logging.getLogger(__name__).debug("No expired secrets found")
        return expired


def build_trigger(expression, timezone=None):
    """CronTrigger for a five field crontab expression, timezone None is local time."""
    tz = pytz.timezone(timezone) if timezone else None
    try:
        return CronTrigger.from_crontab(expression, timezone=tz)
    except ValueError as e:
        raise ValidationError(f"Invalid cron expression {expression!r} {e}") from e


class ScanScheduler:
    """Recurring triggers for the scanner.

    Each job runs with max_instances=1 and missed runs coalesced, on top of the
    scanner's own state guard.
    """

    def __init__(self, scanner, scan_cron=DEFAULT_SCAN_CRON,
                 expired_check_cron=DEFAULT_EXPIRED_CHECK_CRON, timezone=None, scheduler=None):
        self._scanner = scanner
        self._scheduler = scheduler or BackgroundScheduler(
            timezone=pytz.timezone(timezone) if timezone else None)
        self._scheduler.add_job(scanner.run_once,
                                trigger=build_trigger(scan_cron, timezone),
                                id="secret_expiration_scan",
                                max_instances=1,
                                coalesce=True,
                                replace_existing=True)
        if expired_check_cron:
            self._scheduler.add_job(scanner.log_expired_secrets,
                                    trigger=build_trigger(expired_check_cron, timezone),
                                    id="secret_expired_check",
                                    max_instances=1,
                                    coalesce=True,
                                    replace_existing=True)

    @property
    def scheduler(self):
        return self._scheduler

    def start(self):
        self._scheduler.start()
        logging.getLogger(__name__).info("Secret expiration scheduler started")

    def shutdown(self, wait=True):
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
