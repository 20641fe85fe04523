# -*- coding: utf-8 -*-
"""Idempotency ledger guarding effects of redelivered bus messages."""

import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from datetime import timedelta
from enum import Enum

from .models import DeliveryRecord, DeliveryStatus, utcnow


class BeginResult(str, Enum):
    BEGUN = "BEGUN"
    DUPLICATE = "DUPLICATE"
    IN_FLIGHT = "IN_FLIGHT"


class DeliveryLedger(ABC):
    """Atomic check-and-record over idempotency keys.

    A key moves absent -> PENDING on begin, PENDING -> COMPLETED on complete and back to
    absent on abandon. Implementations must make begin atomic, it is the only thing
    keeping two concurrent deliveries of one event from both applying it.
    """

    @abstractmethod
    def begin(self, key):
        """Returns a BeginResult."""
        return None

    @abstractmethod
    def complete(self, key):
        pass

    @abstractmethod
    def abandon(self, key):
        """Drops a PENDING record and returns the number of failed attempts so far."""
        return 0

    @abstractmethod
    def attempts(self, key):
        return 0

    @abstractmethod
    def get(self, key):
        return None


class InMemoryDeliveryLedger(DeliveryLedger):
    """Process local ledger.

    Completed keys and failure counts are kept in the order they were last touched, so
    purging past the retention horizon only visits entries that actually expire.
    """

    def __init__(self, retention=timedelta(days=30), pending_timeout=timedelta(minutes=10),
                 clock=None):
        self._retention = retention
        self._pending_timeout = pending_timeout
        self._clock = clock or utcnow
        self._lock = threading.Lock()
        self._records = {}
        # key -> completed_at, oldest first
        self._completed = OrderedDict()
        # key -> (failures, last failure at), oldest first
        self._failures = OrderedDict()

    def _purge(self, now):
        horizon = now - self._retention
        while self._completed:
            key, completed_at = next(iter(self._completed.items()))
            if completed_at >= horizon:
                break
            self._completed.popitem(last=False)
            self._records.pop(key, None)
            self._failures.pop(key, None)
        while self._failures:
            key, (_count, failed_at) = next(iter(self._failures.items()))
            if failed_at >= horizon:
                break
            self._failures.popitem(last=False)

    def _failure_count(self, key):
        return self._failures.get(key, (0, None))[0]

    def _record_failure(self, key, now):
        count = self._failure_count(key) + 1
        self._failures[key] = (count, now)
        self._failures.move_to_end(key)
        return count

    def begin(self, key):
        with self._lock:
            now = self._clock()
            self._purge(now)
            record = self._records.get(key)
            if record is not None and record.status is DeliveryStatus.PENDING and \
                    record.created_at < now - self._pending_timeout:
                # the delivery holding it died without abandoning
                self._record_failure(key, now)
                record = None
            if record is not None:
                if record.status is DeliveryStatus.COMPLETED:
                    return BeginResult.DUPLICATE
                return BeginResult.IN_FLIGHT
            self._records[key] = DeliveryRecord(idempotency_key=key,
                                                status=DeliveryStatus.PENDING,
                                                created_at=now,
                                                attempts=self._failure_count(key))
            return BeginResult.BEGUN

    def complete(self, key):
        with self._lock:
            now = self._clock()
            record = self._records.get(key)
            if record is None:
                record = DeliveryRecord(idempotency_key=key,
                                        status=DeliveryStatus.PENDING,
                                        created_at=now,
                                        attempts=self._failure_count(key))
                self._records[key] = record
            record.status = DeliveryStatus.COMPLETED
            record.completed_at = now
            self._completed[key] = now
            self._completed.move_to_end(key)

    def abandon(self, key):
        with self._lock:
            now = self._clock()
            record = self._records.get(key)
            if record is not None and record.status is DeliveryStatus.PENDING:
                del self._records[key]
            return self._record_failure(key, now)

    def attempts(self, key):
        with self._lock:
            return self._failure_count(key)

    def get(self, key):
        with self._lock:
            return self._records.get(key)

    def __len__(self):
        with self._lock:
            return len(self._records)
