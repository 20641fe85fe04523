# -*- coding: utf-8 -*-
"""Prometheus metrics for secret operations."""

from enum import Enum

from prometheus_client import CollectorRegistry, Counter, Histogram


class SecretOperation(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    ROTATE = "rotate"


class OperationMetrics:
    """Counter per operation kind and a histogram over the full rotation span.

    The collectors are registered on an explicit registry built once at startup and
    handed to whichever component records into it. prometheus_client metrics are safe
    for concurrent updates.
    """

    def __init__(self, registry=None):
        self._registry = registry if registry is not None else CollectorRegistry()
        self._operations = Counter(
            "secrets_operations",
            "Total secret operations grouped by type",
            ["operation"],
            registry=self._registry,
        )
        # pre-create every label so all kinds export a zero
        for operation in SecretOperation:
            self._operations.labels(operation=operation.value)
        self._rotation_duration = Histogram(
            "secrets_rotation_duration_seconds",
            "Duration of secret rotation from decrypt to persist",
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5],
            registry=self._registry,
        )

    @property
    def registry(self):
        return self._registry

    def record_operation(self, operation):
        self._operations.labels(operation=SecretOperation(operation).value).inc()

    def time_rotation(self):
        """Context manager observing the enclosed block into the rotation histogram."""
        return self._rotation_duration.time()

    def operation_count(self, operation):
        value = self._registry.get_sample_value(
            "secrets_operations_total", {"operation": SecretOperation(operation).value})
        return value or 0.0

    def rotation_count(self):
        return self._registry.get_sample_value("secrets_rotation_duration_seconds_count") or 0.0
