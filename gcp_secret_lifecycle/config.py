# -*- coding: utf-8 -*-
"""
Runtime configuration.

Values come from SECRET_LIFECYCLE_* environment variables or from a utf-8 JSON object in
a Cloud Storage bucket, keys in the JSON are the field names below.

{
    "gcp_project_id": "string",
    "notifications_topic": "string",
    "notifications_subscription": "string",
    "dead_letter_topic": "string",
    "audit_url": "string",              # audit service base url, unset disables audit
    "audit_timeout_ms": 5000,
    "scan_cron": "0 9 * * *",           # five field crontab
    "scan_timezone": "Europe/London",   # unset is local time
    "warning_days": 7,
    "max_delivery_attempts": 5,
    "encryption_keys": ["fernet key", ...],   # newest first
    "encryption_key_secret": "projects/p/secrets/s"
    ...
}
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields

import google.auth
from google.cloud import storage

from .exceptions import ValidationError

ENV_PREFIX = "SECRET_LIFECYCLE_"
LOG_FORMAT = "%(asctime)s %(levelname)s %(threadName)s %(name)s %(message)s"


@dataclass
class LifecycleConfig:
    gcp_project_id: str = None
    notifications_topic: str = "notifications-events"
    notifications_subscription: str = "notifications-events-sub"
    dead_letter_topic: str = "notifications-events-dead-letter"
    audit_url: str = None
    audit_timeout_ms: int = 5000
    audit_workers: int = 4
    scan_cron: str = "0 9 * * *"
    scan_timezone: str = None
    warning_days: int = 7
    expired_check_cron: str = "0 * * * *"
    max_delivery_attempts: int = 5
    ledger_retention_days: int = 30
    subscriber_threads: int = 4
    encryption_keys: list = field(default_factory=list)
    encryption_key_secret: str = None
    key_refresh_ttl: int = 60
    log_level: str = "INFO"

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if f.type is int and not isinstance(value, int):
                try:
                    setattr(self, f.name, int(value))
                except (TypeError, ValueError):
                    raise ValidationError(f"{f.name} must be an integer got {value!r}") from None
            elif f.type is list and isinstance(value, str):
                setattr(self, f.name, [v.strip() for v in value.split(",") if v.strip()])

        for name in ("audit_timeout_ms", "audit_workers", "max_delivery_attempts",
                     "subscriber_threads", "ledger_retention_days"):
            if getattr(self, name) < 1:
                raise ValidationError(f"{name} must be at least 1")
        if self.warning_days < 0:
            raise ValidationError("warning_days must not be negative")
        if self.key_refresh_ttl < 30:
            raise ValidationError("key_refresh_ttl min is 30 seconds")
        if logging.getLevelName(str(self.log_level).upper()) not in range(0, 51):
            raise ValidationError(f"Unknown log_level {self.log_level}")

    @classmethod
    def from_mapping(cls, values):
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            logging.getLogger(__name__).warning(
                f"Ignoring unknown configuration keys {', '.join(sorted(unknown))}")
        return cls(**{k: v for k, v in values.items() if k in known and v is not None})

    @classmethod
    def from_env(cls, environ=None):
        environ = os.environ if environ is None else environ
        values = {}
        for f in fields(cls):
            env_name = ENV_PREFIX + f.name.upper()
            if env_name in environ and environ[env_name] != "":
                values[f.name] = environ[env_name]
        return cls.from_mapping(values)

    @classmethod
    def from_gcs(cls, bucket, blob_name, credentials=None):
        """Loads configuration from a JSON object in Google Cloud Storage.

        Args:
            bucket (str): The name of the GCS bucket.
            blob_name (str): The name of the object in the bucket.
            credentials: defaults to google.auth.default()
        """
        if credentials is None:
            credentials, _project_id = google.auth.default()
        client = storage.Client(credentials=credentials)
        blob = client.get_bucket(bucket).get_blob(blob_name)
        if blob is None:
            raise ValidationError(f"Configuration object gs://{bucket}/{blob_name} not found")
        try:
            values = json.loads(blob.download_as_bytes().decode("utf-8"))
        except (UnicodeDecodeError, json.decoder.JSONDecodeError) as e:
            raise ValidationError(
                f"Configuration object gs://{bucket}/{blob_name} is not JSON {e}") from e
        if not isinstance(values, dict):
            raise ValidationError(f"Configuration object gs://{bucket}/{blob_name} "
                                  f"must be a JSON object")
        return cls.from_mapping(values)


def configure_logging(level="INFO"):
    logging.basicConfig(level=logging.getLevelName(str(level).upper()), format=LOG_FORMAT)
