# -*- coding: utf-8 -*-
"""Data carried between the rotation, scanning and notification components.

All timestamps are timezone aware and normalised to UTC. A ``Secret`` only ever holds
ciphertext; plaintext exists solely inside a running rotation.
"""

import json
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum

from dateutil import parser

from .exceptions import ValidationError


def utcnow():
    return datetime.now(timezone.utc)


def as_utc(value):
    """Parse or coerce a timestamp to an aware UTC datetime.

    Naive datetimes are taken to already be UTC.
    """
    if isinstance(value, str):
        try:
            value = parser.isoparse(value)
        except ValueError as e:
            raise ValidationError(f"Invalid ISO-8601 timestamp {value!r}") from e
    if not isinstance(value, datetime):
        raise ValidationError(f"Expected a timestamp got {type(value).__name__}")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def isoformat(value):
    return as_utc(value).isoformat().replace("+00:00", "Z")


class NotificationType(str, Enum):
    SECRET_EXPIRING_SOON = "SECRET_EXPIRING_SOON"
    PROJECT_INVITATION = "PROJECT_INVITATION"
    TEAM_INVITATION = "TEAM_INVITATION"
    SECURITY_ALERT = "SECURITY_ALERT"
    ROLE_CHANGED = "ROLE_CHANGED"

    @classmethod
    def known(cls, value):
        """Returns the matching member or None for a type this code does not know."""
        try:
            return cls(value)
        except ValueError:
            return None


INVITATION_TYPES = frozenset([NotificationType.PROJECT_INVITATION,
                              NotificationType.TEAM_INVITATION])


@dataclass(frozen=True)
class Secret:
    id: str
    project_id: str
    secret_key: str
    encrypted_value: str
    strategy_type: str
    expires_at: datetime = None
    version: int = 0
    created_by: str = None

    def with_value(self, encrypted_value):
        return replace(self, encrypted_value=encrypted_value, version=self.version + 1)

    def is_expired(self, now=None):
        if self.expires_at is None:
            return False
        return as_utc(self.expires_at) < (now or utcnow())


@dataclass(frozen=True)
class Project:
    id: str
    name: str
    owner_id: str = None


@dataclass(frozen=True)
class User:
    id: str
    email: str = None
    display_name: str = None
    notification_preferences: dict = None


@dataclass(frozen=True)
class AuditEvent:
    action: str
    resource_key: str
    actor_username: str
    timestamp: datetime = field(default_factory=utcnow)

    def to_wire(self):
        return {"action": self.action,
                "secretKey": self.resource_key,
                "username": self.actor_username}


@dataclass
class NotificationEvent:
    """Generic notification decoupling a domain trigger from its delivery channels.

    ``type`` is kept as a plain string so events of a type unknown to this build are
    carried through and recorded rather than rejected.
    """
    type: str
    recipient_user_ids: list
    title: str
    message: str
    actor_user_id: str = None
    project_id: str = None
    team_id: str = None
    secret_id: str = None
    metadata: dict = field(default_factory=dict)
    created_at: datetime = None

    _WIRE_FIELDS = (("actorUserId", "actor_user_id"),
                    ("projectId", "project_id"),
                    ("teamId", "team_id"),
                    ("secretId", "secret_id"))

    def __post_init__(self):
        if isinstance(self.type, NotificationType):
            self.type = self.type.value
        if not self.type or not isinstance(self.type, str):
            raise ValidationError("Notification event must have a type")
        if not isinstance(self.recipient_user_ids, (list, tuple)) or \
                not self.recipient_user_ids or \
                not all(isinstance(r, str) and r for r in self.recipient_user_ids):
            raise ValidationError(
                f"Notification event {self.type} needs at least one recipient")
        self.recipient_user_ids = list(self.recipient_user_ids)
        for name in ("title", "message"):
            if not isinstance(getattr(self, name), str):
                raise ValidationError(
                    f"Notification event {self.type} {name} must be a string")
        if self.metadata is None:
            self.metadata = {}
        if any(not isinstance(k, str) or not isinstance(v, str)
               for k, v in self.metadata.items()):
            raise ValidationError("Notification metadata must map strings to strings")
        if self.created_at is not None:
            self.created_at = as_utc(self.created_at)

    @property
    def known_type(self):
        return NotificationType.known(self.type)

    def to_dict(self):
        body = {"type": self.type,
                "recipientUserIds": list(self.recipient_user_ids),
                "title": self.title,
                "message": self.message}
        for wire, attr in self._WIRE_FIELDS:
            if getattr(self, attr) is not None:
                body[wire] = getattr(self, attr)
        if self.metadata:
            body["metadata"] = dict(self.metadata)
        body["createdAt"] = isoformat(self.created_at or utcnow())
        return body

    def to_json(self):
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, body):
        if not isinstance(body, dict):
            raise ValidationError("Notification event payload must be a JSON object")
        try:
            return cls(type=body.get("type"),
                       recipient_user_ids=body.get("recipientUserIds"),
                       title=body.get("title"),
                       message=body.get("message"),
                       metadata=body.get("metadata") or {},
                       created_at=body.get("createdAt"),
                       **{attr: body.get(wire) for wire, attr in cls._WIRE_FIELDS})
        except (TypeError, AttributeError) as e:
            raise ValidationError(f"Malformed notification event {e}") from e

    @classmethod
    def from_json(cls, payload):
        if isinstance(payload, bytes):
            try:
                payload = payload.decode("utf-8")
            except UnicodeDecodeError as e:
                raise ValidationError("Notification event payload is not utf-8") from e
        if not payload or not payload.strip():
            raise ValidationError("Empty notification event payload")
        try:
            body = json.loads(payload)
        except json.decoder.JSONDecodeError as e:
            raise ValidationError(f"Notification event payload is not valid JSON {e}") from e
        return cls.from_dict(body)


class DeliveryStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"


@dataclass
class DeliveryRecord:
    idempotency_key: str
    status: DeliveryStatus
    created_at: datetime = field(default_factory=utcnow)
    completed_at: datetime = None
    attempts: int = 0


@dataclass(frozen=True)
class InboxNotification:
    id: str
    user_id: str
    type: str
    title: str
    body: str
    created_at: datetime
    metadata: dict = None


@dataclass(frozen=True)
class RotationResult:
    secret_id: str
    secret_key: str
    version: int
    strategy_type: str


@dataclass
class ScanReport:
    window_start: datetime
    window_end: datetime
    found: int = 0
    published: int = 0
    skipped: int = 0
    failed: int = 0
