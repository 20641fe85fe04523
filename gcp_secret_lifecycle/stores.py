# -*- coding: utf-8 -*-
"""
Collaborators the lifecycle core calls but does not own.

Persistence, user management and mail delivery live in other services. The core only
relies on the small interfaces below. The in-memory implementations back the tests and
single process deployments.
"""

import logging
import threading
from abc import ABC, abstractmethod

from .exceptions import RotationConflictError, SecretNotFoundError
from .models import as_utc


class SecretStore(ABC):

    @abstractmethod
    def get(self, secret_id):
        """Returns the Secret or None."""
        return None

    @abstractmethod
    def find_expiring_between(self, start, end):
        """Secrets whose expires_at lies in [start, end], both ends inclusive."""
        return []

    @abstractmethod
    def find_expired(self, now):
        return []

    @abstractmethod
    def compare_and_set(self, secret_id, expected_version, encrypted_value):
        """Persists encrypted_value only if the stored version still equals expected_version.

        Returns:
            Secret: the stored secret with its version bumped.

        Raises:
            RotationConflictError: if the version moved on since it was read.
        """
        return None


class ProjectStore(ABC):

    @abstractmethod
    def get(self, project_id):
        return None


class UserDirectory(ABC):

    @abstractmethod
    def find_all(self, user_ids):
        """Returns a dict of user id to User for the ids that exist."""
        return {}


class Inbox(ABC):
    """In-app notification storage."""

    @abstractmethod
    def save(self, notification):
        """Upserts by notification id."""
        return None


class EmailSender(ABC):

    @abstractmethod
    def send_expiration_warning(self, email, secret_key, project_name, expires_at):
        pass

    @abstractmethod
    def send_membership_change(self, email, project_name, old_role, new_role):
        pass

    @abstractmethod
    def send_invitation(self, email, token, project_name, inviter_name):
        pass


class InMemorySecretStore(SecretStore):

    def __init__(self, secrets=None):
        self._lock = threading.Lock()
        self._secrets = {s.id: s for s in (secrets or [])}

    def put(self, secret):
        with self._lock:
            self._secrets[secret.id] = secret

    def get(self, secret_id):
        with self._lock:
            return self._secrets.get(secret_id)

    def find_expiring_between(self, start, end):
        start, end = as_utc(start), as_utc(end)
        with self._lock:
            return [s for s in self._secrets.values()
                    if s.expires_at is not None and start <= as_utc(s.expires_at) <= end]

    def find_expired(self, now):
        now = as_utc(now)
        with self._lock:
            return [s for s in self._secrets.values() if s.is_expired(now)]

    def compare_and_set(self, secret_id, expected_version, encrypted_value):
        with self._lock:
            current = self._secrets.get(secret_id)
            if current is None:
                raise SecretNotFoundError(secret_id)
            if current.version != expected_version:
                raise RotationConflictError(
                    secret_id,
                    f"expected version {expected_version} found {current.version}")
            updated = current.with_value(encrypted_value)
            self._secrets[secret_id] = updated
            return updated


class InMemoryProjectStore(ProjectStore):

    def __init__(self, projects=None):
        self._projects = {p.id: p for p in (projects or [])}

    def get(self, project_id):
        return self._projects.get(project_id)


class InMemoryUserDirectory(UserDirectory):

    def __init__(self, users=None):
        self._users = {u.id: u for u in (users or [])}

    def find_all(self, user_ids):
        return {uid: self._users[uid] for uid in user_ids if uid in self._users}


class InMemoryInbox(Inbox):

    def __init__(self):
        self._lock = threading.Lock()
        self._notifications = {}

    def save(self, notification):
        with self._lock:
            self._notifications[notification.id] = notification
        return notification

    def for_user(self, user_id):
        with self._lock:
            return [n for n in self._notifications.values() if n.user_id == user_id]

    def __len__(self):
        with self._lock:
            return len(self._notifications)


class LoggingEmailSender(EmailSender):
    """Stands in for a mail provider, logs who would be mailed and why."""

    def send_expiration_warning(self, email, secret_key, project_name, expires_at):
        logging.getLogger(__name__).info(
            f"Expiration warning for {secret_key} in {project_name} to {email}")

    def send_membership_change(self, email, project_name, old_role, new_role):
        logging.getLogger(__name__).info(
            f"Role change {old_role} -> {new_role} in {project_name} to {email}")

    def send_invitation(self, email, token, project_name, inviter_name):
        # token is a credential, never logged
        logging.getLogger(__name__).info(f"Invitation to {project_name} sent to {email}")
