# -*- coding: utf-8 -*-
"""Effects of an inbound NotificationEvent: in-app inbox records and emails."""

import logging
import uuid

from .exceptions import PermanentDeliveryError, TransientDeliveryError
from .models import INVITATION_TYPES, InboxNotification, NotificationType, as_utc, utcnow

# preference keys consulted per event type: (enabled, in app)
_PREFERENCE_KEYS = {
    NotificationType.SECRET_EXPIRING_SOON: ("secretExpiration", "secretExpirationInApp"),
    NotificationType.PROJECT_INVITATION: ("projectInvitations", "projectInvitationsInApp"),
    NotificationType.TEAM_INVITATION: ("projectInvitations", "projectInvitationsInApp"),
    NotificationType.SECURITY_ALERT: ("securityAlerts", "securityAlertsInApp"),
    NotificationType.ROLE_CHANGED: ("email", "roleChangedInApp"),
}
_GENERAL_KEY = "email"


def _preference(prefs, key, default=True):
    value = (prefs or {}).get(key)
    if isinstance(value, bool):
        return value
    return default


class NotificationHandler:
    """Applies one NotificationEvent for every recipient.

    Inbox records get an id derived from the idempotency key and the recipient, so a
    replay after a partial failure overwrites rather than duplicates. A recipient that
    fails is logged and the others still get the notification; only when every
    recipient fails is the event reported as a transient failure.
    """

    def __init__(self, user_directory, inbox, email_sender):
        self._users = user_directory
        self._inbox = inbox
        self._email = email_sender

    def handle(self, event, idempotency_key):
        if event.known_type in INVITATION_TYPES:
            self._handle_invitation(event)
            return

        users = self._users.find_all(event.recipient_user_ids)
        succeeded = 0
        failed = 0
        for user_id in event.recipient_user_ids:
            user = users.get(user_id)
            if user is None:
                logging.getLogger(__name__).debug(
                    f"User {user_id} not found when handling notification {event.type}, "
                    f"skipping")
                continue
            try:
                self._process_for_user(user, event, idempotency_key)
                succeeded += 1
            except Exception:
                logging.getLogger(__name__).exception(
                    f"Failed to process notification for user {user_id} in event {event.type}")
                failed += 1

        logging.getLogger(__name__).info(
            f"Processed notification event {event.type}: {succeeded} succeeded, {failed} "
            f"failed out of {len(event.recipient_user_ids)} recipients")

        if succeeded == 0 and failed > 0:
            raise TransientDeliveryError(
                f"All recipients failed for notification event {event.type}")

    def _handle_invitation(self, event):
        metadata = event.metadata
        email = metadata.get("email")
        token = metadata.get("token")
        if not email:
            raise PermanentDeliveryError("Invitation email event missing recipient email")
        if not token:
            raise PermanentDeliveryError(f"Invitation email event missing token for {email}")
        self._email.send_invitation(email, token,
                                    metadata.get("projectName", ""),
                                    metadata.get("inviterName", "A teammate"))

    def _process_for_user(self, user, event, idempotency_key):
        prefs = user.notification_preferences
        enabled_key, in_app_key = _PREFERENCE_KEYS.get(event.known_type,
                                                       (_GENERAL_KEY, _GENERAL_KEY))
        if not _preference(prefs, enabled_key):
            logging.getLogger(__name__).debug(
                f"Notification {event.type} disabled by preferences for user {user.id}")
            return

        if _preference(prefs, in_app_key, default=_preference(prefs, enabled_key)):
            self._inbox.save(InboxNotification(
                id=str(uuid.uuid5(uuid.NAMESPACE_URL, f"{idempotency_key}/{user.id}")),
                user_id=user.id,
                type=event.type,
                title=event.title or "Notification",
                body=event.message,
                created_at=event.created_at or utcnow(),
                metadata=dict(event.metadata) or None,
            ))

        if _preference(prefs, _GENERAL_KEY) and user.email:
            self._send_email(user, event)

    def _send_email(self, user, event):
        metadata = event.metadata
        if event.known_type is NotificationType.SECRET_EXPIRING_SOON:
            secret_key = metadata.get("secretKey")
            project_name = metadata.get("projectName")
            expires_at = metadata.get("expiresAt")
            if not (secret_key and project_name and expires_at):
                logging.getLogger(__name__).warning(
                    f"Missing metadata for expiration warning email in event {event.type}")
                return
            self._email.send_expiration_warning(user.email, secret_key, project_name,
                                                as_utc(expires_at))
        elif event.known_type is NotificationType.ROLE_CHANGED:
            project_name = metadata.get("projectName")
            new_role = metadata.get("newRole")
            if not (project_name and new_role):
                logging.getLogger(__name__).warning(
                    f"Missing metadata for role change email in event {event.type}")
                return
            self._email.send_membership_change(user.email, project_name,
                                               metadata.get("oldRole", ""), new_role)
