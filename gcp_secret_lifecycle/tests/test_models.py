# -*- coding: utf-8 -*-
import json
import unittest
from datetime import datetime, timezone

from gcp_secret_lifecycle import NotificationEvent, NotificationType, ValidationError


class TestNotificationEvent(unittest.TestCase):

    def test_wire_schema(self):
        payload = json.dumps({
            "type": "SECRET_EXPIRING_SOON",
            "actorUserId": "u0",
            "recipientUserIds": ["u1", "u2"],
            "projectId": "p1",
            "secretId": "s1",
            "title": "Expiring",
            "message": "Soon",
            "metadata": {"secretKey": "DB"},
            "createdAt": "2026-10-17T09:00:00+02:00",
        })
        event = NotificationEvent.from_json(payload.encode("utf-8"))
        self.assertIs(event.known_type, NotificationType.SECRET_EXPIRING_SOON)
        self.assertEqual(event.actor_user_id, "u0")
        self.assertIsNone(event.team_id)
        self.assertEqual(event.created_at, datetime(2026, 10, 17, 7, 0, tzinfo=timezone.utc))

        body = event.to_dict()
        self.assertEqual(body["createdAt"], "2026-10-17T07:00:00Z")
        self.assertEqual(body["recipientUserIds"], ["u1", "u2"])
        self.assertNotIn("teamId", body)

    def test_unknown_type_is_kept(self):
        event = NotificationEvent.from_json(json.dumps({
            "type": "SECRET_SHARED", "recipientUserIds": ["u1"],
            "title": "t", "message": "m"}))
        self.assertEqual(event.type, "SECRET_SHARED")
        self.assertIsNone(event.known_type)

    def test_invalid_payloads(self):
        valid = {"type": "SECURITY_ALERT", "recipientUserIds": ["user-42"],
                 "title": "New sign in", "message": "From a new device"}
        for payload in [b"", b"   ", b"\xff\xfe", "{not json", "[1, 2]",
                        json.dumps({"recipientUserIds": ["u1"]}),
                        json.dumps({"type": "ROLE_CHANGED", "recipientUserIds": []}),
                        json.dumps({"type": "ROLE_CHANGED"}),
                        json.dumps(dict(valid, recipientUserIds="user-42")),
                        json.dumps(dict(valid, recipientUserIds={"user-42": True})),
                        json.dumps(dict(valid, recipientUserIds=["user-42", 7])),
                        json.dumps({k: v for k, v in valid.items() if k != "title"}),
                        json.dumps(dict(valid, message=None)),
                        json.dumps(dict(valid, title=["New sign in"])),
                        json.dumps(dict(valid, metadata={"count": 3})),
                        json.dumps(dict(valid, metadata=["a"])),
                        json.dumps(dict(valid, createdAt="yesterday"))]:
            with self.assertRaises(ValidationError, msg=payload):
                NotificationEvent.from_json(payload)
        self.assertEqual(NotificationEvent.from_json(json.dumps(valid)).recipient_user_ids,
                         ["user-42"])
