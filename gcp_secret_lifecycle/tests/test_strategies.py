# -*- coding: utf-8 -*-
"""
Tests for the rotation strategies and their registry

"""

import logging
import re
import unittest

from gcp_secret_lifecycle import *


def setup_module():
    logging.basicConfig(level=logging.DEBUG)


URLSAFE_NO_PADDING = re.compile(r"^[A-Za-z0-9_-]+$")


class TestDefaultRotationStrategy(unittest.TestCase):

    def test_appends_timestamp(self):
        strategy = DefaultRotationStrategy()
        rotated = strategy.rotate("abc123")
        match = re.match(r"^abc123-rotated-(\d+)$", rotated)
        self.assertIsNotNone(match, rotated)
        # a plausible unix millisecond timestamp
        self.assertGreater(int(match.group(1)), 1_600_000_000_000)

    def test_later_call_has_larger_timestamp(self):
        frozen = DefaultRotationStrategy(clock=lambda: 1_700_000_000_000)
        first = int(frozen.rotate("abc123").rsplit("-", 1)[1])
        second = int(frozen.rotate("abc123").rsplit("-", 1)[1])
        self.assertGreater(second, first)

    def test_clock_moving_forward_is_used(self):
        ticks = iter([1_700_000_000_000, 1_700_000_005_000])
        strategy = DefaultRotationStrategy(clock=lambda: next(ticks))
        strategy.rotate("x")
        self.assertEqual(strategy.rotate("x"), "x-rotated-1700000005000")


class TestPostgresRotationStrategy(unittest.TestCase):

    def test_shape_independent_of_input(self):
        strategy = PostgresRotationStrategy()
        for current in ["", "abc123", "pg_passwd_old", "x" * 500]:
            rotated = strategy.rotate(current)
            self.assertTrue(rotated.startswith("pg_passwd_"))
            token = rotated[len("pg_passwd_"):]
            self.assertEqual(len(token), 32)
            self.assertNotIn("=", token)
            self.assertRegex(token, URLSAFE_NO_PADDING)

    def test_values_are_random(self):
        strategy = PostgresRotationStrategy()
        values = {strategy.rotate("same") for _ in range(50)}
        self.assertEqual(len(values), 50)


class TestSendGridRotationStrategy(unittest.TestCase):

    def test_shape(self):
        strategy = SendGridRotationStrategy()
        for current in ["", "SG.old.mock_generated_key", "anything"]:
            rotated = strategy.rotate(current)
            self.assertTrue(rotated.startswith("SG."))
            self.assertTrue(rotated.endswith(".mock_generated_key"))
            self.assertRegex(rotated, r"^SG\.[0-9a-f]{32}\.mock_generated_key$")


class TestStrategyRegistry(unittest.TestCase):

    def setUp(self):
        self.registry = StrategyRegistry.default()

    def test_resolves_every_type(self):
        self.assertIsInstance(self.registry.resolve("DEFAULT"), DefaultRotationStrategy)
        self.assertIsInstance(self.registry.resolve("postgres"), PostgresRotationStrategy)
        self.assertIsInstance(self.registry.resolve(StrategyType.SENDGRID),
                              SendGridRotationStrategy)
        self.assertEqual(set(self.registry.strategy_types), set(StrategyType))

    def test_rotate_dispatches(self):
        self.assertTrue(self.registry.rotate("SENDGRID", "old").startswith("SG."))

    def test_unknown_strategy(self):
        with self.assertRaises(UnsupportedStrategyError) as ctx:
            self.registry.rotate("MYSQL", "value")
        self.assertEqual(ctx.exception.strategy_type, "MYSQL")
        with self.assertRaises(UnsupportedStrategyError):
            self.registry.resolve(None)

    def test_table_is_read_only(self):
        with self.assertRaises(TypeError):
            self.registry._table[StrategyType.DEFAULT] = SendGridRotationStrategy()

    def test_every_type_must_be_registered(self):
        with self.assertRaises(AssertionError):
            StrategyRegistry([DefaultRotationStrategy(), PostgresRotationStrategy()])

    def test_duplicates_rejected(self):
        with self.assertRaises(AssertionError):
            StrategyRegistry([DefaultRotationStrategy(),
                              DefaultRotationStrategy(),
                              PostgresRotationStrategy(),
                              SendGridRotationStrategy()])
