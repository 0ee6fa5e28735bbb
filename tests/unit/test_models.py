"""
Unit tests for the coaching domain models.

These tests verify the core business logic without touching
external services (no API calls, no database, no file system).
"""

from datetime import datetime, timezone

import pytest

from sage.core.coaching.models import Conversation, Goal, Message, Metric, Role


# ---------------------------------------------------------------------------
# Metric Tests
# ---------------------------------------------------------------------------

class TestMetric:
    """Tests for the Metric value object."""

    def test_each_metric_gets_its_own_id(self):
        """Ids are generated per metric so two metrics never collide."""
        first = Metric(name="Distance", unit="km")
        second = Metric(name="Distance", unit="km")

        assert first.id != second.id

    def test_progress_is_none_without_target(self):
        metric = Metric(name="Pace", unit="min/km", current_value=6.0)
        assert metric.progress is None

    def test_progress_for_higher_is_better(self):
        """Half way to a higher-is-better target is 0.5."""
        metric = Metric(name="Words", unit="count", target_value=200, current_value=100)
        assert metric.progress == 0.5

    def test_progress_is_clamped_to_one(self):
        """Overshooting the target still reads as complete."""
        metric = Metric(name="Words", unit="count", target_value=100, current_value=250)
        assert metric.progress == 1.0

    def test_progress_for_lower_is_better(self):
        """For lower-is-better metrics, going under the target is complete."""
        metric = Metric(
            name="5k time",
            unit="minutes",
            target_value=25.0,
            current_value=50.0,
            higher_is_better=False,
        )
        assert metric.progress == 0.5

        metric.current_value = 24.0
        assert metric.progress == 1.0


# ---------------------------------------------------------------------------
# Goal Tests
# ---------------------------------------------------------------------------

class TestGoal:
    """Tests for the Goal aggregate."""

    def test_new_goal_is_not_persisted(self):
        goal = Goal(name="Guitar")

        assert not goal.is_persisted
        assert goal.metrics == []

    def test_goal_rejects_blank_name(self):
        """A goal without a skill name makes no sense."""
        with pytest.raises(ValueError, match="cannot be empty"):
            Goal(name="   ")

    def test_timestamps_are_utc(self):
        goal = Goal(name="Spanish")

        assert goal.created_at.tzinfo is not None
        assert goal.created_at.utcoffset().total_seconds() == 0


# ---------------------------------------------------------------------------
# Conversation and Message Tests
# ---------------------------------------------------------------------------

class TestConversation:
    """Tests for conversation display behavior."""

    def test_display_title_prefers_title(self):
        conversation = Conversation(goal_id=1, title="Scales practice")
        assert conversation.display_title == "Scales practice"

    def test_display_title_falls_back_to_date(self):
        """Untitled conversations show when they were started."""
        created = datetime(2025, 3, 4, 9, 5, tzinfo=timezone.utc)
        conversation = Conversation(goal_id=1, created_at=created)

        local = created.astimezone()
        title = conversation.display_title

        assert title.startswith(f"{local.strftime('%b')} {local.day}, {local.year} at ")
        assert title.endswith(local.strftime("%M %p"))


class TestMessage:
    """Tests for chat messages."""

    def test_role_accepts_raw_strings(self):
        """Rows and callers may pass plain strings for the role."""
        message = Message(conversation_id=1, role="assistant")

        assert message.role is Role.ASSISTANT

    def test_unknown_role_is_rejected(self):
        with pytest.raises(ValueError):
            Message(conversation_id=1, role="system")

    def test_append_grows_content(self):
        """Streamed chunks build up the reply in order."""
        message = Message(conversation_id=1, role=Role.ASSISTANT)

        message.append("Hello")
        message.append(", world!")

        assert message.content == "Hello, world!"
