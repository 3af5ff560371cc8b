"""Tests for the relay's data models."""

import dataclasses

import pytest

from triage_relay.models import (
    DISABLED_POLICY,
    ActionClass,
    Category,
    Classification,
    CommentCreated,
    Decision,
    DedupKey,
    Issue,
    Outcome,
    Severity,
)


class TestIssue:
    """Test issue models."""

    def test_text_joins_title_and_body(self) -> None:
        """Test the text used for sensitive topic matching."""
        issue = Issue(repository="widgets", number=1, title="Crash", body="on login")
        assert issue.text == "Crash on login"

    def test_frozen(self) -> None:
        """Test that issues are immutable."""
        issue = Issue(repository="widgets", number=1, title="t", body="b")
        with pytest.raises(dataclasses.FrozenInstanceError):
            issue.number = 2  # type: ignore[misc]

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("/ralph", True),
            ("/ralph fix it please", True),
            ("/Ralph", False),
            (" /ralph", False),
            ("please /ralph", False),
            ("", False),
        ],
    )
    def test_fix_trigger_detection(self, text: str, expected: bool) -> None:
        """Test that only comments starting with /ralph are triggers."""
        issue = Issue(repository="widgets", number=1, title="t", body="b")
        assert CommentCreated(issue, text).is_fix_trigger is expected


class TestClassification:
    """Test the classification model."""

    def test_needs_clarification(self) -> None:
        """Test that open questions mean clarification is needed."""
        base = Classification(
            category=Category.BUG,
            severity=Severity.LOW,
            auto_fixable=False,
            confidence=0.5,
            rationale="r",
        )
        assert base.needs_clarification is False
        assert dataclasses.replace(base, open_questions=("Which?",)).needs_clarification is True


class TestDecisionModels:
    """Test decision, dedup key and outcome models."""

    def test_dedup_key_identity(self) -> None:
        """Test that keys compare by value and include the action class."""
        assert DedupKey("widgets", 1, ActionClass.TRIAGE) == DedupKey("widgets", 1, ActionClass.TRIAGE)
        assert DedupKey("widgets", 1, ActionClass.TRIAGE) != DedupKey("widgets", 1, ActionClass.FIX)
        assert str(DedupKey("widgets", 1, ActionClass.FIX)) == "widgets#1:fix"

    def test_outcome_succeeded(self) -> None:
        """Test that any recorded error means the outcome did not fully succeed."""
        assert Outcome(Decision.NOTIFY, notified=True).succeeded is True
        assert Outcome(Decision.NOTIFY, errors=("NotifyError: x",)).succeeded is False

    def test_disabled_policy(self) -> None:
        """Test the policy used for unconfigured repositories."""
        assert DISABLED_POLICY.enabled is False
        assert DISABLED_POLICY.auto_action_enabled is False
        assert DISABLED_POLICY.sensitive_topic_patterns == ()
