"""Tests for the triage relay service."""

from __future__ import annotations

import asyncio
import json
from typing import Any
from unittest.mock import AsyncMock

import pytest

from triage_relay.config.schema import RelayConfig
from triage_relay.core.dedup import TTLDedupCache
from triage_relay.core.relay import Admission, TriageRelay
from triage_relay.models.decision import Decision
from triage_relay.models.issue import CommentCreated, Issue, IssueOpened
from triage_relay.utils.async_helpers import NotifyError, SpawnError
from triage_relay.utils.metrics import MetricsRegistry


@pytest.fixture
def relay(
    relay_config: RelayConfig,
    mock_provider: AsyncMock,
    mock_notifier: AsyncMock,
    mock_commenter: AsyncMock,
    mock_fix_invoker: AsyncMock,
    metrics: MetricsRegistry,
    clock: Any,
) -> TriageRelay:
    """Create a relay wired to mocks and a fake-clock dedup cache."""
    return TriageRelay(
        relay_config,
        provider=mock_provider,
        notifier=mock_notifier,
        commenter=mock_commenter,
        fix_invoker=mock_fix_invoker,
        dedup=TTLDedupCache(ttl=relay_config.dedup.ttl, clock=clock),
        metrics=metrics,
    )


def _issue(repository: str = "widgets", number: int = 42, **kwargs: Any) -> Issue:
    fields: dict[str, Any] = {
        "title": "Null pointer on login",
        "body": "Clicking login with an empty password crashes the page.",
    }
    fields.update(kwargs)
    return Issue(repository=repository, number=number, **fields)


def _respond_with(mock_provider: AsyncMock, payload: dict[str, Any], **overrides: Any) -> None:
    mock_provider.complete.return_value = json.dumps({**payload, **overrides})


class TestAdmission:
    """Test the synchronous admission phase."""

    async def test_accepts_enabled_repository(
        self, relay: TriageRelay, metrics: MetricsRegistry
    ) -> None:
        """Test that an issue on an enabled repository is accepted."""
        await relay.start()
        assert relay.admit_issue(IssueOpened(_issue())) is Admission.ACCEPTED
        await relay.stop()

        assert metrics.events_received.get() == 1
        assert metrics.events_processed.get() == 1

    @pytest.mark.parametrize("repository", ["archived", "unknown-repo"])
    async def test_rejects_disabled_and_unknown(
        self,
        relay: TriageRelay,
        mock_provider: AsyncMock,
        metrics: MetricsRegistry,
        repository: str,
    ) -> None:
        """Test that disabled and unconfigured repositories are skipped."""
        admission = relay.admit_issue(IssueOpened(_issue(repository)))

        assert admission is Admission.DISABLED
        assert relay.active_tasks == 0
        assert len(relay.dedup) == 0
        mock_provider.complete.assert_not_awaited()
        assert metrics.events_skipped.get({"reason": "disabled"}) == 1

    async def test_duplicate_within_ttl(
        self, relay: TriageRelay, mock_provider: AsyncMock, metrics: MetricsRegistry
    ) -> None:
        """Test that redelivery of the same issue is refused."""
        await relay.start()
        first = relay.admit_issue(IssueOpened(_issue()))
        second = relay.admit_issue(IssueOpened(_issue()))
        await relay.stop()

        assert first is Admission.ACCEPTED
        assert second is Admission.DUPLICATE
        assert mock_provider.complete.await_count == 1
        assert metrics.events_skipped.get({"reason": "duplicate"}) == 1

    async def test_readmitted_after_ttl(
        self, relay: TriageRelay, clock: Any, relay_config: RelayConfig
    ) -> None:
        """Test that the same issue is admitted again once the window passes."""
        await relay.start()
        assert relay.admit_issue(IssueOpened(_issue())) is Admission.ACCEPTED
        clock.advance(relay_config.dedup.ttl)
        assert relay.admit_issue(IssueOpened(_issue())) is Admission.ACCEPTED
        await relay.stop()

    async def test_triage_and_fix_keys_are_independent(self, relay: TriageRelay) -> None:
        """Test that a fix trigger is not blocked by an earlier triage."""
        await relay.start()
        triage = relay.admit_issue(IssueOpened(_issue()))
        fix = relay.admit_fix_trigger(CommentCreated(_issue(), "/ralph please"))
        await relay.stop()

        assert triage is Admission.ACCEPTED
        assert fix is Admission.ACCEPTED
        assert len(relay.dedup) == 2

    async def test_fix_trigger_on_disabled_repository(
        self, relay: TriageRelay, mock_fix_invoker: AsyncMock
    ) -> None:
        """Test that fix triggers respect the enabled flag."""
        admission = relay.admit_fix_trigger(CommentCreated(_issue("archived"), "/ralph"))

        assert admission is Admission.DISABLED
        mock_fix_invoker.start_fix.assert_not_awaited()

    async def test_fix_trigger_duplicate(self, relay: TriageRelay) -> None:
        """Test that a second trigger within the window is refused."""
        await relay.start()
        first = relay.admit_fix_trigger(CommentCreated(_issue("gadgets"), "/ralph"))
        second = relay.admit_fix_trigger(CommentCreated(_issue("gadgets"), "/ralph again"))
        await relay.stop()

        assert first is Admission.ACCEPTED
        assert second is Admission.DUPLICATE


class TestProcessIssue:
    """Test classify, decide and dispatch for one admitted issue."""

    async def test_auto_act_flow(
        self,
        relay: TriageRelay,
        mock_fix_invoker: AsyncMock,
        mock_notifier: AsyncMock,
        metrics: MetricsRegistry,
    ) -> None:
        """Test a confident auto-fixable bug on an auto-action repository."""
        issue = _issue()
        outcome = await relay.process_issue(issue, relay.policies.lookup("widgets"))

        assert outcome is not None
        assert outcome.decision is Decision.AUTO_ACT
        assert outcome.fix_started is True
        mock_fix_invoker.start_fix.assert_awaited_once_with(
            "widgets", 42, "Add a null check in login.py and a regression test."
        )
        mock_notifier.notify.assert_awaited_once()
        assert metrics.decisions.get({"decision": "auto_act"}) == 1
        assert metrics.events_processed.get() == 1
        assert metrics.processing_duration.get_stats()["count"] == 1

    async def test_auto_action_disabled_notifies(
        self,
        relay: TriageRelay,
        mock_fix_invoker: AsyncMock,
        mock_notifier: AsyncMock,
    ) -> None:
        """Test that a repository without auto-action only gets a notification."""
        issue = _issue("gadgets")
        outcome = await relay.process_issue(issue, relay.policies.lookup("gadgets"))

        assert outcome is not None
        assert outcome.decision is Decision.NOTIFY
        mock_fix_invoker.start_fix.assert_not_awaited()
        mock_notifier.notify.assert_awaited_once()

    async def test_sensitive_topic_notifies(
        self, relay: TriageRelay, mock_fix_invoker: AsyncMock
    ) -> None:
        """Test that a sensitive topic in the body blocks auto-action."""
        issue = _issue(body="Login crashes; also touches the SECURITY middleware.")
        outcome = await relay.process_issue(issue, relay.policies.lookup("widgets"))

        assert outcome is not None
        assert outcome.decision is Decision.NOTIFY
        mock_fix_invoker.start_fix.assert_not_awaited()

    async def test_offer_flow(
        self,
        relay: TriageRelay,
        mock_provider: AsyncMock,
        mock_notifier: AsyncMock,
        analysis_payload: dict[str, Any],
    ) -> None:
        """Test a moderately confident classification yields an offer."""
        _respond_with(mock_provider, analysis_payload, confidence=0.72)

        outcome = await relay.process_issue(_issue(), relay.policies.lookup("widgets"))

        assert outcome is not None
        assert outcome.decision is Decision.OFFER
        assert "/ralph" in mock_notifier.notify.await_args.args[0]

    async def test_clarify_flow(
        self,
        relay: TriageRelay,
        mock_provider: AsyncMock,
        mock_commenter: AsyncMock,
        analysis_payload: dict[str, Any],
    ) -> None:
        """Test that open questions produce a clarification comment."""
        _respond_with(
            mock_provider,
            analysis_payload,
            needsClarification=["Which browser?", "Which account type?"],
        )

        outcome = await relay.process_issue(_issue(), relay.policies.lookup("widgets"))

        assert outcome is not None
        assert outcome.decision is Decision.CLARIFY
        body = mock_commenter.post_comment.await_args.args[2]
        assert "1. Which browser?" in body
        assert "2. Which account type?" in body

    async def test_unparseable_response_skips_dispatch(
        self,
        relay: TriageRelay,
        mock_provider: AsyncMock,
        mock_notifier: AsyncMock,
        metrics: MetricsRegistry,
    ) -> None:
        """Test that a provider failure ends the task without side effects."""
        mock_provider.complete.return_value = "I could not decide."

        outcome = await relay.process_issue(_issue(), relay.policies.lookup("widgets"))

        assert outcome is None
        mock_notifier.notify.assert_not_awaited()
        assert metrics.errors.get({"kind": "ProviderError"}) == 1
        assert metrics.events_processed.get() == 0

    async def test_schema_violation_skips_dispatch(
        self,
        relay: TriageRelay,
        mock_provider: AsyncMock,
        mock_notifier: AsyncMock,
        metrics: MetricsRegistry,
        analysis_payload: dict[str, Any],
    ) -> None:
        """Test that a schema violation is counted as a SchemaError."""
        _respond_with(mock_provider, analysis_payload, confidence=1.5)

        outcome = await relay.process_issue(_issue(), relay.policies.lookup("widgets"))

        assert outcome is None
        mock_notifier.notify.assert_not_awaited()
        assert metrics.errors.get({"kind": "SchemaError"}) == 1

    async def test_failed_classification_keeps_dedup_slot(
        self, relay: TriageRelay, mock_provider: AsyncMock
    ) -> None:
        """Test that redelivery after a failed classification is still a duplicate."""
        mock_provider.complete.return_value = "not json"

        await relay.start()
        assert relay.admit_issue(IssueOpened(_issue())) is Admission.ACCEPTED
        await relay.stop()

        assert relay.admit_issue(IssueOpened(_issue())) is Admission.DUPLICATE

    async def test_unexpected_error_is_contained(
        self,
        relay: TriageRelay,
        mock_provider: AsyncMock,
        metrics: MetricsRegistry,
    ) -> None:
        """Test that an unexpected exception terminates only its own task."""
        mock_provider.complete.side_effect = RuntimeError("boom")

        await relay.start()
        relay.admit_issue(IssueOpened(_issue()))
        relay.admit_issue(IssueOpened(_issue("gadgets", 7)))
        await relay.stop()

        assert metrics.errors.get({"kind": "unexpected"}) == 2
        assert relay.active_tasks == 0


class TestFixTrigger:
    """Test human-requested fixes."""

    async def test_starts_agent_and_notifies(
        self,
        relay: TriageRelay,
        mock_fix_invoker: AsyncMock,
        mock_notifier: AsyncMock,
        metrics: MetricsRegistry,
    ) -> None:
        """Test the fix prompt is passed to the agent and the operator notified."""
        started = await relay.process_fix_trigger(_issue("gadgets", 7))

        assert started is True
        repo, number, prompt = mock_fix_invoker.start_fix.await_args.args
        assert (repo, number) == ("gadgets", 7)
        assert "acme/gadgets#7" in prompt
        assert "Null pointer on login" in prompt
        mock_notifier.notify.assert_awaited_once()
        assert metrics.fix_triggers.get() == 1

    async def test_spawn_failure_skips_notification(
        self,
        relay: TriageRelay,
        mock_fix_invoker: AsyncMock,
        mock_notifier: AsyncMock,
        metrics: MetricsRegistry,
    ) -> None:
        """Test that a failed start is reported and nothing is announced."""
        mock_fix_invoker.start_fix.side_effect = SpawnError("no such container")

        started = await relay.process_fix_trigger(_issue())

        assert started is False
        mock_notifier.notify.assert_not_awaited()
        assert metrics.fix_triggers.get() == 0
        assert metrics.errors.get({"kind": "SpawnError"}) == 1

    async def test_notify_failure_still_counts_start(
        self,
        relay: TriageRelay,
        mock_notifier: AsyncMock,
        metrics: MetricsRegistry,
    ) -> None:
        """Test that a notification failure does not undo the started agent."""
        mock_notifier.notify.side_effect = NotifyError("channel_not_found")

        started = await relay.process_fix_trigger(_issue())

        assert started is True
        assert metrics.fix_triggers.get() == 1
        assert metrics.errors.get({"kind": "NotifyError"}) == 1


class TestLifecycle:
    """Test start, stop and the observability surface."""

    async def test_start_and_stop(self, relay: TriageRelay) -> None:
        """Test the running flag."""
        assert relay.is_running is False
        await relay.start()
        assert relay.is_running is True
        await relay.stop()
        assert relay.is_running is False

    async def test_stop_drains_in_flight_tasks(
        self,
        relay: TriageRelay,
        mock_provider: AsyncMock,
        mock_notifier: AsyncMock,
        analysis_payload: dict[str, Any],
    ) -> None:
        """Test that stop waits for a slow classification to finish."""

        async def slow_complete(prompt: str) -> str:
            await asyncio.sleep(0.05)
            return json.dumps(analysis_payload)

        mock_provider.complete.side_effect = slow_complete

        await relay.start()
        relay.admit_issue(IssueOpened(_issue()))
        assert relay.active_tasks == 1
        await relay.stop()

        assert relay.active_tasks == 0
        mock_notifier.notify.assert_awaited_once()

    async def test_stop_cancels_tasks_past_shutdown_timeout(
        self,
        relay_config: RelayConfig,
        mock_provider: AsyncMock,
        mock_notifier: AsyncMock,
        mock_commenter: AsyncMock,
        mock_fix_invoker: AsyncMock,
        metrics: MetricsRegistry,
    ) -> None:
        """Test that tasks outliving the shutdown timeout are cancelled."""

        async def hang(prompt: str) -> str:
            await asyncio.sleep(60)
            return ""

        mock_provider.complete.side_effect = hang
        config = relay_config.model_copy(
            update={"runtime": relay_config.runtime.model_copy(update={"shutdown_timeout": 0.05})}
        )
        relay = TriageRelay(
            config,
            mock_provider,
            mock_notifier,
            mock_commenter,
            mock_fix_invoker,
            metrics=metrics,
        )

        await relay.start()
        relay.admit_issue(IssueOpened(_issue()))
        await relay.stop()

        assert relay.active_tasks == 0
        mock_notifier.notify.assert_not_awaited()

    async def test_stop_closes_adapters(
        self, relay: TriageRelay, mock_provider: AsyncMock, mock_notifier: AsyncMock
    ) -> None:
        """Test that adapters exposing aclose are closed on stop."""
        await relay.start()
        await relay.stop()

        mock_provider.aclose.assert_awaited_once()
        mock_notifier.aclose.assert_awaited_once()

    async def test_adapter_close_error_is_logged(
        self, relay: TriageRelay, mock_commenter: AsyncMock
    ) -> None:
        """Test that a failing aclose does not abort shutdown."""
        mock_commenter.aclose.side_effect = RuntimeError("already closed")

        await relay.start()
        await relay.stop()

        assert relay.is_running is False

    async def test_sweep_evicts_expired(
        self, relay: TriageRelay, clock: Any, relay_config: RelayConfig
    ) -> None:
        """Test that sweep reclaims expired entries."""
        relay.admit_issue(IssueOpened(_issue("archived")))
        await relay.start()
        relay.admit_issue(IssueOpened(_issue()))
        await relay.stop()
        assert len(relay.dedup) == 1

        clock.advance(relay_config.dedup.ttl + 1)

        assert relay.sweep() == 1
        assert len(relay.dedup) == 0

    async def test_metrics_snapshot(self, relay: TriageRelay) -> None:
        """Test the snapshot includes event counts and the dedup size."""
        await relay.start()
        relay.admit_issue(IssueOpened(_issue()))
        relay.admit_issue(IssueOpened(_issue()))
        relay.admit_issue(IssueOpened(_issue("archived")))
        await relay.stop()

        snapshot = relay.metrics_snapshot()

        assert snapshot["events"]["received"] == 3
        assert snapshot["events"]["skipped_duplicate"] == 1
        assert snapshot["events"]["skipped_disabled"] == 1
        assert snapshot["actions"]["auto_spawned"] == 1
        assert snapshot["dedup_size"] == 1

    async def test_prometheus_metrics(self, relay: TriageRelay) -> None:
        """Test the Prometheus export includes the dedup gauge."""
        relay.admit_issue(IssueOpened(_issue("archived")))

        text = relay.prometheus_metrics()

        assert "triage_relay_dedup_entries 0" in text
        assert 'triage_relay_events_skipped_total{reason="disabled"} 1.0' in text


def test_admission_values() -> None:
    """Test admission results render as plain strings."""
    assert str(Admission.ACCEPTED) == "accepted"
