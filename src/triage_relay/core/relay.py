"""Triage relay service that coordinates admission and background processing.

This module implements the TriageRelay class, the host-facing facade of
the core. It:
- Admits inbound events after the policy and dedup checks
- Runs classify, decide and dispatch as detached background tasks
- Periodically sweeps expired dedup entries
- Drains in-flight tasks on shutdown and closes adapter clients
- Exposes the metrics snapshot
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Coroutine
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import structlog

from triage_relay.core.classifier import ClassifierGateway
from triage_relay.core.decision import decide
from triage_relay.core.dedup import DedupStore, TTLDedupCache
from triage_relay.core.dispatcher import Dispatcher
from triage_relay.core.formatting import build_fix_prompt, format_fix_started, session_name
from triage_relay.core.policy_store import PolicyStore
from triage_relay.models.decision import ActionClass, DedupKey, Outcome
from triage_relay.models.issue import CommentCreated, Issue, IssueOpened
from triage_relay.models.policy import RepositoryPolicy
from triage_relay.utils.async_helpers import (
    NotifyError,
    ProviderError,
    SchemaError,
    SpawnError,
    describe_exception,
)
from triage_relay.utils.logging import bind_issue
from triage_relay.utils.metrics import MetricsRegistry, Timer, get_metrics

if TYPE_CHECKING:
    from triage_relay.config.schema import RelayConfig
    from triage_relay.interfaces.agent import FixInvoker
    from triage_relay.interfaces.chat import Notifier
    from triage_relay.interfaces.llm import AnalysisProvider
    from triage_relay.interfaces.vcs import Commenter

log = structlog.get_logger()


class Admission(StrEnum):
    """Result of the synchronous admission phase."""

    ACCEPTED = "accepted"
    DISABLED = "disabled"
    DUPLICATE = "duplicate"


class TriageRelay:
    """Coordinates policy lookup, deduplication and background triage.

    Admission is synchronous so the webhook can acknowledge immediately;
    the provider round-trip and dispatch happen in tracked asyncio tasks
    whose failures are terminal to the task alone.

    Example:
        relay = TriageRelay(config, provider, notifier, commenter, fix_invoker)
        await relay.start()
        relay.admit_issue(IssueOpened(issue))  # Admission.ACCEPTED
        await relay.stop()
    """

    def __init__(
        self,
        config: RelayConfig,
        provider: AnalysisProvider,
        notifier: Notifier,
        commenter: Commenter,
        fix_invoker: FixInvoker,
        dedup: DedupStore | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        """Initialize the relay.

        Args:
            config: Application configuration
            provider: Analysis provider adapter
            notifier: Notification adapter
            commenter: Issue comment adapter
            fix_invoker: Fix agent adapter
            dedup: Dedup store (a TTL cache sized from config if omitted)
            metrics: Metrics registry (the process default if omitted)
        """
        self._config = config
        self._owner = config.github.owner
        self._adapters: tuple[object, ...] = (provider, notifier, commenter, fix_invoker)

        self._metrics = metrics or get_metrics()
        self._dedup = dedup if dedup is not None else TTLDedupCache(ttl=config.dedup.ttl)
        self._policies = PolicyStore.from_config(config.repositories)
        self._classifier = ClassifierGateway(
            provider,
            owner=self._owner,
            timeout=config.timeouts.classifier,
            metrics=self._metrics,
        )
        self._dispatcher = Dispatcher(
            notifier,
            commenter,
            fix_invoker,
            owner=self._owner,
            metrics=self._metrics,
            timeouts=config.timeouts,
        )

        self._active_tasks: set[asyncio.Task[Any]] = set()
        self._sweep_task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def active_tasks(self) -> int:
        return len(self._active_tasks)

    @property
    def policies(self) -> PolicyStore:
        return self._policies

    @property
    def metrics(self) -> MetricsRegistry:
        return self._metrics

    @property
    def dedup(self) -> DedupStore:
        return self._dedup

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Start the periodic dedup sweep."""
        if self._running:
            log.warning("relay_already_running")
            return

        self._sweep_task = asyncio.create_task(self._sweep_loop(), name="dedup_sweep")
        self._running = True
        log.info(
            "relay_started",
            owner=self._owner,
            repositories=self._policies.enabled_repositories,
            sweep_interval=self._config.dedup.sweep_interval,
        )

    async def stop(self) -> None:
        """Stop sweeping, drain in-flight tasks and close adapter clients."""
        if not self._running:
            log.warning("relay_not_running")
            return

        log.info("relay_stopping", active_tasks=len(self._active_tasks))

        if self._sweep_task and not self._sweep_task.done():
            self._sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweep_task
        self._sweep_task = None

        await self._wait_for_tasks()
        await self._close_adapters()

        self._running = False
        log.info("relay_stopped")

    async def _wait_for_tasks(self) -> None:
        """Wait for active tasks, cancelling whatever outlives the shutdown timeout."""
        if not self._active_tasks:
            return

        timeout = self._config.runtime.shutdown_timeout
        log.info("waiting_for_active_tasks", count=len(self._active_tasks), timeout=timeout)

        done, pending = await asyncio.wait(set(self._active_tasks), timeout=timeout)

        if pending:
            log.warning("cancelling_pending_tasks", count=len(pending))
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        log.info("tasks_completed", completed=len(done), cancelled=len(pending))

    async def _close_adapters(self) -> None:
        for adapter in self._adapters:
            close = getattr(adapter, "aclose", None)
            if close is None:
                continue
            try:
                await close()
            except Exception as e:
                log.warning(
                    "adapter_close_error",
                    adapter=type(adapter).__name__,
                    **describe_exception(e),
                )

    async def _sweep_loop(self) -> None:
        interval = self._config.dedup.sweep_interval
        while True:
            await asyncio.sleep(interval)
            self.sweep()

    def sweep(self) -> int:
        """Evict expired dedup entries now."""
        return self._dedup.sweep()

    # -------------------------------------------------------------------------
    # Admission
    # -------------------------------------------------------------------------

    def admit_issue(self, event: IssueOpened) -> Admission:
        """Admit a newly opened issue and schedule its triage.

        Args:
            event: The issue opened event

        Returns:
            ACCEPTED if a background task was scheduled, otherwise the skip reason
        """
        issue = event.issue
        self._metrics.events_received.inc()

        policy = self._policies.lookup(issue.repository)
        admission = self._admit(issue, policy, ActionClass.TRIAGE)
        if admission is not Admission.ACCEPTED:
            return admission

        log.info(
            "issue_admitted",
            repository=issue.repository,
            issue_number=issue.number,
            title=issue.title,
        )
        self._spawn(self._run_triage(issue, policy), name=f"triage_{issue.repository}_{issue.number}")
        return Admission.ACCEPTED

    def admit_fix_trigger(self, event: CommentCreated) -> Admission:
        """Admit a fix request comment and schedule the fix agent.

        The caller is expected to have checked ``event.is_fix_trigger``.

        Args:
            event: The comment created event

        Returns:
            ACCEPTED if a background task was scheduled, otherwise the skip reason
        """
        issue = event.issue
        self._metrics.events_received.inc()

        policy = self._policies.lookup(issue.repository)
        admission = self._admit(issue, policy, ActionClass.FIX)
        if admission is not Admission.ACCEPTED:
            return admission

        log.info(
            "fix_trigger_admitted",
            repository=issue.repository,
            issue_number=issue.number,
            requested_by=event.comment_author,
        )
        self._spawn(self._run_fix_trigger(issue), name=f"fix_{issue.repository}_{issue.number}")
        return Admission.ACCEPTED

    def _admit(self, issue: Issue, policy: RepositoryPolicy, action_class: ActionClass) -> Admission:
        if not policy.enabled:
            log.info("repository_not_enabled", repository=issue.repository)
            self._metrics.events_skipped.inc(labels={"reason": "disabled"})
            return Admission.DISABLED

        key = DedupKey(issue.repository, issue.number, action_class)
        if not self._dedup.admit(key):
            log.info("duplicate_event", key=str(key))
            self._metrics.events_skipped.inc(labels={"reason": "duplicate"})
            return Admission.DUPLICATE

        return Admission.ACCEPTED

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._active_tasks.add(task)
        self._metrics.active_tasks.inc()
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._active_tasks.discard(task)
        self._metrics.active_tasks.dec()

    # -------------------------------------------------------------------------
    # Background processing
    # -------------------------------------------------------------------------

    async def _run_triage(self, issue: Issue, policy: RepositoryPolicy) -> None:
        try:
            await self.process_issue(issue, policy)
        except Exception as e:
            self._metrics.errors.inc(labels={"kind": "unexpected"})
            log.exception(
                "issue_processing_failed",
                repository=issue.repository,
                issue_number=issue.number,
                error=str(e),
            )

    async def _run_fix_trigger(self, issue: Issue) -> None:
        try:
            await self.process_fix_trigger(issue)
        except Exception as e:
            self._metrics.errors.inc(labels={"kind": "unexpected"})
            log.exception(
                "fix_trigger_failed",
                repository=issue.repository,
                issue_number=issue.number,
                error=str(e),
            )

    async def process_issue(self, issue: Issue, policy: RepositoryPolicy) -> Outcome | None:
        """Classify, decide and dispatch one admitted issue.

        Args:
            issue: The admitted issue
            policy: Its repository policy

        Returns:
            The dispatch Outcome, or None if classification failed
        """
        bind_issue(issue.repository, issue.number)
        log.info("processing_issue")

        with Timer(self._metrics.processing_duration):
            try:
                classification = await self._classifier.classify(issue, issue.repository, policy)
            except (ProviderError, SchemaError) as e:
                self._metrics.errors.inc(labels={"kind": type(e).__name__})
                log.error("classification_failed", **describe_exception(e))
                return None

            decision = decide(classification, policy, issue.text)
            self._metrics.decisions.inc(labels={"decision": decision.value})
            log.info("triage_decided", decision=decision.value, confidence=classification.confidence)

            outcome = await self._dispatcher.execute(
                decision,
                issue.repository,
                issue.number,
                classification,
                issue.title,
            )

        self._metrics.events_processed.inc()
        return outcome

    async def process_fix_trigger(self, issue: Issue) -> bool:
        """Start the fix agent for a human-requested fix, then notify.

        Args:
            issue: The issue the trigger comment was posted on

        Returns:
            True if the fix agent was started
        """
        bind_issue(issue.repository, issue.number)

        prompt = build_fix_prompt(self._owner, issue)
        try:
            await self._dispatcher.start_fix(issue.repository, issue.number, prompt)
        except SpawnError as e:
            self._metrics.errors.inc(labels={"kind": type(e).__name__})
            log.error("fix_agent_spawn_failed", **describe_exception(e))
            return False

        self._metrics.fix_triggers.inc()
        log.info("fix_agent_started", session=session_name(issue.repository, issue.number))

        message = format_fix_started(self._owner, issue.repository, issue.number, issue.title)
        try:
            await self._dispatcher.notify(message)
        except NotifyError as e:
            self._metrics.errors.inc(labels={"kind": type(e).__name__})
            log.error("fix_started_notify_failed", **describe_exception(e))

        return True

    # -------------------------------------------------------------------------
    # Observability
    # -------------------------------------------------------------------------

    def metrics_snapshot(self) -> dict[str, Any]:
        """Return the JSON metrics snapshot including the dedup cache size."""
        return self._metrics.get_all_metrics(dedup_size=len(self._dedup))

    def prometheus_metrics(self) -> str:
        """Return the metrics in Prometheus text format."""
        return self._metrics.to_prometheus_format(dedup_size=len(self._dedup))


def create_relay(config: RelayConfig, metrics: MetricsRegistry | None = None) -> TriageRelay:
    """Factory function to create a TriageRelay with production adapters.

    Args:
        config: Application configuration
        metrics: Metrics registry (the process default if omitted)

    Returns:
        Configured TriageRelay instance
    """
    return TriageRelay(
        config,
        provider=_create_llm_adapter(config),
        notifier=_create_chat_adapter(config),
        commenter=_create_vcs_adapter(config),
        fix_invoker=_create_agent_adapter(config),
        metrics=metrics,
    )


def _create_llm_adapter(config: RelayConfig) -> AnalysisProvider:
    from triage_relay.adapters.llm.anthropic import AnthropicProvider

    return AnthropicProvider(config.anthropic, timeout=config.timeouts.classifier)


def _create_chat_adapter(config: RelayConfig) -> Notifier:
    from triage_relay.adapters.chat.slack import SlackNotifier

    return SlackNotifier(config.slack, timeout=config.timeouts.notifier)


def _create_vcs_adapter(config: RelayConfig) -> Commenter:
    from triage_relay.adapters.vcs.github import GitHubCommenter

    return GitHubCommenter(config.github, timeout=config.timeouts.commenter)


def _create_agent_adapter(config: RelayConfig) -> FixInvoker:
    from triage_relay.adapters.agent.docker import DockerFixInvoker

    return DockerFixInvoker(config.fix_agent, timeout=config.timeouts.fix_invoker)
