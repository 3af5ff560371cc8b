"""Dispatcher: executes the side effects of one decision.

Every branch ends by notifying the operator. A failed fix invocation or
comment post is logged, counted and recorded in the Outcome, and never
prevents the notification attempt.
"""

from __future__ import annotations

from collections.abc import Awaitable

import structlog

from triage_relay.config.schema import TimeoutConfig
from triage_relay.core.formatting import (
    fallback_fix_instructions,
    format_clarification_comment,
    format_notification,
)
from triage_relay.interfaces.agent import FixInvoker
from triage_relay.interfaces.chat import Notifier
from triage_relay.interfaces.vcs import Commenter
from triage_relay.models.classification import Classification
from triage_relay.models.decision import Decision, Outcome
from triage_relay.utils.async_helpers import (
    CommentError,
    NotifyError,
    SpawnError,
    TriageError,
    describe_exception,
    with_timeout,
)
from triage_relay.utils.metrics import MetricsRegistry

log = structlog.get_logger()


class Dispatcher:
    """Runs the action branch for a decision against injected collaborators."""

    def __init__(
        self,
        notifier: Notifier,
        commenter: Commenter,
        fix_invoker: FixInvoker,
        owner: str,
        metrics: MetricsRegistry,
        timeouts: TimeoutConfig | None = None,
    ) -> None:
        """
        Initialize the dispatcher.

        Args:
            notifier: Operator notification channel
            commenter: Issue comment poster
            fix_invoker: Autonomous fix agent starter
            owner: GitHub owner used in URLs and fix instructions
            metrics: Registry to record side effects and errors in
            timeouts: Per-collaborator timeouts (defaults if omitted)
        """
        self._notifier = notifier
        self._commenter = commenter
        self._fix_invoker = fix_invoker
        self._owner = owner
        self._metrics = metrics
        self._timeouts = timeouts or TimeoutConfig()

    async def execute(
        self,
        decision: Decision,
        repository: str,
        issue_number: int,
        classification: Classification,
        issue_title: str,
    ) -> Outcome:
        """
        Execute a decision.

        Args:
            decision: Decision from the decision engine
            repository: Repository name
            issue_number: Issue number
            classification: Validated classification
            issue_title: Issue title, used in the notification

        Returns:
            Outcome describing which side effects succeeded
        """
        errors: list[str] = []
        fix_started = False
        comment_posted = False

        if decision is Decision.AUTO_ACT:
            instructions = classification.fix_instructions or fallback_fix_instructions(
                self._owner, repository, issue_number, classification
            )
            fix_started = await self._attempt(
                "fix_invoke",
                self.start_fix(repository, issue_number, instructions),
                repository,
                issue_number,
                errors,
            )
            if fix_started:
                self._metrics.auto_actions.inc()

        elif decision is Decision.CLARIFY:
            comment_posted = await self._attempt(
                "comment_post",
                self._post_clarification(repository, issue_number, classification),
                repository,
                issue_number,
                errors,
            )
            if comment_posted:
                self._metrics.clarifications_posted.inc()

        message = format_notification(
            self._owner, repository, issue_number, classification, decision, issue_title
        )
        notified = await self._attempt(
            "notify",
            self.notify(message),
            repository,
            issue_number,
            errors,
        )

        outcome = Outcome(
            decision=decision,
            fix_started=fix_started,
            comment_posted=comment_posted,
            notified=notified,
            errors=tuple(errors),
        )

        log.info(
            "dispatch_complete",
            repository=repository,
            issue_number=issue_number,
            decision=decision.value,
            fix_started=fix_started,
            comment_posted=comment_posted,
            notified=notified,
            errors=len(errors),
        )
        return outcome

    async def notify(self, message: str) -> None:
        """Send a notification bounded by the notifier timeout.

        Raises:
            NotifyError: If delivery fails or times out
        """
        await with_timeout(
            self._notifier.notify(message),
            timeout=self._timeouts.notifier,
            error_message=f"Notifier timed out after {self._timeouts.notifier}s",
            error_type=NotifyError,
        )
        self._metrics.notifications_sent.inc()

    async def start_fix(self, repository: str, issue_number: int, instructions: str) -> None:
        """Start the fix agent bounded by the fix invoker timeout.

        Raises:
            SpawnError: If the agent could not be started or timed out
        """
        await with_timeout(
            self._fix_invoker.start_fix(repository, issue_number, instructions),
            timeout=self._timeouts.fix_invoker,
            error_message=f"Fix invoker timed out after {self._timeouts.fix_invoker}s",
            error_type=SpawnError,
        )

    async def _post_clarification(
        self,
        repository: str,
        issue_number: int,
        classification: Classification,
    ) -> None:
        body = format_clarification_comment(classification.open_questions)
        await with_timeout(
            self._commenter.post_comment(repository, issue_number, body),
            timeout=self._timeouts.commenter,
            error_message=f"Commenter timed out after {self._timeouts.commenter}s",
            error_type=CommentError,
        )

    async def _attempt(
        self,
        step: str,
        coro: Awaitable[None],
        repository: str,
        issue_number: int,
        errors: list[str],
    ) -> bool:
        """Await one side effect, converting a collaborator failure into a recorded error."""
        try:
            await coro
        except TriageError as e:
            kind = type(e).__name__
            self._metrics.errors.inc(labels={"kind": kind})
            errors.append(f"{kind}: {e}")
            log.error(
                "dispatch_step_failed",
                step=step,
                repository=repository,
                issue_number=issue_number,
                **describe_exception(e),
            )
            return False
        return True
