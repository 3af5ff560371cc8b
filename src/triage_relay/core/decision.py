"""Triage decision engine.

Maps a validated classification plus repository policy to exactly one
routing decision. Pure and deterministic: no I/O, no clock, no state.

Checks run in a fixed order and the first match wins:

1. open questions          -> CLARIFY
2. not auto-fixable        -> NOTIFY
3. sensitive topic in text -> NOTIFY
4. auto action disabled    -> NOTIFY
5. confidence >= 0.85      -> AUTO_ACT
6. confidence >= 0.70      -> OFFER
7. otherwise               -> NOTIFY
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from triage_relay.models.classification import Classification
from triage_relay.models.decision import Decision
from triage_relay.models.policy import RepositoryPolicy

# Inclusive lower bounds
AUTO_ACT_THRESHOLD = 0.85
OFFER_THRESHOLD = 0.70


def matches_sensitive_topic(text: str, patterns: Iterable[str]) -> bool:
    """Return True if any pattern matches the text, ignoring case.

    Patterns are regular expressions; a pattern that fails to compile is
    matched as a plain substring instead.
    """
    for pattern in patterns:
        try:
            if re.search(pattern, text, re.IGNORECASE):
                return True
        except re.error:
            if pattern.lower() in text.lower():
                return True
    return False


def decide(
    classification: Classification,
    policy: RepositoryPolicy,
    issue_text: str,
) -> Decision:
    """Choose the action for a classified issue.

    Args:
        classification: Validated provider output
        policy: Policy of the issue's repository
        issue_text: Issue title and body joined by a single space

    Returns:
        The routing decision
    """
    if classification.open_questions:
        return Decision.CLARIFY

    if not classification.auto_fixable:
        return Decision.NOTIFY

    if matches_sensitive_topic(issue_text, policy.sensitive_topic_patterns):
        return Decision.NOTIFY

    if not policy.auto_action_enabled:
        return Decision.NOTIFY

    if classification.confidence >= AUTO_ACT_THRESHOLD:
        return Decision.AUTO_ACT

    if classification.confidence >= OFFER_THRESHOLD:
        return Decision.OFFER

    return Decision.NOTIFY
