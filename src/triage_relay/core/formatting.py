"""Text rendering for notifications, issue comments and fix-agent prompts.

Every function here is pure; the dispatcher and relay decide when the
results are sent.
"""

from __future__ import annotations

from triage_relay.models.classification import Category, Classification
from triage_relay.models.decision import Decision
from triage_relay.models.issue import FIX_TRIGGER, Issue

CATEGORY_EMOJI = {
    Category.BUG: "\N{BUG}",
    Category.FEATURE: "\N{SPARKLES}",
    Category.ENHANCEMENT: "\N{ELECTRIC LIGHT BULB}",
    Category.QUESTION: "\N{BLACK QUESTION MARK ORNAMENT}",
    Category.DOCS: "\N{MEMO}",
    Category.CHORE: "\N{BROOM}",
}

DEFAULT_EMOJI = "\N{CLIPBOARD}"

COMMENT_ATTRIBUTION = "*Posted by triage-relay*"


def issue_url(owner: str, repository: str, issue_number: int) -> str:
    """Return the browser URL of an issue."""
    return f"https://github.com/{owner}/{repository}/issues/{issue_number}"


def session_name(repository: str, issue_number: int) -> str:
    """Return the fix agent's session name for an issue."""
    return f"{repository}-{issue_number}"


def _header(decision: Decision, classification: Classification, ref: str) -> str:
    if decision is Decision.AUTO_ACT:
        return f"\N{WRENCH} Auto-fixing {ref}"
    if decision is Decision.OFFER:
        return f"\N{ROBOT FACE} Auto-fix available: {ref}"
    if decision is Decision.CLARIFY:
        return f"\N{BLACK QUESTION MARK ORNAMENT} Issue needs clarification: {ref}"
    emoji = CATEGORY_EMOJI.get(classification.category, DEFAULT_EMOJI)
    return f"{emoji} New Issue: {ref}"


def format_notification(
    owner: str,
    repository: str,
    issue_number: int,
    classification: Classification,
    decision: Decision,
    issue_title: str,
) -> str:
    """Render the operator notification for a triaged issue.

    Args:
        owner: GitHub owner used to build the issue URL
        repository: Repository name
        issue_number: Issue number
        classification: Validated classification
        decision: Decision taken for the issue
        issue_title: Issue title

    Returns:
        Plain text message
    """
    ref = f"{repository}#{issue_number}"
    confidence = round(classification.confidence * 100)

    lines = [
        _header(decision, classification, ref),
        "",
        f"Title: {issue_title}",
        f"Type: {classification.category.value.upper()} | "
        f"Severity: {classification.severity.value.upper()}",
        f"Confidence: {confidence}%",
        "",
        "Analysis:",
        classification.rationale,
    ]

    if decision is Decision.CLARIFY and classification.open_questions:
        lines.extend(["", "Questions:"])
        lines.extend(f"- {q}" for q in classification.open_questions)

    if decision is not Decision.CLARIFY and classification.acceptance_criteria:
        lines.extend(["", "Acceptance Criteria:"])
        lines.extend(f"- {c}" for c in classification.acceptance_criteria)

    if decision is Decision.OFFER:
        lines.extend(["", f"Reply {FIX_TRIGGER} on the issue to auto-fix."])

    lines.extend(["", issue_url(owner, repository, issue_number)])

    return "\n".join(lines)


def format_fix_started(owner: str, repository: str, issue_number: int, issue_title: str) -> str:
    """Render the notification sent when a comment trigger started a fix agent."""
    return "\n".join(
        [
            f"\N{WRENCH} Fix agent started: {repository}#{issue_number}",
            "",
            f"Title: {issue_title}",
            f"Session: {session_name(repository, issue_number)}",
            "",
            issue_url(owner, repository, issue_number),
        ]
    )


def format_clarification_comment(questions: tuple[str, ...] | list[str]) -> str:
    """Render open questions as a Markdown issue comment with a numbered list."""
    numbered = "\n".join(f"{i}. {q}" for i, q in enumerate(questions, start=1))

    return (
        "## \N{THINKING FACE} Need More Information\n"
        "\n"
        "I analyzed this issue but need clarification on a few points:\n"
        "\n"
        f"{numbered}\n"
        "\n"
        "Once clarified, I can likely auto-fix this. Thanks!\n"
        "\n"
        "---\n"
        f"{COMMENT_ATTRIBUTION}"
    )


def fallback_fix_instructions(
    owner: str,
    repository: str,
    issue_number: int,
    classification: Classification,
) -> str:
    """Build fix instructions when the provider did not supply any.

    The block is derived only from the classification, so identical input
    always yields identical instructions.
    """
    lines = [
        f"Fix GitHub issue {owner}/{repository}#{issue_number}.",
        "",
        f"Type: {classification.category.value}",
        f"Severity: {classification.severity.value}",
        "",
        "Analysis:",
        classification.rationale,
    ]

    if classification.acceptance_criteria:
        lines.extend(["", "Acceptance criteria:"])
        lines.extend(f"- {c}" for c in classification.acceptance_criteria)

    lines.extend(["", "Open a PR when done. Reference the issue in the PR description."])
    return "\n".join(lines)


def build_fix_prompt(owner: str, issue: Issue) -> str:
    """Build the fix-agent prompt for a human-requested fix."""
    body = issue.body or "(no description)"
    return (
        f"Fix GitHub issue {owner}/{issue.repository}#{issue.number}:\n"
        f'"{issue.title}"\n'
        "\n"
        f"{body}\n"
        "\n"
        "Open a PR when done. Reference the issue in the PR description."
    )
