"""Classifier gateway: prompt construction and response validation.

The provider's text is untrusted. It must hold a single JSON object,
optionally wrapped in a Markdown code fence, and every field is validated
before a Classification is built:

- Unparseable text raises ProviderError
- Parseable JSON that violates the schema raises SchemaError
"""

from __future__ import annotations

import json
import re
from typing import Any, Literal

import structlog
from pydantic import BaseModel, ConfigDict, Field, StrictBool, ValidationError, field_validator

from triage_relay.interfaces.llm import AnalysisProvider
from triage_relay.models.classification import Category, Classification, Severity
from triage_relay.models.issue import Issue
from triage_relay.models.policy import RepositoryPolicy
from triage_relay.utils.async_helpers import ProviderError, SchemaError, with_timeout
from triage_relay.utils.metrics import MetricsRegistry, Timer
from triage_relay.utils.security import RedactionError, SecretRedactor

log = structlog.get_logger()

# Guard against runaway responses
MAX_RESPONSE_LENGTH = 100_000

# ```json ... ``` or ``` ... ```
CODE_FENCE_PATTERN = re.compile(r"^```(?:json)?[ \t]*\n?(.*?)\n?```\s*$", re.DOTALL | re.IGNORECASE)

ANALYSIS_PROMPT_TEMPLATE = """You are an expert software engineer triaging a GitHub issue for the {repository} project.

## Issue Details
- **Repository:** {owner}/{repository}
- **Issue #{number}:** {title}
- **Author:** {author}
- **Labels:** {labels}

### Issue Body
{body}

## Project Location
The project code is at: {project_location}

## Your Task
Analyze this issue deeply. Consider:
1. What type of issue is this? (bug, feature, enhancement, question, docs, chore)
2. How severe is it? (critical, high, medium, low)
3. Can this be auto-fixed by an AI coding agent?
4. What are clear acceptance criteria?
5. Is clarification needed from the reporter?

## Auto-Fix Guidelines
Be CONSERVATIVE with autoFixable. Only mark true if:
- The issue is clear and well-defined
- A fix can be implemented without ambiguity
- It does NOT involve security changes, credential handling, database migrations, or breaking changes
- You are confident an AI agent can implement and test the fix autonomously
- The fix scope is reasonable (not a major refactor)

If autoFixable is true, provide a detailed ralphPrompt that an AI coding agent can use to implement the fix. The prompt should include:
- What files to modify
- What the expected behavior should be
- How to verify the fix (tests to run)

## Clarification
If the issue is too vague to understand or act on, add specific questions to needsClarification.
Only ask for clarification when truly needed. Try to infer intent from context first.

## Output
Respond with a JSON object matching this exact structure:
{{
  "type": "bug|feature|enhancement|question|docs|chore",
  "severity": "critical|high|medium|low",
  "autoFixable": boolean,
  "confidence": number (0.0-1.0),
  "reasoning": "Brief analysis explaining your assessment",
  "acceptanceCriteria": ["criterion 1", "criterion 2"],
  "needsClarification": ["question 1"] or [],
  "ralphPrompt": "Detailed prompt for the fix agent" or null
}}

Respond ONLY with the JSON object, no markdown fences or other text."""


class AnalysisResponse(BaseModel):
    """Wire schema of the provider's JSON answer."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["bug", "feature", "enhancement", "question", "docs", "chore"]
    severity: Literal["critical", "high", "medium", "low"]
    auto_fixable: StrictBool = Field(alias="autoFixable")
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str
    acceptance_criteria: list[str] = Field(alias="acceptanceCriteria")
    needs_clarification: list[str] = Field(alias="needsClarification")
    ralph_prompt: str | None = Field(alias="ralphPrompt")

    @field_validator("confidence", mode="before")
    @classmethod
    def confidence_is_number(cls, v: Any) -> Any:
        """Reject booleans and numeric strings that lax parsing would coerce."""
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ValueError("confidence must be a number")
        return v

    def to_classification(self) -> Classification:
        return Classification(
            category=Category(self.type),
            severity=Severity(self.severity),
            auto_fixable=self.auto_fixable,
            confidence=float(self.confidence),
            rationale=self.reasoning,
            open_questions=tuple(self.needs_clarification),
            acceptance_criteria=tuple(self.acceptance_criteria),
            fix_instructions=self.ralph_prompt or None,
        )


def strip_code_fence(text: str) -> str:
    """Remove an optional surrounding Markdown code fence."""
    cleaned = text.strip()
    match = CODE_FENCE_PATTERN.match(cleaned)
    if match:
        return match.group(1).strip()
    return cleaned


def parse_classification(text: str) -> Classification:
    """Parse and validate raw provider text.

    Args:
        text: Raw response text

    Returns:
        Validated Classification

    Raises:
        ProviderError: If the text is not a single JSON object
        SchemaError: If the object violates the classification schema
    """
    if len(text) > MAX_RESPONSE_LENGTH:
        raise ProviderError(f"Response too long ({len(text)} chars)")

    cleaned = strip_code_fence(text)

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        log.warning("classifier_response_unparseable", error=str(e), preview=cleaned[:200])
        raise ProviderError(f"Invalid JSON from provider: {e}") from e

    if not isinstance(data, dict):
        raise ProviderError(f"Expected a JSON object, got {type(data).__name__}")

    try:
        response = AnalysisResponse.model_validate(data)
    except ValidationError as e:
        log.warning("classifier_response_invalid", errors=e.error_count())
        raise SchemaError(f"Classification failed validation: {e}") from e

    return response.to_classification()


class ClassifierGateway:
    """Sends issues to the analysis provider and validates its answer."""

    def __init__(
        self,
        provider: AnalysisProvider,
        owner: str,
        timeout: float,
        metrics: MetricsRegistry | None = None,
        redactor: SecretRedactor | None = None,
    ) -> None:
        """
        Initialize the gateway.

        Args:
            provider: Analysis provider adapter
            owner: GitHub owner shown in the prompt
            timeout: Seconds to wait for the provider
            metrics: Registry for the classifier duration histogram
            redactor: Redactor applied to issue text before it leaves the process
        """
        self._provider = provider
        self._owner = owner
        self._timeout = timeout
        self._metrics = metrics
        self._redactor = redactor or SecretRedactor()

    def build_prompt(self, issue: Issue, repository: str, policy: RepositoryPolicy) -> str:
        """Render the triage prompt for an issue.

        Raises:
            ProviderError: If the issue text cannot be redacted
        """
        try:
            title = self._redactor.redact(issue.title)
            body = self._redactor.redact(issue.body)
        except RedactionError as e:
            raise ProviderError(f"Refusing to send unredacted issue text: {e}") from e

        return ANALYSIS_PROMPT_TEMPLATE.format(
            repository=repository,
            owner=self._owner,
            number=issue.number,
            title=title,
            author=issue.author,
            labels=", ".join(issue.labels) or "none",
            body=body or "(empty)",
            project_location=policy.project_location,
        )

    async def classify(
        self,
        issue: Issue,
        repository: str,
        policy: RepositoryPolicy,
    ) -> Classification:
        """
        Classify an issue.

        Args:
            issue: Issue to classify
            repository: Repository name
            policy: Repository policy (supplies the project location)

        Returns:
            Validated Classification

        Raises:
            ProviderError: Provider unreachable, timed out or returned unparseable text
            SchemaError: Provider output violated the schema
        """
        prompt = self.build_prompt(issue, repository, policy)

        log.debug(
            "classifier_request",
            repository=repository,
            issue_number=issue.number,
            model=self._provider.model_name,
        )

        if self._metrics is not None:
            with Timer(self._metrics.classifier_duration):
                text = await self._complete(prompt)
        else:
            text = await self._complete(prompt)

        classification = parse_classification(text)

        log.info(
            "issue_classified",
            repository=repository,
            issue_number=issue.number,
            category=classification.category.value,
            severity=classification.severity.value,
            auto_fixable=classification.auto_fixable,
            confidence=classification.confidence,
            open_questions=len(classification.open_questions),
        )
        return classification

    async def _complete(self, prompt: str) -> str:
        return await with_timeout(
            self._provider.complete(prompt),
            timeout=self._timeout,
            error_message=f"Analysis provider timed out after {self._timeout}s",
            error_type=ProviderError,
        )
