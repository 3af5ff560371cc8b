"""Health check utilities for the relay's startup diagnostics.

This module backs ``triage-relay --health-check``:
- Check the configuration has enabled repositories and a webhook secret
- Check credentials are present for GitHub, Anthropic and Slack
- Check the fix agent's container runtime is available
- Generate a health status report
"""

from __future__ import annotations

import asyncio
import shutil
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from triage_relay.config.schema import RelayConfig

log = structlog.get_logger()


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class CheckResult:
    """Result of a single health check."""

    name: str
    status: HealthStatus
    message: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class HealthReport:
    """Overall health report."""

    healthy: bool
    status: HealthStatus
    timestamp: datetime
    checks: list[CheckResult]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "healthy": self.healthy,
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "checks": [
                {
                    "name": c.name,
                    "status": c.status.value,
                    "message": c.message,
                    "details": c.details,
                }
                for c in self.checks
            ],
        }


def _is_placeholder(value: str) -> bool:
    return not value or value.startswith("${")


class HealthChecker:
    """Checks that the relay has what it needs to do useful work.

    Checks are local: they confirm credentials and binaries are present,
    not that the remote services accept them.

    Example:
        checker = HealthChecker(config)
        report = await checker.run_all_checks()
        if not report.healthy:
            print(report.to_dict())
    """

    def __init__(self, config: RelayConfig) -> None:
        self._config = config

    async def run_all_checks(self) -> HealthReport:
        """Run all health checks and return a report."""
        log.info("health_check_start")
        start_time = datetime.now(UTC)

        results = await asyncio.gather(
            self._check_config(),
            self._check_github_token(),
            self._check_anthropic_key(),
            self._check_slack_token(),
            self._check_fix_agent(),
            return_exceptions=True,
        )

        checks: list[CheckResult] = []
        for result in results:
            if isinstance(result, BaseException):
                checks.append(
                    CheckResult(
                        name="unknown",
                        status=HealthStatus.UNHEALTHY,
                        message=f"Check failed with exception: {result}",
                    )
                )
            else:
                checks.append(result)

        if all(c.status == HealthStatus.HEALTHY for c in checks):
            overall_status = HealthStatus.HEALTHY
        elif any(c.status == HealthStatus.UNHEALTHY for c in checks):
            overall_status = HealthStatus.UNHEALTHY
        else:
            overall_status = HealthStatus.DEGRADED

        report = HealthReport(
            healthy=overall_status != HealthStatus.UNHEALTHY,
            status=overall_status,
            timestamp=start_time,
            checks=checks,
        )

        log.info(
            "health_check_complete",
            healthy=report.healthy,
            status=overall_status.value,
            checks_run=len(checks),
        )
        return report

    async def _check_config(self) -> CheckResult:
        enabled = [name for name, p in self._config.repositories.items() if p.enabled]
        if not enabled:
            return CheckResult(
                name="config",
                status=HealthStatus.UNHEALTHY,
                message="No enabled repositories configured",
            )

        if _is_placeholder(self._config.server.webhook_secret):
            return CheckResult(
                name="config",
                status=HealthStatus.UNHEALTHY,
                message="Webhook secret not configured",
            )

        auto = [name for name in enabled if self._config.repositories[name].auto_action_enabled]
        return CheckResult(
            name="config",
            status=HealthStatus.HEALTHY,
            message="Configuration valid",
            details={"enabled_repositories": enabled, "auto_action_repositories": auto},
        )

    async def _check_github_token(self) -> CheckResult:
        if _is_placeholder(self._config.github.token):
            return CheckResult(
                name="github_token",
                status=HealthStatus.UNHEALTHY,
                message="GitHub token not configured",
            )
        return CheckResult(
            name="github_token",
            status=HealthStatus.HEALTHY,
            message="GitHub token configured",
            details={"owner": self._config.github.owner},
        )

    async def _check_anthropic_key(self) -> CheckResult:
        if _is_placeholder(self._config.anthropic.api_key):
            return CheckResult(
                name="anthropic_key",
                status=HealthStatus.UNHEALTHY,
                message="Anthropic API key not configured",
            )
        return CheckResult(
            name="anthropic_key",
            status=HealthStatus.HEALTHY,
            message="Anthropic configured",
            details={"model": self._config.anthropic.model},
        )

    async def _check_slack_token(self) -> CheckResult:
        if not self._config.slack.bot_token.startswith("xoxb-"):
            return CheckResult(
                name="slack_token",
                status=HealthStatus.UNHEALTHY,
                message="Invalid bot token format",
            )
        return CheckResult(
            name="slack_token",
            status=HealthStatus.HEALTHY,
            message="Slack token configured",
            details={"channel": self._config.slack.channel},
        )

    async def _check_fix_agent(self) -> CheckResult:
        """Check the container runtime is on PATH.

        A missing runtime only disables fixes; triage still works, so this
        reports degraded rather than unhealthy.
        """
        fix_agent = self._config.fix_agent
        docker = await asyncio.to_thread(shutil.which, fix_agent.docker_path)
        if docker is None:
            return CheckResult(
                name="fix_agent",
                status=HealthStatus.DEGRADED,
                message=f"{fix_agent.docker_path} not found in PATH",
            )
        return CheckResult(
            name="fix_agent",
            status=HealthStatus.HEALTHY,
            message="Fix agent runtime available",
            details={"docker": docker, "container": fix_agent.container},
        )
