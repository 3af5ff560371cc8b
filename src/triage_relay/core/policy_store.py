"""Read-only store of per-repository triage policies."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING

from triage_relay.models.policy import DISABLED_POLICY, RepositoryPolicy

if TYPE_CHECKING:
    from triage_relay.config.schema import RepositoryPolicyConfig


class PolicyStore:
    """Maps repository names to their policy.

    Policies are fixed at construction. Lookups are total: a repository
    that is not configured gets the disabled default policy.

    Example:
        store = PolicyStore({"widgets": RepositoryPolicy(enabled=True)})
        store.lookup("widgets").enabled  # True
        store.lookup("unknown").enabled  # False
    """

    def __init__(self, policies: Mapping[str, RepositoryPolicy]) -> None:
        self._policies = MappingProxyType(dict(policies))

    @classmethod
    def from_config(cls, repositories: Mapping[str, RepositoryPolicyConfig]) -> PolicyStore:
        """Build a store from the ``repositories`` section of the config."""
        return cls(
            {
                name: RepositoryPolicy(
                    enabled=conf.enabled,
                    auto_action_enabled=conf.auto_action_enabled,
                    sensitive_topic_patterns=tuple(conf.sensitive_topic_patterns),
                    priority=conf.priority,
                    project_location=conf.project_location,
                )
                for name, conf in repositories.items()
            }
        )

    def lookup(self, repository: str) -> RepositoryPolicy:
        """Return the policy for a repository, or the disabled default."""
        return self._policies.get(repository, DISABLED_POLICY)

    @property
    def enabled_repositories(self) -> list[str]:
        return sorted(name for name, policy in self._policies.items() if policy.enabled)

    def __iter__(self) -> Iterator[str]:
        return iter(self._policies)

    def __len__(self) -> int:
        return len(self._policies)
