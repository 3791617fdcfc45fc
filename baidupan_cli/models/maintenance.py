"""
Result records produced by the maintenance sweeps.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class HealthResult:
    credential_id: str
    alive: bool


@dataclass
class CleanupReport:
    """Outcome of one cleanup sweep."""

    strategy: str
    total_credentials: int = 0
    statuses: dict[str, str] = field(default_factory=dict)

    @property
    def cleaned(self) -> list[str]:
        return [cid for cid, status in self.statuses.items() if status == "success"]

    def summary(self) -> str:
        counts: dict[str, int] = {}
        for status in self.statuses.values():
            counts[status] = counts.get(status, 0) + 1
        parts = ", ".join(f"{k}={v}" for k, v in sorted(counts.items()))
        return (
            f"Cleanup ({self.strategy}): {len(self.statuses)}/"
            f"{self.total_credentials} targeted [{parts or 'nothing to do'}]"
        )
