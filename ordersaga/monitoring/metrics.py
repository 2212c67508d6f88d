"""
In-process metrics for order sagas.

``SagaMetrics`` is the collector ``MetricsSagaListener`` uses when no other is
given. It keeps plain counters in memory and is meant for tests, the CLI and
small deployments; use ``PrometheusMetrics`` to export.
"""

from collections import Counter, defaultdict
from typing import Any

from ordersaga.core.types import SagaStatus


class SagaMetrics:
    """Counts saga outcomes per saga name and failures per error category."""

    def __init__(self):
        self.outcomes: Counter[tuple[str, SagaStatus]] = Counter()
        self.failures: Counter[str] = Counter()
        self.step_durations: defaultdict[tuple[str, str], list[float]] = defaultdict(list)
        self.active: Counter[str] = Counter()
        self._total_duration = 0.0

    def record_execution(self, saga_name: str, status: SagaStatus, duration: float) -> None:
        self.outcomes[(saga_name, status)] += 1
        self._total_duration += duration

    def record_failure(self, saga_name: str, category: str) -> None:
        self.failures[category] += 1

    def record_step_duration(self, saga_name: str, step_name: str, duration: float) -> None:
        self.step_durations[(saga_name, step_name)].append(duration)

    def saga_started(self, saga_name: str) -> None:
        self.active[saga_name] += 1

    def saga_finished(self, saga_name: str) -> None:
        self.active[saga_name] = max(self.active[saga_name] - 1, 0)

    def _count(self, status: SagaStatus | None = None, saga_name: str | None = None) -> int:
        return sum(
            n
            for (name, s), n in self.outcomes.items()
            if (status is None or s is status) and (saga_name is None or name == saga_name)
        )

    def get_metrics(self) -> dict[str, Any]:
        """
        Snapshot as plain values.

        Keys: ``total_executed``, ``total_successful``, ``total_failed``,
        ``average_execution_time`` (seconds), ``by_saga_name`` (count, success,
        failed per name), ``failures_by_category`` and ``success_rate``.
        """
        total = self._count()
        successful = self._count(SagaStatus.COMPLETED)
        names = sorted({name for name, _ in self.outcomes})
        return {
            "total_executed": total,
            "total_successful": successful,
            "total_failed": self._count(SagaStatus.FAILED),
            "average_execution_time": self._total_duration / total if total else 0.0,
            "by_saga_name": {
                name: {
                    "count": self._count(saga_name=name),
                    "success": self._count(SagaStatus.COMPLETED, name),
                    "failed": self._count(saga_name=name)
                    - self._count(SagaStatus.COMPLETED, name),
                }
                for name in names
            },
            "failures_by_category": dict(self.failures),
            "success_rate": f"{(successful / total * 100) if total else 0:.2f}%",
        }
