"""In-process metrics for ingestion runs and terminology server traffic.

Metric names follow the ``<area>_<what>_<unit>`` pattern. Tags are folded
into the key as ``name[k1=v1,k2=v2]`` with tags sorted, so the same series is
always addressed by the same string:

    fhir_requests_total[method=GET,status=200]
    ingest_resources_total[status=fulfilled,type=ValueSet]
"""

from collections import Counter, defaultdict
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


def metric_key(name: str, tags: dict[str, str]) -> str:
    if not tags:
        return name
    return name + "[" + ",".join(f"{k}={v}" for k, v in sorted(tags.items())) + "]"


def _timing_stats(values: list[float]) -> dict[str, float]:
    return {
        "count": len(values),
        "avg": sum(values) / len(values),
        "min": min(values),
        "max": max(values),
    }


class MetricsCollector:
    """
    Counters and timings for one CLI run.

    Not global: the CLI creates one collector and hands it to the FHIR client
    and the orchestrator.
    """

    def __init__(self) -> None:
        self.counters: Counter[str] = Counter()
        self.timings: defaultdict[str, list[float]] = defaultdict(list)

    def increment(self, name: str, value: int = 1, **tags: str) -> None:
        self.counters[metric_key(name, tags)] += value

    def observe(self, name: str, value: float, **tags: str) -> None:
        self.timings[metric_key(name, tags)].append(value)

    def count_request(self, method: str, status: int | str) -> None:
        """Count one request to a terminology server; ``status`` is "error" when none came back."""
        self.increment("fhir_requests_total", method=method, status=str(status))

    def record_latency(self, method: str, duration_ms: float) -> None:
        self.observe("fhir_request_latency_ms", duration_ms, method=method)

    def count_artifact(self, artifact_format: str, status: str) -> None:
        self.increment("ingest_artifacts_total", format=artifact_format, status=status)

    def count_resource(self, resource_type: str, status: str) -> None:
        self.increment("ingest_resources_total", type=resource_type, status=status)

    def count_dependencies(self, count: int) -> None:
        if count:
            self.increment("ingest_dependencies_added_total", value=count)

    def get_summary(self) -> dict[str, Any]:
        """
        Snapshot of everything recorded so far.

        Returns:
            {"counters": {key: int}, "timings": {key: {count, avg, min, max}}}
        """
        return {
            "counters": dict(self.counters),
            "timings": {key: _timing_stats(v) for key, v in self.timings.items() if v},
        }

    def log_summary(self) -> None:
        summary = self.get_summary()
        logger.info(
            "Metrics summary",
            counters=summary["counters"],
            timings={k: round(v["avg"], 1) for k, v in summary["timings"].items()},
        )
