"""Per-stage timing summaries for pipeline results."""

import logging
from dataclasses import dataclass, field

from tabulate import tabulate

logger = logging.getLogger(__name__)


@dataclass
class StageTiming:
    """Wall time spent in one stage of one frame."""

    name: str
    nanos: int

    @property
    def ms(self) -> float:
        return self.nanos / 1e6


def format_profile(timings: list[StageTiming]) -> str:
    """Render timings as ``name: x.xxms`` entries on one line."""
    return ", ".join(f"{t.name}: {t.ms:.2f}ms" for t in timings)


@dataclass
class StageProfile:
    """Aggregated timings of one stage over many frames."""

    name: str
    frames: int = 0
    total_nanos: int = 0
    max_nanos: int = 0

    @property
    def mean_ms(self) -> float:
        return self.total_nanos / self.frames / 1e6 if self.frames else 0.0

    @property
    def max_ms(self) -> float:
        return self.max_nanos / 1e6


@dataclass
class ProfileReport:
    """Aggregated profile over a run.

    Attributes:
        stages: Stage name to aggregated timings, in first-seen order.
        frames: Number of frames recorded.
        top_bottlenecks: Up to three (name, mean_ms) pairs, slowest first.
    """

    stages: dict[str, StageProfile] = field(default_factory=dict)
    frames: int = 0

    def record(self, timings: list[StageTiming]) -> None:
        self.frames += 1
        for timing in timings:
            stage = self.stages.setdefault(timing.name, StageProfile(timing.name))
            stage.frames += 1
            stage.total_nanos += timing.nanos
            stage.max_nanos = max(stage.max_nanos, timing.nanos)

    @property
    def top_bottlenecks(self) -> list[tuple[str, float]]:
        ranked = sorted(
            ((s.name, s.mean_ms) for s in self.stages.values()),
            key=lambda x: x[1],
            reverse=True,
        )
        return ranked[:3]


def format_report(report: ProfileReport) -> str:
    """Format a ProfileReport as a human-readable table.

    Args:
        report: Report to format.

    Returns:
        Multi-line string with a per-stage breakdown and the top bottlenecks.
    """
    lines = [f"Profile Report ({report.frames} frames)", ""]

    table_data = [
        [name, f"{stage.mean_ms:.3f}", f"{stage.max_ms:.3f}"]
        for name, stage in report.stages.items()
    ]
    headers = ["Stage", "Mean (ms)", "Max (ms)"]
    lines.append(
        tabulate(table_data, headers=headers, tablefmt="grid", disable_numparse=True)
    )
    lines.append("")

    lines.append("Top 3 Bottlenecks:")
    for i, (name, mean_ms) in enumerate(report.top_bottlenecks, 1):
        lines.append(f"  {i}. {name}: {mean_ms:.3f} ms")
    return "\n".join(lines)
