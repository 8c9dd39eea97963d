"""Run summary.

Defines :class:`RunSummary`, the return value of :func:`apero_soleil.run`.
It carries the counts a batch operator needs to judge a run: how many
terraces were written, how many were excluded and why, and which slots had
no weather adjustment.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path

OUT_OF_COVERAGE = "out_of_coverage"
TERRACE_FAILURE = "terrace_failure"
DUPLICATE_ID = "duplicate_id"


@dataclass
class RunSummary:
    """Outcome of one batch run.

    Attributes:
        n_input: Terraces in the registry after duplicate removal.
        n_written: Terraces present in the output.
        n_slots: Time slots per terrace.
        n_daylight_slots: Slots with the sun above the horizon.
        n_sunlit: Total sunlit (terrace, slot) pairs in the output.
        error_counts: Recoverable problems by kind (``out_of_coverage``,
            ``terrace_failure``, ``duplicate_id``).
        weather_unadjusted_slots: Slot keys that fell back to 0 % cloud cover.
        elapsed_s: Wall-clock duration of the run in seconds.
        output_path: Written interchange file, None until written.
        excluded_ids: Ids of terraces left out of the output.
    """

    n_input: int = 0
    n_written: int = 0
    n_slots: int = 0
    n_daylight_slots: int = 0
    n_sunlit: int = 0
    error_counts: Counter = field(default_factory=Counter)
    weather_unadjusted_slots: list[str] = field(default_factory=list)
    elapsed_s: float = 0.0
    output_path: Path | None = None
    excluded_ids: list[str] = field(default_factory=list)

    @property
    def n_excluded(self) -> int:
        return self.n_input - self.n_written

    @property
    def n_warnings(self) -> int:
        """All recoverable problems, including duplicate ids."""
        return sum(self.error_counts.values())

    def record_error(self, kind: str, terrace_id: str | None = None) -> None:
        self.error_counts[kind] += 1
        if terrace_id is not None and kind != DUPLICATE_ID:
            self.excluded_ids.append(terrace_id)

    def to_dict(self) -> dict:
        return {
            "n_input": self.n_input,
            "n_written": self.n_written,
            "n_excluded": self.n_excluded,
            "n_slots": self.n_slots,
            "n_daylight_slots": self.n_daylight_slots,
            "n_sunlit": self.n_sunlit,
            "error_counts": dict(sorted(self.error_counts.items())),
            "weather_unadjusted_slots": list(self.weather_unadjusted_slots),
            "elapsed_s": round(self.elapsed_s, 3),
            "output_path": str(self.output_path) if self.output_path is not None else None,
            "excluded_ids": list(self.excluded_ids),
        }

    def report(self) -> str:
        """Return a human-readable summary report.

        Returns:
            Multi-line report string.
        """
        lines = [
            f"Apéro Soleil: {self.n_written}/{self.n_input} terraces written, "
            f"{self.n_slots} slots ({self.n_daylight_slots} with sun above the horizon)",
        ]
        if self.n_written and self.n_slots:
            share = self.n_sunlit / (self.n_written * self.n_slots)
            lines.append(f"  Sunlit: {self.n_sunlit} terrace-slots ({share:.0%})")
        for kind, count in sorted(self.error_counts.items()):
            lines.append(f"  {kind}: {count}")
        if self.weather_unadjusted_slots:
            lines.append(f"  Weather-unadjusted slots: {', '.join(self.weather_unadjusted_slots)}")
        if self.output_path is not None:
            lines.append(f"  Output: {self.output_path}")
        lines.append(f"  Elapsed: {self.elapsed_s:.1f}s")
        return "\n".join(lines)
