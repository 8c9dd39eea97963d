"""Result data models."""

from __future__ import annotations

from dataclasses import dataclass, field

from .terrace import Terrace


@dataclass(frozen=True)
class Obstruction:
    """
    First DSM cell along a sun ray that reaches the ray height.

    Attributes:
        distance: Horizontal distance from the terrace (m).
        height: DSM height at the obstruction (m).
        ray_height: Ray height at that distance (m).
        x: Easting of the sample point in the DSM CRS.
        y: Northing of the sample point in the DSM CRS.
    """

    distance: float
    height: float
    ray_height: float
    x: float
    y: float


@dataclass(frozen=True)
class RayResult:
    """
    Geometric outcome of one ray march.

    Attributes:
        sunlit: True when no sample reached the ray height.
        obstruction: The first obstruction, or None when sunlit.
        partial_coverage: True when the ray left the raster or crossed
            nodata before the cut-off without being obstructed, i.e. the
            sunlit verdict rests on assumed open sky.
        steps: Number of in-coverage samples examined.
    """

    sunlit: bool
    obstruction: Obstruction | None = None
    partial_coverage: bool = False
    steps: int = 0


@dataclass(frozen=True)
class Classification:
    """
    Final record for one (terrace, time slot) pair.

    Attributes:
        slot: Slot key (``tHHMM``).
        is_sunlit: Final classification after the weather filter.
        geometric_sunlit: Classification from the ray march alone.
        cloud_downgraded: True when clouds turned a geometric sun into shade.
        ray: Ray diagnostics, None when the sun was below the horizon.
    """

    slot: str
    is_sunlit: bool
    geometric_sunlit: bool
    cloud_downgraded: bool = False
    ray: RayResult | None = None


@dataclass
class TerraceResult:
    """All classifications of one terrace, in slot order."""

    terrace: Terrace
    classifications: list[Classification] = field(default_factory=list)

    @property
    def flags(self) -> dict[str, bool]:
        """Slot key -> final sunlit flag."""
        return {c.slot: c.is_sunlit for c in self.classifications}

    @property
    def sunlit_slots(self) -> int:
        return sum(1 for c in self.classifications if c.is_sunlit)
