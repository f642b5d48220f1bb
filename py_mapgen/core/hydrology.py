"""
Hydrology system for river generation.

This module implements:
- Weighted distance-to-sea field
- Downhill flow directions with a three-tier fallback
- Precipitation-driven flux accumulation
- River channel tracing with merge truncation
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
import structlog

from .elevation import graph_distance
from .errors import ConfigurationError, InvariantViolationError
from .voronoi_graph import CellMesh

logger = structlog.get_logger()


@dataclass
class RiverOptions:
    """River flow options."""
    precipitation: float = 0.5  # Uniform input per land cell
    major_flux_fraction: float = 0.35  # Fraction of max flux for major channels
    minor_flux_fraction: float = 0.10  # Fraction of max flux for minor channels
    min_flux: float = 0.005  # Absolute floor for both thresholds
    min_channel_cells: int = 3  # Shorter channels are dropped
    trace_minor: bool = True


@dataclass
class River:
    """Represents a river channel with its properties."""
    id: int
    cells: List[int]  # Cell indices from source to mouth
    points: np.ndarray  # Site coordinates along the channel
    flux: float  # Flux at the last land cell
    length: float  # Channel length in map units
    is_major: bool
    source_cell: int
    mouth_cell: int
    reached_water: bool = False


@dataclass
class RiverNetwork:
    """Flow graph, accumulated flux and traced channels."""
    downhill: np.ndarray
    flux: np.ndarray
    distance_to_sea: np.ndarray
    order: np.ndarray
    rivers: List[River] = field(default_factory=list)
    sinks: List[int] = field(default_factory=list)
    thresholds: Dict[str, float] = field(default_factory=dict)
    stats: Dict[str, float] = field(default_factory=dict)

    @property
    def major_rivers(self) -> List[River]:
        return [r for r in self.rivers if r.is_major]


def uniform_precipitation(is_water: np.ndarray, amount: float = 0.5) -> np.ndarray:
    """Constant precipitation on land, none on water."""
    return np.where(is_water, 0.0, amount).astype(np.float64)


class Hydrology:
    """Handles water flow simulation and river generation."""

    def __init__(
        self,
        mesh: CellMesh,
        heights: np.ndarray,
        is_water: np.ndarray,
        options: Optional[RiverOptions] = None,
    ):
        """
        Initialize hydrology for a classified map.

        Args:
            mesh: Cell mesh
            heights: Elevation per cell
            is_water: Water mask (ocean and lakes)
            options: River options
        """
        self.mesh = mesh
        self.heights = np.asarray(heights, dtype=np.float64)
        self.is_water = np.asarray(is_water, dtype=bool)
        self.options = options or RiverOptions()
        self.n_cells = mesh.cell_count

        if len(self.heights) != self.n_cells or len(self.is_water) != self.n_cells:
            raise ConfigurationError("Heights and water mask must have one value per cell")
        opts = self.options
        if opts.precipitation < 0 or opts.min_flux < 0:
            raise ConfigurationError("Precipitation and min_flux must be non-negative")
        if not 0 < opts.minor_flux_fraction <= opts.major_flux_fraction <= 1:
            raise ConfigurationError(
                "Flux fractions must satisfy 0 < minor <= major <= 1, "
                f"got minor={opts.minor_flux_fraction} major={opts.major_flux_fraction}"
            )

    def processing_order(self) -> np.ndarray:
        """All cells by descending elevation, ties by ascending index."""
        idx = np.arange(self.n_cells)
        return np.lexsort((idx, -self.heights))

    def calculate_flow_directions(self, distance: np.ndarray, rank: np.ndarray) -> np.ndarray:
        """
        Pick one downhill neighbour per land cell.

        Candidates are water cells or land cells processed later. Among them:
        (1) strictly closer to the sea, lowest elevation; else (2) strictly
        lower than the cell, lowest elevation; else (3) smallest
        (distance, elevation). Cells with no candidate are sinks (-1).
        """
        h = self.heights
        downhill = np.full(self.n_cells, -1, dtype=np.int32)

        for i in range(self.n_cells):
            if self.is_water[i]:
                continue
            candidates = [
                j for j in self.mesh.neighbors[i] if self.is_water[j] or rank[j] > rank[i]
            ]
            if not candidates:
                continue

            best = -1
            best_h = np.inf
            for j in candidates:
                if distance[j] < distance[i] and h[j] < best_h:
                    best_h = h[j]
                    best = j

            if best == -1:
                for j in candidates:
                    if h[j] < h[i] and h[j] < best_h:
                        best_h = h[j]
                        best = j

            if best == -1:
                best_d = np.inf
                for j in candidates:
                    if best == -1 or distance[j] < best_d or (distance[j] == best_d and h[j] < best_h):
                        best_d = distance[j]
                        best_h = h[j]
                        best = j

            downhill[i] = best

        return downhill

    def accumulate_flux(
        self, downhill: np.ndarray, order: np.ndarray, precipitation: np.ndarray
    ) -> np.ndarray:
        """Route precipitation down the flow graph in processing order."""
        flux = np.maximum(0.0, np.asarray(precipitation, dtype=np.float64)).copy()
        flux[self.is_water] = 0.0
        for i in order:
            if self.is_water[i]:
                continue
            j = downhill[i]
            if j != -1:
                flux[j] += flux[i]
        return flux

    def _trace_channel(
        self, start: int, downhill: np.ndarray, claimed: np.ndarray
    ) -> Tuple[List[int], int]:
        """
        Follow downhill pointers until water, a sink or an already claimed cell.

        Returns:
            (cells, newly_claimed): the channel including its merge or water
            cell, and how many leading cells this trace claimed
        """
        cells = [start]
        claimed[start] = True
        current = start
        for _ in range(self.n_cells):
            nxt = downhill[current]
            if nxt == -1:
                return cells, len(cells)
            cells.append(int(nxt))
            if self.is_water[nxt] or claimed[nxt]:
                return cells, len(cells) - 1
            claimed[nxt] = True
            current = nxt
        raise InvariantViolationError(f"River trace from cell {start} exceeded {self.n_cells} steps")

    def _channel_length(self, cells: List[int]) -> float:
        return float(sum(self.mesh.edge_length(a, b) for a, b in zip(cells[:-1], cells[1:])))

    def trace_rivers(
        self, downhill: np.ndarray, flux: np.ndarray, order: np.ndarray, thresholds: Dict[str, float]
    ) -> List[River]:
        """Trace major channels, then minor ones, truncating at merges."""
        claimed = np.zeros(self.n_cells, dtype=bool)
        rivers: List[River] = []
        passes = [(True, thresholds["major"])]
        if self.options.trace_minor:
            passes.append((False, thresholds["minor"]))

        for is_major, threshold in passes:
            for s in order:
                if self.is_water[s] or claimed[s] or flux[s] < threshold:
                    continue
                cells, newly_claimed = self._trace_channel(int(s), downhill, claimed)
                if len(cells) < self.options.min_channel_cells:
                    claimed[cells[:newly_claimed]] = False
                    continue
                mouth = cells[-1]
                last_land = cells[-2] if self.is_water[mouth] else mouth
                rivers.append(
                    River(
                        id=len(rivers) + 1,
                        cells=cells,
                        points=self.mesh.centroids[cells].copy(),
                        flux=float(flux[last_land]),
                        length=self._channel_length(cells),
                        is_major=is_major,
                        source_cell=cells[0],
                        mouth_cell=mouth,
                        reached_water=bool(self.is_water[mouth]),
                    )
                )
        return rivers

    def count_confluences(self, downhill: np.ndarray, flux: np.ndarray, threshold: float) -> int:
        """Land cells fed by two or more upstream cells at or above the threshold."""
        inflows = np.zeros(self.n_cells, dtype=np.int32)
        for i in range(self.n_cells):
            j = downhill[i]
            if j != -1 and not self.is_water[j] and flux[i] >= threshold:
                inflows[j] += 1
        return int(np.count_nonzero(inflows >= 2))

    def run_full_simulation(self, precipitation: Optional[np.ndarray] = None) -> RiverNetwork:
        """
        Run the complete river simulation.

        Args:
            precipitation: Input per cell, defaults to uniform rain on land

        Returns:
            RiverNetwork with flow graph, flux and channels
        """
        opts = self.options
        logger.info("Starting river simulation", cells=self.n_cells)

        if precipitation is None:
            precipitation = uniform_precipitation(self.is_water, opts.precipitation)
        elif len(precipitation) != self.n_cells:
            raise ConfigurationError("Precipitation must have one value per cell")

        distance = graph_distance(self.mesh, self.is_water)
        order = self.processing_order()
        rank = np.empty(self.n_cells, dtype=np.int64)
        rank[order] = np.arange(self.n_cells)

        downhill = self.calculate_flow_directions(distance, rank)
        flux = self.accumulate_flux(downhill, order, precipitation)

        land = ~self.is_water
        max_flux = float(flux[land].max()) if land.any() else 0.0
        thresholds = {
            "major": max(opts.major_flux_fraction * max_flux, opts.min_flux),
            "minor": max(opts.minor_flux_fraction * max_flux, opts.min_flux),
            "max_flux": max_flux,
        }

        rivers = self.trace_rivers(downhill, flux, order, thresholds)
        sinks = [int(i) for i in np.flatnonzero(land & (downhill == -1))]
        majors = [r for r in rivers if r.is_major]

        stats = {
            "majors": int(np.count_nonzero(land & (flux >= thresholds["major"]))),
            "confluences": self.count_confluences(downhill, flux, thresholds["major"]),
            "majors_drawn": len(majors),
            "majors_reached_sea": sum(1 for r in majors if r.reached_water),
            "mean_major_length": (
                float(np.mean([r.length for r in majors])) if majors else 0.0
            ),
        }

        logger.info(
            "River simulation completed",
            rivers=len(rivers),
            majors=stats["majors_drawn"],
            sinks=len(sinks),
            max_flux=round(max_flux, 4),
        )

        return RiverNetwork(
            downhill=downhill,
            flux=flux,
            distance_to_sea=distance,
            order=order,
            rivers=rivers,
            sinks=sinks,
            thresholds=thresholds,
            stats=stats,
        )
