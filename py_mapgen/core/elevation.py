"""
Elevation synthesis from parametric templates blended with warped noise.

This module also holds the helpers every elevation engine shares to hand its
field off: sea-level selection, land and coast masks, graph distance to the
coast and slope.
"""

import math
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

import numpy as np
import structlog

from .errors import ConfigurationError, InvariantViolationError
from .noise import ValueNoise, domain_warp, fbm
from .voronoi_graph import CellMesh

logger = structlog.get_logger()

TEMPLATE_WEIGHT = 0.72
NOISE_WEIGHT = 0.28
MIN_LAND_FRACTION = 0.05
MAX_LAND_FRACTION = 0.90
DEFAULT_LAND_FRACTION = 0.35
DISTANCE_EPSILON = 1e-6


class ElevationTemplate(str, Enum):
    RADIAL_ISLAND = "radial_island"
    CONTINENTAL_GRADIENT = "continental_gradient"
    TWIN_CONTINENTS = "twin_continents"


class GradientDirection(str, Enum):
    W_TO_E = "WtoE"
    E_TO_W = "EtoW"
    N_TO_S = "NtoS"
    S_TO_N = "StoN"


@dataclass
class TemplateBlendOptions:
    """Options for template + noise elevation."""

    template: ElevationTemplate = ElevationTemplate.RADIAL_ISLAND
    direction: GradientDirection = GradientDirection.W_TO_E
    noise_scale: float = 450.0
    noise_octaves: int = 5
    noise_gain: float = 0.5
    noise_lacunarity: float = 2.0
    warp_scale: float = 350.0
    warp_amplitude: float = 45.0
    slope_scale: float = 1000.0


@dataclass
class ElevationResult:
    """Frozen elevation output handed to the classifier."""

    heights: np.ndarray
    sea_level: float
    is_land: np.ndarray
    is_coast: np.ndarray
    distance_to_coast: np.ndarray
    slope: np.ndarray
    engine: str = "template"
    template: Optional[str] = None
    failsafe_applied: bool = False
    metadata: dict = field(default_factory=dict)

    @property
    def land_fraction(self) -> float:
        if len(self.heights) == 0:
            return 0.0
        return float(np.count_nonzero(self.is_land)) / len(self.heights)


def normalize01(values: np.ndarray) -> np.ndarray:
    """Min-max normalise to [0, 1]. A constant field maps to 0."""
    values = np.asarray(values, dtype=np.float64)
    if len(values) == 0:
        return values.copy()
    lo = float(values.min())
    hi = float(values.max())
    span = (hi - lo) or 1.0
    return (values - lo) / span


def percentile(values: np.ndarray, p: float) -> float:
    """Value at index floor(p * (n - 1)) of the sorted values."""
    n = len(values)
    if n == 0:
        raise ConfigurationError("Cannot take a percentile of an empty field")
    order = np.argsort(values, kind="stable")
    k = max(0, min(n - 1, int(math.floor(p * (n - 1)))))
    return float(values[order[k]])


def clamp_land_fraction(target: float) -> float:
    return max(MIN_LAND_FRACTION, min(MAX_LAND_FRACTION, target))


def resolve_sea_level(
    heights: np.ndarray,
    sea_level: Optional[float] = None,
    target_land_fraction: Optional[float] = None,
) -> float:
    """
    Pick the sea level for a field.

    A fixed sea level wins; otherwise the (1 - target) percentile is used so
    that roughly target of the cells end up strictly above it.
    """
    if sea_level is not None and target_land_fraction is not None:
        raise ConfigurationError("sea_level and target_land_fraction are mutually exclusive")
    if sea_level is not None:
        return float(sea_level)
    target = clamp_land_fraction(
        DEFAULT_LAND_FRACTION if target_land_fraction is None else target_land_fraction
    )
    return percentile(heights, 1.0 - target)


def land_mask(heights: np.ndarray, sea_level: float) -> np.ndarray:
    return np.asarray(heights) > sea_level


def coast_mask(mesh: CellMesh, is_land: np.ndarray, water: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Land cells with at least one neighbour in the water mask.

    When water is not given every non-land cell counts.
    """
    if water is None:
        water = ~is_land
    is_coast = np.zeros(mesh.cell_count, dtype=bool)
    for i in range(mesh.cell_count):
        if not is_land[i]:
            continue
        for j in mesh.neighbors[i]:
            if water[j]:
                is_coast[i] = True
                break
    return is_coast


def graph_distance(
    mesh: CellMesh,
    sources: np.ndarray,
    passable: Optional[np.ndarray] = None,
    eps: float = DISTANCE_EPSILON,
) -> np.ndarray:
    """
    Weighted graph distance from a set of source cells.

    Label-correcting relaxation over a FIFO queue. Edge weight is the distance
    between sites; an update is accepted only if it improves the current value
    by more than eps. Cells outside passable are never entered.

    Args:
        mesh: Cell mesh
        sources: Boolean mask of cells at distance 0
        passable: Boolean mask of cells the distance may propagate into

    Returns:
        Distance per cell, inf where unreachable
    """
    n = mesh.cell_count
    dist = np.full(n, np.inf, dtype=np.float64)
    queue = deque()
    for i in np.flatnonzero(sources):
        dist[i] = 0.0
        queue.append(int(i))

    points = mesh.points
    neighbors = mesh.neighbors
    max_updates = 64 * (2 * mesh.edge_count + n) + 1
    updates = 0

    while queue:
        i = queue.popleft()
        xi, yi = points[i]
        di = dist[i]
        for j in neighbors[i]:
            if passable is not None and not passable[j]:
                continue
            nd = di + math.hypot(points[j][0] - xi, points[j][1] - yi)
            if nd + eps < dist[j]:
                dist[j] = nd
                queue.append(j)
                updates += 1
                if updates > max_updates:
                    raise InvariantViolationError(
                        f"Distance relaxation exceeded {max_updates} updates"
                    )
    return dist


def compute_slope(mesh: CellMesh, heights: np.ndarray, scale: float = 1000.0) -> np.ndarray:
    """Max |dh| / distance over neighbours, scaled and clamped to [0, 1]. Advisory only."""
    slope = np.zeros(mesh.cell_count, dtype=np.float64)
    points = mesh.points
    for i in range(mesh.cell_count):
        xi, yi = points[i]
        max_gradient = 0.0
        for j in mesh.neighbors[i]:
            d = math.hypot(points[j][0] - xi, points[j][1] - yi) or 1.0
            g = abs(heights[j] - heights[i]) / d
            if g > max_gradient:
                max_gradient = g
        slope[i] = min(1.0, max_gradient * scale)
    return slope


def summarize_elevation(
    mesh: CellMesh,
    heights: np.ndarray,
    sea_level: float,
    slope_scale: float = 1000.0,
    engine: str = "template",
    template: Optional[str] = None,
    failsafe_applied: bool = False,
) -> ElevationResult:
    """Derive land/coast masks, coast distance and slope for a finished field."""
    heights = np.array(heights, dtype=np.float64)
    is_land = land_mask(heights, sea_level)
    is_coast = coast_mask(mesh, is_land)
    distance = graph_distance(mesh, is_coast, passable=is_land)
    slope = compute_slope(mesh, heights, slope_scale)
    return ElevationResult(
        heights=heights,
        sea_level=float(sea_level),
        is_land=is_land,
        is_coast=is_coast,
        distance_to_coast=distance,
        slope=slope,
        engine=engine,
        template=template,
        failsafe_applied=failsafe_applied,
    )


def radial_island(x: np.ndarray, y: np.ndarray, width: float, height: float) -> np.ndarray:
    """Inverse normalised distance from the map centre, clamped to [0, 1]."""
    diag = math.hypot(width, height)
    r = np.hypot(x - width * 0.5, y - height * 0.5) / (0.5 * diag)
    return np.maximum(0.0, 1.0 - np.minimum(1.0, r))


def continental_gradient(
    x: np.ndarray,
    y: np.ndarray,
    width: float,
    height: float,
    direction: GradientDirection = GradientDirection.W_TO_E,
) -> np.ndarray:
    """Linear ramp along an axis, eased with a cosine."""
    direction = GradientDirection(direction)
    if direction == GradientDirection.W_TO_E:
        t = x / width
    elif direction == GradientDirection.E_TO_W:
        t = 1 - x / width
    elif direction == GradientDirection.N_TO_S:
        t = y / height
    else:
        t = 1 - y / height
    return 0.5 - 0.5 * np.cos(np.pi * t)


def twin_continents(x: np.ndarray, y: np.ndarray, width: float, height: float) -> np.ndarray:
    """Max of two radial falloffs centred at one and two thirds of the width."""
    diag = math.hypot(width, height)
    cy = height * 0.5
    r1 = 1 - np.hypot(x - width * 0.33, y - cy) / (0.45 * diag)
    r2 = 1 - np.hypot(x - width * 0.67, y - cy) / (0.45 * diag)
    return np.maximum(0.0, np.maximum(r1, r2))


class TemplateElevation:
    """
    Template + noise elevation engine.

    Draws nothing from the run's random stream: the noise is keyed by the
    seed directly.
    """

    def __init__(
        self,
        mesh: CellMesh,
        seed: Union[str, int, float, None],
        options: Optional[TemplateBlendOptions] = None,
    ):
        self.mesh = mesh
        self.seed = seed
        self.options = options or TemplateBlendOptions()
        self.noise = ValueNoise(seed)

    def base_shape(self) -> np.ndarray:
        """Evaluate the macro template at every site."""
        mesh = self.mesh
        x = mesh.centroids[:, 0]
        y = mesh.centroids[:, 1]
        template = ElevationTemplate(self.options.template)
        if template == ElevationTemplate.RADIAL_ISLAND:
            return radial_island(x, y, mesh.width, mesh.height)
        if template == ElevationTemplate.TWIN_CONTINENTS:
            return twin_continents(x, y, mesh.width, mesh.height)
        return continental_gradient(x, y, mesh.width, mesh.height, self.options.direction)

    def noise_field(self) -> np.ndarray:
        """Domain-warped FBM at every site, in [-1, 1]."""
        opts = self.options
        x = self.mesh.centroids[:, 0]
        y = self.mesh.centroids[:, 1]
        wx, wy = domain_warp(self.noise, x, y, scale=opts.warp_scale, amp=opts.warp_amplitude)
        return fbm(
            self.noise,
            wx,
            wy,
            octaves=opts.noise_octaves,
            lacunarity=opts.noise_lacunarity,
            gain=opts.noise_gain,
            scale=opts.noise_scale,
        )

    def generate_heights(self) -> np.ndarray:
        """Blended and normalised elevation in [0, 1]."""
        base = self.base_shape()
        n = self.noise_field()
        blended = TEMPLATE_WEIGHT * base + NOISE_WEIGHT * ((n + 1) * 0.5)
        return normalize01(blended)

    def generate(
        self,
        sea_level: Optional[float] = None,
        target_land_fraction: Optional[float] = None,
    ) -> ElevationResult:
        """Run the engine and derive sea level, masks, coast distance and slope."""
        logger.info(
            "Generating template elevation",
            template=ElevationTemplate(self.options.template).value,
            cells=self.mesh.cell_count,
        )
        heights = self.generate_heights()
        level = resolve_sea_level(heights, sea_level, target_land_fraction)
        result = summarize_elevation(
            self.mesh,
            heights,
            level,
            slope_scale=self.options.slope_scale,
            engine="template",
            template=ElevationTemplate(self.options.template).value,
        )
        logger.info(
            "Template elevation completed",
            sea_level=round(level, 4),
            land_fraction=round(result.land_fraction, 4),
        )
        return result
