"""
Coastline extraction from shared Voronoi edges.

Polygon edges are matched across cells by snapping their endpoints to a
decimal grid. Edges separating a land cell from an ocean cell are chained into
polylines, then optionally smoothed with Chaikin corner cutting.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
import structlog

from .errors import ConfigurationError
from .voronoi_graph import CellMesh

logger = structlog.get_logger()

PointKey = Tuple[int, int]
EdgeKey = Tuple[PointKey, PointKey]


@dataclass
class CoastlineOptions:
    snap_digits: int = 2
    smooth_iterations: int = 2
    smooth_ratio: float = 0.25


@dataclass
class Coastline:
    """Coastline polylines in map coordinates."""

    loops: List[np.ndarray] = field(default_factory=list)  # closed, first point repeated last
    open_chains: List[np.ndarray] = field(default_factory=list)  # end on the frame
    smoothed_loops: List[np.ndarray] = field(default_factory=list)
    smoothed_open_chains: List[np.ndarray] = field(default_factory=list)
    edge_count: int = 0

    @property
    def total_length(self) -> float:
        total = 0.0
        for line in self.loops + self.open_chains:
            if len(line) > 1:
                total += float(np.hypot(*np.diff(line, axis=0).T).sum())
        return total


def snap_key(x: float, y: float, digits: int = 2) -> PointKey:
    """Round a point to the snapping grid, halves rounding up."""
    scale = 10.0 ** digits
    return int(math.floor(x * scale + 0.5)), int(math.floor(y * scale + 0.5))


def edge_key(a: PointKey, b: PointKey) -> EdgeKey:
    return (a, b) if a <= b else (b, a)


def collect_shared_edges(mesh: CellMesh, digits: int = 2):
    """
    Map every snapped polygon edge to the cells that carry it.

    Returns:
        (edge_cells, coords): edge key -> cell list in first-seen order, and
        point key -> first-seen float coordinate
    """
    edge_cells: Dict[EdgeKey, List[int]] = {}
    coords: Dict[PointKey, Tuple[float, float]] = {}

    for i, polygon in enumerate(mesh.polygons):
        n = len(polygon)
        for p in range(n):
            x1, y1 = polygon[p]
            x2, y2 = polygon[(p + 1) % n]
            k1 = snap_key(x1, y1, digits)
            k2 = snap_key(x2, y2, digits)
            if k1 == k2:
                continue
            coords.setdefault(k1, (float(x1), float(y1)))
            coords.setdefault(k2, (float(x2), float(y2)))
            cells = edge_cells.setdefault(edge_key(k1, k2), [])
            if i not in cells:
                cells.append(i)

    return edge_cells, coords


def _turn_angle(a: Tuple[float, float], b: Tuple[float, float], c: Tuple[float, float]) -> float:
    """Signed turn at b when going a -> b -> c, in (-pi, pi]."""
    dx1, dy1 = b[0] - a[0], b[1] - a[1]
    dx2, dy2 = c[0] - b[0], c[1] - b[1]
    return math.atan2(dx1 * dy2 - dy1 * dx2, dx1 * dx2 + dy1 * dy2)


def chain_edges(
    edges: List[EdgeKey], coords: Dict[PointKey, Tuple[float, float]]
) -> Tuple[List[np.ndarray], List[np.ndarray]]:
    """
    Chain undirected edges into polylines, consuming each edge exactly once.

    Walks start at odd-degree vertices first, so chains that end on the frame
    are traced end to end. At a vertex with several unused edges the one with
    the smallest signed turn is taken.

    Returns:
        (loops, open_chains)
    """
    adjacency: Dict[PointKey, List[PointKey]] = {}
    for a, b in edges:
        adjacency.setdefault(a, []).append(b)
        adjacency.setdefault(b, []).append(a)

    used = set()
    loops: List[np.ndarray] = []
    open_chains: List[np.ndarray] = []

    def walk(start: PointKey) -> None:
        keys = [start]
        prev: Optional[PointKey] = None
        current = start
        while True:
            candidates = [k for k in adjacency[current] if edge_key(current, k) not in used]
            if not candidates:
                break
            if prev is None:
                nxt = candidates[0]
            else:
                nxt = min(
                    candidates,
                    key=lambda k: _turn_angle(coords[prev], coords[current], coords[k]),
                )
            used.add(edge_key(current, nxt))
            keys.append(nxt)
            prev, current = current, nxt
            if current == start:
                break

        line = np.array([coords[k] for k in keys], dtype=np.float64)
        if len(keys) > 3 and keys[-1] == start:
            loops.append(line)
        else:
            open_chains.append(line)

    for vertex, neighbors in adjacency.items():
        if len(neighbors) % 2 == 1:
            while any(edge_key(vertex, k) not in used for k in neighbors):
                walk(vertex)

    for a, b in edges:
        while (a, b) not in used:
            walk(a)

    return loops, open_chains


def smooth_closed_chaikin(points: np.ndarray, iterations: int = 2, t: float = 0.25) -> np.ndarray:
    """
    Chaikin corner cutting on a closed ring.

    Accepts the ring with or without its closing point and returns it closed.
    """
    pts = np.asarray(points, dtype=np.float64)
    if len(pts) > 1 and np.array_equal(pts[0], pts[-1]):
        pts = pts[:-1]
    if len(pts) < 3:
        return np.asarray(points, dtype=np.float64).copy()
    for _ in range(iterations):
        nxt = np.roll(pts, -1, axis=0)
        q = (1 - t) * pts + t * nxt
        r = t * pts + (1 - t) * nxt
        pts = np.empty((len(q) * 2, 2), dtype=np.float64)
        pts[0::2] = q
        pts[1::2] = r
    return np.vstack([pts, pts[:1]])


def smooth_open_chaikin(points: np.ndarray, iterations: int = 2, t: float = 0.25) -> np.ndarray:
    """Chaikin corner cutting on an open polyline; endpoints stay fixed."""
    pts = np.asarray(points, dtype=np.float64)
    if len(pts) < 3:
        return pts.copy()
    for _ in range(iterations):
        a = pts[:-1]
        b = pts[1:]
        q = (1 - t) * a + t * b
        r = t * a + (1 - t) * b
        inner = np.empty((len(q) * 2, 2), dtype=np.float64)
        inner[0::2] = q
        inner[1::2] = r
        pts = np.vstack([pts[:1], inner, pts[-1:]])
    return pts


def extract_coastlines(
    mesh: CellMesh,
    is_land: np.ndarray,
    is_ocean: np.ndarray,
    options: Optional[CoastlineOptions] = None,
) -> Coastline:
    """
    Extract land/ocean boundary polylines.

    Only edges carried by exactly two cells, one land and one ocean, qualify.
    Frame edges and land/lake edges are skipped.

    Args:
        mesh: Cell mesh
        is_land: Land mask
        is_ocean: Ocean mask
        options: Snapping and smoothing options

    Returns:
        Coastline with raw and smoothed polylines
    """
    options = options or CoastlineOptions()
    if options.snap_digits < 0:
        raise ConfigurationError(f"snap_digits must be non-negative, got {options.snap_digits}")
    if options.smooth_iterations < 0:
        raise ConfigurationError(
            f"smooth_iterations must be non-negative, got {options.smooth_iterations}"
        )

    edge_cells, coords = collect_shared_edges(mesh, options.snap_digits)

    coast_edges: List[EdgeKey] = []
    for key, cells in edge_cells.items():
        if len(cells) != 2:
            continue
        a, b = cells
        if (is_land[a] and is_ocean[b]) or (is_land[b] and is_ocean[a]):
            coast_edges.append(key)

    loops, open_chains = chain_edges(coast_edges, coords)
    coastline = Coastline(
        loops=loops,
        open_chains=open_chains,
        smoothed_loops=[
            smooth_closed_chaikin(loop, options.smooth_iterations, options.smooth_ratio)
            for loop in loops
        ],
        smoothed_open_chains=[
            smooth_open_chaikin(chain, options.smooth_iterations, options.smooth_ratio)
            for chain in open_chains
        ],
        edge_count=len(coast_edges),
    )

    logger.info(
        "Coastlines extracted",
        edges=len(coast_edges),
        loops=len(loops),
        open_chains=len(open_chains),
    )
    return coastline
