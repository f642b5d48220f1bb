"""Blue-noise sampling and Voronoi cell mesh construction."""

import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np
import structlog
from scipy.spatial import Delaunay, QhullError, Voronoi, cKDTree

from .errors import ConfigurationError, DegenerateInputError
from .rng import Mulberry32

logger = structlog.get_logger()

BORDER_EPSILON = 1e-6


@dataclass
class CellMesh:
    """Cell graph shared by every generation stage.

    Built once per run from a point set and a bounding box and never modified
    afterwards. Cell indices are stable for the lifetime of the run.
    """

    width: float
    height: float

    # Points data
    points: np.ndarray                 # sites, shape (N, 2)

    # Cell connectivity data
    neighbors: List[List[int]]         # triangulation adjacency, symmetric
    polygons: List[np.ndarray]         # clipped Voronoi loop per cell, CCW
    border_flags: np.ndarray           # 1 if polygon touches the frame
    edges: np.ndarray                  # unique (i, j) pairs with i < j

    _tree: Optional[cKDTree] = field(default=None, repr=False, compare=False)

    @property
    def centroids(self) -> np.ndarray:
        """Per-cell reference position. These are the sites, not polygon centroids."""
        return self.points

    @property
    def cell_count(self) -> int:
        return len(self.points)

    @property
    def edge_count(self) -> int:
        return len(self.edges)

    def find_nearest_cell(self, x: float, y: float) -> int:
        """Index of the cell whose site is closest to (x, y)."""
        if self._tree is None:
            self._tree = cKDTree(self.points)
        _, idx = self._tree.query([x, y])
        return int(idx)

    def edge_length(self, i: int, j: int) -> float:
        """Euclidean distance between the sites of two cells."""
        dx = self.points[j][0] - self.points[i][0]
        dy = self.points[j][1] - self.points[i][1]
        return math.hypot(dx, dy)


def sample_points(
    width: float, height: float, min_dist: float, rng: Mulberry32, k: int = 30
) -> np.ndarray:
    """
    Generate blue-noise points with Bridson's Poisson-disc algorithm.

    A background grid with cell size min_dist/sqrt(2) holds at most one
    sample per grid cell, so rejection only has to look at the surrounding
    5x5 block.

    Args:
        width: Map width
        height: Map height
        min_dist: Minimum distance between any two points
        rng: Random stream of the run
        k: Candidate attempts per active sample

    Returns:
        Array of [x, y] coordinates in insertion order
    """
    if not (width > 0 and height > 0):
        raise ConfigurationError(f"Map size must be positive, got {width}x{height}")
    if not min_dist > 0:
        raise ConfigurationError(f"min_dist must be positive, got {min_dist}")
    if k < 1:
        raise ConfigurationError(f"k must be at least 1, got {k}")

    cell_size = min_dist / math.sqrt(2)
    grid_w = int(math.ceil(width / cell_size))
    grid_h = int(math.ceil(height / cell_size))
    grid = np.full(grid_w * grid_h, -1, dtype=np.int64)
    min_dist_sq = min_dist * min_dist

    points: List[Tuple[float, float]] = []
    active: List[int] = []

    def insert(p: Tuple[float, float], idx: int) -> None:
        gx = int(p[0] // cell_size)
        gy = int(p[1] // cell_size)
        grid[gy * grid_w + gx] = idx

    def is_far(p: Tuple[float, float]) -> bool:
        gx = int(p[0] // cell_size)
        gy = int(p[1] // cell_size)
        for gy2 in range(max(0, gy - 2), min(grid_h - 1, gy + 2) + 1):
            for gx2 in range(max(0, gx - 2), min(grid_w - 1, gx + 2) + 1):
                other = grid[gy2 * grid_w + gx2]
                if other != -1:
                    q = points[other]
                    dx = q[0] - p[0]
                    dy = q[1] - p[1]
                    if dx * dx + dy * dy < min_dist_sq:
                        return False
        return True

    p0 = (rng.random() * width, rng.random() * height)
    points.append(p0)
    active.append(0)
    insert(p0, 0)

    while active:
        slot = int(len(active) * rng.random())
        i = active[slot]
        found = False

        for _ in range(k):
            r = min_dist * (1 + rng.random())
            theta = 2 * math.pi * rng.random()
            p = (
                points[i][0] + r * math.cos(theta),
                points[i][1] + r * math.sin(theta),
            )
            if 0 <= p[0] < width and 0 <= p[1] < height and is_far(p):
                points.append(p)
                insert(p, len(points) - 1)
                active.append(len(points) - 1)
                found = True
                break

        if not found:
            # Retire the slot by swapping in the last active sample
            last = active.pop()
            if slot < len(active):
                active[slot] = last

    logger.info("Poisson-disc sampling completed", points=len(points), min_dist=min_dist)
    return np.array(points, dtype=np.float64)


def get_boundary_points(width: float, height: float) -> np.ndarray:
    """
    Generate guard points far outside the map frame.

    Every site inside the frame becomes an interior point of the augmented set,
    so all of its Voronoi regions are finite. The guards sit so far away that
    none of them is ever the nearest site to a location inside the frame.
    """
    span = max(width, height) * 10.0
    cx, cy = width / 2, height / 2
    points = []
    for i in range(8):
        angle = i * math.pi / 4
        points.append([cx + span * math.cos(angle), cy + span * math.sin(angle)])
    return np.array(points)


def build_cell_connectivity(tri: Delaunay, n_points: int) -> List[List[int]]:
    """
    Build symmetric neighbour lists from Delaunay adjacency.

    Args:
        tri: scipy Delaunay triangulation
        n_points: Number of sites

    Returns:
        Sorted neighbour index list per cell
    """
    indptr, indices = tri.vertex_neighbor_vertices
    cell_neighbors = [[] for _ in range(n_points)]
    for i in range(n_points):
        cell_neighbors[i] = sorted(int(j) for j in indices[indptr[i]:indptr[i + 1]])
    return cell_neighbors


def clip_polygon(polygon: np.ndarray, width: float, height: float) -> np.ndarray:
    """Sutherland-Hodgman clip of a convex polygon to [0, width] x [0, height]."""
    # (axis, bound, keep_if_greater)
    planes = ((0, 0.0, True), (0, width, False), (1, 0.0, True), (1, height, False))
    output = [tuple(p) for p in polygon]

    for axis, bound, keep_greater in planes:
        if not output:
            break
        source = output
        output = []

        def inside(p):
            return p[axis] >= bound if keep_greater else p[axis] <= bound

        for idx, current in enumerate(source):
            previous = source[idx - 1]
            cur_in = inside(current)
            prev_in = inside(previous)
            if cur_in != prev_in:
                t = (bound - previous[axis]) / (current[axis] - previous[axis])
                crossing = [0.0, 0.0]
                crossing[axis] = bound
                other = 1 - axis
                crossing[other] = previous[other] + t * (current[other] - previous[other])
                output.append(tuple(crossing))
            if cur_in:
                output.append(current)

    return np.array(output, dtype=np.float64).reshape(-1, 2)


def _dedupe_loop(polygon: np.ndarray, tol: float = 1e-9) -> np.ndarray:
    """Remove consecutive duplicate vertices, including across the wrap."""
    kept = []
    for p in polygon:
        if kept and abs(kept[-1][0] - p[0]) <= tol and abs(kept[-1][1] - p[1]) <= tol:
            continue
        kept.append(p)
    while len(kept) > 1 and abs(kept[0][0] - kept[-1][0]) <= tol and abs(kept[0][1] - kept[-1][1]) <= tol:
        kept.pop()
    return np.array(kept, dtype=np.float64).reshape(-1, 2)


def build_cell_polygons(
    vor: Voronoi, points: np.ndarray, width: float, height: float
) -> List[np.ndarray]:
    """
    Build the clipped Voronoi polygon of every site.

    Regions are convex and contain their site, so ordering the vertices by
    angle around the site gives a counter-clockwise loop.
    """
    polygons = []
    for i in range(len(points)):
        region = vor.regions[vor.point_region[i]]
        if -1 in region or len(region) < 3:
            raise DegenerateInputError(f"Cell {i} has an unbounded Voronoi region")
        vertices = vor.vertices[region]
        angles = np.arctan2(vertices[:, 1] - points[i][1], vertices[:, 0] - points[i][0])
        ordered = vertices[np.argsort(angles, kind="stable")]
        clipped = _dedupe_loop(clip_polygon(ordered, width, height))
        if len(clipped) < 3:
            raise DegenerateInputError(
                f"Cell {i} clips to {len(clipped)} vertices inside the {width}x{height} frame"
            )
        polygons.append(clipped)
    return polygons


def touches_border(polygon: np.ndarray, width: float, height: float, eps: float = BORDER_EPSILON) -> bool:
    """True if any polygon vertex lies on the map frame (within eps)."""
    if len(polygon) == 0:
        return False
    xs = polygon[:, 0]
    ys = polygon[:, 1]
    return bool(
        np.any(xs <= eps) or np.any(ys <= eps)
        or np.any(xs >= width - eps) or np.any(ys >= height - eps)
    )


def build_edge_list(cell_neighbors: Sequence[Sequence[int]]) -> np.ndarray:
    """Deduplicated undirected edges as (i, j) pairs with i < j."""
    edges = [(i, j) for i, neighbors in enumerate(cell_neighbors) for j in neighbors if i < j]
    return np.array(edges, dtype=np.int64).reshape(-1, 2)


def _triangulate(points: np.ndarray) -> Delaunay:
    if len(points) < 3:
        raise DegenerateInputError(f"Need at least 3 points to triangulate, got {len(points)}")

    centered = points - points.mean(axis=0)
    if np.linalg.matrix_rank(centered, tol=1e-9 * max(1.0, float(np.abs(centered).max()))) < 2:
        raise DegenerateInputError("All points are collinear")

    try:
        tri = Delaunay(points)
    except QhullError as exc:
        raise DegenerateInputError(f"Delaunay triangulation failed: {exc}") from exc

    if len(tri.coplanar):
        raise DegenerateInputError(
            f"{len(tri.coplanar)} points were dropped from the triangulation (coincident points)"
        )
    return tri


def build_mesh(points: np.ndarray, width: float, height: float) -> CellMesh:
    """
    Build the cell mesh from sites and a bounding box.

    Neighbour lists come from the Delaunay triangulation; polygons are the
    dual Voronoi cells clipped to the frame. Centroids reuse the sites.

    Args:
        points: Array of [x, y] sites
        width: Map width
        height: Map height

    Returns:
        Complete cell mesh
    """
    if not (width > 0 and height > 0):
        raise ConfigurationError(f"Map size must be positive, got {width}x{height}")

    points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    outside = (
        (points[:, 0] < 0) | (points[:, 0] > width) | (points[:, 1] < 0) | (points[:, 1] > height)
    )
    if outside.any():
        raise ConfigurationError(
            f"{int(outside.sum())} sites lie outside the {width}x{height} frame, "
            f"first at index {int(np.argmax(outside))}"
        )
    logger.info("Building cell mesh", points=len(points), width=width, height=height)

    tri = _triangulate(points)
    cell_neighbors = build_cell_connectivity(tri, len(points))

    boundary_points = get_boundary_points(width, height)
    try:
        vor = Voronoi(np.vstack([points, boundary_points]))
    except QhullError as exc:
        raise DegenerateInputError(f"Voronoi construction failed: {exc}") from exc

    polygons = build_cell_polygons(vor, points, width, height)
    border_flags = np.array(
        [1 if touches_border(poly, width, height) else 0 for poly in polygons], dtype=np.uint8
    )
    edges = build_edge_list(cell_neighbors)

    logger.info(
        "Cell mesh built",
        cells=len(points),
        edges=len(edges),
        border_cells=int(border_flags.sum()),
    )

    return CellMesh(
        width=width,
        height=height,
        points=points,
        neighbors=cell_neighbors,
        polygons=polygons,
        border_flags=border_flags,
        edges=edges,
    )
