"""
Heightmap generation by blob-field growth.

Terrain is composed from breadth-first "blobs": a seed cell receives a peak
value and each ring of neighbours gets a decayed copy of its parent. Blobs are
accumulated onto an owned elevation buffer through non-linear additive and
subtractive blends, driven by line-oriented template scripts.
"""

import math
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple, Union

import numpy as np
import structlog

from .elevation import (
    DEFAULT_LAND_FRACTION,
    ElevationResult,
    clamp_land_fraction,
    resolve_sea_level,
    summarize_elevation,
)
from .errors import ConfigurationError
from .noise import ValueNoise, domain_warp
from .rng import Mulberry32
from .sampling import SeedSelector, SeedWindow
from .voronoi_graph import CellMesh

logger = structlog.get_logger()

ADD_KEEP = 0.72
ADD_GAIN = 0.62
SUBTRACT_GAIN = 0.85
# Largest double below 1.0: additive blending saturates towards but never onto 1
SATURATION_CEILING = float(np.nextafter(1.0, 0.0))
MAX_EFFECTIVE_RADIUS = 0.999
# Blob radii are per-ring decays on a mesh of this many cells
REFERENCE_CELLS = 3000
LAND_FRACTION_TOLERANCE = 0.05

BlendFunction = Callable[[np.ndarray, np.ndarray], np.ndarray]


def add_blend(heights: np.ndarray, increment: np.ndarray) -> np.ndarray:
    """Sub-linear additive blend, applied where the increment is positive."""
    out = np.array(heights, dtype=np.float64)
    mask = increment > 0
    out[mask] = np.minimum(SATURATION_CEILING, out[mask] * ADD_KEEP + increment[mask] * ADD_GAIN)
    return out


def subtract_blend(heights: np.ndarray, increment: np.ndarray) -> np.ndarray:
    """Carving blend, weighted to win against prior fill."""
    out = np.array(heights, dtype=np.float64)
    mask = increment > 0
    out[mask] = np.maximum(0.0, out[mask] - increment[mask] * SUBTRACT_GAIN)
    return out


@dataclass
class BlobOptions:
    """Shape of a single blob."""

    peak: float = 1.0
    radius: float = 0.95
    sharpness: float = 0.1
    stop_threshold: float = 0.03

    def __post_init__(self):
        if not 0 < self.peak <= 1:
            raise ConfigurationError(f"Blob peak must be in (0, 1], got {self.peak}")
        if not 0 < self.radius < 1:
            raise ConfigurationError(f"Blob radius must be in (0, 1), got {self.radius}")
        if not 0 <= self.sharpness <= 1:
            raise ConfigurationError(f"Blob sharpness must be in [0, 1], got {self.sharpness}")
        if not 0 <= self.stop_threshold < 1:
            raise ConfigurationError(f"Stop threshold must be in [0, 1), got {self.stop_threshold}")

    def override(
        self,
        peak: Optional[float] = None,
        radius: Optional[float] = None,
        sharpness: Optional[float] = None,
    ) -> "BlobOptions":
        return BlobOptions(
            peak=self.peak if peak is None else peak,
            radius=self.radius if radius is None else radius,
            sharpness=self.sharpness if sharpness is None else sharpness,
            stop_threshold=self.stop_threshold,
        )


def default_blob_options() -> Dict[str, BlobOptions]:
    """Per-command blob defaults."""
    return {
        "mountain": BlobOptions(peak=1.0, radius=0.91, sharpness=0.10),
        "volcano": BlobOptions(peak=1.0, radius=0.86, sharpness=0.12),
        "hill": BlobOptions(peak=0.5, radius=0.71, sharpness=0.10),
        "range": BlobOptions(peak=0.7, radius=0.54, sharpness=0.10),
        "trough": BlobOptions(peak=0.6, radius=0.52, sharpness=0.10),
        "pit": BlobOptions(peak=0.3, radius=0.47, sharpness=0.10),
        "sea": BlobOptions(peak=0.6, radius=0.62, sharpness=0.10),
    }


@dataclass
class BlobFieldOptions:
    """Configuration for blob-field heightmap generation."""

    template: str = "volcanic_island"
    blobs: Dict[str, BlobOptions] = field(default_factory=default_blob_options)
    seed_windows: Dict[str, SeedWindow] = field(default_factory=dict)
    enforce_safe_zones: bool = True
    seed_max_tries: int = 80
    reference_cells: int = REFERENCE_CELLS

    # Coherent perturbation of the blob radius
    radius_noise_amplitude: float = 0.05
    radius_noise_scale: float = 120.0

    # Chained features
    chain_steps: int = 6
    chain_step_fraction: float = 0.12
    chain_jitter: float = 0.9

    # Post-passes
    normalize: bool = True
    normalize_range: Tuple[float, float] = (0.0, 0.85)
    sink_margin: bool = True
    margin_fraction: float = 0.04
    margin_amount: float = 0.15
    suppress_small_islands: bool = True
    keep_largest_islands: int = 2
    min_island_cells: int = 200
    island_sink_epsilon: float = 0.01

    # Failsafe
    failsafe_min_height: float = 0.05
    failsafe_peak: float = 0.6
    failsafe_radius: float = 0.15

    slope_scale: float = 1000.0

    def blob(self, kind: str) -> BlobOptions:
        if kind in self.blobs:
            return self.blobs[kind]
        return default_blob_options()[kind]


class HeightmapGenerator:
    """
    Generates heightmaps by accumulating blob fields.

    All random decisions come from the run's stream, in script order.
    """

    def __init__(
        self,
        mesh: CellMesh,
        rng: Mulberry32,
        options: Optional[BlobFieldOptions] = None,
        mask_fn: Optional[Callable[[int], float]] = None,
    ):
        """
        Initialize the heightmap generator.

        Args:
            mesh: Cell mesh
            rng: Random stream of the run
            options: Blob-field options
            mask_fn: Safe-zone mask per cell; a value <= 0 blocks propagation
        """
        self.mesh = mesh
        self.rng = rng
        self.options = options or BlobFieldOptions()
        self.n_cells = mesh.cell_count
        self.heights = np.zeros(self.n_cells, dtype=np.float64)
        self.mask_fn = mask_fn or (lambda cell: 1.0)
        self.failsafe_applied = False

        self.seeds = SeedSelector(
            mesh,
            rng,
            windows=self.options.seed_windows,
            enforce_safe_zones=self.options.enforce_safe_zones,
            max_tries=self.options.seed_max_tries,
        )
        self.radius_noise = self._build_radius_noise(rng.seed)
        self.density_exponent = self._density_exponent(self.options.reference_cells)

    def _build_radius_noise(self, seed) -> np.ndarray:
        """Low-frequency warped noise per cell in [-1, 1]."""
        noise = ValueNoise(f"{seed}:blob-radius")
        scale = self.options.radius_noise_scale
        x = self.mesh.centroids[:, 0]
        y = self.mesh.centroids[:, 1]
        wx, wy = domain_warp(noise, x, y, scale=scale * 2, amp=scale * 0.25)
        return np.asarray(noise(wx / scale, wy / scale), dtype=np.float64)

    def _density_exponent(self, reference_cells: int) -> float:
        """
        Exponent applied to per-ring decays.

        Ring count across the map grows with the square root of the cell
        count, so denser meshes decay more slowly per ring and blobs keep the
        same reach in map units.
        """
        if reference_cells < 1:
            raise ConfigurationError(f"reference_cells must be positive, got {reference_cells}")
        if self.n_cells == 0:
            return 1.0
        return math.sqrt(reference_cells / self.n_cells)

    def effective_radius(self, cell: int, radius: float) -> float:
        r = radius * (1.0 + self.options.radius_noise_amplitude * self.radius_noise[cell])
        return min(MAX_EFFECTIVE_RADIUS, max(0.0, r)) ** self.density_exponent

    def grow_blob(self, start: int, blob: BlobOptions) -> np.ndarray:
        """
        Grow a blob field breadth-first from a seed cell.

        Args:
            start: Seed cell index
            blob: Blob shape

        Returns:
            Fresh field over all cells, zero outside the blob's reach
        """
        if not 0 <= start < self.n_cells:
            raise ConfigurationError(f"Blob seed {start} outside mesh of {self.n_cells} cells")

        values = np.zeros(self.n_cells, dtype=np.float64)
        visited = np.zeros(self.n_cells, dtype=bool)
        queue = np.empty(self.n_cells, dtype=np.int64)
        head = 0
        tail = 0

        values[start] = blob.peak
        visited[start] = True
        queue[tail] = start
        tail += 1

        while head < tail:
            i = queue[head]
            head += 1
            parent = values[i]
            for j in self.mesh.neighbors[i]:
                if visited[j]:
                    continue
                visited[j] = True
                if self.mask_fn(j) <= 0:
                    continue
                modifier = 1.0 - blob.sharpness * self.rng.random()
                value = parent * self.effective_radius(j, blob.radius) * modifier
                if value <= blob.stop_threshold:
                    continue
                values[j] = value
                queue[tail] = j
                tail += 1

        return values

    def accumulate(self, increment: np.ndarray, blend: BlendFunction) -> None:
        """Compose a field onto the owned elevation buffer."""
        self.heights = blend(self.heights, increment)

    def _blob_at(self, kind: str, blob: BlobOptions, blend: BlendFunction) -> None:
        start = self.seeds.seeded_cell(kind)
        self.accumulate(self.grow_blob(start, blob), blend)

    def _chain(self, kind: str, blob: BlobOptions, steps: int, blend: BlendFunction) -> None:
        """Walk a jittered heading and drop one blob per step."""
        width = self.mesh.width
        height = self.mesh.height
        x, y = self.seeds.seeded_xy(kind)
        heading = self.rng.random() * 2 * math.pi
        step = self.options.chain_step_fraction * min(width, height)

        for _ in range(steps):
            start = self.mesh.find_nearest_cell(x, y)
            self.accumulate(self.grow_blob(start, blob), blend)
            x = min(width, max(0.0, x + math.cos(heading) * step))
            y = min(height, max(0.0, y + math.sin(heading) * step))
            heading += (self.rng.random() - 0.5) * self.options.chain_jitter

    def add_mountain(self, count: int = 1, blob: Optional[BlobOptions] = None) -> None:
        blob = blob or self.options.blob("mountain")
        for _ in range(count):
            self._blob_at("core", blob, add_blend)

    def add_volcano(self, count: int = 1, blob: Optional[BlobOptions] = None) -> None:
        blob = blob or self.options.blob("volcano")
        for _ in range(count):
            self._blob_at("volcano", blob, add_blend)

    def add_hill(self, count: int = 1, blob: Optional[BlobOptions] = None) -> None:
        blob = blob or self.options.blob("hill")
        for _ in range(count):
            self._blob_at("hill", blob, add_blend)

    def add_range(
        self, count: int = 1, blob: Optional[BlobOptions] = None, steps: Optional[int] = None
    ) -> None:
        """Add ridges: chained additive blobs."""
        blob = blob or self.options.blob("range")
        for _ in range(count):
            self._chain("ridge", blob, steps or self.options.chain_steps, add_blend)

    def add_trough(
        self, count: int = 1, blob: Optional[BlobOptions] = None, steps: Optional[int] = None
    ) -> None:
        """Carve valleys: chained subtractive blobs."""
        blob = blob or self.options.blob("trough")
        for _ in range(count):
            self._chain("trough", blob, steps or self.options.chain_steps, subtract_blend)

    def add_sea(
        self, count: int = 1, blob: Optional[BlobOptions] = None, steps: Optional[int] = None
    ) -> None:
        """Carve straits and inner seas with the loosest seed window."""
        blob = blob or self.options.blob("sea")
        for _ in range(count):
            self._chain("sea", blob, steps or self.options.chain_steps, subtract_blend)

    def add_pit(self, count: int = 1, blob: Optional[BlobOptions] = None) -> None:
        blob = blob or self.options.blob("pit")
        for _ in range(count):
            self._blob_at("trough", blob, subtract_blend)

    def rescale(self, factor: float) -> None:
        if factor < 0:
            raise ConfigurationError(f"Rescale factor must be non-negative, got {factor}")
        self.heights = np.clip(self.heights * factor, 0.0, SATURATION_CEILING)

    def _get_number_in_range(self, value: Union[int, str]) -> int:
        """Parse a count like "3" or "10-15"; ranges draw inclusively from the stream."""
        text = str(value)
        if "-" in text[1:]:
            low, high = text.split("-", 1)
            try:
                low_val, high_val = int(low), int(high)
            except ValueError:
                raise ConfigurationError(f"Invalid count range: {value!r}")
            if low_val > high_val:
                raise ConfigurationError(f"Invalid count range: {value!r}")
            return self.rng.randint(low_val, high_val)
        try:
            count = int(text)
        except ValueError:
            raise ConfigurationError(f"Invalid count: {value!r}")
        if count < 0:
            raise ConfigurationError(f"Count must be non-negative, got {value!r}")
        return count

    @staticmethod
    def _parse_overrides(args: List[str], command: str) -> Tuple[Dict[str, float], Optional[int]]:
        try:
            values = [float(a) for a in args[:3]]
            steps = int(args[3]) if len(args) > 3 else None
        except ValueError:
            raise ConfigurationError(f"Invalid arguments for {command}: {' '.join(args)}")
        names = ("peak", "radius", "sharpness")
        return dict(zip(names, values)), steps

    def run_script(self, script: str) -> None:
        """
        Execute a template script, one command per line.

        Line format: `<Command> <count> [peak] [radius] [sharpness] [steps]`,
        or `Rescale <factor>`. Blank lines and lines starting with # are skipped.
        """
        for line in script.strip().split("\n"):
            parts = line.strip().split()
            if not parts or parts[0].startswith("#"):
                continue
            if len(parts) < 2:
                raise ConfigurationError(f"Template line needs an argument: {line.strip()!r}")

            command = parts[0]
            args = parts[1:]

            if command == "Rescale":
                try:
                    factor = float(args[0])
                except ValueError:
                    raise ConfigurationError(f"Invalid Rescale factor: {args[0]!r}")
                self.rescale(factor)
                continue

            kind = command.lower()
            if kind not in ("mountain", "volcano", "hill", "range", "trough", "pit", "sea"):
                raise ConfigurationError(f"Unknown template command: {command}")

            count = self._get_number_in_range(args[0])
            overrides, steps = self._parse_overrides(args[1:], command)
            blob = self.options.blob(kind).override(**overrides)

            if kind == "mountain":
                self.add_mountain(count, blob)
            elif kind == "volcano":
                self.add_volcano(count, blob)
            elif kind == "hill":
                self.add_hill(count, blob)
            elif kind == "range":
                self.add_range(count, blob, steps)
            elif kind == "trough":
                self.add_trough(count, blob, steps)
            elif kind == "sea":
                self.add_sea(count, blob, steps)
            else:
                self.add_pit(count, blob)

    def apply_failsafe(self) -> bool:
        """
        Paint a disk at the central cell if the script left no land.

        Returns:
            True if the disk was painted
        """
        opts = self.options
        if self.n_cells == 0 or float(self.heights.max()) > opts.failsafe_min_height:
            return False

        width = self.mesh.width
        height = self.mesh.height
        center = self.mesh.find_nearest_cell(width / 2, height / 2)
        cx, cy = self.mesh.centroids[center]
        r = opts.failsafe_radius * min(width, height)
        d = np.hypot(self.mesh.centroids[:, 0] - cx, self.mesh.centroids[:, 1] - cy)
        disk = np.where(d < r, opts.failsafe_peak * (1.0 - (d / r) ** 2), 0.0)
        self.heights = np.maximum(self.heights, disk)
        self.failsafe_applied = True

        logger.warning(
            "Blob script produced no land, painted failsafe disk",
            center_cell=int(center),
            radius=round(r, 3),
            cells=int(np.count_nonzero(disk)),
        )
        return True

    def normalize_heights(self, low: float = 0.0, high: float = 0.85) -> None:
        """Min-max rescale into [low, high]. A flat field is left untouched."""
        lo = float(self.heights.min())
        hi = float(self.heights.max())
        if hi <= lo:
            return
        scale = (high - low) / (hi - lo)
        self.heights = np.clip(low + (self.heights - lo) * scale, 0.0, SATURATION_CEILING)

    def sink_outer_margin(self, fraction: float = 0.04, amount: float = 0.15) -> None:
        """Lower cells whose site is within a thin band along the frame."""
        width = self.mesh.width
        height = self.mesh.height
        band = min(width, height) * fraction
        x = self.mesh.centroids[:, 0]
        y = self.mesh.centroids[:, 1]
        d = np.minimum(np.minimum(x, y), np.minimum(width - x, height - y))
        margin = d < band
        self.heights[margin] = np.maximum(0.0, self.heights[margin] - amount)

    def label_land_components(self, sea_level: float) -> Tuple[np.ndarray, List[int]]:
        """Connected land components; returns per-cell ids (-1 for water) and sizes."""
        is_land = self.heights > sea_level
        component = np.full(self.n_cells, -1, dtype=np.int64)
        sizes: List[int] = []
        queue = np.empty(self.n_cells, dtype=np.int64)

        for i in range(self.n_cells):
            if not is_land[i] or component[i] != -1:
                continue
            cid = len(sizes)
            component[i] = cid
            head = 0
            tail = 1
            queue[0] = i
            while head < tail:
                u = queue[head]
                head += 1
                for v in self.mesh.neighbors[u]:
                    if is_land[v] and component[v] == -1:
                        component[v] = cid
                        queue[tail] = v
                        tail += 1
            sizes.append(tail)

        return component, sizes

    def suppress_small_islands(
        self, sea_level: float, keep: int = 2, min_cells: int = 200, epsilon: float = 0.01
    ) -> int:
        """
        Sink land components that are neither among the largest nor big enough.

        Heights are only ever lowered.

        Returns:
            Number of components sunk
        """
        component, sizes = self.label_land_components(sea_level)
        if not sizes:
            return 0

        order = sorted(range(len(sizes)), key=lambda c: -sizes[c])
        kept = {c for rank, c in enumerate(order) if rank < keep or sizes[c] >= min_cells}
        sunk = [c for c in range(len(sizes)) if c not in kept]
        if sunk:
            mask = np.isin(component, sunk)
            target = max(0.0, sea_level - epsilon)
            self.heights[mask] = np.minimum(self.heights[mask], target)
        return len(sunk)

    def from_template(self, template_name: Optional[str] = None) -> np.ndarray:
        """
        Generate a heightmap from a registered template.

        Args:
            template_name: Name of template to run, defaults to the options' one

        Returns:
            Copy of the generated heights
        """
        from ..config.heightmap_templates import get_template

        name = template_name or self.options.template
        script = get_template(name)

        self.heights = np.zeros(self.n_cells, dtype=np.float64)
        self.failsafe_applied = False
        self.run_script(script)
        self.apply_failsafe()
        return self.heights.copy()

    def generate(
        self,
        sea_level: Optional[float] = None,
        target_land_fraction: Optional[float] = None,
    ) -> ElevationResult:
        """
        Run the template, the post-passes and the shared summary.

        The sea level is resolved once, after normalisation and margin sinking,
        and reused for island suppression and classification.
        """
        opts = self.options
        logger.info("Generating blob heightmap", template=opts.template, cells=self.n_cells)

        self.from_template()

        if opts.normalize:
            self.normalize_heights(*opts.normalize_range)
        if opts.sink_margin:
            self.sink_outer_margin(opts.margin_fraction, opts.margin_amount)

        level = resolve_sea_level(self.heights, sea_level, target_land_fraction)
        resolved_fraction = float(np.count_nonzero(self.heights > level)) / max(1, self.n_cells)
        if sea_level is None:
            target = clamp_land_fraction(
                DEFAULT_LAND_FRACTION if target_land_fraction is None else target_land_fraction
            )
            if abs(resolved_fraction - target) > LAND_FRACTION_TOLERANCE:
                logger.warning(
                    "Sea level misses the target land fraction",
                    target=target,
                    land_fraction=round(resolved_fraction, 4),
                    sea_level=round(level, 4),
                )

        sunk = 0
        if opts.suppress_small_islands:
            sunk = self.suppress_small_islands(
                level, opts.keep_largest_islands, opts.min_island_cells, opts.island_sink_epsilon
            )

        result = summarize_elevation(
            self.mesh,
            self.heights,
            level,
            slope_scale=opts.slope_scale,
            engine="blob",
            template=opts.template,
            failsafe_applied=self.failsafe_applied,
        )
        result.metadata["islands_sunk"] = sunk
        result.metadata["land_fraction_at_sea_level"] = resolved_fraction

        logger.info(
            "Blob heightmap completed",
            sea_level=round(level, 4),
            land_fraction=round(result.land_fraction, 4),
            islands_sunk=sunk,
            failsafe=self.failsafe_applied,
        )
        return result
