"""
Run configuration models.

Validated pydantic models describing one generation run. Each section converts
to the option dataclass of the stage that consumes it.
"""

from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from ..core.coastline import CoastlineOptions
from ..core.elevation import ElevationTemplate, GradientDirection, TemplateBlendOptions
from ..core.errors import ConfigurationError
from ..core.heightmap_generator import BlobFieldOptions, BlobOptions, default_blob_options
from ..core.hydrology import RiverOptions
from ..core.sampling import SeedWindow
from .heightmap_templates import ALIASES, TEMPLATES
from .settings import settings

BLOB_KINDS = ("mountain", "volcano", "hill", "range", "trough", "pit", "sea")
SEED_KINDS = ("core", "volcano", "hill", "ridge", "trough", "sea")


class TemplateBlendConfig(BaseModel):
    """Template + noise elevation parameters."""

    template: ElevationTemplate = Field(ElevationTemplate.RADIAL_ISLAND, description="Macro shape")
    direction: GradientDirection = Field(
        GradientDirection.W_TO_E, description="Axis of the continental gradient"
    )
    noise_scale: float = Field(450.0, gt=0, description="FBM feature size in map units")
    noise_octaves: int = Field(5, ge=1, le=12, description="FBM octaves")
    noise_gain: float = Field(0.5, gt=0, le=1, description="Amplitude multiplier per octave")
    noise_lacunarity: float = Field(2.0, ge=1, description="Frequency multiplier per octave")
    warp_scale: float = Field(350.0, gt=0, description="Domain warp feature size")
    warp_amplitude: float = Field(45.0, ge=0, description="Domain warp offset in map units")
    slope_scale: float = Field(1000.0, gt=0, description="Slope multiplier before clamping")

    def to_options(self) -> TemplateBlendOptions:
        return TemplateBlendOptions(**self.model_dump())


class BlobConfig(BaseModel):
    """Shape of one blob kind."""

    peak: float = Field(..., gt=0, le=1, description="Seed cell value")
    radius: float = Field(..., gt=0, lt=1, description="Decay per ring")
    sharpness: float = Field(0.1, ge=0, le=1, description="Random decay spread")
    stop_threshold: float = Field(0.03, ge=0, lt=1, description="Propagation stops at or below")


class SeedWindowConfig(BaseModel):
    """Fractional bounding box for seed placement."""

    left: float = Field(0.2, ge=0, le=1)
    right: float = Field(0.8, ge=0, le=1)
    top: float = Field(0.2, ge=0, le=1)
    bottom: float = Field(0.8, ge=0, le=1)

    @model_validator(mode="after")
    def check_extent(self):
        if self.left >= self.right or self.top >= self.bottom:
            raise ValueError("seed window must have left < right and top < bottom")
        return self

    def to_window(self) -> SeedWindow:
        return SeedWindow(self.left, self.right, self.top, self.bottom)


class BlobFieldConfig(BaseModel):
    """Blob-field elevation parameters."""

    template: str = Field("volcanic_island", description="Heightmap template script name")
    blobs: Dict[str, BlobConfig] = Field(
        default_factory=dict, description="Per-kind blob overrides"
    )
    seed_windows: Dict[str, SeedWindowConfig] = Field(
        default_factory=dict, description="Per-kind seed window overrides"
    )
    enforce_safe_zones: bool = Field(True, description="Restrict seeds to their windows")
    seed_max_tries: int = Field(80, ge=1, description="Random draws before the nearest-cell fallback")
    reference_cells: int = Field(
        3000, ge=1, description="Mesh size the blob radii are tuned for"
    )

    radius_noise_amplitude: float = Field(0.05, ge=0, le=0.5)
    radius_noise_scale: float = Field(120.0, gt=0)

    chain_steps: int = Field(6, ge=1, description="Default blobs per range/trough/sea")
    chain_step_fraction: float = Field(0.12, gt=0, le=1)
    chain_jitter: float = Field(0.9, ge=0)

    normalize: bool = True
    normalize_low: float = Field(0.0, ge=0, lt=1)
    normalize_high: float = Field(0.85, gt=0, le=1)
    sink_margin: bool = True
    margin_fraction: float = Field(0.04, ge=0, lt=0.5)
    margin_amount: float = Field(0.15, ge=0, le=1)
    suppress_small_islands: bool = True
    keep_largest_islands: int = Field(2, ge=0)
    min_island_cells: int = Field(200, ge=1)
    island_sink_epsilon: float = Field(0.01, ge=0)

    failsafe_min_height: float = Field(0.05, ge=0, lt=1)
    failsafe_peak: float = Field(0.6, gt=0, le=1)
    failsafe_radius: float = Field(0.15, gt=0, le=1)

    slope_scale: float = Field(1000.0, gt=0)

    @field_validator("template")
    @classmethod
    def known_template(cls, value: str) -> str:
        if value not in TEMPLATES and value not in ALIASES:
            raise ValueError(f"unknown template {value!r}")
        return value

    @field_validator("blobs")
    @classmethod
    def known_blob_kinds(cls, value: Dict[str, BlobConfig]) -> Dict[str, BlobConfig]:
        unknown = set(value) - set(BLOB_KINDS)
        if unknown:
            raise ValueError(f"unknown blob kinds: {sorted(unknown)}")
        return value

    @field_validator("seed_windows")
    @classmethod
    def known_seed_kinds(cls, value: Dict[str, SeedWindowConfig]) -> Dict[str, SeedWindowConfig]:
        unknown = set(value) - set(SEED_KINDS)
        if unknown:
            raise ValueError(f"unknown seed window kinds: {sorted(unknown)}")
        return value

    @model_validator(mode="after")
    def check_normalize_range(self):
        if self.normalize_low >= self.normalize_high:
            raise ValueError("normalize_low must be below normalize_high")
        return self

    def to_options(self) -> BlobFieldOptions:
        blobs = default_blob_options()
        for kind, blob in self.blobs.items():
            blobs[kind] = BlobOptions(**blob.model_dump())
        data = self.model_dump(
            exclude={"blobs", "seed_windows", "normalize_low", "normalize_high"}
        )
        return BlobFieldOptions(
            blobs=blobs,
            seed_windows={kind: w.to_window() for kind, w in self.seed_windows.items()},
            normalize_range=(self.normalize_low, self.normalize_high),
            **data,
        )


class CoastlineConfig(BaseModel):
    """Coastline snapping and smoothing."""

    snap_digits: int = Field(2, ge=0, le=6, description="Decimal digits kept when matching vertices")
    smooth_iterations: int = Field(2, ge=0, le=8, description="Chaikin iterations")
    smooth_ratio: float = Field(0.25, gt=0, lt=0.5, description="Chaikin cut ratio")

    def to_options(self) -> CoastlineOptions:
        return CoastlineOptions(**self.model_dump())


class RiverConfig(BaseModel):
    """River thresholds."""

    precipitation: float = Field(0.5, ge=0, description="Uniform input per land cell")
    major_flux_fraction: float = Field(0.35, gt=0, le=1)
    minor_flux_fraction: float = Field(0.10, gt=0, le=1)
    min_flux: float = Field(0.005, ge=0)
    min_channel_cells: int = Field(3, ge=2)
    trace_minor: bool = True

    @model_validator(mode="after")
    def check_fractions(self):
        if self.minor_flux_fraction > self.major_flux_fraction:
            raise ValueError("minor_flux_fraction must not exceed major_flux_fraction")
        return self

    def to_options(self) -> RiverOptions:
        return RiverOptions(**self.model_dump())


class MapConfig(BaseModel):
    """Configuration of one generation run."""

    seed: Union[str, int] = Field(
        default_factory=lambda: settings.default_seed, description="Random seed"
    )
    width: float = Field(default_factory=lambda: settings.default_map_width, gt=0)
    height: float = Field(default_factory=lambda: settings.default_map_height, gt=0)
    min_distance: float = Field(
        default_factory=lambda: settings.default_min_distance,
        gt=0,
        description="Poisson-disc minimum spacing",
    )
    poisson_attempts: int = Field(30, ge=1, description="Candidates per active sample")
    engine: Literal["blob", "template"] = Field(
        default_factory=lambda: settings.default_engine, description="Elevation engine"
    )
    sea_level: Optional[float] = Field(None, ge=0, le=1, description="Fixed sea level")
    target_land_fraction: Optional[float] = Field(
        None, gt=0, lt=1, description="Land fraction used to derive the sea level"
    )
    template_blend: TemplateBlendConfig = Field(default_factory=TemplateBlendConfig)
    blob_field: BlobFieldConfig = Field(default_factory=BlobFieldConfig)
    coastline: CoastlineConfig = Field(default_factory=CoastlineConfig)
    rivers: RiverConfig = Field(default_factory=RiverConfig)

    @model_validator(mode="after")
    def check_consistency(self):
        if self.sea_level is not None and self.target_land_fraction is not None:
            raise ValueError("sea_level and target_land_fraction are mutually exclusive")
        if self.min_distance >= min(self.width, self.height):
            raise ValueError("min_distance must be smaller than the map's shorter side")
        return self


def load_config(data: Optional[Dict[str, Any]] = None, **overrides: Any) -> MapConfig:
    """
    Build a validated MapConfig.

    Raises:
        ConfigurationError: If any parameter is invalid
    """
    payload = dict(data or {})
    payload.update(overrides)
    try:
        return MapConfig.model_validate(payload)
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc
