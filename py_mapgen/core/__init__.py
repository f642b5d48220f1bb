"""
Core map generation functionality.
"""

from .rng import Mulberry32, make_rng
from .noise import ValueNoise, noise2d, fbm, domain_warp
from .voronoi_graph import CellMesh, sample_points, build_mesh
from .elevation import ElevationResult, TemplateElevation, TemplateBlendOptions, resolve_sea_level
from .heightmap_generator import HeightmapGenerator, BlobFieldOptions, BlobOptions
from .features import CellType, Features, WaterClassification, classify_water
from .coastline import Coastline, CoastlineOptions, extract_coastlines
from .hydrology import Hydrology, RiverOptions, RiverNetwork
from .errors import ConfigurationError, DegenerateInputError, InvariantViolationError

__all__ = ['Mulberry32', 'make_rng', 'ValueNoise', 'noise2d', 'fbm', 'domain_warp',
           'CellMesh', 'sample_points', 'build_mesh',
           'ElevationResult', 'TemplateElevation', 'TemplateBlendOptions', 'resolve_sea_level',
           'HeightmapGenerator', 'BlobFieldOptions', 'BlobOptions',
           'CellType', 'Features', 'WaterClassification', 'classify_water',
           'Coastline', 'CoastlineOptions', 'extract_coastlines',
           'Hydrology', 'RiverOptions', 'RiverNetwork',
           'ConfigurationError', 'DegenerateInputError', 'InvariantViolationError']
