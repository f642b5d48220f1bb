"""
Procedural terrain graphs for fantasy maps.
"""

from .core.map_generator import GeneratedMap, generate_map
from .config.options import MapConfig, load_config

__version__ = "0.1.0"

__all__ = ['GeneratedMap', 'generate_map', 'MapConfig', 'load_config']
