"""
Generation pipeline driver.

Runs sampling, mesh construction, elevation, water classification, coastline
extraction and rivers in order, threading one random stream and one mesh
handle through every stage.
"""

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import numpy as np
import structlog

from ..config.options import MapConfig, load_config
from .coastline import Coastline, extract_coastlines
from .elevation import ElevationResult, TemplateElevation
from .features import WaterClassification, classify_water
from .heightmap_generator import HeightmapGenerator
from .hydrology import Hydrology, RiverNetwork
from .rng import make_rng
from .voronoi_graph import CellMesh, build_mesh, sample_points

logger = structlog.get_logger()


@dataclass
class GeneratedMap:
    """Outputs of one generation run."""

    seed: Union[str, int]
    config: MapConfig
    mesh: CellMesh
    elevation: ElevationResult
    water: WaterClassification
    coastline: Coastline
    rivers: RiverNetwork

    def summary(self) -> Dict[str, Any]:
        """Plain counts for logging and inspection."""
        return {
            "seed": self.seed,
            "engine": self.elevation.engine,
            "template": self.elevation.template,
            "cells": self.mesh.cell_count,
            "edges": self.mesh.edge_count,
            "sea_level": round(self.elevation.sea_level, 4),
            "land_fraction": round(self.elevation.land_fraction, 4),
            "failsafe_applied": self.elevation.failsafe_applied,
            "ocean_cells": int(np.count_nonzero(self.water.is_ocean)),
            "lake_cells": int(np.count_nonzero(self.water.is_lake)),
            "coast_cells": int(np.count_nonzero(self.water.is_coast)),
            "islands": self.water.island_count,
            "lakes": self.water.lake_count,
            "coast_loops": len(self.coastline.loops),
            "coast_open_chains": len(self.coastline.open_chains),
            "rivers": len(self.rivers.rivers),
            "major_rivers": len(self.rivers.major_rivers),
            "sinks": len(self.rivers.sinks),
        }


def generate_map(config: Optional[Union[MapConfig, Dict[str, Any]]] = None) -> GeneratedMap:
    """
    Generate a complete map from a configuration.

    Args:
        config: MapConfig or a plain dict of its fields

    Returns:
        GeneratedMap with mesh, elevation, water, coastline and rivers

    Raises:
        ConfigurationError: Invalid configuration, before any work starts
        DegenerateInputError: The sampled points cannot be triangulated
    """
    if not isinstance(config, MapConfig):
        config = load_config(config)

    start_time = time.time()
    logger.info(
        "Starting map generation",
        seed=config.seed,
        engine=config.engine,
        width=config.width,
        height=config.height,
    )

    rng = make_rng(config.seed)
    points = sample_points(
        config.width, config.height, config.min_distance, rng, k=config.poisson_attempts
    )
    mesh = build_mesh(points, config.width, config.height)

    if config.engine == "template":
        engine = TemplateElevation(mesh, config.seed, config.template_blend.to_options())
    else:
        engine = HeightmapGenerator(mesh, rng, config.blob_field.to_options())
    elevation = engine.generate(
        sea_level=config.sea_level, target_land_fraction=config.target_land_fraction
    )

    water = classify_water(mesh, elevation.heights, elevation.sea_level)
    coastline = extract_coastlines(
        mesh, water.is_land, water.is_ocean, config.coastline.to_options()
    )
    rivers = Hydrology(
        mesh, elevation.heights, water.is_water, config.rivers.to_options()
    ).run_full_simulation()

    result = GeneratedMap(
        seed=config.seed,
        config=config,
        mesh=mesh,
        elevation=elevation,
        water=water,
        coastline=coastline,
        rivers=rivers,
    )
    logger.info(
        "Map generation completed",
        seconds=round(time.time() - start_time, 3),
        **result.summary(),
    )
    return result
