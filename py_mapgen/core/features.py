"""
Water and coast classification.

This module handles:
- Water/land split at the sea level
- Ocean flood-fill from water cells on the map frame
- Lakes as enclosed water
- Coast and shallow-water masks
- Connected feature labelling (ocean, lake, island)
- Distance-to-coast field over land
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Optional

import numpy as np
import structlog

from .elevation import graph_distance
from .errors import ConfigurationError
from .voronoi_graph import CellMesh

logger = structlog.get_logger()


class CellType(IntEnum):
    LAND = 0
    OCEAN = 1
    LAKE = 2


@dataclass
class Feature:
    """Represents a connected geographic feature (ocean, lake, island)."""

    id: int
    type: str  # "ocean", "lake", "island"
    land: bool
    border: bool  # touches map edge
    cells: int  # total cells in feature
    first_cell: int


@dataclass
class WaterClassification:
    """Per-cell water classes and derived masks."""

    sea_level: float
    cell_type: np.ndarray
    is_water: np.ndarray
    is_ocean: np.ndarray
    is_lake: np.ndarray
    is_land: np.ndarray
    is_coast: np.ndarray
    shallow: np.ndarray
    distance_to_coast: np.ndarray
    feature_ids: np.ndarray
    features: List[Feature] = field(default_factory=list)

    def features_of_type(self, feature_type: str) -> List[Feature]:
        return [f for f in self.features if f.type == feature_type]

    @property
    def island_count(self) -> int:
        return len(self.features_of_type("island"))

    @property
    def lake_count(self) -> int:
        return len(self.features_of_type("lake"))


class Features:
    """Classifies water and labels connected features on a cell mesh."""

    def __init__(self, mesh: CellMesh, heights: np.ndarray, sea_level: float):
        """
        Initialize Features with a mesh and a finished elevation field.

        Args:
            mesh: Cell mesh
            heights: Elevation per cell
            sea_level: Cells at or below this level are water
        """
        heights = np.asarray(heights, dtype=np.float64)
        if len(heights) != mesh.cell_count:
            raise ConfigurationError(
                f"Elevation has {len(heights)} values for {mesh.cell_count} cells"
            )
        self.mesh = mesh
        self.heights = heights
        self.sea_level = float(sea_level)
        self.n_cells = mesh.cell_count

    def flood_ocean(self, is_water: np.ndarray) -> np.ndarray:
        """
        Mark every water cell connected to a water cell on the frame.

        Breadth-first over a fixed-capacity index queue; each cell is enqueued
        at most once.
        """
        is_ocean = np.zeros(self.n_cells, dtype=bool)
        queue = np.empty(self.n_cells, dtype=np.int64)
        head = 0
        tail = 0

        for i in range(self.n_cells):
            if is_water[i] and self.mesh.border_flags[i]:
                is_ocean[i] = True
                queue[tail] = i
                tail += 1

        while head < tail:
            i = queue[head]
            head += 1
            for j in self.mesh.neighbors[i]:
                if is_water[j] and not is_ocean[j]:
                    is_ocean[j] = True
                    queue[tail] = j
                    tail += 1

        return is_ocean

    def _neighbor_mask(self, cells: np.ndarray, targets: np.ndarray) -> np.ndarray:
        """Cells in `cells` with at least one neighbour in `targets`."""
        result = np.zeros(self.n_cells, dtype=bool)
        for i in np.flatnonzero(cells):
            for j in self.mesh.neighbors[i]:
                if targets[j]:
                    result[i] = True
                    break
        return result

    def label_features(self, is_land: np.ndarray, is_ocean: np.ndarray):
        """
        Label connected components of equal kind (land, ocean, lake).

        Ids start at 1 and follow the index of each component's first cell.
        """
        kind = np.where(is_land, 0, np.where(is_ocean, 1, 2))
        feature_ids = np.zeros(self.n_cells, dtype=np.int32)
        features: List[Feature] = []
        queue = np.empty(self.n_cells, dtype=np.int64)

        for first_cell in range(self.n_cells):
            if feature_ids[first_cell]:
                continue
            feature_id = len(features) + 1
            feature_ids[first_cell] = feature_id
            head = 0
            tail = 1
            queue[0] = first_cell
            border = False

            while head < tail:
                cell_id = queue[head]
                head += 1
                if not border and self.mesh.border_flags[cell_id]:
                    border = True
                for neighbor_id in self.mesh.neighbors[cell_id]:
                    if feature_ids[neighbor_id] == 0 and kind[neighbor_id] == kind[first_cell]:
                        feature_ids[neighbor_id] = feature_id
                        queue[tail] = neighbor_id
                        tail += 1

            k = int(kind[first_cell])
            features.append(
                Feature(
                    id=feature_id,
                    type=("island", "ocean", "lake")[k],
                    land=k == 0,
                    border=border,
                    cells=tail,
                    first_cell=first_cell,
                )
            )

        return feature_ids, features

    def classify(self) -> WaterClassification:
        """
        Classify every cell as land, ocean or lake and derive the masks.

        Returns:
            WaterClassification with a partition of the cells into the three classes
        """
        logger.info("Classifying water", cells=self.n_cells, sea_level=round(self.sea_level, 4))

        is_water = self.heights <= self.sea_level
        is_land = ~is_water
        is_ocean = self.flood_ocean(is_water)
        is_lake = is_water & ~is_ocean

        cell_type = np.full(self.n_cells, CellType.LAND, dtype=np.int8)
        cell_type[is_ocean] = CellType.OCEAN
        cell_type[is_lake] = CellType.LAKE

        is_coast = self._neighbor_mask(is_land, is_ocean)
        shallow = self._neighbor_mask(is_ocean, is_land)
        distance = graph_distance(self.mesh, is_coast, passable=is_land)
        feature_ids, features = self.label_features(is_land, is_ocean)

        result = WaterClassification(
            sea_level=self.sea_level,
            cell_type=cell_type,
            is_water=is_water,
            is_ocean=is_ocean,
            is_lake=is_lake,
            is_land=is_land,
            is_coast=is_coast,
            shallow=shallow,
            distance_to_coast=distance,
            feature_ids=feature_ids,
            features=features,
        )

        logger.info(
            "Water classified",
            land=int(is_land.sum()),
            ocean=int(is_ocean.sum()),
            lake=int(is_lake.sum()),
            coast=int(is_coast.sum()),
            islands=result.island_count,
            lakes=result.lake_count,
        )
        return result


def classify_water(
    mesh: CellMesh, heights: np.ndarray, sea_level: Optional[float]
) -> WaterClassification:
    """Classify water for a finished elevation field."""
    if sea_level is None:
        raise ConfigurationError("A sea level is required to classify water")
    return Features(mesh, heights, sea_level).classify()
