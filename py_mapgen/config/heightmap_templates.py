"""
Heightmap template scripts for blob-field generation.

One command per line: `<Command> <count> [peak] [radius] [sharpness] [steps]`.
Counts may be ranges like `10-15`. Commands: Mountain, Volcano, Hill, Range,
Trough, Pit, Sea, Rescale.
"""

from typing import Dict, List

from ..core.errors import ConfigurationError

VOLCANIC_ISLAND = """
Volcano 1 1 0.86 0.12
Hill 15 0.5 0.71 0.10
Range 2 0.7 0.54 0.10 6
Trough 2 0.6 0.52 0.10 5
Pit 3 0.3 0.47 0.10
"""

LOW_ISLAND = VOLCANIC_ISLAND + """
Rescale 0.3
"""

ARCHIPELAGO = """
Mountain 1 1 0.88 0.12
Hill 15 0.45 0.72 0.12
Trough 2 0.55 0.52 0.10 5
Pit 8 0.25 0.5 0.10
"""

CONTINENTAL_ISLANDS = """
Mountain 1 1 0.91 0.10
Hill 5-7 0.4 0.71 0.10
Sea 5 0.6 0.62 0.10 7
"""

TEMPLATES: Dict[str, str] = {
    "volcanic_island": VOLCANIC_ISLAND,
    "low_island": LOW_ISLAND,
    "archipelago": ARCHIPELAGO,
    "continental_islands": CONTINENTAL_ISLANDS,
}

ALIASES: Dict[str, str] = {
    "continents": "continental_islands",
}


def get_template(name: str) -> str:
    """Get a template script by name or alias."""
    key = ALIASES.get(name, name)
    if key not in TEMPLATES:
        raise ConfigurationError(
            f"Unknown heightmap template: {name}. Available: {', '.join(list_templates())}"
        )
    return TEMPLATES[key]


def list_templates() -> List[str]:
    """List available template names."""
    return list(TEMPLATES.keys())
