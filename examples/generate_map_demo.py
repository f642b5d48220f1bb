#!/usr/bin/env python3
"""
Demo script showing map generation with both elevation engines.
"""

import numpy as np

from py_mapgen import generate_map, load_config
from py_mapgen.config import configure_logging, list_templates


def describe(result):
    """Print the headline numbers of a generated map."""
    summary = result.summary()
    heights = result.elevation.heights

    print(f"  Cells: {summary['cells']} ({summary['edges']} edges)")
    print(f"  Sea level: {summary['sea_level']:.3f}")
    print(f"  Land fraction: {summary['land_fraction'] * 100:.1f}%")
    print(f"  Height range: {heights.min():.3f}-{heights.max():.3f}")
    print(f"  Ocean/lake/coast cells: {summary['ocean_cells']}/{summary['lake_cells']}/{summary['coast_cells']}")
    print(f"  Islands: {summary['islands']}, lakes: {summary['lakes']}")
    print(f"  Coastline: {summary['coast_loops']} loops, {summary['coast_open_chains']} open chains, "
          f"{result.coastline.total_length:.0f} units")
    print(f"  Rivers: {summary['rivers']} ({summary['major_rivers']} major), sinks: {summary['sinks']}")
    if summary["failsafe_applied"]:
        print("  Failsafe island was added")

    # Height distribution
    bins = np.linspace(0, 1, 6)
    counts, _ = np.histogram(heights, bins=bins)
    for lo, hi, count in zip(bins[:-1], bins[1:], counts):
        bar = "#" * int(40 * count / len(heights))
        print(f"    {lo:.1f}-{hi:.1f} {bar} {count}")


def main():
    """Demonstrate map generation."""
    configure_logging()
    print("py-mapgen Demo")
    print("=" * 40)

    for template_name in list_templates():
        print(f"\nBLOB {template_name.upper()}:")
        print("-" * 30)
        config = load_config(
            seed="demo123",
            width=400,
            height=300,
            min_distance=8,
            engine="blob",
            blob_field={"template": template_name},
        )
        describe(generate_map(config))

    for template_name in ("radial_island", "continental_gradient", "twin_continents"):
        print(f"\nTEMPLATE {template_name.upper()}:")
        print("-" * 30)
        config = load_config(
            seed="demo123",
            width=400,
            height=300,
            min_distance=8,
            engine="template",
            target_land_fraction=0.4,
            template_blend={"template": template_name},
        )
        describe(generate_map(config))


if __name__ == "__main__":
    main()
