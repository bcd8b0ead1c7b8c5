#!/usr/bin/env python3
"""
Generate All Maps
=================
Utility to generate all static and interactive maps at once.
"""

from typing import Optional, List

from ..config import PipelineConfig, load_config
from .choropleth_maps import generate_choropleths, generate_hotspot_maps
from .hotspot_explorer import generate_hotspot_explorer


def generate_all_maps(config: Optional[PipelineConfig] = None) -> List[str]:
    """
    Generate all maps.

    Returns:
        List of paths to generated files
    """
    if config is None:
        config = load_config()

    print("=" * 60)
    print("GENERATING ALL MAPS")
    print("=" * 60)

    generated = []

    # Choropleths (need only the cleaned records and shapes)
    try:
        generated.extend(generate_choropleths(config))
    except Exception as e:
        print(f"⚠ Failed to generate choropleth maps: {e}")

    # Hot spot maps (require spatial stage results)
    try:
        generated.extend(generate_hotspot_maps(config))
    except FileNotFoundError:
        print("⚠ Hot spot maps skipped (run the spatial stage first)")
    except Exception as e:
        print(f"⚠ Failed to generate hot spot maps: {e}")

    if config.visualization.interactive:
        try:
            generated.append(generate_hotspot_explorer(config))
        except FileNotFoundError:
            print("⚠ Hot spot explorer skipped (run the spatial stage first)")
        except Exception as e:
            print(f"⚠ Failed to generate hot spot explorer: {e}")

    print("\n" + "=" * 60)
    print(f"Generated {len(generated)} maps")
    print("=" * 60)

    return generated


if __name__ == "__main__":
    generate_all_maps()
