"""
odcounty Visualization Module
=============================

Static choropleths and interactive maps.

Modules:
    - choropleth_maps: County/state death rate maps and Gi* hot spot map
    - hotspot_explorer: Interactive Gi* hot spot map
"""

from .choropleth_maps import generate_choropleths, generate_hotspot_maps
from .hotspot_explorer import generate_hotspot_explorer
from .generate_all_maps import generate_all_maps

__all__ = [
    "generate_choropleths",
    "generate_hotspot_maps",
    "generate_hotspot_explorer",
    "generate_all_maps",
]
