"""
odcounty Analysis Module
========================

Aggregation, trends and spatial hot spots.

Modules:
    - exploratory_data_analysis: National, state and county aggregates
    - trend_analysis: Linear trends of death rates over years
    - hotspot_analysis: Contiguity weights and Getis-Ord Gi*
"""

from .exploratory_data_analysis import run_eda
from .trend_analysis import run_trends
from .hotspot_analysis import run_hotspot_analysis

__all__ = [
    "run_eda",
    "run_trends",
    "run_hotspot_analysis",
]
