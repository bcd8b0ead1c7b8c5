"""
odcounty - County Drug Overdose Mortality Analysis
==================================================

A configurable pipeline for exploring U.S. county-level drug poisoning
mortality: cleaning, aggregates, trends, choropleths and Getis-Ord Gi*
hot spots.

Modules:
    - config: Configuration loading and validation
    - preprocessing: CSV cleaning and county shape joins
    - analysis: Aggregates, trends and hot spot analysis
    - visualization: Choropleths and interactive maps
"""

__version__ = "1.0.0"
__author__ = "odcounty Team"

from .config import PipelineConfig, load_config

__all__ = [
    "PipelineConfig",
    "load_config",
    "__version__",
]
