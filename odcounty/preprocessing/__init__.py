"""
odcounty Preprocessing Module
=============================

Data cleaning and county shape preparation.

Modules:
    - data_preprocessing: Clean the NCHS CSV and convert it to Parquet
    - county_shapes: Download county boundaries and join records to them
"""

from .data_preprocessing import run_preprocessing, load_records, clean_records
from .county_shapes import run_shapes, load_county_shapes, join_records_to_shapes

__all__ = [
    "run_preprocessing",
    "load_records",
    "clean_records",
    "run_shapes",
    "load_county_shapes",
    "join_records_to_shapes",
]
