"""
Configuration loader for the odcounty pipeline.

This module provides configuration management with YAML support,
validation, and path resolution.
"""

from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
import yaml


# Find project root by looking for config/ directory
def find_project_root() -> Path:
    """Find the project root directory by looking for config/pipeline.yaml."""
    current = Path(__file__).resolve().parent

    for _ in range(10):  # Max 10 levels up
        config_file = current / "config" / "pipeline.yaml"
        if config_file.exists():
            return current
        parent = current.parent
        if parent == current:
            break
        current = parent

    # Fallback: assume we're in odcounty/ package
    return Path(__file__).resolve().parent.parent


PROJECT_ROOT = find_project_root()
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "pipeline.yaml"

DEFAULT_SHAPES_URL = "https://www2.census.gov/geo/tiger/GENZ2018/shp/cb_2018_us_county_20m.zip"

# Alaska, Hawaii and the territories
NON_CONTIGUOUS_STATE_FIPS = ["02", "15", "60", "66", "69", "72", "78"]


@dataclass
class PathsConfig:
    """Path configuration with automatic resolution."""
    data_dir: str = "data"
    results_dir: str = "results"
    assets_dir: str = "assets"
    source: Dict[str, str] = field(default_factory=lambda: {
        "mortality_csv": "NCHS_-_Drug_Poisoning_Mortality_by_County__United_States.csv",
        "county_shapes": "cb_2018_us_county_20m.zip"
    })

    def resolve(self, base: Path) -> "ResolvedPaths":
        """Resolve all paths relative to base directory."""
        return ResolvedPaths(
            base=base,
            data=base / self.data_dir,
            results=base / self.results_dir,
            assets=base / self.assets_dir,
            source_csv=base / self.data_dir / self.source["mortality_csv"],
            county_shapes=base / self.data_dir / self.source["county_shapes"]
        )


@dataclass
class ResolvedPaths:
    """Resolved absolute paths for the project."""
    base: Path
    data: Path
    results: Path
    assets: Path
    source_csv: Path
    county_shapes: Path

    def ensure_dirs(self):
        """Create all directories if they don't exist."""
        for path in [self.data, self.results, self.assets]:
            path.mkdir(parents=True, exist_ok=True)


@dataclass
class ShapesConfig:
    """County boundary settings."""
    url: str = DEFAULT_SHAPES_URL
    download: bool = True
    timeout: int = 60
    contiguous_only: bool = True
    excluded_state_fips: List[str] = field(default_factory=lambda: list(NON_CONTIGUOUS_STATE_FIPS))
    crs: Optional[str] = "EPSG:5070"


@dataclass
class AnalysisConfig:
    """Aggregation and trend settings."""
    years: Optional[List[int]] = None
    map_year: Optional[int] = None
    baseline_year: Optional[int] = None
    top_n: int = 10
    trend_min_years: int = 5

    def validate(self):
        if self.top_n < 1:
            raise ValueError(f"top_n must be at least 1, got {self.top_n}")
        if self.trend_min_years < 2:
            raise ValueError(
                f"trend_min_years must be at least 2 to fit a line, got {self.trend_min_years}"
            )


@dataclass
class SpatialConfig:
    """Spatial weights and Gi* settings."""
    contiguity: str = "queen"
    weights_transform: str = "R"
    gi_permutations: int = 999
    gi_inference: str = "norm"
    significance_levels: List[float] = field(default_factory=lambda: [0.01, 0.05, 0.10])
    random_state: int = 42
    drop_islands: bool = True
    hotspot_years: Optional[List[int]] = None

    def validate(self):
        """Validate spatial settings."""
        if self.contiguity not in ("queen", "rook"):
            raise ValueError(
                f"Invalid contiguity '{self.contiguity}'. Must be one of: ['queen', 'rook']"
            )
        if self.weights_transform.upper() not in ("R", "B"):
            raise ValueError(
                f"Invalid weights transform '{self.weights_transform}'. Must be one of: ['R', 'B']"
            )
        if self.gi_inference not in ("norm", "sim"):
            raise ValueError(
                f"Invalid Gi* inference '{self.gi_inference}'. Must be one of: ['norm', 'sim']"
            )
        levels = list(self.significance_levels)
        if (len(levels) != 3
                or any(not 0 < level < 1 for level in levels)
                or any(a >= b for a, b in zip(levels, levels[1:]))):
            raise ValueError(
                "significance_levels must list three strictly increasing p-value "
                f"cut-offs between 0 and 1, got {self.significance_levels}"
            )
        if self.gi_inference == "sim" and self.gi_permutations < 1:
            raise ValueError("gi_permutations must be positive when gi_inference is 'sim'")


@dataclass
class VisualizationConfig:
    """Figure settings."""
    cmap: str = "OrRd"
    dpi: int = 300
    figsize: List[float] = field(default_factory=lambda: [14, 8])
    interactive: bool = True


@dataclass
class OutputConfig:
    """Output file naming configuration."""
    records_parquet: str = "drug_poisoning_mortality_county.parquet"
    joined_gpkg: str = "county_mortality_{year}.gpkg"

    def format_joined_gpkg(self, year: int) -> str:
        """Get joined GeoPackage filename for a year."""
        return self.joined_gpkg.format(year=year)


class PipelineConfig:
    """
    Main configuration class for the odcounty pipeline.

    Loads configuration from YAML and provides typed access to all settings.

    Usage:
        config = PipelineConfig.load()  # Load from default location
        config = PipelineConfig.load("path/to/config.yaml")  # Custom path

        # Access settings
        print(config.spatial.contiguity)
        print(config.paths.data)
        print(config.get_records_path())
    """

    def __init__(self, config_dict: Dict[str, Any], base_path: Optional[Path] = None):
        config_dict = config_dict or {}
        self._raw = config_dict
        self._base_path = base_path or PROJECT_ROOT

        # Parse paths config
        paths_dict = config_dict.get("paths", {})
        paths_config = PathsConfig(
            data_dir=paths_dict.get("data_dir", "data"),
            results_dir=paths_dict.get("results_dir", "results"),
            assets_dir=paths_dict.get("assets_dir", "assets"),
            source={**PathsConfig().source, **paths_dict.get("source", {})}
        )
        self.paths = paths_config.resolve(self._base_path)

        # Parse shapes config
        shapes_dict = config_dict.get("shapes", {})
        self.shapes = ShapesConfig(
            url=shapes_dict.get("url", DEFAULT_SHAPES_URL),
            download=shapes_dict.get("download", True),
            timeout=shapes_dict.get("timeout", 60),
            contiguous_only=shapes_dict.get("contiguous_only", True),
            excluded_state_fips=[
                str(code).zfill(2)
                for code in shapes_dict.get("excluded_state_fips", NON_CONTIGUOUS_STATE_FIPS)
            ],
            crs=shapes_dict.get("crs", "EPSG:5070")
        )

        # Parse analysis config
        analysis_dict = config_dict.get("analysis", {})
        self.analysis = AnalysisConfig(
            years=analysis_dict.get("years"),
            map_year=analysis_dict.get("map_year"),
            baseline_year=analysis_dict.get("baseline_year"),
            top_n=analysis_dict.get("top_n", 10),
            trend_min_years=analysis_dict.get("trend_min_years", 5)
        )
        self.analysis.validate()

        # Parse spatial config
        spatial_dict = config_dict.get("spatial", {})
        gi_dict = spatial_dict.get("gi_star", {})
        self.spatial = SpatialConfig(
            contiguity=spatial_dict.get("contiguity", "queen"),
            weights_transform=spatial_dict.get("weights_transform", "R"),
            gi_permutations=gi_dict.get("permutations", 999),
            gi_inference=gi_dict.get("inference", "norm"),
            significance_levels=gi_dict.get("significance_levels", [0.01, 0.05, 0.10]),
            random_state=gi_dict.get("random_state", 42),
            drop_islands=spatial_dict.get("drop_islands", True),
            hotspot_years=spatial_dict.get("hotspot_years")
        )
        self.spatial.validate()

        # Parse visualization config
        viz_dict = config_dict.get("visualization", {})
        self.visualization = VisualizationConfig(
            cmap=viz_dict.get("cmap", "OrRd"),
            dpi=viz_dict.get("dpi", 300),
            figsize=viz_dict.get("figsize", [14, 8]),
            interactive=viz_dict.get("interactive", True)
        )

        # Parse output config
        output_dict = config_dict.get("output", {})
        self.output = OutputConfig(
            records_parquet=output_dict.get("records_parquet", "drug_poisoning_mortality_county.parquet"),
            joined_gpkg=output_dict.get("joined_gpkg", "county_mortality_{year}.gpkg")
        )

        self.logging = config_dict.get("logging", {})

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "PipelineConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to config file. If None, uses default.

        Returns:
            PipelineConfig instance
        """
        if config_path is None:
            path = DEFAULT_CONFIG_PATH
        else:
            path = Path(config_path)

        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, 'r') as f:
            config_dict = yaml.safe_load(f)

        # Determine base path (parent of config/ directory)
        base_path = path.resolve().parent.parent

        return cls(config_dict, base_path)

    # ==================== Convenience Methods ====================

    def get_source_csv_path(self) -> Path:
        """Get full path to the raw mortality CSV."""
        return self.paths.source_csv

    def get_records_path(self) -> Path:
        """Get full path to the cleaned records parquet."""
        return self.paths.data / self.output.records_parquet

    def get_county_shapes_path(self) -> Path:
        """Get full path to the county boundary archive."""
        return self.paths.county_shapes

    def get_joined_gpkg_path(self, year: int) -> Path:
        """Get full path to the joined county GeoPackage for a year."""
        return self.paths.data / self.output.format_joined_gpkg(year)

    def get_results_subdir(self, name: str) -> Path:
        """Get path to a results subdirectory, creating if needed."""
        path = self.paths.results / name
        path.mkdir(parents=True, exist_ok=True)
        return path

    def get_assets_subdir(self, name: str) -> Path:
        """Get path to an assets subdirectory, creating if needed."""
        path = self.paths.assets / name
        path.mkdir(parents=True, exist_ok=True)
        return path

    def summary(self) -> str:
        """Get a summary of current configuration."""
        years = self.analysis.years or "all"
        hotspot_years = self.spatial.hotspot_years or "map year"
        return f"""
odcounty Pipeline Configuration
===============================
Paths:
  Data: {self.paths.data}
  Results: {self.paths.results}
  Assets: {self.paths.assets}
  Source CSV: {self.paths.source_csv.name}
  County shapes: {self.paths.county_shapes.name}

Analysis:
  Years: {years}
  Map year: {self.analysis.map_year or 'latest'}
  Baseline year: {self.analysis.baseline_year or 'earliest'}
  Top counties: {self.analysis.top_n}
  Trend minimum years: {self.analysis.trend_min_years}

Spatial Settings:
  Contiguity: {self.spatial.contiguity}
  Weights transform: {self.spatial.weights_transform}
  Gi* inference: {self.spatial.gi_inference} ({self.spatial.gi_permutations} permutations)
  Significance levels: {self.spatial.significance_levels}
  Hot spot years: {hotspot_years}
  Map CRS: {self.shapes.crs or 'source'}
"""


# Convenience function for quick loading
def load_config(config_path: Optional[str] = None) -> PipelineConfig:
    """
    Load pipeline configuration.

    Args:
        config_path: Optional path to config file.

    Returns:
        PipelineConfig instance

    Usage:
        from odcounty import load_config
        config = load_config()
    """
    return PipelineConfig.load(config_path)
