#!/usr/bin/env python3
"""
Visualization Module - Hot Spot Explorer
========================================
Creates interactive Folium map of Gi* hot and cold spots.
"""

from pathlib import Path
from typing import Optional
import geopandas as gpd
import folium

from ..config import PipelineConfig, load_config
from ..analysis.hotspot_analysis import hotspot_labels
from .choropleth_maps import HOTSPOT_COLORS


def latest_hotspot_results(config: PipelineConfig) -> Path:
    """Most recent year's Gi* GeoPackage."""
    results_dir = config.get_results_subdir("hotspot_analysis")
    gpkg_files = sorted(results_dir.glob('gi_star_*.gpkg'))
    if not gpkg_files:
        raise FileNotFoundError(f"Hot spot results not found in: {results_dir}")
    return gpkg_files[-1]


def generate_hotspot_explorer(config: Optional[PipelineConfig] = None) -> str:
    """
    Generate Gi* hot spot interactive map.

    Returns:
        Path to saved HTML file
    """
    if config is None:
        config = load_config()

    print("Generating hot spot explorer map...")

    gpkg_path = latest_hotspot_results(config)
    year = gpkg_path.stem.rsplit('_', 1)[-1]
    gdf = gpd.read_file(gpkg_path).to_crs(epsg=4326)

    fields = ['county', 'state', 'death_rate', 'gi_z', 'gi_label']
    popup_fields = ['fips', 'county', 'state', 'population', 'death_rate',
                    'gi_z', 'p_norm', 'p_sim', 'gi_label']
    gdf = gdf[popup_fields + ['gi_bin', 'geometry']].copy()
    gdf['death_rate'] = gdf['death_rate'].round(1)
    gdf['gi_z'] = gdf['gi_z'].round(2)
    gdf[['p_norm', 'p_sim']] = gdf[['p_norm', 'p_sim']].round(4)

    # Create map
    bounds = gdf.total_bounds
    center_lat = (bounds[1] + bounds[3]) / 2
    center_lon = (bounds[0] + bounds[2]) / 2
    m = folium.Map(location=[center_lat, center_lon], zoom_start=4, tiles='cartodbpositron')

    def style_function(feature):
        color = HOTSPOT_COLORS.get(feature['properties']['gi_bin'], '#d3d3d3')
        return {
            'fillColor': color,
            'color': '#808080',
            'weight': 0.2,
            'fillOpacity': 0.8,
        }

    folium.GeoJson(
        gdf,
        name=f'Gi* hot spots {year}',
        style_function=style_function,
        tooltip=folium.GeoJsonTooltip(
            fields=fields,
            aliases=['County', 'State', 'Deaths per 100k', 'Gi* z-score', 'Classification'],
        ),
        popup=folium.GeoJsonPopup(
            fields=popup_fields,
            aliases=['FIPS', 'County', 'State', 'Population', 'Deaths per 100k',
                     'Gi* z-score', 'p (normal)', 'p (permutation)', 'Classification'],
        ),
    ).add_to(m)

    # Add legend
    labels = hotspot_labels(config.spatial.significance_levels)
    entries = ''.join(
        f'<p><span style="color:{HOTSPOT_COLORS[b]};">●</span> {labels[b]}</p>'
        for b in sorted(HOTSPOT_COLORS, reverse=True)
    )
    legend_html = f'''
    <div style="position: fixed; bottom: 50px; left: 50px; z-index: 1000;
                background-color: white; padding: 10px; border-radius: 5px;
                border: 2px solid grey;">
        <h4>Gi* Hot Spots ({year})</h4>
        {entries}
    </div>
    '''
    m.get_root().html.add_child(folium.Element(legend_html))
    folium.LayerControl().add_to(m)

    # Save
    assets_dir = config.get_assets_subdir("maps")
    output_path = assets_dir / f'hotspot_explorer_{year}.html'
    m.save(str(output_path))

    print(f"✓ Saved: {output_path}")
    return str(output_path)


if __name__ == "__main__":
    generate_hotspot_explorer()
