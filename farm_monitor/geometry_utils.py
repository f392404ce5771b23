"""
geometry_utils.py — Field polygon parsing, validation, area and centre point.

Coordinates arrive as a ring of [lng, lat] pairs (WGS84).
"""

import geopandas as gpd
from shapely.geometry import Polygon

from config import SQ_M_PER_HECTARE

MAX_FIELD_AREA_SQ_KM = 500


def build_polygon(coordinates: list[list[float]]) -> Polygon:
    """
    Build a Shapely polygon from [lng, lat] pairs.
    Drops Z values and closes the ring if the caller left it open.
    """
    coords_2d = [(float(c[0]), float(c[1])) for c in coordinates]
    if len(coords_2d) > 1 and coords_2d[0] == coords_2d[-1]:
        coords_2d = coords_2d[:-1]

    if len(set(coords_2d)) < 3:
        raise ValueError("Field polygon needs at least 3 distinct vertices")

    return Polygon(coords_2d)


def compute_area_sq_m(polygon: Polygon) -> float:
    """
    Compute the area of a WGS84 polygon in square metres.
    Re-projects to an equal-area CRS first.
    """
    gdf = gpd.GeoDataFrame(geometry=[polygon], crs="EPSG:4326")
    gdf_proj = gdf.to_crs("EPSG:6933")  # World Cylindrical Equal Area
    return float(gdf_proj.geometry.iloc[0].area)


def validate_geometry(polygon: Polygon) -> float:
    """Raise ValueError for unusable outlines; returns the area in m²."""
    if polygon.is_empty:
        raise ValueError("Polygon is empty")

    if not polygon.is_valid:
        raise ValueError("Polygon geometry is not valid (self-intersecting?)")

    area_sq_m = compute_area_sq_m(polygon)
    area_sq_km = area_sq_m / 1_000_000
    if area_sq_km > MAX_FIELD_AREA_SQ_KM:
        raise ValueError(
            f"Polygon area is {area_sq_km:.1f} km² — exceeds {MAX_FIELD_AREA_SQ_KM} km² limit"
        )
    return area_sq_m


def field_geometry(coordinates: list[list[float]]) -> dict:
    """
    Validate a field outline and derive its area and centre.

    Returns:
        {"area_hectares": float, "center_lat": float, "center_lng": float}
    """
    polygon = build_polygon(coordinates)
    area_sq_m = validate_geometry(polygon)
    centroid = polygon.centroid
    return {
        "area_hectares": round(area_sq_m / SQ_M_PER_HECTARE, 4),
        "center_lat": centroid.y,
        "center_lng": centroid.x,
    }
