"""GeoJSON FeatureCollections for leads, clusters and permits."""

from typing import Any, Dict, Iterable, List, Sequence

from revenue_radar.core.constants import CLUSTER_CELL_DEGREES, CLUSTER_POLYGON_PAD_FACTOR
from revenue_radar.schemas.common import Industry
from revenue_radar.schemas.lead import NeighborhoodCluster, ScoredLead
from revenue_radar.schemas.provider import PermitRecord

Feature = Dict[str, Any]


def empty_collection() -> Dict[str, Any]:
    return {"type": "FeatureCollection", "features": []}


def _collection(features: List[Feature]) -> Dict[str, Any]:
    return {"type": "FeatureCollection", "features": features}


def _point(lat: float, lng: float, properties: Dict[str, Any]) -> Feature:
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [lng, lat]},
        "properties": properties,
    }


def _lead_properties(lead: ScoredLead) -> Dict[str, Any]:
    return lead.model_dump(mode="json", exclude_none=True)


def leads_to_feature_collection(leads: Iterable[ScoredLead]) -> Dict[str, Any]:
    return _collection(
        [_point(lead.lat, lead.lng, _lead_properties(lead)) for lead in leads]
    )


def clusters_to_polygons(clusters: Sequence[NeighborhoodCluster]) -> Dict[str, Any]:
    """One padded rectangle per cluster."""
    pad = CLUSTER_CELL_DEGREES * CLUSTER_POLYGON_PAD_FACTOR
    features: List[Feature] = []
    for cluster in clusters:
        b = cluster.bounds
        west, east = b.min_lng - pad, b.max_lng + pad
        south, north = b.min_lat - pad, b.max_lat + pad
        ring = [
            [west, south],
            [east, south],
            [east, north],
            [west, north],
            [west, south],
        ]
        label = f"{cluster.name} • {cluster.property_count} properties"
        if cluster.avg_property_age > 0:
            label += f" • avg {cluster.avg_property_age}yr"
        features.append(
            {
                "type": "Feature",
                "geometry": {"type": "Polygon", "coordinates": [ring]},
                "properties": {
                    "id": cluster.id,
                    "name": cluster.name,
                    "label": label,
                    "type": "neighborhood",
                    "property_count": cluster.property_count,
                    "avg_score": cluster.avg_score,
                    "avg_property_age": cluster.avg_property_age,
                    "avg_median_income_k": cluster.avg_median_income_k,
                    "avg_owner_occupied_pct": cluster.avg_owner_occupied_pct,
                    "storm_exposure_pct": cluster.storm_exposure_pct,
                    "permit_activity_pct": cluster.permit_activity_pct,
                    "top_reasons": list(cluster.top_reasons),
                },
            }
        )
    return _collection(features)


def cluster_points(
    clusters: Sequence[NeighborhoodCluster], singles: Sequence[ScoredLead]
) -> Dict[str, Any]:
    """Centroid marker plus members for each cluster, then the singles."""
    features: List[Feature] = []
    for cluster in clusters:
        features.append(
            _point(
                cluster.lat,
                cluster.lng,
                {
                    "id": cluster.id,
                    "name": cluster.name,
                    "score": cluster.avg_score,
                    "type": "Neighborhood",
                    "trigger": f"{cluster.property_count} properties",
                    "distance": 0,
                    "reasons": list(cluster.top_reasons),
                    "industry": Industry.residential_service.value,
                    "is_cluster": True,
                    "property_count": cluster.property_count,
                },
            )
        )
        for lead in cluster.leads:
            properties = _lead_properties(lead)
            properties["cluster_id"] = cluster.id
            properties["cluster_name"] = cluster.name
            features.append(_point(lead.lat, lead.lng, properties))
    for lead in singles:
        features.append(_point(lead.lat, lead.lng, _lead_properties(lead)))
    return _collection(features)


def permits_to_feature_collection(permits: Iterable[PermitRecord]) -> Dict[str, Any]:
    return _collection(
        [
            _point(
                p.lat,
                p.lng,
                p.model_dump(mode="json", exclude_none=True, exclude={"lat", "lng"}),
            )
            for p in permits
        ]
    )
