"""Grid-based neighborhood clustering of residential leads."""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

from revenue_radar.core.constants import (
    CLUSTER_CELL_DEGREES,
    CLUSTER_MERGE_METERS,
    MIN_CLUSTER_SIZE,
)
from revenue_radar.core.geo import haversine_meters, round_half_up
from revenue_radar.schemas.lead import ClusterBounds, NeighborhoodCluster, ScoredLead


@dataclass
class ClusteringResult:
    clusters: List[NeighborhoodCluster] = field(default_factory=list)
    singles: List[ScoredLead] = field(default_factory=list)


def _cell_key(lead: ScoredLead) -> Tuple[int, int]:
    return (
        math.floor(lead.lat / CLUSTER_CELL_DEGREES),
        math.floor(lead.lng / CLUSTER_CELL_DEGREES),
    )


def _centroid(members: Sequence[ScoredLead]) -> Tuple[float, float]:
    n = len(members)
    return (
        sum(m.lat for m in members) / n,
        sum(m.lng for m in members) / n,
    )


def _mean(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _build_cluster(index: int, members: List[ScoredLead]) -> NeighborhoodCluster:
    n = len(members)
    lat, lng = _centroid(members)

    ages = [m.property_age_years for m in members if m.property_age_years]
    incomes_k = [
        round_half_up(m.median_income / 1000) for m in members if m.median_income
    ]
    owners = [m.owner_occupied_pct for m in members if m.owner_occupied_pct]
    storm_count = sum(1 for m in members if m.has_storm)
    permit_count = sum(1 for m in members if m.has_permit)

    avg_age = int(round_half_up(_mean(ages)))
    avg_income_k = int(round_half_up(_mean(incomes_k)))
    avg_owner = int(round_half_up(_mean(owners)))
    storm_pct = int(round_half_up(storm_count / n * 100))
    permit_pct = int(round_half_up(permit_count / n * 100))

    reasons: List[str] = []
    if avg_age > 0:
        reasons.append(f"Avg home age in area: ~{avg_age} years")
    if avg_income_k > 0:
        reasons.append(f"Median income: ~{avg_income_k}k")
    if avg_owner > 0:
        reasons.append(f"Owner-occupied: ~{avg_owner}%")
    if storm_count:
        reasons.append(f"{storm_count} of {n} properties near recent storm activity")
    if permit_count:
        reasons.append(f"{permit_count} properties with permit signals")
    reasons.append(f"{n} properties in this neighborhood")

    city = next((m.city for m in members if m.city), None)
    name = f"{city} area" if city else f"Cluster {index + 1}"

    return NeighborhoodCluster(
        id=f"cluster-{index}",
        lat=lat,
        lng=lng,
        name=name,
        property_count=n,
        avg_score=round_half_up(_mean([m.score for m in members]), 1),
        avg_property_age=avg_age,
        avg_median_income_k=avg_income_k,
        avg_owner_occupied_pct=min(100, avg_owner),
        storm_exposure_pct=storm_pct,
        permit_activity_pct=permit_pct,
        top_reasons=reasons,
        leads=sorted(members, key=lambda m: -m.score),
        bounds=ClusterBounds(
            min_lat=min(m.lat for m in members),
            max_lat=max(m.lat for m in members),
            min_lng=min(m.lng for m in members),
            max_lng=max(m.lng for m in members),
        ),
    )


def cluster_leads(
    leads: Sequence[ScoredLead], min_cluster_size: int = MIN_CLUSTER_SIZE
) -> ClusteringResult:
    """Group *leads* into neighborhood clusters.

    Leads are bucketed into fixed grid cells. Cells with at least
    ``min_cluster_size`` members seed clusters; leads from smaller cells
    join the nearest seed centroid within ``CLUSTER_MERGE_METERS`` or are
    returned as singles. The input sequence is never mutated and the
    result depends only on the order and content of *leads*.
    """
    cells: Dict[Tuple[int, int], List[ScoredLead]] = {}
    for lead in leads:
        cells.setdefault(_cell_key(lead), []).append(lead)

    seeds: List[List[ScoredLead]] = []
    leftovers: List[ScoredLead] = []
    for members in cells.values():
        if len(members) >= min_cluster_size:
            seeds.append(list(members))
        else:
            leftovers.extend(members)

    singles: List[ScoredLead] = []
    for lead in leftovers:
        best_index = -1
        best_dist = CLUSTER_MERGE_METERS
        for i, members in enumerate(seeds):
            c_lat, c_lng = _centroid(members)
            dist = haversine_meters(lead.lat, lead.lng, c_lat, c_lng)
            if dist < best_dist:
                best_index, best_dist = i, dist
        if best_index >= 0:
            seeds[best_index].append(lead)
        else:
            singles.append(lead)

    clusters = [_build_cluster(i, members) for i, members in enumerate(seeds)]
    clusters.sort(key=lambda c: -c.avg_score)
    return ClusteringResult(clusters=clusters, singles=singles)
