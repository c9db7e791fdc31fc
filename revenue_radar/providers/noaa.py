"""Severe weather from NWS active alerts and SPC storm reports."""

import csv
import io
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx

from revenue_radar.core.clock import days_ago_label, utc_now
from revenue_radar.core.concurrency import gather_in_batches
from revenue_radar.core.exceptions import ProviderError
from revenue_radar.core.geo import circle_polygon, haversine_meters, miles_to_meters
from revenue_radar.core.http import fetch_with_retry, parse_json
from revenue_radar.providers.base import HttpProvider
from revenue_radar.schemas.common import StormSeverity, StormType
from revenue_radar.schemas.provider import StormData, StormEvent

logger = logging.getLogger(__name__)

NWS_BASE_URL = "https://api.weather.gov"
SPC_REPORTS_URL = "https://www.spc.noaa.gov/climo/reports"
USER_AGENT = "(revenue-radar, ops@revenue-radar.local)"

SEVERE_ALERT_WORDS = ("hail", "tornado", "thunder", "wind", "severe")
SPC_REPORT_FILES: Tuple[Tuple[str, StormType], ...] = (
    ("hail", StormType.hail),
    ("wind", StormType.wind),
    ("torn", StormType.tornado),
)
SPC_LOOKBACK_DAYS = 7


@dataclass(frozen=True)
class SpcReport:
    type: StormType
    lat: float
    lng: float
    magnitude: str
    location: str
    county: str
    state: str
    days_ago: int


def parse_spc_csv(text: str, storm_type: StormType, days_ago: int) -> List[SpcReport]:
    """Parse one SPC report CSV (Time, Size/Speed/F_Scale, Location, County,
    State, Lat, Lon, Comments). SPC longitudes are positive-west."""
    reports = []
    rows = csv.reader(io.StringIO(text))
    next(rows, None)
    for parts in rows:
        if len(parts) < 7:
            continue
        try:
            lat = float(parts[5])
            lng = float(parts[6])
        except ValueError:
            continue
        reports.append(
            SpcReport(
                type=storm_type,
                lat=lat,
                lng=-abs(lng),
                magnitude=parts[1].strip() or "UNK",
                location=parts[2].strip(),
                county=parts[3].strip(),
                state=parts[4].strip(),
                days_ago=days_ago,
            )
        )
    return reports


def _magnitude(report: SpcReport, default: float) -> float:
    try:
        value = float(report.magnitude)
    except ValueError:
        return default
    return value if value else default


def impact_radius_meters(report: SpcReport) -> float:
    mag = _magnitude(report, 1.0)
    if report.type == StormType.hail:
        return min(8000.0, 2000 + mag * 3000)
    if report.type == StormType.tornado:
        return min(12000.0, 3000 + mag * 2000)
    if report.type == StormType.wind:
        return min(6000.0, 2000 + mag * 30)
    return 3000.0


def report_severity(report: SpcReport) -> StormSeverity:
    mag = _magnitude(report, 1.0)
    if report.type == StormType.tornado:
        return StormSeverity.severe
    if report.type == StormType.hail and mag >= 2.0:
        return StormSeverity.severe
    if mag >= 1.0:
        return StormSeverity.moderate
    return StormSeverity.minor


def _report_label(report: SpcReport) -> str:
    if report.type == StormType.hail:
        kind = f"{report.magnitude}in hail"
    elif report.type == StormType.tornado:
        kind = f"EF{min(5, math.floor(_magnitude(report, 1.0) / 20))} tornado"
    else:
        kind = f"{report.magnitude}mph wind"
    return f"{kind} • {report.location}, {report.state}"


def map_alert_severity(value: str) -> StormSeverity:
    if value in ("Extreme", "Severe"):
        return StormSeverity.severe
    if value == "Moderate":
        return StormSeverity.moderate
    return StormSeverity.minor


def map_alert_type(event: str) -> StormType:
    lowered = event.lower()
    if "hail" in lowered:
        return StormType.hail
    if "tornado" in lowered:
        return StormType.tornado
    if "wind" in lowered:
        return StormType.wind
    return StormType.thunderstorm


def _polygon_feature(
    coordinates: Any,
    event: StormEvent,
    label: str,
    geometry_type: str = "Polygon",
) -> Dict[str, Any]:
    return {
        "type": "Feature",
        "geometry": {"type": geometry_type, "coordinates": coordinates},
        "properties": {
            "id": event.id,
            "label": label,
            "severity": event.severity.value,
            "type": event.type.value,
            "date": event.date,
            "days_ago": event.days_ago,
        },
    }


class NoaaStormProvider(HttpProvider):
    """Severe Weather Provider.

    Combines NWS active alerts (real polygons) with SPC hail, wind and
    tornado reports from the last week (seeded circle polygons).
    Individual feeds that fail are skipped; a missing SPC day file is
    normal.
    """

    name = "noaa"

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__(client)
        self._clock = clock

    async def _get(self, url: str, accept: str = "application/geo+json") -> httpx.Response:
        async with self._session() as client:
            return await fetch_with_retry(
                client,
                url,
                provider=self.name,
                headers={"User-Agent": USER_AGENT, "Accept": accept},
            )

    # ------------------------------------------------------------------
    # NWS alerts
    # ------------------------------------------------------------------

    async def _nws_alerts(self, lat: float, lng: float) -> List[Dict[str, Any]]:
        point = parse_json(
            await self._get(f"{NWS_BASE_URL}/points/{lat:.4f},{lng:.4f}"), self.name
        )
        state = (
            ((point.get("properties") or {}).get("relativeLocation") or {})
            .get("properties", {})
            .get("state")
        )
        if not state:
            return []
        alerts = parse_json(
            await self._get(f"{NWS_BASE_URL}/alerts/active?area={state}&limit=50"),
            self.name,
        )
        return alerts.get("features") or []

    def _alert_days_ago(self, effective: str, now: datetime) -> int:
        try:
            when = datetime.fromisoformat(effective)
        except (TypeError, ValueError):
            return 0
        if when.tzinfo is None:
            return 0
        return max(0, math.floor((now - when).total_seconds() / 86400))

    # ------------------------------------------------------------------
    # SPC reports
    # ------------------------------------------------------------------

    def _spc_files(self, now: datetime) -> List[Tuple[str, StormType, int]]:
        files = []
        for suffix, storm_type in SPC_REPORT_FILES:
            files.append((f"today_{suffix}.csv", storm_type, 0))
            files.append((f"yesterday_{suffix}.csv", storm_type, 1))
        for days_ago in range(2, SPC_LOOKBACK_DAYS + 1):
            stamp = (now - timedelta(days=days_ago)).strftime("%y%m%d")
            for suffix, storm_type in SPC_REPORT_FILES:
                files.append(
                    (f"{stamp}_rpts_filtered_{suffix}.csv", storm_type, days_ago)
                )
        return files

    async def _spc_reports(self, now: datetime) -> List[SpcReport]:
        async def fetch(spec: Tuple[str, StormType, int]) -> List[SpcReport]:
            filename, storm_type, days_ago = spec
            try:
                response = await self._get(f"{SPC_REPORTS_URL}/{filename}", "text/csv")
            except ProviderError:
                logger.debug("SPC file %s unavailable", filename)
                return []
            return parse_spc_csv(response.text, storm_type, days_ago)

        batches = await gather_in_batches(self._spc_files(now), fetch)
        return [report for batch in batches for report in batch]

    # ------------------------------------------------------------------
    # Combined
    # ------------------------------------------------------------------

    async def storms_near(
        self, lat: float, lng: float, radius_miles: float
    ) -> StormData:
        now = self._clock()
        radius_m = miles_to_meters(radius_miles)
        events: List[StormEvent] = []
        features: List[Dict[str, Any]] = []

        try:
            alerts = await self._nws_alerts(lat, lng)
        except ProviderError:
            logger.warning("NWS alerts unavailable", exc_info=True)
            alerts = []

        for alert in alerts:
            props = alert.get("properties") or {}
            event_name = props.get("event") or ""
            if not any(word in event_name.lower() for word in SEVERE_ALERT_WORDS):
                continue
            days_ago = self._alert_days_ago(props.get("effective", ""), now)
            event = StormEvent(
                id=str(alert.get("id", "")),
                type=map_alert_type(event_name),
                severity=map_alert_severity(props.get("severity", "")),
                lat=lat,
                lng=lng,
                days_ago=days_ago,
                label=props.get("headline") or event_name,
                date=props.get("effective", ""),
                source="NWS",
                radius_meters=radius_m * 0.3,
            )
            events.append(event)
            geometry = alert.get("geometry") or {}
            if geometry.get("coordinates"):
                features.append(
                    _polygon_feature(
                        geometry["coordinates"],
                        event,
                        f"{event_name} • {days_ago_label(days_ago)}",
                        geometry.get("type", "Polygon"),
                    )
                )

        for i, report in enumerate(await self._spc_reports(now)):
            if haversine_meters(lat, lng, report.lat, report.lng) > radius_m:
                continue
            label = _report_label(report)
            event = StormEvent(
                id=f"spc-{report.type.value}-{i}",
                type=report.type,
                severity=report_severity(report),
                lat=report.lat,
                lng=report.lng,
                days_ago=report.days_ago,
                label=label,
                date=(now - timedelta(days=report.days_ago)).isoformat(),
                magnitude=report.magnitude,
                source="SPC",
                radius_meters=impact_radius_meters(report),
            )
            events.append(event)
            ring = circle_polygon(report.lat, report.lng, event.radius_meters)
            features.append(
                _polygon_feature(
                    [ring], event, f"{label} • {days_ago_label(report.days_ago)}"
                )
            )

        return StormData(
            events=events,
            overlay={"type": "FeatureCollection", "features": features},
        )
