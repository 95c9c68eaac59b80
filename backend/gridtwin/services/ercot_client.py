"""ERCOT public reports client.

Pulls the four series behind live mode: realtime system conditions, the 72h
load forecast, 72h outages by load zone and today's settlement point prices.
Report ids are discovered by keyword search over the public report list.

Every public fetch is independently failable and degrades to synthetic data
with the same shape, so callers always receive complete records. Token and
report-list caches live on the client instance.
"""

import asyncio
import logging
import math
import re
import time
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from gridtwin.config import Settings, settings
from gridtwin.schemas.live import (
    BasicSnapshot,
    DemandForecastPoint,
    LiveBundle,
    LoadForecast,
    OutageForecast,
    OutagePoint,
    PricePoint,
    RealtimeConditions,
    SettlementPrices,
)

logger = logging.getLogger(__name__)

# Refresh the bearer token this long before it expires (seconds)
TOKEN_REFRESH_MARGIN = 120
MIN_TOKEN_LIFETIME = 300

_LIST_PATHS = ["/", "", "/reports", "/public-reports", "/list"]
_BASIC_PATHS = [
    "/realtime/system-conditions",
    "/system-conditions",
    "/reports/system-conditions",
]
_AUSTIN_ZONE_RE = re.compile(r"south|austin", re.IGNORECASE)

FALLBACK_BASIC = {"system_demand_mw": 72000.0, "wind_mw": 18000.0, "solar_mw": 9000.0}


class ErcotAuthError(Exception):
    """Missing credentials or a rejected token request."""


def to_num(value: Any, fallback: float = 0.0) -> float:
    try:
        n = float(value)
    except (TypeError, ValueError):
        return fallback
    return n if math.isfinite(n) else fallback


def _first(row: dict, *keys: str) -> Any:
    for key in keys:
        if row.get(key) is not None:
            return row[key]
    return None


def _as_rows(data: Any) -> list[dict]:
    if isinstance(data, list):
        return [r for r in data if isinstance(r, dict)]
    if isinstance(data, dict):
        for key in ("data", "items", "value", "results", "reports"):
            nested = data.get(key)
            if isinstance(nested, list):
                return [r for r in nested if isinstance(r, dict)]
    return []


def _parse_datetime(val: Any) -> datetime:
    if val is not None:
        try:
            parsed = datetime.fromisoformat(str(val).replace("Z", "+00:00"))
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
        except (ValueError, TypeError):
            pass
    return datetime.now(timezone.utc)


def _row_time(row: dict) -> datetime:
    return _parse_datetime(_first(
        row, "hourISO", "timestampISO", "timestamp", "intervalISO", "deliveryDate", "datetime",
    ))


def _report_text(report: dict) -> str:
    fields = ("reportId", "id", "name", "title", "description", "shortDescription")
    return " ".join(str(report.get(f) or "") for f in fields).lower()


def _nonzero(*values: float) -> float:
    """First finite, non-zero value (NaN when none)."""
    for v in values:
        if math.isfinite(v) and v != 0:
            return v
    return math.nan


class ErcotClient:
    def __init__(self, config: Settings = settings):
        self.config = config
        self._token: str | None = None
        self._token_expires_at = 0.0
        self._reports: list[dict] = []
        self._reports_expire_at = 0.0

    # --- auth / transport ---

    async def get_token(self) -> str:
        now = time.time()
        if self._token and self._token_expires_at - now > TOKEN_REFRESH_MARGIN:
            return self._token

        if not self.config.ercot_username or not self.config.ercot_password:
            raise ErcotAuthError("Missing ERCOT_USERNAME / ERCOT_PASSWORD")

        form = {
            "grant_type": "password",
            "username": self.config.ercot_username,
            "password": self.config.ercot_password,
            "client_id": self.config.ercot_client_id,
            "scope": self.config.ercot_scope,
            "response_type": "token id_token",
        }
        async with httpx.AsyncClient(timeout=self.config.ercot_timeout_seconds) as client:
            resp = await client.post(self.config.ercot_token_url, data=form)
        if resp.status_code >= 400:
            raise ErcotAuthError(f"ERCOT token request failed ({resp.status_code})")

        try:
            payload = resp.json()
        except ValueError:
            payload = {}
        token = payload.get("id_token") or payload.get("access_token")
        if not token:
            raise ErcotAuthError("ERCOT token missing id_token/access_token")

        expires_in = to_num(payload.get("expires_in"), 3600)
        self._token = token
        self._token_expires_at = now + max(MIN_TOKEN_LIFETIME, expires_in)
        return token

    async def fetch_json(self, path: str, params: dict[str, str] | None = None) -> Any:
        if not self.config.ercot_subscription_key:
            raise ErcotAuthError("Missing ERCOT_SUBSCRIPTION_KEY")
        token = await self.get_token()

        suffix = path if path.startswith("/") else f"/{path}"
        headers = {
            "Accept": "application/json",
            "Authorization": f"Bearer {token}",
            "Ocp-Apim-Subscription-Key": self.config.ercot_subscription_key,
        }
        async with httpx.AsyncClient(headers=headers, timeout=self.config.ercot_timeout_seconds) as client:
            resp = await client.get(f"{self.config.ercot_api_base_url}{suffix}", params=params)
            resp.raise_for_status()
            return resp.json()

    # --- report discovery ---

    async def list_public_reports(self) -> list[dict]:
        now = time.time()
        if self._reports and self._reports_expire_at > now:
            return self._reports

        reports: list[dict] = []
        for path in _LIST_PATHS:
            try:
                reports = _as_rows(await self.fetch_json(path))
            except Exception as e:
                logger.debug("ERCOT report list via %r failed: %s", path, e)
                continue
            if reports:
                break

        self._reports = reports
        self._reports_expire_at = now + self.config.ercot_report_cache_ttl
        return reports

    async def find_report_id(self, keywords: list[str]) -> tuple[str, str] | None:
        """Best keyword match as (report_id, label), or None without any hit."""
        best: tuple[int, str, str] | None = None
        for report in await self.list_public_reports():
            report_id = str(_first(report, "reportId", "id") or "")
            if not report_id:
                continue
            text = _report_text(report)
            score = sum(1 for k in keywords if k.lower() in text)
            label = str(_first(report, "title", "name", "description") or report_id)
            if best is None or score > best[0]:
                best = (score, report_id, label)
        if best is None or best[0] == 0:
            return None
        return best[1], best[2]

    async def _fetch_report_rows(self, report_id: str, params: dict[str, str] | None = None) -> list[dict]:
        for path in (f"/reports/{report_id}", f"/reports/{report_id}/data", f"/{report_id}"):
            try:
                rows = _as_rows(await self.fetch_json(path, params))
            except Exception as e:
                logger.debug("ERCOT report rows via %s failed: %s", path, e)
                continue
            if rows:
                return rows
        return []

    async def _rows_for(self, keywords: list[str], params: dict[str, str] | None = None) -> list[dict]:
        try:
            report = await self.find_report_id(keywords)
            if not report:
                return []
            return await self._fetch_report_rows(report[0], params)
        except Exception as e:
            logger.warning("ERCOT report lookup %s failed: %s", keywords, e)
            return []

    # --- the four live series ---

    async def get_realtime_conditions(self) -> RealtimeConditions:
        rows = await self._rows_for(["real", "time", "demand"])
        if rows:
            last = rows[-1]
            demand = to_num(_first(last, "systemDemandMW", "demandMW", "totalLoad", "load"))
            cap = to_num(
                _first(last, "systemCapacityMW", "availableCapacityMW", "capacityMW"), demand * 1.2,
            )
            if demand > 0:
                return RealtimeConditions(
                    timestamp=_row_time(last),
                    system_demand_mw=demand,
                    system_capacity_mw=cap if cap > 0 else demand * 1.2,
                    wind_mw=to_num(_first(last, "windMW", "windGenMW", "wind")),
                    solar_mw=to_num(_first(last, "solarMW", "pvMW", "solar")),
                )

        logger.info("Using synthetic realtime conditions")
        return RealtimeConditions(
            timestamp=datetime.now(timezone.utc),
            system_demand_mw=46800,
            system_capacity_mw=61200,
            wind_mw=12800,
            solar_mw=5400,
        )

    async def get_load_forecast_72h(self) -> LoadForecast:
        rows = await self._rows_for(["load", "forecast"])
        mapped = []
        for row in rows:
            demand = to_num(_first(
                row, "demandMW", "forecastLoadMW", "loadForecastMW", "systemDemandMW", "value",
            ))
            if demand > 0:
                zone = str(_first(row, "weatherZone", "zone", "loadZone") or "")
                mapped.append((zone, DemandForecastPoint(timestamp=_row_time(row), demand_mw=demand)))

        now = datetime.now(timezone.utc)
        if mapped:
            austin = [p for zone, p in mapped if _AUSTIN_ZONE_RE.search(zone)]
            use = austin if len(austin) >= 40 else [p for _, p in mapped]
            return LoadForecast(fetched_at=now, points=use[:73])

        logger.info("Using synthetic 72h load forecast")
        points = []
        for i in range(73):
            d = ((i + now.hour) % 24) / 24
            demand = 46000 * (
                0.9
                + 0.17 * math.sin(math.pi * 2 * (d - 0.2))
                + 0.09 * math.exp(-((d - 0.78) ** 2) / (2 * 0.08 ** 2))
            )
            points.append(DemandForecastPoint(timestamp=now + timedelta(hours=i), demand_mw=max(26000, demand)))
        return LoadForecast(fetched_at=now, points=points)

    async def get_outages_72h(self, load_zone: str | None = None) -> OutageForecast:
        load_zone = load_zone or self.config.live_load_zone
        rows = await self._rows_for(["outage", "load", "zone"], {"loadZone": load_zone})
        points = []
        for row in rows:
            zone = str(_first(row, "loadZone", "zone") or "")
            if zone and zone.upper() != load_zone.upper():
                continue
            outaged = to_num(_first(row, "outagedMW", "outageMW", "capacityOutMW", "value"))
            if outaged >= 0:
                points.append(OutagePoint(timestamp=_row_time(row), outaged_mw=outaged))

        now = datetime.now(timezone.utc)
        if points:
            return OutageForecast(load_zone=load_zone, fetched_at=now, points=points[:73])

        logger.info("Using synthetic 72h outages for %s", load_zone)
        return OutageForecast(
            load_zone=load_zone,
            fetched_at=now,
            points=[
                OutagePoint(
                    timestamp=now + timedelta(hours=i),
                    outaged_mw=700 + 180 * math.sin(i / 24 * math.pi * 2),
                )
                for i in range(73)
            ],
        )

    async def get_settlement_prices(self, settlement_points: list[str] | None = None) -> SettlementPrices:
        settlement_points = settlement_points or [self.config.live_load_zone, self.config.live_hub]
        rows = await self._rows_for(["settlement", "price"])
        points = []
        for row in rows:
            sp = str(_first(row, "settlementPoint", "pointName", "hub") or "")
            price = to_num(_first(row, "price", "lmp", "spp", "value"), math.nan)
            if sp in settlement_points and math.isfinite(price):
                points.append(PricePoint(timestamp=_row_time(row), settlement_point=sp, price=price))

        now = datetime.now(timezone.utc)
        if points:
            return SettlementPrices(fetched_at=now, points=points)

        logger.info("Using synthetic settlement prices")
        return SettlementPrices(
            fetched_at=now,
            points=[
                PricePoint(
                    timestamp=now,
                    settlement_point=sp,
                    price=34.0 if sp == self.config.live_load_zone else 29.0,
                )
                for sp in settlement_points
            ],
        )

    async def fetch_live_bundle(self) -> LiveBundle:
        """Gather the four series concurrently; a failing source is recorded, not raised."""
        load_zone = self.config.live_load_zone
        results = await asyncio.gather(
            self.get_realtime_conditions(),
            self.get_load_forecast_72h(),
            self.get_outages_72h(load_zone),
            self.get_settlement_prices([load_zone, self.config.live_hub]),
            return_exceptions=True,
        )

        bundle = LiveBundle(
            fetched_at=datetime.now(timezone.utc),
            load_zone=load_zone,
            hub=self.config.live_hub,
        )
        errors = []
        fields = ("realtime", "forecast_72h", "outages_72h", "prices")
        updates = {}
        for name, result in zip(fields, results):
            if isinstance(result, BaseException):
                logger.warning("ERCOT %s fetch failed: %s", name, result)
                errors.append(f"{name}: {result}")
            else:
                updates[name] = result

        return bundle.model_copy(update={**updates, "ok": not errors, "errors": errors})

    async def fetch_basic_snapshot(self) -> BasicSnapshot:
        """Latest system demand / wind / solar reading; flagged ok=False on fallback."""
        fallback = BasicSnapshot(ok=False, timestamp=datetime.now(timezone.utc), **FALLBACK_BASIC)
        if not self.config.ercot_subscription_key:
            return fallback

        headers = {
            "Accept": "application/json",
            "Ocp-Apim-Subscription-Key": self.config.ercot_subscription_key,
        }
        if self.config.ercot_bearer_token:
            headers["Authorization"] = f"Bearer {self.config.ercot_bearer_token}"

        payload: Any = None
        try:
            async with httpx.AsyncClient(headers=headers, timeout=self.config.ercot_timeout_seconds) as client:
                for path in _BASIC_PATHS:
                    resp = await client.get(f"{self.config.ercot_api_base_url}{path}")
                    if resp.status_code < 400:
                        payload = resp.json()
                        break
        except Exception as e:
            logger.warning("ERCOT basic snapshot fetch failed: %s", e)
            return fallback

        rows = _as_rows(payload)
        row = rows[-1] if rows else payload if isinstance(payload, dict) else None
        if not row:
            return fallback

        nan = math.nan
        demand = _nonzero(
            to_num(row.get("systemDemandMW"), nan),
            to_num(row.get("demandMW"), nan),
            to_num(row.get("totalLoadMW"), nan),
            to_num(row.get("loadMW"), nan),
        )
        if not math.isfinite(demand):
            return fallback

        wind = _nonzero(
            to_num(row.get("windMW"), nan),
            to_num(row.get("windGenerationMW"), nan),
            to_num(row.get("wind"), nan),
        )
        solar = _nonzero(
            to_num(row.get("solarMW"), nan),
            to_num(row.get("pvMW"), nan),
            to_num(row.get("solarGenerationMW"), nan),
        )
        wind = wind if math.isfinite(wind) else 0.0
        solar = solar if math.isfinite(solar) else 0.0

        return BasicSnapshot(
            ok=True,
            timestamp=_parse_datetime(_first(row, "timestampISO", "timestamp", "deliveryDate", "datetime")),
            system_demand_mw=demand,
            wind_mw=wind,
            solar_mw=solar,
            renewables_share=(wind + solar) / max(1.0, demand),
        )
