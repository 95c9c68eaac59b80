from pydantic import BaseModel, Field

from gridtwin.city.districts import DistrictId


class CityParams(BaseModel):
    model_config = {"frozen": True}

    ev_adoption_delta: float = 0.0
    solar_delta: float = 0.0
    storage_mwh: float = Field(default=0.0, ge=0.0)  # city-wide pooled storage
    budget_m: float = Field(default=5.0, ge=0.0)
    microgrid_enabled: bool = False
    demand_response_enabled: bool = False
    heatwave_enabled: bool = False
    storm_enabled: bool = False
    event_enabled: bool = False
    critical_priority_enabled: bool = False


class DistrictOverride(BaseModel):
    model_config = {"frozen": True}

    storage_mwh: float = Field(default=0.0, ge=0.0, le=5.0)
    cap_boost_mw: float = 0.0
    solar_boost: float = Field(default=0.0, ge=0.0, le=0.35)
    dr_enabled: bool = False

    def is_empty(self) -> bool:
        return (
            self.storage_mwh == 0
            and self.cap_boost_mw == 0
            and self.solar_boost == 0
            and not self.dr_enabled
        )


_NO_OVERRIDE = DistrictOverride()


class DistrictOverrides(BaseModel):
    """Per-district interventions. Districts without an entry carry no intervention."""

    model_config = {"frozen": True}

    districts: dict[DistrictId, DistrictOverride] = {}

    def get(self, district_id: DistrictId) -> DistrictOverride:
        return self.districts.get(district_id, _NO_OVERRIDE)

    def with_override(self, district_id: DistrictId, override: DistrictOverride) -> "DistrictOverrides":
        districts = dict(self.districts)
        districts[district_id] = override
        return DistrictOverrides(districts=districts)

    def copy_overrides(self) -> "DistrictOverrides":
        return DistrictOverrides(districts={
            did: DistrictOverride(
                storage_mwh=o.storage_mwh,
                cap_boost_mw=o.cap_boost_mw,
                solar_boost=o.solar_boost,
                dr_enabled=o.dr_enabled,
            )
            for did, o in self.districts.items()
        })


def empty_overrides() -> DistrictOverrides:
    return DistrictOverrides(districts={did: DistrictOverride() for did in DistrictId})
