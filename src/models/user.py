"""
User profiles and the explicit patch models allowed to modify them
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import Field

from config.ev_config import DEFAULT_USER_PROFILE
from src.models.trip import WireModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class VehicleConfig(WireModel):
    variant_id: str = DEFAULT_USER_PROFILE['vehicle_config']['variant_id']
    battery_health: float = Field(DEFAULT_USER_PROFILE['vehicle_config']['battery_health'], gt=0, le=100)
    manufacturing_year: int = Field(default_factory=lambda: utc_now().year)
    odometer: float = Field(DEFAULT_USER_PROFILE['vehicle_config']['odometer'], ge=0)
    default_regen_level: int = Field(DEFAULT_USER_PROFILE['vehicle_config']['default_regen_level'], ge=0, le=3)
    default_tire_pressure: float = Field(DEFAULT_USER_PROFILE['vehicle_config']['default_tire_pressure'], ge=15, le=60)
    default_payload: float = Field(DEFAULT_USER_PROFILE['vehicle_config']['default_payload'], ge=0, le=600)


class UserPreferences(WireModel):
    units: Literal['metric', 'imperial'] = 'metric'
    temperature_unit: Literal['celsius', 'fahrenheit'] = 'celsius'
    share_anonymous_data: bool = DEFAULT_USER_PROFILE['preferences']['share_anonymous_data']
    offline_maps_enabled: bool = False
    preferred_region: str = DEFAULT_USER_PROFILE['preferences']['preferred_region']
    notifications_enabled: bool = False


class UserProfile(WireModel):
    user_id: str = Field(min_length=1)
    email: Optional[str] = None
    display_name: Optional[str] = None
    vehicle_config: VehicleConfig = Field(default_factory=VehicleConfig)
    preferences: UserPreferences = Field(default_factory=UserPreferences)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def id(self) -> str:
        return self.user_id


class VehicleConfigPatch(WireModel):
    model_config = WireModel.model_config | {'extra': 'forbid'}

    variant_id: Optional[str] = None
    battery_health: Optional[float] = Field(None, gt=0, le=100)
    manufacturing_year: Optional[int] = None
    odometer: Optional[float] = Field(None, ge=0)
    default_regen_level: Optional[int] = Field(None, ge=0, le=3)
    default_tire_pressure: Optional[float] = Field(None, ge=15, le=60)
    default_payload: Optional[float] = Field(None, ge=0, le=600)


class PreferencesPatch(WireModel):
    model_config = WireModel.model_config | {'extra': 'forbid'}

    units: Optional[Literal['metric', 'imperial']] = None
    temperature_unit: Optional[Literal['celsius', 'fahrenheit']] = None
    share_anonymous_data: Optional[bool] = None
    offline_maps_enabled: Optional[bool] = None
    preferred_region: Optional[str] = None
    notifications_enabled: Optional[bool] = None


class ProfilePatch(WireModel):
    model_config = WireModel.model_config | {'extra': 'forbid'}

    email: Optional[str] = None
    display_name: Optional[str] = None
