from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Dict, Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, conint, confloat, field_validator

load_dotenv()

DEFAULT_OVERRIDES_PATH = Path("config/runtime_overrides.yaml")


def overrides_path() -> Path:
    return Path(os.getenv("EV_RANGE_OVERRIDES", str(DEFAULT_OVERRIDES_PATH)))


class PhysicsConfigSchema(BaseModel):
    # Scalars of PHYSICS_CONSTANTS that may be tuned at runtime
    gravity: confloat(ge=9.0, le=10.0) = 9.81
    auxiliary_power: confloat(ge=0.0, le=1.0) = 0.15
    default_ambient_temp: confloat(ge=-40.0, le=60.0) = 25.0
    default_avg_speed_kmh: confloat(gt=0.0, le=150.0) = 50.0

    reference_payload_kg: confloat(ge=0.0, le=600.0) = 150.0
    payload_surcharge_per_10kg: confloat(ge=0.0, le=0.05) = 0.005
    reference_tire_pressure_psi: confloat(ge=15.0, le=60.0) = 35.0
    tire_surcharge_per_psi: confloat(ge=0.0, le=0.05) = 0.01

    headwind_share: confloat(ge=0.0, le=1.0) = 0.5
    headwind_threshold_kmh: confloat(ge=0.0, le=100.0) = 10.0
    headwind_factor: confloat(ge=0.0, le=0.5) = 0.08

    hvac_assumed_ambient: confloat(ge=-20.0, le=50.0) = 28.0
    traffic_level_wh_per_km: confloat(ge=0.0, le=50.0) = 10.0
    safety_buffer_soc: confloat(ge=0.0, le=50.0) = 5.0


class PredictionPolicySchema(BaseModel):
    crowd_confidence_threshold: confloat(ge=0.0, le=1.0) = 0.5
    model_only_confidence: confloat(ge=0.0, le=1.0) = 0.3
    crowd_blend_weight: confloat(ge=0.0, le=1.0) = 0.7
    crowd_blend_floor: confloat(ge=0.0, le=1.0) = 0.3
    no_crowd_confidence: confloat(ge=0.0, le=1.0) = 0.4
    geohash_precision: conint(ge=1, le=12) = 6
    crowd_query_timeout_s: confloat(gt=0.0, le=60.0) = 2.0
    range_profile_points: conint(ge=2, le=200) = 20
    io_workers: conint(ge=1, le=64) = 4

    @field_validator('crowd_blend_floor')
    @classmethod
    def blend_stays_within_unit_interval(cls, v, info):
        weight = info.data.get('crowd_blend_weight', 0.7)
        if weight + v > 1.0:
            raise ValueError(f"crowd_blend_weight + crowd_blend_floor must not exceed 1.0 ({weight} + {v})")
        return v


class CrowdConfigSchema(BaseModel):
    max_update_retries: conint(ge=1, le=50) = 5
    retry_backoff_base_s: confloat(ge=0.0, le=5.0) = 0.005
    retry_backoff_max_s: confloat(ge=0.0, le=30.0) = 0.2
    retry_jitter: confloat(ge=0.0, le=1.0) = 0.5


class StoreConfigSchema(BaseModel):
    backend: str = Field("memory", pattern="^(memory|file)$")
    file_path: str = "data/store/ev_range_store.pkl.gz"
    lock_stripes: conint(ge=1, le=4096) = 64


class RuntimeOverrides(BaseModel):
    physics: PhysicsConfigSchema = PhysicsConfigSchema()
    prediction: PredictionPolicySchema = PredictionPolicySchema()
    crowd: CrowdConfigSchema = CrowdConfigSchema()
    store: StoreConfigSchema = StoreConfigSchema()


def load_overrides(path: Optional[Path] = None) -> RuntimeOverrides:
    path = Path(path) if path else overrides_path()
    if path.exists():
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        return RuntimeOverrides(**data)
    return RuntimeOverrides()


def save_overrides(overrides: RuntimeOverrides, path: Optional[Path] = None) -> None:
    path = Path(path) if path else overrides_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(overrides.model_dump(), sort_keys=False), encoding="utf-8")


def merged_runtime_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Python config defaults with the validated YAML overrides applied"""
    from config.ev_config import (
        PHYSICS_CONSTANTS,
        PREDICTION_POLICY,
        CROWD_CONFIG,
        STORE_CONFIG,
    )

    overrides = load_overrides(path)

    return {
        "physics": {**PHYSICS_CONSTANTS, **overrides.physics.model_dump()},
        "prediction": {**PREDICTION_POLICY, **overrides.prediction.model_dump()},
        "crowd": {**CROWD_CONFIG, **overrides.crowd.model_dump()},
        "store": {**STORE_CONFIG, **overrides.store.model_dump()},
    }
