"""
Configuration constants and engine settings for MetS classification.
"""

from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

# Packaged reference data
REFERENCE_PACKAGE = "obmetrics.data"
REFERENCE_FILES = {
    "cole": "cole_cutoffs.csv",
    "height_lms": "height_lms.csv",
    "bp_coefficients": "bp_coefficients.csv",
    "wc_percentiles": "wc_percentiles.csv",
    "stavnsbo_lms": "stavnsbo_lms.csv",
    "idefics": "idefics_percentiles.csv",
}

# Subject record columns (ObMetrics input template)
RECORD_FIELDS = [
    "id",
    "decimal_age",
    "sex",
    "height_m",
    "weight_kg",
    "wc_cm",
    "dbp_mmHg",
    "sbp_mmHg",
    "tg_mg_dl",
    "hdl_mg_dl",
    "glucose_mg_dl",
    "insulin_microU_ml",
    "tanner_index",
]

MALE = 0
FEMALE = 1
SEX_CODES = (MALE, FEMALE)

PREPUBERTAL = "prepubertal"
PUBERTAL = "pubertal"

# Labels
NORMAL = "Normal"
ALTERED = "Altered"
YES = "Yes"
NO = "No"

NORMAL_WEIGHT = "Normal weight"
OVERWEIGHT = "Overweight"
OBESE = "Obese"
COLE_CATEGORIES = [NORMAL_WEIGHT, OVERWEIGHT, OBESE]

# Component names (also used as output column names)
OBESITY = "Obesity"
BLOOD_PRESSURE = "Blood_pressure"
TRIGLYCERIDES = "Triglycerides"
HDL = "HDL"
GLUCOSE_HOMEOSTASIS = "Glucose_homeostasis"
INSULIN_RESISTANCE = "Insulin_resistance"

# Derived measure and output columns
BMI_COL = "BMI"
HOMA_COL = "HOMA_IR"
COLE_COL = "Obesity_Cole"
VERDICT_COL = "Metabolic_Syndrome"

ZSCORE_COLUMNS = [
    "Height_zscore",
    "WC_zscore",
    "SBP_zscore",
    "DBP_zscore",
    "TAG_zscore",
    "HDL_zscore",
    "Glucose_zscore",
    "HOMA_zscore",
]

# HOMA-IR denominator for glucose in mg/dL
HOMA_DENOMINATOR = 405.0

# Fourth Report regression is centred on 10 years
BP_REFERENCE_AGE = 10.0


class MissingPolicy(str, Enum):
    """How a verdict is reached when some counted components are missing."""

    RESOLVABLE = "resolvable"
    STRICT = "strict"


class EngineConfig(BaseModel):
    """
    Settings for the MetS rule engine.

    Attributes:
        missing_policy: ``resolvable`` returns Yes/No whenever the outcome is
            already decided by the evaluable components; ``strict`` returns a
            missing verdict as soon as any counted component is missing.
        classify_monitoring_bands: Whether age bands flagged as monitoring-only
            (IDF 6 to <10 years) still produce a Yes/No verdict.
        puberty_onset_age: Age (years) per sex code from which a record without
            a Tanner stage is treated as pubertal. Stored read-only.
        reference_dir: Directory holding replacement reference CSVs. None uses
            the packaged tables.
    """

    model_config = ConfigDict(frozen=True, validate_default=True)

    missing_policy: MissingPolicy = MissingPolicy.RESOLVABLE
    classify_monitoring_bands: bool = True
    puberty_onset_age: Mapping[int, float] = {MALE: 11.0, FEMALE: 10.0}
    reference_dir: Optional[Path] = None

    @field_validator("puberty_onset_age")
    @classmethod
    def validate_onset_ages(cls, v: Mapping[int, float]) -> Mapping[int, float]:
        """Both sex codes need a positive onset age."""
        if set(v) != set(SEX_CODES):
            raise ValueError("puberty_onset_age must define both sex codes 0 and 1")
        if any(age <= 0 for age in v.values()):
            raise ValueError("puberty_onset_age values must be positive")
        return MappingProxyType(dict(v))

    @field_validator("reference_dir")
    @classmethod
    def validate_reference_dir(cls, v: Optional[Path]) -> Optional[Path]:
        if v is not None and not Path(v).is_dir():
            raise ValueError(f"Reference directory '{v}' does not exist")
        return v


DEFAULT_CONFIG = EngineConfig()


def build_config(**overrides: Any) -> EngineConfig:
    """Create an EngineConfig, re-raising validation problems as ValueError."""
    try:
        return EngineConfig(**overrides)
    except ValidationError as e:
        raise ValueError(f"Invalid configuration: {e}") from e
