"""
Subject record model.

Every field is optional. NaN, None and absent keys all become None so that
missing inputs propagate to missing outputs instead of raising.
"""

from typing import Any, Mapping, Optional, Union
import logging
import math

from pydantic import BaseModel, ConfigDict, field_validator

from .config import PREPUBERTAL, PUBERTAL, SEX_CODES


def _clean(value: Any) -> Any:
    """None for missing values, plain Python scalars otherwise."""
    if value is None:
        return None
    # numpy scalars from DataFrame rows
    if hasattr(value, "item") and not isinstance(value, str):
        value = value.item()
    if isinstance(value, str) and not value.strip():
        return None
    try:
        if math.isnan(value):
            return None
    except TypeError:
        pass
    return value


def _integer_code(value: Any) -> Optional[int]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not number.is_integer():
        return None
    return int(number)


class SubjectRecord(BaseModel):
    """One participant visit in the ObMetrics input template."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: Optional[Union[int, str]] = None
    decimal_age: Optional[float] = None
    sex: Optional[int] = None
    height_m: Optional[float] = None
    weight_kg: Optional[float] = None
    wc_cm: Optional[float] = None
    dbp_mmHg: Optional[float] = None
    sbp_mmHg: Optional[float] = None
    tg_mg_dl: Optional[float] = None
    hdl_mg_dl: Optional[float] = None
    glucose_mg_dl: Optional[float] = None
    insulin_microU_ml: Optional[float] = None
    tanner_index: Optional[int] = None

    @field_validator("*", mode="before")
    @classmethod
    def nan_to_none(cls, v: Any) -> Any:
        return _clean(v)

    @field_validator("sex", mode="before")
    @classmethod
    def validate_sex(cls, v: Any) -> Optional[int]:
        v = _clean(v)
        if v is None:
            return None
        code = _integer_code(v)
        if code not in SEX_CODES:
            logging.warning(f"Unknown sex code {v!r} - treating as missing")
            return None
        return code

    @field_validator("tanner_index", mode="before")
    @classmethod
    def validate_tanner(cls, v: Any) -> Optional[int]:
        v = _clean(v)
        if v is None:
            return None
        stage = _integer_code(v)
        if stage is None or not 1 <= stage <= 5:
            logging.warning(f"Tanner stage {v!r} outside 1-5 - treating as missing")
            return None
        return stage

    @field_validator("decimal_age")
    @classmethod
    def validate_age(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v < 0:
            logging.warning(f"Negative age {v} - treating as missing")
            return None
        return v

    def missing_fields(self, fields: Any) -> set:
        """Subset of ``fields`` that are None on this record."""
        return {f for f in fields if getattr(self, f, None) is None}

    def puberty_stage(self, onset_age: Mapping[int, float]) -> Optional[str]:
        """
        Prepubertal/pubertal label.

        Tanner 1 is prepubertal and 2-5 pubertal. Without a Tanner stage the
        label is inferred from age against the sex-specific onset age.
        """
        if self.tanner_index is not None:
            return PREPUBERTAL if self.tanner_index == 1 else PUBERTAL
        if self.decimal_age is None or self.sex is None:
            return None
        return PUBERTAL if self.decimal_age >= onset_age[self.sex] else PREPUBERTAL


RecordLike = Union[SubjectRecord, Mapping[str, Any]]


def as_record(record: RecordLike) -> SubjectRecord:
    """Coerce a mapping (dict, pandas row) into a SubjectRecord."""
    if isinstance(record, SubjectRecord):
        return record
    if hasattr(record, "to_dict"):
        record = record.to_dict()
    return SubjectRecord.model_validate(dict(record))
