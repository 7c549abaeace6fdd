"""
Z-Score Calculation for MetS Components

Vectorized functions converting raw measurements into age- and sex-specific
z-scores. Height uses the CDC height-for-age LMS curves, blood pressure the
NHBPEP Fourth Report regression (age and height adjusted), and waist
circumference, triglycerides, HDL-C, glucose and HOMA-IR use Stavnsbo-style
LMS references. Reference parameters come from the nearest tabulated age.
"""

from typing import Dict, Optional, Tuple
import logging

import numpy as np
from numba import jit
from scipy import stats

from .config import BP_REFERENCE_AGE, ZSCORE_COLUMNS
from .derived import homa_ir_array
from .records import RecordLike, as_record
from .references import ReferenceStore, ReferenceTable, default_store

# Constants
L_ZERO_THRESHOLD = 1e-6
BP_AGE_RANGE = (1.0, 18.0)

# Output column -> (Stavnsbo component, input argument)
STAVNSBO_OUTPUTS = {
    "WC_zscore": ("wc", "wc_cm"),
    "TAG_zscore": ("tg", "tg_mg_dl"),
    "HDL_zscore": ("hdl", "hdl_mg_dl"),
    "Glucose_zscore": ("glucose", "glucose_mg_dl"),
    "HOMA_zscore": ("homa", "homa_ir"),
}


@jit(nopython=True, cache=True)
def lms_zscore(
    X: np.ndarray, L: np.ndarray, M: np.ndarray, S: np.ndarray
) -> np.ndarray:
    """
    Calculate LMS z-scores (Cole 1990).

    For L ≠ 0: z = ((X/M)^L - 1) / (L * S)
    For L ≈ 0: z = ln(X/M) / S

    Args:
        X: Observed values (1-D float64)
        L: Box-Cox power at the subject's age/sex
        M: Median at the subject's age/sex
        S: Coefficient of variation at the subject's age/sex

    Returns:
        Z-scores, NaN where any parameter or observation is missing or X <= 0
    """
    z = np.full(X.shape, np.nan)
    if X.size == 0:
        return z

    valid = np.isfinite(X) & np.isfinite(L) & np.isfinite(M) & (S > 0) & (X > 0) & (M > 0)
    mask_l_zero = valid & (np.abs(L) < L_ZERO_THRESHOLD)
    mask_l_nonzero = valid & (np.abs(L) >= L_ZERO_THRESHOLD)

    if np.any(mask_l_zero):
        z[mask_l_zero] = np.log(X[mask_l_zero] / M[mask_l_zero]) / S[mask_l_zero]

    if np.any(mask_l_nonzero):
        numerator = (X[mask_l_nonzero] / M[mask_l_nonzero]) ** L[mask_l_nonzero] - 1
        denominator = L[mask_l_nonzero] * S[mask_l_nonzero]
        z[mask_l_nonzero] = numerator / denominator

    return z


def percentile_to_zscore(percentile: float) -> float:
    """Standard normal quantile for a percentile in (0, 100)."""
    if not 0 < percentile < 100:
        raise ValueError("Percentile must be between 0 and 100 (exclusive)")
    return float(stats.norm.ppf(percentile / 100.0))


def zscore_to_percentile(z: np.ndarray) -> np.ndarray:
    """Percentile (0-100) of each z-score under the standard normal."""
    return stats.norm.cdf(np.asarray(z, dtype=np.float64)) * 100.0


def _as_float_array(values: Optional[np.ndarray], n: int) -> np.ndarray:
    if values is None:
        return np.full(n, np.nan, dtype=np.float64)
    return np.ascontiguousarray(values, dtype=np.float64)


def _outside_age_range(ages: np.ndarray, age_range: Tuple[float, float]) -> np.ndarray:
    """Ages below the first tabulated year or past the last tabulated year."""
    low, high = age_range
    with np.errstate(invalid="ignore"):
        return (ages < low) | (ages >= high + 1.0)


def _log_unit_warnings(ages: np.ndarray, height_m: Optional[np.ndarray]) -> None:
    """Log warnings for potential unit mismatches."""
    if height_m is not None and np.any(np.isfinite(height_m)):
        if np.nanmean(height_m) > 3:
            logging.warning(
                "Height values have mean >3 - heights should be in metres, values suggest cm"
            )
    if np.any(np.isfinite(ages)) and np.nanmax(ages) > 25 and np.nanmean(ages) > 20:
        logging.warning(
            "Age values suggest months instead of decimal years (distribution test)"
        )


def _lms_table_zscore(
    table: ReferenceTable, values: np.ndarray, ages: np.ndarray, sexes: np.ndarray
) -> np.ndarray:
    """LMS z-score against the nearest-age row of ``table``."""
    params = table.lookup_many(ages, sexes, ["L", "M", "S"])
    z = lms_zscore(
        np.ascontiguousarray(values, dtype=np.float64),
        params["L"],
        params["M"],
        params["S"],
    )
    out_of_range = _outside_age_range(ages, table.age_range)
    if np.any(out_of_range & np.isfinite(values)):
        logging.warning(
            f"Ages outside {table.name} reference range {table.age_range} - "
            "setting z-scores to NaN for these entries"
        )
    z[out_of_range] = np.nan
    return z


def height_zscore(
    height_m: np.ndarray, ages: np.ndarray, sexes: np.ndarray, store: ReferenceStore
) -> np.ndarray:
    """Height-for-age z-score from the CDC LMS curves (height in metres)."""
    height_cm = np.asarray(height_m, dtype=np.float64) * 100.0
    return _lms_table_zscore(store.table("height_lms"), height_cm, ages, sexes)


def expected_blood_pressure(
    ages: np.ndarray,
    sexes: np.ndarray,
    height_z: np.ndarray,
    store: ReferenceStore,
    measure: str,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Expected BP and its SD from the Fourth Report regression.

    mu = alpha + sum_j beta_j (age - 10)^j + sum_k gamma_k Zht^k, j, k = 1..4

    Returns:
        Tuple of (mu, sigma) arrays, NaN where age, sex or Zht is missing
    """
    ages = np.asarray(ages, dtype=np.float64)
    sexes = np.asarray(sexes, dtype=np.float64)
    height_z = np.asarray(height_z, dtype=np.float64)
    mu = np.full(ages.shape, np.nan, dtype=np.float64)
    sigma = np.full(ages.shape, np.nan, dtype=np.float64)

    for sex in (0, 1):
        mask = (sexes == sex) & np.isfinite(ages) & np.isfinite(height_z)
        if not np.any(mask):
            continue
        coefs = store.bp_coefficients(sex, measure)
        alpha, betas, gammas, sd = coefs[0], coefs[1:5], coefs[5:9], coefs[9]
        y = ages[mask] - BP_REFERENCE_AGE
        zht = height_z[mask]
        value = np.full(y.shape, alpha)
        for power in range(1, 5):
            value += betas[power - 1] * y**power + gammas[power - 1] * zht**power
        mu[mask] = value
        sigma[mask] = sd
    return mu, sigma


def bp_zscore(
    bp_mmHg: np.ndarray,
    ages: np.ndarray,
    sexes: np.ndarray,
    height_z: np.ndarray,
    store: ReferenceStore,
    measure: str,
) -> np.ndarray:
    """
    Blood pressure z-score adjusted for age, sex and height.

    Args:
        bp_mmHg: Systolic or diastolic pressure
        measure: 'sbp' or 'dbp'
    """
    if measure not in ("sbp", "dbp"):
        raise ValueError("Blood pressure measure must be 'sbp' or 'dbp'")
    bp_mmHg = np.asarray(bp_mmHg, dtype=np.float64)
    mu, sigma = expected_blood_pressure(ages, sexes, height_z, store, measure)
    z = (bp_mmHg - mu) / sigma
    z[_outside_age_range(np.asarray(ages, dtype=np.float64), BP_AGE_RANGE)] = np.nan
    return z


def stavnsbo_zscore(
    component: str,
    values: np.ndarray,
    ages: np.ndarray,
    sexes: np.ndarray,
    store: ReferenceStore,
) -> np.ndarray:
    """
    LMS z-score for a metabolic marker ('wc', 'tg', 'hdl', 'glucose', 'homa').

    HDL keeps its natural direction: low HDL gives a negative z-score even
    though low HDL is the adverse finding.
    """
    return _lms_table_zscore(
        store.table(f"stavnsbo_{component}"),
        np.asarray(values, dtype=np.float64),
        ages,
        sexes,
    )


def compute_zscores(
    ages: np.ndarray,
    sexes: np.ndarray,
    height_m: Optional[np.ndarray] = None,
    wc_cm: Optional[np.ndarray] = None,
    sbp_mmHg: Optional[np.ndarray] = None,
    dbp_mmHg: Optional[np.ndarray] = None,
    tg_mg_dl: Optional[np.ndarray] = None,
    hdl_mg_dl: Optional[np.ndarray] = None,
    glucose_mg_dl: Optional[np.ndarray] = None,
    insulin_microU_ml: Optional[np.ndarray] = None,
    store: Optional[ReferenceStore] = None,
) -> Dict[str, np.ndarray]:
    """
    Calculate every component z-score for a batch of subjects.

    Missing inputs (None arrays or NaN entries) give NaN z-scores for the
    affected components only.

    Args:
        ages: Decimal ages in years
        sexes: Sex codes (0 male, 1 female), NaN for missing
        store: Reference tables; the packaged tables when None

    Returns:
        Dict keyed by the z-score column names
    """
    ages = np.ascontiguousarray(ages, dtype=np.float64)
    sexes = np.ascontiguousarray(sexes, dtype=np.float64)
    n = len(ages)
    if n == 0:
        return {column: np.array([], dtype=np.float64) for column in ZSCORE_COLUMNS}
    if len(sexes) != n:
        raise ValueError("Age and sex arrays must have the same length")
    if store is None:
        store = default_store()

    height_m = _as_float_array(height_m, n)
    _log_unit_warnings(ages, height_m)

    inputs = {
        "wc_cm": _as_float_array(wc_cm, n),
        "tg_mg_dl": _as_float_array(tg_mg_dl, n),
        "hdl_mg_dl": _as_float_array(hdl_mg_dl, n),
        "glucose_mg_dl": _as_float_array(glucose_mg_dl, n),
    }
    inputs["homa_ir"] = homa_ir_array(
        inputs["glucose_mg_dl"], _as_float_array(insulin_microU_ml, n)
    )

    result = {}
    height_z = height_zscore(height_m, ages, sexes, store)
    result["Height_zscore"] = height_z
    result["SBP_zscore"] = bp_zscore(
        _as_float_array(sbp_mmHg, n), ages, sexes, height_z, store, "sbp"
    )
    result["DBP_zscore"] = bp_zscore(
        _as_float_array(dbp_mmHg, n), ages, sexes, height_z, store, "dbp"
    )
    for column, (component, argument) in STAVNSBO_OUTPUTS.items():
        result[column] = stavnsbo_zscore(
            component, inputs[argument], ages, sexes, store
        )

    return {column: result[column] for column in ZSCORE_COLUMNS}


def zscores(
    record: RecordLike, store: Optional[ReferenceStore] = None
) -> Dict[str, Optional[float]]:
    """
    Z-scores for a single subject record.

    Returns:
        Dict with Height, WC, SBP, DBP, TAG, HDL, Glucose and HOMA z-scores;
        None where the score cannot be computed
    """
    record = as_record(record)

    def arr(value: Optional[float]) -> np.ndarray:
        return np.array([np.nan if value is None else value], dtype=np.float64)

    result = compute_zscores(
        ages=arr(record.decimal_age),
        sexes=arr(record.sex),
        height_m=arr(record.height_m),
        wc_cm=arr(record.wc_cm),
        sbp_mmHg=arr(record.sbp_mmHg),
        dbp_mmHg=arr(record.dbp_mmHg),
        tg_mg_dl=arr(record.tg_mg_dl),
        hdl_mg_dl=arr(record.hdl_mg_dl),
        glucose_mg_dl=arr(record.glucose_mg_dl),
        insulin_microU_ml=arr(record.insulin_microU_ml),
        store=store,
    )
    return {
        column: (None if np.isnan(values[0]) else float(values[0]))
        for column, values in result.items()
    }
