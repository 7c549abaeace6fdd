"""
Reference Table Store and nearest-age matching.

Reference tables are age-indexed cutoffs and distribution parameters
(Cole BMI cutoffs, CDC height LMS, Stavnsbo-style LMS for metabolic markers,
IDEFICS percentiles, waist circumference percentiles) plus the NHBPEP Fourth
Report blood pressure regression coefficients. They are read once, validated,
sorted by age within each sex (and puberty stage) partition and never
modified afterwards.
"""

from typing import Dict, Iterable, List, Optional, Tuple
import functools
import logging
from importlib import resources
from pathlib import Path

import numpy as np
import pandas as pd

from .config import (
    PREPUBERTAL,
    PUBERTAL,
    REFERENCE_FILES,
    REFERENCE_PACKAGE,
    SEX_CODES,
)
from .errors import ReferenceTableError

STAVNSBO_COMPONENTS = ["wc", "tg", "hdl", "glucose", "homa"]

# Value columns each packaged table must provide
REQUIRED_COLUMNS = {
    "cole": ["overweight", "obese"],
    "height_lms": ["L", "M", "S"],
    "wc_percentiles": ["p90"],
    "stavnsbo_lms": ["component", "L", "M", "S"],
    "idefics": [
        "stage",
        "wc_p90",
        "wc_p95",
        "tg_p90",
        "tg_p95",
        "hdl_p10",
        "hdl_p5",
        "glucose_p90",
        "glucose_p95",
        "homa_p90",
        "homa_p95",
    ],
}

BP_COEFFICIENT_COLUMNS = [
    "alpha",
    "beta1",
    "beta2",
    "beta3",
    "beta4",
    "gamma1",
    "gamma2",
    "gamma3",
    "gamma4",
    "sigma",
]

PartitionKey = Tuple[int, Optional[str]]


def nearest_age_index(ref_ages: np.ndarray, ages: np.ndarray) -> np.ndarray:
    """
    Index of the closest tabulated age for each requested age.

    Binary search on a sorted age column. Equidistant ages may resolve to
    either neighbour. NaN ages map to -1.

    Args:
        ref_ages: Sorted, non-empty reference ages
        ages: Ages to match

    Returns:
        Integer index array with the same shape as ``ages``
    """
    ages = np.asarray(ages, dtype=np.float64)
    out = np.full(ages.shape, -1, dtype=np.int64)
    if ref_ages.size == 0:
        return out
    valid = np.isfinite(ages)
    if not np.any(valid):
        return out

    right = np.searchsorted(ref_ages, ages[valid], side="left")
    right = np.clip(right, 0, ref_ages.size - 1)
    left = np.clip(right - 1, 0, ref_ages.size - 1)
    closer_left = np.abs(ages[valid] - ref_ages[left]) <= np.abs(
        ref_ages[right] - ages[valid]
    )
    out[valid] = np.where(closer_left, left, right)
    return out


class ReferenceTable:
    """
    Immutable age-indexed reference table split by sex (and optionally stage).

    Attributes:
        name: Table identifier used in error messages
        staged: Whether rows are further split into prepubertal/pubertal
        columns: Value columns available for lookup
    """

    def __init__(self, name: str, frame: pd.DataFrame, staged: bool = False) -> None:
        self.name = name
        self.staged = staged
        _validate_frame(name, frame, staged)

        frame = frame.copy()
        frame["age"] = frame["age"].astype(np.float64)
        frame["sex"] = frame["sex"].astype(np.int64)
        self.columns: List[str] = [
            c for c in frame.columns if c not in ("age", "sex", "stage")
        ]

        self._partitions: Dict[PartitionKey, Tuple[np.ndarray, pd.DataFrame]] = {}
        group_cols = ["sex", "stage"] if staged else ["sex"]
        for key, part in frame.groupby(group_cols, sort=True):
            if not isinstance(key, tuple):
                key = (key,)
            sex = int(key[0])
            stage = str(key[1]) if staged else None
            part = part.sort_values("age", kind="mergesort").reset_index(drop=True)
            ages = part["age"].to_numpy(dtype=np.float64)
            ages.setflags(write=False)
            self._partitions[(sex, stage)] = (ages, part)

    def __repr__(self) -> str:
        return f"ReferenceTable(name={self.name!r}, partitions={len(self._partitions)})"

    @property
    def age_range(self) -> Tuple[float, float]:
        """Youngest and oldest tabulated ages across all partitions."""
        lows = [ages[0] for ages, _ in self._partitions.values()]
        highs = [ages[-1] for ages, _ in self._partitions.values()]
        return float(min(lows)), float(max(highs))

    def _partition(
        self, sex: Optional[int], stage: Optional[str]
    ) -> Optional[Tuple[np.ndarray, pd.DataFrame]]:
        if sex is None:
            return None
        if self.staged and stage is None:
            return None
        return self._partitions.get((int(sex), stage if self.staged else None))

    def lookup(
        self, age: Optional[float], sex: Optional[int], stage: Optional[str] = None
    ) -> Optional[pd.Series]:
        """
        Return the row whose tabulated age is closest to ``age``.

        Returns None when age or sex is missing, or when the table has no
        rows for the requested sex/stage.
        """
        if age is None or pd.isna(age):
            return None
        partition = self._partition(sex, stage)
        if partition is None:
            return None
        ages, rows = partition
        idx = nearest_age_index(ages, np.array([age], dtype=np.float64))[0]
        if idx < 0:
            return None
        return rows.iloc[idx]

    def value(
        self,
        column: str,
        age: Optional[float],
        sex: Optional[int],
        stage: Optional[str] = None,
    ) -> Optional[float]:
        """Single value from the nearest-age row, or None."""
        if column not in self.columns:
            raise KeyError(f"Column '{column}' not in reference table '{self.name}'")
        row = self.lookup(age, sex, stage)
        if row is None or pd.isna(row[column]):
            return None
        return float(row[column])

    def lookup_many(
        self,
        ages: np.ndarray,
        sexes: np.ndarray,
        columns: Iterable[str],
        stages: Optional[np.ndarray] = None,
    ) -> Dict[str, np.ndarray]:
        """
        Vectorized nearest-age lookup.

        Args:
            ages: Decimal ages (NaN for missing)
            sexes: Sex codes as floats (NaN for missing)
            columns: Value columns to return
            stages: Stage labels per row (required for staged tables)

        Returns:
            Dict of column name to float arrays, NaN where no row matched
        """
        ages = np.asarray(ages, dtype=np.float64)
        sexes = np.asarray(sexes, dtype=np.float64)
        columns = list(columns)
        for column in columns:
            if column not in self.columns:
                raise KeyError(
                    f"Column '{column}' not in reference table '{self.name}'"
                )
        out = {c: np.full(ages.shape, np.nan, dtype=np.float64) for c in columns}

        for (sex, stage), (ref_ages, rows) in self._partitions.items():
            mask = sexes == sex
            if self.staged:
                if stages is None:
                    continue
                mask &= np.asarray(stages, dtype=object) == stage
            if not np.any(mask):
                continue
            idx = nearest_age_index(ref_ages, ages[mask])
            matched = idx >= 0
            target = np.where(mask)[0][matched]
            for column in columns:
                values = rows[column].to_numpy(dtype=np.float64)
                out[column][target] = values[idx[matched]]
        return out


def _validate_frame(name: str, frame: pd.DataFrame, staged: bool) -> None:
    """Raise ReferenceTableError for empty or malformed tables."""
    if frame is None or len(frame) == 0:
        raise ReferenceTableError(f"Reference table '{name}' is empty")

    required = ["age", "sex"] + (["stage"] if staged else [])
    missing = [c for c in required if c not in frame.columns]
    if missing:
        raise ReferenceTableError(
            f"Reference table '{name}' is missing columns: {missing}"
        )

    ages = pd.to_numeric(frame["age"], errors="coerce")
    if ages.isna().any():
        raise ReferenceTableError(f"Non-numeric or missing ages in table '{name}'")
    if (ages < 0).any():
        raise ReferenceTableError(f"Negative ages found in reference table '{name}'")

    sexes = pd.to_numeric(frame["sex"], errors="coerce")
    if not sexes.isin(SEX_CODES).all():
        raise ReferenceTableError(
            f"Sex codes in table '{name}' must be {list(SEX_CODES)}"
        )

    if staged and not frame["stage"].isin([PREPUBERTAL, PUBERTAL]).all():
        raise ReferenceTableError(
            f"Stage values in table '{name}' must be '{PREPUBERTAL}' or '{PUBERTAL}'"
        )


class ReferenceStore:
    """
    All reference tables needed for classification and z-scores.

    Built once by the caller (or via ``default_store``) and passed into the
    engine. Read-only after construction.
    """

    def __init__(
        self, tables: Dict[str, ReferenceTable], bp_coefficients: pd.DataFrame
    ) -> None:
        self._tables = dict(tables)
        self._bp = _index_bp_coefficients(bp_coefficients)

    @classmethod
    def from_frames(cls, frames: Dict[str, pd.DataFrame]) -> "ReferenceStore":
        """
        Build a store from raw DataFrames keyed like ``REFERENCE_FILES``.

        Raises:
            ReferenceTableError: If a table is absent, empty or malformed
        """
        missing = [key for key in REFERENCE_FILES if key not in frames]
        if missing:
            raise ReferenceTableError(f"Missing reference tables: {missing}")

        for key, columns in REQUIRED_COLUMNS.items():
            absent = [c for c in columns if c not in frames[key].columns]
            if absent:
                raise ReferenceTableError(
                    f"Reference table '{key}' is missing columns: {absent}"
                )

        tables = {
            "cole": ReferenceTable("cole", frames["cole"]),
            "height_lms": ReferenceTable("height_lms", frames["height_lms"]),
            "wc_percentiles": ReferenceTable("wc_percentiles", frames["wc_percentiles"]),
            "idefics": ReferenceTable("idefics", frames["idefics"], staged=True),
        }

        lms = frames["stavnsbo_lms"]
        for component in STAVNSBO_COMPONENTS:
            part = lms.loc[lms["component"] == component].drop(columns="component")
            tables[f"stavnsbo_{component}"] = ReferenceTable(
                f"stavnsbo_{component}", part
            )

        return cls(tables, frames["bp_coefficients"])

    def table(self, name: str) -> ReferenceTable:
        try:
            return self._tables[name]
        except KeyError:
            raise ReferenceTableError(
                f"Reference table '{name}' not loaded. "
                f"Available tables: {sorted(self._tables)}"
            ) from None

    @property
    def table_names(self) -> List[str]:
        return sorted(self._tables)

    def bp_coefficients(self, sex: int, measure: str) -> np.ndarray:
        """Fourth Report coefficients for ``measure`` ('sbp' or 'dbp')."""
        try:
            return self._bp[(int(sex), measure)]
        except KeyError:
            raise ReferenceTableError(
                f"No blood pressure coefficients for sex={sex}, measure='{measure}'"
            ) from None


def _index_bp_coefficients(frame: pd.DataFrame) -> Dict[Tuple[int, str], np.ndarray]:
    if frame is None or len(frame) == 0:
        raise ReferenceTableError("Reference table 'bp_coefficients' is empty")
    absent = [
        c for c in ["sex", "measure"] + BP_COEFFICIENT_COLUMNS if c not in frame.columns
    ]
    if absent:
        raise ReferenceTableError(
            f"Reference table 'bp_coefficients' is missing columns: {absent}"
        )

    indexed = {}
    for _, row in frame.iterrows():
        coefs = row[BP_COEFFICIENT_COLUMNS].to_numpy(dtype=np.float64)
        if not np.all(np.isfinite(coefs)) or coefs[-1] <= 0:
            raise ReferenceTableError(
                f"Invalid blood pressure coefficients for sex={row['sex']}, "
                f"measure='{row['measure']}'"
            )
        coefs.setflags(write=False)
        indexed[(int(row["sex"]), str(row["measure"]))] = coefs

    for sex in SEX_CODES:
        for measure in ("sbp", "dbp"):
            if (sex, measure) not in indexed:
                raise ReferenceTableError(
                    f"Missing blood pressure coefficients for sex={sex}, "
                    f"measure='{measure}'"
                )
    return indexed


def _read_packaged_csv(filename: str) -> pd.DataFrame:
    with resources.files(REFERENCE_PACKAGE).joinpath(filename).open("rb") as f:
        return pd.read_csv(f)


def load_reference_frames(
    reference_dir: Optional[Path] = None,
) -> Dict[str, pd.DataFrame]:
    """
    Read raw reference CSVs from ``reference_dir`` or the packaged data.

    Raises:
        ReferenceTableError: If a file cannot be found or parsed
    """
    frames = {}
    for key, filename in REFERENCE_FILES.items():
        try:
            if reference_dir is not None:
                frames[key] = pd.read_csv(Path(reference_dir) / filename)
            else:
                frames[key] = _read_packaged_csv(filename)
        except FileNotFoundError:
            location = reference_dir if reference_dir is not None else REFERENCE_PACKAGE
            raise ReferenceTableError(
                f"Reference file '{filename}' not found in {location}"
            ) from None
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
            raise ReferenceTableError(
                f"Failed to read reference file '{filename}': {e}"
            ) from e
    return frames


def load_reference_store(reference_dir: Optional[Path] = None) -> ReferenceStore:
    """Load, validate and index every reference table."""
    frames = load_reference_frames(reference_dir)
    store = ReferenceStore.from_frames(frames)
    if reference_dir is None:
        logging.warning(
            "Packaged height_lms, wc_percentiles, stavnsbo_lms and idefics tables "
            "are illustrative approximations; set reference_dir to a directory "
            "with the published tables for research use"
        )
    logging.info(
        f"Loaded {len(store.table_names)} reference tables from "
        f"{reference_dir if reference_dir is not None else REFERENCE_PACKAGE}"
    )
    return store


@functools.lru_cache(maxsize=None)
def default_store(reference_dir: Optional[Path] = None) -> ReferenceStore:
    """Process-wide store, loaded on first use."""
    return load_reference_store(reference_dir)
