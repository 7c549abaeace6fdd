from typing import Any, Dict

import pandas as pd
import pytest

from obmetrics.references import ReferenceStore, default_store, load_reference_frames


@pytest.fixture(scope="session")
def store() -> ReferenceStore:
    """Packaged reference tables, loaded once per test session."""
    return default_store()


@pytest.fixture
def reference_frames() -> Dict[str, pd.DataFrame]:
    """Raw packaged reference frames, safe to modify in a test."""
    return load_reference_frames()


@pytest.fixture
def age8_boy() -> Dict[str, Any]:
    """8-year-old obese boy with a high waist and otherwise normal components."""
    return {
        "id": 1,
        "decimal_age": 8.0,
        "sex": 0,
        "height_m": 1.30,
        "weight_kg": 37.18,
        "wc_cm": 72.0,
        "sbp_mmHg": 100.0,
        "dbp_mmHg": 60.0,
        "tg_mg_dl": 80.0,
        "hdl_mg_dl": 55.0,
        "glucose_mg_dl": 85.0,
        "insulin_microU_ml": 5.0,
        "tanner_index": 1,
    }


@pytest.fixture
def adolescent_girl() -> Dict[str, Any]:
    """15-year-old girl with every component clearly altered."""
    return {
        "id": 2,
        "decimal_age": 15.0,
        "sex": 1,
        "height_m": 1.60,
        "weight_kg": 90.0,
        "wc_cm": 105.0,
        "sbp_mmHg": 150.0,
        "dbp_mmHg": 95.0,
        "tg_mg_dl": 250.0,
        "hdl_mg_dl": 30.0,
        "glucose_mg_dl": 130.0,
        "insulin_microU_ml": 40.0,
        "tanner_index": 4,
    }
