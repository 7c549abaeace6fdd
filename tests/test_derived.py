# Tests for derived measures and blood pressure correction

import logging

import numpy as np
import pandas as pd
import pytest

from obmetrics.derived import (
    bmi,
    bmi_array,
    correct_blood_pressure,
    correct_blood_pressure_frame,
    homa_ir,
    homa_ir_array,
)


def test_tc001_bmi_normal_case() -> None:
    assert bmi(1.30, 37.18) == pytest.approx(22.0, abs=1e-3)


@pytest.mark.parametrize(
    "height_m,weight_kg",
    [(None, 30.0), (1.2, None), (float("nan"), 30.0), (0.0, 30.0), (-1.0, 30.0)],
)
def test_tc002_bmi_missing_or_invalid_inputs(height_m, weight_kg) -> None:
    assert bmi(height_m, weight_kg) is None


def test_tc003_homa_ir_formula() -> None:
    assert homa_ir(90.0, 9.0) == pytest.approx(2.0)


def test_tc004_homa_ir_missing_input() -> None:
    assert homa_ir(None, 9.0) is None
    assert homa_ir(90.0, float("nan")) is None


def test_tc005_vectorized_forms_propagate_nan() -> None:
    heights = np.array([1.30, np.nan, 0.0])
    weights = np.array([37.18, 30.0, 30.0])
    result = bmi_array(heights, weights)
    assert result[0] == pytest.approx(22.0, abs=1e-3)
    assert np.isnan(result[1])
    assert np.isnan(result[2])

    homa = homa_ir_array(np.array([90.0, np.nan]), np.array([9.0, 9.0]))
    assert homa[0] == pytest.approx(2.0)
    assert np.isnan(homa[1])


def test_tc006_correct_blood_pressure_swaps_reversed_values() -> None:
    assert correct_blood_pressure(60.0, 110.0) == (110.0, 60.0)
    assert correct_blood_pressure(110.0, 60.0) == (110.0, 60.0)
    assert correct_blood_pressure(None, 60.0) == (None, 60.0)


def test_tc007_correct_blood_pressure_frame_logs_and_swaps(caplog) -> None:
    df = pd.DataFrame(
        {"sbp_mmHg": [110.0, 55.0, np.nan], "dbp_mmHg": [70.0, 105.0, 60.0]}
    )
    with caplog.at_level(logging.WARNING):
        result = correct_blood_pressure_frame(df)
    assert "1 records have systolic < diastolic" in caplog.text
    assert result["sbp_mmHg"].tolist()[:2] == [110.0, 105.0]
    assert result["dbp_mmHg"].tolist() == [70.0, 55.0, 60.0]
    # input untouched
    assert df.loc[1, "sbp_mmHg"] == 55.0


def test_tc008_correct_blood_pressure_frame_missing_column() -> None:
    with pytest.raises(ValueError, match="must exist"):
        correct_blood_pressure_frame(pd.DataFrame({"sbp_mmHg": [100.0]}))
