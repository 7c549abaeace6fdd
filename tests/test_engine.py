# Tests for the MetS rule engine

from typing import Any, Dict

import pytest

from obmetrics.config import (
    ALTERED,
    BLOOD_PRESSURE,
    GLUCOSE_HOMEOSTASIS,
    HDL,
    INSULIN_RESISTANCE,
    NORMAL,
    NO,
    OBESE,
    OBESITY,
    TRIGLYCERIDES,
    YES,
    MissingPolicy,
    build_config,
)
from obmetrics.definitions import IDF, AgeBand, Aggregation, AggregationKind
from obmetrics.engine import (
    MeasureContext,
    aggregate,
    check_required,
    classify,
    evaluate_component,
    required_fields,
)
from obmetrics.errors import InvalidDefinitionError, MissingInputError
from obmetrics.records import SubjectRecord
from obmetrics.references import ReferenceStore

STRICT = build_config(missing_policy="strict")


def with_values(record: Dict[str, Any], **values: Any) -> Dict[str, Any]:
    return {**record, **values}


class TestCook:
    def test_tc001_three_altered_components_is_mets(
        self, store: ReferenceStore, age8_boy
    ) -> None:
        record = with_values(age8_boy, wc_cm=90.0, sbp_mmHg=140.0, tg_mg_dl=150.0)
        result = classify(record, "cook", store=store)
        flags = result["component_flags"]
        assert flags[OBESITY] == ALTERED
        assert flags[BLOOD_PRESSURE] == ALTERED
        assert flags[TRIGLYCERIDES] == ALTERED
        assert flags[HDL] == NORMAL
        assert flags[GLUCOSE_HOMEOSTASIS] == NORMAL
        assert result["MetS_verdict"] == YES

    def test_tc002_two_altered_components_is_not_mets(
        self, store: ReferenceStore, age8_boy
    ) -> None:
        record = with_values(age8_boy, wc_cm=90.0, tg_mg_dl=150.0)
        assert classify(record, "cook", store=store)["MetS_verdict"] == NO

    def test_tc003_hdl_cutoff_is_inclusive(
        self, store: ReferenceStore, age8_boy
    ) -> None:
        flags = classify(with_values(age8_boy, hdl_mg_dl=40.0), "cook", store=store)[
            "component_flags"
        ]
        assert flags[HDL] == ALTERED

    def test_tc004_undecided_when_missing_could_tip_the_count(
        self, store: ReferenceStore, age8_boy
    ) -> None:
        record = with_values(
            age8_boy, wc_cm=90.0, tg_mg_dl=150.0, glucose_mg_dl=None
        )
        result = classify(record, "cook", store=store)
        assert result["component_flags"][GLUCOSE_HOMEOSTASIS] is None
        assert result["MetS_verdict"] is None

    def test_tc005_decided_no_despite_missing_components(
        self, store: ReferenceStore, age8_boy
    ) -> None:
        # 0 altered, 2 missing: at most 2 of 5, below the threshold of 3
        record = with_values(age8_boy, wc_cm=60.0, tg_mg_dl=None, hdl_mg_dl=None)
        assert classify(record, "cook", store=store)["MetS_verdict"] == NO

    def test_tc006_strict_policy_needs_every_component(
        self, store: ReferenceStore, age8_boy
    ) -> None:
        record = with_values(
            age8_boy, wc_cm=90.0, sbp_mmHg=140.0, tg_mg_dl=150.0, hdl_mg_dl=None
        )
        assert classify(record, "cook", store=store)["MetS_verdict"] == YES
        strict = classify(record, "cook", store=store, config=STRICT)
        assert strict["MetS_verdict"] is None

    def test_tc007_blood_pressure_needs_height(
        self, store: ReferenceStore, age8_boy
    ) -> None:
        record = with_values(age8_boy, height_m=None, sbp_mmHg=140.0)
        result = classify(record, "cook", store=store)
        assert result["component_flags"][BLOOD_PRESSURE] is None
        assert result["BMI"] is None
        assert result["Obesity_Cole"] is None


class TestIdf:
    def test_tc008_age_8_obese_boy_is_not_mets(
        self, store: ReferenceStore, age8_boy
    ) -> None:
        result = classify(age8_boy, "idf", store=store)
        assert result["Obesity_Cole"] == OBESE
        assert result["BMI"] == pytest.approx(22.0, abs=1e-3)
        assert result["component_flags"][OBESITY] == ALTERED
        assert result["MetS_verdict"] == NO

    def test_tc009_missing_waist_is_never_no(
        self, store: ReferenceStore, age8_boy
    ) -> None:
        result = classify(with_values(age8_boy, wc_cm=None), "idf", store=store)
        assert result["component_flags"][OBESITY] is None
        assert result["MetS_verdict"] is None

    def test_tc010_normal_waist_is_no(self, store: ReferenceStore, age8_boy) -> None:
        record = with_values(
            age8_boy, wc_cm=60.0, tg_mg_dl=200.0, glucose_mg_dl=120.0
        )
        assert classify(record, "idf", store=store)["MetS_verdict"] == NO

    def test_tc011_gate_plus_two_components_is_mets(
        self, store: ReferenceStore, adolescent_girl
    ) -> None:
        assert classify(adolescent_girl, "idf", store=store)["MetS_verdict"] == YES

    def test_tc012_waist_cutoff_capped_by_adult_value(
        self, store: ReferenceStore, adolescent_girl
    ) -> None:
        # 90th percentile at 15 is 91.8 cm, the adult female cutoff 80 cm
        record = with_values(adolescent_girl, wc_cm=85.0)
        flags = classify(record, "idf", store=store)["component_flags"]
        assert flags[OBESITY] == ALTERED

    def test_tc013_adult_hdl_cutoff_is_sex_specific(
        self, store: ReferenceStore, adolescent_girl
    ) -> None:
        girl = with_values(adolescent_girl, decimal_age=17.0, hdl_mg_dl=45.0)
        boy = with_values(girl, sex=0)
        assert classify(girl, "idf", store=store)["component_flags"][HDL] == ALTERED
        assert classify(boy, "idf", store=store)["component_flags"][HDL] == NORMAL

    def test_tc014_monitoring_band_can_be_left_unclassified(
        self, store: ReferenceStore, age8_boy
    ) -> None:
        config = build_config(classify_monitoring_bands=False)
        result = classify(age8_boy, "idf", store=store, config=config)
        assert result["MetS_verdict"] is None
        assert result["component_flags"][OBESITY] == ALTERED

    def test_tc015_missing_age_or_sex(self, store: ReferenceStore, age8_boy) -> None:
        for record in (
            with_values(age8_boy, decimal_age=None),
            with_values(age8_boy, sex=None),
        ):
            result = classify(record, "idf", store=store)
            assert result["MetS_verdict"] is None
            assert all(flag is None for flag in result["component_flags"].values())

    def test_tc041_under_six_has_no_band(
        self, store: ReferenceStore, age8_boy
    ) -> None:
        young = with_values(age8_boy, decimal_age=4.0, wc_cm=90.0)
        result = classify(young, "idf", store=store)
        assert result["MetS_verdict"] is None
        assert all(flag is None for flag in result["component_flags"].values())
        at_six = with_values(young, decimal_age=6.0)
        flags = classify(at_six, "idf", store=store)["component_flags"]
        assert flags[OBESITY] == ALTERED


class TestAhrens:
    def test_tc016_missing_insulin_leaves_verdict_undecided(
        self, store: ReferenceStore, age8_boy
    ) -> None:
        # one altered plus one missing component could still reach 2 of 6
        record = with_values(age8_boy, wc_cm=80.0, insulin_microU_ml=None)
        result = classify(record, "ahrens", store=store)
        flags = result["component_flags"]
        assert flags[OBESITY] == ALTERED
        assert flags[BLOOD_PRESSURE] == NORMAL
        assert flags[TRIGLYCERIDES] == NORMAL
        assert flags[HDL] == NORMAL
        assert flags[GLUCOSE_HOMEOSTASIS] == NORMAL
        assert flags[INSULIN_RESISTANCE] is None
        assert result["HOMA_IR"] is None
        assert result["MetS_verdict"] is None

    def test_tc017_complete_record_is_decided(
        self, store: ReferenceStore, age8_boy
    ) -> None:
        record = with_values(age8_boy, wc_cm=80.0)
        result = classify(record, "ahrens", store=store)
        assert result["component_flags"][INSULIN_RESISTANCE] == NORMAL
        assert result["MetS_verdict"] == NO

    def test_tc018_two_of_six_components_is_mets(
        self, store: ReferenceStore, age8_boy
    ) -> None:
        record = with_values(age8_boy, wc_cm=90.0, sbp_mmHg=150.0, dbp_mmHg=95.0)
        result = classify(record, "ahrens", store=store)
        assert result["component_flags"][OBESITY] == ALTERED
        assert result["component_flags"][BLOOD_PRESSURE] == ALTERED
        assert result["MetS_verdict"] == YES
        # the grouped reading needs 3 of 4 units
        assert classify(record, "ahrens_grouped", store=store)["MetS_verdict"] == NO

    def test_tc019_lipids_count_separately_unless_grouped(
        self, store: ReferenceStore, age8_boy
    ) -> None:
        record = with_values(age8_boy, wc_cm=80.0, tg_mg_dl=200.0, hdl_mg_dl=30.0)
        assert classify(record, "ahrens", store=store)["MetS_verdict"] == YES
        # TG and HDL make one lipid unit; with obesity that is only 2 of 4
        assert classify(record, "ahrens_grouped", store=store)["MetS_verdict"] == NO

    def test_tc020_puberty_stage_selects_cutoffs(
        self, store: ReferenceStore, age8_boy
    ) -> None:
        # 8-year-old boy waist p90: 68.6 prepubertal, 70.7 pubertal
        prepubertal = with_values(age8_boy, wc_cm=69.5)
        pubertal = with_values(prepubertal, tanner_index=3)
        assert (
            classify(prepubertal, "ahrens", store=store)["component_flags"][OBESITY]
            == ALTERED
        )
        assert (
            classify(pubertal, "ahrens", store=store)["component_flags"][OBESITY]
            == NORMAL
        )

    def test_tc021_action_level_is_stricter(
        self, store: ReferenceStore, age8_boy
    ) -> None:
        record = with_values(age8_boy, wc_cm=70.0)
        monitoring = classify(record, "ahrens", store=store)["component_flags"]
        action = classify(record, "ahrens_action", store=store)["component_flags"]
        assert monitoring[OBESITY] == ALTERED
        assert action[OBESITY] == NORMAL

    def test_tc039_three_groups_is_mets(self, store: ReferenceStore, age8_boy) -> None:
        record = with_values(
            age8_boy,
            wc_cm=80.0,
            sbp_mmHg=140.0,
            tg_mg_dl=200.0,
            insulin_microU_ml=None,
        )
        result = classify(record, "ahrens_grouped", store=store)
        assert result["MetS_verdict"] == YES

    def test_tc040_outside_age_domain(
        self, store: ReferenceStore, age8_boy, adolescent_girl
    ) -> None:
        for record in [adolescent_girl, with_values(age8_boy, decimal_age=2.5)]:
            result = classify(record, "ahrens", store=store)
            assert result["MetS_verdict"] is None
            assert set(result["component_flags"].values()) == {None}
        boundary = with_values(age8_boy, decimal_age=11.0, wc_cm=90.0, sbp_mmHg=150.0)
        assert classify(boundary, "ahrens", store=store)["MetS_verdict"] is None
        assert classify(age8_boy, "ahrens", store=store)["MetS_verdict"] == NO


class TestAggregate:
    band = IDF.band_for(12.0)

    def flags(self, **overrides: Any) -> Dict[str, Any]:
        base = {name: NORMAL for name in IDF.component_names}
        base[OBESITY] = ALTERED
        base.update(overrides)
        return base

    def test_tc022_gate_normal_is_no_even_with_missing(self) -> None:
        flags = self.flags(**{OBESITY: NORMAL, HDL: None})
        assert aggregate(self.band, flags, MissingPolicy.RESOLVABLE) == NO
        assert aggregate(self.band, flags, MissingPolicy.STRICT) is None

    def test_tc023_gate_missing_is_missing(self) -> None:
        flags = self.flags(**{OBESITY: None, HDL: ALTERED, TRIGLYCERIDES: ALTERED})
        assert aggregate(self.band, flags, MissingPolicy.RESOLVABLE) is None

    def test_tc024_count_threshold(self) -> None:
        flags = self.flags(**{HDL: ALTERED, TRIGLYCERIDES: ALTERED})
        assert aggregate(self.band, flags, MissingPolicy.RESOLVABLE) == YES
        flags = self.flags(**{HDL: ALTERED, TRIGLYCERIDES: None})
        assert aggregate(self.band, flags, MissingPolicy.RESOLVABLE) is None

    def test_tc025_custom_count_band(self) -> None:
        band = AgeBand(
            components=self.band.components,
            aggregation=Aggregation(kind=AggregationKind.COUNT, threshold=5),
        )
        flags = self.flags(**{HDL: ALTERED})
        assert aggregate(band, flags, MissingPolicy.RESOLVABLE) == NO


class TestEvaluationContext:
    def test_tc026_measures_are_cached(self, store: ReferenceStore, age8_boy) -> None:
        ctx = MeasureContext(SubjectRecord(**age8_boy), store, build_config())
        first = ctx.value("sbp_zscore")
        assert ctx.value("sbp_zscore") == first
        assert "height_zscore" in ctx._cache

    def test_tc027_unknown_measure_raises(
        self, store: ReferenceStore, age8_boy
    ) -> None:
        ctx = MeasureContext(SubjectRecord(**age8_boy), store, build_config())
        with pytest.raises(KeyError, match="Unknown measure"):
            ctx.value("ldl")

    def test_tc028_component_flag_three_valued(
        self, store: ReferenceStore, age8_boy
    ) -> None:
        rule = IDF.band_for(12.0).components[1]
        assert rule.name == BLOOD_PRESSURE
        ctx = MeasureContext(
            SubjectRecord(**with_values(age8_boy, sbp_mmHg=None)),
            store,
            build_config(),
        )
        # DBP normal, SBP missing: cannot rule out an altered SBP
        assert evaluate_component(rule, ctx) is None


class TestClassify:
    def test_tc029_repeated_calls_are_identical(
        self, store: ReferenceStore, age8_boy
    ) -> None:
        record = with_values(age8_boy, wc_cm=80.0, sbp_mmHg=140.0)
        first = classify(record, "ahrens", store=store)
        second = classify(record, "ahrens", store=store)
        assert first["MetS_verdict"] == YES
        assert first == second

    def test_tc030_result_fields(self, store: ReferenceStore, age8_boy) -> None:
        result = classify(SubjectRecord(**age8_boy), 5, store=store)
        assert result["definition"] == "idf"
        assert set(result) == {
            "Obesity_Cole",
            "MetS_verdict",
            "component_flags",
            "BMI",
            "HOMA_IR",
            "definition",
        }
        assert result["HOMA_IR"] == pytest.approx(85.0 * 5.0 / 405.0)

    def test_tc031_unknown_definition(self, age8_boy) -> None:
        with pytest.raises(InvalidDefinitionError):
            classify(age8_boy, "unknown")

    def test_tc032_default_store_used_when_none_given(self, age8_boy) -> None:
        assert classify(age8_boy, "idf")["MetS_verdict"] == NO


class TestRequiredFields:
    def test_tc033_idf_fields(self) -> None:
        assert required_fields("idf") == {
            "decimal_age",
            "sex",
            "wc_cm",
            "sbp_mmHg",
            "dbp_mmHg",
            "tg_mg_dl",
            "hdl_mg_dl",
            "glucose_mg_dl",
        }

    def test_tc034_cook_needs_height_for_blood_pressure(self) -> None:
        assert "height_m" in required_fields("cook")

    def test_tc035_ahrens_needs_insulin(self) -> None:
        fields = required_fields("ahrens", age=8.0)
        assert {"insulin_microU_ml", "glucose_mg_dl"} <= fields

    def test_tc036_age_outside_every_band(self) -> None:
        assert required_fields("idf", age=-1.0) == {"decimal_age", "sex"}
        assert required_fields("idf", age=4.0) == {"decimal_age", "sex"}
        assert required_fields("ahrens", age=12.0) == {"decimal_age", "sex"}

    def test_tc037_check_required_lists_missing_fields(self, age8_boy) -> None:
        record = with_values(age8_boy, wc_cm=None, hdl_mg_dl=float("nan"))
        with pytest.raises(MissingInputError) as excinfo:
            check_required(record, "idf")
        assert excinfo.value.missing == ["hdl_mg_dl", "wc_cm"]

    def test_tc038_check_required_passes_complete_record(self, age8_boy) -> None:
        check_required(age8_boy, "ahrens")
