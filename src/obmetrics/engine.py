"""
MetS rule engine.

Evaluates any declarative ``Definition`` against one subject record. Component
flags are three-valued (Altered, Normal, missing) and the aggregation policy
turns them into a Yes/No/missing verdict. Nothing here keeps state between
records.
"""

from typing import Any, Dict, Iterable, Optional, Set, Union

import numpy as np

from .config import (
    ALTERED,
    DEFAULT_CONFIG,
    NORMAL,
    NO,
    YES,
    EngineConfig,
    MissingPolicy,
)
from .definitions import get_definition
from .definitions.base import AgeBand, AggregationKind, ComponentRule, Criterion, Definition
from .derived import bmi, homa_ir
from .errors import MissingInputError
from .obesity import classify_cole
from .records import RecordLike, SubjectRecord, as_record
from .references import ReferenceStore, default_store
from .zscores import bp_zscore, height_zscore, percentile_to_zscore

DefinitionLike = Union[str, int, Definition]

# Raw fields behind each derived measure
MEASURE_FIELDS = {
    "bmi": {"height_m", "weight_kg"},
    "homa_ir": {"glucose_mg_dl", "insulin_microU_ml"},
    "height_zscore": {"height_m"},
    "sbp_zscore": {"sbp_mmHg", "height_m"},
    "dbp_zscore": {"dbp_mmHg", "height_m"},
}
BASE_FIELDS = {"decimal_age", "sex"}


class MeasureContext:
    """
    Measures for one record, derived lazily and cached for the evaluation.

    Args:
        record: Validated subject record
        store: Reference tables
        config: Engine settings (puberty inference)
    """

    def __init__(
        self, record: SubjectRecord, store: ReferenceStore, config: EngineConfig
    ) -> None:
        self.record = record
        self.store = store
        self.config = config
        self._cache: Dict[str, Optional[float]] = {}

    @property
    def age(self) -> Optional[float]:
        return self.record.decimal_age

    @property
    def sex(self) -> Optional[int]:
        return self.record.sex

    @property
    def stage(self) -> Optional[str]:
        return self.record.puberty_stage(self.config.puberty_onset_age)

    def value(self, measure: str) -> Optional[float]:
        if measure not in self._cache:
            self._cache[measure] = self._compute(measure)
        return self._cache[measure]

    def _compute(self, measure: str) -> Optional[float]:
        r = self.record
        if measure == "bmi":
            return bmi(r.height_m, r.weight_kg)
        if measure == "homa_ir":
            return homa_ir(r.glucose_mg_dl, r.insulin_microU_ml)
        if measure == "height_zscore":
            return self._scalar(
                height_zscore(
                    self._arr(r.height_m),
                    self._arr(r.decimal_age),
                    self._arr(r.sex),
                    self.store,
                )
            )
        if measure in ("sbp_zscore", "dbp_zscore"):
            bp_measure = measure.split("_")[0]
            bp_value = r.sbp_mmHg if bp_measure == "sbp" else r.dbp_mmHg
            height_z = self.value("height_zscore")
            return self._scalar(
                bp_zscore(
                    self._arr(bp_value),
                    self._arr(r.decimal_age),
                    self._arr(r.sex),
                    self._arr(height_z),
                    self.store,
                    bp_measure,
                )
            )
        if measure in SubjectRecord.model_fields:
            value = getattr(r, measure)
            return None if value is None else float(value)
        raise KeyError(f"Unknown measure '{measure}'")

    @staticmethod
    def _arr(value: Optional[float]) -> np.ndarray:
        return np.array([np.nan if value is None else value], dtype=np.float64)

    @staticmethod
    def _scalar(values: np.ndarray) -> Optional[float]:
        return None if np.isnan(values[0]) else float(values[0])


def resolve_cutoff(criterion: Criterion, ctx: MeasureContext) -> Optional[float]:
    """Threshold for ``criterion`` given the subject's age, sex and stage."""
    cutoff = criterion.cutoff
    if cutoff.value is not None:
        return cutoff.value
    if cutoff.percentile is not None:
        return percentile_to_zscore(cutoff.percentile)
    if ctx.sex is None:
        return None
    if cutoff.by_sex is not None:
        return cutoff.by_sex[ctx.sex]

    stage = ctx.stage if cutoff.staged else None
    if cutoff.staged and stage is None:
        return None
    table = ctx.store.table(cutoff.table)
    threshold = table.value(cutoff.column, ctx.age, ctx.sex, stage)
    if threshold is None:
        return None
    if cutoff.cap_by_sex is not None:
        threshold = min(threshold, cutoff.cap_by_sex[ctx.sex])
    return threshold


def evaluate_criterion(criterion: Criterion, ctx: MeasureContext) -> Optional[bool]:
    value = ctx.value(criterion.measure)
    if value is None:
        return None
    threshold = resolve_cutoff(criterion, ctx)
    if threshold is None:
        return None
    return criterion.comparator.apply(value, threshold)


def evaluate_component(rule: ComponentRule, ctx: MeasureContext) -> Optional[str]:
    """Altered if any criterion holds, Normal if none can hold, else None."""
    results = [evaluate_criterion(criterion, ctx) for criterion in rule.criteria]
    if any(result is True for result in results):
        return ALTERED
    if all(result is False for result in results):
        return NORMAL
    return None


def _unit_status(members: Iterable[str], flags: Dict[str, Optional[str]]) -> Optional[str]:
    statuses = [flags[m] for m in members]
    if ALTERED in statuses:
        return ALTERED
    if all(status == NORMAL for status in statuses):
        return NORMAL
    return None


def aggregate(
    band: AgeBand, flags: Dict[str, Optional[str]], policy: MissingPolicy
) -> Optional[str]:
    """
    Combine component flags into a verdict.

    Under the resolvable policy the verdict is Yes once enough units are
    Altered, No once the threshold cannot be reached even if every missing
    unit were Altered, and missing in between. Under the strict policy any
    missing counted unit gives a missing verdict. A missing gate always gives
    a missing verdict.
    """
    agg = band.aggregation
    gated = agg.kind is AggregationKind.GATE_COUNT
    gate = flags[agg.gate] if gated else None
    if gated and gate is None:
        return None

    statuses = [_unit_status(members, flags) for members in band.counted_units().values()]
    n_altered = statuses.count(ALTERED)
    n_missing = statuses.count(None)

    if policy is MissingPolicy.STRICT and n_missing:
        return None
    if gated and gate == NORMAL:
        return NO
    if n_altered >= agg.threshold:
        return YES
    if n_altered + n_missing < agg.threshold:
        return NO
    return None


def evaluate_definition(
    definition: Definition,
    record: SubjectRecord,
    store: ReferenceStore,
    config: EngineConfig = DEFAULT_CONFIG,
    ctx: Optional[MeasureContext] = None,
) -> Dict[str, Any]:
    """
    Apply one definition to one record.

    Returns:
        Dict with ``MetS_verdict`` and ``component_flags`` (one entry per
        component of the definition, None when it cannot be evaluated)
    """
    if ctx is None:
        ctx = MeasureContext(record, store, config)
    flags: Dict[str, Optional[str]] = {name: None for name in definition.component_names}

    band = definition.band_for(record.decimal_age)
    if band is None or record.sex is None:
        return {"MetS_verdict": None, "component_flags": flags}

    for rule in band.components:
        flags[rule.name] = evaluate_component(rule, ctx)

    if band.monitoring_only and not config.classify_monitoring_bands:
        verdict = None
    else:
        verdict = aggregate(band, flags, config.missing_policy)
    return {"MetS_verdict": verdict, "component_flags": flags}


def classify(
    record: RecordLike,
    definition_id: DefinitionLike,
    store: Optional[ReferenceStore] = None,
    config: Optional[EngineConfig] = None,
) -> Dict[str, Any]:
    """
    Classify a subject under a MetS definition.

    Args:
        record: SubjectRecord or mapping with the ObMetrics input fields
        definition_id: Definition id or alias ('cook', 'idf', 'ahrens', ...)
        store: Reference tables; the packaged tables when None
        config: Engine settings; defaults when None

    Returns:
        Dict with ``Obesity_Cole``, ``MetS_verdict``, ``component_flags``,
        ``BMI``, ``HOMA_IR`` and ``definition``

    Raises:
        InvalidDefinitionError: If ``definition_id`` is unknown
    """
    definition = get_definition(definition_id)
    record = as_record(record)
    if config is None:
        config = DEFAULT_CONFIG
    if store is None:
        store = default_store(config.reference_dir)

    ctx = MeasureContext(record, store, config)
    result = evaluate_definition(definition, record, store, config, ctx)
    body_mass = ctx.value("bmi")
    return {
        "Obesity_Cole": classify_cole(
            body_mass, record.decimal_age, record.sex, store.table("cole")
        ),
        "MetS_verdict": result["MetS_verdict"],
        "component_flags": result["component_flags"],
        "BMI": body_mass,
        "HOMA_IR": ctx.value("homa_ir"),
        "definition": definition.id,
    }


def _criterion_fields(criterion: Criterion) -> Set[str]:
    if criterion.measure in MEASURE_FIELDS:
        return set(MEASURE_FIELDS[criterion.measure])
    return {criterion.measure}


def required_fields(
    definition_id: DefinitionLike, age: Optional[float] = None
) -> Set[str]:
    """
    Raw input fields a definition needs for a complete evaluation.

    Args:
        definition_id: Definition id or alias
        age: Restrict to the age band covering this age; all bands when None

    Raises:
        InvalidDefinitionError: If ``definition_id`` is unknown
    """
    definition = get_definition(definition_id)
    if age is None:
        bands = definition.bands
    else:
        band = definition.band_for(age)
        bands = [band] if band is not None else []

    fields = set(BASE_FIELDS)
    for band in bands:
        for rule in band.components:
            for criterion in rule.criteria:
                fields |= _criterion_fields(criterion)
    return fields


def check_required(record: RecordLike, definition_id: DefinitionLike) -> None:
    """
    Raise if ``record`` lacks fields the definition needs at its age.

    Raises:
        MissingInputError: Listing the absent fields
        InvalidDefinitionError: If ``definition_id`` is unknown
    """
    definition = get_definition(definition_id)
    record = as_record(record)
    missing = record.missing_fields(required_fields(definition, record.decimal_age))
    if missing:
        raise MissingInputError(missing, context=definition.name)
