"""
obmetrics: pediatric metabolic syndrome classification.

Classifies children and adolescents under the Cook, IDF and Ahrens (IDEFICS)
MetS definitions, grades obesity with the Cole cutoffs and computes age- and
sex-specific component z-scores.
"""

from .config import EngineConfig, MissingPolicy, build_config
from .definitions import available_definitions, get_definition
from .engine import check_required, classify, required_fields
from .errors import (
    InvalidDefinitionError,
    MissingInputError,
    ObMetricsError,
    ReferenceTableError,
)
from .pipeline import MetSPipeline, classify_frame, zscore_frame
from .records import SubjectRecord
from .references import ReferenceStore, default_store, load_reference_store
from .zscores import compute_zscores, zscores

__version__ = "0.1.0"

__all__ = [
    "EngineConfig",
    "InvalidDefinitionError",
    "MetSPipeline",
    "MissingInputError",
    "MissingPolicy",
    "ObMetricsError",
    "ReferenceStore",
    "ReferenceTableError",
    "SubjectRecord",
    "available_definitions",
    "build_config",
    "check_required",
    "classify",
    "classify_frame",
    "compute_zscores",
    "default_store",
    "get_definition",
    "load_reference_store",
    "required_fields",
    "zscore_frame",
    "zscores",
]
