from __future__ import annotations

__version__ = "0.1.0"

from .analysis import AnalysisConfig, AnalysisResult, run_analysis
from .catalog import TemplateCatalogIndex
from .errors import (
    BadSignatureError,
    CatalogError,
    CatalogWarning,
    GPODepsError,
    LocaleNotFoundError,
    MalformedEntryError,
    MalformedXmlError,
    PolicyFileError,
    ResolutionError,
    TruncatedError,
)
from .models import (
    DependencyMatch,
    DisplayString,
    PolicyDefinition,
    PolicySetting,
    PolicyState,
    RegistrySetting,
    ResolutionResult,
    Scope,
    SettingSource,
    UnmatchedSetting,
)
from .preg import BinaryPolicyReader
from .projection import ReportProjection
from .report import ExtractionStrategy, PolicyReportExtractor
from .resolver import DependencyResolver, resolve

__all__ = [
    "AnalysisConfig",
    "AnalysisResult",
    "BadSignatureError",
    "BinaryPolicyReader",
    "CatalogError",
    "CatalogWarning",
    "DependencyMatch",
    "DependencyResolver",
    "DisplayString",
    "ExtractionStrategy",
    "GPODepsError",
    "LocaleNotFoundError",
    "MalformedEntryError",
    "MalformedXmlError",
    "PolicyDefinition",
    "PolicyFileError",
    "PolicyReportExtractor",
    "PolicySetting",
    "PolicyState",
    "RegistrySetting",
    "ReportProjection",
    "ResolutionError",
    "ResolutionResult",
    "Scope",
    "SettingSource",
    "TemplateCatalogIndex",
    "TruncatedError",
    "UnmatchedSetting",
    "resolve",
    "run_analysis",
]
