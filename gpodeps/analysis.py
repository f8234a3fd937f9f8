from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Sequence

from .catalog import TemplateCatalogIndex
from .errors import (
    BadSignatureError,
    CatalogError,
    GPODepsError,
    MalformedXmlError,
    ResolutionError,
)
from .models import PolicySetting, RegistrySetting, ResolutionResult, Scope
from .preg import SIGNATURE, BinaryPolicyReader
from .report import ExtractionStrategy, PolicyReportExtractor
from .resolver import DependencyResolver


LOG = logging.getLogger(__name__)


class ArtifactKind(str, Enum):
    BINARY = "binary"
    XML = "xml"
    HTML = "html"


@dataclass(frozen=True)
class AnalysisConfig:
    catalog_root: Path
    locale: str = "en-US"
    workers: Optional[int] = None
    max_data_size: Optional[int] = None
    scope: Optional[Scope] = None


@dataclass(frozen=True)
class AnalysisWarning:
    kind: str
    path: Optional[Path]
    message: str


@dataclass
class ArtifactOutcome:
    path: Path
    kind: ArtifactKind
    registry: list[RegistrySetting] = field(default_factory=list)
    policies: list[PolicySetting] = field(default_factory=list)
    strategy: Optional[ExtractionStrategy] = None
    version: Optional[int] = None
    warning: Optional[AnalysisWarning] = None


@dataclass
class AnalysisResult:
    result: ResolutionResult
    catalog: TemplateCatalogIndex
    artifacts: list[ArtifactOutcome] = field(default_factory=list)
    warnings: list[AnalysisWarning] = field(default_factory=list)


def detect_kind(path: Path) -> ArtifactKind:
    with path.open("rb") as f:
        head = f.read(4)
    if head == SIGNATURE:
        return ArtifactKind.BINARY
    suffix = path.suffix.lower()
    if suffix == ".pol":
        return ArtifactKind.BINARY
    if suffix in (".htm", ".html"):
        return ArtifactKind.HTML
    return ArtifactKind.XML


def load_artifact(path: Path, config: AnalysisConfig) -> ArtifactOutcome:
    path = Path(path)
    kind = detect_kind(path)
    outcome = ArtifactOutcome(path=path, kind=kind)
    if kind is ArtifactKind.BINARY:
        parsed = BinaryPolicyReader(max_data_size=config.max_data_size).read(path.read_bytes())
        outcome.version = parsed.version
        outcome.registry = parsed.settings
        LOG.info("%s: PReg version %d, %d registry settings", path.name, parsed.version, len(parsed.settings))
        if parsed.error is not None:
            outcome.warning = AnalysisWarning(kind=parsed.error.kind, path=path, message=str(parsed.error))
        return outcome

    extractor = PolicyReportExtractor()
    extracted = extractor.extract_html_file(path) if kind is ArtifactKind.HTML else extractor.extract_file(path)
    outcome.strategy = extracted.strategy
    outcome.policies = extracted.settings
    LOG.info("%s: %d report settings via %s", path.name, len(outcome.policies), extracted.strategy.value)
    return outcome


def _skipped(path: Path, kind: ArtifactKind, exc: GPODepsError) -> ArtifactOutcome:
    LOG.warning("Skipping %s: %s", path.name, exc)
    warning = AnalysisWarning(kind=exc.kind, path=path, message=str(exc))
    return ArtifactOutcome(path=path, kind=kind, warning=warning)


class Analysis:
    def __init__(self, config: AnalysisConfig):
        self.config = config

    def run(self, artifacts: Sequence[Path]) -> AnalysisResult:
        """Decode every artifact, build the catalog and resolve.

        An artifact that cannot be decoded is skipped with a warning. Unreadable
        inputs, catalog failures and runs that yield no settings at all are
        raised as a single :class:`ResolutionError`.
        """
        if not artifacts:
            raise ResolutionError("No input artifacts given")

        with ThreadPoolExecutor(max_workers=self.config.workers) as pool:
            futures = [pool.submit(self._load, Path(p)) for p in artifacts]
            catalog_future = pool.submit(
                TemplateCatalogIndex.build,
                self.config.catalog_root,
                self.config.locale,
                self.config.workers,
            )
            outcomes = [self._collect(f, p) for f, p in zip(futures, artifacts)]
            try:
                catalog = catalog_future.result()
            except CatalogError as exc:
                raise ResolutionError(f"Template catalog unavailable: {exc}") from exc

        registry: list[RegistrySetting] = []
        policies: list[PolicySetting] = []
        warnings: list[AnalysisWarning] = []
        for outcome in outcomes:
            registry.extend(outcome.registry)
            policies.extend(outcome.policies)
            if outcome.warning is not None:
                warnings.append(outcome.warning)
        warnings.extend(AnalysisWarning(kind=w.kind, path=w.path, message=w.message) for w in catalog.warnings)

        if not registry and not policies:
            raise ResolutionError("No settings could be extracted from any input artifact")

        resolver = DependencyResolver(catalog, workers=self.config.workers, scope=self.config.scope)
        result = resolver.resolve(registry, policies)
        return AnalysisResult(result=result, catalog=catalog, artifacts=outcomes, warnings=warnings)

    def _load(self, path: Path) -> ArtifactOutcome:
        try:
            return load_artifact(path, self.config)
        except BadSignatureError as exc:
            return _skipped(path, ArtifactKind.BINARY, exc)
        except MalformedXmlError as exc:
            kind = ArtifactKind.HTML if path.suffix.lower() in (".htm", ".html") else ArtifactKind.XML
            return _skipped(path, kind, exc)

    def _collect(self, future, path) -> ArtifactOutcome:
        try:
            return future.result()
        except OSError as exc:
            raise ResolutionError(f"Cannot read {path}: {exc}") from exc
        except GPODepsError as exc:
            raise ResolutionError(f"{path}: {exc}") from exc


def run_analysis(artifacts: Sequence[Path], config: AnalysisConfig) -> AnalysisResult:
    return Analysis(config).run(artifacts)
