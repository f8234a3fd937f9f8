from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Optional, Sequence

from .catalog import TemplateCatalogIndex, value_names_match
from .models import (
    DependencyMatch,
    PolicyDefinition,
    PolicySetting,
    RegistrySetting,
    ResolutionResult,
    Scope,
    SettingSource,
    UnmatchedSetting,
    normalize_key,
)


LOG = logging.getLogger(__name__)


def _segments(normalized: str) -> list[str]:
    return [s for s in normalized.split("\\") if s]


def _is_subsequence(short: list[str], long: list[str]) -> bool:
    it = iter(long)
    return all(seg in it for seg in short)


def keys_overlap(a: str, b: str) -> bool:
    """Bidirectional containment between two normalized registry keys.

    Plain substring containment either way, or one key's path segments
    appearing in order within the other's.
    """
    if not a or not b:
        return False
    if a in b or b in a:
        return True
    sa, sb = _segments(a), _segments(b)
    if len(sa) <= len(sb):
        return _is_subsequence(sa, sb)
    return _is_subsequence(sb, sa)


def _dedup_by_name(paths: Sequence[Path]) -> list[Path]:
    unique: dict[str, Path] = {}
    for p in paths:
        unique.setdefault(p.name.casefold(), p)
    return [unique[k] for k in sorted(unique)]


class DependencyResolver:
    def __init__(self, catalog: TemplateCatalogIndex, workers: Optional[int] = None, scope: Optional[Scope] = None):
        self.catalog = catalog
        self.workers = workers
        self.scope = scope

    def resolve(self, registry: Sequence[RegistrySetting], policies: Sequence[PolicySetting]) -> ResolutionResult:
        jobs = [(SettingSource.REGISTRY, i, s) for i, s in enumerate(registry)]
        jobs += [(SettingSource.REPORT, i, s) for i, s in enumerate(policies)]

        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            outcomes = list(pool.map(lambda job: self._resolve_one(*job), jobs))

        order = {SettingSource.REGISTRY: 0, SettingSource.REPORT: 1}
        result = ResolutionResult(locale=self.catalog.locale)
        for (source, index, setting), found in sorted(zip(jobs, outcomes), key=lambda pair: (order[pair[0][0]], pair[0][1])):
            if found:
                result.matches.extend(found)
            else:
                result.unmatched.append(UnmatchedSetting(source=source, input_index=index, setting=setting))

        result.required_template_files = _dedup_by_name([m.template_file for m in result.matches])
        result.required_strings_files = _dedup_by_name([m.strings_file for m in result.matches])
        LOG.info(
            "Resolved %d settings: %d matches, %d unmatched, %d template files",
            len(jobs),
            len(result.matches),
            len(result.unmatched),
            len(result.required_template_files),
        )
        return result

    def _resolve_one(self, source: SettingSource, index: int, setting) -> list[DependencyMatch]:
        if source is SettingSource.REGISTRY:
            definitions = self.match_registry(setting)
        else:
            definitions = self.match_policy(setting)
        return [self._to_match(d, source, index, setting) for d in definitions]

    def match_registry(self, setting: RegistrySetting) -> list[PolicyDefinition]:
        wanted = normalize_key(setting.key)
        value_name = setting.target_value_name
        matched: list[PolicyDefinition] = []
        for key in self.catalog.keys():
            if not keys_overlap(key, wanted):
                continue
            for definition in self.catalog.definitions_for_key(key):
                if value_names_match(definition.value_name, value_name) or (
                    value_name and value_name in definition.element_value_names
                ):
                    matched.append(definition)
        return matched

    def match_policy(self, setting: PolicySetting) -> list[PolicyDefinition]:
        needle = setting.raw_name.strip().casefold()
        if not needle:
            return []
        matched: list[PolicyDefinition] = []
        for definition in self.catalog.definitions:
            ds = self.catalog.display_string(definition)
            if ds is None:
                continue
            if needle in ds.text.casefold() or needle in ds.raw.casefold():
                matched.append(definition)
        return matched

    def _to_match(self, definition: PolicyDefinition, source: SettingSource, index: int, setting) -> DependencyMatch:
        if source is SettingSource.REGISTRY:
            scope = self.scope or definition.scope
            value_name = setting.value_name
        else:
            scope = setting.scope if setting.scope is not Scope.UNKNOWN else definition.scope
            value_name = definition.value_name or ""
        return DependencyMatch(
            template_file=definition.source_file,
            strings_file=self.catalog.strings_file_for(definition.source_file),
            policy_id=definition.policy_id,
            display_name=self.catalog.display_name(definition),
            registry_key=definition.registry_key,
            value_name=value_name,
            source=source,
            input_index=index,
            setting=setting,
            category=getattr(setting, "category", None) or definition.category,
            scope=scope,
        )


def resolve(
    registry: Sequence[RegistrySetting],
    policies: Sequence[PolicySetting],
    catalog: TemplateCatalogIndex,
    workers: Optional[int] = None,
) -> ResolutionResult:
    return DependencyResolver(catalog, workers=workers).resolve(registry, policies)
