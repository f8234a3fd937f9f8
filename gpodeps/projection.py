from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .models import (
    DependencyMatch,
    PolicySetting,
    PolicyState,
    RegistrySetting,
    ResolutionResult,
    Scope,
    SettingSource,
    UnmatchedSetting,
)


MATCH_COLUMNS = ("Scope", "SettingName", "State", "Category", "TemplateFile", "StringsFile", "PolicyId", "Source")
UNMATCHED_COLUMNS = ("Source", "Scope", "SettingName", "State", "Category", "RegistryKey", "ValueName", "ValueType")
FILE_COLUMNS = ("FileName", "FileType", "Status", "Path")

STATUS_PRESENT = "Present"
STATUS_MISSING = "Missing"


@dataclass(frozen=True)
class MatchRow:
    scope: str
    setting_name: str
    state: str
    category: Optional[str]
    template_file: str
    strings_file: str
    policy_id: str
    source: str

    def as_dict(self) -> dict[str, Optional[str]]:
        return dict(zip(MATCH_COLUMNS, (
            self.scope,
            self.setting_name,
            self.state,
            self.category,
            self.template_file,
            self.strings_file,
            self.policy_id,
            self.source,
        )))


@dataclass(frozen=True)
class UnmatchedRow:
    source: str
    scope: str
    setting_name: str
    state: str
    category: Optional[str]
    registry_key: Optional[str]
    value_name: Optional[str]
    value_type: Optional[str]

    def as_dict(self) -> dict[str, Optional[str]]:
        return dict(zip(UNMATCHED_COLUMNS, (
            self.source,
            self.scope,
            self.setting_name,
            self.state,
            self.category,
            self.registry_key,
            self.value_name,
            self.value_type,
        )))


@dataclass(frozen=True)
class FileRow:
    file_name: str
    file_type: str
    status: str
    path: str

    def as_dict(self) -> dict[str, str]:
        return dict(zip(FILE_COLUMNS, (self.file_name, self.file_type, self.status, self.path)))


@dataclass
class ProjectedReport:
    matches: list[MatchRow] = field(default_factory=list)
    unmatched: list[UnmatchedRow] = field(default_factory=list)
    files: list[FileRow] = field(default_factory=list)

    @property
    def missing_files(self) -> list[FileRow]:
        return [f for f in self.files if f.status == STATUS_MISSING]


class ReportProjection:
    """Shape a :class:`ResolutionResult` into rows for reporting.

    File status is re-checked on disk every time :meth:`project` runs.
    """

    def project(self, result: ResolutionResult) -> ProjectedReport:
        report = ProjectedReport()
        report.matches = [self._match_row(m) for m in result.matches]
        report.unmatched = [self._unmatched_row(u) for u in result.unmatched]
        report.files = self._file_rows(result)
        return report

    def _match_row(self, match: DependencyMatch) -> MatchRow:
        setting = match.setting
        if isinstance(setting, PolicySetting):
            name = setting.raw_name
            state = setting.state.value
        else:
            name = match.display_name
            state = PolicyState.UNKNOWN.value
        return MatchRow(
            scope=match.scope.value,
            setting_name=name,
            state=state,
            category=match.category,
            template_file=match.template_file.name,
            strings_file=match.strings_file.name,
            policy_id=match.policy_id,
            source=match.source.value,
        )

    def _unmatched_row(self, item: UnmatchedSetting) -> UnmatchedRow:
        setting = item.setting
        if isinstance(setting, RegistrySetting):
            return UnmatchedRow(
                source=SettingSource.REGISTRY.value,
                scope=Scope.UNKNOWN.value,
                setting_name=setting.display_name,
                state=PolicyState.UNKNOWN.value,
                category=None,
                registry_key=setting.key,
                value_name=setting.value_name,
                value_type=setting.type_name,
            )
        return UnmatchedRow(
            source=SettingSource.REPORT.value,
            scope=setting.scope.value,
            setting_name=setting.raw_name,
            state=setting.state.value,
            category=setting.category,
            registry_key=None,
            value_name=None,
            value_type=None,
        )

    def _file_rows(self, result: ResolutionResult) -> list[FileRow]:
        # a template row is only usable when its string table is on disk too
        companions = {p.stem.casefold(): p for p in result.required_strings_files}
        rows: list[FileRow] = []
        seen: set[tuple[str, str]] = set()
        for file_type, paths in (("ADMX", result.required_template_files), ("ADML", result.required_strings_files)):
            for path in paths:
                marker = (file_type, path.name.casefold())
                if marker in seen:
                    continue
                seen.add(marker)
                present = _exists(path)
                companion = companions.get(path.stem.casefold())
                if file_type == "ADMX" and companion is not None:
                    present = present and _exists(companion)
                rows.append(
                    FileRow(
                        file_name=path.name,
                        file_type=file_type,
                        status=STATUS_PRESENT if present else STATUS_MISSING,
                        path=str(path),
                    )
                )
        return rows


def _exists(path: Path) -> bool:
    try:
        return path.is_file()
    except OSError:
        return False
