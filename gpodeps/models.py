from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Union


REG_NONE = 0
REG_SZ = 1
REG_EXPAND_SZ = 2
REG_BINARY = 3
REG_DWORD = 4
REG_DWORD_BIG_ENDIAN = 5
REG_LINK = 6
REG_MULTI_SZ = 7
REG_QWORD = 11

REG_TYPE_NAMES = {
    REG_NONE: "REG_NONE",
    REG_SZ: "REG_SZ",
    REG_EXPAND_SZ: "REG_EXPAND_SZ",
    REG_BINARY: "REG_BINARY",
    REG_DWORD: "REG_DWORD",
    REG_DWORD_BIG_ENDIAN: "REG_DWORD_BIG_ENDIAN",
    REG_LINK: "REG_LINK",
    REG_MULTI_SZ: "REG_MULTI_SZ",
    REG_QWORD: "REG_QWORD",
}

DIRECTIVE_PREFIXES = ("**del.", "**delvals.", "**deletevalues", "**deletekeys", "**secureempty")
DELETE_PREFIX = "**del."


class Scope(str, Enum):
    COMPUTER = "Computer"
    USER = "User"
    UNKNOWN = "Unknown"


class PolicyState(str, Enum):
    ENABLED = "Enabled"
    DISABLED = "Disabled"
    NOT_CONFIGURED = "NotConfigured"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "PolicyState":
        if not value:
            return cls.UNKNOWN
        v = "".join(value.split()).lower()
        if v == "enabled":
            return cls.ENABLED
        if v == "disabled":
            return cls.DISABLED
        if v == "notconfigured":
            return cls.NOT_CONFIGURED
        return cls.UNKNOWN


class SettingSource(str, Enum):
    """Which input kind produced a match; registry matches carry higher confidence."""

    REGISTRY = "Registry"
    REPORT = "Report"


def normalize_key(key: str) -> str:
    return key.strip().strip("\\").casefold()


def _decode_sz(data: bytes) -> str:
    text = data.decode("utf-16-le", errors="replace")
    return text.split("\x00", 1)[0]


@dataclass(frozen=True)
class RegistrySetting:
    key: str
    value_name: str
    value_type: int
    data: bytes
    offset: int = 0

    @property
    def type_name(self) -> str:
        return REG_TYPE_NAMES.get(self.value_type, f"REG_UNKNOWN({self.value_type})")

    @property
    def is_directive(self) -> bool:
        lowered = self.value_name.lower()
        return any(lowered.startswith(p) for p in DIRECTIVE_PREFIXES)

    @property
    def target_value_name(self) -> str:
        if self.value_name.lower().startswith(DELETE_PREFIX):
            return self.value_name[len(DELETE_PREFIX):]
        return self.value_name

    @property
    def value(self) -> Union[str, int, list[str], bytes]:
        t = self.value_type
        if t in (REG_SZ, REG_EXPAND_SZ):
            return _decode_sz(self.data)
        if t == REG_MULTI_SZ:
            text = self.data.decode("utf-16-le", errors="replace")
            return [part for part in text.split("\x00") if part]
        if t == REG_DWORD and len(self.data) >= 4:
            return struct.unpack_from("<I", self.data)[0]
        if t == REG_DWORD_BIG_ENDIAN and len(self.data) >= 4:
            return struct.unpack_from(">I", self.data)[0]
        if t == REG_QWORD and len(self.data) >= 8:
            return struct.unpack_from("<Q", self.data)[0]
        return self.data

    @property
    def display_name(self) -> str:
        return f"{self.key}\\{self.value_name}" if self.value_name else self.key


@dataclass(frozen=True)
class PolicySetting:
    scope: Scope
    raw_name: str
    state: PolicyState = PolicyState.UNKNOWN
    category: Optional[str] = None
    supported: Optional[str] = None


@dataclass(frozen=True)
class PolicyDefinition:
    policy_id: str
    registry_key: str
    value_name: Optional[str]
    source_file: Path
    policy_class: Optional[str] = None
    category: Optional[str] = None
    display_ref: Optional[str] = None
    element_value_names: tuple[str, ...] = ()

    @property
    def normalized_key(self) -> str:
        return normalize_key(self.registry_key)

    @property
    def scope(self) -> Scope:
        cls = (self.policy_class or "").lower()
        if cls == "machine":
            return Scope.COMPUTER
        if cls == "user":
            return Scope.USER
        return Scope.UNKNOWN


@dataclass(frozen=True)
class DisplayString:
    string_id: str
    locale: str
    text: str
    source_file: Path
    raw: str = ""


Setting = Union[RegistrySetting, PolicySetting]


@dataclass(frozen=True)
class DependencyMatch:
    template_file: Path
    strings_file: Path
    policy_id: str
    display_name: str
    registry_key: str
    value_name: str
    source: SettingSource
    input_index: int
    setting: Setting
    category: Optional[str] = None
    scope: Scope = Scope.UNKNOWN


@dataclass(frozen=True)
class UnmatchedSetting:
    source: SettingSource
    input_index: int
    setting: Setting


@dataclass
class ResolutionResult:
    required_template_files: list[Path] = field(default_factory=list)
    required_strings_files: list[Path] = field(default_factory=list)
    matches: list[DependencyMatch] = field(default_factory=list)
    unmatched: list[UnmatchedSetting] = field(default_factory=list)
    locale: str = ""

    def matches_from(self, source: SettingSource) -> list[DependencyMatch]:
        return [m for m in self.matches if m.source is source]
