from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Union
from xml.etree import ElementTree as ET

from bs4 import BeautifulSoup

from .models import PolicySetting, PolicyState, Scope
from .xmlutil import (
    child_text,
    findall_by_localname,
    get_attr,
    get_attr_ci,
    is_named,
    load_xml,
    read_text_file,
    safe_str,
)


LOG = logging.getLogger(__name__)

EXTENSION_TYPE_MARKERS = ("registrysettings", "administrative templates")

# Applied in order; each cuts the text at the marker's first occurrence.
BOILERPLATE_MARKERS = (
    "Enabled",
    "Disabled",
    "Not Configured",
    "This policy setting",
    "The policy",
    "If you",
    "At least",
    "Administrative Templates/",
    "Windows Components/",
    "System/",
)

_CONFIG_HEADING = re.compile(r"\b(Computer|User)\s+Configuration\b", re.IGNORECASE)


class ExtractionStrategy(str, Enum):
    STRICT = "strict"
    POLICY_TEXT = "heuristic-attribute-missing"
    NAMED_NODE = "heuristic-any-named-node"
    HTML_TABLE = "html-table"
    NONE = "none"


@dataclass
class ExtractionOutcome:
    strategy: ExtractionStrategy
    settings: list[PolicySetting] = field(default_factory=list)


def clean_policy_text(text: str) -> str:
    lines = [ln.strip() for ln in text.splitlines() if ln.strip()]
    if not lines:
        return ""
    name = lines[0]
    for marker in BOILERPLATE_MARKERS:
        idx = name.find(marker)
        if idx >= 0:
            name = name[:idx]
    return " ".join(name.split())


def _root_of(document: Union[ET.Element, ET.ElementTree]) -> ET.Element:
    if isinstance(document, ET.ElementTree):
        return document.getroot()
    return document


def _extension_matches(ext: ET.Element) -> bool:
    ext_type = (get_attr_ci(ext, "type") or "").lower()
    return any(marker in ext_type for marker in EXTENSION_TYPE_MARKERS)


def _policy_field(policy: ET.Element, name: str) -> Optional[str]:
    return safe_str(get_attr(policy, name)) or child_text(policy, name)


def extract_strict(root: ET.Element) -> list[PolicySetting]:
    settings: list[PolicySetting] = []
    seen: set[int] = set()
    for scope in (Scope.COMPUTER, Scope.USER):
        for scope_root in findall_by_localname(root, scope.value):
            for ext in scope_root.iter():
                if not is_named(ext, "Extension") or id(ext) in seen:
                    continue
                seen.add(id(ext))
                if not _extension_matches(ext):
                    continue
                for policy in list(ext):
                    if not is_named(policy, "Policy"):
                        continue
                    name = _policy_field(policy, "Name")
                    if not name:
                        continue
                    settings.append(
                        PolicySetting(
                            scope=scope,
                            raw_name=name,
                            state=PolicyState.parse(_policy_field(policy, "State")),
                            category=_policy_field(policy, "Category"),
                            supported=_policy_field(policy, "Supported"),
                        )
                    )
    return settings


def extract_policy_text(root: ET.Element) -> list[PolicySetting]:
    settings: list[PolicySetting] = []
    for policy in findall_by_localname(root, "Policy"):
        name = clean_policy_text("".join(policy.itertext()))
        if name:
            settings.append(PolicySetting(scope=Scope.UNKNOWN, raw_name=name))
    return settings


def extract_named_nodes(root: ET.Element) -> list[PolicySetting]:
    settings: list[PolicySetting] = []
    for elem in root.iter():
        name = safe_str(get_attr(elem, "Name"))
        if name:
            settings.append(PolicySetting(scope=Scope.UNKNOWN, raw_name=name))
    return settings


class PolicyReportExtractor:
    """Pull administrative-template settings out of a GPO report.

    XML reports go through an ordered strategy chain; the first strategy with a
    non-empty result wins and nothing is merged across strategies.
    """

    chain: tuple[tuple[ExtractionStrategy, Callable[[ET.Element], list[PolicySetting]]], ...] = (
        (ExtractionStrategy.STRICT, extract_strict),
        (ExtractionStrategy.POLICY_TEXT, extract_policy_text),
        (ExtractionStrategy.NAMED_NODE, extract_named_nodes),
    )

    def extract(self, document: Union[ET.Element, ET.ElementTree]) -> list[PolicySetting]:
        return self.extract_with_provenance(document).settings

    def extract_with_provenance(self, document: Union[ET.Element, ET.ElementTree]) -> ExtractionOutcome:
        root = _root_of(document)
        for strategy, func in self.chain:
            settings = func(root)
            if settings:
                LOG.info("Report extraction strategy '%s' yielded %d settings", strategy.value, len(settings))
                return ExtractionOutcome(strategy=strategy, settings=settings)
            LOG.debug("Report extraction strategy '%s' yielded nothing", strategy.value)
        LOG.info("No report extraction strategy yielded settings")
        return ExtractionOutcome(strategy=ExtractionStrategy.NONE)

    def extract_file(self, path: Path) -> ExtractionOutcome:
        return self.extract_with_provenance(load_xml(Path(path)))

    def extract_html(self, soup: BeautifulSoup) -> ExtractionOutcome:
        settings: list[PolicySetting] = []
        for table in soup.find_all("table"):
            rows = [tr for tr in table.find_all("tr") if tr.find_parent("table") is table]
            if len(rows) < 2:
                continue
            header = [c.get_text(" ", strip=True).lower() for c in rows[0].find_all(["th", "td"])]
            if "policy" not in header or "setting" not in header:
                continue
            name_col = header.index("policy")
            state_col = header.index("setting")
            scope = self._html_scope(table)
            category = self._html_category(table)
            for row in rows[1:]:
                cells = [c for c in row.find_all(["td", "th"]) if c.find_parent("tr") is row]
                if len(cells) <= max(name_col, state_col):
                    continue
                name = safe_str(cells[name_col].get_text(" ", strip=True))
                if not name:
                    continue
                settings.append(
                    PolicySetting(
                        scope=scope,
                        raw_name=name,
                        state=PolicyState.parse(next(cells[state_col].stripped_strings, None)),
                        category=category,
                    )
                )
        strategy = ExtractionStrategy.HTML_TABLE if settings else ExtractionStrategy.NONE
        LOG.info("Report extraction strategy '%s' yielded %d settings", strategy.value, len(settings))
        return ExtractionOutcome(strategy=strategy, settings=settings)

    def extract_html_file(self, path: Path) -> ExtractionOutcome:
        raw_content = read_text_file(Path(path), encodings=("utf-8", "utf-16"))
        return self.extract_html(BeautifulSoup(raw_content, "html.parser"))

    def _html_scope(self, table) -> Scope:
        for text in table.find_all_previous(string=_CONFIG_HEADING):
            m = _CONFIG_HEADING.search(text)
            if m:
                return Scope.COMPUTER if m.group(1).lower() == "computer" else Scope.USER
        return Scope.UNKNOWN

    def _html_category(self, table) -> Optional[str]:
        for span in table.find_all_previous("span", class_="sectionTitle"):
            text = safe_str(span.get_text(" ", strip=True))
            if not text or _CONFIG_HEADING.search(text):
                return None
            if "/" in text or text.lower() not in {"policies", "administrative templates"}:
                return text
        return None
