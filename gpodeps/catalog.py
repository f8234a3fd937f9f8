from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional
from xml.etree import ElementTree as ET

from .errors import CatalogError, CatalogWarning, LocaleNotFoundError, MalformedXmlError
from .models import DisplayString, PolicyDefinition, normalize_key
from .xmlutil import findall_by_localname, get_attr, is_named, load_xml, local_name


LOG = logging.getLogger(__name__)

DEFINITION_SUFFIX = ".admx"
STRINGS_SUFFIX = ".adml"

_STRING_REF = re.compile(r"\$\(\s*string\.([^)\s]+)\s*\)")


def value_names_match(definition_value: Optional[str], setting_value: Optional[str]) -> bool:
    if not definition_value and not setting_value:
        return True
    return definition_value == setting_value


def strings_name_for(template_file: Path) -> str:
    return template_file.stem + STRINGS_SUFFIX


@dataclass
class _Fragment:
    path: Path
    definitions: list[PolicyDefinition] = field(default_factory=list)
    strings: list[DisplayString] = field(default_factory=list)
    warning: Optional[CatalogWarning] = None


def _raw_entry(elem: ET.Element) -> str:
    tag = local_name(elem.tag)
    attrs = "".join(f' {local_name(k)}="{v}"' for k, v in elem.attrib.items())
    return f"<{tag}{attrs}>{''.join(elem.itertext())}</{tag}>"


def _string_ref(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    m = _STRING_REF.search(value)
    return m.group(1) if m else None


def _element_value_names(policy: ET.Element) -> tuple[str, ...]:
    names: list[str] = []
    for child in list(policy):
        if not is_named(child, "elements"):
            continue
        for elem in child.iter():
            vn = get_attr(elem, "valueName")
            if vn and elem is not child and vn not in names:
                names.append(vn)
    return tuple(names)


def _parse_definition_file(path: Path) -> _Fragment:
    fragment = _Fragment(path=path)
    try:
        root = load_xml(path)
    except (MalformedXmlError, OSError) as exc:
        fragment.warning = CatalogWarning(kind="MalformedXml", path=path, message=str(exc))
        return fragment

    for policy in findall_by_localname(root, "policy"):
        key = get_attr(policy, "key")
        policy_id = get_attr(policy, "name")
        if not key or not policy_id:
            continue
        category = None
        for child in list(policy):
            if is_named(child, "parentCategory"):
                category = get_attr(child, "ref")
                break
        fragment.definitions.append(
            PolicyDefinition(
                policy_id=policy_id,
                registry_key=key,
                value_name=get_attr(policy, "valueName") or None,
                source_file=path,
                policy_class=get_attr(policy, "class"),
                category=category,
                display_ref=_string_ref(get_attr(policy, "displayName")),
                element_value_names=_element_value_names(policy),
            )
        )
    LOG.debug("%s: %d policies", path.name, len(fragment.definitions))
    return fragment


def _parse_strings_file(path: Path, locale: str) -> _Fragment:
    fragment = _Fragment(path=path)
    try:
        root = load_xml(path)
    except (MalformedXmlError, OSError) as exc:
        fragment.warning = CatalogWarning(kind="MalformedXml", path=path, message=str(exc))
        return fragment

    for elem in findall_by_localname(root, "string"):
        string_id = get_attr(elem, "id")
        if not string_id:
            continue
        fragment.strings.append(
            DisplayString(
                string_id=string_id,
                locale=locale,
                text="".join(elem.itertext()).strip(),
                source_file=path,
                raw=_raw_entry(elem),
            )
        )
    return fragment


def _files_with_suffix(directory: Path, suffix: str) -> list[Path]:
    files = [p for p in directory.iterdir() if p.is_file() and p.suffix.lower() == suffix]
    return sorted(files, key=lambda p: (p.name.casefold(), p.name))


def find_locale_dir(template_root: Path, locale: str) -> Optional[Path]:
    exact = template_root / locale
    if exact.is_dir():
        return exact
    for candidate in sorted(template_root.iterdir()):
        if candidate.is_dir() and candidate.name.lower() == locale.lower():
            return candidate
    return None


class TemplateCatalogIndex:
    """Read-only index over a PolicyDefinitions-style directory.

    Definitions are looked up by case-insensitive registry key; value names
    compare case-sensitively. Display strings are keyed by ``(string id, locale)``.
    Instances are not mutated after :meth:`build` returns.
    """

    def __init__(
        self,
        template_root: Path,
        locale: str,
        locale_dir: Path,
        definitions: Iterable[PolicyDefinition],
        strings: Iterable[DisplayString],
        warnings: Iterable[CatalogWarning] = (),
    ):
        self.template_root = template_root
        self.locale = locale
        self.locale_dir = locale_dir
        self._definitions = tuple(definitions)
        self._by_key: dict[str, list[PolicyDefinition]] = {}
        for definition in self._definitions:
            self._by_key.setdefault(definition.normalized_key, []).append(definition)

        self._strings: dict[tuple[str, str], DisplayString] = {}
        self._strings_by_file: dict[tuple[str, str], DisplayString] = {}
        for ds in strings:
            self._strings.setdefault((ds.string_id, ds.locale), ds)
            self._strings_by_file.setdefault((ds.source_file.stem.casefold(), ds.string_id), ds)

        self._policy_names: dict[str, str] = {}
        for definition in self._definitions:
            self._policy_names.setdefault(definition.policy_id, self.display_name(definition))
        self.warnings = tuple(warnings)

    @classmethod
    def build(cls, template_root: Path, locale: str = "en-US", workers: Optional[int] = None) -> "TemplateCatalogIndex":
        root = Path(template_root)
        if not root.is_dir():
            raise CatalogError(f"Template root not found: {root}")
        locale_dir = find_locale_dir(root, locale)
        if locale_dir is None:
            raise LocaleNotFoundError(root, locale)

        admx_files = _files_with_suffix(root, DEFINITION_SUFFIX)
        adml_files = _files_with_suffix(locale_dir, STRINGS_SUFFIX)

        with ThreadPoolExecutor(max_workers=workers) as pool:
            definition_fragments = list(pool.map(_parse_definition_file, admx_files))
            string_fragments = list(pool.map(lambda p: _parse_strings_file(p, locale), adml_files))

        warnings: list[CatalogWarning] = []
        definitions: list[PolicyDefinition] = []
        strings: list[DisplayString] = []
        for fragment in definition_fragments + string_fragments:
            if fragment.warning is not None:
                LOG.warning("Skipping %s: %s", fragment.path.name, fragment.warning.message)
                warnings.append(fragment.warning)
            definitions.extend(fragment.definitions)
            strings.extend(fragment.strings)

        present = {p.name.casefold() for p in adml_files}
        for admx in admx_files:
            if strings_name_for(admx).casefold() not in present:
                warnings.append(
                    CatalogWarning(
                        kind="MissingStrings",
                        path=admx,
                        message=f"No {strings_name_for(admx)} in {locale_dir.name}",
                    )
                )

        if not definitions:
            LOG.warning("Template catalog at %s contains no policy definitions", root)
            warnings.append(CatalogWarning(kind="CatalogEmpty", path=root, message="No policy definitions found"))

        LOG.info(
            "Catalog built: %d definitions from %d files, %d strings for %s",
            len(definitions),
            len(admx_files),
            len(strings),
            locale,
        )
        return cls(root, locale, locale_dir, definitions, strings, warnings)

    def __len__(self) -> int:
        return len(self._definitions)

    @property
    def is_empty(self) -> bool:
        return not self._definitions

    @property
    def definitions(self) -> tuple[PolicyDefinition, ...]:
        return self._definitions

    @property
    def policy_names(self) -> dict[str, str]:
        return dict(self._policy_names)

    def keys(self) -> list[str]:
        return list(self._by_key)

    def definitions_for_key(self, normalized: str) -> list[PolicyDefinition]:
        return list(self._by_key.get(normalized, ()))

    def lookup(self, registry_key: str, value_name: Optional[str] = None) -> list[PolicyDefinition]:
        return [
            d
            for d in self._by_key.get(normalize_key(registry_key), ())
            if value_names_match(d.value_name, value_name) or (value_name and value_name in d.element_value_names)
        ]

    def string(self, string_id: str) -> Optional[DisplayString]:
        return self._strings.get((string_id, self.locale))

    def display_string(self, definition: PolicyDefinition) -> Optional[DisplayString]:
        stem = definition.source_file.stem.casefold()
        for ref in (definition.display_ref, definition.policy_id):
            if not ref:
                continue
            found = self._strings_by_file.get((stem, ref)) or self._strings.get((ref, self.locale))
            if found is not None:
                return found
        return None

    def display_name(self, definition: PolicyDefinition) -> str:
        ds = self.display_string(definition)
        return ds.text if ds is not None and ds.text else definition.policy_id

    def strings_file_for(self, template_file: Path) -> Path:
        return self.locale_dir / strings_name_for(template_file)
