"""Tests for the ADMX/ADML catalog index."""

from pathlib import Path

import pytest

from gpodeps.catalog import TemplateCatalogIndex, value_names_match
from gpodeps.errors import CatalogError, LocaleNotFoundError

from builders import ADMX_NS, CHROME_ADMX, CHROME_ADML


def _kinds(catalog: TemplateCatalogIndex) -> list[str]:
    return [w.kind for w in catalog.warnings]


def test_build_loads_definitions_and_strings(catalog_root: Path) -> None:
    catalog = TemplateCatalogIndex.build(catalog_root, "en-US")

    assert len(catalog) == 3
    assert {d.policy_id for d in catalog.definitions} == {
        "DefaultSearchProviderEnabled",
        "HomepageLocation",
        "AutoUpdateCfg",
    }
    assert catalog.locale_dir == catalog_root / "en-US"
    assert catalog.warnings == ()


def test_category_only_file_is_not_an_error(catalog_root: Path) -> None:
    catalog = TemplateCatalogIndex.build(catalog_root, "en-US")
    assert not any(d.source_file.name == "Categories.admx" for d in catalog.definitions)
    assert "MalformedXml" not in _kinds(catalog)


def test_lookup_key_is_case_insensitive(catalog_root: Path) -> None:
    catalog = TemplateCatalogIndex.build(catalog_root, "en-US")
    found = catalog.lookup("SOFTWARE\\policies\\google\\CHROME", "DefaultSearchProviderEnabled")
    assert [d.policy_id for d in found] == ["DefaultSearchProviderEnabled"]


def test_lookup_value_name_is_case_sensitive(catalog_root: Path) -> None:
    catalog = TemplateCatalogIndex.build(catalog_root, "en-US")
    assert catalog.lookup("Software\\Policies\\Google\\Chrome", "defaultsearchproviderenabled") == []


def test_lookup_without_value_name_matches_keyless_definitions(catalog_root: Path) -> None:
    catalog = TemplateCatalogIndex.build(catalog_root, "en-US")
    found = catalog.lookup("Software\\Policies\\Google\\Chrome", None)
    assert [d.policy_id for d in found] == ["HomepageLocation"]


def test_lookup_element_value_name(catalog_root: Path) -> None:
    catalog = TemplateCatalogIndex.build(catalog_root, "en-US")
    found = catalog.lookup("Software\\Policies\\Google\\Chrome", "HomepageLocation")
    assert [d.policy_id for d in found] == ["HomepageLocation"]


def test_value_names_match() -> None:
    assert value_names_match(None, "")
    assert value_names_match("", None)
    assert value_names_match("A", "A")
    assert not value_names_match("A", "a")
    assert not value_names_match(None, "A")
    assert not value_names_match("A", None)


def test_display_names(catalog_root: Path) -> None:
    catalog = TemplateCatalogIndex.build(catalog_root, "en-US")
    by_id = {d.policy_id: d for d in catalog.definitions}

    assert catalog.display_name(by_id["AutoUpdateCfg"]) == "Configure Automatic Updates"
    assert catalog.policy_names["DefaultSearchProviderEnabled"] == "Enable the default search provider"
    assert by_id["AutoUpdateCfg"].category == "WindowsUpdateCat"
    assert by_id["AutoUpdateCfg"].policy_class == "Machine"
    assert catalog.string("googlechrome").text == "Google Chrome"


def test_display_name_falls_back_to_policy_id(catalog_root: Path) -> None:
    (catalog_root / "en-US" / "chrome.adml").write_text(
        CHROME_ADML.replace('id="HomepageLocation"', 'id="Unrelated"'), encoding="utf-8"
    )
    catalog = TemplateCatalogIndex.build(catalog_root, "en-US")
    homepage = next(d for d in catalog.definitions if d.policy_id == "HomepageLocation")
    assert catalog.display_name(homepage) == "HomepageLocation"


def test_string_ids_are_scoped_to_their_companion(catalog_root: Path) -> None:
    other_admx = CHROME_ADMX.replace("Google\\Chrome", "Other\\Browser")
    (catalog_root / "aaa_other.admx").write_text(other_admx, encoding="utf-8")
    (catalog_root / "en-US" / "aaa_other.adml").write_text(
        CHROME_ADML.replace("Enable the default search provider", "Other browser search"), encoding="utf-8"
    )
    catalog = TemplateCatalogIndex.build(catalog_root, "en-US")

    names = {
        d.source_file.name: catalog.display_name(d)
        for d in catalog.definitions
        if d.policy_id == "DefaultSearchProviderEnabled"
    }
    assert names == {
        "aaa_other.admx": "Other browser search",
        "chrome.admx": "Enable the default search provider",
    }


def test_missing_locale_is_fatal(catalog_root: Path) -> None:
    with pytest.raises(LocaleNotFoundError):
        TemplateCatalogIndex.build(catalog_root, "de-DE")


def test_missing_root_is_fatal(tmp_path: Path) -> None:
    with pytest.raises(CatalogError):
        TemplateCatalogIndex.build(tmp_path / "nope", "en-US")


def test_locale_directory_case_is_tolerated(catalog_root: Path) -> None:
    (catalog_root / "en-US").rename(catalog_root / "en-us")
    catalog = TemplateCatalogIndex.build(catalog_root, "en-US")
    assert catalog.locale_dir.name == "en-us"
    assert len(catalog) == 3


def test_malformed_definition_is_skipped(catalog_root: Path) -> None:
    (catalog_root / "broken.admx").write_text("<policyDefinitions><policies>", encoding="utf-8")
    catalog = TemplateCatalogIndex.build(catalog_root, "en-US")

    assert len(catalog) == 3
    malformed = [w for w in catalog.warnings if w.kind == "MalformedXml"]
    assert [w.path.name for w in malformed] == ["broken.admx"]
    assert "MissingStrings" in _kinds(catalog)


def test_malformed_strings_file_is_skipped(catalog_root: Path) -> None:
    (catalog_root / "en-US" / "x.adml").write_text("<policyDefinitionResources><resources>", encoding="utf-8")
    catalog = TemplateCatalogIndex.build(catalog_root, "en-US")

    malformed = [w for w in catalog.warnings if w.kind == "MalformedXml"]
    assert [w.path.name for w in malformed] == ["x.adml"]
    assert len(catalog) == 3
    by_id = {d.policy_id: d for d in catalog.definitions}
    assert catalog.display_name(by_id["AutoUpdateCfg"]) == "Configure Automatic Updates"
    assert catalog.display_name(by_id["DefaultSearchProviderEnabled"]) == "Enable the default search provider"


def test_empty_catalog_is_a_warning(tmp_path: Path) -> None:
    (tmp_path / "en-US").mkdir()
    catalog = TemplateCatalogIndex.build(tmp_path, "en-US")
    assert catalog.is_empty
    assert _kinds(catalog) == ["CatalogEmpty"]


def test_definitions_below_first_level_are_ignored(catalog_root: Path) -> None:
    nested = catalog_root / "archive"
    nested.mkdir()
    (nested / "old.admx").write_text(
        f'<policyDefinitions xmlns="{ADMX_NS}"><policies>'
        '<policy name="Old" class="Machine" key="Software\\Old" valueName="X"/>'
        "</policies></policyDefinitions>",
        encoding="utf-8",
    )
    catalog = TemplateCatalogIndex.build(catalog_root, "en-US")
    assert "Old" not in {d.policy_id for d in catalog.definitions}


def test_build_is_deterministic(catalog_root: Path) -> None:
    first = TemplateCatalogIndex.build(catalog_root, "en-US", workers=1)
    second = TemplateCatalogIndex.build(catalog_root, "en-US", workers=4)
    assert first.definitions == second.definitions
