from pathlib import Path

import pytest

from builders import CATEGORIES_ADMX, CHROME_ADML, CHROME_ADMX, WU_ADML, WU_ADMX


@pytest.fixture()
def catalog_root(tmp_path: Path) -> Path:
    """Create a small PolicyDefinitions store with an en-US locale folder."""
    root = tmp_path / "PolicyDefinitions"
    locale = root / "en-US"
    locale.mkdir(parents=True)
    (root / "chrome.admx").write_text(CHROME_ADMX, encoding="utf-8")
    (root / "WindowsUpdate.admx").write_text(WU_ADMX, encoding="utf-8")
    (root / "Categories.admx").write_text(CATEGORIES_ADMX, encoding="utf-8")
    (locale / "chrome.adml").write_text(CHROME_ADML, encoding="utf-8")
    (locale / "WindowsUpdate.adml").write_text(WU_ADML, encoding="utf-8")
    categories_adml = WU_ADML.replace("AutoUpdateCfg_Title", "WindowsComponents").replace(
        "Configure Automatic Updates", "Windows Components"
    )
    (locale / "Categories.adml").write_text(categories_adml, encoding="utf-8")
    return root
