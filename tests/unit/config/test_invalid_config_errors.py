from __future__ import annotations

from pathlib import Path

import pytest

from fixdpr.config import load_effective_config


def test_invalid_list_type_raises_value_error(tmp_path: Path) -> None:
    (tmp_path / "fixdpr.toml").write_text('[scan]\nsearch_paths = "src"\n', encoding="utf-8")

    with pytest.raises(ValueError, match="scan.search_paths"):
        load_effective_config(tmp_path)


def test_non_string_list_item_raises_value_error(tmp_path: Path) -> None:
    (tmp_path / "fixdpr.toml").write_text("[fallback]\ndelphi_versions = [22]\n", encoding="utf-8")

    with pytest.raises(ValueError, match="fallback.delphi_versions"):
        load_effective_config(tmp_path)


def test_invalid_bool_raises_value_error(tmp_path: Path) -> None:
    (tmp_path / "fixdpr.toml").write_text(
        '[edit]\nadd_introduced_dependencies = "no"\n', encoding="utf-8"
    )

    with pytest.raises(ValueError, match="edit.add_introduced_dependencies"):
        load_effective_config(tmp_path)


def test_invalid_section_type_raises_value_error(tmp_path: Path) -> None:
    (tmp_path / "fixdpr.toml").write_text('report = "loud"\n', encoding="utf-8")

    with pytest.raises(ValueError, match="section 'report'"):
        load_effective_config(tmp_path)


def test_malformed_toml_raises_value_error(tmp_path: Path) -> None:
    (tmp_path / "fixdpr.toml").write_text("[scan\n", encoding="utf-8")

    with pytest.raises(ValueError, match="not valid TOML"):
        load_effective_config(tmp_path)
