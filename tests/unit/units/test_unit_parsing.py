from __future__ import annotations

from pathlib import Path

from fixdpr.units import build_unit_cache, load_unit_file, parse_unit_name, parse_unit_uses


def _write_unit(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path.resolve()


def test_unit_name_ignores_comments_and_strings() -> None:
    text = "{ unit Fake; }\n// unit Other;\nconst S = 'unit Wrong';\nunit Real.Name;\n"

    assert parse_unit_name(text) == "Real.Name"


def test_unit_name_missing_returns_none() -> None:
    assert parse_unit_name("program Demo;\nbegin\nend.\n") is None


def test_uses_collects_interface_and_implementation_clauses() -> None:
    text = "\n".join(
        [
            "unit Sample;",
            "interface",
            "uses",
            "  SysUtils, {$IFDEF DEBUG} DebugUnit, {$ENDIF}",
            "  Vcl.Forms in '..\\shared\\Vcl.Forms.pas',",
            "  (* comment *) Classes;",
            "implementation",
            "uses Helpers;",
            "end.",
        ]
    )

    assert parse_unit_uses(text) == ["SysUtils", "DebugUnit", "Vcl.Forms", "Classes", "Helpers"]


def test_uses_before_interface_is_ignored() -> None:
    text = "unit Sample;\n// uses Hidden;\ninterface\nuses Visible;\nend.\n"

    assert parse_unit_uses(text) == ["Visible"]


def test_include_fragment_inside_uses_clause_is_expanded(tmp_path: Path) -> None:
    (tmp_path / "extra.inc").write_text("UnitX,\n  UnitY,\n", encoding="utf-8")
    unit_path = _write_unit(
        tmp_path / "Sample.pas",
        "unit Sample;\ninterface\nuses\n  UnitA,\n  {$I extra.inc}\n  UnitB;\nend.\n",
    )
    warnings: list[str] = []

    record = load_unit_file(unit_path, warnings)

    assert record is not None
    assert record.uses == ("UnitA", "UnitX", "UnitY", "UnitB")
    assert warnings == []


def test_self_including_fragment_warns_about_cycle(tmp_path: Path) -> None:
    (tmp_path / "loop.inc").write_text("UnitX, {$I loop.inc}\n", encoding="utf-8")
    unit_path = _write_unit(
        tmp_path / "Sample.pas",
        "unit Sample;\ninterface\nuses {$I loop.inc} UnitB;\nend.\n",
    )
    warnings: list[str] = []

    record = load_unit_file(unit_path, warnings)

    assert record is not None
    assert record.uses == ("UnitX", "UnitB")
    assert any("include cycle detected" in warning for warning in warnings)


def test_missing_unit_statement_falls_back_to_filename_stem(tmp_path: Path) -> None:
    unit_path = _write_unit(tmp_path / "Orphan.pas", "interface\nuses SysUtils;\nend.\n")
    warnings: list[str] = []

    record = load_unit_file(unit_path, warnings)

    assert record is not None
    assert record.name == "Orphan"
    assert warnings == [f"warning: fallback to filename stem for unit name: {unit_path}"]


def test_unreadable_unit_warns_and_returns_none(tmp_path: Path) -> None:
    warnings: list[str] = []

    assert load_unit_file(tmp_path / "Missing.pas", warnings) is None
    assert warnings[0].startswith("warning: failed to read unit ")


def test_duplicate_unit_names_share_one_ambiguous_bucket(tmp_path: Path) -> None:
    first = _write_unit(tmp_path / "a" / "Common.pas", "unit Common;\nend.\n")
    second = _write_unit(tmp_path / "b" / "Common.pas", "unit common;\nend.\n")
    unique = _write_unit(tmp_path / "Single.pas", "unit Single;\nend.\n")

    cache = build_unit_cache([first, second, unique], [])

    assert cache.by_name["common"] == [first, second]
    assert cache.is_ambiguous("COMMON")
    assert not cache.is_ambiguous("Single")
    assert len(cache) == 3
