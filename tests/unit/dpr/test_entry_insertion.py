from __future__ import annotations

from pathlib import Path

import pytest

from fixdpr.dpr import insert_new_unit, parse_dpr_uses, write_atomic
from fixdpr.units import UnitRecord


def _insert(tmp_path: Path, text: str, unit_rel: str, insert_after: int | None = None) -> str:
    dpr_path = tmp_path / "Demo.dpr"
    data = text.encode("utf-8")
    dpr_path.write_bytes(data)
    uses = parse_dpr_uses(dpr_path, data, [])
    assert uses is not None
    unit = UnitRecord(name=Path(unit_rel).stem, path=tmp_path / unit_rel)

    insert_new_unit(data, dpr_path, uses, unit, insert_after)
    return dpr_path.read_bytes().decode("utf-8")


def test_single_line_append_before_semicolon(tmp_path: Path) -> None:
    result = _insert(tmp_path, "program Demo;\nuses UnitA in 'UnitA.pas';\n", "NewUnit.pas")

    assert result == "program Demo;\nuses UnitA in 'UnitA.pas', NewUnit in 'NewUnit.pas';\n"


def test_multiline_append_uses_indent_and_line_ending(tmp_path: Path) -> None:
    text = "program Demo;\r\n\r\nuses\r\n  UnitA in 'UnitA.pas';\r\n\r\nbegin\r\nend.\r\n"

    result = _insert(tmp_path, text, "NewUnit.pas")

    assert result == (
        "program Demo;\r\n\r\nuses\r\n  UnitA in 'UnitA.pas',\r\n"
        "  NewUnit in 'NewUnit.pas';\r\n\r\nbegin\r\nend.\r\n"
    )


def test_semicolon_on_its_own_line_stays_there(tmp_path: Path) -> None:
    text = "program Demo;\nuses\n  UnitA in 'UnitA.pas'\n  ;\n"

    result = _insert(tmp_path, text, "NewUnit.pas")

    assert result == (
        "program Demo;\nuses\n  UnitA in 'UnitA.pas',\n  NewUnit in 'NewUnit.pas'\n  ;\n"
    )


def test_insert_after_anchor_in_multiline_clause(tmp_path: Path) -> None:
    text = "program Demo;\nuses\n  UnitA in 'UnitA.pas',\n  UnitB in 'UnitB.pas';\n"

    result = _insert(tmp_path, text, "NewUnit.pas", insert_after=0)

    assert result == (
        "program Demo;\nuses\n  UnitA in 'UnitA.pas',\n  NewUnit in 'NewUnit.pas',\n"
        "  UnitB in 'UnitB.pas';\n"
    )


def test_insert_after_anchor_in_single_line_clause(tmp_path: Path) -> None:
    text = "program Demo;\nuses UnitA, UnitB;\n"

    result = _insert(tmp_path, text, "NewUnit.pas", insert_after=0)

    assert result == "program Demo;\nuses UnitA, NewUnit in 'NewUnit.pas', UnitB;\n"


def test_anchor_on_last_entry_falls_back_to_append(tmp_path: Path) -> None:
    text = "program Demo;\nuses UnitA, UnitB;\n"

    result = _insert(tmp_path, text, "NewUnit.pas", insert_after=1)

    assert result == "program Demo;\nuses UnitA, UnitB, NewUnit in 'NewUnit.pas';\n"


def test_existing_forward_slash_convention_is_reused(tmp_path: Path) -> None:
    text = "program Demo;\nuses UnitA in 'lib/UnitA.pas';\n"

    result = _insert(tmp_path, text, "lib/sub/NewUnit.pas")

    assert "NewUnit in 'lib/sub/NewUnit.pas'" in result


def test_backslash_is_default_and_wins_over_mixed_separators(tmp_path: Path) -> None:
    plain = _insert(tmp_path, "program Demo;\nuses UnitA;\n", "lib/NewUnit.pas")
    assert "NewUnit in 'lib\\NewUnit.pas'" in plain

    mixed = _insert(
        tmp_path,
        "program Demo;\nuses A in 'x/A.pas', B in 'y\\B.pas';\n",
        "lib/NewUnit.pas",
    )
    assert "NewUnit in 'lib\\NewUnit.pas'" in mixed


def test_bytes_outside_insertion_are_untouched(tmp_path: Path) -> None:
    text = "program Démo; { ünïcode }\nuses UnitA;\nbegin\n  Writeln('ça va');\nend.\n"

    result = _insert(tmp_path, text, "NewUnit.pas")

    assert result == text.replace("uses UnitA;", "uses UnitA, NewUnit in 'NewUnit.pas';")


def test_write_atomic_replaces_contents_and_leaves_no_temp_file(tmp_path: Path) -> None:
    target = tmp_path / "Demo.dpr"
    target.write_bytes(b"old")

    write_atomic(target, b"new")

    assert target.read_bytes() == b"new"
    assert not (tmp_path / "Demo.dpr.tmp").exists()


def test_write_atomic_replaces_existing_target_when_rename_refuses(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    target = tmp_path / "Demo.dpr"
    target.write_bytes(b"old")
    original_rename = Path.rename
    calls: list[Path] = []

    def rename_once_refused(self: Path, destination: Path) -> Path:
        calls.append(self)
        if len(calls) == 1:
            raise FileExistsError(destination)
        return original_rename(self, destination)

    monkeypatch.setattr(Path, "rename", rename_once_refused)

    write_atomic(target, b"new")

    assert target.read_bytes() == b"new"
    assert len(calls) == 2
    assert not (tmp_path / "Demo.dpr.tmp").exists()


def test_crlf_multiline_clause_keeps_forward_slashes_and_round_trips(tmp_path: Path) -> None:
    text = (
        "program Demo;\r\nuses\r\n  Foo,\r\n  Bar in 'lib/Bar.pas',\r\n  Baz;\r\n"
        "begin\r\nend.\r\n"
    )

    result = _insert(tmp_path, text, "sub/NewUnit.pas")

    assert result == text.replace("  Baz;", "  Baz,\r\n  NewUnit in 'sub/NewUnit.pas';")
    reparsed = parse_dpr_uses(tmp_path / "Demo.dpr", result.encode("utf-8"), [])
    assert reparsed is not None
    assert [(entry.name, entry.in_path) for entry in reparsed.entries] == [
        ("Foo", None),
        ("Bar", "lib/Bar.pas"),
        ("Baz", None),
        ("NewUnit", "sub/NewUnit.pas"),
    ]
