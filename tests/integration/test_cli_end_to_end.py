from __future__ import annotations

import io
import json
from pathlib import Path

import pytest

from fixdpr.cli import main


def _unit(root: Path, name: str, uses: list[str]) -> Path:
    path = root / f"{name}.pas"
    path.parent.mkdir(parents=True, exist_ok=True)
    clause = f"uses {', '.join(uses)};\n" if uses else ""
    path.write_text(f"unit {name};\ninterface\n{clause}implementation\nend.\n", encoding="utf-8")
    return path


def _dpr(path: Path, entries: list[str]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    body = ",\n  ".join(entries)
    path.write_text(f"program {path.stem};\n\nuses\n  {body};\n\nbegin\nend.\n", encoding="utf-8")
    return path


@pytest.fixture()
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    return tmp_path


def _run(argv: list[str]) -> tuple[int, str]:
    out = io.StringIO()
    code = main(argv, out=out)
    return code, out.getvalue()


def test_new_dependency_path_updates_matching_projects(workspace: Path) -> None:
    src = workspace / "src"
    _unit(src, "UnitA", ["NewUnit"])
    _unit(src, "NewUnit", [])
    _unit(src, "Other", [])
    app = _dpr(src / "app" / "App.dpr", ["UnitA in '..\\UnitA.pas'"])
    tool = _dpr(src / "tool" / "Tool.dpr", ["Other in '..\\Other.pas'"])
    tool_before = tool.read_bytes()

    code, output = _run(["--search-path", "src", "--new-dependency", "src/NewUnit.pas"])

    assert code == 0
    assert "NewUnit in '..\\NewUnit.pas'" in app.read_text("utf-8")
    assert tool.read_bytes() == tool_before
    assert "New dependency: NewUnit" in output
    assert "  pas scanned: 3" in output
    assert "  dpr scanned: 2" in output
    assert "  dpr updated: 1" in output
    assert "  dpr unchanged: 1" in output
    assert "  dpr failures: 0" in output
    assert "Updated dpr files (1):\n  app/App.dpr" in output.replace("\\", "/")


def test_new_dependency_by_unit_name(workspace: Path) -> None:
    _unit(workspace / "src", "UnitA", ["NewUnit"])
    _unit(workspace / "src", "NewUnit", [])
    app = _dpr(workspace / "src" / "App.dpr", ["UnitA in 'UnitA.pas'"])

    code, _ = _run(["--search-path", "src", "--new-dependency", "NewUnit"])

    assert code == 0
    assert "NewUnit in 'NewUnit.pas'" in app.read_text("utf-8")


def test_unknown_unit_name_is_an_invocation_error(
    workspace: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    _unit(workspace / "src", "UnitA", [])

    code, _ = _run(["--search-path", "src", "--new-dependency", "Missing"])

    assert code == 2
    assert "--new-dependency unit not found: Missing" in capsys.readouterr().err


def test_ambiguous_unit_name_is_an_invocation_error(
    workspace: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    _unit(workspace / "src" / "a", "Twin", [])
    _unit(workspace / "src" / "b", "Twin", [])

    code, _ = _run(["--search-path", "src", "--new-dependency", "Twin"])

    assert code == 2
    assert "--new-dependency unit is ambiguous: Twin" in capsys.readouterr().err


def test_missing_dependency_file_is_an_invocation_error(
    workspace: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    (workspace / "src").mkdir()

    code, output = _run(["--search-path", "src", "--new-dependency", "src/Nope.pas"])

    assert code == 2
    assert output == ""
    assert "--new-dependency path not found" in capsys.readouterr().err


def test_unmatched_search_path_is_an_invocation_error(
    workspace: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    _unit(workspace, "NewUnit", [])

    code, _ = _run(["--search-path", "missing", "--new-dependency", "NewUnit.pas"])

    assert code == 2
    assert "did not match any directories" in capsys.readouterr().err


def test_modes_are_mutually_exclusive(workspace: Path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main(["--new-dependency", "A", "--fix-dpr", "B.dpr"], out=io.StringIO())

    assert excinfo.value.code == 2


def test_per_file_failure_sets_exit_status_one(workspace: Path) -> None:
    _unit(workspace / "src", "NewUnit", [])
    (workspace / "src" / "Broken.dpr").write_text("program Broken;\nbegin\nend.\n", "utf-8")

    code, output = _run(
        ["--search-path", "src", "--new-dependency", "src/NewUnit.pas", "--show-warnings"]
    )

    assert code == 1
    assert "  dpr failures: 1" in output
    assert "Warnings list:" in output
    assert "warning: no uses list found in" in output


def test_ignored_projects_are_reported_as_infos(workspace: Path) -> None:
    _unit(workspace / "src", "UnitA", ["NewUnit"])
    _unit(workspace / "src", "NewUnit", [])
    legacy = _dpr(workspace / "src" / "legacy" / "Old.dpr", ["UnitA in '..\\UnitA.pas'"])
    before = legacy.read_bytes()

    code, output = _run(
        [
            "--search-path",
            "src",
            "--new-dependency",
            "NewUnit",
            "--ignore-dpr",
            "src/legacy/*.dpr",
            "--show-infos",
        ]
    )

    assert code == 0
    assert legacy.read_bytes() == before
    assert "  dpr ignored: 1" in output
    assert "info: ignored dpr" in output


def test_fix_dpr_defaults_search_path_to_project_folder(workspace: Path) -> None:
    project = workspace / "project"
    _unit(project, "UnitA", ["UnitB"])
    _unit(project, "UnitB", ["UnitC"])
    _unit(project, "UnitC", [])
    dpr = _dpr(project / "Project.dpr", ["UnitA in 'UnitA.pas'"])

    code, output = _run(["--fix-dpr", "project/Project.dpr"])

    assert code == 0
    assert (
        "  UnitA in 'UnitA.pas',\n  UnitB in 'UnitB.pas',\n  UnitC in 'UnitC.pas';"
        in dpr.read_text("utf-8")
    )
    assert "  dpr updated: 1" in output

    second_code, second_output = _run(["--fix-dpr", "project/Project.dpr"])

    assert second_code == 0
    assert "  dpr updated: 0" in second_output


def test_fix_dpr_uses_delphi_path_fallback(workspace: Path) -> None:
    _unit(workspace / "project", "UnitA", ["VendorUnit"])
    _unit(workspace / "vendor", "VendorUnit", [])
    dpr = _dpr(workspace / "project" / "Project.dpr", ["UnitA in 'UnitA.pas'"])

    code, output = _run(
        ["--fix-dpr", "project/Project.dpr", "--search-path", "project", "--delphi-path", "vendor"]
    )

    assert code == 0
    assert "Delphi fallback roots (1):" in output
    assert "VendorUnit in '..\\vendor\\VendorUnit.pas'" in dpr.read_text("utf-8")


def test_fix_dpr_rejects_non_project_file(
    workspace: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    _unit(workspace, "UnitA", [])

    code, _ = _run(["--fix-dpr", "UnitA.pas"])

    assert code == 2
    assert "--fix-dpr must point to a .dpr file" in capsys.readouterr().err


def test_config_file_and_run_log(workspace: Path) -> None:
    _unit(workspace / "src", "UnitA", ["NewUnit"])
    _unit(workspace / "src", "NewUnit", [])
    _dpr(workspace / "src" / "App.dpr", ["UnitA in 'UnitA.pas'"])
    (workspace / "fixdpr.toml").write_text(
        '[scan]\nsearch_paths = ["src"]\n\n[report]\naudit_log = "logs/run.jsonl"\n',
        encoding="utf-8",
    )

    code, _ = _run(["--new-dependency", "NewUnit"])

    assert code == 0
    lines = (workspace / "logs" / "run.jsonl").read_text(encoding="utf-8").splitlines()
    event = json.loads(lines[-1])
    assert event["mode"] == "new-dependency"
    assert event["target"] == "NewUnit"
    assert event["ok"] is True
    assert event["exit_code"] == 0
    assert event["metadata"]["dpr_updated"] == 1
    assert event["metadata"]["config"]["scan"]["search_paths"] == ["src"]


def test_invalid_config_file_is_an_invocation_error(
    workspace: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    (workspace / "fixdpr.toml").write_text('[scan]\nsearch_paths = "src"\n', encoding="utf-8")

    code, _ = _run(["--new-dependency", "NewUnit"])

    assert code == 2
    assert "scan.search_paths" in capsys.readouterr().err
