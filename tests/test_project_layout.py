from __future__ import annotations

from pathlib import Path


def test_required_package_paths_exist() -> None:
    root = Path(__file__).resolve().parents[1]
    required = [
        "src/fixdpr/cli.py",
        "src/fixdpr/__main__.py",
        "src/fixdpr/config.py",
        "src/fixdpr/delphi.py",
        "src/fixdpr/pascal/__init__.py",
        "src/fixdpr/units/__init__.py",
        "src/fixdpr/dpr/__init__.py",
        "src/fixdpr/index/__init__.py",
        "src/fixdpr/logging/__init__.py",
    ]
    for rel in required:
        assert (root / rel).exists(), rel
