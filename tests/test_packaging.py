from __future__ import annotations

from pathlib import Path

from setuptools import find_packages

ROOT = Path(__file__).resolve().parent.parent


def test_every_module_directory_is_a_discoverable_package():
    packages = set(find_packages(where=str(ROOT), include=["apix_gateway*"]))

    expected = {
        ".".join(path.relative_to(ROOT).parts)
        for path in (ROOT / "apix_gateway").rglob("*")
        if path.is_dir() and path.name != "__pycache__" and any(path.glob("*.py"))
    }
    assert "apix_gateway" in expected
    assert expected <= packages
