"""Pytest configuration and fixtures."""

import pytest
from pathlib import Path

from modsplit import debug


@pytest.fixture
def fixtures_dir() -> Path:
    """Return path to test fixtures directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def packed_bundle(fixtures_dir: Path) -> str:
    """Return contents of the System.register bundle sample."""
    return (fixtures_dir / "packed_bundle.js").read_text(encoding="utf-8")


@pytest.fixture
def scrambled_switch(fixtures_dir: Path) -> str:
    """Return contents of the array-permutation dispatch sample."""
    return (fixtures_dir / "scrambled_switch.js").read_text(encoding="utf-8")


@pytest.fixture
def register_code() -> str:
    """Return two registration calls around some plain code."""
    return """var before = 1;
System.register("src/a.js", [], function () { return { execute: function () {} }; });
System.register("src/b.js", [], function () {
  return {};
});
var after = 2;
"""


@pytest.fixture(autouse=True)
def reset_debug_logger():
    """Keep the module-level debug logger from leaking between tests."""
    yield
    debug.close_debug_logger()
