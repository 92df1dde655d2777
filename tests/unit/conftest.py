"""Fixtures for writing throwaway test trees."""

import textwrap
from collections.abc import Callable
from pathlib import Path

import pytest

type WriteTests = Callable[[str, str], Path]


@pytest.fixture
def write_tests(tmp_path: Path) -> WriteTests:
    """Write a dedented test file under tmp_path and return its path."""

    def write(relative: str, source: str) -> Path:
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(source))
        return path

    return write
