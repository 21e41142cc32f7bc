from pathlib import Path

import pytest

RESOURCES = Path(__file__).parent / "resources"


@pytest.fixture
def complete_gpx_path():
    return RESOURCES / "complete.gpx"


@pytest.fixture
def complete_gpx(complete_gpx_path):
    return complete_gpx_path.read_text(encoding="utf-8")
