from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
TRANSFORMS = ROOT / "transforms"


@pytest.fixture
def transforms_dir():
    return TRANSFORMS


@pytest.fixture
def variables_file(tmp_path):
    path = tmp_path / "vars.yaml"
    path.write_text(
        "name: kyle\n"
        "twitter: getify\n"
        "classname: es6 workshop\n",
        encoding="utf-8",
    )
    return path
