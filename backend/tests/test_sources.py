"""
Every module under pettycash/ compiles without warnings (invalid escapes and the like).
"""

import pathlib
import warnings

import pytest

import pettycash


PACKAGE_ROOT = pathlib.Path(pettycash.__file__).parent


@pytest.mark.parametrize(
    "path",
    sorted(PACKAGE_ROOT.rglob("*.py")),
    ids=lambda p: str(p.relative_to(PACKAGE_ROOT)),
)
def test_compiles_without_warnings(path):
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        compile(path.read_text(encoding="utf-8"), str(path), "exec")
