import pytest

from subtune import errors

from fakes import Rig


@pytest.fixture(autouse=True)
def error_log(tmp_path, monkeypatch):
    """Keep structured error entries out of the real cache directory."""
    log = tmp_path / "errors.log"
    monkeypatch.setattr(errors, "OUTPUT_DIR", tmp_path)
    monkeypatch.setattr(errors, "ERRORS_LOG", log)
    return log


@pytest.fixture
def rig():
    return Rig()
