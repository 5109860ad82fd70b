from __future__ import annotations

from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def isolated_template_dirs(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Point user template directories at empty temporary locations."""
    monkeypatch.setenv("HSMSCTL_TEMPLATES_DIR", str(tmp_path / "templates"))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    return tmp_path
