from __future__ import annotations

from pathlib import Path

import pytest

from quill.config import Settings


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(_env_file=None, api_key="test-key", workspace=tmp_path, max_round_trips=5)
