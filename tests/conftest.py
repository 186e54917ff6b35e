from __future__ import annotations

from pathlib import Path

import pytest

from imagine.config import Settings, settings


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    return settings.model_copy(
        update={
            "target_url": "https://example.test/imagine",
            "prompt_suffix": "--v 7",
            "max_retries": 2,
            "retry_backoff_seconds": 30.0,
            "max_images": 4,
            "cookies_path": str(tmp_path / "cookies.json"),
        }
    )
