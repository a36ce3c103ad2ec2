import os

import pytest

# Loggers attach their handlers at import time.
os.environ.setdefault("PANTRYWATCH_LOG_TO_FILE", "0")


@pytest.fixture(autouse=True)
def _no_waits(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PANTRYWATCH_WAIT_MULTIPLIER", "0")
    monkeypatch.delenv("PANTRYWATCH_DEBUG_SCREENSHOTS", raising=False)
    for name in ("PANTRYWATCH_REGION_CODE", "SCRAPE_DELAY_MS", "DATABASE_URL", "PANTRYWATCH_JOB_TIMEOUT_S"):
        monkeypatch.delenv(name, raising=False)
