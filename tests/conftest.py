import sys
from pathlib import Path

import pytest

# Ensure the `tripplaces` package is importable when running pytest from the repository root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from tripplaces.core.config import Settings  # noqa: E402


@pytest.fixture
def settings():
    return Settings(google_api_key="test-key", quota_retry_delay=0.0)


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
