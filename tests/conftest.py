import pytest

from harmonybridge import InferredState, PowerSample


@pytest.fixture
def samples():
    """Build newest-first PowerSamples from a list of wattages."""

    def build(*powers: float) -> list[PowerSample]:
        return [PowerSample(power=p) for p in powers]

    return build


@pytest.fixture
def on() -> InferredState:
    return InferredState.ON


@pytest.fixture
def off() -> InferredState:
    return InferredState.OFF


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: marks tests as unit tests")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "slow: marks tests as slow running (real threads and sleeps)")
