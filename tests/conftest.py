import pytest

from payload_noise import PayloadNoise

SECRET = "k"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    # keep a developer's .env or exported variables out of the tests
    for var in ("PAYLOAD_NOISE_KEY", "PAYLOAD_NOISE_MAX_AGE_MS", "PAYLOAD_NOISE_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def noise():
    return PayloadNoise(SECRET)
