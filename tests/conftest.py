from __future__ import annotations

import pytest


@pytest.fixture(autouse=True)
def run_background_jobs_inline(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FIVEWHY_TEST_MODE", "on")


@pytest.fixture(autouse=True)
def isolate_from_deployment_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "FIVEWHY_STATE_DIR",
        "FIVEWHY_LLM_PROVIDER",
        "FIVEWHY_LLM_API_KEY",
        "FIVEWHY_LLM_BASE_URL",
        "FIVEWHY_LLM_MODEL",
        "FIVEWHY_REDIS_URL",
        "FIVEWHY_VECTOR_STORE_PATH",
        "FIVEWHY_EMBEDDING_MODEL",
        "FIVEWHY_EMBEDDING_DIM",
        "FIVEWHY_LOG_TO_FILE",
        "FIVEWHY_HTTP_RETRIES",
        "FIVEWHY_HTTP_TIMEOUT_S",
    ):
        monkeypatch.delenv(name, raising=False)
