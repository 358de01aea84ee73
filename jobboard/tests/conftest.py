"""
Pytest configuration for the jobboard tests.

Why: Force AnyIO to use the asyncio backend, make test helpers importable and
reset the process-wide collaborators so no test sees another test's store,
ledger or sessions.
"""
import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[2]
TESTS_DIR = REPO_ROOT / "jobboard" / "tests"
for p in (str(REPO_ROOT), str(TESTS_DIR)):
    if p not in sys.path:
        sys.path.insert(0, p)

_ENV_VARS = (
    "JOBBOARD_ENV",
    "JOBBOARD_TRUST_PROXY",
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "SUPABASE_REWRITE_SIGNED_URL_HOST",
    "SUPABASE_FALLBACK_STORAGE3",
    "LOCAL_OBJECT_STORE_ROOT",
    "POLICY_LEDGER_BACKEND",
    "DATABASE_URL",
    "AUTO_CREATE_STORAGE_BUCKETS",
    "REQUIRE_UPLOAD_VERIFY",
    "OBJECT_STORAGE_BUCKET",
    "PROFILE_IMAGE_MAX_UPLOAD_BYTES",
    "RESUME_MAX_UPLOAD_BYTES",
    "REQUIREMENT_MAX_UPLOAD_BYTES",
    "UPLOAD_GRANT_TTL_SECONDS",
    "OBJECT_STORE_TIMEOUT_SECONDS",
    "OBJECT_STREAM_CHUNK_BYTES",
)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _isolate_env_and_wiring(monkeypatch):
    """Start every test from dev defaults with in-memory backends."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    from jobboard.web import dependencies

    dependencies.reset_for_tests()
    yield
    dependencies.reset_for_tests()
