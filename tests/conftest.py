import os
import sys
import tempfile
from pathlib import Path

# Create temp directory for tests before any imports that might initialize runtime
_test_tmp_dir = tempfile.mkdtemp(prefix="chirpy_test_")
ROOT = Path(__file__).resolve().parent.parent

os.environ.setdefault("TEST_MODE", "true")
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-testing-only-do-not-use-in-production")
os.environ.setdefault("POLKA_API_KEY", "test-polka-key")
os.environ.setdefault("DATABASE_PATH", os.path.join(_test_tmp_dir, "database.json"))
os.environ.setdefault("STATIC_ROOT", str(ROOT / "static"))

import pytest  # noqa: E402

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from chirpy.service.runtime import reset_runtime_for_tests  # noqa: E402


def _clear_database() -> None:
    try:
        os.remove(os.environ["DATABASE_PATH"])
    except FileNotFoundError:
        pass


@pytest.fixture(autouse=True)
def reset_runtime_state():
    _clear_database()
    reset_runtime_for_tests()
    yield
    _clear_database()
    reset_runtime_for_tests()
