import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault('APP_ENV', 'test')
os.environ.setdefault('SUPABASE_URL', 'https://example.supabase.co')
os.environ.setdefault('SUPABASE_SERVICE_KEY', 'x')
os.environ.setdefault('INTEGRATOR_API_URL', 'https://integrator.test')
os.environ.setdefault('QUEUE_DRAIN_ENABLED', 'false')

from tests.fakes import InMemoryStore, ScriptedIntegrator  # noqa: E402


@pytest.fixture
def store():
    return InMemoryStore(max_concurrent=8)


@pytest.fixture
def upstream():
    return ScriptedIntegrator()
