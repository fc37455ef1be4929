import os
import sys
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

# Ensure the repository root (which contains the ``planner`` package) is on
# ``sys.path`` so tests run without installing the project.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

os.environ.setdefault("STORE_BACKEND", "memory")

# Prevent boto3 from attempting network calls when modules import DynamoDB
import boto3

class _DummyTable:
    def __getattr__(self, item):
        def _dummy(*args, **kwargs):
            return None
        return _dummy


class _DummyResource:
    def Table(self, name):
        return _DummyTable()

boto3.resource = lambda *args, **kwargs: _DummyResource()

from planner import schedule_router


@pytest.fixture(autouse=True)
def _reset_engine_registry():
    schedule_router.registry.clear()
    yield
    schedule_router.registry.clear()


def create_test_client() -> TestClient:
    app = FastAPI()
    app.include_router(schedule_router.router)
    return TestClient(app)
