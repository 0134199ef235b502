"""
Pytest configuration and shared fixtures
"""
import pytest
from fastapi.testclient import TestClient
from pathlib import Path
import sys
import os

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment variables before importing app
os.environ["STORAGE_TYPE"] = "memory"
os.environ.setdefault("GEMINI_API_KEY", "test-key")

import main  # noqa: E402
from swapnet.credentials import CredentialStore  # noqa: E402
from swapnet.library import SavedModelLibrary  # noqa: E402
from swapnet.models import ImageAsset  # noqa: E402
from swapnet.orchestrator import StudioOrchestrator  # noqa: E402
from swapnet.storage import MemoryKeyValueStore  # noqa: E402


@pytest.fixture
def sample_image_bytes():
    """Create sample image bytes for testing"""
    from PIL import Image as PILImage  # type: ignore
    import io

    img = PILImage.new("RGB", (64, 64), color=(255, 255, 255))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def make_asset(sample_image_bytes):
    def _make(asset_id=None):
        return ImageAsset.from_bytes(sample_image_bytes, "image/png", asset_id=asset_id)
    return _make


@pytest.fixture
def memory_store():
    return MemoryKeyValueStore()


@pytest.fixture
def credentials(memory_store):
    store = CredentialStore(memory_store, env_vars=("SWAPNET_TEST_UNSET_KEY",))
    store.set("test-key")
    return store


@pytest.fixture
def orchestrator(credentials):
    return StudioOrchestrator(credentials, max_attempts=3, base_delay=0.0)


@pytest.fixture
def client(monkeypatch):
    """Test client with fresh in-memory state and no retry delays."""
    storage = MemoryKeyValueStore()
    creds = CredentialStore(storage)
    monkeypatch.setattr(main, "storage", storage)
    monkeypatch.setattr(main, "credentials", creds)
    monkeypatch.setattr(main, "library", SavedModelLibrary(storage))
    monkeypatch.setattr(main, "orchestrator", StudioOrchestrator(creds, base_delay=0.0))
    return TestClient(main.app)
