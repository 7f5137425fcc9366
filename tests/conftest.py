import os
import tempfile
from io import BytesIO

_MEDIA_ROOT = tempfile.mkdtemp(prefix="assetforge-tests-")
os.environ["APP_DATABASE_URL"] = "sqlite://"
os.environ["APP_MEDIA_ROOT"] = _MEDIA_ROOT
os.environ["APP_API_KEY"] = "test-key"
os.environ["APP_SWEEPER_INTERVAL_SECONDS"] = "0"
os.environ["APP_WORKFLOW_ENGINE_URL"] = ""
os.environ["APP_PROMPT_ENHANCER_URL"] = ""

import pytest  # noqa: E402

from assetforge.core.database import Base, SessionLocal, engine  # noqa: E402
import assetforge.models.base  # noqa: E402,F401
from assetforge.models.product import Product, Version  # noqa: E402
from assetforge.services.media_storage import LegacyStorage, MediaStorage, StorageBackends  # noqa: E402
from assetforge.services.side_effects import LifecycleHooks  # noqa: E402


class RecordingNotifications:
    def __init__(self):
        self.finalized = []

    def asset_finalized(self, asset_id):
        self.finalized.append(asset_id)


class RecordingDiagnostics:
    def __init__(self):
        self.events = []

    def capture_exception(self, distinct_id, message, name, properties):
        self.events.append({"distinct_id": distinct_id, "message": message, "name": name, **properties})


class FakeWorkflowEngine:
    def __init__(self, error=None):
        self.error = error
        self.started = []

    def start(self, definition, payload, completion_route, context):
        if self.error is not None:
            raise self.error
        workflow_id = f"wf-{len(self.started) + 1}"
        self.started.append(
            {
                "definition": definition,
                "payload": payload,
                "completion_route": completion_route,
                "context": context,
                "workflow_id": workflow_id,
            }
        )
        return workflow_id


@pytest.fixture()
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def storage(tmp_path):
    return StorageBackends(
        objects=MediaStorage(tmp_path / "objects", "https://cdn.test"),
        legacy=LegacyStorage(tmp_path / "legacy", "https://legacy.test"),
    )


@pytest.fixture()
def notifications():
    return RecordingNotifications()


@pytest.fixture()
def diagnostics():
    return RecordingDiagnostics()


@pytest.fixture()
def hooks(notifications, diagnostics):
    return LifecycleHooks(notifications=notifications, diagnostics=diagnostics)


@pytest.fixture()
def version(db):
    product = Product(name="Trail Runner", owner_id="user-1")
    db.add(product)
    db.flush()
    version = Version(product_id=product.id, name="v1")
    db.add(version)
    db.commit()
    return version


@pytest.fixture()
def stored_key(storage):
    def _store(content=b"png-bytes", suffix=".png"):
        return storage.objects.save_bytes("acme", "image", BytesIO(content), suffix)

    return _store
