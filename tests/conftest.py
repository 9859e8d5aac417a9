"""
Shared pytest fixtures - in‑memory SQLite, fake collaborators, FastAPI TestClient.
"""
import os
import tempfile

_TMP = tempfile.mkdtemp(prefix="quotecompare-tests-")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("DATA_DIR", _TMP)
os.environ.setdefault("UPLOAD_DIR", os.path.join(_TMP, "uploads"))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.clients.extraction import ExtractionResult  # noqa: E402
from app.database import Base  # noqa: E402
from app.models import ComparisonModel  # noqa: E402,F401  - register model
from app.main import app  # noqa: E402
from app.routers import comparisons as comparisons_router  # noqa: E402
from app.schemas import ExtractionPayload, SourceFile  # noqa: E402
from app.services import ChangeNotifier, ComparisonRepository, LifecycleController  # noqa: E402

# StaticPool ensures all connections share the same in-memory database
_ENGINE = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_Session = sessionmaker(autocommit=False, autoflush=False, bind=_ENGINE)


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------

STEEL_PLATES = {
    "items": [
        {"item_name": "Steel Plates", "vendor_a_price": 1250, "vendor_b_price": 1180, "vendor_c_price": 1350, "unit": "ton"},
    ],
    "vendors": [
        {"name": "Acme Metals", "contact": "sales@acme.example"},
        {"name": "Bolt Supply"},
        {"name": "Crown Steel"},
    ],
}


class FakeExtractor:
    def __init__(self):
        self.calls = []
        self.result = ExtractionResult.ok(ExtractionPayload.model_validate(STEEL_PLATES))
        self.error = None
        self.on_extract = None

    def set_payload(self, data):
        self.result = ExtractionResult.ok(ExtractionPayload.model_validate(data))

    def extract(self, documents):
        self.calls.append(list(documents))
        if self.on_extract is not None:
            self.on_extract()
        if self.error is not None:
            raise self.error
        return self.result


class FakeDocumentStore:
    def __init__(self, texts=None):
        self.texts = dict(texts or {})

    def read_text(self, source):
        try:
            return self.texts[source.path]
        except KeyError:
            raise FileNotFoundError(source.path)


class RecordingNotifier:
    def __init__(self):
        self.published = []

    def publish(self, record):
        self.published.append(record)
        return 0


class FakeMemoWriter:
    def __init__(self, text="PROCUREMENT APPROVAL MEMO\n\nRecommend Bolt Supply."):
        self.text = text
        self.error = None
        self.calls = []

    def generate(self, record):
        self.calls.append(record)
        if self.error is not None:
            raise self.error
        return self.text


QUOTE_FILES = [
    {"name": "acme.txt", "path": "q/acme.txt", "size": 120},
    {"name": "bolt.txt", "path": "q/bolt.txt", "size": 98},
    {"name": "crown.txt", "path": "q/crown.txt", "size": 131},
]

QUOTE_TEXTS = {
    "q/acme.txt": "Acme Metals quotation\nSteel Plates 1,250.00 / ton\n",
    "q/bolt.txt": "Bolt Supply quotation\nSteel Plates 1,180.00 / ton\n",
    "q/crown.txt": "Crown Steel quotation\nSteel Plates 1,350.00 / ton\n",
}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _reset_tables():
    Base.metadata.create_all(bind=_ENGINE)
    yield
    Base.metadata.drop_all(bind=_ENGINE)


@pytest.fixture()
def session_factory():
    return _Session


@pytest.fixture()
def repository(session_factory):
    return ComparisonRepository(session_factory)


@pytest.fixture()
def extractor():
    return FakeExtractor()


@pytest.fixture()
def documents():
    return FakeDocumentStore(QUOTE_TEXTS)


@pytest.fixture()
def recorder():
    return RecordingNotifier()


@pytest.fixture()
def memo_writer():
    return FakeMemoWriter()


@pytest.fixture()
def quote_files():
    return [SourceFile(**f) for f in QUOTE_FILES]


@pytest.fixture()
def controller(repository, extractor, documents, recorder, memo_writer):
    return LifecycleController(
        repository=repository,
        extractor=extractor,
        documents=documents,
        notifier=recorder,
        memo_writer=memo_writer,
    )


@pytest.fixture()
def change_notifier():
    return ChangeNotifier()


@pytest.fixture()
def client(session_factory, extractor, documents, memo_writer, change_notifier):
    overrides = {
        comparisons_router.get_session_factory: lambda: session_factory,
        comparisons_router.get_extraction_client: lambda: extractor,
        comparisons_router.get_memo_client: lambda: memo_writer,
        comparisons_router.get_document_store: lambda: documents,
        comparisons_router.get_notifier: lambda: change_notifier,
    }
    app.dependency_overrides.update(overrides)
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
