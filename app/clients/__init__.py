from app.clients.extraction import ExtractionClient, ExtractionResult  # noqa: F401
from app.clients.memo import MemoClient  # noqa: F401
from app.clients.storage import DocumentStore, LocalDocumentStore  # noqa: F401
