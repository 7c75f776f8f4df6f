"""
JSON file store

Each collection is one JSON array in <DATA_DIR>/<collection>.json. A missing
file is created empty on first access. Every save rewrites the whole file.
A collection whose file could not be read is served from the last good copy
but cannot be saved until a later read succeeds.

Collections: users, tests, userTests, posts, comments, testComments
"""
import copy
import hashlib
import json
import logging
import os
from typing import Any, Dict, List, Optional, Set, Tuple

from errors import Conflict, StoreError

logger = logging.getLogger(__name__)

DATA_DIR = os.getenv("DATA_DIR", os.path.join(os.path.dirname(os.path.abspath(__file__)), "data"))

COLLECTIONS = ("users", "tests", "userTests", "posts", "comments", "testComments")


def _digest(raw: bytes) -> str:
    return hashlib.sha256(raw).hexdigest()


class JsonStore:
    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        # last successfully read contents, served when a file turns unreadable
        self._last_good: Dict[str, List[Dict[str, Any]]] = {}
        # collections whose last read failed; saving them is refused until a clean read
        self._degraded: Set[str] = set()

    @property
    def name(self) -> str:
        return os.path.basename(os.path.normpath(self.data_dir))

    def path(self, collection: str) -> str:
        return os.path.join(self.data_dir, f"{collection}.json")

    def list_collection_names(self) -> List[str]:
        return [c for c in COLLECTIONS if os.path.exists(self.path(c))]

    def version(self, collection: str) -> Optional[str]:
        """Digest of the backing file's bytes, None when it does not exist."""
        try:
            with open(self.path(collection), "rb") as f:
                return _digest(f.read())
        except OSError:
            return None

    def load(self, collection: str) -> List[Dict[str, Any]]:
        return self.load_versioned(collection)[0]

    def load_versioned(self, collection: str) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """Documents plus the version they were read at, for a later checked save."""
        path = self.path(collection)
        try:
            if not os.path.exists(path):
                os.makedirs(self.data_dir, exist_ok=True)
                with open(path, "w", encoding="utf-8") as f:
                    json.dump([], f, indent=2)
                return [], self.version(collection)
            with open(path, "rb") as f:
                raw = f.read()
            data = json.loads(raw.decode("utf-8"))
            if not isinstance(data, list):
                raise ValueError(f"{collection} is not a JSON array")
        except (OSError, ValueError) as e:
            logger.error("Error reading file %s: %s", path, e)
            self._degraded.add(collection)
            return copy.deepcopy(self._last_good.get(collection, [])), self.version(collection)
        self._degraded.discard(collection)
        self._last_good[collection] = copy.deepcopy(data)
        return data, _digest(raw)

    def save(self, collection: str, documents: List[Dict[str, Any]], expected_version: Optional[str] = None) -> None:
        if collection in self._degraded:
            logger.error("Refusing to overwrite %s after a failed read", self.path(collection))
            raise StoreError(f"{collection} could not be read, refusing to overwrite it")
        if expected_version is not None and self.version(collection) != expected_version:
            raise Conflict(f"{collection} was modified by another request, retry")
        path = self.path(collection)
        tmp_path = f"{path}.tmp"
        try:
            os.makedirs(self.data_dir, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(documents, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            logger.error("Error writing file %s: %s", path, e)
            raise StoreError(f"Failed to save {collection}") from e
        self._last_good[collection] = copy.deepcopy(documents)

    # Per-document helpers on top of load/save

    def get_documents(self, collection: str, filter_dict: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        documents = self.load(collection)
        if not filter_dict:
            return documents
        return [d for d in documents if all(d.get(k) == v for k, v in filter_dict.items())]

    def get_document(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        for document in self.load(collection):
            if document.get("id") == doc_id:
                return document
        return None

    def create_document(self, collection: str, data: Dict[str, Any], prepend: bool = False) -> str:
        documents = self.load(collection)
        if prepend:
            documents.insert(0, data)
        else:
            documents.append(data)
        self.save(collection, documents)
        return data.get("id")


db = JsonStore(DATA_DIR)


def get_store() -> JsonStore:
    """FastAPI dependency handing the store to each request."""
    return db
