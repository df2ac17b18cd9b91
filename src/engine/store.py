"""
Document store used by the scheduler.

``DocumentStore`` is the interface (read, write, subscribe) the engine is
given; ``YamlDocumentStore`` keeps one YAML file per collection under a data
directory, guarded by a file lock. A write replaces or merges a whole
document in one locked step; there is no versioning, so concurrent writers
to the same document are last-writer-wins.
"""
import copy
import logging
import os
from collections import defaultdict
from typing import Callable, Dict, List, Optional

import yaml
from filelock import FileLock

logger = logging.getLogger(__name__)

EVENTS = 'events'
VENUES = 'venues'
SPORTS = 'sports'
BRACKETS = 'brackets'


class DocumentNotFoundError(LookupError):
    pass


def _convert_to_serializable(obj):
    """Convert tuples to lists recursively for YAML serialization."""
    if isinstance(obj, dict):
        return {k: _convert_to_serializable(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [_convert_to_serializable(item) for item in obj]
    else:
        return obj


class DocumentStore:
    def __init__(self):
        self._subscribers = defaultdict(list)

    async def get(self, collection: str, doc_id: str) -> Optional[Dict]:
        raise NotImplementedError

    async def list(self, collection: str) -> List[Dict]:
        raise NotImplementedError

    async def set(self, collection: str, doc_id: str, data: Dict, merge: bool = False):
        raise NotImplementedError

    async def update(self, collection: str, doc_id: str, fields: Dict):
        """Replace the given top-level fields of an existing document."""
        raise NotImplementedError

    def subscribe(self, collection: str, doc_id: str, callback: Callable) -> Callable:
        """Call ``callback(doc_id, document)`` after every write to the document."""
        key = (collection, doc_id)
        self._subscribers[key].append(callback)

        def unsubscribe():
            if callback in self._subscribers[key]:
                self._subscribers[key].remove(callback)
        return unsubscribe

    def _notify(self, collection: str, doc_id: str, document: Optional[Dict]):
        for callback in list(self._subscribers[(collection, doc_id)]):
            callback(doc_id, copy.deepcopy(document))


class YamlDocumentStore(DocumentStore):
    def __init__(self, data_dir: str, lock_timeout: int = 10):
        super().__init__()
        self.data_dir = data_dir
        os.makedirs(data_dir, exist_ok=True)
        self._lock = FileLock(os.path.join(data_dir, '.lock'), timeout=lock_timeout)

    def _collection_path(self, collection: str) -> str:
        return os.path.join(self.data_dir, f'{collection}.yaml')

    def _load(self, collection: str) -> Dict:
        path = self._collection_path(collection)
        if not os.path.exists(path):
            return {}
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
            return data if data else {}

    def _save(self, collection: str, documents: Dict):
        with open(self._collection_path(collection), 'w', encoding='utf-8') as f:
            yaml.safe_dump(_convert_to_serializable(documents), f, default_flow_style=False, sort_keys=False)

    async def get(self, collection: str, doc_id: str) -> Optional[Dict]:
        with self._lock:
            document = self._load(collection).get(doc_id)
        return document

    async def list(self, collection: str) -> List[Dict]:
        with self._lock:
            documents = self._load(collection)
        result = []
        for doc_id, document in documents.items():
            document = dict(document or {})
            document.setdefault('id', doc_id)
            result.append(document)
        return result

    async def set(self, collection: str, doc_id: str, data: Dict, merge: bool = False):
        with self._lock:
            documents = self._load(collection)
            if merge and documents.get(doc_id):
                document = dict(documents[doc_id])
                document.update(data)
            else:
                document = dict(data)
            documents[doc_id] = document
            self._save(collection, documents)
        logger.info(f"Wrote {collection}/{doc_id} ({'merge' if merge else 'replace'})")
        self._notify(collection, doc_id, document)

    async def update(self, collection: str, doc_id: str, fields: Dict):
        with self._lock:
            documents = self._load(collection)
            if doc_id not in documents:
                raise DocumentNotFoundError(f"{collection}/{doc_id} does not exist")
            document = dict(documents[doc_id] or {})
            document.update(fields)
            documents[doc_id] = document
            self._save(collection, documents)
        logger.info(f"Updated {collection}/{doc_id}: {', '.join(fields)}")
        self._notify(collection, doc_id, document)
