from __future__ import annotations
"""
Document store boundary for CertAdmin.

- DocumentStore: list/get/set/update/delete + single-field equality query
- JsonDocumentStore: one JSON object per collection ({doc_id: fields})
    * sidecar lock with stale-lock cleanup
    * atomic write (tmp + os.replace + directory fsync)
    * rotating backups, read falls back to the newest readable backup
- open_store(settings): picks the backend named in the configuration

Every backend failure is raised as StoreError; absent documents on update are
NotFoundError. Nothing here retries.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
import json, os, re, time, uuid, shutil

from core import audit
from core.config import Settings
from core.errors import NotFoundError, StoreError

# =========================
# Collections
# =========================
PROFILES = "profiles"
CERTIFICATES = "certificates"
ADMINS = "admins"
ADMIN_PROFILES = "admin_profiles"

_COLLECTION_RE = re.compile(r"^[A-Za-z0-9_\-]+$")

JSON_INDENT = 2

# Locking
LOCK_TIMEOUT_SEC = 10.0
LOCK_SLEEP_SEC = 0.05
STALE_LOCK_SEC = 60.0

# Backup retention per collection (0 disables backups)
BACKUP_RETAIN_PER_FILE = 10


@dataclass
class Document:
    id: str
    data: Dict[str, Any] = field(default_factory=dict)


class DocumentStore:
    """Interface shared by every backend."""

    def list_all(self, collection: str, limit: Optional[int] = None) -> List[Document]:
        raise NotImplementedError

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        raise NotImplementedError

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        raise NotImplementedError

    def update(self, collection: str, doc_id: str, partial: Dict[str, Any]) -> None:
        raise NotImplementedError

    def delete(self, collection: str, doc_id: str) -> None:
        raise NotImplementedError

    def query_eq(self, collection: str, field_name: str, value: Any) -> List[Document]:
        raise NotImplementedError

    def new_id(self) -> str:
        return uuid.uuid4().hex[:20]


# =========================
# JSON-file backend
# =========================
def _now_stamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S-%f")


def _fsync_dir(path: Path) -> None:
    """Persist the rename of a file inside `path` (POSIX only)."""
    if os.name == "nt":
        return
    dfd = os.open(os.fspath(path), os.O_RDONLY)
    try:
        os.fsync(dfd)
    finally:
        os.close(dfd)


class _FileLock:
    """Create-only sidecar lock; locks older than STALE_LOCK_SEC are broken."""

    def __init__(self, target: Path, timeout: float = LOCK_TIMEOUT_SEC):
        self.path = target.with_suffix(target.suffix + ".lock")
        self.timeout = timeout

    def __enter__(self) -> "_FileLock":
        start = time.time()
        while True:
            try:
                fd = os.open(os.fspath(self.path), os.O_CREAT | os.O_EXCL | os.O_WRONLY)
                try:
                    os.write(fd, str(time.time()).encode("utf-8"))
                finally:
                    os.close(fd)
                return self
            except FileExistsError:
                try:
                    if time.time() - self.path.stat().st_mtime > STALE_LOCK_SEC:
                        self.path.unlink(missing_ok=True)
                        continue
                except FileNotFoundError:
                    continue
                if time.time() - start > self.timeout:
                    raise StoreError(f"Timeout acquiring lock for {self.path.name}")
                time.sleep(LOCK_SLEEP_SEC)

    def __exit__(self, exc_type, exc, tb) -> None:
        self.path.unlink(missing_ok=True)


class JsonDocumentStore(DocumentStore):
    """
    Local document store: `<data_dir>/<collection>.json` holds {doc_id: fields}.
    Used for development, demos and tests; same contract as Firestore.
    """

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)
        self.backup_dir = self.data_dir / "_bak"
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            self.backup_dir.mkdir(parents=True, exist_ok=True)
        except OSError as ex:
            raise StoreError(f"Cannot create data directory {self.data_dir}: {ex}") from ex

    # ---- paths ----
    def _path(self, collection: str) -> Path:
        if not _COLLECTION_RE.match(collection or ""):
            raise StoreError(f"Invalid collection name: {collection!r}")
        return self.data_dir / f"{collection}.json"

    # ---- raw IO ----
    def _read(self, collection: str) -> Dict[str, Dict[str, Any]]:
        path = self._path(collection)
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("collection file must hold a JSON object")
            return data
        except (OSError, ValueError) as ex:
            audit.log_warn("store", "JSON_READ_FAILED", f"{path.name}: {ex}")
            for cand in sorted(self.backup_dir.glob(f"{collection}_*.json"), reverse=True):
                try:
                    data = json.loads(cand.read_text(encoding="utf-8"))
                except (OSError, ValueError):
                    continue
                if isinstance(data, dict):
                    return data
            raise StoreError(f"Collection {collection} is unreadable and has no usable backup") from ex

    def _rotate_backup(self, path: Path, collection: str) -> None:
        if BACKUP_RETAIN_PER_FILE <= 0 or not path.exists():
            return
        shutil.copy2(path, self.backup_dir / f"{collection}_{_now_stamp()}.json")
        snaps = sorted(self.backup_dir.glob(f"{collection}_*.json"), reverse=True)
        for old in snaps[BACKUP_RETAIN_PER_FILE:]:
            old.unlink(missing_ok=True)

    def _write(self, collection: str, data: Dict[str, Dict[str, Any]]) -> None:
        path = self._path(collection)
        tmp = path.with_suffix(path.suffix + f".tmp.{uuid.uuid4().hex}")
        try:
            self._rotate_backup(path, collection)
            with open(tmp, "w", encoding="utf-8") as f:
                f.write(json.dumps(data, ensure_ascii=False, indent=JSON_INDENT, default=str))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
            _fsync_dir(path.parent)
        except OSError as ex:
            tmp.unlink(missing_ok=True)
            raise StoreError(f"Write to {collection} failed: {ex}") from ex

    def _mutate(self, collection: str, fn) -> Any:
        """Load, apply fn(data) in place, write back; all under the collection lock."""
        with _FileLock(self._path(collection)):
            data = self._read(collection)
            out = fn(data)
            self._write(collection, data)
            return out

    # ---- DocumentStore ----
    def list_all(self, collection: str, limit: Optional[int] = None) -> List[Document]:
        docs = [Document(k, dict(v or {})) for k, v in self._read(collection).items()]
        return docs[:limit] if limit is not None else docs

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        data = self._read(collection).get(doc_id)
        return Document(doc_id, dict(data)) if data is not None else None

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        def _fn(docs):
            if merge and doc_id in docs:
                docs[doc_id] = {**docs[doc_id], **data}
            else:
                docs[doc_id] = dict(data)
        self._mutate(collection, _fn)

    def update(self, collection: str, doc_id: str, partial: Dict[str, Any]) -> None:
        def _fn(docs):
            if doc_id not in docs:
                raise NotFoundError(collection, doc_id)
            docs[doc_id].update(partial)
        self._mutate(collection, _fn)

    def delete(self, collection: str, doc_id: str) -> None:
        # Deleting an absent document is a no-op, as in Firestore.
        self._mutate(collection, lambda docs: docs.pop(doc_id, None))

    def query_eq(self, collection: str, field_name: str, value: Any) -> List[Document]:
        return [
            Document(k, dict(v))
            for k, v in self._read(collection).items()
            if (v or {}).get(field_name) == value
        ]


# =========================
# Factory
# =========================
def open_store(settings: Settings) -> DocumentStore:
    """Instantiate the configured backend."""
    if settings.store_backend == "firestore":
        from core.firestore_store import FirestoreDocumentStore
        return FirestoreDocumentStore(
            credentials_path=settings.firebase_credentials,
            project_id=settings.firebase_project,
        )
    return JsonDocumentStore(settings.data_dir)
