# core/firestore_store.py
from __future__ import annotations
from typing import Any, Dict, List, Optional

import firebase_admin
from firebase_admin import credentials, firestore

from core.errors import NotFoundError, StoreError
from core.store import Document, DocumentStore

APP_NAME = "certadmin"


def _app(credentials_path: Optional[str], project_id: Optional[str]) -> firebase_admin.App:
    """Reuse the named firebase app if this process already initialized it."""
    try:
        return firebase_admin.get_app(APP_NAME)
    except ValueError:
        pass
    cred = credentials.Certificate(credentials_path) if credentials_path else credentials.ApplicationDefault()
    options = {"projectId": project_id} if project_id else None
    return firebase_admin.initialize_app(cred, options, name=APP_NAME)


class FirestoreDocumentStore(DocumentStore):
    """DocumentStore over Cloud Firestore through the firebase-admin SDK."""

    def __init__(self, credentials_path: Optional[str] = None, project_id: Optional[str] = None, client=None):
        if client is not None:
            self._db = client
            return
        try:
            self._db = firestore.client(_app(credentials_path, project_id))
        except Exception as ex:
            raise StoreError(f"Firestore initialization failed: {ex}") from ex

    def _col(self, collection: str):
        return self._db.collection(collection)

    @staticmethod
    def _doc(snap) -> Document:
        return Document(snap.id, snap.to_dict() or {})

    def list_all(self, collection: str, limit: Optional[int] = None) -> List[Document]:
        try:
            query = self._col(collection)
            if limit is not None:
                query = query.limit(limit)
            return [self._doc(s) for s in query.stream()]
        except Exception as ex:
            raise StoreError(f"list {collection} failed: {ex}") from ex

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        try:
            snap = self._col(collection).document(doc_id).get()
        except Exception as ex:
            raise StoreError(f"get {collection}/{doc_id} failed: {ex}") from ex
        return self._doc(snap) if snap.exists else None

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        try:
            self._col(collection).document(doc_id).set(data, merge=merge)
        except Exception as ex:
            raise StoreError(f"set {collection}/{doc_id} failed: {ex}") from ex

    def update(self, collection: str, doc_id: str, partial: Dict[str, Any]) -> None:
        ref = self._col(collection).document(doc_id)
        try:
            exists = ref.get().exists
            if exists:
                ref.update(partial)
        except Exception as ex:
            raise StoreError(f"update {collection}/{doc_id} failed: {ex}") from ex
        if not exists:
            raise NotFoundError(collection, doc_id)

    def delete(self, collection: str, doc_id: str) -> None:
        try:
            self._col(collection).document(doc_id).delete()
        except Exception as ex:
            raise StoreError(f"delete {collection}/{doc_id} failed: {ex}") from ex

    def query_eq(self, collection: str, field_name: str, value: Any) -> List[Document]:
        try:
            query = self._col(collection).where(filter=firestore.FieldFilter(field_name, "==", value))
            return [self._doc(s) for s in query.stream()]
        except Exception as ex:
            raise StoreError(f"query {collection}.{field_name} failed: {ex}") from ex
