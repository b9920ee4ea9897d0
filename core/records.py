# core/records.py
from __future__ import annotations
"""
Record repository: the console's only path to profiles and certificates.

Reads are full-collection (or single-document) round trips to the store and
come back normalized. Mutations validate first, then write. Nothing is cached;
callers reload after a mutation.
"""

from typing import Any, Dict, List, Optional, Tuple
import time

from core import audit
from core.errors import NotFoundError, PartialDeleteError, StoreError
from core.models import (
    Certificate, UserProfile, PENDING,
    normalize_certificate, normalize_profile, owned_by,
)
from core.store import CERTIFICATES, PROFILES, Document, DocumentStore
from core.validation import StatusUpdateIn, parse

DIAGNOSTIC_SAMPLE = 5


def _now_ms() -> int:
    return int(time.time() * 1000)


class RecordRepository:
    def __init__(self, store: DocumentStore):
        self.store = store

    # ---- generic accessors ----
    def list_all(self, collection: str, limit: Optional[int] = None) -> List[Document]:
        return self.store.list_all(collection, limit=limit)

    def get_by_id(self, collection: str, doc_id: str) -> Document:
        doc = self.store.get(collection, doc_id)
        if doc is None:
            raise NotFoundError(collection, doc_id)
        return doc

    def update_fields(self, collection: str, doc_id: str, partial: Dict[str, Any]) -> None:
        self.store.update(collection, doc_id, partial)

    def delete(self, collection: str, doc_id: str) -> None:
        self.store.delete(collection, doc_id)

    def query_by_equality(self, collection: str, field_name: str, value: Any) -> List[Document]:
        return self.store.query_eq(collection, field_name, value)

    # ---- certificates ----
    def list_certificates(self) -> List[Certificate]:
        return [normalize_certificate(d) for d in self.list_all(CERTIFICATES)]

    def get_certificate(self, cert_id: str) -> Certificate:
        return normalize_certificate(self.get_by_id(CERTIFICATES, cert_id))

    def raw_certificate(self, cert_id: str) -> Dict[str, Any]:
        return self.get_by_id(CERTIFICATES, cert_id).data

    def certificates_for(self, email: str) -> List[Certificate]:
        if not email:
            return []
        return [normalize_certificate(d) for d in self.query_by_equality(CERTIFICATES, "user_email", email)]

    def list_verifications(self) -> List[Certificate]:
        """Certificates that already have an outcome (status other than PENDING)."""
        return [c for c in self.list_certificates() if c.verification_status != PENDING]

    def sample_certificates(self, limit: int = DIAGNOSTIC_SAMPLE) -> List[Document]:
        """Raw documents, unnormalized, for inspecting stored field names."""
        return self.list_all(CERTIFICATES, limit=limit)

    def update_certificate_status(self, cert_id: str, form: Dict[str, Any], *, actor: str = "admin") -> Certificate:
        """
        Validate the edit-status form, then write status/score/remarks.
        Raises ValidationError before touching the store, NotFoundError if the
        certificate vanished.
        """
        data = parse(StatusUpdateIn, form)
        partial = {
            "verification_status": data.verification_status,
            "score": data.score,
            "remarks": data.remarks,
            "updated_at": _now_ms(),
        }
        self.update_fields(CERTIFICATES, cert_id, partial)
        audit.log("certificate_status", actor, f"{cert_id} -> {data.verification_status} ({data.score:g})")
        return self.get_certificate(cert_id)

    def delete_certificate(self, cert_id: str, *, actor: str = "admin") -> None:
        self.delete(CERTIFICATES, cert_id)
        audit.log("certificate_delete", actor, cert_id)

    # ---- profiles ----
    def count_profiles(self) -> int:
        return len(self.list_all(PROFILES))

    def list_profiles(self) -> List[UserProfile]:
        """Profiles with certificate counts derived from one read of each collection."""
        certs = self.list_certificates()
        return [normalize_profile(d, certs) for d in self.list_all(PROFILES)]

    def get_profile(self, user_id: str) -> Tuple[UserProfile, List[Certificate]]:
        doc = self.get_by_id(PROFILES, user_id)
        email = str((doc.data or {}).get("email") or "")
        certs = self.certificates_for(email)
        return normalize_profile(doc, certs), certs

    def health_check(self) -> Dict[str, Any]:
        """Cross-reference profiles and certificates; StoreError propagates."""
        profiles = self.list_profiles()
        certs = self.list_certificates()
        issues: List[str] = []

        seen = set()
        for p in profiles:
            if not p.email:
                issues.append(f"profiles: {p.id} has no email")
            elif p.email in seen:
                issues.append(f"profiles: duplicate email {p.email}")
            seen.add(p.email)

        for c in certs:
            if not c.user_email:
                issues.append(f"certificates: {c.id} has no user_email")
            elif c.user_email not in seen:
                issues.append(f"certificates: {c.id} owner {c.user_email} has no profile")

        return {
            "ok": not issues,
            "counts": {"profiles": len(profiles), "certificates": len(certs)},
            "issues": issues,
        }

    def delete_user(self, user_id: str, *, actor: str = "admin") -> List[str]:
        """
        Delete every certificate owned by the user, then the profile.

        Not atomic. Each certificate delete is attempted; if any fails the
        profile is kept and PartialDeleteError reports what was and was not
        deleted. Completed deletes are not rolled back.
        Returns the ids of the deleted certificates.
        """
        doc = self.get_by_id(PROFILES, user_id)
        email = str((doc.data or {}).get("email") or "")
        owned = owned_by(self.list_certificates(), email)

        deleted: List[str] = []
        failed: List[str] = []
        cause: Optional[BaseException] = None
        for cert in owned:
            try:
                self.delete(CERTIFICATES, cert.id)
                deleted.append(cert.id)
            except StoreError as ex:
                failed.append(cert.id)
                cause = cause or ex
                audit.log_error(actor, "certificate_delete_failed", f"{cert.id}: {ex}")

        if failed:
            err = PartialDeleteError(user_id, deleted, failed, cause)
            audit.log_error(actor, "user_delete_partial", str(err))
            raise err

        self.delete(PROFILES, user_id)
        audit.log("user_delete", actor, f"{user_id} ({len(deleted)} certificate(s))")
        return deleted
