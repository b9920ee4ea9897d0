from __future__ import annotations

import json

from core import audit


def test_log_writes_text_and_jsonl(tmp_path):
    audit.configure(tmp_path)
    audit.log("certificate_delete", "ops@example.com", "c1 | injected\nline", extra={"id": "c1"})
    text_path, json_path = audit.log_paths()
    line = text_path.read_text(encoding="utf-8").strip()
    assert line.count("\n") == 0
    assert "certificate_delete" in line
    assert "ops@example.com" not in line
    assert "¦ injected line" in line
    rec = json.loads(json_path.read_text(encoding="utf-8").strip())
    assert rec["action"] == "certificate_delete"
    assert rec["level"] == "INFO"
    assert rec["who"] == "op***@***"
    assert rec["extra"] == {"id": "c1"}


def test_levels(tmp_path):
    audit.configure(tmp_path)
    audit.log_security("x", "login_failed")
    audit.log_error("x", "store_failed", "boom")
    audit.log_warn("x", "odd")
    levels = [json.loads(l)["level"] for l in audit.log_paths()[1].read_text(encoding="utf-8").splitlines()]
    assert levels == ["SECURITY", "ERROR", "WARN"]


def test_mask_pii():
    assert audit.mask_pii("call 0912345678 or mail jo@host.org") == "call 09*** or mail jo***@***"
