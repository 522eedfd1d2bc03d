"""
첨부파일 업로드 테스트
"""

from ledger.core.config import settings


def test_upload_appends_random_suffix(client, blob_store):
    r = client.post(
        "/api/blob/upload",
        data={"pathname": "loans/receipt.png"},
        files={"file": ("receipt.png", b"\x89PNG data", "image/png")},
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["key"].startswith("loans/receipt-")
    assert body["key"].endswith(".png")
    assert body["key"] != "loans/receipt.png"
    assert body["url"] == f"https://blob.test/{body['key']}"
    assert body["name"] == "receipt.png"
    assert blob_store.blobs[body["key"]] == b"\x89PNG data"


def test_upload_rejects_unknown_prefix(client):
    r = client.post(
        "/api/blob/upload",
        data={"pathname": "secrets/x.png"},
        files={"file": ("x.png", b"data", "image/png")},
    )
    assert r.status_code == 400
    assert r.json()["code"] == "invalid_upload_path"


def test_upload_rejects_content_type(client):
    r = client.post(
        "/api/blob/upload",
        data={"pathname": "loans/x.exe"},
        files={"file": ("x.exe", b"MZ", "application/octet-stream")},
    )
    assert r.status_code == 400
    assert r.json()["code"] == "invalid_content_type"


def test_upload_rejects_large_file(client, monkeypatch):
    monkeypatch.setattr(settings, "MAX_ATTACHMENT_BYTES", 4)
    r = client.post(
        "/api/blob/upload",
        data={"pathname": "loans/x.pdf"},
        files={"file": ("x.pdf", b"%PDF-1.7", "application/pdf")},
    )
    assert r.status_code == 400
    assert r.json()["code"] == "attachment_too_large"
