"""Tests for atomic text writes."""

from __future__ import annotations

import json

import pytest

from refarray.config import save_config
from refarray.file_io import write_text_atomic
from refarray.models import UserConfig
from refarray.services.store_service import MemoryDocumentStore


def test_write_text_atomic_creates_and_replaces(tmp_path) -> None:
    target = tmp_path / "data.json"

    write_text_atomic(target, "first")
    write_text_atomic(target, "zweite Ä")

    assert target.read_text(encoding="utf-8") == "zweite Ä"
    assert list(tmp_path.iterdir()) == [target]


def test_write_text_atomic_failed_rename_keeps_original(tmp_path, monkeypatch) -> None:
    target = tmp_path / "data.json"
    target.write_text("original", encoding="utf-8")

    def fail_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr("refarray.file_io.os.replace", fail_replace)

    with pytest.raises(OSError, match="disk full"):
        write_text_atomic(target, "new", prefix=".store-")

    assert target.read_text(encoding="utf-8") == "original"
    assert list(tmp_path.iterdir()) == [target]


def test_write_text_atomic_missing_directory_raises(tmp_path) -> None:
    with pytest.raises(OSError):
        write_text_atomic(tmp_path / "missing" / "data.json", "x")


def test_config_and_store_share_the_atomic_writer(tmp_path, monkeypatch) -> None:
    calls: list[str] = []
    monkeypatch.setattr(
        "refarray.config.write_text_atomic",
        lambda path, content, prefix: calls.append(prefix),
    )
    monkeypatch.setattr(
        "refarray.services.store_service.write_text_atomic",
        lambda path, content, prefix: calls.append(prefix),
    )
    monkeypatch.setattr("refarray.config.get_config_path", lambda: tmp_path / "config.json")

    assert save_config(UserConfig()) is True
    MemoryDocumentStore([{"_id": "p1"}])._save(tmp_path / "docs.json")

    assert calls == [".config-", ".store-"]


def test_store_save_writes_documents_wrapper(tmp_path) -> None:
    path = tmp_path / "docs.json"
    MemoryDocumentStore([{"_id": "p1", "title": "Widget"}])._save(path)

    assert json.loads(path.read_text(encoding="utf-8")) == {
        "documents": [{"_id": "p1", "title": "Widget"}]
    }
