from __future__ import annotations

import random
import re

from community_sync.infrastructure.storage.json_kv import JsonFileStorage
from community_sync.services.identity import (
    ADJECTIVES,
    DEFAULT_IDENTITY_KEY,
    NOUNS,
    generate_handle,
    load_or_create_identity,
)
from tests.conftest import MemoryStorage

HANDLE_RE = re.compile(rf"^({'|'.join(ADJECTIVES)})({'|'.join(NOUNS)})\d{{1,3}}$")


def test_generated_handle_matches_template():
    rng = random.Random(7)
    for _ in range(20):
        assert HANDLE_RE.match(generate_handle(rng))


def test_identity_generated_once_and_persisted():
    storage = MemoryStorage()

    first = load_or_create_identity(storage, rng=random.Random(1))
    second = load_or_create_identity(storage, rng=random.Random(2))

    assert first == second
    assert storage.data == {DEFAULT_IDENTITY_KEY: first}


def test_existing_identity_is_kept():
    storage = MemoryStorage({DEFAULT_IDENTITY_KEY: "LegacyTaco12"})

    assert load_or_create_identity(storage) == "LegacyTaco12"


def test_identity_survives_restart_with_file_storage(tmp_path):
    path = tmp_path / "nested" / "storage.json"

    first = load_or_create_identity(JsonFileStorage(path))
    second = load_or_create_identity(JsonFileStorage(path))

    assert first == second
    assert path.exists()


def test_file_storage_keeps_other_keys(tmp_path):
    storage = JsonFileStorage(tmp_path / "storage.json")
    storage.set("theme", "dark")
    storage.set("community-chat-username", "AsyncLlama3")

    assert storage.get("theme") == "dark"
    assert storage.get("community-chat-username") == "AsyncLlama3"
    assert storage.get("missing") is None


def test_corrupt_storage_file_is_treated_as_empty(tmp_path):
    path = tmp_path / "storage.json"
    path.write_text("{not json", encoding="utf-8")

    handle = load_or_create_identity(JsonFileStorage(path))

    assert HANDLE_RE.match(handle)
    assert JsonFileStorage(path).get(DEFAULT_IDENTITY_KEY) == handle
