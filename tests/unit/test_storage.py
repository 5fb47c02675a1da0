"""Tests for blob storage and object key helpers."""

from __future__ import annotations

import pytest

from marble.storage import LocalBlobStore, build_object_key, sanitize_file_name


@pytest.fixture
def blobs(tmp_path):
    return LocalBlobStore(tmp_path / "blobs")


def test_put_then_get(blobs):
    blobs.put("users/alice/d1/f1-notes.txt", b"hello")
    assert blobs.get("users/alice/d1/f1-notes.txt") == b"hello"


def test_get_missing_returns_none(blobs):
    assert blobs.get("public-root/nothing.txt") is None


def test_delete_is_idempotent(blobs):
    blobs.put("a/b.txt", b"x")
    blobs.delete("a/b.txt")
    blobs.delete("a/b.txt")
    assert blobs.get("a/b.txt") is None


@pytest.mark.parametrize("key", ["", "/etc/passwd", "../outside.txt", "a/../../outside.txt"])
def test_unsafe_keys_rejected(blobs, key):
    with pytest.raises(ValueError):
        blobs.get(key)


@pytest.mark.parametrize(
    "name,expected",
    [
        ("My Notes (v2).txt", "my-notes-v2.txt"),
        ("   ", "untitled.txt"),
        ("a   b.txt", "a-b.txt"),
        ("???", "untitled.txt"),
        ("plain.txt", "plain.txt"),
    ],
)
def test_sanitize_file_name(name, expected):
    assert sanitize_file_name(name) == expected


def test_build_object_key_public():
    key = build_object_key("public", "alice", "public-root", "f1", "Policy.txt")
    assert key == "public-root/public-root/f1-policy.txt"


def test_build_object_key_private():
    key = build_object_key("private", "alice", "private-alice", "f1", "My Notes.txt")
    assert key == "users/alice/private-alice/f1-my-notes.txt"
