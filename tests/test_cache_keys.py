from __future__ import annotations

import re
from pathlib import Path

from docshelf.rag.cache_keys import derive


CACHE = Path("/tmp/docshelf-cache")


def test_derive_is_deterministic():
    assert derive("/a/Doc.pdf", "openai", CACHE) == derive("/a/Doc.pdf", "openai", CACHE)


def test_provider_changes_the_key():
    assert derive("/a/Doc.pdf", "openai", CACHE) != derive("/a/Doc.pdf", "ollama", CACHE)


def test_same_basename_in_different_folders_does_not_collide():
    assert derive("/b/Doc.pdf", "openai", CACHE) != derive("/a/Doc.pdf", "openai", CACHE)


def test_path_case_is_ignored():
    assert derive("/A/DOC.pdf", "openai", CACHE).name.split("_")[1] == derive("/a/doc.pdf", "openai", CACHE).name.split("_")[1]


def test_file_name_layout():
    p = derive("/a/Doc.pdf", "openai", CACHE)

    assert p.parent == CACHE
    assert re.fullmatch(r"Doc_[0-9a-f]{16}_openai_knowledge\.json", p.name)
