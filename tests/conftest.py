import sys
from pathlib import Path

import pytest

# Repo root = one level above tests/
REPO_ROOT = Path(__file__).resolve().parents[1]

# Ensure repo root is on sys.path so `import chunkwise` works without installing.
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from chunkwise.chunking.types import ChunkConfig, ChunkTranslation  # noqa: E402


def text(value, *marks):
    node = {"type": "text", "text": value}
    if marks:
        node["marks"] = [m if isinstance(m, dict) else {"type": m} for m in marks]
    return node


def paragraph(*children):
    node = {"type": "paragraph"}
    if children:
        node["content"] = [text(c) if isinstance(c, str) else c for c in children]
    return node


def heading(level, value):
    return {"type": "heading", "attrs": {"level": level}, "content": [text(value)]}


def bullet_list(*items):
    return {
        "type": "bulletList",
        "content": [{"type": "listItem", "content": [paragraph(item)]} for item in items],
    }


def doc(*nodes):
    return {"type": "doc", "content": list(nodes)}


def big_paragraph(letter, tokens):
    """A paragraph of ASCII text estimated at exactly `tokens` tokens."""
    return paragraph(letter * (tokens * 4))


def three_chunk_document():
    return doc(big_paragraph("a", 4000), big_paragraph("b", 4000), big_paragraph("c", 4000))


THREE_CHUNK_CONFIG = ChunkConfig(
    min_chunk_tokens=1000,
    target_chunk_tokens=4000,
    max_chunk_tokens=6000,
    overhead_per_chunk=0,
    expansion_factor=1.0,
)


def upper_cased(tree):
    """Copy of a tree with every text upper-cased."""
    if isinstance(tree, list):
        return [upper_cased(node) for node in tree]
    node = dict(tree)
    if "text" in node:
        node["text"] = node["text"].upper()
    if "content" in node:
        node["content"] = upper_cased(node["content"])
    return node


class FakeTranslator:
    """translate_chunk stand-in: upper-cases text, failing for chosen chunk indices."""

    def __init__(self, fail_indices=(), on_call=None):
        self.fail_indices = set(fail_indices)
        self.on_call = on_call
        self.calls = []

    def __call__(self, params):
        self.calls.append(params)
        if self.on_call:
            self.on_call(params)
        if params.chunk_index in self.fail_indices:
            raise RuntimeError(f"translator rejected chunk {params.chunk_index}")
        return ChunkTranslation(translated_content=upper_cased(params.source_content))

    @property
    def called_indices(self):
        return [p.chunk_index for p in self.calls]


@pytest.fixture
def fake_translator():
    return FakeTranslator()


@pytest.fixture
def proxy_config():
    return {
        "chunking": {},
        "translator": {
            "provider": "proxy",
            "api_url": "https://translate.test/api/translate",
            "api_key": "secret",
            "model": "test-model",
            "source_language": "en",
            "target_language": "ja",
            "max_retries": 3,
            "timeout": 5,
        },
        "log_mode": "off",
    }
