# tests/core/test_hashing.py
"""Tests for content key computation."""

import hashlib

import pytest
from hypothesis import given
from hypothesis import strategies as st

HELLO_KEY = "sha256:2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824"


class TestComputeKey:
    def test_known_vector(self) -> None:
        from casket.core.hashing import compute_key

        assert compute_key(b"hello") == HELLO_KEY

    def test_empty_content(self) -> None:
        from casket.core.hashing import compute_key

        assert compute_key(b"") == "sha256:" + hashlib.sha256(b"").hexdigest()

    @given(content=st.binary(max_size=4096))
    def test_key_is_well_formed_and_deterministic(self, content: bytes) -> None:
        from casket.core.hashing import compute_key, is_valid_key

        key = compute_key(content)
        assert is_valid_key(key)
        assert key == compute_key(content)

    @given(a=st.binary(max_size=256), b=st.binary(max_size=256))
    def test_distinct_content_distinct_keys(self, a: bytes, b: bytes) -> None:
        from casket.core.hashing import compute_key

        if a != b:
            assert compute_key(a) != compute_key(b)


class TestKeyFormat:
    @pytest.mark.parametrize(
        "key",
        [
            "",
            "sha256:",
            "sha256:" + "A" * 64,  # uppercase hex
            "sha256:" + "a" * 63,
            "sha256:" + "a" * 65,
            "sha512:" + "a" * 64,
            "a" * 64,
            "sha256:" + "g" * 64,
            "sha256:" + "a" * 64 + "\n",  # trailing newline
            " sha256:" + "a" * 64,
        ],
    )
    def test_invalid_keys(self, key: str) -> None:
        from casket.core.hashing import is_valid_key

        assert is_valid_key(key) is False

    def test_extract_digest(self) -> None:
        from casket.core.hashing import extract_digest

        assert extract_digest(HELLO_KEY) == HELLO_KEY.removeprefix("sha256:")

    def test_extract_digest_rejects_malformed(self) -> None:
        from casket.core.hashing import extract_digest

        with pytest.raises(ValueError, match="Invalid content key"):
            extract_digest("sha256:nothex")
        with pytest.raises(ValueError, match="Invalid content key"):
            extract_digest(HELLO_KEY + "\n")
