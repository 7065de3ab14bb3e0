"""Tests for canonical message construction."""

from __future__ import annotations

import hashlib

import pytest

from coursebridge.signing.canonical import (
    NAMESPACE,
    build_message,
    canonical_json,
    payload_digest,
)


# -------------------------------------------------------------------------
# canonical_json
# -------------------------------------------------------------------------
class TestCanonicalJson:
    """Serialization must match JSON.stringify byte for byte."""

    def test_compact_separators(self) -> None:
        assert canonical_json({"a": 1, "b": [1, 2]}) == '{"a":1,"b":[1,2]}'

    def test_insertion_order_kept(self) -> None:
        assert canonical_json({"b": 1, "a": 2}) == '{"b":1,"a":2}'

    def test_sort_keys_opt_in(self) -> None:
        assert canonical_json({"b": 1, "a": 2}, sort_keys=True) == '{"a":2,"b":1}'

    def test_non_ascii_literal(self) -> None:
        assert canonical_json({"name": "Jürgen"}) == '{"name":"Jürgen"}'

    def test_integral_float_written_as_int(self) -> None:
        assert canonical_json({"a": 1.0, "b": 2.5}) == '{"a":1,"b":2.5}'

    def test_non_finite_becomes_null(self) -> None:
        assert canonical_json([float("nan"), float("inf")]) == "[null,null]"

    def test_booleans_and_null(self) -> None:
        assert canonical_json({"t": True, "f": False, "n": None}) == '{"t":true,"f":false,"n":null}'


# -------------------------------------------------------------------------
# build_message
# -------------------------------------------------------------------------
class TestBuildMessage:
    """Tests for the signed message string."""

    def test_without_payload(self) -> None:
        assert build_message("course-builder-service") == "educoreai-course-builder-service"

    def test_with_payload_appends_digest(self) -> None:
        payload = {"learner_id": "123"}
        expected = hashlib.sha256(b'{"learner_id":"123"}').hexdigest()
        assert build_message("svc", payload) == f"{NAMESPACE}-svc-{expected}"

    def test_digest_is_lowercase_hex(self) -> None:
        digest = payload_digest({"x": 1})
        assert digest == digest.lower()
        assert len(digest) == 64

    def test_empty_dict_is_hashed(self) -> None:
        """{} is truthy in the reference services, so it gets a digest."""
        expected = hashlib.sha256(b"{}").hexdigest()
        assert build_message("svc", {}) == f"educoreai-svc-{expected}"

    @pytest.mark.parametrize("absent", [None, False, 0, ""])
    def test_falsy_scalars_have_no_digest(self, absent) -> None:
        assert build_message("svc", absent) == "educoreai-svc"

    def test_empty_service_name_not_rejected(self) -> None:
        assert build_message("") == "educoreai-"

    def test_deterministic(self) -> None:
        payload = {"learner_id": "123", "skills": ["react"]}
        assert build_message("svc", payload) == build_message("svc", dict(payload))

    def test_sensitive_to_values(self) -> None:
        assert build_message("svc", {"learner_id": "123"}) != build_message("svc", {"learner_id": "456"})

    def test_sensitive_to_keys(self) -> None:
        assert build_message("svc", {"a": 1}) != build_message("svc", {"b": 1})

    def test_sensitive_to_service_name(self) -> None:
        assert build_message("svc-a", {"a": 1}) != build_message("svc-b", {"a": 1})

    def test_key_order_changes_digest_by_default(self) -> None:
        assert build_message("svc", {"a": 1, "b": 2}) != build_message("svc", {"b": 2, "a": 1})

    def test_key_order_ignored_with_sort_keys(self) -> None:
        first = build_message("svc", {"a": 1, "b": 2}, sort_keys=True)
        second = build_message("svc", {"b": 2, "a": 1}, sort_keys=True)
        assert first == second
