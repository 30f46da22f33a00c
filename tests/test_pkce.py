"""Tests for PKCE verifier/challenge generation."""

import base64
import hashlib
import re

from setbuilder.services.pkce import (
    derive_challenge,
    generate_pkce_pair,
    generate_state,
    generate_verifier,
)

URL_SAFE = re.compile(r"^[A-Za-z0-9_-]+$")


class TestGenerateVerifier:
    def test_url_safe_without_padding(self):
        verifier = generate_verifier()
        assert URL_SAFE.match(verifier)
        assert "=" not in verifier

    def test_carries_32_bytes_of_entropy(self):
        # 32 bytes -> 43 base64url characters, the RFC 7636 minimum length
        assert len(generate_verifier()) == 43

    def test_fresh_each_call(self):
        assert generate_verifier() != generate_verifier()


class TestDeriveChallenge:
    def test_matches_sha256_base64url_no_pad(self):
        verifier = "abc"
        expected = (
            base64.urlsafe_b64encode(hashlib.sha256(b"abc").digest()).decode().rstrip("=")
        )
        assert derive_challenge(verifier) == expected

    def test_rfc7636_appendix_b_vector(self):
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        assert derive_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

    def test_deterministic_and_url_safe(self):
        for length in (43, 64, 128):
            verifier = generate_verifier()[:1] * length
            first = derive_challenge(verifier)
            assert first == derive_challenge(verifier)
            assert URL_SAFE.match(first)
            assert "=" not in first


class TestPkcePair:
    def test_challenge_derived_from_verifier(self):
        pair = generate_pkce_pair()
        assert pair.challenge == derive_challenge(pair.verifier)

    def test_state_is_fresh(self):
        assert generate_state() != generate_state()
