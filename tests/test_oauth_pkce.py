"""Tests for PKCE (Proof Key for Code Exchange) implementation."""

import base64
import hashlib
import re
from unittest.mock import patch

import pytest

from mcp_auth_helper.oauth.pkce import (
    MAX_VERIFIER_LENGTH,
    MIN_VERIFIER_LENGTH,
    PKCEPair,
    generate_code_challenge,
    generate_code_verifier,
    generate_pkce_pair,
    generate_state,
)

VERIFIER_PATTERN = re.compile(r"^[A-Za-z0-9\-._~]+$")


class TestGenerateCodeVerifier:
    """Tests for code verifier generation."""

    def test_default_is_256_bits(self):
        """32 random bytes encode to 43 characters without padding."""
        verifier = generate_code_verifier()
        assert len(verifier) == 43

    @pytest.mark.parametrize("num_bytes", [32, 48, 64, 96])
    def test_length_within_rfc_bounds(self, num_bytes):
        """Test that verifier length stays within RFC 7636 bounds."""
        verifier = generate_code_verifier(num_bytes)
        assert MIN_VERIFIER_LENGTH <= len(verifier) <= MAX_VERIFIER_LENGTH

    def test_uses_valid_characters(self):
        """Test that verifiers only use unreserved URI characters."""
        for _ in range(200):
            assert VERIFIER_PATTERN.match(generate_code_verifier())

    def test_no_padding(self):
        """Test that base64 padding is stripped."""
        for _ in range(50):
            assert "=" not in generate_code_verifier(33)

    def test_too_few_bytes_raises_error(self):
        """Test that fewer than 256 bits of entropy is rejected."""
        with pytest.raises(ValueError, match="at least 32"):
            generate_code_verifier(16)

    def test_too_long_raises_error(self):
        """Test that a verifier over 128 characters is rejected."""
        with pytest.raises(ValueError, match="must be between"):
            generate_code_verifier(97)

    def test_disallowed_characters_are_stripped(self):
        """Test that encoding artifacts are removed rather than escaped."""
        with patch(
            "mcp_auth_helper.oauth.pkce._b64url",
            return_value="a" * 43 + "+/=",
        ):
            verifier = generate_code_verifier()
        assert verifier == "a" * 43

    def test_randomness(self):
        """Test that verifiers are random (not deterministic)."""
        verifiers = [generate_code_verifier() for _ in range(10)]
        assert len(set(verifiers)) == 10


class TestGenerateCodeChallenge:
    """Tests for S256 code challenge generation."""

    def test_rfc_7636_appendix_b(self):
        """Test against the example in RFC 7636 Appendix B."""
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        assert generate_code_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

    def test_deterministic(self):
        """Test that the same verifier always gives the same challenge."""
        verifier = "x" * 50
        assert generate_code_challenge(verifier) == generate_code_challenge(verifier)

    def test_no_padding(self):
        """Test that challenge has no base64 padding."""
        assert "=" not in generate_code_challenge(generate_code_verifier())


class TestGeneratePKCEPair:
    """Tests for complete PKCE pair generation."""

    def test_returns_pkce_pair(self):
        pair = generate_pkce_pair()
        assert isinstance(pair, PKCEPair)
        assert pair.method == "S256"

    def test_challenge_is_sha256_of_verifier(self):
        """The challenge must be base64url(SHA256(verifier)) for every pair."""
        for _ in range(50):
            pair = generate_pkce_pair()
            digest = hashlib.sha256(pair.code_verifier.encode("ascii")).digest()
            expected = base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")
            assert pair.code_challenge == expected
            assert "=" not in pair.code_verifier
            assert "=" not in pair.code_challenge

    def test_fresh_pair_each_call(self):
        assert generate_pkce_pair().code_verifier != generate_pkce_pair().code_verifier


class TestGenerateState:
    """Tests for state parameter generation."""

    def test_state_format(self):
        state = generate_state()
        assert len(state) == 32
        assert all(c in "0123456789abcdef" for c in state)

    def test_state_randomness(self):
        states = {generate_state() for _ in range(10)}
        assert len(states) == 10
