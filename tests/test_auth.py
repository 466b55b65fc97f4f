"""Tests for mailroom.auth."""

from __future__ import annotations

import pytest
from pydantic import SecretStr

from mailroom.auth import AuthorizationGate
from mailroom.errors import ErrorKind, Unauthorized


@pytest.fixture
def gate() -> AuthorizationGate:
    return AuthorizationGate({"a@example.com": "pw-a", "b@example.com": SecretStr("pw-b")})


class TestAuthorize:
    def test_known_address(self, gate: AuthorizationGate):
        account = gate.authorize("a@example.com")
        assert account.address == "a@example.com"
        assert account.credential.get_secret_value() == "pw-a"

    def test_accepts_secret_values(self, gate: AuthorizationGate):
        assert gate.authorize("b@example.com").credential.get_secret_value() == "pw-b"

    def test_unknown_address(self, gate: AuthorizationGate):
        with pytest.raises(Unauthorized) as exc_info:
            gate.authorize("mallory@example.com")
        assert exc_info.value.kind is ErrorKind.UNAUTHORIZED
        assert exc_info.value.details == {"address": "mallory@example.com"}

    @pytest.mark.parametrize("address", [None, ""])
    def test_missing_address(self, gate: AuthorizationGate, address):
        with pytest.raises(Unauthorized):
            gate.authorize(address)

    def test_match_is_exact(self, gate: AuthorizationGate):
        with pytest.raises(Unauthorized):
            gate.authorize("A@example.com")

    def test_credential_not_in_repr(self, gate: AuthorizationGate):
        assert "pw-a" not in repr(gate.authorize("a@example.com"))

    def test_table_is_read_only(self, gate: AuthorizationGate):
        with pytest.raises(TypeError):
            gate._accounts["c@example.com"] = None  # type: ignore[index]
        assert gate.addresses == ["a@example.com", "b@example.com"]
