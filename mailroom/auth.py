"""AuthorizationGate: static lookup of pre-provisioned accounts."""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from pydantic import SecretStr

from .errors import Unauthorized
from .models import Account


class AuthorizationGate:
    """Validate sender addresses against the fixed account table.

    The table is copied into a read-only mapping at construction and is
    never mutated afterwards.
    """

    def __init__(self, accounts: Mapping[str, SecretStr | str]) -> None:
        self._accounts: Mapping[str, Account] = MappingProxyType({
            address: Account(
                address=address,
                credential=secret if isinstance(secret, SecretStr) else SecretStr(secret),
            )
            for address, secret in accounts.items()
        })

    @property
    def addresses(self) -> list[str]:
        return sorted(self._accounts)

    def authorize(self, address: str | None) -> Account:
        """Return the provisioned account for *address* or raise ``Unauthorized``."""
        if not address or address not in self._accounts:
            raise Unauthorized(details={"address": address or ""})
        return self._accounts[address]
