"""Passphrases per stakeholder, and signing on their behalf."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, List, Protocol, Union
import json

from pydantic import BaseModel, Field, StrictStr, TypeAdapter, ValidationError


class MissingCredentialError(ValueError):
    """Raised when a stakeholder that must sign has no passphrase."""


class CredentialFormatError(ValueError):
    """Raised when a credentials document is malformed."""


class Signer(Protocol):
    def sign(self, account: str, payload: bytes, passphrase: str) -> str:
        ...


class CredentialEntry(BaseModel):
    address: StrictStr = Field(min_length=1)
    password: StrictStr


_ENTRIES = TypeAdapter(List[CredentialEntry])


def credentials_from_list(data: object) -> Dict[str, str]:
    try:
        entries = _ENTRIES.validate_python(data)
    except ValidationError as exc:
        raise CredentialFormatError(f"Password file format error: {exc}") from exc
    return {entry.address: entry.password for entry in entries}


def load_credentials(path: Union[str, Path]) -> Dict[str, str]:
    try:
        data = json.loads(Path(path).read_text())
    except (OSError, json.JSONDecodeError) as exc:
        raise CredentialFormatError(f"Cannot read password file {path}: {exc}") from exc
    return credentials_from_list(data)


class CredentialResolver:
    def __init__(self, signer: Signer, passphrases: Dict[str, str]) -> None:
        self._signer = signer
        self._passphrases = dict(passphrases)

    def require(self, accounts: Iterable[str]) -> None:
        missing = [account for account in dict.fromkeys(accounts) if account not in self._passphrases]
        if missing:
            raise MissingCredentialError(f"No password for: {', '.join(missing)}")

    def sign(self, account: str, payload: bytes) -> str:
        self.require((account,))
        return self._signer.sign(account, payload, self._passphrases[account])
