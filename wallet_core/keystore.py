"""Local keystore persistence for signing keys."""

from pathlib import Path
from typing import Dict, Protocol, Tuple
import json
import os
import tempfile

from .models import KeyRecord


class KeyStoreFormatError(ValueError):
    """Raised when a keystore file cannot be read back."""


class KeyStore(Protocol):
    def store(self, record: KeyRecord) -> None:
        ...

    def load(self, address: str) -> KeyRecord:
        ...

    def list_addresses(self) -> Tuple[str, ...]:
        ...


class MemoryKeyStore:
    def __init__(self) -> None:
        self._records: Dict[str, KeyRecord] = {}

    def store(self, record: KeyRecord) -> None:
        self._records[record.address] = record

    def load(self, address: str) -> KeyRecord:
        try:
            return self._records[address]
        except KeyError:
            raise KeyError(f"Unknown account: {address}") from None

    def list_addresses(self) -> Tuple[str, ...]:
        return tuple(self._records)


class FileKeyStore:
    """All keys in one JSON document, ``{"version": 1, "keys": {address: record}}``.

    Every write replaces the file atomically through a sibling temporary
    file, which is created readable by the owner only. Addresses keep their
    creation order.
    """

    FORMAT_VERSION = 1

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    def store(self, record: KeyRecord) -> None:
        keys = self._read_keys()
        keys[record.address] = record
        self._write_keys(keys)

    def load(self, address: str) -> KeyRecord:
        try:
            return self._read_keys()[address]
        except KeyError:
            raise KeyError(f"Unknown account: {address}") from None

    def list_addresses(self) -> Tuple[str, ...]:
        return tuple(self._read_keys())

    def _read_keys(self) -> Dict[str, KeyRecord]:
        if not self._path.exists():
            return {}
        try:
            document = json.loads(self._path.read_text())
            version = document.get("version")
            entries = document["keys"].items()
            keys = {address: KeyRecord.from_dict(entry) for address, entry in entries}
        except (json.JSONDecodeError, AttributeError, KeyError, TypeError) as exc:
            raise KeyStoreFormatError(f"Keystore {self._path} is unreadable: {exc!r}") from exc
        if version != self.FORMAT_VERSION:
            raise KeyStoreFormatError(f"Keystore {self._path} has unsupported version {version!r}.")
        for address, record in keys.items():
            if record.address != address:
                raise KeyStoreFormatError(f"Keystore entry {address} holds the key for {record.address}.")
        return keys

    def _write_keys(self, keys: Dict[str, KeyRecord]) -> None:
        document = {
            "version": self.FORMAT_VERSION,
            "keys": {address: record.to_dict() for address, record in keys.items()},
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        descriptor, temporary = tempfile.mkstemp(dir=self._path.parent, prefix=f".{self._path.name}.")
        try:
            with os.fdopen(descriptor, "w") as handle:
                json.dump(document, handle, indent=2)
            os.replace(temporary, self._path)
        except Exception:
            os.unlink(temporary)
            raise
