"""Domain models for the local signing keystore."""

from dataclasses import dataclass
from typing import Dict


@dataclass(frozen=True)
class EncryptedPayload:
    ciphertext: str
    salt: str
    nonce: str
    mac: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "ciphertext": self.ciphertext,
            "salt": self.salt,
            "nonce": self.nonce,
            "mac": self.mac,
        }

    @staticmethod
    def from_dict(data: Dict[str, str]) -> "EncryptedPayload":
        return EncryptedPayload(
            ciphertext=data["ciphertext"],
            salt=data["salt"],
            nonce=data["nonce"],
            mac=data["mac"],
        )


@dataclass(frozen=True)
class KeyRecord:
    """A signing key stored under the account address it controls."""

    address: str
    public_key: str
    created_at: str
    encrypted_key: EncryptedPayload

    def to_dict(self) -> Dict[str, object]:
        return {
            "address": self.address,
            "public_key": self.public_key,
            "created_at": self.created_at,
            "encrypted_key": self.encrypted_key.to_dict(),
        }

    @staticmethod
    def from_dict(data: Dict[str, object]) -> "KeyRecord":
        return KeyRecord(
            address=data["address"],
            public_key=data["public_key"],
            created_at=data["created_at"],
            encrypted_key=EncryptedPayload.from_dict(data["encrypted_key"]),
        )
