"""Local signing surface: passphrase-encrypted keys, one signature per call."""

from datetime import datetime, timezone
from typing import Callable, Optional, Protocol, Tuple
import base64
import hashlib
import hmac
import secrets

from .keystore import KeyStore
from .models import EncryptedPayload, KeyRecord


class SigningError(RuntimeError):
    """Raised when a payload cannot be signed for an account."""


class Encryptor(Protocol):
    def encrypt(self, plaintext: bytes, passphrase: str) -> EncryptedPayload:
        ...

    def decrypt(self, payload: EncryptedPayload, passphrase: str) -> bytes:
        ...


class PassphraseEncryptor:
    """HMAC-SHA256 keystream cipher keyed by a PBKDF2-derived passphrase key."""

    def __init__(
        self,
        iterations: int = 200_000,
        random_bytes: Optional[Callable[[int], bytes]] = None,
    ) -> None:
        self._iterations = iterations
        self._random_bytes = random_bytes or secrets.token_bytes

    def encrypt(self, plaintext: bytes, passphrase: str) -> EncryptedPayload:
        salt = self._random_bytes(16)
        nonce = self._random_bytes(16)
        key = self._derive_key(passphrase, salt + nonce)
        ciphertext = _xor(plaintext, _keystream(key, nonce, len(plaintext)))
        return EncryptedPayload(
            ciphertext=_b64encode(ciphertext),
            salt=_b64encode(salt),
            nonce=_b64encode(nonce),
            mac=_b64encode(hmac.new(key, ciphertext, hashlib.sha256).digest()),
        )

    def decrypt(self, payload: EncryptedPayload, passphrase: str) -> bytes:
        nonce = _b64decode(payload.nonce)
        ciphertext = _b64decode(payload.ciphertext)
        key = self._derive_key(passphrase, _b64decode(payload.salt) + nonce)
        actual_mac = hmac.new(key, ciphertext, hashlib.sha256).digest()
        if not hmac.compare_digest(actual_mac, _b64decode(payload.mac)):
            raise ValueError("Invalid passphrase or corrupted key.")
        return _xor(ciphertext, _keystream(key, nonce, len(ciphertext)))

    def _derive_key(self, passphrase: str, salt: bytes) -> bytes:
        return hashlib.pbkdf2_hmac(
            "sha256", passphrase.encode("utf-8"), salt, self._iterations, dklen=32
        )


class LocalSigner:
    """Signs transaction payloads with keys held in a local keystore.

    Keys stay encrypted at rest; each ``sign`` call decrypts the key with the
    supplied passphrase and discards it afterwards.
    """

    def __init__(
        self,
        keystore: KeyStore,
        encryptor: Encryptor,
        time_provider: Optional[Callable[[], str]] = None,
        entropy_provider: Optional[Callable[[int], bytes]] = None,
    ) -> None:
        self._keystore = keystore
        self._encryptor = encryptor
        self._time_provider = time_provider or _utc_timestamp
        self._entropy_provider = entropy_provider or secrets.token_bytes

    def create_key(self, passphrase: str) -> KeyRecord:
        private_key = self._entropy_provider(32)
        public_key = _derive_public_key(private_key)
        record = KeyRecord(
            address=_derive_address(public_key),
            public_key=public_key,
            created_at=self._time_provider(),
            encrypted_key=self._encryptor.encrypt(private_key, passphrase),
        )
        self._keystore.store(record)
        return record

    def addresses(self) -> Tuple[str, ...]:
        return self._keystore.list_addresses()

    def sign(self, account: str, payload: bytes, passphrase: str) -> str:
        try:
            record = self._keystore.load(account)
        except KeyError as exc:
            raise SigningError(f"No key for account {account}.") from exc
        try:
            private_key = self._encryptor.decrypt(record.encrypted_key, passphrase)
        except ValueError as exc:
            raise SigningError(f"Cannot unlock key for {account}: {exc}") from exc
        return hmac.new(private_key, payload, hashlib.sha256).hexdigest()

    def verify(self, account: str, payload: bytes, signature: str, passphrase: str) -> bool:
        return hmac.compare_digest(self.sign(account, payload, passphrase), signature)


def _xor(data: bytes, keystream: bytes) -> bytes:
    return bytes(a ^ b for a, b in zip(data, keystream))


def _keystream(key: bytes, nonce: bytes, length: int) -> bytes:
    blocks = []
    for counter in range((length + 31) // 32):
        blocks.append(hmac.new(key, nonce + counter.to_bytes(4, "big"), hashlib.sha256).digest())
    return b"".join(blocks)[:length]


def _b64encode(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


def _b64decode(value: str) -> bytes:
    return base64.b64decode(value.encode("ascii"))


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _derive_public_key(private_key: bytes) -> str:
    return hashlib.sha256(private_key).hexdigest()


def _derive_address(public_key: str) -> str:
    return "0x" + hashlib.sha256(bytes.fromhex(public_key)).hexdigest()[:40]
