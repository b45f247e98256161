from .credentials import (
    CredentialFormatError,
    CredentialResolver,
    MissingCredentialError,
    credentials_from_list,
    load_credentials,
)
from .keystore import FileKeyStore, KeyStore, KeyStoreFormatError, MemoryKeyStore
from .models import EncryptedPayload, KeyRecord
from .signer import LocalSigner, PassphraseEncryptor, SigningError

__all__ = [
    "CredentialFormatError",
    "CredentialResolver",
    "EncryptedPayload",
    "FileKeyStore",
    "KeyRecord",
    "KeyStore",
    "KeyStoreFormatError",
    "LocalSigner",
    "MemoryKeyStore",
    "MissingCredentialError",
    "PassphraseEncryptor",
    "SigningError",
    "credentials_from_list",
    "load_credentials",
]
