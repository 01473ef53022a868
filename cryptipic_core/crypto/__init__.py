"""
CryptiPic Cryptographic Layer.

Password-based ciphers used to seal steganographic payloads.

Modules:
    kdf: PBKDF2 key derivation
    aes256: AES256Crypto self-describing AES-CBC tokens
    defense: HMAC-protected defense envelope with classification metadata
    quantum: Kem / SignatureScheme interfaces and their simulators
    engine: Dispatch by encryption algorithm name

Usage:
    >>> from cryptipic_core.crypto import CryptoEngine
    >>> engine = CryptoEngine()
    >>> token = engine.encrypt("Hello, World!", "password", "chacha20").token
"""

from .kdf import KdfType, KdfResult, PBKDF2Hasher, derive_key
from .aes256 import AES256Crypto, AESOptions
from .defense import ClassificationLevel, DefenseEnvelope, DefenseMessage, MessageMetadata
from .quantum import (
    Kem,
    SignatureScheme,
    KeyPair,
    Encapsulation,
    Decapsulation,
    LatticeBasedSimulator,
    HashBasedSignatureSimulator,
    QuantumResistantManager,
)
from .engine import (
    CryptoEngine,
    ChaCha20Crypto,
    EncryptionAlgorithm,
    EncryptionResult,
    DecryptionResult,
    resolve_algorithm,
)

__all__ = [
    "KdfType",
    "KdfResult",
    "PBKDF2Hasher",
    "derive_key",
    "AES256Crypto",
    "AESOptions",
    "ClassificationLevel",
    "DefenseEnvelope",
    "DefenseMessage",
    "MessageMetadata",
    "Kem",
    "SignatureScheme",
    "KeyPair",
    "Encapsulation",
    "Decapsulation",
    "LatticeBasedSimulator",
    "HashBasedSignatureSimulator",
    "QuantumResistantManager",
    "CryptoEngine",
    "ChaCha20Crypto",
    "EncryptionAlgorithm",
    "EncryptionResult",
    "DecryptionResult",
    "resolve_algorithm",
]
