"""
Quantum-Resistant Simulation Layer

Classical simulations of the *structure* of post-quantum primitives. They
are real, working constructions (keys, ciphertexts and signatures verify
and fail exactly as the interfaces promise) but the parameters are not a
vetted post-quantum scheme and no security claim beyond classical AES-GCM
and SHA-256 is made.

Features:
    - Kem / SignatureScheme abstract interfaces so implementations can be
      swapped without touching callers
    - LatticeBasedSimulator: ring-LWE key encapsulation over
      Z_q[x]/(x^n + 1), q = 3329, ternary secrets, with an AES-GCM data
      encapsulation keyed from the encapsulated secret
    - HashBasedSignatureSimulator: Winternitz (w = 16) one-time signatures
      under a height-4 Merkle tree of SHA-256 hashes
    - QuantumResistantManager: password-based composition of the two

Usage:
    >>> manager = QuantumResistantManager(security_level=128)
    >>> token = manager.encrypt("hello", "password")
    >>> manager.decrypt(token, "password")
    'hello'
"""

import base64
import binascii
import hashlib
import hmac
import json
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..errors import CorruptedImage, IncorrectPassword, IntegrityViolation, ValidationError
from .kdf import derive_key


logger = logging.getLogger(__name__)


# =============================================================================
# Interfaces
# =============================================================================


@dataclass
class KeyPair:
    """Serialized public/private key pair."""
    public_key: str
    private_key: str


@dataclass
class Encapsulation:
    """
    Result of a KEM encapsulation.

    Attributes:
        ciphertext: Serialized KEM ciphertext (includes the wrapped message)
        shared_secret: Hex shared secret both parties agree on
    """
    ciphertext: str
    shared_secret: str


@dataclass
class Decapsulation:
    message: bytes
    shared_secret: str


class Kem(ABC):
    """Key encapsulation mechanism carrying an attached message."""

    @abstractmethod
    def generate_key_pair(self, seed: Optional[bytes] = None) -> KeyPair:
        """Generate a key pair, deterministically when ``seed`` is given."""

    @abstractmethod
    def encapsulate(self, public_key: str, message: bytes) -> Encapsulation:
        """Encapsulate a fresh secret and encrypt ``message`` under it."""

    @abstractmethod
    def decapsulate(self, private_key: str, ciphertext: str) -> Decapsulation:
        """
        Recover the secret and message.

        Raises:
            IntegrityViolation: If the attached message fails authentication
            CorruptedImage: If the ciphertext cannot be parsed
        """


class SignatureScheme(ABC):
    """Digital signature scheme."""

    @abstractmethod
    def generate_key_pair(self, seed: Optional[bytes] = None) -> KeyPair:
        """Generate a key pair, deterministically when ``seed`` is given."""

    @abstractmethod
    def sign(self, private_key: str, message: bytes) -> str:
        """Return a serialized signature over ``message``."""

    @abstractmethod
    def verify(self, public_key: str, message: bytes, signature: str) -> bool:
        """Return True only for a valid signature; never raises on bad input."""


def _pack(document: Dict) -> str:
    return base64.b64encode(json.dumps(document, separators=(",", ":")).encode("utf-8")).decode("ascii")


def _unpack(token: str) -> Dict:
    try:
        document = json.loads(base64.b64decode(token.encode("ascii"), validate=True).decode("utf-8"))
    except (ValueError, binascii.Error, UnicodeError) as exc:
        raise CorruptedImage("Malformed quantum-resistant structure") from exc
    if not isinstance(document, dict):
        raise CorruptedImage("Malformed quantum-resistant structure")
    return document


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _unb64(text: str) -> bytes:
    return base64.b64decode(text.encode("ascii"), validate=True)


# =============================================================================
# Lattice-based KEM simulation
# =============================================================================


class LatticeBasedSimulator(Kem):
    """
    Ring-LWE key encapsulation over ``Z_q[x]/(x^n + 1)``.

    Key generation expands a public uniform polynomial ``a`` and ternary
    secrets ``s, e`` from a seed with SHAKE-256 and publishes
    ``b = a*s + e``. Encapsulation encodes a random 256-bit key seed as
    ``bit * round(q/2)`` in the first 256 coefficients and uses the derived
    AES-GCM key to encrypt the attached message.
    """

    Q = 3329
    MESSAGE_BITS = 256
    DEGREES = {128: 512, 192: 768, 256: 1024}

    def __init__(self, security_level: int = 256):
        if security_level not in self.DEGREES:
            raise ValidationError(
                f"Unsupported security level: {security_level}",
                details={"supported": sorted(self.DEGREES)},
            )
        self.security_level = security_level
        self.n = self.DEGREES[security_level]

    # -- polynomial helpers -------------------------------------------------

    def _uniform(self, rho: bytes) -> np.ndarray:
        stream = hashlib.shake_256(b"uniform" + rho).digest(2 * self.n)
        return np.frombuffer(stream, dtype="<u2").astype(np.int64) % self.Q

    @staticmethod
    def _ternary(sigma: bytes, label: bytes, count: int) -> np.ndarray:
        stream = hashlib.shake_256(label + sigma).digest(count)
        return np.frombuffer(stream, dtype=np.uint8).astype(np.int64) % 3 - 1

    def _multiply(self, x: np.ndarray, y: np.ndarray) -> np.ndarray:
        """Negacyclic product modulo ``x^n + 1`` and ``q``."""
        full = np.convolve(x, y)
        result = full[:self.n].copy()
        result[:self.n - 1] -= full[self.n:]
        return result % self.Q

    @staticmethod
    def _encode_poly(poly: np.ndarray) -> str:
        return _b64(np.asarray(poly, dtype="<u2").tobytes())

    def _decode_poly(self, text: str, length: int) -> np.ndarray:
        try:
            poly = np.frombuffer(_unb64(text), dtype="<u2").astype(np.int64)
        except (ValueError, binascii.Error) as exc:
            raise CorruptedImage("Malformed lattice polynomial") from exc
        if poly.size != length:
            raise CorruptedImage("Lattice polynomial has the wrong dimension")
        return poly % self.Q

    @staticmethod
    def _dem_key(key_seed: bytes) -> bytes:
        return hashlib.sha256(b"dem" + key_seed).digest()

    @staticmethod
    def _shared_secret(key_seed: bytes) -> str:
        return hashlib.sha256(b"ss" + key_seed).hexdigest()

    # -- Kem interface ------------------------------------------------------

    def generate_key_pair(self, seed: Optional[bytes] = None) -> KeyPair:
        seed = seed if seed is not None else os.urandom(32)
        rho = hashlib.sha256(b"rho" + seed).digest()
        sigma = hashlib.sha256(b"sigma" + seed).digest()

        a = self._uniform(rho)
        s = self._ternary(sigma, b"s", self.n)
        e = self._ternary(sigma, b"e", self.n)
        b = (self._multiply(a, s) + e) % self.Q

        public_key = _pack({"n": self.n, "rho": rho.hex(), "b": self._encode_poly(b)})
        private_key = _pack({"n": self.n, "s": _b64((s + 1).astype(np.uint8).tobytes())})
        return KeyPair(public_key=public_key, private_key=private_key)

    def encapsulate(self, public_key: str, message: bytes) -> Encapsulation:
        document = _unpack(public_key)
        if document.get("n") != self.n:
            raise CorruptedImage("Public key does not match the security level")
        try:
            rho = bytes.fromhex(document["rho"])
        except (KeyError, ValueError, TypeError) as exc:
            raise CorruptedImage("Malformed lattice public key") from exc
        a = self._uniform(rho)
        b = self._decode_poly(document.get("b", ""), self.n)

        coins = os.urandom(32)
        r = self._ternary(coins, b"r", self.n)
        e1 = self._ternary(coins, b"e1", self.n)
        e2 = self._ternary(coins, b"e2", self.MESSAGE_BITS)

        key_seed = os.urandom(self.MESSAGE_BITS // 8)
        encoded = np.unpackbits(np.frombuffer(key_seed, dtype=np.uint8)).astype(np.int64) * ((self.Q + 1) // 2)

        u = (self._multiply(a, r) + e1) % self.Q
        v = (self._multiply(b, r)[:self.MESSAGE_BITS] + e2 + encoded) % self.Q

        u_text, v_text = self._encode_poly(u), self._encode_poly(v)
        nonce = os.urandom(12)
        sealed = AESGCM(self._dem_key(key_seed)).encrypt(nonce, message, (u_text + v_text).encode("ascii"))

        ciphertext = _pack({"u": u_text, "v": v_text, "nonce": nonce.hex(), "ct": _b64(sealed)})
        return Encapsulation(ciphertext=ciphertext, shared_secret=self._shared_secret(key_seed))

    def decapsulate(self, private_key: str, ciphertext: str) -> Decapsulation:
        key_document = _unpack(private_key)
        if key_document.get("n") != self.n:
            raise CorruptedImage("Private key does not match the security level")
        try:
            s = np.frombuffer(_unb64(key_document["s"]), dtype=np.uint8).astype(np.int64) - 1
        except (KeyError, ValueError, TypeError, binascii.Error) as exc:
            raise CorruptedImage("Malformed lattice private key") from exc
        if s.size != self.n:
            raise CorruptedImage("Lattice private key has the wrong dimension")

        document = _unpack(ciphertext)
        u_text, v_text = document.get("u", ""), document.get("v", "")
        u = self._decode_poly(u_text, self.n)
        v = self._decode_poly(v_text, self.MESSAGE_BITS)
        try:
            nonce = bytes.fromhex(document["nonce"])
            sealed = _unb64(document["ct"])
        except (KeyError, ValueError, TypeError, binascii.Error) as exc:
            raise CorruptedImage("Malformed lattice ciphertext") from exc

        w = (v - self._multiply(u, s)[:self.MESSAGE_BITS]) % self.Q
        bits = ((w > self.Q / 4) & (w < 3 * self.Q / 4)).astype(np.uint8)
        key_seed = np.packbits(bits).tobytes()

        try:
            message = AESGCM(self._dem_key(key_seed)).decrypt(nonce, sealed, (u_text + v_text).encode("ascii"))
        except (InvalidTag, ValueError) as exc:
            raise IntegrityViolation("Lattice ciphertext failed authentication") from exc

        return Decapsulation(message=message, shared_secret=self._shared_secret(key_seed))


# =============================================================================
# Hash-based signature simulation
# =============================================================================


class HashBasedSignatureSimulator(SignatureScheme):
    """
    WOTS (w = 16) one-time signatures authenticated by a Merkle tree.

    The tree has ``2 ** HEIGHT`` leaves; the signing leaf is chosen from a
    keyed hash of the message. Signature layout:

        leaf index (4 bytes) | 67 chain values (32 bytes each) | auth path
    """

    W = 16
    LEN1 = 64
    LEN2 = 3
    LEN = LEN1 + LEN2
    HEIGHT = 4
    HASH_SIZE = 32

    @property
    def leaves(self) -> int:
        return 2 ** self.HEIGHT

    @property
    def signature_size(self) -> int:
        return 4 + self.LEN * self.HASH_SIZE + self.HEIGHT * self.HASH_SIZE

    @staticmethod
    def _h(*parts: bytes) -> bytes:
        return hashlib.sha256(b"".join(parts)).digest()

    def _chain(self, value: bytes, start: int, steps: int, pk_seed: bytes, leaf: int, index: int) -> bytes:
        for k in range(start, start + steps):
            value = self._h(pk_seed, leaf.to_bytes(4, "big"), index.to_bytes(2, "big"), bytes([k]), value)
        return value

    def _digits(self, digest: bytes) -> List[int]:
        digits = []
        for byte in digest:
            digits.extend((byte >> 4, byte & 0x0F))
        checksum = sum(self.W - 1 - d for d in digits)
        digits.extend(((checksum >> 8) & 0x0F, (checksum >> 4) & 0x0F, checksum & 0x0F))
        return digits

    def _secret(self, sk_seed: bytes, leaf: int, index: int) -> bytes:
        return self._h(sk_seed, leaf.to_bytes(4, "big"), index.to_bytes(2, "big"))

    def _leaf(self, sk_seed: bytes, pk_seed: bytes, leaf: int) -> bytes:
        public = b"".join(
            self._chain(self._secret(sk_seed, leaf, j), 0, self.W - 1, pk_seed, leaf, j)
            for j in range(self.LEN)
        )
        return self._h(pk_seed, public)

    def _tree(self, sk_seed: bytes, pk_seed: bytes) -> List[List[bytes]]:
        levels = [[self._leaf(sk_seed, pk_seed, i) for i in range(self.leaves)]]
        while len(levels[-1]) > 1:
            below = levels[-1]
            levels.append([self._h(pk_seed, below[i], below[i + 1]) for i in range(0, len(below), 2)])
        return levels

    def _message_digest(self, pk_seed: bytes, leaf: int, message: bytes) -> bytes:
        return self._h(pk_seed, leaf.to_bytes(4, "big"), message)

    def generate_key_pair(self, seed: Optional[bytes] = None) -> KeyPair:
        seed = seed if seed is not None else os.urandom(32)
        sk_seed = self._h(b"sk", seed)
        pk_seed = self._h(b"pk", seed)
        root = self._tree(sk_seed, pk_seed)[-1][0]
        return KeyPair(
            public_key=_pack({"root": root.hex(), "pk_seed": pk_seed.hex()}),
            private_key=_pack({"sk_seed": sk_seed.hex(), "pk_seed": pk_seed.hex()}),
        )

    def sign(self, private_key: str, message: bytes) -> str:
        document = _unpack(private_key)
        try:
            sk_seed = bytes.fromhex(document["sk_seed"])
            pk_seed = bytes.fromhex(document["pk_seed"])
        except (KeyError, ValueError, TypeError) as exc:
            raise CorruptedImage("Malformed signature private key") from exc

        leaf = int.from_bytes(self._h(sk_seed, message)[:4], "big") % self.leaves
        digits = self._digits(self._message_digest(pk_seed, leaf, message))
        chains = b"".join(
            self._chain(self._secret(sk_seed, leaf, j), 0, d, pk_seed, leaf, j)
            for j, d in enumerate(digits)
        )

        levels = self._tree(sk_seed, pk_seed)
        path = []
        index = leaf
        for level in levels[:-1]:
            path.append(level[index ^ 1])
            index //= 2

        return _b64(leaf.to_bytes(4, "big") + chains + b"".join(path))

    def verify(self, public_key: str, message: bytes, signature: str) -> bool:
        try:
            document = _unpack(public_key)
            root = bytes.fromhex(document["root"])
            pk_seed = bytes.fromhex(document["pk_seed"])
            raw = _unb64(signature)
        except (CorruptedImage, KeyError, ValueError, TypeError, binascii.Error):
            return False

        if len(raw) != self.signature_size:
            return False

        leaf = int.from_bytes(raw[:4], "big")
        if leaf >= self.leaves:
            return False

        size = self.HASH_SIZE
        chains = raw[4:4 + self.LEN * size]
        path = raw[4 + self.LEN * size:]

        digits = self._digits(self._message_digest(pk_seed, leaf, message))
        public = b"".join(
            self._chain(chains[j * size:(j + 1) * size], d, self.W - 1 - d, pk_seed, leaf, j)
            for j, d in enumerate(digits)
        )

        node = self._h(pk_seed, public)
        index = leaf
        for level in range(self.HEIGHT):
            sibling = path[level * size:(level + 1) * size]
            node = self._h(pk_seed, node, sibling) if index % 2 == 0 else self._h(pk_seed, sibling, node)
            index //= 2

        return hmac.compare_digest(node, root)


# =============================================================================
# Composition
# =============================================================================


class QuantumResistantManager:
    """
    Password-based encryption composed from a Kem and a SignatureScheme.

    A fresh salt and PBKDF2 turn the password into deterministic key-pair
    seeds, so the decoder re-derives both key pairs from the password
    alone. The KEM ciphertext is signed with the hash-based scheme.

    Package (base64 JSON): ``{"alg", "lvl", "salt", "ct", "sig"}``
    """

    ALGORITHM = "lattice-sim"

    def __init__(
        self,
        kem: Optional[Kem] = None,
        signer: Optional[SignatureScheme] = None,
        security_level: int = 256,
        iterations: int = 10000,
    ):
        self.kem = kem or LatticeBasedSimulator(security_level)
        self.signer = signer or HashBasedSignatureSimulator()
        self.security_level = security_level
        self.iterations = iterations

    def _key_pairs(self, password: str, salt: bytes) -> Tuple[KeyPair, KeyPair]:
        material = derive_key(password, salt, self.iterations, key_length=64)
        return self.kem.generate_key_pair(material[:32]), self.signer.generate_key_pair(material[32:])

    def encrypt(self, plaintext: str, password: str) -> str:
        salt = os.urandom(16)
        kem_pair, sig_pair = self._key_pairs(password, salt)

        encapsulation = self.kem.encapsulate(kem_pair.public_key, plaintext.encode("utf-8"))
        signature = self.signer.sign(sig_pair.private_key, encapsulation.ciphertext.encode("ascii"))

        logger.debug(f"Quantum-resistant package sealed at level {self.security_level}")
        return _pack({
            "alg": self.ALGORITHM,
            "lvl": self.security_level,
            "salt": salt.hex(),
            "ct": encapsulation.ciphertext,
            "sig": signature,
        })

    def decrypt(self, token: str, password: str) -> str:
        """
        Raises:
            CorruptedImage: If the package cannot be parsed
            IncorrectPassword: If decapsulation fails under the password
            IntegrityViolation: If the signature does not verify
        """
        document = _unpack(token)
        if document.get("alg") != self.ALGORITHM or document.get("lvl") != self.security_level:
            raise CorruptedImage(
                "Unsupported quantum-resistant package",
                details={"alg": document.get("alg"), "lvl": document.get("lvl")},
            )
        try:
            salt = bytes.fromhex(document["salt"])
            ciphertext = str(document["ct"])
            signature = str(document["sig"])
        except (KeyError, ValueError, TypeError) as exc:
            raise CorruptedImage("Malformed quantum-resistant package") from exc

        kem_pair, sig_pair = self._key_pairs(password, salt)

        try:
            decapsulation = self.kem.decapsulate(kem_pair.private_key, ciphertext)
        except IntegrityViolation as exc:
            raise IncorrectPassword("Decryption failed: incorrect password") from exc

        if not self.signer.verify(sig_pair.public_key, ciphertext.encode("ascii"), signature):
            logger.warning("Quantum-resistant signature verification failed")
            raise IntegrityViolation("Signature verification failed")

        try:
            return decapsulation.message.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CorruptedImage("Decrypted message is not valid UTF-8") from exc


__all__ = [
    "KeyPair",
    "Encapsulation",
    "Decapsulation",
    "Kem",
    "SignatureScheme",
    "LatticeBasedSimulator",
    "HashBasedSignatureSimulator",
    "QuantumResistantManager",
]
