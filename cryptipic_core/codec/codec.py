"""
CryptiPic Envelope Codec.

This module is the entry point front ends call. It turns (pixels, text,
password, options) into a stego buffer and back, driving compression,
encryption, envelope framing, the binary header and the embedding
strategies.

Encode:
    Validate -> BuildMetadata -> Compress -> Encrypt -> Sign -> Frame ->
    SelectAlgorithm -> CapacityCheck -> WriteHeader -> Embed

Decode:
    ReadHeader -> ValidateLength -> Dispatch -> Extract -> ParsePrefix ->
    [ENC without password: EncryptedPending] -> VerifySignature -> Decrypt ->
    CheckExpiry -> CheckDecoyIndex -> plaintext

Every encode works on a private copy of the caller's buffer that is only
returned once embedding has completed. Capacity and header problems are
raised before anything is written.

Decoy layout (``encode_with_decoys``):

    rows 0..main_rows-1     main message, any algorithm
    following bytes         one plain-LSB segment per decoy, each with its
                            own 40-bit header
    last 96 bytes           plain-LSB directory:
                            "CPD2" | main_rows u32 BE | count u8 | checksum[3]

Usage:
    >>> codec = SteganographyCodec(audit=MemoryAuditCollector())
    >>> stego = codec.encode(pixels, "HELLO")
    >>> codec.decode(stego).message
    'HELLO'
"""

import hashlib
import logging
import struct
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np

from ..crypto.engine import CryptoEngine, EncryptionAlgorithm
from ..errors import (
    CorruptedImage,
    CryptiPicError,
    DecoyNotFound,
    IncorrectPassword,
    IntegrityViolation,
    MessageExpired,
    NoHiddenMessage,
    ValidationError,
)
from ..stego.algorithms import (
    AdaptiveHybridStrategy,
    Algorithm,
    EmbeddingStrategy,
    MAX_CAPACITY,
    bits_to_bytes,
    bytes_to_bits,
    get_strategy,
    read_lsb,
    write_lsb,
)
from ..stego.analysis import AdaptiveStrategySelector
from ..stego.compression import AdvancedCompressionManager, CompressionResult
from ..stego.image import validate_pixels
from .audit import AuditCollector, AuditEventType, AuditLevel, NullAuditCollector
from .envelope import EnvelopeMetadata, MessageEnvelope, now_ms
from .header import HEADER_BITS, BinaryHeader, read_header, write_header
from .options import DEFAULT_OPTIONS, ExpiryType, SteganographyOptions
from .validation import OperationRateLimiter, SecurityValidator


logger = logging.getLogger(__name__)


DIRECTORY_MAGIC = b"CPD2"
DIRECTORY_BYTES = 12
DIRECTORY_BITS = DIRECTORY_BYTES * 8
MAX_DECOYS = 3

# Header ids of algorithms whose positions are seeded from the password
PASSWORD_SEEDED = frozenset(
    algorithm.header_id
    for algorithm in (Algorithm.CHAOTIC_LSB, Algorithm.HYBRID_DCT_DWT, Algorithm.ADAPTIVE_HYBRID)
)


# ============================================================================
# Data Types
# ============================================================================


class DecodeStatus(Enum):
    DECODED = "decoded"
    ENCRYPTED_PENDING = "encrypted_pending"


@dataclass
class DecodeResult:
    """
    Outcome of a decode call.

    Attributes:
        status: DECODED, or ENCRYPTED_PENDING when an encrypted payload was
            found but no password was supplied
        message: Recovered plaintext (None while pending)
        algorithm: Embedding algorithm named in the header
        metadata: Envelope metadata
        verified: Whether the envelope signature was checked
        classification: Handling caveat of the message
    """
    status: DecodeStatus
    message: Optional[str]
    algorithm: Algorithm
    metadata: EnvelopeMetadata
    verified: bool = False
    classification: Optional[str] = None

    @property
    def encrypted_pending(self) -> bool:
        return self.status == DecodeStatus.ENCRYPTED_PENDING

    @property
    def decoy_index(self) -> int:
        return self.metadata.decoy_index


@dataclass(frozen=True)
class DecoyMessage:
    """
    A secondary payload revealed by an alternate password.

    Attributes:
        message: Decoy plaintext
        password: Password unlocking the decoy (None embeds it unencrypted)
        index: Decoy slot, 1-3
    """
    message: str
    password: Optional[str]
    index: int

    def __post_init__(self):
        if not 1 <= self.index <= MAX_DECOYS:
            raise ValidationError(f"Decoy index must be between 1 and {MAX_DECOYS}", details={"index": self.index})


class ViewLedger:
    """
    Caller-owned view counts for messages with a view expiry.

    Counts are keyed by the envelope signature, so re-encoding the same text
    starts a fresh count.
    """

    def __init__(self):
        self._views: Dict[str, int] = {}
        self._lock = threading.Lock()

    def views(self, key: str) -> int:
        with self._lock:
            return self._views.get(key, 0)

    def check(self, key: str, limit: int) -> None:
        """
        Raises:
            MessageExpired: If ``limit`` views have already been recorded
        """
        if self.views(key) >= limit:
            raise MessageExpired("Message has reached its view limit", details={"limit": limit})

    def record(self, key: str) -> int:
        with self._lock:
            self._views[key] = self._views.get(key, 0) + 1
            return self._views[key]


@dataclass(frozen=True)
class DecoyDirectory:
    """Location of the main region and the number of decoy segments."""

    main_rows: int
    count: int

    @staticmethod
    def _checksum(body: bytes) -> bytes:
        return hashlib.sha256(body).digest()[:3]

    def to_bytes(self) -> bytes:
        body = DIRECTORY_MAGIC + struct.pack(">IB", self.main_rows, self.count)
        return body + self._checksum(body)

    @classmethod
    def from_bytes(cls, data: bytes) -> Optional["DecoyDirectory"]:
        """Parse a directory, or None if the bytes do not hold a valid one."""
        if len(data) != DIRECTORY_BYTES or not data.startswith(DIRECTORY_MAGIC):
            return None
        body, checksum = data[:9], data[9:]
        if cls._checksum(body) != checksum:
            return None
        main_rows, count = struct.unpack(">IB", body[4:])
        if main_rows == 0 or not 1 <= count <= MAX_DECOYS:
            return None
        return cls(main_rows=main_rows, count=count)


def write_directory(pixels: np.ndarray, directory: DecoyDirectory) -> None:
    flat = pixels.reshape(-1)
    write_lsb(flat, flat.size - DIRECTORY_BITS, bytes_to_bits(directory.to_bytes()))


def read_directory(pixels: np.ndarray) -> Optional[DecoyDirectory]:
    flat = pixels.reshape(-1)
    if flat.size < DIRECTORY_BITS + HEADER_BITS:
        return None
    directory = DecoyDirectory.from_bytes(bits_to_bytes(read_lsb(flat, flat.size - DIRECTORY_BITS, DIRECTORY_BITS)))
    if directory is not None and directory.main_rows > pixels.shape[0]:
        return None
    return directory


def _decoy_segments(pixels: np.ndarray, directory: DecoyDirectory) -> List[np.ndarray]:
    """Equal flat slices between the main region and the directory."""
    flat = pixels.reshape(-1)
    start = directory.main_rows * pixels.shape[1] * 4
    region = flat[start:max(start, flat.size - DIRECTORY_BITS)]
    length = region.size // directory.count
    return [region[i * length:(i + 1) * length] for i in range(directory.count)]


# ============================================================================
# Codec
# ============================================================================


class SteganographyCodec:
    """
    Envelope codec with its injected collaborators.

    Attributes:
        audit: Receives audit events; defaults to a null collector
        rate_limiter: Optional caller-owned rate limiter
        view_ledger: Optional caller-owned view counts for view expiry
        client_id: Identifier charged by the rate limiter

    Example:
        >>> codec = SteganographyCodec()
        >>> stego = codec.encode(pixels, "HELLO", "Str0ng!Pass",
        ...                      SteganographyOptions(algorithm="multibit-lsb", capacity=3))
        >>> codec.decode(stego, "Str0ng!Pass").message
        'HELLO'
    """

    def __init__(
        self,
        audit: Optional[AuditCollector] = None,
        rate_limiter: Optional[OperationRateLimiter] = None,
        view_ledger: Optional[ViewLedger] = None,
        client_id: str = "local",
    ):
        self.audit = audit or NullAuditCollector()
        self.rate_limiter = rate_limiter
        self.view_ledger = view_ledger
        self.client_id = client_id
        self._compression = AdvancedCompressionManager()
        self._selector = AdaptiveStrategySelector()

    # ------------------------------------------------------------------
    # Encode
    # ------------------------------------------------------------------

    def encode(
        self,
        pixels: np.ndarray,
        message: str,
        password: Optional[str] = None,
        options: SteganographyOptions = DEFAULT_OPTIONS,
    ) -> np.ndarray:
        """
        Hide ``message`` in a copy of ``pixels``.

        Args:
            pixels: RGBA uint8 array of shape (height, width, 4)
            message: UTF-8 text, at most 100 000 characters
            password: Encrypts the payload when given
            options: Embedding, encryption and compression options

        Returns:
            The stego buffer; ``pixels`` is left untouched

        Raises:
            ValidationError: If input or options are invalid
            CapacityExceeded: If the payload does not fit the carrier
            RateLimitExceeded: If the caller's rate limiter refuses
        """
        password = password or None
        self.audit.emit(
            AuditEventType.ENCODE_STARTED,
            algorithm=options.algorithm.value,
            encrypted=password is not None,
        )
        try:
            self._check_rate("encode")
            self._validate_encode(pixels, message, password, options)
            carrier = pixels.copy()
            strategy, bits = self._plan(carrier, message, password, options, options.decoy_index or 0)
            self._ensure_fits(strategy, carrier, len(bits))
            with self._stage(options, "embed"):
                header = self._embed(carrier, strategy, bits)
        except CryptiPicError as exc:
            self._failed(AuditEventType.ENCODE_FAILED, "Encode", exc)
            raise

        self.audit.emit(
            AuditEventType.ENCODE_COMPLETED,
            algorithm=strategy.algorithm.value,
            payload_bits=header.length,
            capacity=header.capacity,
        )
        logger.info(f"Embedded {header.length} bits with {strategy.algorithm.value}")
        return carrier

    def encode_with_decoys(
        self,
        pixels: np.ndarray,
        message: str,
        password: Optional[str],
        decoys: Iterable[DecoyMessage],
        options: SteganographyOptions = DEFAULT_OPTIONS,
    ) -> np.ndarray:
        """
        Hide a main message and up to three decoys in one carrier.

        The main message is embedded with ``options`` in the fewest leading
        rows that hold it; each decoy gets a plain-LSB segment of the rest,
        located through the directory in the last 96 bytes.

        Raises:
            ValidationError: On invalid input, too many or duplicate decoys
            CapacityExceeded: If the main message or a decoy does not fit
        """
        decoys = list(decoys)
        if not decoys:
            return self.encode(pixels, message, password, options)

        password = password or None
        self.audit.emit(
            AuditEventType.ENCODE_STARTED,
            algorithm=options.algorithm.value,
            encrypted=password is not None,
            decoys=len(decoys),
        )
        try:
            self._check_rate("encode")
            main_options = options.with_changes(is_decoy=False, decoy_index=None)
            self._validate_encode(pixels, message, password, main_options)
            self._validate_decoys(decoys)

            carrier = pixels.copy()
            strategy, bits = self._plan(carrier, message, password, main_options, 0)
            main_rows = self._main_rows(strategy, carrier, len(bits))
            directory = DecoyDirectory(main_rows=main_rows, count=len(decoys))

            planned: List[Tuple[np.ndarray, EmbeddingStrategy, np.ndarray]] = []
            for decoy, segment in zip(decoys, _decoy_segments(carrier, directory)):
                decoy_options = options.with_changes(
                    algorithm=Algorithm.LSB,
                    capacity=1,
                    is_decoy=True,
                    decoy_index=decoy.index,
                )
                decoy_strategy, decoy_bits = self._plan(segment, decoy.message, decoy.password or None, decoy_options, decoy.index)
                decoy_strategy.check_capacity(segment, len(decoy_bits))
                planned.append((segment, decoy_strategy, decoy_bits))

            with self._stage(options, "embed"):
                header = self._embed(carrier[:main_rows], strategy, bits)
                for segment, decoy_strategy, decoy_bits in planned:
                    self._embed(segment, decoy_strategy, decoy_bits)
                write_directory(carrier, directory)
        except CryptiPicError as exc:
            self._failed(AuditEventType.ENCODE_FAILED, "Encode", exc)
            raise

        self.audit.emit(
            AuditEventType.ENCODE_COMPLETED,
            algorithm=strategy.algorithm.value,
            payload_bits=header.length,
            capacity=header.capacity,
            decoys=len(decoys),
            main_rows=main_rows,
        )
        logger.info(f"Embedded main message in {main_rows} rows and {len(decoys)} decoy(s)")
        return carrier

    def _validate_encode(
        self,
        pixels: np.ndarray,
        message: str,
        password: Optional[str],
        options: SteganographyOptions,
    ) -> None:
        validate_pixels(pixels)

        report = SecurityValidator.validate_message(message)
        report.raise_for_errors("message")
        for warning in report.warnings:
            logger.warning(warning)

        SecurityValidator.validate_options(options).raise_for_errors("options")

        if password is not None and not SecurityValidator.validate_password(password).valid:
            logger.warning("Password does not meet the strength policy")

    def _validate_decoys(self, decoys: List[DecoyMessage]) -> None:
        if len(decoys) > MAX_DECOYS:
            raise ValidationError(f"At most {MAX_DECOYS} decoys are supported", details={"count": len(decoys)})
        indices = [decoy.index for decoy in decoys]
        if len(set(indices)) != len(indices):
            raise ValidationError("Decoy indices must be unique", details={"indices": indices})
        for decoy in decoys:
            SecurityValidator.validate_message(decoy.message).raise_for_errors("decoy message")

    def _plan(
        self,
        region: np.ndarray,
        message: str,
        password: Optional[str],
        options: SteganographyOptions,
        decoy_index: int,
    ) -> Tuple[EmbeddingStrategy, np.ndarray]:
        """Pick the strategy and build the framed payload bits."""
        with self._stage(options, "select"):
            strategy = self._select_strategy(region, message, password, options)

        with self._stage(options, "compress"):
            compressed = self._compression.compress_message(
                message,
                options.compression.algorithm,
                options.compression.level,
            )
        payload = compressed.to_token()

        encryption = None
        cipher_params: Dict[str, Any] = {}
        if password is not None:
            engine = CryptoEngine(
                strength=options.encryption.strength,
                defense_iterations=options.encryption.defense_iterations,
                classification=options.classification,
            )
            with self._stage(options, "encrypt"):
                encrypted = engine.encrypt(payload, password, options.encryption.effective_algorithm)
            payload = encrypted.token
            encryption = encrypted.algorithm.value
            cipher_params = encrypted.metadata

        metadata = EnvelopeMetadata(
            algorithm=strategy.algorithm.value,
            encryption=encryption,
            cipher_params=cipher_params,
            expiry=options.expiry.to_dict() if options.expiry else None,
            is_decoy=options.is_decoy or decoy_index > 0,
            decoy_index=decoy_index,
            capacity=strategy.capacity,
            classification=options.classification.value,
        )
        envelope = MessageEnvelope(encrypted=password is not None, metadata=metadata, payload=payload).sign()
        bits = bytes_to_bits(envelope.frame())

        if options.debug:
            self.audit.emit(
                AuditEventType.STAGE,
                AuditLevel.DEBUG,
                stage="frame",
                compression=compressed.algorithm.value,
                payload_bits=len(bits),
            )
        return strategy, bits

    def _select_strategy(
        self,
        region: np.ndarray,
        message: str,
        password: Optional[str],
        options: SteganographyOptions,
    ) -> EmbeddingStrategy:
        chaotic = options.chaotic.to_map_options()
        seed_password = password if options.chaotic.use_password else None

        if options.algorithm != Algorithm.ADAPTIVE_HYBRID:
            return get_strategy(options.algorithm, options.capacity, seed_password, chaotic)

        selection = self._selector.select(region, message)
        if options.debug:
            self.audit.emit(
                AuditEventType.STAGE,
                AuditLevel.DEBUG,
                stage="adaptive",
                variant=selection.variant.value,
                capacity=selection.capacity,
                redundancy=selection.redundancy,
            )
        return AdaptiveHybridStrategy(
            capacity=selection.capacity,
            password=seed_password,
            chaotic=chaotic,
            variant=selection.variant,
            redundancy=selection.redundancy,
        )

    def _ensure_fits(self, strategy: EmbeddingStrategy, region: np.ndarray, bit_count: int) -> None:
        """
        Raises:
            CapacityExceeded: If the payload does not fit, after the adaptive fallback
        """
        if (
            isinstance(strategy, AdaptiveHybridStrategy)
            and strategy.variant != Algorithm.CHAOTIC_LSB
            and not strategy.fits(region, bit_count)
        ):
            logger.warning(f"{strategy.variant.value} cannot hold {bit_count} bits, falling back to chaotic-lsb")
            strategy.configure(Algorithm.CHAOTIC_LSB, strategy.redundancy)
        strategy.check_capacity(region, bit_count)

    def _main_rows(self, strategy: EmbeddingStrategy, carrier: np.ndarray, bit_count: int) -> int:
        """Fewest leading rows that hold the main payload."""
        self._ensure_fits(strategy, carrier, bit_count)
        low, high = 1, carrier.shape[0]
        while low < high:
            middle = (low + high) // 2
            if strategy.fits(carrier[:middle], bit_count):
                high = middle
            else:
                low = middle + 1
        return low

    @staticmethod
    def _embed(region: np.ndarray, strategy: EmbeddingStrategy, bits: np.ndarray) -> BinaryHeader:
        header = BinaryHeader(length=len(bits), algorithm_id=strategy.algorithm.header_id, capacity=strategy.capacity)
        write_header(region, header)
        strategy.embed(region, bits)
        return header

    # ------------------------------------------------------------------
    # Decode
    # ------------------------------------------------------------------

    def decode(
        self,
        pixels: np.ndarray,
        password: Optional[str] = None,
        decoy_index: Optional[int] = None,
        options: SteganographyOptions = DEFAULT_OPTIONS,
    ) -> DecodeResult:
        """
        Recover a hidden message.

        Args:
            pixels: Stego buffer
            password: Password of the main message or of a decoy
            decoy_index: Decoy slot to open (1-3); None opens the main message
            options: Only the chaotic settings are used; they must match encode

        Returns:
            DecodeResult, DECODED or ENCRYPTED_PENDING

        Raises:
            NoHiddenMessage: If the header does not describe a plausible payload
            CorruptedImage: If the payload framing cannot be parsed
            IntegrityViolation: If the envelope signature does not match
            IncorrectPassword: If decryption fails
            MessageExpired: If the time or view limit has passed
            DecoyNotFound: If no payload carries the requested index
            UnsupportedAlgorithm: If the header names an unknown algorithm
        """
        password = password or None
        self.audit.emit(
            AuditEventType.DECODE_STARTED,
            decoy_index=decoy_index,
            has_password=password is not None,
        )
        try:
            self._check_rate("decode")
            validate_pixels(pixels)
            if decoy_index is not None and not 0 <= decoy_index <= MAX_DECOYS:
                raise ValidationError(f"Decoy index must be between 1 and {MAX_DECOYS}")

            directory = read_directory(pixels)
            if decoy_index:
                result = self._decode_decoy(pixels, directory, password, decoy_index, options)
            else:
                main = pixels[:directory.main_rows] if directory else pixels
                result = self._decode_region(main, password, None, options)
        except CryptiPicError as exc:
            self._failed(AuditEventType.DECODE_FAILED, "Decode", exc)
            raise

        self.audit.emit(
            AuditEventType.DECODE_COMPLETED,
            status=result.status.value,
            algorithm=result.algorithm.value,
            decoy_index=result.decoy_index,
        )
        return result

    def _decode_decoy(
        self,
        pixels: np.ndarray,
        directory: Optional[DecoyDirectory],
        password: Optional[str],
        decoy_index: int,
        options: SteganographyOptions,
    ) -> DecodeResult:
        """Probe every decoy segment for a payload with the requested index."""
        regions = _decoy_segments(pixels, directory) if directory else [pixels]
        for position, region in enumerate(regions):
            try:
                return self._decode_region(region, password, decoy_index, options)
            except (NoHiddenMessage, CorruptedImage, IncorrectPassword, IntegrityViolation, DecoyNotFound) as exc:
                logger.debug(f"Decoy segment {position} rejected: {type(exc).__name__}")
        raise DecoyNotFound(f"No message with decoy index {decoy_index}", details={"decoy_index": decoy_index})

    def _decode_region(
        self,
        region: np.ndarray,
        password: Optional[str],
        expected_index: Optional[int],
        options: SteganographyOptions,
    ) -> DecodeResult:
        header = read_header(region)
        try:
            strategy, envelope = self._extract(region, header, password, options)
        except (NoHiddenMessage, CorruptedImage) as exc:
            # Unencrypted payloads are placed without password seeding
            if password is None or not options.chaotic.use_password or header.algorithm_id not in PASSWORD_SEEDED:
                raise
            logger.debug("Seeded extraction failed, retrying with unseeded positions")
            try:
                strategy, envelope = self._extract(region, header, None, options)
            except (NoHiddenMessage, CorruptedImage):
                raise IncorrectPassword("Decryption failed: incorrect password") from exc
        algorithm = strategy.algorithm
        metadata = envelope.metadata

        if envelope.encrypted and password is None:
            if expected_index is not None and metadata.decoy_index != expected_index:
                raise DecoyNotFound(f"No message with decoy index {expected_index}")
            logger.info("Encrypted payload found; password required")
            return DecodeResult(
                status=DecodeStatus.ENCRYPTED_PENDING,
                message=None,
                algorithm=algorithm,
                metadata=metadata,
                classification=metadata.classification,
            )

        envelope.verify()
        with self._stage(options, "decrypt"):
            message, classification = self._open(envelope, password, options)

        views_limit = self._check_expiry(envelope)
        if expected_index is not None and metadata.decoy_index != expected_index:
            raise DecoyNotFound(f"No message with decoy index {expected_index}")
        if views_limit is not None and self.view_ledger is not None:
            self.view_ledger.record(envelope.signature)

        logger.info(f"Decoded {len(message)} chars embedded with {algorithm.value}")
        return DecodeResult(
            status=DecodeStatus.DECODED,
            message=message,
            algorithm=algorithm,
            metadata=metadata,
            verified=True,
            classification=classification,
        )

    def _extract(
        self,
        region: np.ndarray,
        header: BinaryHeader,
        password: Optional[str],
        options: SteganographyOptions,
    ) -> Tuple[EmbeddingStrategy, MessageEnvelope]:
        strategy = self._dispatch(region, header, password, options)
        with self._stage(options, "extract"):
            bits = strategy.extract(region, header.length)
        return strategy, MessageEnvelope.parse(bits_to_bytes(bits))

    def _dispatch(
        self,
        region: np.ndarray,
        header: BinaryHeader,
        password: Optional[str],
        options: SteganographyOptions,
    ) -> EmbeddingStrategy:
        """
        Validate the header length and build the strategy it names.

        Raises:
            NoHiddenMessage: If the length is zero, not whole bytes or beyond
                what the strategy could have embedded
        """
        if header.length == 0 or header.length % 8 or header.length > region.size * MAX_CAPACITY:
            raise NoHiddenMessage("No hidden message found", details={"length": header.length})
        if region.ndim != 3 and header.algorithm_id != Algorithm.LSB.header_id:
            raise NoHiddenMessage("Segment does not hold an LSB payload")

        seed_password = password if options.chaotic.use_password else None
        strategy = get_strategy(header.algorithm_id, header.capacity, seed_password, options.chaotic.to_map_options())
        strategy.prepare_extract(region)
        if not strategy.fits(region, header.length):
            raise NoHiddenMessage(
                "Header length exceeds the carrier capacity",
                details={"length": header.length, "algorithm": strategy.algorithm.value},
            )
        return strategy

    def _open(
        self,
        envelope: MessageEnvelope,
        password: Optional[str],
        options: SteganographyOptions,
    ) -> Tuple[str, str]:
        """Decrypt and decompress the payload."""
        token = envelope.payload
        classification = envelope.classification

        if envelope.encrypted:
            if not envelope.metadata.encryption:
                raise CorruptedImage("Encrypted envelope does not name its cipher")
            algorithm = EncryptionAlgorithm.parse(envelope.metadata.encryption)
            engine = CryptoEngine(strength=options.encryption.strength)
            try:
                opened = engine.decrypt(token, password, algorithm, envelope.metadata.cipher_params)
            except IntegrityViolation as exc:
                if algorithm != EncryptionAlgorithm.ENHANCED_AES256:
                    raise
                raise IncorrectPassword("Decryption failed: incorrect password") from exc
            token = opened.plaintext
            classification = opened.classification or classification

        try:
            return self._compression.decompress_message(CompressionResult.from_token(token)), classification
        except ValueError as exc:
            if envelope.encrypted:
                raise IncorrectPassword("Decryption failed: incorrect password") from exc
            raise CorruptedImage("Compressed payload is malformed") from exc

    def _check_expiry(self, envelope: MessageEnvelope) -> Optional[int]:
        """
        Returns:
            The view limit when the message expires by views, else None

        Raises:
            MessageExpired: If the expiry has passed
            CorruptedImage: If the expiry record is malformed
        """
        expiry = envelope.metadata.expiry
        if not expiry:
            return None

        value = expiry.get("value")
        if not isinstance(value, int):
            raise CorruptedImage("Expiry value is malformed")

        kind = expiry.get("type")
        if kind == ExpiryType.TIME.value:
            if now_ms() > value:
                raise MessageExpired("Message has expired", details={"expired_at": value})
            return None
        if kind == ExpiryType.VIEWS.value:
            if self.view_ledger is not None:
                self.view_ledger.check(envelope.signature, value)
            return value
        raise CorruptedImage(f"Unknown expiry type: {kind}")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_rate(self, operation: str) -> None:
        if self.rate_limiter is not None:
            self.rate_limiter.check(self.client_id, operation)

    def _failed(self, event_type: AuditEventType, operation: str, exc: CryptiPicError) -> None:
        logger.error(f"{operation} failed: {exc}")
        self.audit.emit(event_type, AuditLevel.ERROR, error=type(exc).__name__, code=exc.code)

    @contextmanager
    def _stage(self, options: SteganographyOptions, name: str):
        if not options.debug:
            yield
            return
        started = time.perf_counter()
        yield
        elapsed = (time.perf_counter() - started) * 1000
        self.audit.emit(AuditEventType.STAGE, AuditLevel.DEBUG, stage=name, elapsed_ms=round(elapsed, 3))


# ============================================================================
# Capacity
# ============================================================================


def estimate_capacity(pixels: np.ndarray, options: SteganographyOptions = DEFAULT_OPTIONS) -> Dict[str, int]:
    """
    Largest framed payload, in bytes, each algorithm accepts for ``pixels``.

    The framed payload includes envelope metadata and, with a password, the
    cipher overhead, so usable message length is smaller.
    """
    validate_pixels(pixels)
    capacities: Dict[str, int] = {}
    for algorithm in Algorithm:
        strategy = get_strategy(algorithm, options.capacity, chaotic=options.chaotic.to_map_options())
        low, high = 0, pixels.size * MAX_CAPACITY
        while low < high:
            middle = (low + high + 1) // 2
            if strategy.fits(pixels, middle):
                low = middle
            else:
                high = middle - 1
        capacities[algorithm.value] = low // 8
    return capacities


# ============================================================================
# Module-level API
# ============================================================================


def encode(
    pixels: np.ndarray,
    message: str,
    password: Optional[str] = None,
    options: SteganographyOptions = DEFAULT_OPTIONS,
    audit: Optional[AuditCollector] = None,
    rate_limiter: Optional[OperationRateLimiter] = None,
    client_id: str = "local",
) -> np.ndarray:
    """Hide ``message`` in a copy of ``pixels``; see :meth:`SteganographyCodec.encode`."""
    codec = SteganographyCodec(audit=audit, rate_limiter=rate_limiter, client_id=client_id)
    return codec.encode(pixels, message, password, options)


def encode_with_decoys(
    pixels: np.ndarray,
    message: str,
    password: Optional[str],
    decoys: Iterable[DecoyMessage],
    options: SteganographyOptions = DEFAULT_OPTIONS,
    audit: Optional[AuditCollector] = None,
) -> np.ndarray:
    return SteganographyCodec(audit=audit).encode_with_decoys(pixels, message, password, decoys, options)


def decode(
    pixels: np.ndarray,
    password: Optional[str] = None,
    decoy_index: Optional[int] = None,
    options: SteganographyOptions = DEFAULT_OPTIONS,
    audit: Optional[AuditCollector] = None,
    view_ledger: Optional[ViewLedger] = None,
    rate_limiter: Optional[OperationRateLimiter] = None,
    client_id: str = "local",
) -> DecodeResult:
    """Recover a hidden message; see :meth:`SteganographyCodec.decode`."""
    codec = SteganographyCodec(
        audit=audit,
        rate_limiter=rate_limiter,
        view_ledger=view_ledger,
        client_id=client_id,
    )
    return codec.decode(pixels, password, decoy_index, options)


__all__ = [
    "DecodeStatus",
    "DecodeResult",
    "DecoyMessage",
    "DecoyDirectory",
    "ViewLedger",
    "SteganographyCodec",
    "encode",
    "encode_with_decoys",
    "decode",
    "estimate_capacity",
    "read_directory",
    "write_directory",
]
