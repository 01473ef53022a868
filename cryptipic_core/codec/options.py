"""
Steganography Options.

Immutable option tree passed into every encode call, plus JSON settings
file loading and saving. String values are accepted wherever an enum is
expected and normalised on construction, so options read from a settings
file and options built in code compare equal.

Settings file example::

    {
      "algorithm": "multibit-lsb",
      "capacity": 3,
      "encryption": {"algorithm": "aes", "strength": 256},
      "compression": {"algorithm": "adaptive", "level": 5},
      "chaotic": {"map_type": "logistic", "iterations": 1000}
    }
"""

import json
import logging
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..crypto.defense import ClassificationLevel
from ..crypto.engine import EncryptionAlgorithm, resolve_algorithm
from ..errors import CryptiPicError, ValidationError
from ..stego.algorithms import Algorithm
from ..stego.chaotic import ChaoticMapOptions, ChaoticMapType
from ..stego.compression import CompressionAlgorithm


logger = logging.getLogger(__name__)


class ExpiryType(Enum):
    """How a message expires."""

    TIME = "time"
    VIEWS = "views"


def _coerce(instance: Any, name: str, parser) -> None:
    value = getattr(instance, name)
    try:
        object.__setattr__(instance, name, parser(value))
    except CryptiPicError:
        raise
    except ValueError as exc:
        raise ValidationError(f"Invalid value for {name}: {value}") from exc


@dataclass(frozen=True)
class EncryptionOptions:
    """
    Attributes:
        algorithm: Cipher used when a password is supplied
        strength: AES key size in bits, also the quantum security level
        quantum_resistant: Overrides ``algorithm`` with the quantum simulation
        defense_iterations: PBKDF2 rounds of the enhanced-aes256 envelope
    """
    algorithm: EncryptionAlgorithm = EncryptionAlgorithm.AES
    strength: int = 256
    quantum_resistant: bool = False
    defense_iterations: int = 100000

    def __post_init__(self):
        _coerce(self, "algorithm", EncryptionAlgorithm.parse)

    @property
    def effective_algorithm(self) -> EncryptionAlgorithm:
        return resolve_algorithm(self.algorithm, self.quantum_resistant)


@dataclass(frozen=True)
class CompressionOptions:
    algorithm: CompressionAlgorithm = CompressionAlgorithm.ADAPTIVE
    level: int = 5

    def __post_init__(self):
        _coerce(self, "algorithm", lambda v: v if isinstance(v, CompressionAlgorithm) else CompressionAlgorithm(str(v).lower()))


@dataclass(frozen=True)
class ChaoticOptions:
    """
    Attributes:
        map_type: Chaotic map driving position generation
        seed: Numeric seed in (0, 1) used when the password does not seed the map
        iterations: Arnold cat map rounds
        use_password: Seed the map from the password when one is supplied
    """
    map_type: ChaoticMapType = ChaoticMapType.LOGISTIC
    seed: Optional[float] = None
    iterations: int = 1000
    use_password: bool = True

    def __post_init__(self):
        _coerce(self, "map_type", lambda v: v if isinstance(v, ChaoticMapType) else ChaoticMapType(str(v).lower()))

    def to_map_options(self) -> ChaoticMapOptions:
        return ChaoticMapOptions(
            seed=self.seed if self.seed is not None else 0.5,
            iterations=self.iterations,
            map_type=self.map_type,
        )


@dataclass(frozen=True)
class ExpiryOptions:
    """
    Attributes:
        type: ``time`` (value is an absolute epoch time in milliseconds) or
            ``views`` (value is the number of permitted decodes)
        value: Expiry threshold
    """
    type: ExpiryType = ExpiryType.TIME
    value: int = 0

    def __post_init__(self):
        _coerce(self, "type", lambda v: v if isinstance(v, ExpiryType) else ExpiryType(str(v).lower()))

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "value": self.value}


@dataclass(frozen=True)
class SteganographyOptions:
    """
    Per-call options of the envelope codec.

    Attributes:
        algorithm: Embedding algorithm
        encryption: Cipher selection, used only with a password
        compression: Compression algorithm and level
        chaotic: Chaotic map parameters
        quality: Advisory output quality (1-100), recorded only
        capacity: Bits per position for multi-bit algorithms (1-8)
        expiry: Optional time or view limit
        is_decoy: Marks the payload as a decoy
        decoy_index: Decoy slot (1-3); 0 or None for the main message
        debug: Emit debug audit events
        classification: Handling caveat for defense envelopes
    """
    algorithm: Algorithm = Algorithm.LSB
    encryption: EncryptionOptions = field(default_factory=EncryptionOptions)
    compression: CompressionOptions = field(default_factory=CompressionOptions)
    chaotic: ChaoticOptions = field(default_factory=ChaoticOptions)
    quality: int = 90
    capacity: int = 2
    expiry: Optional[ExpiryOptions] = None
    is_decoy: bool = False
    decoy_index: Optional[int] = None
    debug: bool = False
    classification: ClassificationLevel = ClassificationLevel.UNCLASSIFIED

    def __post_init__(self):
        _coerce(self, "algorithm", Algorithm.parse)
        _coerce(self, "classification", ClassificationLevel.parse)

    def with_changes(self, **changes: Any) -> "SteganographyOptions":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "algorithm": self.algorithm.value,
            "encryption": {
                "algorithm": self.encryption.algorithm.value,
                "strength": self.encryption.strength,
                "quantum_resistant": self.encryption.quantum_resistant,
                "defense_iterations": self.encryption.defense_iterations,
            },
            "compression": {
                "algorithm": self.compression.algorithm.value,
                "level": self.compression.level,
            },
            "chaotic": {
                "map_type": self.chaotic.map_type.value,
                "seed": self.chaotic.seed,
                "iterations": self.chaotic.iterations,
                "use_password": self.chaotic.use_password,
            },
            "quality": self.quality,
            "capacity": self.capacity,
            "expiry": self.expiry.to_dict() if self.expiry else None,
            "is_decoy": self.is_decoy,
            "decoy_index": self.decoy_index,
            "debug": self.debug,
            "classification": self.classification.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SteganographyOptions":
        """
        Build options from a settings dictionary; missing keys keep defaults.

        Raises:
            ValidationError: On unknown keys or values of the wrong type
        """
        if not isinstance(data, dict):
            raise ValidationError("Options must be a JSON object")

        nested = {
            "encryption": EncryptionOptions,
            "compression": CompressionOptions,
            "chaotic": ChaoticOptions,
            "expiry": ExpiryOptions,
        }
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValidationError(f"Unknown option keys: {sorted(unknown)}")

        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            if key in nested and value is not None:
                if not isinstance(value, dict):
                    raise ValidationError(f"Option {key} must be an object")
                try:
                    kwargs[key] = nested[key](**value)
                except TypeError as exc:
                    raise ValidationError(f"Invalid keys in {key} options") from exc
            else:
                kwargs[key] = value
        return cls(**kwargs)


DEFAULT_OPTIONS = SteganographyOptions()


def load_options(path: Union[str, Path]) -> SteganographyOptions:
    """
    Load options from a JSON settings file.

    Raises:
        ValidationError: If the file is not valid JSON or holds invalid options
    """
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
    except json.JSONDecodeError as exc:
        raise ValidationError(f"Settings file {path} is not valid JSON") from exc
    logger.debug(f"Loaded options from {path}")
    return SteganographyOptions.from_dict(data)


def save_options(options: SteganographyOptions, path: Union[str, Path]) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "w", encoding="utf-8") as handle:
        json.dump(options.to_dict(), handle, indent=2)
    return target


__all__ = [
    "ExpiryType",
    "EncryptionOptions",
    "CompressionOptions",
    "ChaoticOptions",
    "ExpiryOptions",
    "SteganographyOptions",
    "DEFAULT_OPTIONS",
    "load_options",
    "save_options",
]
