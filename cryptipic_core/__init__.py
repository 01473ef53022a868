# CryptiPic Core
# Steganography engine hiding encrypted, compressed text in RGBA pixel data
#
# This package provides:
# - Embedding algorithms: LSB, multi-bit LSB, mobile-optimized, chaotic LSB,
#   DCT, DWT, hybrid DCT/DWT and adaptive hybrid (stego)
# - Password-based ciphers and the simulated post-quantum KEM (crypto)
# - The envelope codec with decoy multiplexing (codec)
# - A typed error taxonomy shared by all layers (errors)

from .errors import (
    CryptiPicError,
    CapacityExceeded,
    NoHiddenMessage,
    CorruptedImage,
    IncorrectPassword,
    MessageExpired,
    DecoyNotFound,
    IntegrityViolation,
    UnsupportedAlgorithm,
    ValidationError,
    RateLimitExceeded,
)
from .stego import Algorithm, load_rgba, save_png, from_flat
from .codec import (
    SteganographyOptions,
    DEFAULT_OPTIONS,
    SteganographyCodec,
    DecodeResult,
    DecodeStatus,
    DecoyMessage,
    ViewLedger,
    encode,
    encode_with_decoys,
    decode,
    estimate_capacity,
)

__all__ = [
    # Errors
    'CryptiPicError',
    'CapacityExceeded',
    'NoHiddenMessage',
    'CorruptedImage',
    'IncorrectPassword',
    'MessageExpired',
    'DecoyNotFound',
    'IntegrityViolation',
    'UnsupportedAlgorithm',
    'ValidationError',
    'RateLimitExceeded',
    # Pixels
    'Algorithm',
    'load_rgba',
    'save_png',
    'from_flat',
    # Codec
    'SteganographyOptions',
    'DEFAULT_OPTIONS',
    'SteganographyCodec',
    'DecodeResult',
    'DecodeStatus',
    'DecoyMessage',
    'ViewLedger',
    'encode',
    'encode_with_decoys',
    'decode',
    'estimate_capacity',
]

__version__ = "2.0.0"
