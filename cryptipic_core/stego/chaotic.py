"""
Chaotic Sequence Generator.

This module provides deterministic pseudo-random embedding positions and
key streams driven by classic chaotic maps. Encode and decode never store
the position sequence: both sides regenerate it from the same password (or
numeric seed), map type and iteration count, so the generator must be
bit-for-bit reproducible.

Features:
    - Logistic, tent and Hénon one-dimensional value streams
    - Arnold cat map positional scrambling
    - Password-to-seed derivation through SHA-256
    - Order-preserving de-duplication with lowest-index backfill
    - Logistic key stream generation

Usage:
    >>> from cryptipic_core.stego.chaotic import ChaoticSequenceGenerator
    >>> generator = ChaoticSequenceGenerator()
    >>> positions = generator.generate_embedding_positions(10000, 120, password="secret")
    >>> len(set(positions))
    120
"""

import hashlib
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Sequence

import numpy as np

from ..errors import CapacityExceeded


logger = logging.getLogger(__name__)


# Salt appended to the password before hashing it into a seed
SEED_SALT = "chaotic-salt-v2"

# At most a quarter of the available positions may carry payload
MAX_SAFE_RATIO = 0.25

# Upper bound on a single key stream request (1 MiB)
MAX_KEY_STREAM_LENGTH = 1048576


class ChaoticMapType(Enum):
    """Supported chaotic maps."""

    LOGISTIC = "logistic"
    TENT = "tent"
    HENON = "henon"
    ARNOLD = "arnold"


@dataclass(frozen=True)
class ChaoticMapOptions:
    """
    Parameters of the chaotic generator.

    Attributes:
        seed: Initial value used when no password is supplied
        iterations: Scrambling rounds for the Arnold cat map
        map_type: Which map drives the sequence
        r: Logistic map growth rate
        mu: Tent map slope
        a: Hénon map ``a`` parameter
        b: Hénon map ``b`` parameter
    """

    seed: float = 0.5
    iterations: int = 1000
    map_type: ChaoticMapType = ChaoticMapType.LOGISTIC
    r: float = 3.99
    mu: float = 1.99999
    a: float = 1.4
    b: float = 0.3


class LogisticMap:
    """Logistic map ``x(n+1) = r * x(n) * (1 - x(n))``."""

    def __init__(self, seed: float = 0.5, r: float = 3.99):
        self._x = seed
        self._r = r

    def next(self) -> float:
        self._x = self._r * self._x * (1.0 - self._x)
        return self._x

    def generate_sequence(self, length: int) -> List[float]:
        return [self.next() for _ in range(length)]


class TentMap:
    """
    Tent map ``x(n+1) = mu * min(x(n), 1 - x(n))``.

    A slope of exactly 2.0 collapses to zero after roughly fifty steps in
    binary floating point, so the default slope sits just below it.
    """

    def __init__(self, seed: float = 0.5, mu: float = 1.99999):
        self._x = seed
        self._mu = mu

    def next(self) -> float:
        self._x = self._mu * min(self._x, 1.0 - self._x)
        return self._x

    def generate_sequence(self, length: int) -> List[float]:
        return [self.next() for _ in range(length)]


class HenonMap:
    """
    Hénon map, a two-dimensional map folded into one value stream.

    ``x(n+1) = 1 - a * x(n)^2 + y(n)`` and ``y(n+1) = b * x(n)``; each step
    yields ``(|x| + |y|) mod 1``.
    """

    def __init__(self, seed_x: float = 0.1, seed_y: float = 0.1, a: float = 1.4, b: float = 0.3):
        self._x = seed_x
        self._y = seed_y
        self._a = a
        self._b = b

    def next(self) -> float:
        new_x = 1.0 - self._a * self._x * self._x + self._y
        new_y = self._b * self._x
        self._x, self._y = new_x, new_y
        value = (abs(new_x) + abs(new_y)) % 1.0
        # an orbit that left the basin of attraction degrades to zeros
        return value if math.isfinite(value) else 0.0

    def generate_sequence(self, length: int) -> List[float]:
        return [self.next() for _ in range(length)]


class ArnoldCatMap:
    """
    Arnold cat map used for positional scrambling.

    ``(x, y) -> ((x + y) mod width, (x + 2y) mod height)``
    """

    def __init__(self, width: int, height: int):
        self._width = max(1, width)
        self._height = max(1, height)

    def transform(self, x: int, y: int, iterations: int = 1) -> tuple:
        for _ in range(iterations):
            x, y = (x + y) % self._width, (x + 2 * y) % self._height
        return x, y

    def generate_scrambled_positions(self, count: int, iterations: int = 5) -> List[int]:
        """Scramble the first ``count`` linear indices of the square."""
        indices = np.arange(count, dtype=np.int64)
        xs = indices % self._width
        ys = indices // self._width
        for _ in range(iterations):
            xs, ys = (xs + ys) % self._width, (xs + 2 * ys) % self._height
        return (ys * self._width + xs).tolist()


def password_to_seed(password: str) -> float:
    """
    Derive a map seed in (0, 1) from a password.

    The first four bytes of SHA-256(password + salt) are read as a signed
    big-endian 32-bit integer ``h`` and normalised to
    ``(|h| mod 999999) / 1e6 + 1e-6``.
    """
    digest = hashlib.sha256((password + SEED_SALT).encode("utf-8")).digest()
    value = int.from_bytes(digest[:4], "big", signed=True)
    return (abs(value) % 999999) / 1000000 + 0.000001


def chaotic_shuffle(items: Sequence[Any], seed: float = 0.5) -> List[Any]:
    """Fisher-Yates shuffle driven by a logistic map."""
    shuffled = list(items)
    logistic = LogisticMap(seed)
    for i in range(len(shuffled) - 1, 0, -1):
        j = min(i, int(math.floor(logistic.next() * (i + 1))))
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


class ChaoticSequenceGenerator:
    """
    Main interface for chaotic position and key stream generation.

    Attributes:
        options: Map parameters shared by encoder and decoder

    Example:
        >>> generator = ChaoticSequenceGenerator(ChaoticMapOptions(map_type=ChaoticMapType.HENON))
        >>> generator.generate_embedding_positions(400, 10, password="pw")
    """

    def __init__(self, options: Optional[ChaoticMapOptions] = None):
        self._options = options or ChaoticMapOptions()

    @property
    def options(self) -> ChaoticMapOptions:
        return self._options

    def derive_seed(self, password: Optional[str] = None) -> float:
        """Return the password seed, or the configured seed without one."""
        if password:
            return password_to_seed(password)
        return self._options.seed

    def generate_embedding_positions(
        self,
        total_positions: int,
        required_positions: int,
        password: Optional[str] = None,
    ) -> List[int]:
        """
        Generate ordered, unique embedding positions.

        Args:
            total_positions: Size of the position space
            required_positions: Number of positions to return
            password: Optional password; overrides the numeric seed

        Returns:
            ``required_positions`` distinct indices in ``[0, total_positions)``

        Raises:
            ValueError: If either count is not positive
            CapacityExceeded: If more than a quarter of the space is requested
        """
        if total_positions <= 0 or required_positions <= 0:
            raise ValueError("Invalid position parameters")

        if required_positions > total_positions * MAX_SAFE_RATIO:
            raise CapacityExceeded(
                "Required positions exceed safe embedding capacity",
                details={"required": required_positions, "total": total_positions},
            )

        seed = self.derive_seed(password)
        candidates = self._candidate_positions(total_positions, required_positions * 2, seed)

        positions = list(dict.fromkeys(candidates))[:required_positions]

        # Backfill with the lowest unused indices when the orbit repeated itself
        if len(positions) < required_positions:
            logger.debug(f"Backfilling {required_positions - len(positions)} chaotic positions")
            used = set(positions)
            index = 0
            while len(positions) < required_positions and index < total_positions:
                if index not in used:
                    positions.append(index)
                index += 1

        return positions

    def generate_key_stream(self, length: int, password: Optional[str] = None) -> bytes:
        """
        Generate a logistic-map key stream of ``length`` bytes.

        Raises:
            ValueError: If length is outside (0, 1 MiB]
        """
        if length <= 0 or length > MAX_KEY_STREAM_LENGTH:
            raise ValueError("Invalid key stream length")

        logistic = LogisticMap(self.derive_seed(password), 3.99)
        return bytes(min(255, int(logistic.next() * 256)) for _ in range(length))

    def _candidate_positions(self, total: int, count: int, seed: float) -> List[int]:
        opts = self._options
        map_type = opts.map_type

        if map_type == ChaoticMapType.ARNOLD:
            side = math.isqrt(total)
            arnold = ArnoldCatMap(side, side)
            return arnold.generate_scrambled_positions(min(count, total), opts.iterations)

        if map_type == ChaoticMapType.LOGISTIC:
            sequence = LogisticMap(seed, opts.r).generate_sequence(count)
        elif map_type == ChaoticMapType.TENT:
            sequence = TentMap(seed, opts.mu).generate_sequence(count)
        elif map_type == ChaoticMapType.HENON:
            sequence = HenonMap(seed, seed * 0.7, opts.a, opts.b).generate_sequence(count)
        else:
            raise ValueError(f"Unsupported chaotic map type: {map_type}")

        return [min(total - 1, max(0, int(math.floor(value * total)))) for value in sequence]


__all__ = [
    "ChaoticMapType",
    "ChaoticMapOptions",
    "LogisticMap",
    "TentMap",
    "HenonMap",
    "ArnoldCatMap",
    "ChaoticSequenceGenerator",
    "password_to_seed",
    "chaotic_shuffle",
    "MAX_SAFE_RATIO",
]
