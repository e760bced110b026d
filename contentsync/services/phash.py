import io
import math
import re
from dataclasses import dataclass
from typing import Sequence, TypeVar

import imagehash
import numpy as np
from PIL import Image, UnidentifiedImageError

from contentsync.errors import HashComputeError

HASH_SIZE = 16
HASH_BITS = HASH_SIZE * HASH_SIZE
BLANK_STDDEV_THRESHOLD = 5.0
BLANK_DARK_MEAN = 10.0
BLANK_BRIGHT_MEAN = 245.0
DEFAULT_MATCH_THRESHOLD = 0.85
DEFAULT_BEST_MATCH_THRESHOLD = 0.80

# Returned by hamming_distance() when two hashes cannot be compared.
INCOMPARABLE = math.inf

_HEX = re.compile(r"[0-9a-fA-F]+")

T = TypeVar("T")


@dataclass(frozen=True)
class Fingerprint:
    hash: str
    is_likely_blank: bool
    width: int
    height: int


@dataclass(frozen=True)
class BestMatch:
    candidate: object
    similarity: float
    distance: int


def _luminance_grid(image: Image.Image) -> np.ndarray:
    # Same grid average_hash samples, kept for the blank-frame statistics.
    gray = image.convert("L").resize((HASH_SIZE, HASH_SIZE), Image.Resampling.LANCZOS)
    return np.asarray(gray, dtype=np.float64)


def compute_fingerprint(image_bytes: bytes) -> Fingerprint:
    """
    Average-luminance perceptual hash over a 16x16 grayscale grid.

    Bit i is set when sample i is brighter than the grid mean; the 256 bits are
    packed into 64 hex characters. Near-uniform, near-black and near-white
    frames (boot screens, blank players) are flagged as likely blank.
    """
    if not image_bytes:
        raise HashComputeError("Empty image payload")
    try:
        with Image.open(io.BytesIO(image_bytes)) as image:
            image.load()
            width, height = image.size
            image_hash = imagehash.average_hash(image, hash_size=HASH_SIZE)
            pixels = _luminance_grid(image)
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise HashComputeError(f"Cannot decode image: {exc}") from exc
    if not width or not height:
        raise HashComputeError("Image has no pixels")

    mean = float(pixels.mean())
    stddev = float(pixels.std())
    is_blank = stddev < BLANK_STDDEV_THRESHOLD or mean < BLANK_DARK_MEAN or mean > BLANK_BRIGHT_MEAN
    return Fingerprint(hash=str(image_hash), is_likely_blank=is_blank, width=width, height=height)


def _parse_hex(value: str) -> int | None:
    if not isinstance(value, str) or not _HEX.fullmatch(value):
        return None
    return int(value, 16)


def hamming_distance(hash_a: str, hash_b: str) -> float:
    """Number of differing bits, or INCOMPARABLE for unequal-length or non-hex input."""
    if not hash_a or not hash_b or len(hash_a) != len(hash_b):
        return INCOMPARABLE
    a = _parse_hex(hash_a)
    b = _parse_hex(hash_b)
    if a is None or b is None:
        return INCOMPARABLE
    return bin(a ^ b).count("1")


def similarity(hash_a: str, hash_b: str) -> float:
    distance = hamming_distance(hash_a, hash_b)
    if distance == INCOMPARABLE:
        return 0.0
    total_bits = len(hash_a) * 4
    return 1.0 - (distance / total_bits)


def is_match(hash_a: str, hash_b: str, threshold: float = DEFAULT_MATCH_THRESHOLD) -> bool:
    return similarity(hash_a, hash_b) >= threshold


def find_best_match(
    query_hash: str,
    candidates: Sequence[T],
    threshold: float = DEFAULT_BEST_MATCH_THRESHOLD,
    hash_of=lambda candidate: candidate.hash,
) -> BestMatch | None:
    # Strict ">" keeps the earliest candidate on ties.
    best: BestMatch | None = None
    for candidate in candidates:
        candidate_hash = hash_of(candidate)
        score = similarity(query_hash, candidate_hash)
        if score < threshold:
            continue
        if best is None or score > best.similarity:
            best = BestMatch(
                candidate=candidate,
                similarity=score,
                distance=int(hamming_distance(query_hash, candidate_hash)),
            )
    return best
