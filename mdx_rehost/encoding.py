"""Byte-level character encoding detection for documents of unknown origin.

The heuristic is deliberately simple: byte-order marks are trusted, and
otherwise a sample of the input is scanned for malformed UTF-8 sequences and
GBK lead/trail byte pairs. Anything ambiguous falls back to UTF-8, so the
result is a best-effort guess rather than a guarantee.
"""

from __future__ import annotations

import logging
from typing import Tuple

from .models import EncodingBasis, EncodingGuess

logger = logging.getLogger("mdx_rehost.encoding")

SAMPLE_SIZE = 4096

# Longest marks first so FF FE 00 00 is not mistaken for the UTF-16 LE mark.
BOM_SIGNATURES: Tuple[Tuple[bytes, str], ...] = (
    (b"\x00\x00\xfe\xff", "utf-32-be"),
    (b"\xff\xfe\x00\x00", "utf-32-le"),
    (b"\xfe\xff", "utf-16-be"),
    (b"\xff\xfe", "utf-16-le"),
    (b"\xef\xbb\xbf", "utf-8"),
)

DOUBLE_BYTE_CHARSET = "gbk"
MULTI_BYTE_CHARSET = "gb18030"
DEFAULT_CHARSET = "utf-8"


def _is_continuation(value: int) -> bool:
    return value & 0xC0 == 0x80


def _utf8_sequence_length(lead: int) -> int:
    if 0xC0 <= lead <= 0xDF:
        return 2
    if 0xE0 <= lead <= 0xEF:
        return 3
    if 0xF0 <= lead <= 0xF7:
        return 4
    return 0


def count_malformed_utf8(sample: bytes, truncated: bool = False) -> int:
    """Count sequences breaking UTF-8 continuation rules.

    A sequence cut short by the end of a truncated sample is not counted.
    """
    malformed = 0
    index = 0
    length = len(sample)
    while index < length:
        value = sample[index]
        if value < 0x80:
            index += 1
            continue
        expected = _utf8_sequence_length(value)
        if expected == 0:
            # stray continuation byte or invalid lead byte
            malformed += 1
            index += 1
            continue
        end = index + expected
        if end > length and truncated:
            tail = sample[index + 1 :]
            if all(_is_continuation(b) for b in tail):
                break
        if end > length or not all(_is_continuation(b) for b in sample[index + 1 : end]):
            malformed += 1
            index += 1
            continue
        index = end
    return malformed


def count_double_byte_pairs(sample: bytes) -> int:
    """Count byte pairs inside GBK lead/trail byte ranges."""
    pairs = 0
    index = 0
    length = len(sample)
    while index < length - 1:
        lead = sample[index]
        trail = sample[index + 1]
        if 0x81 <= lead <= 0xFE and (0x40 <= trail <= 0x7E or 0x80 <= trail <= 0xFE):
            pairs += 1
            index += 2
            continue
        index += 1
    return pairs


def detect(raw: bytes) -> EncodingGuess:
    """Guess the encoding of ``raw``. Never raises."""
    head = raw[:4]
    for signature, charset in BOM_SIGNATURES:
        if head.startswith(signature):
            logger.debug("Detected %s byte-order mark", charset)
            return EncodingGuess(charset, EncodingBasis.BOM, len(signature))

    sample = raw[:SAMPLE_SIZE]
    if not sample:
        logger.debug("Empty input, defaulting to %s", DEFAULT_CHARSET)
        return EncodingGuess(DEFAULT_CHARSET, EncodingBasis.DEFAULT)

    ascii_count = sum(1 for b in sample if b < 0x80)
    malformed = count_malformed_utf8(sample, truncated=len(raw) > SAMPLE_SIZE)
    pairs = count_double_byte_pairs(sample)
    logger.debug(
        "Encoding sample: %d bytes, %d ascii, %d malformed utf-8, %d double-byte pairs",
        len(sample),
        ascii_count,
        malformed,
        pairs,
    )

    if malformed and pairs:
        charset = DOUBLE_BYTE_CHARSET
    elif malformed:
        charset = MULTI_BYTE_CHARSET
    else:
        charset = DEFAULT_CHARSET
    return EncodingGuess(charset, EncodingBasis.HEURISTIC_CONTENT)


def decode(raw: bytes, guess: EncodingGuess | None = None) -> str:
    """Decode ``raw`` with the detected encoding, dropping any byte-order mark."""
    guess = guess or detect(raw)
    body = raw[guess.bom_length :] if guess.basis is EncodingBasis.BOM else raw
    return body.decode(guess.charset, errors="replace")
