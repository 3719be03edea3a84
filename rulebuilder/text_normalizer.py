# rulebuilder/text_normalizer.py

import html
import logging

logger = logging.getLogger("rulebuilder.text_normalizer")

# Guard against a decoder that never reaches a fixed point.
MAX_DECODE_PASSES = 10


def normalize(value: str | None) -> str:
    """
    Decode layered HTML entities ("&amp;quot;" -> "&quot;" -> '"') until the
    text stops changing, then trim surrounding whitespace.

    Decoding stops after MAX_DECODE_PASSES layers. Input nested deeper than
    that comes back partially decoded, and only then is normalize not
    idempotent: a second call peels the remaining layers.
    """
    if not value:
        return ""

    current = value
    for _ in range(MAX_DECODE_PASSES):
        decoded = html.unescape(current)
        if decoded == current:
            break
        current = decoded
    else:
        logger.warning(f"normalize: entity decoding did not converge after {MAX_DECODE_PASSES} passes")

    return current.strip()
