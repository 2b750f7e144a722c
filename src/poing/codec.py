"""EnCodec decode: aligned codebook tokens -> waveform."""
import logging

import numpy as np

from poing.errors import ShapeError
from poing.runtime import require

logger = logging.getLogger(__name__)


def decode(codec, aligned_tokens):
    """Decode a (codebooks, T) token grid to a flat float32 waveform."""
    aligned_tokens = np.asarray(aligned_tokens, dtype=np.int64)
    if aligned_tokens.ndim != 2:
        raise ShapeError(f"expected (codebooks, T) tokens, got shape {aligned_tokens.shape}")
    num_codebooks, aligned_length = aligned_tokens.shape
    codes = aligned_tokens.reshape(1, 1, num_codebooks, aligned_length)
    logger.debug(f"Decoding audio codes {codes.shape}")

    outputs = codec.invoke({"audio_codes": codes})
    audio = require(outputs, "audio_values", "codec")
    return np.asarray(audio, dtype=np.float32).reshape(-1)
