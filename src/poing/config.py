"""Model and generation configuration.

Model dimensions are read from the HF-style ``config.json`` and
``generation_config.json`` that ship next to the exported ONNX graphs.
Missing files or keys fall back to the MusicGen-small defaults.
"""
import json
import logging
import math
import os
from dataclasses import dataclass
from typing import Optional

from poing.errors import PreconditionError

logger = logging.getLogger(__name__)

TEXT_ENCODER_FILE = "text_encoder.onnx"
DECODER_FILE = "decoder_model_merged.onnx"
CODEC_FILE = "encodec_decode.onnx"
TOKENIZER_FILE = "tokenizer.json"

REQUIRED_MODEL_FILES = (TEXT_ENCODER_FILE, DECODER_FILE, CODEC_FILE, TOKENIZER_FILE)

# Hosts are capped at 30 s of audio per request
MAX_DURATION_SECONDS = 30.0


def validate_model_dir(model_dir):
    """Return the required model files missing from ``model_dir``."""
    return [name for name in REQUIRED_MODEL_FILES
            if not os.path.exists(os.path.join(model_dir, name))]


def _read_json(path):
    if not os.path.exists(path):
        return {}
    with open(path) as f:
        return json.load(f)


@dataclass
class ModelConfig:
    num_codebooks: int = 4
    num_layers: int = 24
    num_heads: int = 16
    head_dim: int = 64
    vocab_size: int = 2048
    pad_token_id: int = 2048
    bos_token_id: int = 2048
    silence_token_id: int = 0
    max_length: int = 1500
    sample_rate: int = 32000
    frame_rate: int = 50

    @classmethod
    def from_model_dir(cls, model_dir):
        """Build a config from the JSON files in ``model_dir``."""
        cfg = _read_json(os.path.join(model_dir, "config.json"))
        gen = _read_json(os.path.join(model_dir, "generation_config.json"))
        defaults = cls()

        decoder = cfg.get("decoder", {})
        audio = cfg.get("audio_encoder", {})

        num_heads = decoder.get("num_attention_heads", defaults.num_heads)
        hidden_size = decoder.get("hidden_size", defaults.num_heads * defaults.head_dim)
        sample_rate = audio.get("sampling_rate", defaults.sample_rate)
        ratios = audio.get("upsampling_ratios")
        if ratios:
            frame_rate = math.ceil(sample_rate / math.prod(ratios))
        else:
            frame_rate = defaults.frame_rate

        config = cls(
            num_codebooks=decoder.get("num_codebooks", defaults.num_codebooks),
            num_layers=decoder.get("num_hidden_layers", defaults.num_layers),
            num_heads=num_heads,
            head_dim=hidden_size // num_heads,
            vocab_size=decoder.get("vocab_size", defaults.vocab_size),
            pad_token_id=decoder.get("pad_token_id", defaults.pad_token_id),
            bos_token_id=decoder.get("bos_token_id", defaults.bos_token_id),
            # guidance_scale and top_k in generation_config.json are not used
            max_length=gen.get("max_length", defaults.max_length),
            sample_rate=sample_rate,
            frame_rate=frame_rate,
        )
        logger.debug(f"Model config: {config}")
        return config

    def aligned_length(self, max_length):
        """Timesteps left once every codebook's delay offset is removed."""
        return max_length - 1 - (self.num_codebooks - 1)

    def max_length_for(self, params):
        """Decoder grid width needed for ``params``.

        Without a duration hint this is the model's full ``max_length``.
        Otherwise enough columns are allocated for the aligned sequence to
        cover the requested duration, clamped to the model limit.
        """
        if params.duration_hint is None:
            return self.max_length
        frames = math.ceil(params.duration_hint * self.frame_rate)
        length = frames + self.num_codebooks
        return max(self.num_codebooks + 1, min(length, self.max_length))


@dataclass
class GenerationParams:
    guidance_scale: float = 3.0
    top_k: int = 50
    duration_hint: Optional[float] = None
    seed: Optional[int] = None

    def validate(self):
        if not (math.isfinite(self.guidance_scale) and self.guidance_scale > 0):
            raise PreconditionError(
                f"guidance_scale must be a finite positive number, got {self.guidance_scale}")
        if (not math.isfinite(self.top_k) or int(self.top_k) != self.top_k
                or self.top_k <= 0):
            raise PreconditionError(f"top_k must be a positive integer, got {self.top_k}")
        if self.duration_hint is not None and not (
                math.isfinite(self.duration_hint) and self.duration_hint > 0):
            raise PreconditionError(
                f"duration_hint must be a finite positive number, got {self.duration_hint}")
        return self
