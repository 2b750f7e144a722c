"""OpenVINO model loading for the exported MusicGen graphs.

Orchestrates 3 exported ONNX models plus a tokenizer:
  1. text_encoder             - input_ids -> last_hidden_state
  2. decoder_model_merged     - tokens + encoder states + KV cache -> logits + present cache
  3. encodec_decode           - audio_codes -> audio_values

Each compiled model is wrapped in a ``ModelSession`` exposing one capability,
``invoke(named_inputs) -> named_outputs``. The pipeline depends only on that
method, so any object providing it (a test stub, a different runtime) can
stand in for an OpenVINO model.
"""
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict

import numpy as np
import openvino as ov
from transformers import AutoTokenizer

from poing.config import (CODEC_FILE, DECODER_FILE, TEXT_ENCODER_FILE,
                          ModelConfig, validate_model_dir)
from poing.errors import ModelDirectoryError, ModelInvocationError

logger = logging.getLogger(__name__)


def require(outputs, name, model="model"):
    """Fetch a named output, raising ModelInvocationError if it is absent."""
    try:
        return outputs[name]
    except KeyError:
        raise ModelInvocationError(f"{model} produced no '{name}' output") from None


class ModelSession:
    """A compiled OpenVINO model addressed by tensor name."""

    def __init__(self, compiled, name):
        self.compiled = compiled
        self.name = name

    @property
    def input_names(self):
        return [port.get_any_name() for port in self.compiled.inputs]

    @property
    def output_names(self):
        return [port.get_any_name() for port in self.compiled.outputs]

    def invoke(self, inputs: Dict[str, np.ndarray]) -> Dict[str, np.ndarray]:
        try:
            result = self.compiled(inputs)
            return {name: result[name] for name in self.output_names}
        except Exception as e:
            raise ModelInvocationError(f"{self.name} failed: {e}") from e

    def __repr__(self):
        return f"ModelSession({self.name!r})"


@dataclass
class ModelBundle:
    """Everything one generation needs from the model directory."""
    tokenizer: Any
    text_encoder: Any
    decoder: Any
    codec: Any
    config: ModelConfig


def load_models(model_dir, device="CPU", cache_dir=None):
    """Compile the three graphs in ``model_dir`` and load the tokenizer.

    Args:
        model_dir: Directory holding the exported ONNX graphs, tokenizer.json
                   and (optionally) config.json / generation_config.json.
        device: OpenVINO device name ("CPU", "GPU", ...).
        cache_dir: Optional OpenVINO compiled-model cache directory.

    Returns:
        ModelBundle
    """
    missing = validate_model_dir(model_dir)
    if missing:
        raise ModelDirectoryError(model_dir, missing)

    logger.info(f"Loading OpenVINO models from {model_dir} on {device}...")
    core = ov.Core()
    if cache_dir is not None:
        core.set_property({"CACHE_DIR": cache_dir})
        logger.info(f"  OpenVINO model cache: {cache_dir}")

    sessions = {}
    for key, filename in (("text_encoder", TEXT_ENCODER_FILE),
                          ("decoder", DECODER_FILE),
                          ("codec", CODEC_FILE)):
        t0 = time.time()
        try:
            compiled = core.compile_model(os.path.join(model_dir, filename), device)
        except Exception as e:
            raise ModelInvocationError(f"Failed to compile {filename}: {e}") from e
        sessions[key] = ModelSession(compiled, filename)
        logger.info(f"  {filename}: {time.time() - t0:.1f}s")

    t0 = time.time()
    tokenizer = AutoTokenizer.from_pretrained(model_dir)
    config = ModelConfig.from_model_dir(model_dir)
    logger.info(f"  Tokenizer + config loaded in {time.time() - t0:.1f}s")

    return ModelBundle(tokenizer=tokenizer, config=config, **sessions)
