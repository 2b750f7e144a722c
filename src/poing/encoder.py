"""Text prompt -> T5 encoder hidden states."""
import logging

import numpy as np

from poing.errors import ModelInvocationError, ShapeError, TokenizationError
from poing.runtime import require

logger = logging.getLogger(__name__)


def tokenize(tokenizer, prompt):
    """Tokenize ``prompt`` with the EOS marker appended.

    Returns:
        tuple: (input_ids, attention_mask), both int64 arrays of shape (1, S).
    """
    if isinstance(prompt, bytes):
        try:
            prompt = prompt.decode("utf-8")
        except UnicodeDecodeError as e:
            raise TokenizationError(f"Prompt is not valid UTF-8: {e}") from e

    try:
        tokens = tokenizer(prompt, add_special_tokens=True, return_tensors="np")
    except Exception as e:
        raise TokenizationError(f"Could not tokenize prompt: {e}") from e

    input_ids = np.asarray(tokens["input_ids"], dtype=np.int64).reshape(1, -1)
    attention_mask = np.asarray(tokens["attention_mask"], dtype=np.int64).reshape(1, -1)
    if input_ids.shape[1] == 0:
        raise TokenizationError("Prompt produced no tokens")
    if attention_mask.shape != input_ids.shape:
        raise ShapeError(
            f"attention_mask {attention_mask.shape} does not match input_ids {input_ids.shape}")
    return input_ids, attention_mask


def encode(tokenizer, text_encoder, prompt):
    """Run the text encoder on ``prompt``.

    Returns:
        tuple: (hidden_states (1, S, D) float32, attention_mask (1, S) int64)
    """
    input_ids, attention_mask = tokenize(tokenizer, prompt)
    logger.debug(f"Prompt tokens: {input_ids.shape[1]}")

    outputs = text_encoder.invoke({
        "input_ids": input_ids,
        "attention_mask": attention_mask,
    })
    hidden = np.asarray(require(outputs, "last_hidden_state", "text encoder"),
                        dtype=np.float32)
    if hidden.ndim != 3 or hidden.shape[:2] != input_ids.shape:
        raise ModelInvocationError(
            f"text encoder returned last_hidden_state of shape {hidden.shape}, "
            f"expected (1, {input_ids.shape[1]}, D)")
    return hidden, attention_mask
