"""Classifier-free guidance.

The unconditional branch is an all-zero hidden state and an all-zero mask,
not an encoding of the empty string. This matches the reference MusicGen
exports and must be kept for output parity.
"""
import numpy as np

from poing.errors import ShapeError


def build_batch(cond_hidden, cond_mask):
    """Stack the conditional batch on top of its zero counterpart.

    Returns:
        tuple: (encoder_hidden_states (2B, S, D), encoder_attention_mask (2B, S))
    """
    if cond_hidden.ndim != 3 or cond_mask.shape != cond_hidden.shape[:2]:
        raise ShapeError(
            f"hidden {cond_hidden.shape} and mask {cond_mask.shape} do not line up")
    hidden = np.concatenate([cond_hidden, np.zeros_like(cond_hidden)], axis=0)
    mask = np.concatenate([cond_mask, np.zeros_like(cond_mask)], axis=0)
    return hidden, mask


def combine(cond_logits, uncond_logits, scale):
    """guided = uncond + scale * (cond - uncond), elementwise."""
    if cond_logits.shape != uncond_logits.shape:
        raise ShapeError(
            f"cond logits {cond_logits.shape} != uncond logits {uncond_logits.shape}")
    return uncond_logits + scale * (cond_logits - uncond_logits)


def split(logits, num_codebooks):
    """Split decoder logits (2C, T, V) into conditional and unconditional halves."""
    if logits.ndim != 3 or logits.shape[0] != 2 * num_codebooks:
        raise ShapeError(
            f"decoder logits of shape {logits.shape}, expected ({2 * num_codebooks}, T, V)")
    return logits[:num_codebooks], logits[num_codebooks:]
