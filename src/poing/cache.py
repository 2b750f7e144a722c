"""Per-layer key/value cache for the merged MusicGen decoder.

The decoder graph takes ``past_key_values.{i}.{decoder,encoder}.{key,value}``
inputs and returns matching ``present.{i}...`` outputs. The tensor names are
formatted once up front; the loop itself only walks a fixed-size list.
"""
from dataclasses import dataclass

import numpy as np

from poing.runtime import require


@dataclass
class LayerCache:
    self_key: np.ndarray
    self_value: np.ndarray
    cross_key: np.ndarray
    cross_value: np.ndarray


def _names(prefix, layer):
    return (f"{prefix}.{layer}.decoder.key",
            f"{prefix}.{layer}.decoder.value",
            f"{prefix}.{layer}.encoder.key",
            f"{prefix}.{layer}.encoder.value")


class KVCache:
    """Self-attention cache that grows every step plus a cross-attention
    cache that is filled on the first step and then held fixed."""

    def __init__(self, num_layers, batch_size, num_heads, head_dim):
        empty = (batch_size, num_heads, 0, head_dim)
        self.layers = [
            LayerCache(*(np.zeros(empty, dtype=np.float32) for _ in range(4)))
            for _ in range(num_layers)
        ]
        self.past_names = [_names("past_key_values", i) for i in range(num_layers)]
        self.present_names = [_names("present", i) for i in range(num_layers)]
        self.cross_populated = False

    def __len__(self):
        return len(self.layers)

    @property
    def self_length(self):
        return self.layers[0].self_key.shape[2] if self.layers else 0

    @property
    def cross_length(self):
        return self.layers[0].cross_key.shape[2] if self.layers else 0

    def inputs(self):
        """Decoder inputs for every layer, keyed by tensor name."""
        feed = {}
        for layer, (dk, dv, ek, ev) in zip(self.layers, self.past_names):
            feed[dk] = layer.self_key
            feed[dv] = layer.self_value
            feed[ek] = layer.cross_key
            feed[ev] = layer.cross_value
        return feed

    def update(self, outputs):
        """Adopt the decoder's ``present`` tensors.

        Self-attention entries are always replaced. Cross-attention entries
        are taken from the first call only.
        """
        populate_cross = not self.cross_populated
        for layer, (dk, dv, ek, ev) in zip(self.layers, self.present_names):
            layer.self_key = require(outputs, dk, "decoder")
            layer.self_value = require(outputs, dv, "decoder")
            if populate_cross:
                layer.cross_key = require(outputs, ek, "decoder")
                layer.cross_value = require(outputs, ev, "decoder")
        self.cross_populated = True
