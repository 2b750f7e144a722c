import threading
import time

import numpy as np
from pytest import fixture

from poing.config import ModelConfig
from poing.errors import ModelInvocationError
from poing.pipeline import MusicGenPipeline
from poing.runtime import ModelBundle

FAVORED_TOKEN = 5


class StubTokenizer:
    """Character-level tokenizer that appends an EOS id of 1."""

    def __init__(self):
        self.calls = []

    def __call__(self, text, add_special_tokens=True, return_tensors="np"):
        self.calls.append(text)
        ids = [2 + (ord(c) % 50) for c in text]
        if add_special_tokens:
            ids.append(1)
        return {
            "input_ids": np.array([ids], dtype=np.int64),
            "attention_mask": np.ones((1, len(ids)), dtype=np.int64),
        }


class StubTextEncoder:
    def __init__(self, hidden_dim=8):
        self.hidden_dim = hidden_dim
        self.calls = []

    def invoke(self, inputs):
        self.calls.append(inputs)
        seq = inputs["input_ids"].shape[1]
        return {"last_hidden_state": np.full((1, seq, self.hidden_dim), 0.5, dtype=np.float32)}


class StubDecoder:
    """Merged-decoder stand-in honouring the cache contract.

    mode="favored": logits peak hard at FAVORED_TOKEN for every codebook.
    mode="random": logits drawn from a seeded rng so codebooks differ.
    """

    def __init__(self, config, mode="favored", fail_at=None, drop_output=None):
        self.config = config
        self.mode = mode
        self.fail_at = fail_at
        self.drop_output = drop_output
        self.rng = np.random.default_rng(1234)
        self.calls = []

    def invoke(self, inputs):
        step = len(self.calls)
        cfg = self.config
        self.calls.append({
            "input_ids": inputs["input_ids"].copy(),
            "use_cache_branch": bool(inputs["use_cache_branch"][0]),
            "self_len": inputs["past_key_values.0.decoder.key"].shape[2],
            "cross_len": inputs["past_key_values.0.encoder.key"].shape[2],
            "encoder_hidden_states": inputs["encoder_hidden_states"],
            "encoder_attention_mask": inputs["encoder_attention_mask"],
        })
        if self.fail_at is not None and step == self.fail_at:
            raise ModelInvocationError(f"decoder exploded at step {step}")

        rows, batch = inputs["input_ids"].shape[0], inputs["encoder_hidden_states"].shape[0]
        assert rows == 2 * cfg.num_codebooks
        if self.mode == "favored":
            logits = np.zeros((rows, 1, cfg.vocab_size), dtype=np.float32)
            logits[:, :, FAVORED_TOKEN] = 100.0
        else:
            logits = self.rng.normal(size=(rows, 1, cfg.vocab_size)).astype(np.float32) * 5

        outputs = {"logits": logits}
        seq = inputs["encoder_hidden_states"].shape[1]
        step_kv = np.ones((batch, cfg.num_heads, 1, cfg.head_dim), dtype=np.float32)
        for i in range(cfg.num_layers):
            for kind in ("key", "value"):
                past = inputs[f"past_key_values.{i}.decoder.{kind}"]
                outputs[f"present.{i}.decoder.{kind}"] = np.concatenate([past, step_kv], axis=2)
                if inputs["use_cache_branch"][0]:
                    outputs[f"present.{i}.encoder.{kind}"] = inputs[f"past_key_values.{i}.encoder.{kind}"]
                else:
                    outputs[f"present.{i}.encoder.{kind}"] = np.full(
                        (batch, cfg.num_heads, seq, cfg.head_dim), step + 1.0, dtype=np.float32)
        if self.drop_output is not None:
            del outputs[self.drop_output]
        return outputs


class StubCodec:
    samples_per_frame = 640

    def __init__(self):
        self.calls = []

    def invoke(self, inputs):
        codes = inputs["audio_codes"]
        self.calls.append(codes)
        n = codes.shape[-1] * self.samples_per_frame
        return {"audio_values": np.linspace(-0.5, 0.5, n, dtype=np.float32).reshape(1, 1, n)}


class SerialCheckingDecoder(StubDecoder):
    """Tracks how many generations drive the decoder at the same time."""

    def __init__(self, config):
        super().__init__(config)
        self.lock = threading.Lock()
        self.active = 0
        self.max_active = 0

    def invoke(self, inputs):
        with self.lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            time.sleep(0.001)
            return super().invoke(inputs)
        finally:
            with self.lock:
                self.active -= 1


def tiny_config(**overrides):
    values = dict(num_codebooks=2, num_layers=3, num_heads=2, head_dim=4,
                  vocab_size=16, pad_token_id=16, bos_token_id=16,
                  silence_token_id=0, max_length=10, sample_rate=32000, frame_rate=50)
    values.update(overrides)
    return ModelConfig(**values)


def make_pipeline(config=None, decoder=None, text_encoder=None, codec=None, tokenizer=None):
    config = config or tiny_config()
    bundle = ModelBundle(
        tokenizer=tokenizer or StubTokenizer(),
        text_encoder=text_encoder or StubTextEncoder(),
        decoder=decoder or StubDecoder(config),
        codec=codec or StubCodec(),
        config=config,
    )
    return MusicGenPipeline(models=bundle)


@fixture
def config() -> ModelConfig:
    return tiny_config()


@fixture
def pipeline(config) -> MusicGenPipeline:
    return make_pipeline(config)
