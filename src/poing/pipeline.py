"""MusicGen text-to-audio generation via OpenVINO.

Control flow for one ``generate`` call:

  prompt -> tokenizer + text_encoder -> conditional hidden states
         -> zero unconditional branch stacked on the batch axis
         -> autoregressive decoder loop over the delay-pattern grid
            (KV cache, classifier-free guidance, top-k sampling)
         -> undelay -> encodec_decode -> mono float32 waveform

Every call builds a fresh grid and cache. Nothing is shared between calls
and the loaded models must not be driven by two calls at once; see
``poing.worker`` for serialized background execution.
"""
import logging
import time

import numpy as np

from poing import codec, encoder, guidance
from poing.cache import KVCache
from poing.config import GenerationParams
from poing.delay import DelayPattern
from poing.errors import (Cancelled, GenerationError, ModelInvocationError,
                          PreconditionError, TokenizationError)
from poing.runtime import load_models, require
from poing.sampling import sample_top_k

logger = logging.getLogger(__name__)


def _no_progress(value):
    pass


def check_prompt(prompt):
    if isinstance(prompt, bytes):
        try:
            prompt = prompt.decode("utf-8")
        except UnicodeDecodeError as e:
            raise TokenizationError(f"Prompt is not valid UTF-8: {e}") from e
    if prompt is None or not str(prompt).strip():
        raise PreconditionError("Please enter a prompt")


class MusicGenPipeline:
    """OpenVINO-backed MusicGen inference pipeline.

    Args:
        model_dir: Directory with the exported ONNX graphs and tokenizer.
        device: OpenVINO device.
        cache_dir: Optional OpenVINO compiled-model cache.
        models: Pre-loaded ``ModelBundle``; skips loading from ``model_dir``.
    """

    def __init__(self, model_dir=None, device="CPU", cache_dir=None, models=None):
        if models is None:
            if model_dir is None:
                raise PreconditionError("No model path configured")
            t0 = time.time()
            models = load_models(model_dir, device=device, cache_dir=cache_dir)
            logger.info(f"Models ready in {time.time() - t0:.1f}s")
        self.model_dir = model_dir
        self.device = device
        self.tokenizer = models.tokenizer
        self.text_encoder = models.text_encoder
        self.decoder = models.decoder
        self.codec = models.codec
        self.config = models.config

    @property
    def sample_rate(self):
        return self.config.sample_rate

    # ----------------------------------------------------------
    # Stages
    # ----------------------------------------------------------
    def encode_prompt(self, prompt):
        """Conditional + zero unconditional encoder batch for ``prompt``."""
        hidden, mask = encoder.encode(self.tokenizer, self.text_encoder, prompt)
        return guidance.build_batch(hidden, mask)

    def _run_decoder(self, next_tokens, encoder_hidden_states,
                     encoder_attention_mask, cache, use_cache):
        feed = {
            "encoder_attention_mask": encoder_attention_mask,
            "input_ids": next_tokens,
            "encoder_hidden_states": encoder_hidden_states,
        }
        feed.update(cache.inputs())
        feed["use_cache_branch"] = np.array([use_cache], dtype=bool)

        outputs = self.decoder.invoke(feed)
        logits = np.asarray(require(outputs, "logits", "decoder"), dtype=np.float32)
        cache.update(outputs)
        return logits

    def decode_tokens(self, encoder_hidden_states, encoder_attention_mask,
                      max_length, guidance_scale, top_k, rng,
                      progress=_no_progress, cancel=None):
        """Run the autoregressive loop and return the filled DelayPattern.

        Performs ``max_length - 1`` decoder steps. Step ``s`` writes column
        ``s + 1`` of the grid and reports ``s / (max_length - 1)``; a final
        ``1.0`` is reported once the loop completes.

        Raises:
            Cancelled: ``cancel`` was set at the top of a step.
            GenerationError: a decoder call failed; the cause is chained.
        """
        cfg = self.config
        num_codebooks = cfg.num_codebooks
        grid = DelayPattern(num_codebooks, max_length, cfg.pad_token_id, cfg.bos_token_id)
        cache = KVCache(cfg.num_layers, encoder_hidden_states.shape[0],
                        cfg.num_heads, cfg.head_dim)
        next_tokens = grid.column(0)
        num_steps = max_length - 1

        logger.info(f"Generating (max {num_steps} steps, {num_codebooks} codebooks, "
                    f"guidance={guidance_scale}, top_k={top_k})...")
        t0 = time.time()

        for step in range(num_steps):
            if cancel is not None and cancel.is_cancelled:
                logger.info(f"  Cancelled at step {step}")
                raise Cancelled(f"Generation cancelled at step {step}/{num_steps}")

            try:
                logits = self._run_decoder(next_tokens, encoder_hidden_states,
                                           encoder_attention_mask, cache,
                                           use_cache=step > 0)
            except ModelInvocationError as e:
                raise GenerationError(f"Decoder failed at step {step}: {e}") from e

            cond_logits, uncond_logits = guidance.split(logits, num_codebooks)
            guided = guidance.combine(cond_logits[:, -1, :], uncond_logits[:, -1, :],
                                      guidance_scale)

            sampled = [sample_top_k(guided[cb], top_k, rng) for cb in range(num_codebooks)]
            timestep = step + 1
            grid.write_step(timestep, sampled)
            next_tokens = grid.column(timestep)

            progress(step / num_steps)

            if (step + 1) % 100 == 0:
                elapsed = time.time() - t0
                logger.info(f"  Step {step + 1}/{num_steps} ({elapsed:.1f}s)")

        progress(1.0)
        logger.info(f"Decoded {num_steps} steps in {time.time() - t0:.1f}s")
        return grid

    def decode_audio(self, grid):
        """Undelay the grid and run the codec."""
        aligned = grid.undelay(silence_token=self.config.silence_token_id)
        return codec.decode(self.codec, aligned)

    # ----------------------------------------------------------
    # Main entry point
    # ----------------------------------------------------------
    def generate(self, prompt, params=None, progress=None, cancel=None):
        """Generate audio for ``prompt``.

        Args:
            prompt: Text description of the audio.
            params: GenerationParams (guidance scale, top-k, duration, seed).
            progress: Callable receiving a float in [0, 1].
            cancel: Optional object with an ``is_cancelled`` attribute,
                    checked before each decoder step.

        Returns:
            np.ndarray: Mono float32 samples at ``self.sample_rate``.
        """
        check_prompt(prompt)
        params = (params or GenerationParams()).validate()
        progress = progress or _no_progress
        max_length = self.config.max_length_for(params)
        rng = np.random.default_rng(params.seed)

        logger.info("Starting audio generation...")
        logger.info(f"  Prompt (start): '{str(prompt)[:100]}'")
        logger.info(f"  Max length: {max_length} "
                    f"(~{self.config.aligned_length(max_length) / self.config.frame_rate:.1f}s)")
        progress(0.0)

        t0 = time.time()
        encoder_hidden_states, encoder_attention_mask = self.encode_prompt(prompt)
        logger.info(f"Text encoded in {time.time() - t0:.2f}s "
                    f"({encoder_hidden_states.shape[1]} tokens)")

        grid = self.decode_tokens(encoder_hidden_states, encoder_attention_mask,
                                  max_length, params.guidance_scale, params.top_k,
                                  rng, progress=progress, cancel=cancel)

        t0 = time.time()
        wav = self.decode_audio(grid)
        logger.info(f"Decoded {len(wav)} samples "
                    f"({len(wav) / self.sample_rate:.1f}s audio) in {time.time() - t0:.2f}s")
        return wav


def generate(prompt, model_directory, params=None, progress=None, cancel=None,
             device="CPU"):
    """Load the models in ``model_directory`` and generate once.

    The prompt and params are checked before any model is loaded.
    """
    check_prompt(prompt)
    params = (params or GenerationParams()).validate()
    pipeline = MusicGenPipeline(model_directory, device=device)
    return pipeline.generate(prompt, params, progress=progress, cancel=cancel)
