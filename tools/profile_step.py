"""Profile per-step timing breakdown for the generation loop.

Measures where time goes for one prompt:
  1. Text encoder
  2. First decoder step (cross-attention cache populated)
  3. Cached decoder steps (numpy overhead: guidance + sampling + grid writes)
  4. EnCodec decode

Runs N decoder steps and reports averages.
"""
import argparse
import time

import numpy as np

from poing import guidance
from poing.cache import KVCache
from poing.delay import DelayPattern
from poing.pipeline import MusicGenPipeline
from poing.sampling import sample_top_k


def profile_steps(model_dir, device="CPU", n_steps=50, prompt="lofi hip hop beat"):
    print(f"Loading models on {device}...")
    t0 = time.time()
    pipe = MusicGenPipeline(model_dir, device=device)
    cfg = pipe.config
    print(f"  Models loaded in {time.time()-t0:.1f}s")

    t1 = time.perf_counter()
    hidden, mask = pipe.encode_prompt(prompt)
    t_encode = time.perf_counter() - t1

    max_length = n_steps + 1
    grid = DelayPattern(cfg.num_codebooks, max_length, cfg.pad_token_id, cfg.bos_token_id)
    cache = KVCache(cfg.num_layers, hidden.shape[0], cfg.num_heads, cfg.head_dim)
    rng = np.random.default_rng(0)
    next_tokens = grid.column(0)

    print(f"\nProfiling {n_steps} steps...")
    t_decoder = []
    t_numpy = []
    for step in range(n_steps):
        t1 = time.perf_counter()
        logits = pipe._run_decoder(next_tokens, hidden, mask, cache, use_cache=step > 0)
        t2 = time.perf_counter()

        cond, uncond = guidance.split(logits, cfg.num_codebooks)
        guided = guidance.combine(cond[:, -1, :], uncond[:, -1, :], 3.0)
        sampled = [sample_top_k(guided[cb], 50, rng) for cb in range(cfg.num_codebooks)]
        grid.write_step(step + 1, sampled)
        next_tokens = grid.column(step + 1)
        t3 = time.perf_counter()

        t_decoder.append(t2 - t1)
        t_numpy.append(t3 - t2)

    t1 = time.perf_counter()
    wav = pipe.decode_audio(grid)
    t_codec = time.perf_counter() - t1

    cached = np.array(t_decoder[1:]) if n_steps > 1 else np.array(t_decoder)
    print(f"\n{'='*60}")
    print(f"Timing breakdown ({n_steps} steps):")
    print(f"{'='*60}")
    print(f"  Text encoder:      {t_encode*1000:7.1f} ms")
    print(f"  First step:        {t_decoder[0]*1000:7.1f} ms")
    print(f"  Cached step (avg): {np.mean(cached)*1000:7.1f} ms")
    print(f"  Numpy per step:    {np.mean(t_numpy)*1000:7.1f} ms")
    print(f"  EnCodec decode:    {t_codec*1000:7.1f} ms  ({len(wav)} samples)")
    print(f"  Target (real-time): {1000/cfg.frame_rate:7.1f} ms  ({cfg.frame_rate} Hz codec)")
    print(f"\n  Cache length after run: {cache.self_length} (self), {cache.cross_length} (cross)")


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--model-dir", required=True)
    parser.add_argument("--device", default="CPU")
    parser.add_argument("--steps", type=int, default=50)
    parser.add_argument("--prompt", default="lofi hip hop beat")
    args = parser.parse_args()

    profile_steps(args.model_dir, device=args.device, n_steps=args.steps, prompt=args.prompt)
