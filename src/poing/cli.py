"""poing command-line interface."""
import argparse
import logging
import os
import sys

from poing.audio import bpm_prompt, duration_from_bars, postprocess, write_wav
from poing.config import GenerationParams
from poing.errors import PoingError
from poing.pipeline import MusicGenPipeline
from poing.worker import GenerationWorker


def _print_progress(value):
    print(f"\rGenerating... {value * 100:3.0f}%", end="", file=sys.stderr, flush=True)


def build_parser():
    parser = argparse.ArgumentParser(
        description="poing: text-to-audio generation with MusicGen via OpenVINO")
    parser.add_argument("--prompt", default="upbeat electronic dance music",
                        help="Text description of the audio to generate")
    parser.add_argument("--model-dir", required=True,
                        help="Directory containing text_encoder.onnx, "
                             "decoder_model_merged.onnx, encodec_decode.onnx "
                             "and tokenizer.json")
    parser.add_argument("--output", "-o", default="output.wav",
                        help="Output WAV file path (default: output.wav)")
    parser.add_argument("--guidance-scale", type=float, default=3.0,
                        help="Classifier-free guidance scale (default: 3.0)")
    parser.add_argument("--top-k", type=int, default=50,
                        help="Top-k sampling candidates (default: 50)")
    parser.add_argument("--duration", type=float, default=None,
                        help="Target duration in seconds (default: model maximum)")
    parser.add_argument("--bpm", type=float, default=None,
                        help="Tempo hint prepended to the prompt")
    parser.add_argument("--bars", type=int, default=None,
                        help="With --bpm: derive the duration from a bar count")
    parser.add_argument("--seed", type=int, default=None,
                        help="Random seed for reproducible sampling")
    parser.add_argument("--device", default="CPU",
                        help="OpenVINO device (default: CPU)")
    parser.add_argument("--cache-dir", default=None,
                        help="OpenVINO compiled-model cache directory")
    parser.add_argument("--sample-rate", type=int, default=None,
                        help="Resample the output to this rate (default: model rate)")
    parser.add_argument("--normalize", action="store_true",
                        help="Peak-normalize the output before writing")
    parser.add_argument("--serve", action="store_true",
                        help="Start HTTP server instead of generating once")
    parser.add_argument("--host", default="127.0.0.1",
                        help="Server bind address (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8765,
                        help="Server port (default: 8765)")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Debug logging")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    duration = args.duration
    prompt = args.prompt
    if args.bpm is not None:
        prompt = bpm_prompt(prompt, args.bpm)
        if args.bars is not None and duration is None:
            duration = duration_from_bars(args.bpm, args.bars)

    params = GenerationParams(guidance_scale=args.guidance_scale, top_k=args.top_k,
                              duration_hint=duration, seed=args.seed)

    try:
        params.validate()
        pipeline = MusicGenPipeline(args.model_dir, device=args.device,
                                    cache_dir=args.cache_dir)
    except PoingError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    with GenerationWorker(pipeline) as worker:
        if args.serve:
            from poing.server import serve
            serve(worker, host=args.host, port=args.port)
            return 0

        print(f"\n--- Generating with poing ({args.device}) ---")
        print(f"Prompt: {prompt}")
        try:
            wav = worker.generate(prompt, params, progress=_print_progress)
        except PoingError as e:
            print(f"\nerror: {type(e).__name__}: {e}", file=sys.stderr)
            return 1
        print("\rGenerating... done!  ", file=sys.stderr)

    wav, sr = postprocess(wav, pipeline.sample_rate, args.sample_rate,
                          normalize=args.normalize)

    # Ensure output directory exists
    out_dir = os.path.dirname(args.output)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)

    write_wav(args.output, wav, sr)
    print(f"\nSaved to {args.output} ({len(wav)/sr:.2f}s @ {sr}Hz)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
