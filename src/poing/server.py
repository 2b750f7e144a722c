"""poing HTTP server: text prompt in, WAV out."""
import io
import json
import logging
from http.server import BaseHTTPRequestHandler, HTTPServer

import soundfile as sf

from poing.config import GenerationParams
from poing.errors import PoingError, PreconditionError

logger = logging.getLogger(__name__)


def _cors_headers():
    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type",
    }


def _json_response(handler, code, obj):
    body = json.dumps(obj).encode()
    handler.send_response(code)
    handler.send_header("Content-Type", "application/json")
    for k, v in _cors_headers().items():
        handler.send_header(k, v)
    handler.send_header("Content-Length", str(len(body)))
    handler.end_headers()
    handler.wfile.write(body)


def _wav_response(handler, wav, sr):
    buf = io.BytesIO()
    sf.write(buf, wav, sr, format="WAV", subtype="FLOAT")
    data = buf.getvalue()
    handler.send_response(200)
    handler.send_header("Content-Type", "audio/wav")
    for k, v in _cors_headers().items():
        handler.send_header(k, v)
    handler.send_header("Content-Length", str(len(data)))
    handler.end_headers()
    handler.wfile.write(data)


def _make_handler(worker):
    class GenerateHandler(BaseHTTPRequestHandler):
        def do_OPTIONS(self):
            self.send_response(204)
            for k, v in _cors_headers().items():
                self.send_header(k, v)
            self.end_headers()

        def do_GET(self):
            if self.path == "/health":
                _json_response(self, 200, {"status": "ok"})
            else:
                _json_response(self, 404, {"error": "not found"})

        def do_POST(self):
            if self.path != "/generate":
                _json_response(self, 404, {"error": "not found"})
                return
            handle_generate_request(self, worker)

        def log_message(self, format, *args):
            logger.info(f"[poing] {args[0]}")

    return GenerateHandler


def params_from_body(body):
    """Build GenerationParams from a request body, defaults for missing keys."""
    params = GenerationParams()
    try:
        if "guidance_scale" in body:
            params.guidance_scale = float(body["guidance_scale"])
        if "top_k" in body:
            params.top_k = float(body["top_k"])
        if body.get("duration") is not None:
            params.duration_hint = float(body["duration"])
        if body.get("seed") is not None:
            params.seed = int(body["seed"])
    except (TypeError, ValueError, OverflowError) as e:
        raise PreconditionError(f"invalid parameter: {e}") from e
    params.validate()
    params.top_k = int(params.top_k)
    return params


def handle_generate_request(handler, worker):
    """Parse JSON request body, run it on the worker, return a WAV response."""
    try:
        length = int(handler.headers.get("Content-Length", 0))
        body = json.loads(handler.rfile.read(length)) if length else {}
    except (json.JSONDecodeError, ValueError):
        _json_response(handler, 400, {"error": "invalid JSON"})
        return
    if not isinstance(body, dict):
        _json_response(handler, 400, {"error": "expected a JSON object"})
        return

    prompt = str(body.get("prompt", "")).strip()
    if not prompt:
        _json_response(handler, 400, {"error": "missing required field: prompt"})
        return

    try:
        params = params_from_body(body)
        wav = worker.generate(prompt, params)
    except PreconditionError as e:
        _json_response(handler, 400, {"error": str(e)})
        return
    except PoingError as e:
        _json_response(handler, 500, {"error": str(e), "kind": type(e).__name__})
        return

    _wav_response(handler, wav, worker.pipeline.sample_rate)


def make_server(worker, host="127.0.0.1", port=8765):
    return HTTPServer((host, port), _make_handler(worker))


def serve(worker, host="127.0.0.1", port=8765):
    """Start HTTP server in front of a GenerationWorker."""
    server = make_server(worker, host, port)
    print(f"poing server listening on http://{host}:{port}")
    print("  POST /generate - generate audio from a prompt")
    print("  GET  /health   - health check")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        print("\nShutting down.")
    server.server_close()
