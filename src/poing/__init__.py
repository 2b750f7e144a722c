"""poing: MusicGen text-to-audio generation via OpenVINO."""
from poing.config import GenerationParams
from poing.config import ModelConfig
from poing.errors import Cancelled
from poing.errors import GenerationError
from poing.errors import ModelInvocationError
from poing.errors import PoingError
from poing.errors import PreconditionError
from poing.errors import ShapeError
from poing.errors import TokenizationError
from poing.pipeline import MusicGenPipeline
from poing.pipeline import generate
from poing.worker import GenerationWorker

__version__ = "0.1.0"
__all__ = [
    "Cancelled", "GenerationError", "GenerationParams", "GenerationWorker",
    "ModelConfig", "ModelInvocationError", "MusicGenPipeline", "PoingError",
    "PreconditionError", "ShapeError", "TokenizationError", "generate",
]
