"""Exceptions raised by the poing generation core.

Every failure aborts the whole ``generate`` call. Nothing is retried and no
partial waveform is ever returned.
"""


class PoingError(Exception):
    """Base class for all poing errors."""


class PreconditionError(PoingError, ValueError):
    """Request rejected before any model was invoked (empty prompt, bad params)."""


class TokenizationError(PoingError):
    """The prompt could not be turned into token ids."""


class ModelInvocationError(PoingError):
    """An underlying model call failed or returned an unusable result."""


class ModelDirectoryError(ModelInvocationError):
    """The model directory is missing one or more exported graphs."""

    def __init__(self, model_dir, missing):
        self.model_dir = model_dir
        self.missing = list(missing)
        super().__init__(
            f"Model directory '{model_dir}' is missing: {', '.join(self.missing)}")


class ShapeError(PoingError):
    """An internal reshape or concatenation invariant was violated."""


class GenerationError(PoingError):
    """The decoder loop failed; the cause is chained via ``__cause__``."""


class Cancelled(PoingError):
    """Cooperative cancellation was observed during generation."""
