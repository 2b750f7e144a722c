"""Top-k sampling (pure numpy)."""
import numpy as np


def softmax(x, axis=-1):
    """Numerically stable softmax."""
    e = np.exp(x - np.max(x, axis=axis, keepdims=True))
    return e / np.sum(e, axis=axis, keepdims=True)


def top_k_indices(logits, k):
    """Indices of the k largest logits, highest first.

    Equal logits keep ascending index order (stable sort), so the selection
    is fully determined by the logits vector.
    """
    k = min(k, len(logits))
    order = np.argsort(-logits, kind="stable")
    return order[:k]


def sample_top_k(logits, k, rng):
    """Draw one token id from the k highest-scoring logits.

    Args:
        logits: 1D vocabulary logits.
        k: Candidate count, clamped to the vocabulary size.
        rng: ``numpy.random.Generator``; a fixed seed gives a fixed token.

    Returns:
        int: Vocabulary index of the sampled token.
    """
    logits = np.asarray(logits, dtype=np.float64)
    if logits.ndim != 1 or logits.size == 0:
        raise ValueError(f"expected a non-empty 1D logits vector, got shape {logits.shape}")
    if k <= 0:
        raise ValueError(f"k must be positive, got {k}")

    if np.any(np.isnan(logits)) or np.any(np.isinf(logits)):
        logits = np.nan_to_num(logits, nan=0.0, posinf=1e6, neginf=-1e6)

    candidates = top_k_indices(logits, k)
    probs = softmax(logits[candidates])
    choice = rng.choice(len(candidates), p=probs)
    return int(candidates[choice])
