"""Post-processing and host-side helpers for generated audio."""
import librosa
import numpy as np
import soundfile as sf

from poing.config import MAX_DURATION_SECONDS


def resample(samples, orig_sr, target_sr):
    """Resample mono samples to the host rate (no-op when the rates match)."""
    samples = np.asarray(samples, dtype=np.float32)
    if orig_sr == target_sr:
        return samples
    return librosa.resample(samples, orig_sr=orig_sr, target_sr=target_sr).astype(np.float32)


def peak_normalize(samples, peak=1.0):
    """Scale so the loudest sample sits at ``peak``; silence is returned unchanged."""
    samples = np.asarray(samples, dtype=np.float32)
    top = float(np.max(np.abs(samples))) if samples.size else 0.0
    if top == 0.0:
        return samples
    return samples * (peak / top)


def clip(samples):
    return np.clip(samples, -1.0, 1.0)


def postprocess(samples, orig_sr, target_sr=None, normalize=False):
    """Resample, optionally peak-normalize, then clip to [-1, 1].

    Returns:
        tuple: (samples, sample_rate)
    """
    sr = orig_sr
    if target_sr is not None and target_sr != orig_sr:
        samples = resample(samples, orig_sr, target_sr)
        sr = target_sr
    if normalize:
        samples = peak_normalize(samples)
    return clip(samples), sr


def duration_from_bars(bpm, bars, beats_per_bar=4, limit=MAX_DURATION_SECONDS):
    """Length in seconds of ``bars`` bars at ``bpm``, capped at ``limit``."""
    return min(bars * beats_per_bar * 60.0 / bpm, limit)


def bpm_prompt(prompt, bpm):
    """Prefix the prompt with a tempo hint, e.g. '120 bpm. lofi drums'."""
    return f"{bpm:.0f} bpm. {prompt}"


def write_wav(path, samples, sample_rate):
    """Write mono samples as a 32-bit float WAV."""
    sf.write(path, np.asarray(samples, dtype=np.float32), sample_rate, subtype="FLOAT")
