"""Delay-pattern token grid.

Codebook k runs k steps behind codebook 0. With a single BOS column the grid
looks like this for 4 codebooks (B = bos, P = pad, x = generated):

    cb0  B x x x x x ...
    cb1  B P x x x x ...
    cb2  B P P x x x ...
    cb3  B P P P x x ...

Rows 0..C-1 are the conditional batch and rows C..2C-1 mirror them for the
unconditional batch; both halves always hold the same tokens.
"""
import numpy as np

from poing.errors import ShapeError


def is_active(codebook, timestep):
    """Codebook k generates from column k+1 onwards."""
    return timestep > codebook


class DelayPattern:
    """(2 * num_codebooks) x max_length grid of token ids, write-once per cell."""

    def __init__(self, num_codebooks, max_length, pad_token, bos_token):
        if max_length < num_codebooks + 1:
            raise ShapeError(
                f"max_length {max_length} leaves no aligned timesteps "
                f"for {num_codebooks} codebooks")
        self.num_codebooks = num_codebooks
        self.max_length = max_length
        self.pad_token = pad_token
        self.bos_token = bos_token

        self.tokens = np.full((2 * num_codebooks, max_length), pad_token, dtype=np.int64)
        self.tokens[:, 0] = bos_token
        self._written = np.zeros(self.tokens.shape, dtype=bool)
        self._written[:, 0] = True

    @property
    def num_rows(self):
        return 2 * self.num_codebooks

    @property
    def aligned_length(self):
        return self.max_length - 1 - (self.num_codebooks - 1)

    def write(self, row, timestep, token):
        """Write ``token`` into (row, timestep).

        Cells before a codebook's activation column keep the pad token; the
        write still consumes the cell.
        """
        if not 0 <= row < self.num_rows or not 0 < timestep < self.max_length:
            raise ShapeError(f"cell ({row}, {timestep}) outside grid {self.tokens.shape}")
        if self._written[row, timestep]:
            raise ShapeError(f"cell ({row}, {timestep}) already written")
        self._written[row, timestep] = True
        if is_active(row % self.num_codebooks, timestep):
            self.tokens[row, timestep] = token

    def write_step(self, timestep, codebook_tokens):
        """Write one sampled token per codebook, mirrored into both halves."""
        if len(codebook_tokens) != self.num_codebooks:
            raise ShapeError(
                f"got {len(codebook_tokens)} tokens for {self.num_codebooks} codebooks")
        for cb, token in enumerate(codebook_tokens):
            self.write(cb, timestep, token)
            self.write(cb + self.num_codebooks, timestep, token)

    def column(self, timestep):
        """Grid column as a (2C, 1) decoder input."""
        return self.tokens[:, timestep:timestep + 1].copy()

    def undelay(self, silence_token=0, aligned_length=None):
        """Remove the per-codebook offsets from the conditional rows.

        aligned[cb, t] = tokens[cb, 1 + cb + t]; any pad left over becomes
        ``silence_token``.
        """
        if aligned_length is None:
            aligned_length = self.aligned_length
        if aligned_length > self.aligned_length:
            raise ShapeError(
                f"aligned_length {aligned_length} exceeds {self.aligned_length}")
        aligned = np.empty((self.num_codebooks, aligned_length), dtype=np.int64)
        for cb in range(self.num_codebooks):
            aligned[cb] = self.tokens[cb, 1 + cb:1 + cb + aligned_length]
        aligned[aligned == self.pad_token] = silence_token
        return aligned
