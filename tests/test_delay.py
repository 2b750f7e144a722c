import numpy as np
import pytest

from poing.delay import DelayPattern, is_active
from poing.errors import ShapeError

PAD = 2048
BOS = 2049


def test_is_active_matches_delay() -> None:
    for k in range(4):
        for t in range(12):
            assert is_active(k, t) == (t > k)


def test_init_grid() -> None:
    grid = DelayPattern(4, 12, PAD, BOS)
    assert grid.tokens.shape == (8, 12)
    assert np.all(grid.tokens[:, 0] == BOS)
    assert np.all(grid.tokens[:, 1:] == PAD)
    assert grid.aligned_length == 12 - 1 - 3


def test_too_short_grid_rejected() -> None:
    with pytest.raises(ShapeError):
        DelayPattern(4, 4, PAD, BOS)


def test_write_step_mirrors_and_respects_delay() -> None:
    grid = DelayPattern(3, 8, PAD, BOS)
    grid.write_step(1, [10, 11, 12])
    grid.write_step(2, [20, 21, 22])

    assert list(grid.tokens[:3, 1]) == [10, PAD, PAD]
    assert list(grid.tokens[:3, 2]) == [20, 21, PAD]
    np.testing.assert_array_equal(grid.tokens[:3], grid.tokens[3:])


def test_cells_are_write_once() -> None:
    grid = DelayPattern(2, 6, PAD, BOS)
    grid.write(0, 3, 7)
    with pytest.raises(ShapeError):
        grid.write(0, 3, 8)
    assert grid.tokens[0, 3] == 7


def test_bos_column_cannot_be_written() -> None:
    grid = DelayPattern(2, 6, PAD, BOS)
    with pytest.raises(ShapeError):
        grid.write(0, 0, 7)


def test_inactive_write_keeps_pad_and_consumes_cell() -> None:
    grid = DelayPattern(2, 6, PAD, BOS)
    grid.write(1, 1, 7)
    assert grid.tokens[1, 1] == PAD
    with pytest.raises(ShapeError):
        grid.write(1, 1, 8)


def test_write_step_needs_one_token_per_codebook() -> None:
    grid = DelayPattern(2, 6, PAD, BOS)
    with pytest.raises(ShapeError):
        grid.write_step(1, [1, 2, 3])


def test_column_is_a_copy() -> None:
    grid = DelayPattern(2, 6, PAD, BOS)
    column = grid.column(0)
    assert column.shape == (4, 1)
    column[:] = 0
    assert np.all(grid.tokens[:, 0] == BOS)


def test_undelay_alignment() -> None:
    num_codebooks, max_length = 4, 15
    grid = DelayPattern(num_codebooks, max_length, PAD, BOS)
    aligned_length = grid.aligned_length
    for cb in range(num_codebooks):
        for t in range(aligned_length):
            grid.tokens[cb, 1 + cb + t] = 100 * cb + t

    aligned = grid.undelay()
    assert aligned.shape == (num_codebooks, aligned_length)
    for cb in range(num_codebooks):
        for t in range(aligned_length):
            assert aligned[cb, t] == 100 * cb + t


def test_undelay_maps_pad_to_silence() -> None:
    grid = DelayPattern(2, 6, PAD, BOS)
    grid.write_step(1, [3, 4])
    aligned = grid.undelay(silence_token=0)
    assert aligned[0, 0] == 3
    assert np.all(aligned[0, 1:] == 0)
    assert np.all(aligned[1] == 0)
    assert not np.any(aligned == PAD)


def test_undelay_uses_conditional_rows() -> None:
    grid = DelayPattern(2, 6, PAD, BOS)
    grid.tokens[2:, :] = 999
    assert not np.any(grid.undelay() == 999)
