import numpy as np
import pytest

from conftest import StubTextEncoder, StubTokenizer
from poing import encoder
from poing.errors import ModelInvocationError, TokenizationError


def test_tokenize_appends_eos() -> None:
    ids, mask = encoder.tokenize(StubTokenizer(), "ab")
    assert ids.shape == (1, 3)
    assert ids[0, -1] == 1
    assert ids.dtype == np.int64
    np.testing.assert_array_equal(mask, np.ones((1, 3)))


def test_bytes_prompt_decoded() -> None:
    tokenizer = StubTokenizer()
    encoder.tokenize(tokenizer, "héllo".encode("utf-8"))
    assert tokenizer.calls == ["héllo"]


def test_invalid_utf8_is_tokenization_error() -> None:
    with pytest.raises(TokenizationError):
        encoder.tokenize(StubTokenizer(), b"\xff\xfe drums")


def test_tokenizer_failure_is_tokenization_error() -> None:
    def broken(text, **kwargs):
        raise ValueError("bad input")

    with pytest.raises(TokenizationError, match="bad input"):
        encoder.tokenize(broken, "drums")


def test_encode_runs_text_encoder() -> None:
    text_encoder = StubTextEncoder(hidden_dim=6)
    hidden, mask = encoder.encode(StubTokenizer(), text_encoder, "drums")
    assert hidden.shape == (1, 6, 6)
    assert mask.shape == (1, 6)
    assert set(text_encoder.calls[0]) == {"input_ids", "attention_mask"}


def test_missing_hidden_state_output() -> None:
    class NoOutput:
        def invoke(self, inputs):
            return {"pooler_output": np.zeros((1, 4))}

    with pytest.raises(ModelInvocationError, match="last_hidden_state"):
        encoder.encode(StubTokenizer(), NoOutput(), "drums")


def test_wrong_hidden_state_shape() -> None:
    class WrongShape:
        def invoke(self, inputs):
            return {"last_hidden_state": np.zeros((1, 2, 8), dtype=np.float32)}

    with pytest.raises(ModelInvocationError, match="shape"):
        encoder.encode(StubTokenizer(), WrongShape(), "drums")
