"""Tests for the provider adapter and error mapping."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from chatrelay.services.errors import (
    ProviderAuthError,
    ProviderError,
    ProviderRateLimitError,
    ProviderUnavailableError,
    map_provider_error,
)
from chatrelay.services.relay.provider import ProviderClient, ProviderStream


def _chunk(text=None, finish_reason=None, usage=None):
    choices = []
    if text is not None or finish_reason is not None:
        choices = [SimpleNamespace(delta=SimpleNamespace(content=text), finish_reason=finish_reason)]
    return SimpleNamespace(choices=choices, usage=usage)


class ChunkStream:
    """Stands in for the SDK's AsyncStream: async iteration plus close()."""

    def __init__(self, chunks, error=None):
        self._chunks = list(chunks)
        self._error = error
        self.close_calls = 0

    async def __anext__(self):
        if self._chunks:
            return self._chunks.pop(0)
        if self._error is not None:
            raise self._error
        raise StopAsyncIteration

    async def close(self):
        self.close_calls += 1


_REQUEST = httpx.Request("POST", "https://provider.test/v1/chat/completions")


def _status_error(cls, status):
    return cls("boom", response=httpx.Response(status, request=_REQUEST), body=None)


async def _drain(stream):
    return [fragment async for fragment in stream]


# -- ProviderStream ------------------------------------------------------------


async def test_stream_yields_non_empty_fragments_in_order() -> None:
    raw = ChunkStream(
        [
            _chunk("Hel"),
            _chunk(""),
            _chunk(None),
            _chunk("lo"),
            _chunk(finish_reason="stop"),
            _chunk(usage=SimpleNamespace(total_tokens=7, model_dump=lambda: {"total_tokens": 7})),
        ]
    )
    stream = ProviderStream(raw, model="m1")

    assert await _drain(stream) == ["Hel", "lo"]
    assert stream.finish_reason == "stop"
    assert stream.usage == {"total_tokens": 7}
    assert stream.released is True
    assert raw.close_calls == 1


async def test_cancel_is_idempotent_and_ends_iteration() -> None:
    raw = ChunkStream([_chunk("a"), _chunk("b")])
    stream = ProviderStream(raw)

    assert await stream.__anext__() == "a"
    await stream.cancel()
    await stream.cancel()

    assert stream.cancelled is True
    assert raw.close_calls == 1
    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()


async def test_cancel_after_natural_end_does_not_close_twice() -> None:
    raw = ChunkStream([_chunk("a")])
    stream = ProviderStream(raw)

    await _drain(stream)
    await stream.cancel()

    assert raw.close_calls == 1


async def test_transport_error_mid_stream_is_mapped() -> None:
    raw = ChunkStream([_chunk("a")], error=httpx.ReadError("connection reset"))
    stream = ProviderStream(raw)

    assert await stream.__anext__() == "a"
    with pytest.raises(ProviderUnavailableError):
        await stream.__anext__()
    assert raw.close_calls == 1


async def test_sdk_error_mid_stream_is_mapped() -> None:
    raw = ChunkStream([], error=_status_error(openai.RateLimitError, 429))
    stream = ProviderStream(raw)

    with pytest.raises(ProviderRateLimitError):
        await stream.__anext__()


# -- error mapping -------------------------------------------------------------


@pytest.mark.parametrize(
    "exc, expected",
    [
        (_status_error(openai.AuthenticationError, 401), ProviderAuthError),
        (_status_error(openai.PermissionDeniedError, 403), ProviderAuthError),
        (_status_error(openai.RateLimitError, 429), ProviderRateLimitError),
        (_status_error(openai.InternalServerError, 500), ProviderUnavailableError),
        (_status_error(openai.BadRequestError, 400), ProviderError),
        (openai.APIConnectionError(request=_REQUEST), ProviderUnavailableError),
        (openai.APITimeoutError(request=_REQUEST), ProviderUnavailableError),
        (RuntimeError("odd"), ProviderUnavailableError),
    ],
)
def test_map_provider_error(exc, expected) -> None:
    mapped = map_provider_error(exc)
    assert type(mapped) is expected
    assert mapped.message


def test_map_provider_error_passes_through_domain_errors() -> None:
    original = ProviderRateLimitError("slow down")
    assert map_provider_error(original) is original


def test_status_codes_per_kind() -> None:
    assert ProviderAuthError().status_code == 502
    assert ProviderRateLimitError().status_code == 429
    assert ProviderUnavailableError().status_code == 503


# -- ProviderClient ------------------------------------------------------------


def _client_with(create: AsyncMock) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = create
    return client


def test_missing_api_key_is_rejected() -> None:
    with pytest.raises(ProviderAuthError):
        ProviderClient(api_key="")


async def test_open_stream_applies_defaults() -> None:
    create = AsyncMock(return_value=ChunkStream([_chunk("x")]))
    provider = ProviderClient(
        api_key="",
        default_model="default-model",
        default_max_tokens=1000,
        default_temperature=1.0,
        client=_client_with(create),
    )
    history = [{"role": "user", "content": "hi"}]

    stream = await provider.open_stream(history)

    kwargs = create.await_args.kwargs
    assert kwargs["model"] == "default-model"
    assert kwargs["messages"] == history
    assert kwargs["max_tokens"] == 1000
    assert kwargs["temperature"] == 1.0
    assert kwargs["stream"] is True
    assert stream.model == "default-model"
    assert await _drain(stream) == ["x"]


async def test_open_stream_passes_explicit_parameters() -> None:
    create = AsyncMock(return_value=ChunkStream([]))
    provider = ProviderClient(api_key="k", client=_client_with(create))

    await provider.open_stream([], model="m2", max_tokens=50, temperature=0.0)

    kwargs = create.await_args.kwargs
    assert (kwargs["model"], kwargs["max_tokens"], kwargs["temperature"]) == ("m2", 50, 0.0)


async def test_open_stream_maps_connect_failure() -> None:
    create = AsyncMock(side_effect=_status_error(openai.AuthenticationError, 401))
    provider = ProviderClient(api_key="k", client=_client_with(create))

    with pytest.raises(ProviderAuthError):
        await provider.open_stream([{"role": "user", "content": "hi"}])


async def test_complete_returns_full_reply() -> None:
    completion = SimpleNamespace(
        id="cmpl-1",
        model="m1",
        choices=[
            SimpleNamespace(
                message=SimpleNamespace(content="Hello", role="assistant"),
                finish_reason="stop",
            )
        ],
        usage=None,
    )
    provider = ProviderClient(api_key="k", client=_client_with(AsyncMock(return_value=completion)))

    result = await provider.complete([{"role": "user", "content": "Hello"}], model="m1", max_tokens=5)

    assert result.message == "Hello"
    assert result.finish_reason == "stop"
    assert result.model == "m1"
    assert result.id == "cmpl-1"


async def test_complete_without_choices_is_unavailable() -> None:
    completion = SimpleNamespace(id="x", model="m1", choices=[], usage=None)
    provider = ProviderClient(api_key="k", client=_client_with(AsyncMock(return_value=completion)))

    with pytest.raises(ProviderUnavailableError):
        await provider.complete([])
