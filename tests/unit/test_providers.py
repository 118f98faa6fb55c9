"""Unit tests for the LLM, embedding and extraction provider adapters.

The OpenAI SDK client and the shared httpx client are mocked; the PDF
strategies run against small documents built with PyMuPDF.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import fitz
import httpx
import openai
import pytest
from PIL import Image

from metrocircuit.config.settings import Settings
from metrocircuit.interfaces.llm_provider import ILLMProvider
from metrocircuit.providers.embedding.gemini_embedding_provider import GeminiEmbeddingProvider
from metrocircuit.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from metrocircuit.providers.extraction.llm_vision_extractor import LLMVisionExtractor
from metrocircuit.providers.extraction.page_images import render_pages
from metrocircuit.providers.extraction.pdf_text_extractor import PdfTextExtractor
from metrocircuit.providers.extraction.tesseract_extractor import TesseractExtractor
from metrocircuit.providers.llm.chained_provider import ChainedLLMProvider
from metrocircuit.providers.llm.gemini_provider import GeminiLLMProvider
from metrocircuit.providers.llm.openai_provider import OpenAILLMProvider
from metrocircuit.utils.errors import (
    ConfigurationError,
    EmbeddingError,
    ExtractionShortfallError,
    LLMError,
    ProviderUnavailableError,
)

_OPENAI_CLIENT = "metrocircuit.providers.llm.openai_provider.openai.AsyncOpenAI"


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


def _chat_response(content: str | None) -> MagicMock:
    response = MagicMock()
    response.choices = [MagicMock(message=MagicMock(content=content))]
    response.usage.total_tokens = 42
    return response


def _connection_error() -> openai.APIConnectionError:
    return openai.APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))


def _pdf(*pages: str) -> bytes:
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


def _gemini_text(text: str) -> httpx.Response:
    return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": text}]}}]})


# ======================================================================
# OpenAI
# ======================================================================


class TestOpenAILLMProvider:
    @pytest.mark.asyncio()
    async def test_falls_through_models(self) -> None:
        with patch(_OPENAI_CLIENT) as client_cls:
            provider = OpenAILLMProvider(_settings(openai_api_key="sk-test", openai_text_models=["model-a", "model-b"]))
            create = client_cls.return_value.chat.completions.create = AsyncMock(
                side_effect=[_connection_error(), _chat_response("PANEL DB-2")]
            )

            assert await provider.complete("system", "user") == "PANEL DB-2"

        assert [c.kwargs["model"] for c in create.await_args_list] == ["model-a", "model-b"]
        assert create.await_args.kwargs["messages"][0] == {"role": "system", "content": "system"}

    @pytest.mark.asyncio()
    async def test_empty_responses_raise(self) -> None:
        with patch(_OPENAI_CLIENT) as client_cls:
            provider = OpenAILLMProvider(_settings(openai_api_key="sk-test", openai_text_models=["model-a"]))
            client_cls.return_value.chat.completions.create = AsyncMock(return_value=_chat_response(""))

            with pytest.raises(LLMError) as exc_info:
                await provider.complete("system", "user")

        assert exc_info.value.provider_name == "openai"
        assert "model-a" in exc_info.value.message

    def test_base_url_marks_compatible_server(self) -> None:
        with patch(_OPENAI_CLIENT) as client_cls:
            provider = OpenAILLMProvider(
                _settings(openai_api_key="local", openai_base_url="http://localhost:11434/v1")
            )
        assert provider.get_provider_name() == "openai-compatible"
        assert client_cls.call_args.kwargs["base_url"] == "http://localhost:11434/v1"
        assert client_cls.call_args.kwargs["max_retries"] == 0

    def test_availability_follows_key(self) -> None:
        with patch(_OPENAI_CLIENT):
            assert OpenAILLMProvider(_settings(openai_api_key="sk-test")).is_available() is True
            assert OpenAILLMProvider(_settings(openai_api_key="")).is_available() is False

    @pytest.mark.asyncio()
    async def test_vision_sends_png_data_url(self) -> None:
        with patch(_OPENAI_CLIENT) as client_cls:
            provider = OpenAILLMProvider(_settings(openai_api_key="sk-test", openai_vision_model="vision-x"))
            create = client_cls.return_value.chat.completions.create = AsyncMock(
                return_value=_chat_response("ACB Q1")
            )

            assert await provider.vision_extract(b"\x89PNG", "read it") == "ACB Q1"

        content = create.await_args.kwargs["messages"][0]["content"]
        assert create.await_args.kwargs["model"] == "vision-x"
        assert content[1]["image_url"]["url"].startswith("data:image/png;base64,")

    @pytest.mark.asyncio()
    async def test_vision_without_model(self) -> None:
        with patch(_OPENAI_CLIENT):
            provider = OpenAILLMProvider(_settings(openai_api_key="sk-test", openai_vision_model=""))
        assert provider.supports_vision() is False
        with pytest.raises(ProviderUnavailableError):
            await provider.vision_extract(b"", "read it")


class TestOpenAIEmbeddingProvider:
    @pytest.mark.asyncio()
    async def test_embed_single(self) -> None:
        with patch(_OPENAI_CLIENT) as client_cls:
            provider = OpenAIEmbeddingProvider(_settings(openai_api_key="sk-test"))
            create = client_cls.return_value.embeddings.create = AsyncMock(
                return_value=MagicMock(data=[MagicMock(embedding=[0.1, 0.2])])
            )

            assert await provider.embed_single("busbar") == [0.1, 0.2]

        create.assert_awaited_once_with(input=["busbar"], model="text-embedding-3-small")
        assert provider.get_dimension() == 1536

    @pytest.mark.asyncio()
    async def test_api_error_wrapped(self) -> None:
        with patch(_OPENAI_CLIENT) as client_cls:
            provider = OpenAIEmbeddingProvider(_settings(openai_api_key="sk-test"))
            client_cls.return_value.embeddings.create = AsyncMock(side_effect=_connection_error())

            with pytest.raises(EmbeddingError):
                await provider.embed(["busbar"])

    @pytest.mark.asyncio()
    async def test_empty_input(self) -> None:
        with patch(_OPENAI_CLIENT):
            provider = OpenAIEmbeddingProvider(_settings(openai_api_key="sk-test"))
        assert await provider.embed([]) == []


# ======================================================================
# Gemini
# ======================================================================


def _http(*responses: httpx.Response) -> MagicMock:
    client = MagicMock(spec=httpx.AsyncClient)
    client.post = AsyncMock(side_effect=list(responses))
    return client


class TestGeminiLLMProvider:
    @pytest.mark.asyncio()
    async def test_falls_through_api_versions(self) -> None:
        http = _http(httpx.Response(404, json={}), _gemini_text("  DB-2 is fed from TR-1  "))
        provider = GeminiLLMProvider(
            _settings(gemini_api_key="g-key", gemini_text_models=["flash"], gemini_api_versions=["v1beta", "v1"]),
            http,
        )

        assert await provider.complete("system", "user") == "DB-2 is fed from TR-1"

        urls = [c.args[0] for c in http.post.await_args_list]
        assert urls == [
            "https://generativelanguage.googleapis.com/v1beta/models/flash:generateContent",
            "https://generativelanguage.googleapis.com/v1/models/flash:generateContent",
        ]
        assert http.post.await_args.kwargs["headers"] == {"x-goog-api-key": "g-key"}

    @pytest.mark.asyncio()
    async def test_all_combinations_failing(self) -> None:
        http = _http(
            httpx.Response(404, json={}),
            httpx.Response(200, json={"candidates": []}),
        )
        provider = GeminiLLMProvider(
            _settings(gemini_api_key="g-key", gemini_text_models=["flash"], gemini_api_versions=["v1beta", "v1"]),
            http,
        )

        with pytest.raises(LLMError) as exc_info:
            await provider.complete("system", "user")
        assert "HTTP 404" in exc_info.value.message
        assert "no text" in exc_info.value.message

    @pytest.mark.asyncio()
    async def test_transport_error_is_recoverable(self) -> None:
        http = _http(_gemini_text("ok"))
        http.post.side_effect = [httpx.ConnectTimeout("slow"), _gemini_text("ok")]
        provider = GeminiLLMProvider(
            _settings(gemini_api_key="g-key", gemini_text_models=["flash"], gemini_api_versions=["v1beta", "v1"]),
            http,
        )
        assert await provider.complete("system", "user") == "ok"

    @pytest.mark.asyncio()
    async def test_missing_key(self) -> None:
        http = _http()
        provider = GeminiLLMProvider(_settings(gemini_api_key=""), http)

        assert provider.is_available() is False
        with pytest.raises(LLMError):
            await provider.complete("system", "user")
        http.post.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_vision_sends_inline_png(self) -> None:
        http = _http(_gemini_text("PANEL LT-1"))
        provider = GeminiLLMProvider(_settings(gemini_api_key="g-key"), http)

        assert await provider.vision_extract(b"\x89PNG", "read it") == "PANEL LT-1"
        parts = http.post.await_args.kwargs["json"]["contents"][0]["parts"]
        assert parts[1]["inlineData"]["mimeType"] == "image/png"


class TestGeminiEmbeddingProvider:
    @pytest.mark.asyncio()
    async def test_embed_falls_through(self) -> None:
        http = _http(
            httpx.Response(500, json={}),
            httpx.Response(200, json={"embedding": {"values": [1, 2, 3]}}),
        )
        provider = GeminiEmbeddingProvider(
            _settings(gemini_api_key="g-key", gemini_embedding_models=["text-embedding-004"]), http
        )

        assert await provider.embed(["busbar"]) == [[1.0, 2.0, 3.0]]
        assert http.post.await_args.kwargs["json"]["model"] == "models/text-embedding-004"

    @pytest.mark.asyncio()
    async def test_empty_values_fail(self) -> None:
        http = _http(*(httpx.Response(200, json={"embedding": {"values": []}}) for _ in range(4)))
        provider = GeminiEmbeddingProvider(_settings(gemini_api_key="g-key"), http)
        with pytest.raises(EmbeddingError):
            await provider.embed_single("busbar")

    @pytest.mark.asyncio()
    async def test_missing_key(self) -> None:
        provider = GeminiEmbeddingProvider(_settings(gemini_api_key=""), _http())
        with pytest.raises(EmbeddingError):
            await provider.embed_single("busbar")


# ======================================================================
# Chained
# ======================================================================


def _named_llm(name: str, vision: bool = False) -> MagicMock:
    mock = MagicMock(spec=ILLMProvider)
    mock.get_provider_name.return_value = name
    mock.is_available.return_value = True
    mock.supports_vision.return_value = vision
    mock.complete = AsyncMock(return_value=f"from {name}")
    mock.vision_extract = AsyncMock(return_value=f"vision from {name}")
    return mock


class TestChainedLLMProvider:
    @pytest.mark.asyncio()
    async def test_second_provider_used_on_failure(self) -> None:
        first, second = _named_llm("gemini"), _named_llm("openai")
        first.complete.side_effect = LLMError("quota")
        chained = ChainedLLMProvider([first, second])

        assert await chained.complete("s", "u") == "from openai"
        assert chained.get_provider_name() == "gemini+openai"

    @pytest.mark.asyncio()
    async def test_all_failing(self) -> None:
        only = _named_llm("gemini")
        only.complete.side_effect = LLMError("quota")
        with pytest.raises(LLMError):
            await ChainedLLMProvider([only]).complete("s", "u")

    @pytest.mark.asyncio()
    async def test_vision_only_from_capable_providers(self) -> None:
        text_only, vision = _named_llm("a"), _named_llm("b", vision=True)
        chained = ChainedLLMProvider([text_only, vision])

        assert chained.supports_vision() is True
        assert await chained.vision_extract(b"png", "p") == "vision from b"
        text_only.vision_extract.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_no_vision_provider(self) -> None:
        with pytest.raises(ProviderUnavailableError):
            await ChainedLLMProvider([_named_llm("a")]).vision_extract(b"png", "p")

    def test_requires_providers(self) -> None:
        with pytest.raises(ConfigurationError):
            ChainedLLMProvider([])


# ======================================================================
# Extraction strategies
# ======================================================================


class TestPdfStrategies:
    @pytest.mark.asyncio()
    async def test_native_text_joins_pages_with_form_feed(self) -> None:
        text = await PdfTextExtractor().extract(_pdf("PANEL DB-2", "FEEDER F1"), "application/pdf")
        assert text == "PANEL DB-2\fFEEDER F1"

    def test_native_text_supports(self) -> None:
        extractor = PdfTextExtractor()
        assert extractor.supports("application/pdf")
        assert not extractor.supports("image/png")
        assert extractor.get_name() == "native_text"

    def test_render_pages(self) -> None:
        images = render_pages(_pdf("a", "b", "c"), "application/pdf", dpi=36, max_pages=2)
        assert len(images) == 2
        assert all(image.startswith(b"\x89PNG") for image in images)
        assert render_pages(b"raw", "image/png") == [b"raw"]
        assert render_pages(b"raw", "text/plain") == []

    @pytest.mark.asyncio()
    async def test_vision_transcribes_each_page(self, mock_llm_provider: ILLMProvider) -> None:
        extractor = LLMVisionExtractor(mock_llm_provider, dpi=36)
        text = await extractor.extract(_pdf("one", "two"), "application/pdf")

        assert text == "PANEL LT-1\fPANEL LT-1"
        assert mock_llm_provider.vision_extract.await_count == 2

    @pytest.mark.asyncio()
    async def test_vision_nothing_to_render(self, mock_llm_provider: ILLMProvider) -> None:
        with pytest.raises(ExtractionShortfallError):
            await LLMVisionExtractor(mock_llm_provider).extract(b"text", "text/plain")

    def test_vision_availability(self, mock_llm_provider: ILLMProvider) -> None:
        extractor = LLMVisionExtractor(mock_llm_provider)
        assert extractor.is_available() is False
        mock_llm_provider.supports_vision.return_value = True
        assert extractor.is_available() is True

    def test_tesseract_prepares_grayscale(self) -> None:
        prepared = TesseractExtractor._prepare(Image.new("RGB", (8, 8), (200, 180, 160)))
        assert prepared.mode == "L"
        assert TesseractExtractor().supports("image/tiff")
        assert TesseractExtractor().get_name() == "tesseract_ocr"
