import json

import httpx
import pytest

from otto.agent.boundaries import LanguageModel, LLMCallType
from otto.exceptions import LLMException
from otto.llm import ChatOllama


def chat_with(handler):
    return ChatOllama(
        model="qwen2.5:0.5b",
        base_url="http://ollama.test:11434/",
        timeout=5,
        transport=httpx.MockTransport(handler),
    )


def test_satisfies_the_model_protocol():
    assert isinstance(chat_with(lambda r: httpx.Response(200)), LanguageModel)


@pytest.mark.asyncio
async def test_generate_request_and_response():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"response": "  open Safari\n", "done": True})

    text = await chat_with(handler).ainvoke("Goal: Open Safari ->", LLMCallType.ACTION_DECISION)

    assert text == "open Safari"
    assert seen["url"] == "http://ollama.test:11434/api/generate"
    assert seen["body"] == {"model": "qwen2.5:0.5b", "prompt": "Goal: Open Safari ->", "stream": False}


@pytest.mark.asyncio
async def test_temperature_is_sent_as_option():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"response": "ok"})

    chat = chat_with(handler)
    chat.temperature = 0.0
    await chat.ainvoke("hi", LLMCallType.PLANNING)

    assert seen["body"]["options"] == {"temperature": 0.0}


@pytest.mark.asyncio
async def test_http_error_status():
    chat = chat_with(lambda r: httpx.Response(500, text="model not loaded"))
    with pytest.raises(LLMException) as excinfo:
        await chat.ainvoke("hi", LLMCallType.VERIFICATION)
    assert excinfo.value.status_code == 500
    assert "model not loaded" in excinfo.value.message


@pytest.mark.asyncio
async def test_connection_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(LLMException, match="Could not reach Ollama"):
        await chat_with(handler).ainvoke("hi", LLMCallType.DECOMPOSITION)


@pytest.mark.asyncio
async def test_timeout():
    def handler(request):
        raise httpx.ReadTimeout("too slow", request=request)

    with pytest.raises(LLMException, match="timed out"):
        await chat_with(handler).ainvoke("hi", LLMCallType.DECOMPOSITION)


@pytest.mark.asyncio
async def test_payload_without_text():
    chat = chat_with(lambda r: httpx.Response(200, json={"error": "nope"}))
    with pytest.raises(LLMException, match="no 'response' text"):
        await chat.ainvoke("hi", LLMCallType.DECOMPOSITION)


@pytest.mark.asyncio
async def test_invalid_json():
    chat = chat_with(lambda r: httpx.Response(200, text="<html>"))
    with pytest.raises(LLMException, match="invalid JSON"):
        await chat.ainvoke("hi", LLMCallType.DECOMPOSITION)
