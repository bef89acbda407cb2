import asyncio
import json

import httpx
import pytest

from core.config import DeepseekConfig
from worker.completion import CompletionError, DeepseekClient


def _complete(handler, config=None, prompt="hello"):
    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            llm = DeepseekClient(config or DeepseekConfig(api_key="sk-test"), client=client)
            return await llm.complete(prompt)

    return asyncio.run(run())


def test_complete_posts_chat_request():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"content": '  {"is_remote": true}  '}}]})

    answer = _complete(handler, prompt="classify this")

    assert answer == '{"is_remote": true}'
    assert seen["url"] == "https://api.deepseek.com/v1/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"]["model"] == "deepseek-chat"
    assert seen["body"]["messages"][-1] == {"role": "user", "content": "classify this"}


def test_custom_base_and_model():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["model"] = json.loads(request.content)["model"]
        return httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]})

    _complete(handler, DeepseekConfig(api_base="https://llm.local/v1/", api_key="k", model="m1"))

    assert seen == {"url": "https://llm.local/v1/chat/completions", "model": "m1"}


def test_missing_api_key(monkeypatch):
    monkeypatch.delenv("DEEPSEEK_API_KEY", raising=False)
    with pytest.raises(CompletionError, match="api key missing"):
        _complete(lambda r: httpx.Response(200), DeepseekConfig(api_key=""))


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"error": "boom"}),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"choices": []}),
        httpx.Response(200, json={"choices": [{"message": {"content": ""}}]}),
    ],
)
def test_unusable_responses_raise(response):
    with pytest.raises(CompletionError):
        _complete(lambda r: response)


def test_transport_failure_raises():
    def handler(request):
        raise httpx.ConnectTimeout("timed out")

    with pytest.raises(CompletionError):
        _complete(handler)
