import pytest

from labsim.local_llm import LocalLLMError, _perform_ollama_request, call_ollama_chat
from labsim.transport import HttpTransportError


@pytest.mark.asyncio
async def test_call_ollama_chat_builds_payload(monkeypatch):
    captured: dict[str, object] = {}

    def fake_request(payload, base_url, timeout):
        captured["payload"] = payload
        captured["base_url"] = base_url
        captured["timeout"] = timeout
        return '{"text":"Add indicator first"}'

    monkeypatch.setattr("labsim.local_llm._perform_ollama_request", fake_request)

    result = await call_ollama_chat(
        system_prompt="  Lab tutor  ",
        user_prompt="Student needs a hint",
        llm_model="llama3.1",
        base_url="http://localhost:11434/",
        timeout=30,
    )

    assert result == '{"text":"Add indicator first"}'
    payload = captured["payload"]
    assert payload["model"] == "llama3.1"
    assert payload["stream"] is False
    assert payload["format"] == "json"
    assert payload["messages"][0] == {"role": "system", "content": "Lab tutor"}
    assert payload["messages"][1] == {"role": "user", "content": "Student needs a hint"}
    assert captured["base_url"] == "http://localhost:11434"
    assert captured["timeout"] == 30


@pytest.mark.asyncio
async def test_call_ollama_chat_plain_text(monkeypatch):
    captured: dict[str, object] = {}

    def fake_request(payload, base_url, timeout):
        captured["payload"] = payload
        return "free text"

    monkeypatch.setattr("labsim.local_llm._perform_ollama_request", fake_request)

    await call_ollama_chat(
        system_prompt="",
        user_prompt="Describe the reaction",
        llm_model="llama3.1",
        json_output=False,
    )

    assert "format" not in captured["payload"]
    assert captured["payload"]["messages"] == [{"role": "user", "content": "Describe the reaction"}]


@pytest.mark.asyncio
async def test_call_ollama_chat_rejects_empty_prompt():
    with pytest.raises(LocalLLMError):
        await call_ollama_chat(system_prompt="System", user_prompt="   ", llm_model="llama3.1")


def test_perform_ollama_request_extracts_content(monkeypatch):
    def fake_transport(method, url, *, payload=None, headers=None, timeout=30.0):
        assert method == "POST"
        assert url == "http://ollama.test/api/chat"
        return {"message": {"role": "assistant", "content": '{"text":"ok"}'}}

    monkeypatch.setattr("labsim.local_llm.perform_json_request", fake_transport)

    assert _perform_ollama_request({}, "http://ollama.test/", 5) == '{"text":"ok"}'


@pytest.mark.parametrize(
    "response",
    [["not", "a", "mapping"], {"message": {}}, HttpTransportError("Could not reach ollama")],
)
def test_perform_ollama_request_errors(monkeypatch, response):
    def fake_transport(method, url, *, payload=None, headers=None, timeout=30.0):
        if isinstance(response, Exception):
            raise response
        return response

    monkeypatch.setattr("labsim.local_llm.perform_json_request", fake_transport)

    with pytest.raises(LocalLLMError):
        _perform_ollama_request({}, "http://ollama.test", 5)
