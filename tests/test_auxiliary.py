import asyncio

import pytest

from querynox.services.auxiliary import DEFAULT_CHAT_NAME, SUMMARY_FALLBACK


@pytest.mark.asyncio
class TestAuxiliaryModel:
    async def test_chat_name_strips_quotes_and_clips(self, auxiliary, aux_provider):
        aux_provider.reply = '"' + "Long name " * 10 + '"'
        name = await auxiliary.generate_chat_name("Tell me about rivers")
        assert '"' not in name
        assert len(name) <= 50
        assert aux_provider.calls[0]["model"] == "openai/gpt-oss-120b"

    async def test_chat_name_fallback(self, auxiliary, aux_provider):
        aux_provider.error = RuntimeError("down")
        assert await auxiliary.generate_chat_name("Hello") == DEFAULT_CHAT_NAME
        assert await auxiliary.generate_chat_name("   ") == DEFAULT_CHAT_NAME

    async def test_search_query_falls_back_to_last_message(self, auxiliary, aux_provider):
        aux_provider.error = RuntimeError("down")
        messages = [{"role": "user", "content": "who is he"}]
        assert await auxiliary.resolve_search_query(messages) == "who is he"

    async def test_resolver_sees_last_ten_messages(self, auxiliary, aux_provider):
        messages = [{"role": "user", "content": f"m{i}"} for i in range(15)]
        await auxiliary.resolve_image_prompt(messages)
        sent = aux_provider.calls[0]["messages"]
        assert sent[0]["role"] == "system"
        assert [m["content"] for m in sent[1:]] == [f"m{i}" for i in range(5, 15)]

    async def test_summary_fallbacks(self, auxiliary, aux_provider):
        assert await auxiliary.summarize_conversation([]) == ""
        aux_provider.error = RuntimeError("down")
        summary = await auxiliary.summarize_conversation([{"role": "user", "content": "hi"}])
        assert summary == SUMMARY_FALLBACK

    async def test_timeout_falls_back(self, auxiliary, aux_provider, monkeypatch):
        async def slow_stream(messages, model, temperature=0.7, max_tokens=4096):
            await asyncio.sleep(1)
            yield

        monkeypatch.setattr(aux_provider, "stream_chat", slow_stream)
        auxiliary._timeout = 0.01
        assert await auxiliary.generate_chat_name("Hello") == DEFAULT_CHAT_NAME
