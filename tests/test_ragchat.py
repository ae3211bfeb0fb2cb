import pytest

from gamebase.ragchat import (
    ChatMessage,
    Document,
    RAGChat,
    RAGChatConfig,
    RAGChatError,
    RAGHit,
    build_retriever_query,
    docs_to_hits,
    int_from_meta,
    normalize_base_url,
    string_from_meta,
    truncate_runes,
)


class FakeRetriever:
    def __init__(self, docs):
        self.docs = docs
        self.calls = []

    def __call__(self, query, top_k):
        self.calls.append((query, top_k))
        return self.docs


class FakeModel:
    def __init__(self, chunks):
        self.chunks = chunks
        self.received = None

    def __call__(self, messages):
        self.received = messages
        return iter(self.chunks)


def make_config(**overrides):
    values = dict(enabled=True, base_url="http://localhost:8000/v1", api_key="placeholder", model="qwen-test")
    values.update(overrides)
    return RAGChatConfig(**values)


def make_chat(docs=None, chunks=("hello",), **overrides):
    retriever = FakeRetriever(docs if docs is not None else [])
    model = FakeModel(list(chunks))
    return RAGChat(make_config(**overrides), retriever, model), retriever, model


def test_disabled_without_config():
    chat = RAGChat(None, None)
    assert chat.enabled() is False
    with pytest.raises(RAGChatError, match="rag chat is disabled"):
        chat.stream_answer("question")


def test_disabled_config_is_not_enabled():
    chat = RAGChat(RAGChatConfig(enabled=False), None)
    assert chat.enabled() is False


def test_missing_model_name_raises():
    with pytest.raises(RAGChatError, match="base_url/model is empty"):
        RAGChat(make_config(model=""), FakeRetriever([]), FakeModel([]))


def test_missing_retriever_raises():
    with pytest.raises(RAGChatError, match="retriever is nil"):
        RAGChat(make_config(), None, FakeModel([]))


def test_defaults():
    chat, _, _ = make_chat()
    assert chat.enabled() is True
    assert chat.top_k() == 4
    assert chat.max_context_chars() == 3600
    assert RAGChat(None, None).temperature() == pytest.approx(0.2)


def test_configured_limits():
    chat, _, _ = make_chat(top_k=7, max_context_chars=500)
    assert chat.top_k() == 7
    assert chat.max_context_chars() == 500


@pytest.mark.parametrize("given,expected", [(-1.0, 0.0), (5.0, 2.0), (0.7, 0.7)])
def test_temperature_is_clamped(given, expected):
    chat, _, _ = make_chat(temperature=given)
    assert chat.temperature() == pytest.approx(expected)


def test_retriever_query_uses_last_six_history_items():
    history = [ChatMessage("user", f"message {n}") for n in range(8)]
    query = build_retriever_query("  final question ", history)
    lines = query.split("\n")
    assert lines[-1] == "final question"
    assert lines[:-1] == [f"message {n}" for n in range(2, 8)]


def test_retriever_query_truncates_and_skips_blank():
    history = [ChatMessage("user", "x" * 300), ChatMessage("assistant", "   ")]
    lines = build_retriever_query("q", history).split("\n")
    assert lines == ["x" * 260, "q"]


def test_system_prompt_without_docs():
    chat, _, _ = make_chat()
    prompt = chat.build_system_prompt([])
    assert prompt.startswith("You are a concise Chinese community knowledge assistant.\n")
    assert prompt.endswith("No relevant snippets were retrieved.\n")


def test_system_prompt_lists_snippets_with_fallbacks():
    chat, _, _ = make_chat()
    docs = [
        Document(content=" body ", metadata={"title": "T1"}),
        None,
        Document(content="", metadata={"title": "T3", "chunk_text": "from chunk"}),
        Document(content="", metadata={"title": "T4"}),
    ]
    prompt = chat.build_system_prompt(docs)
    assert "[1] Title: T1\nSnippet: body\n" in prompt
    assert "[3] Title: T3\nSnippet: from chunk\n" in prompt
    assert "T4" not in prompt


def test_system_prompt_respects_context_budget():
    chat, _, _ = make_chat(max_context_chars=50)
    header = chat.build_system_prompt([Document(content="")])
    docs = [Document(content="y" * 100, metadata={"title": "A"}), Document(content="z", metadata={"title": "B"})]
    prompt = chat.build_system_prompt(docs)
    assert len(prompt) - len(header) == 50
    assert "[2]" not in prompt


def test_prompt_messages_filter_roles():
    chat, _, _ = make_chat()
    history = [
        ChatMessage(" USER ", "hi"),
        ChatMessage("system", "ignored"),
        ChatMessage("assistant", " reply "),
        ChatMessage("user", "  "),
    ]
    messages = chat.build_prompt_messages(" what? ", history, [])
    assert [m.role for m in messages] == ["system", "user", "assistant", "user"]
    assert messages[1].content == "hi"
    assert messages[2].content == "reply"
    assert messages[-1] == ChatMessage("user", "what?")


def test_prompt_messages_keep_last_eight():
    chat, _, _ = make_chat()
    history = [ChatMessage("user", f"m{n}") for n in range(10)]
    messages = chat.build_prompt_messages("q", history, [])
    assert [m.content for m in messages[1:-1]] == [f"m{n}" for n in range(2, 10)]


def test_stream_answer_collects_chunks_and_hits():
    docs = [Document(content="c", metadata={"post_id": "11", "title": "T"}, score=0.5)]
    chat, retriever, model = make_chat(docs=docs, chunks=["Hel", "", "lo "])
    received = []
    answer, hits = chat.stream_answer(" hi ", [ChatMessage("user", "before")], 0, received.append)
    assert answer == "Hello"
    assert received == ["Hel", "lo "]
    assert retriever.calls == [("before\nhi", 4)]
    assert hits == [RAGHit(post_id=11, score=0.5, title="T")]
    assert model.received[-1] == ChatMessage("user", "hi")


def test_stream_answer_passes_explicit_top_k():
    chat, retriever, _ = make_chat()
    chat.stream_answer("q", top_k=9)
    assert retriever.calls[0][1] == 9


def test_stream_answer_rejects_blank_question():
    chat, _, _ = make_chat()
    with pytest.raises(RAGChatError, match="question is empty"):
        chat.stream_answer("   ")


def test_stream_answer_empty_response_raises_with_hits():
    docs = [Document(content="c", metadata={"post_id": 3})]
    chat, _, _ = make_chat(docs=docs, chunks=["  "])
    with pytest.raises(RAGChatError, match="response is empty") as info:
        chat.stream_answer("q")
    assert [h.post_id for h in info.value.hits] == [3]


def test_stream_answer_propagates_callback_error():
    chat, _, _ = make_chat(chunks=["a"])

    def fail(_chunk):
        raise RuntimeError("client gone")

    with pytest.raises(RuntimeError, match="client gone"):
        chat.stream_answer("q", on_chunk=fail)


def test_docs_to_hits_skips_missing_docs():
    docs = [None, Document(metadata={"chunk_index": 2, "community_id": "5", "author_id": 7.9})]
    hits = docs_to_hits(docs)
    assert len(hits) == 1
    assert (hits[0].chunk_index, hits[0].community_id, hits[0].author_id) == (2, 5, 7)


@pytest.mark.parametrize(
    "value,expected",
    [("42", 42), ("-8", -8), ("abc", 0), (3.9, 3), (None, 0), (True, 0), ("99999999999999999999", 2**63 - 1)],
)
def test_int_from_meta(value, expected):
    assert int_from_meta(value) == expected


def test_string_from_meta():
    assert string_from_meta("title") == "title"
    assert string_from_meta(5) == ""
    assert string_from_meta(None) == ""


def test_normalize_base_url():
    assert normalize_base_url("  http://localhost:8000/v1// ") == "http://localhost:8000/v1"
    assert normalize_base_url("   ") == ""


def test_truncate_runes():
    assert truncate_runes("云顶之弈", 2) == "云顶"
    assert truncate_runes("abc", 5) == "abc"
    assert truncate_runes("abc", 0) == ""