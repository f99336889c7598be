"""Tests for message normalization."""

from pairstream.core.normalizer import (
    extract_current_context,
    extract_message_hints,
    normalize_messages,
    strip_assistant_markup,
    summary_view,
)
from pairstream.types import Message


class TestMessageHints:
    def test_extracts_and_strips_hints(self):
        msg = Message(role="user", content="[Model: gpt-4o]\n\n[Provider: OpenAI]\n\nBuild a todo app")
        hints = extract_message_hints(msg, "default-model", "Default")
        assert hints.model == "gpt-4o"
        assert hints.provider == "OpenAI"
        assert hints.content == "Build a todo app"

    def test_missing_hints_use_defaults(self):
        msg = Message(role="user", content="Just text")
        hints = extract_message_hints(msg, "default-model", "Default")
        assert hints.model == "default-model"
        assert hints.provider == "Default"
        assert hints.content == "Just text"

    def test_structured_content_keeps_image_parts(self):
        image = {"type": "image", "image": "data:image/png;base64,AAAA"}
        msg = Message(role="user", content=[
            {"type": "text", "text": "[Model: m1]\n\n[Provider: P]\n\nWhat is this?"},
            image,
        ])
        hints = extract_message_hints(msg, "d", "D")
        assert hints.model == "m1"
        assert hints.provider == "P"
        assert hints.content == [{"type": "text", "text": "What is this?"}, image]


class TestAssistantMarkup:
    def test_removes_thought_div_escaped_and_plain(self):
        escaped = 'before<div class=\\"__boltThought__\\">thinking</div>after'
        plain = 'before<div class="__boltThought__">thinking\nmore</div>after'
        assert strip_assistant_markup(escaped) == "beforeafter"
        assert strip_assistant_markup(plain) == "beforeafter"

    def test_removes_think_block(self):
        assert strip_assistant_markup("<think>hmm</think>  Answer  ") == "Answer"

    def test_replaces_lockfile_actions(self):
        text = (
            'Files:<boltAction type="file" filePath="package-lock.json">{"huge": true}</boltAction>'
            '<boltAction type="file" filePath="web/yarn.lock">lock</boltAction>'
            '<boltAction type="file" filePath="src/index.js">code</boltAction>'
        )
        cleaned = strip_assistant_markup(text)
        assert "[package-lock.json content removed]" in cleaned
        assert "[yarn.lock content removed]" in cleaned
        assert '"huge"' not in cleaned
        assert 'filePath="src/index.js">code</boltAction>' in cleaned

    def test_summary_view_replaces_code(self):
        msg = Message(role="assistant", content="Here:\n```js\nconsole.log(1)\n```\nDone")
        assert summary_view(msg) == "Here:\n[code]\nDone"


class TestNormalizeMessages:
    def test_last_user_hint_wins(self):
        messages = [
            Message(role="user", content="[Model: a]\n\n[Provider: X]\n\nfirst", id="1"),
            Message(role="assistant", content="ok", id="2"),
            Message(role="user", content="[Model: b]\n\n[Provider: Y]\n\nsecond", id="3"),
        ]
        result = normalize_messages(messages, "d", "D")
        assert result.model == "b"
        assert result.provider == "Y"
        assert [m.content for m in result.messages] == ["first", "ok", "second"]

    def test_preserves_order_ids_and_does_not_mutate(self):
        messages = [
            Message(role="system", content="sys", id="s"),
            Message(role="user", content="[Model: a]\n\nhi", id="u"),
            Message(role="assistant", content="<think>x</think>yo", id="a"),
        ]
        result = normalize_messages(messages, "d", "D")
        assert [m.id for m in result.messages] == ["s", "u", "a"]
        assert [m.role for m in result.messages] == ["system", "user", "assistant"]
        assert result.messages[0].content == "sys"
        assert result.messages[2].content == "yo"
        assert messages[1].content == "[Model: a]\n\nhi"
        assert messages[2].content == "<think>x</think>yo"


class TestExtractCurrentContext:
    def test_finds_latest_annotations(self):
        messages = [
            Message(role="assistant", content="a", id="a1", annotations=[
                {"type": "chatSummary", "summary": "old", "chatId": "u0"},
                {"type": "codeContext", "files": ["old.js"]},
            ]),
            Message(role="user", content="u", id="u1"),
            Message(role="assistant", content="b", id="a2", annotations=[
                {"type": "chatSummary", "summary": "new", "chatId": "u1"},
            ]),
        ]
        summary, code_context = extract_current_context(messages)
        assert summary.summary == "new"
        assert summary.chat_id == "u1"
        assert code_context.files == ["old.js"]

    def test_none_when_absent(self):
        summary, code_context = extract_current_context([Message(role="user", content="x")])
        assert summary is None
        assert code_context is None
