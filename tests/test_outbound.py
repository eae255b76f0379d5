"""Tests for splitting outgoing replies."""

from __future__ import annotations

from makeshift.chat.outbound import split_reply, wrap_text


def test_math_and_images_are_sent_separately():
    text = (
        "Here is math:\n```latex\nx^2 + y^2\n```\n"
        "and a picture ![cat](https://example.com/cat.png) done"
    )

    segments = split_reply(text)

    assert [segment.kind for segment in segments] == ["text", "math", "text", "image", "text"]
    assert segments[1].text == "```latex\nx^2 + y^2\n```"
    assert segments[3].url == "https://example.com/cat.png"
    assert segments[4].text == "done"


def test_display_math_delimiters():
    segments = split_reply("Result: $$e^{i\\pi} = -1$$")

    assert [(segment.kind, segment.text) for segment in segments] == [
        ("text", "Result:"),
        ("math", "$$e^{i\\pi} = -1$$"),
    ]


def test_plain_text_is_a_single_segment():
    segments = split_reply("just words")

    assert len(segments) == 1
    assert segments[0].kind == "text"
    assert segments[0].text == "just words"


def test_wrap_text_prefers_whitespace():
    assert wrap_text("aaaa bbbb cccc", 9) == ["aaaa", "bbbb cccc"]
    assert wrap_text("abcdefghij", 4) == ["abcd", "efgh", "ij"]
    assert wrap_text("short", 100) == ["short"]


def test_long_text_respects_limit():
    segments = split_reply("word " * 100, limit=50)

    assert all(len(segment.text) <= 50 for segment in segments)
    assert " ".join(segment.text for segment in segments) == ("word " * 100).strip()
