from pathlib import Path

from replyclaw.auto_reply.body import ABORTED_HINT, MEDIA_REPLY_HINT, build_group_intro, compose_body
from replyclaw.auto_reply.media import filter_media_by_size, split_media_from_output
from replyclaw.auto_reply.templating import apply_template, build_template_context
from replyclaw.auto_reply.types import MsgContext


def test_compose_body_orders_all_blocks() -> None:
    ctx = MsgContext(
        body="hello",
        media_path="/tmp/a.jpg",
        media_type="image/jpeg",
        group_subject="Crew",
        group_members="Ann, Bob",
    )

    composed = compose_body(
        "hello",
        ctx,
        is_first_turn=True,
        aborted_last_run=True,
        is_group=True,
        session_intro="INTRO",
        body_prefix="PFX ",
    )

    assert composed.text == "\n\n".join(
        [
            ABORTED_HINT,
            'You are replying inside the WhatsApp group "Crew". Group members: Ann, Bob. '
            "Address the specific sender noted in the message context.",
            "INTRO",
            f"PFX [media attached: /tmp/a.jpg (image/jpeg)]\n{MEDIA_REPLY_HINT}\nhello",
        ]
    )


def test_compose_body_later_turn_with_send_once_is_bare() -> None:
    composed = compose_body(
        "again",
        MsgContext(body="again"),
        is_first_turn=False,
        send_system_once=True,
        is_group=True,
        session_intro="INTRO",
        body_prefix="PFX ",
    )

    assert composed.text == "again"


def test_compose_body_prefix_every_turn_without_send_once() -> None:
    composed = compose_body("again", MsgContext(), is_first_turn=False, body_prefix="PFX ")

    assert composed.text == "PFX again"


def test_compose_body_text_mode_skips_hints_and_transcript() -> None:
    ctx = MsgContext(media_path="/tmp/a.ogg", media_url="https://x.test/a.ogg")

    composed = compose_body(
        "hi",
        ctx,
        is_first_turn=True,
        aborted_last_run=True,
        command_mode=False,
        transcript="words",
    )

    assert composed.text == "[media attached: /tmp/a.ogg | https://x.test/a.ogg]\nhi"


def test_compose_body_consumes_leading_level_word() -> None:
    composed = compose_body("high what's up", MsgContext(), is_first_turn=False)

    assert composed.think_level == "high"
    assert composed.text == "what's up"

    kept = compose_body("high what's up", MsgContext(), is_first_turn=False, think_level="low")
    assert kept.think_level == "low"
    assert kept.text == "high what's up"


def test_group_intro_without_subject() -> None:
    assert build_group_intro(None, None) == (
        "You are replying inside a WhatsApp group chat. "
        "Address the specific sender noted in the message context."
    )


def test_templating_blanks_missing_values() -> None:
    ctx = build_template_context(MsgContext(body="hi", from_="+1555"), session_id="s1", is_new_session=True)

    assert apply_template("{{From}}/{{SessionId}}/{{IsNewSession}}/{{To}}/{{Nope}}", ctx) == "+1555/s1/true//"
    assert apply_template(None, ctx) == ""


def test_split_media_tokens() -> None:
    text, media = split_media_from_output("hi\nMEDIA:https://a.test/b.png\n  MEDIA:/tmp/x.png \nMEDIA: spaced out")

    assert text == "hi\nMEDIA: spaced out"
    assert media == ["https://a.test/b.png", "/tmp/x.png"]


def test_filter_media_by_size(tmp_path: Path) -> None:
    big = tmp_path / "big.bin"
    big.write_bytes(b"\x00" * (2 * 1024 * 1024))
    small = tmp_path / "small.bin"
    small.write_bytes(b"\x00" * 10)
    missing = tmp_path / "missing.bin"
    media = ["https://a.test/b.png", str(big), str(small), str(missing)]

    assert filter_media_by_size(media, 1) == ["https://a.test/b.png", str(small)]
    assert filter_media_by_size(media, None) == media


def test_filter_media_drops_unresolvable_paths_under_cap() -> None:
    media = ["https://a.test/b.png", "~nosuchuser-replyclaw/a.png", "/tmp/bad\x00name.png"]

    assert filter_media_by_size(media, 1) == ["https://a.test/b.png"]
