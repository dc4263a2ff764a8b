from minimentor.conversation_models import Conversation, Turn
from minimentor.degradation import (
    COLLAPSE,
    FULL,
    NEWEST_ONLY,
    STRIP_OLD_AUDIO,
    STRIP_OLD_MEDIA,
    collapse,
    degradation_ladder,
    first_fitting_step,
    newest_only,
    serialize_collection,
    strip_old_audio,
    strip_old_media,
)


def _conversation(idx: int, content_chars: int = 1000) -> Conversation:
    return Conversation(
        id=f"c{idx}",
        title=f"conversation {idx}",
        turns=[
            Turn(id=f"c{idx}-u", role="user", content="q" * content_chars),
            Turn(
                id=f"c{idx}-a",
                role="assistant",
                content="a" * content_chars,
                image_url="https://img.example/" + "i" * 200,
                audio_url="data:audio/mp3;base64," + "A" * 2000,
                image_prompt="a chart",
            ),
        ],
    )


def _collection(n: int = 12) -> list[Conversation]:
    # most-recent-first
    return [_conversation(i) for i in range(n)]


def test_strip_old_audio_keeps_three_most_recent():
    result = strip_old_audio(_collection())
    assert [c.turns[1].audio_url is not None for c in result[:3]] == [True, True, True]
    assert all(c.turns[1].audio_url is None for c in result[3:])
    assert all(c.turns[1].image_url is not None for c in result)


def test_strip_old_media_keeps_five_most_recent_images():
    result = strip_old_media(strip_old_audio(_collection()))
    assert all(c.turns[1].image_url is not None for c in result[:5])
    assert all(c.turns[1].image_url is None and c.turns[1].audio_url is None for c in result[5:])
    assert result[0].turns[1].audio_url is not None


def test_collapse_limits_count_and_content():
    result = collapse(_collection(12), max_items=20)
    assert len(result) == 10
    for conversation in result:
        for turn in conversation.turns:
            assert len(turn.content) == 500
            assert turn.image_url is None and turn.audio_url is None

    assert len(collapse(_collection(12), max_items=6)) == 5


def test_newest_only_keeps_newest_conversation():
    result = newest_only(_collection())
    assert len(result) == 1
    assert result[0].id == "c0"
    assert [t.id for t in result[0].turns] == ["c0-u", "c0-a"]
    assert all(len(t.content) == 300 for t in result[0].turns)
    assert newest_only([]) == []


def test_ladder_order_and_newest_turn_survives():
    steps = list(degradation_ladder(_collection(), max_items=20))
    assert [s.name for s in steps] == [FULL, STRIP_OLD_AUDIO, STRIP_OLD_MEDIA, COLLAPSE, NEWEST_ONLY]

    sizes = [len(serialize_collection(s.conversations)) for s in steps]
    assert sizes == sorted(sizes, reverse=True)
    assert len(set(sizes)) == len(sizes)

    for step in steps:
        assert step.conversations[0].id == "c0"
        assert step.conversations[0].turns[-1].id == "c0-a"
        ids = [c.id for c in step.conversations]
        assert ids == sorted(ids, key=lambda cid: int(cid[1:]))


def test_first_fitting_step_with_size_limit():
    conversations = _collection()
    steps = list(degradation_ladder(conversations, max_items=20))
    sizes = [len(serialize_collection(s.conversations)) for s in steps]

    for expected, limit in zip(steps, sizes):
        chosen = first_fitting_step(conversations, 20, lambda payload: len(payload) <= limit)
        assert chosen.name == expected.name

    assert first_fitting_step(conversations, 20, lambda payload: False) is None
