# minimentor/degradation.py
"""
Shrinking strategies applied, in order, when a history collection no longer
fits in the storage medium. Every step keeps most-recent-first ordering and
always keeps the newest conversation with all of its turns.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional

from minimentor.conversation_models import Conversation, Turn

AUDIO_KEEP_RECENT = 3
MEDIA_KEEP_RECENT = 5
COLLAPSE_MIN_ITEMS = 5
COLLAPSE_CONTENT_CHARS = 500
LAST_RESORT_CONTENT_CHARS = 300

FULL = "full"
STRIP_OLD_AUDIO = "strip_old_audio"
STRIP_OLD_MEDIA = "strip_old_media"
COLLAPSE = "collapse"
NEWEST_ONLY = "newest_only"


@dataclass(frozen=True)
class LadderStep:
    name: str
    conversations: List[Conversation]


def serialize_collection(conversations: List[Conversation]) -> str:
    return json.dumps([c.to_storage() for c in conversations])


def _map_turns(conversation: Conversation, fn: Callable[[Turn], Turn]) -> Conversation:
    return conversation.model_copy(update={"turns": [fn(t) for t in conversation.turns]})


def _shrink_turn(turn: Turn, max_chars: int) -> Turn:
    return turn.without_media().model_copy(update={"content": turn.content[:max_chars]})


def strip_old_audio(conversations: List[Conversation], keep: int = AUDIO_KEEP_RECENT) -> List[Conversation]:
    return [
        c if i < keep else _map_turns(c, lambda t: t.without_media(image=False, audio=True))
        for i, c in enumerate(conversations)
    ]


def strip_old_media(conversations: List[Conversation], keep: int = MEDIA_KEEP_RECENT) -> List[Conversation]:
    return [
        c if i < keep else _map_turns(c, lambda t: t.without_media())
        for i, c in enumerate(conversations)
    ]


def collapse(conversations: List[Conversation], max_items: int) -> List[Conversation]:
    limit = max(COLLAPSE_MIN_ITEMS, max_items // 2)
    return [
        _map_turns(c, lambda t: _shrink_turn(t, COLLAPSE_CONTENT_CHARS))
        for c in conversations[:limit]
    ]


def newest_only(conversations: List[Conversation]) -> List[Conversation]:
    if not conversations:
        return []
    return [_map_turns(conversations[0], lambda t: _shrink_turn(t, LAST_RESORT_CONTENT_CHARS))]


def degradation_ladder(conversations: List[Conversation], max_items: int) -> Iterator[LadderStep]:
    """Yield the collection as-is, then each successively smaller rendition."""
    yield LadderStep(FULL, conversations)

    no_old_audio = strip_old_audio(conversations)
    yield LadderStep(STRIP_OLD_AUDIO, no_old_audio)

    no_old_media = strip_old_media(no_old_audio)
    yield LadderStep(STRIP_OLD_MEDIA, no_old_media)

    yield LadderStep(COLLAPSE, collapse(no_old_media, max_items))
    yield LadderStep(NEWEST_ONLY, newest_only(conversations))


def first_fitting_step(
    conversations: List[Conversation],
    max_items: int,
    fits: Callable[[str], bool],
) -> Optional[LadderStep]:
    """
    Walk the ladder and return the first step whose serialized payload `fits`
    accepts, or None when even the last step is refused.
    """
    for step in degradation_ladder(conversations, max_items):
        if fits(serialize_collection(step.conversations)):
            return step
    return None
