import json

from minimentor.conversation_models import LegacyHistoryItem, Turn
from minimentor.conversation_store import (
    CHAT_HISTORY_PREFIX,
    ConversationStore,
    LEGACY_HISTORY_PREFIX,
    REMEMBERED_FIELD_PREFIX,
)
from minimentor.kv_store import InMemoryKeyValueStore


def _turn(role, content, **kwargs):
    return Turn(role=role, content=content, **kwargs)


def test_append_then_list_keeps_order_and_unique_ids(store):
    cid = store.append_turn(None, _turn("user", "How do I switch careers?"), "user-1")
    store.append_turn(cid, _turn("assistant", "What do you do today?"), "user-1")
    store.append_turn(cid, _turn("user", "I teach math."), "user-1")

    conversations = store.list("user-1")
    assert len(conversations) == 1
    conversation = conversations[0]
    assert conversation.id == cid
    assert [t.content for t in conversation.turns] == [
        "How do I switch careers?",
        "What do you do today?",
        "I teach math.",
    ]
    assert len({t.id for t in conversation.turns}) == 3
    assert conversation.title == "How do I switch careers?"


def test_title_is_truncated_first_user_turn(store):
    long_text = "x" * 80
    cid = store.append_turn(None, _turn("user", long_text))
    assert store.get(cid).title == "x" * 50 + "..."


def test_explicit_title_and_field_are_kept(store):
    cid = store.append_turn(None, _turn("user", "hi"), title="Career switch", inferred_field="education")
    conversation = store.get(cid)
    assert conversation.title == "Career switch"
    assert conversation.inferred_field == "education"


def test_duplicate_turn_id_on_append_gets_fresh_id(store):
    first = _turn("user", "one")
    cid = store.append_turn(None, first)
    store.append_turn(cid, Turn(id=first.id, role="assistant", content="two"))
    ids = [t.id for t in store.get(cid).turns]
    assert len(set(ids)) == 2


def test_updated_conversation_moves_to_front(store):
    a = store.append_turn(None, _turn("user", "first"), "user-1")
    b = store.append_turn(None, _turn("user", "second"), "user-1")
    assert [c.id for c in store.list("user-1")] == [b, a]

    store.append_turn(a, _turn("assistant", "reply"), "user-1")
    assert [c.id for c in store.list("user-1")] == [a, b]


def test_identified_history_is_capped_at_twenty(store):
    ids = [store.append_turn(None, _turn("user", f"conversation {i}"), "user-1") for i in range(25)]

    conversations = store.list("user-1")
    assert len(conversations) == 20
    assert [c.id for c in conversations] == list(reversed(ids))[:20]
    assert not set(ids[:5]) & {c.id for c in conversations}


def test_anonymous_history_is_capped_at_ten(store):
    for i in range(12):
        store.append_turn(None, _turn("user", f"conversation {i}"))
    assert len(store.list()) == 10
    assert store.list("someone") == []


def test_merge_replaces_turns_and_creates_unknown(store):
    outcome = store.merge("fixed-id", [_turn("user", "a"), _turn("assistant", "b")], "user-1", inferred_field="sales")
    assert outcome.conversation_id == "fixed-id"
    assert outcome.wiped is False

    store.merge("fixed-id", [_turn("user", "only")], "user-1")
    conversation = store.get("fixed-id", "user-1")
    assert [t.content for t in conversation.turns] == ["only"]
    assert conversation.inferred_field == "sales"


def test_delete_removes_only_target(store, kv):
    a = store.append_turn(None, _turn("user", "a"), "user-1")
    b = store.append_turn(None, _turn("user", "b"), "user-1")
    store.append_turn(b, _turn("assistant", "b2"), "user-1")
    c = store.append_turn(None, _turn("user", "c"), "user-1")

    assert store.delete(b, "user-1") is True
    remaining = store.list("user-1")
    assert [x.id for x in remaining] == [c, a]

    before = kv.get(CHAT_HISTORY_PREFIX + "user-1")
    assert store.delete("missing", "user-1") is False
    assert kv.get(CHAT_HISTORY_PREFIX + "user-1") == before


def test_list_heals_duplicate_and_missing_ids(store, kv):
    raw = [
        {"id": "same", "title": "one", "turns": [{"id": "t1", "role": "user", "content": "a"}]},
        {"id": "same", "title": "two", "turns": [{"id": "t1", "role": "user", "content": "b"}]},
        {"title": "three", "turns": [{"role": "user", "content": "c"}]},
    ]
    kv.set(CHAT_HISTORY_PREFIX + "user-1", json.dumps(raw))

    conversations = store.list("user-1")
    conversation_ids = [c.id for c in conversations]
    turn_ids = [t.id for c in conversations for t in c.turns]
    assert len(set(conversation_ids)) == 3
    assert len(set(turn_ids)) == 3
    assert [c.title for c in conversations] == ["one", "two", "three"]

    persisted = json.loads(kv.get(CHAT_HISTORY_PREFIX + "user-1"))
    assert [c["id"] for c in persisted] == conversation_ids


def test_update_turn_media_enriches_in_place(store):
    cid = store.append_turn(None, _turn("user", "q"))
    answer = _turn("assistant", "a")
    store.append_turn(cid, answer)

    enriched = store.update_turn_media(cid, answer.id, image_url="https://img/1.png", image_prompt="chart")
    assert enriched.image_url == "https://img/1.png"
    stored = store.get(cid).turns[1]
    assert stored.id == answer.id
    assert stored.image_prompt == "chart"
    assert store.update_turn_media(cid, "nope", image_url="x") is None


def test_capacity_strips_old_audio_first():
    kv = InMemoryKeyValueStore()
    store = ConversationStore(kv)
    for i in range(5):
        cid = store.append_turn(None, _turn("user", f"q{i}"), "user-1")
        store.append_turn(
            cid,
            _turn("assistant", f"a{i}", image_url="https://img/" + "i" * 1000, audio_url="data:audio/mp3;base64," + "A" * 10000),
            "user-1",
        )

    kv.quota_bytes = 45_000
    newest = store.append_turn(None, _turn("user", "newest"), "user-1")

    conversations = store.list("user-1")
    assert conversations[0].id == newest
    assert len(conversations) == 6
    audio = [any(t.audio_url for t in c.turns) for c in conversations]
    images = [any(t.image_url for t in c.turns) for c in conversations]
    assert audio == [False, True, True, False, False, False]
    assert images == [False, True, True, True, True, True]


def test_capacity_collapses_then_keeps_newest_only():
    kv = InMemoryKeyValueStore()
    store = ConversationStore(kv)
    for i in range(12):
        store.append_turn(None, _turn("user", f"{i}" + "z" * 2000), "user-1")

    kv.quota_bytes = 10_000
    newest = store.append_turn(None, _turn("user", "n" * 2000), "user-1")
    collapsed = store.list("user-1")
    assert len(collapsed) == 10
    assert collapsed[0].id == newest
    assert all(len(t.content) == 500 for c in collapsed for t in c.turns)

    kv.quota_bytes = 1_500
    latest = store.append_turn(None, _turn("user", "m" * 2000), "user-1")
    only = store.list("user-1")
    assert [c.id for c in only] == [latest]
    assert len(only[0].turns[0].content) == 300


def test_capacity_total_failure_wipes_history():
    kv = InMemoryKeyValueStore()
    wiped = []
    store = ConversationStore(kv, on_history_wiped=wiped.append)
    store.append_turn(None, _turn("user", "old"), "user-1")
    store.remember_field("user-1", "design")
    kv.set("unrelated", "1")

    kv.quota_bytes = 60
    outcome = store.merge(None, [_turn("user", "x" * 500)], "user-1")

    assert outcome.wiped is True
    assert wiped == ["user-1"]
    assert kv.keys() == ["unrelated"]


def test_remembered_field_only_for_identified_users(store, kv):
    store.remember_field(None, "design")
    assert store.get_remembered_field(None) is None

    store.remember_field("user-1", "design")
    assert store.get_remembered_field("user-1") == "design"
    assert kv.get(REMEMBERED_FIELD_PREFIX + "user-1") == "design"


def test_legacy_history_most_recent_first_and_capped(store, kv):
    for i in range(12):
        store.save_legacy_item(LegacyHistoryItem(prompt=f"p{i}", advice=f"a{i}"))

    items = store.list_legacy()
    assert len(items) == 10
    assert items[0].prompt == "p11"
    assert kv.get(LEGACY_HISTORY_PREFIX + "anonymous") is not None
