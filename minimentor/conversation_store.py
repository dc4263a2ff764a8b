# minimentor/conversation_store.py
from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

from pydantic import ValidationError as SchemaError

from minimentor.conversation_models import (
    DEFAULT_TITLE,
    Conversation,
    LegacyHistoryItem,
    Turn,
    derive_title,
    new_id,
    utc_now,
)
from minimentor.degradation import FULL, first_fitting_step
from minimentor.errors import DataIntegrityError, StorageCapacityError
from minimentor.kv_store import KeyValueStore

logger = logging.getLogger("minimentor")

ANONYMOUS = "anonymous"

LEGACY_HISTORY_PREFIX = "history::"
CHAT_HISTORY_PREFIX = "chatHistory::"
REMEMBERED_FIELD_PREFIX = "rememberedField::"
SYSTEM_PREFIXES = (LEGACY_HISTORY_PREFIX, CHAT_HISTORY_PREFIX, REMEMBERED_FIELD_PREFIX)

MAX_ITEMS_IDENTIFIED = 20
MAX_ITEMS_ANONYMOUS = 10


@dataclass
class PersistOutcome:
    conversation_id: Optional[str]
    step: Optional[str]
    wiped: bool = False


def max_items_for(identity: Optional[str]) -> int:
    return MAX_ITEMS_IDENTIFIED if identity else MAX_ITEMS_ANONYMOUS


def check_unique_ids(raw_conversations: List[dict]) -> None:
    """Raise DataIntegrityError listing conversations with missing/duplicate ids."""
    offending: List[int] = []
    conversation_ids: set[str] = set()
    turn_ids: set[str] = set()
    for idx, raw in enumerate(raw_conversations):
        bad = False
        cid = raw.get("id")
        if not cid or cid in conversation_ids:
            bad = True
        conversation_ids.add(cid)
        for turn in raw.get("turns") or []:
            tid = turn.get("id") if isinstance(turn, dict) else None
            if not tid or tid in turn_ids:
                bad = True
            turn_ids.add(tid)
        if bad:
            offending.append(idx)
    if offending:
        raise DataIntegrityError(
            f"{len(offending)} conversation(s) with missing or duplicate ids",
            offending=offending,
        )


def heal_ids(raw_conversations: List[dict]) -> List[dict]:
    """Return a copy where every conversation id and every turn id is unique and present."""
    healed: List[dict] = []
    conversation_ids: set[str] = set()
    turn_ids: set[str] = set()
    for raw in raw_conversations:
        item = dict(raw)
        if not item.get("id") or item["id"] in conversation_ids:
            item["id"] = new_id()
        conversation_ids.add(item["id"])

        turns = []
        for turn in item.get("turns") or []:
            if not isinstance(turn, dict):
                continue
            t = dict(turn)
            if not t.get("id") or t["id"] in turn_ids:
                t["id"] = new_id()
            turn_ids.add(t["id"])
            turns.append(t)
        item["turns"] = turns
        healed.append(item)
    return healed


class ConversationStore:
    """
    Per-identity conversation history on top of a KeyValueStore.

    - most-recent-first, capped at 20 (identified) / 10 (anonymous) conversations
    - writes walk the degradation ladder when the medium runs out of space
    - reads self-heal duplicate or missing ids
    - the lock only serializes writers inside this process; across processes
      the last write wins
    """

    def __init__(
        self,
        kv: KeyValueStore,
        on_history_wiped: Callable[[str], None] | None = None,
    ):
        self.kv = kv
        self.on_history_wiped = on_history_wiped
        self._lock = threading.RLock()

    # -----------------------
    # Keys
    # -----------------------

    def _bucket(self, identity: Optional[str]) -> str:
        return str(identity) if identity else ANONYMOUS

    def _chat_key(self, identity: Optional[str]) -> str:
        return CHAT_HISTORY_PREFIX + self._bucket(identity)

    def _legacy_key(self, identity: Optional[str]) -> str:
        return LEGACY_HISTORY_PREFIX + self._bucket(identity)

    def _field_key(self, identity: str) -> str:
        return REMEMBERED_FIELD_PREFIX + str(identity)

    # -----------------------
    # Raw IO
    # -----------------------

    def _load_json_list(self, key: str) -> List[dict]:
        raw = self.kv.get(key)
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Discarding unreadable value under %s: %s", key, e)
            return []
        if not isinstance(data, list):
            logger.warning("Discarding non-list value under %s", key)
            return []
        return [d for d in data if isinstance(d, dict)]

    def _parse_conversations(self, raw_conversations: List[dict]) -> tuple[List[Conversation], bool]:
        conversations: List[Conversation] = []
        dropped = False
        for raw in raw_conversations:
            try:
                conversations.append(Conversation.model_validate(raw))
            except SchemaError as e:
                logger.warning("Dropping malformed conversation %s: %s", raw.get("id"), e)
                dropped = True
        return conversations, dropped

    def _load_unlocked(self, identity: Optional[str]) -> List[Conversation]:
        raw = self._load_json_list(self._chat_key(identity))
        needs_write = False
        try:
            check_unique_ids(raw)
        except DataIntegrityError as e:
            logger.warning("Healing chat history for %s: %s (entries %s)", self._bucket(identity), e, e.offending)
            raw = heal_ids(raw)
            needs_write = True

        conversations, dropped = self._parse_conversations(raw)
        if needs_write or dropped:
            self._write_unlocked(identity, conversations)
        return conversations

    def _write_unlocked(self, identity: Optional[str], conversations: List[Conversation]) -> PersistOutcome:
        key = self._chat_key(identity)

        def fits(payload: str) -> bool:
            try:
                self.kv.set(key, payload)
                return True
            except StorageCapacityError as e:
                logger.warning("Storage capacity exceeded for %s: %s", key, e)
                return False

        step = first_fitting_step(conversations, max_items_for(identity), fits)
        if step is not None:
            if step.name != FULL:
                logger.warning("Chat history for %s persisted after degradation step '%s'", self._bucket(identity), step.name)
            return PersistOutcome(conversation_id=None, step=step.name)

        self._wipe_unlocked(identity)
        return PersistOutcome(conversation_id=None, step=None, wiped=True)

    def _wipe_unlocked(self, identity: Optional[str]) -> None:
        for key in self.kv.keys():
            if key.startswith(SYSTEM_PREFIXES):
                self.kv.remove(key)
        logger.error("Storage could not hold even the newest conversation; all mentor history was cleared")
        if self.on_history_wiped:
            self.on_history_wiped(self._bucket(identity))

    # -----------------------
    # Conversations
    # -----------------------

    def list(self, identity: Optional[str] = None) -> List[Conversation]:
        with self._lock:
            return self._load_unlocked(identity)

    def get(self, conversation_id: str, identity: Optional[str] = None) -> Optional[Conversation]:
        for conversation in self.list(identity):
            if conversation.id == conversation_id:
                return conversation
        return None

    def append_turn(
        self,
        conversation_id: Optional[str],
        turn: Turn,
        identity: Optional[str] = None,
        *,
        title: Optional[str] = None,
        inferred_field: Optional[str] = None,
    ) -> str:
        def _append(existing: List[Turn]) -> List[Turn]:
            taken = {t.id for t in existing}
            new_turn = turn.model_copy(update={"id": new_id()}) if turn.id in taken else turn
            return existing + [new_turn]

        outcome = self._upsert(conversation_id, identity, _append, title=title, inferred_field=inferred_field)
        return outcome.conversation_id

    def merge(
        self,
        conversation_id: Optional[str],
        turns: List[Turn],
        identity: Optional[str] = None,
        *,
        title: Optional[str] = None,
        inferred_field: Optional[str] = None,
    ) -> PersistOutcome:
        """Replace the turns of a conversation (creating it when unknown) and persist."""
        full_turns = list(turns)
        return self._upsert(conversation_id, identity, lambda _existing: full_turns, title=title, inferred_field=inferred_field)

    def _upsert(
        self,
        conversation_id: Optional[str],
        identity: Optional[str],
        build_turns: Callable[[List[Turn]], List[Turn]],
        *,
        title: Optional[str],
        inferred_field: Optional[str],
    ) -> PersistOutcome:
        with self._lock:
            conversations = self._load_unlocked(identity)
            now = utc_now()

            idx = next((i for i, c in enumerate(conversations) if c.id == conversation_id), None)
            if idx is None:
                turns = build_turns([])
                conversation = Conversation(
                    id=conversation_id or new_id(),
                    created_at=now,
                    updated_at=now,
                    title=title or derive_title(turns),
                    inferred_field=inferred_field,
                    turns=turns,
                )
            else:
                existing = conversations.pop(idx)
                turns = build_turns(existing.turns)
                update = {"turns": turns, "updated_at": now}
                if title:
                    update["title"] = title
                elif existing.title == DEFAULT_TITLE:
                    update["title"] = derive_title(turns)
                if inferred_field:
                    update["inferred_field"] = inferred_field
                conversation = existing.model_copy(update=update)

            conversations.insert(0, conversation)
            outcome = self._write_unlocked(identity, conversations[:max_items_for(identity)])
            outcome.conversation_id = conversation.id
            return outcome

    def update_turn_media(
        self,
        conversation_id: str,
        turn_id: str,
        identity: Optional[str] = None,
        *,
        image_url: Optional[str] = None,
        audio_url: Optional[str] = None,
        image_prompt: Optional[str] = None,
    ) -> Optional[Turn]:
        """Enrich an existing turn in place. Returns the updated turn, or None if not found."""
        update = {
            k: v
            for k, v in (("image_url", image_url), ("audio_url", audio_url), ("image_prompt", image_prompt))
            if v
        }
        with self._lock:
            conversations = self._load_unlocked(identity)
            for ci, conversation in enumerate(conversations):
                if conversation.id != conversation_id:
                    continue
                for ti, turn in enumerate(conversation.turns):
                    if turn.id != turn_id:
                        continue
                    enriched = turn.model_copy(update=update)
                    turns = list(conversation.turns)
                    turns[ti] = enriched
                    conversations[ci] = conversation.model_copy(update={"turns": turns, "updated_at": utc_now()})
                    self._write_unlocked(identity, conversations)
                    return enriched
        return None

    def delete(self, conversation_id: str, identity: Optional[str] = None) -> bool:
        with self._lock:
            conversations = self._load_unlocked(identity)
            remaining = [c for c in conversations if c.id != conversation_id]
            if len(remaining) == len(conversations):
                return False
            self._write_unlocked(identity, remaining)
            return True

    # -----------------------
    # Legacy single-turn history
    # -----------------------

    def save_legacy_item(self, item: LegacyHistoryItem, identity: Optional[str] = None) -> bool:
        key = self._legacy_key(identity)
        with self._lock:
            items = [item] + self.list_legacy(identity)
            items = items[:max_items_for(identity)]
            candidates = (
                items,
                [items[0]] + [i.model_copy(update={"image_url": None, "audio_url": None}) for i in items[1:]],
            )
            for candidate in candidates:
                try:
                    self.kv.set(key, json.dumps([i.to_storage() for i in candidate]))
                    return True
                except StorageCapacityError as e:
                    logger.warning("Legacy history for %s does not fit: %s", self._bucket(identity), e)
        return False

    def list_legacy(self, identity: Optional[str] = None) -> List[LegacyHistoryItem]:
        items: List[LegacyHistoryItem] = []
        for raw in self._load_json_list(self._legacy_key(identity)):
            try:
                items.append(LegacyHistoryItem.model_validate(raw))
            except SchemaError as e:
                logger.warning("Skipping malformed legacy history item: %s", e)
        return items

    # -----------------------
    # Remembered field
    # -----------------------

    def get_remembered_field(self, identity: Optional[str]) -> Optional[str]:
        if not identity:
            return None
        return self.kv.get(self._field_key(identity)) or None

    def remember_field(self, identity: Optional[str], field: str) -> None:
        if not identity or not field:
            return
        try:
            self.kv.set(self._field_key(identity), field)
        except StorageCapacityError as e:
            logger.warning("Could not remember field for %s: %s", identity, e)
