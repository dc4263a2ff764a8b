# minimentor/backend.py

import json
import logging
from enum import Enum
from typing import Callable, List, Optional

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from minimentor.base_utils import BaseUtils
from minimentor.chat_prompts import (
    IMAGE_PROMPT_WRITER_PROMPT,
    IMAGE_PROMPT_WRITER_REQUEST,
    ONE_SHOT_ADVICE_PROMPT,
)
from minimentor.conversation_models import Conversation, LegacyHistoryItem, Turn
from minimentor.conversation_store import ConversationStore
from minimentor.db_helpers import build_db_session_factory
from minimentor.degradation import FULL
from minimentor.directive_parser import IMAGE_CONCEPT_MARKER, parse, parse_image_concept
from minimentor.errors import MentorError, ProviderError, ValidationError
from minimentor.field_classifier import UNKNOWN_FIELD, classify, classify_history
from minimentor.kv_store import SqlKeyValueStore
from minimentor.llm_client import (
    CHAT,
    IMAGE,
    ChatLlmClient,
    ImageClient,
    SpeechClient,
    build_openai_client,
    call_provider,
)
from minimentor.media_augmenter import MediaAugmenter
from minimentor.prompt_assembler import PromptAssembler
from minimentor.settings import MentorSettings, parse_bool

logger = logging.getLogger("minimentor")

IMAGE_PROMPT_MAX_OUTPUT_TOKENS = 300
ONE_SHOT_MAX_OUTPUT_TOKENS = 500
ONE_SHOT_IMAGE_STYLE = (
    "Create a high-quality, professional image suitable for career advice content. "
    "The image should be inspirational and motivational."
)
HISTORY_WIPED_NOTICE = "Your saved conversations were cleared because local storage is full."


class SessionState(str, Enum):
    IDLE = "idle"
    FIELD_DETECTING = "field_detecting"
    PROMPT_BUILDING = "prompt_building"
    AWAITING_MODEL = "awaiting_model"
    DIRECTIVE_PARSING = "directive_parsing"
    AUGMENTING = "augmenting"
    PERSISTING = "persisting"
    FAILED = "failed"


_TRANSITIONS = {
    SessionState.IDLE: {SessionState.FIELD_DETECTING},
    SessionState.FIELD_DETECTING: {SessionState.PROMPT_BUILDING},
    SessionState.PROMPT_BUILDING: {SessionState.AWAITING_MODEL},
    SessionState.AWAITING_MODEL: {SessionState.DIRECTIVE_PARSING, SessionState.FAILED},
    SessionState.DIRECTIVE_PARSING: {SessionState.AUGMENTING},
    SessionState.AUGMENTING: {SessionState.PERSISTING},
    SessionState.PERSISTING: {SessionState.IDLE},
    SessionState.FAILED: set(),
}


class ChatTurnRun:
    """State of a single chat request. Never shared between requests."""

    def __init__(self) -> None:
        self.state = SessionState.IDLE
        self.trace: List[SessionState] = [SessionState.IDLE]

    def advance(self, state: SessionState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal chat state transition {self.state.value} -> {state.value}")
        logger.debug("chat turn: %s -> %s", self.state.value, state.value)
        self.state = state
        self.trace.append(state)


class MentorBackend(BaseUtils):
    def __init__(
        self,
        settings: MentorSettings | None = None,
        *,
        store: ConversationStore | None = None,
        chat_llm: ChatLlmClient | None = None,
        image_client: ImageClient | None = None,
        speech_client: SpeechClient | None = None,
        identity_provider: Callable[[], Optional[str]] | None = None,
    ):
        self.settings = settings or MentorSettings()
        if store is None:
            session_factory = build_db_session_factory(self.settings.DATABASE_URL)
            store = ConversationStore(SqlKeyValueStore(session_factory, self.settings.STORAGE_QUOTA_BYTES))
        self.store = store
        self.identity_provider = identity_provider or (lambda: None)
        self.prompt_assembler = PromptAssembler()

        self._chat_llm = chat_llm
        self._image_client = image_client
        self._speech_client = speech_client
        self._media: MediaAugmenter | None = None

    # -----------------------
    # Providers
    # -----------------------

    def _providers(self) -> tuple[ChatLlmClient, MediaAugmenter]:
        """Build missing provider clients; raises ConfigurationError without credentials."""
        if self._chat_llm is None or self._image_client is None or self._speech_client is None:
            s = self.settings
            client = build_openai_client(s.require_api_key(), timeout=s.PROVIDER_TIMEOUT)
            if self._chat_llm is None:
                self._chat_llm = ChatLlmClient(client, s.CHAT_MODEL, max_output_tokens=s.CHAT_MAX_OUTPUT_TOKENS)
            if self._image_client is None:
                self._image_client = ImageClient(client, s.IMAGE_MODEL, s.IMAGE_SIZE)
            if self._speech_client is None:
                self._speech_client = SpeechClient(client, s.TTS_MODEL, s.TTS_VOICE, s.TTS_MAX_INPUT_CHARS)
        if self._media is None:
            self._media = MediaAugmenter(
                self._image_client,
                self._speech_client,
                parallel=self.settings.MEDIA_PARALLEL,
                max_speech_chars=self.settings.TTS_MAX_INPUT_CHARS,
            )
        return self._chat_llm, self._media

    # -----------------------
    # Request routing
    # -----------------------

    def process_request(self, request_data: dict) -> dict:
        """
        Core request handling logic.
        Takes a parsed JSON dict ({"type", "payload"}) and returns the response_data dict.
        """
        request_type = request_data.get("type") if isinstance(request_data, dict) else None

        try:
            preview = json.dumps(request_data, indent=2, default=str)
        except (TypeError, ValueError):
            preview = str(request_data)
        logger.debug(f"process_request request {preview}")

        response_data = {
            "status": "success",
            "message": "",
        }

        try:
            if not isinstance(request_data, dict):
                raise ValidationError("Request must be a JSON object")
            payload = request_data.get("payload") or {}
            if not isinstance(payload, dict):
                raise ValidationError("Request payload must be a JSON object")

            if request_type == "chat":
                response_data["data"] = self.handle_chat(payload)
                if response_data["data"].get("history_wiped"):
                    response_data["message"] = HISTORY_WIPED_NOTICE

            elif request_type == "list_conversations":
                response_data["data"] = [c.to_storage() for c in self.store.list(self.identity_provider())]

            elif request_type == "load_conversation":
                response_data["data"] = self.load_conversation(payload).to_storage()

            elif request_type == "delete_conversation":
                conversation_id = self._payload_str(payload, "conversation_id", "conversation_id is required")
                deleted = self.store.delete(conversation_id, self.identity_provider())
                response_data["data"] = {"deleted": deleted}
                if not deleted:
                    response_data["message"] = "Conversation not found."

            elif request_type == "generate_image":
                response_data["data"] = self.handle_generate_image(payload)

            elif request_type == "generate_advice":
                response_data["data"] = self.handle_generate_advice(payload)

            elif request_type == "legacy_history":
                response_data["data"] = [i.to_storage() for i in self.store.list_legacy(self.identity_provider())]

            else:
                response_data["status"] = "error"
                response_data["message"] = f"Unknown request type: {request_type}"

        except MentorError as e:
            logger.info(f"[process_request] {request_type} failed: {e}")
            response_data["status"] = "error"
            response_data["error_type"] = e.error_type
            response_data["message"] = str(e)

        return response_data

    def _payload_str(self, payload: dict, key: str, required_message: str | None = None) -> Optional[str]:
        """Stripped string value of `payload[key]`; None when absent and optional."""
        value = payload.get(key)
        if value is not None and not isinstance(value, str):
            raise ValidationError(f"{key} must be a string")
        value = (value or "").strip()
        if not value:
            if required_message:
                raise ValidationError(required_message)
            return None
        return value

    # -----------------------
    # Chat turn
    # -----------------------

    def resolve_field(
        self,
        detected: Optional[str],
        conversation: Conversation | None,
        identity: Optional[str],
    ) -> Optional[str]:
        """new utterance > conversation field > remembered field > earlier user turns."""
        if detected:
            return detected
        if conversation is not None and conversation.inferred_field:
            return conversation.inferred_field
        remembered = self.store.get_remembered_field(identity)
        if remembered:
            return remembered
        if conversation is not None:
            return classify_history(t.content for t in conversation.turns if t.role == "user")
        return None

    def _history_messages(self, turns: List[Turn]) -> List[BaseMessage]:
        return [
            HumanMessage(content=t.content) if t.role == "user" else AIMessage(content=t.content)
            for t in turns
        ]

    def handle_chat(self, payload: dict) -> dict:
        payload = payload or {}
        user_text = self._payload_str(payload, "text", "Message text is required")
        conversation_id = self._payload_str(payload, "conversation_id")
        generate_visual = parse_bool(payload.get("generate_visual"), self.settings.GENERATE_VISUAL)
        generate_audio = parse_bool(payload.get("generate_audio"), self.settings.GENERATE_AUDIO)

        chat_llm, media = self._providers()

        identity = self.identity_provider()

        conversation = self.store.get(conversation_id, identity) if conversation_id else None
        prior_turns = list(conversation.turns) if conversation else []

        run = ChatTurnRun()

        run.advance(SessionState.FIELD_DETECTING)
        detected = classify(user_text)
        if detected:
            self.store.remember_field(identity, detected)
        field = self.resolve_field(detected, conversation, identity)

        run.advance(SessionState.PROMPT_BUILDING)
        directive = self.prompt_assembler.assemble(field)
        user_turn = Turn(role="user", content=user_text)
        messages = [SystemMessage(content=directive)] + self._history_messages(prior_turns + [user_turn])

        run.advance(SessionState.AWAITING_MODEL)
        result = call_provider(CHAT, lambda: chat_llm.invoke(messages))
        if not result.ok:
            run.advance(SessionState.FAILED)
            logger.error(f"[handle_chat] Error generating chat response: {result.error}")
            raise result.error

        run.advance(SessionState.DIRECTIVE_PARSING)
        parsed = parse(result.value, default_wants_image=generate_visual, default_wants_audio=generate_audio)

        run.advance(SessionState.AUGMENTING)
        assistant_turn = media.augment(
            Turn(role="assistant", content=parsed.advice),
            parsed.wants_image,
            parsed.wants_audio,
            parsed.image_prompt,
        )

        run.advance(SessionState.PERSISTING)
        outcome = self.store.merge(
            conversation_id,
            prior_turns + [user_turn, assistant_turn],
            identity,
            inferred_field=field,
        )
        self.store.save_legacy_item(
            LegacyHistoryItem(
                prompt=user_text,
                advice=assistant_turn.content,
                image_url=assistant_turn.image_url,
                audio_url=assistant_turn.audio_url,
                image_prompt=assistant_turn.image_prompt,
            ),
            identity,
        )
        run.advance(SessionState.IDLE)

        if outcome.step not in (None, FULL):
            logger.info(f"[handle_chat] history for {identity or 'anonymous'} stored at degradation step '{outcome.step}'")

        return {
            "advice": assistant_turn.content,
            "image_url": assistant_turn.image_url or "",
            "audio_url": assistant_turn.audio_url or "",
            "image_prompt": assistant_turn.image_prompt or "",
            "conversation_id": outcome.conversation_id,
            "turn_id": assistant_turn.id,
            "field": field or UNKNOWN_FIELD,
            "history_wiped": outcome.wiped,
            "storage_step": outcome.step,
        }

    # -----------------------
    # Conversation helpers
    # -----------------------

    def load_conversation(self, payload: dict) -> Conversation:
        conversation_id = self._payload_str(payload or {}, "conversation_id", "conversation_id is required")
        conversation = self.store.get(conversation_id, self.identity_provider())
        if conversation is None:
            raise ValidationError("Conversation not found.")
        return conversation

    def handle_generate_image(self, payload: dict) -> dict:
        """
        Generate an image for an existing assistant turn from the conversation so far
        and attach it to that turn.
        """
        payload = payload or {}
        turn_id = self._payload_str(payload, "turn_id", "turn_id is required")
        conversation = self.load_conversation(payload)

        idx = next((i for i, t in enumerate(conversation.turns) if t.id == turn_id), None)
        if idx is None:
            raise ValidationError("Message not found in conversation.")

        chat_llm, media = self._providers()

        context = "\n".join(t.content for t in conversation.turns[:idx + 1])
        messages = [
            SystemMessage(content=IMAGE_PROMPT_WRITER_PROMPT.strip()),
            HumanMessage(content=self.unsafe_string_format(IMAGE_PROMPT_WRITER_REQUEST, CONVERSATION_CONTEXT=context)),
        ]
        raw = call_provider(
            CHAT,
            lambda: chat_llm.invoke(messages, max_output_tokens=IMAGE_PROMPT_MAX_OUTPUT_TOKENS),
        ).unwrap()
        image_prompt = self.clean_triple_backticks(raw).strip()
        if not image_prompt:
            raise ProviderError(CHAT, "empty image prompt")

        image_url = media.generate_image(image_prompt).unwrap()
        if not image_url:
            raise ProviderError(IMAGE, "no image returned")

        self.store.update_turn_media(
            conversation.id,
            turn_id,
            self.identity_provider(),
            image_url=image_url,
            image_prompt=image_prompt,
        )
        return {"image_url": image_url, "image_prompt": image_prompt, "turn_id": turn_id}

    def handle_generate_advice(self, payload: dict) -> dict:
        """One-shot advice + image concept + narration, recorded in the legacy history."""
        prompt = self._payload_str(payload or {}, "prompt", "Prompt is required")

        chat_llm, media = self._providers()

        messages = [
            SystemMessage(content=self.unsafe_string_format(ONE_SHOT_ADVICE_PROMPT, IMAGE_CONCEPT_MARKER=IMAGE_CONCEPT_MARKER)),
            HumanMessage(content=prompt),
        ]
        raw = call_provider(
            CHAT,
            lambda: chat_llm.invoke(messages, max_output_tokens=ONE_SHOT_MAX_OUTPUT_TOKENS),
        ).unwrap()
        advice, image_prompt = parse_image_concept(raw)

        image_result = media.generate_image(image_prompt, style_suffix=ONE_SHOT_IMAGE_STYLE, joiner=" - ")
        audio_result = media.generate_audio(advice)
        turn = media.apply_results(Turn(role="assistant", content=advice), image_prompt, image_result, audio_result)

        identity = self.identity_provider()
        self.store.save_legacy_item(
            LegacyHistoryItem(
                prompt=prompt,
                advice=advice,
                image_url=turn.image_url,
                audio_url=turn.audio_url,
                image_prompt=image_prompt,
            ),
            identity,
        )
        return {
            "advice": advice,
            "image_url": turn.image_url or "",
            "audio_url": turn.audio_url or "",
            "image_prompt": image_prompt,
        }
