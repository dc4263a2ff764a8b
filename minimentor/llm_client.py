import base64
import logging
import traceback
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

from openai import OpenAI
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from minimentor.errors import ProviderError

T = TypeVar("T")

logger = logging.getLogger("minimentor")

CHAT = "chat"
IMAGE = "image"
SPEECH = "speech"


@dataclass
class ProviderResult(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[ProviderError] = None

    def unwrap(self) -> T:
        if not self.ok:
            raise self.error
        return self.value


def call_provider(kind: str, fn: Callable[[], T]) -> ProviderResult[T]:
    """
    Run a single provider call, no retries. Failures are captured into the
    result; the caller decides whether they are fatal.
    """
    try:
        return ProviderResult(ok=True, value=fn())
    except ProviderError as e:
        logger.debug("%s provider call failed:\n%s", kind, traceback.format_exc())
        return ProviderResult(ok=False, error=e)
    except Exception as e:
        logger.debug("%s provider call failed:\n%s", kind, traceback.format_exc())
        return ProviderResult(ok=False, error=ProviderError(kind, str(e) or e.__class__.__name__))


def build_openai_client(api_key: str, timeout: float | None = None) -> OpenAI:
    client_kwargs: Dict[str, Any] = {"api_key": api_key, "max_retries": 0}
    if timeout is not None:
        client_kwargs["timeout"] = timeout
    return OpenAI(**client_kwargs)


class BaseLlmClient:
    """
    Token usage accounting shared by the chat calls.
    """

    last_usage: Optional[Dict[str, int]]

    def _merge_usage(self, resp: Any) -> None:
        if resp is None:
            return
        usage = getattr(resp, "usage", None)
        if usage is None:
            return
        inc = {k: getattr(usage, k, 0) or 0 for k in ("input_tokens", "output_tokens", "total_tokens")}
        if self.last_usage is None:
            self.last_usage = inc
            return
        for k, v in inc.items():
            self.last_usage[k] = (self.last_usage.get(k, 0) or 0) + (v or 0)


class ChatLlmClient(BaseLlmClient):
    """
    Minimal wrapper for chat-style use:

        text = chat_llm.invoke([SystemMessage(...), HumanMessage(...), AIMessage(...), ...])

    Under the hood: OpenAI Responses API with input=[{role, content}, ...]
    """

    def __init__(self, client: Any, model_name: str, max_output_tokens: int = 800):
        self._client = client
        self.model_name = model_name
        self.max_output_tokens = max_output_tokens
        self.last_usage: Optional[Dict[str, int]] = None

    def _to_openai_messages(self, messages: List[BaseMessage]) -> List[Dict[str, str]]:
        out: List[Dict[str, str]] = []
        for m in messages:
            if isinstance(m, SystemMessage):
                role = "system"
            elif isinstance(m, HumanMessage):
                role = "user"
            elif isinstance(m, AIMessage):
                role = "assistant"
            else:
                role = "user"
            out.append({"role": role, "content": str(m.content)})
        return out

    def invoke(self, messages: List[BaseMessage], *, max_output_tokens: int | None = None) -> str:
        """
        Single HTTP call, no retries/backoff.
        """
        resp = self._client.responses.create(
            model=self.model_name,
            input=self._to_openai_messages(messages),
            max_output_tokens=max_output_tokens or self.max_output_tokens,
        )
        self._merge_usage(resp)

        text = getattr(resp, "output_text", "") or ""
        return text.strip()


class ImageClient:
    def __init__(self, client: Any, model_name: str = "dall-e-3", size: str = "1024x1024"):
        self._client = client
        self.model_name = model_name
        self.size = size

    def generate(self, prompt: str) -> Optional[str]:
        """Returns the image URL, or None when the provider returned no image."""
        resp = self._client.images.generate(
            model=self.model_name,
            prompt=prompt,
            n=1,
            size=self.size,
        )
        data = getattr(resp, "data", None) or []
        if not data:
            return None
        return getattr(data[0], "url", None) or None


class SpeechClient:
    def __init__(self, client: Any, model_name: str = "tts-1", voice: str = "nova", max_input_chars: int = 4000):
        self._client = client
        self.model_name = model_name
        self.voice = voice
        self.max_input_chars = max_input_chars

    def synthesize(self, text: str) -> bytes:
        resp = self._client.audio.speech.create(
            model=self.model_name,
            voice=self.voice,
            input=text[:self.max_input_chars],
        )
        return resp.content

    def synthesize_data_uri(self, text: str) -> str:
        audio = self.synthesize(text)
        return "data:audio/mp3;base64," + base64.b64encode(audio).decode("ascii")
