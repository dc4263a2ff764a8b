import pytest

from minimentor.conversation_store import ConversationStore
from minimentor.kv_store import InMemoryKeyValueStore
from minimentor.settings import MentorSettings


class FakeChatLlm:
    def __init__(self, replies=None, error=None):
        self.replies = list(replies or [])
        self.error = error
        self.calls = []

    def invoke(self, messages, *, max_output_tokens=None):
        self.calls.append({"messages": list(messages), "max_output_tokens": max_output_tokens})
        if self.error is not None:
            raise self.error
        if not self.replies:
            return "Tell me more about your situation."
        return self.replies.pop(0)


class FakeImageClient:
    def __init__(self, url="https://images.example/img-1.png", error=None):
        self.url = url
        self.error = error
        self.prompts = []

    def generate(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.url


class FakeSpeechClient:
    def __init__(self, error=None):
        self.error = error
        self.texts = []

    def synthesize_data_uri(self, text):
        self.texts.append(text)
        if self.error is not None:
            raise self.error
        return "data:audio/mp3;base64,QUJD"


@pytest.fixture
def kv():
    return InMemoryKeyValueStore()


@pytest.fixture
def store(kv):
    return ConversationStore(kv)


@pytest.fixture
def settings():
    return MentorSettings(
        OPENAI_API_KEY="sk-test",
        GENERATE_VISUAL=False,
        GENERATE_AUDIO=False,
        MEDIA_PARALLEL=False,
    )


@pytest.fixture
def chat_llm():
    return FakeChatLlm()


@pytest.fixture
def image_client():
    return FakeImageClient()


@pytest.fixture
def speech_client():
    return FakeSpeechClient()
