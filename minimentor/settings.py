# minimentor/settings.py

import os

from dotenv import load_dotenv

from minimentor.errors import ConfigurationError

load_dotenv()


def parse_bool(raw, default: bool) -> bool:
    """Booleans pass through; strings such as "true" or "off" are parsed; anything else is the default."""
    if isinstance(raw, bool):
        return raw
    if not isinstance(raw, str) or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_bool(name: str, default: bool) -> bool:
    return parse_bool(os.getenv(name), default)


class MentorSettings:
    def __init__(self, **overrides) -> None:
        # ---- provider credentials / models ----
        self.OPENAI_API_KEY         = os.getenv("OPENAI_API_KEY", "")
        self.CHAT_MODEL             = os.getenv("CHAT_MODEL", "gpt-4o")
        self.CHAT_MAX_OUTPUT_TOKENS = int(os.getenv("CHAT_MAX_OUTPUT_TOKENS", "800"))
        self.IMAGE_MODEL            = os.getenv("IMAGE_MODEL", "dall-e-3")
        self.IMAGE_SIZE             = os.getenv("IMAGE_SIZE", "1024x1024")
        self.TTS_MODEL              = os.getenv("TTS_MODEL", "tts-1")
        self.TTS_VOICE              = os.getenv("TTS_VOICE", "nova")
        self.TTS_MAX_INPUT_CHARS    = int(os.getenv("TTS_MAX_INPUT_CHARS", "4000"))
        self.PROVIDER_TIMEOUT       = float(os.getenv("PROVIDER_TIMEOUT", "60"))

        # ---- media defaults (the model may still ask for media on its own) ----
        self.GENERATE_VISUAL        = _env_bool("GENERATE_VISUAL", False)
        self.GENERATE_AUDIO         = _env_bool("GENERATE_AUDIO", False)
        self.MEDIA_PARALLEL         = _env_bool("MEDIA_PARALLEL", True)

        # ---- storage ----
        self.STORAGE_QUOTA_BYTES    = int(os.getenv("STORAGE_QUOTA_BYTES", "5000000"))
        self.DATABASE_URL           = os.getenv("DATABASE_URL", "sqlite:///minimentor.db")

        for key, value in overrides.items():
            if not hasattr(self, key):
                raise ConfigurationError(f"Unknown setting: {key}")
            setattr(self, key, value)

    def require_api_key(self) -> str:
        if not self.OPENAI_API_KEY:
            raise ConfigurationError(
                "OpenAI API key is not configured. Please set the OPENAI_API_KEY environment variable."
            )
        return self.OPENAI_API_KEY
