# minimentor/directive_parser.py
"""
Separates the advice text from the out-of-band directives a model may append
to its reply:

    VISUAL: <description of an image>
    AUDIO: true

Either directive may be missing, they may come in any order and the amount of
whitespace around them is not significant.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

VISUAL_MARKER = "VISUAL:"
AUDIO_MARKER = "AUDIO: true"
IMAGE_CONCEPT_MARKER = "IMAGE CONCEPT:"

DEFAULT_IMAGE_CONCEPT = "A professional office setting with motivational atmosphere"

_VISUAL_RE = re.compile(r"VISUAL[ \t]*:")
# an AUDIO directive occupies its own line; the whole line is stripped, only a true value requests audio
_AUDIO_RE = re.compile(r"^[ \t]*AUDIO[ \t]*:[ \t]*(\w*)[^\n]*", re.MULTILINE)
_IMAGE_CONCEPT_RE = re.compile(r"IMAGE[ \t]+CONCEPT[ \t]*:")


@dataclass(frozen=True)
class ParsedReply:
    advice: str
    image_prompt: Optional[str]
    wants_image: bool
    wants_audio: bool


def _requests_audio(text: str) -> bool:
    return any(m.group(1).lower() == "true" for m in _AUDIO_RE.finditer(text))


def parse(
    raw_model_output: str | None,
    default_wants_image: bool = False,
    default_wants_audio: bool = False,
) -> ParsedReply:
    text = raw_model_output or ""
    wants_image = default_wants_image
    wants_audio = default_wants_audio or _requests_audio(text)
    image_prompt = None

    visual = _VISUAL_RE.search(text)
    if visual:
        advice_part = text[:visual.start()]
        prompt_part = text[visual.end():]
        audio_after = _AUDIO_RE.search(prompt_part)
        if audio_after:
            prompt_part = prompt_part[:audio_after.start()]
        image_prompt = prompt_part.strip() or None
        wants_image = True
    else:
        advice_part = text

    advice = _AUDIO_RE.sub("", advice_part).strip()
    return ParsedReply(
        advice=advice,
        image_prompt=image_prompt,
        wants_image=wants_image,
        wants_audio=wants_audio,
    )


def parse_image_concept(raw_model_output: str | None) -> tuple[str, str]:
    """Split one-shot advice output into (advice, image concept)."""
    text = raw_model_output or ""
    match = _IMAGE_CONCEPT_RE.search(text)
    if not match:
        return text.strip(), DEFAULT_IMAGE_CONCEPT
    concept = text[match.end():].strip()
    return text[:match.start()].strip(), concept or DEFAULT_IMAGE_CONCEPT
