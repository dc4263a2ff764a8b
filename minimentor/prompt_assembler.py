# minimentor/prompt_assembler.py

from typing import Optional

from minimentor.base_utils import BaseUtils
from minimentor.chat_prompts import (
    KNOWN_FIELD_INSTRUCTION,
    MENTOR_PROMPT,
    UNKNOWN_FIELD_INSTRUCTION,
)
from minimentor.directive_parser import AUDIO_MARKER, VISUAL_MARKER


class PromptAssembler(BaseUtils):
    """Builds the system directive for a chat turn. Deterministic, no I/O."""

    def field_instruction(self, prior_field: Optional[str]) -> str:
        if prior_field:
            return self.unsafe_string_format(KNOWN_FIELD_INSTRUCTION, FIELD=prior_field)
        return UNKNOWN_FIELD_INSTRUCTION

    def assemble(self, prior_field: Optional[str] = None) -> str:
        return self.unsafe_string_format(
            MENTOR_PROMPT,
            FIELD_INSTRUCTION=self.field_instruction(prior_field),
            VISUAL_MARKER=VISUAL_MARKER,
            AUDIO_MARKER=AUDIO_MARKER,
        ).strip()
