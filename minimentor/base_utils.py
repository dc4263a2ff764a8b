# minimentor/base_utils.py

import logging
import os
import re


logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s | %(levelname)s | %(name)s\n%(message)s\n"
)

logger = logging.getLogger("minimentor")

_PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")
_FENCE_RE = re.compile(r"```[a-zA-Z]*\n?")


class BaseUtils():

    def clean_triple_backticks(self, text: str) -> str:
        return _FENCE_RE.sub("", text)

    def unsafe_string_format(self, template: str, **values) -> str:
        """
        Fill `{NAME}` placeholders from `values` only. Any other brace group is
        left untouched, so prompt text may contain literal JSON or markdown.
        """
        unresolved = set()

        def _fill(match):
            name = match.group(1)
            if name not in values:
                unresolved.add(name)
                return match.group(0)
            return str(values[name])

        result = _PLACEHOLDER_RE.sub(_fill, template)
        if unresolved:
            logger.debug("Placeholders left unresolved: %s", ", ".join(sorted(unresolved)))
        return result
