# minimentor/media_augmenter.py

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from minimentor.conversation_models import Turn
from minimentor.llm_client import IMAGE, SPEECH, ImageClient, ProviderResult, SpeechClient, call_provider

logger = logging.getLogger("minimentor")

IMAGE_STYLE_SUFFIX = "Make it a professional infographic style, clean design, suitable for career advice."
SPEECH_MAX_INPUT_CHARS = 4000


class MediaAugmenter:
    """
    Attaches an image and/or narration to an assistant turn.

    Image and speech failures are logged and leave the field empty; they never
    fail the turn. With `parallel` the two calls run in threads at the same
    time and neither cancels the other.
    """

    def __init__(
        self,
        image_client: ImageClient | None,
        speech_client: SpeechClient | None,
        *,
        parallel: bool = True,
        max_speech_chars: int = SPEECH_MAX_INPUT_CHARS,
    ):
        self.image_client = image_client
        self.speech_client = speech_client
        self.parallel = parallel
        self.max_speech_chars = max_speech_chars

    def build_image_prompt(self, image_prompt: str, style_suffix: str = IMAGE_STYLE_SUFFIX, joiner: str = ". ") -> str:
        return f"{image_prompt.strip().rstrip('.')}{joiner}{style_suffix}"

    def generate_image(
        self,
        image_prompt: str,
        style_suffix: str = IMAGE_STYLE_SUFFIX,
        joiner: str = ". ",
    ) -> ProviderResult[Optional[str]]:
        if self.image_client is None:
            return call_provider(IMAGE, self._missing_client(IMAGE))
        prompt = self.build_image_prompt(image_prompt, style_suffix, joiner)
        return call_provider(IMAGE, lambda: self.image_client.generate(prompt))

    def generate_audio(self, text: str) -> ProviderResult[str]:
        if self.speech_client is None:
            return call_provider(SPEECH, self._missing_client(SPEECH))
        capped = text[:self.max_speech_chars]
        return call_provider(SPEECH, lambda: self.speech_client.synthesize_data_uri(capped))

    def _missing_client(self, kind: str):
        def _raise():
            raise RuntimeError(f"no {kind} client configured")
        return _raise

    async def augment_async(
        self,
        turn: Turn,
        wants_image: bool,
        wants_audio: bool,
        image_prompt: Optional[str],
    ) -> Turn:
        do_image = bool(wants_image and image_prompt)

        image_task = asyncio.to_thread(self.generate_image, image_prompt) if do_image else None
        audio_task = asyncio.to_thread(self.generate_audio, turn.content) if wants_audio else None

        # each step already captures its own failure, so gather never raises here
        tasks = [t for t in (image_task, audio_task) if t is not None]
        results = await asyncio.gather(*tasks)

        image_result = results.pop(0) if do_image else None
        audio_result = results.pop(0) if wants_audio else None
        return self.apply_results(turn, image_prompt, image_result, audio_result)

    def augment(
        self,
        turn: Turn,
        wants_image: bool,
        wants_audio: bool,
        image_prompt: Optional[str],
    ) -> Turn:
        do_image = bool(wants_image and image_prompt)
        if not do_image and not wants_audio:
            return self.apply_results(turn, image_prompt, None, None)

        if self.parallel:
            try:
                asyncio.get_running_loop()
            except RuntimeError:
                return asyncio.run(self.augment_async(turn, wants_image, wants_audio, image_prompt))
            return self._augment_in_pool(turn, do_image, wants_audio, image_prompt)

        image_result = self.generate_image(image_prompt) if do_image else None
        audio_result = self.generate_audio(turn.content) if wants_audio else None
        return self.apply_results(turn, image_prompt, image_result, audio_result)

    def _augment_in_pool(self, turn: Turn, do_image: bool, wants_audio: bool, image_prompt: Optional[str]) -> Turn:
        # called from inside a running event loop, where asyncio.run is not allowed
        with ThreadPoolExecutor(max_workers=2) as pool:
            image_future = pool.submit(self.generate_image, image_prompt) if do_image else None
            audio_future = pool.submit(self.generate_audio, turn.content) if wants_audio else None
            image_result = image_future.result() if image_future else None
            audio_result = audio_future.result() if audio_future else None
        return self.apply_results(turn, image_prompt, image_result, audio_result)

    def apply_results(
        self,
        turn: Turn,
        image_prompt: Optional[str],
        image_result: ProviderResult | None,
        audio_result: ProviderResult | None,
    ) -> Turn:
        update = {}
        if image_prompt:
            update["image_prompt"] = image_prompt

        if image_result is not None:
            if image_result.ok and image_result.value:
                update["image_url"] = image_result.value
            elif not image_result.ok:
                logger.warning("Error generating image: %s", image_result.error)

        if audio_result is not None:
            if audio_result.ok and audio_result.value:
                update["audio_url"] = audio_result.value
            elif not audio_result.ok:
                logger.warning("Error generating audio: %s", audio_result.error)

        return turn.model_copy(update=update) if update else turn
