"""Dream recording pipeline.

Wires the analysis provider, the response parser, an optional image
provider and a record store together.  All collaborators are passed in,
so the pipeline runs against fakes in tests and against hosted services
in production without module-level clients.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Protocol, runtime_checkable

from dream_stats import build_dashboard_payload
from response_parser import IMAGE_NEGATIVE_PROMPT, build_image_prompt, parse_analysis
from store import RecordStore

logger = logging.getLogger(__name__)

MIN_INPUT_LENGTH = 3

ANALYSIS_OPTIONS: dict[str, Any] = {
    "temperature": 0.7,
    "max_tokens": 1000,
}
IMAGE_OPTIONS: dict[str, Any] = {
    "aspect_ratio": "1:1",
    "guidance": 8,
    "negative_prompt": IMAGE_NEGATIVE_PROMPT,
}
TRANSCRIPTION_OPTIONS: dict[str, Any] = {
    "task": "transcribe",
    "chunk_level": "none",
    "version": "3",
    "batch_size": 64,
}


class AnalysisError(RuntimeError):
    """The analysis provider failed to return a reply."""


class ImageGenerationError(RuntimeError):
    """The image provider failed to return an image URL."""


class TranscriptionError(RuntimeError):
    """The transcription provider failed to turn a recording into text."""


@runtime_checkable
class AnalysisProvider(Protocol):
    def analyze(self, text: str, **options: Any) -> str:
        """Submit free text and return the model's raw reply."""
        ...


@runtime_checkable
class ImageProvider(Protocol):
    def generate(self, prompt: str, **options: Any) -> str:
        """Render *prompt* and return the image URL."""
        ...


@runtime_checkable
class TranscriptionProvider(Protocol):
    def transcribe(self, audio_path: str, **options: Any) -> str:
        """Return the spoken text of the recording at *audio_path*."""
        ...


class DreamJournal:
    """Record, list, delete and summarise dreams for the calling application.

    Args:
        store: Where records are persisted.
        analyzer: Produces the labelled analysis reply for a dream text.
        image_generator: Optional; when omitted records get an empty
            ``media_url``.
        transcriber: Optional; needed only by ``record_voice_dream``.
    """

    def __init__(
        self,
        store: RecordStore,
        analyzer: AnalysisProvider,
        image_generator: ImageProvider | None = None,
        transcriber: TranscriptionProvider | None = None,
    ) -> None:
        self.store = store
        self.analyzer = analyzer
        self.image_generator = image_generator
        self.transcriber = transcriber

    def transcribe(self, audio_path: str, language: str | None = None) -> str:
        """Turn a voice recording into dream text.

        Args:
            audio_path: Path or URI of the recording.
            language: Optional language hint passed to the provider.

        Returns:
            The transcribed text, stripped.

        Raises:
            TranscriptionError: If no transcriber is configured, the
                provider fails, or it returns no text.
        """
        if self.transcriber is None:
            raise TranscriptionError("No transcription provider configured")
        if not audio_path:
            raise TranscriptionError("No recording available to transcribe")

        options = dict(TRANSCRIPTION_OPTIONS)
        if language:
            options["language"] = language
        try:
            text = self.transcriber.transcribe(audio_path, **options)
        except Exception as e:
            logger.exception("Transcription of %s failed", audio_path)
            raise TranscriptionError(f"Transcription failed: {e}") from e
        if not isinstance(text, str) or not text.strip():
            raise TranscriptionError("Transcription failed: provider returned no text")
        return text.strip()

    def record_voice_dream(
        self,
        audio_path: str,
        owner_id: str | None = None,
        rating: int | None = None,
        language: str | None = None,
    ) -> str:
        """Transcribe a recording, then record it like typed text.

        Raises:
            TranscriptionError: If transcription fails.
            ValueError, AnalysisError, ImageGenerationError: As for
                ``record_dream``.
        """
        text = self.transcribe(audio_path, language=language)
        logger.info("Transcribed %s (%d chars)", audio_path, len(text))
        return self.record_dream(text, owner_id=owner_id, rating=rating)

    def record_dream(
        self,
        text: str,
        owner_id: str | None = None,
        rating: int | None = None,
    ) -> str:
        """Analyse *text*, illustrate it and persist the resulting record.

        Args:
            text: The dream as typed or transcribed by the user.
            owner_id: Owning user, or None for a guest record.
            rating: Vividness rating; the record default applies when None.

        Returns:
            The id of the new record.

        Raises:
            ValueError: If *text* is shorter than ``MIN_INPUT_LENGTH``.
            AnalysisError: If the analysis provider fails.
            ImageGenerationError: If the image provider fails.
        """
        if not isinstance(text, str) or len(text.strip()) < MIN_INPUT_LENGTH:
            raise ValueError(f"Dream text must be at least {MIN_INPUT_LENGTH} characters")
        text = text.strip()

        try:
            reply = self.analyzer.analyze(text, **ANALYSIS_OPTIONS)
        except Exception as e:
            logger.exception("Dream analysis failed")
            raise AnalysisError(f"Dream analysis failed: {e}") from e
        if not reply:
            raise AnalysisError("Dream analysis failed: provider returned no output")

        parsed = parse_analysis(reply, original_input=text)

        media_url = ""
        if self.image_generator is not None:
            prompt = build_image_prompt(parsed, original_input=text)
            try:
                media_url = self.image_generator.generate(prompt, **IMAGE_OPTIONS)
            except Exception as e:
                logger.exception("Image generation failed")
                raise ImageGenerationError(f"Image generation failed: {e}") from e
            if not media_url:
                raise ImageGenerationError("Image generation failed: provider returned no URL")

        return self.store.create(
            owner_id,
            {
                "title": parsed["title"],
                "narrative": parsed["narrative"] or text,
                "raw_input": text,
                "media_url": media_url,
                "category_tags": parsed["categories"],
                "mood_tags": parsed["moods"],
                "rating": rating,
                "interpretation": parsed["interpretation"],
            },
        )

    def list_dreams(self, owner_id: str | None = None) -> list[dict]:
        return self.store.list(owner_id)

    def delete_dream(self, record_id: str) -> None:
        self.store.delete(record_id)

    def stats(
        self,
        owner_id: str | None = None,
        period: str = "week",
        reference_date: date | datetime | str | None = None,
    ) -> dict[str, Any]:
        """Dashboard payload for the records visible to *owner_id*."""
        return build_dashboard_payload(self.store.list(owner_id), period, reference_date)
