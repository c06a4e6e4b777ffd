"""High-level orchestration for document translation."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .chunker import Chunker
from .clients import TranslationClient, is_passthrough
from .errors import ChunkIssue, ErrorCategory, TranslationCallFailed
from .handlers import RunRedistribution, create_handler
from .reconstructor import fallback, reconcile
from .router import RoutingDecision, route
from .structures import (
    Chunk,
    DocumentFormat,
    OutputDocument,
    PipelineStage,
    ProcessingMode,
    SizeCategory,
    SourceDocument,
    TranslatedSegment,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]

TRANSLATION_START = 25
TRANSLATION_END = 85

_TRANSITIONS: Dict[PipelineStage, frozenset] = {
    PipelineStage.IDLE: frozenset({PipelineStage.EXTRACTING}),
    PipelineStage.EXTRACTING: frozenset({PipelineStage.CHUNKING}),
    PipelineStage.CHUNKING: frozenset({PipelineStage.TRANSLATING}),
    PipelineStage.TRANSLATING: frozenset({PipelineStage.RECONSTRUCTING}),
    PipelineStage.RECONSTRUCTING: frozenset({PipelineStage.REBUILDING}),
    PipelineStage.REBUILDING: frozenset({PipelineStage.DONE}),
    PipelineStage.DONE: frozenset(),
    PipelineStage.FAILED: frozenset(),
}


@dataclass
class TranslatorOptions:
    """Tunable knobs for one :class:`DocumentTranslator`."""

    max_chunk_segments: int = 50
    max_chunk_characters: int = 5000
    whole_document_characters: int = 50000
    max_workers: int = 1
    strategy: Optional[str] = None
    record_attributes: bool = False
    redistribution: RunRedistribution = RunRedistribution.FIRST_RUN
    pdf_as_text: bool = False

    @classmethod
    def from_settings(cls, settings: Any, **overrides: Any) -> "TranslatorOptions":
        """Build options from a validated configuration model.

        Keyword overrides that are ``None`` are ignored, so CLI flags can be
        passed through unconditionally.
        """

        values: Dict[str, Any] = {
            "max_chunk_segments": getattr(settings, "DOCBRIDGE_MAX_CHUNK_SEGMENTS", 50),
            "max_chunk_characters": getattr(settings, "DOCBRIDGE_MAX_CHUNK_CHARACTERS", 5000),
            "whole_document_characters": getattr(
                settings, "DOCBRIDGE_WHOLE_DOCUMENT_CHARACTERS", 50000
            ),
            "max_workers": getattr(settings, "DOCBRIDGE_MAX_WORKERS", 1),
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)


class ProgressTracker:
    """Per-request stage machine and progress reporter.

    Percentages never go backwards and stay within 0-100.
    """

    def __init__(self, callback: Optional[ProgressCallback] = None) -> None:
        self.callback = callback
        self.stage = PipelineStage.IDLE
        self.percentage = 0

    def report(self, percentage: float, message: str) -> None:
        value = max(self.percentage, min(100, max(0, int(percentage))))
        self.percentage = value
        if self.callback is not None:
            self.callback(value, message)

    def advance(self, stage: PipelineStage, percentage: float, message: str) -> None:
        if stage not in _TRANSITIONS[self.stage]:
            raise RuntimeError(
                f"Illegal pipeline transition {self.stage.name} -> {stage.name}."
            )
        self.stage = stage
        self.report(percentage, message)

    def fail(self) -> None:
        if self.stage is not PipelineStage.DONE:
            self.stage = PipelineStage.FAILED


@dataclass
class TranslationReport:
    """Report returned after processing a document."""

    format: DocumentFormat
    strategy: str
    mode: ProcessingMode
    size_category: SizeCategory
    estimated_seconds: int
    total_segments: int = 0
    translated_segments: int = 0
    passthrough_segments: int = 0
    fallback_segments: int = 0
    total_chunks: int = 0
    degraded_chunks: int = 0
    failed_chunks: int = 0
    elapsed_seconds: float = 0.0
    issues: List[ChunkIssue] = field(default_factory=list)
    stage: PipelineStage = PipelineStage.IDLE

    @property
    def partially_translated(self) -> bool:
        return self.fallback_segments > 0

    @property
    def error_messages(self) -> List[str]:
        return [issue.message for issue in self.issues]


@dataclass
class TranslationResult:
    output: OutputDocument
    report: TranslationReport


@dataclass
class _ChunkOutcome:
    chunk_index: int
    translations: List[TranslatedSegment]
    issue: Optional[ChunkIssue] = None


class DocumentTranslator:
    """Coordinates routing, extraction, translation and reinsertion.

    The client is injected and shared by every chunk of a request. A
    translator holds no per-request state, so one instance can serve many
    documents.
    """

    def __init__(
        self,
        client: TranslationClient,
        options: Optional[TranslatorOptions] = None,
    ) -> None:
        self.client = client
        self.options = options or TranslatorOptions()

    def translate(
        self,
        document: SourceDocument,
        source_language: Optional[str],
        target_language: str,
        progress: Optional[ProgressCallback] = None,
    ) -> TranslationResult:
        start_time = time.time()
        tracker = ProgressTracker(progress)
        try:
            tracker.report(5, "Routing document")
            decision = route(document, self.options.strategy)
            report = TranslationReport(
                format=decision.format,
                strategy=decision.strategy,
                mode=decision.mode,
                size_category=decision.size_category,
                estimated_seconds=decision.estimated_seconds,
            )
            output = self._run(
                document,
                decision,
                report,
                tracker,
                source_language=source_language,
                target_language=target_language,
            )
        except Exception as exc:
            logger.error("Translation failed during %s: %s", tracker.stage.name.lower(), exc)
            tracker.fail()
            raise

        report.stage = tracker.stage
        report.elapsed_seconds = time.time() - start_time
        logger.info(
            "Translated %d of %d segments in %.2fs (%d chunks, %d degraded, %d failed).",
            report.translated_segments,
            report.total_segments,
            report.elapsed_seconds,
            report.total_chunks,
            report.degraded_chunks,
            report.failed_chunks,
        )
        return TranslationResult(output=output, report=report)

    def _budgets(self, decision: RoutingDecision) -> tuple:
        if decision.mode is ProcessingMode.CHUNKED:
            return self.options.max_chunk_segments, self.options.max_chunk_characters
        return None, self.options.whole_document_characters

    def _run(
        self,
        document: SourceDocument,
        decision: RoutingDecision,
        report: TranslationReport,
        tracker: ProgressTracker,
        *,
        source_language: Optional[str],
        target_language: str,
    ) -> OutputDocument:
        max_segments, max_characters = self._budgets(decision)

        tracker.advance(PipelineStage.EXTRACTING, 10, "Extracting text")
        handler = create_handler(
            decision.strategy,
            document,
            decision.format,
            record_attributes=self.options.record_attributes,
            segment_budget=max_characters,
            redistribution=self.options.redistribution,
            text_output=self.options.pdf_as_text,
        )
        extraction = handler.extract()
        report.total_segments = len(extraction.segments)

        tracker.advance(PipelineStage.CHUNKING, 20, "Preparing translation batches")
        chunks = Chunker(max_segments=max_segments, max_characters=max_characters).chunk(
            extraction.segments
        )
        report.total_chunks = len(chunks)
        logger.info(
            "Prepared %d segments in %d chunks.", len(extraction.segments), len(chunks)
        )

        tracker.advance(PipelineStage.TRANSLATING, TRANSLATION_START, "Translating")
        outcomes = self._translate_chunks(
            chunks,
            extraction.delimiter,
            tracker,
            source_language=source_language,
            target_language=target_language,
        )

        tracker.advance(PipelineStage.RECONSTRUCTING, 90, "Reassembling translations")
        translations: Dict[int, str] = {}
        for outcome in outcomes:
            if outcome.issue is not None:
                report.issues.append(outcome.issue)
                if outcome.issue.category is ErrorCategory.TRANSLATION:
                    report.failed_chunks += 1
                else:
                    report.degraded_chunks += 1
            for item in outcome.translations:
                if item.source == "translated":
                    report.translated_segments += 1
                    translations[item.index] = item.text
                elif item.source == "passthrough":
                    report.passthrough_segments += 1
                else:
                    report.fallback_segments += 1

        tracker.advance(PipelineStage.REBUILDING, 95, "Rebuilding document")
        output = handler.rebuild(translations)

        tracker.advance(PipelineStage.DONE, 100, "Done")
        return output

    def _translate_chunks(
        self,
        chunks: List[Chunk],
        delimiter: str,
        tracker: ProgressTracker,
        *,
        source_language: Optional[str],
        target_language: str,
    ) -> List[_ChunkOutcome]:
        total = len(chunks)
        results: Dict[int, _ChunkOutcome] = {}

        def completed(outcome: _ChunkOutcome) -> None:
            results[outcome.chunk_index] = outcome
            span = TRANSLATION_END - TRANSLATION_START
            tracker.report(
                TRANSLATION_START + span * len(results) / total,
                f"Translated chunk {len(results)} of {total}",
            )

        def work(chunk: Chunk) -> _ChunkOutcome:
            return self._translate_chunk(
                chunk,
                delimiter,
                source_language=source_language,
                target_language=target_language,
            )

        if self.options.max_workers > 1 and total > 1:
            with ThreadPoolExecutor(max_workers=self.options.max_workers) as executor:
                futures = [executor.submit(work, chunk) for chunk in chunks]
                for future in as_completed(futures):
                    completed(future.result())
        else:
            for chunk in chunks:
                completed(work(chunk))

        return [results[chunk.index] for chunk in chunks]

    def _translate_chunk(
        self,
        chunk: Chunk,
        delimiter: str,
        *,
        source_language: Optional[str],
        target_language: str,
    ) -> _ChunkOutcome:
        passthrough = [
            TranslatedSegment(index=segment.index, text=segment.text, source="passthrough")
            for segment in chunk.segments
            if is_passthrough(segment.text)
        ]
        pending = [segment for segment in chunk.segments if not is_passthrough(segment.text)]
        if not pending:
            return _ChunkOutcome(chunk_index=chunk.index, translations=passthrough)

        batch_text = chunk.batch_text(delimiter, pending)
        try:
            response = self.client.translate(batch_text, source_language, target_language)
        except (TranslationCallFailed, TimeoutError) as exc:
            logger.warning("Chunk %d failed; keeping original text: %s", chunk.index, exc)
            return _ChunkOutcome(
                chunk_index=chunk.index,
                translations=_in_order(passthrough + fallback(pending)),
                issue=ChunkIssue(
                    category=ErrorCategory.TRANSLATION,
                    chunk_index=chunk.index,
                    message=f"Chunk {chunk.index} could not be translated; kept original text.",
                    fallback_indices=tuple(segment.index for segment in pending),
                    details=str(exc),
                ),
            )

        reconciliation = reconcile(chunk.index, pending, response, delimiter)
        issue = None
        degraded = reconciliation.degraded
        if degraded is not None:
            logger.warning("%s", degraded)
            issue = ChunkIssue(
                category=ErrorCategory.DEGRADED,
                chunk_index=chunk.index,
                message=str(degraded),
                fallback_indices=degraded.fallback_indices,
                details=f"expected {degraded.expected}, received {degraded.received}",
            )
        return _ChunkOutcome(
            chunk_index=chunk.index,
            translations=_in_order(passthrough + reconciliation.translations),
            issue=issue,
        )


def _in_order(translations: List[TranslatedSegment]) -> List[TranslatedSegment]:
    return sorted(translations, key=lambda item: item.index)
