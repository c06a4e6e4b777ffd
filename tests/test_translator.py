"""End-to-end tests for the translation pipeline."""

import io
import threading
import time
import zipfile
from types import SimpleNamespace

import pytest
from docx import Document
from lxml import etree

from conftest import SCENARIO_A_SPANISH, make_docx
from docbridge.clients import CallableTranslationClient, EchoTranslationClient
from docbridge.errors import (
    ErrorCategory,
    InvalidContainer,
    TranslationCallFailed,
    UnsupportedFormat,
)
from docbridge.router import MB
from docbridge.structures import PipelineStage, ProcessingMode, SourceDocument
from docbridge.translator import (
    DocumentTranslator,
    ProgressTracker,
    TranslatorOptions,
)


def docx_source(data):
    return SourceDocument(data=data, format_tag="docx")


def text_source(paragraphs, size=-1):
    data = "\n\n".join(paragraphs).encode("utf-8")
    return SourceDocument(data=data, format_tag="text/plain", size=size)


def recording_client(transform=lambda text: text):
    calls = []

    def translate(text, source, target):
        calls.append(text)
        return transform(text)

    return CallableTranslationClient(translate), calls


def zip_entries(data):
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        return {info.filename: archive.read(info) for info in archive.infolist()}


def canonical(xml_bytes):
    return etree.tostring(etree.fromstring(xml_bytes), method="c14n")


class TestScenarioA:
    def test_spanish_translation_keeps_bold(self):
        data = make_docx(footer=None)
        client, calls = recording_client(lambda text: SCENARIO_A_SPANISH)

        result = DocumentTranslator(client).translate(docx_source(data), "en", "es")

        assert calls == ["§Hello World§This is a test§Testing document translation"]
        paragraphs = Document(io.BytesIO(result.output.data)).paragraphs
        assert [p.text for p in paragraphs] == [
            "Hola Mundo",
            "Esta es una prueba",
            "Probando traducción de documentos",
        ]
        assert paragraphs[1].runs[0].bold is True
        assert paragraphs[0].runs[0].bold is None
        assert result.report.translated_segments == 3
        assert result.report.stage is PipelineStage.DONE
        assert not result.report.partially_translated


class TestRoundTripIdentity:
    def test_echo_reproduces_the_document(self, scenario_docx):
        result = DocumentTranslator(EchoTranslationClient()).translate(
            docx_source(scenario_docx), None, "en"
        )
        before = zip_entries(scenario_docx)
        after = zip_entries(result.output.data)
        assert list(before) == list(after)
        for name, data in before.items():
            if name in {"word/document.xml", "word/footer1.xml"}:
                assert canonical(after[name]) == canonical(data)
            else:
                assert after[name] == data

    def test_echo_reproduces_plain_text(self):
        source = text_source(["One.", "  Two with spaces  ", "Three"])
        result = DocumentTranslator(EchoTranslationClient()).translate(source, None, "en")
        assert result.output.data == source.data


class TestOrderingAndPassthrough:
    def test_segments_stay_in_place(self):
        paragraphs = [f"Paragraph number {i}" for i in range(30)]
        client, _ = recording_client(str.upper)
        options = TranslatorOptions(whole_document_characters=100)
        result = DocumentTranslator(client, options).translate(text_source(paragraphs), None, "xx")
        assert result.output.data.decode("utf-8") == "\n\n".join(p.upper() for p in paragraphs)
        assert result.report.total_chunks > 1

    def test_numbers_are_not_sent(self):
        data = make_docx([("Invoice", False), ("2024-01-31", False), ("Total", False)], footer=None)
        client, calls = recording_client(str.upper)
        result = DocumentTranslator(client).translate(docx_source(data), None, "xx")
        assert calls == ["§Invoice§Total"]
        texts = [p.text for p in Document(io.BytesIO(result.output.data)).paragraphs]
        assert texts == ["INVOICE", "2024-01-31", "TOTAL"]
        assert result.report.passthrough_segments == 1

    def test_chunk_of_only_numbers_skips_the_call(self):
        client, calls = recording_client()
        result = DocumentTranslator(client).translate(text_source(["42", "3.14"]), None, "de")
        assert calls == []
        assert result.report.passthrough_segments == 2


class TestDegradation:
    def test_stripped_delimiters_keep_original_text(self, scenario_docx):
        client, _ = recording_client(lambda text: text.replace("§", " "))
        result = DocumentTranslator(client).translate(docx_source(scenario_docx), None, "es")

        texts = [p.text for p in Document(io.BytesIO(result.output.data)).paragraphs]
        assert texts == ["Hello World", "This is a test", "Testing document translation"]
        assert b"\xc2\xa7" not in zip_entries(result.output.data)["word/document.xml"]

        report = result.report
        assert report.degraded_chunks == 1
        assert report.fallback_segments == 4
        assert report.partially_translated
        assert report.issues[0].category is ErrorCategory.DEGRADED

    def test_short_response_only_affects_the_tail(self):
        client, _ = recording_client(lambda text: "§UNO§DOS")
        result = DocumentTranslator(client).translate(
            text_source(["one", "two", "three"]), None, "es"
        )
        assert result.output.data.decode("utf-8") == "UNO\n\nDOS\n\nthree"
        assert result.report.issues[0].fallback_indices == (3,)

    def test_failed_chunk_falls_back(self):
        def translate(text, source, target):
            if "broken" in text:
                raise TranslationCallFailed("service unavailable")
            return text.upper()

        options = TranslatorOptions(whole_document_characters=20)
        result = DocumentTranslator(CallableTranslationClient(translate), options).translate(
            text_source(["first part", "broken part", "last part"]), None, "xx"
        )
        assert result.output.data.decode("utf-8") == "FIRST PART\n\nbroken part\n\nLAST PART"
        report = result.report
        assert report.failed_chunks == 1
        assert report.issues[0].category is ErrorCategory.TRANSLATION
        assert report.issues[0].details == "service unavailable"

    def test_provider_error_only_affects_its_chunk(self):
        calls = []

        def translate(text, source, target):
            calls.append(text)
            if len(calls) == 2:
                raise RuntimeError("503 from provider")
            return text.upper()

        paragraphs = [f"Section {n:02d} text" for n in range(1, 7)]
        options = TranslatorOptions(whole_document_characters=32)
        result = DocumentTranslator(CallableTranslationClient(translate), options).translate(
            text_source(paragraphs), None, "xx"
        )

        report = result.report
        assert report.total_chunks == 3
        assert report.failed_chunks == 1
        assert report.stage is PipelineStage.DONE
        assert report.issues[0].chunk_index == 2
        assert "503 from provider" in report.issues[0].details
        expected = [p.upper() for p in paragraphs[:2]] + paragraphs[2:4] + [
            p.upper() for p in paragraphs[4:]
        ]
        assert result.output.data.decode("utf-8") == "\n\n".join(expected)

    def test_provider_error_with_concurrent_chunks(self):
        def translate(text, source, target):
            if "broken" in text:
                raise ConnectionError("connection reset")
            return text.upper()

        options = TranslatorOptions(whole_document_characters=20, max_workers=3)
        result = DocumentTranslator(CallableTranslationClient(translate), options).translate(
            text_source(["first part", "broken part", "last part"]), None, "xx"
        )
        assert result.output.data.decode("utf-8") == "FIRST PART\n\nbroken part\n\nLAST PART"
        assert result.report.failed_chunks == 1

    def test_control_characters_do_not_break_the_package(self, scenario_docx):
        client, _ = recording_client(lambda text: text.replace("Hello", "Hola\x0b"))
        result = DocumentTranslator(client).translate(docx_source(scenario_docx), None, "es")

        texts = [p.text for p in Document(io.BytesIO(result.output.data)).paragraphs]
        assert texts[0] == "Hola World"
        assert result.report.stage is PipelineStage.DONE

    def test_timeout_is_a_chunk_failure(self):
        def translate(text, source, target):
            raise TimeoutError("too slow")

        result = DocumentTranslator(CallableTranslationClient(translate)).translate(
            text_source(["hello"]), None, "xx"
        )
        assert result.output.data == b"hello"
        assert result.report.failed_chunks == 1


class TestChunkedMode:
    def test_large_document_uses_segment_budget(self):
        paragraphs = [f"Paragraph {i}." for i in range(200)]
        client, calls = recording_client(str.upper)
        result = DocumentTranslator(client).translate(
            text_source(paragraphs, size=6 * MB), None, "xx"
        )
        assert result.report.mode is ProcessingMode.CHUNKED
        assert result.report.total_chunks == 4
        assert [call.count("§") for call in calls] == [50, 50, 50, 50]
        assert result.output.data.decode("utf-8") == "\n\n".join(p.upper() for p in paragraphs)

    def test_concurrent_chunks_reassemble_in_order(self):
        paragraphs = [f"Item {i}" for i in range(40)]
        threads = set()

        def translate(text, source, target):
            threads.add(threading.get_ident())
            # Later chunks finish first.
            first = int(text.split("§")[1].split()[1])
            time.sleep(max(0.0, 0.05 - first * 0.001))
            return text.upper()

        options = TranslatorOptions(whole_document_characters=50, max_workers=4)
        result = DocumentTranslator(CallableTranslationClient(translate), options).translate(
            text_source(paragraphs), None, "xx"
        )
        assert result.output.data.decode("utf-8") == "\n\n".join(p.upper() for p in paragraphs)
        assert result.report.total_chunks > 4
        assert len(threads) > 1


class TestProgress:
    def test_progress_is_monotonic_and_completes(self):
        updates = []
        options = TranslatorOptions(whole_document_characters=30)
        DocumentTranslator(EchoTranslationClient(), options).translate(
            text_source([f"Line {i}" for i in range(20)]),
            None,
            "en",
            progress=lambda percentage, message: updates.append(percentage),
        )
        assert updates[0] == 5
        assert updates[-1] == 100
        assert updates == sorted(updates)
        assert all(0 <= value <= 100 for value in updates)

    def test_tracker_rejects_illegal_transition(self):
        tracker = ProgressTracker()
        with pytest.raises(RuntimeError):
            tracker.advance(PipelineStage.TRANSLATING, 25, "skip ahead")

    def test_tracker_clamps(self):
        seen = []
        tracker = ProgressTracker(lambda value, message: seen.append(value))
        tracker.report(150, "over")
        tracker.report(40, "back")
        assert seen == [100, 100]


class TestFatalErrors:
    def test_unknown_format(self):
        client, calls = recording_client()
        with pytest.raises(UnsupportedFormat):
            DocumentTranslator(client).translate(
                SourceDocument(data=b"irrelevant", format_tag="application/unknown"), None, "es"
            )
        assert calls == []

    def test_broken_archive(self):
        with pytest.raises(InvalidContainer):
            DocumentTranslator(EchoTranslationClient()).translate(
                docx_source(b"PK\x03\x04 not really"), None, "es"
            )


class TestOptions:
    def test_from_settings_with_overrides(self):
        settings = SimpleNamespace(
            DOCBRIDGE_MAX_CHUNK_SEGMENTS=20,
            DOCBRIDGE_MAX_CHUNK_CHARACTERS=3000,
            DOCBRIDGE_WHOLE_DOCUMENT_CHARACTERS=40000,
            DOCBRIDGE_MAX_WORKERS=2,
        )
        options = TranslatorOptions.from_settings(settings, max_workers=8, strategy=None)
        assert options.max_chunk_segments == 20
        assert options.max_chunk_characters == 3000
        assert options.whole_document_characters == 40000
        assert options.max_workers == 8
        assert options.strategy is None
