"""Tests for skeleton stripping of Word and PowerPoint packages."""

import pytest

from conftest import make_docx, make_pptx, word_paragraph, word_run
from docbridge.container import Container
from docbridge.errors import InvalidContainer, NoAvailableDelimiter
from docbridge.extractor import (
    PRESENTATION_PROFILE,
    SPECIAL_CHARACTERS,
    WORD_PROFILE,
    StructuralExtractor,
    select_delimiter,
)


def extract_word(data, **kwargs):
    return StructuralExtractor(WORD_PROFILE, **kwargs).extract(Container.from_bytes(data))


class TestSelectDelimiter:
    def test_first_candidate_when_unused(self):
        assert select_delimiter(["plain text"]) == "§"

    def test_skips_characters_in_use(self):
        assert select_delimiter(["Section § 4", "Pilcrow ¶"]) == "¤"

    def test_all_candidates_used(self):
        with pytest.raises(NoAvailableDelimiter):
            select_delimiter(["".join(SPECIAL_CHARACTERS)])


class TestWordExtraction:
    def test_scenario_a_markers(self):
        extraction = extract_word(make_docx(footer=None))
        assert extraction.delimiter == "§"
        assert extraction.parsed_text == "§Hello World§This is a test§Testing document translation"
        assert extraction.skeleton.markers() == ["§1", "§2", "§3"]
        assert [segment.index for segment in extraction.segments] == [1, 2, 3]

    def test_footer_follows_body(self, scenario_docx):
        extraction = extract_word(scenario_docx)
        assert extraction.segments[-1].text == "Page footer"
        assert extraction.segments[-1].location.part == "word/footer1.xml"

    def test_whitespace_nodes_are_not_segments(self):
        body = word_paragraph(word_run("Left"), word_run("   "), word_run("Right"))
        data = make_docx(body=body, footer=None)
        extraction = extract_word(data)
        assert [segment.text for segment in extraction.segments] == ["Left", "Right"]
        texts = [node.text for _, node in extraction.skeleton.iter_text_nodes()]
        assert texts == ["§1", "   ", "§2"]

    def test_delimiter_avoids_document_text(self):
        data = make_docx([("Clause § 12 applies", False)], footer=None)
        extraction = extract_word(data)
        assert extraction.delimiter == "¶"
        assert extraction.parsed_text == "¶Clause § 12 applies"

    def test_extraction_is_deterministic(self, scenario_docx):
        first = extract_word(scenario_docx)
        second = extract_word(scenario_docx)
        assert first.parsed_text == second.parsed_text
        assert [s.location for s in first.segments] == [s.location for s in second.segments]

    def test_runs_of_one_paragraph_share_a_key(self):
        body = word_paragraph(word_run("Hello "), word_run("bold", bold=True)) + word_paragraph(
            word_run("Next")
        )
        extraction = extract_word(make_docx(body=body, footer=None))
        keys = [segment.paragraph_key for segment in extraction.segments]
        assert keys[0] == keys[1] != keys[2]

    def test_attributes_are_recorded_on_request(self):
        body = word_paragraph(word_run("Title", bold=True), style="Heading1")
        extraction = extract_word(make_docx(body=body, footer=None), record_attributes=True)
        segment = extraction.segments[0]
        assert segment.run.bold is True
        assert segment.paragraph.heading_level == 1

    def test_attributes_skipped_by_default(self, scenario_docx):
        assert extract_word(scenario_docx).segments[1].run is None

    def test_malformed_part_is_invalid(self):
        data = make_docx(body="<w:p><w:r><w:t>broken</w:r></w:p>", footer=None)
        with pytest.raises(InvalidContainer):
            extract_word(data)

    def test_missing_document_part_is_invalid(self, sample_pptx):
        with pytest.raises(InvalidContainer):
            extract_word(sample_pptx)


class TestPresentationExtraction:
    def test_slides_in_order(self):
        data = make_pptx([["First slide"], ["Second slide", "More"]])
        extraction = StructuralExtractor(PRESENTATION_PROFILE).extract(Container.from_bytes(data))
        assert [segment.text for segment in extraction.segments] == [
            "First slide",
            "Second slide",
            "More",
        ]
        assert extraction.segments[0].location.part == "ppt/slides/slide1.xml"