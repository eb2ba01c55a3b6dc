"""Tests for the text chunker."""

import pytest

from src.core import ValidationException
from src.ingestion.domain import ChunkingOptions, chunk_text, estimate_pages, estimate_tokens
from src.ingestion.domain.chunker import detect_section_title


SECTIONED_TEXT = (
    "GETTING STARTED\n\n"
    "Plug in the router and wait for the light.\n\n"
    "RESET\n\n"
    "Hold the button for ten seconds."
)


def paragraphs_text(count: int = 40) -> str:
    return "\n\n".join(
        f"Paragraph {i}. " + "word " * ((i * 37) % 300) for i in range(count)
    )


class TestChunkText:
    """chunk_text behaviour."""

    @pytest.mark.parametrize("text", [
        "a" * 5000,
        paragraphs_text(),
        "Short text.",
        "First paragraph.\n\n\n\nSecond paragraph after a wide gap.\n\n",
        "no breaks " * 900,
    ])
    def test_non_overlap_regions_reconstruct_input(self, text):
        chunks = chunk_text(text, ChunkingOptions(max_chars=2000, overlap_chars=200))

        assert "".join(chunk.new_content for chunk in chunks) == text

    def test_chunks_never_exceed_max_chars(self):
        chunks = chunk_text(paragraphs_text(), ChunkingOptions(max_chars=2000, overlap_chars=200))

        assert len(chunks) > 1
        assert all(len(chunk.content) <= 2000 for chunk in chunks)

    def test_single_long_paragraph_splits_with_overlap(self):
        text = "a" * 5000

        chunks = chunk_text(text, ChunkingOptions(max_chars=2000, overlap_chars=200))

        assert [len(c.content) for c in chunks] == [1800, 2000, 1600]
        for previous, current in zip(chunks, chunks[1:]):
            assert current.content.startswith(previous.content[-200:])
            assert current.overlap_chars == 200
        assert chunks[0].overlap_chars == 0

    def test_content_is_exact_slice_of_input(self):
        text = paragraphs_text()

        for chunk in chunk_text(text):
            assert text[chunk.char_start:chunk.char_end] == chunk.content

    def test_sequence_indices_are_contiguous(self):
        chunks = chunk_text(paragraphs_text())

        assert [c.sequence_index for c in chunks] == list(range(len(chunks)))

    def test_prefers_whitespace_boundary(self):
        text = "word " * 1000

        chunks = chunk_text(text, ChunkingOptions(max_chars=2000, overlap_chars=200))

        assert chunks[0].content.endswith(" ")

    @pytest.mark.parametrize("text", ["", "   ", "\n\n\n"])
    def test_empty_input_yields_no_chunks(self, text):
        assert chunk_text(text) == []

    def test_small_text_is_single_chunk(self):
        chunks = chunk_text("Hello world.")

        assert len(chunks) == 1
        assert chunks[0].content == "Hello world."
        assert chunks[0].page_number == 1
        assert chunks[0].token_count == 3

    def test_is_deterministic(self):
        text = paragraphs_text()

        assert chunk_text(text) == chunk_text(text)


class TestChunkMetadata:
    """Section and page hints."""

    def test_section_header_labels_its_chunk_and_later_ones(self):
        chunks = chunk_text(SECTIONED_TEXT, ChunkingOptions(max_chars=60, overlap_chars=10))

        assert [c.section_title for c in chunks] == ["GETTING STARTED", "GETTING STARTED", "RESET"]

    def test_page_number_estimated_from_offset(self):
        chunks = chunk_text(
            SECTIONED_TEXT,
            ChunkingOptions(max_chars=60, overlap_chars=10, chars_per_page=20)
        )

        assert [c.char_start for c in chunks] == [0, 7, 51]
        assert [c.page_number for c in chunks] == [1, 1, 3]

    @pytest.mark.parametrize("paragraph,expected", [
        ("INSTALLATION", "INSTALLATION"),
        ("  3.1 SAFETY NOTES:  \n\n", "3.1 SAFETY NOTES:"),
        ("Installation", None),
        ("A" * 100, None),
        ("", None),
    ])
    def test_detect_section_title(self, paragraph, expected):
        assert detect_section_title(paragraph) == expected


class TestChunkingOptions:

    @pytest.mark.parametrize("kwargs", [
        {"max_chars": 0},
        {"max_chars": 100, "overlap_chars": 100},
        {"overlap_chars": -1},
        {"chars_per_page": 0},
    ])
    def test_invalid_options_rejected(self, kwargs):
        with pytest.raises(ValidationException):
            ChunkingOptions(**kwargs)

    def test_step(self):
        assert ChunkingOptions(max_chars=2000, overlap_chars=200).step == 1800


def test_estimates():
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2
    assert estimate_pages("", 3000) == 1
    assert estimate_pages("x" * 3001, 3000) == 2
