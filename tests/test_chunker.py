"""Unit tests for rulex.ingestion.chunker."""

from __future__ import annotations

import pytest

from rulex.ingestion.chunker import ChunkSequence, chunk_text, clean_text


class TestCleanText:
    def test_normalises_line_endings_and_blank_runs(self):
        assert clean_text("  a\r\nb\n\n\n\n\nc  ") == "a\nb\n\nc"


class TestChunkText:
    def test_short_text_is_single_chunk(self):
        text = "Section 9 of the CGST Act levies tax on intra-State supplies of goods or services or both. " * 1
        text = text + "x" * (120 - len(text))
        chunks = list(chunk_text(text))
        assert chunks == [text.strip()]

    def test_fragment_of_fifty_chars_or_less_is_dropped(self):
        assert list(chunk_text("Too short to be a chunk at all, only forty")) == []

    def test_empty_text_yields_nothing(self):
        assert list(chunk_text("   \n\n  ")) == []

    def test_prefers_paragraph_break(self):
        text = "A" * 950 + "\n\n" + "B" * 900
        chunks = list(chunk_text(text, target_size=1000, overlap=200))
        assert chunks[0] == "A" * 950
        assert len(chunks) == 3

    def test_falls_back_to_sentence_end(self):
        text = ("x" * 97 + ". ") * 30
        chunks = list(chunk_text(text, target_size=1000, overlap=200))
        assert len(chunks) > 1
        assert all(chunk.endswith(".") for chunk in chunks)

    def test_consecutive_chunks_overlap(self):
        text = "A" * 950 + "\n\n" + "B" * 900
        chunks = list(chunk_text(text, target_size=1000, overlap=200))
        # second window starts 200 chars before the first cut
        assert chunks[1].startswith("A" * 198)

    def test_chunks_stay_near_target_size(self):
        text = ("Input tax credit is available on business supplies. " * 200).strip()
        for chunk in chunk_text(text, target_size=1000, overlap=200):
            assert len(chunk) <= 1000 + 100

    def test_sequence_is_restartable_and_deterministic(self):
        text = ("Rule 36 restricts input tax credit claims. " * 100).strip()
        sequence = chunk_text(text)
        first = list(sequence)
        assert first == list(sequence)
        assert first == list(chunk_text(text))

    def test_returns_chunk_sequence(self):
        sequence = chunk_text("some text " * 20)
        assert isinstance(sequence, ChunkSequence)
        assert "target_size=1000" in repr(sequence)

    def test_spans_point_into_cleaned_text(self):
        sequence = chunk_text(("Clause one applies here. " * 80).strip(), target_size=500, overlap=100)
        for span in sequence.spans():
            assert sequence.cleaned_text[span.start : span.end].strip() == span.text

    def test_terminates_when_overlap_would_stall(self):
        text = ". " * 2000
        text = "word" + text
        chunks = list(chunk_text(text, target_size=300, overlap=299))
        assert isinstance(chunks, list)

    @pytest.mark.parametrize(
        "target_size, overlap",
        [(0, 0), (-5, 0), (100, 100), (100, 150), (100, -1)],
    )
    def test_invalid_parameters_raise(self, target_size, overlap):
        with pytest.raises(ValueError):
            chunk_text("text", target_size=target_size, overlap=overlap)
