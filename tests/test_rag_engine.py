import pytest

from querynox.services.rag_engine import (
    RAG_HEADER,
    RAW_HEADER,
    RAGEngine,
    RetrievalChunk,
    UploadedFile,
    chunk_text,
    cosine_similarity,
    find_relevant_chunks,
)


@pytest.fixture
def rag_engine(test_settings, registry):
    return RAGEngine(test_settings, registry)


def _txt(name: str, text: str) -> UploadedFile:
    return UploadedFile(filename=name, content_type="text/plain", data=text.encode("utf-8"))


class TestChunking:
    def test_chunk_short_text(self):
        chunks = chunk_text("Short text.")
        assert chunks == ["Short text."]

    def test_chunk_empty_text(self):
        assert chunk_text("") == []

    def test_chunk_whitespace_only(self):
        assert chunk_text("   \n\n  ") == []

    def test_chunk_respects_paragraphs(self):
        text = "First paragraph.\n\n" * 5 + "Last paragraph."
        chunks = chunk_text(text)
        assert len(chunks) == 1
        assert chunks[0].endswith("Last paragraph.")

    def test_paragraphs_split_across_chunks(self):
        para = "word " * 80
        chunks = chunk_text(f"{para}\n\n{para}\n\n{para}", chunk_size=1000)
        assert len(chunks) == 2
        assert all(c.strip() for c in chunks)

    def test_oversize_paragraph_kept_whole(self):
        para = "x" * 2500
        chunks = chunk_text(para, chunk_size=1000)
        assert chunks == [para]


class TestSimilarity:
    def test_identical_vectors(self):
        assert cosine_similarity([1.0, 2.0], [1.0, 2.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == 0.0

    def test_zero_or_mismatched_vectors(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0
        assert cosine_similarity([1.0], [1.0, 1.0]) == 0.0

    def test_ranking_order(self):
        chunks = ["far", "close", "middle"]
        vectors = [[0.0, 1.0], [1.0, 0.0], [1.0, 1.0]]
        assert find_relevant_chunks([1.0, 0.0], vectors, chunks, top_k=2) == ["close", "middle"]

    def test_ranking_is_idempotent(self):
        chunks = ["a", "b", "c", "d"]
        vectors = [[1.0, 1.0], [1.0, 1.0], [0.5, 1.0], [1.0, 0.1]]
        first = find_relevant_chunks([1.0, 0.0], vectors, chunks, top_k=3)
        second = find_relevant_chunks([1.0, 0.0], vectors, chunks, top_k=3)
        assert first == second
        # Equal scores keep document order
        assert first.index("a") < first.index("b")

    def test_fewer_chunks_than_top_k(self):
        result = find_relevant_chunks([1.0], [[1.0], [0.5]], ["one", "two"], top_k=3)
        assert len(result) == 2


@pytest.mark.asyncio
class TestFileContext:
    async def test_no_files(self, rag_engine):
        assert await rag_engine.get_context_from_files("q", []) == ("", False)

    async def test_two_chunks_top_three(self, rag_engine, main_provider):
        para = "alpha " * 120
        other = "beta " * 120
        context, degraded = await rag_engine.get_context_from_files(
            "question", [_txt("notes.txt", f"{para}\n\n{other}")]
        )
        assert degraded is False
        assert context.startswith(RAG_HEADER)
        assert context.count("\n\n---\n") == 1
        # One embedding call covering both chunks and the prompt
        assert len(main_provider.embed_calls) == 1
        assert len(main_provider.embed_calls[0]) == 3
        assert main_provider.embed_calls[0][-1] == "question"

    async def test_embedding_failure_falls_back_to_raw_text(self, rag_engine, main_provider):
        main_provider.embed_error = RuntimeError("embeddings down")
        context, degraded = await rag_engine.get_context_from_files(
            "question", [_txt("notes.txt", "Plain document body.")]
        )
        assert degraded is True
        assert context == f"{RAW_HEADER}Plain document body."

    async def test_unsupported_files_skipped(self, rag_engine, main_provider):
        context, degraded = await rag_engine.get_context_from_files(
            "question",
            [UploadedFile("archive.zip", "application/zip", b"PK\x03\x04")],
        )
        assert context == ""
        assert degraded is True
        assert main_provider.embed_calls == []

    async def test_markdown_and_image_extraction(self, rag_engine):
        md = UploadedFile("readme.md", "text/markdown", b"# Title\n\nSome content.")
        png = UploadedFile("scan.png", "image/png", b"\x89PNG")
        assert "Some content." in await rag_engine.extract_text(md)
        assert await rag_engine.extract_text(png) == "Extracted text from image:\ntext from image"

    async def test_rank_chunks_records_embeddings(self, rag_engine):
        chunks = [RetrievalChunk("one", "a.txt"), RetrievalChunk("two", "a.txt")]
        ranked = await rag_engine.rank_chunks("one", chunks)
        assert ranked[0] == "one"
        assert all(c.embedding is not None for c in chunks)
