import asyncio
import io
import logging
import math
import re
from dataclasses import dataclass

from pypdf import PdfReader

from querynox.config import Settings
from querynox.errors import UpstreamError
from querynox.services.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)

RAG_HEADER = "\n\n--- Relevant context from uploaded documents ---\n"
RAW_HEADER = "\n\n--- Document content ---\n"
CHUNK_SEPARATOR = "\n\n---\n"

TEXT_MIME_TYPES = {"text/plain", "text/markdown"}
_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")


@dataclass
class UploadedFile:
    filename: str
    content_type: str
    data: bytes


@dataclass
class RetrievalChunk:
    text: str
    source: str
    embedding: list[float] | None = None


def cosine_similarity(a: list[float], b: list[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = 0.0
    na = 0.0
    nb = 0.0
    for x, y in zip(a, b):
        dot += x * y
        na += x * x
        nb += y * y
    if na <= 0.0 or nb <= 0.0:
        return 0.0
    return dot / (math.sqrt(na) * math.sqrt(nb))


def find_relevant_chunks(
    prompt_embedding: list[float],
    chunk_embeddings: list[list[float]],
    chunks: list[str],
    top_k: int = 3,
) -> list[str]:
    """Return up to top_k chunks ordered by descending cosine similarity.

    The sort is stable, so equal scores keep document order and re-ranking
    the same inputs always yields the same result.
    """
    scored = [
        (cosine_similarity(prompt_embedding, vec), index)
        for index, vec in enumerate(chunk_embeddings)
    ]
    scored.sort(key=lambda item: item[0], reverse=True)
    return [chunks[index] for _, index in scored[:top_k]]


def chunk_text(text: str, chunk_size: int = 1000) -> list[str]:
    """Group paragraphs into chunks of roughly chunk_size characters.

    Paragraphs are never split; one longer than chunk_size becomes its own chunk.
    """
    if not text.strip():
        return []
    chunks: list[str] = []
    current = ""
    for paragraph in _PARAGRAPH_BREAK.split(text):
        paragraph = paragraph.strip()
        if not paragraph:
            continue
        if current and len(current) + len(paragraph) > chunk_size:
            chunks.append(current.strip())
            current = ""
        current += paragraph + "\n\n"
    if current.strip():
        chunks.append(current.strip())
    return chunks


class RAGEngine:
    """Ephemeral, per-request retrieval over the files attached to a turn."""

    def __init__(self, settings: Settings, registry: ProviderRegistry):
        self._registry = registry
        self._embedding_model = settings.embedding_config.get("model", "text-embedding-3-small")
        self._batch_size = int(settings.embedding_config.get("batch_size", 100))
        self._chunk_size = int(settings.rag_config.get("chunk_size", 1000))
        self._top_k = int(settings.rag_config.get("top_k", 3))
        self._ocr_model = settings.rag_config.get("ocr_model", "gpt-4o-mini")

    def _openai(self):
        return self._registry.get("openai")

    # --- Document Loading ---
    @staticmethod
    def _read_pdf(data: bytes) -> str:
        reader = PdfReader(io.BytesIO(data))
        pages = []
        for page in reader.pages:
            text = page.extract_text()
            if text:
                pages.append(text)
        return "\n\n".join(pages)

    async def extract_text(self, file: UploadedFile) -> str | None:
        """Extract text from one file; None for unsupported types."""
        mimetype = (file.content_type or "").lower()
        if mimetype == "application/pdf":
            return await asyncio.to_thread(self._read_pdf, file.data)
        if mimetype.startswith("image/"):
            text = await self._openai().extract_image_text(file.data, mimetype, self._ocr_model)
            if not text:
                return "No text was found in this image."
            return f"Extracted text from image:\n{text}"
        if mimetype in TEXT_MIME_TYPES:
            return file.data.decode("utf-8", errors="replace")
        return None

    async def _extract_all(self, files: list[UploadedFile]) -> list[tuple[str, str]]:
        """Return (filename, text) for every file that yielded text."""
        documents = []
        for file in files:
            try:
                text = await self.extract_text(file)
            except Exception as e:
                logger.warning("Could not extract text from %s: %s", file.filename, e)
                continue
            if text is None:
                logger.info("Skipping unsupported file %s (%s)", file.filename, file.content_type)
                continue
            if text.strip():
                documents.append((file.filename, text))
        return documents

    def _chunk_documents(self, documents: list[tuple[str, str]]) -> list[RetrievalChunk]:
        return [
            RetrievalChunk(text=piece, source=filename)
            for filename, text in documents
            for piece in chunk_text(text, self._chunk_size)
        ]

    # --- Retrieval ---
    async def rank_chunks(self, prompt: str, chunks: list[RetrievalChunk]) -> list[str]:
        provider = self._openai()
        embeddings = await provider.embed(
            [c.text for c in chunks] + [prompt],
            self._embedding_model,
            batch_size=self._batch_size,
        )
        if len(embeddings) != len(chunks) + 1:
            raise UpstreamError("Embedding count does not match input count")
        for chunk, embedding in zip(chunks, embeddings):
            chunk.embedding = embedding
        return find_relevant_chunks(
            embeddings[-1],
            [c.embedding for c in chunks],
            [c.text for c in chunks],
            self._top_k,
        )

    async def get_context_from_files(
        self, prompt: str, files: list[UploadedFile],
    ) -> tuple[str, bool]:
        """Return (context, degraded) for the prompt from the attached files.

        degraded is True when ranking failed and raw text was used, or when
        nothing could be extracted.
        """
        if not files:
            return "", False
        documents = await self._extract_all(files)
        if not documents:
            return "", True

        chunks = self._chunk_documents(documents)
        try:
            relevant = await self.rank_chunks(prompt, chunks)
        except Exception as e:
            logger.warning("Chunk ranking failed, using raw document text: %s", e)
            raw_text = "\n\n".join(text for _, text in documents)
            return f"{RAW_HEADER}{raw_text}", True

        logger.info(
            "File RAG selected %d of %d chunks from %s",
            len(relevant), len(chunks), ", ".join(sorted({c.source for c in chunks})),
        )
        return f"{RAG_HEADER}{CHUNK_SEPARATOR.join(relevant)}", False
