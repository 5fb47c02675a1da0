"""Ingestion pipeline: blob → chunks → embeddings → chunk rows + vectors.

States, in order (logged at DEBUG):
    UPLOADING → FETCHING → CHUNKING → EMBEDDING → REPLACING_INDEX → PERSISTING → READY

Old chunks and vectors are only removed once the new embeddings are in hand,
so a provider failure leaves the previous index intact. After that point a
failure aborts the remaining steps without rollback; re-running ``ingest``
converges because every run deletes before inserting.
"""

from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass

from marble.config import MarbleConfig
from marble.db.models import ChunkRecord, FileRecord, Folder
from marble.db.repository import Repository
from marble.errors import CountMismatch, EmptyDocument, Forbidden, NotFound
from marble.ingest.plaintext import PlainTextChunker, TextChunk
from marble.rag import llm_client
from marble.rag.vector_store import VectorMetadata, VectorStore
from marble.storage import BlobStore

logger = logging.getLogger(__name__)


class IngestState(enum.Enum):
    UPLOADING = "uploading"
    FETCHING = "fetching"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    REPLACING_INDEX = "replacing_index"
    PERSISTING = "persisting"
    READY = "ready"


@dataclass
class IngestResult:
    file_id: str
    chunks: int


def resolve_folder(repo: Repository, folder_id: str, user_id: str) -> Folder:
    """Return *folder_id* if *user_id* may upload into it.

    Public folders accept anyone; private folders only their owner.

    Raises:
        NotFound: Unknown folder.
        Forbidden: The folder is private to another user.
    """
    folder = repo.get_folder(folder_id)
    if folder is None:
        raise NotFound(f"Folder not found: {folder_id}")
    if folder.visibility == "private" and folder.owner_id != user_id:
        raise Forbidden(f"Folder is private to another user: {folder_id}")
    return folder


class IngestionPipeline:
    """Index one uploaded file so grounded chat can retrieve it.

    Args:
        repo: Relational store.
        blobs: Blob store holding the uploaded bytes.
        store: Vector store adapter.
        config: Loaded configuration (chunking, embedding model).
    """

    def __init__(
        self,
        repo: Repository,
        blobs: BlobStore,
        store: VectorStore,
        config: MarbleConfig,
    ) -> None:
        self._repo = repo
        self._blobs = blobs
        self._store = store
        self._config = config
        self._chunker = PlainTextChunker(
            chunk_size=config.chunking.chunk_size,
            overlap=config.chunking.overlap,
        )

    def ingest(self, file_id: str, acting_user_id: str) -> IngestResult:
        """Chunk, embed, and index *file_id* on behalf of *acting_user_id*.

        Raises:
            NotFound: Unknown file, or its blob is missing.
            Forbidden: *acting_user_id* does not own the file.
            EmptyDocument: The file produced no chunks.
            ProviderError: The embedding call failed.
            CountMismatch: The provider returned the wrong number of vectors.
        """
        file = self.authorize(file_id, acting_user_id)
        self._enter(file, IngestState.UPLOADING)

        self._enter(file, IngestState.FETCHING)
        data = self._blobs.get(file.blob_key)
        if data is None:
            raise NotFound(f"Stored file not found: {file.blob_key}")
        text = data.decode("utf-8", errors="replace")

        self._enter(file, IngestState.CHUNKING)
        chunks = self._chunker.chunk(text)
        if not chunks:
            raise EmptyDocument("No content found to ingest")

        self._enter(file, IngestState.EMBEDDING)
        emb = self._config.embedding
        vectors = llm_client.embed(emb.model, [c.content for c in chunks], timeout=emb.timeout)
        if len(vectors) != len(chunks):
            raise CountMismatch(expected=len(chunks), got=len(vectors))

        self._enter(file, IngestState.REPLACING_INDEX)
        self._remove_index(file)

        self._enter(file, IngestState.PERSISTING)
        for chunk, vector in zip(chunks, vectors):
            self._persist_chunk(file, chunk, vector)

        self._repo.update_file_status(file.id, "ready")
        self._enter(file, IngestState.READY)
        logger.info("Ingested %s (%s): %d chunks", file.file_name, file.id, len(chunks))
        return IngestResult(file_id=file.id, chunks=len(chunks))

    def delete_file(self, file_id: str, acting_user_id: str) -> int:
        """Delete *file_id*: blob, chunk rows, file row, then its vectors.

        Returns the number of vectors removed.
        """
        file = self.authorize(file_id, acting_user_id)
        self._blobs.delete(file.blob_key)
        chunk_ids = self._repo.delete_chunks_for_file(file.id)
        self._repo.delete_file(file.id)
        self._store.delete_by_ids(chunk_ids, file.visibility, file.owner_id)
        logger.info("Deleted %s (%s): %d vectors", file.file_name, file.id, len(chunk_ids))
        return len(chunk_ids)

    def authorize(self, file_id: str, acting_user_id: str) -> FileRecord:
        """Return *file_id* if *acting_user_id* owns it.

        Raises:
            NotFound: Unknown file.
            Forbidden: *acting_user_id* is not the uploader.
        """
        file = self._repo.get_file(file_id)
        if file is None:
            raise NotFound(f"File not found: {file_id}")
        if file.owner_id != acting_user_id:
            raise Forbidden(f"User {acting_user_id} does not own file {file_id}")
        return file

    # ------------------------------------------------------------------

    def _remove_index(self, file: FileRecord) -> None:
        old_ids = self._repo.delete_chunks_for_file(file.id)
        if old_ids:
            logger.debug("Replacing %d existing chunks of %s", len(old_ids), file.id)
        self._store.delete_by_ids(old_ids, file.visibility, file.owner_id)

    def _persist_chunk(self, file: FileRecord, chunk: TextChunk, vector: list[float]) -> None:
        record = ChunkRecord(
            id=str(uuid.uuid4()),
            file_id=file.id,
            folder_id=file.folder_id,
            owner_id=file.owner_id,
            visibility=file.visibility,
            chunk_index=chunk.index,
            start_line=chunk.start_line,
            end_line=chunk.end_line,
            content=chunk.content,
        )
        self._repo.insert_chunk(record)
        self._store.upsert(
            record.id,
            vector,
            VectorMetadata(
                chunk_id=record.id,
                file_id=file.id,
                folder_id=file.folder_id,
                folder_name=file.folder_name,
                file_name=file.file_name,
                start_line=chunk.start_line,
                end_line=chunk.end_line,
                visibility=file.visibility,
                owner_id=file.owner_id,
            ),
        )

    @staticmethod
    def _enter(file: FileRecord, state: IngestState) -> None:
        logger.debug("%s: %s", file.id, state.value)
