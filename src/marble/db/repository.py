"""Repository pattern for all Marble relational operations.

Single interface for: users, folders, files, chunks, and chat messages.
Vector tables live in marble.db.vectors; the repository never touches them.
"""

from __future__ import annotations

import sqlite3

from marble.db.models import (
    ChatMessage,
    ChunkRecord,
    ChunkWithContext,
    FileRecord,
    FileStatus,
    Folder,
    User,
    Visibility,
)

_FILE_COLUMNS = """
    f.id, f.folder_id, f.owner_id, f.visibility, f.file_name, f.blob_key, f.size,
    f.status, f.mime_type, f.created_at, d.name AS folder_name
"""


class Repository:
    """Data access layer for all Marble relational entities.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with the schema initialised
                (see marble.db.schema.initialize).
        """
        self._conn = conn

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def ensure_user(self, user: User) -> None:
        """Insert *user*, or refresh email / display name if it already exists."""
        self._conn.execute(
            """
            INSERT INTO users (id, email, display_name) VALUES (?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                email = excluded.email,
                display_name = excluded.display_name
            """,
            (user.id, user.email, user.display_name),
        )
        self._conn.commit()

    def get_user(self, user_id: str) -> User | None:
        row = self._conn.execute(
            "SELECT id, email, display_name, created_at FROM users WHERE id = ?",
            (user_id,),
        ).fetchone()
        if row is None:
            return None
        return User(
            id=row["id"],
            email=row["email"],
            display_name=row["display_name"],
            created_at=row["created_at"],
        )

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    def ensure_folder(self, folder: Folder) -> None:
        """Insert or update a folder by id."""
        self._conn.execute(
            """
            INSERT INTO folders (id, name, visibility, owner_id) VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                visibility = excluded.visibility,
                owner_id = excluded.owner_id
            """,
            (folder.id, folder.name, folder.visibility, folder.owner_id),
        )
        self._conn.commit()

    def get_folder(self, folder_id: str) -> Folder | None:
        """Return a folder by ID, or None if not found."""
        row = self._conn.execute(
            "SELECT id, name, visibility, owner_id, created_at FROM folders WHERE id = ?",
            (folder_id,),
        ).fetchone()
        return _row_to_folder(row) if row else None

    def list_folders(self, user_id: str | None = None) -> list[Folder]:
        """Return public folders plus *user_id*'s private ones, ordered by name."""
        rows = self._conn.execute(
            """
            SELECT id, name, visibility, owner_id, created_at FROM folders
            WHERE visibility = 'public' OR owner_id = ?
            ORDER BY name
            """,
            (user_id,),
        ).fetchall()
        return [_row_to_folder(r) for r in rows]

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def add_file(self, file: FileRecord) -> None:
        """Insert a new file record."""
        self._conn.execute(
            """
            INSERT INTO files
                (id, folder_id, owner_id, visibility, file_name, blob_key, size, status, mime_type)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                file.id,
                file.folder_id,
                file.owner_id,
                file.visibility,
                file.file_name,
                file.blob_key,
                file.size,
                file.status,
                file.mime_type,
            ),
        )
        self._conn.commit()

    def get_file(self, file_id: str) -> FileRecord | None:
        """Return a file joined with its folder name, or None if not found."""
        row = self._conn.execute(
            f"""
            SELECT {_FILE_COLUMNS}
            FROM files f JOIN folders d ON d.id = f.folder_id
            WHERE f.id = ?
            """,
            (file_id,),
        ).fetchone()
        return _row_to_file(row) if row else None

    def list_files(
        self,
        *,
        folder_id: str | None = None,
        visibility: Visibility | None = None,
        owner_id: str | None = None,
    ) -> list[FileRecord]:
        """Return files matching every given filter, newest first."""
        clauses: list[str] = []
        params: list[str] = []
        if folder_id:
            clauses.append("f.folder_id = ?")
            params.append(folder_id)
        if visibility:
            clauses.append("f.visibility = ?")
            params.append(visibility)
        if owner_id:
            clauses.append("f.owner_id = ?")
            params.append(owner_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        rows = self._conn.execute(
            f"""
            SELECT {_FILE_COLUMNS}
            FROM files f JOIN folders d ON d.id = f.folder_id
            {where}
            ORDER BY f.created_at DESC, f.rowid DESC
            """,
            params,
        ).fetchall()
        return [_row_to_file(r) for r in rows]

    def update_file_status(self, file_id: str, status: FileStatus) -> None:
        self._conn.execute("UPDATE files SET status = ? WHERE id = ?", (status, file_id))
        self._conn.commit()

    def delete_file(self, file_id: str) -> None:
        """Delete a file row. Remaining chunk rows cascade; vectors do not."""
        self._conn.execute("DELETE FROM files WHERE id = ?", (file_id,))
        self._conn.commit()

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def insert_chunk(self, chunk: ChunkRecord) -> None:
        """Insert one chunk record."""
        self._conn.execute(
            """
            INSERT INTO chunks
                (id, file_id, folder_id, owner_id, visibility,
                 chunk_index, start_line, end_line, content)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                chunk.id,
                chunk.file_id,
                chunk.folder_id,
                chunk.owner_id,
                chunk.visibility,
                chunk.chunk_index,
                chunk.start_line,
                chunk.end_line,
                chunk.content,
            ),
        )
        self._conn.commit()

    def delete_chunks_for_file(self, file_id: str) -> list[str]:
        """Delete every chunk of *file_id*. Returns the deleted chunk ids."""
        ids = [
            r["id"]
            for r in self._conn.execute(
                "SELECT id FROM chunks WHERE file_id = ? ORDER BY chunk_index", (file_id,)
            ).fetchall()
        ]
        self._conn.execute("DELETE FROM chunks WHERE file_id = ?", (file_id,))
        self._conn.commit()
        return ids

    def list_chunks_for_file(self, file_id: str) -> list[ChunkRecord]:
        """Return the chunks of *file_id* in chunk_index order."""
        rows = self._conn.execute(
            """
            SELECT id, file_id, folder_id, owner_id, visibility, chunk_index,
                   start_line, end_line, content, created_at
            FROM chunks WHERE file_id = ? ORDER BY chunk_index
            """,
            (file_id,),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def count_chunks_for_file(self, file_id: str) -> int:
        return self._conn.execute(
            "SELECT COUNT(*) FROM chunks WHERE file_id = ?", (file_id,)
        ).fetchone()[0]

    def get_chunks_by_ids(self, chunk_ids: list[str]) -> list[ChunkWithContext]:
        """Return chunks for *chunk_ids* joined with file and folder names.

        Ids that no longer exist are simply absent from the result; order is
        not guaranteed.
        """
        if not chunk_ids:
            return []
        placeholders = ",".join("?" * len(chunk_ids))
        rows = self._conn.execute(
            f"""
            SELECT c.id, c.file_id, c.folder_id, c.owner_id, c.visibility, c.chunk_index,
                   c.start_line, c.end_line, c.content, c.created_at,
                   f.file_name, d.name AS folder_name
            FROM chunks c
            JOIN files f ON f.id = c.file_id
            JOIN folders d ON d.id = c.folder_id
            WHERE c.id IN ({placeholders})
            """,  # noqa: S608
            chunk_ids,
        ).fetchall()
        return [
            ChunkWithContext(
                **_chunk_fields(r),
                file_name=r["file_name"],
                folder_name=r["folder_name"],
            )
            for r in rows
        ]

    # ------------------------------------------------------------------
    # Chat messages
    # ------------------------------------------------------------------

    def record_chat(self, message: ChatMessage) -> None:
        self._conn.execute(
            "INSERT INTO messages (id, user_id, question, answer, citations) VALUES (?, ?, ?, ?, ?)",
            (
                message.id,
                message.user_id,
                message.question,
                message.answer,
                message.citations,
            ),
        )
        self._conn.commit()

    def list_chats(self, user_id: str, limit: int | None = None) -> list[ChatMessage]:
        """Return *user_id*'s chat history, newest first."""
        sql = (
            "SELECT id, user_id, question, answer, citations, created_at FROM messages "
            "WHERE user_id = ? ORDER BY created_at DESC, rowid DESC"
        )
        params: list[object] = [user_id]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return [
            ChatMessage(
                id=r["id"],
                user_id=r["user_id"],
                question=r["question"],
                answer=r["answer"],
                citations=r["citations"],
                created_at=r["created_at"],
            )
            for r in self._conn.execute(sql, params).fetchall()
        ]


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_folder(row: sqlite3.Row) -> Folder:
    return Folder(
        id=row["id"],
        name=row["name"],
        visibility=row["visibility"],
        owner_id=row["owner_id"],
        created_at=row["created_at"],
    )


def _row_to_file(row: sqlite3.Row) -> FileRecord:
    return FileRecord(
        id=row["id"],
        folder_id=row["folder_id"],
        owner_id=row["owner_id"],
        visibility=row["visibility"],
        file_name=row["file_name"],
        blob_key=row["blob_key"],
        size=row["size"],
        status=row["status"],
        mime_type=row["mime_type"],
        created_at=row["created_at"],
        folder_name=row["folder_name"],
    )


def _chunk_fields(row: sqlite3.Row) -> dict:
    return {
        "id": row["id"],
        "file_id": row["file_id"],
        "folder_id": row["folder_id"],
        "owner_id": row["owner_id"],
        "visibility": row["visibility"],
        "chunk_index": row["chunk_index"],
        "start_line": row["start_line"],
        "end_line": row["end_line"],
        "content": row["content"],
        "created_at": row["created_at"],
    }


def _row_to_chunk(row: sqlite3.Row) -> ChunkRecord:
    return ChunkRecord(**_chunk_fields(row))
