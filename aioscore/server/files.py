"""
Storage of uploaded MP3 files and the HTTP endpoints around it.

This is a thin collaborator of the MP3 scheduler: it checks and stores uploads,
serves them back to players and reports the resulting slot changes to the
scheduler. Files live in a plain directory and are not kept across restarts.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import av
from aiohttp import BodyPartReader, web
from av import logging as av_logging
from av.error import FFmpegError

if TYPE_CHECKING:
    from .mp3 import Mp3SyncScheduler

DEFAULT_MAX_UPLOAD_BYTES = 50 * 1024 * 1024
MP3_CONTENT_TYPES = frozenset({"audio/mpeg", "audio/mp3"})
MP3_EXTENSION = ".mp3"
READ_CHUNK_SIZE = 64 * 1024

logger = logging.getLogger(__name__)


class UploadRejectedError(Exception):
    """Raised when an upload is not an acceptable MP3 file."""

    def __init__(self, reason: str, status: int = 400) -> None:
        """Initialize with a reason and the HTTP status to answer with."""
        super().__init__(reason)
        self.reason = reason
        self.status = status


@dataclass(frozen=True)
class StoredFile:
    """An uploaded file on disk."""

    file_id: str
    file_name: str
    path: Path
    duration: float | None
    """Duration in seconds as probed at upload, None if the container does not tell."""


def probe_mp3(path: Path) -> float | None:
    """
    Check that a file is decodable MP3 audio and return its duration in seconds.

    Raises:
        UploadRejectedError: If the file is not MP3 audio.
    """
    try:
        with av_logging.Capture() as logs, av.open(str(path)) as container:
            format_names = set(container.format.name.split(","))
            if "mp3" not in format_names:
                raise UploadRejectedError(f"Unsupported format {container.format.name}")
            if not container.streams.audio:
                raise UploadRejectedError("File contains no audio stream")
            duration = container.duration / av.time_base if container.duration else None
    except FFmpegError as err:
        raise UploadRejectedError("File is not decodable audio") from err
    for log in logs:
        logger.debug("Probing %s log from av: %s", path.name, log)
    return duration


class FileStore:
    """Directory of uploaded files addressed by generated file ids."""

    _directory: Path
    _max_bytes: int
    _files: dict[str, StoredFile]

    def __init__(self, directory: Path, max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES) -> None:
        """Initialize the store, creating the directory if needed."""
        self._directory = directory
        self._max_bytes = max_bytes
        self._files = {}
        directory.mkdir(parents=True, exist_ok=True)

    @property
    def max_bytes(self) -> int:
        """Largest accepted upload in bytes."""
        return self._max_bytes

    @staticmethod
    def check_type(file_name: str, content_type: str | None) -> None:
        """
        Reject uploads that are neither named .mp3 nor declared as audio/mpeg.

        Raises:
            UploadRejectedError: If the upload is not declared as MP3.
        """
        if file_name.lower().endswith(MP3_EXTENSION):
            return
        if content_type is not None and content_type.lower() in MP3_CONTENT_TYPES:
            return
        raise UploadRejectedError("Only MP3 files are accepted")

    def save(self, file_name: str, data: bytes) -> StoredFile:
        """
        Write and probe an upload. Blocking, run it in an executor.

        Raises:
            UploadRejectedError: If the data is too large or not MP3 audio.
        """
        if len(data) > self._max_bytes:
            raise UploadRejectedError("File too large", status=413)
        if not data:
            raise UploadRejectedError("Empty file")
        file_id = uuid.uuid4().hex
        path = self._directory / f"{file_id}{MP3_EXTENSION}"
        path.write_bytes(data)
        try:
            duration = probe_mp3(path)
        except UploadRejectedError:
            path.unlink(missing_ok=True)
            raise
        stored = StoredFile(
            file_id=file_id, file_name=Path(file_name).name, path=path, duration=duration
        )
        self._files[file_id] = stored
        logger.info("Stored %s as %s (%d bytes)", stored.file_name, file_id, len(data))
        return stored

    def get(self, file_id: str) -> StoredFile | None:
        """Get a stored file by id."""
        return self._files.get(file_id)

    def delete(self, file_id: str) -> bool:
        """Delete a stored file, returns False if it does not exist."""
        stored = self._files.pop(file_id, None)
        if stored is None:
            return False
        stored.path.unlink(missing_ok=True)
        logger.info("Deleted file %s", file_id)
        return True

    def clear(self) -> None:
        """Delete every stored file."""
        for file_id in list(self._files):
            self.delete(file_id)


class FileRoutes:
    """aiohttp handlers for uploading, fetching and deleting slot files."""

    def __init__(self, store: FileStore, scheduler: Mp3SyncScheduler) -> None:
        """Initialize the handlers for a store and the scheduler it feeds."""
        self._store = store
        self._scheduler = scheduler

    def routes(self) -> list[web.RouteDef]:
        """Route table to add to an aiohttp application."""
        return [
            web.post("/api/upload/slot/{slot_index}", self.upload),
            web.get("/api/files/{file_id}", self.fetch),
            web.delete("/api/slot/{slot_index}/file", self.delete),
        ]

    def _slot_index(self, request: web.Request) -> int:
        try:
            slot_index = int(request.match_info["slot_index"])
        except ValueError:
            slot_index = -1
        if self._scheduler.get_slot(slot_index) is None:
            raise web.HTTPNotFound(
                text='{"error": "Unknown slot"}', content_type="application/json"
            )
        return slot_index

    async def _read_upload(self, request: web.Request) -> tuple[str, bytes]:
        reader = await request.multipart()
        while (part := await reader.next()) is not None:
            if not isinstance(part, BodyPartReader) or part.name != "file":
                continue
            file_name = part.filename or ""
            self._store.check_type(file_name, part.headers.get("Content-Type"))
            data = bytearray()
            while chunk := await part.read_chunk(READ_CHUNK_SIZE):
                data.extend(chunk)
                if len(data) > self._store.max_bytes:
                    raise UploadRejectedError("File too large", status=413)
            return file_name, bytes(data)
        raise UploadRejectedError("No file uploaded")

    async def upload(self, request: web.Request) -> web.Response:
        """Store an MP3 upload and assign it to a slot, replacing its previous file."""
        slot_index = self._slot_index(request)
        try:
            file_name, data = await self._read_upload(request)
            stored = await asyncio.get_running_loop().run_in_executor(
                None, self._store.save, file_name, data
            )
        except UploadRejectedError as err:
            logger.info("Rejected upload to slot %d: %s", slot_index, err.reason)
            return web.json_response({"error": err.reason}, status=err.status)
        superseded = self._scheduler.assign_file(slot_index, stored.file_id, stored.file_name)
        if superseded is not None:
            self._store.delete(superseded)
        return web.json_response(
            {
                "slot_index": slot_index,
                "file_id": stored.file_id,
                "file_name": stored.file_name,
                "duration": stored.duration,
            }
        )

    async def fetch(self, request: web.Request) -> web.StreamResponse:
        """Serve a stored file."""
        stored = self._store.get(request.match_info["file_id"])
        if stored is None:
            return web.json_response({"error": "File not found"}, status=404)
        return web.FileResponse(stored.path, headers={"Content-Type": "audio/mpeg"})

    async def delete(self, request: web.Request) -> web.Response:
        """Remove the file of a slot."""
        slot_index = self._slot_index(request)
        removed = self._scheduler.remove_file(slot_index)
        if removed is None:
            return web.json_response({"error": "Slot has no file"}, status=404)
        self._store.delete(removed)
        return web.json_response({"slot_index": slot_index, "file_id": removed})
