"""Resumable chunked uploads: chunk bookkeeping, storage and merging with MD5 verification.

Layout under the store root::

    <root>/<hash>/<filename>           merged files
    <root>/chunks/<hash>/<index>       uploaded chunks
    <root>/chunks/<hash>/status        one byte per chunk, 1 once uploaded
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
import shutil
import threading
from pathlib import Path
from typing import BinaryIO, Optional, Union

log = logging.getLogger(__name__)

STATUS_FILE = "status"
_BLOCK = 64 * 1024
_INTEGER = re.compile(r"[+-]?[0-9]+")
_LEADING_INTEGER = re.compile(r"\s*([+-]?[0-9]+)")


class UploadError(Exception):
    """An upload request failed; ``status`` is the HTTP status that fits it."""

    def __init__(self, message: str, status: int = 500) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


def _parse_int(value: Union[int, str, None], message: str) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and _INTEGER.fullmatch(value):
        return int(value)
    raise UploadError(message, 400)


def _chunk_sort_key(name: str) -> int:
    match = _LEADING_INTEGER.match(name)
    return int(match.group(1)) if match else 0


class ChunkStore:
    """Stores file chunks on disk and merges them into verified files."""

    def __init__(self, root: Union[str, os.PathLike] = "data") -> None:
        self.root = Path(root)
        self.chunk_root = self.root / "chunks"
        for directory in (self.root, self.chunk_root):
            directory.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._merging: set[str] = set()

    def file_path(self, file_hash: str, filename: str) -> Path:
        """Where the merged file for ``file_hash`` is stored."""
        return self.root / file_hash / filename

    def _chunk_dir(self, file_hash: str) -> Path:
        return self.chunk_root / file_hash

    def _status_path(self, file_hash: str) -> Path:
        return self._chunk_dir(file_hash) / STATUS_FILE

    def uploaded_chunks(self, file_hash: str) -> Optional[list[int]]:
        """Indices of the chunks recorded as uploaded, or ``None`` if there are none."""
        status_path = self._status_path(file_hash)
        if not status_path.exists():
            return None
        data = status_path.read_bytes()
        chunks = [index for index, flag in enumerate(data) if flag == 1]
        return chunks or None

    def check(self, file_hash: str, filename: str, total_chunks: Union[int, str, None]) -> dict:
        """Report whether the file exists and which chunks are already uploaded.

        For a file not yet merged this prepares its chunk directory and a
        status file of ``total_chunks`` bytes.
        """
        if not file_hash or not filename:
            raise UploadError("hash and filename are required", 400)

        if self.file_path(file_hash, filename).exists():
            return {"exists": True, "uploadedChunks": None}

        total = _parse_int(total_chunks, "invalid totalChunks")
        if total < 0:
            raise UploadError("invalid totalChunks", 400)

        try:
            self._chunk_dir(file_hash).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise UploadError("failed to create chunk directory") from exc

        status_path = self._status_path(file_hash)
        if not status_path.exists():
            try:
                status_path.write_bytes(bytes(total))
            except OSError as exc:
                raise UploadError("failed to create status file") from exc

        try:
            uploaded = self.uploaded_chunks(file_hash)
        except OSError as exc:
            raise UploadError("failed to read chunk status") from exc

        return {"exists": False, "uploadedChunks": uploaded}

    def save_chunk(self, file_hash: str, index: Union[int, str, None], stream: BinaryIO) -> dict:
        """Store one chunk read from ``stream`` and mark it uploaded."""
        if not file_hash:
            raise UploadError("hash is required", 400)

        chunk_dir = self._chunk_dir(file_hash)
        try:
            chunk_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise UploadError("failed to create chunk directory") from exc

        chunk_index = _parse_int(index, "invalid chunk index")

        try:
            dst = open(chunk_dir / str(chunk_index), "wb")
        except OSError as exc:
            raise UploadError("failed to create chunk file") from exc
        with dst:
            try:
                shutil.copyfileobj(stream, dst, _BLOCK)
            except (BrokenPipeError, ConnectionError, EOFError) as exc:
                raise UploadError("connection interrupted, please retry") from exc
            except OSError as exc:
                raise UploadError("failed to save chunk file") from exc
            try:
                dst.flush()
            except OSError as exc:
                raise UploadError("failed to flush chunk file") from exc

        try:
            with open(self._status_path(file_hash), "r+b") as status:
                status.seek(chunk_index, os.SEEK_SET)
                status.write(b"\x01")
        except (OSError, ValueError) as exc:
            raise UploadError("failed to update chunk status") from exc

        return {"success": True}

    def merge(self, file_hash: str, filename: str) -> dict:
        """Join the chunks in index order and check the result's MD5 against ``file_hash``.

        On success the chunks are deleted; on a mismatch the merged file is.
        """
        if not file_hash or not filename:
            raise UploadError("hash and filename are required", 400)

        with self._lock:
            if file_hash in self._merging:
                raise UploadError("file is being processed", 409)
            self._merging.add(file_hash)
        try:
            return self._merge(file_hash, filename)
        finally:
            with self._lock:
                self._merging.discard(file_hash)

    def _merge(self, file_hash: str, filename: str) -> dict:
        chunk_dir = self._chunk_dir(file_hash)
        if not chunk_dir.exists():
            raise UploadError("no chunks found", 400)

        try:
            entries = list(os.scandir(chunk_dir))
        except OSError as exc:
            raise UploadError("failed to read chunks") from exc
        if not entries:
            raise UploadError("no chunks found", 400)

        names = sorted(
            (entry.name for entry in entries if not entry.is_dir() and entry.name != STATUS_FILE),
            key=_chunk_sort_key,
        )

        try:
            (self.root / file_hash).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise UploadError("failed to create file directory") from exc

        dst_path = self.file_path(file_hash, filename)
        try:
            digest = self._write_merged(dst_path, chunk_dir, names)
        except UploadError:
            dst_path.unlink(missing_ok=True)
            raise

        log.info("verifying file hash: expected %s, actual %s", file_hash, digest)
        if digest != file_hash:
            log.error("file hash verification failed for %s", filename)
            dst_path.unlink(missing_ok=True)
            raise UploadError(f"file hash mismatch: expected {file_hash}, got {digest}", 400)

        log.info("file %s merged successfully", filename)
        shutil.rmtree(chunk_dir, ignore_errors=True)
        return {"success": True}

    @staticmethod
    def _write_merged(dst_path: Path, chunk_dir: Path, names: list[str]) -> str:
        try:
            dst = open(dst_path, "wb")
        except OSError as exc:
            raise UploadError("failed to create merged file") from exc

        hasher = hashlib.md5()
        with dst:
            for number, name in enumerate(names, start=1):
                chunk_path = chunk_dir / name
                try:
                    src = open(chunk_path, "rb")
                except OSError as exc:
                    log.error("failed to open chunk file %s: %s", chunk_path, exc)
                    raise UploadError("failed to open chunk file") from exc
                written = 0
                try:
                    with src:
                        for block in iter(lambda: src.read(_BLOCK), b""):
                            dst.write(block)
                            hasher.update(block)
                            written += len(block)
                except OSError as exc:
                    log.error("failed to copy chunk data from %s: %s", chunk_path, exc)
                    raise UploadError("failed to copy chunk data") from exc
                log.info("processed chunk %d/%d: size=%d", number, len(names), written)
        return hasher.hexdigest()