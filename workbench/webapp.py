"""HTTP front end for resumable chunked uploads, with a static file root."""

from __future__ import annotations

import argparse
import logging
import os
from typing import Optional, Sequence

from flask import Flask, jsonify, request

from workbench.upload import ChunkStore, UploadError

log = logging.getLogger(__name__)

DEFAULT_BODY_LIMIT = 4 * 1024 * 1024
DEFAULT_PORT = 3080


def create_app(store: Optional[ChunkStore] = None, static_folder: str = "public") -> Flask:
    """Build the application serving the upload routes and ``static_folder`` at ``/``."""
    if store is None:
        store = ChunkStore()
    app = Flask(__name__, static_folder=os.path.abspath(static_folder), static_url_path="")
    app.config["MAX_CONTENT_LENGTH"] = DEFAULT_BODY_LIMIT

    @app.errorhandler(UploadError)
    def upload_failed(exc: UploadError):
        return jsonify({"error": exc.message}), exc.status

    @app.get("/upload/check")
    def check():
        result = store.check(
            request.args.get("hash", ""),
            request.args.get("filename", ""),
            request.args.get("totalChunks", ""),
        )
        return jsonify(result)

    @app.post("/upload/chunk")
    def upload_chunk():
        chunk = request.files.get("chunk")
        if chunk is None:
            log.error("failed to get chunk file")
            return jsonify({"error": "chunk is required"}), 400
        log.info("received chunk file: %s", chunk.filename)
        result = store.save_chunk(
            request.form.get("hash", ""), request.form.get("index", ""), chunk.stream
        )
        return jsonify(result)

    @app.post("/upload/merge")
    def merge():
        info = request.get_json(silent=True) if request.is_json else request.form.to_dict()
        if not isinstance(info, dict):
            return jsonify({"error": "invalid request body"}), 400
        file_hash = info.get("hash") or ""
        filename = info.get("filename") or ""
        if not isinstance(file_hash, str) or not isinstance(filename, str):
            return jsonify({"error": "invalid request body"}), 400
        log.info(
            "starting merge for file: %s, hash: %s, size: %s",
            filename, file_hash, info.get("size"),
        )
        return jsonify(store.merge(file_hash, filename))

    @app.get("/")
    def index():
        return app.send_static_file("index.html")

    return app


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the upload server."""
    parser = argparse.ArgumentParser(description="Serve resumable chunked uploads.")
    parser.add_argument("--host", default="0.0.0.0", help="address to listen on")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="port to listen on")
    parser.add_argument("--data-dir", default="data", help="where uploads are stored")
    parser.add_argument("--static", default="public", help="directory served at /")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    app = create_app(ChunkStore(args.data_dir), args.static)
    app.run(host=args.host, port=args.port)
    return 0