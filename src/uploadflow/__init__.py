"""UploadFlow: media upload wizard backend.

Thin FastAPI routes over an object store, a SQLAlchemy catalog and an
ffmpeg trim+watermark pipeline, plus an async client that drives them.
"""
