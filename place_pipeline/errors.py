from __future__ import annotations


class PipelineError(Exception):
    """Base class for errors raised by place-pipeline."""


class SourceError(PipelineError):
    """A top-level import input could not be read or parsed."""


class UnsupportedFormatError(SourceError):
    def __init__(self, path: str) -> None:
        super().__init__(f"Unsupported format for file: {path}")
        self.path = path


class StorageError(PipelineError):
    pass


class EnrichmentError(PipelineError):
    pass


class PlaceNotFoundError(PipelineError):
    def __init__(self, place_id: str) -> None:
        super().__init__(f"Place not found: {place_id}")
        self.place_id = place_id
