# chat_archiver/errors.py
"""Exceptions raised by the archiver core."""


class ArchiverError(Exception):
    """Base class for every error the archiver raises on purpose."""


class ConfigurationError(ArchiverError):
    """A channel is missing from the directory, or the directory itself is invalid."""


class SourceAcquisitionError(ArchiverError):
    """The extraction source could not be opened or authenticated."""


class ExtractionError(ArchiverError):
    """Pulling a batch from, or advancing, an open source failed."""


class StorageError(ArchiverError):
    """The database rejected an operation."""


class JobNotFoundError(ArchiverError):
    def __init__(self, job_id: int):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class InvalidJobStateError(ArchiverError):
    def __init__(self, job_id: int, current: str, requested: str):
        self.job_id = job_id
        self.current = current
        self.requested = requested
        super().__init__(f"Job {job_id} cannot move from '{current}' to '{requested}'")
