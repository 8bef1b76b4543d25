"""Domain errors for Sticker Engine."""


class StickerEngineError(Exception):
    """Base class for all engine errors."""


class SessionUnavailable(StickerEngineError):
    """The remote service could not be reached or never became ready.

    Fatal to the job that owns the session.
    """


class InputUnavailable(StickerEngineError):
    """No interactive input surface could be located on the remote page."""


class ArtifactUnavailable(StickerEngineError):
    """No generated image could be located or downloaded for the last turn."""


class JobNotFoundError(StickerEngineError):
    """No job is registered under the requested id."""

    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class JobRunningError(StickerEngineError):
    """The job is running and cannot be removed."""

    def __init__(self, job_id: str):
        super().__init__(f"Job is running and cannot be reset: {job_id}")
        self.job_id = job_id


class InvalidTransition(StickerEngineError):
    """A job was asked to move to a state it cannot reach from its current one."""
