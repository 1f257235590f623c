"""Custom exceptions for terrain tile generation."""


class TerrainError(Exception):
    """Base exception for terrain errors."""

    pass


class ConfigurationError(TerrainError):
    """Raised when configuration is invalid, before any work starts."""

    pass


class GenerationInProgressError(TerrainError):
    """Raised when generate is called while a generation is running."""

    pass


class WorkerFailure(TerrainError):
    """Raised when a parallel unit of a stage fails.

    Carries the stage name and the band (or batch) index so the caller
    can report and retry the whole pipeline.
    """

    def __init__(self, stage: str, index: int, message: str = ""):
        self.stage = stage
        self.index = index
        detail = f": {message}" if message else ""
        super().__init__(f"{stage} failed in unit {index}{detail}")


class DegenerateDropletError(TerrainError):
    """Raised inside erosion when a droplet's arithmetic stops being finite."""

    pass


class GenerationCancelled(Exception):
    """Control signal: the pipeline observed its cancellation token.

    Not a TerrainError; callers see it as a cancelled outcome.
    """

    def __init__(self, stage: str):
        self.stage = stage
        super().__init__(f"generation cancelled during {stage}")
