"""
Error taxonomy for ingestion and generation
"""


class StudyLabError(Exception):
    """Base class for all application errors"""


class ValidationError(StudyLabError):
    """Generation config rejected before any job is created"""


class ExtractionError(StudyLabError):
    """Uploaded file is unsupported or could not be read"""


class ModelRequestError(StudyLabError):
    """Completion service call failed or returned an unusable response"""


class SchemaValidationError(StudyLabError):
    """A generated question or flashcard does not have the required shape"""


class InsufficientContentError(StudyLabError):
    """Target count could not be reached from the available content"""


class GenerationTimeoutError(StudyLabError):
    """Job exceeded its wall-clock budget"""


class JobConflictError(StudyLabError):
    """A worker already owns this job id"""
