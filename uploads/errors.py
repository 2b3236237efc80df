"""
Error taxonomy for the upload queue.

Classification errors are raised synchronously out of submit(). Everything
that happens after a task has been admitted is captured into the task's
FAILED status and notes instead of being raised to the submitter.
"""


class MediaQueueError(Exception):
    """Base class for all upload queue errors."""

    error_code = 'error'

    def __init__(self, message='An error occurred', error_code=None):
        self.message = message
        if error_code:
            self.error_code = error_code
        super().__init__(self.message)

    def as_note(self):
        """Human-readable form stored in TaskRecord.notes"""
        return f'{type(self).__name__}: {self.message}'


class ClassificationError(MediaQueueError):
    """The upload was rejected before a task was created."""


class UnrecognizedType(ClassificationError):
    """No known file signature matches the leading bytes."""

    error_code = 'unrecognized_type'

    def __init__(self, message='File type not recognized'):
        super().__init__(message)


class UnsupportedType(ClassificationError):
    """The signature is known but the type is not an image or a video."""

    error_code = 'unsupported_type'

    def __init__(self, message='File type is not supported', mime_type=None):
        super().__init__(message)
        self.mime_type = mime_type


class InvalidMedia(MediaQueueError):
    """Dimensions of the source (or its still frame) could not be read."""

    error_code = 'invalid_media'


class EncodeFailure(MediaQueueError):
    """An encoder subprocess exited with an error."""

    error_code = 'encode_failure'

    def __init__(self, message='Encoder failed', returncode=None, stderr=''):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class EncodeCancelled(EncodeFailure):
    """The pipeline was cancelled while encoders were running."""

    error_code = 'encode_cancelled'

    def __init__(self, message='Processing was cancelled'):
        super().__init__(message)


class RelocationFailure(MediaQueueError):
    """Not every rendition could be moved into permanent storage."""

    error_code = 'relocation_failure'


class OrphanedByRestart(MediaQueueError):
    """Task was left non-terminal by a previous process instance."""

    error_code = 'orphaned_by_restart'

    def __init__(self, message='Marked as failed and cleaned up after server restart'):
        super().__init__(message)


class InvalidTransition(MediaQueueError):
    """Retry or cancel was requested for a task in the wrong state."""

    error_code = 'invalid_transition'
