"""
Exception hierarchy shared by services and routes.
"""


class InkwellError(Exception):
    """Base class for all service errors."""


class DocumentNotFoundError(InkwellError):
    pass


class ConversationNotFoundError(InkwellError):
    pass


class DocumentBusyError(InkwellError):
    """Another worker holds the processing lease for this document."""


class UnsupportedFileTypeError(InkwellError):
    pass


class EmptyDocumentError(InkwellError):
    """No text could be extracted from the document."""


class EmbeddingServiceError(InkwellError):
    pass


class GenerationServiceError(InkwellError):
    pass


class ChunkStoreError(InkwellError):
    pass
