class FormValidationError(ValueError):
    """Required form input missing or unusable; raised before any request is built."""


class GenerationError(Exception):
    """Uniform failure signal for one generation attempt.

    ``message`` is safe to show to the user; ``detail`` carries the diagnostic
    for operator logs only.
    """

    kind = "generation_error"

    def __init__(self, message: str, detail: str = ""):
        super().__init__(message)
        self.message = message
        self.detail = detail or message


class ServiceError(GenerationError):
    kind = "service_error"


class ContractError(GenerationError):
    kind = "contract_error"


class EmptyResponse(ContractError):
    kind = "empty_response"


class MalformedResponse(ContractError):
    kind = "malformed_response"


class IncompleteResponse(ContractError):
    kind = "incomplete_response"


class StorageError(Exception):
    """Durable storage read or write failed."""


class ImageUploadError(ValueError):
    pass


class ImageTooLargeError(ImageUploadError):
    pass


class UnsupportedImageError(ImageUploadError):
    pass
