"""
Error taxonomy for the generation layer.

Every failure surfaced by the orchestrator is a StudioError subclass. `kind`
names the failure for callers and `status_code` is the HTTP status the API
layer answers with.
"""


class StudioError(Exception):
    kind = "BackendError"
    status_code = 502
    default_message = "Generation failed."

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class BackendError(StudioError):
    """Backend failure that does not fit a more specific kind."""


class MissingCredentialError(StudioError):
    kind = "MissingCredential"
    status_code = 401
    default_message = "No API key configured. Set a key in settings or provide GEMINI_API_KEY."


class InvalidCredentialError(StudioError):
    kind = "InvalidCredential"
    status_code = 401
    default_message = "API key error: the key is not valid."


class MissingSubjectError(StudioError):
    kind = "MissingSubject"
    status_code = 422
    default_message = "A subject (person) image is required."


class MissingGarmentError(StudioError):
    kind = "MissingGarment"
    status_code = 422
    default_message = "Provide at least a garment or an accessory image."


class NoResultError(StudioError):
    kind = "NoResult"
    default_message = "The API returned no result."


class SafetyBlockedError(StudioError):
    kind = "SafetyBlocked"
    status_code = 422
    default_message = (
        "The image was blocked by the safety filter. "
        "Please try again with a different, less sensitive image."
    )


class GenerationInterruptedError(StudioError):
    kind = "GenerationInterrupted"
    default_message = (
        "Image generation was interrupted (IMAGE_OTHER). The model struggled with the details "
        "or hit a hidden policy. Try again with a clearer image."
    )


class GenerationReturnedTextError(StudioError):
    kind = "GenerationReturnedText"
    default_message = "The AI replied with text instead of an image."

    def __init__(self, text):
        self.text = text
        super().__init__(f"AI response: {text}")


class NoImageDataError(StudioError):
    kind = "NoImageData"
    default_message = "No image data found in the AI response."


class PermissionDeniedError(StudioError):
    kind = "PermissionDenied"
    status_code = 403
    default_message = (
        "Error 403 (Permission Denied): this model requires an API key from a paid project, "
        "or your quota is exhausted."
    )


class ModelNotFoundError(StudioError):
    kind = "ModelNotFound"
    status_code = 404
    default_message = "Error 404: model not found. Check the access rights of your API key."


class TransientBackendError(StudioError):
    kind = "TransientBackendError"
    status_code = 503
    default_message = "The model is temporarily unavailable (503 overloaded)."


class MalformedStructuredResponseError(StudioError):
    kind = "MalformedStructuredResponse"
    default_message = "The AI returned malformed JSON."


def as_studio_error(exc):
    """
    Map an arbitrary exception onto the taxonomy by inspecting its message.
    StudioErrors pass through unchanged.
    """
    if isinstance(exc, StudioError):
        return exc

    message = str(exc) or ""
    if "403" in message or "PERMISSION_DENIED" in message:
        return PermissionDeniedError()
    if "404" in message or "not found" in message:
        return ModelNotFoundError()
    if "API key" in message:
        return InvalidCredentialError()
    return BackendError(message or "Processing failed.")
