class ConversionError(Exception):
    """Base error for the PDF pipeline; carries an HTTP-style status code."""

    kind = "unknown"
    default_status = 500

    def __init__(self, message: str, status_code: int | None = None, details: object = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code if status_code is not None else self.default_status
        self.details = details

    def to_body(self) -> dict[str, object]:
        body: dict[str, object] = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class InvalidRequestError(ConversionError):
    kind = "validation"
    default_status = 400


class NotFoundError(ConversionError):
    kind = "not_found"
    default_status = 404


class ExpiredPayloadError(ConversionError):
    """The referenced upload is gone: never written, or swept after its grant lapsed."""

    kind = "expired_payload"
    default_status = 410


class UnconfiguredError(ConversionError):
    kind = "unconfigured"
    default_status = 500


class CorruptPayloadError(ConversionError):
    kind = "corrupt_payload"
    default_status = 500


class UpstreamError(ConversionError):
    """The renderer answered with a non-success status; status and body are passed through."""

    kind = "upstream"


class TransportError(ConversionError):
    kind = "transport"
    default_status = 502
