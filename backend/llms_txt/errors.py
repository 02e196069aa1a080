"""Request-terminating errors, each rendered as a plain-text response."""


class LlmsTxtError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class NotFound(LlmsTxtError):
    status_code = 404
    message = "Not found"


class FeatureDisabled(LlmsTxtError):
    status_code = 404
    message = "llms.txt generator is disabled"


class IndexingForbidden(LlmsTxtError):
    status_code = 403
    message = "Indexing is not allowed"
