"""
Error types raised by the IRF services.

The API layer maps each of these to an HTTP status in src/api/main.py.
"""


class IRFError(Exception):
    """Base class for errors raised by the IRF services"""


class ExtractionError(IRFError):
    """Invoice extraction failed (missing API key, upstream failure, unparseable response)"""


class TemplateError(IRFError):
    """
    The template's tags could not be resolved against the data map.

    Every problem found during a render is kept in ``errors`` so a whole
    template can be fixed in one pass; the message is the list joined by
    newlines.
    """

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("\n".join(self.errors))


class TemplatePackageError(IRFError):
    """The uploaded template is not a readable Word (.docx) package"""


class SessionStateError(IRFError):
    """An operation is not allowed in the session's current state"""
