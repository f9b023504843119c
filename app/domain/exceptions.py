"""Domain errors raised by the recommendation services.

Route handlers translate these into HTTP status codes; nothing below the API
layer knows about HTTP.
"""


class BookNotFoundError(LookupError):
    """Raised when a requested book id is absent from the catalog."""

    def __init__(self, book_id: str):
        super().__init__(f"Book with ID {book_id} not found in catalog")
        self.book_id = book_id


class InvalidRequestError(ValueError):
    """Raised when a request is rejected before any computation happens."""
