"""Record-level and source-level errors raised while building the catalog.

Fetch failures (network, timeout, block) live with the HTTP client in
``boardscout.ingest.http_client``.
"""


class CatalogError(Exception):
    """Base class for catalog pipeline errors."""

    pass


class IdentityError(CatalogError):
    """Raised when a record's brand or model cannot be resolved to a board key."""

    pass


class ValidationError(CatalogError):
    """Raised when a record carries a malformed numeric field (price, stock)."""

    pass


class ParseError(CatalogError):
    """Raised by adapters when a source returns an unexpected shape."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source
