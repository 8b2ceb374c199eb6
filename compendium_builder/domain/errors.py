"""Error taxonomy for pack builds and extractions.

Every fatal condition raised by the pipeline is a ``PackError`` subclass so
the CLI can report it and exit non-zero without a traceback.
"""


class PackError(Exception):
    """Base class for fatal build and extraction errors."""
    pass


class StructuralError(PackError):
    """Malformed input: unparseable JSON, missing required keys, bad layout."""
    pass


class IntegrityError(PackError):
    """Content that parses but breaks a cross-document invariant."""
    pass


class PolicyError(PackError):
    """Content the project refuses to ship (world links, inline images)."""
    pass


class BrokenLink(PackError):
    """A link token that does not resolve against the link index."""

    def __init__(self, source: str, pack: str, token: str, detail: str = ''):
        self.source = source
        self.pack = pack
        self.token = token
        message = f"Broken link in '{source}': no document '{token}' in pack '{pack}'"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
