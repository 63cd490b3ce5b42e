class MockupError(Exception):
    """Base class for engine errors surfaced to callers."""


class MissingRequiredAsset(MockupError):
    """The base photo or the printable-area mask could not be decoded."""

    def __init__(self, name: str, source: str, reason: str = ""):
        self.name = name
        self.source = source
        self.reason = reason
        msg = f"required asset '{name}' unavailable: {source}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class DesignRejected(MockupError):
    """Design bytes that do not decode as a raster image."""
