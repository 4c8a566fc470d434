"""
Exception types raised by pysdm.

Everything derives from SDMError so a batch loop can catch one type per
image, log it and move on. Only FormatError is fatal at startup (no model
means no fitting).
"""


class SDMError(Exception):
    """Base class for all pysdm errors."""


class FormatError(SDMError):
    """Model file is malformed or dimensionally inconsistent."""


class InvalidShape(SDMError, ValueError):
    """A shape passed to alignment is not a single-column vector."""


class AlignmentError(SDMError):
    """Correspondence geometry is degenerate, no scale can be recovered."""


class NotFound(SDMError, KeyError):
    """A landmark identifier is not part of the model."""

    def __str__(self):
        # KeyError quotes its argument, we want the plain message
        return str(self.args[0]) if self.args else ''


class ExtractionError(SDMError):
    """Descriptor extraction failed or produced features of the wrong size."""


class FittingCancelled(SDMError):
    """The cancellation signal was set while the cascade was running."""
