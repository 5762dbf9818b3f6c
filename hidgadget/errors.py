from __future__ import annotations


class ChangeSetError(RuntimeError):
    """Base error for change set resolution and application."""


class DuplicateChangeError(ChangeSetError):
    pass


class CycleError(ChangeSetError):
    def __init__(self, cycles):
        self.cycles = cycles
        super().__init__(f"cycles detected: {cycles}")


class UnknownActionError(ChangeSetError):
    pass


class ProbeError(ChangeSetError):
    """The actual state of a path could not be determined."""


class ApplyError(ChangeSetError):
    def __init__(self, change, cause: BaseException):
        self.change = change
        self.cause = cause
        super().__init__(f"failed to apply {change}: {cause}")


class GadgetError(RuntimeError):
    """Error raised by the gadget facade (strict mode, lookups, UDC I/O)."""
