"""Errors raised while turning note references into paths."""


class NoteRefError(ValueError):
    """Base class for note reference failures."""


class InvalidReferenceSyntax(NoteRefError):
    def __init__(self, reference: str, reason: str):
        super().__init__(f"Invalid note reference '{reference}': {reason}")
        self.reference = reference
        self.reason = reason


class NoteNotFound(NoteRefError):
    def __init__(self, reference: str):
        super().__init__(f"Note '{reference}' not found")
        self.reference = reference


class AmbiguousReference(NoteRefError):
    def __init__(self, reference: str, candidates: list):
        super().__init__(
            f"Ambiguous note reference '{reference}': {len(candidates)} candidates found"
        )
        self.reference = reference
        self.candidates = list(candidates)
