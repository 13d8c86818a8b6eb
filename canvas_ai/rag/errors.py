"""Error taxonomy for the answering pipeline.

Optional stages catch ``ProviderError`` locally and contribute nothing.
``ParseError`` sends the action decision to the heuristic fallback.
"""


class RagError(Exception):
    """Base class for answering pipeline errors."""


class ProviderError(RagError):
    """An external collaborator (LLM, embedding, search, store) failed.

    Attributes:
        stage: Pipeline stage that made the call (e.g. "embedding", "web_search")
        message: Human-readable failure description
    """

    def __init__(self, stage: str, message: str):
        self.stage = stage
        self.message = message
        super().__init__(f"[{stage}] {message}")


class ParseError(RagError):
    """An LLM response could not be parsed into the expected structure.

    Attributes:
        raw: The unparsed model output
        reason: What was wrong with it
    """

    def __init__(self, reason: str, raw: str = ""):
        self.reason = reason
        self.raw = raw
        super().__init__(reason)


class EmptyResultError(RagError):
    """Neither knowledge nor web evidence is available for a request."""
