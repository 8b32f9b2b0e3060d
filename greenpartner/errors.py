class EngineError(RuntimeError):
    """Base class for challenge engine failures."""


class MalformedOrder(EngineError):
    """Raised when an order record has no usable date."""


class UnknownChallengeFrequency(EngineError):
    """Raised when a challenge frequency is not daily, weekly or monthly."""

    def __init__(self, frequency) -> None:
        super().__init__(f"Unknown challenge frequency: {frequency!r}")
        self.frequency = frequency


class MissingChallengeOrUser(EngineError):
    """Raised when a user or challenge referenced by id does not exist."""


class ChallengeActionRefused(EngineError):
    """Raised when a join/complete request is not allowed in the current state."""


class ConcurrentUpdateError(EngineError):
    """Raised when the user aggregate kept changing underneath a commit."""
