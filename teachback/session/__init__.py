from teachback.session.coordinator import (
    SessionConfig,
    SessionCoordinator,
    SessionStatus,
    TeachingStrategy,
    TurnOutcome,
    TurnSignal,
)

__all__ = [
    "SessionConfig",
    "SessionCoordinator",
    "SessionStatus",
    "TeachingStrategy",
    "TurnOutcome",
    "TurnSignal",
]
