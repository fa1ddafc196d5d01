from .adherence import (
    AdherenceEngine,
    AdherenceReport,
    CompletedSession,
    TrainingDayDefinition,
)

__all__ = [
    "AdherenceEngine",
    "AdherenceReport",
    "CompletedSession",
    "TrainingDayDefinition",
]
