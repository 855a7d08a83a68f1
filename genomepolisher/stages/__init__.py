"""
Pipeline stages for genomepolisher.

Stages are organized into:
- polishing_stages: Racon, Medaka and Pilon
- output_stages: Publishing, reporting and cleanup
"""

from .output_stages import CleanupStage, FinalizeStage, PolishingReportStage
from .polishing_stages import (
    IterativePolishingStage,
    MedakaConsensusStage,
    PilonIterationStage,
    RaconIterationStage,
)

__all__ = [
    "IterativePolishingStage",
    "RaconIterationStage",
    "MedakaConsensusStage",
    "PilonIterationStage",
    "FinalizeStage",
    "PolishingReportStage",
    "CleanupStage",
]
