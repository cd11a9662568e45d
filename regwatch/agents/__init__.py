# Classification and pipeline exports
from .classifier import (
    Classifier, ClassifierAuthError, ClassifierError, ClassifierMode,
    FallbackClassifier, HeuristicClassifier, RemoteClassifier, safe_default_analysis,
)
from .orchestrator import map_analysis_to_event, run_ingestion_pipeline

__all__ = [
    # Classifiers
    "Classifier", "ClassifierAuthError", "ClassifierError", "ClassifierMode",
    "FallbackClassifier", "HeuristicClassifier", "RemoteClassifier", "safe_default_analysis",
    # Pipeline
    "map_analysis_to_event", "run_ingestion_pipeline",
]
