"""
Model-side components of the gesture stream.

Provides:
    - FeatureExtractor: 21-point landmarks → normalized feature vector
    - ProbabilityModel / SoftmaxModel / CallableModel: classifier backends
    - load_model: load a SoftmaxModel weights archive
"""

from models.feature_extractor import FeatureExtractor
from models.probability_model import ProbabilityModel, SoftmaxModel, CallableModel, load_model

__all__ = [
    "FeatureExtractor",
    "ProbabilityModel",
    "SoftmaxModel",
    "CallableModel",
    "load_model",
]
