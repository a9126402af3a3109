"""Parameter vector and worker-local model."""

from polr_ps.model.parameter_vector import ParameterVector
from polr_ps.model.local_model import LocalModel, evaluate

__all__ = ["ParameterVector", "LocalModel", "evaluate"]
