"""Configuration management for the POLR parameter server."""

from dataclasses import dataclass, fields
from typing import Optional, Dict, Any
import json

from polr_ps.exceptions import ConfigurationError


# camelCase option names used by job configuration files
_OPTION_ALIASES = {
    "featureVectorSize": "feature_vector_size",
    "numCategories": "num_categories",
    "batchSize": "batch_size",
    "recordFactoryIdentifier": "record_factory",
    "inputSplitLocation": "input_split_location",
    "numRounds": "num_rounds",
    "endOfDataPolicy": "end_of_data_policy",
    "learningRate": "learning_rate",
    "lambda": "lambda_",
}

END_OF_DATA_POLICIES = ("stop", "wrap")
OPTIMIZERS = ("sgd", "adagrad")
INIT_STRATEGIES = ("zeros", "normal")


@dataclass
class POLRConfig:
    """
    Configuration shared by the master and worker drivers.

    Attributes:
        feature_vector_size: Number of features per record
        num_categories: Number of target categories
        batch_size: Records consumed by a worker per round
        record_factory: Registered identifier of the record parser
        input_split_location: Path or URI of the worker's input split

        num_rounds: Rounds to run (0 = until every split is exhausted)
        end_of_data_policy: "stop" to end on exhausted splits, "wrap" to rewind

        learning_rate: Step size of the local optimizer
        lambda_: L2 regularization applied by the local optimizer
        optimizer: Local optimizer ("sgd", "adagrad")
        init_strategy: Initial parameter vector ("zeros", "normal")
        init_scale: Scale for normal initialization
        seed: Random seed for initialization

        receive_timeout_seconds: Bound on blocking queue receives
        checkpoint_dir: Directory for the final model checkpoint
        log_every_n_rounds: Progress log interval
    """

    # Model layout
    feature_vector_size: int = 0
    num_categories: int = 0
    batch_size: int = 0

    # Input
    record_factory: str = ""
    input_split_location: Optional[str] = None

    # Run control
    num_rounds: int = 30
    end_of_data_policy: str = "stop"

    # Local model settings
    learning_rate: float = 0.01
    lambda_: float = 0.0
    optimizer: str = "sgd"
    init_strategy: str = "zeros"
    init_scale: float = 0.01
    seed: Optional[int] = None

    # Coordination settings
    receive_timeout_seconds: float = 300.0

    # Storage settings
    checkpoint_dir: Optional[str] = None

    # Logging
    log_every_n_rounds: int = 10

    @property
    def vector_length(self) -> int:
        """Length of every parameter vector exchanged in a run."""
        return self.feature_vector_size * self.num_categories

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary for serialization."""
        return {
            "feature_vector_size": self.feature_vector_size,
            "num_categories": self.num_categories,
            "batch_size": self.batch_size,
            "record_factory": self.record_factory,
            "input_split_location": self.input_split_location,
            "num_rounds": self.num_rounds,
            "end_of_data_policy": self.end_of_data_policy,
            "learning_rate": self.learning_rate,
            "lambda_": self.lambda_,
            "optimizer": self.optimizer,
            "init_strategy": self.init_strategy,
            "init_scale": self.init_scale,
            "seed": self.seed,
            "receive_timeout_seconds": self.receive_timeout_seconds,
            "checkpoint_dir": self.checkpoint_dir,
            "log_every_n_rounds": self.log_every_n_rounds,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "POLRConfig":
        """
        Create config from dictionary.

        Accepts both the snake_case field names and the camelCase option
        names of job configuration files. Unknown keys are ignored.
        """
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            name = _OPTION_ALIASES.get(key, key)
            if name in known:
                kwargs[name] = value
        return cls(**kwargs)

    def to_json(self) -> str:
        """Serialize config to JSON string."""
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_json(cls, json_str: str) -> "POLRConfig":
        """Create config from JSON string."""
        return cls.from_dict(json.loads(json_str))

    def validate(self, require_input: bool = False) -> None:
        """
        Validate configuration values.

        Args:
            require_input: Also require the worker-side input fields

        Raises:
            ConfigurationError: naming the first offending field
        """
        for name in ("feature_vector_size", "num_categories", "batch_size"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"{name} must be an integer, got {value!r}")
            if value < 1:
                raise ConfigurationError(f"{name} must be positive, got {value}")
        if require_input:
            if not self.record_factory:
                raise ConfigurationError("record_factory is required")
            if not self.input_split_location:
                raise ConfigurationError("input_split_location is required")
        if self.num_rounds < 0:
            raise ConfigurationError("num_rounds must be non-negative")
        if self.end_of_data_policy not in END_OF_DATA_POLICIES:
            raise ConfigurationError(
                f"Invalid end_of_data_policy: {self.end_of_data_policy}"
            )
        if self.num_rounds == 0 and self.end_of_data_policy == "wrap":
            raise ConfigurationError(
                "num_rounds must be set when end_of_data_policy is 'wrap'"
            )
        if self.optimizer not in OPTIMIZERS:
            raise ConfigurationError(f"Invalid optimizer: {self.optimizer}")
        if self.init_strategy not in INIT_STRATEGIES:
            raise ConfigurationError(f"Invalid init_strategy: {self.init_strategy}")
        if self.learning_rate <= 0:
            raise ConfigurationError("learning_rate must be positive")
        if self.lambda_ < 0:
            raise ConfigurationError("lambda_ must be non-negative")
        if self.receive_timeout_seconds <= 0:
            raise ConfigurationError("receive_timeout_seconds must be positive")
