"""Service configuration loaded from environment variables or a `.env` file."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from diabtree.decision_tree.models import TreeHyperparameters
from diabtree.logging import LogFormat, LogLevel


class Settings(BaseSettings):
    """Runtime settings for training and serving.

    Every field can be set through an environment variable prefixed with
    `DIABTREE_`, e.g. `DIABTREE_DATASET_PATH` or `DIABTREE_MAX_DEPTH`.

    Attributes:
        dataset_path (Path): CSV read once at startup.
        host (str): Bind host for the HTTP server.
        port (int): Bind port for the HTTP server.
        min_n (int): Minimum node size for a split attempt.
        max_depth (int): Maximum tree depth.
        cost_complexity (float): Relative cost-complexity pruning penalty.
        min_impurity_decrease (float): Minimum Gini decrease for a split.
        author (str): Name reported by `/info`.
        project_url (str): URL reported by `/info`.
        log_level (LogLevel): Level used when the server enables logging.
        log_format (LogFormat): Line format used when the server enables logging.
    """

    model_config = SettingsConfigDict(
        env_prefix="DIABTREE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    dataset_path: Path = Field(
        default=Path("diabetes_binary_health_indicators_BRFSS2015.csv"),
        description="CSV dataset read once at startup.",
    )
    host: str = Field(default="0.0.0.0", description="Bind host for the HTTP server.")  # noqa: S104
    port: int = Field(default=8000, ge=1, le=65535, description="Bind port for the HTTP server.")
    min_n: int = Field(default=10, ge=1, description="Minimum node size for a split attempt.")
    max_depth: int = Field(default=8, ge=0, description="Maximum tree depth; the root has depth 0.")
    cost_complexity: float = Field(default=0.001, ge=0.0, description="Relative cost-complexity pruning penalty.")
    min_impurity_decrease: float = Field(default=0.0, ge=0.0, description="Minimum Gini decrease for a split.")
    author: str = Field(default="Shohn Godboldt", description="Name reported by /info.")
    project_url: str = Field(
        default="https://github.com/Shohn-Godboldt/ST558_Final-Project/",
        description="URL reported by /info.",
    )
    log_level: LogLevel = Field(default="INFO", description="Level used when the server enables logging.")
    log_format: LogFormat = Field(default="short", description="Log line format: short, full, or json.")

    def hyperparameters(self) -> TreeHyperparameters:
        """Return the tree hyperparameters described by these settings.

        Returns:
            TreeHyperparameters: Growth and pruning controls.
        """
        return TreeHyperparameters(
            min_n=self.min_n,
            max_depth=self.max_depth,
            cost_complexity=self.cost_complexity,
            min_impurity_decrease=self.min_impurity_decrease,
        )
