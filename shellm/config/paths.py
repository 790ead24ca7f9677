from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class ShellmPaths:
    """Centralizes filesystem paths used by shellm."""

    home: Path = field(default_factory=Path.home)

    @property
    def global_dir(self) -> Path:
        return self.home / ".shellm"

    @property
    def config_file(self) -> Path:
        return self.global_dir / "shellm.json"

    @property
    def logs_dir(self) -> Path:
        return self.global_dir / "logs"

    @property
    def input_history_file(self) -> Path:
        return self.global_dir / "input_history"
