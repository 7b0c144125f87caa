from dataclasses import dataclass
from pathlib import Path
import enum
from typing import TypeAlias

TargetTriple: TypeAlias = str
EnvVarKey: TypeAlias = str


class ProvisioningError(Exception):
    pass


class ToolchainManagerMissing(ProvisioningError):
    """A program we need but will never install ourselves is not on $PATH."""

    def __init__(self, tool: str, install_url: str):
        super().__init__(f"{tool} is not installed, or is not available on your $PATH")
        self.tool = tool
        self.install_url = install_url


class EnvironmentBrokenError(ProvisioningError):
    pass


class UnsupportedTargetError(ProvisioningError):
    pass


@dataclass(frozen=True)
class ToolStatus:
    name: str
    detected_version: str | None
    installed: bool


class EnvVarSource(enum.Enum):
    EXPLICIT_OVERRIDE = "explicit-override"
    DISCOVERED_ON_PATH = "discovered-on-path"
    DISCOVERED_FROM_BUNDLE = "discovered-from-bundle"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class EnvVarSpec:
    key: EnvVarKey
    resolved_value: str | None
    source: EnvVarSource

    @property
    def resolved(self) -> bool:
        return self.source is not EnvVarSource.UNRESOLVED


@dataclass
class DependencyBundle:
    target_triple: TargetTriple
    remote_url: str
    # Where the bundle lives once extracted; local_path is only set when it does.
    expected_path: Path
    local_path: Path | None = None

    @property
    def present(self) -> bool:
        return self.local_path is not None and self.local_path.is_dir()
