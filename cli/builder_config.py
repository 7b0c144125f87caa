from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping
import os

import triples
from builder_types import TargetTriple, UnsupportedTargetError
from constants import (
    BUNDLE_DIRS,
    BUNDLE_URL_BASE,
    BUNDLE_URL_BASE_ENV_VAR,
    HOST_TRIPLES,
    PINNED,
    RUN_TARGETS,
    WASM_TARGET,
)


@dataclass(frozen=True)
class ProvisioningConfig:
    """Everything a provisioning pass needs to know, built once per process.

    `env` is a snapshot of the process environment taken at construction;
    components consult it rather than `os.environ` so that override precedence
    is decided against one consistent view.
    """

    host: TargetTriple
    run_target: TargetTriple
    workdir: Path
    cargo_home: Path
    env: Mapping[str, str] = field(default_factory=dict)
    toolchain_date: str = PINNED["nightly-toolchain-date"]
    bundle_url_base: str = BUNDLE_URL_BASE

    def __post_init__(self):
        triples.require_supported(self.host, HOST_TRIPLES, "host")
        triples.require_supported(self.run_target, RUN_TARGETS, "target")
        if self.cross_compiling and self.run_target not in BUNDLE_DIRS:
            raise UnsupportedTargetError(
                f"Cannot cross-compile from {self.host} to {self.run_target}: "
                "no pre-built dependency bundle exists for that target."
            )

    @classmethod
    def from_options(
        cls,
        host: str | None = None,
        target: str | None = None,
        workdir: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> "ProvisioningConfig":
        """Fills in defaults from the host and `env`.

        Raises UnsupportedTargetError on a bad triple, as direct construction does.
        """
        env = dict(os.environ if env is None else env)

        host = host or triples.host_triple()
        return cls(
            host=host,
            run_target=target or host,
            workdir=(workdir or Path.cwd()).resolve(),
            cargo_home=cargo_home_from(env),
            env=env,
            bundle_url_base=env.get(BUNDLE_URL_BASE_ENV_VAR) or BUNDLE_URL_BASE,
        )

    @property
    def toolchain(self) -> str:
        return f"nightly-{self.toolchain_date}-{self.host}"

    @property
    def wasm_target(self) -> TargetTriple:
        return WASM_TARGET

    @property
    def required_targets(self) -> list[TargetTriple]:
        return [self.run_target, self.wasm_target]

    @property
    def cross_compiling(self) -> bool:
        return self.run_target != self.host


def cargo_home_from(env: Mapping[str, str]) -> Path:
    if env.get("CARGO_HOME"):
        return Path(env["CARGO_HOME"])
    return Path.home() / ".cargo"
