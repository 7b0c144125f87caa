import enum

import cross_env
import provisioning
from builder_config import ProvisioningConfig
from builder_types import ProvisioningError


class CheckState(enum.Enum):
    UNCHECKED = "unchecked"
    CHECKING = "checking"
    READY = "ready"
    NOT_READY = "not-ready"


class ProvisioningCheck:
    """The single go/no-go decision made before launching a build.

    NOT_READY is final for this process: nothing is retried, the user fixes
    whatever `gaps` describes and runs us again.
    """

    def __init__(self, config: ProvisioningConfig, session=None):
        self.config = config
        self.session = session
        self.state = CheckState.UNCHECKED
        self.toolchain: provisioning.ToolchainStatus | None = None
        self.cross: cross_env.CrossEnvironment | None = None
        self.error: ProvisioningError | None = None
        self.gaps: list[str] = []

    @property
    def ready(self) -> bool:
        return self.state is CheckState.READY

    def run(self) -> CheckState:
        assert self.state is CheckState.UNCHECKED, "A ProvisioningCheck runs only once"
        self.state = CheckState.CHECKING

        try:
            self.toolchain = provisioning.ensure_toolchain(self.config)
        except ProvisioningError as e:
            # Unrecoverable without the user's help; nothing else is worth checking.
            return self.fail(e)

        if not self.toolchain.ready:
            self.gaps.append(f"Toolchain {self.config.toolchain} is incomplete")

        if self.config.cross_compiling:
            try:
                self.cross = cross_env.resolve(self.config, session=self.session)
            except ProvisioningError as e:
                return self.fail(e)
            if not self.cross.bundle.present:
                self.gaps.append(
                    f"Dependency bundle for {self.cross.target_triple} is missing "
                    f"(expected at {self.cross.bundle.expected_path})"
                )
            for spec in self.cross.unresolved:
                self.gaps.append(f"{spec.key} is not set and could not be discovered")

        self.state = CheckState.NOT_READY if self.gaps else CheckState.READY
        return self.state

    def fail(self, error: ProvisioningError) -> CheckState:
        self.error = error
        self.gaps.append(str(error))
        self.state = CheckState.NOT_READY
        return self.state

    def build_env_ext(self) -> dict[str, str]:
        assert self.ready, "Only a READY check has an environment to build with"
        if self.cross is None:
            return {}
        return self.cross.env_ext()
