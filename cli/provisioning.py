from dataclasses import dataclass, field

from packaging.version import InvalidVersion, Version
import click

import hermetic
from builder_config import ProvisioningConfig
from builder_types import ProvisioningError, TargetTriple, ToolchainManagerMissing, ToolStatus
from constants import PINNED, RUSTUP_INSTALL_URL


def sez(msg: str, ctx: str, err=False):
    click.echo("BUILDER SEZ: " + ctx + msg, err=err)


@dataclass
class ToolchainStatus:
    rustup: ToolStatus
    cargo: ToolStatus
    toolchain: str
    toolchain_found: bool = False
    rustc: ToolStatus | None = None
    # Installed-ness of each required target as found, before we installed anything.
    targets_found: dict[TargetTriple, bool] = field(default_factory=dict)
    installed_this_pass: list[str] = field(default_factory=list)

    @property
    def toolchain_installed(self) -> bool:
        return self.toolchain_found or self.toolchain in self.installed_this_pass

    def target_installed(self, target: TargetTriple) -> bool:
        return self.targets_found.get(target, False) or target in self.installed_this_pass

    @property
    def ready(self) -> bool:
        return (
            self.rustup.installed
            and self.cargo.installed
            and self.toolchain_installed
            and all(self.target_installed(t) for t in self.targets_found)
        )


def parse_rustup_version(status: ToolStatus) -> Version | None:
    # Expected: "rustup 1.18.3 (435397f48 2019-05-22)"; newer rustups print
    # extra informational lines after the first.
    lines = (status.detected_version or "").splitlines()
    if not lines:
        return None
    match lines[0].split():
        case ["rustup", version, *_]:
            try:
                return Version(version)
            except InvalidVersion:
                return None
        case _:
            return None


def require_rustup() -> tuple[ToolStatus, ToolStatus]:
    """Returns the statuses of rustup and cargo, which we never install ourselves.

    rustup pretty much requires PATH modifications, and it's not our place
    to make them, so a missing rustup (or cargo) ends the provisioning pass.
    """
    rustup = hermetic.probe("rustup")
    if not rustup.installed:
        raise ToolchainManagerMissing("rustup", RUSTUP_INSTALL_URL)

    seen = parse_rustup_version(rustup)
    wanted = Version(PINNED["min-rustup"])
    if seen is not None and seen < wanted:
        raise ProvisioningError(
            f"rustup {seen} is too old (need at least {wanted}); please run `rustup self update`."
        )

    cargo = hermetic.probe("cargo")
    if not cargo.installed:
        raise ToolchainManagerMissing("cargo", RUSTUP_INSTALL_URL)

    return rustup, cargo


def toolchain_listed(listing: str, toolchain: str) -> bool:
    """`rustup toolchain list` prints one toolchain per line, maybe followed by `(default)`."""
    for line in listing.splitlines():
        match line.split():
            case [name, *_] if name == toolchain:
                return True
    return False


def installed_targets(listing: str) -> set[TargetTriple]:
    """Parse `rustup target list` output into the set of installed triples.

    Triples are compared as whole tokens: `x86_64-unknown-linux-gnu` must not
    be considered installed just because `x86_64-unknown-linux-gnux32` is.
    """
    installed: set[TargetTriple] = set()
    for line in listing.splitlines():
        if "(installed)" not in line and "(default)" not in line:
            continue
        match line.split():
            case [triple, *_]:
                installed.add(triple)
    return installed


def run_installer(cmd: list[str], what: str) -> None:
    returncode = hermetic.run_with_output(cmd)
    if returncode != 0:
        raise ProvisioningError(
            f"Failed to install {what}: `{hermetic.shellize(cmd)}` exited with code {returncode}"
        )


def ensure_toolchain(config: ProvisioningConfig) -> ToolchainStatus:
    """Verify (installing as needed) the pinned toolchain and its required targets.

    When everything is already present, only read-only rustup commands are run.
    """

    def say(msg: str):
        sez(msg, ctx="(rust) ")

    rustup, cargo = require_rustup()
    status = ToolchainStatus(rustup=rustup, cargo=cargo, toolchain=config.toolchain)

    listing = hermetic.capture_stdout(["rustup", "toolchain", "list"])
    status.toolchain_found = toolchain_listed(listing, config.toolchain)
    if not status.toolchain_found:
        say(f"Installing Rust toolchain {config.toolchain}...")
        say("      (subsequent output comes from `rustup toolchain install`)")
        run_installer(["rustup", "toolchain", "install", config.toolchain], config.toolchain)
        status.installed_this_pass.append(config.toolchain)

    status.rustc = hermetic.probe("rustc", toolchain=config.toolchain)

    listing = hermetic.capture_stdout(["rustup", "target", "list", "--toolchain", config.toolchain])
    have = installed_targets(listing)
    for target in dict.fromkeys(config.required_targets):
        status.targets_found[target] = target in have
        if status.targets_found[target]:
            continue

        say(f"Adding target {target} to {config.toolchain}...")
        run_installer(
            ["rustup", "target", "add", target, "--toolchain", config.toolchain],
            f"target {target}",
        )
        status.installed_this_pass.append(target)

    return status
