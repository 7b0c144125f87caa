import platform

import click

from builder_types import EnvVarSource, ToolchainManagerMissing, ToolStatus
from cross_env import CrossEnvironment
from provisioning import ToolchainStatus
from readiness import ProvisioningCheck


def ok(label: str, value: str):
    click.echo(f"{click.style(f'[✔] {label}:', fg='green')} {click.style(value, fg='cyan')}")


def bad(label: str, value: str):
    mark = click.style(f"[✘] {label}:", fg="red")
    click.echo(f"{mark} {click.style(value, fg='red')}", err=True)


def tool_line(label: str, status: ToolStatus):
    if status.installed:
        ok(label, status.detected_version or status.name)
    else:
        bad(label, f"{status.name} not found")


def echo_toolchain_status(status: ToolchainStatus):
    tool_line("rustup", status.rustup)
    tool_line("cargo", status.cargo)

    if status.toolchain_installed:
        ok("toolchain", status.toolchain)
    else:
        bad("toolchain", status.toolchain)
    if status.rustc is not None:
        tool_line("rustc", status.rustc)

    for target in status.targets_found:
        if status.target_installed(target):
            suffix = " (installed now)" if target in status.installed_this_pass else ""
            ok("target", target + suffix)
        else:
            bad("target", target)


def echo_cross_environment(cross: CrossEnvironment):
    if cross.linker.installed:
        ok("linker", f"{cross.linker.name} ({cross.linker.detected_version or 'unknown version'})")
    else:
        bad("linker", f"{cross.linker.name} not on $PATH")

    if cross.bundle.present:
        ok("bundle", str(cross.bundle.local_path))
    else:
        bad("bundle", cross.bundle.remote_url)

    for spec in cross.specs:
        match spec.source:
            case EnvVarSource.UNRESOLVED:
                bad(spec.key, "unresolved")
            case EnvVarSource.EXPLICIT_OVERRIDE:
                ok(spec.key, f"{spec.resolved_value} (from environment)")
            case _:
                ok(spec.key, str(spec.resolved_value))

    if cross.config_written:
        ok("cargo config", f"{cross.config_path} (linker for {cross.target_triple} added)")


def echo_install_instructions(error: ToolchainManagerMissing):
    bad(error.tool, error.install_url)
    match platform.system():
        case "Linux":
            click.echo("Please install Rust using rustup (or via your package manager).", err=True)
        case "Darwin":
            click.echo("Please install Rust using rustup (or via Homebrew).", err=True)
        case _:
            click.echo(f"Please install Rust using rustup, see {error.install_url}", err=True)
    click.echo("Once you can run `cargo --version`, please re-run.", err=True)


def echo_check(check: ProvisioningCheck):
    if isinstance(check.error, ToolchainManagerMissing):
        echo_install_instructions(check.error)
    elif check.error is not None:
        bad("provisioning", str(check.error))

    if check.toolchain is not None:
        echo_toolchain_status(check.toolchain)
    if check.cross is not None:
        echo_cross_environment(check.cross)

    if check.ready:
        ok("ready", f"{check.config.run_target} (host {check.config.host})")
    elif check.error is None:
        for gap in check.gaps:
            bad("not ready", gap)
