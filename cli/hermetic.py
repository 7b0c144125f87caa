import subprocess
import shlex
import os
from pathlib import Path
from typing import Mapping, Sequence, TypeAlias

import click

from builder_types import EnvironmentBrokenError, ProvisioningError, ToolStatus
from constants import SHOW_CMDS_ENV_VAR


def mk_env_for(env_ext: Mapping[str, str] | None = None) -> dict[str, str]:
    env = os.environ.copy()
    if env_ext is not None:
        env.update(env_ext)
    return env


RunSpec: TypeAlias = str | Sequence[str | bytes | os.PathLike[str] | os.PathLike[bytes]]


def shellize(cmd: RunSpec) -> str:
    if isinstance(cmd, str):
        return cmd
    else:
        return " ".join(shlex.quote(str(x)) for x in cmd)


def common_helper_for_run(cmd: RunSpec, cmd_cwd: Path | str | None = None):
    if os.environ.get(SHOW_CMDS_ENV_VAR, "0") == "0":
        return

    if cmd_cwd is None or Path(cmd_cwd).resolve() == Path.cwd().resolve():
        click.echo(f": {shellize(cmd)}")
    else:
        click.echo(f": ( cd {Path(cmd_cwd).as_posix()} ; {shellize(cmd)} )")


def run(cmd: RunSpec, check=False, env_ext=None, **kwargs) -> subprocess.CompletedProcess:
    common_helper_for_run(cmd, kwargs.get("cwd", None))

    return subprocess.run(
        cmd,
        check=check,
        env=mk_env_for(env_ext),
        **kwargs,
    )


def run_with_output(cmd: RunSpec, env_ext=None, cwd: Path | None = None) -> int:
    """Run a command with its stdout/stderr going straight to the user's terminal.

    Returns the exit code; a command that cannot be started at all is an
    EnvironmentBrokenError, since we only run programs we've already probed.
    """
    try:
        return run(cmd, check=False, env_ext=env_ext, cwd=cwd).returncode
    except OSError as e:
        raise EnvironmentBrokenError(f"Unable to run `{shellize(cmd)}`: {e}") from e


def capture_stdout(cmd: RunSpec) -> str:
    """Run a read-only command and return its trimmed stdout; nonzero exit is an error."""
    try:
        cp = run(cmd, check=False, capture_output=True)
    except OSError as e:
        raise EnvironmentBrokenError(f"Unable to run `{shellize(cmd)}`: {e}") from e

    if cp.returncode != 0:
        stderr = cp.stderr.decode("utf-8", errors="replace").strip()
        raise ProvisioningError(
            f"`{shellize(cmd)}` failed with return code {cp.returncode}: {stderr}"
        )
    return cp.stdout.decode("utf-8", errors="replace").strip()


def probe(tool: str, version_flag: str = "--version", toolchain: str | None = None) -> ToolStatus:
    """Ask `tool` for its version.

    Some tools exit nonzero for `--version`, so the exit code is ignored:
    having been able to run the tool at all is what makes it installed.
    """
    cmd = [tool, version_flag] if toolchain is None else [tool, f"+{toolchain}", version_flag]
    try:
        cp = run(cmd, check=False, capture_output=True)
    except FileNotFoundError:
        return ToolStatus(name=tool, detected_version=None, installed=False)
    except OSError as e:
        # Found but unrunnable (permissions, bad interpreter, ...) means the
        # environment is too broken for us to reason about.
        raise EnvironmentBrokenError(f"Unable to run `{shellize(cmd)}`: {e}") from e

    version = cp.stdout.decode("utf-8", errors="replace").strip()
    return ToolStatus(name=tool, detected_version=version or None, installed=True)
