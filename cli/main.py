import sys
from pathlib import Path

import click

import hermetic
import report
from builder_config import ProvisioningConfig
from builder_types import UnsupportedTargetError
from constants import HOST_TRIPLES, RUN_TARGETS
from readiness import ProvisioningCheck


def mk_config(ctx: click.Context) -> ProvisioningConfig:
    try:
        return ProvisioningConfig.from_options(
            host=ctx.obj["host"],
            target=ctx.obj["target"],
            workdir=ctx.obj["workdir"],
        )
    except UnsupportedTargetError as e:
        raise click.UsageError(str(e), ctx=ctx)


def check_or_exit(config: ProvisioningConfig) -> ProvisioningCheck:
    check = ProvisioningCheck(config)
    check.run()
    report.echo_check(check)
    if not check.ready:
        sys.exit(1)
    return check


@click.group()
@click.option("--host", type=click.Choice(HOST_TRIPLES), help="The HOST to build on.")
@click.option("--target", type=click.Choice(RUN_TARGETS), help="The TARGET to run on.")
@click.option(
    "--workdir",
    type=click.Path(file_okay=False, dir_okay=True, path_type=Path),
    help="Directory holding the crate to build and its dependency bundles.",
)
@click.pass_context
def cli(ctx, host, target, workdir):
    """Build tool for darwinia."""
    ctx.ensure_object(dict)
    ctx.obj.update(host=host, target=target, workdir=workdir)


@cli.command()
@click.pass_context
def provision(ctx):
    """Check (and fix, where possible) everything a build needs, without building."""
    check_or_exit(mk_config(ctx))


@cli.command()
@click.option("--release", is_flag=True, help="Build in release mode.")
@click.pass_context
def build(ctx, release: bool):
    """Build darwinia, once provisioning says we are ready."""
    config = mk_config(ctx)
    check = check_or_exit(config)

    cmd = ["cargo", f"+{config.toolchain}", "build", "--target", config.run_target]
    if release:
        cmd.append("--release")
    sys.exit(hermetic.run_with_output(cmd, env_ext=check.build_env_ext(), cwd=config.workdir))


if __name__ == "__main__":
    cli()
