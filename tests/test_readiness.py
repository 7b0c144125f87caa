import dataclasses
import shutil

import pytest

import fetch
import hermetic
from builder_config import ProvisioningConfig
from builder_types import (
    EnvironmentBrokenError,
    EnvVarSource,
    ToolchainManagerMissing,
    UnsupportedTargetError,
)
from constants import BUNDLE_URL_BASE, LINKER_ENV_VAR, WASM_TARGET
from readiness import CheckState, ProvisioningCheck
from test_fixtures import FakeHttp

LINUX_BUNDLE_URL = f"{BUNDLE_URL_BASE}/v0.1.0/x86_64-linux.tar.gz"


@pytest.fixture
def no_fetching(monkeypatch):
    def refuse(url, *args, **kwargs):
        raise AssertionError(f"unexpected download of {url}")

    monkeypatch.setattr(fetch, "fetch", refuse)


def test_native_check_is_ready_without_downloads(fake_rustup, native_config, no_fetching):
    check = ProvisioningCheck(native_config)
    assert check.state is CheckState.UNCHECKED

    assert check.run() is CheckState.READY
    assert check.ready
    assert check.gaps == []
    assert check.cross is None
    assert check.toolchain is not None
    assert check.toolchain.installed_this_pass == [
        native_config.toolchain,
        "x86_64-unknown-linux-gnu",
        WASM_TARGET,
    ]
    assert check.build_env_ext() == {}


def test_cross_check_fetches_bundle_and_is_ready(
    fake_rustup, darwin_to_linux_config, linux_bundle_bytes, no_cross_compilers
):
    http = FakeHttp({LINUX_BUNDLE_URL: linux_bundle_bytes})
    check = ProvisioningCheck(darwin_to_linux_config, session=http)

    assert check.run() is CheckState.READY

    assert [url for _, url, _ in http.gets()] == [LINUX_BUNDLE_URL]
    assert check.cross is not None
    assert {spec.source for spec in check.cross.specs} == {EnvVarSource.DISCOVERED_FROM_BUNDLE}
    bundle_dir = darwin_to_linux_config.workdir / "x86_64-linux"
    assert all(value.startswith(str(bundle_dir)) for value in check.build_env_ext().values())
    assert check.cross.config_written
    assert check.cross.config_path.is_file()


def test_cross_check_without_bundle_is_not_ready(
    fake_rustup, darwin_to_linux_config, no_cross_compilers
):
    check = ProvisioningCheck(darwin_to_linux_config, session=FakeHttp({}))

    assert check.run() is CheckState.NOT_READY
    assert check.error is None
    assert any("Dependency bundle" in gap for gap in check.gaps)
    assert any(gap.startswith(LINKER_ENV_VAR) for gap in check.gaps)
    # The toolchain part of the pass still ran to completion.
    assert check.toolchain is not None and check.toolchain.ready


def test_missing_rustup_is_not_ready(fake_rustup, native_config):
    fake_rustup.present = False
    check = ProvisioningCheck(native_config)

    assert check.run() is CheckState.NOT_READY
    assert isinstance(check.error, ToolchainManagerMissing)
    assert check.toolchain is None
    assert fake_rustup.mutating_calls == []
    with pytest.raises(AssertionError):
        check.build_env_ext()


def test_failed_install_is_not_ready(fake_rustup, native_config):
    fake_rustup.install_exit_code = 1
    check = ProvisioningCheck(native_config)

    assert check.run() is CheckState.NOT_READY
    assert "exited with code 1" in check.gaps[0]


def test_check_runs_only_once(fake_rustup, native_config):
    check = ProvisioningCheck(native_config)
    check.run()
    with pytest.raises(AssertionError):
        check.run()


def test_unsupported_target_is_rejected_before_running_anything(
    workdir, cargo_home, native_config, monkeypatch
):
    def no_subprocesses(*args, **kwargs):
        raise AssertionError("nothing should be run for an unsupported target")

    monkeypatch.setattr(hermetic, "run", no_subprocesses)
    monkeypatch.setattr(hermetic, "run_with_output", no_subprocesses)

    with pytest.raises(UnsupportedTargetError):
        ProvisioningConfig.from_options(
            host="x86_64-unknown-linux-gnu", target="riscv64gc-unknown-linux-gnu", workdir=workdir
        )

    with pytest.raises(UnsupportedTargetError):
        ProvisioningConfig(
            host="x86_64-unknown-linux-gnu",
            run_target="riscv64gc-unknown-linux-gnu",
            workdir=workdir,
            cargo_home=cargo_home,
        )

    # A valid config cannot be turned into an invalid one either.
    with pytest.raises(UnsupportedTargetError):
        dataclasses.replace(native_config, run_target="x86_64-pc-windows-msvc")


def test_unrunnable_cross_linker_is_not_ready(fake_rustup, darwin_to_linux_config, monkeypatch):
    linker = "/opt/cross/bin/x86_64-unknown-linux-gnu-gcc"
    fake_rustup.unrunnable.add(linker)
    monkeypatch.setattr(
        shutil,
        "which",
        lambda name, *args, **kwargs: linker if name == "x86_64-unknown-linux-gnu-gcc" else None,
    )
    check = ProvisioningCheck(darwin_to_linux_config, session=FakeHttp({}))

    assert check.run() is CheckState.NOT_READY
    assert isinstance(check.error, EnvironmentBrokenError)
    assert check.cross is None
    assert "Exec format error" in check.gaps[0]


def test_macos_cross_check_with_overrides_is_ready(fake_rustup, workdir, cargo_home):
    (workdir / "x86_64-macos").mkdir()
    config = ProvisioningConfig.from_options(
        host="x86_64-unknown-linux-gnu",
        target="x86_64-apple-darwin",
        workdir=workdir,
        env={
            "CARGO_HOME": str(cargo_home),
            "TARGET_CC": "/opt/osxcross/bin/o64-clang",
            "TARGET_SYSROOT": "/opt/osxcross/SDK",
            "OPENSSL_INCLUDE_DIR": "/opt/osxcross/include",
        },
    )
    check = ProvisioningCheck(config, session=FakeHttp({}))

    assert check.run() is CheckState.READY
    assert check.build_env_ext() == {
        "TARGET_CC": "/opt/osxcross/bin/o64-clang",
        "TARGET_SYSROOT": "/opt/osxcross/SDK",
        "OPENSSL_INCLUDE_DIR": "/opt/osxcross/include",
    }
