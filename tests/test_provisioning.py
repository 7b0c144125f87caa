import pytest

import provisioning
from builder_types import ProvisioningError, ToolchainManagerMissing, ToolStatus
from constants import RUSTUP_INSTALL_URL, WASM_TARGET

TOOLCHAIN = "nightly-2019-07-14-x86_64-unknown-linux-gnu"


def test_installs_everything_on_a_fresh_machine(fake_rustup, native_config):
    status = provisioning.ensure_toolchain(native_config)

    assert fake_rustup.mutating_calls == [
        ["rustup", "toolchain", "install", TOOLCHAIN],
        ["rustup", "target", "add", "x86_64-unknown-linux-gnu", "--toolchain", TOOLCHAIN],
        ["rustup", "target", "add", WASM_TARGET, "--toolchain", TOOLCHAIN],
    ]
    assert status.ready
    assert not status.toolchain_found
    assert status.toolchain_installed
    assert status.targets_found == {"x86_64-unknown-linux-gnu": False, WASM_TARGET: False}
    assert status.rustc is not None and status.rustc.installed


def test_second_pass_installs_nothing(fake_rustup, native_config):
    provisioning.ensure_toolchain(native_config)
    installs_after_first_pass = len(fake_rustup.mutating_calls)

    status = provisioning.ensure_toolchain(native_config)

    assert len(fake_rustup.mutating_calls) == installs_after_first_pass
    assert status.installed_this_pass == []
    assert status.toolchain_found
    assert all(status.targets_found.values())


def test_only_missing_targets_are_added(fake_rustup, native_config):
    fake_rustup.have(TOOLCHAIN, "x86_64-unknown-linux-gnu")

    status = provisioning.ensure_toolchain(native_config)

    assert fake_rustup.mutating_calls == [
        ["rustup", "target", "add", WASM_TARGET, "--toolchain", TOOLCHAIN],
    ]
    assert status.installed_this_pass == [WASM_TARGET]


def test_target_matching_is_exact(fake_rustup, native_config):
    # Only the x32 variant is installed; its name contains our target's name.
    fake_rustup.have(TOOLCHAIN, "x86_64-unknown-linux-gnux32", WASM_TARGET)

    provisioning.ensure_toolchain(native_config)

    assert fake_rustup.mutating_calls == [
        ["rustup", "target", "add", "x86_64-unknown-linux-gnu", "--toolchain", TOOLCHAIN],
    ]


def test_missing_rustup_is_unrecoverable(fake_rustup, native_config):
    fake_rustup.present = False

    with pytest.raises(ToolchainManagerMissing) as excinfo:
        provisioning.ensure_toolchain(native_config)

    assert excinfo.value.tool == "rustup"
    assert excinfo.value.install_url == RUSTUP_INSTALL_URL
    assert fake_rustup.mutating_calls == []


def test_missing_cargo_is_unrecoverable(fake_rustup, native_config):
    fake_rustup.cargo_present = False

    with pytest.raises(ToolchainManagerMissing) as excinfo:
        provisioning.ensure_toolchain(native_config)
    assert excinfo.value.tool == "cargo"


def test_failed_install_is_fatal(fake_rustup, native_config):
    fake_rustup.install_exit_code = 1

    with pytest.raises(ProvisioningError, match="exited with code 1"):
        provisioning.ensure_toolchain(native_config)
    assert len(fake_rustup.mutating_calls) == 1


def test_old_rustup_is_rejected(fake_rustup, native_config):
    fake_rustup.rustup_version = "1.10.0"

    with pytest.raises(ProvisioningError, match="rustup self update"):
        provisioning.ensure_toolchain(native_config)


def test_cross_target_is_added_to_host_toolchain(fake_rustup, darwin_to_linux_config):
    provisioning.ensure_toolchain(darwin_to_linux_config)

    toolchain = "nightly-2019-07-14-x86_64-apple-darwin"
    assert ["rustup", "toolchain", "install", toolchain] in fake_rustup.mutating_calls
    assert [
        "rustup", "target", "add", "x86_64-unknown-linux-gnu", "--toolchain", toolchain
    ] in fake_rustup.mutating_calls


def test_toolchain_listed():
    listing = f"stable-x86_64-unknown-linux-gnu\n{TOOLCHAIN} (default)\n"
    assert provisioning.toolchain_listed(listing, TOOLCHAIN)
    assert not provisioning.toolchain_listed(listing, "nightly-2019-07-14")
    assert not provisioning.toolchain_listed("", TOOLCHAIN)


def test_installed_targets():
    listing = "\n".join([
        "aarch64-unknown-linux-gnu",
        "wasm32-unknown-unknown (installed)",
        "x86_64-unknown-linux-gnu (default)",
        "x86_64-unknown-linux-gnux32",
    ])
    assert provisioning.installed_targets(listing) == {
        "wasm32-unknown-unknown",
        "x86_64-unknown-linux-gnu",
    }


@pytest.mark.parametrize(
    "output,expected",
    [
        ("rustup 1.18.3 (435397f48 2019-05-22)", "1.18.3"),
        ("rustup 1.27.1 (54dd3d00f 2024-04-24)\ninfo: This is the version for ...", "1.27.1"),
        ("something else entirely", None),
        (None, None),
    ],
)
def test_parse_rustup_version(output, expected):
    status = ToolStatus(name="rustup", detected_version=output, installed=True)
    version = provisioning.parse_rustup_version(status)
    assert (str(version) if version else None) == expected
