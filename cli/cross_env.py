"""
Cross-compilation environment for a single target triple.

Building for a triple other than the host needs a C cross compiler to act as
the linker, plus target builds of the native libraries our crates link
against (OpenSSL, RocksDB) and a sysroot. Each of these is found, in order of
preference, from:

  1. an environment variable the user has already set,
  2. (for the linker only) a cross compiler on $PATH,
  3. a fixed location inside the target's pre-built dependency bundle,
     which we download and unpack into the working directory if missing.

Anything still missing is reported, and makes the readiness check fail, but
does not stop the rest of the pass.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping
import json
import re
import shutil
import tarfile

import fetch
import hermetic
import triples
from builder_config import ProvisioningConfig
from builder_types import (
    DependencyBundle,
    EnvVarKey,
    EnvVarSource,
    EnvVarSpec,
    TargetTriple,
    ToolStatus,
    UnsupportedTargetError,
)
from constants import (
    BUNDLE_BIN_SUBPATH,
    BUNDLE_DIRS,
    BUNDLE_INCLUDE_SUBPATH,
    BUNDLE_OPENSSL_LIB_SUBPATH,
    BUNDLE_ROCKSDB_LIB_SUBPATH,
    BUNDLE_SYSROOT_SUBPATH,
    LINKER_ENV_VAR,
    LINKER_NAMES,
    OPENSSL_INCLUDE_DIR_ENV_VAR,
    OPENSSL_LIB_DIR_ENV_VAR,
    PINNED,
    ROCKSDB_LIB_DIR_ENV_VAR,
    SYSROOT_ENV_VAR,
)
from provisioning import sez


@dataclass
class CrossEnvironment:
    target_triple: TargetTriple
    bundle: DependencyBundle
    linker: ToolStatus
    config_path: Path
    config_written: bool = False
    specs: list[EnvVarSpec] = field(default_factory=list)

    @property
    def unresolved(self) -> list[EnvVarSpec]:
        return [spec for spec in self.specs if not spec.resolved]

    @property
    def ready(self) -> bool:
        return self.bundle.present and not self.unresolved

    def env_ext(self) -> dict[str, str]:
        """The variables to export into the build subprocess."""
        return {
            spec.key: spec.resolved_value
            for spec in self.specs
            if spec.resolved and spec.resolved_value is not None
        }


def cargo_config_path(cargo_home: Path) -> Path:
    # Newer cargo reads config.toml; older releases only know the extension-less name.
    for name in ("config.toml", "config"):
        candidate = cargo_home / name
        if candidate.is_file():
            return candidate
    return cargo_home / "config.toml"


def target_section_header_re(triple: TargetTriple) -> re.Pattern:
    quoted = re.escape(triple)
    return re.compile(
        rf"""^\s*\[\s*target\s*\.\s*(?:{quoted}|"{quoted}"|'{quoted}')\s*\]\s*(?:#.*)?$"""
    )


def has_target_section(content: str, triple: TargetTriple) -> bool:
    header = target_section_header_re(triple)
    return any(header.match(line) for line in content.splitlines())


def linker_section(triple: TargetTriple, linker: str) -> str:
    # A JSON string literal is also a valid TOML basic string.
    return f"[target.{triple}]\nlinker = {json.dumps(linker)}\n"


def ensure_linker_config(config_path: Path, triple: TargetTriple, linker: str) -> bool:
    """Append a `[target.<triple>]` linker entry unless the file already has one.

    Existing content is never rewritten, only appended to. Returns whether
    anything was written.
    """
    content = config_path.read_text(encoding="utf-8") if config_path.is_file() else ""
    if has_target_section(content, triple):
        return False

    separator = ""
    if content:
        separator = "\n" if content.endswith("\n") else "\n\n"

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "a", encoding="utf-8") as f:
        f.write(separator + linker_section(triple, linker))
    return True


def bundle_for(config: ProvisioningConfig, triple: TargetTriple) -> DependencyBundle:
    if triple not in BUNDLE_DIRS:
        raise UnsupportedTargetError(f"No pre-built dependency bundle exists for {triple}")

    dirname = BUNDLE_DIRS[triple]
    return DependencyBundle(
        target_triple=triple,
        remote_url=f"{config.bundle_url_base}/{PINNED['bundles-release']}/{dirname}.tar.gz",
        expected_path=config.workdir / dirname,
    )


def ensure_bundle(bundle: DependencyBundle, workdir: Path, session=None) -> DependencyBundle:
    """Make the bundle present on disk, downloading and unpacking it if needed.

    Failures are reported and leave the bundle absent; they do not raise.
    """

    def say(msg: str, err=False):
        sez(msg, ctx="(cross) ", err=err)

    if bundle.expected_path.is_dir():
        bundle.local_path = bundle.expected_path
        return bundle

    say(f"Dependency bundle for {bundle.target_triple} not found at {bundle.expected_path}")
    try:
        dl = fetch.fetch(bundle.remote_url, workdir, session=session)
    except fetch.FetchError as e:
        say(f"Unable to download the dependency bundle: {e}", err=True)
        say("Re-run once network access is available; the download will resume.", err=True)
        return bundle

    try:
        fetch.extract_tarball(dl.local_path, bundle.expected_path, ctx="(cross) ")
    except (tarfile.TarError, EOFError, ValueError, OSError) as e:
        say(f"Unable to extract {dl.local_path.name}: {e}", err=True)
        # A half-extracted directory would be mistaken for a present bundle next time.
        shutil.rmtree(bundle.expected_path, ignore_errors=True)
        dl.local_path.unlink(missing_ok=True)
        return bundle

    dl.local_path.unlink(missing_ok=True)
    bundle.local_path = bundle.expected_path
    return bundle


def required_variables(triple: TargetTriple) -> list[tuple[EnvVarKey, str]]:
    """The variables a cross build for `triple` needs, with their bundle sub-paths."""
    needed = [
        (LINKER_ENV_VAR, f"{BUNDLE_BIN_SUBPATH}/{LINKER_NAMES[triple]}"),
        (SYSROOT_ENV_VAR, BUNDLE_SYSROOT_SUBPATH),
        (OPENSSL_INCLUDE_DIR_ENV_VAR, BUNDLE_INCLUDE_SUBPATH),
    ]
    if triples.is_linux_family(triple):
        needed += [
            (OPENSSL_LIB_DIR_ENV_VAR, BUNDLE_OPENSSL_LIB_SUBPATH),
            (ROCKSDB_LIB_DIR_ENV_VAR, BUNDLE_ROCKSDB_LIB_SUBPATH),
        ]
    return needed


def resolve_variable(
    key: EnvVarKey,
    subpath: str,
    env: Mapping[str, str],
    bundle: DependencyBundle,
    found_on_path: str | None = None,
) -> EnvVarSpec:
    if env.get(key):
        return EnvVarSpec(key, env[key], EnvVarSource.EXPLICIT_OVERRIDE)

    if found_on_path is not None:
        return EnvVarSpec(key, found_on_path, EnvVarSource.DISCOVERED_ON_PATH)

    if bundle.present:
        assert bundle.local_path is not None
        candidate = bundle.local_path / subpath
        if candidate.exists():
            return EnvVarSpec(key, str(candidate), EnvVarSource.DISCOVERED_FROM_BUNDLE)

    sez(f"Could not determine {key}; set it in the environment to override.", "(cross) ", True)
    return EnvVarSpec(key, None, EnvVarSource.UNRESOLVED)


def probe_linker(triple: TargetTriple) -> ToolStatus:
    name = LINKER_NAMES[triple]
    path = shutil.which(name)
    if path is None:
        return ToolStatus(name=name, detected_version=None, installed=False)

    status = hermetic.probe(path)
    first_line = (status.detected_version or "").splitlines()[:1]
    return ToolStatus(
        name=path,
        detected_version=first_line[0] if first_line else None,
        installed=status.installed,
    )


def resolve(config: ProvisioningConfig, *, session=None) -> CrossEnvironment:
    """Resolve the cross-compilation environment for `config.run_target`."""
    triple = config.run_target
    bundle = bundle_for(config, triple)

    cross = CrossEnvironment(
        target_triple=triple,
        bundle=bundle,
        linker=probe_linker(triple),
        config_path=cargo_config_path(config.cargo_home),
    )

    ensure_bundle(bundle, config.workdir, session=session)

    for key, subpath in required_variables(triple):
        found_on_path = None
        if key == LINKER_ENV_VAR and cross.linker.installed:
            found_on_path = cross.linker.name
        cross.specs.append(resolve_variable(key, subpath, config.env, bundle, found_on_path))

    linker = next(spec for spec in cross.specs if spec.key == LINKER_ENV_VAR)
    if linker.resolved and linker.resolved_value is not None:
        cross.config_written = ensure_linker_config(
            cross.config_path, triple, linker.resolved_value
        )
        if cross.config_written:
            sez(f"Added a [target.{triple}] linker entry to {cross.config_path}", "(cross) ")

    return cross
