# Note: the keys in this dict are not command names, or file names,
# just arbitrary labels for the things we are pinning.
PINNED = {
    # The toolchain id is nightly-<date>-<host triple>.
    "nightly-toolchain-date": "2019-07-14",
    # Oldest rustup we know to understand `target list --toolchain`.
    "min-rustup": "1.14.0",
    # Release tag under which the cross-compilation bundles are published.
    "bundles-release": "v0.1.0",
}

RUSTUP_INSTALL_URL = "https://www.rust-lang.org/tools/install"

WASM_TARGET = "wasm32-unknown-unknown"

BUNDLE_URL_BASE = "https://github.com/AurevoirXavier/darwinia-builder/releases/download"

HOST_TRIPLES = (
    "i686-apple-darwin",
    "x86_64-apple-darwin",
    "i686-unknown-linux-gnu",
    "x86_64-unknown-linux-gnu",
    "i686-pc-windows-msvc",
    "x86_64-pc-windows-msvc",
)

RUN_TARGETS = (
    "arm-unknown-linux-gnueabi",
    "armv7-unknown-linux-gnueabihf",
    "i686-apple-darwin",
    "x86_64-apple-darwin",
    "i686-unknown-linux-gnu",
    "x86_64-unknown-linux-gnu",
    "i686-pc-windows-msvc",
    "x86_64-pc-windows-msvc",
)

# Cross-compilation is only possible towards targets that have a pre-built
# dependency bundle. The value is the bundle's directory (and archive) name.
BUNDLE_DIRS = {
    "arm-unknown-linux-gnueabi": "arm-linux",
    "armv7-unknown-linux-gnueabihf": "armv7-linux",
    "i686-unknown-linux-gnu": "i686-linux",
    "x86_64-unknown-linux-gnu": "x86_64-linux",
    "x86_64-apple-darwin": "x86_64-macos",
}

# C cross compiler used as the linker for each cross target.
# The bundles ship these under bin/ for hosts that lack them.
LINKER_NAMES = {
    "arm-unknown-linux-gnueabi": "arm-unknown-linux-gnueabi-gcc",
    "armv7-unknown-linux-gnueabihf": "armv7-unknown-linux-gnueabihf-gcc",
    "i686-unknown-linux-gnu": "i686-unknown-linux-gnu-gcc",
    "x86_64-unknown-linux-gnu": "x86_64-unknown-linux-gnu-gcc",
    "x86_64-apple-darwin": "o64-clang",
}

LINKER_ENV_VAR = "TARGET_CC"
SYSROOT_ENV_VAR = "TARGET_SYSROOT"
OPENSSL_INCLUDE_DIR_ENV_VAR = "OPENSSL_INCLUDE_DIR"
OPENSSL_LIB_DIR_ENV_VAR = "OPENSSL_LIB_DIR"
ROCKSDB_LIB_DIR_ENV_VAR = "ROCKSDB_LIB_DIR"

# Paths within an extracted bundle directory.
BUNDLE_SYSROOT_SUBPATH = "sysroot"
BUNDLE_INCLUDE_SUBPATH = "include"
BUNDLE_OPENSSL_LIB_SUBPATH = "lib/openssl"
BUNDLE_ROCKSDB_LIB_SUBPATH = "lib/rocksdb"
BUNDLE_BIN_SUBPATH = "bin"

SHOW_CMDS_ENV_VAR = "DARWINIA_BUILDER_SHOW_CMDS"
BUNDLE_URL_BASE_ENV_VAR = "DARWINIA_BUILDER_BUNDLE_URL_BASE"
