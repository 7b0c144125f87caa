from typing import Iterable
import enum
import platform

from builder_types import TargetTriple, UnsupportedTargetError


class Arch(enum.Enum):
    ARM = "arm"
    X86 = "x86"
    X86_64 = "x86_64"

    def triple_prefix(self) -> str:
        match self:
            case Arch.ARM:
                return "arm"
            case Arch.X86:
                return "i686"
            case Arch.X86_64:
                return "x86_64"
            case _:
                raise ValueError(f"Unknown Arch: {self}")


class OS(enum.Enum):
    MACOS = "macos"
    LINUX = "linux"
    WINDOWS = "windows"

    def triple_suffix(self) -> str:
        match self:
            case OS.LINUX:
                return "unknown-linux-gnu"
            case OS.MACOS:
                return "apple-darwin"
            case OS.WINDOWS:
                return "pc-windows-msvc"
            case _:
                raise ValueError(f"Unknown OS: {self}")


def triple_for(arch: Arch, os_: OS) -> TargetTriple:
    return f"{arch.triple_prefix()}-{os_.triple_suffix()}"


# See https://stackoverflow.com/questions/45125516/possible-values-for-uname-m
def machine_normalized() -> str:
    x: dict[str, str] = {}
    for src in "amd64 AMD64 x64 x86_64".split():
        x[src] = "x86_64"

    for src in "i386 i486 i586 i686 x86".split():
        x[src] = "x86"

    for src in "armv6l armv7l arm".split():
        x[src] = "arm"

    m = platform.machine()
    return x.get(m, m)


def host_arch() -> Arch:
    m = machine_normalized()
    try:
        return Arch(m)
    except ValueError:
        raise UnsupportedTargetError(f"Unsupported host architecture: {platform.machine()}")


def host_os() -> OS:
    match platform.system():
        case "Linux":
            return OS.LINUX
        case "Darwin":
            return OS.MACOS
        case "Windows":
            return OS.WINDOWS
        case sysname:
            raise UnsupportedTargetError(f"Unsupported host operating system: {sysname}")


def host_triple() -> TargetTriple:
    return triple_for(host_arch(), host_os())


def is_linux_family(triple: TargetTriple) -> bool:
    return "-linux-" in triple


def require_supported(triple: TargetTriple, supported: Iterable[TargetTriple], role: str) -> None:
    supported = tuple(supported)
    if triple not in supported:
        raise UnsupportedTargetError(
            f"Unsupported {role} triple '{triple}'; expected one of: {', '.join(supported)}"
        )
