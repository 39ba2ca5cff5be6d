"""Command-line options and tool discovery for the ``cvm-cc`` driver."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import Iterable

__all__ = [
    "DEFAULT_RUNTIME_DIR",
    "DEFAULT_TRANSLATOR",
    "HelpRequested",
    "MAX_DEFINES",
    "MAX_INCLUDE_DIRS",
    "MAX_PASSTHRU",
    "MAX_REGIONS",
    "Options",
    "UsageError",
    "basename_of",
    "find_install_runtime_dir",
    "find_llvm_link",
    "find_opt",
    "find_translator",
    "is_cpp_source",
    "parse_args",
    "sibling_of",
    "usage_text",
]

MAX_REGIONS = 64
MAX_INCLUDE_DIRS = 32
MAX_DEFINES = 32
MAX_PASSTHRU = 64

DEFAULT_RUNTIME_DIR = "."
DEFAULT_TRANSLATOR = "cvm-translate"

_WINDOWS = sys.platform.startswith("win")
_EXE = ".exe" if _WINDOWS else ""
TRANSLATOR_EXE = "cvm-translate" + _EXE
LLVM_LINK_EXE = "llvm-link" + _EXE
OPT_EXE = "opt" + _EXE

_INSTALL_RUNTIME_PARTS = ("..", "share", "cronovm", "runtime", "lib")
_PROBE_HEADER = "cvm_intrin.h"
_PROBE_PATH_LIMIT = 1024


class UsageError(Exception):
    """The command line is invalid.

    ``message`` may be empty when only the usage text should be shown;
    ``show_usage`` tells whether the usage text should follow the message.
    """

    def __init__(self, message: str = "", show_usage: bool = True) -> None:
        super().__init__(message)
        self.message = message
        self.show_usage = show_usage


class HelpRequested(Exception):
    """``-h`` or ``--help`` was given."""


@dataclass
class Options:
    """Everything the command line selects."""

    inputs: list[str] = field(default_factory=list)
    output: str | None = None
    opt_level: str = "1"
    clang_path: str | None = None
    llvm_link_path: str | None = None
    opt_path: str | None = None
    translate_path: str | None = None
    runtime_dir: str | None = None
    libcxx_dir: str | None = None

    # Translator pass-through flags, kept as the whole argument.
    heap_reserve: str | None = None
    stack_reserve: str | None = None
    rom: str | None = None
    meta: str | None = None
    seal: bool = False
    regions: list[str] = field(default_factory=list)

    include_dirs: list[str] = field(default_factory=list)
    defines: list[str] = field(default_factory=list)
    passthru: list[str] = field(default_factory=list)
    has_std: bool = False

    lto: bool = False
    keep_bc: bool = False
    verbose: bool = False


def usage_text(runtime_dir: str = DEFAULT_RUNTIME_DIR) -> str:
    """The help text, naming ``runtime_dir`` as the built-in runtime directory."""
    return f"""\
Usage: cvm-cc <input.c|input.cpp|input.bc>... -o <output.bin> [opts]

Driver around clang + llvm-link + cvm-translate. Each .c is compiled
with clang --target=i386-elf -emit-llvm -O<level> to bitcode; .cpp/.cc/
.cxx are compiled as C++ (-x c++) and the C++
ABI runtime (cvm_cxxrt) is auto-linked; .bc inputs skip clang. Multiple
inputs are llvm-link'd into one module (true multi-file linking —
file-local statics don't collide), then translated. (C++ note: the
translator runs global constructors before main; operator new/delete
forward to the cart's malloc/free.)

Required:
  -o <file>                  output .bin path

Pass-through to cvm-translate:
  --heap-reserve=N[K|M]      free heap region for the user allocator
  --stack-reserve=N[K|M]     stack region for CALL/RET (default 16K
                             when the binary uses any CALL)
  --region=NAME:SIZE[:DIR]   host-shared region; DIR is r/w/rw
  --rom=FILE                 bake FILE as read-only cartridge ROM
  --meta=FILE                append FILE as a host-only metadata blob
  --seal                     append an integrity seal (magic + crc32)
                             (default rw); repeatable up to {MAX_REGIONS}

Pass-through to clang:
  -I <dir>                   extra include dir (repeatable)
  -isystem <dir>             extra system include dir (repeatable)
  -idirafter <dir>           include dir searched LAST (repeatable).
                             Use for the C library (picolibc/SDK)
                             headers when compiling C++ so libc++'s
                             wrapper headers win and #include_next.
  -D<macro>[=val]            predefine a macro (repeatable)
  -std=<std>                 language standard (C++ defaults to c++20)
  -O0|-O1|-O2|-O3|-Os        optimisation level (default -O1)

C++ (.cpp/.cc/.cxx):
  libc++ from the toolchain clang (-stdlib=libc++) by default; the
  freestanding <__config_site>/<__external_threading> in the runtime
  dir override it. --libcxx-dir=PATH pins an explicit v1 header tree.
  --libcxx-dir=PATH          explicit libc++ v1 header dir (else the
                             toolchain clang's own, version-matched)

Link-time optimisation:
  --lto                      run opt 'default<O2>' on the linked module
                             before translating, enabling cross-file
                             inlining. Vectorisation is forced off (the
                             VM has no vector types). Off by default.

Tool discovery overrides:
  --clang=PATH               override clang binary
  --llvm-link=PATH           override llvm-link binary
  --opt=PATH                 override opt binary (for --lto)
  --translate=PATH           override cvm-translate binary
  --runtime-dir=PATH         override the runtime/lib include dir
                             (built-in default: {runtime_dir})

Misc:
  --keep-bc                  don't delete the intermediate .bc
  -v, --verbose              print every command before running
  -h, --help                 this help
"""


def _limit(count: int, limit: int, what: str) -> None:
    if count > limit:
        raise UsageError(f"too many {what} (max {limit})", show_usage=False)


# Options of the form "--name=value" whose value is stored without the prefix.
_VALUE_OPTIONS = {
    "--libcxx-dir=": "libcxx_dir",
    "--clang=": "clang_path",
    "--llvm-link=": "llvm_link_path",
    "--opt=": "opt_path",
    "--translate=": "translate_path",
    "--runtime-dir=": "runtime_dir",
}

# Translator pass-through options stored as the whole argument.
_WHOLE_OPTIONS = {
    "--heap-reserve=": "heap_reserve",
    "--stack-reserve=": "stack_reserve",
    "--rom=": "rom",
    "--meta=": "meta",
}

_FLAGS = {
    "--seal": "seal",
    "--lto": "lto",
    "--keep-bc": "keep_bc",
    "-v": "verbose",
    "--verbose": "verbose",
}


def parse_args(argv: Iterable[str]) -> Options:
    """Parse the arguments that follow the program name.

    Raises HelpRequested for ``-h``/``--help`` and UsageError for anything
    the command line gets wrong.
    """
    options = Options()
    args = iter(argv)

    def operand() -> str:
        try:
            return next(args)
        except StopIteration:
            raise UsageError() from None

    for arg in args:
        if arg in ("-h", "--help"):
            raise HelpRequested()
        if arg == "-o":
            options.output = operand()
        elif arg == "-I":
            directory = operand()
            _limit(len(options.include_dirs) + 1, MAX_INCLUDE_DIRS, "-I")
            options.include_dirs.append(directory)
        elif arg.startswith("-D") and len(arg) > 2:
            _limit(len(options.defines) + 1, MAX_DEFINES, "-D")
            options.defines.append(arg)
        elif arg in ("-isystem", "-idirafter"):
            directory = operand()
            _limit(len(options.passthru) + 2, MAX_PASSTHRU, "passthrough args")
            options.passthru.extend((arg, directory))
        elif arg.startswith("-std="):
            _limit(len(options.passthru) + 1, MAX_PASSTHRU, "passthrough args")
            options.passthru.append(arg)
            options.has_std = True
        elif arg.startswith("--libcxx-dir="):
            options.libcxx_dir = arg[len("--libcxx-dir="):]
        elif arg.startswith("-O") and len(arg) > 2:
            options.opt_level = arg[2:]
        elif (prefix := _matching_prefix(arg, _WHOLE_OPTIONS)) is not None:
            setattr(options, _WHOLE_OPTIONS[prefix], arg)
        elif arg in ("--seal",):
            options.seal = True
        elif arg.startswith("--region="):
            _limit(len(options.regions) + 1, MAX_REGIONS, "--region")
            options.regions.append(arg)
        elif (prefix := _matching_prefix(arg, _VALUE_OPTIONS)) is not None:
            setattr(options, _VALUE_OPTIONS[prefix], arg[len(prefix):])
        elif arg in _FLAGS:
            setattr(options, _FLAGS[arg], True)
        elif arg.startswith("-"):
            raise UsageError(f"unknown option '{arg}'")
        else:
            options.inputs.append(arg)

    if not options.inputs:
        raise UsageError("missing input file")
    if options.output is None:
        raise UsageError("missing -o <output>")
    return options


def _matching_prefix(arg: str, table: dict[str, str]) -> str | None:
    return next((prefix for prefix in table if arg.startswith(prefix)), None)


def is_cpp_source(path: str) -> bool:
    """Whether ``path`` names a C++ source (``.cpp``, ``.cc`` or ``.cxx``)."""
    return path.endswith((".cpp", ".cc", ".cxx"))


def basename_of(path: str) -> str:
    """The last path component, split on either slash."""
    cut = max(path.rfind("/"), path.rfind("\\"))
    return path[cut + 1:]


def _last_separator(argv0: str) -> int:
    cut = argv0.rfind("/")
    if _WINDOWS:
        cut = max(cut, argv0.rfind("\\"))
    return cut


def sibling_of(argv0: str, name: str) -> str | None:
    """``name`` in the directory of ``argv0``, or None if it has no directory."""
    cut = _last_separator(argv0)
    if cut < 0:
        return None
    return argv0[:cut] + os.sep + name


def find_install_runtime_dir(argv0: str) -> str | None:
    """The installed runtime header directory next to ``<prefix>/bin``, if present."""
    cut = _last_separator(argv0)
    if cut < 0:
        return None
    directory = os.sep.join((argv0[:cut], *_INSTALL_RUNTIME_PARTS))
    probe = directory + os.sep + _PROBE_HEADER
    if len(probe) >= _PROBE_PATH_LIMIT:
        return None
    if not os.path.isfile(probe):
        return None
    return directory


def find_translator(options: Options, argv0: str) -> str:
    """Locate cvm-translate: explicit path, sibling, default path, then PATH name."""
    if options.translate_path:
        return options.translate_path
    sibling = sibling_of(argv0, TRANSLATOR_EXE)
    if sibling is not None and os.path.isfile(sibling):
        return sibling
    if os.path.isfile(DEFAULT_TRANSLATOR):
        return DEFAULT_TRANSLATOR
    return TRANSLATOR_EXE


def find_llvm_link(options: Options) -> str:
    """The llvm-link to run: the explicit override or the PATH name."""
    return options.llvm_link_path or LLVM_LINK_EXE


def find_opt(options: Options) -> str:
    """The opt to run for --lto: the explicit override or the PATH name."""
    return options.opt_path or OPT_EXE