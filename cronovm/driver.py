"""Drive clang, llvm-link, opt and cvm-translate to build a VM binary.

Each C or C++ source is compiled to bitcode next to the output, and the
soft runtimes the modules need are linked in automatically. Several modules
are linked into one, optionally optimised across files, and then translated.
Intermediate files are removed afterwards unless asked to keep them.
"""

from __future__ import annotations

import dataclasses
import os
import subprocess
import sys
from typing import Callable, Sequence

from .cli import (
    DEFAULT_RUNTIME_DIR,
    HelpRequested,
    Options,
    UsageError,
    basename_of,
    find_install_runtime_dir,
    find_llvm_link,
    find_opt,
    find_translator,
    is_cpp_source,
    parse_args,
    usage_text,
)

__all__ = [
    "CXX_RUNTIME_TUS",
    "Driver",
    "F64_RUNTIME_TU",
    "I64_RUNTIME_TU",
    "PROBE_CXXSTL",
    "PROBE_F64",
    "PROBE_I64",
    "ToolError",
    "compile_command",
    "link_command",
    "main",
    "opt_command",
    "run_command",
    "translate_command",
]

# Exit-code bits reported by ``cvm-translate --probe-runtime``.
PROBE_F64 = 10
PROBE_I64 = 20
PROBE_CXXSTL = 64
_PROBE_MASK = PROBE_F64 | PROBE_I64 | PROBE_CXXSTL

F64_RUNTIME_TU = "cvm_float64_rt.c"
I64_RUNTIME_TU = "cvm_int64_rt.c"
CXX_RUNTIME_TUS = ("cvm_cxxrt.cpp", "cvm_cxxstl.cpp")

_SOFT_RUNTIMES = ((PROBE_F64, F64_RUNTIME_TU), (PROBE_I64, I64_RUNTIME_TU))
_EXTRA_MODULES = 8

Runner = Callable[[list], int]


class ToolError(Exception):
    """A step of the build pipeline failed."""


def _report(message: str) -> None:
    print(f"cvm-cc: {message}", file=sys.stderr)


def run_command(argv: Sequence[str], verbose: bool = False) -> int:
    """Run ``argv`` without a shell and return its exit status.

    A program that cannot be started gives 127; one killed by a signal
    gives 128 plus the signal number.
    """
    argv = list(argv)
    if verbose:
        print("cvm-cc: " + " ".join(argv), file=sys.stderr)
    try:
        completed = subprocess.run(argv, check=False)
    except OSError as exc:
        _report(f"failed to exec '{argv[0]}': {exc.strerror or exc}")
        return 127
    status = completed.returncode
    return 128 - status if status < 0 else status


def compile_command(options: Options, clang: str, source: str, bc_out: str) -> list[str]:
    """The clang command that compiles ``source`` to bitcode at ``bc_out``."""
    command = [clang, "--target=i386-elf", "-ffreestanding"]
    if is_cpp_source(source):
        command += ["-x", "c++"]
        if options.libcxx_dir:
            command += ["-nostdinc++", "-isystem", options.libcxx_dir]
        else:
            command.append("-stdlib=libc++")
        if not options.has_std:
            command.append("-std=c++20")
    runtime_dir = options.runtime_dir if options.runtime_dir is not None else DEFAULT_RUNTIME_DIR
    command += [
        "-emit-llvm",
        "-gline-tables-only",
        f"-O{options.opt_level}",
        f"-I{runtime_dir}",
    ]
    for directory in options.include_dirs:
        command += ["-I", directory]
    command += options.defines
    command += options.passthru
    command += ["-c", source, "-o", bc_out]
    return command


def link_command(llvm_link: str, modules: Sequence[str], output: str) -> list[str]:
    """The llvm-link command joining ``modules`` into ``output``."""
    return [llvm_link, *modules, "-o", output]


def opt_command(opt: str, module: str, output: str) -> list[str]:
    """The opt command running the O2 pipeline with vectorisation off."""
    return [
        opt,
        "--passes=default<O2>",
        "-vectorize-loops=false",
        "-vectorize-slp=false",
        module,
        "-o",
        output,
    ]


def translate_command(options: Options, translator: str, module: str) -> list[str]:
    """The cvm-translate command with every pass-through flag."""
    command = [translator, module, "-o", options.output]
    for flag in (options.heap_reserve, options.stack_reserve, options.rom, options.meta):
        if flag:
            command.append(flag)
    if options.seal:
        command.append("--seal")
    command += options.regions
    return command


class Driver:
    """One build: sources in, a translated binary out."""

    def __init__(
        self,
        options: Options,
        argv0: str = "cvm-cc",
        runner: Runner | None = None,
    ) -> None:
        runtime_dir = options.runtime_dir
        if runtime_dir is None:
            runtime_dir = find_install_runtime_dir(argv0) or DEFAULT_RUNTIME_DIR
        self.options = dataclasses.replace(options, runtime_dir=runtime_dir)
        self.argv0 = argv0
        self.clang = self.options.clang_path or "clang"
        self._runner: Runner = runner or (
            lambda argv: run_command(argv, self.options.verbose)
        )
        self._temporaries: list[str] = []

    def run(self) -> int:
        """Build the output and return the translator's exit status.

        Raises UsageError for an input of unknown kind and ToolError when a
        step before translation fails.
        """
        for source in self.options.inputs:
            if not (source.endswith((".c", ".bc")) or is_cpp_source(source)):
                raise UsageError(
                    f"input must end in .c, .cpp/.cc/.cxx or .bc (got '{source}')",
                    show_usage=False,
                )
        self._temporaries = []
        try:
            return self._build()
        finally:
            if not self.options.keep_bc:
                self._remove_temporaries()

    # --- pipeline steps ----------------------------------------------------

    def _build(self) -> int:
        opts = self.options
        modules: list[str] = []
        for index, source in enumerate(opts.inputs):
            if source.endswith(".bc"):
                modules.append(source)
            else:
                modules.append(self._compile(source, f"{opts.output}.{index}.tmp.bc"))

        translator = find_translator(opts, self.argv0)
        need = self._probe(translator, modules)

        listed = {basename_of(path) for path in opts.inputs}
        capacity = len(opts.inputs) + _EXTRA_MODULES
        for index, (bit, unit) in enumerate(_SOFT_RUNTIMES):
            if need & bit and unit not in listed:
                self._add_runtime(modules, capacity, unit, f"{opts.output}.rt{index}.tmp.bc")

        if any(is_cpp_source(path) for path in opts.inputs):
            for index, unit in enumerate(CXX_RUNTIME_TUS):
                if index >= 1 and not need & PROBE_CXXSTL:
                    continue
                if unit in listed:
                    continue
                self._add_runtime(modules, capacity, unit, f"{opts.output}.rtcxx{index}.tmp.bc")

        module = modules[0] if len(modules) == 1 else self._link(modules)
        if opts.lto:
            module = self._optimise(module)

        status = self._runner(translate_command(opts, translator, module))
        if status != 0:
            _report(f"cvm-translate failed (exit {status})")
        return 1 if status < 0 else status

    def _compile(self, source: str, bc_out: str) -> str:
        status = self._runner(compile_command(self.options, self.clang, source, bc_out))
        if status != 0:
            raise ToolError(f"clang failed on {source} (exit {status})")
        self._temporaries.append(bc_out)
        return bc_out

    def _probe(self, translator: str, modules: Sequence[str]) -> int:
        need = 0
        for module in modules:
            status = self._runner([translator, "--probe-runtime", module])
            if status & ~_PROBE_MASK:
                raise ToolError(f"runtime probe failed on {module} (exit {status})")
            need |= status
        return need

    def _add_runtime(self, modules: list[str], capacity: int, unit: str, bc_out: str) -> None:
        if len(modules) >= capacity:
            raise ToolError(f"too many inputs to auto-link {unit} (max {capacity})")
        modules.append(self._compile(f"{self.options.runtime_dir}/{unit}", bc_out))

    def _link(self, modules: Sequence[str]) -> str:
        linked = f"{self.options.output}.linked.bc"
        self._temporaries.append(linked)
        status = self._runner(link_command(find_llvm_link(self.options), modules, linked))
        if status != 0:
            raise ToolError(f"llvm-link failed (exit {status})")
        return linked

    def _optimise(self, module: str) -> str:
        optimised = f"{self.options.output}.opt.bc"
        self._temporaries.append(optimised)
        status = self._runner(opt_command(find_opt(self.options), module, optimised))
        if status != 0:
            raise ToolError(f"opt failed (exit {status})")
        return optimised

    def _remove_temporaries(self) -> None:
        for path in self._temporaries:
            try:
                os.remove(path)
            except OSError:
                pass
        self._temporaries = []


def main(argv: Sequence[str] | None = None) -> int:
    """Run the ``cvm-cc`` command; ``argv`` excludes the program name."""
    args = sys.argv[1:] if argv is None else list(argv)
    argv0 = sys.argv[0] if sys.argv and sys.argv[0] else "cvm-cc"
    try:
        options = parse_args(args)
        return Driver(options, argv0).run()
    except HelpRequested:
        sys.stdout.write(usage_text(DEFAULT_RUNTIME_DIR))
        return 0
    except UsageError as exc:
        if exc.message:
            _report(exc.message)
        if exc.show_usage:
            sys.stderr.write(usage_text(DEFAULT_RUNTIME_DIR))
        return 2
    except ToolError as exc:
        _report(str(exc))
        return 1


if __name__ == "__main__":
    sys.exit(main())