import os
import sys

import pytest

from cronovm.cli import UsageError, parse_args
from cronovm.driver import (
    Driver,
    ToolError,
    compile_command,
    link_command,
    main,
    opt_command,
    run_command,
    translate_command,
)


class FakeRunner:
    """Records commands; creates each ``-o`` target like a real tool would."""

    def __init__(self, probe=None, translate=0, fail=None):
        self.calls = []
        self.probe = probe or {}
        self.translate = translate
        self.fail = fail or {}

    def __call__(self, argv):
        argv = list(argv)
        self.calls.append(argv)
        if "--probe-runtime" in argv:
            return self.probe.get(argv[2], 0)
        tool = argv[0]
        if tool in self.fail:
            return self.fail[tool]
        if tool == "xlate":
            return self.translate
        if "-o" in argv:
            target = argv[argv.index("-o") + 1]
            with open(target, "wb") as fh:
                fh.write(b"bc")
        return 0


def make_options(tmp_path, *extra, inputs=("main.c",)):
    out = str(tmp_path / "game.bin")
    args = [*inputs, "-o", out, "--translate=xlate", "--clang=cc", "--runtime-dir=rt", *extra]
    return parse_args(args), out


def test_compile_command_for_c_source():
    options = parse_args(["a.c", "-o", "x.bin", "--runtime-dir=rt", "-I", "inc", "-DFOO=1", "-O2"])
    assert compile_command(options, "clang", "a.c", "a.bc") == [
        "clang", "--target=i386-elf", "-ffreestanding", "-emit-llvm",
        "-gline-tables-only", "-O2", "-Irt", "-I", "inc", "-DFOO=1",
        "-c", "a.c", "-o", "a.bc",
    ]


def test_compile_command_for_cpp_source_defaults():
    options = parse_args(["a.cpp", "-o", "x.bin", "--runtime-dir=rt"])
    command = compile_command(options, "clang", "a.cpp", "a.bc")
    assert command[3:7] == ["-x", "c++", "-stdlib=libc++", "-std=c++20"]


def test_link_and_opt_commands():
    assert link_command("llvm-link", ["a.bc", "b.bc"], "o.bc") == [
        "llvm-link", "a.bc", "b.bc", "-o", "o.bc",
    ]
    assert opt_command("opt", "m.bc", "o.bc") == [
        "opt", "--passes=default<O2>", "-vectorize-loops=false",
        "-vectorize-slp=false", "m.bc", "-o", "o.bc",
    ]


def test_translate_command_passes_flags_in_order():
    options = parse_args(
        ["a.c", "-o", "x.bin", "--region=fb:64K:w", "--seal", "--heap-reserve=4M",
         "--rom=r.dat", "--stack-reserve=16K", "--meta=m.dat"]
    )
    assert translate_command(options, "xlate", "m.bc") == [
        "xlate", "m.bc", "-o", "x.bin", "--heap-reserve=4M", "--stack-reserve=16K",
        "--rom=r.dat", "--meta=m.dat", "--seal", "--region=fb:64K:w",
    ]


def test_single_source_pipeline_and_cleanup(tmp_path):
    options, out = make_options(tmp_path)
    runner = FakeRunner()
    assert Driver(options, "cvm-cc", runner).run() == 0
    bc = out + ".0.tmp.bc"
    assert runner.calls[0][0] == "cc"
    assert runner.calls[0][-2:] == ["-o", bc]
    assert runner.calls[1] == ["xlate", "--probe-runtime", bc]
    assert runner.calls[2] == ["xlate", bc, "-o", out]
    assert len(runner.calls) == 3
    assert not os.path.exists(bc)


def test_keep_bc_leaves_intermediates(tmp_path):
    options, out = make_options(tmp_path, "--keep-bc")
    runner = FakeRunner()
    assert Driver(options, "cvm-cc", runner).run() == 0
    bc = out + ".0.tmp.bc"
    assert runner.calls[-1] == ["xlate", bc, "-o", out]
    with open(bc, "rb") as fh:
        assert fh.read() == b"bc"


def test_multiple_inputs_are_linked(tmp_path):
    options, out = make_options(tmp_path, inputs=("a.c", "lib.bc"))
    runner = FakeRunner()
    assert Driver(options, "cvm-cc", runner).run() == 0
    link = [c for c in runner.calls if c[0] == "llvm-link"]
    assert link == [["llvm-link", out + ".0.tmp.bc", "lib.bc", "-o", out + ".linked.bc"]]
    assert runner.calls[-1][1] == out + ".linked.bc"
    assert not os.path.exists(out + ".linked.bc")


def test_bitcode_input_skips_clang(tmp_path):
    options, out = make_options(tmp_path, inputs=("pre.bc",))
    runner = FakeRunner()
    Driver(options, "cvm-cc", runner).run()
    assert [c[0] for c in runner.calls] == ["xlate", "xlate"]
    assert runner.calls[-1][1] == "pre.bc"


def test_f64_runtime_is_auto_linked(tmp_path):
    options, out = make_options(tmp_path)
    runner = FakeRunner(probe={out + ".0.tmp.bc": 10})
    Driver(options, "cvm-cc", runner).run()
    rt = [c for c in runner.calls if c[0] == "cc" and "rt/cvm_float64_rt.c" in c]
    assert len(rt) == 1
    assert rt[0][-1] == out + ".rt0.tmp.bc"
    assert any(c[0] == "llvm-link" for c in runner.calls)


def test_both_runtimes_and_listed_runtime_skipped(tmp_path):
    options, out = make_options(tmp_path, inputs=("main.c", "src/cvm_int64_rt.c"))
    runner = FakeRunner(probe={out + ".0.tmp.bc": 30})
    Driver(options, "cvm-cc", runner).run()
    sources = [c[-3] for c in runner.calls if c[0] == "cc"]
    assert "rt/cvm_float64_rt.c" in sources
    assert "rt/cvm_int64_rt.c" not in sources


def test_cpp_links_cxxrt_and_stl_only_when_probed(tmp_path):
    options, out = make_options(tmp_path, inputs=("game.cpp",))
    runner = FakeRunner()
    Driver(options, "cvm-cc", runner).run()
    sources = [c[-3] for c in runner.calls if c[0] == "cc"]
    assert sources == ["game.cpp", "rt/cvm_cxxrt.cpp"]

    runner = FakeRunner(probe={out + ".0.tmp.bc": 64})
    Driver(options, "cvm-cc", runner).run()
    sources = [c[-3] for c in runner.calls if c[0] == "cc"]
    assert sources == ["game.cpp", "rt/cvm_cxxrt.cpp", "rt/cvm_cxxstl.cpp"]
    assert runner.calls[-3][-1] == out + ".rtcxx1.tmp.bc"


def test_lto_runs_opt_before_translate(tmp_path):
    options, out = make_options(tmp_path, "--lto", "--opt=myopt")
    runner = FakeRunner()
    Driver(options, "cvm-cc", runner).run()
    assert runner.calls[-2][0] == "myopt"
    assert runner.calls[-2][-1] == out + ".opt.bc"
    assert runner.calls[-1][1] == out + ".opt.bc"
    assert not os.path.exists(out + ".opt.bc")


def test_bad_probe_raises_and_cleans(tmp_path):
    options, out = make_options(tmp_path)
    runner = FakeRunner(probe={out + ".0.tmp.bc": 1})
    with pytest.raises(ToolError, match="runtime probe failed"):
        Driver(options, "cvm-cc", runner).run()
    assert not os.path.exists(out + ".0.tmp.bc")


def test_clang_failure_raises(tmp_path):
    options, _ = make_options(tmp_path)
    with pytest.raises(ToolError, match="clang failed on main.c"):
        Driver(options, "cvm-cc", FakeRunner(fail={"cc": 1})).run()


def test_link_failure_raises(tmp_path):
    options, _ = make_options(tmp_path, inputs=("a.c", "b.c"))
    with pytest.raises(ToolError, match="llvm-link failed"):
        Driver(options, "cvm-cc", FakeRunner(fail={"llvm-link": 1})).run()


def test_translate_status_is_returned(tmp_path):
    options, _ = make_options(tmp_path)
    assert Driver(options, "cvm-cc", FakeRunner(translate=5)).run() == 5
    assert Driver(options, "cvm-cc", FakeRunner(translate=-1)).run() == 1


def test_bad_suffix_is_usage_error(tmp_path):
    options, _ = make_options(tmp_path, inputs=("notes.txt",))
    runner = FakeRunner()
    with pytest.raises(UsageError):
        Driver(options, "cvm-cc", runner).run()
    assert runner.calls == []


def test_install_runtime_dir_is_used(tmp_path):
    lib = tmp_path / "share" / "cronovm" / "runtime" / "lib"
    lib.mkdir(parents=True)
    (lib / "cvm_intrin.h").write_text("")
    (tmp_path / "bin").mkdir()
    argv0 = str(tmp_path / "bin" / "cvm-cc")
    options = parse_args(["a.c", "-o", str(tmp_path / "o.bin"), "--translate=xlate"])
    driver = Driver(options, argv0, FakeRunner())
    expected = os.sep.join((str(tmp_path / "bin"), "..", "share", "cronovm", "runtime", "lib"))
    assert driver.options.runtime_dir == expected


def test_run_command_exit_status():
    assert run_command([sys.executable, "-c", "import sys; sys.exit(3)"]) == 3


def test_run_command_missing_program(tmp_path):
    assert run_command([str(tmp_path / "no-such-tool")]) == 127


def test_main_help(capsys):
    assert main(["--help"]) == 0
    assert capsys.readouterr().out.startswith("Usage: cvm-cc")


def test_main_missing_input(capsys):
    assert main(["-o", "x.bin"]) == 2
    assert "missing input file" in capsys.readouterr().err


def test_main_bad_suffix(tmp_path):
    assert main(["notes.txt", "-o", str(tmp_path / "o.bin")]) == 2


def test_main_clang_failure(tmp_path, capsys):
    code = main(["a.c", "-o", str(tmp_path / "o.bin"), f"--clang={tmp_path / 'no-clang'}"])
    assert code == 1
    assert "clang failed on a.c (exit 127)" in capsys.readouterr().err