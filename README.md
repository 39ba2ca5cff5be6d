# cronovm

Host-side tooling for CronoVM carts, in pure Python with no third-party
dependencies:

- **`cronovm.f64bits`**: the `F64` type, an IEEE 754 binary64 value held as
  two 32-bit halves (`lo`, `hi`). It provides classification, sign operations,
  NaN-unordered comparisons and conversions to and from `float`, f32 and
  32-bit integers.
- **`cronovm.f64math`**: `add`, `sub`, `mul` and `div` on `F64` values,
  following the VM's software float rules.
- **`cronovm.alloc`**: `Heap`, a model of the reference free-list allocator
  with boundary tags.
- **`cronovm.cli`** and **`cronovm.driver`**: the `cvm-cc` command. It turns
  C and C++ sources into a `.bin` cart by running clang, llvm-link, opt and
  cvm-translate.

## Installation

```
pip install cronovm
```

To install with the test suite's requirements:

```
pip install "cronovm[test]"
```

## Software binary64

```python
from cronovm.f64bits import F64
from cronovm.f64math import add, mul, div

a = F64.from_float(1.5)
b = F64.from_i32(2)
print(add(a, b).to_float())   # 3.5
print(mul(a, b).to_i32())     # 3
print(div(F64.from_i32(1), F64.from_i32(3)) < a)  # True
```

These operations follow the VM's runtime, which can differ from the host CPU:

- Division rounds to nearest, with ties to even. Addition, subtraction and
  multiplication truncate toward zero, so their results can be one unit in
  the last place away from hardware results.
- Subnormal results are flushed to a signed zero. `from_f32` also flushes
  subnormal inputs to zero.
- Any NaN operand gives the canonical quiet NaN (`f64bits.NAN`). NaN
  payloads are not kept.
- `to_i32` and `to_u32` truncate toward zero and saturate. NaN converts
  to 0, and `to_u32` also gives 0 for negative values.
- `to_f32` truncates the mantissa. Values too large for f32 become
  infinities, and values too small become zeros.
- The comparisons `==`, `!=`, `<`, `<=`, `>` and `>=` are unordered for NaN,
  and `+0` equals `-0`.

`F64.from_bits` and `F64.to_bits` read and write the 64-bit pattern directly.
`F64.pack(sign, exponent, mhi20, mlo32)` builds a value from its fields. The
`sign`, `exponent` and `mhi` properties read those fields back.
`is_zero`, `is_inf`, `is_nan` and `is_finite` classify a value. `-x` flips
the sign, `abs(x)` clears it, and `x.copysign(y)` copies it from `y`.

`f64bits` also defines these named constants: `ZERO`, `NEG_ZERO`, `ONE`,
`NEG_ONE`, `INF`, `NEG_INF` and `NAN`.

## The heap allocator model

```python
from cronovm.alloc import Heap

heap = Heap(4096, 0x1000)
p = heap.malloc(100)
q = heap.malloc(20)
print(heap.block_size(p))    # 112
heap.free(p)
heap.free(q)
print(heap.free_blocks())    # [(4096, 4096)]
```

How blocks are laid out and handled:

- Every block has a 4-byte header and a 4-byte footer.
- Sizes are multiples of 4, and the smallest block is 16 bytes.
- Allocation walks the free list first-fit, starting from the most recently
  freed block.
- A leftover of at least 16 bytes is split off as a new free block.
- Freeing a block merges it with free neighbours on both sides.

Some calls raise errors:

- `malloc` raises `ValueError` for a size that is not positive.
- `malloc` raises `MemoryError` when no free block is large enough.
- `free` raises `ValueError` for an address that is not a live allocation.
- `free(None)` does nothing.

## The `cvm-cc` command

```
cvm-cc user.c -o game.bin --heap-reserve=4M --region=fb:64K:w
cvm-cc main.c helper.c -o game.bin --lto
```

`cvm-cc` builds a cart in these steps:

1. It compiles each `.c` input to bitcode with clang for `i386-elf`
   (freestanding). `.cpp`, `.cc` and `.cxx` inputs are compiled as C++
   against libc++, with `-std=c++20` unless `-std=` is given. `.bc` inputs
   are used as they are.
2. It runs `cvm-translate --probe-runtime` on every module. When the program
   needs them, it compiles these runtimes from the runtime directory and
   adds them:
   - `cvm_float64_rt.c`, for `double`
   - `cvm_int64_rt.c`, for 64-bit division
   - `cvm_cxxrt.cpp` and `cvm_cxxstl.cpp`, for C++

   A runtime already listed among the inputs is not added a second time.
3. If there is more than one module, it joins them with llvm-link.
4. With `--lto`, it runs `opt 'default<O2>'` with vectorisation turned off.
5. It passes the result to cvm-translate.

Intermediate files are written next to the output and removed at the end
unless `--keep-bc` is given.

| Option | Meaning |
| --- | --- |
| `-o FILE` | output `.bin` (required) |
| `-I DIR`, `-isystem DIR`, `-idirafter DIR` | include directories for clang |
| `-DMACRO[=VAL]`, `-std=STD`, `-O<level>` | passed to clang (default `-O1`) |
| `--heap-reserve=N[K\|M]`, `--stack-reserve=N[K\|M]` | passed to cvm-translate |
| `--region=NAME:SIZE[:DIR]`, `--rom=FILE`, `--meta=FILE`, `--seal` | passed to cvm-translate |
| `--clang=`, `--llvm-link=`, `--opt=`, `--translate=` | tool locations |
| `--runtime-dir=`, `--libcxx-dir=` | header and runtime locations |
| `--lto` | optimise across all files before translating |
| `--keep-bc` | keep the intermediate bitcode files |
| `-v`, `--verbose` | print each command before running it |

Run `cvm-cc --help` to see the full list.

By default clang, llvm-link and opt are found on `PATH`. cvm-translate is
looked for in this order:

1. next to the `cvm-cc` command
2. `cvm-translate` in the current directory
3. on `PATH`

Without `--runtime-dir`, the runtime directory is
`<bindir>/../share/cronovm/runtime/lib` if it holds `cvm_intrin.h`.
Otherwise it is the current directory.

Exit status:

| Status | Meaning |
| --- | --- |
| 0 | success, or `--help` was given |
| 2 | the command line was wrong |
| 1 | clang, the runtime probe, llvm-link or opt failed |
| other | the exit status of cvm-translate |

### From Python

`cronovm.driver.main(argv)` does the same work. It takes the argument list,
without the program name, and returns the exit status.

`cronovm.cli.parse_args` builds an `Options` object. It raises
`HelpRequested` for `-h`/`--help` and `UsageError` for an invalid command
line.

`Driver(options, argv0, runner)` runs the build:

- `runner` is any callable that takes an argument list and returns an exit
  status. The default runs the command with `run_command`.
- `Driver.run()` raises `ToolError` when a step before translation fails.

These functions build the exact command lines without running them:

- `compile_command`
- `link_command`
- `opt_command`
- `translate_command`

## What this package does not do

- It does not contain the virtual machine. It cannot load or run a `.bin`
  cart.
- It does not contain the translator, the compilers or the runtime sources.
  `cvm-cc` only starts clang, llvm-link, opt and cvm-translate, so these must
  be installed separately. The runtime `.c`/`.cpp` files and headers must be
  present in the runtime directory.
- `Heap` tracks block addresses and sizes only. It does not store payload
  bytes.