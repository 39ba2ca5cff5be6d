"""Free-list heap allocator with boundary coalescing.

Models the layout of a contiguous heap region: every block carries a
4-byte header and a 4-byte footer around its payload, block sizes are
multiples of 4, and the smallest block is 16 bytes. Free blocks sit on a
LIFO free list that allocation walks first-fit; freeing merges a block with
free physical neighbours on either side.
"""

from __future__ import annotations

__all__ = ["Heap", "HEADER_SIZE", "FOOTER_SIZE", "MIN_BLOCK"]

HEADER_SIZE = 4
FOOTER_SIZE = 4
MIN_BLOCK = 16
_MIN_PAYLOAD = 8


class Heap:
    """An allocator over ``size`` bytes of address space starting at ``start``."""

    def __init__(self, size: int, start: int = 0) -> None:
        if size < 0:
            raise ValueError(f"heap size must be non-negative, got {size!r}")
        if start < 0:
            raise ValueError(f"heap start must be non-negative, got {start!r}")
        self.start = start
        self._blocks: dict[int, int] = {}
        self._ends: dict[int, int] = {}
        # Insertion order is push order; the newest entry is the list head.
        self._free: dict[int, None] = {}

        total = size & ~3
        if total >= MIN_BLOCK:
            self.end = start + total
            self._stamp(start, total)
            self._free[start] = None
        else:
            self.end = start

    # --- block bookkeeping -------------------------------------------------

    def _stamp(self, block: int, size: int) -> None:
        self._blocks[block] = size
        self._ends[block + size] = block

    def _drop(self, block: int) -> int:
        size = self._blocks.pop(block)
        del self._ends[block + size]
        return size

    # --- public API --------------------------------------------------------

    def malloc(self, nbytes: int) -> int:
        """Allocate ``nbytes`` and return the payload address.

        Raises ValueError for a non-positive request and MemoryError when no
        free block is large enough.
        """
        if nbytes <= 0:
            raise ValueError(f"allocation size must be positive, got {nbytes!r}")
        need = max((nbytes + 3) & ~3, _MIN_PAYLOAD)
        want = need + HEADER_SIZE + FOOTER_SIZE

        block = next(
            (b for b in reversed(self._free) if self._blocks[b] >= want), None
        )
        if block is None:
            raise MemoryError(f"no free block can hold {nbytes} bytes")

        del self._free[block]
        leftover = self._blocks[block] - want
        if leftover >= MIN_BLOCK:
            self._drop(block)
            self._stamp(block, want)
            remainder = block + want
            self._stamp(remainder, leftover)
            self._free[remainder] = None
        return block + HEADER_SIZE

    def free(self, address: int | None) -> None:
        """Release an allocation; ``None`` is ignored."""
        if address is None:
            return
        block = address - HEADER_SIZE
        if block not in self._blocks or block in self._free:
            raise ValueError(f"address {address:#x} is not an allocated payload")

        size = self._drop(block)

        following = block + size
        if following < self.end and following in self._free:
            del self._free[following]
            size += self._drop(following)

        if block > self.start:
            preceding = self._ends.get(block)
            if preceding is not None and preceding in self._free:
                del self._free[preceding]
                size += self._drop(preceding)
                block = preceding

        self._stamp(block, size)
        self._free[block] = None

    def block_size(self, address: int) -> int:
        """Whole size (header, payload and footer) of the block holding ``address``."""
        block = address - HEADER_SIZE
        if block not in self._blocks or block in self._free:
            raise ValueError(f"address {address:#x} is not an allocated payload")
        return self._blocks[block]

    def free_blocks(self) -> list[tuple[int, int]]:
        """Free blocks as ``(block_start, size)`` pairs, head of the free list first."""
        return [(b, self._blocks[b]) for b in reversed(self._free)]