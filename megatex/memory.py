"""A first-fit heap allocator and a stack allocator over a simulated address range."""

from __future__ import annotations

from dataclasses import dataclass

HEADER_SIZE = 8
FREE_HEADER_SIZE = 16
FOOTER_SIZE = 8
MIN_HEAP_BLOCK_SIZE = FREE_HEADER_SIZE + FOOTER_SIZE
STACK_MALLOC_SIZE_BYTES = 8 * 1024
_WORD_SIZE = 8


def align8(size: int) -> int:
    """Round ``size`` up to a multiple of eight."""
    return (size + 7) & ~7


@dataclass
class _Block:
    end: int
    used: bool


class HeapAllocator:
    """Hands out 8 byte aligned blocks from ``[heap_start, heap_end)``.

    Every block carries a header and a footer, so neighbouring free blocks
    merge when one is released. Allocations are carved from the end of the
    first free block that is large enough. ``data`` holds the heap's bytes,
    with offset 0 at ``start``.
    """

    def __init__(self, heap_start: int, heap_end: int) -> None:
        start = align8(heap_start)
        if heap_end - start < MIN_HEAP_BLOCK_SIZE:
            raise ValueError("heap is too small to hold a single block")
        self.start = start
        self.end = heap_end
        self.data = bytearray(heap_end - start)
        self.reset()

    def reset(self) -> None:
        """Forget every allocation and make the whole heap one free block."""
        self._blocks: dict[int, _Block] = {}
        self._block_ending: dict[int, int] = {}
        self._free: list[int] = [self.start]
        self._init_block(self.start, self.end, used=False)

    def heap_size(self) -> int:
        return self.end - self.start

    def bytes_free(self) -> int:
        """Total size of all free blocks, headers included."""
        return sum(self._blocks[start].end - start for start in self._free)

    def largest_free_chunk(self) -> int:
        """Size of the largest free block, headers included."""
        return max((self._blocks[start].end - start for start in self._free), default=0)

    def malloc(self, size: int) -> int:
        """Address of a new block of at least ``size`` bytes."""
        if size < 0:
            raise ValueError("size cannot be negative")
        needed = align8(size) + HEADER_SIZE + FOOTER_SIZE

        for position, start in enumerate(self._free):
            block = self._blocks[start]
            segment_size = block.end - start
            if segment_size < needed:
                continue

            end = block.end
            if segment_size >= needed + MIN_HEAP_BLOCK_SIZE:
                new_start = end - needed
                self._init_block(start, new_start, used=False)
            else:
                del self._free[position]
                new_start = start

            self._init_block(new_start, end, used=True)
            return new_start + HEADER_SIZE

        raise MemoryError(f"no free block can hold {size} bytes")

    def realloc(self, address: int | None, size: int) -> int:
        """Move the block at ``address`` to a new block of ``size`` bytes, keeping its contents."""
        if address is None:
            return self.malloc(size)

        old = self._used_block(address)
        capacity = old.end - FOOTER_SIZE - address
        result = self.malloc(size)

        count = min(size, capacity)
        src = address - self.start
        dst = result - self.start
        self.data[dst:dst + count] = self.data[src:src + count]

        self.free(address)
        return result

    def free(self, address: int | None) -> None:
        """Release the block at ``address``; addresses outside the heap are ignored."""
        if address is None or not self.start <= address < self.end:
            return

        block = self._used_block(address)
        segment_start = address - HEADER_SIZE
        segment_end = block.end

        prev_start = self._block_ending.get(segment_start)
        if prev_start is not None:
            prev = self._blocks.get(prev_start)
            if prev is not None and not prev.used and prev.end == segment_start:
                self._free.remove(prev_start)
                del self._blocks[segment_start]
                del self._block_ending[segment_start]
                segment_start = prev_start

        following = self._blocks.get(segment_end)
        if following is not None and not following.used:
            self._free.remove(segment_end)
            del self._blocks[segment_end]
            self._block_ending.pop(segment_end, None)
            segment_end = following.end

        self._init_block(segment_start, segment_end, used=False)
        self._free.insert(0, segment_start)

    def _init_block(self, start: int, end: int, used: bool) -> None:
        self._blocks[start] = _Block(end, used)
        self._block_ending[end] = start

    def _used_block(self, address: int) -> _Block:
        block = self._blocks.get(address - HEADER_SIZE)
        if block is None or not block.used:
            raise ValueError(f"address {address:#x} is not an allocated block")
        return block


class StackAllocator:
    """Allocates 8 byte words in order; freeing rewinds to the freed address."""

    def __init__(self, base: int = 0, capacity: int = STACK_MALLOC_SIZE_BYTES) -> None:
        if capacity < 0:
            raise ValueError("capacity cannot be negative")
        self.base = base
        self.capacity_words = capacity // _WORD_SIZE
        self._at = 0

    @property
    def used(self) -> int:
        """Bytes currently handed out."""
        return self._at * _WORD_SIZE

    def allocate(self, size: int) -> int:
        """Address of ``size`` bytes on top of the stack."""
        if size < 0:
            raise ValueError("size cannot be negative")
        words = (size + 7) >> 3
        if self._at + words > self.capacity_words:
            raise MemoryError(f"stack cannot hold another {size} bytes")
        result = self.base + self._at * _WORD_SIZE
        self._at += words
        return result

    def free(self, address: int) -> None:
        """Release ``address`` and everything allocated after it."""
        head = self.base + self._at * _WORD_SIZE
        if address < head:
            if address < self.base:
                raise ValueError(f"address {address:#x} is below the stack")
            self._at = (address - self.base) // _WORD_SIZE

    def reset(self) -> None:
        self._at = 0