import pytest

from megatex.memory import (
    FOOTER_SIZE,
    HEADER_SIZE,
    MIN_HEAP_BLOCK_SIZE,
    STACK_MALLOC_SIZE_BYTES,
    HeapAllocator,
    StackAllocator,
    align8,
)


@pytest.fixture
def heap():
    return HeapAllocator(0x1000, 0x2000)


def test_align8():
    assert align8(0) == 0
    assert align8(1) == 8
    assert align8(8) == 8
    assert align8(9) == 16


def test_fresh_heap_is_one_free_block(heap):
    assert heap.heap_size() == 0x1000
    assert heap.bytes_free() == heap.heap_size()
    assert heap.largest_free_chunk() == heap.heap_size()


def test_unaligned_start_is_aligned():
    allocator = HeapAllocator(0x1003, 0x2000)
    assert allocator.start % 8 == 0
    assert allocator.start >= 0x1003
    assert allocator.heap_size() == 0x2000 - allocator.start


def test_too_small_heap_rejected():
    with pytest.raises(ValueError):
        HeapAllocator(0, MIN_HEAP_BLOCK_SIZE - 8)


def test_malloc_returns_aligned_address_inside_heap(heap):
    address = heap.malloc(13)
    assert address % 8 == 0
    assert heap.start <= address < heap.end
    assert heap.bytes_free() == heap.heap_size() - (align8(13) + HEADER_SIZE + FOOTER_SIZE)


def test_allocations_are_carved_from_the_end(heap):
    first = heap.malloc(16)
    second = heap.malloc(16)
    assert first + 16 + FOOTER_SIZE == heap.end
    assert second < first


def test_allocations_do_not_overlap(heap):
    sizes = [5, 40, 100, 8, 1]
    addresses = [heap.malloc(size) for size in sizes]
    spans = sorted((a, a + align8(s)) for a, s in zip(addresses, sizes))
    for (_, end), (start, _) in zip(spans, spans[1:]):
        assert end <= start


def test_free_coalesces_back_to_one_block(heap):
    a = heap.malloc(32)
    b = heap.malloc(64)
    c = heap.malloc(16)
    heap.free(b)
    assert heap.largest_free_chunk() < heap.bytes_free()
    heap.free(a)
    heap.free(c)
    assert heap.bytes_free() == heap.heap_size()
    assert heap.largest_free_chunk() == heap.heap_size()


def test_malloc_too_large_raises(heap):
    with pytest.raises(MemoryError):
        heap.malloc(heap.heap_size())


def test_whole_block_used_when_remainder_too_small():
    allocator = HeapAllocator(0, 64)
    address = allocator.malloc(40)
    assert address == HEADER_SIZE
    assert allocator.bytes_free() == 0
    assert allocator.largest_free_chunk() == 0
    with pytest.raises(MemoryError):
        allocator.malloc(0)


def test_free_outside_heap_is_ignored(heap):
    heap.malloc(8)
    before = heap.bytes_free()
    heap.free(0x10)
    heap.free(None)
    assert heap.bytes_free() == before


def test_double_free_raises(heap):
    address = heap.malloc(24)
    heap.free(address)
    with pytest.raises(ValueError):
        heap.free(address)


def test_freed_space_is_reused(heap):
    address = heap.malloc(128)
    heap.free(address)
    assert heap.malloc(128) == address


def test_realloc_none_allocates(heap):
    address = heap.realloc(None, 32)
    assert heap.bytes_free() == heap.heap_size() - (32 + HEADER_SIZE + FOOTER_SIZE)
    assert address % 8 == 0


def test_realloc_keeps_contents(heap):
    address = heap.malloc(8)
    offset = address - heap.start
    heap.data[offset:offset + 8] = b"abcdefgh"
    moved = heap.realloc(address, 64)
    assert moved != address
    new_offset = moved - heap.start
    assert bytes(heap.data[new_offset:new_offset + 8]) == b"abcdefgh"
    with pytest.raises(ValueError):
        heap.free(address)


def test_realloc_of_unknown_address_raises(heap):
    with pytest.raises(ValueError):
        heap.realloc(heap.start + 0x100, 16)


def test_reset_restores_heap(heap):
    heap.malloc(100)
    heap.malloc(200)
    heap.reset()
    assert heap.bytes_free() == heap.heap_size()


def test_negative_size_rejected(heap):
    with pytest.raises(ValueError):
        heap.malloc(-1)


def test_stack_allocations_are_sequential():
    stack = StackAllocator(base=0x4000)
    first = stack.allocate(1)
    second = stack.allocate(3)
    assert first == 0x4000
    assert second == first + 8
    assert stack.used == 16


def test_stack_free_rewinds():
    stack = StackAllocator()
    first = stack.allocate(16)
    stack.allocate(32)
    stack.free(first)
    assert stack.used == 0
    assert stack.allocate(8) == first


def test_stack_free_above_head_is_ignored():
    stack = StackAllocator()
    stack.allocate(16)
    stack.free(stack.base + 64)
    assert stack.used == 16


def test_stack_overflow_raises():
    stack = StackAllocator()
    stack.allocate(STACK_MALLOC_SIZE_BYTES)
    with pytest.raises(MemoryError):
        stack.allocate(1)


def test_stack_reset():
    stack = StackAllocator()
    stack.allocate(100)
    stack.reset()
    assert stack.used == 0
    assert stack.allocate(8) == stack.base