"""A fixed-size cache of texture tiles streamed in from ROM.

Tiles live in slots that form a least-recently-used list. Tiles requested
during the previous frame are never evicted, so a frame that asks for more
tiles than fit falls back to coarser levels of detail that are already loaded.
Preloaded tiles sit outside the list and stay resident for good.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field

from .tile_index import TILE_PIXELS, TILE_SIZE, TileIndex

TILE_QUEUE_SIZE = 64
MAX_TILE_REQUESTS_PER_FRAME = 56
MAX_TILE_UNDER_LOADED = 64
MAX_LOD_COUNT = 6
MAX_ENTRY_COUNT = 0xFFFF

# Fixed point texture coordinates carry two fractional bits.
_TILE_COORD_SHIFT = 7
_TILE_COORD_EXTENT = (TILE_PIXELS - 1) << 2


@dataclass
class TileLoader:
    """Describes how the tile in one cache slot is sampled.

    ``entry_index`` is None for the loader that draws nothing.
    """

    entry_index: int | None
    lod: int = 0
    s_min: int = 0
    t_min: int = 0
    s_max: int = _TILE_COORD_EXTENT
    t_max: int = _TILE_COORD_EXTENT

    @property
    def is_nop(self) -> bool:
        return self.entry_index is None

    def place(self, x: int, y: int, lod: int) -> None:
        """Point this loader at tile ``(x, y)`` of level ``lod``."""
        s = x << _TILE_COORD_SHIFT
        t = y << _TILE_COORD_SHIFT
        self.lod = lod
        self.s_min = s
        self.t_min = t
        self.s_max = s + _TILE_COORD_EXTENT
        self.t_max = t + _TILE_COORD_EXTENT


NOP_LOADER = TileLoader(entry_index=None)


@dataclass
class _Entry:
    loader: TileLoader
    newer: int | None = None
    older: int | None = None
    rom_address: int | None = None


@dataclass
class TileCache:
    """Cache of ``entry_count`` tiles read from ``rom``."""

    entry_count: int
    rom: bytes
    max_requests_per_frame: int = MAX_TILE_REQUESTS_PER_FRAME
    tiles_requested_from_cart: int = field(default=0, init=False)
    total_tile_requests: int = field(default=0, init=False)
    overflow_request_count: int = field(default=0, init=False)
    tile_requests: list[int] = field(default_factory=lambda: [0] * MAX_LOD_COUNT, init=False)

    def __post_init__(self) -> None:
        if not 1 <= self.entry_count < MAX_ENTRY_COUNT:
            raise ValueError(f"entry count must be between 1 and {MAX_ENTRY_COUNT - 1}")
        count = self.entry_count
        self._entries = [
            _Entry(
                loader=TileLoader(entry_index=i),
                newer=None if i == count - 1 else i + 1,
                older=None if i == 0 else i - 1,
            )
            for i in range(count)
        ]
        self._data = bytearray(TILE_SIZE * count)
        self._lookup: dict[int, int] = {}
        self._pending: deque[tuple[int, int]] = deque()
        self.oldest_used_tile: int | None = 0
        self.newest_used_tile: int | None = count - 1
        # index 0 is the current frame, index 1 the previous one
        self._oldest_from_frame: list[int | None] = [None, None]

    @property
    def pending_count(self) -> int:
        """Number of tile reads not yet completed."""
        return len(self._pending)

    def tile_data(self, entry_index: int) -> bytes:
        """The pixel data currently held by slot ``entry_index``."""
        if not 0 <= entry_index < self.entry_count:
            raise IndexError(f"no cache entry {entry_index}")
        start = entry_index * TILE_SIZE
        return bytes(self._data[start:start + TILE_SIZE])

    def start_frame(self) -> None:
        """Begin a new frame and reset the per-frame counters."""
        self._oldest_from_frame[1] = self._oldest_from_frame[0]
        self._oldest_from_frame[0] = None
        self.tiles_requested_from_cart = 0
        self.total_tile_requests = 0
        self.overflow_request_count = 0
        self.tile_requests = [0] * MAX_LOD_COUNT

    def has_extra_space(self, limit: int = MAX_TILE_UNDER_LOADED) -> bool:
        """True when at least ``limit`` slots were not used in the previous frame."""
        count = 0
        index = self.oldest_used_tile
        while index is not None and index != self._oldest_from_frame[1]:
            count += 1
            if count == limit:
                return True
            index = self._entries[index].newer
        return False

    def request_tile(self, index: TileIndex, x: int, y: int, lod: int) -> TileLoader:
        """Loader for tile ``(x, y)`` of level ``lod``, fetching it if needed.

        When no slot can be freed this frame, the nearest coarser level that is
        already cached is returned instead, or ``NOP_LOADER`` if there is none.
        """
        address = index.image_layers[lod].rom_address(x, y)
        self.total_tile_requests += 1

        found = self._search(address)
        if found is not None:
            return found

        self._check_address(address)

        entry_index = None
        if self.tiles_requested_from_cart < self.max_requests_per_frame:
            entry_index = self._remove_oldest_used_tile()

        if entry_index is None:
            while lod + 1 < index.layer_count:
                lod += 1
                x >>= 1
                y >>= 1
                found = self._search(index.image_layers[lod].rom_address(x, y))
                if found is not None:
                    return found
            return NOP_LOADER

        self.tiles_requested_from_cart += 1
        self._add(entry_index, address)
        self._request_from_rom(entry_index, address)
        self.tile_requests[lod] += 1
        loader = self._entries[entry_index].loader
        loader.place(x, y, lod)
        return loader

    def preload_tile(self, index: TileIndex, x: int, y: int, lod: int) -> TileLoader | None:
        """Load a tile permanently; None when no slot is free."""
        address = index.image_layers[lod].rom_address(x, y)

        found = self._search(address)
        if found is not None:
            return found

        self._check_address(address)

        entry_index = self._remove_oldest_used_tile()
        if entry_index is None:
            return None

        self._request_from_rom(entry_index, address)
        loader = self._entries[entry_index].loader
        loader.place(x, y, lod)
        self._lookup[address] = entry_index
        return loader

    def wait_for_tiles(self) -> None:
        """Complete every outstanding tile read."""
        while self._pending:
            self._complete_oldest_read()

    def _check_address(self, address: int) -> None:
        if address < 0 or address + TILE_SIZE > len(self.rom):
            raise ValueError(f"tile at address {address:#x} lies outside the ROM")

    def _search(self, address: int) -> TileLoader | None:
        entry_index = self._lookup.get(address)
        if entry_index is None:
            return None
        self._mark_most_recent(entry_index)
        return self._entries[entry_index].loader

    def _remove_oldest_used_tile(self) -> int | None:
        entry_index = self.oldest_used_tile
        if entry_index is None or entry_index == self._oldest_from_frame[1]:
            # every remaining slot was used last frame
            self.overflow_request_count += 1
            return None

        entry = self._entries[entry_index]
        if entry.rom_address is not None and self._lookup.get(entry.rom_address) == entry_index:
            del self._lookup[entry.rom_address]

        self.oldest_used_tile = entry.newer
        if entry.newer is None:
            self.newest_used_tile = None
        else:
            self._entries[entry.newer].older = None
        entry.newer = None
        entry.older = None
        return entry_index

    def _add(self, entry_index: int, address: int) -> None:
        if self._oldest_from_frame[0] is None:
            self._oldest_from_frame[0] = entry_index

        entry = self._entries[entry_index]
        entry.older = self.newest_used_tile
        entry.newer = None
        if self.newest_used_tile is None:
            self.oldest_used_tile = entry_index
        else:
            self._entries[self.newest_used_tile].newer = entry_index
        self.newest_used_tile = entry_index
        self._lookup[address] = entry_index

    def _mark_most_recent(self, entry_index: int) -> None:
        entry = self._entries[entry_index]
        if entry.newer is None:
            # already the newest, or preloaded for good
            return

        frames = self._oldest_from_frame
        if entry_index == frames[0]:
            frames[0] = entry.newer
        if entry_index == frames[1]:
            frames[1] = entry.newer
        if frames[0] is None:
            frames[0] = entry_index

        newer = self._entries[entry.newer]
        if entry.older is None:
            self.oldest_used_tile = entry.newer
            newer.older = None
        else:
            self._entries[entry.older].newer = entry.newer
            newer.older = entry.older

        self._entries[self.newest_used_tile].newer = entry_index
        entry.older = self.newest_used_tile
        entry.newer = None
        self.newest_used_tile = entry_index

    def _request_from_rom(self, entry_index: int, address: int) -> None:
        self._entries[entry_index].rom_address = address
        if len(self._pending) == TILE_QUEUE_SIZE:
            self._complete_oldest_read()
        self._pending.append((entry_index, address))

    def _complete_oldest_read(self) -> None:
        entry_index, address = self._pending.popleft()
        start = entry_index * TILE_SIZE
        self._data[start:start + TILE_SIZE] = self.rom[address:address + TILE_SIZE]