"""
  L I F E ³
  A three-dimensional cellular automaton.

  Every cell of a fixed W×H×D lattice is alive or dead. Each tick, a cell
  looks at the 26 cells of its Moore neighbourhood (every lattice point at
  Chebyshev distance 1) and the configured birth/survival sets decide its
  next state. There is no canonical 3D rule, so the rule is always supplied
  by the caller; RULES carries a few well-known presets.

  The engine knows nothing about rendering. A host loop calls
  ``initialize`` once, ``step`` once per tick, and reads the cells back
  through ``snapshot()`` or ``alive_cells()`` to refresh its own visuals.

  Boundary policy is *closed* by default: neighbours that would fall
  outside the grid simply do not exist. Toroidal wrap-around is available
  but only when asked for explicitly.
"""

from __future__ import annotations

import time
from collections import deque
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, ClassVar, Union

import numpy as np
from numpy.typing import NDArray
from scipy.ndimage import convolve

Coord = tuple[int, int, int]
RGB = tuple[float, float, float]

# ── Neighbourhood ───────────────────────────────────────────────────────
# 26-connectivity: the full 3×3×3 block minus the centre cell
NEIGHBOR_KERNEL: NDArray = np.ones((3, 3, 3), dtype=np.int16)
NEIGHBOR_KERNEL[1, 1, 1] = 0

NEIGHBOR_OFFSETS: list[Coord] = [
    (dx, dy, dz)
    for dx in (-1, 0, 1)
    for dy in (-1, 0, 1)
    for dz in (-1, 0, 1)
    if (dx, dy, dz) != (0, 0, 0)
]
MAX_NEIGHBORS: int = len(NEIGHBOR_OFFSETS)  # 26

# Boundary policy → scipy.ndimage edge mode
BOUNDARY_MODES: dict[str, str] = {
    "closed": "constant",
    "wrap": "wrap",
}

# ── Palette ─────────────────────────────────────────────────────────────
WHITE: RGB = (1.0, 1.0, 1.0)
GREEN: RGB = (0.0, 1.0, 0.0)
RED: RGB = (1.0, 0.0, 0.0)

# Colour of a freshly allocated (never initialised) cell
DEFAULT_GRID_COLOR: RGB = WHITE

# ── World defaults ──────────────────────────────────────────────────────
DEFAULT_DIMENSIONS: Coord = (25, 25, 25)
DEFAULT_BIRTH_PROBABILITY: float = 1.0 / 100.0

# ── Telemetry ───────────────────────────────────────────────────────────
POP_HISTORY_LEN: int = 500
HASH_HISTORY_LEN: int = 60
MAX_CYCLE_PERIOD: int = 30


# ═══════════════════════════════════════════════════════════════════════
#  Errors
# ═══════════════════════════════════════════════════════════════════════

class Life3DError(Exception):
    """Base class for every error raised by the simulation core."""


class InvalidDimension(Life3DError, ValueError):
    """A grid dimension is missing, non-integer, zero or negative."""


class OutOfBounds(Life3DError, IndexError):
    """A coordinate lies outside the grid extent."""


class NotInitialized(Life3DError, RuntimeError):
    """The engine was used before ``initialize`` populated it."""


# ═══════════════════════════════════════════════════════════════════════
#  Value types
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Cell:
    """A single lattice site. Colour is cosmetic and never read by the rule."""
    alive: bool
    position: Coord
    color: RGB = DEFAULT_GRID_COLOR


def _validate_rgb(name: str, rgb: Iterable[float]) -> RGB:
    values = tuple(float(c) for c in rgb)
    if len(values) != 3:
        raise ValueError(f"{name} colour must have 3 components, got {len(values)}")
    for c in values:
        if not 0.0 <= c <= 1.0:
            raise ValueError(f"{name} colour component {c} outside [0, 1]")
    return values  # type: ignore[return-value]


@dataclass(frozen=True)
class ColorRule:
    """Deterministic alive-state → colour mapping."""
    alive: RGB = GREEN
    dead: RGB = RED

    def __post_init__(self) -> None:
        object.__setattr__(self, "alive", _validate_rgb("alive", self.alive))
        object.__setattr__(self, "dead", _validate_rgb("dead", self.dead))

    def color_for(self, alive: bool) -> RGB:
        return self.alive if alive else self.dead

    def fill(self, alive: NDArray[np.bool_], out: NDArray[np.float32]) -> None:
        """Write colours for a whole alive-array into ``out`` (shape alive.shape + (3,))."""
        out[...] = self.dead
        out[alive] = self.alive


DEFAULT_COLORS = ColorRule()


def _format_counts(counts: frozenset[int]) -> str:
    """Compress a count set into notation: runs of 3+ become ``a-b``."""
    ordered = sorted(counts)
    parts: list[str] = []
    i = 0
    while i < len(ordered):
        j = i
        while j + 1 < len(ordered) and ordered[j + 1] == ordered[j] + 1:
            j += 1
        if j - i >= 2:
            parts.append(f"{ordered[i]}-{ordered[j]}")
        else:
            parts.extend(str(v) for v in ordered[i : j + 1])
        i = j + 1
    return ",".join(parts)


@dataclass(frozen=True)
class LifeRule:
    """
    Birth/survival transition rule over the 26-cell neighbourhood.

    A live cell with ``n`` live neighbours survives iff ``n in survive``;
    a dead cell becomes alive iff ``n in birth``; everything else dies.
    Lookup tables of length 27 are built once so the vectorised step can
    index them directly with the neighbour-count array.
    """
    birth: frozenset[int]
    survive: frozenset[int]
    birth_table: NDArray[np.bool_] = field(init=False, repr=False, compare=False)
    survive_table: NDArray[np.bool_] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        birth = frozenset(int(n) for n in self.birth)
        survive = frozenset(int(n) for n in self.survive)
        for label, counts in (("birth", birth), ("survive", survive)):
            bad = sorted(n for n in counts if not 0 <= n <= MAX_NEIGHBORS)
            if bad:
                raise ValueError(
                    f"{label} counts {bad} outside [0, {MAX_NEIGHBORS}]"
                )
        object.__setattr__(self, "birth", birth)
        object.__setattr__(self, "survive", survive)

        birth_table = np.zeros(MAX_NEIGHBORS + 1, dtype=np.bool_)
        survive_table = np.zeros(MAX_NEIGHBORS + 1, dtype=np.bool_)
        birth_table[sorted(birth)] = True
        survive_table[sorted(survive)] = True
        birth_table.flags.writeable = False
        survive_table.flags.writeable = False
        object.__setattr__(self, "birth_table", birth_table)
        object.__setattr__(self, "survive_table", survive_table)

    @property
    def notation(self) -> str:
        return f"B{_format_counts(self.birth)}/S{_format_counts(self.survive)}"

    def next_state(self, alive: bool, neighbors: int) -> bool:
        return neighbors in (self.survive if alive else self.birth)

    def __str__(self) -> str:
        return self.notation


def _parse_counts(body: str) -> set[int]:
    counts: set[int] = set()
    if not body:
        return counts
    for item in body.split(","):
        item = item.strip()
        if "-" in item:
            lo_s, hi_s = item.split("-", 1)
            lo, hi = int(lo_s), int(hi_s)
            if lo > hi:
                raise ValueError(f"descending range {item!r}")
            if lo < 0 or hi > MAX_NEIGHBORS:
                raise ValueError(f"range {item!r} outside [0, {MAX_NEIGHBORS}]")
            counts.update(range(lo, hi + 1))
        else:
            counts.add(int(item))
    return counts


def parse_rule(text: str) -> LifeRule:
    """Parse ``B<birth>/S<survive>`` notation, e.g. ``B6-8/S5-10`` or ``B5/S4,5``."""
    sections = [s.strip() for s in text.strip().upper().split("/")]
    if len(sections) != 2:
        raise ValueError(f"rule {text!r} must look like 'B<counts>/S<counts>'")

    parsed: dict[str, set[int]] = {}
    for section in sections:
        key, body = section[:1], section[1:]
        if key not in ("B", "S") or key in parsed:
            raise ValueError(f"rule {text!r} must have exactly one B and one S section")
        try:
            parsed[key] = _parse_counts(body)
        except ValueError as exc:
            raise ValueError(f"invalid counts in rule {text!r}: {exc}") from exc

    return LifeRule(birth=frozenset(parsed["B"]), survive=frozenset(parsed["S"]))


# ── Rule presets ────────────────────────────────────────────────────────
RULES: dict[str, LifeRule] = {
    # The classic 2D numbers applied verbatim in 3D; dies out almost immediately
    "conway": parse_rule("B3/S2,3"),
    # Carter Bays' 3D rules
    "bays4555": parse_rule("B5/S4,5"),
    "bays5766": parse_rule("B6/S5-7"),
    # Wide ranges, keeps dense seeds busy for a while
    "permissive": parse_rule("B6-8/S5-10"),
}


def get_rule(name_or_notation: str) -> LifeRule:
    """Resolve a preset name or parse rule notation."""
    rule = RULES.get(name_or_notation.strip().lower())
    if rule is not None:
        return rule
    return parse_rule(name_or_notation)


# ── Pattern library ─────────────────────────────────────────────────────
# Offsets are relative to the placement point
PATTERNS: dict[str, list[Coord]] = {
    "block": [
        (dx, dy, dz) for dx in (0, 1) for dy in (0, 1) for dz in (0, 1)
    ],
    "cube": [
        (dx, dy, dz) for dx in (-1, 0, 1) for dy in (-1, 0, 1) for dz in (-1, 0, 1)
    ],
    # 3×3×3 with the eight corners knocked out
    "cross": [
        (dx, dy, dz)
        for dx in (-1, 0, 1)
        for dy in (-1, 0, 1)
        for dz in (-1, 0, 1)
        if dx == 0 or dy == 0 or dz == 0
    ],
    "plus": [
        (0, 0, 0),
        (1, 0, 0), (-1, 0, 0),
        (0, 1, 0), (0, -1, 0),
        (0, 0, 1), (0, 0, -1),
    ],
}

PatternSpec = Union[str, Iterable[Coord]]


# ═══════════════════════════════════════════════════════════════════════
#  Grid
# ═══════════════════════════════════════════════════════════════════════

class Grid:
    """
    Fixed-shape dense lattice of cells.

    Stored as two numpy arrays indexed ``[x, y, z]``: ``alive`` (bool) and
    ``color`` (float32, trailing axis of 3). The shape never changes after
    construction; only contents do.
    """

    def __init__(
        self, width: int, height: int, depth: int, color: RGB = DEFAULT_GRID_COLOR
    ) -> None:
        for axis, value in (("width", width), ("height", height), ("depth", depth)):
            if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
                raise InvalidDimension(f"{axis} must be an integer, got {value!r}")
            if value <= 0:
                raise InvalidDimension(f"{axis} must be positive, got {value}")

        self.width: int = int(width)
        self.height: int = int(height)
        self.depth: int = int(depth)

        self.alive: NDArray[np.bool_] = np.zeros(self.shape, dtype=np.bool_)
        self.color: NDArray[np.float32] = np.empty(self.shape + (3,), dtype=np.float32)
        self.color[...] = _validate_rgb("grid", color)

    @property
    def shape(self) -> Coord:
        return (self.width, self.height, self.depth)

    @property
    def size(self) -> int:
        return self.width * self.height * self.depth

    def contains(self, x: int, y: int, z: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height and 0 <= z < self.depth

    def check_bounds(self, x: int, y: int, z: int) -> None:
        if not self.contains(x, y, z):
            raise OutOfBounds(
                f"coordinate ({x}, {y}, {z}) outside grid of shape {self.shape}"
            )

    def get(self, x: int, y: int, z: int) -> Cell:
        self.check_bounds(x, y, z)
        return Cell(
            alive=bool(self.alive[x, y, z]),
            position=(int(x), int(y), int(z)),
            color=tuple(self.color[x, y, z].tolist()),  # type: ignore[arg-type]
        )

    def set(self, x: int, y: int, z: int, cell: Cell) -> None:
        self.check_bounds(x, y, z)
        color = _validate_rgb("cell", cell.color)
        self.alive[x, y, z] = cell.alive
        self.color[x, y, z] = color

    def population(self) -> int:
        return int(np.count_nonzero(self.alive))

    def clear(self, color: RGB = DEFAULT_GRID_COLOR) -> None:
        color = _validate_rgb("grid", color)
        self.alive[...] = False
        self.color[...] = color

    def copy(self) -> Grid:
        other = Grid(self.width, self.height, self.depth)
        np.copyto(other.alive, self.alive)
        np.copyto(other.color, self.color)
        return other

    def __repr__(self) -> str:
        return f"Grid({self.width}, {self.height}, {self.depth}, population={self.population()})"


# ═══════════════════════════════════════════════════════════════════════
#  Snapshot
# ═══════════════════════════════════════════════════════════════════════

class Snapshot:
    """
    Read-only, restartable view of every cell as of one completed tick.

    Iterates ``(coordinate, Cell)`` in x-major order. Backed by views of
    the engine's buffer rather than a copy, so it is only valid until the
    next ``step()``; renderers should consume it within the tick. Edits
    made between ticks (``set_alive``, ``place``, ``clear``) show through
    a snapshot already handed out.
    """

    def __init__(
        self, alive: NDArray[np.bool_], color: NDArray[np.float32], generation: int
    ) -> None:
        self._alive = alive.view()
        self._alive.flags.writeable = False
        self._color = color.view()
        self._color.flags.writeable = False
        self.generation = generation

    @property
    def shape(self) -> Coord:
        return self._alive.shape  # type: ignore[return-value]

    def __len__(self) -> int:
        return int(self._alive.size)

    def __iter__(self) -> Iterator[tuple[Coord, Cell]]:
        alive, color = self._alive, self._color
        for pos in np.ndindex(*alive.shape):
            yield pos, Cell(
                alive=bool(alive[pos]),
                position=pos,
                color=tuple(color[pos].tolist()),  # type: ignore[arg-type]
            )

    def alive_mask(self) -> NDArray[np.bool_]:
        return self._alive


# ═══════════════════════════════════════════════════════════════════════
#  Stats logger
# ═══════════════════════════════════════════════════════════════════════

class StatsLogger:
    """Writes per-tick engine telemetry to CSV for post-hoc tuning."""

    HEADER: ClassVar[str] = "gen,time_s,population,births,deaths,cycle_period,event\n"

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fh: IO[str] | None = None
        self._t0: float = time.monotonic()

    def open(self) -> None:
        try:
            self._fh = open(self._path, "w")
            self._fh.write(self.HEADER)
            self._fh.flush()
        except OSError:
            self._fh = None

    @property
    def is_open(self) -> bool:
        return self._fh is not None

    def log(
        self,
        gen: int,
        pop: int,
        births: int,
        deaths: int,
        cycle: int,
        event: str = "",
    ) -> None:
        if self._fh is None:
            return
        t = time.monotonic() - self._t0
        self._fh.write(f"{gen},{t:.3f},{pop},{births},{deaths},{cycle},{event}\n")
        # Flush on events or periodically
        if event or gen % 50 == 0:
            try:
                self._fh.flush()
            except OSError:
                pass

    def log_engine(self, life: Life3D, event: str = "") -> None:
        self.log(
            gen=life.generation,
            pop=life.population(),
            births=life.births,
            deaths=life.deaths,
            cycle=life.cycle_period,
            event=event,
        )

    def close(self) -> None:
        if self._fh is not None:
            try:
                self._fh.close()
            except OSError:
                pass
            self._fh = None

    def __enter__(self) -> StatsLogger:
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False


# ═══════════════════════════════════════════════════════════════════════
#  The universe
# ═══════════════════════════════════════════════════════════════════════

class Life3D:
    """
    The simulation engine: a double-buffered 3D Life-like automaton.

    ``step()`` reads only the current buffer and writes the next one, then
    publishes it with a single reference swap, so a reader on the same
    thread never sees a half-updated grid. The spare buffer and the
    convolution scratch arrays are reused every tick.
    """

    def __init__(self, rule: LifeRule, boundary: str = "closed") -> None:
        if boundary not in BOUNDARY_MODES:
            raise ValueError(
                f"unknown boundary {boundary!r}; choose from {', '.join(BOUNDARY_MODES)}"
            )
        self.rule: LifeRule = rule
        self.boundary: str = boundary
        self.color_rule: ColorRule = DEFAULT_COLORS

        self._current: Grid | None = None
        self._next: Grid | None = None

        self.generation: int = 0

        # ── Telemetry ───
        self.pop_history: deque[int] = deque(maxlen=POP_HISTORY_LEN)
        self.hash_history: deque[int] = deque(maxlen=HASH_HISTORY_LEN)
        self.births: int = 0          # cells born on the last step
        self.deaths: int = 0          # cells that died on the last step
        self.cycle_period: int = 0    # detected cycle period (0 = none)

        # Pre-allocated buffers for step() hot path
        self._grid_i16: NDArray[np.int16] | None = None
        self._neighbor_buf: NDArray[np.int16] | None = None

    # ── Seeding ─────────────────────────────────────────────────────

    def initialize(
        self,
        dimensions: Iterable[int] = DEFAULT_DIMENSIONS,
        birth_probability: float = DEFAULT_BIRTH_PROBABILITY,
        color_rule: ColorRule = DEFAULT_COLORS,
        rng: np.random.Generator | int | None = None,
    ) -> None:
        """
        Allocate the grid and seed it: every cell is alive with independent
        probability ``birth_probability``.

        ``rng`` may be a ``numpy.random.Generator``, an integer seed, or
        None for fresh OS entropy. This is the only randomness in the core.
        """
        dims = tuple(dimensions)
        if len(dims) != 3:
            raise InvalidDimension(f"expected 3 dimensions, got {len(dims)}")
        if not 0.0 <= birth_probability <= 1.0:  # also rejects NaN
            raise ValueError(f"birth_probability {birth_probability} outside [0, 1]")

        current = Grid(*dims)
        nxt = Grid(*dims)
        generator = np.random.default_rng(rng)

        current.alive[...] = generator.random(current.shape) < birth_probability
        color_rule.fill(current.alive, out=current.color)

        self._current = current
        self._next = nxt
        self.color_rule = color_rule
        self._grid_i16 = np.empty(current.shape, dtype=np.int16)
        self._neighbor_buf = np.empty(current.shape, dtype=np.int16)

        self.generation = 0
        self.births = 0
        self.deaths = 0
        self.cycle_period = 0
        self.pop_history.clear()
        self.hash_history.clear()
        self._record(current)

    def _require_ready(self) -> Grid:
        if self._current is None:
            raise NotInitialized("call initialize() before using the engine")
        return self._current

    @property
    def initialized(self) -> bool:
        return self._current is not None

    @property
    def dimensions(self) -> Coord:
        return self._require_ready().shape

    # ── Neighbourhood ───────────────────────────────────────────────

    def count_alive_neighbors(self, x: int, y: int, z: int) -> int:
        """Live cells among the 26 neighbours of (x, y, z), honouring the boundary."""
        grid = self._require_ready()
        grid.check_bounds(x, y, z)
        w, h, d = grid.shape
        alive = grid.alive
        wrap = self.boundary == "wrap"

        count = 0
        for dx, dy, dz in NEIGHBOR_OFFSETS:
            nx, ny, nz = x + dx, y + dy, z + dz
            if wrap:
                nx, ny, nz = nx % w, ny % h, nz % d
            elif not (0 <= nx < w and 0 <= ny < h and 0 <= nz < d):
                continue
            if alive[nx, ny, nz]:
                count += 1
        return count

    def _count_all(self) -> NDArray[np.int16]:
        grid = self._require_ready()
        assert self._grid_i16 is not None and self._neighbor_buf is not None
        # Reuse pre-allocated input + output buffers (avoids per-tick allocations)
        np.copyto(self._grid_i16, grid.alive)
        convolve(
            self._grid_i16,
            NEIGHBOR_KERNEL,
            output=self._neighbor_buf,
            mode=BOUNDARY_MODES[self.boundary],
            cval=0,
        )
        return self._neighbor_buf

    def neighbor_counts(self) -> NDArray[np.int16]:
        """Neighbour count for every cell at once (a fresh array)."""
        return self._count_all().copy()

    # ── Simulation ──────────────────────────────────────────────────

    def step(self) -> None:
        """Advance one generation."""
        current = self._require_ready()
        nxt = self._next
        assert nxt is not None

        n = self._count_all()
        alive = current.alive
        survive = alive & self.rule.survive_table[n]
        birth = ~alive & self.rule.birth_table[n]

        np.logical_or(survive, birth, out=nxt.alive)
        self.color_rule.fill(nxt.alive, out=nxt.color)

        births = int(np.count_nonzero(birth))
        deaths = int(np.count_nonzero(alive)) - int(np.count_nonzero(survive))

        # Publish: one reference swap, the old buffer becomes next tick's scratch
        self._current, self._next = nxt, current

        self.generation += 1
        self.births = births
        self.deaths = deaths
        self._record(nxt)

    def run(self, steps: int) -> None:
        for _ in range(steps):
            self.step()

    def _record(self, grid: Grid) -> None:
        self.pop_history.append(grid.population())
        self.hash_history.append(hash(np.packbits(grid.alive).tobytes()))

        # ── Cycle detection (iterate deque directly, no list conversion) ──
        self.cycle_period = 0
        hh_len = len(self.hash_history)
        if hh_len >= 2:
            latest = self.hash_history[-1]
            for period in range(1, min(MAX_CYCLE_PERIOD + 1, hh_len)):
                if self.hash_history[-(period + 1)] == latest:
                    self.cycle_period = period
                    break

    # ── Cell access ─────────────────────────────────────────────────

    def get(self, x: int, y: int, z: int) -> Cell:
        return self._require_ready().get(x, y, z)

    def set_alive(self, x: int, y: int, z: int, alive: bool = True) -> None:
        """Force one cell alive or dead between ticks, recolouring it."""
        grid = self._require_ready()
        grid.set(x, y, z, Cell(alive, (x, y, z), self.color_rule.color_for(alive)))

    def place(self, pattern: PatternSpec, x: int, y: int, z: int) -> int:
        """Stamp a pattern at (x, y, z). Cells outside the grid are dropped.

        Returns the number of cells actually placed.
        """
        grid = self._require_ready()
        if isinstance(pattern, str):
            offsets = PATTERNS.get(pattern)
            if offsets is None:
                raise ValueError(
                    f"unknown pattern {pattern!r}; choose from {', '.join(PATTERNS)}"
                )
        else:
            offsets = list(pattern)

        placed = 0
        for dx, dy, dz in offsets:
            nx, ny, nz = x + dx, y + dy, z + dz
            if grid.contains(nx, ny, nz):
                self.set_alive(nx, ny, nz, True)
                placed += 1
        return placed

    def clear(self) -> None:
        grid = self._require_ready()
        grid.alive[...] = False
        self.color_rule.fill(grid.alive, out=grid.color)

    # ── Read-out for renderers ──────────────────────────────────────

    def snapshot(self) -> Snapshot:
        grid = self._require_ready()
        return Snapshot(grid.alive, grid.color, self.generation)

    def alive_cells(self) -> tuple[NDArray[np.int32], NDArray[np.float32]]:
        """Coordinates ``[N, 3]`` and colours ``[N, 3]`` of the live cells only."""
        grid = self._require_ready()
        coords = np.argwhere(grid.alive).astype(np.int32)
        colors = grid.color[grid.alive]
        return coords, colors

    def population(self) -> int:
        return self._require_ready().population()

    def density(self) -> float:
        grid = self._require_ready()
        return grid.population() / grid.size

    def __repr__(self) -> str:
        if self._current is None:
            return f"Life3D({self.rule.notation}, {self.boundary}, uninitialized)"
        w, h, d = self._current.shape
        return (
            f"Life3D({self.rule.notation}, {self.boundary}, {w}x{h}x{d}, "
            f"gen={self.generation}, pop={self._current.population()})"
        )

