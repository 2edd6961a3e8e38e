#!/usr/bin/env python3
"""lsystem_turtle.py

A streaming L-system engine paired with an incremental turtle interpreter.

Key features:
- Bounded-memory derivation: symbols are produced one at a time from a stack
  of per-depth layers, the expanded string is never built.
- Deterministic and weighted (stochastic) productions.
- A turtle state machine that executes one symbol per step and accumulates
  line segments and marker points.
- Independent cursor, position and heading stacks for branching.
- JSON run configurations and a set of built-in presets.

Run:
  python lsystem_turtle.py presets
  python lsystem_turtle.py validate config.json
  python lsystem_turtle.py expand hilbert --depth 2
  python lsystem_turtle.py run tree --pace draw --max-frames 50
  python lsystem_turtle.py --help
"""

from __future__ import annotations

import argparse
import itertools
import json
import logging
import math
import random
import sys
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Literal, Union, cast

logger = logging.getLogger(__name__)

Point = tuple[float, float]


# -------------------------
# Errors / Validation
# -------------------------


class ConfigError(ValueError):
    pass


class UnknownRuleError(ConfigError):
    """A symbol reached expansion in strict mode without a production."""


class StackUnderflowError(RuntimeError):
    """A pop action found its stack empty (unbalanced push/pop symbols)."""


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise ConfigError(msg)


def _as_float(x: Any, path: str) -> float:
    _require(isinstance(x, (int, float)), f"{path} must be a number")
    return float(x)


def _as_int(x: Any, path: str) -> int:
    _require(
        isinstance(x, int) and not isinstance(x, bool), f"{path} must be an integer"
    )
    return int(x)


def _as_str(x: Any, path: str) -> str:
    _require(isinstance(x, str), f"{path} must be a string")
    return cast(str, x)


def _as_bool(x: Any, path: str) -> bool:
    _require(isinstance(x, bool), f"{path} must be a boolean")
    return cast(bool, x)


def _as_dict(x: Any, path: str) -> dict[str, Any]:
    _require(isinstance(x, dict), f"{path} must be an object")
    return cast(dict[str, Any], x)


def _as_point(x: Any, path: str) -> Point:
    _require(
        isinstance(x, (list, tuple)) and len(x) == 2,
        f"{path} must be a pair of numbers",
    )
    return (_as_float(x[0], f"{path}[0]"), _as_float(x[1], f"{path}[1]"))


# -------------------------
# Grammar
# -------------------------


@dataclass(frozen=True)
class Production:
    symbols: str
    weight: float = 1.0


RuleSpec = Union[str, Production, Sequence[Union[str, Production, tuple[str, float]]]]


def _to_productions(symbol: str, spec: RuleSpec) -> tuple[Production, ...]:
    _require(
        isinstance(symbol, str) and len(symbol) == 1,
        f"rule key {symbol!r} must be a single-character string",
    )
    if isinstance(spec, str):
        return (Production(spec),)
    if isinstance(spec, Production):
        return (spec,)
    _require(
        isinstance(spec, (list, tuple)),
        f"rule for '{symbol}' must be a string, a Production or a list of alternatives",
    )
    out: list[Production] = []
    for alt in spec:
        if isinstance(alt, Production):
            out.append(alt)
        elif isinstance(alt, str):
            out.append(Production(alt))
        else:
            _require(
                isinstance(alt, (list, tuple))
                and len(alt) == 2
                and isinstance(alt[0], str)
                and isinstance(alt[1], (int, float)),
                f"alternative {alt!r} for '{symbol}' must be a string, a Production "
                "or a (production, weight) pair",
            )
            out.append(Production(alt[0], float(alt[1])))
    return tuple(out)


class Grammar:
    """Symbol -> productions table.

    A symbol without an entry is terminal. Entries with several alternatives
    are resolved by a weighted draw every time the symbol is expanded.
    Weights are checked the first time a symbol is selected, not here.
    """

    def __init__(self, rules: Mapping[str, RuleSpec] | None = None) -> None:
        self._rules: dict[str, tuple[Production, ...]] = {
            symbol: _to_productions(symbol, spec)
            for symbol, spec in (rules or {}).items()
        }
        # symbol -> (total weight, ((cumulative weight, production), ...))
        self._tables: dict[str, tuple[float, tuple[tuple[float, str], ...]]] = {}

    def __contains__(self, symbol: object) -> bool:
        return symbol in self._rules

    def __len__(self) -> int:
        return len(self._rules)

    def __repr__(self) -> str:
        return f"Grammar({self._rules!r})"

    @property
    def symbols(self) -> list[str]:
        return sorted(self._rules)

    def lookup(self, symbol: str) -> tuple[Production, ...]:
        return self._rules.get(symbol, ())

    def choose(self, symbol: str, rng: random.Random) -> str | None:
        """Return the production selected for one occurrence of ``symbol``.

        ``None`` means the symbol is terminal.
        """
        table = self._tables.get(symbol)
        if table is None:
            alternatives = self._rules.get(symbol)
            if alternatives is None:
                return None
            table = self._tables[symbol] = _cumulative(symbol, alternatives)

        total, cumulative = table
        if len(cumulative) == 1:
            return cumulative[0][1]
        pick = rng.random() * total
        for threshold, production in cumulative:
            if pick < threshold:
                return production
        return cumulative[-1][1]


def _cumulative(
    symbol: str, alternatives: tuple[Production, ...]
) -> tuple[float, tuple[tuple[float, str], ...]]:
    _require(len(alternatives) > 0, f"rule for '{symbol}' has no productions")
    cumulative: list[tuple[float, str]] = []
    total = 0.0
    for alt in alternatives:
        weight = float(alt.weight)
        _require(
            weight > 0,
            f"production {alt.symbols!r} for '{symbol}' has non-positive weight {weight}",
        )
        total += weight
        cumulative.append((total, alt.symbols))
    return total, tuple(cumulative)


def rewrite_string(
    axiom: str, grammar: Grammar, depth: int, rng: random.Random | None = None
) -> str:
    """Rewrite the whole string ``depth`` times. Reference for small depths."""
    _require(depth >= 0, "depth must be >= 0")
    rng = rng if rng is not None else random.Random()
    current = axiom
    for _ in range(depth):
        parts: list[str] = []
        for symbol in current:
            production = grammar.choose(symbol, rng)
            parts.append(symbol if production is None else production)
        current = "".join(parts)
    return current


# -------------------------
# Streaming expansion
# -------------------------


class SymbolStream:
    """Yield the symbols of ``axiom`` rewritten ``depth`` times, in order.

    Keeps ``depth + 1`` layers of pending symbols. Layer ``depth`` holds the
    axiom, layer 0 holds fully expanded symbols. Each layer is stored
    reversed so the next symbol is popped from the end. Memory is bounded by
    depth times the widest production.

    Every layer below the pointer is empty whenever the pointer rests on a
    layer, so the pointer is kept between calls.
    """

    def __init__(
        self,
        axiom: str,
        grammar: Grammar,
        depth: int,
        *,
        rng: random.Random | None = None,
        strict: bool = False,
    ) -> None:
        _require(
            isinstance(depth, int) and not isinstance(depth, bool) and depth >= 0,
            "depth must be an integer >= 0",
        )
        self.grammar = grammar
        self.depth = depth
        self.strict = strict
        self._rng = rng if rng is not None else random.Random()
        self._layers: list[list[str]] = [[] for _ in range(depth + 1)]
        self._layers[depth] = list(reversed(axiom))
        self._pointer = 0
        self._exhausted = False
        self.emitted = 0
        logger.debug(
            "symbol stream: axiom=%r depth=%d rules=%d strict=%s",
            axiom,
            depth,
            len(grammar),
            strict,
        )

    def __iter__(self) -> Iterator[str]:
        return self

    def __next__(self) -> str:
        symbol = self.next_symbol()
        if symbol is None:
            raise StopIteration
        return symbol

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    def next_symbol(self) -> str | None:
        if self._exhausted:
            return None

        layers = self._layers
        while True:
            if layers[0]:
                self.emitted += 1
                return layers[0].pop()

            layer = layers[self._pointer]
            if not layer:
                self._pointer += 1
                if self._pointer > self.depth:
                    self._exhausted = True
                    logger.debug("symbol stream exhausted after %d symbols", self.emitted)
                    return None
                continue

            symbol = layer.pop()
            try:
                production = self.grammar.choose(symbol, self._rng)
                if production is None and self.strict:
                    raise UnknownRuleError(
                        f"no production for symbol '{symbol}' (strict mode)"
                    )
            except ConfigError:
                # A failed expansion ends the stream.
                self._exhausted = True
                raise
            if production is None:
                self.emitted += 1
                return symbol

            layers[self._pointer - 1] = list(reversed(production))
            self._pointer -= 1


# -------------------------
# Cursor
# -------------------------


def _normalize(v: Sequence[float]) -> Point:
    x, y = float(v[0]), float(v[1])
    length = math.hypot(x, y)
    _require(
        length > 0 and math.isfinite(length), f"unable to normalize heading {(x, y)}"
    )
    return (x / length, y / length)


class Cursor:
    """Turtle pose: a position and a unit heading vector."""

    __slots__ = ("_position", "_heading")

    def __init__(
        self,
        position: Sequence[float] = (0.0, 0.0),
        heading: Sequence[float] = (0.0, 1.0),
    ) -> None:
        self._position: Point = (float(position[0]), float(position[1]))
        self._heading: Point = _normalize(heading)

    def __repr__(self) -> str:
        return f"Cursor(position={self._position}, heading={self._heading})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Cursor):
            return NotImplemented
        return self._position == other._position and self._heading == other._heading

    @property
    def position(self) -> Point:
        return self._position

    @property
    def heading(self) -> Point:
        return self._heading

    def set_position(self, position: Sequence[float]) -> None:
        self._position = (float(position[0]), float(position[1]))

    def set_angle(self, heading: Sequence[float]) -> None:
        self._heading = _normalize(heading)

    def rotate(self, radians: float) -> None:
        c, s = math.cos(radians), math.sin(radians)
        x, y = self._heading
        self._heading = (x * c - y * s, x * s + y * c)

    def rotate_degrees(self, degrees: float) -> None:
        self.rotate(math.radians(degrees))

    def forward(self, distance: float) -> None:
        x, y = self._position
        hx, hy = self._heading
        self._position = (x + hx * distance, y + hy * distance)

    def copy(self) -> Cursor:
        clone = Cursor.__new__(Cursor)
        clone._position = self._position
        clone._heading = self._heading
        return clone


# -------------------------
# Action model
# -------------------------


@dataclass(frozen=True)
class Action:
    # True for actions that append a segment.
    draws = False


@dataclass(frozen=True)
class NoAction(Action):
    pass


@dataclass(frozen=True)
class MoveForward(Action):
    distance: float


@dataclass(frozen=True)
class DrawForward(Action):
    distance: float
    draws = True


@dataclass(frozen=True)
class MoveTo(Action):
    point: Point


@dataclass(frozen=True)
class DrawTo(Action):
    point: Point
    draws = True


@dataclass(frozen=True)
class RotateRad(Action):
    angle: float


@dataclass(frozen=True)
class RotateDeg(Action):
    angle: float


@dataclass(frozen=True)
class SetAngle(Action):
    heading: Point


@dataclass(frozen=True)
class PushCursor(Action):
    pass


@dataclass(frozen=True)
class PopCursor(Action):
    pass


@dataclass(frozen=True)
class PushPosition(Action):
    pass


@dataclass(frozen=True)
class PopPosition(Action):
    pass


@dataclass(frozen=True)
class PushAngle(Action):
    pass


@dataclass(frozen=True)
class PopAngle(Action):
    pass


@dataclass(frozen=True)
class Mark(Action):
    """Record the current position as a marker point."""


@dataclass(frozen=True)
class Segment:
    start: Point
    end: Point

    def center(self) -> Point:
        return ((self.start[0] + self.end[0]) / 2, (self.start[1] + self.end[1]) / 2)

    def length(self) -> float:
        return math.hypot(self.end[0] - self.start[0], self.end[1] - self.start[1])

    def scaled(self, scale: float) -> Segment:
        return Segment(
            (self.start[0] * scale, self.start[1] * scale),
            (self.end[0] * scale, self.end[1] * scale),
        )

    def offset(self, offset: Point) -> Segment:
        return Segment(
            (self.start[0] - offset[0], self.start[1] - offset[1]),
            (self.end[0] - offset[0], self.end[1] - offset[1]),
        )


# -------------------------
# Turtle interpreter
# -------------------------


StepStatus = Literal["executed", "unknown", "finished"]
InterpreterState = Literal["running", "finished"]


@dataclass(frozen=True)
class StepResult:
    status: StepStatus
    symbol: str | None = None
    action: Action | None = None

    @property
    def finished(self) -> bool:
        return self.status == "finished"

    @property
    def drew(self) -> bool:
        return self.action is not None and self.action.draws


FINISHED = StepResult("finished")


class TurtleInterpreter:
    """Execute one symbol per ``step`` against a live cursor.

    ``symbols`` is usually a :class:`SymbolStream`, but any iterable of
    single-character strings works. Output buffers only ever grow.
    """

    def __init__(
        self,
        symbols: Iterable[str],
        actions: Mapping[str, Action],
        cursor: Cursor,
    ) -> None:
        self._symbols = iter(symbols)
        self._actions = dict(actions)
        self.cursor = cursor.copy()

        self._cursor_stack: list[Cursor] = []
        self._position_stack: list[Point] = []
        self._angle_stack: list[Point] = []

        self.segments: list[Segment] = []
        self.markers: list[Point] = []
        self.state: InterpreterState = "running"
        self.symbols_read = 0
        self._halted: ConfigError | StackUnderflowError | None = None

    def step(self) -> StepResult:
        if self._halted is not None:
            raise self._halted
        if self.state == "finished":
            return FINISHED

        try:
            symbol = next(self._symbols, None)
        except ConfigError as e:
            self._halt(e)
            raise
        if symbol is None:
            self.state = "finished"
            logger.debug(
                "interpreter finished: symbols=%d segments=%d markers=%d",
                self.symbols_read,
                len(self.segments),
                len(self.markers),
            )
            return FINISHED
        self.symbols_read += 1

        action = self._actions.get(symbol)
        if action is None:
            return StepResult("unknown", symbol)

        try:
            self._execute(symbol, action)
        except (ConfigError, StackUnderflowError) as e:
            self._halt(e)
            raise
        return StepResult("executed", symbol, action)

    def _halt(self, error: ConfigError | StackUnderflowError) -> None:
        self._halted = error
        logger.debug("interpreter halted after %d symbols: %s", self.symbols_read, error)

    def _execute(self, symbol: str, action: Action) -> None:
        cur = self.cursor

        if isinstance(action, NoAction):
            return

        if isinstance(action, (MoveForward, DrawForward)):
            start = cur.position
            cur.forward(action.distance)
            if action.draws:
                self.segments.append(Segment(start, cur.position))
            return

        if isinstance(action, (MoveTo, DrawTo)):
            start = cur.position
            cur.set_position(action.point)
            if action.draws:
                self.segments.append(Segment(start, cur.position))
            return

        if isinstance(action, RotateRad):
            cur.rotate(action.angle)
            return

        if isinstance(action, RotateDeg):
            cur.rotate_degrees(action.angle)
            return

        if isinstance(action, SetAngle):
            cur.set_angle(action.heading)
            return

        if isinstance(action, PushCursor):
            self._cursor_stack.append(cur.copy())
            return

        if isinstance(action, PopCursor):
            self.cursor = _pop(self._cursor_stack, symbol, "cursor")
            return

        if isinstance(action, PushPosition):
            self._position_stack.append(cur.position)
            return

        if isinstance(action, PopPosition):
            cur.set_position(_pop(self._position_stack, symbol, "position"))
            return

        if isinstance(action, PushAngle):
            self._angle_stack.append(cur.heading)
            return

        if isinstance(action, PopAngle):
            cur.set_angle(_pop(self._angle_stack, symbol, "angle"))
            return

        if isinstance(action, Mark):
            self.markers.append(cur.position)
            return

        raise ConfigError(f"Unsupported action {action!r} for symbol '{symbol}'")


def _pop(stack: list[Any], symbol: str, kind: str) -> Any:
    if not stack:
        raise StackUnderflowError(
            f"pop command '{symbol}' encountered with empty {kind} stack"
        )
    return stack.pop()


def step_until_drawn(interpreter: TurtleInterpreter) -> StepResult:
    """Advance until an action appends a segment, or the run finishes."""
    while True:
        result = interpreter.step()
        if result.finished or result.drew:
            return result


def drain(interpreter: TurtleInterpreter) -> int:
    """Step to completion; return the number of symbols consumed."""
    count = 0
    while not interpreter.step().finished:
        count += 1
    return count


# -------------------------
# Geometry helpers
# -------------------------


def compute_bounds(segments: Sequence[Segment]) -> tuple[float, float, float, float]:
    _require(len(segments) > 0, "No drawable geometry produced.")
    min_x = min_y = math.inf
    max_x = max_y = -math.inf
    for seg in segments:
        for x, y in (seg.start, seg.end):
            if x < min_x:
                min_x = x
            if x > max_x:
                max_x = x
            if y < min_y:
                min_y = y
            if y > max_y:
                max_y = y
    return (min_x, min_y, max_x, max_y)


def drawing_center(segments: Sequence[Segment]) -> Point:
    """Centre of the extents of the segment midpoints."""
    _require(len(segments) > 0, "No drawable geometry produced.")
    centers = [seg.center() for seg in segments]
    xs = [c[0] for c in centers]
    ys = [c[1] for c in centers]
    return ((max(xs) + min(xs)) / 2, (max(ys) + min(ys)) / 2)


def _fmt(x: float, precision: int = 3) -> str:
    # Normalise -0.0 so it never prints as "-0".
    if not x:
        x = 0.0
    s = f"{x:.{precision}f}"
    if "." in s:
        s = s.rstrip("0").rstrip(".")
    if s == "-0":
        s = "0"
    return s or "0"


# -------------------------
# Config parsing
# -------------------------


@dataclass(frozen=True)
class RunConfig:
    name: str
    axiom: str
    iterations: int
    grammar: Grammar
    actions: dict[str, Action]
    start: Cursor
    seed: int | None
    strict: bool


def _parse_rule(value: Any, path: str) -> tuple[Production, ...]:
    if isinstance(value, str):
        return (Production(value),)
    _require(
        isinstance(value, list),
        f"{path} must be a string or a list of weighted alternatives",
    )
    out: list[Production] = []
    for i, alt in enumerate(value):
        p = f"{path}[{i}]"
        if isinstance(alt, str):
            out.append(Production(alt))
        elif isinstance(alt, list):
            _require(len(alt) == 2, f"{p} must be [production, weight]")
            out.append(
                Production(_as_str(alt[0], f"{p}[0]"), _as_float(alt[1], f"{p}[1]"))
            )
        else:
            obj = _as_dict(alt, p)
            out.append(
                Production(
                    _as_str(obj.get("production"), f"{p}.production"),
                    _as_float(obj.get("weight", 1), f"{p}.weight"),
                )
            )
    return tuple(out)


def _parse_action(obj: dict[str, Any], path: str) -> Action:
    atype = _as_str(obj.get("type"), f"{path}.type")

    if atype == "none":
        return NoAction()
    if atype == "move_forward":
        return MoveForward(_as_float(obj.get("distance", 1), f"{path}.distance"))
    if atype == "draw_forward":
        return DrawForward(_as_float(obj.get("distance", 1), f"{path}.distance"))
    if atype in ("move_to", "draw_to"):
        point = (
            _as_float(obj.get("x"), f"{path}.x"),
            _as_float(obj.get("y"), f"{path}.y"),
        )
        return MoveTo(point) if atype == "move_to" else DrawTo(point)
    if atype == "rotate_rad":
        return RotateRad(_as_float(obj.get("angle"), f"{path}.angle"))
    if atype == "rotate_deg":
        return RotateDeg(_as_float(obj.get("angle"), f"{path}.angle"))
    if atype == "set_angle":
        # Zero vectors are rejected when the action runs.
        return SetAngle(
            (_as_float(obj.get("x"), f"{path}.x"), _as_float(obj.get("y"), f"{path}.y"))
        )

    simple: dict[str, type[Action]] = {
        "push_cursor": PushCursor,
        "pop_cursor": PopCursor,
        "push_position": PushPosition,
        "pop_position": PopPosition,
        "push_angle": PushAngle,
        "pop_angle": PopAngle,
        "mark": Mark,
    }
    if atype in simple:
        return simple[atype]()

    raise ConfigError(f"Unknown action type '{atype}' at {path}")


def _parse_heading(x: Any, path: str) -> Point:
    if isinstance(x, (int, float)) and not isinstance(x, bool):
        rad = math.radians(float(x))
        return (math.cos(rad), math.sin(rad))
    return _as_point(x, path)


def parse_config(obj: dict[str, Any]) -> RunConfig:
    obj = _as_dict(obj, "root")

    name = _as_str(obj.get("name", "L-System"), "name")
    axiom = _as_str(obj.get("axiom", ""), "axiom")
    _require(len(axiom) > 0, "axiom must be non-empty")

    iterations = _as_int(obj.get("iterations", 0), "iterations")
    _require(iterations >= 0, "iterations must be >= 0")

    rules_obj = _as_dict(obj.get("rules", {}), "rules")
    rules: dict[str, RuleSpec] = {}
    for k, v in rules_obj.items():
        _require(
            isinstance(k, str) and len(k) == 1,
            "rules keys must be single-character strings",
        )
        rules[k] = _parse_rule(v, f"rules['{k}']")

    strict = _as_bool(obj.get("strict", False), "strict")
    seed = obj.get("seed")
    if seed is not None:
        seed = _as_int(seed, "seed")

    turtle = _as_dict(obj.get("turtle", {}), "turtle")
    start_obj = _as_dict(turtle.get("start", {}), "turtle.start")
    start = Cursor(
        (
            _as_float(start_obj.get("x", 0), "turtle.start.x"),
            _as_float(start_obj.get("y", 0), "turtle.start.y"),
        ),
        _parse_heading(start_obj.get("heading", 90), "turtle.start.heading"),
    )

    actions_obj = _as_dict(turtle.get("actions", {}), "turtle.actions")
    actions: dict[str, Action] = {}
    for sym, action in actions_obj.items():
        _require(
            isinstance(sym, str) and len(sym) == 1,
            "turtle.actions keys must be single-character strings",
        )
        path = f"turtle.actions['{sym}']"
        actions[sym] = _parse_action(_as_dict(action, path), path)

    return RunConfig(
        name=name,
        axiom=axiom,
        iterations=iterations,
        grammar=Grammar(rules),
        actions=actions,
        start=start,
        seed=seed,
        strict=strict,
    )


def load_json(path: str) -> dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        try:
            return cast(dict[str, Any], json.load(f))
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}") from e


def build_stream(
    cfg: RunConfig,
    *,
    depth: int | None = None,
    seed: int | None = None,
    rng: random.Random | None = None,
) -> SymbolStream:
    if rng is None:
        rng = random.Random(seed if seed is not None else cfg.seed)
    return SymbolStream(
        cfg.axiom,
        cfg.grammar,
        cfg.iterations if depth is None else depth,
        rng=rng,
        strict=cfg.strict,
    )


def build_interpreter(
    cfg: RunConfig, *, depth: int | None = None, seed: int | None = None
) -> TurtleInterpreter:
    return TurtleInterpreter(
        build_stream(cfg, depth=depth, seed=seed), cfg.actions, cfg.start
    )


# -------------------------
# Presets
# -------------------------

_BRANCH_ACTIONS = {
    "[": {"type": "push_cursor"},
    "]": {"type": "pop_cursor"},
}

PRESETS: dict[str, dict[str, Any]] = {
    "hilbert": {
        "name": "Hilbert curve",
        "axiom": "A",
        "iterations": 4,
        "rules": {"A": "+BF-AFA-FB+", "B": "-AF+BFB+FA-"},
        "turtle": {
            "start": {"x": -377.99478, "y": -377.99304, "heading": [0, 1]},
            "actions": {
                "A": {"type": "none"},
                "B": {"type": "none"},
                "F": {"type": "draw_forward", "distance": 12},
                "+": {"type": "rotate_deg", "angle": -90},
                "-": {"type": "rotate_deg", "angle": 90},
            },
        },
    },
    "peano": {
        "name": "Peano curve",
        "axiom": "A",
        "iterations": 4,
        "rules": {"A": "ASBSA-S-BSASB+S+ASBSA", "B": "BSASB+S+ASBSA-S-BSASB"},
        "turtle": {
            "start": {"x": -194.99623, "y": -194.99829, "heading": [0, 1]},
            "actions": {
                "A": {"type": "none"},
                "B": {"type": "none"},
                "S": {"type": "draw_forward", "distance": 15},
                "+": {"type": "rotate_rad", "angle": 1.5708},
                "-": {"type": "rotate_rad", "angle": -1.5708},
            },
        },
    },
    "peano_variety": {
        "name": "Peano curve (mixed switchbacks)",
        "axiom": "-A",
        "iterations": 4,
        "rules": {
            "A": "AsDsC+s+DsCsD-s-AsBsA",
            "B": "DsCsB-s-AsBsA+s+BsAsB",
            "C": "+BsAsD-s-AsBsA+s+BsAsB-",
            "D": "-AsBsA+s+BsCsB-s-AsBsA+",
        },
        "turtle": {
            "start": {"x": 0, "y": 0, "heading": [0, 1]},
            "actions": {
                "A": {"type": "none"},
                "B": {"type": "none"},
                "C": {"type": "none"},
                "D": {"type": "none"},
                "s": {"type": "draw_forward", "distance": 15},
                "+": {"type": "rotate_rad", "angle": 1.5708},
                "-": {"type": "rotate_rad", "angle": -1.5708},
            },
        },
    },
    "peano_gosper": {
        "name": "Peano-Gosper curve",
        "axiom": "X",
        "iterations": 4,
        "rules": {"X": "X+YF++YF-FX--FXFX-YF+", "Y": "-FX+YFYF++YF+FX--FX-Y"},
        "turtle": {
            "start": {"x": 0, "y": 0, "heading": [0, 1]},
            "actions": {
                "X": {"type": "none"},
                "Y": {"type": "none"},
                "F": {"type": "draw_forward", "distance": 10},
                "+": {"type": "rotate_rad", "angle": -1.0472},
                "-": {"type": "rotate_rad", "angle": 1.0472},
            },
        },
    },
    "fern": {
        "name": "Fern",
        "axiom": "X",
        "iterations": 4,
        "rules": {"X": "F+[[X]-X]-F[-FX]+X", "F": "FF"},
        "turtle": {
            "start": {"x": 0, "y": 0, "heading": [0, 1]},
            "actions": {
                "X": {"type": "none"},
                "F": {"type": "draw_forward", "distance": 25},
                "+": {"type": "rotate_rad", "angle": -0.436332},
                "-": {"type": "rotate_rad", "angle": 0.436332},
                **_BRANCH_ACTIONS,
            },
        },
    },
    "tree": {
        "name": "Tree",
        "axiom": "X",
        "iterations": 4,
        "rules": {"X": "F[X][+FX]-FX"},
        "turtle": {
            "start": {"x": 0, "y": -200, "heading": [0, 1]},
            "actions": {
                "X": {"type": "none"},
                "F": {"type": "draw_forward", "distance": 60},
                "+": {"type": "rotate_deg", "angle": -25},
                "-": {"type": "rotate_deg", "angle": 25},
                **_BRANCH_ACTIONS,
            },
        },
    },
    "bush": {
        "name": "Stochastic bush",
        "axiom": "X",
        "iterations": 6,
        "rules": {
            "X": "F[X][+DX]-DX",
            "F": [{"production": "L", "weight": 1}, {"production": "S", "weight": 1}],
        },
        "turtle": {
            "start": {"x": 0, "y": 0, "heading": [0, 1]},
            "actions": {
                "F": {"type": "none"},
                "X": {"type": "none"},
                "L": {"type": "draw_forward", "distance": 35},
                "S": {"type": "draw_forward", "distance": 20},
                "D": {"type": "mark"},
                "+": {"type": "rotate_rad", "angle": -0.4},
                "-": {"type": "rotate_rad", "angle": 0.4},
                **_BRANCH_ACTIONS,
            },
        },
    },
    "branching": {
        "name": "Branching benchmark",
        "axiom": "X",
        "iterations": 7,
        "rules": {"X": "F[X][+DX]-DX", "D": "F"},
        "turtle": {
            "start": {"x": 0, "y": 0, "heading": [0, 1]},
            "actions": {
                "F": {"type": "draw_forward", "distance": 15},
                "X": {"type": "none"},
                "D": {"type": "mark"},
                "+": {"type": "rotate_rad", "angle": -1.04},
                "-": {"type": "rotate_rad", "angle": 1.04},
                **_BRANCH_ACTIONS,
            },
        },
    },
}


def load_preset(name: str) -> RunConfig:
    _require(
        name in PRESETS,
        f"Unknown preset '{name}'; choose from: {', '.join(sorted(PRESETS))}",
    )
    return parse_config(PRESETS[name])


def resolve_source(source: str) -> RunConfig:
    """A preset name, or else a path to a JSON run config."""
    if source in PRESETS:
        return load_preset(source)
    return parse_config(load_json(source))


# -------------------------
# CLI / Help
# -------------------------

HELP_EPILOG = r"""
SOURCES

Every command except `presets` takes a SOURCE: either the name of a built-in
preset (see `presets`) or the path to a JSON run config.

INPUT JSON SYNTAX

  name: string (optional)
  axiom: string (required)
  iterations: integer >= 0 (default 0)
      Derivation depth.

  rules: object mapping single-character string -> rule (optional)
      A rule is either a string (deterministic) or a list of weighted
      alternatives, each one of:
          "FF"                                 weight 1
          ["FF", 3]                            [production, weight]
          {"production": "FF", "weight": 3}
      Symbols without a rule rewrite to themselves. Weights must be > 0;
      they are checked the first time the symbol is expanded.

  strict: boolean (default false)
      Fail when a symbol that would be expanded has no rule.

  seed: integer (optional)
      Seed for weighted rule selection.

  turtle.start: {"x": 0, "y": 0, "heading": 90 | [0, 1]}
      heading is degrees (0 = +X, 90 = +Y) or a direction vector.

  turtle.actions: object mapping single-character symbol -> action
      {"type": "none"}
      {"type": "move_forward", "distance": d}   {"type": "draw_forward", "distance": d}
      {"type": "move_to", "x": x, "y": y}       {"type": "draw_to", "x": x, "y": y}
      {"type": "rotate_rad", "angle": a}        {"type": "rotate_deg", "angle": a}
      {"type": "set_angle", "x": x, "y": y}
      {"type": "push_cursor"}    {"type": "pop_cursor"}
      {"type": "push_position"}  {"type": "pop_position"}
      {"type": "push_angle"}     {"type": "pop_angle"}
      {"type": "mark"}
      Symbols without an action are reported as unknown and skipped.

Example (Koch curve):

    {
      "axiom": "F",
      "iterations": 3,
      "rules": {"F": "F+F--F+F"},
      "turtle": {
        "start": {"heading": 0},
        "actions": {
          "F": {"type": "draw_forward", "distance": 10},
          "+": {"type": "rotate_deg", "angle": 60},
          "-": {"type": "rotate_deg", "angle": -60}
        }
      }
    }
"""

_Pace = Literal["drain", "draw", "step"]


def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="lsystem_turtle.py",
        description="Streaming L-system expansion and turtle interpretation.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=HELP_EPILOG,
    )
    p.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging."
    )

    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("presets", help="List the built-in presets.")

    pv = sub.add_parser(
        "validate",
        help="Validate a source and print a brief summary.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    pv.add_argument("source", help="Preset name or path to a JSON config.")

    def add_run_options(sp: argparse.ArgumentParser) -> None:
        sp.add_argument("source", help="Preset name or path to a JSON config.")
        sp.add_argument(
            "--depth", type=int, default=None, help="Override the derivation depth."
        )
        sp.add_argument(
            "--seed", type=int, default=None, help="Seed for weighted rules."
        )

    pe = sub.add_parser("expand", help="Print the derived symbol sequence.")
    add_run_options(pe)
    pe.add_argument(
        "--limit", type=int, default=None, help="Print at most this many symbols."
    )

    pr = sub.add_parser(
        "run", help="Drive the turtle interpreter and summarise its geometry."
    )
    add_run_options(pr)
    pr.add_argument(
        "--pace",
        choices=["drain", "draw", "step"],
        default="drain",
        help=(
            "Frame granularity: drain runs to completion in one frame, draw "
            "stops after each segment, step consumes one symbol per frame."
        ),
    )
    pr.add_argument(
        "--max-frames", type=int, default=None, help="Stop after this many frames."
    )
    pr.add_argument(
        "--trace", action="store_true", help="Print the result of every frame."
    )
    pr.add_argument(
        "--segments", action="store_true", help="Print every segment at the end."
    )

    return p


# -------------------------
# Commands
# -------------------------


def cmd_presets() -> None:
    for key in sorted(PRESETS):
        preset = PRESETS[key]
        print(f"{key}: {preset['name']} (iterations={preset['iterations']})")


_VALIDATE_SYMBOL_LIMIT = 10_000


def cmd_validate(source: str) -> None:
    cfg = resolve_source(source)

    print(f"name: {cfg.name}")
    print(f"axiom length: {len(cfg.axiom)}")
    print(f"iterations: {cfg.iterations}")
    print(f"rules: {len(cfg.grammar)}")
    print(f"actions: {len(cfg.actions)}")
    print(
        "start: "
        f"position=({_fmt(cfg.start.position[0])},{_fmt(cfg.start.position[1])}) "
        f"heading=({_fmt(cfg.start.heading[0])},{_fmt(cfg.start.heading[1])})"
    )

    # Bounded run to surface render-time failures (bad weights, unbalanced
    # pops, exponential blow-up).
    stream = build_stream(cfg)
    sample = itertools.islice(stream, _VALIDATE_SYMBOL_LIMIT)
    interp = TurtleInterpreter(sample, cfg.actions, cfg.start)
    unknown: set[str] = set()
    while True:
        result = interp.step()
        if result.finished:
            break
        if result.status == "unknown" and result.symbol is not None:
            unknown.add(result.symbol)

    truncated = (
        interp.symbols_read == _VALIDATE_SYMBOL_LIMIT
        and stream.next_symbol() is not None
    )
    sym_label = f"{interp.symbols_read}+" if truncated else str(interp.symbols_read)
    print(f"symbols (sampled): {sym_label}")
    print(f"segments: {len(interp.segments)}")
    if unknown:
        print(f"warning: symbols without actions: {''.join(sorted(unknown))}")
    if truncated:
        print(
            f"warning: expansion exceeds {_VALIDATE_SYMBOL_LIMIT} symbols; "
            "geometry stats are based on the first portion only"
        )
    if not interp.segments:
        raise ConfigError("Config produces no drawable geometry")


def cmd_expand(
    source: str, *, depth: int | None, seed: int | None, limit: int | None
) -> None:
    cfg = resolve_source(source)
    symbols: Iterator[str] = build_stream(cfg, depth=depth, seed=seed)
    if limit is not None:
        _require(limit >= 0, "--limit must be >= 0")
        symbols = itertools.islice(symbols, limit)
    while True:
        chunk = "".join(itertools.islice(symbols, 4096))
        if not chunk:
            break
        sys.stdout.write(chunk)
    sys.stdout.write("\n")


def _describe(result: StepResult) -> str:
    if result.status == "executed":
        return f"executed {result.symbol} {result.action!r}"
    if result.status == "unknown":
        return f"unknown {result.symbol}"
    return "finished"


def cmd_run(
    source: str,
    *,
    depth: int | None,
    seed: int | None,
    pace: _Pace,
    max_frames: int | None,
    trace: bool,
    show_segments: bool,
) -> None:
    cfg = resolve_source(source)
    interp = build_interpreter(cfg, depth=depth, seed=seed)

    frames = 0
    while interp.state == "running":
        if max_frames is not None and frames >= max_frames:
            break
        if pace == "drain":
            consumed = drain(interp)
            frames += 1
            if trace:
                print(f"frame {frames}: drained {consumed} symbols")
            break
        if pace == "step":
            result = interp.step()
        else:
            result = step_until_drawn(interp)
        if result.finished:
            break
        frames += 1
        if trace:
            print(f"frame {frames}: {_describe(result)}")

    print(f"name: {cfg.name}")
    print(f"state: {interp.state}")
    print(f"frames: {frames}")
    print(f"symbols: {interp.symbols_read}")
    print(f"segments: {len(interp.segments)}")
    print(f"markers: {len(interp.markers)}")
    if interp.segments:
        min_x, min_y, max_x, max_y = compute_bounds(interp.segments)
        cx, cy = drawing_center(interp.segments)
        print(
            f"bounds: {_fmt(min_x)},{_fmt(min_y)} .. {_fmt(max_x)},{_fmt(max_y)}"
        )
        print(f"center: ({_fmt(cx)},{_fmt(cy)})")
    if show_segments:
        for seg in interp.segments:
            print(
                f"{_fmt(seg.start[0])} {_fmt(seg.start[1])} "
                f"{_fmt(seg.end[0])} {_fmt(seg.end[1])}"
            )


def main(argv: list[str] | None = None) -> int:
    ap = build_argparser()
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.cmd == "presets":
            cmd_presets()
        elif args.cmd == "validate":
            cmd_validate(args.source)
        elif args.cmd == "expand":
            cmd_expand(args.source, depth=args.depth, seed=args.seed, limit=args.limit)
        elif args.cmd == "run":
            cmd_run(
                args.source,
                depth=args.depth,
                seed=args.seed,
                pace=cast(_Pace, args.pace),
                max_frames=args.max_frames,
                trace=args.trace,
                show_segments=args.segments,
            )
        else:
            raise AssertionError("unreachable")
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 2
    except StackUnderflowError as e:
        print(f"Run error: {e}", file=sys.stderr)
        return 2
    except OSError as e:
        print(f"File error: {e}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
