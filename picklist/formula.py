"""Formula language for computed columns.

Formulas are arithmetic/comparison/logical expressions over column names, e.g.
``0.4 * Auto EPA + 0.6 * Teleop EPA`` or ``"Deep Climb" > 0.5 && Auto EPA >= 10``.

The text is tokenized against the known field names (longest name first, whole
word, case-insensitive) and parsed into a small expression tree. Evaluation walks
the tree against one row; nothing is ever handed to ``eval``.

Grammar, lowest precedence first::

    expr       := or
    or         := and ( "||" and )*
    and        := equality ( "&&" equality )*
    equality   := relational ( ( "==" | "!=" ) relational )*
    relational := additive ( ( "<" | ">" | "<=" | ">=" ) additive )*
    additive   := term ( ( "+" | "-" ) term )*
    term       := unary ( ( "*" | "/" ) unary )*
    unary      := ( "-" | "+" ) unary | primary
    primary    := NUMBER | FIELD | "(" expr ")"
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from picklist.errors import ComputeError, PicklistError, ValidationError
from picklist.fields import STRUCTURAL_FIELDS
from picklist.rows import Row, is_number

logger = logging.getLogger(__name__)

Value = Union[float, bool]


class ColumnType(str, Enum):
    NUMERIC = "numeric"
    BOOLEAN = "boolean"


NUMERIC_OPERATORS = "+, -, *, /"
BOOLEAN_OPERATORS = ">, <, >=, <=, ==, !=, &&, ||"

_OPERATORS = ("||", "&&", "==", "!=", "<=", ">=", "<", ">", "+", "-", "*", "/")
_NUMBER = re.compile(r"(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_WORD = re.compile(r"[A-Za-z_]\w*")
_SPACE = re.compile(r"\s+")


# ---------- tokens ----------

@dataclass(frozen=True)
class Token:
    kind: str  # number | field | op | lparen | rparen | end
    text: str
    pos: int
    field: Optional[str] = None


def candidate_fields(fields: Iterable[str]) -> List[str]:
    """Referencable fields, longest first so ``Auto EPA`` is tried before ``EPA``."""
    usable = [f for f in dict.fromkeys(fields) if f and f not in STRUCTURAL_FIELDS]
    return sorted(usable, key=len, reverse=True)


def _field_pattern(fields: Sequence[str]) -> Optional[re.Pattern]:
    if not fields:
        return None
    parts = []
    for f in fields:
        head = r"(?<!\w)" if re.match(r"\w", f[0]) else ""
        tail = r"(?!\w)" if re.match(r"\w", f[-1]) else ""
        parts.append(head + re.escape(f) + tail)
    return re.compile("|".join(parts), re.IGNORECASE)


class Tokenizer:
    def __init__(self, fields: Iterable[str]):
        self.fields = candidate_fields(fields)
        self._by_lower: Dict[str, str] = {}
        for f in self.fields:
            self._by_lower.setdefault(f.lower(), f)
        self._pattern = _field_pattern(self.fields)

    def resolve(self, name: str) -> Optional[str]:
        return self._by_lower.get(name.strip().lower())

    def tokenize(self, text: str) -> List[Token]:
        tokens: List[Token] = []
        pos = 0
        n = len(text)
        while pos < n:
            space = _SPACE.match(text, pos)
            if space:
                pos = space.end()
                continue
            if self._pattern is not None:
                match = self._pattern.match(text, pos)
                if match:
                    tokens.append(Token("field", match.group(0), pos, self.resolve(match.group(0))))
                    pos = match.end()
                    continue
            ch = text[pos]
            if ch == '"':
                end = text.find('"', pos + 1)
                if end == -1:
                    raise ValidationError("Unterminated quoted column name", self.fields)
                name = text[pos + 1:end]
                field = self.resolve(name)
                if field is None:
                    raise ValidationError(f'Unknown column "{name}"', self.fields)
                tokens.append(Token("field", name, pos, field))
                pos = end + 1
                continue
            number = _NUMBER.match(text, pos)
            if number:
                tokens.append(Token("number", number.group(0), pos))
                pos = number.end()
                continue
            op = next((o for o in _OPERATORS if text.startswith(o, pos)), None)
            if op is not None:
                tokens.append(Token("op", op, pos))
                pos += len(op)
                continue
            if ch == "(":
                tokens.append(Token("lparen", ch, pos))
                pos += 1
                continue
            if ch == ")":
                tokens.append(Token("rparen", ch, pos))
                pos += 1
                continue
            word = _WORD.match(text, pos)
            if word:
                raise ValidationError(f'Unknown column "{word.group(0)}"', self.fields)
            raise ValidationError(f"Unexpected character {ch!r} at position {pos + 1}", self.fields)
        tokens.append(Token("end", "", n))
        return tokens


# ---------- expression tree ----------

@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class FieldRef:
    field: str


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: "Node"


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: "Node"
    right: "Node"


Node = Union[Number, FieldRef, UnaryOp, BinaryOp]

_LEVELS: Tuple[Tuple[str, ...], ...] = (
    ("||",),
    ("&&",),
    ("==", "!="),
    ("<", ">", "<=", ">="),
    ("+", "-"),
    ("*", "/"),
)


class Parser:
    def __init__(self, tokens: List[Token], available: Sequence[str] = ()):
        self.tokens = tokens
        self.available = list(available)
        self.i = 0

    def _peek(self) -> Token:
        return self.tokens[self.i]

    def _next(self) -> Token:
        tok = self.tokens[self.i]
        self.i += 1
        return tok

    def _error(self, message: str) -> ValidationError:
        return ValidationError(message, self.available)

    def parse(self) -> Node:
        if self._peek().kind == "end":
            raise self._error("Formula is empty")
        node = self._binary(0)
        tok = self._peek()
        if tok.kind != "end":
            raise self._error(f"Unexpected {tok.text!r} at position {tok.pos + 1}")
        return node

    def _binary(self, level: int) -> Node:
        if level == len(_LEVELS):
            return self._unary()
        node = self._binary(level + 1)
        while self._peek().kind == "op" and self._peek().text in _LEVELS[level]:
            op = self._next().text
            node = BinaryOp(op, node, self._binary(level + 1))
        return node

    def _unary(self) -> Node:
        tok = self._peek()
        if tok.kind == "op" and tok.text in ("-", "+"):
            self._next()
            return UnaryOp(tok.text, self._unary())
        return self._primary()

    def _primary(self) -> Node:
        tok = self._next()
        if tok.kind == "number":
            return Number(float(tok.text))
        if tok.kind == "field":
            return FieldRef(tok.field or tok.text)
        if tok.kind == "lparen":
            node = self._binary(0)
            closing = self._next()
            if closing.kind != "rparen":
                raise self._error(f"Missing closing parenthesis for '(' at position {tok.pos + 1}")
            return node
        if tok.kind == "end":
            raise self._error("Formula ends unexpectedly")
        raise self._error(f"Unexpected {tok.text!r} at position {tok.pos + 1}")


# ---------- evaluation ----------

def _truthy(value: Value) -> bool:
    if isinstance(value, float) and math.isnan(value):
        return False
    return bool(value)


def _divide(a: float, b: float) -> float:
    if b == 0:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return a / b


_ARITHMETIC: Dict[str, Callable[[float, float], Value]] = {
    "+": lambda a, b: a + b,
    "-": lambda a, b: a - b,
    "*": lambda a, b: a * b,
    "/": _divide,
    "<": lambda a, b: a < b,
    ">": lambda a, b: a > b,
    "<=": lambda a, b: a <= b,
    ">=": lambda a, b: a >= b,
    "==": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
}


def evaluate_node(node: Node, resolve: Callable[[str], float]) -> Value:
    if isinstance(node, Number):
        return node.value
    if isinstance(node, FieldRef):
        return resolve(node.field)
    if isinstance(node, UnaryOp):
        value = float(evaluate_node(node.operand, resolve))
        return -value if node.op == "-" else value
    if isinstance(node, BinaryOp):
        left = evaluate_node(node.left, resolve)
        if node.op == "&&":
            return evaluate_node(node.right, resolve) if _truthy(left) else left
        if node.op == "||":
            return left if _truthy(left) else evaluate_node(node.right, resolve)
        right = evaluate_node(node.right, resolve)
        try:
            return _ARITHMETIC[node.op](float(left), float(right))
        except OverflowError as exc:
            raise ComputeError(str(exc)) from exc
    raise ComputeError(f"Unsupported expression node {node!r}")


def references(node: Node) -> List[str]:
    if isinstance(node, FieldRef):
        return [node.field]
    if isinstance(node, UnaryOp):
        return references(node.operand)
    if isinstance(node, BinaryOp):
        return references(node.left) + references(node.right)
    return []


def row_value(row: Row, field: str) -> float:
    """Numeric value of a field for formulas; absent or text cells count as 0."""
    value = row.get(field)
    if isinstance(value, bool):
        return float(value)
    if is_number(value):
        return float(value)
    return 0.0


@dataclass(frozen=True)
class CompiledFormula:
    formula: str
    tree: Node
    references: Tuple[str, ...]

    def evaluate(self, resolve: Callable[[str], float]) -> Value:
        return evaluate_node(self.tree, resolve)

    def evaluate_row(self, row: Row) -> Value:
        return self.evaluate(lambda field: row_value(row, field))

    def evaluate_probe(self) -> Value:
        return self.evaluate(lambda field: 1.0)


def compile_formula(formula: str, fields: Iterable[str]) -> CompiledFormula:
    tokenizer = Tokenizer(fields)
    tokens = tokenizer.tokenize(formula or "")
    try:
        tree = Parser(tokens, tokenizer.fields).parse()
    except RecursionError:
        raise ValidationError("Formula is nested too deeply", tokenizer.fields) from None
    return CompiledFormula(formula, tree, tuple(dict.fromkeys(references(tree))))


def coerce_result(result: Value, column_type: ColumnType) -> Optional[Value]:
    if ColumnType(column_type) is ColumnType.BOOLEAN:
        return result if isinstance(result, bool) else None
    if isinstance(result, bool) or not isinstance(result, (int, float)):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return float(result)


def evaluate_compiled(compiled: CompiledFormula, row: Row, column_type: ColumnType = ColumnType.NUMERIC) -> Optional[Value]:
    try:
        return coerce_result(compiled.evaluate_row(row), column_type)
    except (PicklistError, ArithmeticError, ValueError) as exc:
        logger.debug("Formula %r failed for team %s: %s", compiled.formula, row.team_number, exc)
        return None


def evaluate(formula: str, row: Row, fields: Iterable[str], column_type: ColumnType = ColumnType.NUMERIC) -> Optional[Value]:
    """Evaluate a formula for one row; None means the cell stays unset."""
    try:
        compiled = compile_formula(formula, fields)
    except ValidationError as exc:
        logger.debug("Formula %r does not compile: %s", formula, exc)
        return None
    return evaluate_compiled(compiled, row, column_type)


def validate_formula(
    formula: str,
    fields: Iterable[str],
    column_type: ColumnType = ColumnType.NUMERIC,
    computed_names: Iterable[str] = (),
) -> CompiledFormula:
    """Authoring-time check; raises ValidationError with the specific reason."""
    column_type = ColumnType(column_type)
    fields = list(fields)
    computed_names = [c for c in computed_names if c not in fields]
    available = candidate_fields(fields)
    kind = "formula" if column_type is ColumnType.NUMERIC else "condition"
    operators = NUMERIC_OPERATORS if column_type is ColumnType.NUMERIC else BOOLEAN_OPERATORS

    try:
        compiled = compile_formula(formula, fields + computed_names)
    except ValidationError as exc:
        raise ValidationError(
            f"Invalid {kind} syntax ({exc.message}). Check column names, operators ({operators}), and parentheses",
            available,
        ) from exc

    if not compiled.references:
        raise ValidationError("no column referenced", available)
    nested = [r for r in compiled.references if r in computed_names]
    if nested:
        raise ValidationError(
            f"Computed columns cannot reference other computed columns ({', '.join(nested)})",
            available,
        )

    try:
        result = compiled.evaluate_probe()
    except (PicklistError, ArithmeticError) as exc:
        raise ValidationError(f"Invalid {kind}: {exc}", available) from exc

    if column_type is ColumnType.NUMERIC and coerce_result(result, column_type) is None:
        raise ValidationError("Invalid formula. Check operators and parentheses", available)
    if column_type is ColumnType.BOOLEAN and not isinstance(result, bool):
        raise ValidationError(
            "Invalid condition. Must evaluate to true/false. Use comparison operators: >, <, >=, <=, ==, !=",
            available,
        )
    return compiled
