from __future__ import annotations

"""Safe arithmetic formula evaluator (no eval).

Grammar (recursive descent):
    expression := term (('+'|'-') term)*
    term       := unary (('*'|'/') unary)*
    unary      := '-'? power
    power      := primary ('^' unary)?      right-associative
    primary    := NUMBER | IDENT | '(' expression ')'

Unary minus binds looser than '^', so -2^2 == -4 and 2^-1 == 0.5.

The parser builds a small AST (Number, Variable, BinaryOp, UnaryMinus) that is
evaluated by a post-order walk. Only the four arithmetic operators, '^' and
named lookups are interpretable.
Nesting deeper than MAX_NESTING levels is rejected as a FormulaError.
"""

import math
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

NUMBER = "NUMBER"
IDENT = "IDENT"
EOF = "EOF"
OPERATORS = "+-*/^()"
# parenthesis / exponent nesting accepted by the parser
MAX_NESTING = 64
NESTING_ERROR = "Formula nested too deeply"

_NUMBER_RE = re.compile(r"(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_IDENT_RE = re.compile(r"[a-zA-Z_][a-zA-Z0-9_]*")
# run of number-ish characters, used to report malformed numbers as a whole
_NUMBERISH_RE = re.compile(r"[0-9.]+(?:[eE][+-]?[0-9.]*)?")


class FormulaError(ValueError):
    pass


class NonFiniteError(FormulaError):
    """Well-formed formula whose value is not a finite real number."""


@dataclass(frozen=True)
class Token:
    type: str
    value: Any
    pos: int


# ----------------------------
# AST
# ----------------------------
@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class Variable:
    name: str


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class UnaryMinus:
    operand: "Node"


Node = Union[Number, Variable, BinaryOp, UnaryMinus]


# ----------------------------
# Tokenizer
# ----------------------------
def tokenize(expr: str) -> List[Token]:
    tokens: List[Token] = []
    i = 0
    n = len(expr)
    while i < n:
        ch = expr[i]
        if ch.isspace():
            i += 1
            continue

        if ch.isdigit() or ch == ".":
            run = _NUMBERISH_RE.match(expr, i)
            text = run.group(0)
            m = _NUMBER_RE.fullmatch(text)
            if not m:
                raise FormulaError(f'Invalid number: "{text}"')
            tokens.append(Token(NUMBER, float(text), i))
            i += len(text)
            continue

        m = _IDENT_RE.match(expr, i)
        if m:
            tokens.append(Token(IDENT, m.group(0), i))
            i = m.end()
            continue

        if ch in OPERATORS:
            tokens.append(Token(ch, ch, i))
            i += 1
            continue

        raise FormulaError(f'Unexpected character: "{ch}" at position {i}')

    tokens.append(Token(EOF, None, n))
    return tokens


# ----------------------------
# Parser
# ----------------------------
class Parser:
    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.pos = 0
        self.depth = 0

    def peek(self) -> Token:
        return self.tokens[self.pos]

    def consume(self, expected: Optional[str] = None) -> Token:
        tok = self.tokens[self.pos]
        if expected and tok.type != expected:
            got = "end of formula" if tok.type == EOF else f'"{tok.value}"'
            raise FormulaError(f'Expected "{expected}" but got {got}')
        self.pos += 1
        return tok

    def parse(self) -> Node:
        node = self.expression()
        tok = self.peek()
        if tok.type != EOF:
            raise FormulaError(f'Unexpected token: "{tok.value}" at position {tok.pos}')
        return node

    def expression(self) -> Node:
        left = self.term()
        while self.peek().type in ("+", "-"):
            op = self.consume().type
            left = BinaryOp(op, left, self.term())
        return left

    def term(self) -> Node:
        left = self.unary()
        while self.peek().type in ("*", "/"):
            op = self.consume().type
            left = BinaryOp(op, left, self.unary())
        return left

    def unary(self) -> Node:
        self.depth += 1
        if self.depth > MAX_NESTING:
            raise FormulaError(NESTING_ERROR)
        try:
            if self.peek().type == "-":
                self.consume()
                return UnaryMinus(self.power())
            return self.power()
        finally:
            self.depth -= 1

    def power(self) -> Node:
        base = self.primary()
        if self.peek().type == "^":
            self.consume()
            return BinaryOp("^", base, self.unary())
        return base

    def primary(self) -> Node:
        tok = self.peek()
        if tok.type == NUMBER:
            self.consume()
            return Number(tok.value)
        if tok.type == IDENT:
            self.consume()
            return Variable(tok.value)
        if tok.type == "(":
            self.consume("(")
            node = self.expression()
            self.consume(")")
            return node
        if tok.type == EOF:
            raise FormulaError("Unexpected end of formula")
        raise FormulaError(f'Unexpected token: "{tok.value}" at position {tok.pos}')


def parse(formula: str) -> Node:
    return Parser(tokenize(formula)).parse()


# ----------------------------
# Evaluation
# ----------------------------
def _as_number(v: Any) -> float:
    # non-numeric parameter values count as 0
    try:
        f = float(v)
    except (TypeError, ValueError):
        return 0.0
    return 0.0 if f != f else f


def evaluate_ast(node: Node, variables: Mapping[str, Any]) -> float:
    if isinstance(node, Number):
        return node.value
    if isinstance(node, Variable):
        if node.name not in variables:
            raise FormulaError(f'Unknown variable: "{node.name}"')
        return _as_number(variables[node.name])
    if isinstance(node, UnaryMinus):
        return -evaluate_ast(node.operand, variables)
    if isinstance(node, BinaryOp):
        a = evaluate_ast(node.left, variables)
        b = evaluate_ast(node.right, variables)
        if node.op == "+":
            return a + b
        if node.op == "-":
            return a - b
        if node.op == "*":
            return a * b
        if node.op == "/":
            if b == 0:
                raise NonFiniteError("Result is not a finite number (division by zero?)")
            return a / b
        if node.op == "^":
            try:
                r = a**b
            except (OverflowError, ZeroDivisionError):
                raise NonFiniteError("Result is not a finite number (overflow?)")
            if isinstance(r, complex):
                raise NonFiniteError("Result is not a real number (negative base with fractional exponent)")
            return r
    raise FormulaError(f"Unsupported node: {node!r}")


def _is_blank(formula: Any) -> bool:
    return not formula or not str(formula).strip()


def evaluate(formula: str, variables: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """Evaluate `formula` over named variables.

    Returns {"value": float|None, "error": str|None}. A blank formula is an
    inert block and evaluates to 0. Errors never carry a partial value.
    """
    if _is_blank(formula):
        return {"value": 0, "error": None}
    try:
        value = evaluate_ast(parse(str(formula)), variables or {})
    except FormulaError as e:
        return {"value": None, "error": str(e)}
    except RecursionError:
        # long operator chains build an AST deeper than the walk can follow
        return {"value": None, "error": NESTING_ERROR}
    if not math.isfinite(value):
        return {"value": None, "error": "Result is not a finite number (division by zero?)"}
    return {"value": value, "error": None}


def _idents(tokens: Iterable[Token]) -> List[str]:
    seen: Dict[str, None] = {}
    for t in tokens:
        if t.type == IDENT:
            seen.setdefault(t.value, None)
    return list(seen)


def validate_formula(formula: str, known_keys: Iterable[str] = ()) -> Dict[str, Any]:
    """Syntax + variable check without real values.

    Returns {"valid": bool, "error": str|None, "unknown_vars": [...]}.
    """
    if _is_blank(formula):
        return {"valid": True, "error": None, "unknown_vars": []}
    keys = list(known_keys or [])
    try:
        tokens = tokenize(str(formula))
    except FormulaError as e:
        return {"valid": False, "error": str(e), "unknown_vars": []}

    known = set(keys)
    unknown = [v for v in _idents(tokens) if v not in known]
    if unknown:
        return {"valid": False, "error": f"Unknown variable(s): {', '.join(unknown)}", "unknown_vars": unknown}

    try:
        # dummy value 1 for every key; a non-finite result is a data problem, not a syntax one
        evaluate_ast(Parser(tokens).parse(), {k: 1.0 for k in keys})
    except NonFiniteError:
        pass
    except FormulaError as e:
        return {"valid": False, "error": str(e), "unknown_vars": []}
    except RecursionError:
        return {"valid": False, "error": NESTING_ERROR, "unknown_vars": []}
    return {"valid": True, "error": None, "unknown_vars": []}


def extract_variables(formula: str) -> List[str]:
    """Identifiers referenced by the formula, de-duplicated, in first-appearance order."""
    if _is_blank(formula):
        return []
    try:
        return _idents(tokenize(str(formula)))
    except FormulaError:
        return []


def missing_parameters(formula: str, keys: Iterable[str]) -> List[str]:
    """Variables the formula uses that have no parameter yet (auto-suggest)."""
    have = set(keys or [])
    return [v for v in extract_variables(formula) if v not in have]
