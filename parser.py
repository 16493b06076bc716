"""
Text front end: scan, reorder to RPN, fold into an Expression.

Juxtaposition multiplies (``2x``, ``2(x+1)``, ``(x+1)(x-1)``), ``^`` is
right-associative and binds tighter than unary minus, so ``-x^2`` is
``-(x^2)`` and ``2^-x`` is ``2^(-x)``.
"""
from __future__ import annotations
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from expression import (
    Binary,
    Call,
    E,
    Equation,
    Expression,
    FUNCTIONS,
    Literal,
    Log,
    PI,
    UNARY_OPS,
    Unary,
    Variable,
)
import numeric

# =====================
# Scanner
# =====================

# first match wins
_TOKEN_SPECS = [
    (r"\s+", None),
    (r"\d+\.\d*|\.\d+", "DECIMAL"),
    (r"\d+", "INT"),
    (r"[A-Za-z_][A-Za-z0-9_]*", "NAME"),
    (r"[-+*/^%(),]", "OP"),
]
_COMPILED_SPECS = [(re.compile(pattern), kind) for pattern, kind in _TOKEN_SPECS]

_CONSTANTS = {"pi": PI, "e": E}
_OPERANDS = ("NUM", "ID", "CONST", ")")


@dataclass
class Token:
    kind: str
    text: str
    value: Any = None
    # arguments seen so far, FUNC tokens only
    argc: int = 0


def _is_function(name: str) -> bool:
    return name == "log" or (name in UNARY_OPS and name != "neg") or name in FUNCTIONS


def _scan(text: str) -> List[Tuple[str, str]]:
    pieces: List[Tuple[str, str]] = []
    pos = 0
    while pos < len(text):
        for regex, kind in _COMPILED_SPECS:
            match = regex.match(text, pos)
            if match:
                break
        else:
            raise ValueError(f"Unexpected character {text[pos]!r} at position {pos}")
        if kind is not None:
            pieces.append((kind, match.group(0)))
        pos = match.end()
    return pieces


def _number(kind: str, text: str) -> Any:
    if kind == "INT":
        return int(text)
    return numeric.Fraction(text)


def tokenize(text: str) -> List[Token]:
    """Classify scanned pieces, marking signs and inserting implicit '*'."""
    pieces = _scan(text)
    tokens: List[Token] = []
    for i, (kind, lexeme) in enumerate(pieces):
        after_operand = bool(tokens) and tokens[-1].kind in _OPERANDS
        if kind == "OP":
            if lexeme in "+-" and not after_operand:
                if lexeme == "-":
                    tokens.append(Token("NEG", lexeme))
                continue
            if lexeme == "(" and after_operand:
                tokens.append(Token("*", "*"))
            tokens.append(Token(lexeme, lexeme))
            continue
        if after_operand:
            tokens.append(Token("*", "*"))
        if kind != "NAME":
            tokens.append(Token("NUM", lexeme, _number(kind, lexeme)))
        elif lexeme.lower() in _CONSTANTS:
            tokens.append(Token("CONST", lexeme.lower()))
        elif _is_function(lexeme) and i + 1 < len(pieces) and pieces[i + 1] == ("OP", "("):
            tokens.append(Token("FUNC", lexeme))
        else:
            tokens.append(Token("ID", lexeme))
    return tokens


# =====================
# Shunting-yard
# =====================

_PRECEDENCE = {"^": 4, "NEG": 3, "*": 2, "/": 2, "%": 2, "+": 1, "-": 1}
_RIGHT_ASSOC = ("^", "NEG")


def _binds_first(top: Token, incoming: Token) -> bool:
    if top.kind not in _PRECEDENCE:
        return False
    if incoming.kind in _RIGHT_ASSOC:
        return _PRECEDENCE[top.kind] > _PRECEDENCE[incoming.kind]
    return _PRECEDENCE[top.kind] >= _PRECEDENCE[incoming.kind]


def _drain_group(ops: List[Token], output: List[Token]) -> None:
    while ops and ops[-1].kind != "(":
        output.append(ops.pop())
    if not ops:
        raise ValueError("Mismatched parens")


def to_rpn(tokens: List[Token]) -> List[Token]:
    output: List[Token] = []
    ops: List[Token] = []
    # FUNC token owning each open paren, None for plain grouping
    calls: List[Optional[Token]] = []
    for prev, tok in zip([None] + tokens[:-1], tokens):
        if prev is not None and prev.kind == "FUNC" and tok.kind != "(":
            raise ValueError(f"Function {prev.text} needs an argument list")
        if tok.kind in ("NUM", "ID", "CONST"):
            output.append(tok)
        elif tok.kind in ("FUNC", "NEG"):
            ops.append(tok)
        elif tok.kind == "(":
            owner = prev if prev is not None and prev.kind == "FUNC" else None
            if owner is not None:
                owner.argc = 1
            calls.append(owner)
            ops.append(tok)
        elif tok.kind == ",":
            if not calls or calls[-1] is None:
                raise ValueError("Comma outside a function call")
            _drain_group(ops, output)
            calls[-1].argc += 1
        elif tok.kind == ")":
            _drain_group(ops, output)
            ops.pop()
            calls.pop()
            if ops and ops[-1].kind == "FUNC":
                output.append(ops.pop())
        else:
            while ops and _binds_first(ops[-1], tok):
                output.append(ops.pop())
            ops.append(tok)
    if tokens and tokens[-1].kind == "FUNC":
        raise ValueError(f"Function {tokens[-1].text} needs an argument list")
    while ops:
        tok = ops.pop()
        if tok.kind == "(":
            raise ValueError("Mismatched parens")
        output.append(tok)
    return output


# =====================
# RPN to Expression
# =====================


def _function(name: str, args: List[Expression]) -> Expression:
    if name == "log":
        if len(args) not in (1, 2):
            raise ValueError("log takes one or two arguments")
        return Unary("ln", args[0]) if len(args) == 1 else Log(args[0], args[1])
    if name in UNARY_OPS:
        if len(args) != 1:
            raise ValueError(f"{name} takes one argument")
        return Unary(name, args[0])
    fn = FUNCTIONS[name]
    if fn.arity is not None and len(args) != fn.arity:
        raise ValueError(f"{name} takes {fn.arity} arguments, got {len(args)}")
    return Call(name, tuple(args))


def _pop_operands(stack: List[Expression], count: int, what: str) -> List[Expression]:
    if len(stack) < count:
        raise ValueError(f"{what} is missing an operand")
    operands = stack[len(stack) - count:]
    del stack[len(stack) - count:]
    return operands


def _binary(op: str, left: Expression, right: Expression) -> Expression:
    # exact a/b between number literals is one rational literal
    if (
        op == "/"
        and isinstance(left, Literal)
        and isinstance(right, Literal)
        and numeric.is_exact(left.value)
        and numeric.is_exact(right.value)
    ):
        if right.value == 0:
            raise ValueError(f"Zero denominator in {left.value}/0")
        return Literal(numeric.normalize(numeric.Fraction(left.value) / right.value))
    return Binary(op, left, right)


def from_rpn(rpn: List[Token]) -> Expression:
    stack: List[Expression] = []
    for tok in rpn:
        if tok.kind == "NUM":
            stack.append(Literal(tok.value))
        elif tok.kind == "CONST":
            stack.append(_CONSTANTS[tok.text])
        elif tok.kind == "ID":
            stack.append(Variable(tok.text))
        elif tok.kind == "NEG":
            (operand,) = _pop_operands(stack, 1, "unary minus")
            stack.append(Unary("neg", operand))
        elif tok.kind == "FUNC":
            stack.append(_function(tok.text, _pop_operands(stack, tok.argc, tok.text)))
        else:
            left, right = _pop_operands(stack, 2, f"'{tok.text}'")
            stack.append(_binary(tok.text, left, right))
    if len(stack) != 1:
        raise ValueError("Invalid expression")
    return stack[0]


def parse(expr: str) -> Expression:
    """Parse text such as ``2x^2 - sin(x)/3`` into an Expression.

    ``log(u)`` is the natural log and ``log(u, b)`` the base-b log. Decimals
    are kept exact and a quotient of two exact number literals folds into
    one rational, so ``1/2x`` is ``(1/2)*x`` while ``x/2/3`` stays ``(x/2)/3``.

    Raises:
        ValueError: on malformed input
    """
    if not expr or not expr.strip():
        raise ValueError("Empty expression")
    return from_rpn(to_rpn(tokenize(expr)))


def parse_equation(text: str) -> Equation:
    """``"l = r"`` -> Equation(l, r); a bare expression means ``expr = 0``."""
    sides = text.split("=")
    if len(sides) > 2:
        raise ValueError(f"More than one '=' in {text!r}")
    if len(sides) == 1:
        return Equation(parse(sides[0]))
    return Equation(parse(sides[0]), parse(sides[1]))
