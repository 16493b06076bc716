"""
Expression trees.

Every node is an immutable, hashable frozen dataclass; two trees are equal
exactly when their node kinds and operands are recursively equal. Operators
on nodes build new nodes, nothing is ever mutated in place, so subtrees can be
shared freely between trees.
"""
from __future__ import annotations
import cmath
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple, Union

import networkx as nx
import numpy as np

from errors import DomainError, UnboundVariable, UnsupportedForm
import numeric
from numeric import Number

UNARY_OPS = (
    "neg", "sin", "cos", "tan", "sec", "csc", "cot", "asin", "acos", "atan",
    "sinh", "cosh", "tanh", "exp", "ln", "abs", "sqrt", "cbrt",
)
BINARY_OPS = ("+", "-", "*", "/", "^", "%")
TRIG_OPS = ("sin", "cos", "tan", "sec", "csc", "cot")
INVERSE_TRIG_OPS = ("asin", "acos", "atan")


class Expression:
    """Base of all node kinds; provides operators and the generic tree queries."""

    __slots__ = ()

    # -----------------
    # Operators
    # -----------------
    def __add__(self, other: Any) -> "Expression":
        return Binary("+", self, as_expr(other))

    def __radd__(self, other: Any) -> "Expression":
        return Binary("+", as_expr(other), self)

    def __sub__(self, other: Any) -> "Expression":
        return Binary("-", self, as_expr(other))

    def __rsub__(self, other: Any) -> "Expression":
        return Binary("-", as_expr(other), self)

    def __mul__(self, other: Any) -> "Expression":
        return Binary("*", self, as_expr(other))

    def __rmul__(self, other: Any) -> "Expression":
        return Binary("*", as_expr(other), self)

    def __truediv__(self, other: Any) -> "Expression":
        return Binary("/", self, as_expr(other))

    def __rtruediv__(self, other: Any) -> "Expression":
        return Binary("/", as_expr(other), self)

    def __pow__(self, other: Any) -> "Expression":
        return Binary("^", self, as_expr(other))

    def __rpow__(self, other: Any) -> "Expression":
        return Binary("^", as_expr(other), self)

    def __mod__(self, other: Any) -> "Expression":
        return Binary("%", self, as_expr(other))

    def __neg__(self) -> "Expression":
        return Unary("neg", self)

    def __pos__(self) -> "Expression":
        return self

    # -----------------
    # Structure
    # -----------------
    def children(self) -> Tuple["Expression", ...]:
        return ()

    def rebuild(self, children: Tuple["Expression", ...]) -> "Expression":
        return self

    def walk(self) -> Iterable["Expression"]:
        """Pre-order, left-to-right traversal."""
        stack: List[Expression] = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children()))

    def variables(self) -> FrozenSet[str]:
        return frozenset(n.name for n in self.walk() if isinstance(n, Variable))

    def ordered_variables(self) -> List[str]:
        """Variable names in order of first appearance."""
        seen: Dict[str, None] = {}
        for n in self.walk():
            if isinstance(n, Variable):
                seen.setdefault(n.name, None)
        return list(seen)

    def contains(self, variable: Union[str, "Variable"]) -> bool:
        name = name_of(variable)
        return any(isinstance(n, Variable) and n.name == name for n in self.walk())

    def is_constant(self, variable: Union[str, "Variable", None] = None) -> bool:
        if variable is None:
            return not self.variables()
        return not self.contains(variable)

    def depth(self) -> int:
        kids = self.children()
        return 1 + (max(k.depth() for k in kids) if kids else 0)

    def size(self) -> int:
        return sum(1 for _ in self.walk())

    def substitute(self, variable: Union[str, "Variable"], replacement: Any) -> "Expression":
        """Replace every occurrence of `variable` by `replacement` without evaluating.

        Unchanged subtrees are returned as the same objects.
        """
        return self.substitute_all({name_of(variable): replacement})

    def substitute_all(self, mapping: Mapping[Union[str, "Variable"], Any]) -> "Expression":
        table = {name_of(k): as_expr(v) for k, v in mapping.items()}
        if not table:
            return self

        def sub(node: Expression) -> Expression:
            if isinstance(node, Variable):
                return table.get(node.name, node)
            kids = node.children()
            if not kids:
                return node
            new = tuple(sub(k) for k in kids)
            if all(a is b for a, b in zip(new, kids)):
                return node
            return node.rebuild(new)

        return sub(self)

    # -----------------
    # Evaluation
    # -----------------
    def evaluate(self, bindings: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> Any:
        """Evaluate numerically.

        Args:
            bindings: variable name -> value (numbers or numpy arrays)

        Returns:
            A number, or a numpy array when any binding is an array.

        Raises:
            UnboundVariable: a variable has no binding
            DomainError: a real-valued function is applied outside its domain
        """
        env: Dict[str, Any] = {}
        if bindings:
            env.update({name_of(k): v for k, v in bindings.items()})
        env.update(kwargs)
        return _evaluate(self, env)

    def lambdify(self, *names: Union[str, "Variable"]) -> Callable[..., Any]:
        """Return f(*values) evaluating this tree; works on numpy arrays."""
        keys = [name_of(n) for n in names] if names else self.ordered_variables()

        def f(*values: Any) -> Any:
            if len(values) != len(keys):
                raise TypeError(f"expected {len(keys)} arguments, got {len(values)}")
            return _evaluate(self, dict(zip(keys, values)))

        return f

    # -----------------
    # Views and shortcuts
    # -----------------
    def is_polynomial(self, variable: Union[str, "Variable"], strict: bool = False) -> bool:
        # Local import to avoid circular dependency at module load time
        from polynomial import is_polynomial
        return is_polynomial(self, variable, strict=strict)

    def simplify(self) -> "Expression":
        from simplifier import simplify
        return simplify(self)

    def expand(self) -> "Expression":
        from simplifier import expand
        return expand(self)

    def differentiate(self, variable: Union[str, "Variable"]) -> "Expression":
        from differentiation import differentiate
        return differentiate(self, variable)

    def integrate(self, variable: Union[str, "Variable"]) -> "Expression":
        from integration import integrate
        return integrate(self, variable)

    def to_graph(self) -> nx.DiGraph:
        """DAG view: structurally equal subtrees collapse into a single node.

        Nodes are the subtrees themselves, edges run child -> parent and carry
        the operand positions. graph.graph['root'] is this expression.
        """
        g = nx.DiGraph()
        g.graph["root"] = self

        def visit(node: Expression) -> None:
            if node in g:
                return
            g.add_node(node, label=_label(node))
            for pos, child in enumerate(node.children()):
                visit(child)
                if g.has_edge(child, node):
                    g.edges[child, node]["positions"].append(pos)
                else:
                    g.add_edge(child, node, positions=[pos])

        visit(self)
        return g

    def __str__(self) -> str:
        return _to_string(self)


@dataclass(frozen=True, eq=True, repr=False)
class Literal(Expression):
    value: Number
    # 1 and 1.0 are different literals
    kind: str = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if not numeric.is_number(self.value):
            raise TypeError(f"Literal needs a number, got {self.value!r}")
        object.__setattr__(self, "value", numeric.normalize(self.value))
        object.__setattr__(self, "kind", type(self.value).__name__)

    def __repr__(self) -> str:
        return f"Literal({self.value!r})"


@dataclass(frozen=True, eq=True, repr=False)
class Variable(Expression):
    name: str

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise TypeError(f"Variable needs a non-empty name, got {self.name!r}")

    def __repr__(self) -> str:
        return f"Variable({self.name!r})"


@dataclass(frozen=True, eq=True, repr=False)
class Unary(Expression):
    op: str
    operand: Expression

    def __post_init__(self) -> None:
        if self.op not in UNARY_OPS:
            raise ValueError(f"Unknown unary op {self.op}")
        object.__setattr__(self, "operand", as_expr(self.operand))

    def children(self) -> Tuple[Expression, ...]:
        return (self.operand,)

    def rebuild(self, children: Tuple[Expression, ...]) -> Expression:
        return Unary(self.op, children[0])

    def __repr__(self) -> str:
        return f"Unary({self.op!r}, {self.operand!r})"


@dataclass(frozen=True, eq=True, repr=False)
class Log(Expression):
    """Logarithm of `operand` to an explicit `base`."""

    operand: Expression
    base: Expression

    def __post_init__(self) -> None:
        object.__setattr__(self, "operand", as_expr(self.operand))
        object.__setattr__(self, "base", as_expr(self.base))

    def children(self) -> Tuple[Expression, ...]:
        return (self.operand, self.base)

    def rebuild(self, children: Tuple[Expression, ...]) -> Expression:
        return Log(children[0], children[1])

    def __repr__(self) -> str:
        return f"Log({self.operand!r}, {self.base!r})"


@dataclass(frozen=True, eq=True, repr=False)
class Binary(Expression):
    op: str
    left: Expression
    right: Expression

    def __post_init__(self) -> None:
        if self.op not in BINARY_OPS:
            raise ValueError(f"Unknown binary op {self.op}")
        object.__setattr__(self, "left", as_expr(self.left))
        object.__setattr__(self, "right", as_expr(self.right))

    def children(self) -> Tuple[Expression, ...]:
        return (self.left, self.right)

    def rebuild(self, children: Tuple[Expression, ...]) -> Expression:
        return Binary(self.op, children[0], children[1])

    def __repr__(self) -> str:
        return f"Binary({self.op!r}, {self.left!r}, {self.right!r})"


@dataclass(frozen=True, eq=True, repr=False)
class Call(Expression):
    """Named function applied to an argument tuple (see FUNCTIONS)."""

    name: str
    args: Tuple[Expression, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "args", tuple(as_expr(a) for a in self.args))

    def children(self) -> Tuple[Expression, ...]:
        return self.args

    def rebuild(self, children: Tuple[Expression, ...]) -> Expression:
        return Call(self.name, tuple(children))

    def __repr__(self) -> str:
        return f"Call({self.name!r}, {self.args!r})"


@dataclass(frozen=True)
class Equation:
    """left = right."""

    left: Expression
    right: Expression = field(default_factory=lambda: ZERO)

    def __post_init__(self) -> None:
        object.__setattr__(self, "left", as_expr(self.left))
        object.__setattr__(self, "right", as_expr(self.right))

    def to_zero_form(self) -> Expression:
        return Binary("-", self.left, self.right)

    def variables(self) -> FrozenSet[str]:
        return self.left.variables() | self.right.variables()

    def ordered_variables(self) -> List[str]:
        names = self.left.ordered_variables()
        names += [n for n in self.right.ordered_variables() if n not in names]
        return names

    def substitute(self, variable: Union[str, Variable], replacement: Any) -> "Equation":
        return Equation(self.left.substitute(variable, replacement), self.right.substitute(variable, replacement))

    def __str__(self) -> str:
        return f"{self.left} = {self.right}"


ZERO = Literal(0)
ONE = Literal(1)
TWO = Literal(2)
NEG_ONE = Literal(-1)
HALF = Literal(numeric.Fraction(1, 2))
E = Literal(math.e)
PI = Literal(math.pi)


# =====================
# Construction helpers
# =====================


def name_of(variable: Union[str, Variable]) -> str:
    if isinstance(variable, Variable):
        return variable.name
    if isinstance(variable, str):
        return variable
    raise TypeError(f"expected a variable or a name, got {variable!r}")


def as_expr(value: Any) -> Expression:
    if isinstance(value, Expression):
        return value
    if isinstance(value, str):
        if not value.isidentifier():
            raise TypeError(f"'{value}' is not a variable name; use parser.parse for text")
        return Variable(value)
    if numeric.is_number(value):
        return Literal(value)
    raise TypeError(f"Cannot convert value of type {type(value).__name__} to Expression")


def const(value: Number) -> Literal:
    return Literal(value)


def var(name: str) -> Variable:
    return Variable(name)


def symbols(names: str) -> Tuple[Variable, ...]:
    return tuple(Variable(n) for n in names.replace(",", " ").split())


def _unary_builder(op: str) -> Callable[[Any], Unary]:
    def build(operand: Any) -> Unary:
        return Unary(op, as_expr(operand))
    build.__name__ = op
    build.__doc__ = f"{op}(operand)"
    return build


neg = _unary_builder("neg")
sin = _unary_builder("sin")
cos = _unary_builder("cos")
tan = _unary_builder("tan")
sec = _unary_builder("sec")
csc = _unary_builder("csc")
cot = _unary_builder("cot")
asin = _unary_builder("asin")
acos = _unary_builder("acos")
atan = _unary_builder("atan")
sinh = _unary_builder("sinh")
cosh = _unary_builder("cosh")
tanh = _unary_builder("tanh")
exp = _unary_builder("exp")
ln = _unary_builder("ln")
sqrt = _unary_builder("sqrt")
cbrt = _unary_builder("cbrt")
abs_ = _unary_builder("abs")


def log(operand: Any, base: Any = 10) -> Log:
    return Log(as_expr(operand), as_expr(base))


def add(left: Any, right: Any) -> Binary:
    return Binary("+", as_expr(left), as_expr(right))


def sub(left: Any, right: Any) -> Binary:
    return Binary("-", as_expr(left), as_expr(right))


def mul(left: Any, right: Any) -> Binary:
    return Binary("*", as_expr(left), as_expr(right))


def div(left: Any, right: Any) -> Binary:
    return Binary("/", as_expr(left), as_expr(right))


def pow(base: Any, exponent: Any) -> Binary:
    return Binary("^", as_expr(base), as_expr(exponent))


def call(name: str, *args: Any) -> Call:
    return Call(name, tuple(as_expr(a) for a in args))


# =====================
# Function registry for Call nodes
# =====================


@dataclass(frozen=True)
class Function:
    name: str
    evaluate: Callable[..., Any]
    arity: Optional[int] = None
    # partials[i](args) -> d f / d args[i] as an Expression
    partials: Optional[Tuple[Callable[[Tuple[Expression, ...]], Expression], ...]] = None


FUNCTIONS: Dict[str, Function] = {}


def register_function(
    name: str,
    evaluate: Callable[..., Any],
    arity: Optional[int] = None,
    partials: Optional[Iterable[Callable[[Tuple[Expression, ...]], Expression]]] = None,
) -> Function:
    fn = Function(name, evaluate, arity, tuple(partials) if partials is not None else None)
    FUNCTIONS[name] = fn
    return fn


def _hypot_partial(i: int) -> Callable[[Tuple[Expression, ...]], Expression]:
    return lambda args: args[i] / Call("hypot", args)


def _root(x: Any, n: Any) -> Any:
    if numeric.is_exact(n) and n != 0:
        return numeric.power(x, numeric.divide(1, n))
    return numeric.power(x, 1 / n)


register_function("min", min)
register_function("max", max)
register_function(
    "pow",
    numeric.power,
    2,
    (
        lambda args: args[1] * Binary("^", args[0], args[1] - 1),
        lambda args: Binary("^", args[0], args[1]) * Unary("ln", args[0]),
    ),
)
register_function(
    "root",
    _root,
    2,
    (
        lambda args: Call("root", args) / (args[1] * args[0]),
        lambda args: -Call("root", args) * Unary("ln", args[0]) / args[1] ** 2,
    ),
)
register_function("floor", math.floor, 1, (lambda args: ZERO,))
register_function("ceil", math.ceil, 1, (lambda args: ZERO,))
register_function("hypot", math.hypot, 2, (_hypot_partial(0), _hypot_partial(1)))
register_function(
    "atan2",
    math.atan2,
    2,
    (
        lambda args: args[1] / (args[0] ** 2 + args[1] ** 2),
        lambda args: -args[0] / (args[0] ** 2 + args[1] ** 2),
    ),
)


# =====================
# Evaluation
# =====================


def _sec(x: Any) -> Any:
    return 1 / math.cos(x)


def _csc(x: Any) -> Any:
    return 1 / math.sin(x)


def _cot(x: Any) -> Any:
    return 1 / math.tan(x)


_real_fns: Dict[str, Callable[[float], float]] = {
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
    "sec": _sec,
    "csc": _csc,
    "cot": _cot,
    "asin": math.asin,
    "acos": math.acos,
    "atan": math.atan,
    "sinh": math.sinh,
    "cosh": math.cosh,
    "tanh": math.tanh,
    "exp": math.exp,
    "ln": math.log,
    "sqrt": math.sqrt,
    "cbrt": numeric.real_cbrt,
}

_complex_fns: Dict[str, Callable[[complex], complex]] = {
    "sin": cmath.sin,
    "cos": cmath.cos,
    "tan": cmath.tan,
    "sec": lambda z: 1 / cmath.cos(z),
    "csc": lambda z: 1 / cmath.sin(z),
    "cot": lambda z: 1 / cmath.tan(z),
    "asin": cmath.asin,
    "acos": cmath.acos,
    "atan": cmath.atan,
    "sinh": cmath.sinh,
    "cosh": cmath.cosh,
    "tanh": cmath.tanh,
    "exp": cmath.exp,
    "ln": cmath.log,
    "sqrt": cmath.sqrt,
    "cbrt": lambda z: z ** (1.0 / 3.0),
}

_array_fns: Dict[str, Callable[[np.ndarray], np.ndarray]] = {
    "neg": np.negative,
    "sin": np.sin,
    "cos": np.cos,
    "tan": np.tan,
    "sec": lambda a: 1.0 / np.cos(a),
    "csc": lambda a: 1.0 / np.sin(a),
    "cot": lambda a: 1.0 / np.tan(a),
    "asin": np.arcsin,
    "acos": np.arccos,
    "atan": np.arctan,
    "sinh": np.sinh,
    "cosh": np.cosh,
    "tanh": np.tanh,
    "exp": np.exp,
    "ln": np.log,
    "abs": np.abs,
    "sqrt": np.sqrt,
    "cbrt": np.cbrt,
}


def _is_array(*values: Any) -> bool:
    return any(isinstance(v, np.ndarray) for v in values)


def _eval_unary(op: str, x: Any) -> Any:
    if _is_array(x):
        with np.errstate(all="ignore"):
            return _array_fns[op](x)
    if op == "neg":
        return -x
    if op == "abs":
        return numeric.normalize(abs(x))
    if op == "sqrt":
        root = numeric.exact_sqrt(x)
        if root is not None:
            return root
    if op == "cbrt" and numeric.is_exact(x):
        return numeric.real_cbrt(x)
    if isinstance(x, complex):
        return numeric.normalize(_complex_fns[op](x))
    if op in ("asin", "acos") and not -1 <= x <= 1:
        raise DomainError(op, x, "outside [-1, 1]")
    if op == "ln" and x <= 0:
        raise DomainError(op, x, "non-positive argument")
    if op == "sqrt" and x < 0:
        raise DomainError(op, x, "negative argument")
    try:
        return _real_fns[op](float(x))
    except ZeroDivisionError:
        raise DomainError(op, x, "pole")
    except OverflowError:
        return math.inf


def _eval_binary(op: str, a: Any, b: Any) -> Any:
    if _is_array(a, b):
        with np.errstate(all="ignore"):
            if op == "+":
                return np.add(a, b)
            if op == "-":
                return np.subtract(a, b)
            if op == "*":
                return np.multiply(a, b)
            if op == "/":
                return np.true_divide(a, b)
            if op == "^":
                return np.power(np.asarray(a, dtype=float), b)
            return np.mod(a, b)
    if op == "+":
        return numeric.normalize(a + b)
    if op == "-":
        return numeric.normalize(a - b)
    if op == "*":
        return numeric.normalize(a * b)
    if op == "/":
        if b == 0:
            if numeric.is_exact(a) and numeric.is_exact(b):
                raise DomainError("/", b, "division by zero")
            if a == 0 or isinstance(a, complex) or isinstance(b, complex):
                return math.nan
            return math.copysign(math.inf, a) * math.copysign(1.0, b)
        return numeric.divide(a, b)
    if op == "^":
        try:
            return numeric.power(a, b)
        except ZeroDivisionError:
            if numeric.is_exact(a) and numeric.is_exact(b):
                raise DomainError("^", (a, b), "zero to a negative power")
            return math.inf
    if isinstance(a, complex) or isinstance(b, complex):
        raise DomainError("%", (a, b), "complex operands")
    if b == 0:
        raise DomainError("%", b, "modulo by zero")
    return numeric.normalize(a % b)


def _eval_log(x: Any, base: Any) -> Any:
    if _is_array(x, base):
        with np.errstate(all="ignore"):
            return np.log(x) / np.log(base)
    if isinstance(x, complex) or isinstance(base, complex):
        return numeric.normalize(cmath.log(x) / cmath.log(base))
    if x <= 0:
        raise DomainError("log", x, "non-positive argument")
    if base <= 0 or base == 1:
        raise DomainError("log", base, "invalid base")
    return math.log(x) / math.log(base)


def _evaluate(expr: Expression, env: Mapping[str, Any]) -> Any:
    if isinstance(expr, Literal):
        return expr.value
    if isinstance(expr, Variable):
        if expr.name not in env:
            raise UnboundVariable(expr.name)
        value = env[expr.name]
        if isinstance(value, Expression):
            return _evaluate(value, env)
        if isinstance(value, (list, tuple)):
            value = np.asarray(value, dtype=float)
        return value if isinstance(value, np.ndarray) else numeric.normalize(value)
    if isinstance(expr, Unary):
        return _eval_unary(expr.op, _evaluate(expr.operand, env))
    if isinstance(expr, Log):
        return _eval_log(_evaluate(expr.operand, env), _evaluate(expr.base, env))
    if isinstance(expr, Binary):
        return _eval_binary(expr.op, _evaluate(expr.left, env), _evaluate(expr.right, env))
    if isinstance(expr, Call):
        fn = FUNCTIONS.get(expr.name)
        if fn is None:
            raise UnsupportedForm(f"Unknown function {expr.name}")
        args = [_evaluate(a, env) for a in expr.args]
        if fn.arity is not None and len(args) != fn.arity:
            raise UnsupportedForm(f"{expr.name} expects {fn.arity} arguments, got {len(args)}")
        if _is_array(*args):
            return np.vectorize(fn.evaluate)(*args)
        return numeric.normalize(fn.evaluate(*args))
    raise TypeError(f"Unknown node type {type(expr).__name__}")


# =====================
# Stringification
# =====================

# Precedences for printing
_prec = {"+": 1, "-": 1, "*": 2, "/": 2, "%": 2, "neg": 3, "^": 4}
_ATOM = 5


def _precedence(expr: Expression) -> int:
    if isinstance(expr, Binary):
        return _prec[expr.op]
    if isinstance(expr, Unary) and expr.op == "neg":
        return _prec["neg"]
    if isinstance(expr, Literal):
        v = expr.value
        if isinstance(v, complex) or (numeric.is_real(v) and v < 0):
            return _prec["neg"]
        if isinstance(v, numeric.Fraction):
            return _prec["/"]
    return _ATOM


def _wrap(child: Expression, parent: int, is_right: bool = False) -> str:
    p = _precedence(child)
    # '^' is right-associative, everything else left-associative
    need = p < parent or (p == parent and (is_right != (parent == _prec["^"])))
    s = _to_string(child)
    return f"({s})" if need else s


def _to_string(expr: Expression) -> str:
    if isinstance(expr, Literal):
        return numeric.format_number(expr.value)
    if isinstance(expr, Variable):
        return expr.name
    if isinstance(expr, Unary):
        if expr.op == "neg":
            return f"-{_wrap(expr.operand, _prec['neg'])}"
        return f"{expr.op}({_to_string(expr.operand)})"
    if isinstance(expr, Log):
        return f"log({_to_string(expr.operand)}, {_to_string(expr.base)})"
    if isinstance(expr, Call):
        return f"{expr.name}({', '.join(_to_string(a) for a in expr.args)})"
    if isinstance(expr, Binary):
        p = _prec[expr.op]
        left = _wrap(expr.left, p)
        right = _wrap(expr.right, p, is_right=True)
        if expr.op in ("+", "-"):
            return f"{left} {expr.op} {right}"
        return f"{left}{expr.op}{right}"
    return repr(expr)


def _label(expr: Expression) -> str:
    if isinstance(expr, (Literal, Variable)):
        return _to_string(expr)
    if isinstance(expr, Unary):
        return expr.op
    if isinstance(expr, Log):
        return "log"
    if isinstance(expr, Call):
        return expr.name
    if isinstance(expr, Binary):
        return expr.op
    return type(expr).__name__
