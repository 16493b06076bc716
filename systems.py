"""
Systems of equations by substitution-elimination.

Each round picks an equation in which some unknown appears linearly with a
coefficient free of every unknown, isolates it, and substitutes it into the
remaining equations. When no such pick exists, an equation left in a single
unknown is solved outright and each root is followed as its own branch.
Eliminated unknowns are recovered by back-substitution in reverse order.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import networkx as nx

from errors import InconsistentSystem, NoConvergence, NotPolynomial, UnsupportedDegree
from expression import Binary, Equation, Expression, Literal, Unary, Variable, as_expr, name_of
import numeric
from numeric import EPSILON
from polynomial import Polynomial
from simplifier import expand, simplify
from solver import MAX_DEPTH, EquationSolver

logger = logging.getLogger(__name__)

MAX_ROUNDS = 50

Elimination = Tuple[str, Expression]


def _as_equation(item: Union[str, Equation, Expression]) -> Equation:
    if isinstance(item, Equation):
        return item
    if isinstance(item, str):
        # Local import; the core does not depend on the parser
        from parser import parse_equation
        return parse_equation(item)
    return Equation(as_expr(item))


class SystemSolver:
    def __init__(self, tol: float = EPSILON, max_rounds: int = MAX_ROUNDS, max_depth: int = MAX_DEPTH):
        self.tol = tol
        self.max_rounds = max_rounds
        self.equation_solver = EquationSolver(tol, max_depth)

    def solve(
        self,
        equations: Iterable[Union[str, Equation, Expression]],
        variables: Optional[Sequence[Union[str, Variable]]] = None,
    ) -> Dict[str, Any]:
        """
        Solve a system for its unknowns.

        Args:
            equations: Equations, expressions meaning expr = 0, or strings
            variables: unknowns; defaults to every symbol, in order of first
                appearance

        Returns:
            name -> value. Numeric values are cleaned numbers; unknowns the
            system leaves free map to themselves and dependent values are
            expressions in them.

        Raises:
            InconsistentSystem: the equations contradict each other
            NoConvergence: no elimination move applies, or max_rounds ran out
        """
        return self.solve_all(equations, variables)[0]

    def solve_all(
        self,
        equations: Iterable[Union[str, Equation, Expression]],
        variables: Optional[Sequence[Union[str, Variable]]] = None,
    ) -> List[Dict[str, Any]]:
        """One mapping per root followed through the nonlinear branches."""
        eqs = [_as_equation(e) for e in equations]
        if variables is None:
            unknowns: List[str] = []
            for eq in eqs:
                unknowns += [n for n in eq.ordered_variables() if n not in unknowns]
        else:
            unknowns = [name_of(v) for v in variables]
        residuals = [simplify(eq.to_zero_form()) for eq in eqs]
        logger.debug("system in %s: %s", unknowns, [str(r) for r in residuals])
        results = self._eliminate(residuals, unknowns, [], 0)
        if not results:
            raise InconsistentSystem("no branch of the system has a solution")
        return results

    # -----------------
    # Elimination
    # -----------------
    def _eliminate(
        self,
        remaining: List[Expression],
        unknowns: List[str],
        eliminations: List[Elimination],
        rounds: int,
    ) -> List[Dict[str, Any]]:
        if rounds > self.max_rounds:
            raise NoConvergence(f"system not solved after {self.max_rounds} rounds")
        done = {v for v, _ in eliminations}
        open_unknowns = [v for v in unknowns if v not in done]
        remaining = self._prune(remaining, open_unknowns)
        if not remaining:
            return [self._back_substitute(eliminations, unknowns)]

        pick = self._pick_linear(remaining, open_unknowns)
        if pick is not None:
            index, name, value = pick
            logger.debug("round %d: %s = %s", rounds, name, value)
            rest = [simplify(e.substitute(name, value)) for i, e in enumerate(remaining) if i != index]
            return self._eliminate(rest, unknowns, eliminations + [(name, value)], rounds + 1)

        for index, expr in enumerate(remaining):
            present = [v for v in open_unknowns if expr.contains(v)]
            if len(present) != 1:
                continue
            name = present[0]
            try:
                solutions = self.equation_solver.solve(expr, name)
            except (NotPolynomial, UnsupportedDegree) as exc:
                logger.debug("round %d: cannot solve %s for %s: %s", rounds, expr, name, exc)
                continue
            roots = [s for s in solutions if not s.is_identity]
            logger.debug("round %d: %s has roots %s", rounds, name, [str(s) for s in roots])
            return self._branch(remaining, index, name, [s.value for s in roots], unknowns, eliminations, rounds)

        for index, expr in enumerate(remaining):
            for name in [v for v in open_unknowns if expr.contains(v)]:
                values = self.equation_solver.isolate(expr, name)
                if values is not None and len(values) == 1:
                    logger.debug("round %d: isolated %s = %s", rounds, name, values[0])
                    rest = [simplify(e.substitute(name, values[0])) for i, e in enumerate(remaining) if i != index]
                    return self._eliminate(rest, unknowns, eliminations + [(name, values[0])], rounds + 1)

        raise NoConvergence(f"no elimination step applies to {[str(e) for e in remaining]}")

    def _branch(
        self,
        remaining: List[Expression],
        index: int,
        name: str,
        values: List[Any],
        unknowns: List[str],
        eliminations: List[Elimination],
        rounds: int,
    ) -> List[Dict[str, Any]]:
        results: List[Dict[str, Any]] = []
        for value in values:
            value = as_expr(value)
            rest = [simplify(e.substitute(name, value)) for i, e in enumerate(remaining) if i != index]
            try:
                results += self._eliminate(rest, unknowns, eliminations + [(name, value)], rounds + 1)
            except InconsistentSystem:
                logger.debug("branch %s = %s is inconsistent", name, value)
        if not results:
            raise InconsistentSystem(f"no value of {name} satisfies the system")
        return results

    def _prune(self, remaining: List[Expression], unknowns: List[str]) -> List[Expression]:
        kept = []
        for expr in remaining:
            expanded = expand(expr)
            if isinstance(expanded, Literal):
                if numeric.is_zero(expanded.value, self.tol):
                    continue
                raise InconsistentSystem(f"{expr} = 0 cannot hold")
            if not any(expanded.contains(v) for v in unknowns):
                logger.info("dropping parameter constraint %s = 0", expanded)
                continue
            kept.append(expr)
        return kept

    def _pick_linear(self, remaining: List[Expression], unknowns: List[str]) -> Optional[Tuple[int, str, Expression]]:
        incidence = nx.Graph()
        for i, expr in enumerate(remaining):
            incidence.add_node(("eq", i), bipartite=0)
            for v in unknowns:
                if expr.contains(v):
                    incidence.add_edge(("eq", i), ("var", v))
        order = sorted(range(len(remaining)), key=lambda i: (incidence.degree(("eq", i)), i))
        for i in order:
            expanded = expand(remaining[i])
            for v in unknowns:
                if not incidence.has_edge(("eq", i), ("var", v)):
                    continue
                try:
                    poly = Polynomial.from_expression(expanded, v)
                except NotPolynomial:
                    continue
                if poly.degree() != 1:
                    continue
                c0, c1 = poly.coefficients
                if any(c1.contains(u) for u in unknowns):
                    continue
                if isinstance(c1, Literal) and numeric.is_zero(c1.value, self.tol):
                    continue
                return i, v, simplify(Binary("/", Unary("neg", c0), c1))
        return None

    def _back_substitute(self, eliminations: List[Elimination], unknowns: List[str]) -> Dict[str, Any]:
        values: Dict[str, Expression] = {}
        for name, expr in reversed(eliminations):
            values[name] = simplify(expr.substitute_all(values))
        result: Dict[str, Any] = {}
        for name in unknowns:
            value = values.get(name, Variable(name))
            if isinstance(value, Literal):
                result[name] = numeric.clean(value.value, self.tol)
            elif value.is_constant():
                result[name] = numeric.clean(value.evaluate(), self.tol)
            else:
                result[name] = value
        return result


def solve_equations(
    equations: Iterable[Union[str, Equation, Expression]],
    variables: Optional[Sequence[Union[str, Variable]]] = None,
    tol: float = EPSILON,
    max_rounds: int = MAX_ROUNDS,
) -> Dict[str, Any]:
    return SystemSolver(tol, max_rounds).solve(equations, variables)


def as_flat_list(mapping: Dict[str, Any], order: Optional[Sequence[str]] = None) -> List[Any]:
    """[name1, value1, name2, value2, ...] in the given (default: mapping) order."""
    names = list(order) if order is not None else list(mapping)
    out: List[Any] = []
    for name in names:
        out += [name, mapping[name]]
    return out
