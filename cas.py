from __future__ import annotations
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from differentiation import derivative, taylor_series
from expression import Equation, Expression, Variable, as_expr
from integration import MAX_DEPTH, Integrator, definite_integral
from numeric import EPSILON
from parser import parse, parse_equation
from simplifier import expand, simplify
from solver import ALL_REALS, AllReals, EquationSolver
from systems import MAX_ROUNDS, SystemSolver, as_flat_list

logger = logging.getLogger(__name__)

ExprLike = Union[str, Expression, int, float]
EquationLike = Union[str, Equation, Expression]


class CAS:
    """Front end over the engine that accepts text or Expressions.

    Options given here (tolerance, recursion depth, elimination rounds) apply
    to every call made through the instance.
    """

    def __init__(self, tol: float = EPSILON, max_depth: int = MAX_DEPTH, max_rounds: int = MAX_ROUNDS) -> None:
        self.tol = tol
        self.max_depth = max_depth
        self.max_rounds = max_rounds
        self._integrator = Integrator(max_depth=max_depth)
        self._solver = EquationSolver(tol, max_depth)
        self._systems = SystemSolver(tol, max_rounds, max_depth)

    def _wrap(self, obj: ExprLike) -> Expression:
        if isinstance(obj, str):
            return parse(obj)
        if isinstance(obj, Equation):
            raise TypeError("expected an expression, got an equation")
        return as_expr(obj)

    def _equation(self, obj: EquationLike) -> Equation:
        if isinstance(obj, str):
            return parse_equation(obj)
        if isinstance(obj, Equation):
            return obj
        return Equation(as_expr(obj))

    def parse(self, expr: str) -> Expression:
        return parse(expr)

    def eval(self, expr: ExprLike, env: Optional[Mapping[str, Any]] = None) -> Any:
        return self._wrap(expr).evaluate(env or {})

    def simplify(self, expr: ExprLike) -> Expression:
        return simplify(self._wrap(expr))

    def expand(self, expr: ExprLike) -> Expression:
        return expand(self._wrap(expr))

    def differentiate(self, expr: ExprLike, var: Union[str, Variable], order: int = 1) -> Expression:
        """Simplified derivative of the given order."""
        return derivative(self._wrap(expr), var, order)

    def taylor(self, expr: ExprLike, var: Union[str, Variable], point: ExprLike = 0, order: int = 5) -> Expression:
        """Taylor polynomial about point through the given order."""
        return taylor_series(self._wrap(expr), var, self._wrap(point), order)

    def integrate(self, expr: ExprLike, var: Union[str, Variable]) -> Expression:
        return self._integrator.integrate(self._wrap(expr), var)

    def definite_integral(self, expr: ExprLike, var: Union[str, Variable], lower: ExprLike, upper: ExprLike) -> Expression:
        return definite_integral(self._wrap(expr), var, self._wrap(lower), self._wrap(upper), self.max_depth)

    def solve(self, expr: EquationLike, var: Union[str, Variable]) -> Union[List[Any], AllReals]:
        """Solve the equation (or expr = 0) for var.

        Args:
            expr: "l = r" text, an Equation, or an expression meaning expr = 0
            var: Variable to solve for

        Returns:
            Roots repeated by multiplicity, or ALL_REALS for an identity
        """
        solutions = self._solver.solve(self._equation(expr), var)
        if any(s.is_identity for s in solutions):
            return ALL_REALS
        values: List[Any] = []
        for s in solutions:
            values.extend([s.value] * int(s.multiplicity))
        logger.debug("solve %s for %s -> %s", expr, var, values)
        return values

    def solve_system(
        self,
        equations: Iterable[EquationLike],
        variables: Optional[Sequence[Union[str, Variable]]] = None,
    ) -> Dict[str, Any]:
        return self._systems.solve([self._equation(e) for e in equations], variables)

    def solve_system_flat(
        self,
        equations: Iterable[EquationLike],
        variables: Optional[Sequence[Union[str, Variable]]] = None,
    ) -> List[Any]:
        """[name1, value1, name2, value2, ...] in first-appearance order."""
        solution = self.solve_system(equations, variables)
        return as_flat_list(solution)
