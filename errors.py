"""
Error kinds raised at the public boundary of the engine.

Inside the integration chain and the system solver a failed sub-step is the
value None, never one of these; they surface only once a whole process is
exhausted.
"""
from __future__ import annotations
from typing import Any, Optional


class CASError(Exception):
    """Base class for every error the engine raises on purpose."""


class UnboundVariable(CASError, KeyError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Variable '{name}' not in env")

    def __str__(self) -> str:
        return self.args[0]


class DomainError(CASError, ValueError):
    def __init__(self, function: str, value: Any, reason: str = "") -> None:
        self.function = function
        self.value = value
        message = f"{function} is undefined for {value!r}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class UnsupportedForm(CASError, ValueError):
    """An expression shape with no symbolic rule (e.g. an unregistered call)."""


class NotPolynomial(CASError, ValueError):
    def __init__(self, expr: Any, variable: Optional[str] = None) -> None:
        self.expr = expr
        self.variable = variable
        where = f" in {variable}" if variable else ""
        super().__init__(f"{expr} is not a polynomial{where}")


class UnsupportedDegree(CASError, ValueError):
    def __init__(self, degree: int, variable: Optional[str] = None) -> None:
        self.degree = degree
        self.variable = variable
        super().__init__(f"no closed-form solver for degree {degree}")


class NoIntegrationRule(CASError):
    def __init__(self, integrand: Any, variable: str) -> None:
        self.integrand = integrand
        self.variable = variable
        super().__init__(
            f"Cannot symbolically integrate: {integrand} d{variable}; "
            "consider numerical integration instead"
        )


class InconsistentSystem(CASError):
    """The equations contradict each other (elimination produced c = 0, c != 0)."""


class DepthExceeded(CASError, RecursionError):
    """Recursion guard of the integrator or equation solver tripped."""


class NoConvergence(CASError):
    """The system solver ran out of elimination rounds or candidate moves."""
