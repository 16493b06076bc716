from __future__ import annotations
import cmath
import math
import numbers
from fractions import Fraction
from typing import Optional, Tuple, Union

Number = Union[int, Fraction, float, complex]

# Single tolerance used by every zero test in the simplifier and the solvers.
EPSILON = 1e-9

def is_number(value: object) -> bool:
	if isinstance(value, bool):
		return False
	return isinstance(value, numbers.Number)

def normalize(value: object) -> Number:
	"""Coerce any numeric type (numpy scalars included) onto int/Fraction/float/complex."""
	if isinstance(value, bool):
		return int(value)
	if isinstance(value, numbers.Integral):
		return int(value)
	if isinstance(value, Fraction):
		return value.numerator if value.denominator == 1 else value
	if isinstance(value, numbers.Rational):
		f = Fraction(int(value.numerator), int(value.denominator))
		return f.numerator if f.denominator == 1 else f
	if isinstance(value, numbers.Real):
		return float(value)
	if isinstance(value, numbers.Complex):
		c = complex(value)
		if c.imag == 0:
			return c.real
		return c
	raise TypeError(f"not a number: {value!r}")

def is_exact(value: object) -> bool:
	return isinstance(value, (int, Fraction)) and not isinstance(value, bool)

def is_real(value: object) -> bool:
	return isinstance(value, numbers.Real) and not isinstance(value, bool)

def is_integer(value: object) -> bool:
	if isinstance(value, int):
		return True
	if isinstance(value, Fraction):
		return value.denominator == 1
	if isinstance(value, float):
		return math.isfinite(value) and value.is_integer()
	return False

def is_zero(value: Number, tol: float = EPSILON) -> bool:
	if is_exact(value):
		return value == 0
	return abs(value) <= tol

def is_close(a: Number, b: Number, tol: float = EPSILON) -> bool:
	if is_exact(a) and is_exact(b):
		return a == b
	scale = max(1.0, abs(a), abs(b))
	return abs(a - b) <= tol * scale

def clean(value: Number, tol: float = EPSILON) -> Number:
	"""Drop round-off: tiny imaginary parts vanish and near-integers snap to int."""
	value = normalize(value)
	if isinstance(value, complex):
		if abs(value.imag) <= tol * max(1.0, abs(value.real)):
			value = value.real
		else:
			return complex(_snap(value.real, tol), _snap(value.imag, tol))
	if isinstance(value, float):
		return _snap(value, tol)
	return value

def _snap(x: float, tol: float) -> Union[int, float]:
	if not math.isfinite(x):
		return x
	r = round(x)
	if abs(x - r) <= tol * max(1.0, abs(x)):
		return int(r)
	return x

def to_fraction(value: Number) -> Fraction:
	if isinstance(value, Fraction):
		return value
	return Fraction(value)

def divide(a: Number, b: Number) -> Number:
	"""a / b keeping exact operands exact; raises ZeroDivisionError on a zero divisor."""
	if is_exact(a) and is_exact(b):
		return normalize(to_fraction(a) / to_fraction(b))
	return normalize(a / b)

def exact_sqrt(r: Number) -> Optional[Number]:
	"""Rational square root of a non-negative rational, or None."""
	if not is_exact(r) or r < 0:
		return None
	f = to_fraction(r)
	n, d = math.isqrt(f.numerator), math.isqrt(f.denominator)
	if n * n == f.numerator and d * d == f.denominator:
		return normalize(Fraction(n, d))
	return None

def _icbrt(n: int) -> Optional[int]:
	if n < 0:
		return None
	guess = int(round(n ** (1.0 / 3.0)))
	for g in (guess - 1, guess, guess + 1):
		if g >= 0 and g * g * g == n:
			return g
	return None

def exact_cbrt(r: Number) -> Optional[Number]:
	"""Rational cube root of a rational, or None."""
	if not is_exact(r):
		return None
	f = to_fraction(r)
	sign = -1 if f < 0 else 1
	n, d = _icbrt(abs(f.numerator)), _icbrt(f.denominator)
	if n is None or d is None:
		return None
	return normalize(Fraction(sign * n, d))

def exact_root(r: Number, q: int) -> Optional[Number]:
	if q == 2:
		return exact_sqrt(r)
	if q == 3:
		return exact_cbrt(r)
	return None

def real_cbrt(x: Number) -> Number:
	root = exact_cbrt(x)
	if root is not None:
		return root
	x = float(x)
	return math.copysign(abs(x) ** (1.0 / 3.0), x)

def power(base: Number, exponent: Number) -> Number:
	"""Numeric base**exponent.

	Exact operands stay exact when the result is rational. A negative real base
	with a rational exponent of odd denominator takes the real root, other
	negative bases fall back to the principal complex value. Raises
	ZeroDivisionError for zero to a negative power.
	"""
	if is_exact(base) and is_exact(exponent):
		e = to_fraction(exponent)
		if e.denominator == 1:
			if base == 0 and e < 0:
				raise ZeroDivisionError("zero to a negative power")
			return normalize(to_fraction(base) ** e.numerator)
		root = exact_root(base, e.denominator)
		if root is not None:
			if root == 0 and e < 0:
				raise ZeroDivisionError("zero to a negative power")
			return normalize(to_fraction(root) ** e.numerator)
		if base < 0 and e.denominator % 2 == 1:
			magnitude = float(-base) ** float(e)
			return magnitude if e.numerator % 2 == 0 else -magnitude
	if is_real(base) and is_real(exponent):
		b, e = float(base), float(exponent)
		if b == 0 and e < 0:
			raise ZeroDivisionError("zero to a negative power")
		if b < 0 and not e.is_integer():
			return normalize(cmath.exp(e * cmath.log(b)))
		try:
			return normalize(b ** e)
		except OverflowError:
			return math.inf
	if base == 0:
		if exponent == 0:
			return 1
		if is_real(exponent) and exponent < 0:
			raise ZeroDivisionError("zero to a negative power")
		return 0
	return normalize(complex(base) ** complex(exponent))

def sort_key(value: Number) -> Tuple[float, float]:
	value = normalize(value)
	if isinstance(value, complex):
		return (value.real, value.imag)
	return (float(value), 0.0)

def format_number(value: Number) -> str:
	value = normalize(value)
	if isinstance(value, Fraction):
		return f"{value.numerator}/{value.denominator}"
	if isinstance(value, complex):
		return f"({_format_real(value.real)}{value.imag:+g}i)" if value.real else f"{value.imag:g}i"
	if isinstance(value, float):
		return _format_real(value)
	return str(value)

def _format_real(x: float) -> str:
	if math.isfinite(x) and x.is_integer() and abs(x) < 1e16:
		return str(int(x)) + ".0"
	return repr(x)
