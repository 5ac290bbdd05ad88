"""
The standard whitelist: a small, safe subset of the JavaScript globals.

Prototype methods ("*.name") take the receiver as their first argument.
"""
import math
import random
import re

from sandex.sandex_operators import (
    NAN, is_number, is_truthy, to_number, to_string, format_number
)
from sandex.sandex_whitelist import Whitelist, constant

MATH = {
    "PI": math.pi,
    "E": math.e,
    "LN2": math.log(2),
    "LN10": math.log(10),
    "LOG2E": 1 / math.log(2),
    "LOG10E": 1 / math.log(10),
    "SQRT2": math.sqrt(2),
    "SQRT1_2": math.sqrt(0.5),
}

NUMBER = {
    "MAX_SAFE_INTEGER": 2 ** 53 - 1,
    "MIN_SAFE_INTEGER": -(2 ** 53 - 1),
    "EPSILON": 2.0 ** -52,
    "POSITIVE_INFINITY": math.inf,
    "NEGATIVE_INFINITY": -math.inf,
    "NaN": NAN,
}


def _nan_guard(fn):
    def wrapped(*args):
        numbers = [to_number(a) for a in args]
        if any(isinstance(n, float) and math.isnan(n) for n in numbers):
            return NAN
        try:
            return fn(*numbers)
        except (ValueError, OverflowError):
            return NAN
    wrapped.__name__ = fn.__name__
    return wrapped


# --- Math ---

def math_max(*args):
    if not args:
        return -math.inf
    numbers = [to_number(a) for a in args]
    if any(isinstance(n, float) and math.isnan(n) for n in numbers):
        return NAN
    return max(numbers)


def math_min(*args):
    if not args:
        return math.inf
    numbers = [to_number(a) for a in args]
    if any(isinstance(n, float) and math.isnan(n) for n in numbers):
        return NAN
    return min(numbers)


@_nan_guard
def math_round(x):
    if math.isinf(x):
        return x
    return math.floor(x + 0.5)


@_nan_guard
def math_floor(x):
    return x if math.isinf(x) else math.floor(x)


@_nan_guard
def math_ceil(x):
    return x if math.isinf(x) else math.ceil(x)


@_nan_guard
def math_trunc(x):
    return x if math.isinf(x) else math.trunc(x)


math_abs = _nan_guard(abs)
math_sqrt = _nan_guard(math.sqrt)
math_pow = _nan_guard(math.pow)
math_log = _nan_guard(math.log)


def math_random():
    return random.random()


# --- Global functions ---

def parse_int(value, radix=None):
    text = to_string(value).strip()
    base = int(to_number(radix)) if radix is not None else 10
    sign = 1
    if text[:1] in ("+", "-"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if (radix is None or base == 16) and text[:2].lower() == "0x":
        base, text = 16, text[2:]
    if base == 0:
        base = 10
    if not 2 <= base <= 36:
        return NAN
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"[:base]
    end = 0
    while end < len(text) and text[end].lower() in digits:
        end += 1
    if end == 0:
        return NAN
    return sign * int(text[:end], base)


def parse_float(value):
    m = re.match(r"\s*[+-]?(?:Infinity|(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)", to_string(value))
    if not m:
        return NAN
    text = m.group(0).strip()
    if text.endswith("Infinity"):
        return -math.inf if text.startswith("-") else math.inf
    return float(text)


def is_nan(value):
    number = to_number(value)
    return isinstance(number, float) and math.isnan(number)


def is_finite(value):
    number = to_number(value)
    return not (isinstance(number, float) and (math.isnan(number) or math.isinf(number)))


# --- Prototype methods (receiver first) ---

def to_upper_case(s):
    return to_string(s).upper()


def to_lower_case(s):
    return to_string(s).lower()


def trim(s):
    return to_string(s).strip()


def char_at(s, i=0):
    text, index = to_string(s), int(to_number(i))
    return text[index] if 0 <= index < len(text) else ""


def starts_with(s, prefix):
    return to_string(s).startswith(to_string(prefix))


def ends_with(s, suffix):
    return to_string(s).endswith(to_string(suffix))


def split(s, sep=None):
    text = to_string(s)
    if sep is None:
        return [text]
    if sep == "":
        return list(text)
    return text.split(to_string(sep))


def replace(s, old, new):
    # Only the first occurrence, as with a string pattern in JS.
    return to_string(s).replace(to_string(old), to_string(new), 1)


def _clamp_index(index, length):
    index = int(to_number(index))
    if index < 0:
        return max(length + index, 0)
    return min(index, length)


def index_of(receiver, item):
    if isinstance(receiver, list):
        for i, value in enumerate(receiver):
            if value == item and type(value) is type(item):
                return i
        return -1
    return to_string(receiver).find(to_string(item))


def includes(receiver, item):
    if isinstance(receiver, list):
        return index_of(receiver, item) != -1
    return to_string(item) in to_string(receiver)


def slice_(receiver, start=0, end=None):
    length = len(receiver) if isinstance(receiver, (list, str)) else 0
    lo = _clamp_index(start, length)
    hi = length if end is None else _clamp_index(end, length)
    if isinstance(receiver, list):
        return receiver[lo:hi]
    return to_string(receiver)[lo:hi]


def substring(s, start=0, end=None):
    text = to_string(s)
    lo = min(max(int(to_number(start)), 0), len(text))
    hi = len(text) if end is None else min(max(int(to_number(end)), 0), len(text))
    if lo > hi:
        lo, hi = hi, lo
    return text[lo:hi]


def join(receiver, sep=","):
    return to_string(sep).join("" if v is None else to_string(v) for v in receiver)


def concat(receiver, *items):
    if isinstance(receiver, list):
        out = list(receiver)
        for item in items:
            out.extend(item if isinstance(item, list) else [item])
        return out
    return to_string(receiver) + "".join(to_string(i) for i in items)


def to_fixed(number, digits=0):
    value = to_number(number)
    if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
        return format_number(value)
    return f"{value:.{int(to_number(digits))}f}"


def to_string_method(value, radix=None):
    if radix is not None and is_number(value) and float(value).is_integer():
        base = int(to_number(radix))
        n = int(value)
        if base == 10 or n == 0:
            return str(n)
        digits = []
        negative, n = n < 0, abs(n)
        while n:
            n, r = divmod(n, base)
            digits.append("0123456789abcdefghijklmnopqrstuvwxyz"[r])
        return ("-" if negative else "") + "".join(reversed(digits))
    return to_string(value)


def default_whitelist() -> Whitelist:
    """Math/Number constants, safe global functions and common prototype methods."""
    return Whitelist(
        objects={
            "Math": constant(MATH),
            "Number": constant(NUMBER),
        },
        callees={
            "Math.max": math_max,
            "Math.min": math_min,
            "Math.round": math_round,
            "Math.floor": math_floor,
            "Math.ceil": math_ceil,
            "Math.trunc": math_trunc,
            "Math.abs": math_abs,
            "Math.sqrt": math_sqrt,
            "Math.pow": math_pow,
            "Math.log": math_log,
            "Math.random": math_random,
            "Number.isNaN": lambda v: is_number(v) and isinstance(v, float) and math.isnan(v),
            "Number.parseFloat": parse_float,
            "Number.parseInt": parse_int,
            "parseInt": parse_int,
            "parseFloat": parse_float,
            "isNaN": is_nan,
            "isFinite": is_finite,
            "String": lambda value="": to_string(value),
            "Number": lambda value=0: to_number(value),
            "Boolean": lambda value=False: is_truthy(value),
            "*.toUpperCase": to_upper_case,
            "*.toLowerCase": to_lower_case,
            "*.trim": trim,
            "*.charAt": char_at,
            "*.startsWith": starts_with,
            "*.endsWith": ends_with,
            "*.split": split,
            "*.replace": replace,
            "*.indexOf": index_of,
            "*.includes": includes,
            "*.slice": slice_,
            "*.substring": substring,
            "*.join": join,
            "*.concat": concat,
            "*.toFixed": to_fixed,
            "*.toString": to_string_method,
        },
        custom_objects={"Math", "Number"},
    )
