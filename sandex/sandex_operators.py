"""
Operator tables and the JavaScript-flavoured coercions they rely on.

Values are plain Python objects: None plays `null`, bool/int/float/str map to
their JS counterparts, lists are arrays and dicts are objects.
"""
import collections.abc
import math
import re
from typing import Any, Callable, Dict

NAN = float("nan")

# Numeric strings in the shapes JS accepts; no `_` separators, `inf` or `nan`.
_DECIMAL_NUMBER = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?", re.ASCII)
_HEX_NUMBER = re.compile(r"0[xX][0-9a-fA-F]+")


def is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_truthy(value) -> bool:
    if value is None or value is False:
        return False
    if is_number(value):
        return not (value == 0 or math.isnan(value))
    if isinstance(value, str):
        return value != ""
    return True


def to_number(value):
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if is_number(value):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text == "":
            return 0
        if _HEX_NUMBER.fullmatch(text):
            return int(text, 16)
        if text in ("Infinity", "+Infinity"):
            return math.inf
        if text == "-Infinity":
            return -math.inf
        if not _DECIMAL_NUMBER.fullmatch(text):
            return NAN
        number = float(text)
        return int(number) if number.is_integer() and "." not in text and "e" not in text.lower() else number
    if isinstance(value, list):
        if not value:
            return 0
        if len(value) == 1:
            return to_number(value[0])
    return NAN


def format_number(value) -> str:
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    return str(value)


def to_string(value) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if is_number(value):
        return format_number(value)
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return ",".join("" if v is None else to_string(v) for v in value)
    if isinstance(value, collections.abc.Mapping):
        return "[object Object]"
    return str(value)


def to_int32(value) -> int:
    number = to_number(value)
    if isinstance(number, float) and (math.isnan(number) or math.isinf(number)):
        return 0
    number = int(number) & 0xFFFFFFFF
    return number - 0x100000000 if number & 0x80000000 else number


def _primitive(value):
    if isinstance(value, (list, collections.abc.Mapping)):
        return to_string(value)
    return value


# --- Arithmetic ---

def add(left, right):
    left, right = _primitive(left), _primitive(right)
    if isinstance(left, str) or isinstance(right, str):
        return to_string(left) + to_string(right)
    return to_number(left) + to_number(right)


def subtract(left, right):
    return to_number(left) - to_number(right)


def multiply(left, right):
    a, b = to_number(left), to_number(right)
    try:
        return a * b
    except OverflowError:
        return math.copysign(math.inf, a) * math.copysign(1, b)


def divide(left, right):
    a, b = to_number(left), to_number(right)
    if b == 0:
        if a == 0 or math.isnan(a):
            return NAN
        return math.copysign(math.inf, a) * math.copysign(1, b)
    return a / b


def remainder(left, right):
    a, b = to_number(left), to_number(right)
    if b == 0 or (isinstance(a, float) and math.isinf(a)):
        return NAN
    if isinstance(a, int) and isinstance(b, int):
        result = abs(a) % abs(b)
        return -result if a < 0 else result
    return math.fmod(a, b)


# --- Comparison ---

def _compare(left, right, test: Callable[[Any, Any], bool]) -> bool:
    left, right = _primitive(left), _primitive(right)
    if isinstance(left, str) and isinstance(right, str):
        return test(left, right)
    a, b = to_number(left), to_number(right)
    if (isinstance(a, float) and math.isnan(a)) or (isinstance(b, float) and math.isnan(b)):
        return False
    return test(a, b)


def greater(left, right): return _compare(left, right, lambda a, b: a > b)
def less(left, right): return _compare(left, right, lambda a, b: a < b)
def greater_equal(left, right): return _compare(left, right, lambda a, b: a >= b)
def less_equal(left, right): return _compare(left, right, lambda a, b: a <= b)


def strict_equals(left, right) -> bool:
    if is_number(left) and is_number(right):
        return left == right
    if isinstance(left, bool) and isinstance(right, bool):
        return left is right
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    if left is None or right is None:
        return left is right
    if isinstance(left, (bool, str)) or isinstance(right, (bool, str)) or is_number(left) or is_number(right):
        return False
    return left is right


def loose_equals(left, right) -> bool:
    if left is None or right is None:
        return left is right
    if isinstance(left, bool):
        return loose_equals(int(left), right)
    if isinstance(right, bool):
        return loose_equals(left, int(right))
    if is_number(left) and isinstance(right, str):
        return left == to_number(right)
    if isinstance(left, str) and is_number(right):
        return to_number(left) == right
    if isinstance(left, (list, collections.abc.Mapping)) and not isinstance(right, (list, collections.abc.Mapping)):
        return loose_equals(_primitive(left), right)
    if isinstance(right, (list, collections.abc.Mapping)) and not isinstance(left, (list, collections.abc.Mapping)):
        return loose_equals(left, _primitive(right))
    return strict_equals(left, right)


BINARY_OPERATION: Dict[str, Callable[[Any, Any], Any]] = {
    '+': add,
    '-': subtract,
    '*': multiply,
    '/': divide,
    '%': remainder,
    '>': greater,
    '<': less,
    '>=': greater_equal,
    '<=': less_equal,
    '==': loose_equals,
    '===': strict_equals,
    '!=': lambda left, right: not loose_equals(left, right),
    '!==': lambda left, right: not strict_equals(left, right),
}

# The right operand arrives as a thunk and is only forced when needed.
LOGICAL_OPERATION: Dict[str, Callable[[Any, Callable[[], Any]], Any]] = {
    '&&': lambda left, right: right() if is_truthy(left) else left,
    '||': lambda left, right: left if is_truthy(left) else right(),
}

UNARY_OPERATION: Dict[str, Callable[[Any], Any]] = {
    '+': to_number,
    '-': lambda arg: -to_number(arg),
    '!': lambda arg: not is_truthy(arg),
    '~': lambda arg: ~to_int32(arg),
}

# Binding strength per binary operator; higher binds tighter. All are left associative.
BINARY_PRECEDENCE: Dict[str, int] = {
    '||': 1,
    '&&': 2,
    '==': 3, '!=': 3, '===': 3, '!==': 3,
    '<': 4, '>': 4, '<=': 4, '>=': 4,
    '+': 5, '-': 5,
    '*': 6, '/': 6, '%': 6,
}


# --- Member access ---

def get_member(obj, key):
    """Read `obj[key]` the way a JS property access would.

    Mappings are read by string key, lists and strings by integer index or
    `length`. Other objects expose public attributes only; anything missing
    reads as None.
    """
    if obj is None:
        raise TypeError(f"Cannot read property {to_string(key)!r} of null")
    if isinstance(obj, collections.abc.Mapping):
        return obj.get(key if isinstance(key, str) else to_string(key))
    if isinstance(obj, (list, tuple, str)):
        if key == "length":
            return len(obj)
        index = key
        if not is_number(key):
            key = to_string(key)
            if not (key.isascii() and key.isdigit()):
                return None
            index = int(key)
        if is_number(index) and float(index).is_integer() and 0 <= index < len(obj):
            return obj[int(index)]
        return None
    name = to_string(key)
    if name.startswith("_"):
        return None
    return getattr(obj, name, None)
