"""
The capability gate.

A Whitelist decides, at compile time, which identifiers may root a member
chain and which call signatures may be compiled.

Call signatures:
    name(...)             -> "name"
    Obj.method(...)       -> "Obj.method"   (Obj listed in custom_objects)
    <expr>.method(...)    -> "*.method"     (receiver passed as first argument)

A bare identifier receiver (`name.trim()`) must itself be an allowed object.

Only a bare identifier is gated as a member root. Any other value
identifier reads the binding table, and a compound expression over it may
root a member chain or a method call: `(0 || secret).name`,
`[secret][0].name` and `(0 || s).trim()` all compile. The gate limits which
host objects and functions are reachable; it does not hide what the caller
puts in the binding table.
"""
import functools
import importlib
import logging
import types
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Optional

import yaml

from sandex.sandex_datatypes import (
    Node, UnauthorizedIdentifier, UnauthorizedCall, WhitelistConfigError
)

logger = logging.getLogger(__name__)

Accessor = Callable[..., Any]
Invoker = Callable[..., Callable[..., Any]]


def constant(value: Any) -> Accessor:
    """An accessor that always yields `value`."""
    def accessor(bindings, *options):
        return value
    return accessor


def from_bindings(name: str) -> Accessor:
    """An accessor that reads `name` from the evaluation's binding table."""
    def accessor(bindings, *options):
        return bindings[name]
    return accessor


class Whitelist:
    """Host-configured allow-lists. Immutable once constructed."""

    def __init__(self, objects: Optional[Mapping[str, Accessor]] = None,
                 callees: Optional[Mapping[str, Callable]] = None,
                 custom_objects: Optional[Iterable[str]] = None):
        for name, accessor in (objects or {}).items():
            if not callable(accessor):
                raise WhitelistConfigError(f"Accessor for object '{name}' is not callable")
        for signature, fn in (callees or {}).items():
            if not callable(fn):
                raise WhitelistConfigError(f"Callee '{signature}' is not callable")
        self.objects = types.MappingProxyType(dict(objects or {}))
        self.callees = types.MappingProxyType(dict(callees or {}))
        self.custom_objects = frozenset(custom_objects or ())

    def __repr__(self):
        return (f"<Whitelist objects={len(self.objects)} callees={len(self.callees)} "
                f"custom_objects={sorted(self.custom_objects)}>")

    def merged(self, other: "Whitelist") -> "Whitelist":
        """A new Whitelist holding both tables; `other` wins on conflicts."""
        return Whitelist(
            {**self.objects, **other.objects},
            {**self.callees, **other.callees},
            self.custom_objects | other.custom_objects,
        )

    # --- Validators ---

    def validate_object_root(self, name: str, node: Optional[Node] = None) -> Accessor:
        accessor = self.objects.get(name)
        if accessor is None:
            logger.warning("Rejected object root %r", name)
            raise UnauthorizedIdentifier(name, node)
        logger.debug("Allowed object root %r", name)
        return accessor

    def validate_callee(self, path) -> Invoker:
        """Resolve the callee of the CallExpression at `path` to an invoker.

        The invoker takes the evaluation's (bindings, *options) and returns the
        function to apply to the call arguments.
        """
        call = path.node
        callee = call.callee

        if callee.kind == "Identifier":
            return self._invoker(callee.name, call)

        if callee.kind == "MemberExpression" and not callee.computed:
            method = callee.property.name
            receiver = callee.object
            if receiver.kind == "Identifier" and receiver.name in self.custom_objects:
                return self._invoker(f"{receiver.name}.{method}", call)

            signature = f"*.{method}"
            fn = self._lookup(signature, call)
            if receiver.kind == "Identifier":
                # A bare receiver roots a member chain and is gated like one.
                receiver_closure = self.validate_object_root(receiver.name, receiver)
            else:
                receiver_closure = path.traverse(receiver, "callee.object")

            def invoke_method(bindings, *options):
                return functools.partial(fn, receiver_closure(bindings, *options))
            return invoke_method

        signature = "<computed>" if callee.kind == "MemberExpression" else f"<{callee.kind}>"
        logger.warning("Rejected call shape %s", signature)
        raise UnauthorizedCall(signature, call)

    def _lookup(self, signature: str, node: Node) -> Callable:
        fn = self.callees.get(signature)
        if fn is None:
            logger.warning("Rejected call %r", signature)
            raise UnauthorizedCall(signature, node)
        logger.debug("Allowed call %r", signature)
        return fn

    def _invoker(self, signature: str, node: Node) -> Invoker:
        fn = self._lookup(signature, node)

        def invoke(bindings, *options):
            return fn
        return invoke

    # --- Configuration ---

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "Whitelist":
        """Build a Whitelist from plain data (as loaded from YAML).

        objects:
          user: {binding: user}        # read from the binding table
          site: {value: {name: demo}}  # constant
          Math: {import: pkg.mod:ATTR} # constant imported object
        callees:
          Math.max: {import: pkg.mod:func}
          "*.trim": pkg.mod:trim       # shorthand for {import: ...}
        custom_objects: [Math]
        include_builtins: true
        """
        if not isinstance(config, Mapping):
            raise WhitelistConfigError("Whitelist config must be a mapping")
        unknown = set(config) - {"objects", "callees", "custom_objects", "include_builtins"}
        if unknown:
            raise WhitelistConfigError(f"Unknown whitelist config keys: {sorted(unknown)}")

        objects = {}
        for name, spec in (config.get("objects") or {}).items():
            objects[name] = _accessor_from_spec(name, spec)

        callees = {}
        for signature, spec in (config.get("callees") or {}).items():
            if isinstance(spec, Mapping):
                if "import" not in spec:
                    raise WhitelistConfigError(f"Callee '{signature}' needs an 'import' entry")
                spec = spec["import"]
            callees[signature] = _import_object(spec)

        custom = config.get("custom_objects") or []
        if not isinstance(custom, list):
            raise WhitelistConfigError("custom_objects must be a list")

        whitelist = cls(objects, callees, custom)
        if config.get("include_builtins"):
            from sandex.sandex_builtins import default_whitelist
            whitelist = default_whitelist().merged(whitelist)
        return whitelist

    @classmethod
    def from_file(cls, path: str) -> "Whitelist":
        text = Path(path).read_text(encoding="utf-8")
        config = yaml.safe_load(text) or {}
        logger.debug("Loaded whitelist config from %s", path)
        return cls.from_config(config)


def _import_object(spec: Any) -> Any:
    if not isinstance(spec, str) or ":" not in spec:
        raise WhitelistConfigError(f"Expected 'module:attribute', got {spec!r}")
    module_name, _, attr_path = spec.partition(":")
    try:
        obj = importlib.import_module(module_name)
        for attr in attr_path.split("."):
            obj = getattr(obj, attr)
    except (ImportError, AttributeError) as e:
        raise WhitelistConfigError(f"Cannot import {spec!r}: {e}") from e
    return obj


def _accessor_from_spec(name: str, spec: Any) -> Accessor:
    if not isinstance(spec, Mapping) or len(spec) != 1:
        raise WhitelistConfigError(
            f"Object '{name}' needs exactly one of 'binding', 'value', 'import'")
    (source, arg), = spec.items()
    match source:
        case "binding":
            return from_bindings(arg or name)
        case "value":
            return constant(arg)
        case "import":
            return constant(_import_object(arg))
        case _:
            raise WhitelistConfigError(f"Unknown object source {source!r} for '{name}'")


_configured: Optional[Whitelist] = None


def configure_whitelist(whitelist: Optional[Whitelist]) -> None:
    """Set the process-wide default whitelist. Call before the first compile."""
    global _configured
    _configured = whitelist
    logger.debug("Configured process whitelist: %r", whitelist)


def get_whitelist() -> Whitelist:
    """The configured whitelist, or an empty one that allows nothing."""
    return _configured if _configured is not None else Whitelist()
