"""A small model of the type system that providers and injectors are described in."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Tuple

from .errors import Position


class Type:
    """Base class of every type."""

    def __str__(self) -> str:
        return type_string(self)


@dataclass(frozen=True)
class Package:
    """A package identified by its import path."""

    path: str
    name: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            object.__setattr__(self, "name", self.path.rsplit("/", 1)[-1])


@dataclass(frozen=True)
class Basic(Type):
    """A predeclared type such as ``int`` or ``string``."""

    name: str


@dataclass(frozen=True)
class Pointer(Type):
    """A pointer to ``elem``."""

    elem: Type


@dataclass(frozen=True)
class Var:
    """A named (or unnamed) parameter or result."""

    name: str
    type: Type


@dataclass(frozen=True, eq=False)
class Signature(Type):
    """A function type. For a variadic signature the last parameter holds the element type."""

    params: Tuple[Var, ...] = ()
    results: Tuple[Var, ...] = ()
    variadic: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "params", tuple(self.params))
        object.__setattr__(self, "results", tuple(self.results))
        if self.variadic and not self.params:
            raise ValueError("a variadic signature needs at least one parameter")

    def _key(self) -> tuple:
        return (
            tuple(p.type for p in self.params),
            tuple(r.type for r in self.results),
            self.variadic,
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Signature):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(("signature", self._key()))


@dataclass(frozen=True)
class Method:
    """A method name and signature; ``pointer_receiver`` marks methods on ``*T``."""

    name: str
    signature: Signature = field(default_factory=Signature)
    pointer_receiver: bool = field(default=False, compare=False)


@dataclass(frozen=True)
class Interface(Type):
    """An interface type, its methods kept sorted by name."""

    methods: Tuple[Method, ...] = ()

    def __post_init__(self) -> None:
        methods = tuple(sorted(self.methods, key=lambda m: m.name))
        names = [m.name for m in methods]
        if len(set(names)) != len(names):
            raise ValueError("duplicate method in interface")
        object.__setattr__(self, "methods", methods)

    def method(self, name: str) -> Optional[Method]:
        return next((m for m in self.methods if m.name == name), None)


@dataclass(frozen=True)
class StructField:
    """A field of a struct type."""

    name: str
    type: Type
    tag: str = ""
    package: Optional[Package] = None
    position: Position = field(default_factory=Position, compare=False)

    @property
    def exported(self) -> bool:
        return self.name[:1].isupper()


@dataclass(frozen=True)
class Struct(Type):
    """A struct type."""

    fields: Tuple[StructField, ...] = ()

    def __post_init__(self) -> None:
        fields = tuple(self.fields)
        names = [f.name for f in fields]
        if len(set(names)) != len(names):
            raise ValueError("duplicate field in struct")
        object.__setattr__(self, "fields", fields)

    def lookup(self, name: str) -> Optional[StructField]:
        """Return the field called ``name``, or ``None``."""
        return next((f for f in self.fields if f.name == name), None)


class Named(Type):
    """A declared type; two named types are identical when package and name match."""

    def __init__(
        self,
        package: Optional[Package],
        name: str,
        underlying: Optional[Type] = None,
        methods: Iterable[Method] = (),
    ) -> None:
        self.package = package
        self.name = name
        self.underlying = underlying
        self.methods = list(methods)

    @property
    def path(self) -> str:
        return self.package.path if self.package else ""

    def method(self, name: str) -> Optional[Method]:
        return next((m for m in self.methods if m.name == name), None)

    def _key(self) -> tuple:
        return (self.path, self.name)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Named):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(("named",) + self._key())

    def __repr__(self) -> str:
        return f"Named({type_string(self)!r})"


BOOL = Basic("bool")
INT = Basic("int")
STRING = Basic("string")
EMPTY_INTERFACE = Interface()
ERROR = Named(
    None,
    "error",
    Interface((Method("Error", Signature(results=(Var("", STRING),))),)),
)
CLEANUP = Signature()


def underlying(t: Type) -> Type:
    """Return the type that ``t`` is defined as; non-named types are their own."""
    seen = set()
    while isinstance(t, Named):
        if t.underlying is None:
            raise ValueError(f"type {type_string(t)} has no underlying type")
        if id(t) in seen:
            raise ValueError(f"type {type_string(t)} is defined in terms of itself")
        seen.add(id(t))
        t = t.underlying
    return t


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


def _signature_body(sig: Signature) -> str:
    last = len(sig.params) - 1
    params = []
    for i, p in enumerate(sig.params):
        text = type_string(p.type)
        if sig.variadic and i == last:
            text = "..." + text
        params.append(f"{p.name} {text}" if p.name else text)
    body = "(" + ", ".join(params) + ")"
    if not sig.results:
        return body
    if len(sig.results) == 1 and not sig.results[0].name:
        return f"{body} {type_string(sig.results[0].type)}"
    results = [
        f"{r.name} {type_string(r.type)}" if r.name else type_string(r.type)
        for r in sig.results
    ]
    return f"{body} ({', '.join(results)})"


def type_string(t: Type) -> str:
    """Render ``t`` with fully qualified package paths."""
    if isinstance(t, Basic):
        return t.name
    if isinstance(t, Named):
        return f"{t.package.path}.{t.name}" if t.package else t.name
    if isinstance(t, Pointer):
        return "*" + type_string(t.elem)
    if isinstance(t, Signature):
        return "func" + _signature_body(t)
    if isinstance(t, Interface):
        methods = "; ".join(m.name + _signature_body(m.signature) for m in t.methods)
        return "interface{" + methods + "}"
    if isinstance(t, Struct):
        parts = []
        for f in t.fields:
            text = f"{f.name} {type_string(f.type)}"
            if f.tag:
                text += " " + _quote(f.tag)
            parts.append(text)
        return "struct{" + "; ".join(parts) + "}"
    raise TypeError(f"not a type: {t!r}")


def identical(a: Optional[Type], b: Optional[Type]) -> bool:
    """Report whether ``a`` and ``b`` denote the same type."""
    if a is None or b is None:
        return a is b
    return a == b


def _method_set(t: Type) -> Dict[str, Signature]:
    if isinstance(t, Pointer):
        base = t.elem
        if isinstance(base, Named) and not isinstance(underlying(base), Interface):
            return {m.name: m.signature for m in base.methods}
        return {}
    u = underlying(t)
    if isinstance(u, Interface):
        return {m.name: m.signature for m in u.methods}
    if isinstance(t, Named):
        return {m.name: m.signature for m in t.methods if not m.pointer_receiver}
    return {}


def implements(t: Type, iface: Type) -> bool:
    """Report whether values of type ``t`` satisfy the interface ``iface``."""
    target = underlying(iface)
    if not isinstance(target, Interface):
        raise TypeError(f"{type_string(iface)} is not an interface type")
    available = _method_set(t)
    return all(available.get(m.name) == m.signature for m in target.methods)