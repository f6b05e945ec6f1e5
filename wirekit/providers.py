"""Turn declarations of providers, bindings, values and fields into model objects."""

from __future__ import annotations

import json
import re
import sys
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

from .errors import NO_POSITION, Position, WireError
from .model import Field, IfaceBinding, Provider, ProviderInput, Value
from .types import (
    CLEANUP,
    ERROR,
    Interface,
    Named,
    Package,
    Pointer,
    Signature,
    Struct,
    StructField,
    Type,
    identical,
    implements,
    type_string,
    underlying,
)

WIRE_IMPORT_PATH = "wirekit/wire"
"""Import path of the package that holds the marker functions."""

ALL_FIELDS = "*"
"""Field name that selects every injectable field of a struct."""

_VENDOR = "vendor/"
_STRUCT_FIRST_ARG = "first argument to Struct must be a pointer to a named struct; found {}"
_FIELDS_OF_FIRST_ARG = (
    "first argument to FieldsOf must be a pointer to a struct or a pointer to "
    "a pointer to a struct; found {}"
)
_BIND_FIRST_ARG = "first argument to Bind must be a pointer to an interface type; found {}"
_IFACE_VALUE_FIRST_ARG = (
    "first argument to InterfaceValue must be a pointer to an interface type; found {}"
)
_TAG_ITEM = re.compile(r' *([^\x00-\x20:"\x7f]+):("(?:[^"\\]|\\.)*")', re.DOTALL)


@dataclass(frozen=True)
class OutputSignature:
    """The validated results of a provider or injector function."""

    out: Type
    cleanup: bool = False
    err: bool = False


def _at(position: Position, exc: WireError) -> WireError:
    if exc.position.is_valid:
        return exc
    return WireError(exc.error, position)


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


def _underlying_or_none(t: Type) -> Optional[Type]:
    try:
        return underlying(t)
    except ValueError:
        return None


def _named_struct(t: Type) -> Optional[Struct]:
    if not isinstance(t, Named):
        return None
    u = _underlying_or_none(t)
    return u if isinstance(u, Struct) else None


def _pointed_interface(t: Type) -> Optional[Type]:
    if isinstance(t, Pointer) and isinstance(_underlying_or_none(t.elem), Interface):
        return t.elem
    return None


def _check_distinct_fields(fields: List[StructField], position: Position) -> None:
    for i, f in enumerate(fields):
        for prev in fields[:i]:
            if identical(f.type, prev.type):
                where = prev.position if prev.position.is_valid else position
                raise WireError(
                    "provider struct has multiple fields of type "
                    f"{type_string(prev.type)}",
                    where,
                )


def func_output(sig: Signature) -> OutputSignature:
    """Validate the results of a provider or injector signature."""
    results = [r.type for r in sig.results]
    if not results:
        raise WireError("no return values")
    if len(results) == 1:
        return OutputSignature(results[0])
    if len(results) == 2:
        out, second = results
        if identical(second, ERROR):
            return OutputSignature(out, err=True)
        if identical(second, CLEANUP):
            return OutputSignature(out, cleanup=True)
        raise WireError(
            f"second return type is {type_string(second)}; must be error or func()"
        )
    if len(results) == 3:
        out, second, third = results
        if not identical(second, CLEANUP):
            raise WireError(f"second return type is {type_string(second)}; must be func()")
        if not identical(third, ERROR):
            raise WireError(f"third return type is {type_string(third)}; must be error")
        return OutputSignature(out, cleanup=True, err=True)
    raise WireError("too many return values")


def process_func_provider(
    package: Optional[Package],
    name: str,
    sig: Signature,
    position: Position = NO_POSITION,
) -> Provider:
    """Create a provider for the function ``name`` with signature ``sig``."""
    try:
        output = func_output(sig)
    except WireError as exc:
        raise WireError(f"wrong signature for provider {name}: {exc.error}", position) from None
    args: List[ProviderInput] = []
    for param in sig.params:
        for prev in args:
            if identical(param.type, prev.type):
                raise WireError(
                    f"provider has multiple parameters of type {type_string(prev.type)}",
                    position,
                )
        args.append(ProviderInput(param.type))
    return Provider(
        package=package,
        name=name,
        position=position,
        args=args,
        varargs=sig.variadic,
        out=[output.out],
        has_cleanup=output.cleanup,
        has_err=output.err,
    )


def check_field(name: Any, struct: Struct) -> StructField:
    """Return the field of ``struct`` called ``name``, matched without regard to case."""
    if not isinstance(name, str):
        raise WireError(f"{name!r} must be a string with the field name")
    literal = _quote(name)
    for f in struct.fields:
        if f.name.casefold() == name.casefold():
            if is_prevented(f.tag):
                raise WireError(f"{literal} is prevented from injecting by wire")
            return f
    raise WireError(f"{literal} is not a field of {type_string(struct)}")


def struct_provider(
    named: Type, field_names: Iterable[str], position: Position = NO_POSITION
) -> Provider:
    """Create a provider that fills the chosen fields of the named struct ``named``.

    A single name ``"*"`` selects every field not tagged ``wire:"-"``.
    """
    names = list(field_names)
    st = _named_struct(named)
    if st is None:
        raise WireError(_STRUCT_FIRST_ARG.format(type_string(Pointer(named))), position)
    if names == [ALL_FIELDS]:
        chosen = [f for f in st.fields if not is_prevented(f.tag)]
    else:
        chosen = []
        for n in names:
            try:
                chosen.append(check_field(n, st))
            except WireError as exc:
                raise _at(position, exc) from None
    _check_distinct_fields(chosen, position)
    assert isinstance(named, Named)
    return Provider(
        package=named.package,
        name=named.name,
        position=position,
        args=[ProviderInput(f.type, f.name) for f in chosen],
        is_struct=True,
        out=[named, Pointer(named)],
    )


def struct_literal_provider(named: Type, position: Position = NO_POSITION) -> Provider:
    """Create a provider that fills every field of ``named``; this form is deprecated."""
    st = _named_struct(named)
    if st is None:
        raise WireError(f"{type_string(named)} does not name a struct")
    assert isinstance(named, Named)
    warning = WireError(
        f"using struct literal to inject {type_string(named)} is deprecated and will be "
        "removed in the next release; use wire.Struct instead",
        position,
    )
    print(
        f"Warning: {warning}, see the documentation of wire.Struct for more information.",
        file=sys.stderr,
    )
    fields = list(st.fields)
    for i, f in enumerate(fields):
        for prev in fields[:i]:
            if identical(f.type, prev.type):
                raise WireError(
                    "provider struct has multiple fields of type "
                    f"{type_string(prev.type)}",
                    position,
                )
    return Provider(
        package=named.package,
        name=named.name,
        position=position,
        args=[ProviderInput(f.type, f.name) for f in fields],
        is_struct=True,
        out=[named, Pointer(named)],
    )


def fields_of(
    parent_ptr: Type, field_names: Iterable[str], position: Position = NO_POSITION
) -> List[Field]:
    """Select fields of the struct (or pointer to struct) that ``parent_ptr`` points to."""
    names = list(field_names)
    if not names:
        raise WireError("call to FieldsOf must specify fields to be extracted", position)
    if not isinstance(parent_ptr, Pointer):
        raise WireError(_FIELDS_OF_FIRST_ARG.format(type_string(parent_ptr)), position)
    target = _underlying_or_none(parent_ptr.elem)
    is_ptr_to_struct = False
    if isinstance(target, Pointer):
        struc = _underlying_or_none(target.elem)
        if not isinstance(struc, Struct):
            raise WireError(_FIELDS_OF_FIRST_ARG.format(type_string(target)), position)
        is_ptr_to_struct = True
    elif isinstance(target, Struct):
        struc = target
    else:
        shown = target if target is not None else parent_ptr.elem
        raise WireError(_FIELDS_OF_FIRST_ARG.format(type_string(shown)), position)
    if len(struc.fields) < len(names):
        raise WireError(
            "fields number exceeds the number available in the struct which has "
            f"{len(struc.fields)} fields",
            position,
        )
    result: List[Field] = []
    for n in names:
        try:
            f = check_field(n, struc)
        except WireError as exc:
            raise _at(position, exc) from None
        out: List[Type] = [f.type]
        if is_ptr_to_struct:
            out.append(Pointer(f.type))
        result.append(
            Field(
                parent=parent_ptr.elem,
                name=f.name,
                package=f.package,
                position=f.position,
                out=out,
            )
        )
    return result


def bind(iface_ptr: Type, provided: Type, position: Position = NO_POSITION) -> IfaceBinding:
    """Bind the interface ``*iface_ptr`` to the type that ``provided`` points to."""
    iface = _pointed_interface(iface_ptr)
    if iface is None:
        raise WireError(_BIND_FIRST_ARG.format(type_string(iface_ptr)), position)
    if not isinstance(provided, Pointer):
        raise WireError(
            "second argument to Bind must be a pointer or a pointer to a pointer; "
            f"found {type_string(provided)}",
            position,
        )
    concrete = provided.elem
    if identical(iface, concrete):
        raise WireError("cannot bind interface to itself", position)
    if not implements(concrete, iface):
        raise WireError(
            f"{type_string(concrete)} does not implement {type_string(iface)}", position
        )
    return IfaceBinding(iface=iface, provided=concrete, position=position)


def value(out: Type, position: Position = NO_POSITION, expr: Any = None) -> Value:
    """Describe a value expression of type ``out``; interface types are refused."""
    if isinstance(_underlying_or_none(out), Interface):
        raise WireError(
            f"argument to Value may not be an interface value (found {type_string(out)}); "
            "use InterfaceValue instead",
            position,
        )
    return Value(position=position, out=out, expr=expr)


def interface_value(
    iface_ptr: Type, provided: Type, position: Position = NO_POSITION, expr: Any = None
) -> Value:
    """Describe a value of type ``provided`` that is offered as the interface ``*iface_ptr``."""
    iface = _pointed_interface(iface_ptr)
    if iface is None:
        raise WireError(_IFACE_VALUE_FIRST_ARG.format(type_string(iface_ptr)), position)
    if not implements(provided, iface):
        raise WireError(
            f"{type_string(provided)} does not implement {type_string(iface)}", position
        )
    return Value(position=position, out=iface, expr=expr)


def _tag_lookup(tag: str, key: str) -> Optional[str]:
    pos = 0
    while pos < len(tag):
        match = _TAG_ITEM.match(tag, pos)
        if match is None:
            return None
        pos = match.end()
        if match.group(1) == key:
            try:
                result = json.loads(match.group(2))
            except ValueError:
                return None
            return result if isinstance(result, str) else None
    return None


def is_prevented(tag: str) -> bool:
    """Report whether a struct tag excludes the field from injection (``wire:"-"``)."""
    return _tag_lookup(tag, "wire") == "-"


def is_wire_import(path: str) -> bool:
    """Report whether ``path`` names the marker package, vendored or not."""
    i = path.rfind(_VENDOR)
    if i != -1 and (i == 0 or path[i - 1] == "/"):
        path = path[i + len(_VENDOR):]
    return path == WIRE_IMPORT_PATH


def is_provider_set_type(t: Type) -> bool:
    """Report whether ``t`` is the marker package's ProviderSet type."""
    return (
        isinstance(t, Named)
        and t.package is not None
        and is_wire_import(t.package.path)
        and t.name == "ProviderSet"
    )