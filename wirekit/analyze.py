"""Build provider maps, check provider sets and work out the calls an injector makes."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .errors import ErrorCollector, ErrorLike, WireError, WireErrorList, note_position
from .model import (
    InjectorArg,
    ProvidedType,
    ProviderSet,
    ProviderSetSrc,
)
from .types import Package, Type, Var, identical, type_string

_ABORT = object()
"""Index marker for a type that was visited but failed with an error."""


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


class CallKind(Enum):
    """The code pattern a step of an injector uses."""

    FUNC_PROVIDER_CALL = "func"
    STRUCT_PROVIDER = "struct"
    VALUE_EXPR = "value"
    SELECTOR_EXPR = "selector"


@dataclass
class Call:
    """One step of an injector function.

    Each entry of ``args`` is either the index of an injector argument
    (below the number of given arguments) or the given count plus the index
    of an earlier call. A selector call has one argument: the parent struct.
    """

    kind: CallKind
    out: Type
    package: Optional[Package] = None
    name: str = ""
    args: List[int] = field(default_factory=list)
    varargs: bool = False
    field_names: Optional[List[str]] = None
    ins: List[Type] = field(default_factory=list)
    has_cleanup: bool = False
    has_err: bool = False
    value_expr: Any = None
    ptr_to_field: bool = False


@dataclass(eq=False)
class _Frame:
    t: Type
    from_type: Optional[Type] = None
    up: Optional["_Frame"] = None


def solve(out: Type, given: Iterable[Var], provider_set: ProviderSet) -> List[Call]:
    """Find the calls, in order, that produce ``out`` from the ``given`` arguments.

    Raises :class:`WireErrorList` if a type has no provider or if the set
    holds anything the injector does not use.
    """
    given = tuple(given)
    ec = ErrorCollector()
    index: Dict[Type, Any] = {}
    for i, param in enumerate(given):
        index[param.type] = i

    used: List[ProviderSetSrc] = []
    calls: List[Call] = []
    stack: List[_Frame] = [_Frame(out)]
    while stack:
        curr = stack.pop()
        if curr.t in index:
            continue

        pv = provider_set.provided(curr.t)
        if pv.is_nil():
            if curr.from_type is None:
                ec.add(
                    WireError(
                        f"no provider found for {type_string(curr.t)}, output of injector"
                    )
                )
            else:
                lines = [f"no provider found for {type_string(curr.t)}"]
                frame = curr.up
                while frame is not None:
                    src = provider_set.src_map[frame.t]
                    lines.append(
                        f"needed by {type_string(frame.t)} in {src.description()}"
                    )
                    frame = frame.up
                ec.add(WireError("\n".join(lines)))
            index[curr.t] = _ABORT
            continue

        used.append(provider_set.src_map[curr.t])
        concrete = pv.type
        if not identical(concrete, curr.t):
            # An interface binding reuses the concrete value; it makes no call.
            if concrete not in index:
                stack.append(curr)
                stack.append(_Frame(concrete, curr.t, curr))
            else:
                index[curr.t] = index[concrete]
            continue

        if pv.is_arg():
            continue
        if pv.is_provider():
            p = pv.provider
            pending = [a for a in reversed(p.args) if a.type not in index]
            if pending:
                # Revisit after the arguments; pushed in reverse so calls follow argument order.
                stack.append(curr)
                stack.extend(_Frame(a.type, curr.t, curr) for a in pending)
                continue
            positions = [index[a.type] for a in p.args]
            if any(v is _ABORT for v in positions):
                index[curr.t] = _ABORT
                continue
            index[curr.t] = len(given) + len(calls)
            calls.append(
                Call(
                    kind=CallKind.STRUCT_PROVIDER if p.is_struct else CallKind.FUNC_PROVIDER_CALL,
                    out=curr.t,
                    package=p.package,
                    name=p.name,
                    args=positions,
                    varargs=p.varargs,
                    field_names=[a.field_name for a in p.args] if p.is_struct else None,
                    ins=[a.type for a in p.args],
                    has_cleanup=p.has_cleanup,
                    has_err=p.has_err,
                )
            )
        elif pv.is_value():
            index[curr.t] = len(given) + len(calls)
            calls.append(
                Call(kind=CallKind.VALUE_EXPR, out=curr.t, value_expr=pv.value.expr)
            )
        elif pv.is_field():
            f = pv.field
            if f.parent not in index:
                stack.append(curr)
                stack.append(_Frame(f.parent, curr.t, curr))
                continue
            parent_index = index[f.parent]
            if parent_index is _ABORT:
                index[curr.t] = _ABORT
                continue
            index[curr.t] = len(given) + len(calls)
            calls.append(
                Call(
                    kind=CallKind.SELECTOR_EXPR,
                    out=curr.t,
                    package=f.package,
                    name=f.name,
                    args=[parent_index],
                    ptr_to_field=len(f.out) == 2 and identical(curr.t, f.out[1]),
                )
            )
        else:
            raise AssertionError("unknown kind of provided type")

    ec.raise_if_any()
    errs = verify_args_used(provider_set, used)
    if errs:
        raise WireErrorList(errs)
    return calls


def verify_args_used(
    provider_set: ProviderSet, used: Sequence[ProviderSetSrc]
) -> List[ErrorLike]:
    """Return an error for every member of the set that no step of the solution used."""
    errs: List[ErrorLike] = []
    for imp in provider_set.imports:
        if not any(u.imported is imp for u in used):
            if imp.var_name:
                errs.append(WireError(f"unused provider set {_quote(imp.var_name)}"))
            else:
                errs.append(WireError("unused provider set"))
    for p in provider_set.providers:
        if not any(u.provider is p for u in used):
            pkg_name = p.package.name if p.package else ""
            errs.append(WireError(f"unused provider {_quote(pkg_name + '.' + p.name)}"))
    for v in provider_set.values:
        if not any(u.value is v for u in used):
            errs.append(WireError(f"unused value of type {type_string(v.out)}"))
    for b in provider_set.bindings:
        if not any(u.binding is b for u in used):
            errs.append(
                WireError(f"unused interface binding to type {type_string(b.iface)}")
            )
    for f in provider_set.fields:
        if not any(u.field is f for u in used):
            errs.append(
                WireError(f"unused field {_quote(type_string(f.parent))}.{f.name}")
            )
    return errs


def build_provider_map(
    provider_set: ProviderSet,
) -> Tuple[Dict[Type, ProvidedType], Dict[Type, ProviderSetSrc]]:
    """Compute the provider map and source map of a set.

    The set's own maps are ignored. Raises :class:`WireErrorList` on
    conflicting bindings or on a binding whose concrete type is not provided.
    """
    provider_map: Dict[Type, ProvidedType] = {}
    src_map: Dict[Type, ProviderSetSrc] = {}
    ec = ErrorCollector()

    def put(typ: Type, provided: ProvidedType, src: ProviderSetSrc) -> None:
        prev = src_map.get(typ)
        if prev is not None:
            ec.add(binding_conflict_error(typ, provider_set, src, prev))
            return
        provider_map[typ] = provided
        src_map[typ] = src

    args = provider_set.injector_args
    if args is not None:
        for i, param in enumerate(args.params):
            arg = InjectorArg(args, i)
            put(param.type, ProvidedType(param.type, arg=arg), ProviderSetSrc(injector_arg=arg))
    for imp in provider_set.imports:
        src = ProviderSetSrc(imported=imp)
        for typ, provided in imp.provider_map.items():
            put(typ, provided, src)
    ec.raise_if_any()

    for p in provider_set.providers:
        src = ProviderSetSrc(provider=p)
        for typ in p.out:
            put(typ, ProvidedType(typ, provider=p), src)
    for v in provider_set.values:
        put(v.out, ProvidedType(v.out, value=v), ProviderSetSrc(value=v))
    for f in provider_set.fields:
        src = ProviderSetSrc(field=f)
        for typ in f.out:
            put(typ, ProvidedType(typ, field=f), src)
    ec.raise_if_any()

    # Bindings come last so that the concrete type is already known.
    for b in provider_set.bindings:
        src = ProviderSetSrc(binding=b)
        prev = src_map.get(b.iface)
        if prev is not None:
            ec.add(binding_conflict_error(b.iface, provider_set, src, prev))
            continue
        concrete = provider_map.get(b.provided)
        if concrete is None:
            set_name = provider_set.var_name or "provider set"
            provided = _quote(type_string(b.provided))
            ec.add(
                note_position(
                    b.position,
                    f"wire.Bind of concrete type {provided} to interface "
                    f"{_quote(type_string(b.iface))}, but {set_name} does not include "
                    f"a provider for {provided}",
                )
            )
            continue
        provider_map[b.iface] = concrete
        src_map[b.iface] = src
    ec.raise_if_any()
    return provider_map, src_map


def _cycle_step(typ: Type, pt: ProvidedType) -> str:
    if pt.is_provider():
        p = pt.provider
        path = p.package.path if p.package else ""
        return f"{type_string(typ)} ({path}.{p.name}) ->\n"
    f = pt.field
    return f"{type_string(typ)} ({type_string(f.parent)}.{f.name}) ->\n"


def verify_acyclic(provider_map: Dict[Type, ProvidedType]) -> List[ErrorLike]:
    """Return an error for every dependency cycle found in ``provider_map``."""
    visited = set()
    ec = ErrorCollector()
    for root in sorted(provider_map, key=type_string):
        stack: List[List[Type]] = [[root]]
        while stack:
            trail = stack.pop()
            head = trail[-1]
            if head in visited:
                continue
            visited.add(head)
            pt = provider_map.get(head)
            if pt is None or pt.is_value() or pt.is_arg():
                continue
            if pt.is_provider():
                deps = [a.type for a in pt.provider.args]
            elif pt.is_field():
                deps = [pt.field.parent]
            else:
                raise AssertionError("invalid provider map value")
            for dep in deps:
                start = next((i for i, t in enumerate(trail) if identical(dep, t)), None)
                if start is None:
                    stack.append(trail + [dep])
                    continue
                text = f"cycle for {type_string(dep)}:\n"
                text += "".join(_cycle_step(t, provider_map[t]) for t in trail[start:])
                text += type_string(dep)
                ec.add(WireError(text))
    return list(ec.errors)


def binding_conflict_error(
    typ: Type,
    provider_set: ProviderSet,
    cur: ProviderSetSrc,
    prev: ProviderSetSrc,
) -> ErrorLike:
    """Describe two sources that both provide ``typ``."""
    text = f"{provider_set.var_name} has " if provider_set.var_name else ""
    text += f"multiple bindings for {type_string(typ)}\n"
    text += "current:\n<- " + "\n<- ".join(cur.trace(typ)) + "\n"
    text += "previous:\n<- " + "\n<- ".join(prev.trace(typ))
    return note_position(provider_set.position, text)


def finalize(provider_set: ProviderSet) -> ProviderSet:
    """Fill in the set's provider and source maps after checking it for conflicts and cycles."""
    provider_map, src_map = build_provider_map(provider_set)
    errs = verify_acyclic(provider_map)
    if errs:
        raise WireErrorList(errs)
    provider_set.provider_map = provider_map
    provider_set.src_map = src_map
    return provider_set