"""Find provider sets and injectors in package descriptions and check them."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from .analyze import finalize, solve
from .errors import (
    NO_POSITION,
    ErrorCollector,
    ErrorLike,
    Position,
    WireError,
    WireErrorList,
    note_position,
)
from .model import (
    Field,
    IfaceBinding,
    Info,
    Injector,
    InjectorArgs,
    Provider,
    ProviderSet,
    ProviderSetID,
    Value,
)
from .providers import (
    WIRE_IMPORT_PATH,
    bind,
    fields_of,
    func_output,
    interface_value,
    is_provider_set_type,
    is_wire_import,
    process_func_provider,
    struct_literal_provider,
    struct_provider,
    value,
)
from .types import Named, Package, Pointer, Signature, Struct, Type, type_string

RETURN = "return"
"""Statement that ends an injector body."""

EMPTY_STATEMENT = ";"
"""Statement that does nothing."""

PROVIDER_SET_TYPE = Named(Package(WIRE_IMPORT_PATH, "wire"), "ProviderSet", Struct())
"""The type of a variable that holds a provider set."""

_INVALID_INJECTOR = (
    "a call to wire.Build indicates that this function is an injector, but injectors "
    "must consist of only the wire.Build call and an optional return"
)


@dataclass(frozen=True)
class Ref:
    """A reference to a declared function or variable; an empty package means the current one."""

    name: str
    package: str = ""
    position: Position = NO_POSITION


@dataclass(frozen=True, eq=False)
class MarkerCall:
    """A call such as ``wire.NewSet(...)``.

    ``expr`` is the value expression passed to Value or InterfaceValue;
    ``simple`` is false when that expression is too complex to copy.
    """

    function: str
    args: Tuple[Any, ...] = ()
    package: str = WIRE_IMPORT_PATH
    position: Position = NO_POSITION
    expr: Any = None
    simple: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "args", tuple(self.args))

    @property
    def is_panic(self) -> bool:
        return self.function == "panic" and not self.package


@dataclass(frozen=True, eq=False)
class StructLiteral:
    """A composite literal of a named struct type, the deprecated way to provide a struct."""

    type: Type
    position: Position = NO_POSITION


@dataclass(eq=False)
class FuncDecl:
    """A function declaration; ``body`` is ``None`` for functions whose body does not matter."""

    name: str
    signature: Signature
    body: Optional[Sequence[Any]] = None
    position: Position = NO_POSITION


@dataclass(eq=False)
class PackageSource:
    """The declarations of one package.

    ``vars`` maps variable names to their initialising expression (``None``
    when there is none); ``var_types`` gives types where they are declared.
    """

    path: str
    name: str = ""
    funcs: List[FuncDecl] = field(default_factory=list)
    vars: Dict[str, Any] = field(default_factory=dict)
    var_types: Dict[str, Type] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.name:
            self.name = self.path.rsplit("/", 1)[-1]
        self.funcs = list(self.funcs)


def _position_of(expr: Any) -> Position:
    return getattr(expr, "position", NO_POSITION)


def _note(position: Position, error: ErrorLike) -> ErrorLike:
    if isinstance(error, WireError) and not error.position.is_valid:
        return WireError(error.error, position)
    noted = note_position(position, error)
    assert noted is not None
    return noted


def _note_all(position: Position, errors: Iterable[ErrorLike]) -> List[ErrorLike]:
    return [_note(position, e) for e in errors]


def _exported(name: str) -> bool:
    return name[:1].isupper()


def _describe(arg: Any) -> str:
    return type_string(arg) if isinstance(arg, Type) else repr(arg)


def _type_arg(arg: Any, position: Position) -> Type:
    if not isinstance(arg, Type):
        raise WireError(f"{arg!r} is not a type", position)
    return arg


class ObjectCache:
    """Lazily converts declared objects into providers, sets, bindings, values and fields."""

    def __init__(self, packages: Iterable[PackageSource]) -> None:
        self._packages: Dict[str, PackageSource] = {}
        for src in packages:
            self._packages.setdefault(src.path, src)
        if not self._packages:
            raise ValueError("object cache must have packages to draw from")
        self._funcs: Dict[str, Dict[str, FuncDecl]] = {
            path: {f.name: f for f in src.funcs} for path, src in self._packages.items()
        }
        self._objects: Dict[Tuple[str, str], Tuple[Any, List[ErrorLike]]] = {}
        self._resolving: set = set()

    def get(self, package: str, name: str) -> Any:
        """Return the model object for ``name`` in ``package``, computing it once."""
        key = (package, name)
        if key in self._objects:
            item, errs = self._objects[key]
            if errs:
                raise WireErrorList(list(errs))
            return item
        if key in self._resolving:
            raise WireErrorList([WireError(f"initialization cycle for {package}.{name}")])
        self._resolving.add(key)
        try:
            item = self._resolve(package, name)
        except WireErrorList as exc:
            self._objects[key] = (None, list(exc.errors))
            raise
        finally:
            self._resolving.discard(key)
        self._objects[key] = (item, [])
        return item

    def _resolve(self, package: str, name: str) -> Any:
        src = self._packages.get(package)
        if src is None:
            raise WireErrorList([WireError(f"package {package} not found")])
        if name in src.vars:
            expr = src.vars[name]
            if expr is None:
                raise WireErrorList(
                    [WireError(f"var {package}.{name} is not a provider or a provider set")]
                )
            return self.process_expr(package, expr, name)
        decl = self._funcs[package].get(name)
        if decl is not None:
            try:
                return process_func_provider(
                    Package(src.path, src.name), name, decl.signature, decl.position
                )
            except WireError as exc:
                raise WireErrorList([exc]) from None
        raise WireErrorList([WireError(f"undefined: {src.name}.{name}")])

    def _var_type(
        self, package: str, name: str, seen: FrozenSet[Tuple[str, str]] = frozenset()
    ) -> Optional[Type]:
        src = self._packages.get(package)
        if src is None or name not in src.vars:
            return None
        explicit = src.var_types.get(name)
        if explicit is not None:
            return explicit
        if (package, name) in seen:
            return None
        expr = src.vars[name]
        if (
            isinstance(expr, MarkerCall)
            and is_wire_import(expr.package)
            and expr.function == "NewSet"
        ):
            return PROVIDER_SET_TYPE
        if isinstance(expr, Ref):
            return self._var_type(
                expr.package or package, expr.name, seen | {(package, name)}
            )
        return None

    def process_expr(self, package: str, expr: Any, var_name: str = "") -> Any:
        """Convert an expression appearing in ``package`` into a model object.

        Raises :class:`WireErrorList` when the expression is not understood or invalid.
        """
        position = _position_of(expr)
        if isinstance(expr, Ref):
            target = expr.package or package
            if target != package and not _exported(expr.name):
                src = self._packages.get(target)
                pkg_name = src.name if src else target.rsplit("/", 1)[-1]
                raise WireErrorList(
                    [WireError(f"name {expr.name} not exported by package {pkg_name}", position)]
                )
            try:
                return self.get(target, expr.name)
            except WireErrorList as exc:
                raise WireErrorList(_note_all(position, exc.errors)) from None
        if isinstance(expr, MarkerCall):
            return self._process_call(package, expr, var_name)
        if isinstance(expr, StructLiteral):
            try:
                return struct_literal_provider(expr.type, position)
            except WireError as exc:
                raise WireErrorList([_note(position, exc)]) from None
        raise WireErrorList([WireError("unknown pattern", position)])

    def _process_call(self, package: str, call: MarkerCall, var_name: str) -> Any:
        position = call.position
        if not call.package:
            raise WireErrorList(
                [WireError(f"unknown pattern - pkg in fnObj is nil - {call.function}", position)]
            )
        if not is_wire_import(call.package):
            raise WireErrorList([WireError("unknown pattern", position)])
        if call.function == "NewSet":
            try:
                return self.process_new_set(package, call, None, var_name)
            except WireErrorList as exc:
                raise WireErrorList(_note_all(position, exc.errors)) from None
        handler = {
            "Bind": self._bind,
            "Value": self._value,
            "InterfaceValue": self._interface_value,
            "Struct": self._struct,
            "FieldsOf": self._fields_of,
        }.get(call.function)
        if handler is None:
            raise WireErrorList([WireError("unknown pattern", position)])
        try:
            return handler(call)
        except WireError as exc:
            raise WireErrorList([_note(position, exc)]) from None

    @staticmethod
    def _bind(call: MarkerCall) -> IfaceBinding:
        if len(call.args) != 2:
            raise WireError("call to Bind takes exactly two arguments", call.position)
        iface, provided = (_type_arg(a, call.position) for a in call.args)
        return bind(iface, provided, call.position)

    @staticmethod
    def _value(call: MarkerCall) -> Value:
        if len(call.args) != 1:
            raise WireError("call to Value takes exactly one argument", call.position)
        if not call.simple:
            raise WireError("argument to Value is too complex", call.position)
        return value(_type_arg(call.args[0], call.position), call.position, call.expr)

    @staticmethod
    def _interface_value(call: MarkerCall) -> Value:
        if len(call.args) != 2:
            raise WireError(
                "call to InterfaceValue takes exactly two arguments", call.position
            )
        iface, provided = (_type_arg(a, call.position) for a in call.args)
        return interface_value(iface, provided, call.position, call.expr)

    @staticmethod
    def _struct(call: MarkerCall) -> Provider:
        if not call.args:
            raise WireError(
                "call to Struct must specify the struct to be injected", call.position
            )
        first = call.args[0]
        if not isinstance(first, Pointer):
            raise WireError(
                "first argument to Struct must be a pointer to a named struct; "
                f"found {_describe(first)}",
                call.position,
            )
        return struct_provider(first.elem, call.args[1:], call.position)

    @staticmethod
    def _fields_of(call: MarkerCall) -> List[Field]:
        if len(call.args) < 2:
            raise WireError(
                "call to FieldsOf must specify fields to be extracted", call.position
            )
        parent = _type_arg(call.args[0], call.position)
        return fields_of(parent, call.args[1:], call.position)

    def process_new_set(
        self,
        package: str,
        call: MarkerCall,
        injector_args: Optional[InjectorArgs] = None,
        var_name: str = "",
    ) -> ProviderSet:
        """Build and check the provider set made by a NewSet or Build call."""
        pset = ProviderSet(
            position=call.position,
            pkg_path=package,
            var_name=var_name,
            injector_args=injector_args,
        )
        ec = ErrorCollector()
        for arg in call.args:
            try:
                item = self.process_expr(package, arg, "")
            except WireErrorList as exc:
                ec.add(*exc.errors)
                continue
            if isinstance(item, Provider):
                pset.providers.append(item)
            elif isinstance(item, ProviderSet):
                pset.imports.append(item)
            elif isinstance(item, IfaceBinding):
                pset.bindings.append(item)
            elif isinstance(item, Value):
                pset.values.append(item)
            elif isinstance(item, list):
                pset.fields.extend(item)
            else:
                raise AssertionError("unknown item type")
        ec.raise_if_any()
        return finalize(pset)


def find_injector_build(func: FuncDecl) -> Optional[MarkerCall]:
    """Return the Build call if ``func`` is an injector template, otherwise ``None``.

    Raises :class:`WireError` if the body holds a Build call next to other statements.
    """
    if func.body is None:
        return None
    count = 0
    invalid = False
    build: Optional[MarkerCall] = None
    for stmt in func.body:
        if isinstance(stmt, (MarkerCall, Ref)):
            count += 1
            if count > 1:
                invalid = True
            if not isinstance(stmt, MarkerCall):
                continue
            call = stmt
            if call.is_panic:
                if len(call.args) != 1 or not isinstance(call.args[0], MarkerCall):
                    continue
                call = call.args[0]
            if not call.package or not is_wire_import(call.package) or call.function != "Build":
                continue
            build = call
        elif isinstance(stmt, str) and stmt == EMPTY_STATEMENT:
            pass
        elif isinstance(stmt, str) and stmt == RETURN:
            if count == 0:
                return None
        else:
            invalid = True
    if build is None:
        return None
    if invalid:
        raise WireError(_INVALID_INJECTOR)
    return build


def _inject_error(func: FuncDecl, error: ErrorLike) -> WireError:
    if isinstance(error, WireError):
        if error.position.is_valid:
            return WireError(f"inject {func.name}: {error.message}", error.position)
        return WireError(f"inject {func.name}: {error.message}", func.position)
    return WireError(f"inject {func.name}: {error}", func.position)


def load(packages: Iterable[PackageSource]) -> Info:
    """Find and check every provider set variable and injector in ``packages``.

    Raises :class:`WireErrorList` if anything is wrong; the exception's
    ``info`` attribute holds what was found nonetheless.
    """
    sources = list(packages)
    info = Info()
    if not sources:
        return info
    oc = ObjectCache(sources)
    ec = ErrorCollector()
    for src in sources:
        if is_wire_import(src.path):
            continue
        names = sorted(set(src.vars) | {f.name for f in src.funcs})
        for name in names:
            var_type = oc._var_type(src.path, name)
            if var_type is None or not is_provider_set_type(var_type):
                continue
            try:
                item = oc.get(src.path, name)
            except WireErrorList as exc:
                ec.add(*_note_all(_position_of(src.vars.get(name)), exc.errors))
                continue
            if isinstance(item, ProviderSet):
                info.sets[ProviderSetID(item.pkg_path, name)] = item
        for func in src.funcs:
            try:
                build = find_injector_build(func)
            except WireError as exc:
                ec.add(WireError(f"inject {func.name}: {exc.message}", func.position))
                continue
            if build is None:
                continue
            try:
                output = func_output(func.signature)
            except WireError as exc:
                ec.add(_inject_error(func, exc))
                continue
            args = InjectorArgs(func.name, func.signature.params, func.position)
            try:
                pset = oc.process_new_set(src.path, build, args, "")
            except WireErrorList as exc:
                ec.add(*_note_all(func.position, exc.errors))
                continue
            try:
                solve(output.out, func.signature.params, pset)
            except WireErrorList as exc:
                ec.add(*(_inject_error(func, e) for e in exc.errors))
                continue
            info.injectors.append(Injector(src.path, func.name))
    if ec:
        error = WireErrorList(ec.errors)
        error.info = info  # type: ignore[attr-defined]
        raise error
    return info