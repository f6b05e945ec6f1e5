"""The structures that describe providers, provider sets and injectors."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .errors import Position
from .types import Package, Type, Var


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


@dataclass(frozen=True)
class ProviderInput:
    """An incoming edge in the provider graph.

    For a struct provider, ``field_name`` names the field to set.
    """

    type: Type
    field_name: str = ""


@dataclass(eq=False)
class Provider:
    """The signature of a provider: a function or a named struct type."""

    package: Optional[Package]
    name: str
    position: Position = field(default_factory=Position)
    args: List[ProviderInput] = field(default_factory=list)
    varargs: bool = False
    is_struct: bool = False
    out: List[Type] = field(default_factory=list)
    has_cleanup: bool = False
    has_err: bool = False


@dataclass(eq=False)
class Value:
    """A value expression and the type it produces."""

    position: Position
    out: Type
    expr: Any = None


@dataclass(eq=False)
class InjectorArgs:
    """The arguments of an injector function."""

    name: str
    params: Tuple[Var, ...] = ()
    position: Position = field(default_factory=Position)

    def __post_init__(self) -> None:
        self.params = tuple(self.params)


@dataclass(eq=False)
class InjectorArg:
    """One argument of an injector function."""

    args: InjectorArgs
    index: int

    def __post_init__(self) -> None:
        if not 0 <= self.index < len(self.args.params):
            raise IndexError(f"injector argument index {self.index} out of range")

    @property
    def var(self) -> Var:
        return self.args.params[self.index]

    @property
    def type(self) -> Type:
        return self.var.type


@dataclass(eq=False)
class Field:
    """A field selected from a struct.

    ``out`` holds the field type and, when the parent is a pointer to a
    struct, a pointer to the field type as well.
    """

    parent: Type
    name: str
    package: Optional[Package] = None
    position: Position = field(default_factory=Position)
    out: List[Type] = field(default_factory=list)


@dataclass(eq=False)
class IfaceBinding:
    """Declares that ``provided`` satisfies inputs of interface type ``iface``."""

    iface: Type
    provided: Type
    position: Position = field(default_factory=Position)


class ProvidedType:
    """A type together with the single source that provides it.

    The zero value has no source and reports :meth:`is_nil`.
    """

    __slots__ = ("_type", "_provider", "_value", "_arg", "_field")

    def __init__(
        self,
        type: Optional[Type] = None,
        *,
        provider: Optional[Provider] = None,
        value: Optional[Value] = None,
        arg: Optional[InjectorArg] = None,
        field: Optional[Field] = None,
    ) -> None:
        sources = [s for s in (provider, value, arg, field) if s is not None]
        if len(sources) > 1:
            raise ValueError("a provided type has at most one source")
        self._type = type
        self._provider = provider
        self._value = value
        self._arg = arg
        self._field = field

    @property
    def type(self) -> Optional[Type]:
        """The concrete type that is provided."""
        return self._type

    def is_nil(self) -> bool:
        return (
            self._provider is None
            and self._value is None
            and self._arg is None
            and self._field is None
        )

    def is_provider(self) -> bool:
        return self._provider is not None

    def is_value(self) -> bool:
        return self._value is not None

    def is_arg(self) -> bool:
        return self._arg is not None

    def is_field(self) -> bool:
        return self._field is not None

    @property
    def provider(self) -> Provider:
        if self._provider is None:
            raise ValueError("ProvidedType does not hold a Provider")
        return self._provider

    @property
    def value(self) -> Value:
        if self._value is None:
            raise ValueError("ProvidedType does not hold a Value")
        return self._value

    @property
    def arg(self) -> InjectorArg:
        if self._arg is None:
            raise ValueError("ProvidedType does not hold an Arg")
        return self._arg

    @property
    def field(self) -> Field:
        if self._field is None:
            raise ValueError("ProvidedType does not hold a Field")
        return self._field

    def __repr__(self) -> str:
        kind = next(
            (
                name
                for name, src in (
                    ("provider", self._provider),
                    ("value", self._value),
                    ("arg", self._arg),
                    ("field", self._field),
                )
                if src is not None
            ),
            "nil",
        )
        return f"ProvidedType({self._type!s}, {kind})"


@dataclass(eq=False)
class ProviderSetSrc:
    """The origin of a type within a provider set; exactly one field is set."""

    provider: Optional[Provider] = None
    binding: Optional[IfaceBinding] = None
    value: Optional[Value] = None
    imported: Optional["ProviderSet"] = None
    injector_arg: Optional[InjectorArg] = None
    field: Optional[Field] = None

    def __post_init__(self) -> None:
        count = sum(
            s is not None
            for s in (
                self.provider,
                self.binding,
                self.value,
                self.imported,
                self.injector_arg,
                self.field,
            )
        )
        if count != 1:
            raise ValueError("a provider set source needs exactly one origin")

    def description(self) -> str:
        """Describe the origin, including its position."""

        def quoted(s: str) -> str:
            return f"{_quote(s)} " if s else ""

        if self.provider is not None:
            kind = "struct provider" if self.provider.is_struct else "provider"
            return f"{kind} {quoted(self.provider.name)}({self.provider.position})"
        if self.binding is not None:
            return f"wire.Bind ({self.binding.position})"
        if self.value is not None:
            return f"wire.Value ({self.value.position})"
        if self.imported is not None:
            return f"provider set {quoted(self.imported.var_name)}({self.imported.position})"
        if self.injector_arg is not None:
            args = self.injector_arg.args
            return (
                f"argument {self.injector_arg.var.name} to injector function "
                f"{args.name} ({args.position})"
            )
        assert self.field is not None
        return f"wire.FieldsOf ({self.field.position})"

    def trace(self, typ: Type) -> List[str]:
        """Describe the origin of ``typ``, following imported sets down to the source."""
        lines: List[str] = []
        if self.imported is not None:
            parent = self.imported.src_map.get(typ)
            if parent is not None:
                lines.extend(parent.trace(typ))
        lines.append(self.description())
        return lines


@dataclass(eq=False)
class ProviderSet:
    """A set of providers, possibly importing other sets."""

    position: Position = field(default_factory=Position)
    pkg_path: str = ""
    var_name: str = ""
    providers: List[Provider] = field(default_factory=list)
    bindings: List[IfaceBinding] = field(default_factory=list)
    values: List[Value] = field(default_factory=list)
    fields: List[Field] = field(default_factory=list)
    imports: List["ProviderSet"] = field(default_factory=list)
    injector_args: Optional[InjectorArgs] = None
    provider_map: Dict[Type, ProvidedType] = field(default_factory=dict)
    src_map: Dict[Type, ProviderSetSrc] = field(default_factory=dict)

    def outputs(self) -> List[Type]:
        """Every type the set can produce, imported ones included."""
        return list(self.provider_map)

    def provided(self, t: Type) -> ProvidedType:
        """The source of ``t`` in this set, or the zero :class:`ProvidedType`."""
        return self.provider_map.get(t) or ProvidedType()


@dataclass(frozen=True, order=True)
class ProviderSetID:
    """Identifies a named provider set."""

    import_path: str
    var_name: str

    def __str__(self) -> str:
        return f"{_quote(self.import_path)}.{self.var_name}"


@dataclass(frozen=True, order=True)
class Injector:
    """An injector function."""

    import_path: str
    func_name: str

    def __str__(self) -> str:
        return f"{_quote(self.import_path)}.{self.func_name}"


@dataclass
class Info:
    """The provider sets and injectors found while loading packages."""

    sets: Dict[ProviderSetID, ProviderSet] = field(default_factory=dict)
    injectors: List[Injector] = field(default_factory=list)