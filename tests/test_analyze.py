import pytest

from wirekit.analyze import (
    CallKind,
    build_provider_map,
    finalize,
    solve,
    verify_acyclic,
    verify_args_used,
)
from wirekit.errors import NO_POSITION, Position, WireErrorList
from wirekit.model import IfaceBinding, InjectorArgs, Provider, ProviderSet, Value
from wirekit.providers import (
    bind,
    fields_of,
    process_func_provider,
    struct_provider,
    value,
)
from wirekit.types import (
    ERROR,
    INT,
    STRING,
    Interface,
    Method,
    Named,
    Package,
    Pointer,
    Signature,
    Struct,
    StructField,
    Var,
)

FOO = Package("example.com/foo", "main")
BAR = Package("example.com/bar", "bar")
BAZ = Package("example.com/baz", "baz")


def pos(line, col=6, filename="foo.go"):
    return Position(filename, line, col)


def func(pkg, name, params, results, position=NO_POSITION):
    sig = Signature(
        params=tuple(Var("", p) for p in params),
        results=tuple(Var("", r) for r in results),
    )
    return process_func_provider(pkg, name, sig, position)


def build(*items, injector=None, var_name="", position=NO_POSITION):
    pset = ProviderSet(position=position, pkg_path=FOO.path, var_name=var_name, injector_args=injector)
    for item in items:
        if isinstance(item, Provider):
            pset.providers.append(item)
        elif isinstance(item, ProviderSet):
            pset.imports.append(item)
        elif isinstance(item, IfaceBinding):
            pset.bindings.append(item)
        elif isinstance(item, Value):
            pset.values.append(item)
        else:
            pset.fields.extend(item)
    return finalize(pset)


def messages(exc_info):
    return [str(e) for e in exc_info.value.errors]


FOO_T = Named(FOO, "Foo", STRING)
BAR_T = Named(FOO, "Bar", INT)


# MultipleBindings


def test_two_providers_for_same_type_conflict():
    provide_foo = func(FOO, "provideFoo", [], [FOO_T], pos(36))
    provide_again = func(FOO, "provideFooAgain", [], [FOO_T], pos(40))
    with pytest.raises(WireErrorList) as exc:
        build(provide_foo, provide_again, position=pos(27, 8, "wire.go"))
    assert messages(exc) == [
        "wire.go:27:8: multiple bindings for example.com/foo.Foo\n"
        'current:\n<- provider "provideFooAgain" (foo.go:40:6)\n'
        'previous:\n<- provider "provideFoo" (foo.go:36:6)'
    ]


def test_conflict_with_nested_set_traces_through_imports():
    provide_foo = func(FOO, "provideFoo", [], [FOO_T], pos(36))
    base = build(provide_foo, var_name="Set", position=pos(31, 11))
    super_set = build(base, var_name="SuperSet", position=pos(32, 16))
    with pytest.raises(WireErrorList) as exc:
        build(provide_foo, super_set)
    text = messages(exc)[0]
    assert text.startswith("multiple bindings for example.com/foo.Foo\n")
    assert (
        'previous:\n<- provider "provideFoo" (foo.go:36:6)\n'
        '<- provider set "Set" (foo.go:31:11)\n'
        '<- provider set "SuperSet" (foo.go:32:16)'
    ) in text


def test_set_with_duplicate_bindings_names_the_set():
    provide_foo = func(FOO, "provideFoo", [], [FOO_T], pos(36))
    base = build(provide_foo, var_name="Set", position=pos(31, 11))
    super_set = build(base, var_name="SuperSet", position=pos(32, 16))
    with pytest.raises(WireErrorList) as exc:
        build(base, super_set, var_name="SetWithDuplicateBindings")
    assert messages(exc)[0].startswith(
        "SetWithDuplicateBindings has multiple bindings for example.com/foo.Foo"
    )


def test_value_conflicts_with_provider():
    provide_foo = func(FOO, "provideFoo", [], [FOO_T], pos(36))
    with pytest.raises(WireErrorList) as exc:
        build(provide_foo, value(FOO_T, pos(47, 42)))
    assert "current:\n<- wire.Value (foo.go:47:42)" in messages(exc)[0]


def test_binding_conflicts_with_provider():
    read = Method("Read", Signature(results=(Var("", INT), Var("", ERROR))))
    reader_iface = Named(FOO, "Bar", Interface((read,)))
    strings_reader = Named(
        Package("strings"), "Reader", Struct(), [Method(read.name, read.signature, True)]
    )
    provide_bar = func(FOO, "provideBar", [], [reader_iface], pos(44))
    binding = bind(Pointer(reader_iface), Pointer(Pointer(strings_reader)), pos(52, 31))
    with pytest.raises(WireErrorList) as exc:
        build(provide_bar, binding)
    text = messages(exc)[0]
    assert text.startswith("multiple bindings for example.com/foo.Bar\n")
    assert "current:\n<- wire.Bind (foo.go:52:31)" in text


# InjectInputConflict


def test_injector_argument_conflicts_with_set():
    provide_foo = func(FOO, "provideFoo", [], [FOO_T], pos(36))
    provide_bar = func(FOO, "provideBar", [FOO_T], [BAR_T], pos(40))
    base = build(provide_foo, provide_bar, var_name="Set", position=pos(31, 11))
    args = InjectorArgs("injectBar", (Var("foo", FOO_T),), pos(22, 6, "wire.go"))
    with pytest.raises(WireErrorList) as exc:
        build(base, injector=args)
    assert (
        'current:\n<- provider "provideFoo" (foo.go:36:6)\n'
        '<- provider set "Set" (foo.go:31:11)\n'
        "previous:\n<- argument foo to injector function injectBar (wire.go:22:6)"
    ) in messages(exc)[0]


# UnusedProviders


def test_unused_members_are_reported():
    fooer = Named(FOO, "Fooer", Interface((Method("Foo", Signature(results=(Var("", STRING),))),)))
    foo_t = Named(FOO, "Foo", INT, [Method("Foo", Signature(results=(Var("", STRING),)), True)])
    bar_t = Named(FOO, "Bar", INT)
    unused_t = Named(FOO, "Unused", INT)
    unused_in_set = Named(FOO, "UnusedInSet", INT)
    one_t = Named(FOO, "OneOfTwo", INT)
    two_t = Named(FOO, "TwoOfTwo", INT)
    config_t = Named(FOO, "Config", INT)
    s_t = Named(FOO, "S", Struct((StructField("Cfg", config_t),)))
    foobar_t = Named(
        FOO,
        "FooBar",
        Struct(
            (
                StructField("MyFoo", Pointer(foo_t)),
                StructField("MyBar", bar_t),
                StructField("MyUnused", unused_t),
            )
        ),
    )
    unused_set = build(func(FOO, "provideUnusedInSet", [], [unused_in_set]), var_name="unusedSet")
    partially_used = build(
        func(FOO, "provideOneOfTwo", [], [one_t]),
        func(FOO, "provideTwoOfTwo", [], [two_t]),
        var_name="partiallyUsedSet",
    )
    pset = build(
        func(FOO, "provideFoo", [], [Pointer(foo_t)]),
        func(FOO, "provideBar", [Pointer(foo_t), one_t], [bar_t]),
        partially_used,
        func(FOO, "provideUnused", [], [unused_t]),
        value(STRING),
        unused_set,
        bind(Pointer(fooer), Pointer(Pointer(foo_t))),
        fields_of(Pointer(s_t), ["Cfg"]),
        struct_provider(foobar_t, ["MyFoo", "MyBar"]),
    )
    with pytest.raises(WireErrorList) as exc:
        solve(foobar_t, (), pset)
    assert messages(exc) == [
        'unused provider set "unusedSet"',
        'unused provider "main.provideUnused"',
        "unused value of type string",
        "unused interface binding to type example.com/foo.Fooer",
        'unused field "example.com/foo.S".Cfg',
    ]


def test_verify_args_used_with_nothing_used():
    pset = build(func(FOO, "provideFoo", [], [FOO_T]), value(BAR_T))
    errs = verify_args_used(pset, [])
    assert [str(e) for e in errs] == [
        'unused provider "main.provideFoo"',
        "unused value of type example.com/foo.Bar",
    ]


# NoImplicitInterface


def test_no_implicit_interface():
    fooer = Named(FOO, "Fooer", Interface((Method("Foo", Signature(results=(Var("", STRING),))),)))
    bar_t = Named(FOO, "Bar", STRING, [Method("Foo", Signature(results=(Var("", STRING),)))])
    pset = build(func(FOO, "provideBar", [], [bar_t]))
    with pytest.raises(WireErrorList) as exc:
        solve(fooer, (), pset)
    assert messages(exc) == [
        "no provider found for example.com/foo.Fooer, output of injector"
    ]


def test_missing_dependency_reports_chain():
    pset = build(func(FOO, "provideBar", [FOO_T], [BAR_T], pos(5)))
    with pytest.raises(WireErrorList) as exc:
        solve(BAR_T, (), pset)
    assert messages(exc) == [
        "no provider found for example.com/foo.Foo\n"
        'needed by example.com/foo.Bar in provider "provideBar" (foo.go:5:6)'
    ]


# InterfaceBindingReuse


def test_interface_binding_reuses_concrete_value():
    foo_sig = Signature(results=(Var("", STRING),))
    fooer = Named(FOO, "Fooer", Interface((Method("Foo", foo_sig),)))
    bar_t = Named(FOO, "Bar", STRING, [Method("Foo", foo_sig, True)])
    foobar_t = Named(FOO, "FooBar", Struct())
    pset = build(
        func(FOO, "provideBar", [], [Pointer(bar_t)]),
        func(FOO, "provideFooBar", [fooer, Pointer(bar_t)], [foobar_t]),
        bind(Pointer(fooer), Pointer(Pointer(bar_t))),
    )
    calls = solve(foobar_t, (), pset)
    assert [c.name for c in calls] == ["provideBar", "provideFooBar"]
    assert calls[1].args == [0, 0]


# PkgImport


def test_providers_from_other_package():
    bar_bar = Named(BAR, "Bar", INT)
    foobar_t = Named(FOO, "FooBar", INT)
    base = build(
        func(FOO, "provideFoo", [], [FOO_T]),
        func(BAR, "ProvideBar", [], [bar_bar]),
        func(FOO, "provideFooBar", [FOO_T, bar_bar], [foobar_t]),
        var_name="Set",
    )
    calls = solve(foobar_t, (), build(base))
    assert [c.name for c in calls] == ["provideFoo", "ProvideBar", "provideFooBar"]
    assert calls[1].package.path == "example.com/bar"
    assert calls[2].args == [0, 1]
    assert {c.kind for c in calls} == {CallKind.FUNC_PROVIDER_CALL}


# FieldsOfStructDoNotProvidePtrToField


def test_fields_of_value_struct_gives_no_pointer_to_field():
    s_t = Named(FOO, "S", Struct((StructField("Foo", STRING),)))
    pset = build(func(FOO, "provideS", [], [s_t]), fields_of(Pointer(s_t), ["Foo"]))
    with pytest.raises(WireErrorList) as exc:
        solve(Pointer(STRING), (), pset)
    assert messages(exc) == ["no provider found for *string, output of injector"]


# FieldsOfValueStruct


def test_fields_of_pointer_to_value_struct():
    foo_cfg = Named(FOO, "Config", Struct((StructField("V", INT),)))
    foo_svc = Named(FOO, "Service", Struct((StructField("Cfg", Pointer(foo_cfg)),)))
    bar_cfg = Named(BAR, "Config", Struct((StructField("V", INT),)))
    bar_svc = Named(BAR, "Service", Struct((StructField("Cfg", Pointer(bar_cfg)),)))
    baz_cfg = Named(
        BAZ, "Config", Struct((StructField("Foo", Pointer(foo_cfg)), StructField("Bar", Pointer(bar_cfg))))
    )
    baz_svc = Named(
        BAZ, "Service", Struct((StructField("Foo", Pointer(foo_svc)), StructField("Bar", Pointer(bar_svc))))
    )
    pset = build(
        struct_provider(baz_svc, ["*"]),
        value(Pointer(baz_cfg), expr="&baz.Config{...}"),
        fields_of(Pointer(Pointer(baz_cfg)), ["Foo", "Bar"]),
        func(FOO, "New", [Pointer(foo_cfg)], [Pointer(foo_svc)]),
        func(BAR, "New", [Pointer(bar_cfg), Pointer(foo_svc)], [Pointer(bar_svc)]),
    )
    calls = solve(Pointer(baz_svc), (), pset)
    assert [c.kind for c in calls] == [
        CallKind.VALUE_EXPR,
        CallKind.SELECTOR_EXPR,
        CallKind.FUNC_PROVIDER_CALL,
        CallKind.SELECTOR_EXPR,
        CallKind.FUNC_PROVIDER_CALL,
        CallKind.STRUCT_PROVIDER,
    ]
    assert [c.args for c in calls] == [[], [0], [1], [0], [3, 2], [2, 4]]
    assert calls[5].field_names == ["Foo", "Bar"]
    assert not calls[1].ptr_to_field


# MultipleSimilarPackages


def test_similar_packages_are_kept_apart():
    foo_cfg = Named(FOO, "Config", Struct((StructField("V", INT),)))
    bar_cfg = Named(BAR, "Config", Struct((StructField("V", INT),)))
    baz_cfg = Named(BAZ, "Config", Struct((StructField("V", INT),)))
    foo_svc = Named(FOO, "Service", Struct())
    bar_svc = Named(BAR, "Service", Struct())
    baz_svc = Named(BAZ, "Service", Struct())
    main_cfg = Named(
        FOO,
        "MainConfig",
        Struct(
            (
                StructField("Foo", Pointer(foo_cfg)),
                StructField("Bar", Pointer(bar_cfg)),
                StructField("baz", Pointer(baz_cfg)),
            )
        ),
    )
    main_svc = Named(
        FOO,
        "MainService",
        Struct(
            (
                StructField("Foo", Pointer(foo_svc)),
                StructField("Bar", Pointer(bar_svc)),
                StructField("baz", Pointer(baz_svc)),
            )
        ),
    )
    given = (Var("", main_cfg),)
    pset = build(
        struct_provider(main_svc, ["Foo", "Bar", "baz"]),
        fields_of(Pointer(main_cfg), ["Foo", "Bar", "baz"]),
        func(FOO, "New", [Pointer(foo_cfg)], [Pointer(foo_svc)]),
        func(BAR, "New", [Pointer(bar_cfg), Pointer(foo_svc)], [Pointer(bar_svc)]),
        func(BAZ, "New", [Pointer(baz_cfg), Pointer(bar_svc)], [Pointer(baz_svc)]),
        injector=InjectorArgs("newMainService", given),
    )
    calls = solve(Pointer(main_svc), given, pset)
    assert len(calls) == 7
    assert calls[-1].kind is CallKind.STRUCT_PROVIDER
    assert calls[-1].field_names == ["Foo", "Bar", "baz"]
    assert all(c.args == [0] for c in calls if c.kind is CallKind.SELECTOR_EXPR)
    assert {(c.package.path, c.name) for c in calls if c.kind is CallKind.FUNC_PROVIDER_CALL} == {
        ("example.com/foo", "New"),
        ("example.com/bar", "New"),
        ("example.com/baz", "New"),
    }


# NiladicValue and ValueConversion


def test_niladic_value():
    pset = build(value(STRING, expr='"Hello, World!"'))
    calls = solve(STRING, (), pset)
    assert len(calls) == 1
    assert calls[0].kind is CallKind.VALUE_EXPR
    assert calls[0].value_expr == '"Hello, World!"'
    assert calls[0].args == []


def test_value_conversion():
    calls = solve(FOO_T, (), build(value(FOO_T)))
    assert [(c.kind, c.out) for c in calls] == [(CallKind.VALUE_EXPR, FOO_T)]


# ReservedKeywords


def test_reserved_keyword_type_names():
    interface_t = Named(FOO, "Interface", INT)
    select_t = Named(FOO, "Select", INT)
    pset = build(
        func(FOO, "provideInterface", [select_t], [interface_t]),
        func(FOO, "provideSelect", [], [select_t]),
    )
    calls = solve(interface_t, (), pset)
    assert [(c.name, c.args) for c in calls] == [("provideSelect", []), ("provideInterface", [0])]


# ReturnError


def test_provider_returning_error():
    calls = solve(FOO_T, (), build(func(FOO, "provideFoo", [], [FOO_T, ERROR])))
    assert calls[0].has_err is True
    assert calls[0].has_cleanup is False


# Cycles and bindings


def test_cycle_is_reported():
    pset = ProviderSet(
        providers=[
            func(FOO, "provideFoo", [BAR_T], [FOO_T]),
            func(FOO, "provideBar", [FOO_T], [BAR_T]),
        ]
    )
    provider_map, _ = build_provider_map(pset)
    assert [str(e) for e in verify_acyclic(provider_map)] == [
        "cycle for example.com/foo.Bar:\n"
        "example.com/foo.Bar (example.com/foo.provideBar) ->\n"
        "example.com/foo.Foo (example.com/foo.provideFoo) ->\n"
        "example.com/foo.Bar"
    ]
    with pytest.raises(WireErrorList):
        finalize(pset)


def test_binding_without_concrete_provider():
    foo_sig = Signature(results=(Var("", STRING),))
    fooer = Named(FOO, "Fooer", Interface((Method("Foo", foo_sig),)))
    bar_t = Named(FOO, "Bar", STRING, [Method("Foo", foo_sig, True)])
    pset = ProviderSet(bindings=[bind(Pointer(fooer), Pointer(Pointer(bar_t)), pos(9))])
    with pytest.raises(WireErrorList) as exc:
        build_provider_map(pset)
    assert messages(exc) == [
        'foo.go:9:6: wire.Bind of concrete type "*example.com/foo.Bar" to interface '
        '"example.com/foo.Fooer", but provider set does not include a provider for '
        '"*example.com/foo.Bar"'
    ]


def test_finalize_fills_maps():
    pset = build(func(FOO, "provideFoo", [], [FOO_T]))
    assert pset.outputs() == [FOO_T]
    assert pset.provided(FOO_T).provider.name == "provideFoo"