# wirekit

wirekit checks dependency-injection declarations ahead of time. You
describe *providers* (functions or structs that produce a type), group
them into *provider sets*, and declare *injectors* (functions whose
body consists only of a `Build` call naming the providers to use, plus
an optional return). wirekit checks the graph and works out the exact
sequence of calls an injector needs, or reports why it cannot.

## What it checks

- every type in a set has exactly one source; conflicting bindings are
  reported with a trace of where each binding came from;
- the provider graph has no cycles;
- interface bindings name a concrete type that implements the interface
  and that the set provides;
- provider and injector signatures are valid: one result, optionally
  followed by a cleanup function (`func()`) and/or an `error`;
- providers take at most one parameter of each type;
- struct providers and field selections name real fields and respect
  fields tagged `wire:"-"`;
- `Value` is not given an interface type (`InterfaceValue` is for that);
- nothing listed in an injector goes unused: unused providers, values,
  bindings, fields and imported sets are all errors.

## Modules

| Module              | Contents |
|---------------------|----------|
| `wirekit.errors`    | `Position`, `WireError`, `WireErrorList`, `ErrorCollector`, and the helpers `note_position`, `note_position_all`, `map_errors`. |
| `wirekit.types`     | A small type model: `Package`, `Basic`, `Named`, `Pointer`, `Signature`, `Var`, `Method`, `Interface`, `Struct`, `StructField`, with `type_string`, `identical`, `implements` and `underlying`. |
| `wirekit.model`     | `Provider`, `ProviderInput`, `Value`, `Field`, `IfaceBinding`, `InjectorArgs`, `InjectorArg`, `ProvidedType`, `ProviderSetSrc`, `ProviderSet`, `ProviderSetID`, `Injector`, `Info`. |
| `wirekit.providers` | Builders that validate declarations: `func_output`, `process_func_provider`, `struct_provider`, `struct_literal_provider`, `fields_of`, `bind`, `value`, `interface_value`, plus `check_field`, `is_prevented`, `is_wire_import`, `is_provider_set_type`. |
| `wirekit.analyze`   | `build_provider_map`, `verify_acyclic`, `verify_args_used`, `binding_conflict_error`, `finalize`, and `solve`, which returns the ordered list of `Call` steps (each with a `CallKind`). |
| `wirekit.cache`     | `ProviderSetCache`, a thread-safe cache of provider sets, and `get_global_cache()`. |
| `wirekit.loader`    | Package descriptions (`PackageSource`, `FuncDecl`, `MarkerCall`, `Ref`, `StructLiteral`), `ObjectCache`, `find_injector_build` and `load`. |

## Describing packages

Packages are described as Python objects rather than read from files:

- `PackageSource(path, funcs=..., vars=..., var_types=...)` holds a
  package's function declarations and its top-level variables with
  their initialising expressions.
- `FuncDecl(name, signature, body=None)` is a function. A function with
  a `body` may be an injector; the body is a sequence of statements,
  where a `MarkerCall` or `Ref` is an expression statement, the string
  `"return"` is a return and `";"` an empty statement.
- `MarkerCall(function, args)` is a call to one of the marker functions
  `NewSet`, `Build`, `Bind`, `Value`, `InterfaceValue`, `Struct` or
  `FieldsOf`. Its `package` defaults to `"wirekit/wire"`, the import path
  `is_wire_import` recognises (also under a `vendor/` directory).
- `Ref(name, package="")` refers to a function or variable; an empty
  package means the current one. Names in other packages must be
  exported (start with an upper-case letter).
- `StructLiteral(type)` is the deprecated way to provide every field of
  a named struct; using it prints a warning to standard error.

A variable counts as a provider set when its declared type in
`var_types` is the marker package's `ProviderSet`, or when its value is
a `NewSet` call (directly or through a `Ref` to such a variable).

## Example

```python
from wirekit.loader import FuncDecl, MarkerCall, PackageSource, Ref, load
from wirekit.types import Basic, Named, Package, Signature, Var

pkg = Package("example.com/app")
string = Basic("string")
message = Named(pkg, "Message", string)
greeter = Named(pkg, "Greeter", string)

src = PackageSource(
    "example.com/app",
    funcs=[
        FuncDecl("NewMessage", Signature(params=[Var("phrase", string)], results=[Var("", message)])),
        FuncDecl("NewGreeter", Signature(params=[Var("m", message)], results=[Var("", greeter)])),
        FuncDecl(
            "InitializeGreeter",
            Signature(params=[Var("phrase", string)], results=[Var("", greeter)]),
            body=[MarkerCall("Build", (Ref("NewGreeter"), Ref("NewMessage"))), "return"],
        ),
    ],
)

info = load([src])
print([str(i) for i in info.injectors])  # ['"example.com/app".InitializeGreeter']
```

`load` returns an `Info` with every named provider set (keyed by
`ProviderSetID`) and every valid `Injector`. If anything is wrong it
raises a `WireErrorList`; the exception's `info` attribute still holds
what was found.

For a single finished `ProviderSet`, `solve(out, given, provider_set)`
returns the calls needed to build `out` from the injector arguments
`given`. Each `Call` records its kind, the provider or field it uses,
which injector arguments or earlier results feed its arguments, and
whether it returns a cleanup function or an error.

## Errors

`WireError` carries an optional `Position`; when the position is known
the message is prefixed with `file:line:column: ` (the column is left
out when it is zero). Several errors found together are raised as one
`WireErrorList`, which can be iterated.

## Caching

`ProviderSetCache` stores provider sets per package path and variable
name, recording each source file's modification time and SHA-256 hash.
`get_cached_set` accepts a file whose modification time is unchanged
and otherwise compares its content hash; `get_cached_set_fast` checks
modification times only. `invalidate_package` drops every set of one
package, `clear` drops all sets and recorded hashes, and `stats()`
returns the number of cached sets and of files with a recorded hash.

## What it does not do

- It does not read or parse source files; packages must be described
  with `PackageSource` and the other loader classes.
- It does not write generated code. `solve` gives the ordered calls an
  injector makes, but turning them into source text is left to the
  caller.
- It has no command-line tool.

## Running the tests

Install the package with its `test` extra, then run `pytest`.