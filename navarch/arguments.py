r"""
Navarch parameter specifications.

Overview
- Specs
  • Option: named parameter, --name / -n, value-bearing unless boolean (flag semantics).
  • Argument: positional parameter, bound by order of appearance.
  • Injected: markers for runtime objects handed to actions (context, signal, globals).

- Introspection & representation
  • ArgumentType metaclass provides stable __repr__/__rich_repr__ and exposes the
    sanitized fields via read-only properties declared in __introspectable__.
  • Specs are immutable; copy.replace(spec, **changes) re-runs sanitization.

Metadata (sanitized on construction)
- name: Unset | str matching r"[A-Za-z][A-Za-z0-9-]*". Unset is only valid until the
  spec is attached to an action, which derives it from the callback parameter name.
- short: Unset | single alphanumeric character (Option only).
- type: Unset | type | GenericAlias. Unset infers from the callback annotation,
  then from the default, then falls back to str.
- converter: Unset | Callable[[str], T] | object with convert(str).
- required: bool. Required parameters cannot declare a default; boolean options
  cannot be required. Arguments are required unless they declare a default.
- default: Any. Boolean options default to False.
- env: Unset | str, environment variable consulted after the command line.
- prompt / secure: interactive fallback after the environment (secure hides input).
- exclusive: Unset | str, mutual-exclusion group id.
- validations: Iterable[Callable[[T], None]] (see navarch.validation).
- descr / hidden: help metadata.
- dest: Unset | str, the keyword used when calling the action.

Quick example:
    >>> from navarch.arguments import Option, Argument
    >>> message = Option("message", "m", required=True)
    >>> amend = Option("amend", type=bool)
    >>> files = Argument("files", type=list[str], default=[])
"""
import builtins
import copy
import enum
import functools
import keyword
import operator
import re
from collections.abc import Iterable

from rich.text import Text

from .conversion import TypeDescriptor
from .utils import *


class ArgumentType(type):
    """
    Metaclass giving specs a typename, mirrored read-only fields and stable reprs.

    Conventions
    - __typename__ is derived from the class name (camel-case split with hyphens)
      and used in messages.
    - __displayable__ (if set) narrows which properties are shown by __rich_repr__;
      otherwise __introspectable__ is used.
    """
    __introspectable__ = ()
    __displayable__ = Unset

    def __new__(cls, name, bases, namespace, **options):
        self = super().__new__(
            cls,
            name,
            bases,
            namespace | {
                "__typename__": re.sub(r"(?<!^)(?=[A-Z])", r"-", name).lower(),
            } | {
                name: mirror(name) for name in namespace.get("__introspectable__", ())
            },
        )

        @rename("__repr__")
        def __repr__(self):
            return f"{type(self).__typename__}({
                ", ".join(map(functools.partial(operator.mod, "%s=%r"), self.__rich_repr__()))
            })"
        self.__repr__ = __repr__

        @rename("__rich_repr__")
        def __rich_repr__(self):
            for name in coalesce(type(self).__displayable__, type(self).__introspectable__):
                yield name, getattr(self, name)
        self.__rich_repr__ = __rich_repr__

        return self


def _sanitize_metadata(cls, metadata, /):
    """
    Internal: normalize and validate metadata shared by Option and Argument.

    Mutates the provided metadata dict in place.

    Raises
    - TypeError: a field has the wrong type or an illegal combination is requested.
    - ValueError: a string field is empty or malformed.
    """
    if not isinstance(name := metadata["name"], str | Unset):
        raise TypeError(f"{cls.__typename__} 'name' must be a string")
    elif isinstance(name, str) and not re.fullmatch(r"[A-Za-z][A-Za-z0-9-]*", name := name.strip()):
        raise ValueError(f"{cls.__typename__} 'name' must start with a letter and contain only letters, digits and hyphens")
    metadata["name"] = name

    if metadata["converter"] is not Unset and not callable(getattr(metadata["converter"], "convert", metadata["converter"])):
        raise TypeError(f"{cls.__typename__} 'converter' must be callable or provide convert()")

    for field in ("env", "prompt", "exclusive"):
        if not isinstance(object := metadata[field], str | Unset):
            raise TypeError(f"{cls.__typename__} {field!r} must be a string")
        elif isinstance(object, str) and not (object := object.strip()):
            raise ValueError(f"{cls.__typename__} {field!r} cannot be empty")
        metadata[field] = object

    if metadata["secure"] and metadata["prompt"] is Unset:
        raise TypeError(f"{cls.__typename__} 'secure' requires a 'prompt'")

    if not isinstance(validations := metadata["validations"], Iterable):
        raise TypeError(f"{cls.__typename__} 'validations' must be iterable")
    validations = tuple(validations)
    if not all(callable(rule) for rule in validations):
        raise TypeError(f"{cls.__typename__} 'validations' must contain callables")
    metadata["validations"] = validations

    if not isinstance(descr := metadata["descr"], str | Text | Unset):
        raise TypeError(f"{cls.__typename__} 'descr' must be a string")
    elif isinstance(descr, str) and not (descr := descr.strip()):
        raise ValueError(f"{cls.__typename__} 'descr' cannot be empty")
    metadata["descr"] = coalesce(descr)

    if not isinstance(dest := metadata["dest"], str | Unset):
        raise TypeError(f"{cls.__typename__} 'dest' must be a string")
    elif isinstance(dest, str) and (not dest.isidentifier() or keyword.iskeyword(dest)):
        raise ValueError(f"{cls.__typename__} 'dest' must be a valid python identifier")
    if dest is Unset and name is not Unset:
        dest = name.replace("-", "_")
    metadata["dest"] = dest


def _process_type(cls, metadata, /):
    """
    Internal: build the TypeDescriptor and settle type-dependent defaults.
    """
    if (annotation := metadata["type"]) is Unset:
        default = metadata["default"]
        annotation = type(default) if default is not Unset and default is not None else str

    try:
        descriptor = TypeDescriptor(annotation, metadata["converter"])
    except TypeError as error:
        raise TypeError(f"{cls.__typename__} 'type' is not supported: {error}") from None
    metadata["descriptor"] = descriptor

    if descriptor.boolean and cls is Option:
        if metadata["required"]:
            raise TypeError(f"{cls.__typename__} boolean options cannot be required")
        metadata["default"] = coalesce(metadata["default"], False)

    if metadata["required"] is Unset:
        metadata["required"] = metadata["default"] is Unset
    elif not isinstance(metadata["required"], bool):
        raise TypeError(f"{cls.__typename__} 'required' must be a boolean")

    if metadata["required"] and metadata["default"] is not Unset:
        raise TypeError(f"{cls.__typename__} required parameters cannot have a default")


class Parameter(metaclass=ArgumentType):
    """
    Base of Option and Argument; never instantiated directly.
    """

    __introspectable__ = (
        "name",
        "type",
        "descriptor",
        "converter",
        "required",
        "default",
        "env",
        "prompt",
        "secure",
        "exclusive",
        "validations",
        "descr",
        "hidden",
        "dest",
    )

    __displayable__ = (
        "name",
        "type",
        "required",
        "default",
        "env",
        "exclusive",
    )

    def __new__(cls, *args, **kwargs):
        if cls is Parameter:
            raise TypeError("type 'Parameter' cannot be instantiated directly")
        return super().__new__(cls)

    def _initialize(self, metadata):
        self._metadata = dict(metadata)
        _sanitize_metadata(type(self), metadata)
        _process_type(type(self), metadata)
        for name, object in metadata.items():
            setattr(self, "_" + name, object)

    @property
    def boolean(self):
        return self.descriptor.boolean

    @property
    def collection(self):
        return self.descriptor.collection

    @property
    def label(self):
        """
        User-facing form of the parameter in messages ("--name" or "<name>").
        """
        raise NotImplementedError

    def __replace__(self, /, **changes):
        return type(self)(**self._metadata | changes)

    def __eq__(self, other):
        if type(other) is not type(self):
            return NotImplemented
        return self._metadata == other._metadata

    def __hash__(self):
        return id(self)


class Option(Parameter):
    """
    Named parameter specification (--name value, --name=value, -n value).

    Boolean options need no value token: presence sets them to True, and an inline
    value (--name=false) is accepted. Collection options accumulate across repeats
    and split comma-separated values.
    """

    __introspectable__ = Parameter.__introspectable__ + ("short",)

    def __init__(
            self,
            name=Unset,
            short=Unset,
            /,
            type=Unset,
            *,
            converter=Unset,
            required=False,
            default=Unset,
            env=Unset,
            prompt=Unset,
            secure=False,
            exclusive=Unset,
            validations=(),
            descr=Unset,
            hidden=False,
            dest=Unset
    ):
        if not isinstance(short, str | Unset):
            raise TypeError(f"{builtins.type(self).__typename__} 'short' must be a string")
        elif isinstance(short, str) and not re.fullmatch(r"[A-Za-z0-9]", short):
            raise ValueError(f"{builtins.type(self).__typename__} 'short' must be a single letter or digit")
        self._short = short

        self._initialize({
            "name": name,
            "type": type,
            "converter": converter,
            "required": required,
            "default": default,
            "env": env,
            "prompt": prompt,
            "secure": bool(secure),
            "exclusive": exclusive,
            "validations": validations,
            "descr": descr,
            "hidden": bool(hidden),
            "dest": dest,
        })
        self._metadata["short"] = short

    def __replace__(self, /, **changes):
        metadata = self._metadata | changes
        return Option(metadata.pop("name"), metadata.pop("short"), **metadata)

    @property
    def label(self):
        return "--" + coalesce(self.name, "?")

    @property
    def names(self):
        """
        Every token form that selects this option, long form first.
        """
        names = ("--" + self.name,)
        if self.short is not Unset:
            names += ("-" + self.short,)
        return names


class Argument(Parameter):
    """
    Positional parameter specification.

    Positionals bind left-to-right in declaration order. A collection Argument
    consumes every remaining positional token and must therefore be the last one.
    """

    def __init__(
            self,
            name=Unset,
            /,
            type=Unset,
            *,
            converter=Unset,
            required=Unset,
            default=Unset,
            env=Unset,
            prompt=Unset,
            secure=False,
            exclusive=Unset,
            validations=(),
            descr=Unset,
            hidden=False,
            dest=Unset
    ):
        self._initialize({
            "name": name,
            "type": type,
            "converter": converter,
            "required": required,
            "default": default,
            "env": env,
            "prompt": prompt,
            "secure": bool(secure),
            "exclusive": exclusive,
            "validations": validations,
            "descr": descr,
            "hidden": bool(hidden),
            "dest": dest,
        })

    def __replace__(self, /, **changes):
        metadata = self._metadata | changes
        return Argument(metadata.pop("name"), **metadata)

    @property
    def label(self):
        return "<%s>" % coalesce(self.name, "?")


class Injected(enum.Enum):
    """
    Default-value markers requesting runtime objects instead of parsed values.

        def deploy(environment=Option(required=True), context=Injected.CONTEXT): ...
    """
    CONTEXT = "context"
    SIGNAL = "signal"
    GLOBALS = "globals"


def resolve(spec, /, name, annotation=Unset):
    """
    Complete a spec declared as a callback default with what the signature knows.

    Parameters
    - spec: Option | Argument
    - name: str, the callback parameter name (becomes dest, and name when unset).
    - annotation: Unset | type, used when the spec declares no type.

    Returns
    - Option | Argument: `spec` itself when nothing is missing, else a replaced copy.
    """
    changes = {}
    if spec.name is Unset:
        changes["name"] = name.strip("_").replace("_", "-")
    if spec._metadata["dest"] is Unset:
        changes["dest"] = name
    if spec._metadata["type"] is Unset and annotation is not Unset:
        changes["type"] = annotation
    return copy.replace(spec, **changes) if changes else spec



__all__ = (
    # Classes
    "Parameter",
    "Option",
    "Argument",
    "Injected",

    # Functions
    "resolve",
)
