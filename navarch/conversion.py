"""
Type conversion registry: string tokens in, typed values out.

Overview
- TypeDescriptor classifies a parameter's declared type once, at model
  construction time:
  • primitive   str, int, float, bool
  • enum        enum.Enum subclasses (case-insensitive member names) and
                enum.Flag subclasses (comma-separated, OR-combined)
  • well-known  pathlib.Path, uuid.UUID, datetime/date/time/timedelta,
                decimal.Decimal, urllib.parse.ParseResult, IPv4/IPv6 addresses
  • custom      a per-parameter converter, a registered converter, or the
                type itself called with the raw string
  • collection  list[T], tuple[T, ...], set[T], frozenset[T] of any of the above
- ConverterRegistry maps types to (converter, formatter) pairs and performs
  conversion/formatting according to a descriptor.

Failure contract
- Converters signal failure by raising ValueError or TypeError. The binder turns
  that into a ConversionFailureError naming the parameter, the raw value and
  descriptor.label.

Example
    >>> registry = ConverterRegistry()
    >>> registry.convert("42", TypeDescriptor(int))
    42
    >>> registry.convert(["1", "2"], TypeDescriptor(list[int]))
    [1, 2]
"""
import builtins
import datetime
import decimal
import enum
import functools
import ipaddress
import operator
import pathlib
import re
import types
import typing
import uuid
from urllib.parse import ParseResult, urlparse

from .utils import Unset


class TypeKind(enum.Enum):
    PRIMITIVE = "primitive"
    ENUM = "enum"
    WELL_KNOWN = "well-known"
    CUSTOM = "custom"
    COLLECTION = "collection"


_CONTAINERS = (list, tuple, set, frozenset)

_TRUE = frozenset({"true", "1", "yes", "y", "on"})
_FALSE = frozenset({"false", "0", "no", "n", "off"})


def _parse_bool(raw):
    if (lowered := raw.strip().lower()) in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError("expected one of: true, false, yes, no, on, off, 1, 0")


def _format_bool(value):
    return "true" if value else "false"


def _parse_path(raw):
    if not raw:
        raise ValueError("path cannot be empty")
    return pathlib.Path(raw)


def _parse_decimal(raw):
    try:
        return decimal.Decimal(raw.strip())
    except decimal.InvalidOperation:
        raise ValueError("invalid decimal literal %r" % raw) from None


def _parse_url(raw):
    url = urlparse(raw.strip())
    if not url.scheme or not url.netloc:
        raise ValueError("expected an absolute url (scheme://host/...)")
    return url


_TIMEDELTA = re.compile(
    r"(?:(?P<days>-?\d+)\.)?(?P<hours>\d+):(?P<minutes>\d{1,2})"
    r"(?::(?P<seconds>\d{1,2})(?:\.(?P<fraction>\d{1,6}))?)?"
)


def _parse_timedelta(raw):
    """
    Accept "[d.]hh:mm[:ss[.ffffff]]" or a bare integer number of days.
    """
    raw = raw.strip()
    if re.fullmatch(r"-?\d+", raw):
        return datetime.timedelta(days=int(raw))
    if not (match := _TIMEDELTA.fullmatch(raw)):
        raise ValueError("expected [d.]hh:mm[:ss[.ffffff]]")
    if int(match["minutes"]) > 59 or int(match["seconds"] or 0) > 59:
        raise ValueError("minutes and seconds must be between 0 and 59")
    return datetime.timedelta(
        days=int(match["days"] or 0),
        hours=int(match["hours"]),
        minutes=int(match["minutes"]),
        seconds=int(match["seconds"] or 0),
        microseconds=int((match["fraction"] or "0").ljust(6, "0")),
    )


def _format_timedelta(value):
    hours, remainder = divmod(value.seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    text = f"{value.days}.{hours:02}:{minutes:02}:{seconds:02}"
    if value.microseconds:
        text += f".{value.microseconds:06}"
    return text


_PRIMITIVES = {
    str: (str, str),
    int: (int, str),
    float: (float, repr),
    bool: (_parse_bool, _format_bool),
}

_WELL_KNOWN = {
    pathlib.Path: (_parse_path, str),
    uuid.UUID: (uuid.UUID, str),
    datetime.datetime: (datetime.datetime.fromisoformat, datetime.datetime.isoformat),
    datetime.date: (datetime.date.fromisoformat, datetime.date.isoformat),
    datetime.time: (datetime.time.fromisoformat, datetime.time.isoformat),
    datetime.timedelta: (_parse_timedelta, _format_timedelta),
    decimal.Decimal: (_parse_decimal, str),
    ParseResult: (_parse_url, ParseResult.geturl),
    ipaddress.IPv4Address: (ipaddress.IPv4Address, str),
    ipaddress.IPv6Address: (ipaddress.IPv6Address, str),
}


def _convert_enum(cls, raw):
    members = {name.lower(): member for name, member in cls.__members__.items()}
    try:
        return members[raw.strip().lower()]
    except KeyError:
        raise ValueError("expected one of: %s" % ", ".join(cls.__members__)) from None


def _convert_flag(cls, raw):
    segments = [segment.strip() for segment in raw.split(",") if segment.strip()]
    if not segments:
        raise ValueError("expected a comma-separated combination of: %s" % ", ".join(cls.__members__))
    return functools.reduce(operator.or_, (_convert_enum(cls, segment) for segment in segments))


def _format_enum(value):
    if isinstance(value, enum.Flag):
        # an empty combination iterates no members; use its own name (NONE = 0)
        return ",".join(member.name for member in value) or value.name or ""
    return value.name


def split(raw, /):
    """
    Split a comma-separated value into trimmed, non-blank segments.
    """
    return [segment.strip() for segment in raw.split(",") if segment.strip()]


class TypeDescriptor:
    """
    Classification of a declared parameter type.

    Parameters
    - annotation: type | GenericAlias
      The declared type. `T | None` and `Optional[T]` are unwrapped to T.
      list[T] / tuple[T, ...] / set[T] / frozenset[T] describe collections; a
      bare container type (list) describes a collection of str.
    - converter: Unset | Callable[[str], T] | object with convert(str)
      Per-parameter converter. For collections, it converts each element.

    Attributes
    - kind: TypeKind
    - type: the scalar type (element type for collections)
    - container: list | tuple | set | frozenset | None
    - element: TypeDescriptor | None (collections only)
    - converter: the normalized custom converter callable, or Unset
    """

    __slots__ = ("kind", "type", "container", "element", "converter")

    def __init__(self, annotation=str, /, converter=Unset):
        annotation = self._unwrap(annotation)

        if converter is not Unset:
            converter = getattr(converter, "convert", converter)
            if not callable(converter):
                raise TypeError("type descriptor 'converter' must be callable or provide convert()")

        origin = typing.get_origin(annotation)
        if annotation in _CONTAINERS or origin in _CONTAINERS:
            arguments = [argument for argument in typing.get_args(annotation) if argument is not Ellipsis]
            if len(arguments) > 1:
                raise TypeError("type descriptor only supports homogeneous collections")
            self.kind = TypeKind.COLLECTION
            self.container = origin or annotation
            self.element = TypeDescriptor(arguments[0] if arguments else str, converter)
            if self.element.kind is TypeKind.COLLECTION:
                raise TypeError("type descriptor does not support nested collections")
            self.type = self.element.type
            self.converter = Unset
            return

        if not isinstance(annotation, type):
            raise TypeError("type descriptor annotation must be a type, got %r" % (annotation,))

        self.type = annotation
        self.container = None
        self.element = None
        self.converter = converter

        if converter is not Unset:
            self.kind = TypeKind.CUSTOM
        elif issubclass(annotation, enum.Enum):
            self.kind = TypeKind.ENUM
        elif annotation in _PRIMITIVES:
            self.kind = TypeKind.PRIMITIVE
        elif annotation in _WELL_KNOWN:
            self.kind = TypeKind.WELL_KNOWN
        else:
            self.kind = TypeKind.CUSTOM

    @staticmethod
    def _unwrap(annotation):
        # T | None -> T
        if isinstance(annotation, types.UnionType) or typing.get_origin(annotation) is typing.Union:
            arguments = [argument for argument in typing.get_args(annotation) if argument is not type(None)]
            if len(arguments) != 1:
                raise TypeError("type descriptor does not support unions, got %r" % (annotation,))
            return arguments[0]
        return annotation

    @property
    def boolean(self):
        """
        True for scalar booleans (flag semantics: presence means True).
        """
        return self.kind is TypeKind.PRIMITIVE and self.type is bool

    @property
    def collection(self):
        return self.kind is TypeKind.COLLECTION

    @property
    def label(self):
        """
        Human-readable name of the expected type, used in messages and help.
        """
        if self.collection:
            return "%s[%s]" % (self.container.__name__, self.element.label)
        if self.kind is TypeKind.ENUM:
            return "%s (%s)" % (self.type.__name__, ", ".join(name.lower() for name in self.type.__members__))
        return self.type.__name__

    def __eq__(self, other):
        if not isinstance(other, TypeDescriptor):
            return NotImplemented
        return all(getattr(self, name) == getattr(other, name) for name in self.__slots__)

    def __hash__(self):
        return hash((self.kind, self.type, self.container))

    def __repr__(self):
        return "type-descriptor(kind=%r, label=%r)" % (self.kind.value, self.label)


class ConverterRegistry:
    """
    Maps types to converters and formatters.

    Lookup order for a scalar descriptor
    1. the descriptor's own converter (per-parameter)
    2. a converter registered on this registry (or its parent) for the exact type
    3. the built-in enum / primitive / well-known converters
    4. the type itself, called with the raw string

    Registries can be layered: ConverterRegistry(parent=converters) sees every
    registration of `converters` but its own registrations stay local.
    """

    def __init__(self, parent=Unset):
        if parent is not Unset and not isinstance(parent, ConverterRegistry):
            raise TypeError("converter registry 'parent' must be a converter registry")
        self._parent = parent
        self._converters = {}
        self._formatters = {}

    def register(self, type, converter=Unset, /, formatter=Unset):
        """
        Register a converter (and optional formatter) for `type`.

        Usable directly, register(Money, parse_money, formatter=str), or as a
        decorator, @registry.register(Money).
        """
        if not isinstance(type, builtins.type):
            raise TypeError("register() first argument must be a type")

        def wrapper(converter, /):
            converter = getattr(converter, "convert", converter)
            if not callable(converter):
                raise TypeError("register() converter must be callable or provide convert()")
            if formatter is not Unset and not callable(formatter):
                raise TypeError("register() formatter must be callable")
            self._converters[type] = converter
            if formatter is not Unset:
                self._formatters[type] = formatter
            return converter

        return wrapper(converter) if converter is not Unset else wrapper

    def lookup(self, type, /):
        """
        Return the registered converter for `type`, or Unset.
        """
        try:
            return self._converters[type]
        except KeyError:
            return self._parent.lookup(type) if self._parent else Unset

    def _formatter(self, type, /):
        try:
            return self._formatters[type]
        except KeyError:
            return self._parent._formatter(type) if self._parent else Unset

    def _scalar(self, raw, descriptor):
        if descriptor.converter is not Unset:
            return descriptor.converter(raw)
        if (converter := self.lookup(descriptor.type)) is not Unset:
            return converter(raw)
        if descriptor.kind is TypeKind.ENUM:
            if issubclass(descriptor.type, enum.Flag):
                return _convert_flag(descriptor.type, raw)
            return _convert_enum(descriptor.type, raw)
        if descriptor.kind is TypeKind.PRIMITIVE:
            return _PRIMITIVES[descriptor.type][0](raw)
        if descriptor.kind is TypeKind.WELL_KNOWN:
            return _WELL_KNOWN[descriptor.type][0](raw)
        return descriptor.type(raw)

    def convert(self, raw, descriptor, /):
        """
        Convert raw token(s) into a value of the described type.

        Parameters
        - raw: str for scalars, Iterable[str] for collections (already split).
        - descriptor: TypeDescriptor

        Raises
        - ValueError / TypeError from the underlying converter.
        """
        if descriptor.collection:
            if isinstance(raw, str):
                raw = split(raw)
            return descriptor.container(self._scalar(item, descriptor.element) for item in raw)
        if not isinstance(raw, str):
            raise TypeError("expected a single value")
        return self._scalar(raw, descriptor)

    def format(self, value, descriptor, /):
        """
        Render a value back to its token form (the inverse of convert()).
        """
        if descriptor.collection:
            return ",".join(self.format(item, descriptor.element) for item in value)
        if (formatter := self._formatter(descriptor.type)) is not Unset:
            return formatter(value)
        if descriptor.kind is TypeKind.ENUM:
            return _format_enum(value)
        if descriptor.kind is TypeKind.PRIMITIVE:
            return _PRIMITIVES[descriptor.type][1](value)
        if descriptor.kind is TypeKind.WELL_KNOWN:
            return _WELL_KNOWN[descriptor.type][1](value)
        return str(value)


converters = ConverterRegistry()
"""
Process-wide default registry. Dispatchers use it unless given their own.
"""


__all__ = (
    "TypeKind",
    "TypeDescriptor",
    "ConverterRegistry",
    "converters",
    "split",
)
