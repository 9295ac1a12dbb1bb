"""
Navarch utilities (internal helpers, carefully exposed)

Scope
- Small building blocks used across the package for consistent semantics.
- Public-but-internal leaning: stable enough for consumers, designed primarily
  to support the model, binder, and dispatch layers.

Overview
- UnsetType / Unset
  • Singleton sentinel to represent “value not provided” without conflating with None.
  • Falsey (bool(Unset) is False), printable as "Unset", and non-subclassable.

- coalesce(value, default=None)
  • Replace Unset with a concrete default, but preserve legitimate falsey values like None/0/""/[].

- rename(callable, name) / @rename("name")
  • Assign stable __name__/__qualname__ to generated wrappers for clean tracebacks.

- mirror("attr")
  • Read-only property factory exposing a private backing field (self._attr) with copies
    for containers to discourage accidental mutation of the command model.

- ordinal(number)
  • Human-friendly ordinal labels ("first", "second", "11th") for positional messages.

Quick examples
    >>> one = coalesce(Unset, "fallback")  # "fallback"
    >>> two = coalesce(None, "fallback")    # None  (None is preserved)
    >>> ordinal(2)
    'second'
"""
import builtins
import copy
import functools
from collections.abc import Sequence, Mapping, Set
from typing import final


@final
class UnsetType:
    """
    Internal sentinel type representing a value that was not provided.

    This is used when None is a legitimate user value, but the API needs a way
    to distinguish “not provided” from “provided as None”. A single instance,
    Unset, is exposed for use as the default in internal parameters.

    Characteristics
    - Boolean-false: bool(Unset) is False, but it is distinct from None and 0.
    - Printable: repr(Unset) -> "Unset" for friendly diagnostics.
    - Non-subclassable: this type is sealed; do not subclass.
    - Singleton per process: UnsetType() always yields the same instance.
    """

    def __or__(self, other, /):
        """
        Support PEP 604 unions in annotations (e.g., str | UnsetType).
        """
        try:
            return type(self) | other
        except TypeError:
            return NotImplemented

    def __ror__(self, other, /):
        """
        Support reversed PEP 604 unions when UnsetType appears on the right.
        """
        try:
            return other | type(self)
        except TypeError:
            return NotImplemented

    @functools.cache
    def __new__(cls):
        """
        Ensure a single instance for this sentinel type.
        """
        return super().__new__(cls)

    def __bool__(self):
        return False

    def __repr__(self):
        return "Unset"

    def __copy__(self):
        return self

    def __deepcopy__(self, memo, /):
        return self

    def __reduce__(self):
        return "Unset"

    def __init_subclass__(cls, **options):
        """
        Disallow subclassing to preserve sentinel semantics.
        """
        raise TypeError("type 'UnsetType' is not an acceptable base type")


def coalesce(object, default=None, /):
    """
    Resolve an internal Unset sentinel to a concrete default.

    This returns the given object unless it is the Unset sentinel, in which case
    the provided default is returned. Falsey values like None, 0, "", or [] are
    preserved as-is; they are not treated as “unset”.

    Examples
    - coalesce("name", "fallback") -> "name"
    - coalesce(Unset, "fallback")  -> "fallback"
    - coalesce(None, "fallback")   -> None
    """
    return object if object is not Unset else default


def rename(*parameters):
    """
    Set a stable __name__/__qualname__ on a callable, or return a decorator
    that will do so later.

    Forms
    - Function form: rename(callable, name) -> callable
    - Decorator form: rename(name) -> (decorator)

    Notes
    - This utility does not alter behavior beyond metadata.
    - Some built-in or C-implemented callables are not updatable and will
      raise TypeError.
    """
    match len(parameters):
        case 2:
            callable, name = parameters
            if not builtins.callable(callable):
                raise TypeError("rename() first argument must be callable")
            if not isinstance(name, str):
                raise TypeError("rename() second argument must be a string")
            try:
                callable.__qualname__ = name
                callable.__name__ = name
            except (AttributeError, TypeError):
                raise TypeError("rename() first argument must be a updatable callable") from None
            return callable
        case 1:
            name, = parameters
            if not isinstance(name, str):
                raise TypeError("@rename() argument must be a string")

            def wrapper(callable):
                if not builtins.callable(callable):
                    raise TypeError("@rename() must be applied to a callable")
                return rename(callable, name)

            return rename(wrapper, "rename")
        case _:
            raise TypeError("rename takes 1 to 2 arguments but %d were given" % len(parameters))


def _immortalize(object):
    """
    Copy container values so callers cannot mutate the backing state.

    Behavior
    - Sequence (non-string), Mapping, Set: returns a shallow copy of the same type.
    - Anything else (Unset included): returned as-is.

    Notes
    - Copies are shallow: nodes of the command model are immutable themselves,
      so there is nothing to gain by copying them.
    """
    if isinstance(object, Sequence | Mapping | Set) and not isinstance(object, str | bytes):
        return copy.copy(object)
    return object


def mirror(name, /):
    """
    Define a read-only property that mirrors a private backing attribute.

    The generated property reads from an attribute named "_{name}" on the
    instance, and returns a copy for container types.

    Example
    - Given self._aliases, declare aliases = mirror("aliases") to expose it safely.
    """
    if not isinstance(name, str):
        raise TypeError("mirror() argument must be a string")

    @rename(name)
    def getter(self):
        return _immortalize(getattr(self, "_" + name))

    return property(getter)


@functools.cache
def ordinal(number, /):
    """
    Return a human-friendly ordinal label for a 1-based position.

    - 1..10 are rendered as words ("first"…"tenth") for nicer phrasing.
    - Other numbers use numeric ordinals with correct English suffixes.
    """
    try:
        return {
            1: "first",
            2: "second",
            3: "third",
            4: "fourth",
            5: "fifth",
            6: "sixth",
            7: "seventh",
            8: "eighth",
            9: "ninth",
            10: "tenth",
        }[number]
    except KeyError:
        pass

    # 11th, 12th, 13th (and 111th, 112th, 113th, …)
    if 10 < number % 100 < 20:
        return f"{number}th"

    return f'{number}%s' % {1: "st", 2: "nd", 3: "rd"}.get(number % 10, "th")


Unset = UnsetType()
"""
Internal sentinel for “not provided”.

Notes
- Singleton: there is only one Unset instance.
- Distinct from None: equality and identity checks must not treat it as None.
- Typical pattern: value = coalesce(user_value, default).
"""


__all__ = (
    # Functions
    "coalesce",
    "rename",
    "mirror",
    "ordinal",

    # Types
    "UnsetType",

    # Constants
    "Unset",
)
