"""
Declarative value validation.

A rule is a callable that receives an already converted value and raises
ValueError with a user-facing message when the value is not acceptable. The
binder applies a parameter's rules in declaration order and stops at the first
failure; for collection parameters every element is validated individually.

    >>> Range(1, 10)(11)
    Traceback (most recent call last):
      ...
    ValueError: must be between 1 and 10
"""
import pathlib
import re

from .utils import Unset, coalesce


class Rule:
    """
    Base class of validation rules.

    Subclasses implement check() and describe(); a custom message, when given,
    replaces the description verbatim.
    """

    def __init__(self, *, message=Unset):
        if message is not Unset and not isinstance(message, str):
            raise TypeError("%s 'message' must be a string" % self.__typename__)
        self._message = message

    @property
    def __typename__(self):
        return type(self).__name__.lower() + "-rule"

    def check(self, value, /):
        raise NotImplementedError

    def describe(self, value, /):
        return "invalid value %r" % (value,)

    def __call__(self, value, /):
        if not self.check(value):
            raise ValueError(coalesce(self._message, self.describe(value)))

    def __repr__(self):
        return "%s()" % self.__typename__


class Range(Rule):
    """
    Inclusive numeric (or any orderable) bounds. Either bound may be omitted.
    """

    def __init__(self, min=Unset, max=Unset, /, *, message=Unset):
        super().__init__(message=message)
        if min is Unset and max is Unset:
            raise ValueError("range-rule requires at least one bound")
        if min is not Unset and max is not Unset and min > max:
            raise ValueError("range-rule 'min' must not be greater than 'max'")
        self.min = min
        self.max = max

    def check(self, value, /):
        return (self.min is Unset or value >= self.min) and (self.max is Unset or value <= self.max)

    def describe(self, value, /):
        if self.min is Unset:
            return "must be at most %s" % (self.max,)
        if self.max is Unset:
            return "must be at least %s" % (self.min,)
        return "must be between %s and %s" % (self.min, self.max)

    def __repr__(self):
        return "range-rule(min=%r, max=%r)" % (self.min, self.max)


class Pattern(Rule):
    """
    The string form of the value must fully match a regular expression.
    """

    def __init__(self, pattern, /, flags=0, *, message=Unset):
        super().__init__(message=message)
        if not isinstance(pattern, str | re.Pattern):
            raise TypeError("pattern-rule 'pattern' must be a string or compiled pattern")
        self.pattern = re.compile(pattern, flags) if isinstance(pattern, str) else pattern

    def check(self, value, /):
        return self.pattern.fullmatch(str(value)) is not None

    def describe(self, value, /):
        return "must match pattern %r" % self.pattern.pattern

    def __repr__(self):
        return "pattern-rule(%r)" % self.pattern.pattern


class Length(Rule):
    """
    Inclusive bounds on len(value).
    """

    def __init__(self, min=0, max=Unset, /, *, message=Unset):
        super().__init__(message=message)
        if min < 0:
            raise ValueError("length-rule 'min' must be non-negative")
        if max is not Unset and min > max:
            raise ValueError("length-rule 'min' must not be greater than 'max'")
        self.min = min
        self.max = max

    def check(self, value, /):
        return self.min <= len(value) and (self.max is Unset or len(value) <= self.max)

    def describe(self, value, /):
        if self.max is Unset:
            return "must be at least %d characters long" % self.min
        return "must be between %d and %d characters long" % (self.min, self.max)


class PathExists(Rule):
    """
    The value names an existing filesystem entry.
    """

    def check(self, value, /):
        return pathlib.Path(value).exists()

    def describe(self, value, /):
        return "path '%s' does not exist" % (value,)


class FileExists(PathExists):
    def check(self, value, /):
        return pathlib.Path(value).is_file()

    def describe(self, value, /):
        return "file '%s' does not exist" % (value,)


class DirectoryExists(PathExists):
    def check(self, value, /):
        return pathlib.Path(value).is_dir()

    def describe(self, value, /):
        return "directory '%s' does not exist" % (value,)


class Predicate(Rule):
    """
    Wrap an arbitrary predicate. A falsey return fails validation.

        Predicate(lambda port: port % 2 == 0, message="must be an even port")
    """

    def __init__(self, function, /, *, message="invalid value"):
        super().__init__(message=message)
        if not callable(function):
            raise TypeError("predicate-rule argument must be callable")
        self.function = function

    def check(self, value, /):
        return bool(self.function(value))


def validate(rules, value, /, collection=False):
    """
    Apply `rules` to `value` in order (element-wise when `collection`).

    Raises
    - ValueError from the first failing rule.
    """
    for rule in rules:
        for item in (value if collection else (value,)):
            rule(item)


__all__ = (
    "Rule",
    "Range",
    "Pattern",
    "Length",
    "PathExists",
    "FileExists",
    "DirectoryExists",
    "Predicate",
    "validate",
)
