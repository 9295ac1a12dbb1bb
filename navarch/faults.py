"""
Navarch faults (usage errors), exit codes, and rendering.

Scope
- FaultCode: canonical, stable numeric identifiers for every user-facing
  resolution/binding error. Codes are grouped by domain to keep copy consistent
  and make logs/searches predictable.
- ExitCode: conventional process exit codes (general codes and BSD sysexits).
- DispatchError and its subclasses: errors that carry a message + options and
  know how to render themselves in a friendly, lowercased, and actionable way.
- trigger(): central entry point to surface a fault on a console.
- getdoc(): optional description lookup for a code from the host application.

UX goals
- Short titles, one-sentence bodies, a single clear hint.
- Name-matching errors carry ranked suggestions ("did you mean ...").
- Lowercased tone with readable styling (configurable via __styles__ in __main__).

Integration
- The binder and resolver raise DispatchError subclasses; the dispatcher catches
  them, calls trigger(fault, **ctx) and returns the usage exit code. A
  DispatchError never escapes Dispatcher.dispatch().
"""
import copy
from collections import defaultdict
from enum import IntEnum
from types import MappingProxyType

from rich.console import Console, Group
from rich.panel import Panel
from rich.text import Text

from .utils import Unset

console = Console(stderr=True)


class FaultCode(IntEnum):
    """
    canonical fault codes used across the dispatcher (stable identifiers).

    grouping (by high-level domain)
    - routing (1110x)
      • UNKNOWN_COMMAND, UNKNOWN_ACTION, NO_ACTION_SPECIFIED
    - options (1111x)
      • UNKNOWN_OPTION, OPTION_VALUE_REQUIRED
    - positionals (1112x)
      • UNEXPECTED_ARGUMENT
    - binding (1113x)
      • MISSING_REQUIRED_PARAMETER, CONVERSION_FAILURE, VALIDATION_FAILURE,
        MUTUAL_EXCLUSION_CONFLICT

    normalize() allows host remapping to custom labels while keeping code-stability.
    """
    # --- routing errors ---
    UNKNOWN_COMMAND             = 11101
    UNKNOWN_ACTION              = 11102
    NO_ACTION_SPECIFIED         = 11103

    # --- option errors ---
    UNKNOWN_OPTION              = 11112
    OPTION_VALUE_REQUIRED       = 11117

    # --- positional errors ---
    UNEXPECTED_ARGUMENT         = 11121

    # --- binding errors ---
    MISSING_REQUIRED_PARAMETER  = 11131
    CONVERSION_FAILURE          = 11132
    VALIDATION_FAILURE          = 11133
    MUTUAL_EXCLUSION_CONFLICT   = 11134

    def normalize(self):
        """
        return a host-normalized string for this code.

        the host application can provide a __codes__ mapping in __main__
        to override numeric ids with friendlier labels. when no mapping
        is present, the numeric value is returned as a string.
        """
        return str(getattr(__import__("__main__"), "__codes__", {}).get(self, self.value))


class ExitCode(IntEnum):
    """
    Conventional process exit codes.

    0-63 are general success/error conditions, 64-78 follow BSD sysexits.h.
    Applications are free to use their own codes from 100 upwards.
    """
    SUCCESS = 0
    ERROR = 1
    INVALID_ARGUMENTS = 2
    FILE_NOT_FOUND = 3
    PERMISSION_DENIED = 4
    NETWORK_ERROR = 5
    CANCELLED = 6
    CONFIGURATION_ERROR = 7
    RESOURCE_UNAVAILABLE = 8

    # BSD sysexits.h compatible codes
    USAGE = 64
    DATA_ERROR = 65
    NO_INPUT = 66
    NO_USER = 67
    NO_HOST = 68
    UNAVAILABLE = 69
    SOFTWARE = 70
    OS_ERROR = 71
    OS_FILE = 72
    CANT_CREATE = 73
    IO_ERROR = 74
    TEMP_FAIL = 75
    PROTOCOL = 76
    NO_PERM = 77
    CONFIG = 78


class DispatchError(Exception):
    """
    Base type of every resolution/binding error.

    Carries a message plus a read-only mapping of options. Well-known options:
    title, code (FaultCode), hint, suggestions, docs, and presentation options
    merged at report time (prog, fancy, colorful, console).
    """

    def __init__(self, message=Unset, /, **options):
        assert isinstance(message, str | Unset)
        super().__init__(message)
        self.message = message
        self.options = MappingProxyType(options)

    def __str__(self):
        return self.message if self.message is not Unset else ""

    @property
    def code(self):
        return self.options.get("code")

    @property
    def suggestions(self):
        return tuple(self.options.get("suggestions", ()))

    def __rich__(self):
        main = __import__("__main__")

        styles = defaultdict(str, {
            # header parts
            "prog-name": "bold #E6E6F0",  # near-white program name
            "code": "bold #00E5FF",  # neon cyan fault code
            "error-title": "bold #FF4DA6",  # friendly pinky title

            # body
            "error-message": "#C8C8D0",  # soft light gray message
            "hint-arrow": "#9CE19C dim",  # gentle green arrow
            "hint": "italic #9CE19C",  # gentle green hint text
            "docs": "underline #00E5FF dim",
        } | getattr(main, "__styles__", {}))

        colorful = self.options.get("colorful", True)
        fancy = self.options.get("fancy", False)

        def styler(style):
            return styles[style] if colorful else ""

        def text(fragment, style=""):
            if not fragment:
                return Text("")
            if not colorful:
                return Text(str(fragment))
            if isinstance(fragment, Text):
                return fragment
            return Text(str(fragment), style)

        prog = text(self.options.get("prog") or getattr(main, "__prog__", "navarch"), styler("prog-name"))
        code = self.options.get("code")

        header = Text.assemble(
            "[ ",
            prog,
            " — ",
            text(code.normalize() if code is not None else "?", styler("code")),
            " | ",
            text(self.options.get("title", "usage error").title(), styler("error-title")),
            " ]"
        )
        message = text(self.message, styler("error-message"))

        if suggestions := self.suggestions:
            hint = "did you mean %s?" % " or ".join(map(repr, suggestions))
        else:
            hint = self.options.get("hint")

        renders = [message]
        if hint:
            renders.append(Text.assemble(text(" → ", styler("hint-arrow")), text(hint, styler("hint"))))
        if docs := self.options.get("docs"):
            renders.append(text(docs, styler("docs")))

        if fancy:
            return Panel(Group(*renders), title=header, title_align="left")

        return Group(header, *renders)

    def __trigger__(self) -> None:
        self.options.get("console", console).print(self)

    def __replace__(self, *unused, **overrides):
        assert not unused, "unused arguments are not allowed"
        return type(self)(self.message, **{**self.options, **overrides})


class UnknownCommandError(DispatchError): ...
class UnknownActionError(DispatchError): ...
class NoActionSpecifiedError(DispatchError): ...
class UnknownOptionError(DispatchError): ...
class OptionValueRequiredError(DispatchError): ...
class UnexpectedArgumentError(DispatchError): ...
class MissingRequiredParameterError(DispatchError): ...
class ConversionFailureError(DispatchError): ...
class ValidationFailureError(DispatchError): ...
class MutualExclusionConflictError(DispatchError): ...


class OperationCancelled(Exception):
    """
    Raised by CancellationSignal.raise_if_cancelled() inside hooks and actions
    that observe the dispatch-wide cancellation signal cooperatively.
    """


def trigger(fault, /, **options):
    """
    surface a fault with the given runtime options.

    contract
    - fault must provide __trigger__ and __replace__ methods (see DispatchError).
    - options are merged into the fault via __replace__(**options) before triggering.
    - rendering happens via a rich console (options["console"] or stderr).

    typical options
    - prog, fancy, colorful, console.
    """
    if (
        not hasattr(fault, "__trigger__") or
        not callable(fault.__trigger__) or
        not hasattr(fault, "__replace__") or
        not callable(fault.__replace__)
    ):
        raise TypeError("trigger() argument must have a __trigger__ and __replace__ methods")
    copy.replace(fault, **options).__trigger__()


def getdoc(code, /):
    """
    optional documentation fetch for a fault code.

    lookup
    - the host application may expose a __docs__ mapping in __main__ where keys
      are FaultCode instances and values are short documentation strings.
    - when not found, returns None (renderers treat docs as optional).
    """
    if not isinstance(code, FaultCode):
        raise TypeError("getdoc() argument must be a fault-code")
    try:
        return getattr(__import__("__main__"), "__docs__", {})[code]
    except KeyError:
        return None


__all__ = (
    "FaultCode",
    "ExitCode",
    "DispatchError",
    "UnknownCommandError",
    "UnknownActionError",
    "NoActionSpecifiedError",
    "UnknownOptionError",
    "OptionValueRequiredError",
    "UnexpectedArgumentError",
    "MissingRequiredParameterError",
    "ConversionFailureError",
    "ValidationFailureError",
    "MutualExclusionConflictError",
    "OperationCancelled",
    "trigger",
    "getdoc",
)
