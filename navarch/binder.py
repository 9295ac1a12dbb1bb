"""
Argument tokenizing and binding: tokens in, ParameterValues out.

Token grammar
- "--name" / "--name=value"  long option
- "-n" / "-n=value"          short option (one character, no combining)
- "--"                       end of options, every later token is positional
- anything else              positional; "-" and negative numbers such as "-5"
                             are positional unless "-5" names a declared short option

Value consumption
- Boolean options take no value token; an inline value ("--force=false") is parsed.
- Other options take the inline value or the next token.
- Collection options accumulate across repeats and split values on commas.
- Repeating a scalar option keeps the last occurrence.
- Positionals fill Argument specs in declaration order; a collection Argument
  takes every remaining positional token.

Precedence per parameter (highest first)
    command line > environment variable > interactive prompt > declared default

Failure modes (all DispatchError subclasses, see navarch.faults)
- UnknownOptionError, OptionValueRequiredError, UnexpectedArgumentError
- MissingRequiredParameterError, ConversionFailureError, ValidationFailureError
- MutualExclusionConflictError
"""
import logging as logmod
import os
import re
from collections import defaultdict
from collections.abc import Mapping
from types import MappingProxyType

from rich.prompt import Prompt

from .arguments import Option, Argument
from .conversion import converters as registry, split
from .faults import *
from .similarity import find_similar
from .utils import Unset, coalesce, ordinal
from .validation import validate

logging = logmod.getLogger(__name__)

_NEGATIVE = re.compile(r"-\d+(\.\d+)?([eE][-+]?\d+)?")


class ParameterValues(Mapping):
    """
    Read-only mapping of parameter name -> converted value.

    Also records where each value came from (`sources`: "cli", "env", "prompt",
    "default" or "none") and offers the destination-keyed view used to call
    actions (`keywords`).
    """

    __slots__ = ("_values", "_sources", "_dests")

    def __init__(self, values=(), sources=(), dests=()):
        self._values = dict(values)
        self._sources = dict(sources)
        self._dests = dict(dests)

    def __getitem__(self, name, /):
        return self._values[name]

    def __iter__(self):
        return iter(self._values)

    def __len__(self):
        return len(self._values)

    def __getattr__(self, name, /):
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._values[self._names()[name]]
        except KeyError:
            raise AttributeError(name) from None

    def _names(self):
        return {dest: name for name, dest in self._dests.items()}

    @property
    def sources(self):
        return MappingProxyType(self._sources)

    @property
    def keywords(self):
        return {self._dests.get(name, name): value for name, value in self._values.items()}

    def supplied(self, name, /):
        """
        True when `name` got its value from the command line, environment or a prompt.
        """
        return self._sources.get(name) in ("cli", "env", "prompt")

    def __eq__(self, other):
        if isinstance(other, ParameterValues):
            return self._values == other._values and self._sources == other._sources
        if isinstance(other, Mapping):
            return self._values == dict(other)
        return NotImplemented

    __hash__ = None

    def __repr__(self):
        return "parameter-values(%s)" % ", ".join("%s=%r" % item for item in self._values.items())


def _interactive():
    try:
        return os.isatty(0)
    except OSError:
        return False


def ask(text, /, secure=False):
    """
    Default prompter: ask on the terminal with rich (input hidden when secure).
    """
    return Prompt.ask(text, password=secure, default="", show_default=False)


def _describe(parameter, positions):
    if isinstance(parameter, Option):
        return parameter.label
    return "%s (%s positional)" % (parameter.label, ordinal(positions[parameter]))


class Binder:
    """
    Bind tokens against a parameter list.

    Parameters
    - parameters: Sequence[Option | Argument], in declaration order
    - environ: Mapping[str, str], environment used for `env` lookups
    - converters: ConverterRegistry
    - interactive: bool | Unset, whether prompts may be shown (Unset detects a tty)
    - prompter: Callable[[str, bool], str], asks for a value (text, secure)

    A Binder holds no per-call state; bind() may be called any number of times.
    """

    def __init__(
            self,
            parameters,
            /,
            *,
            environ=Unset,
            converters=Unset,
            interactive=Unset,
            prompter=Unset
    ):
        self._parameters = tuple(parameters)
        self._environ = coalesce(environ, os.environ)
        self._converters = coalesce(converters, registry)
        self._interactive = interactive
        self._prompter = coalesce(prompter, ask)

        self._longs = {}
        self._shorts = {}
        self._arguments = []
        for parameter in self._parameters:
            if isinstance(parameter, Option):
                self._longs[parameter.name] = parameter
                if parameter.short is not Unset:
                    self._shorts[parameter.short] = parameter
            else:
                self._arguments.append(parameter)
        self._positions = {argument: index for index, argument in enumerate(self._arguments, 1)}

    @property
    def interactive(self):
        return _interactive() if self._interactive is Unset else bool(self._interactive)

    def lookup(self, token, /):
        """
        Split an option token into (option, inline value) or return None when
        `token` does not select a declared option.
        """
        name, sep, value = token.partition("=")
        inline = value if sep else Unset
        if name.startswith("--"):
            return (self._longs[name[2:]], inline) if name[2:] in self._longs else None
        if len(name) == 2:
            return (self._shorts[name[1]], inline) if name[1] in self._shorts else None
        return None

    def _unknown(self, token):
        name = token.partition("=")[0]
        candidates = [option.name for option in self._longs.values() if not option.hidden]
        suggestions = find_similar(name.lstrip("-"), candidates, max_distance=2, max_results=3)
        return UnknownOptionError(
            "unknown option %r" % name,
            title="unknown option",
            code=FaultCode.UNKNOWN_OPTION,
            docs=getdoc(FaultCode.UNKNOWN_OPTION),
            input=name,
            suggestions=["--" + suggestion for suggestion in suggestions],
            hint="options are written as --name or -n",
        )

    def scan(self, tokens, /):
        """
        Tokenize: collect raw option values and positional tokens.

        Returns
        - dict mapping parameter -> str | list[str] | True
        """
        raw = {}
        positionals = []
        tokens = list(tokens)
        index = 0
        ended = False

        while index < len(tokens):
            token = tokens[index]
            index += 1

            if ended or token == "-" or not token.startswith("-"):
                positionals.append(token)
                continue
            if token == "--":
                ended = True
                continue
            if (match := self.lookup(token)) is None:
                if _NEGATIVE.fullmatch(token):
                    positionals.append(token)
                    continue
                raise self._unknown(token)

            option, inline = match
            if option.boolean:
                raw[option] = True if inline is Unset else inline
                continue

            if inline is Unset:
                if index >= len(tokens):
                    raise OptionValueRequiredError(
                        "option %s requires a value" % token,
                        title="option value required",
                        code=FaultCode.OPTION_VALUE_REQUIRED,
                        docs=getdoc(FaultCode.OPTION_VALUE_REQUIRED),
                        parameter=option.name,
                        expected=option.descriptor.label,
                        hint="pass it as %s=<%s> or %s <%s>" % (option.label, option.descriptor.label, option.label, option.descriptor.label),
                    )
                inline = tokens[index]
                index += 1

            if option.collection:
                raw.setdefault(option, []).extend(split(inline))
            else:
                raw[option] = inline

        for argument in self._arguments:
            if not positionals:
                break
            if argument.collection:
                raw[argument] = positionals
                positionals = []
                break
            raw[argument] = positionals.pop(0)

        if positionals:
            raise UnexpectedArgumentError(
                "unexpected argument %r" % positionals[0],
                title="unexpected argument",
                code=FaultCode.UNEXPECTED_ARGUMENT,
                docs=getdoc(FaultCode.UNEXPECTED_ARGUMENT),
                input=positionals[0],
                hint="this action takes %d positional argument%s" % (
                    len(self._arguments), "" if len(self._arguments) == 1 else "s"
                ),
            )

        return raw

    def _convert(self, parameter, value):
        if value is True and parameter.boolean:
            return True
        try:
            return self._converters.convert(value, parameter.descriptor)
        except (ValueError, TypeError, ArithmeticError) as error:
            if parameter.secure:
                # converter messages may echo the input
                shown, error = "***", "malformed value"
            else:
                shown = ",".join(value) if isinstance(value, list) else value
            raise ConversionFailureError(
                "cannot convert %r for %s to %s: %s" % (
                    shown, _describe(parameter, self._positions), parameter.descriptor.label, error
                ),
                title="conversion failed",
                code=FaultCode.CONVERSION_FAILURE,
                docs=getdoc(FaultCode.CONVERSION_FAILURE),
                parameter=parameter.name,
                value=shown,
                expected=parameter.descriptor.label,
                hint="expected a value of type %s" % parameter.descriptor.label,
            ) from None

    def _validate(self, parameter, value):
        for rule in parameter.validations:
            try:
                validate((rule,), value, collection=parameter.collection)
            except ValueError as error:
                shown = "***" if parameter.secure else value
                raise ValidationFailureError(
                    "invalid value %r for %s: %s" % (shown, _describe(parameter, self._positions), error),
                    title="validation failed",
                    code=FaultCode.VALIDATION_FAILURE,
                    docs=getdoc(FaultCode.VALIDATION_FAILURE),
                    parameter=parameter.name,
                    value=shown,
                    rule=rule,
                    hint=str(error),
                ) from None

    def _fallback(self, parameter):
        """
        Value for a parameter absent from the command line, with its source.
        """
        if parameter.env is not Unset and (value := self._environ.get(parameter.env)):
            if parameter.collection:
                value = split(value)
            return value, "env"

        if parameter.prompt is not Unset and self.interactive:
            if answer := self._prompter(parameter.prompt, parameter.secure):
                return (split(answer) if parameter.collection else answer), "prompt"

        if parameter.default is not Unset:
            return parameter.default, "default"

        return Unset, "none"

    def bind(self, tokens, /):
        """
        Bind `tokens` and return ParameterValues.

        Raises
        - DispatchError subclasses (see module docstring)
        """
        raw = self.scan(tokens)

        values = {}
        sources = {}
        for parameter in self._parameters:
            if parameter in raw:
                value, source = raw[parameter], "cli"
            else:
                value, source = self._fallback(parameter)

            if source in ("cli", "env", "prompt"):
                value = self._convert(parameter, value)
                self._validate(parameter, value)
            elif source == "none":
                if parameter.required:
                    raise MissingRequiredParameterError(
                        "missing required parameter %s" % _describe(parameter, self._positions),
                        title="missing required parameter",
                        code=FaultCode.MISSING_REQUIRED_PARAMETER,
                        docs=getdoc(FaultCode.MISSING_REQUIRED_PARAMETER),
                        parameter=parameter.name,
                        expected=parameter.label,
                        hint="pass it as %s" % (
                            "%s <%s>" % (parameter.label, parameter.descriptor.label)
                            if isinstance(parameter, Option) else
                            "the %s positional argument" % ordinal(self._positions[parameter])
                        ),
                    )
                value = None

            if parameter.secure:
                logging.debug("Bound %s from %s", parameter.label, source)
            else:
                logging.debug("Bound %s = %r from %s", parameter.label, value, source)
            values[parameter.name] = value
            sources[parameter.name] = source

        groups = defaultdict(list)
        for parameter in self._parameters:
            if parameter.exclusive is Unset or sources[parameter.name] not in ("cli", "env", "prompt"):
                continue
            if values[parameter.name] != coalesce(parameter.default, None):
                groups[parameter.exclusive].append(parameter)

        for group, members in groups.items():
            if len(members) > 1:
                labels = [member.label for member in members]
                raise MutualExclusionConflictError(
                    "%s cannot be used together" % " and ".join(labels),
                    title="mutually exclusive parameters",
                    code=FaultCode.MUTUAL_EXCLUSION_CONFLICT,
                    docs=getdoc(FaultCode.MUTUAL_EXCLUSION_CONFLICT),
                    group=group,
                    parameters=tuple(member.name for member in members),
                    hint="pick only one of: %s" % ", ".join(labels),
                )

        return ParameterValues(
            values,
            sources,
            {parameter.name: parameter.dest for parameter in self._parameters},
        )

    def extract(self, tokens, /):
        """
        Pull this binder's option tokens out of `tokens` (global options pre-pass).

        Tokens after "--" are never taken. Returns (taken, remaining).
        """
        taken, remaining = [], []
        tokens = list(tokens)
        index = 0
        while index < len(tokens):
            token = tokens[index]
            index += 1
            if token == "--":
                remaining.extend(tokens[index - 1:])
                break
            if not token.startswith("-") or (match := self.lookup(token)) is None:
                remaining.append(token)
                continue
            taken.append(token)
            option, inline = match
            if not option.boolean and inline is Unset and index < len(tokens):
                taken.append(tokens[index])
                index += 1
        return taken, remaining


def bind(parameters, tokens, /, **options):
    """
    Bind `tokens` against `parameters` in one call; see Binder for options.
    """
    return Binder(parameters, **options).bind(tokens)


__all__ = (
    "ParameterValues",
    "Binder",
    "bind",
    "ask",
)
