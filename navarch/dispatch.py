"""
Dispatch coordinator: argv in, exit code out.

Flow
1. Global options are extracted from anywhere in the vector and bound.
2. The command path and action are resolved (navarch.resolver).
3. "--help" / "-h" (when the action does not declare them) prints help, exit 0.
4. The action's parameters are bound (navarch.binder).
5. Hooks and the action run (navarch.hooks).

Exit codes
- usage errors (any DispatchError): `usage_code` (default 2), the fault is
  rendered on the stderr console; nothing is raised.
- cancelled by a before-hook or cooperatively: `cancel_code` (default 6).
- normal completion: the int the action returned, else 0.
- exception handled by an error-hook: the mapped code, else 1.
- exception not handled: propagates out of dispatch().

Example
    >>> root = Command("myapp")
    >>> @root.action(primary=True)
    ... def hello(name=Argument(default="world")):
    ...     print("hello", name)
    >>> dispatch(root, ["there"])
    hello there
    0
"""
import logging as logmod
import os
import shlex
import sys
from collections.abc import Iterable

from rich.console import Console

from .help import render
from .arguments import Option, Injected
from .binder import Binder
from .commands import Command
from .conversion import converters as registry
from .faults import *
from .hooks import CancellationSignal, HookContext, Orchestrator, Outcome, State
from .resolver import resolve
from .utils import Unset, coalesce

logging = logmod.getLogger(__name__)

HELP = ("--help", "-h")


class ResolvedInvocation:
    """
    Result of resolution and binding for one dispatch call.

    - path: tuple[Command, ...] from the root to the command context
    - action: Action
    - values: ParameterValues of the action
    - globals: ParameterValues of the global options
    - arguments: tuple[str, ...], the dispatched vector
    """

    __slots__ = ("path", "action", "values", "globals", "arguments")

    def __init__(self, path, action, values, globals, arguments=()):
        self.path = tuple(path)
        self.action = action
        self.values = values
        self.globals = globals
        self.arguments = tuple(arguments)

    @property
    def command(self):
        return self.path[-1]

    def __repr__(self):
        return "resolved-invocation(path=%r, action=%r, values=%r)" % (
            " ".join(command.name for command in self.path), self.action.name, self.values
        )


def _tokens(argv):
    """
    Normalize argv: Unset -> sys.argv[1:], str -> shlex.split, iterable -> list.
    """
    if argv is Unset:
        return sys.argv[1:]
    if isinstance(argv, str):
        return shlex.split(argv)
    if isinstance(argv, Iterable):
        tokens = list(argv)
        if not all(isinstance(token, str) for token in tokens):
            raise TypeError("dispatch() argument must be a string or an iterable of strings")
        return tokens
    raise TypeError("dispatch() argument must be a string or an iterable of strings")


def _check_globals(cls, root, globals):
    if not all(isinstance(option, Option) for option in globals):
        raise TypeError(f"{cls.__typename__} 'globals' must contain options")
    names = {option.name for option in globals}
    shorts = {option.short for option in globals if option.short is not Unset}
    if len(names) != len(globals) or len(shorts) != len([option for option in globals if option.short is not Unset]):
        raise ValueError(f"{cls.__typename__} 'globals' names must be unique")
    for command in root.walk():
        for action in command.actions:
            for option in action.options:
                if option.name in names or (option.short is not Unset and option.short in shorts):
                    raise ValueError(
                        f"{cls.__typename__} option {option.label!r} of action {action.name!r} collides with a global option"
                    )


class Dispatcher:
    """
    Owns the command tree for the process lifetime and dispatches vectors against it.

    Parameters
    - root: Command
    - prog: str | Unset, program name in diagnostics (default: __prog__ in __main__, then root name)
    - usage_code: int, exit code of usage errors
    - cancel_code: int, exit code of cancelled dispatches
    - interactive: bool | Unset, allow prompts (Unset detects a terminal)
    - fancy / colorful: presentation of faults and help
    - stderr / stdout: rich consoles for diagnostics and help
    - environ: Mapping[str, str] used for environment lookups (default os.environ)
    - converters: ConverterRegistry (default the shared registry)
    - globals: Iterable[Option], options accepted anywhere in the vector
    - helper: bool, handle --help / -h
    - prompter: Callable[[str, bool], str], used for interactive prompts

    The tree is only read during dispatch, so one Dispatcher may serve
    concurrent calls.
    """

    __typename__ = "dispatcher"

    def __init__(
            self,
            root,
            /,
            *,
            prog=Unset,
            usage_code=ExitCode.INVALID_ARGUMENTS,
            cancel_code=ExitCode.CANCELLED,
            interactive=Unset,
            fancy=False,
            colorful=True,
            stderr=Unset,
            stdout=Unset,
            environ=Unset,
            converters=Unset,
            globals=(),
            helper=True,
            prompter=Unset
    ):
        if not isinstance(root, Command):
            raise TypeError("dispatcher 'root' must be a command")
        if root.parent:
            raise ValueError("dispatcher 'root' must be the root of its tree")
        for field, code in (("usage_code", usage_code), ("cancel_code", cancel_code)):
            if not isinstance(code, int) or isinstance(code, bool):
                raise TypeError(f"dispatcher {field!r} must be an integer")
        globals = tuple(globals)
        _check_globals(type(self), root, globals)

        self._root = root
        self._prog = prog
        self._usage_code = int(usage_code)
        self._cancel_code = int(cancel_code)
        self._fancy = bool(fancy)
        self._colorful = bool(colorful)
        self._stderr = coalesce(stderr, Console(stderr=True))
        self._stdout = coalesce(stdout, Console())
        self._helper = bool(helper)
        self._globals = globals
        self._options = {
            "environ": coalesce(environ, os.environ),
            "converters": coalesce(converters, registry),
            "interactive": interactive,
            "prompter": prompter,
        }
        self._orchestrator = Orchestrator(cancel_code=self._cancel_code)

    @property
    def root(self):
        return self._root

    @property
    def prog(self):
        return coalesce(self._prog, getattr(__import__("__main__"), "__prog__", self._root.name))

    def _binder(self, parameters):
        return Binder(parameters, **self._options)

    def _wants_help(self, action, tokens):
        if not self._helper:
            return False
        declared = {name for option in (action.options if action else ()) for name in option.names}
        for token in tokens:
            if token == "--":
                return False
            if token in HELP and token not in declared:
                return True
        return False

    def _help(self, path, action=None, /, console=Unset):
        coalesce(console, self._stdout).print(
            render(path, action, prog=self.prog, colorful=self._colorful, fancy=self._fancy)
        )

    def _report(self, fault):
        trigger(fault, console=self._stderr, prog=self.prog, fancy=self._fancy, colorful=self._colorful)

    def resolve(self, argv=Unset, /):
        """
        Resolve and bind `argv` without running anything.

        Returns
        - ResolvedInvocation

        Raises
        - DispatchError subclasses
        """
        tokens = _tokens(argv)
        taken, remaining = self._binder(self._globals).extract(tokens)
        globals = self._binder(self._globals).bind(taken)
        path, action, rest = resolve(self._root, remaining)
        values = self._binder(action.parameters).bind(rest)
        return ResolvedInvocation(path, action, values, globals, tokens)

    def _prepare(self, tokens, signal, /):
        """
        Resolve and bind `tokens` for a run.

        Returns
        - Outcome when dispatch ends before the action (help or usage error)
        - (HookContext, invoke) otherwise
        """
        try:
            taken, remaining = self._binder(self._globals).extract(tokens)
            try:
                path, action, rest = resolve(self._root, remaining)
            except NoActionSpecifiedError as fault:
                path = fault.options["path"]
                if self._wants_help(None, remaining):
                    self._help(path)
                    return Outcome(State.HELP, ExitCode.SUCCESS)
                self._help(path, console=self._stderr)
                raise

            if self._wants_help(action, rest):
                self._help(path, None if action.primary else action)
                return Outcome(State.HELP, ExitCode.SUCCESS)

            globals = self._binder(self._globals).bind(taken)
            values = self._binder(action.parameters).bind(rest)
        except DispatchError as fault:
            logging.debug("Usage error %s: %s", type(fault).__name__, fault)
            self._report(fault)
            return Outcome(State.REJECTED, self._usage_code, exception=fault)

        invocation = ResolvedInvocation(path, action, values, globals, tokens)
        logging.debug("Resolved %r", invocation)
        context = HookContext(path, action, tokens, values, globals, signal)

        keywords = values.keywords
        for dest, marker in action.injections.items():
            keywords[dest] = {
                Injected.CONTEXT: context,
                Injected.SIGNAL: signal,
                Injected.GLOBALS: globals,
            }[marker]

        return context, lambda: action.call(keywords)

    def run(self, argv=Unset, /, signal=Unset):
        """
        Dispatch `argv` and return the full Outcome.

        Usage errors yield a REJECTED outcome; exceptions no error-hook handles
        propagate. No event loop runs unless a hook or the action returns an
        awaitable.
        """
        prepared = self._prepare(_tokens(argv), coalesce(signal, CancellationSignal()))
        if isinstance(prepared, Outcome):
            return prepared
        outcome = self._orchestrator.execute(*prepared)
        logging.debug("Dispatch finished: %r", outcome)
        return outcome

    async def execute(self, argv=Unset, /, signal=Unset):
        """
        Coroutine flavour of run() for callers inside a running event loop.
        """
        prepared = self._prepare(_tokens(argv), coalesce(signal, CancellationSignal()))
        if isinstance(prepared, Outcome):
            return prepared
        outcome = await self._orchestrator.run(*prepared)
        logging.debug("Dispatch finished: %r", outcome)
        return outcome

    def dispatch(self, argv=Unset, /, signal=Unset):
        """
        Dispatch `argv` (default sys.argv[1:]) and return the exit code.

        Synchronous; use dispatch_async() from inside a running event loop when
        hooks or the action are coroutines.
        """
        return self.run(argv, signal=signal).code

    async def dispatch_async(self, argv=Unset, /, signal=Unset):
        """
        Dispatch `argv` from inside a running event loop; returns the exit code.
        """
        return (await self.execute(argv, signal=signal)).code


def dispatch(root, argv=Unset, /, **options):
    """
    Build a Dispatcher for `root` with `options` and dispatch `argv` once.

        sys.exit(dispatch(root))
    """
    return Dispatcher(root, **options).dispatch(argv)


__all__ = (
    "ResolvedInvocation",
    "Dispatcher",
    "dispatch",
)
