"""
Navarch command model: the tree the dispatcher interprets.

What this module provides
- Command: a named node of the command tree. Holds child commands, actions,
  hooks and exit-code mappings. Names and aliases match case-insensitively.
- Action: an invocable leaf bound to a Python callable, with its parameter
  specs (Option / Argument), hooks and exit-code mappings. At most one action
  per command is the primary one, invoked when no action token is given.
- Hook: a lifecycle callback (before / after / error) with an execution order.
- MapExitCode: exception kind -> process exit code, resolved by nearest ancestor.
- command(...): build a Command (or a decorator producing one).

Construction rules (enforced as the tree is assembled)
- Sibling commands, and actions of one command, never share a name or alias
  once lowercased; a child command and an action of the same command never
  share one either.
- Command aliases are unique across the whole tree.
- An action has at most one collection positional argument and it is the last one.
- Option names and short names are unique within an action.

Quick start
    from navarch import Command, Option, Argument, dispatch

    root = Command("myapp")
    git = root.command("git")

    @git.action
    def commit(message=Option("message", "m", required=True), amend=Option(type=bool)):
        ...

    exit(dispatch(root, ["git", "commit", "-m", "fix", "--amend"]))

The tree is meant to be built once at startup; dispatching never mutates it.
"""
import enum
import functools
import inspect
import operator
import re
from collections.abc import Iterable

from rich.text import Text

from .arguments import Parameter, Option, Argument, Injected, resolve
from .utils import *


class NodeType(type):
    """
    Metaclass giving model nodes a typename, mirrored read-only fields and stable reprs.

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


class Phase(enum.Enum):
    """
    Lifecycle phase a hook runs in.
    """
    BEFORE = "before"
    AFTER = "after"
    ERROR = "error"


def _sanitize_name(cls, name, /, field="name"):
    if not isinstance(name, str):
        raise TypeError(f"{cls.__typename__} {field!r} must be a string")
    elif not re.fullmatch(r"[A-Za-z0-9][A-Za-z0-9_-]*", name := name.strip()):
        raise ValueError(f"{cls.__typename__} {field!r} must start with a letter or digit and contain only letters, digits, '_' and '-'")
    return name


def _sanitize_identity(cls, metadata, /):
    """
    Internal: normalize name, aliases, descr and hidden shared by Command and Action.

    Mutates the provided metadata dict in place.
    """
    metadata["name"] = _sanitize_name(cls, metadata["name"])

    if isinstance(aliases := metadata["aliases"], str) or not isinstance(aliases, Iterable):
        raise TypeError(f"{cls.__typename__} 'aliases' must be an iterable of strings")
    aliases = tuple(_sanitize_name(cls, alias, "aliases") for alias in aliases)
    seen = {metadata["name"].lower()}
    for alias in aliases:
        if alias.lower() in seen:
            raise ValueError(f"{cls.__typename__} alias {alias!r} is repeated")
        seen.add(alias.lower())
    metadata["aliases"] = aliases

    if not isinstance(descr := metadata["descr"], str | Text | Unset):
        raise TypeError(f"{cls.__typename__} 'descr' must be a string")
    elif isinstance(descr, str):
        descr = descr.strip() or Unset
    metadata["descr"] = coalesce(descr)

    metadata["hidden"] = bool(metadata["hidden"])


def _sanitize_extras(cls, metadata, /):
    """
    Internal: normalize hooks and exit-code mappings shared by Command and Action.
    """
    if not isinstance(hooks := metadata["hooks"], Iterable):
        raise TypeError(f"{cls.__typename__} 'hooks' must be an iterable of hooks")
    hooks = list(hooks)
    if not all(isinstance(hook, Hook) for hook in hooks):
        raise TypeError(f"{cls.__typename__} 'hooks' must contain hooks")
    metadata["hooks"] = hooks

    if not isinstance(exitcodes := metadata["exitcodes"], Iterable):
        raise TypeError(f"{cls.__typename__} 'exitcodes' must be an iterable of exit-code mappings")
    exitcodes = list(exitcodes)
    if not all(isinstance(mapping, MapExitCode) for mapping in exitcodes):
        raise TypeError(f"{cls.__typename__} 'exitcodes' must contain exit-code mappings")
    kinds = set()
    for mapping in exitcodes:
        if mapping.kind in kinds:
            raise ValueError(f"{cls.__typename__} exception kind {mapping.kind.__name__!r} is mapped twice")
        kinds.add(mapping.kind)
    metadata["exitcodes"] = exitcodes


class Hook(metaclass=NodeType):
    """
    Lifecycle hook specification.

    Handlers
    - before: handler(context) -> None | Cancel. It may also call context.cancel(message).
    - after:  handler(context, result) -> ignored.
    - error:  handler(context, exception) -> bool, True when the exception is handled.

    Handlers may be coroutine functions. Lower `order` runs first; equal orders
    keep declaration order.
    """

    __introspectable__ = (
        "phase",
        "handler",
        "order",
    )

    def __init__(self, phase, handler, /, order=0):
        try:
            phase = Phase(phase)
        except ValueError:
            raise ValueError(f"{type(self).__typename__} 'phase' must be one of: before, after, error") from None
        if not callable(handler):
            raise TypeError(f"{type(self).__typename__} 'handler' must be callable")
        if not isinstance(order, int) or isinstance(order, bool):
            raise TypeError(f"{type(self).__typename__} 'order' must be an integer")
        self._phase = phase
        self._handler = handler
        self._order = order


class MapExitCode(metaclass=NodeType):
    """
    Map an exception kind (and its subclasses) to a process exit code.

        MapExitCode(FileNotFoundError, ExitCode.FILE_NOT_FOUND)
    """

    __introspectable__ = (
        "kind",
        "code",
    )

    def __init__(self, kind, code, /):
        if not isinstance(kind, type) or not issubclass(kind, BaseException):
            raise TypeError(f"{type(self).__typename__} 'kind' must be an exception type")
        if not isinstance(code, int) or isinstance(code, bool):
            raise TypeError(f"{type(self).__typename__} 'code' must be an integer")
        self._kind = kind
        self._code = int(code)


def _process_source(cls, metadata, /):
    """
    Introspect the action callback: materialize parameter specs and injections.

    Responsibilities
    - Parameters whose default is an Option / Argument become specs, completed
      with the parameter name and annotation (see arguments.resolve).
    - Parameters whose default is an Injected marker are recorded as injections.
    - When explicit parameters were given, only injections are collected.

    Errors
    - TypeError on a non-callable or non-inspectable callback, or on a
      positional-only parameter the dispatcher could not supply.
    """
    callback = metadata["callback"]
    try:
        signature = inspect.signature(callback, eval_str=True)
    except TypeError:
        raise TypeError(f"{cls.__typename__} 'callback' must be callable") from None
    except ValueError:
        signature = None

    parameters = []
    injections = {}
    layout = []

    for parameter in (signature.parameters.values() if signature else ()):
        if parameter.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        default = parameter.default
        positional = parameter.kind is inspect.Parameter.POSITIONAL_ONLY

        if isinstance(default, Injected):
            injections[parameter.name] = default
            layout.append((parameter.name, positional, Unset))
        elif isinstance(default, Parameter):
            if metadata["parameters"] is Unset:
                annotation = parameter.annotation if parameter.annotation is not inspect.Parameter.empty else Unset
                parameters.append(spec := resolve(default, parameter.name, annotation))
                layout.append((spec.dest, positional, Unset))
            else:
                layout.append((parameter.name, positional, Unset))
        elif default is not inspect.Parameter.empty:
            layout.append((parameter.name, positional, default))
        elif metadata["parameters"] is Unset:
            raise TypeError(
                f"{cls.__typename__} callback parameter {parameter.name!r} must default to an option, an argument or an injection"
            )
        else:
            layout.append((parameter.name, positional, Unset))

    if metadata["parameters"] is Unset:
        metadata["parameters"] = parameters
    metadata["injections"] = injections
    metadata["layout"] = layout if signature else Unset


def _process_parameters(cls, metadata, /):
    """
    Internal: validate the parameter list of an action.

    Rules
    - every entry is an Option or Argument with a name
    - option long names, short names and destinations are unique
    - at most one collection Argument, and only as the last Argument
    """
    if not isinstance(parameters := metadata["parameters"], Iterable):
        raise TypeError(f"{cls.__typename__} 'parameters' must be an iterable of options and arguments")
    parameters = list(parameters)

    names, shorts, dests = set(), set(), set()
    arguments = []
    for parameter in parameters:
        if not isinstance(parameter, Option | Argument):
            raise TypeError(f"{cls.__typename__} 'parameters' must contain options and arguments")
        if parameter.name is Unset:
            raise ValueError(f"{cls.__typename__} parameters must be named")
        if parameter.name in names:
            raise ValueError(f"{cls.__typename__} parameter name {parameter.name!r} is already in use")
        names.add(parameter.name)
        if parameter.dest in dests:
            raise ValueError(f"{cls.__typename__} parameter destination {parameter.dest!r} is already in use")
        dests.add(parameter.dest)
        if isinstance(parameter, Option) and parameter.short is not Unset:
            if parameter.short in shorts:
                raise ValueError(f"{cls.__typename__} short name '-{parameter.short}' is already in use")
            shorts.add(parameter.short)
        if isinstance(parameter, Argument):
            arguments.append(parameter)

    for index, argument in enumerate(arguments):
        if argument.collection and index != len(arguments) - 1:
            raise ValueError(
                f"{cls.__typename__} collection argument {argument.name!r} must be the last positional argument"
            )

    metadata["parameters"] = parameters


def _claim(node, parent, /):
    """
    Internal: verify that `node` (Command or Action) may be attached under `parent`.

    Raises ValueError on a sibling name clash or, for commands, on an alias
    already used somewhere in the tree.
    """
    names = {name.lower() for name in node.names}

    for sibling in (*parent._children, *parent._actions):
        if clash := names & {name.lower() for name in sibling.names}:
            typeof = "subcommand" if parent.parent else "command"
            if isinstance(node, Action):
                typeof = "action"
            raise ValueError(f"{type(parent).__typename__} {typeof} name {min(clash)!r} is already in use")

    if isinstance(node, Command):
        taken = {alias.lower() for command in parent.root.walk() for alias in command.aliases}
        for command in node.walk():
            if clash := taken & {alias.lower() for alias in command.aliases}:
                raise ValueError(f"{type(parent).__typename__} alias {min(clash)!r} is already in use in the tree")
            taken |= {alias.lower() for alias in command.aliases}


class Action(metaclass=NodeType):
    """
    Invocable leaf of the command tree.

    Parameters
    - callback: Callable
      The action body; may be a coroutine function. Its return value is the
      result handed to after-hooks; an int (or ExitCode) sets the exit code.
    - name: str | Unset (defaults to the callback name, underscores to hyphens)
    - aliases: Iterable[str]
    - descr: str | Text | Unset (defaults to the callback docstring)
    - hidden: bool, excluded from help
    - primary: bool, invoked when the command context has no action token
    - parameters: Unset | Iterable[Option | Argument]
      Unset derives the specs from the callback's signature defaults.
    - hooks: Iterable[Hook]
    - exitcodes: Iterable[MapExitCode]
    """

    __introspectable__ = (
        "name",
        "aliases",
        "descr",
        "hidden",
        "primary",
        "parameters",
        "injections",
        "hooks",
        "exitcodes",
        "parent",
        "callback",
    )

    __displayable__ = (
        "name",
        "aliases",
        "primary",
        "parameters",
    )

    def __init__(
            self,
            callback,
            /,
            name=Unset,
            *,
            aliases=(),
            descr=Unset,
            hidden=False,
            primary=False,
            parameters=Unset,
            hooks=(),
            exitcodes=()
    ):
        if not callable(callback):
            raise TypeError(f"{type(self).__typename__} 'callback' must be callable")

        metadata = {
            "callback": callback,
            "name": coalesce(name, getattr(callback, "__name__", "").strip("_").replace("_", "-")),
            "aliases": aliases,
            "descr": coalesce(descr, inspect.getdoc(callback) or Unset),
            "hidden": hidden,
            "primary": bool(primary),
            "parameters": parameters,
            "hooks": hooks,
            "exitcodes": exitcodes,
            "parent": Unset,
        }
        _sanitize_identity(type(self), metadata)
        _sanitize_extras(type(self), metadata)
        _process_source(type(self), metadata)
        _process_parameters(type(self), metadata)

        for name, object in metadata.items():
            setattr(self, "_" + name, object)

    @property
    def names(self):
        return (self.name, *self.aliases)

    @property
    def options(self):
        return tuple(parameter for parameter in self._parameters if isinstance(parameter, Option))

    @property
    def arguments(self):
        return tuple(parameter for parameter in self._parameters if isinstance(parameter, Argument))

    def matches(self, token, /):
        return token.lower() in (name.lower() for name in self.names)

    def hook(self, phase, /, order=0):
        """
        Decorator registering an action-level hook.

            @deploy.hook("before")
            def authenticate(context): ...
        """
        def wrapper(handler, /):
            self._hooks.append(Hook(phase, handler, order))
            return handler
        return wrapper

    def exitcode(self, kind, code, /):
        """
        Map an exception kind to an exit code for this action; returns self.
        """
        mapping = MapExitCode(kind, code)
        if any(existing.kind is mapping.kind for existing in self._exitcodes):
            raise ValueError(f"{type(self).__typename__} exception kind {kind.__name__!r} is mapped twice")
        self._exitcodes.append(mapping)
        return self

    def call(self, keywords, /):
        """
        Invoke the callback with `keywords` (destination -> value).

        Positional-only callback parameters are passed positionally; parameters
        the dispatcher knows nothing about keep their own defaults.
        """
        if self._layout is Unset:
            return self._callback(**keywords)
        args, kwargs = [], {}
        for name, positional, default in self._layout:
            if name in keywords:
                value = keywords[name]
            elif positional and default is not Unset:
                value = default
            else:
                continue
            if positional:
                args.append(value)
            else:
                kwargs[name] = value
        return self._callback(*args, **kwargs)

    def __call__(self, *args, **kwargs):
        return self._callback(*args, **kwargs)


class Command(metaclass=NodeType):
    """
    Node of the command tree.

    Parameters
    - name: str, matched case-insensitively against the command path.
    - aliases: Iterable[str], unique across the whole tree.
    - descr: str | Text | Unset
    - hidden: bool, matchable but excluded from help
    - children: Iterable[Command]
    - actions: Iterable[Action]
    - hooks: Iterable[Hook], run before the action's own hooks of the same phase
    - exitcodes: Iterable[MapExitCode], consulted after the action's mappings
    """

    __introspectable__ = (
        "name",
        "aliases",
        "descr",
        "hidden",
        "parent",
        "children",
        "actions",
        "hooks",
        "exitcodes",
    )

    __displayable__ = (
        "name",
        "aliases",
        "children",
        "actions",
    )

    def __init__(
            self,
            name,
            /,
            *,
            aliases=(),
            descr=Unset,
            hidden=False,
            children=(),
            actions=(),
            hooks=(),
            exitcodes=()
    ):
        metadata = {
            "name": name,
            "aliases": aliases,
            "descr": descr,
            "hidden": hidden,
            "hooks": hooks,
            "exitcodes": exitcodes,
        }
        _sanitize_identity(type(self), metadata)
        _sanitize_extras(type(self), metadata)

        for name, object in metadata.items():
            setattr(self, "_" + name, object)
        self._parent = Unset
        self._children = []
        self._actions = []

        if isinstance(children, Command | Action) or not isinstance(children, Iterable):
            raise TypeError(f"{type(self).__typename__} 'children' must be an iterable of commands")
        if isinstance(actions, Command | Action) or not isinstance(actions, Iterable):
            raise TypeError(f"{type(self).__typename__} 'actions' must be an iterable of actions")
        for child in children:
            if not isinstance(child, Command):
                raise TypeError(f"{type(self).__typename__} 'children' must contain commands")
            self.add(child)
        for action in actions:
            if not isinstance(action, Action):
                raise TypeError(f"{type(self).__typename__} 'actions' must contain actions")
            self.add(action)

    @property
    def names(self):
        return (self.name, *self.aliases)

    @property
    def root(self):
        """
        Return the topmost command in the current command hierarchy.
        """
        child, parent = self, self.parent
        while parent:
            child, parent = parent, parent.parent
        return child

    @property
    def path(self):
        """
        Return the full ancestry from root to this command as a tuple.
        """
        path = [command := self]
        while command.parent:
            path.append(command := command.parent)
        return tuple(reversed(path))

    @property
    def primary(self):
        """
        The primary action of this command, or None.
        """
        return next((action for action in self._actions if action.primary), None)

    def walk(self):
        """
        Yield this command and every descendant command, depth first.
        """
        yield self
        for child in self._children:
            yield from child.walk()

    def child(self, token, /):
        """
        Return the child command matching `token` by name or alias (case-insensitive), or None.
        """
        token = token.lower()
        return next((child for child in self._children if token in map(str.lower, child.names)), None)

    def action_for(self, token, /):
        """
        Return the action matching `token` by name or alias (case-insensitive), or None.
        """
        return next((action for action in self._actions if action.matches(token)), None)

    def add(self, node, /):
        """
        Attach a Command (as child) or an Action; returns the node.
        """
        if not isinstance(node, Command | Action):
            raise TypeError(f"{type(self).__typename__} can only attach commands and actions")
        if node.parent:
            raise ValueError(f"{type(node).__typename__} {node.name!r} is already attached")
        if node is self or (isinstance(node, Command) and any(command is node for command in self.path)):
            raise ValueError(f"{type(self).__typename__} cannot contain itself")
        _claim(node, self)
        if isinstance(node, Action):
            if node.primary and self.primary:
                raise ValueError(f"{type(self).__typename__} {self.name!r} already has a primary action")
            self._actions.append(node)
        else:
            self._children.append(node)
        node._parent = self
        return node

    def command(self, source=Unset, /, **options):
        """
        Create and attach a child command.

        Modes
        - self.command("git", aliases=("g",)) -> Command
        - @self.command decorating a function -> Command named after the
          function, with that function as its primary action
        - @self.command(name="x", ...) -> decorator of the above
        """
        return command(source, parent=self, **options)

    def action(self, source=Unset, /, **options):
        """
        Decorator turning a callback into an Action attached to this command.

            @git.action(aliases=("ci",))
            def commit(message=Option("message", "m", required=True)): ...
        """
        @rename("action")
        def wrapper(source, /):
            if not callable(source):
                raise TypeError("@action() must be applied to a callable")
            return self.add(Action(source, **options))

        return wrapper(source) if source is not Unset else wrapper

    def hook(self, phase, /, order=0):
        """
        Decorator registering a command-level hook (runs for every action below).
        """
        def wrapper(handler, /):
            self._hooks.append(Hook(phase, handler, order))
            return handler
        return wrapper

    def exitcode(self, kind, code, /):
        """
        Map an exception kind to an exit code for this command; returns self.
        """
        mapping = MapExitCode(kind, code)
        if any(existing.kind is mapping.kind for existing in self._exitcodes):
            raise ValueError(f"{type(self).__typename__} exception kind {kind.__name__!r} is mapped twice")
        self._exitcodes.append(mapping)
        return self


def command(source=Unset, /, parent=Unset, **options):
    """
    Create a Command or return a decorator to build it later.

    Invocation modes
    - Named:     command("deploy", aliases=("d",)) -> Command
    - Callback:  command(func) -> Command named after func, func as primary action
    - Decorator: @command(name="x", descr=...) on a function

    Command options (aliases, descr, hidden, hooks, exitcodes, children, actions)
    go to the Command; `parameters` goes to the primary action.
    """
    if not isinstance(parent, Command | Unset):
        raise TypeError("command() 'parent' must be a command")

    def attach(node):
        return parent.add(node) if parent is not Unset else node

    if isinstance(source, str):
        return attach(Command(source, **options))

    @rename("command")
    def wrapper(source, /):
        if not callable(source):
            raise TypeError("@command() must be applied to a callable")
        keywords = dict(options)
        parameters = keywords.pop("parameters", Unset)
        name = keywords.pop("name", getattr(source, "__name__", "").strip("_").replace("_", "-"))
        keywords.setdefault("descr", inspect.getdoc(source) or Unset)
        node = Command(name, **keywords)
        node.add(Action(source, name, primary=True, hidden=True, parameters=parameters))
        return attach(node)

    return wrapper(source) if source is not Unset else wrapper


__all__ = (
    "Phase",
    "Hook",
    "MapExitCode",
    "Action",
    "Command",
    "command",
)

del NodeType
