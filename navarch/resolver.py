"""
Command resolution: walk the command tree along the leading tokens.

Contract
- Leading tokens that name a child command (by name or alias, case-insensitive)
  are consumed, descending one level each, until a token matches no child.
- The next token is then matched against the actions of that command context.
- With no token left (or an option token next), the primary action is the target.
- An unmatched token yields UnknownCommandError at the root (and in contexts that
  only hold subcommands) or UnknownActionError elsewhere, each with ranked
  suggestions. A context without an action to run yields NoActionSpecifiedError.

Resolution is a pure function of the tree and the tokens.
"""
import logging as logmod
from typing import NamedTuple

from .faults import FaultCode, UnknownCommandError, UnknownActionError, NoActionSpecifiedError, getdoc
from .similarity import find_similar

logging = logmod.getLogger(__name__)

COMMAND_DISTANCE = 3
ACTION_DISTANCE = 2
MAX_SUGGESTIONS = 3


class Resolution(NamedTuple):
    """
    Outcome of command resolution.

    - path: tuple[Command, ...] from the root to the command context
    - action: the target Action
    - tokens: tuple[str, ...] left for the binder
    """
    path: tuple
    action: object
    tokens: tuple


def _visible(nodes):
    return [name for node in nodes if not node.hidden for name in node.names]


def _route(path):
    return " ".join(command.name for command in path[1:])


def resolve(root, tokens, /):
    """
    Locate the target action for `tokens` in the tree rooted at `root`.

    Parameters
    - root: Command
    - tokens: Sequence[str], the argument vector without the program name

    Returns
    - Resolution

    Raises
    - UnknownCommandError, UnknownActionError, NoActionSpecifiedError
    """
    tokens = tuple(tokens)
    path = [root]
    index = 0

    while index < len(tokens) and not tokens[index].startswith("-"):
        if (child := path[-1].child(tokens[index])) is None:
            break
        logging.debug("Matched command %r from token %r", child.name, tokens[index])
        path.append(child)
        index += 1

    context = path[-1]
    token = tokens[index] if index < len(tokens) else None

    if token is not None and token != "--" and not token.startswith("-"):
        if (action := context.action_for(token)) is not None:
            logging.debug("Matched action %r from token %r", action.name, token)
            return Resolution(tuple(path), action, tokens[index + 1:])

        primary = context.primary
        if primary is not None and primary.arguments:
            # The token is the primary action's first positional value.
            logging.debug("Token %r goes to primary action %r", token, primary.name)
            return Resolution(tuple(path), primary, tokens[index:])

        if len(path) == 1 or not context.actions:
            candidates = _visible(context.children) + _visible(context.actions)
            suggestions = find_similar(token, candidates, max_distance=COMMAND_DISTANCE, max_results=MAX_SUGGESTIONS)
            where = "command %r" % _route(path) if len(path) > 1 else "the root command"
            raise UnknownCommandError(
                "unknown command %r under %s" % (token, where),
                title="unknown command",
                code=FaultCode.UNKNOWN_COMMAND,
                docs=getdoc(FaultCode.UNKNOWN_COMMAND),
                input=token,
                suggestions=suggestions,
                hint="run with --help to list the available commands",
                path=tuple(path),
            )

        candidates = _visible(context.actions) + _visible(context.children)
        suggestions = find_similar(token, candidates, max_distance=ACTION_DISTANCE, max_results=MAX_SUGGESTIONS)
        raise UnknownActionError(
            "unknown action %r for command %r" % (token, _route(path)),
            title="unknown action",
            code=FaultCode.UNKNOWN_ACTION,
            docs=getdoc(FaultCode.UNKNOWN_ACTION),
            input=token,
            suggestions=suggestions,
            hint="run '%s --help' to list its actions" % _route(path),
            path=tuple(path),
        )

    if (primary := context.primary) is not None:
        logging.debug("No action token, using primary action %r", primary.name)
        return Resolution(tuple(path), primary, tokens[index:])

    where = "command %r" % _route(path) if len(path) > 1 else "the root command"
    raise NoActionSpecifiedError(
        "no action specified for %s" % where,
        title="no action specified",
        code=FaultCode.NO_ACTION_SPECIFIED,
        docs=getdoc(FaultCode.NO_ACTION_SPECIFIED),
        hint="pick one of: %s" % ", ".join(_visible(context.actions) or _visible(context.children) or ["(none)"]),
        path=tuple(path),
    )


__all__ = (
    "Resolution",
    "resolve",
)
