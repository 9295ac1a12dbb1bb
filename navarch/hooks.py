"""
Hook orchestration: before-hooks, the action, then after- or error-hooks.

State machine
    idle -> before hooks -> (cancelled | action) -> (after hooks | error hooks) -> done

- Before-hooks run in order: command-level hooks (root first, then by `order`),
  then action-level hooks (by `order`). A hook cancels by returning Cancel(...)
  or calling context.cancel(...). Every before-hook still runs, but the action
  does not; the outcome is CANCELLED with the first cancellation message.
- After-hooks observe the result; they cannot change it or the exit code.
- Error-hooks each return a "handled" boolean. When any claims the exception the
  outcome is HANDLED with the exit code mapped from the exception kind
  (nearest ancestor in its MRO, action mappings before command mappings,
  innermost command first); otherwise the exception propagates.

Cooperative cancellation
- A CancellationSignal is threaded through the call. An action or hook that
  raises OperationCancelled (or asyncio.CancelledError) ends the dispatch as
  CANCELLED; neither after- nor error-hooks run in that case.

Hooks and actions may be coroutine functions; each step is awaited before the
next one starts. Orchestrator.execute() stays synchronous until a step returns
an awaitable, so plain actions may start event loops of their own.
"""
import asyncio
import enum
import inspect
import logging as logmod
import threading
from types import MappingProxyType

from .commands import Phase
from .faults import ExitCode, OperationCancelled
from .utils import Unset, coalesce

logging = logmod.getLogger(__name__)


class CancellationSignal:
    """
    Dispatch-wide cooperative cancellation flag (thread-safe).

        if signal.cancelled: ...
        signal.raise_if_cancelled()
    """

    __slots__ = ("_event", "_reason")

    def __init__(self):
        self._event = threading.Event()
        self._reason = None

    @property
    def cancelled(self):
        return self._event.is_set()

    @property
    def reason(self):
        return self._reason

    def cancel(self, reason="operation cancelled", /):
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise OperationCancelled(self._reason)

    def __bool__(self):
        return self.cancelled

    def __repr__(self):
        return "cancellation-signal(cancelled=%r)" % self.cancelled


class Cancel:
    """
    Explicit cancellation value returned by a before-hook.

        def authenticate(context):
            if not token():
                return Cancel("Authentication required")
    """

    __slots__ = ("message",)

    def __init__(self, message="execution cancelled", /):
        if not isinstance(message, str):
            raise TypeError("cancel() argument must be a string")
        self.message = message

    def __repr__(self):
        return "cancel(%r)" % self.message


class HookContext:
    """
    State shared by every hook of one dispatch (and injectable into actions).

    Attributes
    - command: the innermost Command of the resolved path
    - action: the resolved Action
    - path: tuple[Command, ...] from the root
    - arguments: tuple[str, ...], the argument vector being dispatched
    - values: ParameterValues of the action
    - globals: ParameterValues of the global options
    - signal: CancellationSignal
    - data: dict, free-form storage for hooks to talk to each other
    """

    def __init__(self, path, action, /, arguments=(), values=Unset, globals=Unset, signal=Unset):
        self.path = tuple(path)
        self.command = self.path[-1]
        self.action = action
        self.arguments = tuple(arguments)
        self.values = coalesce(values, MappingProxyType({}))
        self.globals = coalesce(globals, MappingProxyType({}))
        self.signal = coalesce(signal, CancellationSignal())
        self.data = {}
        self._messages = []
        self._cancelled = False

    @property
    def cancelled(self):
        return self._cancelled

    @property
    def message(self):
        """
        The first cancellation message, or None.
        """
        return self._messages[0] if self._messages else None

    @property
    def messages(self):
        return tuple(self._messages)

    def cancel(self, message="execution cancelled", /):
        """
        Request that the action is not invoked. Later before-hooks still run.
        """
        self._cancelled = True
        self._messages.append(message)

    def __repr__(self):
        return "hook-context(command=%r, action=%r, cancelled=%r)" % (
            self.command.name, self.action.name, self._cancelled
        )


class State(enum.Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    HANDLED = "handled"
    REJECTED = "rejected"
    HELP = "help"


class Outcome:
    """
    How a dispatch ended.

    - state: State
    - code: int, the process exit code
    - result: the action's return value (COMPLETED only)
    - reason: str | None, the cancellation message (CANCELLED only)
    - exception: the handled exception (HANDLED) or usage fault (REJECTED)
    """

    __slots__ = ("state", "code", "result", "reason", "exception")

    def __init__(self, state, code, /, result=None, reason=None, exception=None):
        self.state = state
        self.code = int(code)
        self.result = result
        self.reason = reason
        self.exception = exception

    def __repr__(self):
        return "outcome(state=%r, code=%r)" % (self.state.value, self.code)


async def settle(value, /):
    """
    Await `value` when it is awaitable, otherwise return it unchanged.
    """
    if inspect.isawaitable(value):
        return await value
    return value


def drive(steps, /):
    """
    Run the generator `steps` synchronously, sending each yielded value back.

    No event loop exists while steps stay synchronous; the first awaitable a
    step yields starts one (asyncio.run) that finishes the remaining steps.
    """
    try:
        step = next(steps)
        while not inspect.isawaitable(step):
            step = steps.send(step)
    except StopIteration as stop:
        return stop.value
    return asyncio.run(drive_async(steps, step))


async def drive_async(steps, step=Unset, /):
    """
    Run the generator `steps` inside the running loop, awaiting what it yields.

    Exceptions raised while awaiting are thrown back into `steps` at the yield.
    """
    try:
        if step is Unset:
            step = next(steps)
        while True:
            try:
                value = await settle(step)
            except (Exception, asyncio.CancelledError) as error:
                step = steps.throw(error)
            else:
                step = steps.send(value)
    except StopIteration as stop:
        return stop.value


def collect(path, action, phase, /):
    """
    Hooks of `phase` in execution order: command-level first, then action-level.
    """
    phase = Phase(phase)
    commands = [hook for command in path for hook in command.hooks if hook.phase is phase]
    actions = [hook for hook in action.hooks if hook.phase is phase]
    return sorted(commands, key=lambda hook: hook.order) + sorted(actions, key=lambda hook: hook.order)


def exit_code_for(exception, path, action, /, default=ExitCode.ERROR):
    """
    Resolve an exit code for `exception` by nearest-ancestor match.

    For each class in the exception's MRO (most derived first), the action's
    mappings are consulted, then the commands of `path` from innermost to root.
    """
    nodes = (action, *reversed(tuple(path)))
    for kind in type(exception).__mro__:
        for node in nodes:
            for mapping in node.exitcodes:
                if mapping.kind is kind:
                    return mapping.code
    return int(default)


def _explicit_code(result):
    if isinstance(result, int) and not isinstance(result, bool):
        return int(result)
    return int(ExitCode.SUCCESS)


class Orchestrator:
    """
    Run the hook state machine for one resolved action.

    Parameters
    - cancel_code: int, exit code of a cancelled dispatch
    - error_code: int, exit code of a handled exception without a mapping
    """

    def __init__(self, *, cancel_code=ExitCode.CANCELLED, error_code=ExitCode.ERROR):
        self._cancel_code = int(cancel_code)
        self._error_code = int(error_code)

    def _cancelled(self, context, reason):
        logging.warning("Dispatch of %r cancelled: %s", context.action.name, reason)
        return Outcome(State.CANCELLED, self._cancel_code, reason=reason)

    def steps(self, context, invoke, /):
        """
        The hook state machine as a generator for drive() / drive_async().

        Every handler and `invoke()` result is yielded; the driver sends back
        the settled value, or throws the exception raised while awaiting it.
        """
        path, action = context.path, context.action

        try:
            for hook in collect(path, action, Phase.BEFORE):
                logging.debug("Running before-hook %r", hook.handler)
                if isinstance(signal := (yield hook.handler(context)), Cancel):
                    context.cancel(signal.message)
        except (OperationCancelled, asyncio.CancelledError) as error:
            return self._cancelled(context, str(error) or context.signal.reason or "operation cancelled")

        if context.cancelled:
            return self._cancelled(context, context.message)

        try:
            logging.debug("Invoking action %r", action.name)
            result = yield invoke()
        except (OperationCancelled, asyncio.CancelledError) as error:
            return self._cancelled(context, str(error) or context.signal.reason or "operation cancelled")
        except Exception as error:
            logging.debug("Action %r raised %s", action.name, type(error).__name__)
            handled = False
            for hook in collect(path, action, Phase.ERROR):
                logging.debug("Running error-hook %r", hook.handler)
                if (yield hook.handler(context, error)):
                    handled = True
            if not handled:
                raise
            code = exit_code_for(error, path, action, self._error_code)
            logging.debug("Exception %s handled, exit code %d", type(error).__name__, code)
            return Outcome(State.HANDLED, code, exception=error)

        for hook in collect(path, action, Phase.AFTER):
            logging.debug("Running after-hook %r", hook.handler)
            yield hook.handler(context, result)

        return Outcome(State.COMPLETED, _explicit_code(result), result=result)

    def execute(self, context, invoke, /):
        """
        Execute hooks and `invoke()` (the bound action call) for `context`.

        Synchronous hooks and actions run without an event loop; one is started
        only when a hook or the action returns an awaitable.

        Returns
        - Outcome (COMPLETED, CANCELLED or HANDLED)

        Raises
        - the action's exception when no error-hook handles it
        """
        return drive(self.steps(context, invoke))

    async def run(self, context, invoke, /):
        """
        Coroutine flavour of execute() for callers inside a running loop.
        """
        return await drive_async(self.steps(context, invoke))


__all__ = (
    "CancellationSignal",
    "Cancel",
    "HookContext",
    "State",
    "Outcome",
    "Orchestrator",
    "collect",
    "drive",
    "drive_async",
    "exit_code_for",
    "settle",
)
