# sandbox.py
# Isolated execution of model-authored Python.
#
# Each Sandbox owns one namespace dict that persists across the steps of a
# run. Scripts see restricted builtins, an import hook limited to the
# authorized modules, a print() that writes into a per-execution buffer, and
# one async function per registered tool. Nothing here touches process-wide
# state: spawned-task failures are collected through the sandbox's own
# asyncio proxy, not a global hook.
#
# Scripts never see real module objects. Imports return read-only views
# holding public names only, asyncio is reduced to its task helpers, and
# dunder or frame attributes are refused both at compile time and through
# getattr().

import ast
import asyncio
import builtins
import importlib
import inspect
import io
import json
import sys
import types
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel
from RestrictedPython.Guards import safer_getattr

from agent_script.errors import AgentError, AgentErrorCode
from agent_script.models import ScriptResult, ToolCallRecord
from agent_script.registry import ENDING_KINDS, BaseTool, ToolKind, ToolRegistry
from agent_script.utils import truncate_content

if TYPE_CHECKING:
    from agent_script.agent import CodeAgent

SCRIPT_FUNCTION_NAME = "__agent_script__"

SAFE_BUILTINS = (
    "abs", "all", "any", "ascii", "bin", "bool", "bytearray", "bytes", "callable", "chr",
    "complex", "dict", "divmod", "enumerate", "filter", "float", "format", "frozenset",
    "getattr", "hasattr", "hash", "hex", "id", "int", "isinstance", "issubclass", "iter",
    "len", "list", "map", "max", "min", "next", "object", "oct", "ord", "pow", "range",
    "repr", "reversed", "round", "set", "setattr", "slice", "sorted", "str", "sum",
    "super", "tuple", "type", "zip", "aiter", "anext", "__build_class__",
    "ArithmeticError", "AssertionError", "AttributeError", "Exception", "IndexError",
    "KeyError", "LookupError", "NameError", "NotImplementedError", "RuntimeError",
    "StopAsyncIteration", "StopIteration", "TimeoutError", "TypeError", "ValueError",
    "ZeroDivisionError", "True", "False", "None",
)

SCRIPT_ASYNCIO_NAMES = (
    "gather", "sleep", "wait", "wait_for", "as_completed", "shield",
    "TimeoutError", "CancelledError", "Event", "Lock", "Semaphore", "Queue",
    "FIRST_COMPLETED", "FIRST_EXCEPTION", "ALL_COMPLETED",
)

_MISSING = object()

ALLOWED_DUNDERS = frozenset({"__init__", "__name__"})

# Frames, tracebacks and event loops lead back to unrestricted globals.
FORBIDDEN_ATTRIBUTES = frozenset({
    "gi_frame", "cr_frame", "ag_frame", "tb_frame",
    "f_globals", "f_locals", "f_builtins", "f_back",
    "get_loop", "_loop", "_get_loop",
})


class ForbiddenAccessError(Exception):
    """Raised when a script reaches for interpreter internals."""


def is_forbidden_attribute(name: str) -> bool:
    if name in ALLOWED_DUNDERS:
        return False
    return name.startswith("__") or name in FORBIDDEN_ATTRIBUTES


def _guard_attribute(name: Any) -> None:
    if isinstance(name, str) and is_forbidden_attribute(name):
        raise ForbiddenAccessError(f"Access to attribute '{name}' is not allowed")


def _safe_getattr(obj, name, *default):
    """getattr() for scripts: RestrictedPython's guard plus the frame/loop names."""
    _guard_attribute(name)
    value = safer_getattr(obj, name, _MISSING)
    if value is not _MISSING:
        return value
    if default:
        return default[0]
    raise AttributeError(f"{type(obj).__name__!r} object has no attribute {name!r}")


def _safe_hasattr(obj, name):
    try:
        _safe_getattr(obj, name)
    except AttributeError:
        return False
    return True


def _safe_setattr(obj, name, value):
    _guard_attribute(name)
    setattr(obj, name, value)


class BufferedConsole:
    """Collects everything a script prints."""

    def __init__(self) -> None:
        self._buffer = io.StringIO()

    def print(self, *args: Any, sep: str | None = " ", end: str | None = "\n", file: Any = None, flush: bool = False) -> None:
        sep = " " if sep is None else sep
        end = "\n" if end is None else end
        self._buffer.write(sep.join(str(arg) for arg in args) + end)

    log = print

    def get_output(self) -> str:
        return self._buffer.getvalue()


# ---------------------------------------------------------------------------
# Script compilation
# ---------------------------------------------------------------------------


def _top_level_bindings(statements: list[ast.stmt]) -> set[str]:
    """Names a script binds in its own top-level scope."""
    names: set[str] = set()
    stack: list[ast.AST] = list(statements)
    while stack:
        node = stack.pop()
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            names.add(node.name)
            stack.extend(node.decorator_list)
            continue
        if isinstance(node, (ast.Lambda, ast.ListComp, ast.SetComp, ast.DictComp, ast.GeneratorExp)):
            continue
        if isinstance(node, ast.Name) and isinstance(node.ctx, (ast.Store, ast.Del)):
            names.add(node.id)
        elif isinstance(node, (ast.Import, ast.ImportFrom)):
            for alias in node.names:
                if alias.name != "*":
                    names.add(alias.asname or alias.name.split(".")[0])
        elif isinstance(node, ast.ExceptHandler) and node.name:
            names.add(node.name)
        elif isinstance(node, (ast.Global, ast.Nonlocal)):
            continue
        stack.extend(ast.iter_child_nodes(node))
    return names


def check_script(tree: ast.AST) -> None:
    """Refuse dunder names and introspection attributes anywhere in a script."""
    for node in ast.walk(tree):
        if isinstance(node, ast.Attribute):
            _guard_attribute(node.attr)
        elif isinstance(node, ast.Name) and is_forbidden_attribute(node.id):
            raise ForbiddenAccessError(f"Access to name '{node.id}' is not allowed")
        elif isinstance(node, ast.alias) and any(part.startswith("_") for part in node.name.split(".")):
            raise ForbiddenAccessError(f"Import of private name '{node.name}' is not allowed")
        elif isinstance(node, ast.MatchClass):
            for attr in node.kwd_attrs:
                _guard_attribute(attr)


def compile_script(code: str) -> types.CodeType:
    """
    Wrap a script in `async def __agent_script__()`.

    Top-level bindings are declared global so they land in the sandbox
    namespace, and `return` / `await` are legal at the script's top level.
    Raises SyntaxError, or ForbiddenAccessError for scripts that touch
    interpreter internals.
    """
    tree = ast.parse(code, filename="<agent-script>", mode="exec")
    check_script(tree)
    wrapper = ast.parse(f"async def {SCRIPT_FUNCTION_NAME}():\n    pass\n")
    function = wrapper.body[0]

    body: list[ast.stmt] = []
    bindings = _top_level_bindings(tree.body)
    if bindings:
        body.append(ast.Global(names=sorted(bindings)))
    body.extend(tree.body or [ast.Pass()])
    function.body = body

    ast.fix_missing_locations(wrapper)
    return compile(wrapper, "<agent-script>", "exec")


def _render_value(value: Any) -> str:
    if isinstance(value, BaseModel):
        return value.model_dump_json(indent=2)
    try:
        return json.dumps(value, indent=2, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return repr(value)


# ---------------------------------------------------------------------------
# Sandbox
# ---------------------------------------------------------------------------


class _ScriptAsyncio(types.ModuleType):
    """
    asyncio as seen by scripts.

    Only the task helpers in SCRIPT_ASYNCIO_NAMES are exposed; loops,
    subprocesses and streams are not. Fire-and-forget tasks are tracked.
    """

    def __init__(self, sandbox: "Sandbox") -> None:
        # Not "asyncio": from-imports fall back to sys.modules["<__name__>.<attr>"].
        super().__init__("script_asyncio")
        for name in SCRIPT_ASYNCIO_NAMES:
            setattr(self, name, getattr(asyncio, name))

        def create_task(coro, **kwargs):
            sandbox._scheduled.append(coro)
            task = asyncio.create_task(coro, **kwargs)
            sandbox._spawned.append(task)
            return task

        def ensure_future(obj, **kwargs):
            sandbox._scheduled.append(obj)
            future = asyncio.ensure_future(obj, **kwargs)
            sandbox._spawned.append(future)
            return future

        self.create_task = create_task
        self.ensure_future = ensure_future


class Sandbox:
    """
    Script executor bound to one agent.

    Example:
        sandbox = Sandbox(registry, agent, authorized_imports=["math"])
        outcome = await sandbox.execute_script("x = await final_answer('42')")
    """

    def __init__(
        self,
        registry: ToolRegistry,
        agent: "CodeAgent",
        authorized_imports: list[str] | tuple[str, ...] = (),
        timeout: float | None = None,
    ) -> None:
        self.registry = registry
        self.agent = agent
        self.authorized_imports = list(authorized_imports)
        self.timeout = timeout
        self._asyncio = _ScriptAsyncio(self)
        self._spawned: list[asyncio.Future] = []
        self._scheduled: list[Any] = []
        self.reset()

    def reset(self) -> None:
        """Drop every variable the scripts have created."""
        self.namespace: dict[str, Any] = {
            "__name__": "__agent_sandbox__",
            "__builtins__": self._build_builtins(),
        }

    @property
    def variables(self) -> dict[str, Any]:
        return {
            k: v for k, v in self.namespace.items() if not k.startswith("__") and k not in self.registry
        }

    # ------------------------------------------------------------------
    # Namespace construction
    # ------------------------------------------------------------------

    def _build_builtins(self) -> dict[str, Any]:
        safe = {name: getattr(builtins, name) for name in SAFE_BUILTINS if hasattr(builtins, name)}
        safe["__import__"] = self._restricted_import
        safe["print"] = print
        safe["getattr"] = _safe_getattr
        safe["hasattr"] = _safe_hasattr
        safe["setattr"] = _safe_setattr
        return safe

    def _is_authorized(self, name: str) -> bool:
        return any(name == module or name.startswith(module + ".") for module in self.authorized_imports)

    def _restricted_import(self, name, globals=None, locals=None, fromlist=(), level=0):
        if level != 0 or name.startswith("asyncio.") or not self._is_authorized(name):
            raise ImportError(
                f"Import of '{name}' is not allowed. Authorized imports are: {self.authorized_imports}"
            )
        module = importlib.import_module(name)
        if not fromlist:
            module = sys.modules[name.partition(".")[0]]
        return self._module_view(module, {})

    def _module_view(self, module: types.ModuleType, seen: dict[str, Any]) -> types.ModuleType:
        """
        Copy of a module's public names.

        Submodules are kept only when they are authorized themselves, so an
        allowed module cannot hand out `sys` or `os` by way of its imports.
        """
        if module.__name__ == "asyncio":
            return self._asyncio
        if module.__name__ in seen:
            return seen[module.__name__]

        view = types.ModuleType(module.__name__, module.__doc__)
        seen[module.__name__] = view
        for key, value in vars(module).items():
            if key.startswith("_"):
                continue
            if isinstance(value, types.ModuleType):
                if value.__name__.startswith("asyncio.") or not self._is_authorized(value.__name__):
                    continue
                value = self._module_view(value, seen)
            setattr(view, key, value)
        return view

    def _make_binding(self, tool: BaseTool, calls: list[ToolCallRecord], created: list):
        registry, agent = self.registry, self.agent

        async def invoke(input: Any) -> Any:
            value = await registry.invoke(tool.name, input, agent)
            calls.append(ToolCallRecord(tool_name=tool.name, kind=tool.kind.value, return_value=value))
            return value

        def binding(*args: Any, **kwargs: Any):
            if len(args) > 1 or (args and kwargs):
                raise TypeError(f"{tool.name}() takes one input object or keyword arguments, not both")
            coro = invoke(args[0] if args else kwargs)
            created.append((tool.name, coro))
            return coro

        binding.__name__ = tool.name
        binding.__doc__ = tool.description
        return binding

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute_script(self, code: str) -> ScriptResult:
        console = BufferedConsole()
        calls: list[ToolCallRecord] = []
        created: list = []
        self._spawned = []
        self._scheduled = []

        self.namespace["__builtins__"]["print"] = console.print
        for tool in self.registry:
            self.namespace[tool.name] = self._make_binding(tool, calls, created)

        try:
            compiled = compile_script(code)
        except (SyntaxError, ForbiddenAccessError) as exc:
            raise AgentError(
                f"Script execution failed: {type(exc).__name__}: {exc}", AgentErrorCode.SCRIPT_EXECUTION_FAILED
            ) from exc

        before = dict(self.namespace)
        exec(compiled, self.namespace)
        script = self.namespace.pop(SCRIPT_FUNCTION_NAME)

        try:
            if self.timeout is not None:
                result = await asyncio.wait_for(script(), self.timeout)
            else:
                result = await script()
        except AgentError:
            raise
        except asyncio.TimeoutError as exc:
            if self.timeout is None:
                raise self._script_failure(exc, console) from exc
            raise AgentError(
                f"Script execution failed: timed out after {self.timeout} seconds",
                AgentErrorCode.SCRIPT_EXECUTION_FAILED,
            ) from exc
        except Exception as exc:
            raise self._script_failure(exc, console) from exc
        finally:
            await self._collect_stray_work(console, created)

        rebound = [k for k, v in self.namespace.items() if k not in before or before[k] is not v]
        if rebound and calls:
            console.print(self.format_tool_call_results(rebound, calls))

        if any(c.kind == ToolKind.TERMINATE.value for c in calls) and len(calls) > 1:
            raise AgentError(
                "The terminate tool must be called on its own, in a separate step.",
                AgentErrorCode.PREMATURE_TERMINATE,
            )

        if result is None and calls:
            result = calls[-1].return_value

        ending = {kind.value for kind in ENDING_KINDS}
        return ScriptResult(
            result=result,
            output=console.get_output(),
            is_final_answer=any(c.kind in ending and c.return_value is not None for c in calls),
            tool_calls=calls,
        )

    @staticmethod
    def _script_failure(exc: Exception, console: BufferedConsole) -> AgentError:
        message = f"Script execution failed: {type(exc).__name__}: {exc}"
        output = console.get_output()
        if output:
            message += f"\nOutput before the failure:\n{truncate_content(output, 2000)}"
        return AgentError(message, AgentErrorCode.SCRIPT_EXECUTION_FAILED)

    async def _collect_stray_work(self, console: BufferedConsole, created: list) -> None:
        # Freshly scheduled tasks get one loop turn before coroutine states are read.
        await asyncio.sleep(0)
        for name, coro in created:
            if any(coro is scheduled for scheduled in self._scheduled):
                continue
            if inspect.getcoroutinestate(coro) == inspect.CORO_CREATED:
                coro.close()
                console.print(f"Warning: {name}() was called without await, so it did not run.")

        for task in self._spawned:
            if task.done() and not task.cancelled() and task.exception() is not None:
                exc = task.exception()
                console.print(f"UnhandledTaskError: {type(exc).__name__}: {exc}")
        self._spawned = []
        self._scheduled = []

    def format_tool_call_results(self, variables: list[str], calls: list[ToolCallRecord]) -> str:
        """
        Render the call log, naming the variable that holds each result.

        The match is by identity and takes the first variable found, so it is
        only an annotation for the model, not a guaranteed mapping.
        """
        blocks = []
        for call in calls:
            variable = next((v for v in variables if self.namespace.get(v) is call.return_value), None)
            prefix = f"{variable} = " if variable else ""
            blocks.append(f"# Tool: {call.tool_name}\n{prefix}{_render_value(call.return_value)}")
        return "\n\n".join(blocks)
