"""Route named actions to handlers with the right runtime prepared."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from langchain_core.tools import StructuredTool
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .actions import ActionSpec, collect_actions
from .api_requests import ApiRequestsFeature
from .codegen import CodegenFeature, CodegenSessionManager, PlaywrightTestGenerator
from .codegen.manager import CodegenBackend
from .config import ServerConfig
from .console_log import ConsoleLogStore
from .errors import ActionError
from .models import ActionKind, ExecutionResult, RecordedAction, ToolCall
from .network_inspector import NetworkInspectorFeature
from .page_actions import PageActionsFeature
from .responses import ResponseCorrelator
from .session import BrowserSessionManager


class ActionDispatcher:
    """
    Single entry point for action calls.

    Every call returns an ``ExecutionResult``; failures never propagate to the
    caller. Browser actions get a ready page, API actions the shared request
    context, and state/codegen actions run without launching anything. When a
    codegen session is active, each non-codegen call is recorded into it
    whatever its outcome.
    """

    def __init__(
        self,
        session_manager: BrowserSessionManager,
        codegen: CodegenSessionManager,
        features: Iterable[Any],
        logger: Optional[logging.Logger] = None,
    ):
        self.session_manager = session_manager
        self.codegen = codegen
        self.logger = logger or logging.getLogger(__name__)
        self._catalog: Dict[str, ActionSpec] = {}
        for feature in features:
            for spec in collect_actions(feature):
                if spec.name in self._catalog:
                    raise ValueError(f"Duplicate action name: {spec.name}")
                self._catalog[spec.name] = spec
        self._tools: List[Any] = []

    @classmethod
    def create(
        cls,
        config: Optional[ServerConfig] = None,
        driver_factory: Optional[Callable[[], Any]] = None,
        backend: Optional[CodegenBackend] = None,
        logger: Optional[logging.Logger] = None,
    ) -> "ActionDispatcher":
        """Wire the default feature set around one browser session."""
        cfg = config or ServerConfig()
        log = logger or logging.getLogger("playwright_actions")
        console_store = ConsoleLogStore(cfg.console_log_limit)
        correlator = ResponseCorrelator(
            timeout_ms=cfg.response_timeout_ms,
            max_body_chars=cfg.response_body_limit,
            logger=log,
        )
        session_manager = BrowserSessionManager(
            config=cfg,
            console_store=console_store,
            correlator=correlator,
            driver_factory=driver_factory,
            logger=log,
        )
        codegen = CodegenSessionManager(backend or PlaywrightTestGenerator(), logger=log)
        features = [
            PageActionsFeature(session_manager, config=cfg, logger=log),
            NetworkInspectorFeature(console_store, correlator, logger=log),
            ApiRequestsFeature(config=cfg, logger=log),
            CodegenFeature(codegen, logger=log),
        ]
        return cls(session_manager, codegen, features, logger=log)

    @property
    def catalog(self) -> Mapping[str, ActionSpec]:
        return dict(self._catalog)

    def names(self) -> List[str]:
        return sorted(self._catalog)

    async def dispatch_call(self, call: ToolCall) -> ExecutionResult:
        return await self.dispatch(call.name, call.arguments)

    async def dispatch(self, name: str, arguments: Optional[Mapping[str, Any]] = None) -> ExecutionResult:
        spec = self._catalog.get(name)
        if spec is None:
            return ExecutionResult.error(f"Unknown tool: {name}")

        args = dict(arguments or {})
        started = time.monotonic()
        result = await self._execute(spec, args)
        self.logger.debug(
            "Action %s finished in %.0fms (success=%s)",
            name,
            (time.monotonic() - started) * 1000,
            result.success,
        )

        if spec.kind != ActionKind.CODEGEN:
            self._record(spec, args, result)
        return result

    def get_tools(self) -> List[Any]:
        """Export every action as a langchain tool that routes through ``dispatch``."""
        if self._tools:
            return self._tools

        tools: List[Any] = []
        for name in self.names():
            spec = self._catalog[name]
            tools.append(
                StructuredTool.from_function(
                    coroutine=self._tool_coroutine(name),
                    name=name,
                    description=spec.description,
                    args_schema=spec.json_schema(),
                )
            )
        self._tools = tools
        return self._tools

    def _tool_coroutine(self, name: str) -> Callable[..., Any]:
        async def _run(**kwargs: Any) -> str:
            result = await self.dispatch(name, kwargs)
            return result.text

        _run.__name__ = name
        _run.__doc__ = self._catalog[name].description
        return _run

    async def _execute(self, spec: ActionSpec, args: Dict[str, Any]) -> ExecutionResult:
        try:
            kwargs = spec.bind(args)
            if spec.kind == ActionKind.BROWSER:
                requested = spec.launch_options(kwargs) if spec.launch_options else None
                page = await self.session_manager.ensure_page(requested)
                out = await spec.handler(page, **kwargs)
            elif spec.kind == ActionKind.API:
                api = await self.session_manager.ensure_api_context()
                out = await spec.handler(api, **kwargs)
            else:
                out = await spec.handler(**kwargs)
        except ActionError as e:
            self.logger.warning("Action %s failed: %s", spec.name, e)
            return ExecutionResult.error(str(e))
        except PlaywrightTimeoutError as e:
            self.logger.warning("Action %s timed out: %s", spec.name, e)
            return ExecutionResult.error(f"Operation timed out: {e}")
        except Exception as e:
            self.logger.exception("Action %s raised an unexpected error", spec.name)
            return ExecutionResult.error(f"Operation failed: {e}")
        return self._normalize(out)

    def _normalize(self, out: Any) -> ExecutionResult:
        if isinstance(out, ExecutionResult):
            return out
        if out is None:
            return ExecutionResult.ok()
        if isinstance(out, (list, tuple)):
            return ExecutionResult.ok(*out)
        return ExecutionResult.ok(str(out))

    def _record(self, spec: ActionSpec, args: Dict[str, Any], result: ExecutionResult) -> None:
        session_id = self.codegen.active_session_id
        if session_id is None:
            return
        if result.success:
            outcome = "ok"
        else:
            outcome = result.messages[0].splitlines()[0] if result.messages else "error"
        try:
            stored = {param.name: args.get(param.wire_name, args.get(param.name)) for param in spec.params}
            self.codegen.record(
                session_id,
                RecordedAction(
                    tool_name=spec.name,
                    arguments=stored,
                    timestamp=time.time(),
                    outcome_summary=outcome,
                ),
            )
        except Exception as e:
            self.logger.warning("Failed to record %s into codegen session %s: %s", spec.name, session_id, e)
