"""Action declaration and argument schema helpers."""

from __future__ import annotations

import inspect
import re
import typing
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .errors import InvalidArguments
from .models import ActionKind, BrowserOptions

_MISSING = inspect.Parameter.empty
_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def to_snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", str(name)).lower()


def to_camel(name: str) -> str:
    head, *rest = str(name).split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def action(
    name: str,
    *,
    kind: ActionKind = ActionKind.BROWSER,
    launch_options: Optional[Callable[[Mapping[str, Any]], BrowserOptions]] = None,
    examples: Optional[List[str]] = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Mark a feature method as a dispatchable action."""

    def _decorate(func: Callable[..., Any]) -> Callable[..., Any]:
        setattr(func, "_is_action", True)
        setattr(func, "_action_name", name)
        setattr(func, "_action_kind", kind)
        setattr(func, "_action_launch_options", launch_options)
        setattr(func, "_action_examples", examples or [])
        return func

    return _decorate


@dataclass(frozen=True)
class ParamSpec:
    name: str
    wire_name: str
    annotation: Any
    required: bool
    default: Any = None

    def json_schema(self) -> Dict[str, Any]:
        return _json_type(self.annotation)


@dataclass(frozen=True)
class ActionSpec:
    """One catalog entry: name, execution kind, handler and declared arguments."""

    name: str
    kind: ActionKind
    handler: Callable[..., Any]
    params: Tuple[ParamSpec, ...]
    description: str
    launch_options: Optional[Callable[[Mapping[str, Any]], BrowserOptions]] = None

    def bind(self, arguments: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        """
        Normalize inbound arguments to handler keyword arguments.

        Keys may be camelCase or snake_case. Unknown keys are dropped, defaults
        fill optional parameters, and a missing required one raises.
        """
        raw = {to_snake(k): v for k, v in dict(arguments or {}).items()}
        out: Dict[str, Any] = {}
        missing: List[str] = []
        for param in self.params:
            value = raw.get(param.name)
            if value is None:
                if param.required:
                    missing.append(param.wire_name)
                    continue
                value = param.default
            out[param.name] = value
        if missing:
            raise InvalidArguments(
                f"Missing required argument(s) for {self.name}: {', '.join(missing)}"
            )
        return out

    def json_schema(self) -> Dict[str, Any]:
        properties = {p.wire_name: p.json_schema() for p in self.params}
        return {
            "type": "object",
            "properties": properties,
            "required": [p.wire_name for p in self.params if p.required],
        }


def collect_actions(feature: Any) -> List[ActionSpec]:
    """Build specs for every ``@action`` method on a feature instance."""
    specs: List[ActionSpec] = []
    for attr in dir(feature):
        method = getattr(feature, attr, None)
        if not callable(method) or not getattr(method, "_is_action", False):
            continue
        kind = getattr(method, "_action_kind")
        doc = inspect.getdoc(method) or f"Action: {method._action_name}"
        examples = list(getattr(method, "_action_examples", []) or [])
        if examples:
            doc = f"{doc}\n\nExamples:\n" + "\n".join(f"- {x}" for x in examples)
        specs.append(
            ActionSpec(
                name=str(method._action_name),
                kind=kind,
                handler=method,
                params=_signature_params(method, kind),
                description=doc,
                launch_options=getattr(method, "_action_launch_options", None),
            )
        )
    return specs


def _signature_params(method: Callable[..., Any], kind: ActionKind) -> Tuple[ParamSpec, ...]:
    try:
        hints = typing.get_type_hints(method)
    except Exception:
        hints = {}
    params = list(inspect.signature(method).parameters.values())
    # Browser and API handlers receive the page / request context positionally.
    if kind in (ActionKind.BROWSER, ActionKind.API) and params:
        params = params[1:]
    out: List[ParamSpec] = []
    for p in params:
        if p.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        out.append(
            ParamSpec(
                name=p.name,
                wire_name=to_camel(p.name),
                annotation=hints.get(p.name, Any),
                required=p.default is _MISSING,
                default=None if p.default is _MISSING else p.default,
            )
        )
    return tuple(out)


def _json_type(annotation: Any) -> Dict[str, Any]:
    origin = typing.get_origin(annotation)
    if origin is typing.Union:
        members = [a for a in typing.get_args(annotation) if a is not type(None)]
        return _json_type(members[0]) if members else {}
    if annotation is bool:
        return {"type": "boolean"}
    if annotation is int:
        return {"type": "integer"}
    if annotation is float:
        return {"type": "number"}
    if annotation is str:
        return {"type": "string"}
    if origin in (list, List):
        args = typing.get_args(annotation)
        item = _json_type(args[0]) if args else {}
        return {"type": "array", "items": item}
    if origin in (dict, Dict) or annotation is dict:
        return {"type": "object"}
    return {}
