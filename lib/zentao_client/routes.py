"""REST-style path to ZenTao ``?m=<module>&f=<function>`` translation.

This is a fixed lookup over path shapes, not a router. Shapes that are not
listed below raise :class:`TranslationError` instead of guessing a
module/function pair.

    GET    /products                  -> ?m=product&f=browse
    GET    /products/123              -> ?m=product&f=view       id=123
    PUT    /products/123              -> ?m=product&f=edit       id=123
    GET    /projects/123/executions   -> ?m=execution&f=browse   project=123
    POST   /stories/7/change          -> ?m=story&f=change       id=7
    GET    /index.php?m=my&f=todo     -> ?m=my&f=todo            (passthrough)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import parse_qsl

from .errors import TranslationError

METHODS = ("GET", "POST", "PUT", "DELETE")

_MODULES: dict[str, str] = {
    "products": "product",
    "product": "product",
    "projects": "project",
    "project": "project",
    "programs": "program",
    "program": "program",
    "executions": "execution",
    "execution": "execution",
    "stories": "story",
    "story": "story",
    "tasks": "task",
    "task": "task",
    "bugs": "bug",
    "bug": "bug",
    "testcases": "testcase",
    "testcase": "testcase",
    "productplans": "productplan",
    "productplan": "productplan",
    "plans": "productplan",
    "plan": "productplan",
    "builds": "build",
    "build": "build",
    "users": "user",
    "user": "user",
    "feedbacks": "feedback",
    "feedback": "feedback",
    "tickets": "ticket",
    "ticket": "ticket",
    "testtasks": "testtask",
    "testtask": "testtask",
    "releases": "release",
    "release": "release",
}

_COLLECTION_FUNCS = {"GET": "browse", "POST": "create"}
_ITEM_FUNCS = {"GET": "view", "PUT": "edit", "DELETE": "delete"}

# (parent module, child segment) -> (child module, parameter carrying the parent id)
_NESTED: dict[tuple[str, str], tuple[str, str]] = {
    ("project", "executions"): ("execution", "project"),
    ("project", "stories"): ("story", "project"),
    ("product", "stories"): ("story", "product"),
    ("execution", "tasks"): ("task", "execution"),
    ("project", "builds"): ("build", "project"),
    ("execution", "builds"): ("build", "execution"),
    ("product", "bugs"): ("bug", "product"),
    ("product", "testcases"): ("testcase", "product"),
    ("product", "plans"): ("productplan", "product"),
    ("product", "releases"): ("release", "product"),
    ("project", "releases"): ("release", "project"),
    ("project", "testtasks"): ("testtask", "project"),
}
_NESTED_FUNCS = {"GET": "browse", "POST": "create"}

_ACTIONS: dict[str, str] = {
    "linkstories": "linkstories",
    "unlinkstories": "unlinkstory",
    "linkbugs": "linkbug",
    "unlinkbugs": "unlinkbug",
    "assign": "assign",
    "close": "close",
    "change": "change",
    "activate": "activate",
}
_ACTION_METHODS = ("POST", "PUT")


@dataclass(frozen=True)
class TranslatedCall:
    module: str
    function: str
    params: dict[str, str] = field(default_factory=dict)

    @property
    def query(self) -> str:
        return f"?m={self.module}&f={self.function}"


def translate(method: str, path: str) -> TranslatedCall:
    verb = (method or "").upper()
    if verb not in METHODS:
        raise TranslationError(method, path, "unsupported method")

    trimmed = (path or "").lstrip("/")
    if trimmed.startswith("index.php?") or trimmed.startswith("?"):
        return _passthrough(verb, path, trimmed.split("?", 1)[1])

    trimmed = trimmed.rstrip("/")
    if not trimmed:
        raise TranslationError(verb, path, "empty path")
    parts = trimmed.split("/")
    if any(not p for p in parts):
        raise TranslationError(verb, path, "empty path segment")

    module = _MODULES.get(parts[0].lower())
    if module is None:
        raise TranslationError(verb, path, f"unknown resource {parts[0]!r}")

    if len(parts) == 1:
        func = _COLLECTION_FUNCS.get(verb)
        if func is None:
            raise TranslationError(verb, path, "method not allowed on a collection")
        return TranslatedCall(module, func)

    item_id = parts[1]
    if len(parts) == 2:
        func = _ITEM_FUNCS.get(verb)
        if func is None:
            raise TranslationError(verb, path, "method not allowed on a single resource")
        return TranslatedCall(module, func, {"id": item_id})

    if len(parts) == 3:
        child = parts[2].lower()
        nested = _NESTED.get((module, child))
        if nested is not None:
            func = _NESTED_FUNCS.get(verb)
            if func is None:
                raise TranslationError(verb, path, "method not allowed on a nested collection")
            child_module, parent_param = nested
            return TranslatedCall(child_module, func, {parent_param: item_id})
        action = _ACTIONS.get(child)
        if action is not None:
            if verb not in _ACTION_METHODS:
                raise TranslationError(verb, path, "actions require POST or PUT")
            return TranslatedCall(module, action, {"id": item_id})
        raise TranslationError(verb, path, f"unknown sub-resource {parts[2]!r}")

    raise TranslationError(verb, path, "too many path segments")


def _passthrough(verb: str, path: str, query: str) -> TranslatedCall:
    params = dict(parse_qsl(query, keep_blank_values=True))
    module = params.pop("m", "")
    function = params.pop("f", "")
    if not module or not function:
        raise TranslationError(verb, path, "RPC query needs both m and f")
    return TranslatedCall(module, function, params)
