"""Routing utilities."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, Mapping, MutableMapping, Sequence

import rure
from rure.regex import RegexObject

if TYPE_CHECKING:
    from .requests import Request
    from .responses import Response

Endpoint = Callable[["Request"], Awaitable["Response"]]


_PATH_PARAM_PATTERN = re.compile(r"{([a-zA-Z_][a-zA-Z0-9_]*)(?::([a-zA-Z_][a-zA-Z0-9_]*))?}")
_REGEX_META = frozenset("\\.+*?()|[]{}^$#&-~")


@dataclass(slots=True)
class Route:
    path: str
    methods: tuple[str, ...]
    endpoint: Endpoint
    pattern: RegexObject
    param_names: tuple[str, ...]
    name: str | None = None


@dataclass(slots=True)
class RouteMatch:
    route: Route
    params: Mapping[str, str]


class MethodNotAllowed(LookupError):
    """The path exists but not for the requested method."""

    def __init__(self, method: str, path: str, allowed: Sequence[str]) -> None:
        super().__init__(f"{method} not allowed for {path}")
        self.allowed = tuple(allowed)


class Router:
    def __init__(self) -> None:
        self._routes: list[Route] = []
        self._routes_by_method: dict[str, list[Route]] = {}

    @property
    def routes(self) -> tuple[Route, ...]:
        return tuple(self._routes)

    def add_route(
        self,
        path: str,
        *,
        methods: Sequence[str],
        endpoint: Endpoint,
        name: str | None = None,
    ) -> Route:
        pattern, param_names = _compile_path(path)
        normalized_methods = tuple(dict.fromkeys(m.upper() for m in methods))
        route = Route(
            path=path,
            methods=normalized_methods,
            endpoint=endpoint,
            pattern=pattern,
            param_names=param_names,
            name=name,
        )
        self._routes.append(route)
        for method in normalized_methods:
            self._routes_by_method.setdefault(method, []).append(route)
        return route

    def find(self, method: str, path: str) -> RouteMatch:
        method = method.upper()
        for route in self._routes_by_method.get(method, ()):
            captures = route.pattern.match(path)
            if captures is None:
                continue
            params: MutableMapping[str, str] = {}
            for name in route.param_names:
                group = captures.group(name)
                if group is None:
                    continue
                params[name] = group
            return RouteMatch(route=route, params=params)
        allowed = [m for route in self._routes if route.pattern.match(path) is not None for m in route.methods]
        if allowed:
            raise MethodNotAllowed(method, path, tuple(dict.fromkeys(allowed)))
        raise LookupError(f"No route matches {method} {path}")

    def url_for(self, name: str) -> str:
        for route in self._routes:
            if route.name == name:
                return route.path
        raise LookupError(f"No route named {name!r}")


def _escape(literal: str) -> str:
    return "".join(f"\\{char}" if char in _REGEX_META else char for char in literal)


def _compile_path(path: str) -> tuple[RegexObject, tuple[str, ...]]:
    param_names: list[str] = []
    pieces: list[str] = []
    position = 0
    for match in _PATH_PARAM_PATTERN.finditer(path):
        pieces.append(_escape(path[position : match.start()]))
        name = match.group(1)
        converter = match.group(2)
        param_names.append(name)
        if converter is None:
            pieces.append(f"(?P<{name}>[^/]+)")
        elif converter == "path":
            pieces.append(f"(?P<{name}>.*)")
        else:
            raise ValueError(f"Unsupported path converter: {converter}")
        position = match.end()
    pieces.append(_escape(path[position:]))
    return rure.compile("^" + "".join(pieces) + "$"), tuple(param_names)


__all__ = ["MethodNotAllowed", "Route", "RouteMatch", "Router"]
