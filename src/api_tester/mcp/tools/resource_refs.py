"""Resource URI templates for MCP exposure."""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import unquote

GREETING_TEMPLATE = "greeting://{name}"

_TEMPLATE_VARIABLE = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


@dataclass(frozen=True, slots=True)
class UriTemplate:
    """Level-1 URI template such as ``greeting://{name}``."""

    template: str
    pattern: re.Pattern[str]
    variables: tuple[str, ...]

    @classmethod
    def parse(cls, template: str) -> UriTemplate:
        variables: list[str] = []
        parts: list[str] = []
        position = 0
        for match in _TEMPLATE_VARIABLE.finditer(template):
            parts.append(re.escape(template[position : match.start()]))
            name = match.group(1)
            if name in variables:
                msg = f"duplicate template variable: {name}"
                raise ValueError(msg)
            variables.append(name)
            parts.append(f"(?P<{name}>[^/?#]+)")
            position = match.end()
        parts.append(re.escape(template[position:]))
        return cls(
            template=template,
            pattern=re.compile("^" + "".join(parts) + "$"),
            variables=tuple(variables),
        )

    def match(self, uri: str) -> dict[str, str] | None:
        """Return decoded template variables, or `None` when `uri` does not fit."""
        found = self.pattern.match(uri)
        if found is None:
            return None
        return {name: unquote(value) for name, value in found.groupdict().items()}


async def read_greeting(uri: str, variables: dict[str, str]) -> str:
    return f"Hello, {variables['name']}!"
