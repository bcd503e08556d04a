from __future__ import annotations

import pprint
from functools import lru_cache
from typing import Any

from jinja2 import Environment, PackageLoader, StrictUndefined


def pyrepr(value: Any) -> str:
    """Python literal for `value`; dict keys come out sorted."""
    return pprint.pformat(value, indent=4, width=88, sort_dicts=True)


@lru_cache(maxsize=1)
def template_env() -> Environment:
    # Output is Python source and plain text; nothing is HTML.
    env = Environment(
        loader=PackageLoader("distforge", "templates"),
        autoescape=False,
        keep_trailing_newline=True,
        undefined=StrictUndefined,
    )
    env.filters["pyrepr"] = pyrepr
    return env


def render(template_name: str, **context: Any) -> str:
    return template_env().get_template(template_name).render(**context)
