"""
Stagehand Templating Engine

Jinja2-based rendering of task parameters against host and play variables.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from jinja2 import Environment, StrictUndefined, TemplateSyntaxError, UndefinedError

from stagehand.engine.errors import TemplateError


def _filter_bool(value: Any) -> bool:
    """yes/no/true/false/on/off/1/0 as a boolean."""
    if isinstance(value, str):
        return value.lower() in ('true', 'yes', '1', 'on')
    return bool(value)


def _now(fmt: Optional[str] = None) -> str:
    """Current local time, formatted with strftime or as ISO 8601."""
    current = datetime.now()
    if fmt:
        return current.strftime(fmt)
    return current.isoformat(timespec='seconds')


def date_time_vars() -> Dict[str, str]:
    """Timestamp facts exposed to templates as ``stagehand_date_time``."""
    current = datetime.now()
    return {
        'date': current.strftime('%Y-%m-%d'),
        'time': current.strftime('%H:%M:%S'),
        'iso8601': current.isoformat(timespec='seconds'),
        'epoch': str(int(current.timestamp())),
        'tz': current.astimezone().tzname() or '',
    }


class TemplateEngine:
    """
    Renders task parameters.

    Undefined variables are errors unless guarded with Jinja2's ``default``.
    Non-string values pass through untouched, and strings without template
    markers skip Jinja2 entirely.
    """

    def __init__(self):
        self.env = Environment(
            undefined=StrictUndefined,
            autoescape=False,
            keep_trailing_newline=True,
        )
        self.env.filters['bool'] = _filter_bool
        self.env.globals['now'] = _now

    def render(self, template_str: Any, variables: Dict[str, Any]) -> Any:
        """
        Render a template string with variables.

        Raises:
            TemplateError: If template is invalid or variable is undefined
        """
        if not isinstance(template_str, str):
            return template_str

        if '{{' not in template_str and '{%' not in template_str:
            return template_str

        try:
            return self.env.from_string(template_str).render(variables)
        except UndefinedError as e:
            raise TemplateError(f"Undefined variable: {e}", template=template_str)
        except TemplateSyntaxError as e:
            raise TemplateError(f"Template syntax error: {e}", template=template_str)

    def render_recursive(self, data: Any, variables: Dict[str, Any]) -> Any:
        """Render every string inside nested dicts and lists."""
        if isinstance(data, dict):
            return {k: self.render_recursive(v, variables) for k, v in data.items()}
        if isinstance(data, list):
            return [self.render_recursive(item, variables) for item in data]
        return self.render(data, variables)


_engine = TemplateEngine()


def render_recursive(data: Any, variables: Dict[str, Any]) -> Any:
    return _engine.render_recursive(data, variables)
