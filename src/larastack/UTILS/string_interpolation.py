"""
Utilities for string interpolation using environment variables.
"""
import re
from typing import Dict, List, Optional

class EnvironmentInterpolator:
    """
    Compose-style variable interpolation.
    Supports $$, $VAR, ${VAR}, ${VAR:-default}, ${VAR-default},
    ${VAR:+value}, ${VAR+value}, ${VAR:?error} and ${VAR?error}. A default
    may itself reference a variable, as in ${VAR:-${OTHER}}.
    """
    # Group 1: escaped '$$'
    # Group 2: braced name, group 3: operator, group 4: operand, which may hold
    # one level of nested ${...}
    # Group 5: bare name
    PATTERN = re.compile(
        r'(\$\$)'
        r'|\$\{([A-Za-z_][A-Za-z0-9_]*)(?:(:?[-+?])((?:\$\{[^{}]*\}|[^}])*))?\}'
        r'|\$([A-Za-z_][A-Za-z0-9_]*)'
    )

    @classmethod
    def interpolate(cls, template: str, context: Dict[str, str],
                    missing: Optional[List[str]] = None) -> str:
        """
        Interpolates environment variables in the template string using the provided context.

        :param template: The string containing ${VAR} placeholders.
        :param context: The environment variables context.
        :param missing: If given, names of unset variables without a default are appended here.
        :return: The interpolated string.
        :raises KeyError: If a ``?`` variable is unset (or empty with ``:?``).
        """
        def replace(match):
            if match.group(1):
                return '$'

            name = match.group(2) or match.group(5)
            operator = match.group(3)
            operand = match.group(4) or ''
            value = context.get(name)
            # With ':' the operator treats an empty value like an unset one
            present = bool(value) if operator and operator.startswith(':') else value is not None

            if operator in ('-', ':-'):
                return value if present else cls.interpolate(operand, context, missing)
            if operator in ('+', ':+'):
                return cls.interpolate(operand, context, missing) if present else ''
            if operator in ('?', ':?'):
                if not present:
                    raise KeyError(cls.interpolate(operand, context) or f"required variable {name} is missing a value")
                return value

            if value is None:
                if missing is not None:
                    missing.append(name)
                return ''
            return value

        return cls.PATTERN.sub(replace, template)
