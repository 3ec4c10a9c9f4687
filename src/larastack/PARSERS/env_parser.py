"""
Reads ``.env`` files with python-dotenv.
"""
import io
from typing import Dict, Mapping, Optional
from dotenv import dotenv_values


def _blank_for_none(values: Mapping[str, Optional[str]]) -> Dict[str, str]:
    # a bare ``KEY`` line has no value
    return {key: value or '' for key, value in values.items()}


class EnvParser:
    """
    Laravel's ``.env`` and the compose project ``.env`` share one syntax:
    ``KEY=VALUE`` lines with optional quotes, ``export`` prefixes and ``#``
    comments. ``${VAR}`` references are returned verbatim; expanding them is
    up to the caller.
    """
    @staticmethod
    def parse(env_path: str) -> Dict[str, str]:
        """
        :raises FileNotFoundError: If ``env_path`` does not exist.
        """
        with open(env_path, 'r', encoding='utf-8') as stream:
            return _blank_for_none(dotenv_values(stream=stream, interpolate=False))

    @staticmethod
    def parse_from_string(content: str) -> Dict[str, str]:
        return _blank_for_none(dotenv_values(stream=io.StringIO(content), interpolate=False))
