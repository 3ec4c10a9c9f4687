"""
Managers for handling environment variables and .env file resolution.
"""
import os
from typing import Dict, List, Optional
from ..PARSERS.env_parser import EnvParser

class EnvironmentManager:
    """
    Builds the variable context used to interpolate a compose file, and loads
    the application's own .env file.
    """
    def __init__(self, base_dir: str = ".", environ: Optional[Dict[str, str]] = None):
        """
        Initializes the environment manager.

        :param base_dir: The compose project directory; relative .env paths resolve against it.
        :param environ: The process environment. Defaults to ``os.environ``.
        """
        self.base_dir = base_dir
        self.environ = dict(os.environ) if environ is None else dict(environ)

    def load(self, env_file: str) -> Dict[str, str]:
        """
        Loads a single .env file. A missing file yields an empty mapping.
        """
        path = env_file if os.path.isabs(env_file) else os.path.join(self.base_dir, env_file)
        if not os.path.exists(path):
            return {}
        return EnvParser.parse(path)

    def interpolation_context(self, env_files: Optional[List[str]] = None) -> Dict[str, str]:
        """
        Merges the project .env files (later files override earlier ones) and
        the process environment, which overrides everything, as compose does.

        :param env_files: .env files to read. Defaults to the project ``.env``.
        :return: The variables available for ``${VAR}`` substitution.
        """
        context: Dict[str, str] = {}
        for env_file in env_files if env_files is not None else ['.env']:
            context.update(self.load(env_file))
        context.update(self.environ)
        return context
