"""
Dockerfile reader for the checks that look at the application image.
"""
import json
import re
from typing import Iterator, List
from ..MODELS.dockerfile_ast import DockerfileAST, Instruction

KEY_VALUE_INSTRUCTIONS = ("ENV", "ARG", "LABEL")


class DockerfileParser:
    """
    Reads the instructions of a Dockerfile into a :class:`DockerfileAST`.

    One entry per instruction. Exec-form arguments are decoded from JSON, and
    ``KEY=VALUE`` pairs are split for ENV, ARG and LABEL. Keywords are
    case-insensitive.
    """
    ESCAPE_DIRECTIVE = re.compile(r'^#\s*escape\s*=\s*([\\`])$', re.IGNORECASE)
    KEYWORD = re.compile(r'^[A-Za-z]+$')

    def parse(self, dockerfile_path: str) -> DockerfileAST:
        with open(dockerfile_path, 'r') as f:
            return self.parse_from_string(f.read())

    def parse_from_string(self, content: str) -> DockerfileAST:
        instructions = []
        for line in self._logical_lines(content):
            words = line.split(None, 1)
            if not self.KEYWORD.match(words[0]):
                continue
            keyword = words[0].upper()
            rest = words[1] if len(words) > 1 else ''
            instructions.append(Instruction(
                instruction=keyword,
                arguments=self._arguments(keyword, rest),
                raw=line,
            ))
        return DockerfileAST(instructions=instructions)

    def _logical_lines(self, content: str) -> Iterator[str]:
        """
        Joins continuation lines and drops comments. The escape character
        is ``\\`` unless the first line sets another with ``# escape=``.
        """
        lines = content.splitlines()
        escape = '\\'
        if lines:
            directive = self.ESCAPE_DIRECTIVE.match(lines[0].strip())
            if directive:
                escape = directive.group(1)

        pending: List[str] = []
        for line in lines:
            stripped = line.strip()
            # comments and blank lines may sit inside a continuation
            if stripped.startswith('#') or (not stripped and pending):
                continue
            if stripped.endswith(escape):
                pending.append(stripped[:-1].strip())
                continue
            pending.append(stripped)
            joined = ' '.join(part for part in pending if part)
            pending = []
            if joined:
                yield joined
        joined = ' '.join(part for part in pending if part)
        if joined:
            yield joined

    @staticmethod
    def _arguments(keyword: str, rest: str) -> List[str]:
        if rest.startswith('[') and rest.endswith(']'):
            try:
                decoded = json.loads(rest)
            except ValueError:
                decoded = None
            if isinstance(decoded, list):
                return [str(a) for a in decoded]
            return [rest]
        if keyword in KEY_VALUE_INSTRUCTIONS and '=' in rest:
            return re.findall(r'\S+=\S+', rest)
        return [rest] if rest else []
