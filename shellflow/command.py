"""
Shell command templates with port placeholders.

    {i:name}  path of the token received on in-port `name`
    {o:name}  path resolved for out-port `name`
    {p:name}  value of the token received on parameter port `name`

Placeholders inside a shell comment (an unquoted `#` at the start of a word,
up to the end of the line) are dependency-only: they declare a port, and the
task waits for its token, but the comment is left out of the executed command.

    bwa aln {i:ref} {i:fastq} > {o:sai} # {i:idxdone}
"""

import re
from dataclasses import dataclass

PLACEHOLDER_RE = re.compile(r'\{([iop]):([A-Za-z0-9_.\-]+)\}')

IN, OUT, PARAM = 'i', 'o', 'p'


@dataclass(frozen=True)
class Placeholder:
    kind: str
    name: str
    dependency_only: bool = False


def split_comments(template: str) -> list[tuple[str, bool]]:
    """
    Split a command into (text, is_comment) segments, following the shell rules
    for quotes and escapes closely enough for command templates.

    >>> split_comments('cat a > b # c')
    [('cat a > b ', False), ('# c', True), ('', False)]
    """
    segments: list[tuple[str, bool]] = []
    start = i = 0
    quote: str | None = None
    escaped = False
    while i < len(template):
        ch = template[i]
        if escaped:
            escaped = False
        elif ch == '\\' and quote != "'":
            escaped = True
        elif quote:
            if ch == quote:
                quote = None
        elif ch in '\'"':
            quote = ch
        elif ch == '#' and (i == 0 or template[i - 1].isspace()):
            end = template.find('\n', i)
            end = len(template) if end == -1 else end
            segments.append((template[start:i], False))
            segments.append((template[i:end], True))
            start = i = end
            continue
        i += 1
    segments.append((template[start:], False))
    return segments


class CommandTemplate:
    """
    Parsed command template.
    """

    def __init__(self, template: str):
        self.template = template
        self.segments = split_comments(template)
        self.placeholders: list[Placeholder] = []
        for text, is_comment in self.segments:
            for m in PLACEHOLDER_RE.finditer(text):
                self.placeholders.append(Placeholder(m.group(1), m.group(2), is_comment))

    def __str__(self):
        return self.template

    def _names(self, kind: str) -> list[str]:
        names: list[str] = []
        for ph in self.placeholders:
            if ph.kind == kind and ph.name not in names:
                names.append(ph.name)
        return names

    @property
    def in_ports(self) -> list[str]:
        return self._names(IN)

    @property
    def out_ports(self) -> list[str]:
        return self._names(OUT)

    @property
    def params(self) -> list[str]:
        return self._names(PARAM)

    def dependency_only(self) -> set[tuple[str, str]]:
        """
        (kind, name) of placeholders that appear only in comments.
        """
        in_command = {(ph.kind, ph.name) for ph in self.placeholders if not ph.dependency_only}
        return {(ph.kind, ph.name) for ph in self.placeholders if ph.dependency_only} - in_command

    def render(self, inputs: dict[str, str], outputs: dict[str, str], params: dict[str, str]) -> str:
        """
        Substitute placeholders, dropping comments that hold dependency-only
        placeholders.
        """
        values = {IN: inputs, OUT: outputs, PARAM: params}
        parts: list[str] = []
        for text, is_comment in self.segments:
            if is_comment and PLACEHOLDER_RE.search(text):
                if parts:
                    parts[-1] = parts[-1].rstrip(' \t')
                continue
            parts.append(PLACEHOLDER_RE.sub(lambda m: str(values[m.group(1)][m.group(2)]), text))
        return ''.join(parts)
