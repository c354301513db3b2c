"""
Path strategies: derive the path of a task's output from the task's input
paths and parameter values.

Every strategy is a pure callable `(inputs, params) -> path`. Evaluating a
strategy twice on the same inputs must give the same path, so that expected
outputs of a previous run can be found again and reused.
"""

from abc import ABC, abstractmethod
from typing import Callable

from .exceptions import SuffixNotFound

PathFunction = Callable[[dict[str, str], dict[str, str]], str]


class PathStrategy(ABC):
    """
    Derives an output path for one out-port.
    """

    @abstractmethod
    def __call__(self, inputs: dict[str, str], params: dict[str, str]) -> str:
        pass

    def required_inputs(self) -> list[str]:
        """
        Names of the in-ports the strategy reads.
        """
        return []


class StaticPath(PathStrategy):
    """
    Always the same path, regardless of inputs.

    >>> StaticPath('ref.fa.gz')({}, {})
    'ref.fa.gz'
    """

    def __init__(self, value: str):
        self.value = value

    def __call__(self, inputs: dict[str, str], params: dict[str, str]) -> str:
        return self.value

    def __repr__(self):
        return f'StaticPath({self.value!r})'


class ReplaceSuffix(PathStrategy):
    """
    Path of an input with its trailing suffix replaced.

    >>> ReplaceSuffix('in', '.gz', '')({'in': 'ref.fa.gz'}, {})
    'ref.fa'
    """

    def __init__(self, in_port: str, from_suffix: str, to_suffix: str):
        self.in_port = in_port
        self.from_suffix = from_suffix
        self.to_suffix = to_suffix

    def __call__(self, inputs: dict[str, str], params: dict[str, str]) -> str:
        path = inputs[self.in_port]
        if not path.endswith(self.from_suffix):
            raise SuffixNotFound(path, self.from_suffix)
        if self.from_suffix:
            path = path[: -len(self.from_suffix)]
        return path + self.to_suffix

    def required_inputs(self) -> list[str]:
        return [self.in_port]

    def __repr__(self):
        return f'ReplaceSuffix({self.in_port!r}, {self.from_suffix!r}, {self.to_suffix!r})'


class ExtendSuffix(PathStrategy):
    """
    Path of an input with a suffix appended.

    >>> ExtendSuffix('fastq', '.sai')({'fastq': 'a.fq'}, {})
    'a.fq.sai'
    """

    def __init__(self, in_port: str, suffix: str):
        self.in_port = in_port
        self.suffix = suffix

    def __call__(self, inputs: dict[str, str], params: dict[str, str]) -> str:
        return inputs[self.in_port] + self.suffix

    def required_inputs(self) -> list[str]:
        return [self.in_port]

    def __repr__(self):
        return f'ExtendSuffix({self.in_port!r}, {self.suffix!r})'


class CustomPath(PathStrategy):
    """
    Caller-supplied function over the input path map and the parameter map.
    The function must be deterministic and free of side effects.
    """

    def __init__(self, fn: PathFunction):
        self.fn = fn

    def __call__(self, inputs: dict[str, str], params: dict[str, str]) -> str:
        return str(self.fn(dict(inputs), dict(params)))

    def __repr__(self):
        return f'CustomPath({getattr(self.fn, "__name__", self.fn)})'
