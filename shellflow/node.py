"""
Base class for all workflow nodes, and the context a node runs in.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from .exceptions import OutputPathCollision, UnknownPort
from .ports import Direction, Port, PortKind


@dataclass
class TaskRecord:
    """
    Summary of one task of a process, kept on the run result.
    """

    process: str
    command: str
    inputs: dict[str, str]
    params: dict[str, str]
    outputs: dict[str, str]
    skipped: bool = False


@dataclass
class RunContext:
    """
    Runtime state shared by the nodes of one run: run options, cancellation
    signal, the bound on concurrently running external commands, and the
    registry of claimed output paths.
    """

    workdir: str
    shell: str = '/bin/bash'
    max_concurrent_tasks: int = 4
    check_expected_outputs: bool = True
    atomic_outputs: bool = True
    dry_run: bool = False
    force_processes: frozenset[str] = frozenset()
    cancelled: threading.Event = field(default_factory=threading.Event)
    records: list[TaskRecord] = field(default_factory=list)

    def __post_init__(self):
        self.task_slots = threading.BoundedSemaphore(self.max_concurrent_tasks)
        self._lock = threading.Lock()
        self._claimed_paths: dict[str, str] = {}

    def claim_output(self, path: str, claimant: str):
        """
        Register `path` as written by `claimant`. Two tasks of one run never
        write the same path.
        """
        with self._lock:
            if (first := self._claimed_paths.get(path)) is not None:
                raise OutputPathCollision(path, first, claimant)
            self._claimed_paths[path] = claimant

    def add_record(self, record: TaskRecord):
        with self._lock:
            self.records.append(record)


class Node(ABC):
    """
    A unit of the workflow graph. Owns a registry of ports; ports are resolved
    by name once, at construction time, and lookups of undeclared names fail
    with UnknownPort.
    """

    def __init__(self, name: str):
        self._name = name
        self.ports: dict[str, Port] = {}

    @property
    def name(self) -> str:
        return self._name

    def __repr__(self) -> str:
        return f'{type(self).__name__}({self._name})'

    def __str__(self):
        return self._name

    def _add_port(self, name: str, direction: Direction, kind: PortKind) -> Port:
        if (existing := self.ports.get(name)) is not None:
            if existing.direction != direction or existing.kind != kind:
                raise ValueError(
                    f'{self.name}: port "{name}" is declared both as {existing.direction.value}/'
                    f'{existing.kind.value} and {direction.value}/{kind.value}',
                )
            return existing
        port = Port(self, name, direction, kind)
        self.ports[name] = port
        return port

    def port(self, name: str, direction: Direction | None = None, kind: PortKind | None = None) -> Port:
        port = self.ports.get(name)
        if port is None or (direction and port.direction != direction) or (kind and port.kind != kind):
            what = ' '.join(x for x in [kind and kind.value, direction and f'{direction.value}-port'] if x) or 'port'
            raise UnknownPort(
                f'{self.name}: no {what} named "{name}". Declared ports: {", ".join(self.ports) or "none"}',
            )
        return port

    def in_port(self, name: str) -> Port:
        return self.port(name, Direction.IN)

    def out_port(self, name: str) -> Port:
        return self.port(name, Direction.OUT)

    def param_port(self, name: str) -> Port:
        return self.port(name, Direction.IN, PortKind.PARAM)

    @property
    def in_ports(self) -> list[Port]:
        return [p for p in self.ports.values() if p.direction == Direction.IN]

    @property
    def out_ports(self) -> list[Port]:
        return [p for p in self.ports.values() if p.direction == Direction.OUT]

    def upstream_nodes(self) -> list['Node']:
        return [c.producer.node for p in self.in_ports for c in p.connections]

    def downstream_nodes(self) -> list['Node']:
        return [c.consumer.node for p in self.out_ports for c in p.connections]

    def validate(self):
        """
        Check the node is fully wired. Override to add node-specific checks.
        """

    def unbounded_output(self) -> bool:
        """
        True if the streams this node emits never end on their own.
        """
        return False

    @abstractmethod
    def run(self, ctx: RunContext):
        """
        Consume input streams and produce output streams until the inputs are
        exhausted or the run is cancelled.
        """

    def finish(self):
        """
        Signal end-of-stream downstream and stop consuming upstream.
        """
        for port in self.out_ports:
            port.close()
        for port in self.in_ports:
            port.detach()
        logging.debug(f'{self.name}: finished')
