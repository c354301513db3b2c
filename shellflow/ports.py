"""
Ports and connections between workflow nodes.

A port is a named, typed attachment point on a node. A connection links exactly
one out-port to exactly one in-port and carries an ordered stream of tokens
(file paths or parameter values) from the producer to the consumer.
"""

import threading
from collections import deque
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from .exceptions import PortAlreadyConnected, PortKindMismatch, UnknownPort

if TYPE_CHECKING:
    from .node import Node


class PortKind(Enum):
    """
    What kind of tokens a port carries.
    """

    FILE = 'file'
    PARAM = 'param'


class Direction(Enum):
    IN = 'in'
    OUT = 'out'


class _EndOfStream:
    def __repr__(self) -> str:
        return 'END_OF_STREAM'


# Returned by `Connection.receive()` once the stream is exhausted.
END_OF_STREAM: Any = _EndOfStream()


class Port:
    """
    Named endpoint on a node. Ports are created by their owning node and
    registered in its port registry; they are never constructed by callers.
    """

    def __init__(self, node: 'Node', name: str, direction: Direction, kind: PortKind):
        self.node = node
        self.name = name
        self.direction = direction
        self.kind = kind
        # In-ports: at most one. Out-ports: more than one is recorded so that
        # validation can report multicast without a FanOut.
        self.connections: list['Connection'] = []

    def __repr__(self) -> str:
        return f'Port({self.node.name}.{self.name} {self.direction.value}/{self.kind.value})'

    @property
    def address(self) -> str:
        return f'{self.node.name}.{self.name}'

    @property
    def is_connected(self) -> bool:
        return bool(self.connections)

    @property
    def connection(self) -> Optional['Connection']:
        return self.connections[0] if self.connections else None

    def connect(self, other: 'Port') -> 'Connection':
        """
        Connect this port to `other`, whichever direction they face.
        """
        if self.direction == Direction.IN:
            return connect(other, self)
        return connect(self, other)

    def send(self, token) -> bool:
        """
        Emit a token on an out-port. Returns False if nobody is consuming it.
        """
        assert self.direction == Direction.OUT, self
        delivered = False
        for conn in self.connections:
            delivered = conn.send(token) or delivered
        return delivered

    def receive(self):
        """
        Take the next token from an in-port, or END_OF_STREAM.
        """
        assert self.direction == Direction.IN, self
        if not self.connections:
            return END_OF_STREAM
        return self.connections[0].receive()

    def close(self):
        """
        Signal end-of-stream on all connections of an out-port.
        """
        for conn in self.connections:
            conn.close()

    def detach(self):
        """
        Stop consuming from an in-port.
        """
        for conn in self.connections:
            conn.detach()

    @property
    def detached(self) -> bool:
        """
        True if all consumers of an out-port stopped reading (or there are none).
        """
        return all(conn.detached for conn in self.connections)


class Connection:
    """
    Single-producer/single-consumer FIFO channel between two ports.

    `maxsize` of 0 means unbounded. A bounded connection blocks the producer
    until the consumer pulls, which makes the producer demand-driven.
    """

    def __init__(self, producer: Port, consumer: Port, maxsize: int = 0):
        self.producer = producer
        self.consumer = consumer
        self.maxsize = maxsize
        # Set at validation for streams that never end on their own, i.e.
        # those fed by a constant ParamGenerator.
        self.unbounded = False
        self._items: deque = deque()
        self._cond = threading.Condition()
        self._closed = False
        self._detached = False
        self._aborted = False

    def __repr__(self) -> str:
        return f'Connection({self.producer.address} -> {self.consumer.address})'

    def reset(self, maxsize: int = 0):
        """
        Prepare the channel for a run.
        """
        with self._cond:
            self.maxsize = maxsize
            self._items.clear()
            self._closed = False
            self._detached = False
            self._aborted = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def detached(self) -> bool:
        return self._detached or self._aborted

    def send(self, token) -> bool:
        with self._cond:
            while self.maxsize and len(self._items) >= self.maxsize and not self.detached:
                self._cond.wait()
            if self.detached or self._closed:
                return False
            self._items.append(token)
            self._cond.notify_all()
            return True

    def receive(self):
        with self._cond:
            while not self._items and not (self._closed or self._aborted):
                self._cond.wait()
            if self._aborted or not self._items:
                return END_OF_STREAM
            token = self._items.popleft()
            self._cond.notify_all()
            return token

    def close(self):
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def detach(self):
        with self._cond:
            self._detached = True
            self._items.clear()
            self._cond.notify_all()

    def abort(self):
        """
        Cancel the stream: the consumer sees END_OF_STREAM right away, and
        the producer's sends are dropped.
        """
        with self._cond:
            self._aborted = True
            self._items.clear()
            self._cond.notify_all()


def connect(out_port: Port, in_port: Port) -> Connection:
    """
    Connect an out-port to an in-port.
    """
    for port in (out_port, in_port):
        if port.node.ports.get(port.name) is not port:
            raise UnknownPort(f'Port {port.address} is not declared on node {port.node.name}')
    if out_port.direction != Direction.OUT or in_port.direction != Direction.IN:
        raise PortKindMismatch(
            f'Can only connect an out-port to an in-port, got {out_port} -> {in_port}',
        )
    if out_port.kind != in_port.kind:
        raise PortKindMismatch(
            f'Cannot connect {out_port.kind.value} port {out_port.address} '
            f'to {in_port.kind.value} port {in_port.address}',
        )
    if in_port.connections:
        raise PortAlreadyConnected(
            f'{in_port.address} is already connected to {in_port.connections[0].producer.address}',
        )
    conn = Connection(out_port, in_port)
    out_port.connections.append(conn)
    in_port.connections.append(conn)
    return conn
