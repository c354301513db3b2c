"""
Nodes that route tokens rather than run commands: FanOut, ParamGenerator, Sink.
"""

import itertools
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable

from .exceptions import UnconnectedFanOutTarget, UnconnectedPort
from .node import Node, RunContext
from .ports import END_OF_STREAM, Connection, Direction, Port, PortKind, connect


class FanOut(Node):
    """
    Copies every token of its in-port to each of its declared out-ports.

    Connections are single-consumer, so an output needed by several processes
    goes through a FanOut with one out-port per consumer:

        fan = FanOut('ref_fanout', ['index_ref', 'bwa_aln'])
        fan.in_port('in').connect(ungzip.out_port('out'))
        index.in_port('index').connect(fan.out_port('index_ref'))
    """

    IN_PORT = 'in'

    def __init__(self, name: str, out_names: Iterable[str] = (), kind: PortKind = PortKind.FILE):
        super().__init__(name)
        self.kind = kind
        self._add_port(self.IN_PORT, Direction.IN, kind)
        for out_name in out_names:
            self.add_out_port(out_name)

    @property
    def in_(self) -> Port:
        return self.ports[self.IN_PORT]

    def add_out_port(self, name: str) -> Port:
        if name == self.IN_PORT:
            raise ValueError(f'{self.name}: "{self.IN_PORT}" is reserved for the in-port')
        return self._add_port(name, Direction.OUT, self.kind)

    def validate(self):
        if not self.in_.is_connected:
            raise UnconnectedPort(f'{self.in_.address}: FanOut in-port is not connected')
        if not self.out_ports:
            raise UnconnectedFanOutTarget(f'{self.name}: FanOut has no out-ports')
        for port in self.out_ports:
            if not port.is_connected:
                raise UnconnectedFanOutTarget(f'{port.address}: FanOut out-port has no downstream connection')

    def unbounded_output(self) -> bool:
        conn = self.in_.connection
        return bool(conn and conn.unbounded)

    def run(self, ctx: RunContext):
        outs = self.out_ports
        n_tokens = 0
        while not ctx.cancelled.is_set():
            token = self.in_.receive()
            if token is END_OF_STREAM:
                break
            n_tokens += 1
            for port in outs:
                port.send(token)
            if all(port.detached for port in outs):
                logging.debug(f'{self.name}: all consumers detached')
                break
        logging.debug(f'{self.name}: forwarded {n_tokens} token(s) to {len(outs)} out-port(s)')


class ParamGenerator(Node):
    """
    Source of parameter tokens.

    A constant generator emits its value every time a consumer pulls, for as
    long as any consumer keeps pulling. A sequence generator emits each of its
    values once, then ends the stream. Every out-port receives the whole
    stream.
    """

    OUT_PORT = 'out'

    def __init__(self, name: str, values: Iterable[str], repeat: bool = False, out_names: Iterable[str] = ()):
        super().__init__(name)
        self.values = [str(v) for v in values]
        self.repeat = repeat
        for out_name in list(out_names) or [self.OUT_PORT]:
            self.add_out_port(out_name)

    @classmethod
    def constant(cls, name: str, value: str, out_names: Iterable[str] = ()) -> 'ParamGenerator':
        return cls(name, [value], repeat=True, out_names=out_names)

    @classmethod
    def sequence(cls, name: str, values: Iterable[str], out_names: Iterable[str] = ()) -> 'ParamGenerator':
        return cls(name, values, repeat=False, out_names=out_names)

    @property
    def out(self) -> Port:
        return self.out_ports[0]

    def add_out_port(self, name: str) -> Port:
        return self._add_port(name, Direction.OUT, PortKind.PARAM)

    def validate(self):
        for port in self.out_ports:
            if not port.is_connected:
                raise UnconnectedPort(f'{port.address}: parameter generator out-port is not connected')

    def unbounded_output(self) -> bool:
        return self.repeat and bool(self.values)

    def run(self, ctx: RunContext):
        ports = self.out_ports
        if len(ports) == 1:
            self._emit(ctx, ports[0])
            return
        # Streams of different out-ports are consumed independently.
        with ThreadPoolExecutor(max_workers=len(ports), thread_name_prefix=self.name) as pool:
            for future in [pool.submit(self._emit, ctx, port) for port in ports]:
                future.result()

    def _emit(self, ctx: RunContext, port: Port):
        values = itertools.cycle(self.values) if self.repeat else iter(self.values)
        for value in values:
            if ctx.cancelled.is_set() or not port.send(value):
                break
        port.close()


class Sink(Node):
    """
    Terminal node draining any number of out-ports, so that the run can
    complete without leaving outputs unread.
    """

    def __init__(self, name: str = 'sink'):
        super().__init__(name)
        self.drained: dict[str, int] = {}

    def connect(self, out_port: Port) -> Connection:
        """
        Add an in-port and connect `out_port` to it.
        """
        in_port = self._add_port(f'in_{len(self.ports)}', Direction.IN, out_port.kind)
        try:
            return connect(out_port, in_port)
        except Exception:
            del self.ports[in_port.name]
            raise

    def run(self, ctx: RunContext):
        ports = []
        for port in self.in_ports:
            if port.connection and port.connection.unbounded:
                # Constant streams only end once their consumers stop reading.
                port.detach()
                self.drained[port.name] = 0
            else:
                ports.append(port)
        if not ports:
            return
        with ThreadPoolExecutor(max_workers=len(ports), thread_name_prefix=self.name) as pool:
            for future in [pool.submit(self._drain, port) for port in ports]:
                future.result()
        logging.debug(f'{self.name}: drained {sum(self.drained.values())} token(s)')

    def _drain(self, port: Port):
        count = 0
        while port.receive() is not END_OF_STREAM:
            count += 1
        self.drained[port.name] = count
