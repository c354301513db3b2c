"""
Provides a `Process` class, a workflow node that wraps a shell command template,
and a `Task` class, one execution of that command for one tuple of input tokens.

Ports of a process are declared by the placeholders of its command:

    p = Process('ungzip_ref', 'gunzip -c {i:in} > {o:out}')
    p.set_path_replace('in', 'out', '.gz', '')

A process fires a task each time a token is available on every in-port and
parameter port. The task resolves its output paths with the path strategies,
reuses outputs that already exist, otherwise runs the command and emits the
output paths downstream.
"""

import logging
import os
import subprocess
from enum import Enum

from .command import CommandTemplate
from .exceptions import (
    MissingPathStrategy,
    SuffixNotFound,
    TaskError,
    TaskExecutionFailed,
    UnconnectedPort,
)
from .node import Node, RunContext, TaskRecord
from .paths import CustomPath, ExtendSuffix, PathFunction, PathStrategy, ReplaceSuffix, StaticPath
from .ports import END_OF_STREAM, Direction, Port, PortKind
from .utils import exists, finalise_output, in_workdir, is_cloud_path, tmp_output_path


class Action(Enum):
    """
    Indicates what a task should do: run the command, or reuse existing outputs.
    """

    QUEUE = 1
    REUSE = 2


class Process(Node):
    """
    Workflow node running a shell command once per complete input tuple.
    """

    def __init__(self, name: str, command: str):
        super().__init__(name)
        self.command = CommandTemplate(command)
        for in_name in self.command.in_ports:
            self._add_port(in_name, Direction.IN, PortKind.FILE)
        for out_name in self.command.out_ports:
            self._add_port(out_name, Direction.OUT, PortKind.FILE)
        for param in self.command.params:
            self._add_port(param, Direction.IN, PortKind.PARAM)

        self.path_strategies: dict[str, PathStrategy] = {}
        # Parameter name -> out-port forwarding the consumed parameter values.
        self.param_outs: dict[str, Port] = {}
        self.task_count = 0

    def __str__(self):
        return f'{self.name}: {self.command}'

    @property
    def file_out_ports(self) -> list[Port]:
        return [p for p in self.out_ports if p.kind == PortKind.FILE]

    def set_path(self, out_name: str, strategy: PathStrategy) -> PathStrategy:
        """
        Assign the path strategy of an out-port.
        """
        self.port(out_name, Direction.OUT, PortKind.FILE)
        for in_name in strategy.required_inputs():
            self.port(in_name, Direction.IN, PortKind.FILE)
        self.path_strategies[out_name] = strategy
        return strategy

    def set_path_static(self, out_name: str, value: str) -> PathStrategy:
        return self.set_path(out_name, StaticPath(value))

    def set_path_replace(self, in_name: str, out_name: str, from_suffix: str, to_suffix: str) -> PathStrategy:
        return self.set_path(out_name, ReplaceSuffix(in_name, from_suffix, to_suffix))

    def set_path_extend(self, in_name: str, out_name: str, suffix: str) -> PathStrategy:
        return self.set_path(out_name, ExtendSuffix(in_name, suffix))

    def set_path_custom(self, out_name: str, fn: PathFunction) -> PathStrategy:
        return self.set_path(out_name, CustomPath(fn))

    def add_param_out_port(self, param: str, name: str | None = None) -> Port:
        """
        Declare an out-port that passes on the values consumed by parameter
        port `param`, one per task.
        """
        self.param_port(param)
        port = self._add_port(name or f'{param}_out', Direction.OUT, PortKind.PARAM)
        self.param_outs[param] = port
        return port

    def validate(self):
        for port in self.in_ports:
            if not port.is_connected:
                raise UnconnectedPort(f'{port.address}: {port.kind.value} in-port is not connected')
        if missing := [p.name for p in self.file_out_ports if p.name not in self.path_strategies]:
            raise MissingPathStrategy(
                f'{self.name}: no path strategy set for out-port(s) {", ".join(missing)}. '
                f'Use one of set_path_static/set_path_replace/set_path_extend/set_path_custom',
            )

    def resolve_outputs(self, inputs: dict[str, str], params: dict[str, str]) -> dict[str, str]:
        """
        Paths of all outputs for the given input tuple.
        """
        outputs = {}
        for out_name, strategy in self.path_strategies.items():
            try:
                outputs[out_name] = strategy(inputs, params)
            except SuffixNotFound as e:
                raise SuffixNotFound(e.path, e.suffix, process=self.name, port=out_name) from e
        return outputs

    def run(self, ctx: RunContext):
        bounded = [p for p in self.in_ports if not (p.connection and p.connection.unbounded)]
        unbounded = [p for p in self.in_ports if p not in bounded]

        if not bounded:
            # Nothing ever ends the input streams: fire a single task.
            if (tokens := self._receive(unbounded)) is not None and not ctx.cancelled.is_set():
                self._fire(ctx, tokens)
            return

        # Take the finite streams first, so that reaching their end does not
        # consume an extra value from a constant generator.
        while not ctx.cancelled.is_set():
            if (tokens := self._receive(bounded + unbounded)) is None:
                break
            if ctx.cancelled.is_set() or not self._fire(ctx, tokens):
                break

    @staticmethod
    def _receive(ports: list[Port]) -> dict[str, str] | None:
        """
        One token from every port, in FIFO order per port. None once any of the
        streams is exhausted.
        """
        tokens = {}
        for port in ports:
            token = port.receive()
            if token is END_OF_STREAM:
                return None
            tokens[port.name] = token
        return tokens

    def _fire(self, ctx: RunContext, tokens: dict[str, str]) -> bool:
        inputs = {k: v for k, v in tokens.items() if self.ports[k].kind == PortKind.FILE}
        params = {k: v for k, v in tokens.items() if self.ports[k].kind == PortKind.PARAM}
        self.task_count += 1
        task = Task(self, inputs, params, index=self.task_count)
        if task.execute(ctx) is None:
            return False

        for out_name, path in task.outputs.items():
            self.ports[out_name].send(path)
        for param, port in self.param_outs.items():
            port.send(params[param])
        return True


class Task:
    """
    One concrete execution of a process command, for one tuple of input tokens.
    """

    def __init__(self, process: Process, inputs: dict[str, str], params: dict[str, str], index: int = 1):
        self.process = process
        self.inputs = inputs
        self.params = params
        self.index = index
        self.outputs = process.resolve_outputs(inputs, params)

    @property
    def name(self) -> str:
        return f'{self.process.name}#{self.index}'

    def __str__(self):
        return self.name

    def command(self, outputs: dict[str, str] | None = None) -> str:
        """
        Command text with placeholders substituted.
        """
        return self.process.command.render(self.inputs, outputs or self.outputs, self.params)

    def execute(self, ctx: RunContext) -> TaskRecord | None:
        """
        Reuse or produce the task outputs. Returns None if the run was cancelled
        before the command could start.
        """
        for path in self.outputs.values():
            ctx.claim_output(str(in_workdir(path, ctx.workdir)), self.name)

        if self._get_action(ctx) == Action.REUSE:
            record = self._make_record(self.command(), skipped=True)
        elif (record := self._run_command(ctx)) is None:
            return None

        ctx.add_record(record)
        return record

    def _make_record(self, command: str, skipped: bool = False) -> TaskRecord:
        return TaskRecord(
            process=self.process.name,
            command=command,
            inputs=dict(self.inputs),
            params=dict(self.params),
            outputs=dict(self.outputs),
            skipped=skipped,
        )

    def _get_action(self, ctx: RunContext) -> Action:
        """
        Based on process options and existence of the outputs, determines
        whether the command has to run.
        """
        if self.process.name in ctx.force_processes:
            logging.info(f'{self.name}: [QUEUE] (process is forced)')
            return Action.QUEUE

        if not ctx.check_expected_outputs or not self.outputs:
            return Action.QUEUE

        paths = list(self.outputs.values())
        if first_missing_path := next((p for p in paths if not exists(p, ctx.workdir)), None):
            logging.debug(f'{self.name}: {first_missing_path} is missing')
            return Action.QUEUE

        logging.info(f'{self.name}: [REUSE] (expected outputs exist: {paths})')
        return Action.REUSE

    def _run_command(self, ctx: RunContext) -> TaskRecord | None:
        tmp_outputs = dict(self.outputs)
        if ctx.atomic_outputs:
            tmp_outputs = {k: (v if is_cloud_path(v) else tmp_output_path(v)) for k, v in self.outputs.items()}
        cmd = self.command(tmp_outputs)

        if ctx.dry_run:
            logging.info(f'{self.name}: [DRY RUN] {cmd}')
            return self._make_record(cmd)

        with ctx.task_slots:
            if ctx.cancelled.is_set():
                logging.info(f'{self.name}: not started, the run is cancelled')
                return None
            for path in tmp_outputs.values():
                if not is_cloud_path(path):
                    os.makedirs(os.path.dirname(str(in_workdir(path, ctx.workdir))), exist_ok=True)
            logging.info(f'{self.name}: [QUEUE] {cmd}')
            res = subprocess.run(cmd, shell=True, executable=ctx.shell, cwd=ctx.workdir)

        if res.returncode != 0:
            raise TaskExecutionFailed(self.process.name, cmd, res.returncode)

        for out_name, path in self.outputs.items():
            if (tmp_path := tmp_outputs[out_name]) == path:
                continue
            if not exists(tmp_path, ctx.workdir):
                raise TaskError(f'{self.name}: command succeeded, but did not write output "{out_name}" to {tmp_path}')
            finalise_output(tmp_path, path, ctx.workdir)

        logging.info(f'{self.name}: done')
        return self._make_record(cmd)
