"""
Provides a `Workflow` class that collects processes and other nodes into a graph,
validates it, and runs it.

    wf = Workflow('resequencing')
    download = wf.new_process('download_ref', 'wget -O {o:outfile} ' + url)
    download.set_path_static('outfile', 'ref.fa.gz')
    ungzip = wf.new_process('ungzip_ref', 'gunzip -c {i:in} > {o:out}')
    ungzip.set_path_replace('in', 'out', '.gz', '')
    wf.connect(download.out_port('outfile'), ungzip.in_port('in'))
    wf.run()

Each node of the graph runs in its own thread; a process fires as soon as
a token is available on all its inputs. `Workflow.run_to(name)` only starts the
named process and everything upstream of it.
"""

import logging
import os
import threading
from dataclasses import dataclass, field
from enum import Enum

import networkx as nx

from cpg_utils.config import get_config

from .components import FanOut, Sink
from .exceptions import CyclicGraph, MulticastWithoutFanOut, UnknownPort, WorkflowError
from .node import Node, RunContext, TaskRecord
from .ports import Connection, Port, connect
from .process import Process


class RunState(Enum):
    """
    Lifecycle of a workflow.
    """

    BUILT = 'built'
    VALIDATED = 'validated'
    RUNNING = 'running'
    COMPLETED = 'completed'
    FAILED = 'failed'


@dataclass(frozen=True)
class ValidatedWorkflow:
    """
    Immutable snapshot of a validated workflow graph, handed to the runner.
    `selected` holds the names of the nodes to start.
    """

    name: str
    nodes: tuple[Node, ...]
    connections: tuple[Connection, ...]
    selected: frozenset[str]

    @property
    def selected_nodes(self) -> list[Node]:
        return [n for n in self.nodes if n.name in self.selected]


@dataclass
class RunResult:
    """
    Outcome of a workflow run: records of all tasks, in completion order.
    """

    workflow: str
    state: RunState
    records: list[TaskRecord] = field(default_factory=list)
    started_nodes: list[str] = field(default_factory=list)

    def tasks_for(self, process: str) -> list[TaskRecord]:
        return [r for r in self.records if r.process == process]

    @property
    def executed(self) -> list[TaskRecord]:
        return [r for r in self.records if not r.skipped]


class Workflow:
    """
    Builder of a workflow graph. Nodes are added explicitly; connections are
    made between ports of added nodes. A workflow is validated and run once.
    """

    def __init__(
        self,
        name: str | None = None,
        workdir: str | None = None,
        max_concurrent_tasks: int | None = None,
    ):
        config = get_config()['workflow']
        self.name = name or config.get('name', 'shellflow')
        self.workdir = os.path.abspath(workdir or config.get('workdir') or os.getcwd())
        self.max_concurrent_tasks = max_concurrent_tasks or config.get('max_concurrent_tasks', 4)
        if self.max_concurrent_tasks < 1:
            raise WorkflowError(f'max_concurrent_tasks must be positive, got {self.max_concurrent_tasks}')
        self._nodes: dict[str, Node] = {}
        self.state = RunState.BUILT
        self.result: RunResult | None = None

    def __repr__(self):
        return f'Workflow({self.name}, {len(self._nodes)} nodes, {self.state.value})'

    @property
    def nodes(self) -> list[Node]:
        return list(self._nodes.values())

    def add(self, *nodes: Node) -> Node:
        """
        Add nodes to the workflow. Returns the last one added.
        """
        if not nodes:
            raise ValueError('No nodes to add')
        for node in nodes:
            if (existing := self._nodes.get(node.name)) is not None and existing is not node:
                raise WorkflowError(f'A node named "{node.name}" is already in workflow {self.name}')
            self._nodes[node.name] = node
        return nodes[-1]

    def new_process(self, name: str, command: str) -> Process:
        process = Process(name, command)
        self.add(process)
        return process

    def new_fan_out(self, name: str, out_names=()) -> FanOut:
        fan_out = FanOut(name, out_names)
        self.add(fan_out)
        return fan_out

    def new_sink(self, name: str = 'sink') -> Sink:
        sink = Sink(name)
        self.add(sink)
        return sink

    def node(self, name: str) -> Node:
        if (node := self._nodes.get(name)) is None:
            raise WorkflowError(
                f'No node named "{name}" in workflow {self.name}. Available: {", ".join(self._nodes)}',
            )
        return node

    def _resolve_port(self, port: Port | str) -> Port:
        if isinstance(port, Port):
            return port
        node_name, sep, port_name = port.rpartition('.')
        if not sep or node_name not in self._nodes:
            raise UnknownPort(f'Cannot resolve port address "{port}", expected "<node>.<port>"')
        return self._nodes[node_name].port(port_name)

    def connect(self, out_port: Port | str, in_port: Port | str) -> Connection:
        """
        Connect an out-port to an in-port. Ports can be given as handles or as
        "<node>.<port>" addresses.
        """
        return connect(self._resolve_port(out_port), self._resolve_port(in_port))

    def graph(self) -> nx.DiGraph:
        """
        Node-level graph, edges pointing downstream.
        """
        graph = nx.DiGraph()
        graph.add_nodes_from(self._nodes)
        for node in self._nodes.values():
            for port in node.out_ports:
                for conn in port.connections:
                    graph.add_edge(node.name, conn.consumer.node.name)
        return graph

    def validate(self, run_to: str | None = None) -> ValidatedWorkflow:
        """
        Check the structure of the graph, and freeze it for running. With
        `run_to`, only the named node and its upstream dependencies are selected.
        """
        for node in self._nodes.values():
            for other in node.upstream_nodes() + node.downstream_nodes():
                if self._nodes.get(other.name) is not other:
                    raise WorkflowError(
                        f'{other.name} is connected to {node.name}, but was not added to workflow {self.name}',
                    )

        for node in self._nodes.values():
            for port in node.out_ports:
                if len(port.connections) > 1:
                    consumers = ', '.join(c.consumer.address for c in port.connections)
                    raise MulticastWithoutFanOut(
                        f'{port.address} is connected to {len(port.connections)} in-ports ({consumers}). '
                        f'Use a FanOut to send an output to several consumers',
                    )

        for node in self._nodes.values():
            node.validate()

        graph = self.graph()
        if not nx.is_directed_acyclic_graph(graph):
            cycle = [u for u, _ in nx.find_cycle(graph)]
            raise CyclicGraph(f'Circular dependencies found between nodes: {" -> ".join(cycle + cycle[:1])}')

        order = list(nx.topological_sort(graph))
        for name in order:
            node = self._nodes[name]
            for port in node.out_ports:
                for conn in port.connections:
                    conn.unbounded = node.unbounded_output()

        if run_to is not None:
            if run_to not in self._nodes:
                raise WorkflowError(
                    f'Cannot run to "{run_to}": not a node of workflow {self.name}. '
                    f'Available: {", ".join(self._nodes)}',
                )
            selected = frozenset(nx.ancestors(graph, run_to) | {run_to})
            logging.info(f'Running to {run_to}, selected nodes: {sorted(selected)}')
        else:
            selected = frozenset(order)

        if self.state == RunState.BUILT:
            self.state = RunState.VALIDATED
        return ValidatedWorkflow(
            name=self.name,
            nodes=tuple(self._nodes[name] for name in order),
            connections=tuple(
                conn for name in order for port in self._nodes[name].out_ports for conn in port.connections
            ),
            selected=selected,
        )

    def make_context(self) -> RunContext:
        config = get_config()['workflow']
        return RunContext(
            workdir=self.workdir,
            shell=config.get('shell', '/bin/bash'),
            max_concurrent_tasks=self.max_concurrent_tasks,
            check_expected_outputs=config.get('check_expected_outputs', True),
            atomic_outputs=config.get('atomic_outputs', True),
            dry_run=config.get('dry_run', False),
            force_processes=frozenset(config.get('force_processes', [])),
        )

    def run(self) -> RunResult:
        """
        Run the whole workflow, or up to `workflow/run_to` if it is set in config.
        """
        return self._run(get_config()['workflow'].get('run_to') or None)

    def run_to(self, name: str) -> RunResult:
        """
        Run only `name` and the nodes it depends on.
        """
        return self._run(name)

    def _run(self, run_to: str | None) -> RunResult:
        if self.state not in (RunState.BUILT, RunState.VALIDATED):
            raise WorkflowError(f'Workflow {self.name} has already been run ({self.state.value})')
        validated = self.validate(run_to=run_to)
        runner = Runner(validated, self.make_context())
        self.state = RunState.RUNNING
        try:
            self.result = runner.run()
        except Exception:
            self.state = RunState.FAILED
            raise
        self.state = self.result.state
        return self.result


class Runner:
    """
    Runs every selected node of a validated workflow in its own thread, until
    all streams are exhausted or a node fails.
    """

    def __init__(self, workflow: ValidatedWorkflow, ctx: RunContext):
        self.workflow = workflow
        self.ctx = ctx
        self._errors: list[BaseException] = []
        self._lock = threading.Lock()

    def run(self) -> RunResult:
        nodes = self.workflow.selected_nodes
        if not nodes:
            raise WorkflowError(f'No nodes to run in workflow {self.workflow.name}')

        for conn in self.workflow.connections:
            conn.reset(maxsize=1 if conn.unbounded else 0)
            if conn.consumer.node.name not in self.workflow.selected:
                # Consumer is not part of this run, tokens are dropped.
                conn.detach()

        logging.info(f'Workflow {self.workflow.name}: starting {len(nodes)} node(s): {[n.name for n in nodes]}')
        threads = [
            threading.Thread(target=self._run_node, args=(node,), name=f'shellflow-{node.name}', daemon=True)
            for node in nodes
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        if self._errors:
            logging.error(f'Workflow {self.workflow.name} failed: {self._errors[0]}')
            raise self._errors[0]

        logging.info(f'Workflow {self.workflow.name} completed, {len(self.ctx.records)} task(s)')
        return RunResult(
            workflow=self.workflow.name,
            state=RunState.COMPLETED,
            records=list(self.ctx.records),
            started_nodes=[n.name for n in nodes],
        )

    def _run_node(self, node: Node):
        try:
            node.run(self.ctx)
        except Exception as e:  # re-raised by run() in the calling thread
            logging.error(f'{node.name}: {e}')
            with self._lock:
                self._errors.append(e)
            self.cancel()
        finally:
            node.finish()

    def cancel(self):
        """
        Stop the run: no new commands are started, and every node sees the end
        of its input streams. Commands already running are left to finish.
        """
        if self.ctx.cancelled.is_set():
            return
        self.ctx.cancelled.set()
        for conn in self.workflow.connections:
            conn.abort()
