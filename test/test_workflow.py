"""
Test building and validating Workflow objects.
"""

import pytest

from shellflow.components import FanOut, ParamGenerator, Sink
from shellflow.exceptions import (
    CyclicGraph,
    MissingPathStrategy,
    MulticastWithoutFanOut,
    UnconnectedFanOutTarget,
    UnconnectedPort,
    ValidationError,
    WorkflowError,
)
from shellflow.process import Process
from shellflow.workflow import RunState, Workflow


def chain(wf: Workflow) -> tuple[Process, Process]:
    """
    A -> B
    """
    a = wf.new_process('A', 'echo a > {o:out}')
    a.set_path_static('out', 'ref.fa.gz')
    b = wf.new_process('B', 'gunzip -c {i:in} > {o:out2}')
    b.set_path_replace('in', 'out2', '.gz', '')
    b.in_port('in').connect(a.out_port('out'))
    return a, b


def test_validate_chain(tmp_path):
    wf = Workflow('test', workdir=str(tmp_path))
    chain(wf)
    assert wf.state == RunState.BUILT
    validated = wf.validate()
    assert wf.state == RunState.VALIDATED
    assert [n.name for n in validated.nodes] == ['A', 'B']
    assert validated.selected == {'A', 'B'}
    assert len(validated.connections) == 1


def test_multicast_without_fan_out(tmp_path):
    """
    A -> B
      -> C
    """
    wf = Workflow('test', workdir=str(tmp_path))
    a, _ = chain(wf)
    c = wf.new_process('C', 'cat {i:in} > {o:out}')
    c.set_path_extend('in', 'out', '.c')
    c.in_port('in').connect(a.out_port('out'))

    with pytest.raises(MulticastWithoutFanOut, match='A.out is connected to 2 in-ports'):
        wf.validate()


def test_multicast_through_fan_out(tmp_path):
    wf = Workflow('test', workdir=str(tmp_path))
    a = wf.new_process('A', 'echo a > {o:out}')
    a.set_path_static('out', 'ref.fa')
    fan = wf.new_fan_out('fan', ['x', 'y'])
    fan.in_port('in').connect(a.out_port('out'))
    for name in ['x', 'y']:
        p = wf.new_process(f'read_{name}', 'wc -c {i:in} > {o:out}')
        p.set_path_extend('in', 'out', f'.{name}')
        p.in_port('in').connect(fan.out_port(name))
    wf.validate()


def test_unconnected_fan_out_target(tmp_path):
    wf = Workflow('test', workdir=str(tmp_path))
    a = wf.new_process('A', 'echo a > {o:out}')
    a.set_path_static('out', 'ref.fa')
    fan = wf.new_fan_out('fan', ['x', 'y'])
    fan.in_port('in').connect(a.out_port('out'))
    p = wf.new_process('read_x', 'wc -c {i:in} > {o:out}')
    p.set_path_extend('in', 'out', '.x')
    p.in_port('in').connect(fan.out_port('x'))

    with pytest.raises(UnconnectedFanOutTarget, match='fan.y'):
        wf.validate()


def test_unconnected_in_port(tmp_path):
    wf = Workflow('test', workdir=str(tmp_path))
    p = wf.new_process('merge', 'cat {i:a} {i:b} > {o:out} # {p:indv}')
    p.set_path_extend('a', 'out', '.merged')
    a = wf.new_process('A', 'echo a > {o:out}')
    a.set_path_static('out', 'a.txt')
    p.in_port('a').connect(a.out_port('out'))

    with pytest.raises(UnconnectedPort, match='merge.b'):
        wf.validate()


def test_unconnected_generator(tmp_path):
    wf = Workflow('test', workdir=str(tmp_path))
    wf.add(ParamGenerator.constant('indv', 'NA06984'))
    with pytest.raises(UnconnectedPort, match='indv.out'):
        wf.validate()


def test_unconnected_process_output_is_allowed(tmp_path):
    wf = Workflow('test', workdir=str(tmp_path))
    a = wf.new_process('A', 'echo a > {o:out}')
    a.set_path_static('out', 'a.txt')
    wf.validate()


def test_missing_path_strategy(tmp_path):
    wf = Workflow('test', workdir=str(tmp_path))
    wf.new_process('A', 'echo a > {o:out}')
    with pytest.raises(MissingPathStrategy, match='A: no path strategy set for out-port'):
        wf.validate()


def test_cycle(tmp_path):
    """
    A -> B -> C -> A
    """
    wf = Workflow('test', workdir=str(tmp_path))
    procs = []
    for name in ['A', 'B', 'C']:
        p = wf.new_process(name, 'cat {i:in} > {o:out}')
        p.set_path_extend('in', 'out', f'.{name}')
        procs.append(p)
    for up, down in zip(procs, procs[1:] + procs[:1]):
        down.in_port('in').connect(up.out_port('out'))

    with pytest.raises(CyclicGraph, match='Circular dependencies'):
        wf.validate()


def test_node_not_added(tmp_path):
    wf = Workflow('test', workdir=str(tmp_path))
    a = wf.new_process('A', 'echo a > {o:out}')
    a.set_path_static('out', 'a.txt')
    sink = Sink()
    sink.connect(a.out_port('out'))

    with pytest.raises(WorkflowError, match='sink is connected to A, but was not added'):
        wf.validate()


def test_duplicate_node_name(tmp_path):
    wf = Workflow('test', workdir=str(tmp_path))
    wf.new_process('A', 'echo a > {o:out}')
    with pytest.raises(WorkflowError, match='already in workflow'):
        wf.new_process('A', 'echo b > {o:out}')


def test_run_to_selects_upstream(tmp_path):
    """
    A -> B -> C
    A2 -> C
    D
    run_to = B
    """
    wf = Workflow('test', workdir=str(tmp_path))
    a, b = chain(wf)
    a2 = wf.new_process('A2', 'echo a2 > {o:out}')
    a2.set_path_static('out', 'a2.txt')
    c = wf.new_process('C', 'cat {i:in} {i:other} > {o:out}')
    c.set_path_extend('in', 'out', '.c')
    c.in_port('in').connect(b.out_port('out2'))
    c.in_port('other').connect(a2.out_port('out'))
    d = wf.new_process('D', 'echo d > {o:out}')
    d.set_path_static('out', 'd.txt')

    assert wf.validate(run_to='B').selected == {'A', 'B'}
    assert wf.validate(run_to='C').selected == {'A', 'B', 'A2', 'C'}
    assert wf.validate(run_to='D').selected == {'D'}
    with pytest.raises(WorkflowError, match='Cannot run to "E"'):
        wf.validate(run_to='E')


def test_constant_streams_are_marked(tmp_path):
    wf = Workflow('test', workdir=str(tmp_path))
    gen = wf.add(ParamGenerator.constant('indv', 'NA06984'))
    fan = wf.add(FanOut('fan', ['x'], kind=gen.out.kind))
    fan.in_port('in').connect(gen.out)
    p = wf.new_process('P', 'echo {p:indv} > {o:out}')
    p.set_path_custom('out', lambda inputs, params: f'{params["indv"]}.txt')
    p.param_port('indv').connect(fan.out_port('x'))

    validated = wf.validate()
    assert all(conn.unbounded for conn in validated.connections)


def test_structural_errors_run_nothing(tmp_path):
    wf = Workflow('test', workdir=str(tmp_path))
    a, _ = chain(wf)
    c = wf.new_process('C', 'cat {i:in} > {o:out}')
    c.set_path_extend('in', 'out', '.c')
    c.in_port('in').connect(a.out_port('out'))

    with pytest.raises(ValidationError):
        wf.run()
    assert not (tmp_path / 'ref.fa.gz').exists()
    assert list(tmp_path.iterdir()) == []


def test_max_concurrent_tasks_from_config(tmp_path):
    from . import set_config

    set_config('[workflow]\nmax_concurrent_tasks = 2\n', tmp_path / 'config.toml')
    assert Workflow('test', workdir=str(tmp_path)).max_concurrent_tasks == 2
    assert Workflow('test', workdir=str(tmp_path), max_concurrent_tasks=8).max_concurrent_tasks == 8
