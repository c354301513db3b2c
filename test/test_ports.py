"""
Test ports, connections and the channels behind them.
"""

import threading

import pytest

from shellflow.components import Sink
from shellflow.exceptions import PortAlreadyConnected, PortKindMismatch, UnknownPort
from shellflow.ports import END_OF_STREAM, Connection, Direction, Port, PortKind, connect
from shellflow.process import Process
from shellflow.workflow import Workflow


def make_pair():
    a = Process('a', 'echo a > {o:out}')
    b = Process('b', 'cat {i:in} > {o:out} # {p:name}')
    return a, b


def test_ports_declared_from_template():
    _, b = make_pair()
    assert b.in_port('in').kind == PortKind.FILE
    assert b.param_port('name').kind == PortKind.PARAM
    assert b.out_port('out').direction == Direction.OUT
    with pytest.raises(UnknownPort, match='Declared ports: in, out, name'):
        b.in_port('missing')
    with pytest.raises(UnknownPort):
        # a file in-port is not a parameter port
        b.param_port('in')


def test_connect():
    a, b = make_pair()
    conn = b.in_port('in').connect(a.out_port('out'))
    assert conn.producer is a.out_port('out')
    assert conn.consumer is b.in_port('in')
    assert b.upstream_nodes() == [a]
    assert a.downstream_nodes() == [b]


def test_connect_kind_mismatch():
    a, b = make_pair()
    with pytest.raises(PortKindMismatch, match='Cannot connect file port a.out to param port b.name'):
        connect(a.out_port('out'), b.param_port('name'))


def test_connect_wrong_direction():
    a, b = make_pair()
    with pytest.raises(PortKindMismatch, match='out-port to an in-port'):
        connect(b.in_port('in'), a.out_port('out'))


def test_connect_twice():
    a, b = make_pair()
    c = Process('c', 'echo c > {o:out}')
    connect(a.out_port('out'), b.in_port('in'))
    with pytest.raises(PortAlreadyConnected, match='b.in is already connected to a.out'):
        connect(c.out_port('out'), b.in_port('in'))


def test_connect_undeclared_port():
    a, b = make_pair()
    stray = Port(a, 'stray', Direction.OUT, PortKind.FILE)
    with pytest.raises(UnknownPort, match='a.stray is not declared'):
        connect(stray, b.in_port('in'))


def test_connect_by_address():
    wf = Workflow('test')
    a, b = make_pair()
    wf.add(a, b)
    conn = wf.connect('a.out', 'b.in')
    assert conn.consumer is b.in_port('in')
    with pytest.raises(UnknownPort):
        wf.connect('a.nope', 'b.in')
    with pytest.raises(UnknownPort):
        wf.connect('nowhere.out', 'b.in')


def test_sink_ports_follow_kind():
    a, b = make_pair()
    b.add_param_out_port('name')
    sink = Sink()
    sink.connect(a.out_port('out'))
    sink.connect(b.out_port('name_out'))
    assert [(p.name, p.kind) for p in sink.in_ports] == [('in_0', PortKind.FILE), ('in_1', PortKind.PARAM)]


def test_sink_connect_failure_leaves_no_port():
    a, b = make_pair()
    connect(a.out_port('out'), b.in_port('in'))
    sink = Sink()
    # the in-port is fine, but the out-port faces the wrong way
    with pytest.raises(PortKindMismatch):
        sink.connect(b.in_port('in'))
    assert sink.in_ports == []


def test_connection_is_fifo():
    a, b = make_pair()
    conn = connect(a.out_port('out'), b.in_port('in'))
    for token in ['1.txt', '2.txt', '3.txt']:
        assert conn.send(token)
    conn.close()
    assert [b.in_port('in').receive() for _ in range(4)] == ['1.txt', '2.txt', '3.txt', END_OF_STREAM]
    # closed stays closed
    assert b.in_port('in').receive() is END_OF_STREAM
    assert not conn.send('4.txt')


def test_detach_drops_tokens():
    a, b = make_pair()
    conn = connect(a.out_port('out'), b.in_port('in'))
    conn.send('1.txt')
    b.in_port('in').detach()
    assert a.out_port('out').detached
    assert not a.out_port('out').send('2.txt')


def test_abort_ends_stream_immediately():
    a, b = make_pair()
    conn = connect(a.out_port('out'), b.in_port('in'))
    conn.send('1.txt')
    conn.abort()
    assert conn.receive() is END_OF_STREAM
    assert not conn.send('2.txt')


def test_bounded_connection_waits_for_consumer():
    a, b = make_pair()
    conn = Connection(a.out_port('out'), b.in_port('in'), maxsize=1)
    assert conn.send('1')

    sent = threading.Event()

    def produce():
        conn.send('2')
        sent.set()

    producer = threading.Thread(target=produce, daemon=True)
    producer.start()
    assert not sent.wait(0.2)
    assert conn.receive() == '1'
    assert sent.wait(5)
    assert conn.receive() == '2'
    producer.join(5)


def test_detach_releases_blocked_producer():
    a, b = make_pair()
    conn = Connection(a.out_port('out'), b.in_port('in'), maxsize=1)
    conn.send('1')
    results = []
    producer = threading.Thread(target=lambda: results.append(conn.send('2')), daemon=True)
    producer.start()
    conn.detach()
    producer.join(5)
    assert results == [False]
