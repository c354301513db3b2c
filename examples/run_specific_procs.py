#!/usr/bin/env python3

"""
Run only part of a workflow: `copyer` depends on `hej_writer`, but running to
`hej_writer` never starts `copyer`.
"""

from shellflow import Workflow
from shellflow.utils import setup_logging


def build_workflow() -> Workflow:
    wf = Workflow('configurable_final_proc', max_concurrent_tasks=4)

    first = wf.new_process('hej_writer', 'echo hej > {o:hej}')
    first.set_path_static('hej', 'hej.txt')

    copyer = wf.new_process('copyer', 'cat {i:in} > {o:out}')
    copyer.set_path_replace('in', 'out', '.txt', '.copy.txt')
    copyer.in_port('in').connect(first.out_port('hej'))
    return wf


if __name__ == '__main__':
    setup_logging()
    build_workflow().run_to('hej_writer')
