"""
Example workflows are wired correctly.
"""

import importlib.util
from pathlib import Path

import pytest

EXAMPLES_DIR = Path(__file__).parent.parent / 'examples'


def _load(name: str):
    spec = importlib.util.spec_from_file_location(name, EXAMPLES_DIR / f'{name}.py')
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_resequencing_validates():
    wf = _load('resequencing').build_workflow()
    validated = wf.validate()

    names = [n.name for n in validated.nodes]
    assert names.index('download_ref') < names.index('ungzip_ref') < names.index('index_ref')
    assert names.index('merge_NA06984') < names.index('sink')
    # a FanOut per fastq, and one for each of ref and index outputs
    assert len(wf.node('ref_fan_out').out_ports) == 7
    assert len(wf.node('index_done_fan_out').out_ports) == 6
    indv_conn = wf.node('merge_NA12489').param_port('indv').connection
    assert indv_conn.unbounded


@pytest.mark.parametrize('run_to', ['hej_writer', 'copyer'])
def test_run_specific_procs_selection(run_to):
    wf = _load('run_specific_procs').build_workflow()
    validated = wf.validate(run_to=run_to)
    assert 'hej_writer' in validated.selected
    assert ('copyer' in validated.selected) == (run_to == 'copyer')
