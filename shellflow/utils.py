"""
Utility functions and constants.
"""

import logging
import os
import shutil

import coloredlogs

from cpg_utils import Path, to_path

TMP_PREFIX = '.shellflow.tmp.'

LOG_FORMAT = '%(asctime)s %(levelname)s (%(name)s %(lineno)s): %(message)s'


def setup_logging(verbose: bool = False):
    """
    Colored console logging for workflow scripts.
    """
    coloredlogs.install(level='DEBUG' if verbose else 'INFO', fmt=LOG_FORMAT)


def is_cloud_path(path: str) -> bool:
    return '://' in path


def in_workdir(path: str, workdir: str) -> Path:
    """
    Resolve a task path against the working directory commands run in.
    """
    if is_cloud_path(path) or os.path.isabs(path):
        return to_path(path)
    return to_path(os.path.join(workdir, path))


def exists(path: str, workdir: str) -> bool:
    """
    Check if the object by path exists, where the object can be a local file,
    a local directory, or a cloud object. Not cached: outputs appear while the
    workflow runs.
    """
    res = in_workdir(path, workdir).exists()
    logging.debug(f'Checked {path} [' + ('exists' if res else 'missing') + ']')
    return res


def tmp_output_path(path: str) -> str:
    """
    Hidden sibling path a command writes to before the output is complete.
    The file name ending is kept, so tools that pick formats by extension
    behave the same.

    >>> tmp_output_path('data/ref.fa')
    'data/.shellflow.tmp.ref.fa'
    """
    head, tail = os.path.split(path)
    return os.path.join(head, TMP_PREFIX + tail)


def finalise_output(tmp_path: str, path: str, workdir: str):
    """
    Move a completed temporary output into place.
    """
    src = str(in_workdir(tmp_path, workdir))
    dst = str(in_workdir(path, workdir))
    if os.path.isdir(dst) and not os.path.islink(dst):
        shutil.rmtree(dst)
    os.replace(src, dst)
