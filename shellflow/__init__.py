"""
File-oriented dataflow workflows of shell commands.
"""

from cpg_utils import to_path
from cpg_utils.config import prepend_config_paths

from .components import FanOut, ParamGenerator, Sink
from .exceptions import WorkflowError
from .paths import CustomPath, ExtendSuffix, ReplaceSuffix, StaticPath
from .process import Process, Task
from .workflow import RunResult, RunState, Workflow

defaults_config_path = to_path(__file__).parent / 'defaults.toml'
if defaults_config_path.exists():
    prepend_config_paths([str(defaults_config_path)])
