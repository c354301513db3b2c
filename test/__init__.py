import logging
from pathlib import Path
from typing import Any

import toml

from cpg_utils.config import set_config_paths

from shellflow import defaults_config_path

logging.basicConfig()
logging.getLogger().setLevel(logging.INFO)


def set_config(
    config: str | dict[str, Any],
    path: Path,
    merge_with: list[Path] | None = None,
) -> None:
    """
    Writes your config to `path` and points `cpg_utils` at it, on top of the
    shellflow defaults. If `merge_with` is provided, those configs are merged
    in between. Merging happens left to right, so that values in the right
    config override values in the left config.

    Args:
        config (str | dict[str, Any]):
            A valid TOML string, or a dictionary to be converted to TOML.

        path (Path):
            Path to write the config to.

        merge_with (list[Path] | None, optional):
            A list of paths to merge with the config. Defaults to `None`.
    """
    with path.open('w') as f:
        if isinstance(config, dict):
            toml.dump(config, f)
        elif isinstance(config, str):
            f.write(config)
        else:
            raise TypeError(f'Expected config to be a string or dict, but got {type(config)}')

        f.flush()

    paths = [defaults_config_path, *(merge_with or []), path]
    return set_config_paths([str(p) for p in paths])
