import pytest

import cpg_utils.config

from shellflow import defaults_config_path


@pytest.fixture(autouse=True, scope='function')
def pre_and_post_test():
    # Every test starts from the packaged defaults only.
    cpg_utils.config.set_config_paths([str(defaults_config_path)])
    setattr(cpg_utils.config, '_config', None)  # noqa: B010

    yield

    # Reset config paths to defaults. Must use setattr
    # for this to work so ignore flake8 B010.
    cpg_utils.config.set_config_paths([])
    setattr(cpg_utils.config, '_config', None)  # noqa: B010
