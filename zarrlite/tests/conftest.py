from pathlib import Path

import pytest

from zarrlite.config import config


@pytest.fixture(params=[str, Path])
def path_type(request):
    return request.param


@pytest.fixture(autouse=True)
def reset_config():
    config.reset()
    yield
    config.reset()
