"""
Shared pytest fixtures
"""

import pytest
import yaml

from airgap_builder.libs.core.config import ConfigManager

from test_constants import CommonTestConstants


@pytest.fixture
def cluster_dir(tmp_path):
    """A cluster directory holding config.yaml and the raw pull secret"""
    directory = tmp_path / CommonTestConstants.CLUSTER_NAME
    directory.mkdir()
    (directory / "config.yaml").write_text(yaml.safe_dump(CommonTestConstants.config_data(), sort_keys=False))
    (directory / "pull-secret.txt").write_text(CommonTestConstants.PULL_SECRET + "\n")
    return directory


@pytest.fixture
def cluster_config(cluster_dir):
    return ConfigManager().load_cluster(str(cluster_dir))


@pytest.fixture
def ssh_key_file(tmp_path):
    path = tmp_path / "id_rsa.pub"
    path.write_text(CommonTestConstants.SSH_KEY + "\n")
    return path
