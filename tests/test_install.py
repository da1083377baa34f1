"""
Install pipeline tests: credential resolution, mirror metadata and asset rendering
"""

import base64
import json
import os
import stat
from pathlib import Path
from unittest.mock import Mock, patch

import pytest
import yaml

from airgap_builder.libs.core.exceptions import (
    ConfigurationError,
    CredentialError,
    InstallerError,
    InstallerNotFoundError,
    MirrorMetadataError,
    MirrorMetadataNotFoundError,
    PreconditionError,
)
from airgap_builder.libs.core.models import MirrorMapping, MirrorMetadata
from airgap_builder.libs.install.assembler import ImageAssembler
from airgap_builder.libs.install.credentials import ConfigResolver
from airgap_builder.libs.install.generator import (
    InstallAssetGenerator,
    InstallInputs,
    build_host_assignments,
    write_assets,
)
from airgap_builder.libs.install.mirror_metadata import (
    MirrorMetadataExtractor,
    parse_mirror_mappings,
    parse_results_timestamp,
)

from test_constants import InstallTestConstants


def make_results_dir(workspace, name, with_policy=True, content=None):
    directory = workspace / name
    directory.mkdir(parents=True)
    if with_policy:
        (directory / "imageContentSourcePolicy.yaml").write_text(
            content if content is not None else InstallTestConstants.ICSP_TWO_DOCUMENTS
        )
    return directory


class TestCredentialResolution:
    """Test merged credential creation and fallbacks"""

    def test_existing_merged_file_returned_verbatim(self, cluster_config, cluster_dir, ssh_key_file):
        # Arrange
        registry_dir = cluster_dir / "registry"
        registry_dir.mkdir()
        (registry_dir / "merged-auth.json").write_text('  {"auths": {"only": {}}}\n\n')
        (cluster_dir / "pull-secret.txt").unlink()

        # Act
        credential = ConfigResolver(cluster_config, str(ssh_key_file)).resolve_credential()

        # Assert
        assert credential == '{"auths": {"only": {}}}'

    def test_merge_creates_file_with_registry_entry(self, cluster_config, cluster_dir, ssh_key_file):
        """Test the create-if-absent step of credential resolution"""
        # Arrange
        cluster_config.registry_password = "pass123"
        resolver = ConfigResolver(cluster_config, str(ssh_key_file))

        # Act
        credential = resolver.resolve_credential()

        # Assert
        merged_path = cluster_dir / "registry" / "merged-auth.json"
        assert merged_path.exists()
        assert stat.S_IMODE(merged_path.stat().st_mode) == 0o600
        assert credential == merged_path.read_text().strip()

        data = json.loads(credential)
        original = json.loads(InstallTestConstants.PULL_SECRET)
        for registry, entry in original['auths'].items():
            assert data['auths'][registry] == entry
        synthesized = data['auths']["registry.demo.example.com:8443"]
        assert base64.b64decode(synthesized['auth']).decode() == "ocp4:pass123"
        assert synthesized['email'] == "user@example.com"
        assert len(data['auths']) == len(original['auths']) + 1
        assert '\n  "auths"' in credential

    def test_second_resolution_reads_merged_file(self, cluster_config, ssh_key_file):
        resolver = ConfigResolver(cluster_config, str(ssh_key_file))

        first = resolver.resolve_credential()
        with patch.object(resolver, 'merge_registry_credential') as mock_merge:
            second = resolver.resolve_credential()

        assert first == second
        mock_merge.assert_not_called()

    def test_password_from_environment(self, cluster_config, ssh_key_file):
        with patch.dict(os.environ, {'AIRGAP_REGISTRY_PASSWORD': "from-env"}):
            credential = ConfigResolver(cluster_config, str(ssh_key_file)).resolve_credential()

        auth = json.loads(credential)['auths']["registry.demo.example.com:8443"]['auth']
        assert base64.b64decode(auth).decode() == "ocp4:from-env"

    def test_unknown_fields_are_preserved(self, cluster_config, cluster_dir, ssh_key_file):
        (cluster_dir / "pull-secret.txt").write_text(json.dumps({
            "auths": {"quay.io": {"auth": "eA==", "identitytoken": "tok"}},
            "credHelpers": {"gcr.io": "gcloud"},
        }))

        data = json.loads(ConfigResolver(cluster_config, str(ssh_key_file)).resolve_credential())

        assert data['credHelpers'] == {"gcr.io": "gcloud"}
        assert data['auths']['quay.io'] == {"auth": "eA==", "identitytoken": "tok"}

    def test_explicit_null_fields_are_preserved(self, cluster_config, cluster_dir, ssh_key_file):
        """Test that an existing entry is written back exactly as read"""
        # Arrange
        entry = {"email": "a@b", "auth": None, "identitytoken": "t"}
        (cluster_dir / "pull-secret.txt").write_text(json.dumps({"auths": {"quay.io": entry}}))

        # Act
        data = json.loads(ConfigResolver(cluster_config, str(ssh_key_file)).resolve_credential())

        # Assert
        assert data['auths']['quay.io'] == entry
        assert list(data['auths']['quay.io']) == ["email", "auth", "identitytoken"]

    def test_malformed_pull_secret_falls_back_to_raw(self, cluster_config, cluster_dir, ssh_key_file):
        """Test that a pull secret without auths is used unmerged"""
        (cluster_dir / "pull-secret.txt").write_text('{"not_auths": {}}\n')

        credential = ConfigResolver(cluster_config, str(ssh_key_file)).resolve_credential()

        assert credential == '{"not_auths": {}}'
        assert not (cluster_dir / "registry" / "merged-auth.json").exists()

    def test_write_failure_falls_back_to_raw(self, cluster_config, ssh_key_file):
        resolver = ConfigResolver(cluster_config, str(ssh_key_file))

        with patch('airgap_builder.libs.install.credentials.atomic_write_text', side_effect=OSError("read-only")):
            credential = resolver.resolve_credential()

        assert credential == InstallTestConstants.PULL_SECRET

    def test_missing_pull_secret_is_fatal(self, cluster_config, cluster_dir, ssh_key_file):
        (cluster_dir / "pull-secret.txt").unlink()

        with pytest.raises(CredentialError):
            ConfigResolver(cluster_config, str(ssh_key_file)).resolve_credential()


class TestTrustBundleAndSSHKey:
    def test_host_scoped_certificate_preferred(self, cluster_config, cluster_dir, ssh_key_file):
        # Arrange
        registry_dir = cluster_dir / "registry"
        (registry_dir / InstallTestConstants.REGISTRY_IP).mkdir(parents=True)
        (registry_dir / InstallTestConstants.REGISTRY_IP / "rootCA.pem").write_text("HOST-SCOPED")
        (registry_dir / "rootCA.pem").write_text("SHARED")

        # Act
        bundle = ConfigResolver(cluster_config, str(ssh_key_file)).resolve_trust_bundle()

        # Assert
        assert bundle == "HOST-SCOPED"

    def test_shared_certificate_fallback(self, cluster_config, cluster_dir, ssh_key_file):
        (cluster_dir / "registry").mkdir()
        (cluster_dir / "registry" / "rootCA.pem").write_text("SHARED")

        assert ConfigResolver(cluster_config, str(ssh_key_file)).resolve_trust_bundle() == "SHARED"

    def test_missing_certificate_is_none(self, cluster_config, ssh_key_file):
        assert ConfigResolver(cluster_config, str(ssh_key_file)).resolve_trust_bundle() is None

    def test_ssh_key_trimmed(self, cluster_config, ssh_key_file):
        assert ConfigResolver(cluster_config, str(ssh_key_file)).resolve_ssh_key() == InstallTestConstants.SSH_KEY

    def test_missing_ssh_key_is_none(self, cluster_config, tmp_path):
        assert ConfigResolver(cluster_config, str(tmp_path / "absent.pub")).resolve_ssh_key() is None


class TestMirrorMetadataExtractor:
    """Test results directory selection and mapping extraction"""

    def test_latest_non_empty_results_directory(self, cluster_dir):
        """Test results-100 wins over results-50 and an empty results-200"""
        # Arrange
        workspace = cluster_dir / "oc-mirror-workspace"
        make_results_dir(workspace, "results-50")
        make_results_dir(workspace, "results-100")
        make_results_dir(workspace, "results-200", with_policy=False)

        # Act
        metadata = MirrorMetadataExtractor(str(cluster_dir)).extract()

        # Assert
        assert metadata.results_dir == str(workspace / "results-100")

    def test_non_numeric_suffix_ignored(self, cluster_dir):
        workspace = cluster_dir / "oc-mirror-workspace"
        make_results_dir(workspace, "results-10")
        make_results_dir(workspace, "results-latest")
        make_results_dir(workspace, "results-99x")

        metadata = MirrorMetadataExtractor(str(cluster_dir)).extract()

        assert metadata.results_dir == str(workspace / "results-10")

    def test_colliding_suffix_first_in_name_order_wins(self, cluster_dir):
        workspace = cluster_dir / "oc-mirror-workspace"
        make_results_dir(workspace, "results-100")
        make_results_dir(workspace, "results-0100")

        metadata = MirrorMetadataExtractor(str(cluster_dir)).extract()

        assert metadata.results_dir == str(workspace / "results-0100")

    def test_images_workspace_fallback(self, cluster_dir):
        workspace = cluster_dir / "images" / "oc-mirror-workspace"
        make_results_dir(workspace, "results-1700000000")

        metadata = MirrorMetadataExtractor(str(cluster_dir)).extract()

        assert metadata.results_dir == str(workspace / "results-1700000000")

    def test_missing_workspace(self, cluster_dir):
        with pytest.raises(MirrorMetadataNotFoundError, match="No mirror workspace"):
            MirrorMetadataExtractor(str(cluster_dir)).extract()

    def test_only_empty_results(self, cluster_dir):
        make_results_dir(cluster_dir / "oc-mirror-workspace", "results-5", with_policy=False)

        with pytest.raises(MirrorMetadataNotFoundError):
            MirrorMetadataExtractor(str(cluster_dir)).extract()

    def test_blocks_preserve_document_and_entry_order(self, cluster_dir):
        """Test that 2 documents with 3 and 2 entries give 5 ordered blocks"""
        # Arrange
        make_results_dir(cluster_dir / "oc-mirror-workspace", "results-1")

        # Act
        metadata = MirrorMetadataExtractor(str(cluster_dir)).extract()

        # Assert
        assert len(metadata.blocks) == 5
        assert [m.source for m in metadata.mappings] == [
            "quay.io/openshift-release-dev/ocp-v4.0-art-dev",
            "quay.io/openshift-release-dev/ocp-release",
            "registry.redhat.io/ubi9",
            "registry.redhat.io/openshift-logging",
            "registry.redhat.io/lvms4",
        ]
        assert metadata.blocks[2] == (
            "- mirrors:\n"
            "  - registry.demo.example.com:8443/ubi9\n"
            "  - mirror2.demo.example.com:8443/ubi9\n"
            "  source: registry.redhat.io/ubi9"
        )
        assert metadata.text == "\n".join(metadata.blocks)

    def test_policy_without_entries(self, cluster_dir):
        make_results_dir(cluster_dir / "oc-mirror-workspace", "results-1",
                         content="apiVersion: v1\nkind: ImageContentSourcePolicy\nspec: {}\n")

        with pytest.raises(MirrorMetadataNotFoundError, match="No valid mirror configuration"):
            MirrorMetadataExtractor(str(cluster_dir)).extract()

    def test_malformed_policy(self, cluster_dir):
        make_results_dir(cluster_dir / "oc-mirror-workspace", "results-1", content="spec: [unclosed\n")

        with pytest.raises(MirrorMetadataError):
            MirrorMetadataExtractor(str(cluster_dir)).extract()

    @pytest.mark.parametrize("content, message", [
        ("spec:\n- a\n", "spec must be a mapping"),
        ("spec:\n  repositoryDigestMirrors: registry.redhat.io/ubi9\n", "repositoryDigestMirrors must be a list"),
        ("spec:\n  repositoryDigestMirrors:\n  - source: registry.redhat.io/ubi9\n    mirrors: reg:8443/x\n",
         "mirrors of registry.redhat.io/ubi9 must be a list"),
    ])
    def test_wrongly_shaped_policy(self, content, message):
        """Test that valid YAML with the wrong structure is a metadata error"""
        with pytest.raises(MirrorMetadataError, match=message):
            parse_mirror_mappings(content)

    def test_parse_results_timestamp(self):
        assert parse_results_timestamp("results-1700000000") == 1700000000
        assert parse_results_timestamp("results-") is None
        assert parse_results_timestamp("other-5") is None


def make_inputs(config, trust_bundle=InstallTestConstants.ROOT_CA, mirror_sources=None):
    if mirror_sources is None:
        mirror_sources = MirrorMetadata(results_dir="", mappings=[
            MirrorMapping("quay.io/openshift-release-dev/ocp-release", ["registry.demo.example.com:8443/release"]),
            MirrorMapping("registry.redhat.io/ubi9", ["registry.demo.example.com:8443/ubi9", "m2:8443/ubi9"]),
        ]).text
    return InstallInputs(
        config=config,
        pull_secret=InstallTestConstants.PULL_SECRET,
        ssh_key=InstallTestConstants.SSH_KEY,
        trust_bundle=trust_bundle,
        mirror_sources=mirror_sources,
    )


class TestInstallAssetGenerator:
    """Test install-config and agent-config rendering"""

    def test_rendering_is_deterministic(self, cluster_config):
        generator = InstallAssetGenerator()

        first = generator.render(make_inputs(cluster_config))
        second = InstallAssetGenerator().render(make_inputs(cluster_config))

        assert first == second

    def test_install_config_fields(self, cluster_config):
        # Act
        document = yaml.safe_load(InstallAssetGenerator().render_install_config(make_inputs(cluster_config)))

        # Assert
        assert document['baseDomain'] == "example.com"
        assert document['metadata']['name'] == "demo"
        assert document['controlPlane']['replicas'] == 3
        assert document['controlPlane']['architecture'] == "amd64"
        assert document['compute'][0]['replicas'] == 1
        assert document['networking']['machineNetwork'] == [{'cidr': "192.168.10.0/24"}]
        assert document['networking']['clusterNetwork'][0]['hostPrefix'] == 23
        assert json.loads(document['pullSecret']) == json.loads(InstallTestConstants.PULL_SECRET)
        assert document['sshKey'] == InstallTestConstants.SSH_KEY
        assert document['additionalTrustBundle'] == InstallTestConstants.ROOT_CA
        assert document['imageContentSources'] == [
            {'mirrors': ["registry.demo.example.com:8443/release"],
             'source': "quay.io/openshift-release-dev/ocp-release"},
            {'mirrors': ["registry.demo.example.com:8443/ubi9", "m2:8443/ubi9"],
             'source': "registry.redhat.io/ubi9"},
        ]
        assert 'proxy' not in document

    def test_optional_blocks_omitted(self, cluster_config):
        inputs = make_inputs(cluster_config, trust_bundle=None, mirror_sources="")
        inputs.ssh_key = None

        text = InstallAssetGenerator().render_install_config(inputs)
        document = yaml.safe_load(text)

        assert 'additionalTrustBundle' not in document
        assert 'imageContentSources' not in document
        assert document['sshKey'] == ""

    def test_proxy_block(self, cluster_config):
        cluster_config.proxy.http_proxy = "http://proxy:3128"
        cluster_config.proxy.no_proxy = ".example.com"

        document = yaml.safe_load(InstallAssetGenerator().render_install_config(make_inputs(cluster_config)))

        assert document['proxy'] == {'httpProxy': "http://proxy:3128", 'noProxy': ".example.com"}

    def test_agent_config_hosts(self, cluster_config):
        """Test host ordering, rendezvous address and derived networking"""
        # Act
        document = yaml.safe_load(InstallAssetGenerator().render_agent_config(cluster_config))

        # Assert
        assert document['rendezvousIP'] == "192.168.10.21"
        assert [h['hostname'] for h in document['hosts']] == ["master-0", "master-1", "master-2", "worker-0"]
        assert [h['role'] for h in document['hosts']] == ["master"] * 3 + ["worker"]

        worker = document['hosts'][3]
        assert worker['interfaces'] == [{'name': "ens3", 'macAddress': "52:54:00:aa:00:31"}]
        nic = worker['networkConfig']['interfaces'][0]
        assert nic['ipv4']['address'] == [{'ip': "192.168.10.31", 'prefix-length': 24}]
        assert worker['networkConfig']['dns-resolver']['config']['server'] == [InstallTestConstants.REGISTRY_IP]
        route = worker['networkConfig']['routes']['config'][0]
        assert route['next-hop-address'] == "192.168.10.1"
        assert route['next-hop-interface'] == "ens3"

    def test_host_assignments_order(self, cluster_config):
        hosts = build_host_assignments(cluster_config)

        assert [h.role for h in hosts] == ["master", "master", "master", "worker"]

    def test_agent_config_requires_control_plane(self, cluster_config):
        cluster_config.control_plane = []

        with pytest.raises(ConfigurationError):
            InstallAssetGenerator().render_agent_config(cluster_config)

    def test_write_assets(self, cluster_config, tmp_path):
        assets = InstallAssetGenerator().render(make_inputs(cluster_config))

        paths = write_assets(assets, str(tmp_path / "installation"))

        assert [p.name for p in paths] == ["install-config.yaml", "agent-config.yaml"]
        assert paths[0].read_text() == assets.install_config
        assert paths[1].read_text() == assets.agent_config


def fake_installer(produce_image=True, returncode=0, seen=None):
    """subprocess.run replacement that behaves like the agent installer"""
    def run(cmd, check=False):
        work_dir = Path(cmd[-1])
        if seen is not None:
            seen['cmd'] = cmd
            seen['inputs'] = sorted(p.name for p in work_dir.iterdir())
        if produce_image:
            (work_dir / "agent.x86_64.iso").write_bytes(b"ISO")
        (work_dir / "auth").mkdir()
        (work_dir / "auth" / "kubeconfig").write_text("kubeconfig")
        (work_dir / ".openshift_install.log").write_text("log")
        return Mock(returncode=returncode)
    return run


def snapshot(directory):
    return {str(p): p.stat().st_mtime_ns for p in directory.rglob("*")}


class TestImageAssembler:
    """Test the agent image build driver"""

    @pytest.fixture
    def installer(self, cluster_dir):
        path = cluster_dir / "downloads" / "bin" / "openshift-install"
        path.parent.mkdir(parents=True)
        path.write_text("#!/bin/sh\n")
        return path

    @pytest.fixture
    def assembler(self, cluster_config, ssh_key_file):
        return ImageAssembler(cluster_config, resolver=ConfigResolver(cluster_config, str(ssh_key_file)))

    def test_successful_build(self, assembler, installer, cluster_dir):
        """Test image placement, artifact copy and scratch cleanup"""
        # Arrange
        seen = {}

        # Act
        with patch('airgap_builder.libs.install.assembler.subprocess.run', side_effect=fake_installer(seen=seen)):
            result = assembler.assemble()

        # Assert
        install_dir = cluster_dir / "installation"
        target = install_dir / "iso" / "demo-agent.x86_64.iso"
        assert result.skipped is False
        assert result.image_path == str(target)
        assert target.read_bytes() == b"ISO"
        assert seen['cmd'][0] == str(installer)
        assert seen['cmd'][1:5] == ["agent", "create", "image", "--dir"]
        assert seen['inputs'] == ["agent-config.yaml", "install-config.yaml"]
        assert (install_dir / "install-config.yaml").exists()
        assert (install_dir / "ignition" / "auth" / "kubeconfig").read_text() == "kubeconfig"
        assert result.copied_artifacts == ["auth", ".openshift_install.log"]
        assert not list(install_dir.glob("agent-work-*"))

    def test_existing_image_skips_without_changes(self, assembler, installer, cluster_dir):
        """Test that a second run without force changes nothing"""
        # Arrange
        with patch('airgap_builder.libs.install.assembler.subprocess.run', side_effect=fake_installer()):
            assembler.assemble()
        before = snapshot(cluster_dir)

        # Act
        with patch('airgap_builder.libs.install.assembler.subprocess.run') as mock_run:
            result = assembler.assemble()

        # Assert
        assert result.skipped is True
        mock_run.assert_not_called()
        assert snapshot(cluster_dir) == before

    def test_existing_image_skips_before_installer_lookup(self, assembler, cluster_dir):
        target = cluster_dir / "installation" / "iso" / "demo-agent.x86_64.iso"
        target.parent.mkdir(parents=True)
        target.write_bytes(b"OLD")

        result = assembler.assemble()

        assert result.skipped is True
        assert target.read_bytes() == b"OLD"

    def test_force_rebuilds(self, assembler, installer, cluster_dir):
        target = cluster_dir / "installation" / "iso" / "demo-agent.x86_64.iso"
        target.parent.mkdir(parents=True)
        target.write_bytes(b"OLD")

        with patch('airgap_builder.libs.install.assembler.subprocess.run', side_effect=fake_installer()):
            result = assembler.assemble(force=True)

        assert result.skipped is False
        assert target.read_bytes() == b"ISO"

    def test_missing_installer_lists_searched_paths(self, assembler, cluster_dir):
        with pytest.raises(InstallerNotFoundError) as exc_info:
            assembler.assemble()

        message = str(exc_info.value)
        assert str(cluster_dir / "openshift-install-4.14.12-registry.demo.example.com") in message
        assert str(cluster_dir / "downloads" / "bin" / "openshift-install") in message
        assert not (cluster_dir / "installation").exists()

    def test_extracted_installer_takes_precedence(self, assembler, installer, cluster_dir):
        extracted = cluster_dir / "openshift-install-4.14.12-registry.demo.example.com"
        extracted.write_text("#!/bin/sh\n")

        assert assembler.find_installer() == extracted

    def test_missing_pull_secret(self, assembler, installer, cluster_dir):
        (cluster_dir / "pull-secret.txt").unlink()

        with pytest.raises(PreconditionError):
            assembler.assemble()

    def test_installer_failure_cleans_up(self, assembler, installer, cluster_dir):
        with patch('airgap_builder.libs.install.assembler.subprocess.run',
                   side_effect=fake_installer(returncode=1)):
            with pytest.raises(InstallerError, match="status 1"):
                assembler.assemble()

        install_dir = cluster_dir / "installation"
        assert not (install_dir / "iso" / "demo-agent.x86_64.iso").exists()
        assert not list(install_dir.glob("agent-work-*"))

    def test_missing_image_is_an_error(self, assembler, installer):
        with patch('airgap_builder.libs.install.assembler.subprocess.run',
                   side_effect=fake_installer(produce_image=False)):
            with pytest.raises(InstallerError, match="agent.x86_64.iso"):
                assembler.assemble()

    def test_mirror_mappings_flow_into_install_config(self, assembler, installer, cluster_dir):
        make_results_dir(cluster_dir / "oc-mirror-workspace", "results-1")

        paths = assembler.generate_configs()

        document = yaml.safe_load(paths[0].read_text())
        assert len(document['imageContentSources']) == 5
        assert 'additionalTrustBundle' not in document

    def test_missing_mirror_metadata_is_tolerated(self, assembler, installer):
        paths = assembler.generate_configs()

        document = yaml.safe_load(paths[0].read_text())
        assert 'imageContentSources' not in document
        assert document['sshKey'] == InstallTestConstants.SSH_KEY

    def test_wrongly_shaped_mirror_metadata_is_tolerated(self, assembler, installer, cluster_dir):
        make_results_dir(cluster_dir / "oc-mirror-workspace", "results-1", content="spec: [1, 2]\n")

        paths = assembler.generate_configs()

        document = yaml.safe_load(paths[0].read_text())
        assert 'imageContentSources' not in document
