"""
Tests for manifest classification and platform selection.
"""

from unittest.mock import patch

import pytest

from updates import manifest_resolver
from updates.registry_client import ManifestParseError


ATTESTATION = {
    "digest": "sha256:att",
    "platform": {"os": "unknown", "architecture": "unknown"},
    "annotations": {
        "vnd.docker.reference.type": "attestation-manifest",
        "vnd.docker.reference.digest": "sha256:amd",
    },
}
ARM64 = {"digest": "sha256:arm", "platform": {"os": "linux", "architecture": "arm64"}}
AMD64 = {"digest": "sha256:amd", "platform": {"os": "linux", "architecture": "amd64"}}
ARMV7 = {"digest": "sha256:armv7", "platform": {"os": "linux", "architecture": "arm", "variant": "v7"}}


@pytest.fixture
def amd64_host():
    with patch.object(manifest_resolver, "host_architecture", return_value="amd64"), \
         patch.object(manifest_resolver, "host_variant", return_value=None):
        yield


@pytest.mark.unit
class TestResolve:

    def test_multi_arch_picks_host_platform_past_attestation(self, amd64_host):
        body = {"mediaType": "application/vnd.oci.image.index.v1+json", "manifests": [ATTESTATION, ARM64, AMD64]}

        resolution = manifest_resolver.resolve(body, "sha256:list")

        assert resolution.is_multi_arch is True
        assert resolution.platform_digest == "sha256:amd"
        assert resolution.config_digest is None

    def test_manifest_digest_is_the_list_digest(self, amd64_host):
        body = {"manifests": [AMD64]}
        resolution = manifest_resolver.resolve(body, "sha256:list")
        assert resolution.manifest_digest == "sha256:list"
        assert resolution.manifest_digest != resolution.platform_digest

    def test_single_manifest_uses_config_digest(self):
        body = {"schemaVersion": 2, "config": {"digest": "sha256:cfg"}, "layers": []}

        resolution = manifest_resolver.resolve(body, "sha256:single")

        assert resolution.is_multi_arch is False
        assert resolution.manifest_digest == "sha256:single"
        assert resolution.config_digest == "sha256:cfg"

    @pytest.mark.parametrize("body", [
        {"schemaVersion": 1, "fsLayers": []},
        ["not", "an", "object"],
        "text",
        None,
    ])
    def test_unknown_shapes_raise(self, body):
        with pytest.raises(ManifestParseError):
            manifest_resolver.resolve(body, "sha256:x")


@pytest.mark.unit
class TestSelectPlatform:

    def test_falls_back_to_first_known_architecture(self):
        entry = manifest_resolver.select_platform([ATTESTATION, ARM64], architecture="amd64")
        assert entry is ARM64

    def test_only_attestations_yields_none(self):
        assert manifest_resolver.select_platform([ATTESTATION], architecture="amd64") is None

    def test_variant_is_respected(self):
        armv6 = {"digest": "sha256:armv6", "platform": {"os": "linux", "architecture": "arm", "variant": "v6"}}
        entry = manifest_resolver.select_platform([armv6, ARMV7], architecture="arm", variant="v7")
        assert entry is ARMV7

    def test_os_must_match(self):
        windows = {"digest": "sha256:win", "platform": {"os": "windows", "architecture": "amd64"}}
        entry = manifest_resolver.select_platform([windows, AMD64], architecture="amd64")
        assert entry is AMD64


@pytest.mark.unit
class TestHostArchitecture:

    @pytest.mark.parametrize("machine,expected", [
        ("x86_64", "amd64"),
        ("aarch64", "arm64"),
        ("armv7l", "arm"),
    ])
    def test_machine_mapping(self, machine, expected):
        with patch.object(manifest_resolver.AppConfig, "PLATFORM_ARCH", ""), \
             patch("updates.manifest_resolver.platform.machine", return_value=machine):
            assert manifest_resolver.host_architecture() == expected

    def test_setting_overrides_detection(self):
        with patch.object(manifest_resolver.AppConfig, "PLATFORM_ARCH", "riscv64"):
            assert manifest_resolver.host_architecture() == "riscv64"
