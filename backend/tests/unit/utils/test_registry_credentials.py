"""
Tests for Docker CLI config credential lookup.
"""

import base64
import json

import pytest

from updates.registry_endpoints import resolve
from utils.registry_credentials import encode_basic_auth, get_registry_credentials, load_docker_hub_credentials


def write_config(tmp_path, content):
    path = tmp_path / "config.json"
    path.write_text(content if isinstance(content, str) else json.dumps(content))
    return str(path)


def b64(text):
    return base64.b64encode(text.encode()).decode()


@pytest.mark.unit
class TestLoadDockerHubCredentials:

    def test_auth_field(self, tmp_path):
        path = write_config(tmp_path, {"auths": {"https://index.docker.io/v1/": {"auth": b64("alice:s3cret")}}})

        assert load_docker_hub_credentials(path) == {"username": "alice", "password": "s3cret"}

    def test_password_may_contain_colons(self, tmp_path):
        path = write_config(tmp_path, {"auths": {"docker.io": {"auth": b64("bob:a:b:c")}}})

        assert load_docker_hub_credentials(path) == {"username": "bob", "password": "a:b:c"}

    def test_explicit_username_password(self, tmp_path):
        path = write_config(tmp_path, {"auths": {"registry-1.docker.io": {"username": "carol", "password": "pw"}}})

        assert load_docker_hub_credentials(path) == {"username": "carol", "password": "pw"}

    def test_other_registries_ignored(self, tmp_path):
        path = write_config(tmp_path, {"auths": {"ghcr.io": {"auth": b64("dave:token")}}})

        assert load_docker_hub_credentials(path) is None

    @pytest.mark.parametrize("content", [
        "{not json",
        "[]",
        json.dumps({"auths": []}),
        json.dumps({"auths": {"docker.io": {"auth": "!!!not-base64!!!"}}}),
        json.dumps({"auths": {"docker.io": {"auth": b64("no-separator")}}}),
        json.dumps({"credsStore": "desktop"}),
    ])
    def test_malformed_config_yields_none(self, tmp_path, content):
        assert load_docker_hub_credentials(write_config(tmp_path, content)) is None

    def test_missing_file(self, tmp_path):
        assert load_docker_hub_credentials(str(tmp_path / "nope.json")) is None


@pytest.mark.unit
class TestGetRegistryCredentials:

    def test_only_docker_hub_targets(self, tmp_path):
        path = write_config(tmp_path, {"auths": {"https://index.docker.io/v1/": {"auth": b64("alice:s3cret")}}})

        assert get_registry_credentials(resolve("nginx"), path) == {"username": "alice", "password": "s3cret"}
        assert get_registry_credentials(resolve("ghcr.io/owner/app"), path) is None
        assert get_registry_credentials(resolve("quay.io/org/app"), path) is None


@pytest.mark.unit
def test_encode_basic_auth():
    assert encode_basic_auth({"username": "user", "password": "pass"}) == "Basic dXNlcjpwYXNz"
