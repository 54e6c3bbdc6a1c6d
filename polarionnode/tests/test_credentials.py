"""Tests for the Polarion credential model, descriptor and CredentialRegistry."""
import os
import tempfile

import pytest
from pydantic import ValidationError

from polarionnode.credentials.models import (
    POLARION_API_CREDENTIAL,
    PolarionCredential,
)
from polarionnode.credentials.registry import CredentialRegistry, resolve_env_refs


# ---------------------------------------------------------------------------
# PolarionCredential
# ---------------------------------------------------------------------------

class TestPolarionCredential:
    def test_host_field_names(self):
        cred = PolarionCredential.model_validate({
            "baseUrl": "https://alm.example.com/polarion/api/rest/v1",
            "authentication": "basic",
            "username": "u",
            "password": "p",
        })
        assert cred.base_url == "https://alm.example.com/polarion/api/rest/v1"
        assert cred.authentication == "basic"

    def test_defaults_to_basic(self):
        assert PolarionCredential(base_url="https://x").authentication == "basic"

    def test_pat_alias_normalized(self):
        cred = PolarionCredential.model_validate(
            {"baseUrl": "https://x", "authentication": " PAT ", "pat": "abc"}
        )
        assert cred.authentication == "token"
        assert cred.token == "abc"

    def test_unknown_method_is_kept(self):
        cred = PolarionCredential(base_url="https://x", authentication="ntlm")
        assert cred.authentication == "ntlm"

    def test_base_url_required(self):
        with pytest.raises(ValidationError):
            PolarionCredential.model_validate({"authentication": "basic"})

    def test_redacted_hides_secrets(self):
        cred = PolarionCredential(
            base_url="https://x", username="u", password="p", token="t",
        )
        view = cred.redacted()
        assert view["password"] == "***"
        assert view["token"] == "***"
        assert view["username"] == "u"


# ---------------------------------------------------------------------------
# Descriptor
# ---------------------------------------------------------------------------

class TestCredentialDescriptor:
    def test_name_and_fields(self):
        assert POLARION_API_CREDENTIAL["name"] == "polarionApi"
        names = [p["name"] for p in POLARION_API_CREDENTIAL["properties"]]
        assert names == ["baseUrl", "authentication", "username", "password", "token"]

    def test_auth_options(self):
        auth = next(p for p in POLARION_API_CREDENTIAL["properties"] if p["name"] == "authentication")
        assert [o["value"] for o in auth["options"]] == ["basic", "token"]
        assert auth["default"] == "basic"

    def test_secret_fields_masked_and_conditional(self):
        props = {p["name"]: p for p in POLARION_API_CREDENTIAL["properties"]}
        assert props["password"]["typeOptions"] == {"password": True}
        assert props["token"]["typeOptions"] == {"password": True}
        assert props["username"]["displayOptions"]["show"]["authentication"] == ["basic"]
        assert props["token"]["displayOptions"]["show"]["authentication"] == ["token"]


# ---------------------------------------------------------------------------
# CredentialRegistry
# ---------------------------------------------------------------------------

PROD_YAML = """
name: polarion-prod
type: polarionApi
description: Production ALM
data:
  baseUrl: https://alm.example.com/polarion/api/rest/v1
  authentication: token
  token: env://POLARION_TEST_TOKEN
"""

STAGING_YAML = """
data:
  baseUrl: https://staging.example.com/polarion/api/rest/v1
  username: svc
  password: env://POLARION_TEST_PASSWORD
"""


class TestEnvRefs:
    def test_resolves_nested(self, monkeypatch):
        monkeypatch.setenv("POLARION_TEST_X", "secret")
        assert resolve_env_refs({"a": "env://POLARION_TEST_X", "b": ["env://POLARION_TEST_X", 1]}) == {
            "a": "secret", "b": ["secret", 1],
        }

    def test_unset_resolves_empty(self, monkeypatch):
        monkeypatch.delenv("POLARION_TEST_UNSET", raising=False)
        assert resolve_env_refs("env://POLARION_TEST_UNSET") == ""

    def test_plain_values_untouched(self):
        assert resolve_env_refs("https://x") == "https://x"


class TestCredentialRegistry:
    def test_load_from_yaml(self, monkeypatch):
        monkeypatch.setenv("POLARION_TEST_TOKEN", "tok-1")
        monkeypatch.setenv("POLARION_TEST_PASSWORD", "pw-1")
        with tempfile.TemporaryDirectory() as tmpdir:
            with open(os.path.join(tmpdir, "prod.yaml"), "w") as f:
                f.write(PROD_YAML)
            with open(os.path.join(tmpdir, "staging.yml"), "w") as f:
                f.write(STAGING_YAML)

            registry = CredentialRegistry(config_dir=tmpdir)
            registry.load_all()

            assert registry.count() == 2
            assert registry.names() == ["polarion-prod", "staging"]

            prod = registry.get_polarion("polarion-prod")
            assert prod.authentication == "token"
            assert prod.token == "tok-1"

            staging = registry.get_polarion("staging")
            assert staging.authentication == "basic"
            assert staging.password == "pw-1"

    def test_missing_dir_raises(self):
        registry = CredentialRegistry(config_dir="/nonexistent/path")
        with pytest.raises(FileNotFoundError):
            registry.load_all()

    def test_invalid_yaml_raises(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with open(os.path.join(tmpdir, "bad.yaml"), "w") as f:
                f.write("name: bad\ndata:\n  username: nobody\n")
            registry = CredentialRegistry(config_dir=tmpdir)
            with pytest.raises(ValidationError):
                registry.load_all()

    def test_unknown_name_returns_none(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            registry = CredentialRegistry(config_dir=tmpdir)
            registry.load_all()
            assert registry.get("nope") is None
            assert registry.get_polarion("nope") is None

    def test_other_types_are_not_polarion(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with open(os.path.join(tmpdir, "gh.yaml"), "w") as f:
                f.write("type: githubApi\ndata:\n  token: x\n")
            registry = CredentialRegistry(config_dir=tmpdir)
            registry.load_all()
            assert registry.get("gh") is not None
            assert registry.get_polarion("gh") is None

    def test_reload_picks_up_changes(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            registry = CredentialRegistry(config_dir=tmpdir)
            registry.load_all()
            assert registry.count() == 0

            with open(os.path.join(tmpdir, "new.yaml"), "w") as f:
                f.write("data:\n  baseUrl: https://x\n")
            registry.reload()
            assert registry.names() == ["new"]
