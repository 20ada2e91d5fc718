from __future__ import annotations

import json
from pathlib import Path

import pytest

from portcullis import (
    AppConfig,
    ConfigurationError,
    SourceConfig,
    StaticCredentialSource,
    StaticOrganizationSource,
    UsernameOrgMethod,
    build_registry,
    load_config,
)
from tests.support import make_store

RAW_CONFIG = {
    "secret_key": "s3cret",
    "base_path": "/sso/",
    "state_ttl_seconds": 600,
    "sources": [
        {
            "id": "staff",
            "remember_username_enabled": True,
            "remember_me_enabled": True,
            "links": [{"label": "Help", "href": "/help"}],
            "users": [{"username": "alice", "password": "pw", "attributes": {"role": ["admin"]}}],
        },
        {
            "id": "partners",
            "kind": "userpass_org",
            "username_org_method": "allow",
            "remember_organization_enabled": True,
            "organizations": [{"id": "acme", "name": "Acme"}],
            "users": [{"username": "bob", "password": "pw", "organization": "acme"}],
        },
    ],
}


def test_defaults() -> None:
    config = AppConfig()

    assert config.userpass_path == "/login/userpass"
    assert config.userpass_org_path == "/login/userpass-org"
    assert config.template_userpass == "core:loginuserpass.twig"
    assert config.state_ttl_seconds == 3600
    assert config.sources == ()


def test_from_mapping_builds_typed_sources() -> None:
    config = AppConfig.from_mapping(RAW_CONFIG)

    staff, partners = config.sources
    assert staff.kind == "userpass"
    assert staff.users[0].attributes == {"role": ["admin"]}
    assert partners.username_org_method is UsernameOrgMethod.ALLOW
    assert partners.organizations is not None
    assert config.route("/login/userpass") == "/sso/login/userpass"


@pytest.mark.parametrize(
    "overrides",
    [
        {"state_ttl_seconds": 0},
        {"sources": [{"id": "dup"}, {"id": "dup"}]},
        {"sources": [{"id": "x", "kind": "ldap"}]},
        {"sources": [{"id": "x", "username_org_method": "sometimes"}]},
    ],
)
def test_invalid_mappings_raise_configuration_error(overrides) -> None:
    with pytest.raises(ConfigurationError):
        AppConfig.from_mapping({**RAW_CONFIG, **overrides})


def test_load_config_from_json_and_toml(tmp_path: Path) -> None:
    json_path = tmp_path / "portcullis.json"
    json_path.write_text(json.dumps(RAW_CONFIG))
    toml_path = tmp_path / "portcullis.toml"
    toml_path.write_text(
        'secret_key = "s3cret"\n'
        "state_ttl_seconds = 120\n"
        "[[sources]]\n"
        'id = "staff"\n'
        "remember_username_enabled = true\n"
        "[[sources.users]]\n"
        'username = "alice"\n'
        'password = "pw"\n'
    )

    from_json = load_config(json_path)
    from_toml = load_config(toml_path)

    assert from_json == AppConfig.from_mapping(RAW_CONFIG)
    assert from_toml.state_ttl_seconds == 120
    assert from_toml.sources[0].users[0].username == "alice"


def test_load_config_rejects_bad_files(tmp_path: Path) -> None:
    yaml_path = tmp_path / "portcullis.yaml"
    yaml_path.write_text("secret_key: nope")
    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    invalid = tmp_path / "invalid.json"
    invalid.write_text(json.dumps({"state_ttl_seconds": "soon"}))

    for path in (yaml_path, broken, invalid):
        with pytest.raises(ConfigurationError):
            load_config(path)


def test_build_registry_instantiates_static_sources() -> None:
    store = make_store()
    registry = build_registry(AppConfig.from_mapping(RAW_CONFIG), store)

    staff = registry.get("staff")
    partners = registry.get("partners")
    assert isinstance(staff, StaticCredentialSource)
    assert staff.remember_username_enabled is True
    assert staff.remember_me_enabled is True
    assert staff.login_links[0].href == "/help"
    assert isinstance(partners, StaticOrganizationSource)
    assert partners.username_org_method is UsernameOrgMethod.ALLOW
    assert partners.remember_organization_enabled is True
    assert registry.ids() == ("staff", "partners")


def test_source_config_kind_defaults_to_userpass() -> None:
    assert SourceConfig(id="x").kind == "userpass"
