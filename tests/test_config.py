from __future__ import annotations

import pytest

from orderdesk.config import ConfigError, load_config

DB_SECTION = """
[db]
host = "db.local"
name = "orderdesk"
user = "app"
password = "secret"
"""


def _write(tmp_path, text):
    p = tmp_path / "config.toml"
    p.write_text(text, encoding="utf-8")
    return p


def test_defaults_fill_optional_sections(tmp_path):
    cfg = load_config(_write(tmp_path, DB_SECTION))

    assert cfg.name == "OrderDesk"
    assert cfg.log_level == "INFO"
    assert cfg.db.port == 5432
    assert cfg.db.sslmode == "disable"
    assert cfg.business.default_sales_commission_percent == 5.0
    assert cfg.business.approval_roles == ("manager", "admin")


def test_business_section_is_read(tmp_path):
    text = '[app]\nlog_level = "debug"\n' + DB_SECTION + (
        "\n[business]\ndefault_sales_commission_percent = 7.5\napproval_roles = [\"owner\"]\n"
    )

    cfg = load_config(_write(tmp_path, text))

    assert cfg.log_level == "DEBUG"
    assert cfg.business.default_sales_commission_percent == 7.5
    assert cfg.business.approval_roles == ("owner",)


def test_env_var_selects_the_file(tmp_path, monkeypatch):
    monkeypatch.setenv("ORDERDESK_CONFIG", str(_write(tmp_path, DB_SECTION)))

    assert load_config().db.host == "db.local"


@pytest.mark.parametrize(
    "text,message",
    [
        ('[app]\nname = "x"\n', "Missing config key"),
        (DB_SECTION.replace('user = "app"\n', ""), "Missing config key"),
        (DB_SECTION + "\n[business]\ndefault_sales_commission_percent = 150\n", "Invalid config values"),
        (DB_SECTION + '\n[business]\napproval_roles = "manager"\n', "Invalid config values"),
        ("[db\n", "Failed to read config TOML"),
    ],
)
def test_bad_config_raises(tmp_path, text, message):
    with pytest.raises(ConfigError, match=message):
        load_config(_write(tmp_path, text))


def test_missing_file_raises(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "nope.toml")
