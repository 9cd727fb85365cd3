"""Tests for configuration loading."""

from appraise_core.config import load_config


def test_defaults_applied_when_no_config_file(tmp_path):
    config = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    assert config["target_ref"] == "refs/heads/master"
    assert config["reflow_width"] == 80
    assert config["context_lines"] == 5
    assert config["diff_opts"] == []
    assert config["web_port"] == 8080


def test_config_file_overrides_defaults(tmp_path):
    cfg = tmp_path / ".appraise.yml"
    cfg.write_text("target_ref: refs/heads/main\nreflow_width: 72\n")
    config = load_config(config_path=str(cfg))
    assert config["target_ref"] == "refs/heads/main"
    assert config["reflow_width"] == 72


def test_empty_config_file(tmp_path):
    cfg = tmp_path / ".appraise.yml"
    cfg.write_text("")
    config = load_config(config_path=str(cfg))
    assert config["target_ref"] == "refs/heads/master"


def test_diff_opts_loaded(tmp_path):
    cfg = tmp_path / ".appraise.yml"
    cfg.write_text("diff_opts:\n  - --ignore-all-space\n")
    config = load_config(config_path=str(cfg))
    assert config["diff_opts"] == ["--ignore-all-space"]


def test_cli_overrides_config_file(tmp_path):
    cfg = tmp_path / ".appraise.yml"
    cfg.write_text("web_port: 9000\n")
    config = load_config(config_path=str(cfg), cli_overrides={"web_port": 9100})
    assert config["web_port"] == 9100


def test_none_cli_overrides_ignored(tmp_path):
    cfg = tmp_path / ".appraise.yml"
    cfg.write_text("web_port: 9000\n")
    config = load_config(config_path=str(cfg), cli_overrides={"web_port": None})
    assert config["web_port"] == 9000


def test_env_vars_loaded(monkeypatch, tmp_path):
    monkeypatch.setenv("APPRAISE_LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("APPRAISE_USER", "reviewer@example.com")
    config = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    assert config["log_level"] == "DEBUG"
    assert config["user"] == "reviewer@example.com"


def test_user_defaults_to_config_file(monkeypatch, tmp_path):
    monkeypatch.delenv("APPRAISE_USER", raising=False)
    cfg = tmp_path / ".appraise.yml"
    cfg.write_text("user: someone@example.com\n")
    config = load_config(config_path=str(cfg))
    assert config["user"] == "someone@example.com"


def test_diff_opts_list_is_not_shared_reference(tmp_path):
    """Mutating one config's diff_opts list must not affect another."""
    config_a = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    config_b = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    config_a["diff_opts"].append("--stat")
    assert config_b["diff_opts"] == []
