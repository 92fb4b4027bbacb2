import json
import os

import base58
import pytest
from solders.keypair import Keypair

from solguard.config.settings import ToolkitConfig, build_registry, load_config, load_keypair
from solguard.programs import hello_world, send_program


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("SOLGUARD__"):
            monkeypatch.delenv(key)


@pytest.fixture
def no_dotenv(tmp_path):
    return tmp_path / "missing.env"


def test_defaults(no_dotenv):
    cfg = load_config(dotenv_path=no_dotenv)
    assert cfg.jupiter_base_url == "https://quote-api.jup.ag/v6"
    assert cfg.commitment == "processed"
    assert cfg.quote_max_attempts == 3
    assert cfg.default_slippage_bps == 50
    assert cfg.overrides == ()


def test_toml_layer_and_override_records(tmp_path, no_dotenv):
    settings = tmp_path / "settings.toml"
    settings.write_text(
        '\n'.join(
            [
                'log_level = "debug"',
                "[rpc]",
                'url = "https://devnet.example"',
                "[quote]",
                "max_attempts = 5",
                "[idl]",
                f'{send_program.PROGRAM_ID} = "idl/send.json"',
            ]
        ),
        encoding="utf-8",
    )

    cfg = load_config(settings, dotenv_path=no_dotenv)

    assert cfg.rpc_url == "https://devnet.example"
    assert cfg.quote_max_attempts == 5
    assert cfg.log_level == "DEBUG"
    assert cfg.idl_paths == {send_program.PROGRAM_ID: "idl/send.json"}
    assert cfg.loaded_files == ("settings.toml",)
    assert {o.key for o in cfg.overrides} >= {"rpc.url", "quote.max_attempts", "log_level"}


def test_env_overrides_win_over_toml(tmp_path, monkeypatch, no_dotenv):
    settings = tmp_path / "settings.toml"
    settings.write_text('[quote]\nmax_attempts = 5\n[jupiter]\ndefault_slippage_bps = 80\n', encoding="utf-8")
    monkeypatch.setenv("SOLGUARD__QUOTE__MAX_ATTEMPTS", "7")
    monkeypatch.setenv("SOLGUARD__QUOTE__STALE_DELAY_SECONDS", "0.25")

    cfg = load_config(settings, dotenv_path=no_dotenv)

    assert cfg.quote_max_attempts == 7
    assert cfg.quote_stale_delay_seconds == 0.25
    assert cfg.default_slippage_bps == 80
    env_record = [o for o in cfg.overrides if o.key == "quote.max_attempts" and o.source == "env"][0]
    assert (env_record.old, env_record.new) == (5, 7)


def test_dotenv_is_loaded(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("SOLGUARD__RPC__COMMITMENT=finalized\n", encoding="utf-8")
    try:
        cfg = load_config(dotenv_path=env_file)
        assert cfg.commitment == "finalized"
    finally:
        os.environ.pop("SOLGUARD__RPC__COMMITMENT", None)


def test_process_env_beats_dotenv(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text("SOLGUARD__RPC__COMMITMENT=finalized\n", encoding="utf-8")
    monkeypatch.setenv("SOLGUARD__RPC__COMMITMENT", "confirmed")
    assert load_config(dotenv_path=env_file).commitment == "confirmed"


def test_missing_settings_file_uses_defaults(tmp_path, no_dotenv):
    cfg = load_config(tmp_path / "nope.toml", dotenv_path=no_dotenv)
    assert cfg.loaded_files == ()


@pytest.mark.parametrize(
    "kwargs",
    [
        {"rpc_url": "ws://nope"},
        {"commitment": "instant"},
        {"quote_max_attempts": 0},
        {"default_slippage_bps": 0},
        {"http_timeout_seconds": 0},
    ],
)
def test_config_validation(kwargs):
    with pytest.raises(ValueError):
        ToolkitConfig(**kwargs)


def test_invalid_env_value_rejected(monkeypatch, no_dotenv):
    monkeypatch.setenv("SOLGUARD__RPC__COMMITMENT", "whenever")
    with pytest.raises(ValueError):
        load_config(dotenv_path=no_dotenv)


def test_derived_component_configs():
    cfg = ToolkitConfig(quote_max_attempts=4, quote_error_delay_seconds=1.0, default_slippage_bps=30)
    assert cfg.retry_policy().max_attempts == 4
    assert cfg.retry_policy().error_delay == 1.0
    assert cfg.jupiter_config().slippage_candidates() == [30, 100, 150, 200]


def test_load_keypair_roundtrip():
    kp = Keypair()
    encoded = base58.b58encode(bytes(kp)).decode("ascii")
    assert load_keypair(encoded).pubkey() == kp.pubkey()
    assert load_keypair(f"  {encoded}\n").pubkey() == kp.pubkey()


@pytest.mark.parametrize(
    "value",
    ["", "0OIl", base58.b58encode(bytes(32)).decode("ascii")],
)
def test_load_keypair_rejects_bad_input(value):
    with pytest.raises(ValueError):
        load_keypair(value)


def test_build_registry(tmp_path):
    other = "Other11111111111111111111111111111111111111"
    path = tmp_path / "other.json"
    path.write_text(
        json.dumps({"address": other, "instructions": [{"name": "noop", "discriminator": [9] * 8}]}),
        encoding="utf-8",
    )

    registry = build_registry(ToolkitConfig(idl_paths={other: str(path)}))

    assert registry.has_program(send_program.PROGRAM_ID)
    assert registry.has_program(hello_world.PROGRAM_ID)
    assert registry.get_discriminator(other, "noop") == bytes([9] * 8)
    assert build_registry(ToolkitConfig(), include_builtin=False).list_programs() == []
