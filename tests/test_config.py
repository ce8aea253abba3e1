"""Tests for bracketpool.config — local config file management."""

import textwrap
from pathlib import Path

import pytest

from bracketpool.config import (
    CUSTODY_SECRET_ENV,
    DEFAULT_STORE_PATH,
    BracketPoolConfig,
    ChainConfig,
    custody_secret,
    load_config,
)
from bracketpool.ledger import DEFAULT_CHAIN_ID, DEFAULT_DENOMINATION, DEFAULT_RPC_URL
from bracketpool.predictions import DEFAULT_POINTS_PER_ROUND


@pytest.fixture
def config_dir(tmp_path):
    """Temporary directory for config files."""
    return tmp_path


def _write_config(config_dir: Path, content: str) -> Path:
    """Write a config.toml and return the path."""
    config_path = config_dir / "config.toml"
    config_path.write_text(textwrap.dedent(content))
    return config_path


class TestLoadConfig:
    def test_missing_file_returns_defaults(self, config_dir):
        cfg = load_config(config_dir / "nonexistent.toml")
        assert isinstance(cfg, BracketPoolConfig)
        assert cfg.store_path == DEFAULT_STORE_PATH
        assert cfg.points_per_round == DEFAULT_POINTS_PER_ROUND
        assert cfg.wallet is None
        assert cfg.chain is None

    def test_full_config(self, config_dir):
        path = _write_config(config_dir, """\
            [store]
            path = "/var/lib/bracketpool/competitions.db"

            [scoring]
            points_per_round = 250

            [wallet]
            address = "0x1234567890abcdef1234567890abcdef12345678"
            private_key = "0xdeadbeef"

            [chain]
            chain_id = 10143
            rpc_url = "https://testnet-rpc.monad.xyz"
            denomination = "tMON"
        """)
        cfg = load_config(path)
        assert cfg.store_path == "/var/lib/bracketpool/competitions.db"
        assert cfg.points_per_round == 250
        assert cfg.wallet.address == "0x1234567890abcdef1234567890abcdef12345678"
        assert cfg.wallet.private_key == "0xdeadbeef"
        assert cfg.chain == ChainConfig(10143, "https://testnet-rpc.monad.xyz", "tMON")

    def test_tilde_expansion(self, config_dir):
        path = _write_config(config_dir, """\
            [store]
            path = "~/pools/competitions.db"
        """)
        cfg = load_config(path)
        assert "~" not in cfg.store_path
        assert cfg.store_path.endswith("pools/competitions.db")
        assert cfg.store_path.startswith(str(Path.home()))

    def test_memory_store_kept_verbatim(self, config_dir):
        path = _write_config(config_dir, """\
            [store]
            path = ":memory:"
        """)
        assert load_config(path).store_path == ":memory:"

    def test_wallet_without_key(self, config_dir):
        path = _write_config(config_dir, """\
            [wallet]
            address = "0xabc"
        """)
        cfg = load_config(path)
        assert cfg.wallet.address == "0xabc"
        assert cfg.wallet.private_key is None

    def test_chain_defaults(self, config_dir):
        path = _write_config(config_dir, """\
            [chain]
        """)
        cfg = load_config(path)
        assert cfg.chain.chain_id == DEFAULT_CHAIN_ID
        assert cfg.chain.rpc_url == DEFAULT_RPC_URL
        assert cfg.chain.denomination == DEFAULT_DENOMINATION

    def test_bad_toml_returns_defaults(self, config_dir):
        path = _write_config(config_dir, "this is not [valid toml\n")
        cfg = load_config(path)
        assert cfg == BracketPoolConfig()

    @pytest.mark.parametrize("value", ["0", "-5", '"lots"'])
    def test_invalid_points_ignored(self, config_dir, value):
        path = _write_config(config_dir, f"""\
            [scoring]
            points_per_round = {value}
        """)
        assert load_config(path).points_per_round == DEFAULT_POINTS_PER_ROUND


class TestCustodySecret:
    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv(CUSTODY_SECRET_ENV, "s3cret")
        assert custody_secret() == "s3cret"

    def test_unset(self, monkeypatch):
        monkeypatch.delenv(CUSTODY_SECRET_ENV, raising=False)
        assert custody_secret() is None

    def test_empty_is_unset(self, monkeypatch):
        monkeypatch.setenv(CUSTODY_SECRET_ENV, "")
        assert custody_secret() is None
