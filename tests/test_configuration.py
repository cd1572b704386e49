import pytest

from rebalancer_keeper.configuration import Configuration
from rebalancer_keeper.pyutils.keepererrors import ConfigurationError

LOWER_ADDRESS = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
CHECKSUM_ADDRESS = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"


def test_defaults(make_configuration):
    config = make_configuration()

    assert config.PROVIDER == ""
    assert config.POLL_INTERVAL == 1.0
    assert config.RECEIPT_TIMEOUT == 120.0
    assert config.REBALANCE_WIDTH_TICKS == 0
    assert config.DEV_POOL_FEE == 3000
    assert config.LOG_JSON is False
    assert config.REBALANCER_ADDRESS == ""
    assert not config.is_development


def test_overrides_win(make_configuration, monkeypatch):
    monkeypatch.setenv("PROVIDER", "http://from-env:8545")

    config = make_configuration(PROVIDER="http://override:8545")

    assert config.PROVIDER == "http://override:8545"


def test_env_values_are_coerced(make_configuration, monkeypatch):
    monkeypatch.setenv("POLL_INTERVAL", "2.5")
    monkeypatch.setenv("REBALANCE_WIDTH_TICKS", "600")
    monkeypatch.setenv("LOG_JSON", "true")
    monkeypatch.setenv("PROVIDER_TYPE", " HTTP ")

    config = make_configuration()

    assert config.POLL_INTERVAL == 2.5
    assert config.REBALANCE_WIDTH_TICKS == 600
    assert config.LOG_JSON is True
    assert config.PROVIDER_TYPE == "http"


def test_invalid_number_is_a_configuration_error(make_configuration, monkeypatch):
    monkeypatch.setenv("RECEIPT_TIMEOUT", "soon")

    with pytest.raises(ConfigurationError):
        make_configuration()


def test_invalid_bool_is_a_configuration_error(make_configuration):
    with pytest.raises(ConfigurationError):
        make_configuration(LOG_JSON="maybe")


def test_env_file_is_loaded(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("PROVIDER=/tmp/geth.ipc\nPROVIDER_TYPE=ipc\n")

    config = Configuration(env_path=env_file, yaml_file=tmp_path / "missing.yaml")

    assert config.PROVIDER == "/tmp/geth.ipc"
    assert config.PROVIDER_TYPE == "ipc"


def test_yaml_section_follows_node_env(tmp_path):
    yaml_file = tmp_path / "config.yaml"
    yaml_file.write_text(
        "development:\n  POLL_INTERVAL: 0.2\n"
        "production:\n  POLL_INTERVAL: 5\n"
    )

    dev = Configuration(env_path=tmp_path / ".env", yaml_file=yaml_file, NODE_ENV="development")
    prod = Configuration(env_path=tmp_path / ".env", yaml_file=yaml_file)

    assert dev.is_development
    assert dev.POLL_INTERVAL == 0.2
    assert prod.POLL_INTERVAL == 5.0


def test_broken_yaml_is_a_configuration_error(tmp_path):
    yaml_file = tmp_path / "config.yaml"
    yaml_file.write_text("production: [unclosed\n")

    with pytest.raises(ConfigurationError):
        Configuration(env_path=tmp_path / ".env", yaml_file=yaml_file)


def test_addresses_are_checksummed(make_configuration):
    config = make_configuration(REBALANCER_ADDRESS=LOWER_ADDRESS)

    assert config.REBALANCER_ADDRESS == CHECKSUM_ADDRESS


def test_invalid_address_is_a_configuration_error(make_configuration):
    with pytest.raises(ConfigurationError, match="REBALANCER_ADDRESS.*0xInvalidAddress"):
        make_configuration(REBALANCER_ADDRESS="0xInvalidAddress")


def test_non_hex_address_is_a_configuration_error(make_configuration):
    with pytest.raises(ConfigurationError, match="DEV_TOKEN_A"):
        make_configuration(DEV_TOKEN_A="0x" + "zz" * 20)


def test_abi_paths_resolve_to_bundled_files(make_configuration):
    config = make_configuration()

    assert config.REBALANCER_ABI.endswith("rebalancer_abi.json")
    assert (Configuration.BASE_PATH / "abi" / "rebalancer_abi.json").exists()


def test_reload_keeps_overrides(make_configuration, monkeypatch):
    config = make_configuration(PROVIDER="http://override:8545")
    monkeypatch.setenv("POLL_INTERVAL", "3")

    config.reload()

    assert config.PROVIDER == "http://override:8545"
    assert config.POLL_INTERVAL == 3.0


def test_repr_hides_wallet_key(make_configuration):
    config = make_configuration(WALLET_KEY="0x" + "11" * 32)

    assert "11" * 32 not in repr(config)


def test_log_level_is_validated(make_configuration):
    assert make_configuration(LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"
    with pytest.raises(ConfigurationError):
        make_configuration(LOG_LEVEL="chatty")


def test_frequency_cache_ttl_bounds(make_configuration):
    assert make_configuration(FREQUENCY_CACHE_TTL="0").FREQUENCY_CACHE_TTL == 0
    with pytest.raises(ConfigurationError, match="FREQUENCY_CACHE_TTL"):
        make_configuration(FREQUENCY_CACHE_TTL=-1)
