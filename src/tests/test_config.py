import pytest

from jukebox.utils import config as config_module
from jukebox.utils.config import check_dependencies, load_config

ENV_NAMES = list(config_module.ENV_OVERRIDES)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


def write_yaml(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text)
    return str(path)


def test_loads_yaml(tmp_path):
    path = write_yaml(tmp_path, """
host: "1234"
bot_identity_credential: "token"
bot_display_name: "DJ"
default_volume: 40
text_channel_id: 99
""")
    config = load_config(path, env_path=str(tmp_path / "missing.env"))
    assert config.host == "1234"
    assert config.bot_display_name == "DJ"
    assert config.default_volume == 40
    assert config.text_channel_id == 99
    assert config.command_prefix == "!"


def test_environment_overrides_yaml(tmp_path, monkeypatch):
    path = write_yaml(tmp_path, 'host: "1234"\nbot_identity_credential: "yaml-token"\n')
    monkeypatch.setenv("DISCORD_TOKEN", "env-token")
    monkeypatch.setenv("DEFAULT_VOLUME", "70")
    config = load_config(path, env_path=str(tmp_path / "missing.env"))
    assert config.bot_identity_credential == "env-token"
    assert config.default_volume == 70


def test_dotenv_file_is_loaded(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text("DISCORD_TOKEN=dotenv-token\nVOICE_CHANNEL_ID=555\n")
    config = load_config(str(tmp_path / "none.yaml"), env_path=str(env_file))
    assert config.bot_identity_credential == "dotenv-token"
    assert config.host == "555"


def test_missing_token_is_rejected(tmp_path):
    path = write_yaml(tmp_path, 'host: "1234"\n')
    with pytest.raises(ValueError):
        load_config(path, env_path=str(tmp_path / "missing.env"))


@pytest.mark.parametrize("volume", ["150", "-5", "loud"])
def test_bad_default_volume_is_rejected(tmp_path, volume):
    path = write_yaml(tmp_path, f'host: "1"\nbot_identity_credential: "t"\ndefault_volume: "{volume}"\n')
    with pytest.raises(ValueError):
        load_config(path, env_path=str(tmp_path / "missing.env"))


def test_check_dependencies(tmp_path, monkeypatch):
    config = load_config(
        write_yaml(tmp_path, 'host: "1"\nbot_identity_credential: "t"\n'),
        env_path=str(tmp_path / "missing.env"),
    )
    monkeypatch.setattr(config_module.shutil, 'which', lambda name: "/usr/bin/ffmpeg")
    assert check_dependencies(config) == "/usr/bin/ffmpeg"

    monkeypatch.setattr(config_module.shutil, 'which', lambda name: None)
    with pytest.raises(RuntimeError):
        check_dependencies(config)
