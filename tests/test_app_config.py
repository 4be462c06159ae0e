#!filepath: tests/test_app_config.py
import pydantic
import pytest
import yaml

from safemf import Loss, Params
from safemf.config import AppConfig, EngineConfig, LogConfig, ParamsConfig


@pytest.fixture
def sample_config_file(tmp_path):
    """
    创建临时 YAML 配置文件用于测试，
    pytest 会自动清理该目录。
    """
    data = {
        "log": {
            "dir": str(tmp_path / "logs"),
            "rotation": "1 day",
            "retention": "7 days",
            "level": "DEBUG",
        },
        "engine": {"library_path": "/opt/libmf/libmf.so"},
        "params": {
            "loss": "real_kl",
            "factors": 20,
            "nmf": True,
            "quiet": True,
        },
    }
    config_file = tmp_path / "config.yaml"
    config_file.write_text(yaml.safe_dump(data), encoding="utf-8")
    return config_file


def test_app_config_load(sample_config_file):
    cfg = AppConfig.load(path=str(sample_config_file))

    assert isinstance(cfg.log, LogConfig)
    assert isinstance(cfg.engine, EngineConfig)
    assert isinstance(cfg.params, ParamsConfig)

    assert cfg.log.level == "DEBUG"
    assert cfg.engine.library_path == "/opt/libmf/libmf.so"
    assert cfg.params.loss is Loss.REAL_KL
    assert cfg.params.factors == 20
    assert cfg.params.threads is None


def test_default_config_loads(monkeypatch):
    monkeypatch.delenv("LIBMF_PATH", raising=False)
    cfg = AppConfig.load()
    assert cfg.params.loss is Loss.REAL_L2
    assert cfg.params.quiet is True
    assert cfg.engine.library_path is None


def test_library_path_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("LIBMF_PATH", "/usr/local/lib/libmf.so")
    config_file = tmp_path / "config.yaml"
    config_file.write_text("params:\n  factors: 4\n", encoding="utf-8")
    cfg = AppConfig.load(config_file)
    assert cfg.engine.library_path == "/usr/local/lib/libmf.so"
    assert cfg.log.level == "INFO"


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        AppConfig.load(tmp_path / "missing.yaml")


@pytest.mark.parametrize("loss", ["hinge", 4, 99])
def test_unknown_loss_rejected(loss):
    with pytest.raises(pydantic.ValidationError):
        ParamsConfig(loss=loss)


def test_unknown_field_rejected():
    with pytest.raises(pydantic.ValidationError):
        ParamsConfig(factor=3)


def test_loss_code_accepted():
    assert ParamsConfig(loss=11).loss is Loss.ONE_CLASS_COL


def test_config_to_params(sample_config_file, engine):
    cfg = AppConfig.load(sample_config_file)
    params = Params.from_config(cfg.params, engine=engine)
    snapshot = params.validate()
    assert snapshot.loss is Loss.REAL_KL
    assert snapshot.nmf is True
    assert snapshot.factors == 20


def test_app_config_selects_engine_library(monkeypatch, engine):
    seen = []

    def fake_default_engine(library_path=None):
        seen.append(library_path)
        return engine

    monkeypatch.setattr("safemf.params.default_engine", fake_default_engine)
    cfg = AppConfig(
        engine=EngineConfig(library_path="/opt/libmf/libmf.so"),
        params=ParamsConfig(factors=4),
    )
    params = Params.from_config(cfg)
    assert seen == ["/opt/libmf/libmf.so"]
    assert params.validate().factors == 4


def test_app_config_explicit_engine_wins(monkeypatch, engine):
    monkeypatch.setattr(
        "safemf.params.default_engine",
        lambda library_path=None: pytest.fail("engine should not be loaded"),
    )
    cfg = AppConfig(params=ParamsConfig(iterations=3))
    assert Params.from_config(cfg, engine=engine).as_dict()["iterations"] == 3
