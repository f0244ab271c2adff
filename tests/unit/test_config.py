import pytest
from pathlib import Path
from pydantic import ValidationError
from vjoin.config.models import (
    AppConfig, CompressionConfig, NormalizationConfig, NormalizationTier, ProfileConfig, SingleCompressConfig,
    StorageConfig, MIB,
)
from vjoin.config.loader import load_config

def test_defaults_match_profiles():
    config = AppConfig()
    assert config.general.default_aspect == "9:16"
    assert (config.profiles["9:16"].width, config.profiles["9:16"].height) == (1080, 1920)
    assert (config.profiles["1:1"].width, config.profiles["1:1"].height) == (1080, 1080)
    assert (config.profiles["16:9"].width, config.profiles["16:9"].height) == (1920, 1080)
    assert config.profiles["9:16"].size_ceiling_bytes == 49 * MIB
    assert config.compression.crf_max == 35
    assert config.compression.max_attempts == 4

def test_default_tiers_are_progressively_conservative():
    tiers = NormalizationConfig().tiers
    assert [t.preset for t in tiers] == ["fast", "medium", "slow"]
    assert [t.crf for t in tiers] == [23, 25, 28]
    assert tiers[0].extra_filters == []
    assert "format=yuv420p" in tiers[1].extra_filters
    assert "setpts=PTS-STARTPTS" in tiers[2].extra_filters

def test_tier_count_enforced():
    with pytest.raises(ValidationError):
        NormalizationConfig(tiers=[NormalizationTier(name="only", preset="fast", crf=23)])

def test_tier_crf_must_not_decrease():
    with pytest.raises(ValidationError):
        NormalizationConfig(tiers=[
            NormalizationTier(name="a", preset="fast", crf=28),
            NormalizationTier(name="b", preset="medium", crf=25),
            NormalizationTier(name="c", preset="slow", crf=30),
        ])

def test_odd_dimensions_rejected():
    with pytest.raises(ValidationError):
        ProfileConfig(width=1081, height=1920)

def test_initial_crf_above_max_rejected():
    with pytest.raises(ValidationError):
        CompressionConfig(initial_crf=40, crf_max=35)

def test_default_aspect_must_have_profile():
    with pytest.raises(ValidationError):
        AppConfig(general={"default_aspect": "4:3"})

def test_profile_for_known_and_unknown_aspect():
    config = AppConfig()
    square = config.profile_for("1:1")
    assert (square.name, square.width, square.height) == ("1:1", 1080, 1080)
    assert square.accepted_frame_rates == ("30/1", "30")

    fallback = config.profile_for("4:3")
    assert fallback.name == "9:16"
    assert config.profile_for(None).name == "9:16"

def test_profile_for_double_rate_opt_in():
    config = AppConfig()
    config.profiles["9:16"].accept_double_rate = True
    assert "60/1" in config.profile_for("9:16").accepted_frame_rates

def test_storage_enabled_requires_url_and_key():
    assert not StorageConfig().enabled
    assert not StorageConfig(url="https://x.supabase.co").enabled
    assert StorageConfig(url="https://x.supabase.co", key="k").enabled

def test_single_compress_defaults_and_bitrate_check():
    settings = AppConfig().single_compress
    assert (settings.crf, settings.preset, settings.max_bitrate) == (23, "medium", "5M")
    assert SingleCompressConfig(max_bitrate="1.5M").max_bitrate == "1.5M"
    with pytest.raises(ValidationError):
        SingleCompressConfig(max_bitrate="lots")
    with pytest.raises(ValidationError):
        SingleCompressConfig(crf=60)

def test_load_config_missing_file_gives_defaults(tmp_path):
    config = load_config(tmp_path / "nope.yaml", environ={})
    assert config == AppConfig()

def test_load_config_from_yaml(vjoin_yaml):
    config = load_config(vjoin_yaml, environ={})
    assert config.general.max_workers == 2
    assert config.general.default_aspect == "16:9"
    assert config.compression.max_attempts == 3
    assert config.storage.bucket == "clips"
    assert not config.storage.enabled

def test_load_config_env_overrides_storage(vjoin_yaml):
    env = {"VJOIN_STORAGE_URL": "https://proj.supabase.co", "VJOIN_STORAGE_KEY": "secret"}
    config = load_config(vjoin_yaml, environ=env)
    assert config.storage.url == "https://proj.supabase.co"
    assert config.storage.key == "secret"
    assert config.storage.bucket == "clips"
    assert config.storage.enabled

def test_load_config_rejects_non_mapping(tmp_path):
    bad = tmp_path / "bad.yaml"
    bad.write_text("- just\n- a list\n")
    with pytest.raises(ValueError):
        load_config(bad, environ={})

def test_shipped_example_config_loads():
    path = Path(__file__).resolve().parents[2] / "conf" / "vjoin.yaml"
    config = load_config(path, environ={})
    assert config.normalization.tiers[2].name == "forced"
    assert config.compression.bitrate_caps[0] == [33, "1.5M", "3M"]
    assert config.profile_for("9:16").width == 1080
    assert config.single_compress.max_bitrate == "5M"
