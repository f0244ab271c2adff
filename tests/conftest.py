import pytest
import yaml
from pathlib import Path
from vjoin.config.models import AppConfig
from vjoin.domain.models import StepOutcome

@pytest.fixture
def app_config(tmp_path):
    """AppConfig with every directory redirected into the test's tmp_path."""
    config = AppConfig()
    config.general.scratch_root = tmp_path / "scratch"
    config.general.output_dir = tmp_path / "output"
    config.general.log_dir = tmp_path / "logs"
    config.general.scratch_root.mkdir()
    return config

@pytest.fixture
def write_bytes():
    """Creates a file of the given size and returns its path."""
    def _write(path: Path, size: int) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"\0" * size)
        return path
    return _write

@pytest.fixture
def engine_writes(write_bytes):
    """Builds a side_effect for FFmpegAdapter.run that writes outputs of the requested sizes.

    `sizes` maps a step label to a size (or a list consumed per call); None means the step fails.
    """
    def _factory(sizes: dict, calls: list = None):
        pending = {k: list(v) if isinstance(v, list) else v for k, v in sizes.items()}

        def _run(cmd, output, timeout, label, min_bytes=None):
            if calls is not None:
                calls.append(label)
            size = pending.get(label, pending.get("*"))
            if isinstance(size, list):
                size = size.pop(0)
            if size is None:
                return StepOutcome.err(f"{label} exited with code 1")
            write_bytes(Path(output), size)
            return StepOutcome.ok(label)
        return _run
    return _factory

@pytest.fixture
def vjoin_yaml(tmp_path):
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    conf_file = conf_dir / "vjoin.yaml"

    content = {
        'general': {
            'max_workers': 2,
            'default_aspect': '16:9',
        },
        'compression': {
            'max_attempts': 3,
        },
        'storage': {
            'bucket': 'clips',
        },
    }

    with open(conf_file, 'w') as f:
        yaml.dump(content, f)

    return conf_file
