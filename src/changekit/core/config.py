"""Configuration management for changekit (changekit.toml parsing + defaults)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore[no-redef]


CONFIG_FILENAME = "changekit.toml"


@dataclass
class MatchConfig:
    # Whitespace-normalized block scan only runs for patterns whose trimmed
    # length is above the minimum and whose raw length is below the maximum.
    whitespace_min_chars: int = 20
    whitespace_max_chars: int = 1000
    default_regex_flags: str = "ms"
    long_pattern_warning_chars: int = 1000


@dataclass
class RepairConfig:
    max_pattern_length: int = 5000


@dataclass
class PreviewConfig:
    context_lines: int = 5
    max_samples: int = 3
    max_sample_chars: int = 500


@dataclass
class ApplyConfig:
    dry_run: bool = False
    encoding: str = "utf-8"


@dataclass
class ChangeKitConfig:
    """Complete changekit configuration."""

    match: MatchConfig = field(default_factory=MatchConfig)
    repair: RepairConfig = field(default_factory=RepairConfig)
    preview: PreviewConfig = field(default_factory=PreviewConfig)
    apply: ApplyConfig = field(default_factory=ApplyConfig)


_SECTIONS = {
    "match": ("whitespace_min_chars", "whitespace_max_chars", "default_regex_flags", "long_pattern_warning_chars"),
    "repair": ("max_pattern_length",),
    "preview": ("context_lines", "max_samples", "max_sample_chars"),
    "apply": ("dry_run", "encoding"),
}


def load_config(project_path: Path | None = None) -> ChangeKitConfig:
    """Load configuration from changekit.toml if present, otherwise return defaults."""
    config = ChangeKitConfig()

    if project_path is None:
        project_path = Path.cwd()

    config_file = project_path / CONFIG_FILENAME
    if not config_file.exists():
        return config

    with open(config_file, "rb") as f:
        data = tomllib.load(f)

    for section, attrs in _SECTIONS.items():
        if section not in data:
            continue
        values = data[section]
        target = getattr(config, section)
        for attr in attrs:
            if attr in values:
                setattr(target, attr, values[attr])

    return config
