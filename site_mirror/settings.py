from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Union

# -------------------- Config --------------------

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.7",
}

CONFIG_GROUPS = ("general", "crawl", "http")


# -------------------- Settings --------------------


@dataclass
class Settings:
    timeout: float = 15.0
    workers: int = 8
    max_retries: int = 3
    max_bytes: int = 50_000_000
    chunk_size: int = 64 * 1024
    # urllib3-level retries inside a single fetch; the frontier owns the rest
    transport_retries: int = 0
    headers: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_HEADERS))


def settings_from_mapping(data: Mapping[str, Any]) -> Settings:
    known = {f.name for f in fields(Settings)}
    kwargs = {k.replace("-", "_"): v for k, v in data.items()}
    kwargs = {k: v for k, v in kwargs.items() if k in known and v is not None}
    s = Settings(**kwargs)
    s.timeout = max(0.1, float(s.timeout))
    s.workers = max(1, int(s.workers))
    s.max_retries = max(0, int(s.max_retries))
    s.max_bytes = max(1024, int(s.max_bytes))
    s.chunk_size = max(1024, int(s.chunk_size))
    s.transport_retries = max(0, int(s.transport_retries))
    s.headers = dict(s.headers)
    return s


# -------------------- Config loader --------------------


def load_config_file(path: Union[str, Path]) -> Dict[str, Union[str, int, float, bool, List[str]]]:
    p = Path(path)
    suf = p.suffix.lower()
    if suf in {".toml", ".tml"}:
        try:
            import tomllib  # py311+
        except ImportError:
            try:
                import tomli as tomllib  # backport
            except ImportError:
                raise RuntimeError("TOML config requires Python 3.11+ or 'tomli'")
        with open(p, "rb") as f:
            data = tomllib.load(f) or {}
    elif suf in {".yaml", ".yml"}:
        try:
            import yaml
        except ImportError:
            raise RuntimeError("YAML config requires 'PyYAML'")
        with open(p, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise RuntimeError("Top-level YAML must be a mapping")
    else:
        raise RuntimeError("Unsupported config format. Use .toml or .yaml")
    return flatten_config(data)


def flatten_config(cfg: Mapping[str, Any]) -> Dict[str, Any]:
    flat = {k: v for k, v in cfg.items() if k == "headers" or not isinstance(v, dict)}
    for g in CONFIG_GROUPS:
        if isinstance(cfg.get(g), dict):
            flat.update(cfg[g])
    return flat
