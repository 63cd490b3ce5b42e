import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# backend/mockup/core/config.py -> backend
_backend_dir = Path(__file__).resolve().parents[2]
load_dotenv(dotenv_path=_backend_dir / ".env", override=False)

_repo_root = _backend_dir.parent

SHADOW_BLEND_MODES = {"multiply", "normal"}


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_str(name: str, default: str) -> str:
    return (os.getenv(name) or "").strip() or default


@dataclass
class Settings:
    # Either a directory or an http(s) URL prefix.
    assets_dir: str = field(default_factory=lambda: _env_str("MOCKUP_ASSETS_DIR", str(_repo_root / "assets")))
    base_file: str = field(default_factory=lambda: _env_str("MOCKUP_BASE_FILE", "bag-base.png"))
    mask_file: str = field(default_factory=lambda: _env_str("MOCKUP_MASK_FILE", "bag-mask.png"))
    displacement_file: str = field(default_factory=lambda: _env_str("MOCKUP_DISPLACEMENT_FILE", "bag-displacement.png"))
    shadow_file: str = field(default_factory=lambda: _env_str("MOCKUP_SHADOW_FILE", "bag-shadow.png"))
    asset_timeout: float = field(default_factory=lambda: _env_float("MOCKUP_ASSET_TIMEOUT", 30.0))

    default_scale: float = field(default_factory=lambda: _env_float("MOCKUP_DEFAULT_SCALE", 60.0))
    default_offset_x: float = field(default_factory=lambda: _env_float("MOCKUP_DEFAULT_OFFSET_X", 50.0))
    default_offset_y: float = field(default_factory=lambda: _env_float("MOCKUP_DEFAULT_OFFSET_Y", 50.0))
    default_intensity: float = field(default_factory=lambda: _env_float("MOCKUP_DEFAULT_INTENSITY", 30.0))

    shadow_opacity: float = field(default_factory=lambda: _env_float("MOCKUP_SHADOW_OPACITY", 0.25))
    shadow_blend: str = field(default_factory=lambda: _env_str("MOCKUP_SHADOW_BLEND", "multiply").lower())

    render_workers: int = field(default_factory=lambda: _env_int("MOCKUP_RENDER_WORKERS", 1))
    max_concurrent_renders: int = field(default_factory=lambda: _env_int("MOCKUP_MAX_CONCURRENT_RENDERS", 2))

    def __post_init__(self):
        if self.shadow_blend not in SHADOW_BLEND_MODES:
            raise ValueError(f"MOCKUP_SHADOW_BLEND must be one of {sorted(SHADOW_BLEND_MODES)} (got: {self.shadow_blend})")
        self.shadow_opacity = min(1.0, max(0.0, float(self.shadow_opacity)))
        self.render_workers = max(1, int(self.render_workers))
        self.max_concurrent_renders = max(1, int(self.max_concurrent_renders))

    def asset_sources(self) -> dict:
        """Map asset name -> location, joined against `assets_dir`."""
        names = {
            "base": self.base_file,
            "mask": self.mask_file,
            "displacement": self.displacement_file,
            "shadow": self.shadow_file,
        }
        root = self.assets_dir
        if root.startswith(("http://", "https://")):
            return {k: root.rstrip("/") + "/" + v for k, v in names.items()}
        return {k: str(Path(root) / v) for k, v in names.items()}


settings = Settings()
