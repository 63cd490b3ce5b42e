import argparse
import sys
import os
from pathlib import Path

# Add backend to path
sys.path.append(os.path.join(os.path.dirname(__file__), '../backend'))

from mockup.core.config import Settings
from mockup.core.errors import DesignRejected
from mockup.main import build_session
from mockup.services.asset_store import AssetStore

REPO_ROOT = Path(__file__).resolve().parents[1]


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Render a design onto the product photo.")
    parser.add_argument("design", help="design image file")
    parser.add_argument("--out", default=str(REPO_ROOT / "artifacts" / "mockup.png"))
    parser.add_argument("--assets", default=None, help="asset directory or URL prefix (default: MOCKUP_ASSETS_DIR)")
    parser.add_argument("--scale", type=float, default=None)
    parser.add_argument("--offset-x", type=float, default=None)
    parser.add_argument("--offset-y", type=float, default=None)
    parser.add_argument("--intensity", type=float, default=None)
    args = parser.parse_args(argv)

    cfg = Settings()
    if args.assets:
        cfg.assets_dir = args.assets

    session = build_session(cfg)
    print(f"Loading assets from {cfg.assets_dir}...")
    if not session.load_assets(AssetStore(timeout=cfg.asset_timeout), cfg.asset_sources()):
        print(f"Error: {session.info.error}")
        return 1
    print(f"Assets ready: {session.status()}")

    try:
        session.set_design(Path(args.design).read_bytes())
    except (OSError, DesignRejected) as exc:
        print(f"Error: {exc}")
        return 1

    session.update(
        scale=args.scale,
        offset_x=args.offset_x,
        offset_y=args.offset_y,
        displacement_intensity=args.intensity,
    )
    print(f"Rendering with {session.params.as_dict()}...")
    outcome = session.render()
    if outcome.image is None:
        print("Error: nothing rendered")
        return 1

    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    outcome.image.to_image().save(out)
    print(f"Success! Output saved to {out} ({outcome.elapsed_ms} ms)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
