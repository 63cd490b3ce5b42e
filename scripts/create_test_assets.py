from pathlib import Path

import numpy as np
from PIL import Image, ImageDraw, ImageFilter


REPO_ROOT = Path(__file__).resolve().parents[1]
ASSETS_DIR = REPO_ROOT / "assets"

SIZE = (600, 700)
BAG_BOX = (110, 160, 490, 640)
PRINT_BOX = (170, 260, 430, 580)


def _bag_base() -> Image.Image:
    w, h = SIZE
    img = Image.new("RGBA", SIZE, (236, 232, 226, 255))
    draw = ImageDraw.Draw(img)
    # Handles
    draw.arc((200, 40, 400, 300), start=180, end=360, fill=(214, 204, 188, 255), width=18)
    draw.rectangle(BAG_BOX, fill=(246, 242, 234, 255))

    # Canvas folds: soft vertical shading bands so the luma carries contours
    arr = np.array(img, dtype=np.float32)
    xs = np.arange(w, dtype=np.float32)
    folds = 1.0 - 0.08 * (np.sin(xs / 23.0) ** 2) - 0.05 * np.cos(xs / 61.0)
    x0, y0, x1, y1 = BAG_BOX
    arr[y0:y1 + 1, x0:x1 + 1, :3] *= folds[None, x0:x1 + 1, None]
    img = Image.fromarray(np.clip(arr, 0, 255).astype(np.uint8), mode="RGBA")
    return img.filter(ImageFilter.GaussianBlur(radius=1.2))


def _bag_mask() -> Image.Image:
    mask = Image.new("RGBA", SIZE, (0, 0, 0, 0))
    draw = ImageDraw.Draw(mask)
    draw.rounded_rectangle(PRINT_BOX, radius=12, fill=(255, 255, 255, 255))
    return mask


def _bag_shadow() -> Image.Image:
    shadow = Image.new("RGBA", SIZE, (0, 0, 0, 0))
    draw = ImageDraw.Draw(shadow)
    x0, y0, x1, y1 = BAG_BOX
    draw.rectangle((x0, y1 - 40, x1, y1), fill=(60, 55, 50, 160))
    draw.rectangle((x0, y0, x0 + 24, y1), fill=(60, 55, 50, 110))
    return shadow.filter(ImageFilter.GaussianBlur(radius=14))


def _sample_design() -> Image.Image:
    design = Image.new("RGBA", (400, 400), (0, 0, 0, 0))
    draw = ImageDraw.Draw(design)
    draw.ellipse((40, 40, 360, 360), fill=(200, 40, 60, 255))
    draw.rectangle((150, 150, 250, 250), fill=(20, 40, 120, 255))
    return design


def create_test_assets(with_displacement: bool = False):
    ASSETS_DIR.mkdir(parents=True, exist_ok=True)

    base = _bag_base()
    outputs = {
        "bag-base.png": base,
        "bag-mask.png": _bag_mask(),
        "bag-shadow.png": _bag_shadow(),
        "sample-design.png": _sample_design(),
    }
    if with_displacement:
        # A hand-made map would normally come from the photographer; here the
        # blurred base luma stands in for it.
        outputs["bag-displacement.png"] = base.convert("L").filter(ImageFilter.GaussianBlur(radius=6)).convert("RGBA")

    for name, img in outputs.items():
        out = ASSETS_DIR / name
        img.save(out)
        print(f"Created {out}")


if __name__ == "__main__":
    import sys

    create_test_assets(with_displacement="--with-displacement" in sys.argv[1:])
