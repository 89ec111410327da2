"""
Produce animated QR sequences that MultipartDecoder can read back.

Handy for exercising the scanner without a hardware wallet: encode a file,
open the GIF on a second screen and point the camera at it.
"""

import argparse
from pathlib import Path
from typing import List, Sequence

import qrcode
from PIL import Image
from tqdm import tqdm

from .decoder import SupportedType


def encode_fragments(
    target: SupportedType, data: bytes, max_fragment_len: int = 200
) -> List[str]:
    """
    Split a payload into `ur:` fragments of at most `max_fragment_len` hex chars.

    A payload that fits in one fragment is emitted in single-part form.
    """
    if max_fragment_len < 2:
        raise ValueError("max_fragment_len must be at least 2")
    body = data.hex()
    # Keep every chunk on a byte boundary.
    chunk_len = max_fragment_len - (max_fragment_len % 2)
    if len(body) <= chunk_len:
        return [f"ur:{target.value}/{body}"]
    chunks = [body[i : i + chunk_len] for i in range(0, len(body), chunk_len)]
    total = len(chunks)
    return [
        f"ur:{target.value}/{seq}-{total}/{chunk}"
        for seq, chunk in enumerate(chunks, start=1)
    ]


def make_qr_image(text: str) -> Image.Image:
    # Upper-case text lets qrcode pick alphanumeric mode; the decoder is
    # case-insensitive.
    qr = qrcode.QRCode(border=2, box_size=8)
    qr.add_data(text.upper())
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    return img.convert("RGB")


def render_animated_qr(
    fragments: Sequence[str], output: str | Path, frame_ms: int = 250
) -> Path:
    if not fragments:
        raise ValueError("Nothing to render")
    images = [make_qr_image(f) for f in tqdm(fragments, desc="Rendering QR frames")]
    # Frames of differing QR versions would otherwise be cropped to the first.
    width = max(img.width for img in images)
    height = max(img.height for img in images)
    frames = []
    for img in images:
        canvas = Image.new("RGB", (width, height), "white")
        canvas.paste(img, ((width - img.width) // 2, (height - img.height) // 2))
        frames.append(canvas)

    out_path = Path(output)
    frames[0].save(
        out_path,
        save_all=True,
        append_images=frames[1:],
        duration=frame_ms,
        loop=0,
    )
    return out_path


def main() -> int:
    parser = argparse.ArgumentParser(description="Encode a file as an animated UR QR code")
    parser.add_argument("--input", required=True, help="File with the raw payload bytes")
    parser.add_argument("--output", default="animated_qr.gif", help="Output GIF path")
    parser.add_argument(
        "--type",
        default=SupportedType.BYTES.value,
        choices=[t.value for t in SupportedType],
        help="UR type of the payload",
    )
    parser.add_argument("--max-fragment-len", type=int, default=200)
    parser.add_argument("--frame-ms", type=int, default=250, help="Delay per frame")
    parser.add_argument(
        "--list", action="store_true", help="Print fragments instead of rendering"
    )
    args = parser.parse_args()

    data = Path(args.input).read_bytes()
    fragments = encode_fragments(
        SupportedType.parse(args.type), data, args.max_fragment_len
    )
    if args.list:
        for fragment in fragments:
            print(fragment)
        return 0

    out_path = render_animated_qr(fragments, args.output, args.frame_ms)
    print(f"Wrote {out_path} ({len(fragments)} frames)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
