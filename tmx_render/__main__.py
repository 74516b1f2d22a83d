#!/usr/bin/env python3

"""
TMX Render - draw a Tiled map into an image file

Usage:
    python -m tmx_render <map.tmx> <output> [options]

The output format follows the file extension: .png, .jpg/.jpeg or .gif

Options:
    --layers       Write one image per visible tile layer instead of one
                   composite: <output stem>_<index>_<layer name><suffix>
    --quality N    JPEG quality, 1-100 (default 75)
    --colors N     GIF palette size, 2-256 (default 256)
    -v             Verbose (debug) logging
"""

import argparse
import logging
import sys
import xml.etree.ElementTree as ET
from pathlib import Path

from .errors import RenderError
from .map.tmx import TiledMap
from .renderer import GifOptions, JpegOptions, Renderer

logger = logging.getLogger("tmx_render")

FORMATS = {
    '.png': 'png',
    '.jpg': 'jpeg',
    '.jpeg': 'jpeg',
    '.gif': 'gif',
}


def save(renderer: Renderer, path: Path, jpeg_options: JpegOptions,
         gif_options: GifOptions):
    image_format = FORMATS[path.suffix.lower()]
    with open(path, 'wb') as f:
        if image_format == 'png':
            renderer.save_as_png(f)
        elif image_format == 'jpeg':
            renderer.save_as_jpeg(f, jpeg_options)
        else:
            renderer.save_as_gif(f, gif_options)
    logger.info("Wrote %s", path)


def layer_output_path(output: Path, index: int, name: str) -> Path:
    safe_name = "".join(c if c.isalnum() or c in "-_" else "_" for c in name)
    return output.with_name(f"{output.stem}_{index}_{safe_name}{output.suffix}")


def int_in_range(low: int, high: int):
    def parse(value: str) -> int:
        try:
            number = int(value)
        except ValueError:
            raise argparse.ArgumentTypeError(f"'{value}' is not an integer")
        if not low <= number <= high:
            raise argparse.ArgumentTypeError(f"{number} is not in {low}-{high}")
        return number
    return parse


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tmx_render",
        description="Draw a Tiled map into a PNG, JPEG or GIF file",
    )
    parser.add_argument("source", help="TMX map to render")
    parser.add_argument("output", type=Path,
                        help="Output image; the suffix picks the format")
    parser.add_argument("--layers", action="store_true",
                        help="Write one image per visible tile layer")
    parser.add_argument("--quality", type=int_in_range(1, 100), default=75,
                        help="JPEG quality, 1-100")
    parser.add_argument("--colors", type=int_in_range(2, 256), default=256,
                        help="GIF palette size, 2-256")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Debug logging")
    return parser


def parse_args(argv) -> argparse.Namespace:
    """Parse the command line; exits with status 2 on bad input."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.output.suffix.lower() not in FORMATS:
        parser.error(f"unsupported output format '{args.output}'")
    return args


def main(argv=None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s"
    )

    if not Path(args.source).exists():
        print(f"Error: File '{args.source}' not found")
        return 1

    jpeg_options = JpegOptions(quality=args.quality)
    gif_options = GifOptions(num_colors=args.colors)

    try:
        tmx_map = TiledMap.load(args.source)
        renderer = Renderer(tmx_map)

        if args.layers:
            for index, state in enumerate(tmx_map.tile_layer_states()):
                if not state.visible:
                    continue
                renderer.clear()
                renderer.render_layer(index)
                save(renderer, layer_output_path(args.output, index, state.layer.name),
                     jpeg_options, gif_options)
        else:
            renderer.render_visible_layers()
            save(renderer, args.output, jpeg_options, gif_options)

    except (RenderError, OSError, ET.ParseError) as e:
        print(f"Error: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
