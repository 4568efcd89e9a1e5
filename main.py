import argparse
import logging
import sys
from collections import OrderedDict
from pathlib import Path

import numpy as np

import kernels
from image_filters import ImageFilters
from image_transforms import ImageTransforms, Rotation
from images import BitmapImage, load, save

logger = logging.getLogger(__name__)

# Command defaults
DEFAULT_THRESHOLD = 150
DEFAULT_BRIGHTNESS = 100
DEFAULT_BLUR_SIZE = 3
DEFAULT_RANK_SIZE = 3
DEFAULT_NOISE_MEAN = 0.0
DEFAULT_NOISE_VARIANCE = 100.0
DEFAULT_SALT_PEPPER_PROBABILITY = 0.01


def parse_kernel(text):
    """'0,-1,0; -1,4,-1; 0,-1,0' -> 3x3 kernel."""
    try:
        rows = [[float(value) for value in row.split(",")] for row in text.split(";")]
        return kernels.as_kernel(rows)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid kernel {text!r}: {exc}") from exc


def run_copy(args, image):
    return image.copy()


def run_convolve(args, image):
    kernel = args.values if args.values is not None else kernels.preset(args.kernel)
    return ImageFilters.convolve(image, kernel)


def run_blur(args, image):
    if args.preserve_border:
        return ImageFilters.blur_preserve_border(image, args.size)
    return ImageFilters.blur(image, args.size)


def run_gaussian_blur(args, image):
    return ImageFilters.gaussian_blur(image, size=args.size, sigma=args.sigma)


def run_sharpen(args, image):
    return ImageFilters.sharpen(image)


def run_edges(args, image):
    operator = getattr(ImageFilters, args.operator)
    horizontal, vertical, combined = operator(image)
    return OrderedDict([("horizontal", horizontal), ("vertical", vertical), ("combined", combined)])


def run_laplacian(args, image):
    return OrderedDict([
        ("negative", ImageFilters.laplacian(image, positive=False, diagonal=args.diagonal)),
        ("positive", ImageFilters.laplacian(image, positive=True, diagonal=args.diagonal)),
    ])


def run_robinson(args, image):
    return ImageFilters.robinson(image)


def run_maximum(args, image):
    return ImageFilters.maximum_filter(image, args.size)


def run_median(args, image):
    return ImageFilters.median_filter(image, args.size)


def run_negative(args, image):
    return ImageTransforms.negative(image)


def run_brightness(args, image):
    if args.amount < 0:
        return ImageTransforms.decrease_brightness(image, -args.amount)
    return ImageTransforms.increase_brightness(image, args.amount)


def run_binarize(args, image):
    return ImageTransforms.binarize(image, args.threshold)


def run_histogram(args, image):
    histogram = ImageTransforms.histogram(image)
    ImageTransforms.save_histogram(args.output, histogram)
    print(f"Histogram saved as {args.output}")
    return None


def run_equalize(args, image):
    return ImageTransforms.equalize_histogram(image)


def run_gaussian_noise(args, image):
    rng = np.random.default_rng(args.seed)
    return ImageTransforms.gaussian_noise(image, args.mean, args.variance, rng)


def run_salt_pepper(args, image):
    rng = np.random.default_rng(args.seed)
    return ImageTransforms.salt_and_pepper_noise(image, args.probability, rng)


def run_rotate(args, image):
    return ImageTransforms.rotate(image, Rotation(args.direction))


def run_sepia(args, image):
    return ImageTransforms.sepia(image)


def run_grayscale(args, image):
    return ImageTransforms.to_grayscale(image)


def build_parser():
    parser = argparse.ArgumentParser(
        prog="bmpfilters",
        description="Apply a filter to an uncompressed 8-bit or 24-bit bitmap.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    parser.add_argument("--preview", action="store_true",
                        help="also write a PNG preview next to every output bitmap")
    sub = parser.add_subparsers(dest="command", required=True)

    def command(name, handler, help_text):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("input", type=Path)
        p.add_argument("output", type=Path)
        p.set_defaults(handler=handler)
        return p

    command("copy", run_copy, "load and save without changes")

    p = command("convolve", run_convolve, "correlate with a preset or custom kernel")
    group = p.add_mutually_exclusive_group()
    group.add_argument("--kernel", choices=kernels.PRESET_NAMES, default="laplacian_negative")
    group.add_argument("--values", type=parse_kernel,
                       help="rows separated by ';', values by ',' e.g. '0,-1,0;-1,4,-1;0,-1,0'")

    p = command("blur", run_blur, "uniform box blur")
    p.add_argument("--size", type=int, default=DEFAULT_BLUR_SIZE)
    p.add_argument("--preserve-border", action="store_true",
                   help="leave a size//2 border untouched instead of zero padding")

    p = command("gaussian-blur", run_gaussian_blur, "Gaussian blur")
    p.add_argument("--size", type=int, default=5)
    p.add_argument("--sigma", type=float, default=1.0)

    command("sharpen", run_sharpen, "high-pass sharpen")

    p = command("edges", run_edges, "directional edges plus combined magnitude")
    p.add_argument("--operator", choices=("prewitt", "sobel", "roberts"), default="sobel")

    p = command("laplacian", run_laplacian, "negative and positive Laplacian")
    p.add_argument("--diagonal", action="store_true", help="8-neighbour kernels")

    command("robinson", run_robinson, "eight Robinson compass directions")

    p = command("maximum", run_maximum, "maximum filter")
    p.add_argument("--size", type=int, default=DEFAULT_RANK_SIZE)

    p = command("median", run_median, "median filter")
    p.add_argument("--size", type=int, default=DEFAULT_RANK_SIZE)

    command("negative", run_negative, "invert intensities")

    p = command("brightness", run_brightness, "add (or subtract) a constant")
    p.add_argument("--amount", type=int, default=DEFAULT_BRIGHTNESS)

    p = command("binarize", run_binarize, "threshold to black and white")
    p.add_argument("--threshold", type=int, default=DEFAULT_THRESHOLD)

    command("histogram", run_histogram, "write the grey-level histogram as text")
    command("equalize", run_equalize, "histogram equalization")

    p = command("noise-gaussian", run_gaussian_noise, "add Gaussian noise")
    p.add_argument("--mean", type=float, default=DEFAULT_NOISE_MEAN)
    p.add_argument("--variance", type=float, default=DEFAULT_NOISE_VARIANCE)
    p.add_argument("--seed", type=int, default=None)

    p = command("noise-salt-pepper", run_salt_pepper, "add salt-and-pepper noise")
    p.add_argument("--probability", type=float, default=DEFAULT_SALT_PEPPER_PROBABILITY)
    p.add_argument("--seed", type=int, default=None)

    p = command("rotate", run_rotate, "rotate by quarter turns")
    p.add_argument("--direction", choices=[r.value for r in Rotation], default=Rotation.CLOCKWISE.value)

    command("sepia", run_sepia, "sepia tone (24-bit)")
    command("grayscale", run_grayscale, "grey levels in all three channels (24-bit)")

    return parser


def output_path(output, suffix):
    if suffix is None:
        return output
    return output.with_name(f"{output.stem}_{suffix}{output.suffix or '.bmp'}")


def write_results(output, result, preview=False):
    if isinstance(result, BitmapImage):
        result = {None: result}

    written = []
    for suffix, image in result.items():
        path = output_path(output, suffix)
        save(path, image)
        print(f"Created {path}")
        if preview:
            image.to_pil().save(path.with_suffix(".png"))
        written.append(path)
    return written


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        logger.debug("Running %s on %s", args.command, args.input)
        image = load(args.input)
        result = args.handler(args, image)
        if result is not None:
            write_results(args.output, result, preview=args.preview)
    except (OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
