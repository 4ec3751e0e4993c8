import random
import re
from colorsys import hls_to_rgb

from rich.color import Color, ColorParseError

HEX_REGEX = re.compile(r"^#?([a-f\d]{2})([a-f\d]{2})([a-f\d]{2})$", re.IGNORECASE)

BACKGROUND = "#2e2e2e"


def clamp(n: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, n))


def hex_to_rgb(hex_color: str) -> tuple[int, int, int] | None:
    m = HEX_REGEX.match((hex_color or "").strip())
    if not m:
        return None
    return tuple(int(x, 16) for x in m.groups())


def rgb_to_hex(rgb: tuple[int, int, int]) -> str:
    return "#{:02x}{:02x}{:02x}".format(*rgb)


def hsl_to_hex(h: float, s: float, l: float) -> str:
    """h in degrees, s and l in percent."""
    r, g, b = hls_to_rgb((h % 360) / 360, l / 100, s / 100)
    return rgb_to_hex(tuple(round(255 * x) for x in (r, g, b)))


def default_list_color(rng: random.Random | None = None) -> str:
    """A pleasant pastel for a new list."""
    hue = (rng or random).randrange(360)
    return hsl_to_hex(hue, 70, 85)


def tint(hex_color: str, alpha: float = 0.22, background: str = BACKGROUND) -> str | None:
    """Blend ``hex_color`` over ``background`` at ``alpha``; None for a bad color."""
    fg = hex_to_rgb(hex_color)
    bg = hex_to_rgb(background)
    if fg is None or bg is None:
        return None
    a = clamp(alpha, 0.0, 1.0)
    return rgb_to_hex(tuple(round(a * f + (1 - a) * b) for f, b in zip(fg, bg)))


def normalize_color(value: str | None) -> str | None:
    """
    Accept '#4f46e5', '4f46e5' or a named color such as 'gold' and return
    '#rrggbb'.  None or '' clears the color.  Raises ValueError otherwise.
    """
    if value is None or not value.strip():
        return None
    text = value.strip()
    rgb = hex_to_rgb(text)
    if rgb is not None:
        return rgb_to_hex(rgb)
    try:
        triplet = Color.parse(text.lower()).get_truecolor()
    except ColorParseError as e:
        raise ValueError(f"unknown color {value!r}") from e
    return triplet.hex
