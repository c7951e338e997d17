"""Display colors for arrays and pools"""

from typing import Dict, Iterable, List, Optional

from .models import NO_ARRAY, is_unset

# rich style names
PALETTE: List[str] = [
    "green", "yellow", "blue", "magenta", "cyan",
    "bright_green", "bright_yellow", "bright_blue", "bright_magenta", "bright_cyan",
]


def parent_of(name: str) -> Optional[str]:
    """Parent group name, e.g. tank for tank-cache"""
    if "-" not in name:
        return None
    parent = name.rsplit("-", 1)[0]
    return parent or None


def assign_colors(names: Iterable[str], palette: List[str] = PALETTE) -> Dict[str, Optional[str]]:
    """Assign a color per array, sub-groups share the color of their parent

    Names are processed in sorted order, so the assignment does not depend on
    the order the arrays were discovered in. Colors are reused once the
    palette is exhausted.
    """
    colors: Dict[str, Optional[str]] = {}
    next_color = 0

    for name in sorted(set(names)):
        if is_unset(name) or name == NO_ARRAY:
            colors[name] = None
            continue
        if name in colors:
            continue

        parent = parent_of(name)
        if parent is not None and parent in colors and colors[parent]:
            colors[name] = colors[parent]
            continue

        color = palette[next_color % len(palette)]
        next_color += 1
        colors[name] = color
        if parent is not None:
            colors.setdefault(parent, color)

    return colors
