"""
Developer Console — Built-in Themes
===================================
Version 1.0 — October 2026

Palettes seeded into the themes table at start-up. Colour keys are the
front end's CSS token names and are stored verbatim.
"""

import re
from typing import Any, Dict, List, Optional

DEFAULT_THEME = "dark"

COLOR_KEYS = (
    "bgPrimary", "bgSecondary", "bgTertiary", "bgCard",
    "textPrimary", "textSecondary", "textMuted",
    "accentPrimary", "accentSecondary", "accentSuccess", "accentWarning", "accentDanger",
    "borderPrimary", "borderAccent",
)

# #rgb, #rgba, #rrggbb, #rrggbbaa or an rgb()/rgba() call
COLOR_VALUE_PATTERN = re.compile(
    r"^(#([0-9a-fA-F]{3,4}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})|rgba?\(\s*[\d.]+%?(\s*,\s*[\d.]+%?){2,3}\s*\))$"
)


def _palette(*values: str) -> Dict[str, str]:
    return dict(zip(COLOR_KEYS, values))


BUILT_IN_THEMES: List[Dict[str, Any]] = [
    {
        "name": "dark",
        "display_name": "Dark (Default)",
        "colors": _palette(
            "#0f172a", "#1e293b", "#334155", "rgba(30, 41, 59, 0.8)",
            "#f8fafc", "#94a3b8", "#64748b",
            "#3b82f6", "#8b5cf6", "#10b981", "#f59e0b", "#ef4444",
            "rgba(148, 163, 184, 0.1)", "rgba(59, 130, 246, 0.5)",
        ),
    },
    {
        "name": "dracula",
        "display_name": "Dracula",
        "colors": _palette(
            "#282a36", "#44475a", "#6272a4", "rgba(68, 71, 90, 0.8)",
            "#f8f8f2", "#bd93f9", "#6272a4",
            "#bd93f9", "#ff79c6", "#50fa7b", "#ffb86c", "#ff5555",
            "rgba(98, 114, 164, 0.3)", "rgba(189, 147, 249, 0.5)",
        ),
    },
    {
        "name": "monokai",
        "display_name": "Monokai",
        "colors": _palette(
            "#272822", "#3e3d32", "#49483e", "rgba(62, 61, 50, 0.8)",
            "#f8f8f2", "#a6e22e", "#75715e",
            "#a6e22e", "#f92672", "#a6e22e", "#e6db74", "#f92672",
            "rgba(117, 113, 94, 0.3)", "rgba(166, 226, 46, 0.5)",
        ),
    },
    {
        "name": "nord",
        "display_name": "Nord",
        "colors": _palette(
            "#2e3440", "#3b4252", "#434c5e", "rgba(59, 66, 82, 0.8)",
            "#eceff4", "#88c0d0", "#4c566a",
            "#88c0d0", "#81a1c1", "#a3be8c", "#ebcb8b", "#bf616a",
            "rgba(76, 86, 106, 0.3)", "rgba(136, 192, 208, 0.5)",
        ),
    },
    {
        "name": "solarized-dark",
        "display_name": "Solarized Dark",
        "colors": _palette(
            "#002b36", "#073642", "#586e75", "rgba(7, 54, 66, 0.8)",
            "#839496", "#93a1a1", "#657b83",
            "#268bd2", "#2aa198", "#859900", "#b58900", "#dc322f",
            "rgba(101, 123, 131, 0.3)", "rgba(38, 139, 210, 0.5)",
        ),
    },
    {
        "name": "light",
        "display_name": "Light",
        "colors": _palette(
            "#ffffff", "#f8fafc", "#e2e8f0", "rgba(248, 250, 252, 0.9)",
            "#1e293b", "#475569", "#94a3b8",
            "#3b82f6", "#8b5cf6", "#10b981", "#f59e0b", "#ef4444",
            "rgba(226, 232, 240, 0.8)", "rgba(59, 130, 246, 0.5)",
        ),
    },
    {
        "name": "github-dark",
        "display_name": "GitHub Dark",
        "colors": _palette(
            "#0d1117", "#161b22", "#21262d", "rgba(22, 27, 34, 0.8)",
            "#c9d1d9", "#8b949e", "#484f58",
            "#58a6ff", "#bc8cff", "#3fb950", "#d29922", "#f85149",
            "rgba(48, 54, 61, 0.8)", "rgba(88, 166, 255, 0.5)",
        ),
    },
]


def normalize_theme_name(name: str) -> str:
    """'My Theme ' -> 'my-theme'"""
    return re.sub(r"\s+", "-", name.strip().lower())


def merge_colors(colors: Dict[str, str]) -> Dict[str, str]:
    """Fill any missing token from the default palette."""
    merged = dict(BUILT_IN_THEMES[0]["colors"])
    merged.update(colors or {})
    return merged


def find_invalid_color(colors: Dict[str, Any]) -> Optional[str]:
    """Return the first token whose value is not a hex or rgb()/rgba() colour."""
    for key, value in (colors or {}).items():
        if not isinstance(value, str) or not COLOR_VALUE_PATTERN.match(value.strip()):
            return key
    return None
