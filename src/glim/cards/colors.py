"""Language colors from the GitHub Linguist palette."""

from __future__ import annotations

DEFAULT_COLOR = "#f1e05a"

_COLORS = {
    "Assembly": "#6E4C13",
    "C": "#555555",
    "C#": "#178600",
    "C++": "#f34b7d",
    "Clojure": "#db5855",
    "CoffeeScript": "#244776",
    "Crystal": "#000100",
    "CSS": "#563d7c",
    "Dart": "#00B4AB",
    "Dockerfile": "#384d54",
    "Elixir": "#6e4a7e",
    "Elm": "#60B5CC",
    "Erlang": "#B83998",
    "F#": "#b845fc",
    "Fortran": "#4d41b1",
    "Go": "#00ADD8",
    "Groovy": "#4298b8",
    "Haskell": "#5e5086",
    "HTML": "#e34c26",
    "Java": "#b07219",
    "JavaScript": "#f1e05a",
    "Julia": "#a270ba",
    "Jupyter Notebook": "#DA5B0B",
    "Kotlin": "#A97BFF",
    "Lua": "#000080",
    "Makefile": "#427819",
    "MATLAB": "#e16737",
    "Nim": "#ffc200",
    "Nix": "#7e7eff",
    "Objective-C": "#438eff",
    "OCaml": "#ef7a08",
    "Perl": "#0298c3",
    "PHP": "#4F5D95",
    "PowerShell": "#012456",
    "Python": "#3572A5",
    "R": "#198CE7",
    "Ruby": "#701516",
    "Rust": "#dea584",
    "Scala": "#c22d40",
    "SCSS": "#c6538c",
    "Shell": "#89e051",
    "Svelte": "#ff3e00",
    "Swift": "#F05138",
    "TeX": "#3D6117",
    "TypeScript": "#3178c6",
    "Vim Script": "#199f4b",
    "Vue": "#41b883",
    "Zig": "#ec915c",
}


def get_color(language: str | None) -> str | None:
    """Return the Linguist hex color for *language*, or None if unknown."""
    if not language:
        return None
    return _COLORS.get(language)
