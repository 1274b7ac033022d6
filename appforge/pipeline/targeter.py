"""Pick the files an edit instruction is most likely to touch."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import re
from typing import Pattern, Sequence

logger = logging.getLogger(__name__)

MAX_TARGET_FILES = 20
SOURCE_FILE_PATTERN = re.compile(r"\.(tsx?|jsx?|css|scss)$")
EXCLUDED_DIRS = ("node_modules", ".next")


@dataclass(frozen=True)
class FileCategory:
    name: str
    keywords: tuple[str, ...]
    patterns: tuple[Pattern[str], ...]
    priority: int

    def matches(self, path: str) -> bool:
        return any(pattern.search(path) for pattern in self.patterns)


@dataclass(frozen=True)
class CategoryScore:
    category: FileCategory
    score: int


def _patterns(*expressions: str) -> tuple[Pattern[str], ...]:
    return tuple(re.compile(expression) for expression in expressions)


FILE_CATEGORIES: tuple[FileCategory, ...] = (
    FileCategory(
        name="styling",
        keywords=(
            "color", "style", "css", "tailwind", "design", "theme",
            "font", "size", "layout", "spacing", "margin", "padding",
            "background", "border", "shadow", "gradient", "animation",
            "orange", "blue", "red", "green", "yellow", "purple", "pink",
        ),
        patterns=_patterns(
            r"\.css$",
            r"\.scss$",
            r"tailwind\.config\.(js|ts)$",
            r"globals\.css$",
            r"styles?\.(ts|tsx|js|jsx)$",
        ),
        priority=3,
    ),
    FileCategory(
        name="components",
        keywords=(
            "component", "button", "input", "form", "modal", "card",
            "header", "footer", "navbar", "sidebar", "menu", "dropdown",
            "page", "ui", "interface", "render", "display", "show",
        ),
        patterns=_patterns(
            r"components/.*\.(tsx|jsx)$",
            r"app/.*page\.(tsx|jsx)$",
            r"src/.*\.(tsx|jsx)$",
        ),
        priority=2,
    ),
    FileCategory(
        name="api",
        keywords=(
            "api", "endpoint", "route", "server", "backend",
            "fetch", "request", "response", "data", "database",
        ),
        patterns=_patterns(r"api/.*route\.(ts|js)$", r"/api/.*\.(ts|js)$"),
        priority=3,
    ),
    FileCategory(
        name="logic",
        keywords=(
            "function", "logic", "algorithm", "calculation",
            "util", "helper", "service", "hook", "state",
        ),
        patterns=_patterns(
            r"lib/.*\.(ts|js)$",
            r"utils/.*\.(ts|js)$",
            r"hooks/.*\.(ts|js)$",
            r"services/.*\.(ts|js)$",
        ),
        priority=2,
    ),
    FileCategory(
        name="config",
        keywords=(
            "config", "configuration", "settings", "environment",
            "env", "setup", "install", "dependency", "package",
        ),
        patterns=_patterns(
            r"package\.json$",
            r"tsconfig\.json$",
            r"next\.config\.(js|ts)$",
            r"\.env$",
            r".*\.config\.(js|ts)$",
        ),
        priority=4,
    ),
)


def analyze_instruction(
    instruction: str, categories: Sequence[FileCategory] = FILE_CATEGORIES
) -> list[CategoryScore]:
    """Score each category by its keyword hits, highest first.

    Equal scores keep declaration order.
    """
    lowered = instruction.lower()
    scored: list[CategoryScore] = []
    for category in categories:
        hits = sum(1 for keyword in category.keywords if keyword in lowered)
        if hits:
            scored.append(CategoryScore(category=category, score=hits * category.priority))
    return sorted(scored, key=lambda item: item.score, reverse=True)


def source_files(paths: Sequence[str]) -> list[str]:
    return [
        path
        for path in paths
        if SOURCE_FILE_PATTERN.search(path)
        and not any(excluded in path for excluded in EXCLUDED_DIRS)
    ]


def _filter_by_categories(
    paths: Sequence[str], categories: Sequence[FileCategory]
) -> list[str]:
    return [path for path in paths if any(category.matches(path) for category in categories)]


def identify_relevant_files(
    instruction: str,
    paths: Sequence[str],
    max_files: int = MAX_TARGET_FILES,
) -> list[str]:
    unique_paths = list(dict.fromkeys(paths))
    scores = analyze_instruction(instruction)
    if not scores:
        logger.debug("No categories detected, using all source files")
        return source_files(unique_paths)

    logger.debug(
        "Categories: "
        + ", ".join(f"{item.category.name}(score:{item.score})" for item in scores)
    )
    relevant = _filter_by_categories(unique_paths, [item.category for item in scores])
    if not relevant:
        logger.debug("No category matches, expanding to all source files")
        return source_files(unique_paths)

    if len(relevant) > max_files:
        top = scores[0].category
        narrowed = _filter_by_categories(unique_paths, [top])
        if narrowed and len(narrowed) < len(relevant):
            logger.debug(f"Narrowed {len(relevant)} files to {len(narrowed)} using {top.name}")
            return narrowed
    return relevant
