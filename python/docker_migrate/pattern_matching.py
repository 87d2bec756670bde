#!/usr/bin/env python3
"""
Pattern matching utilities for Docker image tags.

Provides the tag filter used to pick images on the source daemon, and a
helper that turns the image names referenced by a compose file into a
single pattern.
"""

import re
from typing import Iterable, List, Optional, Pattern, Sequence

from docker_migrate.error_utils import create_invalid_pattern_error


COMPOSE_IMAGE_LINE = re.compile(r"^[ ]*image: (.+)$")


def compile_pattern(pattern: str) -> Pattern:
    """Compile an image pattern.

    Args:
        pattern: Regular expression matched against "repository:tag" names

    Returns:
        Compiled expression

    Raises:
        InvalidPatternError: If the pattern is not a string or does not compile
    """
    if not isinstance(pattern, str):
        raise create_invalid_pattern_error(str(pattern))
    try:
        return re.compile(pattern)
    except re.error as e:
        raise create_invalid_pattern_error(pattern, e)


def match_tags(regex: Pattern, tags: Optional[Sequence[str]]) -> List[str]:
    """Return the tags the expression matches, in their original order.

    A tag matches when the expression is found anywhere in it, so "alpine"
    matches "alpine:latest" and "myrepo/alpine:3.16" alike. Anchor the
    pattern (^...$) for exact matches.

    Args:
        regex: Compiled expression
        tags: Tag names of one image (None for untagged images)

    Returns:
        Matching tags; empty if none match
    """
    if not tags:
        return []
    return [tag for tag in tags if regex.search(tag)]


def read_image_names_from_file(path: str) -> List[str]:
    """Collect the image names referenced by "image: <name>" lines of a file.

    Args:
        path: Path to a compose (or similar YAML) file

    Returns:
        Image names in file order
    """
    names = []
    with open(path, "r") as f:
        for line in f:
            match = COMPOSE_IMAGE_LINE.match(line.rstrip("\r\n"))
            if match:
                name = match.group(1).strip().strip("\"'")
                if name:
                    names.append(name)
    return names


def build_pattern_from_names(names: Iterable[str]) -> str:
    """Build one pattern matching exactly the given image names.

    A name with a tag ("alpine:3.16") matches only that tag; a name without
    one ("alpine") matches every tag of that repository.

    Args:
        names: Image names, e.g. from read_image_names_from_file

    Returns:
        Anchored alternation, e.g. "^(?:alpine|golang:1\\.20)(?::[^:/]+)?$"
    """
    unique = list(dict.fromkeys(n for n in names if n))
    if not unique:
        raise create_invalid_pattern_error("", ValueError("no image names to build a pattern from"))
    alternatives = "|".join(re.escape(name) for name in unique)
    return f"^(?:{alternatives})(?::[^:/]+)?$"
