"""Filename template resolution.

A template turns a naming convention into a fixed rendition.  With the
templates::

    [{location: prefix, name: "large", ...}, {location: suffix, name: "full", ...}]

``large_photo`` and ``photo_full`` both resolve to the canonical image
``photo`` and take their output size and format from the matched template,
while ``photo`` resolves to nothing.

The requested name is split on ``_``; the first token is the prefix
candidate and the last token the suffix candidate.  Templates are scanned in
configured order and the first one whose location and name match wins.  A
token with nothing left beside it (``large_``) is not a match.  No other
priority rule exists.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import NamedTuple

from pixelrelay.core.config import TemplateLocation, TemplateSettings

DELIMITER = "_"


class TemplateMatch(NamedTuple):
    """A template matched by a requested name."""

    template: TemplateSettings
    image_name: str


def resolve_template(
    requested_name: str, templates: Iterable[TemplateSettings]
) -> TemplateMatch | None:
    """Find the template encoded in *requested_name*.

    Args:
        requested_name: Name from the delivery request, without extension.
        templates: Templates in configured order.

    Returns:
        The first matching template and the canonical image name with the
        template token stripped, or ``None`` when no template matches.  No
        match is an ordinary outcome, not an error.
    """
    if DELIMITER not in requested_name:
        return None

    tokens = requested_name.split(DELIMITER)
    prefix, suffix = tokens[0], tokens[-1]

    for template in templates:
        if template.location is TemplateLocation.PREFIX and template.name == prefix:
            image_name = requested_name[len(prefix) + 1 :]
        elif template.location is TemplateLocation.SUFFIX and template.name == suffix:
            image_name = requested_name[: -(len(suffix) + 1)]
        else:
            continue
        # A bare token ("large_", "_full") names no image.
        if image_name:
            return TemplateMatch(template, image_name)
    return None
